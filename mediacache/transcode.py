"""
TranscodeCoordinator - HEVC transcodes guarded by control files.

Each video has up to four sidecars in its cache folder:

    clip.h265.mp4        finished transcode
    clip.h265.skip.json  durable "do not transcode" decision
    clip.h265.lock       in-flight marker, created with O_EXCL
    clip.h265.fail.json  last failure, suppresses retries for a while

Because the state lives on disk it survives restarts and is honoured by
every process sharing the media root.
"""

import logging
import os
import time
from typing import Callable, Optional

from .cache_paths import CachePaths
from .config import FAILURE_BACKOFF_SECONDS, TOOL_ATTEMPTS, TRANSCODE_CODECS
from .errors import MediaError, ToolError, ZeroByteOutput
from .models import FailureRecord, LockRecord, SkipRecord
from .retry import with_retries
from .storage import (
    create_exclusive, delete_if_zero_byte, is_non_empty_file, read_json,
    remove_quietly, write_json,
)
from .video_tools import VideoTools

SKIP_SMALL = 'small'
SKIP_ALREADY_TRANSCODED = 'already-transcoded'

STDERR_EXCERPT = 500


class TranscodeCoordinator:
    """
    Runs at most one transcode per video and never hot-loops on failures.

    ensure_transcode() never blocks on another caller's work and never
    raises; anything other than a finished file is reported as None.
    """

    def __init__(
        self,
        paths: CachePaths,
        tools: VideoTools,
        min_bytes: int = 10_000_000,
        backoff_seconds: int = FAILURE_BACKOFF_SECONDS,
        attempts: int = TOOL_ATTEMPTS,
        base_delay: float = 0.75,
        clock: Callable[[], float] = time.time,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the coordinator.

        Args:
            paths: Cache path mapping
            tools: ffmpeg / ffprobe wrapper
            min_bytes: Sources at or below this size are never transcoded
            backoff_seconds: How long a failure record suppresses new attempts
            attempts: Transcode attempts for transient failures
            base_delay: First retry delay in seconds
            clock: Returns the current time in epoch seconds
            logger: Optional logger instance
        """
        self.paths = paths
        self.tools = tools
        self.min_bytes = min_bytes
        self.backoff_seconds = backoff_seconds
        self.attempts = attempts
        self.base_delay = base_delay
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    def existing(self, rel_path: str) -> Optional[str]:
        """Path of a finished transcode, or None."""
        output = self.paths.video_transcode(rel_path)
        return output if is_non_empty_file(output) else None

    def is_pending(self, rel_path: str) -> bool:
        """True while another caller holds the transcode lock."""
        return os.path.exists(self.paths.transcode_lock(rel_path))

    def ensure_transcode(self, rel_path: str) -> Optional[str]:
        """
        Return the transcoded file, transcoding now if this caller may.

        Args:
            rel_path: Video path relative to the media root

        Returns:
            Path of the HEVC file, or None when it is skipped, in flight
            elsewhere, backing off after a failure, or just failed
        """
        output = self.paths.video_transcode(rel_path)
        if is_non_empty_file(output):
            return output
        delete_if_zero_byte(output)

        skip = self._read_skip(rel_path)
        if skip is not None:
            self.logger.debug(f"Transcode skipped for {rel_path}: {skip.reason}")
            return None

        try:
            video = self.paths.resolve_original(rel_path)
            size = os.path.getsize(video)
        except (MediaError, OSError) as e:
            self.logger.error(f"Cannot transcode {rel_path}: {e}")
            return None

        if self._record_skip_if_ineligible(rel_path, video, size):
            return None

        if self.is_pending(rel_path):
            self.logger.debug(f"Transcode already in progress: {rel_path}")
            return None

        if self._in_backoff(rel_path):
            return None

        lock_path = self.paths.transcode_lock(rel_path)
        try:
            acquired = create_exclusive(
                lock_path, LockRecord(at=self._now_ms(), pid=os.getpid()).to_dict())
        except OSError as e:
            self.logger.error(f"Cannot create transcode lock for {rel_path}: {e}")
            return None
        if not acquired:
            self.logger.debug(f"Lost transcode lock race: {rel_path}")
            return None

        tmp = self.paths.transcode_temp(rel_path, os.getpid(), self._now_ms())
        try:
            # Another caller may have finished while this one was probing
            if is_non_empty_file(output):
                self.logger.debug(f"Transcode finished elsewhere: {rel_path}")
                return output
            if self._read_skip(rel_path) is not None:
                return None
            self.logger.info(f"Transcoding {rel_path} ({size} bytes)")
            self._transcode(video, tmp, output, rel_path)
            remove_quietly(self.paths.transcode_failure(rel_path))
            self.logger.info(f"Transcoded {rel_path} -> {output}")
            return output
        except Exception as e:
            message = str(e)
            if isinstance(e, ToolError) and e.stderr:
                message = f"{message}: {e.stderr[-STDERR_EXCERPT:].strip()}"
            self._write_failure(rel_path, message)
            self.logger.error(f"ffmpeg transcode failed for {rel_path}: {message}")
            return None
        finally:
            remove_quietly(lock_path)
            remove_quietly(tmp)

    def _transcode(self, video: str, tmp: str, output: str, rel_path: str) -> None:
        def attempt():
            remove_quietly(tmp)
            self.tools.transcode(video, tmp)
            if not os.path.exists(tmp):
                raise ZeroByteOutput(f"Transcode produced no output for {rel_path}")
            if delete_if_zero_byte(tmp):
                raise ZeroByteOutput(f"Transcode produced a 0-byte file for {rel_path}")

        with_retries(
            attempt,
            label=f"transcode {os.path.basename(rel_path)}",
            attempts=self.attempts,
            base_delay=self.base_delay,
            log=self.logger,
        )
        os.replace(tmp, output)

    # --- Control files -----------------------------------------------------

    def _read_skip(self, rel_path: str) -> Optional[SkipRecord]:
        data = read_json(self.paths.transcode_skip(rel_path))
        return SkipRecord.from_dict(data) if data is not None else None

    def _write_skip(self, rel_path: str, reason: str, **details) -> None:
        record = SkipRecord(at=self._now_ms(), reason=reason, details=details)
        try:
            write_json(self.paths.transcode_skip(rel_path), record.to_dict())
        except OSError as e:
            self.logger.warning(f"Could not record transcode skip for {rel_path}: {e}")
        self.logger.info(f"Transcode not needed for {rel_path}: {reason}")

    def _record_skip_if_ineligible(self, rel_path: str, video: str, size: int) -> bool:
        if size <= self.min_bytes:
            self._write_skip(rel_path, SKIP_SMALL, bytes=size, minBytes=self.min_bytes)
            return True
        codec = self.tools.probe_codec(video)
        if codec in TRANSCODE_CODECS:
            self._write_skip(rel_path, SKIP_ALREADY_TRANSCODED, codec=codec)
            return True
        return False

    def _in_backoff(self, rel_path: str) -> bool:
        data = read_json(self.paths.transcode_failure(rel_path))
        if data is None:
            return False
        failure = FailureRecord.from_dict(data)
        age_ms = self._now_ms() - failure.at
        if age_ms < self.backoff_seconds * 1000:
            self.logger.debug(
                f"Transcode of {rel_path} failed {age_ms / 1000:.0f}s ago, backing off")
            return True
        return False

    def _write_failure(self, rel_path: str, message: str) -> None:
        try:
            write_json(
                self.paths.transcode_failure(rel_path),
                FailureRecord(at=self._now_ms(), message=message).to_dict(),
            )
        except OSError as e:
            self.logger.warning(f"Could not record transcode failure for {rel_path}: {e}")
