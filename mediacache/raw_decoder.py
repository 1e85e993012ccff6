"""
RawDecoder - Runs the RAW worker subprocess through a bounded pool.
"""

import logging
import os
import sys
import threading
from typing import Callable, Optional

import sh

from .config import TOOL_ATTEMPTS
from .errors import DecodeError, ErrorKind, ToolError, is_transient_message
from .models import DecodedRawBuffer
from .raw_buffer import metadata_path, read_sidecars
from .retry import with_retries
from .storage import remove_quietly

# Callable taking (input_path, output_path) that runs the worker to completion
WorkerRunner = Callable[[str, str], None]


def run_worker_subprocess(input_path: str, output_path: str) -> None:
    """Invoke `python -m mediacache.raw_worker input output`."""
    python = sh.Command(sys.executable)
    try:
        python('-m', 'mediacache.raw_worker', input_path, output_path)
    except sh.ErrorReturnCode as e:
        stderr = e.stderr.decode('utf-8', 'replace') if e.stderr else ''
        kind = ErrorKind.TRANSIENT_IO if is_transient_message(stderr) else ErrorKind.DECODE
        raise ToolError(
            f"RAW worker exited with {e.exit_code} for {os.path.basename(input_path)}",
            kind=kind,
            stderr=stderr[-2000:],
        )


class RawDecoder:
    """
    Decodes RAW files out of process.

    At most max_workers worker subprocesses run at once; further requests
    block until a slot frees up.
    """

    def __init__(
        self,
        max_workers: int = 2,
        runner: Optional[WorkerRunner] = None,
        attempts: int = TOOL_ATTEMPTS,
        base_delay: float = 0.75,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the decoder.

        Args:
            max_workers: Maximum concurrent worker subprocesses
            runner: Worker invocation, replaceable for tests
            attempts: Attempts per decode for transient failures
            base_delay: First retry delay in seconds
            logger: Optional logger instance
        """
        self.max_workers = max_workers
        self.runner = runner or run_worker_subprocess
        self.attempts = attempts
        self.base_delay = base_delay
        self.logger = logger or logging.getLogger(__name__)
        self._slots = threading.BoundedSemaphore(max_workers)

    def decode(self, input_path: str, output_path: str) -> DecodedRawBuffer:
        """
        Decode input_path via the worker, using output_path for the sidecars.

        The sidecars are always removed before returning.

        Raises:
            DecodeError / ToolError: When the worker fails or its output is invalid
        """
        os.makedirs(os.path.dirname(output_path), exist_ok=True)
        remove_quietly(output_path)
        remove_quietly(metadata_path(output_path))

        with self._slots:
            try:
                self.logger.debug(f"RAW worker: {input_path} -> {output_path}")
                with_retries(
                    lambda: self.runner(input_path, output_path),
                    label=f"raw worker {os.path.basename(input_path)}",
                    attempts=self.attempts,
                    base_delay=self.base_delay,
                    log=self.logger,
                )
                return read_sidecars(output_path)
            except (ToolError, DecodeError):
                raise
            except OSError as e:
                raise DecodeError(f"RAW worker could not run: {e}")
            finally:
                remove_quietly(output_path)
                remove_quietly(metadata_path(output_path))
