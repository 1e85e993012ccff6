"""
VideoTools - ffmpeg / ffprobe invocations.

Failures are raised as ToolError with an ErrorKind attached, so callers and
the retry policy never have to parse tool output themselves.
"""

import logging
from typing import Optional

import sh

from .config import THUMBNAIL_OFFSET, THUMBNAIL_WIDTH
from .errors import ErrorKind, ToolError, is_transient_message

STDERR_TAIL = 2000


class VideoTools:
    """Thin wrapper around the ffmpeg and ffprobe executables."""

    def __init__(
        self,
        ffmpeg: str = 'ffmpeg',
        ffprobe: str = 'ffprobe',
        logger: Optional[logging.Logger] = None
    ):
        self.ffmpeg = ffmpeg
        self.ffprobe = ffprobe
        self.logger = logger or logging.getLogger(__name__)

    def _run(self, executable: str, *args: str, binary: bool = False):
        self.logger.debug(f"{executable} {' '.join(args)}")
        try:
            command = sh.Command(executable)
        except sh.CommandNotFound:
            raise ToolError(f"{executable} not found", kind=ErrorKind.DECODE)
        try:
            if binary:
                return command(*args, _return_cmd=True, _tty_out=False).stdout
            return command(*args, _tty_out=False)
        except sh.ErrorReturnCode as e:
            stderr = e.stderr.decode('utf-8', 'replace') if e.stderr else ''
            kind = ErrorKind.TRANSIENT_IO if is_transient_message(stderr) else ErrorKind.DECODE
            raise ToolError(
                f"{executable} exited with {e.exit_code}",
                kind=kind,
                stderr=stderr[-STDERR_TAIL:],
            )

    def probe_codec(self, video_path: str) -> Optional[str]:
        """
        Codec name of the first video stream (e.g. 'h264', 'hevc').

        Returns:
            Lower-cased codec name, or None if probing failed
        """
        try:
            out = self._run(
                self.ffprobe,
                '-v', 'error',
                '-select_streams', 'v:0',
                '-show_entries', 'stream=codec_name',
                '-of', 'default=nw=1:nk=1',
                video_path,
            )
        except ToolError as e:
            self.logger.debug(f"ffprobe failed for {video_path}: {e}")
            return None
        codec = str(out or '').strip().lower()
        return codec or None

    def extract_frame(
        self,
        video_path: str,
        output_path: str,
        offset: str = THUMBNAIL_OFFSET,
        width: int = THUMBNAIL_WIDTH
    ) -> None:
        """Write one frame at offset, scaled to width (aspect preserved)."""
        self._run(
            self.ffmpeg,
            '-y',
            '-ss', offset,
            '-i', video_path,
            '-frames:v', '1',
            '-vf', f"scale={width}:-1",
            output_path,
        )

    def transcode(self, video_path: str, output_path: str) -> None:
        """Re-encode to HEVC (hvc1-tagged for Safari) with AAC audio."""
        self._run(
            self.ffmpeg,
            '-y',
            '-i', video_path,
            '-c:v', 'libx265',
            '-preset', 'medium',
            '-crf', '30',
            '-tag:v', 'hvc1',
            '-c:a', 'aac',
            '-b:a', '128k',
            output_path,
        )

    def decode_still_png(self, image_path: str) -> bytes:
        """Decode the first frame of a still image (HEIC etc.) to PNG bytes."""
        data = self._run(
            self.ffmpeg,
            '-v', 'error',
            '-i', image_path,
            '-frames:v', '1',
            '-f', 'image2pipe',
            '-vcodec', 'png',
            'pipe:1',
            binary=True,
        )
        if not data:
            raise ToolError(f"ffmpeg produced no image for {image_path}", kind=ErrorKind.DECODE)
        return bytes(data)
