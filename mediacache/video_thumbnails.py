"""
VideoThumbnailGenerator - Poster frames for videos.
"""

import logging
import os
from typing import Optional

from .cache_paths import CachePaths
from .config import THUMBNAIL_OFFSET, THUMBNAIL_WIDTH, TOOL_ATTEMPTS
from .errors import MediaError
from .locks import KeyedLocks
from .retry import with_retries
from .storage import atomic_output, delete_if_zero_byte, is_fresh
from .video_tools import VideoTools


class VideoThumbnailGenerator:
    """
    Extracts one frame per video with ffmpeg and caches it as a JPEG.

    Failures are not raised: a video without a thumbnail is a normal state
    for callers, who get None and render a placeholder.
    """

    def __init__(
        self,
        paths: CachePaths,
        tools: VideoTools,
        locks: Optional[KeyedLocks] = None,
        width: int = THUMBNAIL_WIDTH,
        offset: str = THUMBNAIL_OFFSET,
        attempts: int = TOOL_ATTEMPTS,
        base_delay: float = 0.75,
        logger: Optional[logging.Logger] = None
    ):
        self.paths = paths
        self.tools = tools
        self.locks = locks or KeyedLocks()
        self.width = width
        self.offset = offset
        self.attempts = attempts
        self.base_delay = base_delay
        self.logger = logger or logging.getLogger(__name__)

    def ensure_thumbnail(self, rel_path: str) -> Optional[str]:
        """
        Return the thumbnail path for a video, extracting it if needed.

        Args:
            rel_path: Video path relative to the media root

        Returns:
            Path of a non-empty JPEG, or None if no thumbnail could be made
        """
        try:
            video = self.paths.resolve_original(rel_path)
        except MediaError as e:
            self.logger.error(f"Thumbnail failed for {rel_path}: {e}")
            return None
        if not os.path.isfile(video):
            self.logger.error(f"Thumbnail failed for {rel_path}: video not found")
            return None

        thumb_path = self.paths.video_thumbnail(rel_path)
        with self.locks.hold(thumb_path):
            if is_fresh(thumb_path, video):
                self.logger.debug(f"Cache hit: {thumb_path}")
                return thumb_path
            delete_if_zero_byte(thumb_path)

            def extract():
                with atomic_output(thumb_path) as tmp:
                    self.tools.extract_frame(video, tmp, offset=self.offset, width=self.width)

            try:
                with_retries(
                    extract,
                    label=f"thumbnail {os.path.basename(rel_path)}",
                    attempts=self.attempts,
                    base_delay=self.base_delay,
                    log=self.logger,
                )
            except (MediaError, OSError) as e:
                self.logger.error(f"Thumbnail failed for {rel_path}: {e}")
                return None

        self.logger.info(f"Generated thumbnail {thumb_path}")
        return thumb_path
