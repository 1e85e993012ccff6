"""
MediaConfig - Runtime configuration, read from the environment.
"""

import os
from dataclasses import dataclass
from typing import List

# Name of the per-folder cache directory. Kept stable so caches written by
# earlier deployments stay valid.
CACHE_FOLDER_NAME = '983db650f7f79bc8e87d9a3ba418aefc'

JPEG_QUALITY = 75
SMALL_JPEG_BYTES = 1_000_000
THUMBNAIL_WIDTH = 300
THUMBNAIL_OFFSET = '00:00:01'
TRANSCODE_CODEC_TAG = 'h265'
TRANSCODE_CODECS = frozenset({'hevc', 'h265'})
FAILURE_BACKOFF_SECONDS = 10 * 60
IMAGE_WRITE_ATTEMPTS = 5
TOOL_ATTEMPTS = 3
FOLDER_CACHE_TTL_SECONDS = 5 * 60


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == '':
        return default
    return int(value)


@dataclass
class MediaConfig:
    """
    Configuration for the media cache.

    Attributes:
        photos_dir: Media root directory
        transcode_min_bytes: Videos at or below this size are never transcoded
        max_full_dimension: Bound on both sides of "full" image variants
        raw_workers: Maximum concurrent RAW worker subprocesses
        ffmpeg: ffmpeg executable
        ffprobe: ffprobe executable
        log_level: Logging level name
        port: HTTP port for server.py
    """
    photos_dir: str = 'photos'
    transcode_min_bytes: int = 10_000_000
    max_full_dimension: int = 2560
    raw_workers: int = 2
    ffmpeg: str = 'ffmpeg'
    ffprobe: str = 'ffprobe'
    log_level: str = 'INFO'
    port: int = 3001

    @classmethod
    def from_env(cls) -> 'MediaConfig':
        """Build configuration from environment variables."""
        return cls(
            photos_dir=os.getenv('PHOTOS_DIR', 'photos'),
            transcode_min_bytes=_env_int('PICVIEW_TRANSCODE_MIN_BYTES', 10_000_000),
            max_full_dimension=_env_int('MEDIACACHE_MAX_FULL_DIMENSION', 2560),
            raw_workers=_env_int('MEDIACACHE_RAW_WORKERS', 2),
            ffmpeg=os.getenv('MEDIACACHE_FFMPEG', 'ffmpeg'),
            ffprobe=os.getenv('MEDIACACHE_FFPROBE', 'ffprobe'),
            log_level=os.getenv('LOG_LEVEL', 'INFO').upper(),
            port=_env_int('PORT', 3001),
        )

    def validate(self) -> List[str]:
        """Return a list of problems; empty when the configuration is usable."""
        errors = []
        if not self.photos_dir:
            errors.append("photos_dir is required (set PHOTOS_DIR)")
        elif not os.path.isdir(self.photos_dir):
            errors.append(f"photos_dir does not exist: {self.photos_dir}")
        if self.max_full_dimension <= 0:
            errors.append("max_full_dimension must be positive")
        if self.raw_workers <= 0:
            errors.append("raw_workers must be positive")
        if self.transcode_min_bytes < 0:
            errors.append("transcode_min_bytes must not be negative")
        return errors
