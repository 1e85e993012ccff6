"""
MediaService - Builds the media cache components from one configuration.
"""

import logging
from typing import Optional

from .cache_paths import CachePaths
from .config import FOLDER_CACHE_TTL_SECONDS, MediaConfig
from .image_codec import ImageCodec
from .image_variants import ImageVariantGenerator
from .library import MediaLibrary
from .locks import KeyedLocks
from .preprocess import Preprocessor
from .raw_decoder import RawDecoder, WorkerRunner
from .source_resolver import SourceResolver
from .transcode import TranscodeCoordinator
from .ttl_cache import TtlCache
from .video_thumbnails import VideoThumbnailGenerator
from .video_tools import VideoTools


class MediaService:
    """
    One instance per process. The lock table, RAW worker pool and folder
    cache are shared by every component built here.
    """

    def __init__(
        self,
        config: MediaConfig,
        video_tools: Optional[VideoTools] = None,
        raw_runner: Optional[WorkerRunner] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Wire up the components.

        Args:
            config: Media configuration
            video_tools: ffmpeg wrapper; built from config when omitted
            raw_runner: RAW worker invocation; the subprocess when omitted
            logger: Optional logger instance
        """
        self.config = config
        self.logger = logger or logging.getLogger(__name__)

        self.paths = CachePaths(config.photos_dir)
        self.locks = KeyedLocks()
        self.folder_cache = TtlCache(FOLDER_CACHE_TTL_SECONDS)
        self.video_tools = video_tools or VideoTools(config.ffmpeg, config.ffprobe)
        self.codec = ImageCodec(max_dimension=config.max_full_dimension)
        self.raw_decoder = RawDecoder(max_workers=config.raw_workers, runner=raw_runner)

        self.resolver = SourceResolver(self.paths, self.codec, self.raw_decoder, locks=self.locks)
        self.variants = ImageVariantGenerator(
            self.paths,
            self.resolver,
            self.codec,
            video_tools=self.video_tools,
            locks=self.locks,
        )
        self.thumbnails = VideoThumbnailGenerator(self.paths, self.video_tools, locks=self.locks)
        self.transcoder = TranscodeCoordinator(
            self.paths,
            self.video_tools,
            min_bytes=config.transcode_min_bytes,
        )
        self.library = MediaLibrary(self.paths, folder_cache=self.folder_cache)

    def ensure_variant(self, rel_path: str, width: Optional[int] = None) -> str:
        return self.variants.ensure_variant(rel_path, width)

    def ensure_thumbnail(self, rel_path: str) -> Optional[str]:
        return self.thumbnails.ensure_thumbnail(rel_path)

    def ensure_transcode(self, rel_path: str) -> Optional[str]:
        return self.transcoder.ensure_transcode(rel_path)

    def rotate(self, rel_path: str) -> None:
        self.library.rotate_in_place(rel_path)

    def preprocessor(self, concurrency: int = 2, dry_run: bool = False) -> Preprocessor:
        """Build a preprocessor sharing this service's components."""
        return Preprocessor(
            self.library,
            self.variants,
            self.thumbnails,
            self.transcoder,
            concurrency=concurrency,
            dry_run=dry_run,
        )
