"""
ImageVariantGenerator - Produces and caches resized JPEG variants.
"""

import logging
import os
from typing import Optional

from PIL import Image

from .cache_paths import CachePaths
from .config import SMALL_JPEG_BYTES
from .errors import AssetNotFound, MediaError
from .image_codec import ImageCodec
from .locks import KeyedLocks
from .models import ResolvedSource, SOURCE_HEIC, VariantSpec
from .source_resolver import SourceResolver, is_jpeg_by_magic
from .storage import is_fresh
from .video_tools import VideoTools


class ImageVariantGenerator:
    """
    Ensures a cached JPEG exists for (image, width).

    Calls for the same cache path are single-flight within the process:
    a caller that waited on the lock finds the finished file and returns it.
    """

    def __init__(
        self,
        paths: CachePaths,
        resolver: SourceResolver,
        codec: ImageCodec,
        video_tools: Optional[VideoTools] = None,
        locks: Optional[KeyedLocks] = None,
        small_jpeg_bytes: int = SMALL_JPEG_BYTES,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the generator.

        Args:
            paths: Cache path mapping
            resolver: Source resolver (RAW development, HEIC detection)
            codec: Pillow codec used to decode, resize and encode
            video_tools: ffmpeg wrapper, used as a HEIC fallback decoder
            locks: Lock table shared with the resolver
            small_jpeg_bytes: JPEG originals below this size are served as "full"
            logger: Optional logger instance
        """
        self.paths = paths
        self.resolver = resolver
        self.codec = codec
        self.video_tools = video_tools
        self.locks = locks or KeyedLocks()
        self.small_jpeg_bytes = small_jpeg_bytes
        self.logger = logger or logging.getLogger(__name__)

    def ensure_variant(self, rel_path: str, width: Optional[int] = None) -> str:
        """
        Return the cache path of the variant, generating it if needed.

        Args:
            rel_path: Image path relative to the media root
            width: Target width in pixels, or None for the bounded full size

        Returns:
            Path of a non-empty JPEG (the original itself for small JPEGs at full size)

        Raises:
            AssetNotFound: If the original does not exist
            MediaError: If decoding or encoding fails after fallbacks
        """
        if width is not None and width <= 0:
            raise ValueError(f"width must be positive, got {width}")

        original = self.paths.resolve_original(rel_path)
        if not os.path.isfile(original):
            raise AssetNotFound(f"Image not found: {rel_path}")

        if width is None and self._is_small_jpeg(rel_path, original):
            self.logger.debug(f"Serving small JPEG original: {rel_path}")
            return original

        cache_path = self.paths.image_variant(rel_path, VariantSpec(width=width))
        with self.locks.hold(cache_path):
            if is_fresh(cache_path, original):
                self.logger.debug(f"Cache hit: {cache_path}")
                return cache_path

            source = self.resolver.resolve(rel_path)
            if width is None and source.source_path == cache_path:
                # RAW development already produced the full variant
                return cache_path

            self.codec.write_jpeg(lambda: self._render(source, width), cache_path)
            self.logger.info(f"Generated {cache_path}")
            return cache_path

    def _is_small_jpeg(self, rel_path: str, original: str) -> bool:
        if self.resolver.is_raw(rel_path):
            return False
        try:
            size = os.path.getsize(original)
        except OSError:
            return False
        return size < self.small_jpeg_bytes and is_jpeg_by_magic(original)

    def _render(self, source: ResolvedSource, width: Optional[int]) -> Image.Image:
        if source.source_kind == SOURCE_HEIC:
            img = self.decode_heic(source.source_path)
        else:
            img = self.codec.open_image(source.source_path)
        return self.codec.resize(img, width)

    def decode_heic(self, path: str) -> Image.Image:
        """
        Decode a HEIC file in memory.

        libheif is tried first, then an ffmpeg still-frame decode. If both
        fail and the file is not really HEIF (misnamed JPEG), it is opened
        as a plain image.
        """
        try:
            return self.codec.decode_heic(path)
        except AssetNotFound:
            raise
        except MediaError as heif_error:
            self.logger.warning(f"HEIC decode failed for {os.path.basename(path)}: {heif_error}")
            first_error = heif_error

        if self.video_tools is not None:
            try:
                data = self.video_tools.decode_still_png(path)
                return self.codec.open_bytes(data, label=path)
            except MediaError as e:
                self.logger.warning(f"ffmpeg HEIC fallback failed for {os.path.basename(path)}: {e}")

        if self._reports_not_heif(first_error) or is_jpeg_by_magic(path) \
                or not self.codec.is_heif_supported(path):
            self.logger.info(f"Decoding {os.path.basename(path)} as a plain image")
            return self.codec.open_image(path)
        raise first_error

    @staticmethod
    def _reports_not_heif(error: Exception) -> bool:
        message = str(error).lower()
        return 'not a heic' in message or 'not a heif' in message
