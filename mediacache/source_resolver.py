"""
SourceResolver - Decides which file an image variant is rendered from.

RAW originals are developed once into the "full" derivative, which then
serves as the source for every other width. HEIC originals are flagged so
the variant generator decodes them in memory. Extensions are checked
against the file's magic bytes before a decoder is chosen.
"""

import logging
import os
from typing import Iterable, Optional

from .cache_paths import CachePaths
from .errors import AssetNotFound, MediaError
from .image_codec import ImageCodec
from .locks import KeyedLocks
from .models import Asset, ResolvedSource, SOURCE_HEIC, SOURCE_PATH, VariantSpec
from .raw_decoder import RawDecoder
from .storage import is_fresh

RAW_EXTENSIONS = frozenset({'.dng'})
HEIC_EXTENSIONS = frozenset({'.heic', '.heif'})
JPEG_SIBLING_EXTENSIONS = ('.jpg', '.jpeg', '.JPG', '.JPEG')

JPEG_MAGIC = b'\xff\xd8\xff'
HEIF_BRANDS = frozenset({
    b'heic', b'heix', b'hevc', b'hevx', b'heif', b'mif1', b'msf1', b'avif', b'avis',
})


def read_header(path: str, size: int = 16) -> bytes:
    """First bytes of a file, or b'' if it cannot be read."""
    try:
        with open(path, 'rb') as f:
            return f.read(size)
    except OSError:
        return b''


def is_jpeg_by_magic(path: str) -> bool:
    return read_header(path, 3) == JPEG_MAGIC


def looks_like_heif(path: str) -> bool:
    """True for an ISO-BMFF file whose major brand is HEIF/AVIF."""
    header = read_header(path, 12)
    return len(header) >= 12 and header[4:8] == b'ftyp' and header[8:12] in HEIF_BRANDS


class SourceResolver:
    """
    Resolves an asset to the file (and decoder) its variants are made from.
    """

    def __init__(
        self,
        paths: CachePaths,
        codec: ImageCodec,
        raw_decoder: RawDecoder,
        locks: Optional[KeyedLocks] = None,
        raw_extensions: Iterable[str] = RAW_EXTENSIONS,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the resolver.

        Args:
            paths: Cache path mapping
            codec: Codec used to develop and encode RAW images
            raw_decoder: Bounded RAW worker pool
            locks: Lock table shared with the variant generator
            raw_extensions: Extensions handled by the RAW worker
            logger: Optional logger instance
        """
        self.paths = paths
        self.codec = codec
        self.raw_decoder = raw_decoder
        self.locks = locks or KeyedLocks()
        self.raw_extensions = frozenset(e.lower() for e in raw_extensions)
        self.logger = logger or logging.getLogger(__name__)

    def is_raw(self, rel_path: str) -> bool:
        return Asset.from_path(rel_path).extension in self.raw_extensions

    def resolve(self, rel_path: str) -> ResolvedSource:
        """
        Resolve the render source for an image asset.

        Args:
            rel_path: Asset path relative to the media root

        Returns:
            ResolvedSource naming the file and how to decode it

        Raises:
            AssetNotFound: If the original does not exist
            MediaError: If a RAW original cannot be developed at all
        """
        original = self.paths.resolve_original(rel_path)
        if not os.path.isfile(original):
            raise AssetNotFound(f"Image not found: {rel_path}")

        asset = Asset.from_path(rel_path)
        if asset.extension in self.raw_extensions:
            return self._resolve_raw(rel_path, original)

        if asset.extension in HEIC_EXTENSIONS:
            if is_jpeg_by_magic(original):
                self.logger.debug(f"{rel_path} is a JPEG despite its extension")
                return ResolvedSource(original, SOURCE_PATH)
            return ResolvedSource(original, SOURCE_HEIC)

        if looks_like_heif(original):
            self.logger.debug(f"{rel_path} is HEIF despite its extension")
            return ResolvedSource(original, SOURCE_HEIC)
        return ResolvedSource(original, SOURCE_PATH)

    def find_jpeg_sibling(self, original: str) -> Optional[str]:
        """Camera JPEG saved next to a RAW file with the same base name."""
        stem = os.path.splitext(original)[0]
        for ext in JPEG_SIBLING_EXTENSIONS:
            candidate = stem + ext
            if os.path.isfile(candidate):
                return candidate
        return None

    def _resolve_raw(self, rel_path: str, original: str) -> ResolvedSource:
        sibling = self.find_jpeg_sibling(original)
        if sibling:
            self.logger.debug(f"Using camera JPEG {os.path.basename(sibling)} for {rel_path}")
            return ResolvedSource(sibling, SOURCE_PATH)

        full_path = self.paths.image_variant(rel_path, VariantSpec())
        with self.locks.hold(full_path):
            if is_fresh(full_path, original):
                self.logger.debug(f"Cache hit: {full_path}")
                return ResolvedSource(full_path, SOURCE_PATH)
            self.develop_raw(rel_path, original, full_path)
        return ResolvedSource(full_path, SOURCE_PATH)

    def develop_raw(self, rel_path: str, original: str, full_path: str) -> str:
        """
        Render the full-size JPEG for a RAW original.

        The RAW worker is tried first; if it fails, the generic decoder is
        given the original file instead.
        """
        try:
            buffer = self.raw_decoder.decode(original, self.paths.raw_sidecar(rel_path))
        except MediaError as e:
            self.logger.warning(f"RAW worker failed for {rel_path}, using generic decoder: {e}")
            self.codec.write_jpeg(lambda: self.codec.develop_file(original), full_path)
        else:
            self.codec.write_jpeg(lambda: self.codec.render_raw(buffer), full_path)
        self.logger.info(f"Developed {rel_path} -> {full_path}")
        return full_path
