"""
Media cache for photo and video libraries

Generates and caches the derivatives a browser needs for a folder of
originals: resized JPEGs (including developed RAW and decoded HEIC files),
video poster frames and HEVC transcodes. Derivatives live in a hidden
folder next to their originals and are published atomically.
"""

__version__ = "1.0.0"

from .config import MediaConfig
from .errors import (
    AssetNotFound, DecodeError, ErrorKind, MediaError, ToolError,
    TransientIOError, ZeroByteOutput,
)
from .models import Asset, DecodedRawBuffer, ResolvedSource, VariantSpec
from .cache_paths import CachePaths
from .locks import KeyedLocks
from .ttl_cache import TtlCache
from .image_codec import ImageCodec
from .raw_decoder import RawDecoder
from .source_resolver import SourceResolver
from .image_variants import ImageVariantGenerator
from .video_tools import VideoTools
from .video_thumbnails import VideoThumbnailGenerator
from .transcode import TranscodeCoordinator
from .library import MediaLibrary
from .generation_stats import GenerationStats
from .generation_progress import GenerationProgress
from .preprocess import Preprocessor
from .service import MediaService

__all__ = [
    "MediaConfig",
    "AssetNotFound",
    "DecodeError",
    "ErrorKind",
    "MediaError",
    "ToolError",
    "TransientIOError",
    "ZeroByteOutput",
    "Asset",
    "DecodedRawBuffer",
    "ResolvedSource",
    "VariantSpec",
    "CachePaths",
    "KeyedLocks",
    "TtlCache",
    "ImageCodec",
    "RawDecoder",
    "SourceResolver",
    "ImageVariantGenerator",
    "VideoTools",
    "VideoThumbnailGenerator",
    "TranscodeCoordinator",
    "MediaLibrary",
    "GenerationStats",
    "GenerationProgress",
    "Preprocessor",
    "MediaService",
]
