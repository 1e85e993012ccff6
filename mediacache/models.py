"""
Models - Assets, variant requests and the records the pipeline persists.
"""

import os
import sys
from dataclasses import dataclass, field, asdict
from typing import Optional

IMAGE_EXTENSIONS = frozenset({
    '.jpg', '.jpeg', '.png', '.gif', '.webp', '.dng', '.heic', '.heif',
})
VIDEO_EXTENSIONS = frozenset({
    '.mp4', '.mov', '.mkv', '.webm', '.avi', '.rm', '.rmvb',
})

KIND_IMAGE = 'image'
KIND_VIDEO = 'video'

VARIANT_THUMBNAIL = 'thumbnail'
VARIANT_TRANSCODE = 'transcode'

SOURCE_PATH = 'path'
SOURCE_HEIC = 'heic'


@dataclass(frozen=True)
class Asset:
    """
    An original media file under the media root.

    Attributes:
        rel_path: Path relative to the media root, '/' separated
        kind: 'image' or 'video'
        extension: Lower-cased extension including the dot
    """
    rel_path: str
    kind: str
    extension: str

    @classmethod
    def from_path(cls, rel_path: str) -> 'Asset':
        """Build an asset, deriving kind from the extension."""
        ext = os.path.splitext(rel_path)[1].lower()
        kind = KIND_VIDEO if ext in VIDEO_EXTENSIONS else KIND_IMAGE
        return cls(rel_path=rel_path, kind=kind, extension=ext)

    @property
    def folder(self) -> str:
        """Containing folder relative to the media root ('' for the root)."""
        return os.path.dirname(self.rel_path)

    @property
    def name(self) -> str:
        return os.path.basename(self.rel_path)

    @property
    def base(self) -> str:
        """File name without extension."""
        return os.path.splitext(self.name)[0]


@dataclass(frozen=True)
class VariantSpec:
    """
    A requested derivative.

    Images use width (None means the capped full size); videos use kind.
    """
    width: Optional[int] = None
    kind: Optional[str] = None

    @property
    def label(self) -> str:
        """Suffix used in cache file names for image variants."""
        return f"w{self.width}" if self.width else 'full'


@dataclass
class ResolvedSource:
    """Where a renderable image for an asset lives, and how to decode it."""
    source_path: str
    source_kind: str = SOURCE_PATH


@dataclass
class DecodedRawBuffer:
    """
    Pixel buffer produced by the RAW worker.

    Attributes:
        width: Image width in pixels
        height: Image height in pixels
        channels: 3 (RGB) or 4 (RGBA)
        bits: Bits per sample, 1-16
        payload: Interleaved samples with no header
        byteorder: 'little' or 'big', for 16-bit payloads
    """
    width: int
    height: int
    channels: int
    bits: int
    payload: bytes
    byteorder: str = sys.byteorder

    @property
    def bytes_per_sample(self) -> int:
        return 1 if self.bits <= 8 else 2

    @property
    def expected_length(self) -> int:
        return self.width * self.height * self.channels * self.bytes_per_sample


@dataclass
class AutoLevelParams:
    """Linear tone stretch mapping [low, high] onto [target_low, target_high]."""
    scale: float
    offset: float
    low: int
    high: int
    target_low: int = 8
    target_high: int = 245


@dataclass
class LockRecord:
    """Marks an in-flight transcode. 'at' is epoch milliseconds."""
    at: int
    pid: int

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> 'LockRecord':
        return cls(at=int(data.get('at', 0)), pid=int(data.get('pid', 0)))


@dataclass
class FailureRecord:
    """Last transcode failure, used for backoff."""
    at: int
    message: str = ''

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> 'FailureRecord':
        at = data.get('at')
        return cls(
            at=at if isinstance(at, (int, float)) else 0,
            message=str(data.get('message', '')),
        )


@dataclass
class SkipRecord:
    """
    Durable decision that a video does not need transcoding.

    Attributes:
        at: Epoch milliseconds of the decision
        reason: 'small' or 'already-transcoded'
        details: Extra fields written alongside (bytes, minBytes, codec)
    """
    at: int
    reason: str
    details: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        data = dict(self.details)
        data.update({'at': self.at, 'reason': self.reason})
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'SkipRecord':
        details = {k: v for k, v in data.items() if k not in ('at', 'reason')}
        return cls(at=int(data.get('at', 0)), reason=str(data.get('reason', '')), details=details)
