"""
ImageCodec - Decoding, resizing and JPEG encoding with Pillow.
"""

import io
import logging
import os
from typing import Callable, Optional, Tuple

import numpy as np
import pillow_heif
from PIL import Image, ImageOps

from .auto_levels import apply_levels, estimate_auto_levels, normalize
from .config import IMAGE_WRITE_ATTEMPTS, JPEG_QUALITY
from .errors import (
    AssetNotFound, DecodeError, ErrorKind, TransientIOError, classify_error,
)
from .models import DecodedRawBuffer
from .raw_buffer import to_array
from .retry import with_retries
from .storage import atomic_output

GAMMA = 2.2


def _decode_failure(path: str, exc: Exception) -> Exception:
    """Translate a decoder exception into the package's error types."""
    kind = classify_error(exc)
    if kind == ErrorKind.NOT_FOUND:
        return AssetNotFound(f"Image not found: {path}")
    if kind == ErrorKind.TRANSIENT_IO:
        return TransientIOError(f"Transient error reading {path}: {exc}")
    return DecodeError(f"Cannot decode {os.path.basename(path)}: {exc}")


class ImageCodec:
    """
    Opens images, resizes them and writes optimized JPEGs.
    """

    def __init__(
        self,
        max_dimension: int = 2560,
        quality: int = JPEG_QUALITY,
        write_attempts: int = IMAGE_WRITE_ATTEMPTS,
        base_delay: float = 0.75,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the codec.

        Args:
            max_dimension: Bound on both sides of "full" images
            quality: JPEG quality for output
            write_attempts: Attempts per JPEG write for transient failures
            base_delay: First retry delay in seconds
            logger: Optional logger instance
        """
        self.max_dimension = max_dimension
        self.quality = quality
        self.write_attempts = write_attempts
        self.base_delay = base_delay
        self.logger = logger or logging.getLogger(__name__)

    # --- Decoding ----------------------------------------------------------

    def open_image(self, path: str) -> Image.Image:
        """Open an image file fully, applying its EXIF orientation."""
        try:
            with Image.open(path) as img:
                img.load()
                return ImageOps.exif_transpose(img)
        except (OSError, ValueError, Image.DecompressionBombError) as e:
            raise _decode_failure(path, e)

    def open_bytes(self, data: bytes, label: str = 'buffer') -> Image.Image:
        """Open an in-memory image, applying its EXIF orientation."""
        try:
            img = Image.open(io.BytesIO(data))
            img.load()
            return ImageOps.exif_transpose(img)
        except (OSError, ValueError, Image.DecompressionBombError) as e:
            raise _decode_failure(label, e)

    def decode_heic(self, path: str) -> Image.Image:
        """Decode a HEIC/HEIF file in memory with libheif."""
        try:
            heif_file = pillow_heif.open_heif(path, convert_hdr_to_8bit=True)
            return heif_file.to_pillow()
        except FileNotFoundError:
            raise AssetNotFound(f"Image not found: {path}")
        except (OSError, ValueError, RuntimeError, EOFError) as e:
            raise _decode_failure(path, e)

    @staticmethod
    def is_heif_supported(path: str) -> bool:
        """True when libheif recognises the file's brand."""
        try:
            return bool(pillow_heif.is_supported(path))
        except (OSError, ValueError):
            return False

    # --- Geometry ----------------------------------------------------------

    def target_size(self, size: Tuple[int, int], width: Optional[int] = None) -> Tuple[int, int]:
        """
        Output size for a request, never larger than the input.

        Args:
            size: Input (width, height)
            width: Requested width, or None for the bounded full size
        """
        w, h = size
        if width:
            if w <= width:
                return w, h
            return width, max(1, round(h * width / w))
        bound = self.max_dimension
        if w <= bound and h <= bound:
            return w, h
        ratio = min(bound / w, bound / h)
        return max(1, round(w * ratio)), max(1, round(h * ratio))

    def resize(self, img: Image.Image, width: Optional[int] = None) -> Image.Image:
        target = self.target_size(img.size, width)
        if target == img.size:
            return img
        return img.resize(target, Image.Resampling.LANCZOS)

    # --- RAW rendering -----------------------------------------------------

    def render_raw(self, buffer: DecodedRawBuffer) -> Image.Image:
        """
        Develop a decoded RAW buffer: normalize, auto-level, then a
        gamma-correct resize to the bounded full size.
        """
        pixels = to_array(buffer)[..., :3]
        max_value = float((1 << buffer.bits) - 1)
        image = np.clip(pixels.astype(np.float32) * (255.0 / max_value), 0, 255)

        auto = estimate_auto_levels(np.round(image).astype(np.uint8))
        if auto:
            self.logger.debug(
                f"Auto levels: low={auto.low} high={auto.high} "
                f"scale={auto.scale:.3f} offset={auto.offset:.1f}"
            )
        return self.develop(image, auto_levels=auto)

    def develop(self, image: np.ndarray, auto_levels=None, width: Optional[int] = None) -> Image.Image:
        """
        Tone and resize a float (h, w, 3) image in 0..255.

        Resampling happens in linear light (decode with GAMMA, resize,
        re-encode) so downscaled highlights do not darken.
        """
        image = normalize(image)
        if auto_levels is not None:
            image = apply_levels(image, auto_levels)

        height, width_px = image.shape[:2]
        target = self.target_size((width_px, height), width)

        linear = np.power(image / 255.0, GAMMA).astype(np.float32)
        if target != (width_px, height):
            channels = [
                np.asarray(Image.fromarray(np.ascontiguousarray(linear[..., c])).resize(
                    target, Image.Resampling.LANCZOS))
                for c in range(3)
            ]
            linear = np.stack(channels, axis=-1)
        encoded = np.power(np.clip(linear, 0.0, 1.0), 1.0 / GAMMA) * 255.0
        return Image.fromarray(np.round(encoded).astype(np.uint8))

    def develop_file(self, path: str) -> Image.Image:
        """Develop an image the generic decoder can open (RAW fallback path)."""
        img = self._convert_color_mode(self.open_image(path))
        return self.develop(np.asarray(img, dtype=np.float32))

    # --- Encoding ----------------------------------------------------------

    def encode_to(self, img: Image.Image, path: str) -> None:
        """Save img as an optimized JPEG at path."""
        img = self._convert_color_mode(img)
        img.save(path, format='JPEG', quality=self.quality, optimize=True)

    def write_jpeg(self, make_image: Callable[[], Image.Image], dest: str) -> str:
        """
        Build an image and publish it atomically as a JPEG at dest.

        make_image is called again on every attempt. Transient storage
        errors and zero-byte output are retried.

        Returns:
            dest
        """
        def attempt():
            img = make_image()
            with atomic_output(dest) as tmp:
                self.encode_to(img, tmp)

        with_retries(
            attempt,
            label=f"jpeg write {os.path.basename(dest)}",
            attempts=self.write_attempts,
            base_delay=self.base_delay,
            log=self.logger,
        )
        return dest

    def _convert_color_mode(self, img: Image.Image) -> Image.Image:
        """Convert image to RGB, flattening transparency onto white."""
        if img.mode in ('RGBA', 'LA'):
            background = Image.new('RGB', img.size, (255, 255, 255))
            if img.mode == 'LA':
                img = img.convert('RGBA')
            background.paste(img, mask=img.split()[-1])
            return background
        elif img.mode == 'P':
            img = img.convert('RGBA')
            background = Image.new('RGB', img.size, (255, 255, 255))
            background.paste(img, mask=img.split()[-1])
            return background
        elif img.mode != 'RGB':
            return img.convert('RGB')
        return img
