"""
Auto levels - approximate automatic exposure for decoded RAW images.

The estimate stretches luminance between its 1st and 99th percentiles,
measured on a small greyscale copy of the image, onto [8, 245] so that
highlights keep some headroom.
"""

from typing import Optional

import numpy as np
from PIL import Image

from .models import AutoLevelParams

SAMPLE_SIZE = 256
LOW_PERCENTILE = 0.01
HIGH_PERCENTILE = 0.99
HEADROOM_LEVELS = 2
MIN_SPREAD = 5
TARGET_LOW = 8
TARGET_HIGH = 245

# Rec. 709 luma weights
LUMA_WEIGHTS = np.array([0.2126, 0.7152, 0.0722], dtype=np.float32)


def to_8bit(pixels: np.ndarray) -> np.ndarray:
    """Scale uint8/uint16 samples to uint8."""
    if pixels.dtype == np.uint8:
        return pixels
    if pixels.dtype == np.uint16:
        return (pixels >> 8).astype(np.uint8)
    return np.clip(pixels, 0, 255).astype(np.uint8)


def luminance(pixels: np.ndarray) -> np.ndarray:
    """Single-channel luminance of an (h, w, 3) array, same scale as the input."""
    return pixels[..., :3].astype(np.float32) @ LUMA_WEIGHTS


def sample_luminance(pixels: np.ndarray, size: int = SAMPLE_SIZE) -> np.ndarray:
    """8-bit luminance of the image downsampled to fit within size x size."""
    rgb = Image.fromarray(np.ascontiguousarray(to_8bit(pixels[..., :3])))
    rgb.thumbnail((size, size), Image.Resampling.BILINEAR)
    return np.asarray(rgb.convert('L'))


def levels_from_histogram(hist: np.ndarray) -> Optional[AutoLevelParams]:
    """
    Compute the stretch from a 256-bin histogram.

    Returns:
        AutoLevelParams, or None when the histogram is empty or the
        percentile spread is too narrow to trust
    """
    total = int(hist.sum())
    if total == 0:
        return None

    low_target = int(total * LOW_PERCENTILE)
    high_target = int(total * HIGH_PERCENTILE)
    cumulative = np.cumsum(hist)

    low = int(np.argmax(cumulative >= low_target))
    high = int(np.argmax(cumulative >= high_target))

    low = max(0, low - HEADROOM_LEVELS)
    high = min(255, high + HEADROOM_LEVELS)

    if high - low <= MIN_SPREAD:
        return None

    scale = (TARGET_HIGH - TARGET_LOW) / (high - low)
    offset = TARGET_LOW - low * scale
    return AutoLevelParams(
        scale=scale,
        offset=offset,
        low=low,
        high=high,
        target_low=TARGET_LOW,
        target_high=TARGET_HIGH,
    )


def estimate_auto_levels(pixels: np.ndarray) -> Optional[AutoLevelParams]:
    """Estimate the auto-level stretch for an (h, w, 3) uint8/uint16 image."""
    if pixels.size == 0:
        return None
    sample = sample_luminance(pixels)
    hist = np.bincount(sample.ravel(), minlength=256)
    return levels_from_histogram(hist)


def normalize(image: np.ndarray) -> np.ndarray:
    """
    Stretch a float (h, w, 3) image in 0..255 so its 1st/99th luminance
    percentiles land on 0 and 255.
    """
    luma = luminance(image)
    low, high = np.percentile(luma, [LOW_PERCENTILE * 100, HIGH_PERCENTILE * 100])
    if high - low < 1e-6:
        return image
    stretched = (image - low) * (255.0 / (high - low))
    return np.clip(stretched, 0, 255)


def apply_levels(image: np.ndarray, params: AutoLevelParams) -> np.ndarray:
    """Apply the linear stretch to a float image, clipped to 0..255."""
    return np.clip(image * params.scale + params.offset, 0, 255)
