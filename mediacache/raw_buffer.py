"""
Raw buffer sidecars - the file format shared by the RAW worker and its caller.

A decoded image is stored as two files:

    <output>        interleaved samples, native byte order, no header
    <output>.json   {"width", "height", "channels", "bits", "endianness"}
"""

import json
import math
import os
import sys

import numpy as np

from .errors import DecodeError
from .models import DecodedRawBuffer


def metadata_path(output_path: str) -> str:
    return output_path + '.json'


def validate_dimensions(width, height, channels, bits) -> None:
    """
    Reject metadata that cannot describe a usable buffer.

    Raises:
        DecodeError: On non-finite or non-positive dimensions, a channel
            count other than 3 or 4, or a bit depth outside (0, 16]
    """
    for name, value in (('width', width), ('height', height)):
        try:
            number = float(value)
        except (TypeError, ValueError):
            raise DecodeError(f"Invalid {name}: {value!r}")
        if not math.isfinite(number) or number <= 0 or number != int(number):
            raise DecodeError(f"Invalid {name}: {value!r}")
    if channels not in (3, 4):
        raise DecodeError(f"Unsupported channel count: {channels!r}")
    try:
        bits_number = float(bits)
    except (TypeError, ValueError):
        raise DecodeError(f"Invalid bit depth: {bits!r}")
    if not math.isfinite(bits_number) or not 0 < bits_number <= 16:
        raise DecodeError(f"Invalid bit depth: {bits!r}")


def validate_buffer(buffer: DecodedRawBuffer) -> None:
    """Validate dimensions and check the payload is long enough."""
    validate_dimensions(buffer.width, buffer.height, buffer.channels, buffer.bits)
    if len(buffer.payload) < buffer.expected_length:
        raise DecodeError(
            f"Pixel buffer too short: {len(buffer.payload)} bytes, "
            f"expected {buffer.expected_length}"
        )


def to_array(buffer: DecodedRawBuffer) -> np.ndarray:
    """View the payload as an (height, width, channels) array."""
    if buffer.bytes_per_sample == 1:
        dtype = np.dtype(np.uint8)
    else:
        dtype = np.dtype('<u2' if buffer.byteorder == 'little' else '>u2')
    count = buffer.width * buffer.height * buffer.channels
    samples = np.frombuffer(buffer.payload, dtype=dtype, count=count)
    return samples.reshape(buffer.height, buffer.width, buffer.channels)


def strip_alpha(buffer: DecodedRawBuffer) -> DecodedRawBuffer:
    """Return an RGB buffer; RGBA input has its fourth channel dropped."""
    if buffer.channels == 3:
        return buffer
    rgb = np.ascontiguousarray(to_array(buffer)[:, :, :3])
    return DecodedRawBuffer(
        width=buffer.width,
        height=buffer.height,
        channels=3,
        bits=buffer.bits,
        payload=rgb.tobytes(),
        byteorder=buffer.byteorder,
    )


def write_sidecars(buffer: DecodedRawBuffer, output_path: str) -> None:
    """Write the payload and its metadata next to each other."""
    with open(output_path, 'wb') as f:
        f.write(buffer.payload)
    meta = {
        'width': buffer.width,
        'height': buffer.height,
        'channels': buffer.channels,
        'bits': buffer.bits,
        'endianness': buffer.byteorder,
    }
    with open(metadata_path(output_path), 'w') as f:
        json.dump(meta, f)


def read_sidecars(output_path: str) -> DecodedRawBuffer:
    """
    Load and validate a worker's output.

    Metadata is validated before the payload is read.

    Raises:
        DecodeError: If either file is missing or the contents are invalid
    """
    meta_file = metadata_path(output_path)
    if not os.path.exists(output_path):
        raise DecodeError("Worker failed to produce output")
    if not os.path.exists(meta_file):
        raise DecodeError("Worker failed to produce metadata")

    try:
        with open(meta_file, 'r') as f:
            meta = json.load(f)
    except ValueError as e:
        raise DecodeError(f"Unreadable worker metadata: {e}")
    if not isinstance(meta, dict):
        raise DecodeError("Worker metadata is not an object")

    width, height = meta.get('width'), meta.get('height')
    channels, bits = meta.get('channels'), meta.get('bits', 8)
    validate_dimensions(width, height, channels, bits)

    with open(output_path, 'rb') as f:
        payload = f.read()

    buffer = DecodedRawBuffer(
        width=int(width),
        height=int(height),
        channels=int(channels),
        bits=int(bits),
        payload=payload,
        byteorder=meta.get('endianness') or sys.byteorder,
    )
    validate_buffer(buffer)
    return strip_alpha(buffer)
