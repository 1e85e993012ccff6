"""
RAW decode worker, run as a subprocess:

    python -m mediacache.raw_worker <input.dng> <output.raw>

Decodes the RAW file with LibRaw (via rawpy), validates the result, drops
any alpha channel and writes <output.raw> plus <output.raw>.json. Exits 0
on success and 1 on any failure, with the reason on stderr. Running in its
own process keeps LibRaw crashes and hangs away from the server.
"""

import sys
from typing import List, Optional

import numpy as np
import rawpy

from .errors import DecodeError
from .models import DecodedRawBuffer
from .raw_buffer import strip_alpha, validate_buffer, write_sidecars


def decode(input_path: str) -> DecodedRawBuffer:
    """Fully decode a RAW file into a 16-bit RGB buffer."""
    with rawpy.imread(input_path) as raw:
        rgb = raw.postprocess(use_camera_wb=True, output_bps=16)
    return buffer_from_array(rgb, bits=16)


def buffer_from_array(pixels: np.ndarray, bits: int) -> DecodedRawBuffer:
    """Wrap an (h, w, c) array as a DecodedRawBuffer in native byte order."""
    if pixels.ndim != 3:
        raise DecodeError(f"Unexpected pixel array shape: {pixels.shape}")
    height, width, channels = pixels.shape
    dtype = np.uint8 if bits <= 8 else np.uint16
    data = np.ascontiguousarray(pixels, dtype=dtype)
    return DecodedRawBuffer(
        width=int(width),
        height=int(height),
        channels=int(channels),
        bits=bits,
        payload=data.tobytes(),
        byteorder=sys.byteorder,
    )


def convert(input_path: str, output_path: str) -> DecodedRawBuffer:
    """Decode, validate, strip alpha and write the sidecar pair."""
    buffer = decode(input_path)
    validate_buffer(buffer)
    buffer = strip_alpha(buffer)
    write_sidecars(buffer, output_path)
    return buffer


def main(argv: Optional[List[str]] = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    if len(args) != 2:
        print("Usage: python -m mediacache.raw_worker <input> <output>", file=sys.stderr)
        return 1

    input_path, output_path = args
    try:
        convert(input_path, output_path)
    except Exception as e:
        print(f"Worker error: {type(e).__name__}: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
