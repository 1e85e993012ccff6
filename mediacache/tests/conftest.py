"""
Pytest fixtures for mediacache tests.
"""

import io
import json
import logging
import os
import sys
import threading
from types import SimpleNamespace

import numpy as np
import pytest
from PIL import Image

from mediacache.cache_paths import CachePaths
from mediacache.config import CACHE_FOLDER_NAME, SMALL_JPEG_BYTES, MediaConfig
from mediacache.errors import ErrorKind, ToolError
from mediacache.image_codec import ImageCodec
from mediacache.image_variants import ImageVariantGenerator
from mediacache.locks import KeyedLocks
from mediacache.raw_decoder import RawDecoder
from mediacache.source_resolver import SourceResolver


def write_image(path, size=(100, 100), color='red', image_format='JPEG', mode='RGB'):
    """Write a solid-color image, creating parent folders."""
    os.makedirs(os.path.dirname(path), exist_ok=True)
    img = Image.new(mode, size, color=color)
    img.save(path, format=image_format)
    return path


def gradient_pixels(width, height, channels=3, bits=16):
    """Horizontal gradient with some vertical variation, as uint8/uint16."""
    max_value = (1 << bits) - 1
    x = np.linspace(0.05, 0.95, width, dtype=np.float32)
    y = np.linspace(0.8, 1.0, height, dtype=np.float32)
    plane = np.outer(y, x) * max_value
    pixels = np.stack([plane] * channels, axis=-1)
    if channels == 4:
        pixels[..., 3] = max_value
    dtype = np.uint8 if bits <= 8 else np.uint16
    return pixels.astype(dtype)


def write_raw_sidecars(output_path, pixels=None, meta=None, bits=16):
    """Write a payload/metadata pair the way the RAW worker does."""
    if pixels is not None:
        height, width, channels = pixels.shape
        with open(output_path, 'wb') as f:
            f.write(np.ascontiguousarray(pixels).tobytes())
        base_meta = {
            'width': width,
            'height': height,
            'channels': channels,
            'bits': bits,
            'endianness': sys.byteorder,
        }
    else:
        with open(output_path, 'wb') as f:
            f.write(b'\x00' * 16)
        base_meta = {}
    base_meta.update(meta or {})
    with open(output_path + '.json', 'w') as f:
        json.dump(base_meta, f)


class FakeRawRunner:
    """Stands in for the RAW worker subprocess."""

    def __init__(self, pixels=None, meta=None, bits=16, error=None):
        self.pixels = pixels
        self.meta = meta
        self.bits = bits
        self.error = error
        self.calls = []

    def __call__(self, input_path, output_path):
        self.calls.append((input_path, output_path))
        if self.error is not None:
            raise self.error
        write_raw_sidecars(output_path, self.pixels, self.meta, self.bits)


class FakeVideoTools:
    """
    Stands in for VideoTools. Frames are real JPEGs; transcodes are bytes.

    Set transcode_gate to a threading.Event to hold transcodes until it is set.
    """

    def __init__(self, codec='h264'):
        self.codec = codec
        self.frame_errors = []
        self.transcode_errors = []
        self.transcode_output = b'\x00\x00\x00\x18ftypmp42 transcoded'
        self.still_png = None
        self.transcode_gate = None
        self.extract_calls = []
        self.transcode_calls = []
        self.probe_calls = []
        self.still_calls = []
        self._lock = threading.Lock()

    def probe_codec(self, video_path):
        self.probe_calls.append(video_path)
        return self.codec

    def extract_frame(self, video_path, output_path, offset='00:00:01', width=300):
        self.extract_calls.append((video_path, output_path, offset, width))
        if self.frame_errors:
            error = self.frame_errors.pop(0)
            if error == 'empty':
                open(output_path, 'wb').close()
                return
            raise error
        write_image(output_path, size=(width, width * 9 // 16), color='green')

    def transcode(self, video_path, output_path):
        with self._lock:
            self.transcode_calls.append((video_path, output_path))
        if self.transcode_gate is not None:
            self.transcode_gate.wait(5)
        if self.transcode_errors:
            error = self.transcode_errors.pop(0)
            if error == 'empty':
                open(output_path, 'wb').close()
                return
            raise error
        with open(output_path, 'wb') as f:
            f.write(self.transcode_output)

    def decode_still_png(self, image_path):
        self.still_calls.append(image_path)
        if self.still_png is None:
            raise ToolError("ffmpeg exited with 1", kind=ErrorKind.DECODE, stderr='Invalid data')
        return self.still_png


@pytest.fixture
def logger():
    """Fixture providing a logger."""
    return logging.getLogger('test')


@pytest.fixture
def media_root(tmp_path):
    """Fixture providing an empty media root."""
    root = tmp_path / 'photos'
    root.mkdir()
    return str(root)


@pytest.fixture
def paths(media_root):
    """Fixture providing CachePaths for the media root."""
    return CachePaths(media_root)


@pytest.fixture
def config(media_root):
    """Fixture providing a configuration pointing at the media root."""
    return MediaConfig(photos_dir=media_root, transcode_min_bytes=1000)


@pytest.fixture
def cache_dir(media_root):
    """Returns the hidden cache folder for a folder under the media root."""
    def _cache_dir(folder=''):
        return os.path.join(media_root, folder, CACHE_FOLDER_NAME)
    return _cache_dir


@pytest.fixture
def make_image(media_root):
    """Factory writing an image under the media root; returns its absolute path."""
    def _make_image(rel_path, size=(100, 100), color='red', image_format='JPEG', mode='RGB'):
        return write_image(os.path.join(media_root, rel_path), size, color, image_format, mode)
    return _make_image


@pytest.fixture
def make_file(media_root):
    """Factory writing raw bytes under the media root; returns its absolute path."""
    def _make_file(rel_path, data=b'data'):
        path = os.path.join(media_root, rel_path)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, 'wb') as f:
            f.write(data)
        return path
    return _make_file


@pytest.fixture
def video_tools():
    """Fixture providing fake ffmpeg/ffprobe tools."""
    return FakeVideoTools()


@pytest.fixture
def sample_image_bytes():
    """Fixture providing sample JPEG image bytes."""
    img = Image.new('RGB', (100, 100), color='red')
    buffer = io.BytesIO()
    img.save(buffer, format='JPEG')
    return buffer.getvalue()


@pytest.fixture
def sample_png_bytes():
    """Fixture providing sample PNG image bytes."""
    img = Image.new('RGBA', (100, 100), color=(255, 0, 0, 128))
    buffer = io.BytesIO()
    img.save(buffer, format='PNG')
    return buffer.getvalue()


@pytest.fixture
def fake_raw_runner():
    """Factory for fake RAW worker runners."""
    return FakeRawRunner


@pytest.fixture
def gradient():
    """Factory for synthetic decoded pixel arrays."""
    return gradient_pixels


@pytest.fixture
def raw_sidecars():
    """Writes a RAW worker payload/metadata pair."""
    return write_raw_sidecars


@pytest.fixture
def image_pipeline(paths, video_tools, logger):
    """
    Factory wiring a codec, RAW decoder, resolver and variant generator
    around one media root. Retries run without delay.
    """
    def _build(runner=None, max_dimension=2560, small_jpeg_bytes=SMALL_JPEG_BYTES):
        locks = KeyedLocks()
        codec = ImageCodec(max_dimension=max_dimension, base_delay=0, logger=logger)
        decoder = RawDecoder(runner=runner or FakeRawRunner(), base_delay=0, logger=logger)
        resolver = SourceResolver(paths, codec, decoder, locks=locks, logger=logger)
        variants = ImageVariantGenerator(
            paths, resolver, codec,
            video_tools=video_tools,
            locks=locks,
            small_jpeg_bytes=small_jpeg_bytes,
            logger=logger,
        )
        return SimpleNamespace(codec=codec, decoder=decoder, resolver=resolver, variants=variants)
    return _build
