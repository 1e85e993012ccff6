"""Tests for ImageCodec."""

import errno
import os

import numpy as np
import pytest
from PIL import Image

from mediacache.errors import AssetNotFound, DecodeError, TransientIOError, ZeroByteOutput
from mediacache.image_codec import ImageCodec
from mediacache.models import DecodedRawBuffer


@pytest.fixture
def codec(logger):
    return ImageCodec(max_dimension=2560, base_delay=0, logger=logger)


class TestGeometry:
    """Tests for target_size and resize."""

    def test_width_request(self, codec):
        """Test an explicit width scales proportionally."""
        assert codec.target_size((1000, 500), 300) == (300, 150)

    def test_width_never_upscales(self, codec):
        """Test a small image keeps its size."""
        assert codec.target_size((200, 100), 300) == (200, 100)

    def test_full_bounds_both_sides(self, codec):
        """Test full requests fit within the maximum dimension."""
        assert codec.target_size((5120, 2560), None) == (2560, 1280)
        assert codec.target_size((3000, 6000), None) == (1280, 2560)

    def test_full_never_upscales(self, codec):
        """Test small images stay as they are at full size."""
        assert codec.target_size((800, 600), None) == (800, 600)

    def test_resize_returns_same_image_when_unchanged(self, codec):
        """Test no resampling happens when the size would not change."""
        img = Image.new('RGB', (10, 10))

        assert codec.resize(img, 50) is img


class TestDecoding:
    """Tests for opening images."""

    def test_open_image_applies_exif_orientation(self, codec, tmp_path):
        """Test EXIF rotation is applied on open."""
        img = Image.new('RGB', (40, 20), color='blue')
        exif = img.getexif()
        exif[0x0112] = 6  # rotate 90 CW on display
        path = str(tmp_path / 'rotated.jpg')
        img.save(path, format='JPEG', exif=exif.tobytes())

        result = codec.open_image(path)

        assert result.size == (20, 40)

    def test_open_missing(self, codec, tmp_path):
        """Test a missing file is AssetNotFound."""
        with pytest.raises(AssetNotFound):
            codec.open_image(str(tmp_path / 'missing.jpg'))

    def test_open_garbage(self, codec, tmp_path):
        """Test undecodable bytes are a DecodeError."""
        path = tmp_path / 'bad.jpg'
        path.write_bytes(b'not an image')

        with pytest.raises(DecodeError):
            codec.open_image(str(path))

    def test_open_transient(self, codec, mocker):
        """Test transient OS errors keep their classification."""
        mocker.patch('mediacache.image_codec.Image.open', side_effect=OSError(errno.EIO, 'I/O error'))

        with pytest.raises(TransientIOError):
            codec.open_image('/photos/x.jpg')

    def test_open_bytes(self, codec, sample_png_bytes):
        """Test in-memory images open."""
        assert codec.open_bytes(sample_png_bytes).size == (100, 100)

    def test_decode_heic_rejects_non_heif(self, codec, tmp_path, sample_image_bytes):
        """Test libheif failures surface as DecodeError."""
        path = tmp_path / 'fake.heic'
        path.write_bytes(sample_image_bytes)

        with pytest.raises(DecodeError):
            codec.decode_heic(str(path))
        assert not codec.is_heif_supported(str(path))


class TestEncoding:
    """Tests for JPEG output."""

    def test_encode_flattens_transparency(self, codec, tmp_path):
        """Test RGBA input is written as an RGB JPEG."""
        path = str(tmp_path / 'out.jpg')

        codec.encode_to(Image.new('RGBA', (10, 10), (255, 0, 0, 128)), path)

        with Image.open(path) as img:
            assert img.format == 'JPEG'
            assert img.mode == 'RGB'

    def test_write_jpeg_is_atomic(self, codec, tmp_path):
        """Test only the final file remains after a write."""
        dest = str(tmp_path / 'cache' / 'img_w300.jpg')

        codec.write_jpeg(lambda: Image.new('RGB', (30, 20)), dest)

        assert os.listdir(tmp_path / 'cache') == ['img_w300.jpg']
        assert os.path.getsize(dest) > 0

    def test_write_jpeg_retries_transient(self, codec, tmp_path, mocker):
        """Test a transient encode failure is retried."""
        dest = str(tmp_path / 'out.jpg')
        real_encode = codec.encode_to
        failures = [OSError(errno.ENOSPC, 'No space left on device')]

        def flaky(img, path):
            if failures:
                raise failures.pop(0)
            real_encode(img, path)

        mocker.patch.object(codec, 'encode_to', side_effect=flaky)

        codec.write_jpeg(lambda: Image.new('RGB', (10, 10)), dest)

        assert os.path.getsize(dest) > 0
        assert codec.encode_to.call_count == 2

    def test_write_jpeg_zero_byte_output(self, codec, tmp_path, mocker):
        """Test an encoder leaving an empty file fails after all attempts."""
        codec.write_attempts = 3
        mocker.patch.object(codec, 'encode_to', side_effect=lambda img, path: open(path, 'wb').close())
        dest = str(tmp_path / 'out.jpg')

        with pytest.raises(ZeroByteOutput):
            codec.write_jpeg(lambda: Image.new('RGB', (10, 10)), dest)

        assert codec.encode_to.call_count == 3
        assert os.listdir(tmp_path) == []


class TestRawRendering:
    """Tests for render_raw and develop."""

    def test_render_raw_bounds_size(self, logger, gradient):
        """Test a decoded buffer is developed to the bounded full size."""
        codec = ImageCodec(max_dimension=100, logger=logger)
        pixels = gradient(400, 300, bits=16)
        buffer = DecodedRawBuffer(400, 300, 3, 16, pixels.tobytes())

        img = codec.render_raw(buffer)

        assert img.size == (100, 75)
        assert img.mode == 'RGB'

    def test_render_raw_spreads_tones(self, logger, gradient):
        """Test a dim 14-bit buffer is stretched across the tonal range."""
        codec = ImageCodec(max_dimension=2560, logger=logger)
        pixels = (gradient(64, 48, bits=14) // 4).astype(np.uint16)
        buffer = DecodedRawBuffer(64, 48, 3, 14, pixels.tobytes())

        result = np.asarray(codec.render_raw(buffer))

        assert result.min() < 30
        assert result.max() > 220

    def test_develop_gamma_aware_resize(self, codec):
        """Test downscaling a fine black/white pattern keeps linear-light brightness."""
        codec.max_dimension = 4
        checker = np.indices((8, 8)).sum(axis=0) % 2 * 255.0
        image = np.stack([checker] * 3, axis=-1).astype(np.float32)

        result = np.asarray(codec.develop(image))

        # A naive resize gives ~128; linear-light averaging gives ~186
        assert result.shape == (4, 4, 3)
        assert result.mean() > 160
