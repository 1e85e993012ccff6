"""Tests for storage helpers."""

import json
import os
import time

import pytest

from mediacache.errors import ZeroByteOutput
from mediacache.storage import (
    atomic_output, create_exclusive, delete_if_zero_byte, is_fresh, is_non_empty_file,
    read_json, write_json,
)


class TestAtomicOutput:
    """Tests for atomic_output."""

    def test_publishes_on_success(self, tmp_path):
        """Test the temp file is renamed into place."""
        dest = str(tmp_path / 'cache' / 'out.jpg')

        with atomic_output(dest) as tmp:
            assert tmp != dest
            assert os.path.dirname(tmp) == os.path.dirname(dest)
            assert not os.path.exists(dest)
            with open(tmp, 'wb') as f:
                f.write(b'jpeg')

        with open(dest, 'rb') as f:
            assert f.read() == b'jpeg'
        assert os.listdir(tmp_path / 'cache') == ['out.jpg']

    def test_temp_name_keeps_extension(self, tmp_path):
        """Test tools that infer format from the name still see .jpg."""
        with pytest.raises(ZeroByteOutput):
            with atomic_output(str(tmp_path / 'out.jpg')) as tmp:
                assert tmp.endswith('.jpg')

    def test_zero_byte_output_raises(self, tmp_path):
        """Test an empty file is removed and reported."""
        dest = str(tmp_path / 'out.jpg')

        with pytest.raises(ZeroByteOutput):
            with atomic_output(dest) as tmp:
                open(tmp, 'wb').close()

        assert os.listdir(tmp_path) == []

    def test_failure_leaves_existing_dest(self, tmp_path):
        """Test a failed write never touches the published file."""
        dest = tmp_path / 'out.jpg'
        dest.write_bytes(b'old')

        with pytest.raises(RuntimeError):
            with atomic_output(str(dest)) as tmp:
                with open(tmp, 'wb') as f:
                    f.write(b'partial')
                raise RuntimeError('encoder crashed')

        assert dest.read_bytes() == b'old'
        assert os.listdir(tmp_path) == ['out.jpg']


class TestFileChecks:
    """Tests for file predicates."""

    def test_is_non_empty_file(self, tmp_path):
        """Test empty, missing and directory paths are not usable files."""
        full = tmp_path / 'a'
        full.write_bytes(b'x')
        empty = tmp_path / 'b'
        empty.write_bytes(b'')

        assert is_non_empty_file(str(full))
        assert not is_non_empty_file(str(empty))
        assert not is_non_empty_file(str(tmp_path / 'missing'))
        assert not is_non_empty_file(str(tmp_path))

    def test_delete_if_zero_byte(self, tmp_path):
        """Test only empty files are deleted."""
        empty = tmp_path / 'empty'
        empty.write_bytes(b'')
        full = tmp_path / 'full'
        full.write_bytes(b'x')

        assert delete_if_zero_byte(str(empty))
        assert not delete_if_zero_byte(str(full))
        assert not delete_if_zero_byte(str(tmp_path / 'missing'))
        assert not empty.exists()
        assert full.exists()

    def test_is_fresh(self, tmp_path):
        """Test a cache file older than its source is stale."""
        source = tmp_path / 'src.jpg'
        source.write_bytes(b'src')
        cached = tmp_path / 'cached.jpg'
        cached.write_bytes(b'cached')
        now = time.time()
        os.utime(source, (now - 100, now - 100))
        os.utime(cached, (now, now))

        assert is_fresh(str(cached), str(source))

        os.utime(source, (now + 100, now + 100))
        assert not is_fresh(str(cached), str(source))


class TestJsonFiles:
    """Tests for control-file helpers."""

    def test_write_and_read(self, tmp_path):
        """Test JSON objects are written atomically and read back."""
        path = str(tmp_path / 'ctl' / 'x.json')

        write_json(path, {'at': 1, 'reason': 'small'})

        assert read_json(path) == {'at': 1, 'reason': 'small'}
        assert os.listdir(tmp_path / 'ctl') == ['x.json']

    def test_read_missing_or_corrupt(self, tmp_path):
        """Test unreadable control files read as absent."""
        corrupt = tmp_path / 'bad.json'
        corrupt.write_text('{not json')
        array = tmp_path / 'array.json'
        array.write_text('[1, 2]')

        assert read_json(str(tmp_path / 'missing.json')) is None
        assert read_json(str(corrupt)) is None
        assert read_json(str(array)) is None

    def test_create_exclusive(self, tmp_path):
        """Test only the first creator wins."""
        path = str(tmp_path / 'ctl' / 'clip.h265.lock')

        assert create_exclusive(path, {'at': 1, 'pid': 10})
        assert not create_exclusive(path, {'at': 2, 'pid': 20})

        with open(path) as f:
            assert json.load(f) == {'at': 1, 'pid': 10}
