"""
Storage helpers for publishing cache files on a shared filesystem.

Every derivative is written to a temporary name in its destination
directory and renamed into place, so readers only ever see complete files.
"""

import json
import logging
import os
import uuid
from contextlib import contextmanager
from typing import Iterator, Optional

from .errors import ZeroByteOutput

logger = logging.getLogger(__name__)


def is_non_empty_file(path: str) -> bool:
    """True when path is a regular file with at least one byte."""
    try:
        return os.path.isfile(path) and os.path.getsize(path) > 0
    except OSError:
        return False


def delete_if_zero_byte(path: str) -> bool:
    """Remove path if it is an empty regular file. Returns True if removed."""
    try:
        if os.path.isfile(path) and os.path.getsize(path) == 0:
            os.remove(path)
            return True
    except FileNotFoundError:
        pass
    return False


def remove_quietly(path: str) -> None:
    """Remove a file if present; failures are logged, not raised."""
    if not os.path.lexists(path):
        return
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Could not delete {path}: {e}")


def temp_path_for(dest: str) -> str:
    """Unique hidden temp name in the same directory as dest."""
    directory, name = os.path.split(dest)
    root, ext = os.path.splitext(name)
    return os.path.join(directory, f".{root}.{os.getpid()}.{uuid.uuid4().hex[:8]}.tmp{ext}")


@contextmanager
def atomic_output(dest: str) -> Iterator[str]:
    """
    Yield a temp path to write to; on success publish it at dest.

    The temp file must be non-empty when the block exits, otherwise it is
    removed and ZeroByteOutput is raised. On any failure the temp file is
    removed and dest is left untouched.
    """
    os.makedirs(os.path.dirname(dest), exist_ok=True)
    tmp = temp_path_for(dest)
    try:
        yield tmp
        if not os.path.exists(tmp):
            raise ZeroByteOutput(f"No output produced for {dest}")
        if delete_if_zero_byte(tmp):
            raise ZeroByteOutput(f"Generated 0-byte output: {dest}")
        os.replace(tmp, dest)
    finally:
        remove_quietly(tmp)


def read_json(path: str) -> Optional[dict]:
    """Load a JSON object from path, or None if missing or unreadable."""
    try:
        with open(path, 'r') as f:
            data = json.load(f)
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as e:
        logger.warning(f"Ignoring unreadable control file {path}: {e}")
        return None
    return data if isinstance(data, dict) else None


def write_json(path: str, data: dict) -> None:
    """Write a JSON object atomically."""
    os.makedirs(os.path.dirname(path), exist_ok=True)
    tmp = temp_path_for(path)
    try:
        with open(tmp, 'w') as f:
            json.dump(data, f, separators=(',', ':'))
        os.replace(tmp, path)
    finally:
        remove_quietly(tmp)


def create_exclusive(path: str, data: dict) -> bool:
    """
    Create path with O_CREAT | O_EXCL and write data as JSON.

    Returns:
        True if this call created the file, False if it already existed
    """
    os.makedirs(os.path.dirname(path), exist_ok=True)
    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
    except FileExistsError:
        return False
    with os.fdopen(fd, 'w') as f:
        json.dump(data, f, separators=(',', ':'))
    return True


def is_fresh(path: str, source_path: str) -> bool:
    """True when path is non-empty and not older than source_path."""
    if not is_non_empty_file(path):
        return False
    try:
        return os.path.getmtime(path) >= os.path.getmtime(source_path)
    except OSError:
        return False
