"""
Errors - Structured error kinds for media generation failures.
"""

import errno
from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    """Classification of a failure, used by the retry policy and the HTTP boundary."""
    NOT_FOUND = 'not_found'
    TRANSIENT_IO = 'transient_io'
    DECODE = 'decode'
    ZERO_BYTE_OUTPUT = 'zero_byte_output'


# errno values seen on shared/network storage under pressure
TRANSIENT_ERRNOS = frozenset({
    errno.ENOSPC,
    errno.EIO,
    errno.EBUSY,
    errno.EPERM,
})

# Codec and share messages that turned out to be transient in practice
TRANSIENT_MESSAGES = (
    'out of disk space',
    'output file write error',
    'the device does not recognize the command',
)

RETRYABLE_KINDS = frozenset({ErrorKind.TRANSIENT_IO, ErrorKind.ZERO_BYTE_OUTPUT})


class MediaError(Exception):
    """Base class for failures raised by the media pipeline."""

    kind = ErrorKind.DECODE

    def __init__(self, message: str, kind: Optional[ErrorKind] = None):
        super().__init__(message)
        if kind is not None:
            self.kind = kind


class AssetNotFound(MediaError):
    """Raised when the requested original does not exist."""
    kind = ErrorKind.NOT_FOUND


class DecodeError(MediaError):
    """Raised when media is malformed or unsupported by a decoder."""
    kind = ErrorKind.DECODE


class ZeroByteOutput(MediaError):
    """Raised when a producer reported success but left an empty file."""
    kind = ErrorKind.ZERO_BYTE_OUTPUT


class TransientIOError(MediaError):
    """Raised for storage conditions that are expected to clear on retry."""
    kind = ErrorKind.TRANSIENT_IO


class ToolError(MediaError):
    """
    Raised when an external tool (ffmpeg, ffprobe, RAW worker) fails.

    Attributes:
        stderr: Tail of the tool's error stream, if any
    """

    def __init__(self, message: str, kind: Optional[ErrorKind] = None, stderr: str = ''):
        super().__init__(message, kind)
        self.stderr = stderr


def is_transient_message(message: str) -> bool:
    """Check a free-text error message against known transient phrases."""
    lowered = (message or '').lower()
    return any(phrase in lowered for phrase in TRANSIENT_MESSAGES)


def classify_error(exc: BaseException) -> ErrorKind:
    """
    Map an exception to an ErrorKind.

    Exceptions raised by this package carry their kind. Anything else is
    classified once here: OSError by errno, then by message.

    Args:
        exc: The exception to classify

    Returns:
        The ErrorKind for the exception
    """
    if isinstance(exc, MediaError):
        return exc.kind
    if isinstance(exc, FileNotFoundError):
        return ErrorKind.NOT_FOUND
    if isinstance(exc, OSError) and exc.errno in TRANSIENT_ERRNOS:
        return ErrorKind.TRANSIENT_IO
    if is_transient_message(str(exc)):
        return ErrorKind.TRANSIENT_IO
    return ErrorKind.DECODE


def is_retryable(exc: BaseException) -> bool:
    """True when the retry policy should attempt the operation again."""
    return classify_error(exc) in RETRYABLE_KINDS
