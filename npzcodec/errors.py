"""Exception types raised by the npy/npz codec.

Every error derives from NpzCodecError. Format problems are also ValueErrors,
lookup problems LookupErrors and archive I/O problems OSErrors, so callers
can catch either the codec base class or the familiar builtin.
"""

from typing import Any, Optional


class NpzCodecError(Exception):
    """Base class for all codec failures.

    Attributes:
        path: File the failure relates to, if any.
        expected: Expected value (word size, shape, dtype, ...), if relevant.
        actual: Value actually found, if relevant.
    """

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        expected: Any = None,
        actual: Any = None,
    ):
        self.path = None if path is None else str(path)
        self.expected = expected
        self.actual = actual
        if self.path is not None:
            message = f"{self.path}: {message}"
        if expected is not None or actual is not None:
            message = f"{message} (expected {expected!r}, got {actual!r})"
        super().__init__(message)


# ---- NPY format ----

class MalformedHeader(NpzCodecError, ValueError):
    """The NPY preamble or header dictionary cannot be parsed."""


class UnsupportedByteOrder(NpzCodecError, ValueError):
    """The array is stored big-endian."""


class UnknownDtype(NpzCodecError, ValueError):
    """No element kind matches a (class code, width) pair."""


# ---- Append checks ----

class DtypeMismatch(NpzCodecError, ValueError):
    """Appended data has a different element type than the file."""


class ShapeRankMismatch(NpzCodecError, ValueError):
    """Appended data has a different number of dimensions than the file."""


class ShapeMismatch(NpzCodecError, ValueError):
    """Appended data differs from the file in a non-leading dimension."""


# ---- Archives ----

class EntryNotFound(NpzCodecError, LookupError):
    """The requested entry is not present in the archive."""


class DuplicateEntry(NpzCodecError, ValueError):
    """An entry name occurs more than once."""


class ArchiveFormatError(NpzCodecError, ValueError):
    """The ZIP container structure is not one this codec handles."""


class UnsupportedCompression(ArchiveFormatError):
    """An archive entry is not stored uncompressed."""


class ChecksumMismatch(ArchiveFormatError):
    """The CRC32 of an entry does not match its record."""


class ArchiveOpenError(NpzCodecError, OSError):
    """The archive cannot be created or opened."""


class EntryReplaceError(NpzCodecError, OSError):
    """An existing entry could not be removed before re-adding it."""


class PartialWrite(NpzCodecError, OSError):
    """A write call stored fewer bytes than requested."""


# ---- Buffers ----

class OwnershipError(NpzCodecError, TypeError):
    """Ownership was requested from storage the buffer does not own."""


class BufferReleased(NpzCodecError, RuntimeError):
    """The buffer's storage was handed to the caller and is no longer readable."""
