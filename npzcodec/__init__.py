"""npzcodec: read and write NumPy .npy files and .npz archives.

    import npzcodec
    buf = npzcodec.ArrayBuffer.from_numpy(np.arange(6.0).reshape(2, 3))
    npzcodec.npy_save("a.npy", buf)
    npzcodec.npy_save("a.npy", buf, mode="a")     # now shape (4, 3)
    npzcodec.npz_save("b.npz", "x", buf)
    npzcodec.npz_save("b.npz", "y", buf, mode="a")
    arrays = npzcodec.npz_load("b.npz")           # {"x": ..., "y": ...}
    x = npzcodec.npz_load("b.npz", "x")

Buffers hold raw little-endian element bytes; NumPy is only needed to
convert them with ArrayBuffer.from_numpy() / to_numpy().
"""

__version__ = "0.1.0"

from .buffer import ArrayBuffer, BorrowedStorage, OwnedStorage
from .config import CodecConfig, SaveMode
from .dtypes import ElementKind, class_code_and_width, kind_from_code_and_width, kind_from_numpy
from .errors import (
    ArchiveFormatError,
    ArchiveOpenError,
    BufferReleased,
    ChecksumMismatch,
    DtypeMismatch,
    DuplicateEntry,
    EntryNotFound,
    EntryReplaceError,
    MalformedHeader,
    NpzCodecError,
    OwnershipError,
    PartialWrite,
    ShapeMismatch,
    ShapeRankMismatch,
    UnknownDtype,
    UnsupportedByteOrder,
    UnsupportedCompression,
)
from .storage import (
    NpzEntryInfo,
    npy_load,
    npy_save,
    npy_save_data,
    npz_list,
    npz_load,
    npz_save,
    npz_save_data,
)

__all__ = [
    "__version__",
    "ArrayBuffer", "OwnedStorage", "BorrowedStorage",
    "CodecConfig", "SaveMode",
    "ElementKind", "class_code_and_width", "kind_from_code_and_width", "kind_from_numpy",
    "NpzCodecError", "MalformedHeader", "UnsupportedByteOrder", "UnknownDtype",
    "DtypeMismatch", "ShapeRankMismatch", "ShapeMismatch", "EntryNotFound",
    "DuplicateEntry", "ArchiveFormatError", "UnsupportedCompression", "ChecksumMismatch",
    "ArchiveOpenError", "EntryReplaceError", "PartialWrite", "OwnershipError",
    "BufferReleased",
    "NpzEntryInfo",
    "npy_load", "npy_save", "npy_save_data",
    "npz_load", "npz_save", "npz_save_data", "npz_list",
]
