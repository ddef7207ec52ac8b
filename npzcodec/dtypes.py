"""Element kinds and their on-disk dtype descriptors.

Each usable kind maps to exactly one (class code, byte width) pair as written
in the ``descr`` field of an NPY header:

    i  signed int      1, 2, 4, 8
    u  unsigned int    1, 2, 4, 8
    f  float           4, 8, 16 (long double, x86 80-bit padded to 16)
    c  complex         8, 16, 32
    b  bool            1

VOID is a sentinel for "no element type" and has no descriptor.
"""

from enum import Enum

import numpy as np

from .errors import UnknownDtype


class ElementKind(Enum):
    VOID = "void"
    INT8 = "int8"
    INT16 = "int16"
    INT32 = "int32"
    INT64 = "int64"
    UINT8 = "uint8"
    UINT16 = "uint16"
    UINT32 = "uint32"
    UINT64 = "uint64"
    FLOAT32 = "float32"
    FLOAT64 = "float64"
    LONG_DOUBLE = "longdouble"
    COMPLEX_FLOAT32 = "complex64"
    COMPLEX_FLOAT64 = "complex128"
    COMPLEX_LONG_DOUBLE = "clongdouble"
    BOOL = "bool"

    @property
    def class_code(self) -> str:
        return class_code_and_width(self)[0]

    @property
    def width(self) -> int:
        return class_code_and_width(self)[1]

    @property
    def numpy_dtype(self) -> np.dtype:
        """Little-endian NumPy dtype with the same descriptor."""
        code, width = class_code_and_width(self)
        return np.dtype(f"{byte_order_marker(width)}{code}{width}")


_KIND_TO_DESCR = {
    ElementKind.INT8: ("i", 1),
    ElementKind.INT16: ("i", 2),
    ElementKind.INT32: ("i", 4),
    ElementKind.INT64: ("i", 8),
    ElementKind.UINT8: ("u", 1),
    ElementKind.UINT16: ("u", 2),
    ElementKind.UINT32: ("u", 4),
    ElementKind.UINT64: ("u", 8),
    ElementKind.FLOAT32: ("f", 4),
    ElementKind.FLOAT64: ("f", 8),
    ElementKind.LONG_DOUBLE: ("f", 16),
    ElementKind.COMPLEX_FLOAT32: ("c", 8),
    ElementKind.COMPLEX_FLOAT64: ("c", 16),
    ElementKind.COMPLEX_LONG_DOUBLE: ("c", 32),
    ElementKind.BOOL: ("b", 1),
}

_DESCR_TO_KIND = {descr: kind for kind, descr in _KIND_TO_DESCR.items()}

CLASS_CODES = frozenset(code for code, _ in _KIND_TO_DESCR.values())


def class_code_and_width(kind: ElementKind) -> tuple[str, int]:
    """Return the (class code, byte width) pair for a kind.

    Raises:
        UnknownDtype: for ElementKind.VOID, which has no on-disk form.
    """
    try:
        return _KIND_TO_DESCR[kind]
    except KeyError:
        raise UnknownDtype(f"element kind {kind!r} has no dtype descriptor") from None


def kind_from_code_and_width(code: str, width: int) -> ElementKind:
    """Inverse of class_code_and_width().

    Raises:
        UnknownDtype: if no kind has this (code, width) pair.
    """
    try:
        return _DESCR_TO_KIND[(code, int(width))]
    except KeyError:
        raise UnknownDtype(
            f"unsupported dtype descriptor {code}{width}",
            expected="one of " + ", ".join(f"{c}{w}" for c, w in _DESCR_TO_KIND),
            actual=f"{code}{width}",
        ) from None


def kind_from_numpy(dtype) -> ElementKind:
    """Map a NumPy dtype (or anything np.dtype accepts) to an element kind."""
    dtype = np.dtype(dtype)
    return kind_from_code_and_width(dtype.kind, dtype.itemsize)


def byte_order_marker(width: int) -> str:
    """Byte order character written in front of a descriptor.

    Single-byte elements have no byte order, NumPy marks them with ``|``.
    """
    return "|" if width == 1 else "<"
