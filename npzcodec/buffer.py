"""Typed, shaped byte buffer with explicit storage ownership.

An ArrayBuffer holds the raw little-endian element bytes of one array plus
its shape, element kind and width. Its storage is one of:

    OwnedStorage     a bytearray the buffer allocated or copied into; the
                     caller may take it over with ArrayBuffer.release()
    BorrowedStorage  a read-only view of memory someone else manages
                     (e.g. a NumPy array); it can never be released

After release() the buffer is empty and every read raises BufferReleased.
"""

import math
from dataclasses import dataclass
from typing import Optional, Sequence, Union

import numpy as np

from .dtypes import ElementKind, class_code_and_width, kind_from_numpy
from .errors import BufferReleased, OwnershipError, ShapeMismatch


@dataclass
class OwnedStorage:
    data: bytearray

    def view(self) -> memoryview:
        return memoryview(self.data)

    def release(self) -> bytearray:
        data, self.data = self.data, None
        return data


@dataclass
class BorrowedStorage:
    data: memoryview

    def view(self) -> memoryview:
        return self.data


Storage = Union[OwnedStorage, BorrowedStorage]

BytesLike = Union[bytes, bytearray, memoryview]


def num_elements(shape: Sequence[int]) -> int:
    return math.prod(int(d) for d in shape)


def _check_shape(shape: Sequence[int]) -> tuple[int, ...]:
    shape = tuple(int(d) for d in shape)
    if len(shape) == 0:
        raise ShapeMismatch("array shape must have at least one dimension")
    if any(d < 0 for d in shape):
        raise ShapeMismatch(f"negative dimension in shape {shape}")
    return shape


class ArrayBuffer:
    """Contiguous element bytes plus shape/dtype metadata."""

    def __init__(
        self,
        shape: Sequence[int],
        kind: ElementKind,
        data: Optional[BytesLike] = None,
        fortran_order: bool = False,
        word_size: Optional[int] = None,
    ):
        """Allocate an owned buffer.

        Args:
            shape: Dimension sizes, at least one.
            kind: Element kind (not VOID).
            data: Initial element bytes, copied. Zero-filled if omitted.
            fortran_order: Whether the elements are laid out column-major.
            word_size: Element width; defaults to the kind's width and must
                agree with it when given.
        """
        self.shape = _check_shape(shape)
        self.kind = kind
        self.word_size = _resolve_word_size(kind, word_size)
        self.fortran_order = bool(fortran_order)

        nbytes = num_elements(self.shape) * self.word_size
        if data is None:
            buf = bytearray(nbytes)
        else:
            buf = bytearray(data)
            if len(buf) != nbytes:
                raise ShapeMismatch(
                    f"data length does not match shape {self.shape} "
                    f"with {self.word_size}-byte elements",
                    expected=nbytes,
                    actual=len(buf),
                )
        self._storage: Optional[Storage] = OwnedStorage(buf)

    # ---- constructors ----

    @classmethod
    def zeros(cls, shape: Sequence[int], kind: ElementKind) -> "ArrayBuffer":
        return cls(shape, kind)

    @classmethod
    def from_bytes(
        cls,
        data: BytesLike,
        shape: Sequence[int],
        kind: ElementKind,
        fortran_order: bool = False,
    ) -> "ArrayBuffer":
        return cls(shape, kind, data=data, fortran_order=fortran_order)

    @classmethod
    def adopt(
        cls,
        data: bytearray,
        shape: Sequence[int],
        kind: ElementKind,
        fortran_order: bool = False,
    ) -> "ArrayBuffer":
        """Take ownership of a bytearray without copying it."""
        buf = cls.__new__(cls)
        buf.shape = _check_shape(shape)
        buf.kind = kind
        buf.word_size = _resolve_word_size(kind, None)
        buf.fortran_order = bool(fortran_order)
        if len(data) != buf.nbytes:
            raise ShapeMismatch(
                f"data length does not match shape {buf.shape}",
                expected=buf.nbytes,
                actual=len(data),
            )
        buf._storage = OwnedStorage(data)
        return buf

    @classmethod
    def borrow(
        cls,
        data: BytesLike,
        shape: Sequence[int],
        kind: ElementKind,
        fortran_order: bool = False,
    ) -> "ArrayBuffer":
        """Wrap externally managed memory without copying it."""
        view = memoryview(data).cast("B")
        buf = cls.__new__(cls)
        buf.shape = _check_shape(shape)
        buf.kind = kind
        buf.word_size = _resolve_word_size(kind, None)
        buf.fortran_order = bool(fortran_order)
        expected = num_elements(buf.shape) * buf.word_size
        if view.nbytes != expected:
            raise ShapeMismatch(
                f"borrowed memory does not match shape {buf.shape}",
                expected=expected,
                actual=view.nbytes,
            )
        buf._storage = BorrowedStorage(view.toreadonly())
        return buf

    @classmethod
    def from_numpy(cls, array: np.ndarray, copy: bool = True) -> "ArrayBuffer":
        """Build a buffer from a NumPy array.

        Non-native byte order is converted to little-endian. With copy=False
        the array's memory is borrowed when it is already C-contiguous
        little-endian; otherwise a copy is made regardless.
        """
        array = np.asarray(array)
        kind = kind_from_numpy(array.dtype)
        if array.ndim == 0:
            array = array.reshape(1)
        target = kind.numpy_dtype
        if not copy and array.dtype == target and array.flags.c_contiguous:
            return cls.borrow(array.reshape(-1).view(np.uint8), array.shape, kind)
        contiguous = np.ascontiguousarray(array, dtype=target)
        return cls(contiguous.shape, kind, data=contiguous.tobytes())

    # ---- storage ----

    @property
    def owns_data(self) -> bool:
        return isinstance(self._storage, OwnedStorage)

    @property
    def released(self) -> bool:
        return self._storage is None

    @property
    def data(self) -> memoryview:
        """Element bytes. Raises BufferReleased after release()."""
        if self._storage is None:
            raise BufferReleased(
                "storage was released to the caller; the buffer can no longer be read"
            )
        return self._storage.view()

    def tobytes(self) -> bytes:
        return bytes(self.data)

    def release(self) -> bytearray:
        """Hand the storage to the caller and leave this buffer unreadable.

        Raises:
            OwnershipError: if the storage is borrowed.
            BufferReleased: if it was already released.
        """
        if self._storage is None:
            raise BufferReleased("storage was already released")
        if not isinstance(self._storage, OwnedStorage):
            raise OwnershipError("cannot release borrowed storage; it is managed elsewhere")
        data = self._storage.release()
        self._storage = None
        return data

    # ---- metadata ----

    @property
    def ndim(self) -> int:
        return len(self.shape)

    @property
    def num_elements(self) -> int:
        return num_elements(self.shape)

    @property
    def nbytes(self) -> int:
        return self.num_elements * self.word_size

    def to_numpy(self) -> np.ndarray:
        """Copy the elements into a new NumPy array of the same shape."""
        order = "F" if self.fortran_order else "C"
        flat = np.frombuffer(self.data, dtype=self.kind.numpy_dtype)
        return flat.reshape(self.shape, order=order).copy(order=order)

    def __eq__(self, other):
        if not isinstance(other, ArrayBuffer):
            return NotImplemented
        return (
            self.shape == other.shape
            and self.kind == other.kind
            and self.word_size == other.word_size
            and self.fortran_order == other.fortran_order
            and self.data == other.data
        )

    __hash__ = None

    def __repr__(self) -> str:
        state = "released" if self.released else ("owned" if self.owns_data else "borrowed")
        return (
            f"ArrayBuffer(shape={self.shape}, kind={self.kind.value}, "
            f"word_size={self.word_size}, fortran_order={self.fortran_order}, {state})"
        )


def _resolve_word_size(kind: ElementKind, word_size: Optional[int]) -> int:
    _, width = class_code_and_width(kind)
    if word_size is not None and int(word_size) != width:
        raise ShapeMismatch(
            f"word size does not match element kind {kind.value}",
            expected=width,
            actual=word_size,
        )
    return width
