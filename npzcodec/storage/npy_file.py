"""Single-array .npy files: load, save and append along the leading axis.

Appending rewrites the header with the grown leading dimension and adds the
new element bytes after the existing payload. The header is patched in place
when its size is unchanged. When the longer shape text crosses a 16-byte pad
boundary the header grows, so the old payload is shifted behind the new
header before the new bytes are written.
"""

import logging
import os
from pathlib import Path
from typing import BinaryIO, Optional, Sequence, Union

from ..buffer import ArrayBuffer, num_elements
from ..config import SaveMode
from ..dtypes import ElementKind, byte_order_marker, class_code_and_width
from ..errors import (
    DtypeMismatch,
    MalformedHeader,
    PartialWrite,
    ShapeMismatch,
    ShapeRankMismatch,
    UnknownDtype,
)
from .npy_header import NpyHeader, encode_npy_header, read_npy_header

logger = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]


def write_all(fp: BinaryIO, data, path: Optional[str] = None) -> int:
    """Write every byte of ``data`` or raise PartialWrite."""
    expected = memoryview(data).nbytes
    written = fp.write(data)
    if written is not None and written != expected:
        raise PartialWrite("short write", path=path, expected=expected, actual=written)
    return expected


def read_npy_payload(fp: BinaryIO, header: NpyHeader, path: Optional[str] = None) -> ArrayBuffer:
    """Read the element bytes that follow ``header`` into a new buffer."""
    try:
        kind = header.kind
    except UnknownDtype as exc:
        raise UnknownDtype(
            f"unsupported dtype descriptor {header.class_code}{header.word_size}", path=path,
            expected=exc.expected, actual=exc.actual,
        ) from None
    nbytes = header.payload_size
    data = bytearray(nbytes)
    nread = fp.readinto(data) if nbytes else 0
    if nread != nbytes:
        raise MalformedHeader(
            "npy payload is truncated", path=path, expected=nbytes, actual=nread,
        )
    return ArrayBuffer.adopt(data, header.shape, kind, fortran_order=header.fortran_order)


def npy_load(path: PathLike, missing_ok: bool = False) -> Optional[ArrayBuffer]:
    """Load a .npy file.

    Args:
        path: File to read.
        missing_ok: Return None instead of raising when the file is absent.

    Returns:
        ArrayBuffer owning the element bytes.
    """
    path = Path(path)
    try:
        fp = open(path, "rb")
    except FileNotFoundError:
        if missing_ok:
            return None
        raise
    with fp:
        header = read_npy_header(fp, path=str(path))
        return read_npy_payload(fp, header, path=str(path))


def npy_save(path: PathLike, buffer: ArrayBuffer, mode="w") -> int:
    """Save an ArrayBuffer; see npy_save_data()."""
    return npy_save_data(
        path,
        buffer.data,
        buffer.kind,
        buffer.word_size,
        buffer.shape,
        mode=mode,
        fortran_order=buffer.fortran_order,
    )


def npy_save_data(
    path: PathLike,
    data,
    kind: ElementKind,
    word_size: int,
    shape: Sequence[int],
    mode="w",
    fortran_order: bool = False,
) -> int:
    """Write raw element bytes as a .npy file.

    Args:
        path: Output file path.
        data: Bytes-like object holding prod(shape) * word_size bytes.
        kind: Element kind of the data.
        word_size: Element width in bytes.
        shape: Array shape of ``data``.
        mode: 'w' / SaveMode.OVERWRITE replaces the file, 'a' /
            SaveMode.APPEND grows an existing file along axis 0 (and
            behaves like 'w' when the file does not exist).
        fortran_order: Column-major flag for a fresh file.

    Returns:
        Total file size after the write.

    Raises:
        DtypeMismatch, ShapeRankMismatch, ShapeMismatch: when appending data
            that does not fit the existing array. The file is left untouched.
    """
    mode = SaveMode.coerce(mode)
    shape = tuple(int(d) for d in shape)
    path = Path(path)
    view = memoryview(data).cast("B")

    expected = num_elements(shape) * int(word_size)
    if view.nbytes != expected:
        raise ShapeMismatch(
            f"data length does not match shape {shape} with {word_size}-byte elements",
            path=str(path), expected=expected, actual=view.nbytes,
        )

    if mode is SaveMode.APPEND and path.exists():
        return _append(path, view, kind, int(word_size), shape, fortran_order)

    header = encode_npy_header(kind, word_size, shape, fortran_order=fortran_order)
    with open(path, "wb") as fp:
        total = write_all(fp, header, str(path))
        total += write_all(fp, view, str(path))
    logger.debug("wrote %s: shape=%s descr=%s%d", path, shape, kind.class_code, word_size)
    return total


def _append(path: Path, view: memoryview, kind: ElementKind, word_size: int,
            shape: tuple, fortran_order: bool) -> int:
    code, _ = class_code_and_width(kind)
    name = str(path)

    with open(path, "r+b") as fp:
        old = read_npy_header(fp, path=name)

        if old.word_size != word_size or old.class_code != code:
            raise DtypeMismatch(
                "cannot append data of a different dtype",
                path=name,
                expected=f"{old.byte_order}{old.class_code}{old.word_size}",
                actual=f"{byte_order_marker(word_size)}{code}{word_size}",
            )
        if old.fortran_order or fortran_order:
            raise ShapeMismatch(
                "cannot append along axis 0 of a column-major array", path=name,
            )
        if len(old.shape) != len(shape):
            raise ShapeRankMismatch(
                "cannot append data with a different number of dimensions",
                path=name, expected=len(old.shape), actual=len(shape),
            )
        if old.shape[1:] != shape[1:]:
            raise ShapeMismatch(
                "cannot append data with different trailing dimensions",
                path=name, expected=old.shape[1:], actual=shape[1:],
            )

        fp.seek(0, os.SEEK_END)
        file_size = fp.tell()
        if file_size != old.header_size + old.payload_size:
            raise MalformedHeader(
                "file size does not match its header",
                path=name,
                expected=old.header_size + old.payload_size,
                actual=file_size,
            )

        new_shape = (old.shape[0] + shape[0],) + old.shape[1:]
        header = encode_npy_header(kind, word_size, new_shape)

        if len(header) == old.header_size:
            fp.seek(0)
            write_all(fp, header, name)
            fp.seek(0, os.SEEK_END)
            write_all(fp, view, name)
        else:
            logger.debug(
                "header of %s grows from %d to %d bytes; shifting payload",
                path, old.header_size, len(header),
            )
            fp.seek(old.header_size)
            payload = fp.read(old.payload_size)
            fp.seek(0)
            write_all(fp, header, name)
            write_all(fp, payload, name)
            write_all(fp, view, name)
            fp.truncate()
        total = fp.tell()

    logger.debug("appended %d rows to %s: shape=%s", shape[0], path, new_shape)
    return total
