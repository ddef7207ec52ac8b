"""Read .npz archives by walking their local file headers.

Entries are visited in file order until the first non-local signature (the
central directory, or the footer of an empty archive). Each entry's payload
is a complete .npy file parsed with the NPY header codec. Entries written
with a trailing data descriptor carry no sizes in their local header; their
sizes come from the central directory instead.
"""

import logging
import os
import warnings
import zlib
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterator, Optional, Union

from ..buffer import ArrayBuffer
from ..config import CodecConfig, resolve_config
from ..errors import (
    ArchiveFormatError,
    ChecksumMismatch,
    DuplicateEntry,
    EntryNotFound,
    UnsupportedCompression,
)
from .npy_file import read_npy_payload
from .npy_header import NpyHeader, read_npy_header
from .zip_records import (
    CENTRAL_SIGNATURE,
    COMPRESSION_STORED,
    EOCD_SIGNATURE,
    LOCAL_SIGNATURE,
    LOCAL_SIZE,
    ZIP32_LIMIT,
    CentralDirectoryHeader,
    LocalFileHeader,
    has_zip64_extra,
    read_central_directory,
    read_footer,
)

logger = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]

NPY_SUFFIX = ".npy"
DESCRIPTOR_SIGNATURE = b"PK\x07\x08"


@dataclass
class NpzEntryInfo:
    """Directory listing entry for one archived array."""
    name: str                  # without the .npy suffix
    filename: str              # name as stored in the archive
    offset: int                # local header offset
    size: int                  # stored bytes (NPY header + payload)
    crc32: int
    compression: int

    @classmethod
    def from_central(cls, record: CentralDirectoryHeader) -> "NpzEntryInfo":
        return cls(
            name=strip_suffix(record.name),
            filename=record.name,
            offset=record.resolved_offset,
            size=record.data_size,
            crc32=record.crc32,
            compression=record.compression,
        )


def strip_suffix(filename: str) -> str:
    return filename[:-len(NPY_SUFFIX)] if filename.endswith(NPY_SUFFIX) else filename


class NpzReader:
    """Sequential reader over the entries of an .npz archive.

    Usage:
        with NpzReader("data.npz") as reader:
            arrays = reader.load_all()
    """

    def __init__(self, path: PathLike, config: Optional[CodecConfig] = None):
        self.path = Path(path)
        self.config = resolve_config(config)
        self._fp: Optional[BinaryIO] = None
        self._central: Optional[dict] = None

    def __enter__(self) -> "NpzReader":
        self._fp = open(self.path, "rb")
        return self

    def __exit__(self, *exc) -> None:
        if self._fp is not None:
            self._fp.close()
            self._fp = None

    @property
    def fp(self) -> BinaryIO:
        if self._fp is None:
            raise ValueError(f"{self.path}: reader is not open; use it as a context manager")
        return self._fp

    # ---- directory ----

    def entries(self) -> list[NpzEntryInfo]:
        """List entries from the central directory without reading payloads."""
        return [NpzEntryInfo.from_central(r) for r in self._central_records().values()]

    def read_entry_header(self, entry: NpzEntryInfo) -> NpyHeader:
        """Parse only the NPY header of a listed entry."""
        self.fp.seek(entry.offset)
        LocalFileHeader.read(self.fp, path=str(self.path))
        return read_npy_header(self.fp, path=str(self.path))

    def _central_records(self) -> dict:
        if self._central is None:
            position = self.fp.tell()
            try:
                footer = read_footer(self.fp, str(self.path))
                records = read_central_directory(self.fp, footer, str(self.path))
            finally:
                self.fp.seek(position)
            self._central = {r.resolved_offset: r for r in records}
        return self._central

    # ---- local header walk ----

    def _iter_local_headers(self) -> Iterator[tuple[int, LocalFileHeader]]:
        """Yield (offset, header) with the file positioned at each entry's data.

        The consumer must leave the file positioned after the entry's data
        before asking for the next header.
        """
        fp = self.fp
        fp.seek(0)
        while True:
            offset = fp.tell()
            fixed = fp.read(LOCAL_SIZE)
            if fixed[:2] != LOCAL_SIGNATURE[:2]:
                raise ArchiveFormatError(
                    f"no ZIP signature at offset {offset}", path=str(self.path),
                )
            if fixed[2:4] != LOCAL_SIGNATURE[2:4]:
                if fixed[:4] in (CENTRAL_SIGNATURE, EOCD_SIGNATURE):
                    return
                raise ArchiveFormatError(
                    f"unexpected ZIP record {fixed[:4]!r} at offset {offset}",
                    path=str(self.path),
                )
            if len(fixed) != LOCAL_SIZE:
                raise ArchiveFormatError(
                    "truncated local file header", path=str(self.path),
                    expected=LOCAL_SIZE, actual=len(fixed),
                )
            record = LocalFileHeader.read(fp, fixed=fixed, path=str(self.path))
            if record.compression != COMPRESSION_STORED:
                raise UnsupportedCompression(
                    f"entry {record.name!r} is compressed; only stored entries are supported",
                    path=str(self.path), expected=COMPRESSION_STORED, actual=record.compression,
                )
            yield offset, record

    def _entry_size_and_crc(self, offset: int, record: LocalFileHeader) -> tuple[int, int]:
        if not record.has_data_descriptor:
            return record.data_size, record.crc32
        central = self._central_records().get(offset)
        if central is None:
            raise ArchiveFormatError(
                f"entry {record.name!r} has a data descriptor but no central directory record",
                path=str(self.path),
            )
        return central.data_size, central.crc32

    def _skip_descriptor(self, record: LocalFileHeader, size: int) -> None:
        if not record.has_data_descriptor:
            return
        fp = self.fp
        zip64 = size > ZIP32_LIMIT or has_zip64_extra(record.extra)
        sizes_len = 16 if zip64 else 8
        head = fp.read(4)
        if head != DESCRIPTOR_SIGNATURE:
            fp.seek(-len(head), os.SEEK_CUR)
        fp.seek(4 + sizes_len, os.SEEK_CUR)  # crc32 + sizes

    def _read_entry(self, offset: int, record: LocalFileHeader) -> ArrayBuffer:
        fp = self.fp
        name = str(self.path)
        size, crc = self._entry_size_and_crc(offset, record)

        start = fp.tell()
        header = read_npy_header(fp, path=name)
        buffer = read_npy_payload(fp, header, path=name)
        consumed = fp.tell() - start
        if consumed != size:
            raise ArchiveFormatError(
                f"entry {record.name!r} size does not match its NPY content",
                path=name, expected=size, actual=consumed,
            )

        if self.config.verify_crc:
            fp.seek(start)
            actual = zlib.crc32(fp.read(header.header_size))
            actual = zlib.crc32(buffer.data, actual)
            fp.seek(start + consumed)
            if actual != crc:
                raise ChecksumMismatch(
                    f"CRC32 mismatch in entry {record.name!r}",
                    path=name, expected=f"{crc:08x}", actual=f"{actual:08x}",
                )

        self._skip_descriptor(record, size)
        return buffer

    def _skip_entry(self, offset: int, record: LocalFileHeader) -> None:
        size, _ = self._entry_size_and_crc(offset, record)
        self.fp.seek(size, os.SEEK_CUR)
        self._skip_descriptor(record, size)

    # ---- public ----

    def load_all(self) -> dict[str, ArrayBuffer]:
        """Load every entry into a name -> ArrayBuffer dict.

        Raises:
            DuplicateEntry: if a name repeats and duplicate_policy is 'reject'.
        """
        arrays: dict[str, ArrayBuffer] = {}
        for offset, record in self._iter_local_headers():
            if not record.name.endswith(NPY_SUFFIX):
                raise ArchiveFormatError(
                    f"entry {record.name!r} is not an .npy file", path=str(self.path),
                )
            name = strip_suffix(record.name)
            if name in arrays:
                if self.config.duplicate_policy == "reject":
                    raise DuplicateEntry(
                        f"entry {name!r} occurs more than once", path=str(self.path),
                    )
                warnings.warn(f"{self.path}: duplicate entry {name!r}; keeping the last one")
            arrays[name] = self._read_entry(offset, record)
        logger.debug("loaded %d entries from %s", len(arrays), self.path)
        return arrays

    def load(self, name: str) -> ArrayBuffer:
        """Load the first entry called ``name``.

        Raises:
            EntryNotFound: if no entry has that name.
        """
        target = name + NPY_SUFFIX
        for offset, record in self._iter_local_headers():
            if record.name == target:
                return self._read_entry(offset, record)
            self._skip_entry(offset, record)
        raise EntryNotFound(f"entry {name!r} not found", path=str(self.path))


def npz_load(path: PathLike, name: Optional[str] = None,
             config: Optional[CodecConfig] = None, missing_ok: bool = False):
    """Load a whole archive, or one entry of it.

    Args:
        path: .npz file to read.
        name: Entry to load (without '.npy'). Loads everything when None.
        config: Codec options.
        missing_ok: Return None instead of raising when the file is absent.

    Returns:
        dict of name -> ArrayBuffer, or a single ArrayBuffer when ``name``
        is given.
    """
    path = Path(path)
    if missing_ok and not path.exists():
        return None
    with NpzReader(path, config) as reader:
        if name is None:
            return reader.load_all()
        return reader.load(name)


def npz_list(path: PathLike) -> list[NpzEntryInfo]:
    """List the entries of an archive from its central directory."""
    with NpzReader(path) as reader:
        return reader.entries()
