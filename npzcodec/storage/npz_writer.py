"""Write .npz archives, by direct ZIP record construction or by streaming.

DIRECT LAYOUT after each save:

    [existing local records + payloads]
    local header (new entry)
    NPY header + element bytes
    central directory (all previous records regenerated + new record)
    end-of-central-directory footer

Appending reads the 22-byte footer, parses the old central directory, then
overwrites the archive from the old directory offset onward. Everything is
validated before the first byte is written.
"""

import logging
import os
import time
import zlib
from pathlib import Path
from typing import Optional, Sequence, Union

from ..buffer import ArrayBuffer, num_elements
from ..config import CodecConfig, SaveMode, resolve_config
from ..dtypes import ElementKind
from ..errors import ArchiveFormatError, ArchiveOpenError, DuplicateEntry, ShapeMismatch
from .npy_file import write_all
from .npy_header import encode_npy_header
from .npz_reader import NPY_SUFFIX, NpzEntryInfo
from .npz_stream import NpyEntrySource, StreamingNpzWriter
from .zip_records import (
    DOS_EPOCH,
    ZIP32_LIMIT,
    CentralDirectoryHeader,
    EndOfCentralDirectory,
    LocalFileHeader,
    dos_datetime,
    read_central_directory,
    read_footer,
)

logger = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]

MAX_ENTRIES = 0xFFFF


class DirectNpzWriter:
    """Assemble ZIP records by hand and write them to the archive file."""

    def __init__(self, path: PathLike, config: Optional[CodecConfig] = None):
        self.path = Path(path)
        self.config = resolve_config(config)

    def _open(self, appending: bool):
        try:
            return open(self.path, "r+b" if appending else "wb")
        except OSError as exc:
            raise ArchiveOpenError(f"cannot open archive: {exc}", path=str(self.path)) from exc

    def save(self, name: str, npy_header: bytes, payload, mode="w") -> NpzEntryInfo:
        """Write one entry made of an encoded NPY header plus element bytes.

        Raises:
            DuplicateEntry: when appending a name the archive already holds.
            ArchiveFormatError: if the existing archive cannot be extended
                (bad footer, or 32-bit offsets would overflow).
        """
        mode = SaveMode.coerce(mode)
        filename = name + NPY_SUFFIX
        payload = memoryview(payload).cast("B")
        path = str(self.path)

        nbytes = len(npy_header) + payload.nbytes
        crc = zlib.crc32(npy_header)
        crc = zlib.crc32(payload, crc)
        if self.config.use_mtime:
            mod_time, mod_date = dos_datetime(time.time())
        else:
            mod_time, mod_date = DOS_EPOCH

        local = LocalFileHeader(
            name=filename,
            crc32=crc,
            compressed_size=nbytes,
            uncompressed_size=nbytes,
            mod_time=mod_time,
            mod_date=mod_date,
        ).to_bytes()

        appending = mode is SaveMode.APPEND and self.path.exists()
        with self._open(appending) as fp:
            records: list[CentralDirectoryHeader] = []
            offset = 0
            if appending:
                footer = read_footer(fp, path)
                if footer.cd_offset == ZIP32_LIMIT or footer.total_entries == MAX_ENTRIES:
                    raise ArchiveFormatError("ZIP64 archives cannot be extended in place", path=path)
                records = read_central_directory(fp, footer, path)
                if any(r.name == filename for r in records):
                    raise DuplicateEntry(
                        f"entry {name!r} already exists; use the streaming strategy to replace it",
                        path=path,
                    )
                offset = footer.cd_offset

            cd_offset = offset + len(local) + nbytes
            if nbytes > ZIP32_LIMIT or cd_offset > ZIP32_LIMIT:
                raise ArchiveFormatError(
                    "archive would exceed 4 GiB; use the streaming strategy",
                    path=path, expected=ZIP32_LIMIT, actual=cd_offset,
                )
            if len(records) + 1 > MAX_ENTRIES:
                raise ArchiveFormatError("too many entries for a ZIP32 archive", path=path)

            records.append(CentralDirectoryHeader.from_local(local, offset))
            directory = b"".join(r.to_bytes() for r in records)
            footer = EndOfCentralDirectory(
                total_entries=len(records),
                cd_size=len(directory),
                cd_offset=cd_offset,
            )

            fp.seek(offset)
            write_all(fp, local, path)
            write_all(fp, npy_header, path)
            write_all(fp, payload, path)
            write_all(fp, directory, path)
            write_all(fp, footer.to_bytes(), path)
            fp.truncate()

        logger.debug("wrote %s into %s at offset %d (%d bytes)", filename, self.path, offset, nbytes)
        return NpzEntryInfo(
            name=name,
            filename=filename,
            offset=offset,
            size=nbytes,
            crc32=crc,
            compression=0,
        )


def npz_save(path: PathLike, name: str, buffer: ArrayBuffer, mode="w",
             config: Optional[CodecConfig] = None) -> NpzEntryInfo:
    """Save an ArrayBuffer as entry ``name`` of an .npz archive."""
    return npz_save_data(
        path,
        name,
        buffer.data,
        buffer.kind,
        buffer.word_size,
        buffer.shape,
        mode=mode,
        config=config,
        fortran_order=buffer.fortran_order,
    )


def npz_save_data(
    path: PathLike,
    name: str,
    data,
    kind: ElementKind,
    word_size: int,
    shape: Sequence[int],
    mode="w",
    config: Optional[CodecConfig] = None,
    fortran_order: bool = False,
) -> NpzEntryInfo:
    """Write raw element bytes as entry ``name`` of an .npz archive.

    Args:
        path: Archive path.
        name: Entry name, stored as '<name>.npy'.
        data: Bytes-like object of prod(shape) * word_size bytes.
        kind: Element kind.
        word_size: Element width in bytes.
        shape: Array shape.
        mode: 'w' replaces the archive, 'a' adds to it (creating it if
            missing).
        config: Codec options; write_strategy picks the writer.
        fortran_order: Column-major flag for the entry header.

    Returns:
        Directory information for the new entry.
    """
    config = resolve_config(config)
    shape = tuple(int(d) for d in shape)
    payload = memoryview(data).cast("B")
    expected = num_elements(shape) * int(word_size)
    if payload.nbytes != expected:
        raise ShapeMismatch(
            f"data length does not match shape {shape} with {word_size}-byte elements",
            path=str(path), expected=expected, actual=payload.nbytes,
        )

    header = encode_npy_header(kind, word_size, shape, fortran_order=fortran_order)
    if config.write_strategy == "streaming":
        mtime = time.time() if config.use_mtime else None
        source = NpyEntrySource(header, payload, mtime=mtime)
        return StreamingNpzWriter(path, config).save(name, source, mode=mode)
    return DirectNpzWriter(path, config).save(name, header, payload, mode=mode)
