"""Streaming .npz writes through the standard-library zipfile backend.

The backend pulls bytes from an NpyEntrySource, a two-phase producer that
hands out the NPY header first and the element bytes after it. How much is
requested per call is up to the backend driver (stream_chunk_size here).

Usage:
    source = NpyEntrySource.from_buffer(buffer)
    StreamingNpzWriter("out.npz").save("arr", source, mode="a")

zipfile cannot delete members, so replacing an existing entry rebuilds the
archive without it in a temporary file next to the target.
"""

import copy
import logging
import os
import shutil
import tempfile
import time
import zipfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from ..buffer import ArrayBuffer
from ..config import CodecConfig, SaveMode, resolve_config
from ..errors import ArchiveOpenError, EntryReplaceError, PartialWrite
from .npy_header import encode_npy_header
from .npz_reader import NPY_SUFFIX, NpzEntryInfo

logger = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]

DOS_EPOCH_DATE_TIME = (1980, 1, 1, 0, 0, 0)


class Phase(Enum):
    HEADER = "header"
    PAYLOAD = "payload"


@dataclass
class EntryStat:
    """Metadata the backend asks for before pulling bytes."""
    size: int                          # NPY header + payload
    mtime: Optional[float]             # POSIX time, None for the DOS epoch
    compression: int = zipfile.ZIP_STORED
    encryption: Optional[str] = None

    @property
    def date_time(self) -> tuple:
        if self.mtime is None:
            return DOS_EPOCH_DATE_TIME
        t = time.localtime(self.mtime)
        return max(t[:6], DOS_EPOCH_DATE_TIME)


class NpyEntrySource:
    """Pull-based producer of one .npy file's bytes.

    Lifecycle: open() resets the cursor to the start of the header; each
    readinto() copies as much as fits from the active phase, moving on to
    the payload once the header is exhausted; close() ends the session.
    """

    def __init__(self, header: bytes, payload, mtime: Optional[float] = None):
        self._header = memoryview(header).cast("B")
        self._payload = memoryview(payload).cast("B")
        self._mtime = mtime
        self._phase: Optional[Phase] = None
        self._cursor = 0

    @classmethod
    def from_buffer(cls, buffer: ArrayBuffer, mtime: Optional[float] = None) -> "NpyEntrySource":
        header = encode_npy_header(
            buffer.kind, buffer.word_size, buffer.shape, fortran_order=buffer.fortran_order,
        )
        return cls(header, buffer.data, mtime=mtime)

    @property
    def phase(self) -> Optional[Phase]:
        return self._phase

    def open(self) -> None:
        self._phase = Phase.HEADER
        self._cursor = 0

    def readinto(self, buffer) -> int:
        """Copy up to len(buffer) bytes; returns the count, 0 at the end."""
        if self._phase is None:
            raise ValueError("entry source is not open")
        out = memoryview(buffer).cast("B")
        wanted = out.nbytes
        copied = 0
        while copied < wanted:
            source = self._header if self._phase is Phase.HEADER else self._payload
            chunk = source[self._cursor:self._cursor + wanted - copied]
            if not chunk:
                if self._phase is Phase.HEADER:
                    self._phase = Phase.PAYLOAD
                    self._cursor = 0
                    continue
                break
            out[copied:copied + len(chunk)] = chunk
            copied += len(chunk)
            self._cursor += len(chunk)
        return copied

    def read(self, max_len: int = -1) -> bytes:
        if max_len < 0:
            max_len = self.stat().size
        buf = bytearray(max_len)
        n = self.readinto(buf)
        return bytes(buf[:n])

    def stat(self) -> EntryStat:
        return EntryStat(size=self._header.nbytes + self._payload.nbytes, mtime=self._mtime)

    def close(self) -> None:
        self._phase = None

    def __enter__(self) -> "NpyEntrySource":
        self.open()
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class StreamingNpzWriter:
    """Add entries to an .npz archive by streaming them into zipfile."""

    def __init__(self, path: PathLike, config: Optional[CodecConfig] = None):
        self.path = Path(path)
        self.config = resolve_config(config)

    def save(self, name: str, source: NpyEntrySource, mode="w") -> NpzEntryInfo:
        """Write one entry.

        Args:
            name: Entry name without '.npy'.
            source: Producer of the entry bytes.
            mode: 'w' creates a new archive, 'a' adds to an existing one
                (replacing an entry of the same name).

        Returns:
            Directory information for the written entry.
        """
        mode = SaveMode.coerce(mode)
        filename = name + NPY_SUFFIX
        appending = mode is SaveMode.APPEND and self.path.exists()
        if appending:
            self.remove_entry(filename)

        stat = source.stat()
        info = zipfile.ZipInfo(filename, date_time=stat.date_time)
        info.compress_type = stat.compression
        info.file_size = stat.size

        chunk = bytearray(self.config.stream_chunk_size)
        with self._open_archive("a" if appending else "w") as archive:
            with source, archive.open(info, "w") as dest:
                while True:
                    n = source.readinto(chunk)
                    if n == 0:
                        break
                    written = dest.write(memoryview(chunk)[:n])
                    if written != n:
                        raise PartialWrite(
                            f"short write to entry {filename!r}",
                            path=str(self.path), expected=n, actual=written,
                        )

        logger.debug("streamed %s into %s (%d bytes)", filename, self.path, stat.size)
        return NpzEntryInfo(
            name=name,
            filename=filename,
            offset=info.header_offset,
            size=info.compress_size,
            crc32=info.CRC,
            compression=info.compress_type,
        )

    def _open_archive(self, zip_mode: str) -> zipfile.ZipFile:
        try:
            return zipfile.ZipFile(
                self.path, zip_mode, compression=zipfile.ZIP_STORED, allowZip64=True,
            )
        except (OSError, zipfile.BadZipFile) as exc:
            raise ArchiveOpenError(f"cannot open archive: {exc}", path=str(self.path)) from exc

    def remove_entry(self, filename: str) -> bool:
        """Delete ``filename`` from the archive if present.

        Returns:
            True if an entry was removed.

        Raises:
            EntryReplaceError: if the archive could not be rewritten.
        """
        with self._open_archive("r") as src:
            keep = [i for i in src.infolist() if i.filename != filename]
            if len(keep) == len(src.infolist()):
                return False

            fd, tmp_name = tempfile.mkstemp(
                dir=self.path.parent, prefix=self.path.name, suffix=".tmp",
            )
            replaced = False
            try:
                with os.fdopen(fd, "wb") as tmp, zipfile.ZipFile(
                    tmp, "w", compression=zipfile.ZIP_STORED, allowZip64=True,
                ) as dst:
                    for info in keep:
                        with src.open(info) as fin, dst.open(copy.copy(info), "w") as fout:
                            shutil.copyfileobj(fin, fout, self.config.stream_chunk_size)
                src.close()
                os.replace(tmp_name, self.path)
                replaced = True
            except (OSError, zipfile.BadZipFile) as exc:
                raise EntryReplaceError(
                    f"cannot remove existing entry {filename!r}: {exc}",
                    path=str(self.path),
                ) from exc
            finally:
                if not replaced:
                    os.unlink(tmp_name)

        logger.debug("removed %s from %s", filename, self.path)
        return True
