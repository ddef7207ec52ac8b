"""ZIP container records used by .npz archives.

Only single-disk archives of stored (uncompressed) entries are produced.

LOCAL FILE HEADER (30 bytes + name + extra):
    signature: bytes[4] = b'PK\\x03\\x04'
    version_needed: uint16 = 20
    flags: uint16                  # bit 3: data descriptor, bit 11: UTF-8 name
    compression: uint16 = 0        # stored
    mod_time: uint16               # MS-DOS time
    mod_date: uint16               # MS-DOS date
    crc32: uint32
    compressed_size: uint32
    uncompressed_size: uint32
    name_len: uint16
    extra_len: uint16

CENTRAL DIRECTORY HEADER (46 bytes + name + extra + comment):
    signature: bytes[4] = b'PK\\x01\\x02'
    version_made_by: uint16
    bytes 6..32 mirror bytes 4..30 of the local header
    comment_len, disk_start, internal_attr: uint16
    external_attr, local_header_offset: uint32

END OF CENTRAL DIRECTORY (22 bytes):
    signature: bytes[4] = b'PK\\x05\\x06'
    disk_no, cd_disk, entries_on_disk, total_entries: uint16
    cd_size, cd_offset: uint32
    comment_len: uint16
"""

import struct
import time
from dataclasses import dataclass, field
from typing import BinaryIO, Optional

from ..errors import ArchiveFormatError
from .binary import BinaryReader, BinaryWriter

LOCAL_SIGNATURE = b"PK\x03\x04"
CENTRAL_SIGNATURE = b"PK\x01\x02"
EOCD_SIGNATURE = b"PK\x05\x06"

LOCAL_FORMAT = "<4sHHHHHIIIHH"        # 30 bytes
CENTRAL_FORMAT = "<4sHHHHHHIIIHHHHHII"  # 46 bytes
EOCD_FORMAT = "<4sHHHHIIH"            # 22 bytes
LOCAL_SIZE = struct.calcsize(LOCAL_FORMAT)
CENTRAL_SIZE = struct.calcsize(CENTRAL_FORMAT)
EOCD_SIZE = struct.calcsize(EOCD_FORMAT)

VERSION_NEEDED = 20
VERSION_MADE_BY = 20
COMPRESSION_STORED = 0

FLAG_DATA_DESCRIPTOR = 0x0008
FLAG_UTF8 = 0x0800

ZIP64_EXTRA_TAG = 0x0001
ZIP32_LIMIT = 0xFFFFFFFF

DOS_EPOCH = (0, (1 << 5) | 1)  # 00:00:00, 1980-01-01


def dos_datetime(timestamp: Optional[float] = None) -> tuple[int, int]:
    """Return (mod_time, mod_date) in MS-DOS format for a POSIX timestamp."""
    t = time.localtime(timestamp)
    year = max(t.tm_year, 1980)
    mod_date = ((year - 1980) << 9) | (t.tm_mon << 5) | t.tm_mday
    mod_time = (t.tm_hour << 11) | (t.tm_min << 5) | (t.tm_sec // 2)
    return mod_time, mod_date


def decode_name(raw: bytes, flags: int) -> str:
    return raw.decode("utf-8" if flags & FLAG_UTF8 else "cp437")


def encode_name(name: str) -> tuple[bytes, int]:
    """Return (name bytes, extra flag bits)."""
    try:
        return name.encode("ascii"), 0
    except UnicodeEncodeError:
        return name.encode("utf-8"), FLAG_UTF8


def parse_zip64_extra(extra: bytes, usize: int, csize: int, offset: int = 0) -> tuple[int, int, int]:
    """Replace 0xFFFFFFFF placeholders with values from a ZIP64 extra field.

    The ZIP64 block stores, in order, only the fields whose 32-bit slot is
    saturated: uncompressed size, compressed size, local header offset.
    """
    reader = BinaryReader(extra)
    while reader.remaining >= 4:
        tag = reader.read_uint16_le()
        size = reader.read_uint16_le()
        block = BinaryReader(reader.read_raw_bytes(size))
        if tag != ZIP64_EXTRA_TAG:
            continue
        if usize == ZIP32_LIMIT:
            usize = block.read_uint64_le()
        if csize == ZIP32_LIMIT:
            csize = block.read_uint64_le()
        if offset == ZIP32_LIMIT:
            offset = block.read_uint64_le()
        break
    return usize, csize, offset


def has_zip64_extra(extra: bytes) -> bool:
    reader = BinaryReader(extra)
    while reader.remaining >= 4:
        tag = reader.read_uint16_le()
        size = reader.read_uint16_le()
        if tag == ZIP64_EXTRA_TAG:
            return True
        reader.skip(min(size, reader.remaining))
    return False


def _read_exact(fp: BinaryIO, n: int, what: str, path: Optional[str] = None) -> bytes:
    data = fp.read(n)
    if len(data) != n:
        raise ArchiveFormatError(f"truncated {what}", path=path, expected=n, actual=len(data))
    return data


@dataclass
class LocalFileHeader:
    """Local file header of one archive entry."""
    name: str
    crc32: int
    compressed_size: int
    uncompressed_size: int
    mod_time: int = DOS_EPOCH[0]
    mod_date: int = DOS_EPOCH[1]
    flags: int = 0
    compression: int = COMPRESSION_STORED
    version_needed: int = VERSION_NEEDED
    extra: bytes = b""

    @property
    def has_data_descriptor(self) -> bool:
        return bool(self.flags & FLAG_DATA_DESCRIPTOR)

    @property
    def data_size(self) -> int:
        """Stored byte count, resolving ZIP64 placeholders."""
        _, csize, _ = parse_zip64_extra(self.extra, self.uncompressed_size, self.compressed_size)
        return csize

    def to_bytes(self) -> bytes:
        raw_name, name_flags = encode_name(self.name)
        return struct.pack(
            LOCAL_FORMAT,
            LOCAL_SIGNATURE,
            self.version_needed,
            self.flags | name_flags,
            self.compression,
            self.mod_time,
            self.mod_date,
            self.crc32,
            self.compressed_size,
            self.uncompressed_size,
            len(raw_name),
            len(self.extra),
        ) + raw_name + self.extra

    @classmethod
    def read(cls, fp: BinaryIO, fixed: Optional[bytes] = None,
             path: Optional[str] = None) -> "LocalFileHeader":
        """Parse a local header from ``fp``.

        ``fixed`` may hold the 30 fixed bytes when the caller already read
        them to inspect the signature.
        """
        if fixed is None:
            fixed = _read_exact(fp, LOCAL_SIZE, "local file header", path)
        fields = struct.unpack(LOCAL_FORMAT, fixed)
        if fields[0] != LOCAL_SIGNATURE:
            raise ArchiveFormatError(f"bad local header signature {fields[0]!r}", path=path)
        name_len, extra_len = fields[9], fields[10]
        raw_name = _read_exact(fp, name_len, "entry name", path)
        extra = _read_exact(fp, extra_len, "extra field", path)
        return cls(
            name=decode_name(raw_name, fields[2]),
            version_needed=fields[1],
            flags=fields[2],
            compression=fields[3],
            mod_time=fields[4],
            mod_date=fields[5],
            crc32=fields[6],
            compressed_size=fields[7],
            uncompressed_size=fields[8],
            extra=extra,
        )


@dataclass
class CentralDirectoryHeader:
    """Central directory record of one archive entry."""
    name: str
    crc32: int
    compressed_size: int
    uncompressed_size: int
    local_header_offset: int
    mod_time: int = DOS_EPOCH[0]
    mod_date: int = DOS_EPOCH[1]
    flags: int = 0
    compression: int = COMPRESSION_STORED
    version_needed: int = VERSION_NEEDED
    version_made_by: int = VERSION_MADE_BY
    disk_start: int = 0
    internal_attr: int = 0
    external_attr: int = 0
    extra: bytes = b""
    comment: bytes = b""
    raw_name: Optional[bytes] = field(default=None, compare=False, repr=False)  # as stored

    @property
    def data_size(self) -> int:
        _, csize, _ = parse_zip64_extra(self.extra, self.uncompressed_size, self.compressed_size)
        return csize

    @property
    def resolved_offset(self) -> int:
        _, _, offset = parse_zip64_extra(
            self.extra, self.uncompressed_size, self.compressed_size, self.local_header_offset,
        )
        return offset

    @classmethod
    def from_local(cls, local_bytes: bytes, offset: int) -> "CentralDirectoryHeader":
        """Build the record by copying bytes 4..30 of an encoded local header."""
        writer = BinaryWriter()
        writer.write_raw_bytes(CENTRAL_SIGNATURE)
        writer.write_uint16_le(VERSION_MADE_BY)
        writer.write_raw_bytes(local_bytes[4:LOCAL_SIZE])
        writer.write_uint16_le(0)       # comment length
        writer.write_uint16_le(0)       # disk number start
        writer.write_uint16_le(0)       # internal attributes
        writer.write_uint32_le(0)       # external attributes
        writer.write_uint32_le(offset)  # local header offset
        writer.write_raw_bytes(local_bytes[LOCAL_SIZE:])  # name + extra
        raw = writer.getvalue()
        return cls.parse(raw)[0]

    def to_bytes(self) -> bytes:
        if self.raw_name is not None:
            raw_name, name_flags = self.raw_name, 0
        else:
            raw_name, name_flags = encode_name(self.name)
        return struct.pack(
            CENTRAL_FORMAT,
            CENTRAL_SIGNATURE,
            self.version_made_by,
            self.version_needed,
            self.flags | name_flags,
            self.compression,
            self.mod_time,
            self.mod_date,
            self.crc32,
            self.compressed_size,
            self.uncompressed_size,
            len(raw_name),
            len(self.extra),
            len(self.comment),
            self.disk_start,
            self.internal_attr,
            self.external_attr,
            self.local_header_offset,
        ) + raw_name + self.extra + self.comment

    @classmethod
    def parse(cls, data: bytes, offset: int = 0,
              path: Optional[str] = None) -> tuple["CentralDirectoryHeader", int]:
        """Parse one record at ``offset``; returns (record, next offset)."""
        fixed = data[offset:offset + CENTRAL_SIZE]
        if len(fixed) != CENTRAL_SIZE:
            raise ArchiveFormatError(
                "truncated central directory", path=path, expected=CENTRAL_SIZE, actual=len(fixed),
            )
        fields = struct.unpack(CENTRAL_FORMAT, fixed)
        if fields[0] != CENTRAL_SIGNATURE:
            raise ArchiveFormatError(f"bad central directory signature {fields[0]!r}", path=path)
        name_len, extra_len, comment_len = fields[10], fields[11], fields[12]
        pos = offset + CENTRAL_SIZE
        end = pos + name_len + extra_len + comment_len
        if end > len(data):
            raise ArchiveFormatError("truncated central directory record", path=path)
        raw_name = bytes(data[pos:pos + name_len])
        extra = bytes(data[pos + name_len:pos + name_len + extra_len])
        comment = bytes(data[pos + name_len + extra_len:end])
        record = cls(
            name=decode_name(raw_name, fields[3]),
            raw_name=raw_name,
            version_made_by=fields[1],
            version_needed=fields[2],
            flags=fields[3],
            compression=fields[4],
            mod_time=fields[5],
            mod_date=fields[6],
            crc32=fields[7],
            compressed_size=fields[8],
            uncompressed_size=fields[9],
            disk_start=fields[13],
            internal_attr=fields[14],
            external_attr=fields[15],
            local_header_offset=fields[16],
            extra=extra,
            comment=comment,
        )
        return record, end


@dataclass
class EndOfCentralDirectory:
    """Footer locating the central directory."""
    total_entries: int
    cd_size: int
    cd_offset: int
    entries_on_disk: Optional[int] = None
    disk_no: int = 0
    cd_disk: int = 0
    comment_len: int = 0

    def __post_init__(self):
        if self.entries_on_disk is None:
            self.entries_on_disk = self.total_entries

    def to_bytes(self) -> bytes:
        return struct.pack(
            EOCD_FORMAT,
            EOCD_SIGNATURE,
            self.disk_no,
            self.cd_disk,
            self.entries_on_disk,
            self.total_entries,
            self.cd_size,
            self.cd_offset,
            self.comment_len,
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "EndOfCentralDirectory":
        if len(data) != EOCD_SIZE:
            raise ArchiveFormatError(
                "file too short for a ZIP footer", expected=EOCD_SIZE, actual=len(data),
            )
        fields = struct.unpack(EOCD_FORMAT, data)
        if fields[0] != EOCD_SIGNATURE:
            raise ArchiveFormatError(
                "no end-of-central-directory record in the last 22 bytes "
                "(archive comments are not supported)"
            )
        footer = cls(
            disk_no=fields[1],
            cd_disk=fields[2],
            entries_on_disk=fields[3],
            total_entries=fields[4],
            cd_size=fields[5],
            cd_offset=fields[6],
            comment_len=fields[7],
        )
        if footer.disk_no != 0 or footer.cd_disk != 0 or footer.entries_on_disk != footer.total_entries:
            raise ArchiveFormatError("multi-disk archives are not supported")
        return footer


def read_footer(fp: BinaryIO, path: Optional[str] = None) -> EndOfCentralDirectory:
    """Read the 22-byte footer at the end of ``fp``."""
    fp.seek(0, 2)
    size = fp.tell()
    if size < EOCD_SIZE:
        raise ArchiveFormatError(
            "file too short for a ZIP footer", path=path, expected=EOCD_SIZE, actual=size,
        )
    fp.seek(size - EOCD_SIZE)
    try:
        return EndOfCentralDirectory.from_bytes(fp.read(EOCD_SIZE))
    except ArchiveFormatError as exc:
        raise ArchiveFormatError(exc.args[0], path=path) from exc


def read_central_directory(fp: BinaryIO, footer: EndOfCentralDirectory,
                           path: Optional[str] = None) -> list[CentralDirectoryHeader]:
    """Read and parse every central directory record the footer points at."""
    fp.seek(footer.cd_offset)
    data = _read_exact(fp, footer.cd_size, "central directory", path)
    records = []
    offset = 0
    for _ in range(footer.total_entries):
        record, offset = CentralDirectoryHeader.parse(data, offset, path)
        records.append(record)
    return records
