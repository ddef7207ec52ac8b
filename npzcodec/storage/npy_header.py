"""NPY header: fixed preamble plus a textual dictionary.

Layout (format version 1.0):

    magic:     bytes[6] = b'\\x93NUMPY'
    major:     uint8 = 1
    minor:     uint8 = 0
    dict_len:  uint16 (little-endian)
    dict:      ASCII, e.g. "{'descr': '<f8', 'fortran_order': False, 'shape': (2, 3), }"
               padded with spaces and terminated by '\\n' so that
               preamble + dict is a multiple of 16 bytes

Version 2.0 and 3.0 headers have a uint32 dict_len (12-byte preamble); they
are read, and 2.0 is written only when the dictionary outgrows a uint16.
The element bytes follow the header directly.
"""

from dataclasses import dataclass
from typing import BinaryIO, Optional, Sequence

from ..buffer import num_elements
from ..dtypes import ElementKind, byte_order_marker, class_code_and_width, kind_from_code_and_width
from ..errors import DtypeMismatch, MalformedHeader, UnsupportedByteOrder
from .binary import BinaryReader, BinaryWriter

MAGIC = b"\x93NUMPY"
PREAMBLE_SIZE = 10
PREAMBLE_SIZE_V2 = 12
HEADER_ALIGNMENT = 16
MAX_V1_DICT_LEN = 0xFFFF

# Offset from the start of a label to its value, e.g. "fortran_order': " -> 16
_FORTRAN_VALUE_OFFSET = len("fortran_order': ")
_DESCR_VALUE_OFFSET = len("descr': '")


@dataclass
class NpyHeader:
    """Parsed NPY header."""
    major: int
    minor: int
    dict_len: int
    byte_order: str            # '<' or '|'
    class_code: str            # i, u, f, c, b
    word_size: int
    shape: tuple
    fortran_order: bool

    @property
    def preamble_size(self) -> int:
        return PREAMBLE_SIZE if self.major == 1 else PREAMBLE_SIZE_V2

    @property
    def header_size(self) -> int:
        """Bytes from the start of the file to the first element."""
        return self.preamble_size + self.dict_len

    @property
    def kind(self) -> ElementKind:
        return kind_from_code_and_width(self.class_code, self.word_size)

    @property
    def num_elements(self) -> int:
        return num_elements(self.shape)

    @property
    def payload_size(self) -> int:
        return self.num_elements * self.word_size


def _build_dict(kind: ElementKind, word_size: int, shape: Sequence[int],
                fortran_order: bool) -> str:
    code, width = class_code_and_width(kind)
    if int(word_size) != width:
        raise DtypeMismatch(
            f"word size does not match element kind {kind.value}",
            expected=width,
            actual=word_size,
        )
    if len(shape) == 0:
        raise MalformedHeader("shape must have at least one dimension")

    text = "{'descr': '"
    text += byte_order_marker(width)
    text += code
    text += str(width)
    text += "', 'fortran_order': "
    text += "True" if fortran_order else "False"
    text += ", 'shape': ("
    text += ", ".join(str(int(d)) for d in shape)
    if len(shape) == 1:
        text += ","
    text += "), }"
    return text


def _pad(text: str, preamble_size: int) -> str:
    remainder = HEADER_ALIGNMENT - (preamble_size + len(text)) % HEADER_ALIGNMENT
    text += " " * remainder
    return text[:-1] + "\n"


def encode_npy_header(
    kind: ElementKind,
    word_size: int,
    shape: Sequence[int],
    fortran_order: bool = False,
) -> bytes:
    """Build the complete header (preamble + padded dictionary).

    Args:
        kind: Element kind.
        word_size: Element width in bytes; must match the kind.
        shape: Array shape, at least one dimension.
        fortran_order: Value for the 'fortran_order' key. The write paths
            pass False except when re-saving a buffer read column-major.

    Returns:
        Header bytes whose length is a multiple of 16.
    """
    text = _build_dict(kind, word_size, shape, fortran_order)

    padded = _pad(text, PREAMBLE_SIZE)
    writer = BinaryWriter().write_raw_bytes(MAGIC)
    if len(padded) <= MAX_V1_DICT_LEN:
        writer.write_uint8(1).write_uint8(0).write_uint16_le(len(padded))
    else:
        padded = _pad(text, PREAMBLE_SIZE_V2)
        writer.write_uint8(2).write_uint8(0).write_uint32_le(len(padded))
    writer.write_ascii(padded)
    return writer.getvalue()


def _parse_preamble(data: bytes, path: Optional[str]) -> tuple[int, int, int, int]:
    """Return (major, minor, dict_len, preamble_size) from the leading bytes."""
    if len(data) < PREAMBLE_SIZE:
        raise MalformedHeader(
            "file too short for an NPY preamble", path=path,
            expected=PREAMBLE_SIZE, actual=len(data),
        )
    if data[:6] != MAGIC:
        raise MalformedHeader(f"bad NPY magic {bytes(data[:6])!r}", path=path)

    reader = BinaryReader(data, offset=6)
    major = data[6]
    minor = data[7]
    reader.skip(2)
    if major == 1:
        return major, minor, reader.read_uint16_le(), PREAMBLE_SIZE
    if major in (2, 3):
        if len(data) < PREAMBLE_SIZE_V2:
            raise MalformedHeader(
                "file too short for an NPY preamble", path=path,
                expected=PREAMBLE_SIZE_V2, actual=len(data),
            )
        return major, minor, reader.read_uint32_le(), PREAMBLE_SIZE_V2
    raise MalformedHeader(f"unsupported NPY format version {major}.{minor}", path=path)


def _parse_dict(text: str, path: Optional[str]) -> tuple[str, str, int, tuple, bool]:
    """Return (byte_order, class_code, word_size, shape, fortran_order)."""
    if not text.endswith("\n"):
        raise MalformedHeader("header dictionary is not terminated by a newline", path=path)

    # fortran_order
    loc = text.find("fortran_order")
    if loc < 0:
        raise MalformedHeader("header has no 'fortran_order' key", path=path)
    value = text[loc + _FORTRAN_VALUE_OFFSET:]
    if value.startswith("True"):
        fortran_order = True
    elif value.startswith("False"):
        fortran_order = False
    else:
        raise MalformedHeader(
            f"bad 'fortran_order' value {value[:5]!r}", path=path,
        )

    # shape
    loc = text.find("shape")
    start = text.find("(", loc) if loc >= 0 else -1
    end = text.find(")", start) if start >= 0 else -1
    if start < 0 or end < 0:
        raise MalformedHeader("header has no parenthesised 'shape'", path=path)
    dims = text[start + 1:end].split(",")
    if dims[-1].strip() == "":
        dims = dims[:-1]
    if not dims:
        raise MalformedHeader("zero-dimensional arrays are not supported", path=path)
    try:
        shape = tuple(int(d) for d in dims)
    except ValueError:
        raise MalformedHeader(f"bad shape {text[start:end + 1]!r}", path=path) from None

    # descr
    loc = text.find("descr")
    if loc < 0 or text[loc:loc + _DESCR_VALUE_OFFSET] != "descr': '":
        raise MalformedHeader("header has no 'descr' key", path=path)
    loc += _DESCR_VALUE_OFFSET
    byte_order = text[loc:loc + 1]
    if byte_order == ">":
        raise UnsupportedByteOrder(
            "big-endian arrays are not supported", path=path,
            expected="<", actual=">",
        )
    if byte_order not in ("<", "|"):
        raise MalformedHeader(f"bad byte order marker {byte_order!r}", path=path)
    class_code = text[loc + 1:loc + 2]
    end = text.find("'", loc + 2)
    width = text[loc + 2:end] if end >= 0 else ""
    if not class_code or not width.isdigit():
        raise MalformedHeader(f"bad dtype descriptor {text[loc:end]!r}", path=path)

    return byte_order, class_code, int(width), shape, fortran_order


def decode_npy_header(data: bytes, path: Optional[str] = None) -> NpyHeader:
    """Parse a header from bytes that start at the NPY magic.

    Raises:
        MalformedHeader: short data, bad magic, missing newline or delimiter.
        UnsupportedByteOrder: big-endian descriptor.
    """
    major, minor, dict_len, preamble_size = _parse_preamble(data, path)
    raw = data[preamble_size:preamble_size + dict_len]
    if len(raw) != dict_len:
        raise MalformedHeader(
            "header dictionary is truncated", path=path,
            expected=dict_len, actual=len(raw),
        )
    return _make_header(major, minor, dict_len, raw, path)


def read_npy_header(fp: BinaryIO, path: Optional[str] = None) -> NpyHeader:
    """Read a header from a file positioned at the NPY magic.

    Leaves the file positioned at the first element byte.
    """
    preamble = fp.read(PREAMBLE_SIZE)
    if len(preamble) == PREAMBLE_SIZE and preamble[:6] == MAGIC and preamble[6] in (2, 3):
        preamble += fp.read(PREAMBLE_SIZE_V2 - PREAMBLE_SIZE)
    major, minor, dict_len, _ = _parse_preamble(preamble, path)
    raw = fp.read(dict_len)
    if len(raw) != dict_len:
        raise MalformedHeader(
            "header dictionary is truncated", path=path,
            expected=dict_len, actual=len(raw),
        )
    return _make_header(major, minor, dict_len, raw, path)


def _make_header(major: int, minor: int, dict_len: int, raw: bytes,
                 path: Optional[str]) -> NpyHeader:
    try:
        text = bytes(raw).decode("utf-8" if major >= 3 else "latin1")
    except UnicodeDecodeError as exc:
        raise MalformedHeader(f"header dictionary is not valid UTF-8: {exc.reason}", path=path) from None
    byte_order, class_code, word_size, shape, fortran_order = _parse_dict(text, path)
    return NpyHeader(
        major=major,
        minor=minor,
        dict_len=dict_len,
        byte_order=byte_order,
        class_code=class_code,
        word_size=word_size,
        shape=shape,
        fortran_order=fortran_order,
    )
