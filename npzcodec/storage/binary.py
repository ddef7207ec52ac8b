"""Little-endian byte packing for the NPY preamble and ZIP records."""

import struct

from ..errors import MalformedHeader

_U16 = struct.Struct("<H")
_U32 = struct.Struct("<I")
_U64 = struct.Struct("<Q")


class BinaryWriter:
    """Accumulate little-endian fields into one bytearray."""

    def __init__(self):
        self._buf = bytearray()

    def write_uint8(self, value: int) -> "BinaryWriter":
        self._buf.append(value & 0xFF)
        return self

    def write_uint16_le(self, value: int) -> "BinaryWriter":
        self._buf += _U16.pack(value)
        return self

    def write_uint32_le(self, value: int) -> "BinaryWriter":
        self._buf += _U32.pack(value)
        return self

    def write_uint64_le(self, value: int) -> "BinaryWriter":
        self._buf += _U64.pack(value)
        return self

    def write_raw_bytes(self, data) -> "BinaryWriter":
        self._buf += data
        return self

    def write_ascii(self, text: str) -> "BinaryWriter":
        self._buf += text.encode("ascii")
        return self

    def __len__(self) -> int:
        return len(self._buf)

    def getvalue(self) -> bytes:
        return bytes(self._buf)


class BinaryReader:
    """Read little-endian fields from a bytes object, tracking the offset."""

    def __init__(self, data, offset: int = 0):
        self._data = memoryview(data)
        self.offset = offset

    @property
    def remaining(self) -> int:
        return len(self._data) - self.offset

    def _take(self, n: int) -> memoryview:
        if n > self.remaining:
            raise MalformedHeader(
                f"unexpected end of data at offset {self.offset}",
                expected=n,
                actual=self.remaining,
            )
        chunk = self._data[self.offset:self.offset + n]
        self.offset += n
        return chunk

    def read_uint16_le(self) -> int:
        return _U16.unpack(self._take(2))[0]

    def read_uint32_le(self) -> int:
        return _U32.unpack(self._take(4))[0]

    def read_uint64_le(self) -> int:
        return _U64.unpack(self._take(8))[0]

    def read_raw_bytes(self, n: int) -> bytes:
        return bytes(self._take(n))

    def skip(self, n: int) -> None:
        self._take(n)
