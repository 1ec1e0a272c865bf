"""Binary reading and writing utilities for little-endian RES data."""

import struct
from io import BytesIO
from typing import BinaryIO, Union


def align(value: int, alignment: int) -> int:
    """Round value up to the next multiple of alignment."""
    remainder = value % alignment
    if remainder:
        return value + alignment - remainder
    return value


class BinaryReader:
    """Helper for reading little-endian binary data (PSP format)."""

    def __init__(self, data: Union[bytes, bytearray, BinaryIO]):
        if isinstance(data, (bytes, bytearray)):
            self._stream = BytesIO(data)
        else:
            self._stream = data

    def tell(self) -> int:
        return self._stream.tell()

    def seek(self, offset: int, whence: int = 0) -> int:
        return self._stream.seek(offset, whence)

    def read(self, size: int = -1) -> bytes:
        return self._stream.read(size)

    def read_bytes(self, size: int) -> bytes:
        data = self._stream.read(size)
        if len(data) < size:
            raise EOFError(f"Expected {size} bytes, got {len(data)}")
        return data

    def read_u8(self) -> int:
        return struct.unpack("<B", self.read_bytes(1))[0]

    def read_u16(self) -> int:
        return struct.unpack("<H", self.read_bytes(2))[0]

    def read_u32(self) -> int:
        return struct.unpack("<I", self.read_bytes(4))[0]

    def read_cbytes(self) -> bytes:
        """Read a null-terminated byte string (terminator consumed, not returned).

        Reaching the end of the stream before a terminator is an error.
        """
        chars = []
        while True:
            byte = self._stream.read(1)
            if not byte:
                raise EOFError("Unterminated string at end of stream")
            if byte == b"\x00":
                break
            chars.append(byte)
        return b"".join(chars)

    def skip(self, count: int) -> None:
        """Skip forward by count bytes."""
        self._stream.seek(count, 1)

    def remaining(self) -> int:
        """Return number of bytes remaining in stream."""
        current = self.tell()
        self._stream.seek(0, 2)  # Seek to end
        end = self.tell()
        self._stream.seek(current)
        return end - current


class BinaryWriter:
    """Little-endian writer over a growable bytearray.

    Writing past the current end zero-fills the gap, so callers can seek
    to a fixed offset and write without sizing the buffer first.
    """

    def __init__(self, data: Union[bytes, bytearray, None] = None):
        self._buffer = bytearray(data or b"")
        self._pos = 0

    def getvalue(self) -> bytes:
        return bytes(self._buffer)

    def tell(self) -> int:
        return self._pos

    def seek(self, offset: int) -> int:
        self._pos = offset
        return self._pos

    def seek_end(self) -> int:
        self._pos = len(self._buffer)
        return self._pos

    def write(self, data: bytes) -> None:
        end = self._pos + len(data)
        if self._pos > len(self._buffer):
            self._buffer.extend(bytes(self._pos - len(self._buffer)))
        self._buffer[self._pos:end] = data
        self._pos = end

    def write_u8(self, value: int) -> None:
        self.write(struct.pack("<B", value))

    def write_u32(self, value: int) -> None:
        self.write(struct.pack("<I", value))

    def write_zeros(self, count: int) -> None:
        self.write(bytes(count))

    def align(self, alignment: int) -> None:
        """Pad with zeros up to the given boundary."""
        target = align(self._pos, alignment)
        if target > self._pos:
            self.write_zeros(target - self._pos)

    def __len__(self) -> int:
        return len(self._buffer)

