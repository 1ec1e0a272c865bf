"""blz4 container, the alternate payload codec.

Layout:
- Magic: ASCII "blz4" (0x347A6C62 as little-endian u32)
- u32: unpacked size
- 8 bytes: zero padding
- 16 bytes: MD5 digest of the unpacked data
- Blocks: ``[len: u16 LE][len bytes of zlib stream]``. A length of 0 means
  the rest of the buffer is a single zlib stream.

Blocks use the same head/body split and last-block-first order as blz2.
The repacker only relies on the ``AlternateCodec`` contract.
"""

import hashlib
import logging
import struct
import zlib
from typing import Protocol

from ..errors import IncompleteBlock
from ..utils.binary import BinaryReader
from .blz2 import order_for_disk, restore_order, split_chunks

logger = logging.getLogger(__name__)

BLZ4_MAGIC = 0x347A6C62
BLZ4_MAGIC_BYTES = struct.pack("<I", BLZ4_MAGIC)
HEADER_SIZE = 32


class AlternateCodec(Protocol):
    """Contract for the opaque alternate codec."""

    def is_recognized(self, data: bytes) -> bool:
        ...

    def pack(self, data: bytes) -> bytes:
        ...

    def unpack(self, data: bytes) -> bytes:
        ...


class Blz4Codec:
    """blz4 pack/unpack."""

    def is_recognized(self, data: bytes) -> bool:
        return len(data) > HEADER_SIZE and data[:4] == BLZ4_MAGIC_BYTES

    def pack(self, data: bytes) -> bytes:
        data = bytes(data)
        blocks = [zlib.compress(chunk, 9) for chunk in order_for_disk(split_chunks(data))]

        output = bytearray(BLZ4_MAGIC_BYTES)
        output += struct.pack("<I", len(data))
        output += bytes(8)
        output += hashlib.md5(data).digest()
        for i, block in enumerate(blocks):
            if len(block) > 0xFFFF:
                if i != len(blocks) - 1:
                    raise ValueError(
                        f"blz4 block of {len(block)} bytes does not fit a length prefix"
                    )
                output += struct.pack("<H", 0)
            else:
                output += struct.pack("<H", len(block))
            output += block
        return bytes(output)

    def unpack(self, data: bytes) -> bytes:
        if not self.is_recognized(data):
            raise ValueError("Not a blz4 payload")

        reader = BinaryReader(data)
        reader.skip(4)
        unpack_size = reader.read_u32()
        reader.skip(8)
        digest = reader.read_bytes(16)

        blocks = []
        while reader.remaining() > 0:
            if reader.remaining() < 2:
                raise IncompleteBlock("Truncated blz4 block length")
            size = reader.read_u16()
            if size == 0:
                blocks.append(reader.read())
                break
            if size > reader.remaining():
                raise IncompleteBlock(
                    f"blz4 block claims {size} bytes, only {reader.remaining()} remain"
                )
            blocks.append(reader.read_bytes(size))

        try:
            result = b"".join(zlib.decompress(block) for block in restore_order(blocks))
        except zlib.error as e:
            raise IncompleteBlock(f"Corrupt blz4 block: {e}") from e

        if len(result) != unpack_size:
            logger.warning("blz4 size mismatch: header %d, unpacked %d", unpack_size, len(result))
        if hashlib.md5(result).digest() != digest:
            logger.warning("blz4 MD5 checksum mismatch, output may be corrupted")
        return result
