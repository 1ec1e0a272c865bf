"""blz2 chunked DEFLATE framing.

Layout of a compressed payload:
- Magic: ASCII "blz2" (0x327A6C62 read as little-endian u32)
- One or more sub-chunks: ``[len: i16 LE][len bytes of raw DEFLATE]``

The input is split into a head chunk of ``len(data) % 0x10000`` bytes
followed by full 64 KiB body blocks. On disk the last body block comes
first, then the head chunk, then the remaining body blocks in order:

    magic | last body | head | body[0] | ... | body[n-2]
"""

import logging
import struct
import zlib
from typing import List, Tuple

from ..errors import IncompleteBlock
from ..utils.binary import BinaryReader

logger = logging.getLogger(__name__)

BLZ2_MAGIC = 0x327A6C62
BLZ2_MAGIC_BYTES = struct.pack("<I", BLZ2_MAGIC)
BLOCK_SIZE = 0x10000

# magic + one length prefix
MIN_FRAME_SIZE = 6


def deflate_raw(data: bytes) -> bytes:
    """Compress with raw DEFLATE (no zlib/gzip wrapper) at maximum effort."""
    compressor = zlib.compressobj(9, zlib.DEFLATED, -15, 9)
    return compressor.compress(data) + compressor.flush()


def inflate_raw(data: bytes) -> bytes:
    """Decompress a raw DEFLATE stream."""
    try:
        return zlib.decompress(data, -15)
    except zlib.error as e:
        raise IncompleteBlock(f"Corrupt DEFLATE sub-chunk: {e}") from e


def split_chunks(data: bytes, block_size: int = BLOCK_SIZE) -> List[bytes]:
    """Split data into the head chunk followed by full body blocks."""
    head_size = len(data) % block_size
    chunks = [data[:head_size]]
    for start in range(head_size, len(data), block_size):
        chunks.append(data[start : start + block_size])
    return chunks


def order_for_disk(chunks: List[bytes]) -> List[bytes]:
    """Move the last body block in front of the head chunk."""
    if len(chunks) > 1:
        return [chunks[-1]] + chunks[:-1]
    return list(chunks)


def restore_order(chunks: List[bytes]) -> List[bytes]:
    """Undo ``order_for_disk``: the first stored chunk belongs at the end."""
    if len(chunks) > 1:
        return chunks[1:] + [chunks[0]]
    return list(chunks)


def _length_prefix(length: int) -> bytes:
    # The prefix is a signed 16-bit field; longer sub-chunks wrap around.
    if length > 0x7FFF:
        logger.warning(
            "Compressed sub-chunk of %d bytes overflows the signed 16-bit length prefix",
            length,
        )
    return struct.pack("<H", length & 0xFFFF)


def compress(data: bytes) -> bytes:
    """Encode data with the blz2 framing.

    Every sub-chunk is compressed independently, so an empty input still
    produces a framed stream holding a single empty sub-chunk.
    """
    data = bytes(data)
    chunks = split_chunks(data)
    logger.debug(
        "blz2: %d bytes -> head %d bytes + %d body blocks",
        len(data), len(chunks[0]), len(chunks) - 1,
    )

    output = bytearray(BLZ2_MAGIC_BYTES)
    for chunk in order_for_disk(chunks):
        compressed = deflate_raw(chunk)
        output += _length_prefix(len(compressed))
        output += compressed
    return bytes(output)


def is_blz2(data: bytes) -> bool:
    """Check whether data starts with a blz2 frame."""
    return len(data) >= MIN_FRAME_SIZE and data[:4] == BLZ2_MAGIC_BYTES


def decompress(data: bytes) -> Tuple[bytes, bool]:
    """Decode a blz2 payload.

    Returns ``(data, was_compressed)``. Buffers without the magic are
    passed through unchanged with ``was_compressed=False``.

    Raises:
        IncompleteBlock: A length prefix claims more bytes than remain,
            or a sub-chunk fails to inflate.
    """
    data = bytes(data)
    if not is_blz2(data):
        return data, False

    reader = BinaryReader(data)
    reader.skip(4)

    blocks = []
    while reader.remaining() > 0:
        if reader.remaining() < 2:
            raise IncompleteBlock("Truncated sub-chunk length prefix")
        size = reader.read_u16()
        if size > reader.remaining():
            raise IncompleteBlock(
                f"Sub-chunk claims {size} bytes, only {reader.remaining()} remain"
            )
        blocks.append(inflate_raw(reader.read_bytes(size)))

    return b"".join(restore_order(blocks)), True
