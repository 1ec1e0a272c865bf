"""RTBL table scanner.

RTBL files have no header. Fileset entries (same 32-byte layout as in a
RES archive) are found by walking the file in 16-byte steps:

- A 16-byte window of zeros is skipped.
- Otherwise a 32-byte entry is read; it is accepted only if its name
  offset is 0x20, meaning its names follow it inline (pointer array,
  then strings read in sequence).

Only external address modes appear in RTBL entries.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List

from ..utils.binary import BinaryReader
from .address import AddressMode
from .names import NameRecord, decode_name
from .res import ENTRY_SIZE, FilesetEntry

logger = logging.getLogger(__name__)

SCAN_STEP = 16
INLINE_NAME_OFFSET = 0x20

RTBL_MODES = frozenset(
    {
        AddressMode.RESERVED,
        AddressMode.DATASET_REF,
        AddressMode.PACKAGE,
        AddressMode.DATA,
        AddressMode.PATCH,
    }
)


@dataclass
class RtblEntry(FilesetEntry):
    """Fileset entry found by the RTBL scan."""

    position: int = 0  # Where the entry sits in the RTBL file

    @property
    def address_mode(self) -> AddressMode:
        mode = AddressMode.from_raw(self.raw_offset)
        return mode if mode in RTBL_MODES else AddressMode.INVALID


@dataclass
class RtblTable:
    """Entries discovered in an RTBL file."""

    entries: List[RtblEntry] = field(default_factory=list)

    @classmethod
    def parse(cls, data: bytes) -> "RtblTable":
        reader = BinaryReader(data)
        entries = []
        offset = 0

        while offset + ENTRY_SIZE <= len(data):
            if not any(data[offset : offset + SCAN_STEP]):
                offset += SCAN_STEP
                continue

            reader.seek(offset)
            raw_offset = reader.read_u32()
            size = reader.read_u32()
            name_offset = reader.read_u32()
            name_count = reader.read_u32()
            reader.skip(12)
            unpack_size = reader.read_u32()

            if name_offset != INLINE_NAME_OFFSET:
                offset += SCAN_STEP
                continue

            entry = RtblEntry(
                raw_offset=raw_offset,
                size=size,
                name_offset=name_offset,
                name_count=name_count,
                unpack_size=unpack_size,
                position=offset,
            )
            if name_count > 0:
                entry.names = _read_inline_names(reader, offset, name_count)
            entries.append(entry)
            offset += ENTRY_SIZE

        logger.info("RTBL scan found %d entries", len(entries))
        return cls(entries=entries)

    @classmethod
    def from_file(cls, path: Path) -> "RtblTable":
        return cls.parse(Path(path).read_bytes())

    def __iter__(self) -> Iterator[RtblEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)


def _read_inline_names(reader: BinaryReader, offset: int, count: int) -> NameRecord:
    """Read strings stored right after the entry and its pointer array.

    The pointers recorded are the positions the strings were read from.
    """
    reader.seek(offset + ENTRY_SIZE + count * 4)
    strings = []
    pointers = []
    for _ in range(count):
        if reader.remaining() == 0:
            break
        pointers.append(reader.tell())
        chars = bytearray()
        while reader.remaining() > 0:
            byte = reader.read_u8()
            if byte == 0:
                break
            chars.append(byte)
        strings.append(decode_name(bytes(chars)))
    return NameRecord(strings=strings, pointers=pointers)

