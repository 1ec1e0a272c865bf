"""RES archive format model.

Layout (little-endian):
- Header (32 bytes): magic u32 @0, group table offset u32 @4, group
  count u8 @8, unknown u32 @9, padding @13, Configs marker u32 @16,
  padding @20.
- Group table: 8 x (offset u32, count u32) at the group table offset.
- Fileset table at 0x60, 32 bytes per entry: raw offset, size, name
  offset, name count, 12 bytes padding, unpacked size (all u32).

The Configs marker is the end of the embedded payload region.
"""

from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Union

from ..errors import StructuralError
from ..utils.binary import BinaryReader, BinaryWriter
from .address import AddressMode, real_offset
from .names import NameRecord, encode_name, read_names

RES_MAGIC = 0x73657250  # "Pres"
HEADER_SIZE = 32
GROUP_COUNT = 8
GROUP_ENTRY_SIZE = 8
TABLE_ORIGIN = 0x60
ENTRY_SIZE = 32


@dataclass
class ArchiveHeader:
    """RES header (32 bytes)."""

    magic: int
    group_offset: int
    group_count: int
    unk1: int  # Undocumented, preserved verbatim
    configs: int  # End of the embedded payload region

    @property
    def is_valid(self) -> bool:
        return self.magic == RES_MAGIC


@dataclass
class DataSetGroup:
    """One of the 8 group slots: a slice of the fileset table."""

    offset: int
    count: int


@dataclass
class FilesetEntry:
    """Fileset table entry (32 bytes)."""

    raw_offset: int
    size: int
    name_offset: int
    name_count: int
    unpack_size: int

    # Resolved while parsing
    names: Optional[NameRecord] = None

    @property
    def address_mode(self) -> AddressMode:
        return AddressMode.from_raw(self.raw_offset)

    @property
    def real_offset(self) -> int:
        return real_offset(self.raw_offset, self.address_mode)

    @property
    def is_dummy(self) -> bool:
        """All-zero slot kept only to hold its position in the table."""
        return (
            self.raw_offset == 0
            and self.size == 0
            and self.name_offset == 0
            and self.name_count == 0
        )

    @property
    def is_empty_reserve(self) -> bool:
        """Named slot without any payload."""
        return (
            self.raw_offset == 0
            and self.size == 0
            and self.name_offset != 0
            and self.name_count != 0
            and self.unpack_size == 0
        )

    @property
    def presence(self) -> List[bool]:
        """Which of the stored fields are non-zero."""
        return [
            self.raw_offset != 0,
            self.size != 0,
            self.name_offset != 0,
            self.name_count != 0,
            self.unpack_size != 0,
        ]

    @property
    def name_strings(self) -> List[str]:
        return list(self.names.strings) if self.names else []


@dataclass
class Descriptor:
    """Parsed header, group table and fileset table of a RES archive."""

    header: ArchiveHeader
    groups: List[DataSetGroup] = field(default_factory=list)
    entries: List[FilesetEntry] = field(default_factory=list)

    @property
    def table_end(self) -> int:
        """First byte past the fixed header, group and fileset tables."""
        return max(
            TABLE_ORIGIN + len(self.entries) * ENTRY_SIZE,
            self.header.group_offset + GROUP_COUNT * GROUP_ENTRY_SIZE,
        )

    def __iter__(self) -> Iterator[FilesetEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)


def parse(data: Union[bytes, bytearray], resolve_names: bool = True) -> Descriptor:
    """Parse the header, group table and fileset table.

    Raises:
        StructuralError: Bad magic, or the data is too short for the
            header, the group table, the declared entries or their names.
    """
    if len(data) < HEADER_SIZE:
        raise StructuralError(f"RES data too small: {len(data)} bytes")

    reader = BinaryReader(data)

    magic = reader.read_u32()
    if magic != RES_MAGIC:
        raise StructuralError(f"Invalid RES magic: 0x{magic:08X}, expected 0x{RES_MAGIC:08X}")

    group_offset = reader.read_u32()
    group_count = reader.read_u8()
    unk1 = reader.read_u32()
    reader.skip(3)
    configs = reader.read_u32()
    reader.skip(12)

    header = ArchiveHeader(
        magic=magic,
        group_offset=group_offset,
        group_count=group_count,
        unk1=unk1,
        configs=configs,
    )

    if group_offset + GROUP_COUNT * GROUP_ENTRY_SIZE > len(data):
        raise StructuralError(f"Group table at 0x{group_offset:X} runs past end of data")

    reader.seek(group_offset)
    groups = []
    for _ in range(GROUP_COUNT):
        offset = reader.read_u32()
        count = reader.read_u32()
        groups.append(DataSetGroup(offset=offset, count=count))

    total = sum(group.count for group in groups)
    if TABLE_ORIGIN + total * ENTRY_SIZE > len(data):
        raise StructuralError(f"Fileset table with {total} entries runs past end of data")

    reader.seek(TABLE_ORIGIN)
    entries = []
    for i in range(total):
        raw_offset = reader.read_u32()
        size = reader.read_u32()
        name_offset = reader.read_u32()
        name_count = reader.read_u32()
        reader.skip(12)
        unpack_size = reader.read_u32()

        entry = FilesetEntry(
            raw_offset=raw_offset,
            size=size,
            name_offset=name_offset,
            name_count=name_count,
            unpack_size=unpack_size,
        )
        if resolve_names and entry.name_offset != 0:
            try:
                entry.names = read_names(reader, entry.name_offset, entry.name_count)
            except EOFError as e:
                raise StructuralError(
                    f"Fileset {i + 1}: name table at 0x{entry.name_offset:X} is truncated"
                ) from e
        entries.append(entry)

    return Descriptor(header=header, groups=groups, entries=entries)


def write_tables(writer: BinaryWriter, descriptor: Descriptor) -> None:
    """Write header, group table and fileset table at their fixed offsets."""
    header = descriptor.header

    writer.seek(0)
    writer.write_u32(header.magic)
    writer.write_u32(header.group_offset)
    writer.write_u8(header.group_count)
    writer.write_u32(header.unk1)
    writer.write_zeros(3)
    writer.write_u32(header.configs)
    writer.write_zeros(12)

    writer.seek(header.group_offset)
    for group in descriptor.groups:
        writer.write_u32(group.offset)
        writer.write_u32(group.count)

    writer.seek(TABLE_ORIGIN)
    for entry in descriptor.entries:
        writer.write_u32(entry.raw_offset)
        writer.write_u32(entry.size)
        writer.write_u32(entry.name_offset)
        writer.write_u32(entry.name_count)
        writer.write_zeros(12)
        writer.write_u32(entry.unpack_size)


def write_names(writer: BinaryWriter, descriptor: Descriptor) -> None:
    """Write every resolved name table back at its recorded offsets."""
    for entry in descriptor.entries:
        if entry.names is None or entry.name_offset == 0:
            continue
        for pointer, name in zip(entry.names.pointers, entry.names.strings):
            writer.seek(pointer)
            writer.write(encode_name(name) + b"\x00")
        writer.seek(entry.name_offset)
        for pointer in entry.names.pointers:
            writer.write_u32(pointer)


def serialize(descriptor: Descriptor, image: Optional[bytes] = None) -> bytes:
    """Write the descriptor's fixed fields back out.

    With ``image``, the tables are patched over a copy of it and all other
    bytes (payloads, name tables) are kept. Without, the tables and the
    resolved name tables are written into a zero-filled image. Payload and
    name bytes are never moved.
    """
    writer = BinaryWriter(image)
    write_tables(writer, descriptor)
    if image is None:
        write_names(writer, descriptor)
    return writer.getvalue()
