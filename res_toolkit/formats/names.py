"""Name tables: an array of absolute pointers to null-terminated strings.

Element 0 is the base name, element 1 the extension, and elements 2+ the
directory segments, outermost first.
"""

import struct
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple, Union

from ..utils.binary import BinaryReader

NAME_ENCODING = "utf-8"
POINTER_SIZE = 4


def encode_name(name: str) -> bytes:
    return name.encode(NAME_ENCODING, errors="surrogateescape")


def decode_name(data: bytes) -> str:
    return data.decode(NAME_ENCODING, errors="surrogateescape")


@dataclass
class NameRecord:
    """Resolved names of one fileset entry."""

    strings: List[str] = field(default_factory=list)
    pointers: List[int] = field(default_factory=list)

    @property
    def base_name(self) -> str:
        return self.strings[0] if self.strings else ""

    @property
    def extension(self) -> str:
        return self.strings[1] if len(self.strings) > 1 else ""

    @property
    def directories(self) -> List[str]:
        return self.strings[2:]

    @property
    def filename(self) -> str:
        if self.extension:
            return f"{self.base_name}.{self.extension}"
        return self.base_name

    def __len__(self) -> int:
        return len(self.strings)


def read_names(data: Union[bytes, BinaryReader], offset: int, count: int) -> NameRecord:
    """Resolve ``count`` string pointers stored at ``offset``.

    Every pointer yields a string, empty ones included, so the record
    always has exactly ``count`` elements.

    Raises:
        EOFError: A pointer or string runs past the end of the data.
    """
    reader = data if isinstance(data, BinaryReader) else BinaryReader(data)
    saved = reader.tell()

    reader.seek(offset)
    pointers = [reader.read_u32() for _ in range(count)]

    strings = []
    for pointer in pointers:
        reader.seek(pointer)
        strings.append(decode_name(reader.read_cbytes()))

    reader.seek(saved)
    return NameRecord(strings=strings, pointers=pointers)


def names_size(names: Sequence[str]) -> int:
    """Byte length of a name table laid out by ``layout_names``."""
    if not names:
        return 0
    return len(names) * POINTER_SIZE + sum(len(encode_name(n)) + 1 for n in names)


def layout_names(names: Sequence[str], base: int) -> Tuple[bytes, bytes, int]:
    """Lay out a name table to be written at ``base``.

    The pointer array comes first, then the strings in order. Returns
    ``(pointer_bytes, string_bytes, total_length)``.
    """
    pointer_array_size = len(names) * POINTER_SIZE
    pointers = []
    strings = bytearray()
    for name in names:
        pointers.append(base + pointer_array_size + len(strings))
        strings += encode_name(name) + b"\x00"

    pointer_bytes = struct.pack(f"<{len(pointers)}I", *pointers)
    return pointer_bytes, bytes(strings), len(pointer_bytes) + len(strings)


def name_table_span(record: NameRecord, offset: int) -> int:
    """Length of the original name table region starting at ``offset``.

    Covers the pointer array plus the strings laid out right after it.
    Strings stored outside the contiguous region are not counted.
    """
    end = offset + len(record.pointers) * POINTER_SIZE
    limit = offset + names_size(record.strings)
    for pointer, name in zip(record.pointers, record.strings):
        string_end = pointer + len(encode_name(name)) + 1
        if offset <= pointer and string_end <= limit:
            end = max(end, string_end)
    return end - offset
