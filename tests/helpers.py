"""Builders for in-memory RES archives, stores and filesystems."""

import struct
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from res_toolkit.formats import address
from res_toolkit.formats.address import AddressMode
from res_toolkit.formats.names import layout_names
from res_toolkit.formats.res import ENTRY_SIZE, RES_MAGIC, TABLE_ORIGIN
from res_toolkit.utils.binary import align


@dataclass
class ArchiveEntry:
    """One fileset entry for ``build_archive``.

    Embedded entries get their payload laid out in the archive. External
    entries point at ``offset`` in their store and declare ``size``.
    """

    mode: AddressMode = AddressMode.EMBEDDED_C
    payload: bytes = b""
    names: Optional[List[str]] = None
    offset: int = 0
    size: int = 0
    unpack_size: int = 0
    gap_before: bytes = b""
    dummy: bool = False


def build_archive(entries: List[ArchiveEntry], unk1: int = 0x1234) -> bytes:
    """Build a RES image: header, group table at 0x20, entries at 0x60,
    then per entry an optional gap, its payload and its name table."""
    entry_fields = []
    content = bytearray()
    table_end = TABLE_ORIGIN + len(entries) * ENTRY_SIZE
    pos = align(table_end, 16)

    def place(data: bytes) -> int:
        nonlocal pos
        pos = align(pos, 16)
        start = pos
        end = start + len(data)
        rel_start = start - table_end
        if len(content) < rel_start:
            content.extend(bytes(rel_start - len(content)))
        content[rel_start : rel_start + len(data)] = data
        pos = end
        return start

    for item in entries:
        if item.dummy:
            entry_fields.append((0, 0, 0, 0, 0))
            continue

        if item.gap_before:
            place(item.gap_before)

        if item.mode.is_embedded:
            if item.payload:
                start = place(item.payload)
                raw = address.encode(item.mode, start)
            else:
                raw = address.encode(item.mode, 0)
            size = len(item.payload)
        elif item.mode.is_external:
            raw = address.encode(item.mode, item.offset)
            size = item.size
        else:
            # Reserved, DataSet and invalid tags: ``offset`` is the raw field
            raw = item.offset
            size = item.size

        name_offset = 0
        name_count = 0
        if item.names:
            name_offset = align(pos, 16)
            pointer_bytes, string_bytes, _ = layout_names(item.names, name_offset)
            place(pointer_bytes + string_bytes)
            name_count = len(item.names)

        entry_fields.append((raw, size, name_offset, name_count, item.unpack_size))

    configs = align(pos, 16)

    image = bytearray()
    image += struct.pack("<IIBI3xI12x", RES_MAGIC, 0x20, 1, unk1, configs)
    groups = [(TABLE_ORIGIN, len(entries))] + [(0, 0)] * 7
    for offset, count in groups:
        image += struct.pack("<II", offset, count)
    for raw, size, name_offset, name_count, unpack_size in entry_fields:
        image += struct.pack("<IIII12xI", raw, size, name_offset, name_count, unpack_size)
    image += content
    if len(image) < configs:
        image += bytes(configs - len(image))
    return bytes(image)


def build_store(chunks: Dict[int, bytes], size: int = 0) -> bytes:
    """Build a store image with ``chunks`` at the given byte offsets."""
    end = max([size] + [offset + len(data) for offset, data in chunks.items()])
    image = bytearray(end)
    for offset, data in chunks.items():
        image[offset : offset + len(data)] = data
    return bytes(image)


def patch_u32(data: bytes, offset: int, value: int) -> bytes:
    image = bytearray(data)
    struct.pack_into("<I", image, offset, value)
    return bytes(image)


def entry_field_offset(index: int, field_offset: int = 0) -> int:
    return TABLE_ORIGIN + index * ENTRY_SIZE + field_offset


class MemoryFileSystem:
    """FileSystem kept in a dict, keyed by Path."""

    def __init__(self, files: Optional[Dict[str, bytes]] = None):
        self.files: Dict[Path, bytes] = {Path(k): bytes(v) for k, v in (files or {}).items()}

    def read_bytes(self, path) -> bytes:
        try:
            return self.files[Path(path)]
        except KeyError:
            raise FileNotFoundError(str(path)) from None

    def write_bytes(self, path, data: bytes) -> None:
        self.files[Path(path)] = bytes(data)

    def exists(self, path) -> bool:
        return Path(path) in self.files


def compressible(length: int) -> bytes:
    """Repetitive bytes that deflate well."""
    pattern = b"RES archive payload 0123456789 "
    return (pattern * (length // len(pattern) + 1))[:length]
