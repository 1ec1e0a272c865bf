"""Tests for the RTBL table scanner."""

import struct

from res_toolkit.formats import RtblTable
from res_toolkit.formats.address import AddressMode


def create_rtbl_entry(raw_offset: int, size: int, names, unpack_size: int = 0) -> bytes:
    """Entry followed by its inline pointer array and strings."""
    entry = struct.pack("<IIII12xI", raw_offset, size, 0x20, len(names), unpack_size)
    pointers = bytes(4 * len(names))
    strings = b"".join(name.encode() + b"\x00" for name in names)
    return entry + pointers + strings


def pad16(data: bytes) -> bytes:
    return data + bytes(-len(data) % 16)


class TestRtblTable:
    def test_finds_entry_after_zero_window(self):
        data = bytes(16) + pad16(create_rtbl_entry(0x40000002, 0x100, ["file", "bin"], 0x200)) + bytes(32)
        table = RtblTable.parse(data)

        assert len(table) == 1
        entry = table.entries[0]
        assert entry.position == 16
        assert entry.address_mode == AddressMode.PACKAGE
        assert entry.real_offset == 0x1000
        assert entry.size == 0x100
        assert entry.unpack_size == 0x200
        assert entry.name_strings == ["file", "bin"]
        assert entry.names.pointers == [16 + 32 + 8, 16 + 32 + 8 + 5]

    def test_multiple_entries(self):
        data = (
            pad16(create_rtbl_entry(0x50000001, 0x10, ["a", "b"]))
            + bytes(16)
            + pad16(create_rtbl_entry(0x60000004, 0x20, ["c", "d"]))
            + bytes(16)
        )
        table = RtblTable.parse(data)
        assert [e.address_mode for e in table] == [AddressMode.DATA, AddressMode.PATCH]
        assert [e.name_strings for e in table] == [["a", "b"], ["c", "d"]]

    def test_rejects_other_name_offsets(self):
        entry = struct.pack("<IIII12xI", 0x40000001, 0x10, 0x40, 1, 0)
        assert len(RtblTable.parse(bytes(16) + entry + bytes(16))) == 0

    def test_embedded_modes_are_invalid(self):
        data = pad16(create_rtbl_entry(0xC0000100, 0x10, ["x", "y"])) + bytes(16)
        table = RtblTable.parse(data)
        assert table.entries[0].address_mode == AddressMode.INVALID

    def test_empty_file(self):
        assert len(RtblTable.parse(b"")) == 0
        assert len(RtblTable.parse(bytes(64))) == 0

    def test_from_file(self, tmp_path):
        path = tmp_path / "table.rtbl"
        path.write_bytes(pad16(create_rtbl_entry(0x40000001, 4, ["n", "e"])) + bytes(16))
        assert len(RtblTable.from_file(path)) == 1
