"""Tests for binary utilities."""

import pytest

from res_toolkit.utils.binary import BinaryReader, BinaryWriter, align


class TestAlign:
    def test_already_aligned(self):
        assert align(0x20, 16) == 0x20

    def test_rounds_up(self):
        assert align(0x21, 16) == 0x30
        assert align(1, 0x800) == 0x800

    def test_zero(self):
        assert align(0, 16) == 0


class TestBinaryReader:
    """Tests for BinaryReader class."""

    def test_read_u8(self):
        reader = BinaryReader(b"\x42")
        assert reader.read_u8() == 0x42

    def test_read_u16_little_endian(self):
        reader = BinaryReader(b"\x34\x12")
        assert reader.read_u16() == 0x1234

    def test_read_u32_little_endian(self):
        reader = BinaryReader(b"\x50\x72\x65\x73")
        assert reader.read_u32() == 0x73657250

    def test_read_bytes_short(self):
        reader = BinaryReader(b"\x00\x01")
        with pytest.raises(EOFError, match="Expected 4 bytes"):
            reader.read_bytes(4)

    def test_read_cbytes(self):
        reader = BinaryReader(b"hello\x00world\x00")
        assert reader.read_cbytes() == b"hello"
        assert reader.read_cbytes() == b"world"

    def test_read_cbytes_empty(self):
        reader = BinaryReader(b"\x00abc\x00")
        assert reader.read_cbytes() == b""
        assert reader.tell() == 1

    def test_read_cbytes_unterminated(self):
        reader = BinaryReader(b"abc")
        with pytest.raises(EOFError, match="Unterminated"):
            reader.read_cbytes()

    def test_seek_and_tell(self):
        reader = BinaryReader(b"\x00\x01\x02\x03\x04\x05")
        assert reader.tell() == 0
        reader.seek(3)
        assert reader.tell() == 3
        assert reader.read_u8() == 0x03

    def test_skip(self):
        reader = BinaryReader(b"\x00\x01\x02\x03\x04\x05")
        reader.skip(4)
        assert reader.read_u8() == 0x04

    def test_remaining(self):
        reader = BinaryReader(b"\x00\x01\x02\x03\x04\x05")
        assert reader.remaining() == 6
        reader.read_u32()
        assert reader.remaining() == 2


class TestBinaryWriter:
    def test_write_integers(self):
        writer = BinaryWriter()
        writer.write_u8(0x01)
        writer.write_u32(0x05040302)
        assert writer.getvalue() == b"\x01\x02\x03\x04\x05"

    def test_seek_past_end_zero_fills(self):
        writer = BinaryWriter(b"\xAA")
        writer.seek(4)
        writer.write(b"\xBB")
        assert writer.getvalue() == b"\xAA\x00\x00\x00\xBB"

    def test_overwrite_in_middle(self):
        writer = BinaryWriter(b"\x00" * 8)
        writer.seek(2)
        writer.write_u32(0xFFFFFFFF)
        assert writer.getvalue() == b"\x00\x00\xFF\xFF\xFF\xFF\x00\x00"
        assert len(writer) == 8

    def test_align_pads_with_zeros(self):
        writer = BinaryWriter(b"\x01\x02\x03")
        writer.seek_end()
        writer.align(16)
        assert len(writer) == 16
        assert writer.tell() == 16
        assert writer.getvalue()[3:] == bytes(13)

    def test_align_noop_when_aligned(self):
        writer = BinaryWriter(bytes(16))
        writer.seek_end()
        writer.align(16)
        assert len(writer) == 16

    def test_initial_data_is_copied(self):
        source = bytearray(b"\x01\x02")
        writer = BinaryWriter(source)
        writer.write(b"\xFF")
        assert source == bytearray(b"\x01\x02")
