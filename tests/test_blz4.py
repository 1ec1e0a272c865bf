"""Tests for the blz4 alternate codec."""

import hashlib
import logging
import struct
import zlib

import pytest

from helpers import compressible
from res_toolkit.compression import Blz4Codec
from res_toolkit.errors import IncompleteBlock


def blz4_header(data: bytes) -> bytes:
    return b"blz4" + struct.pack("<I", len(data)) + bytes(8) + hashlib.md5(data).digest()


class TestBlz4Codec:
    def setup_method(self):
        self.codec = Blz4Codec()

    def test_header_fields(self):
        data = compressible(1000)
        packed = self.codec.pack(data)
        assert packed[:4] == b"blz4"
        assert struct.unpack_from("<I", packed, 4)[0] == 1000
        assert packed[8:16] == bytes(8)
        assert packed[16:32] == hashlib.md5(data).digest()

    @pytest.mark.parametrize("length", [0, 100, 0x10000, 0x10000 * 2 + 7])
    def test_round_trip(self, length):
        data = compressible(length)
        assert self.codec.unpack(self.codec.pack(data)) == data

    def test_is_recognized(self):
        assert self.codec.is_recognized(self.codec.pack(b"abc"))
        assert not self.codec.is_recognized(b"blz4" + bytes(28))
        assert not self.codec.is_recognized(b"blz2" + bytes(40))

    def test_zero_length_means_rest_of_buffer(self):
        data = compressible(500)
        packed = blz4_header(data) + struct.pack("<H", 0) + zlib.compress(data)
        assert self.codec.unpack(packed) == data

    def test_md5_mismatch_only_warns(self, caplog):
        data = compressible(300)
        packed = bytearray(self.codec.pack(data))
        packed[16] ^= 0xFF
        with caplog.at_level(logging.WARNING, logger="res_toolkit.compression.blz4"):
            assert self.codec.unpack(bytes(packed)) == data
        assert "MD5" in caplog.text

    def test_truncated_block(self):
        packed = blz4_header(b"x") + struct.pack("<H", 40) + b"\x78\x9c"
        with pytest.raises(IncompleteBlock):
            self.codec.unpack(packed)

    def test_corrupt_block(self):
        packed = blz4_header(b"x") + struct.pack("<H", 4) + b"\x00\x01\x02\x03"
        with pytest.raises(IncompleteBlock, match="Corrupt"):
            self.codec.unpack(packed)

    def test_unpack_rejects_other_data(self):
        with pytest.raises(ValueError, match="Not a blz4"):
            self.codec.unpack(b"not blz4 data at all, just text")
