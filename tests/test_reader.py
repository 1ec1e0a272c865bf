"""Tests for the RES archive reader and extractor."""

import json
from pathlib import Path

import pytest

from helpers import ArchiveEntry, MemoryFileSystem, build_archive, build_store, compressible
from res_toolkit.archive import ResArchive
from res_toolkit.compression import Blz4Codec, blz2
from res_toolkit.errors import MissingSource, UnsupportedAddressMode
from res_toolkit.formats.address import AddressMode

ARCHIVE = Path("/game/field.res")
OUTPUT = Path("/game/field")


@pytest.fixture
def packed():
    return blz2.compress(compressible(5000))


@pytest.fixture
def fs(packed):
    archive = build_archive(
        [
            ArchiveEntry(payload=packed, names=["map", "bin", "stage"], unpack_size=5000),
            ArchiveEntry(mode=AddressMode.PACKAGE, offset=0x800, size=6, names=["snd", "at3"]),
            ArchiveEntry(dummy=True),
            ArchiveEntry(mode=AddressMode.DATA, offset=0x800, size=4, names=["far", "bin"]),
            ArchiveEntry(mode=AddressMode.RESERVED, names=["empty", "dat"]),
            ArchiveEntry(payload=Blz4Codec().pack(b"blz4 payload"), names=["pack", "bin"]),
        ]
    )
    return MemoryFileSystem(
        {
            str(ARCHIVE): archive,
            "/game/package.rdp": build_store({0x800: b"stored"}),
        }
    )


class TestResArchive:
    def test_open(self, fs):
        res = ResArchive(ARCHIVE, fs=fs)
        assert len(res.entries) == 6
        assert res.header.group_count == 1
        assert res.session.available(AddressMode.PACKAGE)
        assert not res.session.available(AddressMode.DATA)
        assert "entries=6" in repr(res)

    def test_read_embedded(self, fs, packed):
        res = ResArchive(ARCHIVE, fs=fs)
        assert res.read_entry(0) == packed

    def test_read_external(self, fs):
        res = ResArchive(ARCHIVE, fs=fs)
        assert res.read_entry(1) == b"stored"

    def test_read_missing_store(self, fs):
        res = ResArchive(ARCHIVE, fs=fs)
        with pytest.raises(MissingSource, match="Fileset 4"):
            res.read_entry(3)

    def test_read_reserved_is_empty(self, fs):
        res = ResArchive(ARCHIVE, fs=fs)
        assert res.read_entry(2) == b""
        assert res.read_entry(4) == b""

    def test_read_invalid_mode(self, fs):
        fs.files[ARCHIVE] = build_archive([ArchiveEntry(mode=AddressMode.INVALID, offset=0x12000010, size=4)])
        res = ResArchive(ARCHIVE, fs=fs)
        with pytest.raises(UnsupportedAddressMode):
            res.read_entry(0)

    def test_extract_entry_blz2(self, fs):
        res = ResArchive(ARCHIVE, fs=fs)
        assert res.extract_entry(0) == (compressible(5000), True, False)

    def test_extract_entry_blz4(self, fs):
        res = ResArchive(ARCHIVE, fs=fs)
        assert res.extract_entry(5) == (b"blz4 payload", False, True)

    def test_extract_entry_raw(self, fs):
        res = ResArchive(ARCHIVE, fs=fs)
        assert res.extract_entry(1) == (b"stored", False, False)

    def test_stores_dir(self, fs):
        fs.files[Path("/stores/data.rdp")] = build_store({0x800: b"data"})
        res = ResArchive(ARCHIVE, stores_dir=Path("/stores"), fs=fs)
        assert res.read_entry(3) == b"data"
        assert not res.session.available(AddressMode.PACKAGE)

    def test_list_files(self, fs):
        res = ResArchive(ARCHIVE, fs=fs)
        assert res.list_files() == [
            "stage/map.bin",
            "snd.at3",
            "far.bin",
            "empty.dat",
            "pack.bin",
        ]


class TestDescribe:
    def test_summary(self, fs):
        lines = list(ResArchive(ARCHIVE, fs=fs).describe())
        text = "\n".join(lines)

        assert "Magic Header: 0x73657250" in text
        assert "DataSet 1: Offset=0x00000060, Count=6" in text
        assert "Fileset 3: [Reserve/Dummy]" in lines
        assert "Fileset 5: [Reserve/Empty]" in lines
        assert "  Address Mode: SET_C" in lines
        assert "  Real Offset: 0x00000800" in lines
        assert "    [2]: stage" in lines
        assert "  [Warning]: Required data.rdp missing." in lines


class TestExtractAll:
    def test_writes_files(self, fs):
        res = ResArchive(ARCHIVE, fs=fs)
        written = dict(res.extract_all(OUTPUT))

        assert written == {
            0: OUTPUT / "stage" / "map.bin",
            1: OUTPUT / "snd.at3",
            4: OUTPUT / "empty.dat",
            5: OUTPUT / "pack.bin",
        }
        assert fs.files[OUTPUT / "stage" / "map.bin"] == compressible(5000)
        assert fs.files[OUTPUT / "snd.at3"] == b"stored"
        assert fs.files[OUTPUT / "empty.dat"] == b""

    def test_fills_edit_descriptor(self, fs):
        res = ResArchive(ARCHIVE, fs=fs)
        list(res.extract_all(OUTPUT))

        edits = res.edits.filesets
        assert edits[0].filename == str(Path("field/stage/map.bin"))
        assert edits[0].compressed_blz2 is True
        assert edits[0].compressed_blz4 is False
        assert edits[1].compressed_blz2 is False
        assert edits[5].compressed_blz4 is True
        assert edits[2].filename is None
        assert edits[3].filename is None

    def test_deduplicates_names(self, fs):
        fs.files[ARCHIVE] = build_archive(
            [
                ArchiveEntry(payload=b"one", names=["dup", "bin"]),
                ArchiveEntry(payload=b"two", names=["dup", "bin"]),
                ArchiveEntry(payload=b"three", names=["dup", "bin"]),
            ]
        )
        res = ResArchive(ARCHIVE, fs=fs)
        paths = [path for _, path in res.extract_all(OUTPUT)]

        assert paths == [OUTPUT / "dup.bin", OUTPUT / "dup_0001.bin", OUTPUT / "dup_0002.bin"]
        assert fs.files[OUTPUT / "dup_0002.bin"] == b"three"

    def test_skips_nameless_entries(self, fs):
        fs.files[ARCHIVE] = build_archive([ArchiveEntry(payload=b"anonymous")])
        res = ResArchive(ARCHIVE, fs=fs)
        assert list(res.extract_all(OUTPUT)) == []

    def test_progress_callback(self, fs):
        calls = []
        res = ResArchive(ARCHIVE, fs=fs)
        list(res.extract_all(OUTPUT, progress_callback=lambda i, total, name: calls.append((i, total))))
        assert calls == [(0, 6), (1, 6), (4, 6), (5, 6)]

    def test_store_index(self, fs):
        res = ResArchive(ARCHIVE, fs=fs)
        list(res.extract_all(OUTPUT))
        assert res.build_store_index() == {
            "package.rdp": [
                {"index": 1, "files": [str(Path("field/snd.at3"))], "realOffset": 0x800},
            ]
        }

    def test_save_store_index(self, fs):
        res = ResArchive(ARCHIVE, fs=fs)
        list(res.extract_all(OUTPUT))
        written = res.save_store_index(ARCHIVE.parent)

        assert written == [Path("/game/packageDict.json")]
        assert json.loads(fs.files[written[0]]) == [
            {"index": 1, "files": [str(Path("field/snd.at3"))], "realOffset": 0x800},
        ]

    def test_save_store_index_without_external_files(self, fs):
        fs.files[ARCHIVE] = build_archive([ArchiveEntry(payload=b"inline", names=["a", "bin"])])
        res = ResArchive(ARCHIVE, fs=fs)
        list(res.extract_all(OUTPUT))
        assert res.save_store_index(ARCHIVE.parent) == []
