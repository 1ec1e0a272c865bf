"""JSON interchange for descriptors and repack edits.

Extraction writes one of these next to the archive; the user edits names,
compression flags or replacement file paths; repacking reads it back and
checks that every structural field still matches the live archive.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..errors import ValidationMismatch
from .res import DataSetGroup, Descriptor, FilesetEntry


@dataclass
class EntryEdit:
    """Per-entry record: the stored fields plus the user's edits."""

    raw_offset: int
    real_offset: int
    address_mode: str
    size: int
    name_offset: int
    name_count: int
    unpack_size: int
    fileset_pointers: List[bool] = field(default_factory=list)
    names_pointer: Optional[List[int]] = None
    names: Optional[List[str]] = None
    compressed_blz2: Optional[bool] = None
    compressed_blz4: Optional[bool] = None
    filename: Optional[str] = None

    @classmethod
    def from_entry(cls, entry: FilesetEntry) -> "EntryEdit":
        return cls(
            raw_offset=entry.raw_offset,
            real_offset=entry.real_offset,
            address_mode=entry.address_mode.label,
            size=entry.size,
            name_offset=entry.name_offset,
            name_count=entry.name_count,
            unpack_size=entry.unpack_size,
            fileset_pointers=entry.presence,
            names_pointer=list(entry.names.pointers) if entry.names else None,
            names=list(entry.names.strings) if entry.names else None,
        )

    @property
    def has_replacement(self) -> bool:
        return bool(self.filename)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filesetPointers": list(self.fileset_pointers),
            "rawOffset": self.raw_offset,
            "realOffset": self.real_offset,
            "addressMode": self.address_mode,
            "size": self.size,
            "offsetName": self.name_offset,
            "chunkName": self.name_count,
            "unpackSize": self.unpack_size,
            "namesPointer": self.names_pointer,
            "names": self.names,
            "compressedBLZ2": self.compressed_blz2,
            "compressedBLZ4": self.compressed_blz4,
            "filename": self.filename,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EntryEdit":
        return cls(
            raw_offset=data["rawOffset"],
            real_offset=data.get("realOffset", 0),
            address_mode=data["addressMode"],
            size=data["size"],
            name_offset=data["offsetName"],
            name_count=data["chunkName"],
            unpack_size=data["unpackSize"],
            fileset_pointers=data.get("filesetPointers") or [],
            names_pointer=data.get("namesPointer"),
            names=data.get("names"),
            compressed_blz2=data.get("compressedBLZ2"),
            compressed_blz4=data.get("compressedBLZ4"),
            filename=data.get("filename"),
        )


@dataclass
class EditDescriptor:
    """Interchange copy of a descriptor, carrying per-entry edits."""

    magic_header: int
    group_offset: int
    group_count: int
    unk1: int
    configs: int
    data_sets: List[DataSetGroup] = field(default_factory=list)
    filesets: List[EntryEdit] = field(default_factory=list)

    @classmethod
    def from_descriptor(cls, descriptor: Descriptor) -> "EditDescriptor":
        header = descriptor.header
        return cls(
            magic_header=header.magic,
            group_offset=header.group_offset,
            group_count=header.group_count,
            unk1=header.unk1,
            configs=header.configs,
            data_sets=[DataSetGroup(g.offset, g.count) for g in descriptor.groups],
            filesets=[EntryEdit.from_entry(entry) for entry in descriptor.entries],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "magicHeader": self.magic_header,
            "groupOffset": self.group_offset,
            "groupCount": self.group_count,
            "unk1": self.unk1,
            "configs": self.configs,
            "dataSets": [{"offset": g.offset, "count": g.count} for g in self.data_sets],
            "filesets": [fs.to_dict() for fs in self.filesets],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EditDescriptor":
        return cls(
            magic_header=data["magicHeader"],
            group_offset=data["groupOffset"],
            group_count=data["groupCount"],
            unk1=data["unk1"],
            configs=data["configs"],
            data_sets=[DataSetGroup(d["offset"], d["count"]) for d in data.get("dataSets", [])],
            filesets=[EntryEdit.from_dict(fs) for fs in data.get("filesets", [])],
        )

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_json(cls, text: str) -> "EditDescriptor":
        """Parse a descriptor written by ``to_json``.

        Raises:
            ValidationMismatch: The text is not a descriptor.
        """
        try:
            return cls.from_dict(json.loads(text))
        except (ValueError, KeyError, TypeError) as e:
            raise ValidationMismatch(f"Invalid edit descriptor: {e}") from e

    def save(self, path: Path) -> None:
        Path(path).write_text(self.to_json(), encoding="utf-8")

    @classmethod
    def load(cls, path: Path) -> "EditDescriptor":
        return cls.from_json(Path(path).read_text(encoding="utf-8"))


def descriptor_to_dict(descriptor: Descriptor) -> Dict[str, Any]:
    return EditDescriptor.from_descriptor(descriptor).to_dict()
