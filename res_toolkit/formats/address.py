"""Address resolution for fileset offsets.

The top byte of a raw offset field selects where the payload lives; the
low 24 bits locate it there:

- External stores (package/data/patch .rdp) are addressed in 0x800-byte units.
- Embedded payloads (SET_C/SET_D) are byte offsets inside the archive.
"""

from enum import IntEnum
from typing import Tuple

OFFSET_MASK = 0x00FFFFFF
STORE_UNIT = 0x800


class AddressMode(IntEnum):
    """Address mode tags (top byte of the raw offset)."""

    RESERVED = 0x00
    DATASET_REF = 0x30
    PACKAGE = 0x40
    DATA = 0x50
    PATCH = 0x60
    EMBEDDED_C = 0xC0
    EMBEDDED_D = 0xD0
    INVALID = -1  # Any other tag

    @classmethod
    def from_raw(cls, raw_offset: int) -> "AddressMode":
        try:
            return cls((raw_offset >> 24) & 0xFF)
        except ValueError:
            return cls.INVALID

    @classmethod
    def from_label(cls, label: str) -> "AddressMode":
        for mode, mode_label in MODE_LABELS.items():
            if mode_label == label:
                return mode
        raise ValueError(f"Unknown address mode label: {label!r}")

    @property
    def label(self) -> str:
        return MODE_LABELS[self]

    @property
    def is_external(self) -> bool:
        return self in EXTERNAL_MODES

    @property
    def is_embedded(self) -> bool:
        return self in EMBEDDED_MODES

    @property
    def store_name(self) -> str:
        """File name of the external store backing this mode."""
        if not self.is_external:
            raise ValueError(f"{self.label} is not an external store mode")
        return STORE_FILES[self]


EXTERNAL_MODES = frozenset({AddressMode.PACKAGE, AddressMode.DATA, AddressMode.PATCH})
EMBEDDED_MODES = frozenset({AddressMode.EMBEDDED_C, AddressMode.EMBEDDED_D})

# Labels used by the interchange JSON
MODE_LABELS = {
    AddressMode.RESERVED: "Reserve",
    AddressMode.DATASET_REF: "DataSet",
    AddressMode.PACKAGE: "Package",
    AddressMode.DATA: "Data",
    AddressMode.PATCH: "Patch",
    AddressMode.EMBEDDED_C: "SET_C",
    AddressMode.EMBEDDED_D: "SET_D",
    AddressMode.INVALID: "Invalid",
}

STORE_FILES = {
    AddressMode.PACKAGE: "package.rdp",
    AddressMode.DATA: "data.rdp",
    AddressMode.PATCH: "patch.rdp",
}


def resolve(raw_offset: int) -> Tuple[AddressMode, int]:
    """Split a raw offset field into (mode, real byte offset)."""
    mode = AddressMode.from_raw(raw_offset)
    return mode, real_offset(raw_offset, mode)


def real_offset(raw_offset: int, mode: AddressMode) -> int:
    offset = raw_offset & OFFSET_MASK
    if mode.is_external:
        offset *= STORE_UNIT
    return offset


def encode(mode: AddressMode, offset: int) -> int:
    """Build a raw offset field from a mode and a real byte offset.

    Raises:
        ValueError: The mode carries no location, an external offset is
            not 0x800-aligned, or it does not fit in 24 bits of units.
    """
    if mode.is_external:
        if offset % STORE_UNIT:
            raise ValueError(f"Store offset 0x{offset:X} is not aligned to 0x{STORE_UNIT:X}")
        units = offset // STORE_UNIT
        if units > OFFSET_MASK:
            raise ValueError(f"Store offset 0x{offset:X} is out of range")
        return (mode.value << 24) | units
    if mode.is_embedded:
        return (mode.value << 24) | (offset & OFFSET_MASK)
    raise ValueError(f"Cannot encode an offset for address mode {mode.label}")
