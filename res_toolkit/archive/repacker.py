"""RES repacker: rebuilds an archive image after entries are edited.

Repacking runs in three passes:

1. Stage content blocks: payload chunks of embedded entries and the name
   table of every named entry. Each block either keeps its original
   offset as an anchor or is appended after everything else.
2. Walk the original archive in offset order. Unmanaged bytes between
   blocks are copied verbatim (all-zero gaps are dropped), each block is
   written 16-byte aligned, and the source cursor advances past the
   block's *original* extent. Growing or shrinking a block shifts every
   later block without tracking the shift explicitly.
3. Rewrite pointers, the fileset table, the group table and the header.

Entries whose payload lives in an external store are overwritten in
place there, or appended at the store cursor when a relocation rule
moves them.
"""

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import FrozenSet, Iterable, List, Optional

from ..compression import blz2
from ..compression.blz4 import AlternateCodec, Blz4Codec
from ..errors import (
    InsufficientPadding,
    MissingSource,
    SkipError,
    StructuralError,
    UnencodablePayload,
    UnsupportedAddressMode,
    ValidationMismatch,
)
from ..formats import address
from ..formats.address import EMBEDDED_MODES, EXTERNAL_MODES, STORE_UNIT, AddressMode
from ..formats.interchange import EditDescriptor, EntryEdit
from ..formats.names import NameRecord, layout_names, name_table_span, names_size
from ..formats.res import DataSetGroup, Descriptor, FilesetEntry, write_tables
from ..utils.binary import BinaryWriter, align
from .filesystem import FileSystem, LocalFileSystem
from .stores import StoreSession

logger = logging.getLogger(__name__)

BLOCK_ALIGNMENT = 16

CHUNK = "chunk"
NAMES = "names"


@dataclass(frozen=True)
class RelocationRule:
    """Move payloads of entries in ``source_modes`` to ``target_mode``."""

    source_modes: FrozenSet[AddressMode]
    target_mode: AddressMode

    def __post_init__(self):
        if not (self.target_mode.is_external or self.target_mode.is_embedded):
            raise UnsupportedAddressMode(
                f"Cannot relocate payloads to address mode {self.target_mode.label}"
            )
        for mode in self.source_modes:
            if not (mode.is_external or mode.is_embedded):
                raise UnsupportedAddressMode(
                    f"Cannot relocate payloads from address mode {mode.label}"
                )

    def matches(self, mode: AddressMode) -> bool:
        return mode in self.source_modes

    @classmethod
    def enforce_embedded(cls, target: AddressMode = AddressMode.EMBEDDED_C) -> "RelocationRule":
        """Pull every externally stored payload into the archive."""
        return cls(source_modes=EXTERNAL_MODES, target_mode=target)

    @classmethod
    def to_store(cls, target: AddressMode) -> "RelocationRule":
        """Push every embedded payload out to an external store."""
        return cls(source_modes=EMBEDDED_MODES, target_mode=target)


@dataclass
class RepackOptions:
    """Repack configuration."""

    relocation_rules: List[RelocationRule] = field(default_factory=list)
    # A declared unpacked size of 0 stays 0 when the replacement is stored raw
    keep_zero_unpack_size: bool = True
    alignment: int = BLOCK_ALIGNMENT
    store_alignment: int = STORE_UNIT

    def rule_for(self, mode: AddressMode) -> Optional[RelocationRule]:
        for rule in self.relocation_rules:
            if rule.matches(mode):
                return rule
        return None


@dataclass
class Skip:
    """An entry left unchanged, and why."""

    index: int
    error: SkipError

    @property
    def reason(self) -> str:
        return str(self.error)


@dataclass
class RepackResult:
    """Output of a repack."""

    data: bytes
    descriptor: Descriptor
    skipped: List[Skip] = field(default_factory=list)
    relocated: List[int] = field(default_factory=list)


@dataclass
class Block:
    """A managed region of the rebuilt archive."""

    index: int
    kind: str
    original_offset: Optional[int]  # None for appended blocks
    original_length: int
    data: bytes = b""
    names: List[str] = field(default_factory=list)
    target_mode: Optional[AddressMode] = None
    relocated_out: bool = False
    final_offset: Optional[int] = None

    @property
    def appended(self) -> bool:
        return self.original_offset is None

    @property
    def size(self) -> int:
        if self.kind == NAMES:
            return names_size(self.names)
        return len(self.data)

    def render(self, offset: int) -> bytes:
        if self.kind == NAMES:
            pointer_bytes, string_bytes, _ = layout_names(self.names, offset)
            return pointer_bytes + string_bytes
        return self.data


def preferred_embedded_mode(entries: Iterable) -> AddressMode:
    """Pick SET_C or SET_D by majority among the entries (ties go to SET_C)."""
    set_c = set_d = 0
    for entry in entries:
        mode = entry.address_mode
        if isinstance(mode, str):
            mode = AddressMode.from_label(mode)
        if mode == AddressMode.EMBEDDED_C:
            set_c += 1
        elif mode == AddressMode.EMBEDDED_D:
            set_d += 1
    return AddressMode.EMBEDDED_C if set_c >= set_d else AddressMode.EMBEDDED_D


def validate_edits(descriptor: Descriptor, edits: EditDescriptor) -> None:
    """Check that the edit descriptor still matches the live archive.

    Raises:
        ValidationMismatch: On the first structural field that differs.
    """
    header = descriptor.header
    for name, live, edited in (
        ("MagicHeader", header.magic, edits.magic_header),
        ("GroupOffset", header.group_offset, edits.group_offset),
        ("GroupCount", header.group_count, edits.group_count),
        ("UNK1", header.unk1, edits.unk1),
        ("Configs", header.configs, edits.configs),
    ):
        if live != edited:
            raise ValidationMismatch(f"{name} mismatch: archive 0x{live:X}, edits 0x{edited:X}")

    if len(descriptor.groups) != len(edits.data_sets):
        raise ValidationMismatch("DataSets count mismatch")
    for i, (group, edited) in enumerate(zip(descriptor.groups, edits.data_sets)):
        if group.offset != edited.offset or group.count != edited.count:
            raise ValidationMismatch(f"DataSet {i + 1} mismatch")

    if len(descriptor.entries) != len(edits.filesets):
        raise ValidationMismatch("Filesets count mismatch")
    for i, (entry, edit) in enumerate(zip(descriptor.entries, edits.filesets)):
        for name, live, edited in (
            ("RawOffset", entry.raw_offset, edit.raw_offset),
            ("Size", entry.size, edit.size),
            ("OffsetName", entry.name_offset, edit.name_offset),
            ("ChunkName", entry.name_count, edit.name_count),
            ("UnpackSize", entry.unpack_size, edit.unpack_size),
            ("AddressMode", entry.address_mode.label, edit.address_mode),
        ):
            if live != edited:
                raise ValidationMismatch(f"Fileset {i + 1} {name} mismatch")
        if edit.names and entry.name_offset != 0 and len(edit.names) != entry.name_count:
            raise ValidationMismatch(
                f"Fileset {i + 1} has {len(edit.names)} names, table declares {entry.name_count}"
            )


class Repacker:
    """Rebuilds a RES archive image from a descriptor and its edits."""

    def __init__(
        self,
        descriptor: Descriptor,
        data: bytes,
        edits: EditDescriptor,
        session: Optional[StoreSession] = None,
        fs: Optional[FileSystem] = None,
        options: Optional[RepackOptions] = None,
        codec: Optional[AlternateCodec] = None,
        base_dir: Optional[Path] = None,
    ):
        self.descriptor = descriptor
        self._data = bytes(data)
        self.edits = edits
        self.session = session or StoreSession()
        self._fs = fs or LocalFileSystem()
        self.options = options or RepackOptions()
        self._codec = codec or Blz4Codec()
        self._base_dir = Path(base_dir) if base_dir else None

        self._entries: List[FilesetEntry] = []
        self._blocks: List[Block] = []
        self._skipped: List[Skip] = []
        self._relocated: List[int] = []

    def repack(self) -> RepackResult:
        """Run all passes and return the new archive image.

        Store writes made by this repack are rolled back if it fails.

        Raises:
            ValidationMismatch: The edits do not match the archive.
            StructuralError: A payload or name table lies outside the data.
        """
        validate_edits(self.descriptor, self.edits)

        self._entries = [replace(entry) for entry in self.descriptor.entries]
        self._blocks = []
        self._skipped = []
        self._relocated = []

        with self.session.transaction():
            logger.info("Pass 1: staging content blocks")
            for index in range(len(self._entries)):
                self._stage_entry(index)
            logger.info("Staged %d content blocks", len(self._blocks))

            logger.info("Pass 2: writing content and calculating layout")
            writer = self._write_content()

            logger.info("Pass 3: writing final metadata")
            descriptor = self._finalize(writer)

        return RepackResult(
            data=writer.getvalue(),
            descriptor=descriptor,
            skipped=list(self._skipped),
            relocated=list(self._relocated),
        )

    # --- Pass 1 ---

    def _stage_entry(self, index: int) -> None:
        entry = self._entries[index]
        edit = self.edits.filesets[index]

        try:
            self._stage_payload(index, entry, edit)
        except SkipError as e:
            e.index = index
            logger.warning("%s - skipped", e)
            self._skipped.append(Skip(index=index, error=e))
            self._entries[index] = entry = replace(self.descriptor.entries[index])
            self._stage_unchanged(index, entry)

        self._stage_names(index, entry, edit)

    def _stage_payload(self, index: int, entry: FilesetEntry, edit: EntryEdit) -> None:
        source_mode = entry.address_mode
        rule = self.options.rule_for(source_mode)
        if rule is not None and entry.size == 0 and not edit.has_replacement:
            rule = None

        if source_mode in EMBEDDED_MODES:
            if rule is not None and rule.target_mode.is_external:
                self._relocate(index, entry, edit, rule.target_mode)
            else:
                target = rule.target_mode if rule is not None else source_mode
                self._stage_embedded(index, entry, edit, target)
        elif source_mode in EXTERNAL_MODES:
            if rule is not None:
                self._relocate(index, entry, edit, rule.target_mode)
            elif edit.has_replacement:
                self._overwrite_in_store(index, entry, edit)
        elif edit.has_replacement:
            raise UnsupportedAddressMode(
                f"Cannot place a replacement for an entry with address mode {source_mode.label}"
            )

    def _stage_unchanged(self, index: int, entry: FilesetEntry) -> None:
        if entry.address_mode in EMBEDDED_MODES and entry.size > 0:
            self._add_block(
                Block(
                    index=index,
                    kind=CHUNK,
                    original_offset=entry.real_offset,
                    original_length=entry.size,
                    data=self._original_bytes(index, entry),
                    target_mode=entry.address_mode,
                )
            )

    def _stage_embedded(
        self, index: int, entry: FilesetEntry, edit: EntryEdit, target: AddressMode
    ) -> None:
        if edit.has_replacement:
            data = self._load_replacement(entry, edit)
        elif entry.size > 0:
            data = self._original_bytes(index, entry)
        else:
            return

        self._add_block(
            Block(
                index=index,
                kind=CHUNK,
                original_offset=entry.real_offset,
                original_length=entry.size,
                data=data,
                target_mode=target,
            )
        )
        entry.size = len(data)

    def _relocate(self, index: int, entry: FilesetEntry, edit: EntryEdit, target: AddressMode) -> None:
        source_mode = entry.address_mode
        if edit.has_replacement:
            data = self._load_replacement(entry, edit)
        elif source_mode.is_external:
            data = self.session.get(source_mode).read(entry.real_offset, entry.size)
        else:
            data = self._original_bytes(index, entry)

        if target.is_embedded:
            logger.debug(
                "Fileset %d: relocating %s -> %s (%d bytes, appended)",
                index + 1, source_mode.label, target.label, len(data),
            )
            self._add_block(
                Block(index=index, kind=CHUNK, original_offset=None, original_length=0,
                      data=data, target_mode=target)
            )
        else:
            store = self.session.get(target)
            if source_mode.is_embedded:
                # The payload's old region drops out of the archive
                self._add_block(
                    Block(index=index, kind=CHUNK, original_offset=entry.real_offset,
                          original_length=entry.size, relocated_out=True)
                )
            offset = store.append(data, self.options.store_alignment)
            entry.raw_offset = address.encode(target, offset)
            logger.debug(
                "Fileset %d: relocated %s -> %s at 0x%X",
                index + 1, source_mode.label, target.label, offset,
            )

        entry.size = len(data)
        self._relocated.append(index)

    def _overwrite_in_store(self, index: int, entry: FilesetEntry, edit: EntryEdit) -> None:
        store = self.session.get(entry.address_mode)
        original_size = entry.size
        data = self._load_replacement(entry, edit)

        growth = len(data) - original_size
        if growth > 0 and not store.is_zero(entry.real_offset + original_size, growth):
            raise InsufficientPadding(
                f"{store.mode.store_name}: {growth} more bytes needed after 0x{entry.real_offset:X}, "
                "region is not free"
            )

        store.overwrite(entry.real_offset, data, original_size)
        entry.size = len(data)
        logger.debug(
            "Fileset %d: overwrote %d bytes in place at 0x%X in %s",
            index + 1, len(data), entry.real_offset, store.mode.store_name,
        )

    def _stage_names(self, index: int, entry: FilesetEntry, edit: EntryEdit) -> None:
        if entry.name_offset == 0:
            return
        names = edit.names if edit.names else entry.name_strings
        if not names:
            return

        record = entry.names or NameRecord()
        self._add_block(
            Block(
                index=index,
                kind=NAMES,
                original_offset=entry.name_offset,
                original_length=name_table_span(record, entry.name_offset),
                names=list(names),
            )
        )

    def _add_block(self, block: Block) -> None:
        if block.original_offset is not None and block.original_offset < self.descriptor.table_end:
            # No usable anchor (e.g. an embedded entry that never had a payload)
            block.original_offset = None
            block.original_length = 0
        self._blocks.append(block)

    def _original_bytes(self, index: int, entry: FilesetEntry) -> bytes:
        start = entry.real_offset
        end = start + entry.size
        if end > len(self._data):
            raise StructuralError(
                f"Fileset {index + 1}: payload 0x{start:X}-0x{end:X} is past the end of the archive"
            )
        return self._data[start:end]

    def _load_replacement(self, entry: FilesetEntry, edit: EntryEdit) -> bytes:
        """Read and encode the replacement file, updating the unpacked size."""
        path = Path(edit.filename)
        if self._base_dir is not None and not path.is_absolute():
            path = self._base_dir / path
        if not self._fs.exists(path):
            raise MissingSource(f"Replacement file not found: {path}")
        try:
            raw = self._fs.read_bytes(path)
        except OSError as e:
            raise MissingSource(f"Cannot read replacement file {path}: {e}") from e

        try:
            if edit.compressed_blz2:
                data = blz2.compress(raw)
            elif edit.compressed_blz4:
                data = self._codec.pack(raw)
            else:
                data = raw
        except ValueError as e:
            raise UnencodablePayload(f"Cannot encode replacement file {path}: {e}") from e

        stored_raw = not (edit.compressed_blz2 or edit.compressed_blz4)
        if not (self.options.keep_zero_unpack_size and stored_raw and entry.unpack_size == 0):
            entry.unpack_size = len(raw)
        return data

    # --- Pass 2 ---

    def _write_content(self) -> BinaryWriter:
        table_end = self.descriptor.table_end
        writer = BinaryWriter(self._data[:table_end])
        source_pos = table_end

        positioned = sorted(
            (b for b in self._blocks if not b.appended),
            key=lambda b: (b.original_offset, b.index, b.kind),
        )
        for block in positioned:
            if block.original_offset > source_pos:
                self._copy_unmanaged(writer, source_pos, block.original_offset)
            self._place(writer, block)
            source_pos = max(source_pos, block.original_offset + block.original_length)

        self._copy_unmanaged(writer, source_pos, len(self._data))

        for block in self._blocks:
            if block.appended:
                self._place(writer, block)
        return writer

    def _copy_unmanaged(self, writer: BinaryWriter, start: int, end: int) -> None:
        gap = self._data[start:end]
        if any(gap):
            logger.debug("Preserving %d bytes of unmanaged data from 0x%X", len(gap), start)
            writer.seek_end()
            writer.write(gap)

    def _place(self, writer: BinaryWriter, block: Block) -> None:
        writer.seek_end()
        writer.align(self.options.alignment)
        block.final_offset = writer.tell()
        writer.write(block.render(block.final_offset))
        logger.debug(
            "Fileset %d [%s]: placed at 0x%X (size %d, original %s)",
            block.index + 1, block.kind, block.final_offset, block.size,
            "appended" if block.appended else f"0x{block.original_offset:X}",
        )

    # --- Pass 3 ---

    def _finalize(self, writer: BinaryWriter) -> Descriptor:
        payload_end: Optional[int] = None

        for block in self._blocks:
            entry = self._entries[block.index]
            if block.kind == NAMES:
                entry.name_offset = block.final_offset
            elif not block.relocated_out:
                entry.raw_offset = address.encode(block.target_mode, block.final_offset)
                end = block.final_offset + block.size
                payload_end = end if payload_end is None else max(payload_end, end)

        configs = self.descriptor.header.configs
        if payload_end is not None:
            configs = align(payload_end, self.options.alignment)
        elif any(block.relocated_out for block in self._blocks):
            # Every embedded payload left the archive
            configs = align(self.descriptor.table_end, self.options.alignment)

        writer.seek_end()
        writer.align(self.options.alignment)
        if len(writer) < configs:
            writer.write_zeros(configs - len(writer))

        header = replace(
            self.descriptor.header,
            magic=self.edits.magic_header,
            group_offset=self.edits.group_offset,
            group_count=self.edits.group_count,
            unk1=self.edits.unk1,
            configs=configs,
        )
        groups = [DataSetGroup(g.offset, g.count) for g in self.edits.data_sets]
        descriptor = Descriptor(header=header, groups=groups, entries=self._entries)

        for block in self._blocks:
            if block.kind == NAMES:
                self._entries[block.index].names = NameRecord(
                    strings=list(block.names),
                    pointers=_name_pointers(block),
                )

        write_tables(writer, descriptor)
        logger.info("Metadata and fileset entries updated (Configs 0x%X)", configs)
        return descriptor


def _name_pointers(block: Block) -> List[int]:
    pointer_bytes, _, _ = layout_names(block.names, block.final_offset)
    return [int.from_bytes(pointer_bytes[i : i + 4], "little") for i in range(0, len(pointer_bytes), 4)]
