"""RES archive reader and extractor."""

import json
import logging
import os
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Set, Tuple

from ..compression import blz2
from ..compression.blz4 import AlternateCodec, Blz4Codec
from ..errors import MissingSource, UnsupportedAddressMode
from ..formats.address import AddressMode
from ..formats.interchange import EditDescriptor
from ..formats.res import ArchiveHeader, Descriptor, FilesetEntry, parse
from .filesystem import FileSystem, LocalFileSystem
from .stores import StoreSession

logger = logging.getLogger(__name__)


class ResArchive:
    """Reader for RES archives and their external stores.

    The archive and every store found next to it are read fully into
    memory when the archive is opened.
    """

    def __init__(
        self,
        path: Path,
        stores_dir: Optional[Path] = None,
        fs: Optional[FileSystem] = None,
        codec: Optional[AlternateCodec] = None,
    ):
        self.path = Path(path)
        self._fs = fs or LocalFileSystem()
        self._codec = codec or Blz4Codec()
        self._data = self._fs.read_bytes(self.path)
        self._descriptor = parse(self._data)
        self.session = StoreSession.open(stores_dir or self.path.parent, self._fs)
        self.edits = EditDescriptor.from_descriptor(self._descriptor)
        self._store_index: Dict[AddressMode, Dict[int, List[str]]] = {}

    @property
    def data(self) -> bytes:
        return self._data

    @property
    def descriptor(self) -> Descriptor:
        return self._descriptor

    @property
    def header(self) -> ArchiveHeader:
        return self._descriptor.header

    @property
    def entries(self) -> List[FilesetEntry]:
        return self._descriptor.entries

    def read_entry(self, index: int) -> bytes:
        """Read the stored (possibly compressed) payload of an entry.

        Raises:
            MissingSource: The entry's store is not available or too short.
            UnsupportedAddressMode: The entry has no readable location.
        """
        entry = self.entries[index]
        mode = entry.address_mode

        if mode == AddressMode.RESERVED or entry.size == 0:
            return b""
        if mode.is_embedded:
            end = entry.real_offset + entry.size
            if end > len(self._data):
                raise MissingSource(f"Payload 0x{entry.real_offset:X}-0x{end:X} is past the end of the archive", index)
            return self._data[entry.real_offset : end]
        if mode.is_external:
            try:
                return self.session.get(mode).read(entry.real_offset, entry.size)
            except MissingSource as e:
                e.index = index
                raise
        raise UnsupportedAddressMode(f"Address mode {mode.label} cannot be read", index)

    def extract_entry(self, index: int) -> Tuple[bytes, bool, bool]:
        """Read and decompress an entry.

        Returns ``(data, compressed_blz2, compressed_blz4)``.
        """
        chunk = self.read_entry(index)
        if self._codec.is_recognized(chunk):
            return self._codec.unpack(chunk), False, True
        data, was_blz2 = blz2.decompress(chunk)
        return data, was_blz2, False

    def describe(self) -> Iterator[str]:
        """Yield a human-readable summary of the header, groups and entries."""
        header = self.header
        yield "=== Header ==="
        yield f"Magic Header: 0x{header.magic:08X}"
        yield f"Group Offset: 0x{header.group_offset:08X}"
        yield f"Group Count: {header.group_count}"
        yield f"Configs Offset: 0x{header.configs:08X}"
        yield ""

        yield "=== DataSets ==="
        for i, group in enumerate(self._descriptor.groups):
            yield f"DataSet {i + 1}: Offset=0x{group.offset:08X}, Count={group.count}"
        yield ""

        yield "=== Filesets ==="
        for i, entry in enumerate(self.entries):
            if entry.is_dummy:
                yield f"Fileset {i + 1}: [Reserve/Dummy]"
                continue
            if entry.is_empty_reserve:
                yield f"Fileset {i + 1}: [Reserve/Empty]"
                continue

            mode = entry.address_mode
            yield f"Fileset {i + 1}:"
            yield f"  Address Mode: {mode.label}"
            yield f"  Raw Offset: 0x{entry.raw_offset:08X}"
            yield f"  Real Offset: 0x{entry.real_offset:08X}"
            yield f"  Size: {entry.size} bytes"
            yield f"  Unpack Size: {entry.unpack_size} bytes"
            yield f"  Offset Name: 0x{entry.name_offset:08X}"
            yield f"  Chunk Name Index: {entry.name_count}"
            if entry.names:
                yield "  Names:"
                for j, name in enumerate(entry.names.strings):
                    yield f"    [{j}]: {name}"
            if mode.is_external and not self.session.available(mode):
                yield f"  [Warning]: Required {mode.store_name} missing."
            yield ""

    def output_path(self, entry: FilesetEntry, output_dir: Path, used: Set[Path]) -> Optional[Path]:
        """Build ``<output>/<dirs...>/<name>.<ext>``, de-duplicated with ``_0001``-style suffixes."""
        if not entry.names or not entry.names.strings:
            return None

        record = entry.names
        directory = Path(output_dir).joinpath(*[d for d in record.directories if d])
        path = directory / record.filename

        counter = 1
        while path in used or self._fs.exists(path):
            stem = f"{record.base_name}_{counter:04d}"
            path = directory / (f"{stem}.{record.extension}" if record.extension else stem)
            counter += 1
        return path

    def extract_all(
        self,
        output_dir: Path,
        progress_callback: Optional[Callable[[int, int, str], None]] = None,
    ) -> Iterator[Tuple[int, Path]]:
        """Extract every payload below ``output_dir``.

        Fills ``self.edits`` with the written file names (relative to the
        archive's directory) and the detected compression flags.
        Yields ``(index, output_path)`` for each written file.
        """
        output_dir = Path(output_dir)
        used: Set[Path] = set()
        self._store_index = {}

        for i, entry in enumerate(self.entries):
            edit = self.edits.filesets[i]
            mode = entry.address_mode

            if entry.is_dummy:
                logger.info("Fileset %d: [Dummy] - skipped extraction", i + 1)
                continue
            if mode in (AddressMode.DATASET_REF, AddressMode.INVALID):
                logger.warning("Fileset %d: [%s] - skipped extraction", i + 1, mode.label)
                continue
            if mode.is_external and not self.session.available(mode):
                logger.warning("Fileset %d: [%s] - missing %s, skipped", i + 1, mode.label, mode.store_name)
                continue

            path = self.output_path(entry, output_dir, used)
            if path is None:
                logger.warning("Fileset %d: [Invalid Names] - skipped extraction", i + 1)
                continue

            try:
                data, was_blz2, was_blz4 = self.extract_entry(i)
            except (MissingSource, UnsupportedAddressMode, ValueError) as e:
                logger.warning("Fileset %d: failed to extract to %s: %s", i + 1, path, e)
                continue

            self._fs.write_bytes(path, data)
            used.add(path)

            edit.filename = os.path.relpath(path, self.path.parent)
            edit.compressed_blz2 = was_blz2
            edit.compressed_blz4 = was_blz4
            if mode.is_external:
                self._store_index.setdefault(mode, {}).setdefault(entry.real_offset, []).append(edit.filename)

            if progress_callback:
                progress_callback(i, len(self.entries), str(path))
            yield i, path

    def build_store_index(self) -> Dict[str, List[dict]]:
        """Group extracted files by store and offset, per store file name.

        Only covers entries written by the last ``extract_all`` run.
        """
        index = {}
        for mode, offsets in self._store_index.items():
            index[mode.store_name] = [
                {"index": n + 1, "files": files, "realOffset": offset}
                for n, (offset, files) in enumerate(sorted(offsets.items()))
            ]
        return index

    def save_store_index(self, directory: Path) -> List[Path]:
        """Write one ``<store>Dict.json`` per store into ``directory``."""
        written = []
        for store_name, items in self.build_store_index().items():
            path = Path(directory) / f"{Path(store_name).stem}Dict.json"
            self._fs.write_bytes(path, json.dumps(items, indent=2).encode("utf-8"))
            logger.info("Wrote %s (%d offsets)", path, len(items))
            written.append(path)
        return written

    def list_files(self) -> List[str]:
        """List the names of all named entries."""
        names = []
        for entry in self.entries:
            if entry.names and entry.names.strings:
                record = entry.names
                names.append("/".join([*record.directories, record.filename]))
        return names

    def __repr__(self) -> str:
        return f"ResArchive(path={self.path}, entries={len(self.entries)})"
