"""External stores (package/data/patch .rdp) and the repack session.

A ``StoreSession`` owns one in-memory image per store. Every archive
repacked within the same session shares these images and their append
cursors, so payloads relocated from several archives never collide.
"""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

from ..errors import MissingSource
from ..formats.address import STORE_FILES, STORE_UNIT, AddressMode
from ..utils.binary import align
from .filesystem import FileSystem, LocalFileSystem, PathLike

logger = logging.getLogger(__name__)


class ExternalStore:
    """In-memory image of one external store.

    Reads always come from the original bytes; writes go to a separate
    output buffer and are journaled so a failed repack can be undone.
    """

    def __init__(self, mode: AddressMode, data: bytes, path: Optional[Path] = None):
        self.mode = mode
        self.path = Path(path) if path else None
        self._original = bytes(data)
        self._buffer = bytearray(data)
        self._cursor = len(data)
        self._journal: List[Tuple[int, bytes, int]] = []

    @property
    def original(self) -> bytes:
        return self._original

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def modified(self) -> bool:
        return bool(self._journal)

    def getvalue(self) -> bytes:
        return bytes(self._buffer)

    def read(self, offset: int, size: int) -> bytes:
        """Read original bytes."""
        if offset + size > len(self._original):
            raise MissingSource(
                f"{self.mode.store_name}: 0x{offset:X}+{size} is past the end of the store"
            )
        return self._original[offset : offset + size]

    def is_zero(self, offset: int, length: int) -> bool:
        """Check that the current image holds only zeros in the range.

        Bytes past the end of the image count as zero.
        """
        return not any(self._buffer[offset : offset + length])

    def write(self, offset: int, data: bytes) -> None:
        self._journal.append((offset, bytes(self._buffer[offset : offset + len(data)]), len(self._buffer)))
        if offset > len(self._buffer):
            self._buffer.extend(bytes(offset - len(self._buffer)))
        self._buffer[offset : offset + len(data)] = data
        self._cursor = max(self._cursor, offset + len(data))

    def overwrite(self, offset: int, data: bytes, original_size: int) -> None:
        """Replace an entry in place, zeroing any leftover original bytes."""
        self.write(offset, data)
        if original_size > len(data):
            self.write(offset + len(data), bytes(original_size - len(data)))

    def append(self, data: bytes, alignment: int = STORE_UNIT) -> int:
        """Write data at the cursor rounded up to ``alignment``."""
        offset = align(self._cursor, alignment)
        self.write(offset, data)
        logger.debug("%s: appended %d bytes at 0x%X", self.mode.store_name, len(data), offset)
        return offset

    def mark(self) -> Tuple[int, int]:
        return len(self._journal), self._cursor

    def rollback(self, mark: Tuple[int, int]) -> None:
        journal_length, cursor = mark
        while len(self._journal) > journal_length:
            offset, previous, length = self._journal.pop()
            self._buffer[offset : offset + len(previous)] = previous
            del self._buffer[length:]
        self._cursor = cursor


class StoreSession:
    """External stores shared by every repack in one session.

    Archives that share a session must be repacked one after another,
    deepest nested archive first.
    """

    def __init__(self, stores: Optional[Dict[AddressMode, ExternalStore]] = None):
        self._stores: Dict[AddressMode, ExternalStore] = dict(stores or {})

    @classmethod
    def open(cls, directory: PathLike, fs: Optional[FileSystem] = None) -> "StoreSession":
        """Load every store file present in ``directory``."""
        fs = fs or LocalFileSystem()
        directory = Path(directory)
        stores = {}
        for mode, name in STORE_FILES.items():
            path = directory / name
            if fs.exists(path):
                stores[mode] = ExternalStore(mode, fs.read_bytes(path), path)
                logger.info("Loaded %s (%d bytes)", path, len(stores[mode].original))
            else:
                logger.debug("Store %s not found", path)
        return cls(stores)

    def available(self, mode: AddressMode) -> bool:
        return mode in self._stores

    def get(self, mode: AddressMode) -> ExternalStore:
        try:
            return self._stores[mode]
        except KeyError:
            label = mode.store_name if mode.is_external else mode.label
            raise MissingSource(f"External store {label} is not available") from None

    def __iter__(self) -> Iterator[ExternalStore]:
        return iter(self._stores.values())

    @contextmanager
    def transaction(self) -> Iterator["StoreSession"]:
        """Undo every store write made inside the block if it raises."""
        marks = {mode: store.mark() for mode, store in self._stores.items()}
        try:
            yield self
        except BaseException:
            for mode, mark in marks.items():
                self._stores[mode].rollback(mark)
            raise

    def write_modified(self, fs: Optional[FileSystem] = None, suffix: str = "_new") -> List[Path]:
        """Write each modified store next to its source as ``<stem><suffix>.rdp``."""
        fs = fs or LocalFileSystem()
        written = []
        for store in self._stores.values():
            if not store.modified:
                continue
            source = store.path or Path(store.mode.store_name)
            output = source.with_name(f"{source.stem}{suffix}{source.suffix}")
            fs.write_bytes(output, store.getvalue())
            logger.info("Wrote %s", output)
            written.append(output)
        return written
