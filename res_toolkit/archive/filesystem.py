"""Filesystem access used by the reader and repacker."""

from pathlib import Path
from typing import Protocol, Union

PathLike = Union[str, Path]


class FileSystem(Protocol):
    """Minimal file access the toolkit needs."""

    def read_bytes(self, path: PathLike) -> bytes:
        ...

    def write_bytes(self, path: PathLike, data: bytes) -> None:
        ...

    def exists(self, path: PathLike) -> bool:
        ...


class LocalFileSystem:
    """FileSystem backed by the local disk."""

    def read_bytes(self, path: PathLike) -> bytes:
        return Path(path).read_bytes()

    def write_bytes(self, path: PathLike, data: bytes) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    def exists(self, path: PathLike) -> bool:
        return Path(path).is_file()
