"""RES archive reading and repacking."""

from .filesystem import FileSystem, LocalFileSystem
from .reader import ResArchive
from .repacker import RelocationRule, RepackOptions, RepackResult, Repacker, Skip
from .stores import ExternalStore, StoreSession

__all__ = [
    "ExternalStore",
    "FileSystem",
    "LocalFileSystem",
    "RelocationRule",
    "RepackOptions",
    "RepackResult",
    "Repacker",
    "ResArchive",
    "Skip",
    "StoreSession",
]
