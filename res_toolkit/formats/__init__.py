"""RES file format parsers."""

from .address import AddressMode
from .interchange import EditDescriptor, EntryEdit
from .names import NameRecord
from .res import ArchiveHeader, DataSetGroup, Descriptor, FilesetEntry
from .rtbl import RtblEntry, RtblTable

__all__ = [
    "AddressMode",
    "ArchiveHeader",
    "DataSetGroup",
    "Descriptor",
    "EditDescriptor",
    "EntryEdit",
    "FilesetEntry",
    "NameRecord",
    "RtblEntry",
    "RtblTable",
]
