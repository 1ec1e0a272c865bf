"""Error taxonomy for RES parsing and repacking.

Two families:

- ``FatalError`` aborts the whole operation; nothing is written.
- ``SkipError`` is scoped to a single entry; the repacker records it and
  moves on to the next entry, leaving the failing one unchanged.
"""

from typing import Optional


class ResError(Exception):
    """Base class for all RES toolkit errors."""


class FatalError(ResError):
    """An error that aborts the current parse, decode or repack."""


class StructuralError(FatalError, ValueError):
    """Bad magic, or a header/table truncated by the end of the stream."""


class ValidationMismatch(FatalError, ValueError):
    """The edit descriptor disagrees with the live archive on a structural field."""


class IncompleteBlock(FatalError, ValueError):
    """A compressed sub-chunk is truncated or cannot be inflated."""


class SkipError(ResError):
    """A per-entry failure; the entry is left at its prior state."""

    def __init__(self, message: str, index: Optional[int] = None):
        super().__init__(message)
        self.index = index

    def __str__(self) -> str:
        message = super().__str__()
        if self.index is None:
            return message
        return f"Fileset {self.index + 1}: {message}"


class MissingSource(SkipError):
    """A replacement file or external store is absent or unreadable."""


class UnsupportedAddressMode(SkipError):
    """An address mode that cannot be used where a concrete one is required."""


class InsufficientPadding(SkipError):
    """Growing an entry in place would overwrite non-zero store bytes."""


class UnencodablePayload(SkipError):
    """A replacement cannot be encoded with the requested codec."""
