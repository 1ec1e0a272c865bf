"""Payload codecs."""

from . import blz2
from .blz4 import AlternateCodec, Blz4Codec

__all__ = ["blz2", "AlternateCodec", "Blz4Codec"]
