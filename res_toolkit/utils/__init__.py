"""Shared binary helpers."""

from .binary import BinaryReader, BinaryWriter, align

__all__ = ["BinaryReader", "BinaryWriter", "align"]
