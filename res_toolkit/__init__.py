"""RES Toolkit - Parse, extract and repack RES game archives."""

__version__ = "0.1.0"
