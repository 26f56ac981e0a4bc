"""Storage layer: file buffer, metadata parsing, search tree and data decoding."""

from storage.buffer import MODE_AUTO, MODE_FD, MODE_MEMORY, MODE_MMAP, Buffer, OpenMode
from storage.decoder import DataType, Decoder
from storage.metadata_reader import find_metadata_start, read_metadata
from storage.tree import LookupResult, SearchTree

__all__ = [
    "Buffer",
    "OpenMode",
    "MODE_AUTO",
    "MODE_MMAP",
    "MODE_MEMORY",
    "MODE_FD",
    "DataType",
    "Decoder",
    "find_metadata_start",
    "read_metadata",
    "LookupResult",
    "SearchTree",
]
