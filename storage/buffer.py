"""Bounds-checked, read-only access to the bytes of a database file.

The buffer is either a read-only memory map of the file or the whole file
loaded into a ``bytes`` object. Every read is checked against the buffer size
so a corrupt offset raises ``TruncatedDataError`` instead of returning a short
slice.
"""

import logging
import mmap
from enum import IntEnum
from pathlib import Path
from typing import BinaryIO, Self

from exceptions import ClosedDatabaseError, InvalidDatabaseError, TruncatedDataError

logger = logging.getLogger(__name__)


class OpenMode(IntEnum):
    """How the database file is brought into memory."""

    AUTO = 0  # mmap, falling back to MEMORY when the file cannot be mapped
    MMAP = 2
    MEMORY = 8
    FD = 16  # read everything from an already open binary file object


MODE_AUTO = OpenMode.AUTO
MODE_MMAP = OpenMode.MMAP
MODE_MEMORY = OpenMode.MEMORY
MODE_FD = OpenMode.FD


class Buffer:
    """Read-only byte range backing a database.

    The buffer never changes after it is opened, so reads may run from any
    number of threads. ``close()`` must not race with in-flight reads.
    """

    def __init__(self, database: Path | str | BinaryIO | bytes, mode: OpenMode = MODE_AUTO):
        self.mode = OpenMode(mode)
        self._data: mmap.mmap | bytes | None = None

        if isinstance(database, (bytes, bytearray, memoryview)):
            # Raw bytes are always held in memory
            self.mode = MODE_MEMORY
            self.name = "<bytes>"
            self._data = bytes(database)
        elif self.mode == MODE_FD:
            self.name = getattr(database, "name", None)
            self._data = database.read()
        elif self.mode == MODE_MEMORY:
            self.name = str(database)
            with open(database, "rb") as db_file:
                self._data = db_file.read()
        elif self.mode in (MODE_MMAP, MODE_AUTO):
            self.name = str(database)
            self._data = self._map(database)
        else:
            raise ValueError(f"Unsupported open mode: {mode}")

        self._size = len(self._data)
        logger.debug(f"Opened buffer {self.name} ({self._size} bytes, mode={self.mode.name})")

    def _map(self, path: Path | str) -> mmap.mmap | bytes:
        with open(path, "rb") as db_file:
            try:
                return mmap.mmap(db_file.fileno(), 0, access=mmap.ACCESS_READ)
            except ValueError as e:
                # mmap refuses empty files
                if self.mode == MODE_MMAP:
                    raise InvalidDatabaseError(f"Cannot memory-map {path}: {e}") from e
                logger.debug(f"mmap failed for {path} ({e}), loading into memory")
                return db_file.read()

    @classmethod
    def from_bytes(cls, data: bytes) -> Self:
        """Wrap an in-memory byte string."""
        return cls(data, MODE_MEMORY)

    @property
    def size(self) -> int:
        return self._size

    @property
    def closed(self) -> bool:
        return self._data is None

    def _check_open(self) -> mmap.mmap | bytes:
        if self._data is None:
            raise ClosedDatabaseError("Attempt to read from a closed database")
        return self._data

    def read(self, offset: int, length: int) -> bytes:
        """Return ``length`` bytes starting at ``offset``."""
        data = self._check_open()
        if offset < 0 or length < 0 or offset + length > self._size:
            raise TruncatedDataError(offset, length, self._size)
        return data[offset : offset + length]

    def read_byte(self, offset: int) -> int:
        """Return the single byte at ``offset`` as an int."""
        data = self._check_open()
        if offset < 0 or offset >= self._size:
            raise TruncatedDataError(offset, 1, self._size)
        return data[offset]

    def rfind(self, needle: bytes, start: int = 0) -> int:
        """Offset of the last occurrence of ``needle`` at or after ``start``, or -1."""
        data = self._check_open()
        return data.rfind(needle, max(0, start))

    def close(self) -> None:
        """Release the memory map. Reads after this raise ClosedDatabaseError."""
        if isinstance(self._data, mmap.mmap):
            self._data.close()
        self._data = None

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
