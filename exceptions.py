"""Errors raised by the MaxMind DB reader.

A missing or unreadable file surfaces as the builtin ``OSError`` from
``open()`` and is not wrapped here.
"""


class MaxMindDBError(Exception):
    """Base class for every error raised by the reader."""


class InvalidDatabaseError(MaxMindDBError):
    """The database file is structurally corrupt."""


class TruncatedDataError(InvalidDatabaseError):
    """A read would run past the end of the database buffer."""

    def __init__(self, offset: int, length: int, size: int):
        self.offset = offset
        self.length = length
        self.size = size
        super().__init__(
            f"Read of {length} bytes at offset {offset} exceeds buffer of {size} bytes"
        )


class RecordTypeError(InvalidDatabaseError):
    """A decoded field does not have the type its record shape declares."""


class InvalidInputError(MaxMindDBError, ValueError):
    """The IP address is malformed or cannot be looked up in this database."""


class AddressNotFoundError(MaxMindDBError):
    """The search tree holds no record for the address."""

    def __init__(self, ip_address: str, prefix_len: int = 0):
        self.ip_address = ip_address
        self.prefix_len = prefix_len
        super().__init__(f"The address {ip_address} is not in the database")


class ClosedDatabaseError(MaxMindDBError):
    """The database was used after ``close()``."""
