"""Database metadata model.

The metadata block sits at the tail of the file, after the data section:

    [search tree][16 zero bytes][data section][\\xAB\\xCD\\xEFMaxMind.com][metadata map]

The map is encoded with the same self-describing format as the data section.
Pointers inside it are relative to the first byte after the marker.
"""

from datetime import datetime, timezone
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, field_validator

# Marker that precedes the metadata map
METADATA_START_MARKER = b"\xab\xcd\xefMaxMind.com"

# Zero bytes between the search tree and the data section
DATA_SECTION_SEPARATOR_SIZE = 16

VALID_RECORD_SIZES = (24, 28, 32)
VALID_IP_VERSIONS = (4, 6)


class Metadata(BaseModel):
    """Metadata decoded from a MaxMind DB file.

    Parsed once when the database is opened and shared by every lookup.

    Fields:
        binary_format_major_version: Major version of the binary format (2)
        binary_format_minor_version: Minor version of the binary format
        build_epoch: Unix time the database was built
        database_type: Record shape identifier, e.g. "GeoIP2-City"
        description: Language code -> description text
        ip_version: 4 for IPv4-only trees, 6 for trees holding both families
        languages: Language codes the names maps may contain
        node_count: Number of nodes in the search tree
        record_size: Bits per node record (24, 28 or 32)
    """

    model_config = ConfigDict(frozen=True, strict=True)

    SEPARATOR_SIZE: ClassVar[int] = DATA_SECTION_SEPARATOR_SIZE

    binary_format_major_version: int
    binary_format_minor_version: int
    build_epoch: int
    database_type: str
    description: dict[str, str]
    ip_version: int
    languages: list[str]
    node_count: int
    record_size: int

    @field_validator("record_size")
    @classmethod
    def validate_record_size(cls, v: int) -> int:
        if v not in VALID_RECORD_SIZES:
            raise ValueError(f"Record size must be one of {VALID_RECORD_SIZES}, got {v}")
        return v

    @field_validator("ip_version")
    @classmethod
    def validate_ip_version(cls, v: int) -> int:
        if v not in VALID_IP_VERSIONS:
            raise ValueError(f"IP version must be 4 or 6, got {v}")
        return v

    @field_validator("node_count", "build_epoch")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"Value must not be negative, got {v}")
        return v

    @property
    def node_byte_size(self) -> int:
        """Size of one search tree node in bytes."""
        return self.record_size * 2 // 8

    @property
    def search_tree_size(self) -> int:
        """Size of the search tree region in bytes."""
        return self.node_count * self.node_byte_size

    @property
    def data_section_start(self) -> int:
        """Absolute offset of the first data section byte."""
        return self.search_tree_size + DATA_SECTION_SEPARATOR_SIZE

    @property
    def build_time(self) -> datetime:
        return datetime.fromtimestamp(self.build_epoch, tz=timezone.utc)
