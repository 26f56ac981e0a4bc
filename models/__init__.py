"""Pydantic models for database metadata and projected records."""

from models.metadata import DATA_SECTION_SEPARATOR_SIZE, METADATA_START_MARKER, Metadata
from models.records import (
    ASN,
    ISP,
    AnonymousIP,
    City,
    ConnectionType,
    Country,
    Domain,
    Record,
)

__all__ = [
    "Metadata",
    "METADATA_START_MARKER",
    "DATA_SECTION_SEPARATOR_SIZE",
    "Record",
    "City",
    "Country",
    "AnonymousIP",
    "ConnectionType",
    "Domain",
    "ISP",
    "ASN",
]
