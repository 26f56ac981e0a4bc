"""Locating and decoding the metadata block at the tail of a database."""

import logging

from pydantic import ValidationError

from exceptions import InvalidDatabaseError
from models.metadata import DATA_SECTION_SEPARATOR_SIZE, METADATA_START_MARKER, Metadata
from storage.buffer import Buffer
from storage.decoder import Decoder

logger = logging.getLogger(__name__)

# The marker must appear within this many bytes of the end of the file
METADATA_MAX_SIZE = 128 * 1024


def find_metadata_start(buffer: Buffer) -> int:
    """Return the offset of the first byte after the last metadata marker."""
    marker_offset = buffer.rfind(METADATA_START_MARKER, buffer.size - METADATA_MAX_SIZE)
    if marker_offset == -1:
        raise InvalidDatabaseError(
            f"Error opening database file ({buffer.name}). Is this a valid MaxMind DB file?"
        )
    logger.debug(f"Metadata marker found at offset {marker_offset}")
    return marker_offset + len(METADATA_START_MARKER)


def read_metadata(buffer: Buffer) -> Metadata:
    """Decode and validate the metadata map.

    Raises InvalidDatabaseError if the marker is missing, the metadata is not
    a map, a required field is absent or mistyped, or the search tree it
    describes does not fit before the metadata.
    """
    metadata_start = find_metadata_start(buffer)
    decoder = Decoder(buffer, pointer_base=metadata_start)
    raw = decoder.decode_value(0)

    if not isinstance(raw, dict):
        raise InvalidDatabaseError(f"Metadata must be a map, got {type(raw).__name__}")

    try:
        metadata = Metadata.model_validate(raw)
    except ValidationError as e:
        fields = ", ".join(".".join(str(part) for part in err["loc"]) or "<root>" for err in e.errors())
        raise InvalidDatabaseError(f"Invalid metadata ({fields}): {e.errors()[0]['msg']}") from e

    marker_offset = metadata_start - len(METADATA_START_MARKER)
    if metadata.search_tree_size + DATA_SECTION_SEPARATOR_SIZE > marker_offset:
        raise InvalidDatabaseError(
            f"Search tree of {metadata.node_count} nodes does not fit before the metadata at offset {marker_offset}"
        )

    return metadata
