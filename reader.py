"""MaxMind DB reader.

Opens a database file, parses its metadata once and answers lookups:

    with Reader("GeoIP2-City.mmdb") as reader:
        record = reader.city("81.2.69.160")
        print(record.country.iso_code)

Lookups only read shared, immutable state and may run concurrently from many
threads. ``close()`` must only be called once they have finished.
"""

import ipaddress
import logging
from collections.abc import Iterator
from pathlib import Path
from typing import Any, BinaryIO, Self

from exceptions import AddressNotFoundError, ClosedDatabaseError, MaxMindDBError
from models.metadata import Metadata
from models.records import ASN, ISP, AnonymousIP, City, ConnectionType, Country, Domain
from storage.buffer import MODE_AUTO, Buffer, OpenMode
from storage.decoder import DEFAULT_MAX_DEPTH, Decoder
from storage.metadata_reader import read_metadata
from storage.tree import IPAddress, SearchTree

logger = logging.getLogger(__name__)


class Reader:
    """Read-only handle on one MaxMind DB file."""

    def __init__(
        self,
        database: Path | str | BinaryIO | bytes,
        mode: OpenMode = MODE_AUTO,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ):
        self._buffer = Buffer(database, mode)
        try:
            self._metadata = read_metadata(self._buffer)
        except MaxMindDBError:
            self._buffer.close()
            raise

        self._tree = SearchTree(self._buffer, self._metadata)
        self._decoder = Decoder(self._buffer, self._tree.data_section_start, max_depth=max_depth)

        logger.info(
            f"Opened {self._metadata.database_type} database {self._buffer.name} "
            f"(mode={self._buffer.mode.name}, ip_version={self._metadata.ip_version}, "
            f"node_count={self._metadata.node_count}, record_size={self._metadata.record_size})"
        )

    def metadata(self) -> Metadata:
        """Return the metadata of the database."""
        return self._metadata

    @property
    def closed(self) -> bool:
        return self._buffer.closed

    def _check_open(self) -> None:
        if self._buffer.closed:
            raise ClosedDatabaseError("Attempt to read from a closed MaxMind DB")

    def lookup(self, ip_address: str | IPAddress) -> Any:
        """Return the decoded record for an address.

        Raises AddressNotFoundError if the database holds no record for it.
        """
        record, prefix_len = self.lookup_with_prefix_len(ip_address)
        if record is None:
            raise AddressNotFoundError(str(ip_address), prefix_len)
        return record

    def get(self, ip_address: str | IPAddress) -> Any | None:
        """Return the decoded record for an address, or None if absent."""
        return self.lookup_with_prefix_len(ip_address)[0]

    def lookup_with_prefix_len(self, ip_address: str | IPAddress) -> tuple[Any | None, int]:
        """Return the record (or None) and the prefix length of its network."""
        self._check_open()
        result = self._tree.find(ip_address)
        if not result.found:
            return None, result.prefix_len
        return self.decode(result.data_offset), result.prefix_len

    def decode(self, data_offset: int) -> Any:
        """Decode the value at an offset within the data section."""
        self._check_open()
        return self._decoder.decode_value(data_offset)

    def networks(self) -> Iterator[tuple[ipaddress.IPv4Network | ipaddress.IPv6Network, Any]]:
        """Iterate over every network in the database with its record."""
        self._check_open()
        for network, data_offset in self._tree.iter_networks():
            yield network, self._decoder.decode_value(data_offset)

    def read_node(self, node_number: int) -> tuple[int, int]:
        """Return the (left, right) records of a search tree node."""
        self._check_open()
        return self._tree.read_node(node_number, 0), self._tree.read_node(node_number, 1)

    @property
    def search_tree(self) -> SearchTree:
        return self._tree

    def city(self, ip_address: str | IPAddress) -> City:
        return City.from_value(self.lookup(ip_address))

    def country(self, ip_address: str | IPAddress) -> Country:
        return Country.from_value(self.lookup(ip_address))

    def anonymous_ip(self, ip_address: str | IPAddress) -> AnonymousIP:
        return AnonymousIP.from_value(self.lookup(ip_address))

    def connection_type(self, ip_address: str | IPAddress) -> ConnectionType:
        return ConnectionType.from_value(self.lookup(ip_address))

    def domain(self, ip_address: str | IPAddress) -> Domain:
        return Domain.from_value(self.lookup(ip_address))

    def isp(self, ip_address: str | IPAddress) -> ISP:
        return ISP.from_value(self.lookup(ip_address))

    def asn(self, ip_address: str | IPAddress) -> ASN:
        return ASN.from_value(self.lookup(ip_address))

    def close(self) -> None:
        """Release the database file.

        Callers must make sure no lookup is still running; reads racing with
        close are not guarded against.
        """
        if not self._buffer.closed:
            self._buffer.close()
            logger.info(f"Closed database {self._buffer.name}")

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def open_database(database: Path | str | BinaryIO | bytes, mode: OpenMode = MODE_AUTO) -> Reader:
    """Open a MaxMind DB file for reading."""
    return Reader(database, mode)
