"""Binary search tree over IP address bits.

The tree region holds ``node_count`` fixed-size nodes, each with a left
(bit 0) and right (bit 1) record. Record layouts by record size:

    24 bits: [left:3][right:3]
    28 bits: [left low 24:3][left high 4 | right high 4:1][right low 24:3]
    32 bits: [left:4][right:4]

A record value below ``node_count`` is the next node, equal to it means no
data, and above it points into the data section at
``value - node_count - 16``.

An IPv6 tree stores IPv4 addresses under ``::/96``; IPv4 lookups start at the
node reached by following 96 left records from the root.

Struct format reference:
    >  = big-endian
    I  = unsigned int (4 bytes)
"""

import ipaddress
import logging
import struct
from collections.abc import Iterator
from dataclasses import dataclass

from exceptions import InvalidDatabaseError, InvalidInputError
from models.metadata import DATA_SECTION_SEPARATOR_SIZE, Metadata
from storage.buffer import Buffer

logger = logging.getLogger(__name__)

IPV4_BIT_COUNT = 32
IPV6_BIT_COUNT = 128
IPV4_SUBTREE_DEPTH = IPV6_BIT_COUNT - IPV4_BIT_COUNT  # 96
IPV4_MAX = 2**32 - 1

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address


@dataclass
class LookupResult:
    """Result of walking the tree for one address."""

    pointer: int | None  # Raw record value, None when not found
    prefix_len: int  # Bits consumed, in the address family of the input
    data_offset: int | None = None  # Offset within the data section

    @property
    def found(self) -> bool:
        return self.pointer is not None


def parse_address(ip_address: str | IPAddress) -> IPAddress:
    """Parse address text, raising InvalidInputError on bad input."""
    if isinstance(ip_address, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        return ip_address
    try:
        return ipaddress.ip_address(ip_address)
    except ValueError as e:
        raise InvalidInputError(f"{ip_address!r} is not a valid IP address") from e


class SearchTree:
    """Walks the search tree of an open database.

    Only reads the shared buffer; the IPv4 start node is computed once and
    cached, which is safe to race on since every walk yields the same node.
    """

    def __init__(self, buffer: Buffer, metadata: Metadata):
        self._buffer = buffer
        self.metadata = metadata
        self.node_count = metadata.node_count
        self.record_size = metadata.record_size
        self.node_byte_size = metadata.node_byte_size
        self.data_section_start = metadata.search_tree_size + DATA_SECTION_SEPARATOR_SIZE
        self._ipv4_start: int | None = None

    def read_node(self, node_number: int, bit: int) -> int:
        """Read the left (bit 0) or right (bit 1) record of a node."""
        if node_number < 0 or node_number >= self.node_count:
            raise InvalidDatabaseError(f"Invalid node {node_number} in search tree of {self.node_count} nodes")

        base_offset = node_number * self.node_byte_size

        if self.record_size == 24:
            node_bytes = b"\x00" + self._buffer.read(base_offset + bit * 3, 3)
        elif self.record_size == 28:
            node_bytes = self._buffer.read(base_offset, 7)
            middle = node_bytes[3]
            if bit:
                middle &= 0x0F
                low = node_bytes[4:7]
            else:
                middle = (middle & 0xF0) >> 4
                low = node_bytes[0:3]
            node_bytes = bytes([middle]) + low
        elif self.record_size == 32:
            node_bytes = self._buffer.read(base_offset + bit * 4, 4)
        else:
            raise InvalidDatabaseError(f"Unknown record size: {self.record_size}")

        return struct.unpack(">I", node_bytes)[0]

    def ipv4_start_node(self) -> int:
        """Node where IPv4 lookups begin (0 for IPv4 trees)."""
        if self.metadata.ip_version == 4:
            return 0
        if self._ipv4_start is not None:
            return self._ipv4_start

        node = 0
        for _ in range(IPV4_SUBTREE_DEPTH):
            if node >= self.node_count:
                break
            node = self.read_node(node, 0)
        logger.debug(f"IPv4 start node is {node}")
        self._ipv4_start = node
        return node

    def find(self, ip_address: str | IPAddress) -> LookupResult:
        """Walk the tree for an address.

        Raises InvalidInputError for malformed input or an IPv6 address in an
        IPv4 tree, and InvalidDatabaseError if the walk ends on a node or on a
        data pointer outside the file.
        """
        address = parse_address(ip_address)

        if address.version == 6 and self.metadata.ip_version == 4:
            raise InvalidInputError(
                f"Error looking up {address}. You attempted to look up an IPv6 address in an IPv4-only database."
            )

        packed = address.packed
        bit_count = len(packed) * 8
        node = self.ipv4_start_node() if bit_count == IPV4_BIT_COUNT else 0

        prefix_len = 0
        while prefix_len < bit_count and node < self.node_count:
            bit = 1 & (packed[prefix_len >> 3] >> (7 - (prefix_len % 8)))
            node = self.read_node(node, bit)
            prefix_len += 1

        if node == self.node_count:
            return LookupResult(pointer=None, prefix_len=prefix_len)
        if node > self.node_count:
            return LookupResult(pointer=node, prefix_len=prefix_len, data_offset=self.data_offset(node))

        raise InvalidDatabaseError("Invalid node in search tree")

    def data_offset(self, pointer: int) -> int:
        """Convert a data record value to an offset within the data section."""
        offset = pointer - self.node_count - DATA_SECTION_SEPARATOR_SIZE
        if offset < 0 or self.data_section_start + offset >= self._buffer.size:
            raise InvalidDatabaseError("The MaxMind DB file's search tree is corrupt")
        return offset

    def iter_networks(self) -> Iterator[tuple[ipaddress.IPv4Network | ipaddress.IPv6Network, int]]:
        """Yield ``(network, data_offset)`` for every record holding data.

        In IPv6 trees, networks under ``::/96`` are reported as IPv4 networks
        and other paths aliased onto the IPv4 subtree are skipped.
        """
        bit_count = IPV6_BIT_COUNT if self.metadata.ip_version == 6 else IPV4_BIT_COUNT
        ipv4_start = self.ipv4_start_node()
        skip_aliases = self.metadata.ip_version == 6 and ipv4_start < self.node_count
        yield from self._walk(0, 0, 0, bit_count, ipv4_start if skip_aliases else None)

    def _walk(self, node: int, depth: int, ip_acc: int, bit_count: int, ipv4_start: int | None):
        if ipv4_start is not None and ip_acc != 0 and node == ipv4_start:
            return

        if node > self.node_count:
            address = ip_acc << (bit_count - depth)
            if bit_count == IPV6_BIT_COUNT and address <= IPV4_MAX and depth >= IPV4_SUBTREE_DEPTH:
                network = ipaddress.IPv4Network((address, depth - IPV4_SUBTREE_DEPTH))
            elif bit_count == IPV6_BIT_COUNT:
                network = ipaddress.IPv6Network((address, depth))
            else:
                network = ipaddress.IPv4Network((address, depth))
            yield network, self.data_offset(node)
        elif node < self.node_count:
            if depth >= bit_count:
                raise InvalidDatabaseError("Invalid node in search tree")
            left = self.read_node(node, 0)
            yield from self._walk(left, depth + 1, ip_acc << 1, bit_count, ipv4_start)
            right = self.read_node(node, 1)
            yield from self._walk(right, depth + 1, (ip_acc << 1) | 1, bit_count, ipv4_start)
