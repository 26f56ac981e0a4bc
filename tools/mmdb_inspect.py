#!/usr/bin/env python3
"""Database inspection tool for debugging MaxMind DB files.

Usage:
    uv run python tools/mmdb_inspect.py --db ./GeoIP2-City-Test.mmdb --summary
    uv run python tools/mmdb_inspect.py --db ./GeoIP2-City-Test.mmdb --lookup 81.2.69.160
    uv run python tools/mmdb_inspect.py --db ./GeoIP2-City-Test.mmdb --node 0
    uv run python tools/mmdb_inspect.py --db ./GeoIP2-City-Test.mmdb --networks --limit 20
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from pydantic_core import to_json

from exceptions import MaxMindDBError
from reader import Reader


def _dump(value) -> str:
    return to_json(value, indent=2, bytes_mode="base64").decode("utf-8")


def print_summary(reader: Reader) -> None:
    """Print metadata and derived layout sizes."""
    meta = reader.metadata()
    print("=" * 50)
    print("DATABASE SUMMARY")
    print("=" * 50)
    print()

    print("=== Metadata ===")
    print(f"  Database Type: {meta.database_type}")
    print(f"  Binary Format: {meta.binary_format_major_version}.{meta.binary_format_minor_version}")
    print(f"  Build Epoch: {meta.build_epoch} ({meta.build_time.isoformat()})")
    print(f"  IP Version: {meta.ip_version}")
    print(f"  Languages: {', '.join(meta.languages)}")
    for language, text in sorted(meta.description.items()):
        print(f"  Description [{language}]: {text}")
    print()

    print("=== Layout ===")
    print(f"  Node Count: {meta.node_count}")
    print(f"  Record Size: {meta.record_size} bits")
    print(f"  Node Size: {meta.node_byte_size} bytes")
    print(f"  Search Tree Size: {meta.search_tree_size} bytes")
    print(f"  Data Section Start: {meta.data_section_start}")
    print(f"  IPv4 Start Node: {reader.search_tree.ipv4_start_node()}")
    print()


def print_lookup(reader: Reader, ip_address: str) -> None:
    """Print the decoded record for an address."""
    record, prefix_len = reader.lookup_with_prefix_len(ip_address)
    print(f"=== Lookup {ip_address} (prefix length {prefix_len}) ===")
    if record is None:
        print("  (not found)")
        return
    print(_dump(record))


def print_node(reader: Reader, node_number: int) -> None:
    """Print both records of a search tree node."""
    node_count = reader.metadata().node_count
    print(f"=== Node {node_number} ===")
    for side, record in zip(("left", "right"), reader.read_node(node_number)):
        if record < node_count:
            kind = f"node {record}"
        elif record == node_count:
            kind = "empty"
        else:
            kind = f"data offset {reader.search_tree.data_offset(record)}"
        print(f"  {side}: {record} ({kind})")


def print_networks(reader: Reader, limit: int) -> None:
    """Print the first ``limit`` networks with their records."""
    print(f"=== Networks (first {limit}) ===")
    for count, (network, record) in enumerate(reader.networks()):
        if count >= limit:
            print("  ...")
            break
        print(f"{network}: {to_json(record, bytes_mode='base64').decode('utf-8')}")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Inspect MaxMind DB files")
    parser.add_argument("--db", required=True, help="Path to database file")
    parser.add_argument("--summary", action="store_true", help="Show metadata summary")
    parser.add_argument("--lookup", metavar="IP", help="Look up an IP address")
    parser.add_argument("--node", type=int, help="Show a search tree node")
    parser.add_argument("--networks", action="store_true", help="List networks")
    parser.add_argument("--limit", type=int, default=10, help="Networks to list (default 10)")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="[%(asctime)s] %(name)s: %(message)s")

    db_path = Path(args.db)
    if not db_path.exists():
        print(f"Error: Database file not found: {db_path}", file=sys.stderr)
        return 1

    try:
        with Reader(db_path) as reader:
            if args.lookup:
                print_lookup(reader, args.lookup)
            elif args.node is not None:
                print_node(reader, args.node)
            elif args.networks:
                print_networks(reader, args.limit)
            else:
                print_summary(reader)
    except MaxMindDBError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
