"""Shared fixtures: database files written to tmp_path."""

from pathlib import Path

import pytest

from sample_databases import build_city_database


@pytest.fixture
def city_db_path(tmp_path: Path) -> Path:
    """City database file in an IPv6 tree."""
    path = tmp_path / "GeoIP2-City-Test.mmdb"
    path.write_bytes(build_city_database())
    return path


@pytest.fixture
def city_db_v4_path(tmp_path: Path) -> Path:
    """The same City data in an IPv4-only tree."""
    path = tmp_path / "GeoIP2-City-Test-v4.mmdb"
    path.write_bytes(build_city_database(ip_version=4))
    return path
