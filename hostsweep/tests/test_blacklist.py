"""
Unit tests for the IP blacklist module.
"""

import json

import pytest
from unittest.mock import MagicMock

from modules.blacklist import IpBlacklist, is_valid_ipv4
from modules.database import ConfigStore, DatabaseManager


@pytest.fixture
def store():
    """Config store on a fresh in-memory database."""
    return ConfigStore(DatabaseManager("sqlite:///:memory:", echo=False))


@pytest.fixture
def blacklist(store):
    return IpBlacklist(store)


class TestIpv4Validation:
    """Tests for strict IPv4 validation."""

    @pytest.mark.parametrize("ip", ["192.168.1.5", "0.0.0.0", "255.255.255.255", "10.0.0.1"])
    def test_valid(self, ip):
        assert is_valid_ipv4(ip)

    @pytest.mark.parametrize("ip", [
        "999.1.1.1", "1.2.3", "1.2.3.4.5", "a.b.c.d", " 1.2.3.4", "1.2.3.4\n", "", None, 12,
        "\u0661\u0669\u0662.168.1.5", "192.168.1.\uff15",
    ])
    def test_invalid(self, ip):
        assert not is_valid_ipv4(ip)


class TestIpBlacklist:
    """Tests for blacklist CRUD."""

    def test_empty_by_default(self, blacklist):
        """Test a fresh blacklist is empty."""
        assert blacklist.list() == []

    def test_add_invalid_rejected(self, blacklist):
        """Test invalid IPs are rejected and the list is unchanged."""
        assert blacklist.add("999.1.1.1") is False
        assert blacklist.list() == []

    def test_add_non_ascii_digits_rejected(self, blacklist):
        """Test addresses written with non-ASCII digits never reach the list."""
        assert blacklist.add("١٩٢.168.1.5") is False
        assert blacklist.list() == []

    def test_add_twice_keeps_one_entry(self, blacklist):
        """Test adding the same IP twice is idempotent."""
        assert blacklist.add("192.168.1.5") is True
        assert blacklist.add("192.168.1.5") is True
        assert blacklist.list() == ["192.168.1.5"]

    def test_add_strips_whitespace(self, blacklist):
        """Test surrounding whitespace is ignored."""
        assert blacklist.add(" 192.168.1.5 ") is True
        assert blacklist.is_blacklisted("192.168.1.5")

    def test_remove(self, blacklist):
        """Test removal and idempotent removal of absent IPs."""
        blacklist.add("192.168.1.5")
        assert blacklist.remove("192.168.1.5") is True
        assert blacklist.remove("192.168.1.5") is True
        assert blacklist.list() == []

    def test_remove_empty_string(self, blacklist):
        """Test removing an empty value fails."""
        assert blacklist.remove("") is False

    def test_is_blacklisted_malformed_input(self, blacklist):
        """Test malformed input is never blacklisted and never raises."""
        blacklist.add("192.168.1.5")
        assert blacklist.is_blacklisted(None) is False
        assert blacklist.is_blacklisted(42) is False
        assert blacklist.is_blacklisted("garbage") is False

    def test_filter(self, blacklist):
        """Test filtering a target list keeps order."""
        blacklist.add("192.168.1.2")
        assert blacklist.filter(["192.168.1.3", "192.168.1.2", "192.168.1.1"]) == [
            "192.168.1.3",
            "192.168.1.1",
        ]

    def test_persisted_as_json_array(self, blacklist, store):
        """Test the stored representation is a JSON array."""
        blacklist.add("10.0.0.1")
        assert json.loads(store.get("network_scan_blacklist")) == ["10.0.0.1"]


class TestCorruptedBlacklist:
    """Tests for degrading gracefully on bad stored data."""

    def test_invalid_json(self, blacklist, store):
        """Test unparseable JSON reads as an empty list."""
        store.set("network_scan_blacklist", "[not json")
        assert blacklist.list() == []
        assert blacklist.is_blacklisted("192.168.1.5") is False

    def test_not_a_list(self, blacklist, store):
        """Test a non-array value reads as an empty list."""
        store.set("network_scan_blacklist", json.dumps({"ip": "192.168.1.5"}))
        assert blacklist.list() == []

    def test_bad_entries_dropped(self, blacklist, store):
        """Test non-strings, invalid IPs and duplicates are cleaned up."""
        store.set("network_scan_blacklist", json.dumps(
            ["192.168.1.5", 7, " 192.168.1.5 ", "300.1.1.1", "", "10.0.0.1"]
        ))
        assert blacklist.list() == ["192.168.1.5", "10.0.0.1"]

    def test_add_after_corruption(self, blacklist, store):
        """Test adding to a corrupted list starts a fresh list."""
        store.set("network_scan_blacklist", "oops")
        assert blacklist.add("192.168.1.9") is True
        assert blacklist.list() == ["192.168.1.9"]

    def test_save_failure(self):
        """Test a failing store write is reported as False."""
        store = MagicMock()
        store.get.return_value = None
        store.set.return_value = False
        assert IpBlacklist(store).add("192.168.1.5") is False
