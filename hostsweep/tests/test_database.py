"""
Unit tests for the database module.
"""

import pytest
from datetime import datetime, timedelta
from unittest.mock import patch

from modules.database import (
    DatabaseManager,
    ConfigStore,
    HostRecord,
    HostHistory,
    ip_sort_key,
    sort_hosts,
    init_database,
)


# ─── Fixtures ────────────────────────────────────────────────────────────────


@pytest.fixture
def db():
    """Create a fresh in-memory database manager for each test."""
    manager = DatabaseManager("sqlite:///:memory:", echo=False)
    return manager


@pytest.fixture
def db_with_hosts(db):
    """Database pre-populated with a few hosts."""
    db.upsert_host("192.168.1.1", mac="00:11:22:33:44:55", hostname="router", vendor="Netgear", status="online")
    db.upsert_host("192.168.1.10", mac="AA:BB:CC:DD:EE:FF", hostname="laptop", vendor="Dell", status="online")
    db.upsert_host("192.168.1.2", hostname="--", status="offline")
    db.upsert_host("10.0.0.5", hostname="nas", vendor="Synology", status="unknown")
    return db


# ─── Upsert Tests ────────────────────────────────────────────────────────────


class TestUpsertHost:
    """Tests for creating and updating host records."""

    def test_create_host(self, db):
        """Test that the first upsert creates a record with scan_count 1."""
        host = db.upsert_host("192.168.1.50", mac="00:11:22:33:44:55", status="online", ping_latency_ms=3.0)

        assert host.ip == "192.168.1.50"
        assert host.mac == "00:11:22:33:44:55"
        assert host.status == "online"
        assert host.ping_latency_ms == 3.0
        assert host.scan_count == 1
        assert host.first_seen == host.last_seen

    def test_default_status_is_unknown(self, db):
        """Test that hosts created without a status are unknown."""
        host = db.upsert_host("192.168.1.50")
        assert host.status == "unknown"

    def test_second_upsert_increments_scan_count_once(self, db):
        """Test that a repeated upsert bumps scan_count and keeps first_seen."""
        first = db.upsert_host("192.168.1.50", status="online")
        second = db.upsert_host("192.168.1.50", status="online")

        assert second.scan_count == first.scan_count + 1
        assert second.first_seen == first.first_seen
        assert second.last_seen >= second.first_seen

    def test_upsert_keeps_fields_not_provided(self, db):
        """Test that None fields do not erase stored values."""
        db.upsert_host("192.168.1.50", hostname="printer", vendor="HP", hostname_source="scanner")
        host = db.upsert_host("192.168.1.50", status="offline")

        assert host.hostname == "printer"
        assert host.vendor == "HP"
        assert host.hostname_source == "scanner"
        assert host.status == "offline"

    def test_additional_info_roundtrip(self, db):
        """Test that additional_info is stored as a dictionary."""
        db.upsert_host("192.168.1.50", additional_info={"openPorts": [{"port": 22, "protocol": "tcp"}]})
        host = db.get_host("192.168.1.50")

        assert host.additional_info == {"openPorts": [{"port": 22, "protocol": "tcp"}]}
        assert host.to_dict()["additional_info"]["openPorts"][0]["port"] == 22

    def test_unreadable_additional_info_reads_empty(self, db):
        """Test that corrupted additional_info JSON reads as an empty dict."""
        db.upsert_host("192.168.1.50")
        session = db.get_session()
        try:
            session.query(HostRecord).filter(HostRecord.ip == "192.168.1.50").update(
                {HostRecord.additional_info_json: "{broken"}, synchronize_session=False
            )
            session.commit()
        finally:
            session.close()

        assert db.get_host("192.168.1.50").additional_info == {}

    def test_update_host_does_not_count_scan(self, db):
        """Test that update_host changes fields without touching scan_count."""
        db.upsert_host("192.168.1.50", status="online")
        host = db.update_host("192.168.1.50", additional_info={"lastPortScan": "now"})

        assert host.scan_count == 1
        assert host.additional_info == {"lastPortScan": "now"}

    def test_update_missing_host_returns_none(self, db):
        """Test that updating an unknown IP returns None."""
        assert db.update_host("192.168.1.99", status="online") is None

    def test_update_rejects_unknown_field(self, db):
        """Test that update_host refuses columns that do not exist."""
        db.upsert_host("192.168.1.50")
        with pytest.raises(ValueError):
            db.update_host("192.168.1.50", colour="blue")

    def test_upsert_rejects_unknown_status(self, db):
        with pytest.raises(ValueError):
            db.upsert_host("192.168.1.50", status="sleeping")
        assert db.get_host("192.168.1.50") is None

    def test_get_missing_host(self, db):
        """Test that a missing host reads as None."""
        assert db.get_host("192.168.1.99") is None


# ─── Query Tests ─────────────────────────────────────────────────────────────


class TestFindHosts:
    """Tests for filtering, sorting and pagination."""

    def test_filter_by_status(self, db_with_hosts):
        """Test exact status filtering."""
        hosts = db_with_hosts.find_hosts(status="online")
        assert {h.ip for h in hosts} == {"192.168.1.1", "192.168.1.10"}

    def test_filter_by_ip_prefix(self, db_with_hosts):
        """Test IP prefix filtering."""
        hosts = db_with_hosts.find_hosts(ip_prefix="10.")
        assert [h.ip for h in hosts] == ["10.0.0.5"]

    def test_search_matches_vendor_and_mac(self, db_with_hosts):
        """Test free-text search is case-insensitive across columns."""
        assert [h.ip for h in db_with_hosts.find_hosts(search="synology")] == ["10.0.0.5"]
        assert [h.ip for h in db_with_hosts.find_hosts(search="aa:bb")] == ["192.168.1.10"]

    def test_wildcards_are_literal(self, db_with_hosts):
        """Test that % and _ in search text and prefixes match only themselves."""
        assert db_with_hosts.find_hosts(search="_") == []
        assert db_with_hosts.find_hosts(search="%") == []
        assert db_with_hosts.find_hosts(ip_prefix="1_") == []
        assert db_with_hosts.count_hosts(ip_prefix="%") == 0

        db_with_hosts.upsert_host("192.168.1.77", hostname="web_01")
        assert [h.ip for h in db_with_hosts.find_hosts(search="b_0")] == ["192.168.1.77"]

    def test_zero_limit_returns_nothing(self, db_with_hosts):
        """Test that limit=0 is an empty page, not an unlimited one."""
        assert db_with_hosts.find_hosts(limit=0) == []
        assert db_with_hosts.find_hosts(sort_by="ip", limit=0) == []
        assert len(db_with_hosts.find_hosts(limit=None)) == 4

    def test_date_window(self, db_with_hosts):
        """Test last_seen window filtering."""
        future = datetime.now() + timedelta(days=1)
        assert db_with_hosts.find_hosts(start_date=future) == []
        assert len(db_with_hosts.find_hosts(end_date=future)) == 4

    def test_sort_ip_numeric(self, db):
        """Test that IP sorting is numeric, not lexicographic."""
        for ip in ("10.0.0.10", "10.0.0.2", "10.0.0.1"):
            db.upsert_host(ip)

        asc = [h.ip for h in db.find_hosts(sort_by="ip", sort_order="asc")]
        desc = [h.ip for h in db.find_hosts(sort_by="ip", sort_order="desc")]

        assert asc == ["10.0.0.1", "10.0.0.2", "10.0.0.10"]
        assert desc == ["10.0.0.10", "10.0.0.2", "10.0.0.1"]

    def test_sort_hostname_empty_last_both_directions(self, db):
        """Test that empty and placeholder hostnames sort after real names."""
        db.upsert_host("192.168.1.1", hostname="bravo")
        db.upsert_host("192.168.1.2", hostname="--")
        db.upsert_host("192.168.1.3", hostname="alpha")
        db.upsert_host("192.168.1.4")
        db.upsert_host("192.168.1.5", hostname="")

        asc = [h.hostname for h in db.find_hosts(sort_by="hostname", sort_order="asc")]
        desc = [h.hostname for h in db.find_hosts(sort_by="hostname", sort_order="desc")]

        assert asc[:2] == ["alpha", "bravo"]
        assert desc[:2] == ["bravo", "alpha"]
        assert set(asc[2:]) == {"--", None, ""}
        assert set(desc[2:]) == {"--", None, ""}

    def test_special_sort_applies_before_pagination(self, db):
        """Test that pages are cut from the fully sorted set."""
        for i in (9, 100, 20, 3, 45):
            db.upsert_host(f"192.168.1.{i}")

        page1 = [h.ip for h in db.find_hosts(sort_by="ip", sort_order="asc", limit=2, offset=0)]
        page2 = [h.ip for h in db.find_hosts(sort_by="ip", sort_order="asc", limit=2, offset=2)]

        assert page1 == ["192.168.1.3", "192.168.1.9"]
        assert page2 == ["192.168.1.20", "192.168.1.45"]

    def test_sort_by_sql_column(self, db):
        """Test ordering by scan_count through SQL."""
        db.upsert_host("192.168.1.1")
        db.upsert_host("192.168.1.2")
        db.upsert_host("192.168.1.2")

        hosts = db.find_hosts(sort_by="scan_count", sort_order="desc")
        assert hosts[0].ip == "192.168.1.2"

    def test_unknown_sort_field_falls_back(self, db_with_hosts):
        """Test that an unknown sort field does not raise."""
        assert len(db_with_hosts.find_hosts(sort_by="nonsense")) == 4

    def test_count_hosts(self, db_with_hosts):
        """Test count with and without filters."""
        assert db_with_hosts.count_hosts() == 4
        assert db_with_hosts.count_hosts(status="online") == 2


class TestSortHelpers:
    """Tests for the in-memory sort helpers."""

    def test_ip_sort_key_invalid(self):
        """Test that unparseable IPs sort as zero."""
        assert ip_sort_key("not-an-ip") == 0
        assert ip_sort_key(None) == 0
        assert ip_sort_key("0.0.1.0") == 256

    def test_sort_hosts_vendor(self):
        """Test vendor sorting is case-insensitive with blanks last."""
        hosts = [
            HostRecord(ip="1.1.1.1", vendor="zyxel"),
            HostRecord(ip="1.1.1.2", vendor="  "),
            HostRecord(ip="1.1.1.3", vendor="Apple"),
        ]
        assert [h.ip for h in sort_hosts(hosts, "vendor", False)] == ["1.1.1.3", "1.1.1.1", "1.1.1.2"]


# ─── Deletion & Stats Tests ──────────────────────────────────────────────────


class TestMaintenance:
    """Tests for deletion, stats and purges."""

    def test_delete_host(self, db_with_hosts):
        """Test deleting a single host."""
        assert db_with_hosts.delete_host("192.168.1.1") is True
        assert db_with_hosts.delete_host("192.168.1.1") is False
        assert db_with_hosts.get_host("192.168.1.1") is None

    def test_delete_all_hosts(self, db_with_hosts):
        """Test deleting every host."""
        assert db_with_hosts.delete_all_hosts() == 4
        assert db_with_hosts.count_hosts() == 0

    def test_get_stats(self, db_with_hosts):
        """Test per-status counts."""
        stats = db_with_hosts.get_stats()
        assert stats == {"total": 4, "online": 2, "offline": 1, "unknown": 1}

    def test_last_scan_date(self, db):
        """Test the most recent last_seen is reported."""
        assert db.get_last_scan_date() is None
        host = db.upsert_host("192.168.1.1")
        assert db.get_last_scan_date() == host.last_seen

    def test_get_online_hosts_most_recent_first(self, db):
        """Test online hosts are ordered by last_seen descending."""
        db.upsert_host("192.168.1.1", status="online")
        db.upsert_host("192.168.1.2", status="online")
        db.upsert_host("192.168.1.3", status="offline")
        db.update_host("192.168.1.1", last_seen=datetime.now() + timedelta(minutes=5))

        assert [h.ip for h in db.get_online_hosts()] == ["192.168.1.1", "192.168.1.2"]
        assert len(db.get_online_hosts(limit=1)) == 1

    def test_purge_offline_hosts(self, db):
        """Test only old offline hosts are purged."""
        db.upsert_host("192.168.1.1", status="offline")
        db.upsert_host("192.168.1.2", status="offline")
        db.upsert_host("192.168.1.3", status="online")
        db.update_host("192.168.1.1", last_seen=datetime.now() - timedelta(days=10))

        assert db.purge_offline_hosts(7) == 1
        assert db.get_host("192.168.1.2") is not None
        assert db.purge_offline_hosts(0) == 1
        assert db.get_host("192.168.1.3") is not None

    def test_purge_old_hosts(self, db):
        """Test hosts not seen within the retention window are purged."""
        db.upsert_host("192.168.1.1")
        db.upsert_host("192.168.1.2")
        db.update_host("192.168.1.1", last_seen=datetime.now() - timedelta(days=100))

        assert db.purge_old_hosts(90) == 1
        assert db.get_all_ips() == ["192.168.1.2"]

    def test_purge_history(self, db):
        """Test old history entries are removed."""
        db.add_history_entry("192.168.1.1", "online", seen_at=datetime.now() - timedelta(days=40))
        db.add_history_entry("192.168.1.1", "online")

        assert db.purge_history(30) == 1
        assert len(db.get_host_history("192.168.1.1")) == 1

    def test_database_stats(self, db_with_hosts):
        """Test row counts in the database stats."""
        db_with_hosts.add_history_entry("192.168.1.1", "online")
        stats = db_with_hosts.get_database_stats()

        assert stats["hosts"] == 4
        assert stats["history"] == 1
        assert stats["size_bytes"] is None
        assert stats["newest_host"] is not None

    def test_optimize_database(self, db):
        """Test VACUUM runs on sqlite."""
        assert db.optimize_database() is True


# ─── History Tests ───────────────────────────────────────────────────────────


class TestHistory:
    """Tests for the observation log."""

    def test_add_history_entry(self, db):
        """Test appending history entries."""
        assert db.add_history_entry("192.168.1.1", "online", 4.0) is True
        entries = db.get_host_history("192.168.1.1")

        assert len(entries) == 1
        assert entries[0].status == "online"
        assert entries[0].ping_latency_ms == 4.0

    def test_history_failure_is_swallowed(self, db):
        """Test that a failing history write returns False instead of raising."""
        with patch.object(db, "get_session") as get_session:
            get_session.return_value.commit.side_effect = RuntimeError("disk full")
            assert db.add_history_entry("192.168.1.1", "online") is False

    def test_historical_stats_buckets(self, db):
        """Test 15-minute buckets with distinct IP counts."""
        base = datetime.now().replace(second=0, microsecond=0) - timedelta(hours=2)
        base = base.replace(minute=base.minute - base.minute % 15)
        db.add_history_entry("192.168.1.1", "online", seen_at=base + timedelta(minutes=1))
        db.add_history_entry("192.168.1.1", "online", seen_at=base + timedelta(minutes=2))
        db.add_history_entry("192.168.1.2", "offline", seen_at=base + timedelta(minutes=3))
        db.add_history_entry("192.168.1.1", "online", seen_at=base + timedelta(minutes=16))

        stats = db.get_historical_stats(24)

        assert len(stats) == 2
        assert stats[0]["total"] == 2
        assert stats[0]["online"] == 1
        assert stats[0]["offline"] == 1
        assert stats[0]["time"] == base.strftime("%H:%M")
        assert stats[1]["total"] == 1

    def test_historical_stats_latest_status_per_bucket(self, db):
        """Test an IP that flips status inside a bucket counts once."""
        base = datetime.now().replace(second=0, microsecond=0) - timedelta(hours=1)
        base = base.replace(minute=base.minute - base.minute % 15)
        db.add_history_entry("192.168.1.1", "online", seen_at=base + timedelta(minutes=1))
        db.add_history_entry("192.168.1.1", "offline", seen_at=base + timedelta(minutes=5))

        bucket = db.get_historical_stats(24)[0]
        assert bucket == {**bucket, "total": 1, "online": 0, "offline": 1}

    def test_historical_stats_capped(self, db):
        """Test at most 48 buckets are returned and counts stay consistent."""
        now = datetime.now()
        for i in range(60):
            db.add_history_entry(
                f"192.168.1.{i % 5 + 1}",
                "online" if i % 2 else "offline",
                seen_at=now - timedelta(minutes=15 * i),
            )

        stats = db.get_historical_stats(24)

        assert len(stats) <= 48
        assert all(b["online"] + b["offline"] <= b["total"] for b in stats)
        assert stats == sorted(stats, key=lambda b: b["timestamp"])


# ─── Config Store Tests ──────────────────────────────────────────────────────


class TestConfigStore:
    """Tests for the key/value configuration store."""

    def test_get_set(self, db):
        """Test storing and replacing raw values."""
        store = ConfigStore(db)
        assert store.get("missing") is None
        assert store.set("key", "one") is True
        assert store.set("key", "two") is True
        assert store.get("key") == "two"

    def test_json_helpers(self, db):
        """Test JSON encode/decode helpers."""
        store = ConfigStore(db)
        store.set_json("blob", {"a": [1, 2]})
        assert store.get_json("blob") == {"a": [1, 2]}

    def test_invalid_json_returns_default(self, db):
        """Test unreadable JSON falls back to the default."""
        store = ConfigStore(db)
        store.set("blob", "{nope")
        assert store.get_json("blob", default={}) == {}

    def test_delete(self, db):
        """Test deleting a key."""
        store = ConfigStore(db)
        store.set("key", "value")
        assert store.delete("key") is True
        assert store.get("key") is None

    def test_write_failure_returns_false(self, db):
        """Test that store errors surface as False, not exceptions."""
        store = ConfigStore(db)
        with patch.object(db, "set_config", side_effect=RuntimeError("locked")):
            assert store.set("key", "value") is False


def test_init_database():
    """Test the init_database helper."""
    manager = init_database("sqlite:///:memory:")
    assert isinstance(manager, DatabaseManager)
    assert manager.count_hosts() == 0
    assert HostHistory.__tablename__ == "host_history"
