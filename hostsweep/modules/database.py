"""
Database Module

SQLAlchemy models and database operations for HostSweep: the reconciled
host table, its append-only observation history, and the key/value table
holding persisted JSON configuration.
"""

import ipaddress
import json
import logging
import os
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import create_engine, Column, Integer, String, DateTime, Text, Float, func, or_, text
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool

from config import (
    DATABASE_URL,
    DB_ECHO,
    DEFAULT_QUERY_LIMIT,
    HOST_STATUSES,
    HISTORY_BUCKET_MINUTES,
    HISTORY_MAX_BUCKETS,
    STATUS_ONLINE,
    STATUS_OFFLINE,
    STATUS_UNKNOWN,
)

logger = logging.getLogger(__name__)

Base = declarative_base()

# Values treated as "no value" when sorting text columns
EMPTY_SORT_VALUES = ("", "--")

SORT_FIELDS = (
    "ip", "last_seen", "first_seen", "status", "ping_latency",
    "hostname", "mac", "vendor", "scan_count",
)
TEXT_SORT_FIELDS = ("hostname", "mac", "vendor")


class HostRecord(Base):
    """Reconciled state of one IP address."""

    __tablename__ = "hosts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ip = Column(String(45), nullable=False, unique=True, index=True)
    mac = Column(String(17), nullable=True)
    hostname = Column(String(255), nullable=True)
    vendor = Column(String(255), nullable=True)
    mac_source = Column(String(32), nullable=True)
    hostname_source = Column(String(32), nullable=True)
    vendor_source = Column(String(32), nullable=True)
    status = Column(String(16), nullable=False, default=STATUS_UNKNOWN)
    ping_latency_ms = Column(Float, nullable=True)
    first_seen = Column(DateTime, nullable=False, default=datetime.now)
    last_seen = Column(DateTime, nullable=False, default=datetime.now, index=True)
    scan_count = Column(Integer, nullable=False, default=1)
    additional_info_json = Column("additional_info", Text, nullable=True)

    @property
    def additional_info(self) -> Dict:
        """Free-form key/value data such as open ports."""
        if not self.additional_info_json:
            return {}
        try:
            return json.loads(self.additional_info_json)
        except (ValueError, TypeError):
            logger.warning(f"Discarding unreadable additional_info for {self.ip}")
            return {}

    @additional_info.setter
    def additional_info(self, value: Optional[Dict]) -> None:
        self.additional_info_json = json.dumps(value) if value else None

    def to_dict(self) -> Dict:
        """Convert to dictionary representation."""
        return {
            "ip": self.ip,
            "mac": self.mac,
            "hostname": self.hostname,
            "vendor": self.vendor,
            "mac_source": self.mac_source,
            "hostname_source": self.hostname_source,
            "vendor_source": self.vendor_source,
            "status": self.status,
            "ping_latency_ms": self.ping_latency_ms,
            "first_seen": self.first_seen.isoformat() if self.first_seen else None,
            "last_seen": self.last_seen.isoformat() if self.last_seen else None,
            "scan_count": self.scan_count,
            "additional_info": self.additional_info,
        }

    def __repr__(self) -> str:
        return f"<HostRecord {self.ip} [{self.status}] - {self.hostname or 'Unknown'}>"


class HostHistory(Base):
    """One probe observation, append-only."""

    __tablename__ = "host_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ip = Column(String(45), nullable=False, index=True)
    status = Column(String(16), nullable=False)
    ping_latency_ms = Column(Float, nullable=True)
    seen_at = Column(DateTime, nullable=False, default=datetime.now, index=True)

    def to_dict(self) -> Dict:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "ip": self.ip,
            "status": self.status,
            "ping_latency_ms": self.ping_latency_ms,
            "seen_at": self.seen_at.isoformat() if self.seen_at else None,
        }

    def __repr__(self) -> str:
        return f"<HostHistory {self.ip} [{self.status}] at {self.seen_at}>"


class AppConfig(Base):
    """Persisted configuration blob stored under a fixed key."""

    __tablename__ = "app_config"

    key = Column(String(128), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    def __repr__(self) -> str:
        return f"<AppConfig {self.key}>"


def ip_sort_key(ip: Optional[str]) -> int:
    """Numeric value of a dotted-quad address (0 for anything unparseable)."""
    try:
        return int(ipaddress.IPv4Address(ip))
    except (ipaddress.AddressValueError, ValueError, TypeError):
        return 0


def is_empty_value(value: Optional[str]) -> bool:
    """True for None, blank strings and the "--" placeholder."""
    return value is None or value.strip() in EMPTY_SORT_VALUES


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def sort_hosts(hosts: List[HostRecord], sort_by: str, descending: bool) -> List[HostRecord]:
    """
    Sort host records in memory for fields SQL cannot order correctly.

    IP addresses sort numerically. Empty hostname, mac and vendor values
    always come after every non-empty value, whatever the direction.

    Args:
        hosts: Records to sort
        sort_by: "ip", "hostname", "mac" or "vendor"
        descending: Reverse the order of non-empty values

    Returns:
        New sorted list
    """
    if sort_by == "ip":
        return sorted(hosts, key=lambda h: ip_sort_key(h.ip), reverse=descending)

    filled = [h for h in hosts if not is_empty_value(getattr(h, sort_by))]
    empty = [h for h in hosts if is_empty_value(getattr(h, sort_by))]
    filled.sort(key=lambda h: getattr(h, sort_by).strip().lower(), reverse=descending)
    return filled + empty


class DatabaseManager:
    """Database manager for HostSweep."""

    def __init__(self, database_url: str = DATABASE_URL, echo: bool = DB_ECHO):
        """
        Initialize database manager.

        Args:
            database_url: SQLAlchemy database URL
            echo: Enable SQL query logging
        """
        self.database_url = database_url
        self.engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False} if "sqlite" in database_url else {},
            poolclass=StaticPool if "sqlite" in database_url else None,
        )
        self.SessionLocal = sessionmaker(
            autocommit=False, autoflush=False, expire_on_commit=False, bind=self.engine
        )

        # Create tables
        Base.metadata.create_all(bind=self.engine)
        logger.info("Database initialized successfully")

    def get_session(self) -> Session:
        """Get a new database session."""
        return self.SessionLocal()

    # Host operations

    def upsert_host(
        self,
        ip: str,
        mac: Optional[str] = None,
        hostname: Optional[str] = None,
        vendor: Optional[str] = None,
        status: Optional[str] = None,
        ping_latency_ms: Optional[float] = None,
        additional_info: Optional[Dict] = None,
        mac_source: Optional[str] = None,
        hostname_source: Optional[str] = None,
        vendor_source: Optional[str] = None,
    ) -> HostRecord:
        """
        Create a host record or update the existing one for this IP.

        Only fields passed as non-None are written. Every call sets
        last_seen to now; updates also increment scan_count.

        Args:
            ip: IPv4 address (record key)
            mac: MAC address
            hostname: Host name
            vendor: Hardware vendor
            status: online, offline or unknown
            ping_latency_ms: Round-trip time of the last probe
            additional_info: Replaces the stored key/value bag
            mac_source: Source that produced the MAC
            hostname_source: Source that produced the hostname
            vendor_source: Source that produced the vendor

        Returns:
            HostRecord object
        """
        if status is not None and status not in HOST_STATUSES:
            raise ValueError(f"Invalid host status: {status}")

        fields = {
            "mac": mac,
            "hostname": hostname,
            "vendor": vendor,
            "status": status,
            "ping_latency_ms": ping_latency_ms,
            "mac_source": mac_source,
            "hostname_source": hostname_source,
            "vendor_source": vendor_source,
        }
        session = self.get_session()
        try:
            now = datetime.now()
            host = session.query(HostRecord).filter(HostRecord.ip == ip).first()

            if host:
                for name, value in fields.items():
                    if value is not None:
                        setattr(host, name, value)
                if additional_info is not None:
                    host.additional_info = additional_info
                host.last_seen = now
                host.scan_count = (host.scan_count or 0) + 1
                logger.debug(f"Updated host: {ip} (scan #{host.scan_count})")
            else:
                host = HostRecord(ip=ip, first_seen=now, last_seen=now, scan_count=1)
                for name, value in fields.items():
                    if value is not None:
                        setattr(host, name, value)
                if not host.status:
                    host.status = STATUS_UNKNOWN
                host.additional_info = additional_info
                session.add(host)
                logger.info(f"Added new host: {ip}")

            session.commit()
            session.refresh(host)
            return host

        except Exception as e:
            session.rollback()
            logger.error(f"Error upserting host {ip}: {e}")
            raise
        finally:
            session.close()

    def update_host(self, ip: str, **fields: Any) -> Optional[HostRecord]:
        """
        Update selected fields of an existing host without counting a scan.

        Args:
            ip: IPv4 address
            **fields: Column values to set (additional_info accepts a dict)

        Returns:
            Updated HostRecord, or None if the IP is unknown
        """
        session = self.get_session()
        try:
            host = session.query(HostRecord).filter(HostRecord.ip == ip).first()
            if host is None:
                return None

            for name, value in fields.items():
                if name == "ip" or not hasattr(HostRecord, name):
                    raise ValueError(f"Cannot update host field: {name}")
                setattr(host, name, value)

            session.commit()
            session.refresh(host)
            return host

        except Exception as e:
            session.rollback()
            logger.error(f"Error updating host {ip}: {e}")
            raise
        finally:
            session.close()

    def get_host(self, ip: str) -> Optional[HostRecord]:
        """Get host by IP address."""
        session = self.get_session()
        try:
            return session.query(HostRecord).filter(HostRecord.ip == ip).first()
        except Exception as e:
            logger.error(f"Error reading host {ip}: {e}")
            return None
        finally:
            session.close()

    def get_all_ips(self) -> List[str]:
        """Get every known IP address."""
        session = self.get_session()
        try:
            return [row[0] for row in session.query(HostRecord.ip).all()]
        finally:
            session.close()

    def get_online_hosts(self, limit: Optional[int] = None) -> List[HostRecord]:
        """
        Get online hosts, most recently seen first.

        Args:
            limit: Maximum number of hosts to return

        Returns:
            List of HostRecord objects
        """
        session = self.get_session()
        try:
            query = session.query(HostRecord).filter(
                HostRecord.status == STATUS_ONLINE
            ).order_by(HostRecord.last_seen.desc())
            if limit is not None:
                query = query.limit(limit)
            return query.all()
        finally:
            session.close()

    def _filtered_query(
        self,
        session: Session,
        status: Optional[str] = None,
        ip_prefix: Optional[str] = None,
        search: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ):
        query = session.query(HostRecord)
        if status:
            query = query.filter(HostRecord.status == status)
        if ip_prefix:
            query = query.filter(HostRecord.ip.like(f"{_escape_like(ip_prefix)}%", escape="\\"))
        if search:
            pattern = f"%{_escape_like(search.strip())}%"
            query = query.filter(or_(
                HostRecord.ip.ilike(pattern, escape="\\"),
                HostRecord.mac.ilike(pattern, escape="\\"),
                HostRecord.hostname.ilike(pattern, escape="\\"),
                HostRecord.vendor.ilike(pattern, escape="\\"),
            ))
        if start_date:
            query = query.filter(HostRecord.last_seen >= start_date)
        if end_date:
            query = query.filter(HostRecord.last_seen <= end_date)
        return query

    def find_hosts(
        self,
        status: Optional[str] = None,
        ip_prefix: Optional[str] = None,
        search: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: Optional[int] = DEFAULT_QUERY_LIMIT,
        offset: int = 0,
        sort_by: str = "last_seen",
        sort_order: str = "desc",
    ) -> List[HostRecord]:
        """
        Query host records with filters, sorting and pagination.

        Sorting by ip, hostname, mac or vendor is done in memory over the
        whole filtered set before the page is cut, so pages stay consistent.

        Args:
            status: Exact status match
            ip_prefix: Keep IPs starting with this prefix
            search: Case-insensitive text matched against ip, mac, hostname, vendor
            start_date: Earliest last_seen
            end_date: Latest last_seen
            limit: Page size (None for no limit, 0 returns nothing)
            offset: Rows to skip
            sort_by: One of SORT_FIELDS (unknown values use last_seen)
            sort_order: "asc" or "desc"

        Returns:
            List of HostRecord objects
        """
        if sort_by not in SORT_FIELDS:
            logger.debug(f"Unknown sort field '{sort_by}', using last_seen")
            sort_by = "last_seen"
        descending = str(sort_order).lower() != "asc"
        offset = max(offset or 0, 0)

        session = self.get_session()
        try:
            query = self._filtered_query(session, status, ip_prefix, search, start_date, end_date)

            if sort_by == "ip" or sort_by in TEXT_SORT_FIELDS:
                hosts = sort_hosts(query.all(), sort_by, descending)
                end = offset + limit if limit is not None else None
                return hosts[offset:end]

            column = HostRecord.ping_latency_ms if sort_by == "ping_latency" else getattr(HostRecord, sort_by)
            query = query.order_by(column.desc() if descending else column.asc(), HostRecord.id.asc())
            if offset:
                query = query.offset(offset)
            if limit is not None:
                query = query.limit(limit)
            return query.all()
        finally:
            session.close()

    def count_hosts(
        self,
        status: Optional[str] = None,
        ip_prefix: Optional[str] = None,
        search: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> int:
        """Count host records matching the same filters as find_hosts."""
        session = self.get_session()
        try:
            query = self._filtered_query(session, status, ip_prefix, search, start_date, end_date)
            return query.count()
        finally:
            session.close()

    def delete_host(self, ip: str) -> bool:
        """
        Delete a host record.

        Args:
            ip: IPv4 address

        Returns:
            True if a record was deleted
        """
        session = self.get_session()
        try:
            deleted = session.query(HostRecord).filter(HostRecord.ip == ip).delete()
            session.commit()
            if deleted:
                logger.info(f"Deleted host: {ip}")
            return deleted > 0
        except Exception as e:
            session.rollback()
            logger.error(f"Error deleting host {ip}: {e}")
            raise
        finally:
            session.close()

    def delete_all_hosts(self) -> int:
        """Delete every host record and return how many were removed."""
        session = self.get_session()
        try:
            deleted = session.query(HostRecord).delete()
            session.commit()
            logger.info(f"Deleted all hosts ({deleted} records)")
            return deleted
        except Exception as e:
            session.rollback()
            logger.error(f"Error deleting all hosts: {e}")
            raise
        finally:
            session.close()

    def get_stats(self) -> Dict[str, int]:
        """Get host counts per status."""
        session = self.get_session()
        try:
            rows = session.query(HostRecord.status, func.count(HostRecord.id)).group_by(
                HostRecord.status
            ).all()
            counts = {status: count for status, count in rows}
            return {
                "total": sum(counts.values()),
                STATUS_ONLINE: counts.get(STATUS_ONLINE, 0),
                STATUS_OFFLINE: counts.get(STATUS_OFFLINE, 0),
                STATUS_UNKNOWN: counts.get(STATUS_UNKNOWN, 0),
            }
        finally:
            session.close()

    def get_last_scan_date(self) -> Optional[datetime]:
        """Get the most recent last_seen across all hosts."""
        session = self.get_session()
        try:
            return session.query(func.max(HostRecord.last_seen)).scalar()
        finally:
            session.close()

    # History operations

    def add_history_entry(
        self,
        ip: str,
        status: str,
        ping_latency_ms: Optional[float] = None,
        seen_at: Optional[datetime] = None,
    ) -> bool:
        """
        Append one observation to the history log.

        Best effort: failures are logged and reported through the return
        value, never raised.

        Args:
            ip: IPv4 address
            status: Observed status
            ping_latency_ms: Observed latency
            seen_at: Observation time (defaults to now)

        Returns:
            True if the entry was written
        """
        session = self.get_session()
        try:
            session.add(HostHistory(
                ip=ip,
                status=status,
                ping_latency_ms=ping_latency_ms,
                seen_at=seen_at or datetime.now(),
            ))
            session.commit()
            return True
        except Exception as e:
            session.rollback()
            logger.error(f"Error adding history entry for {ip}: {e}")
            return False
        finally:
            session.close()

    def get_host_history(self, ip: str, limit: int = DEFAULT_QUERY_LIMIT) -> List[HostHistory]:
        """Get the latest history entries for one IP, newest first."""
        session = self.get_session()
        try:
            return session.query(HostHistory).filter(
                HostHistory.ip == ip
            ).order_by(HostHistory.seen_at.desc(), HostHistory.id.desc()).limit(limit).all()
        finally:
            session.close()

    def get_historical_stats(self, hours: int = 24) -> List[Dict]:
        """
        Bucket the history log into fixed 15-minute windows.

        Each IP is counted once per bucket, with the last status it had in
        that bucket, so online + offline never exceeds total.

        Args:
            hours: Number of hours to look back

        Returns:
            Ascending list of at most 48 buckets
        """
        cutoff = datetime.now() - timedelta(hours=hours)
        session = self.get_session()
        try:
            rows = session.query(HostHistory.ip, HostHistory.status, HostHistory.seen_at).filter(
                HostHistory.seen_at >= cutoff
            ).order_by(HostHistory.seen_at.asc(), HostHistory.id.asc()).all()
        finally:
            session.close()

        buckets: Dict[datetime, Dict[str, str]] = {}
        for ip, status, seen_at in rows:
            minute = seen_at.minute - seen_at.minute % HISTORY_BUCKET_MINUTES
            start = seen_at.replace(minute=minute, second=0, microsecond=0)
            buckets.setdefault(start, {})[ip] = status

        result = []
        for start in sorted(buckets)[-HISTORY_MAX_BUCKETS:]:
            statuses = list(buckets[start].values())
            result.append({
                "time": start.strftime("%H:%M"),
                "timestamp": start.isoformat(),
                "total": len(statuses),
                "online": statuses.count(STATUS_ONLINE),
                "offline": statuses.count(STATUS_OFFLINE),
            })
        return result

    # Maintenance operations

    def purge_history(self, days: int) -> int:
        """
        Delete history entries older than the given number of days.

        Args:
            days: Retention in days; 0 or less deletes all history

        Returns:
            Number of deleted entries
        """
        session = self.get_session()
        try:
            query = session.query(HostHistory)
            if days > 0:
                query = query.filter(HostHistory.seen_at < datetime.now() - timedelta(days=days))
            deleted = query.delete(synchronize_session=False)
            session.commit()
            logger.info(f"Purged {deleted} history entries (retention {days}d)")
            return deleted
        except Exception as e:
            session.rollback()
            logger.error(f"Error purging history: {e}")
            raise
        finally:
            session.close()

    def purge_old_hosts(self, days: int) -> int:
        """Delete hosts not seen for the given number of days (0 or less deletes all)."""
        session = self.get_session()
        try:
            query = session.query(HostRecord)
            if days > 0:
                query = query.filter(HostRecord.last_seen < datetime.now() - timedelta(days=days))
            deleted = query.delete(synchronize_session=False)
            session.commit()
            logger.info(f"Purged {deleted} stale hosts (retention {days}d)")
            return deleted
        except Exception as e:
            session.rollback()
            logger.error(f"Error purging old hosts: {e}")
            raise
        finally:
            session.close()

    def purge_offline_hosts(self, days: int) -> int:
        """Delete offline hosts not seen for the given number of days (0 or less deletes all offline)."""
        session = self.get_session()
        try:
            query = session.query(HostRecord).filter(HostRecord.status == STATUS_OFFLINE)
            if days > 0:
                query = query.filter(HostRecord.last_seen < datetime.now() - timedelta(days=days))
            deleted = query.delete(synchronize_session=False)
            session.commit()
            logger.info(f"Purged {deleted} offline hosts (retention {days}d)")
            return deleted
        except Exception as e:
            session.rollback()
            logger.error(f"Error purging offline hosts: {e}")
            raise
        finally:
            session.close()

    def get_database_stats(self) -> Dict:
        """Get row counts, time span and on-disk size of the database."""
        session = self.get_session()
        try:
            stats = {
                "hosts": session.query(func.count(HostRecord.id)).scalar() or 0,
                "history": session.query(func.count(HostHistory.id)).scalar() or 0,
                "oldest_host": session.query(func.min(HostRecord.first_seen)).scalar(),
                "newest_host": session.query(func.max(HostRecord.last_seen)).scalar(),
                "oldest_history": session.query(func.min(HostHistory.seen_at)).scalar(),
                "newest_history": session.query(func.max(HostHistory.seen_at)).scalar(),
            }
        finally:
            session.close()

        for key in ("oldest_host", "newest_host", "oldest_history", "newest_history"):
            stats[key] = stats[key].isoformat() if stats[key] else None

        stats["size_bytes"] = None
        database = self.engine.url.database
        if self.engine.dialect.name == "sqlite" and database and database != ":memory:":
            try:
                stats["size_bytes"] = os.path.getsize(database)
            except OSError as e:
                logger.debug(f"Could not stat database file {database}: {e}")
        return stats

    def optimize_database(self) -> bool:
        """
        Reclaim space and refresh query planner statistics (sqlite only).

        Returns:
            True if the optimization ran
        """
        if self.engine.dialect.name != "sqlite":
            logger.debug("Database optimization skipped (not sqlite)")
            return False
        try:
            with self.engine.connect() as conn:
                conn = conn.execution_options(isolation_level="AUTOCOMMIT")
                conn.execute(text("VACUUM"))
                conn.execute(text("ANALYZE"))
            logger.info("Database optimized")
            return True
        except Exception as e:
            logger.error(f"Error optimizing database: {e}")
            return False

    # Configuration operations

    def get_config(self, key: str) -> Optional[str]:
        """Get a raw configuration value."""
        session = self.get_session()
        try:
            row = session.query(AppConfig).filter(AppConfig.key == key).first()
            return row.value if row else None
        finally:
            session.close()

    def set_config(self, key: str, value: str) -> None:
        """Insert or replace a raw configuration value."""
        session = self.get_session()
        try:
            row = session.query(AppConfig).filter(AppConfig.key == key).first()
            if row:
                row.value = value
                row.updated_at = datetime.now()
            else:
                session.add(AppConfig(key=key, value=value))
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Error saving config {key}: {e}")
            raise
        finally:
            session.close()

    def delete_config(self, key: str) -> bool:
        """Delete a configuration value."""
        session = self.get_session()
        try:
            deleted = session.query(AppConfig).filter(AppConfig.key == key).delete()
            session.commit()
            return deleted > 0
        except Exception as e:
            session.rollback()
            logger.error(f"Error deleting config {key}: {e}")
            raise
        finally:
            session.close()


class ConfigStore:
    """
    Key/value store for persisted JSON configuration blobs.

    Never raises: reads return None and writes return False on failure.
    """

    def __init__(self, db: DatabaseManager):
        self.db = db

    def get(self, key: str) -> Optional[str]:
        try:
            return self.db.get_config(key)
        except Exception as e:
            logger.error(f"Error reading config {key}: {e}")
            return None

    def set(self, key: str, value: str) -> bool:
        try:
            self.db.set_config(key, value)
            return True
        except Exception as e:
            logger.error(f"Error writing config {key}: {e}")
            return False

    def delete(self, key: str) -> bool:
        try:
            return self.db.delete_config(key)
        except Exception as e:
            logger.error(f"Error deleting config {key}: {e}")
            return False

    def get_json(self, key: str, default: Any = None) -> Any:
        """Get a decoded JSON value, or default if missing or unreadable."""
        raw = self.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except (ValueError, TypeError) as e:
            logger.warning(f"Invalid JSON stored under {key}: {e}")
            return default

    def set_json(self, key: str, value: Any) -> bool:
        """Encode and store a JSON value."""
        return self.set(key, json.dumps(value))


def init_database(database_url: str = DATABASE_URL) -> DatabaseManager:
    """
    Initialize database and return manager.

    Args:
        database_url: SQLAlchemy database URL

    Returns:
        DatabaseManager instance
    """
    return DatabaseManager(database_url)
