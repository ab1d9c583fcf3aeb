"""
Data Retention Module

Purges old history entries, stale hosts and long-offline hosts according
to a retention policy persisted in the configuration store.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Dict

from config import (
    HISTORY_RETENTION_DAYS,
    OFFLINE_RETENTION_DAYS,
    OPTIMIZE_AFTER_PURGED_ROWS,
    RETENTION_CONFIG_KEY,
    SCAN_RETENTION_DAYS,
)

logger = logging.getLogger(__name__)


@dataclass
class RetentionConfig:
    """Retention periods in days (0 means purge everything)."""

    history_retention_days: int = HISTORY_RETENTION_DAYS
    scan_retention_days: int = SCAN_RETENTION_DAYS
    offline_retention_days: int = OFFLINE_RETENTION_DAYS
    auto_purge_enabled: bool = True

    def to_dict(self) -> Dict:
        return asdict(self)


_DAY_FIELDS = ("history_retention_days", "scan_retention_days", "offline_retention_days")


class DatabasePurger:
    """Applies the retention policy to a DatabaseManager."""

    def __init__(self, db, config_store):
        self.db = db
        self.config_store = config_store

    def get_config(self) -> RetentionConfig:
        """Stored retention policy merged over the defaults."""
        data = self.config_store.get_json(RETENTION_CONFIG_KEY, default=None)
        config = RetentionConfig()
        if data is None:
            return config
        if not isinstance(data, dict):
            logger.warning("Stored retention config is not an object, using defaults")
            return config

        for name in _DAY_FIELDS:
            value = data.get(name)
            if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
                setattr(config, name, value)
            elif value is not None:
                logger.warning(f"Ignoring invalid stored {name}: {value!r}")
        if "auto_purge_enabled" in data:
            config.auto_purge_enabled = bool(data["auto_purge_enabled"])
        return config

    def save_config(self, updates: Dict) -> bool:
        """
        Merge partial updates into the stored retention policy.

        Args:
            updates: Any subset of RetentionConfig fields

        Returns:
            True if the updates were valid and saved
        """
        config = self.get_config()
        for name, value in updates.items():
            if name in _DAY_FIELDS:
                if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                    logger.warning(f"Rejected retention update {name}={value!r}")
                    return False
                setattr(config, name, value)
            elif name == "auto_purge_enabled":
                config.auto_purge_enabled = bool(value)
            else:
                logger.warning(f"Rejected unknown retention setting: {name}")
                return False
        return self.config_store.set_json(RETENTION_CONFIG_KEY, config.to_dict())

    def execute_purge(self) -> Dict[str, int]:
        """
        Run all purges with the current policy.

        Returns:
            Deleted row counts per purge
        """
        config = self.get_config()
        stats = {
            "history_deleted": self.db.purge_history(config.history_retention_days),
            "hosts_deleted": self.db.purge_old_hosts(config.scan_retention_days),
            "offline_deleted": self.db.purge_offline_hosts(config.offline_retention_days),
        }
        stats["total_deleted"] = sum(stats.values())

        if stats["total_deleted"] > OPTIMIZE_AFTER_PURGED_ROWS:
            self.db.optimize_database()

        logger.info(f"Purge complete: {stats}")
        return stats
