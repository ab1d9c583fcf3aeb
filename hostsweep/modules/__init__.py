"""
HostSweep Modules Package

Core functionality modules for host discovery and reconciliation.
"""

from .database import (
    init_database, DatabaseManager, ConfigStore,
    HostRecord, HostHistory, AppConfig,
)
from .blacklist import IpBlacklist, is_valid_ipv4
from .priority import (
    Source, Observation, PriorityConfig, PriorityConfigService,
    FieldResolution, resolve_field, merge_observations,
)
from .plugins import SourcePlugin, PluginManager
from .scanner import NetworkProber, InvalidRangeError, parse_ip_range
from .scan_service import ScanService, ScanResult, RefreshResult
from .portscan import PortScanner, PortScanError
from .scheduler import ScanScheduler, SchedulerConfig, ScanInProgressError, interval_to_cron
from .purge import DatabasePurger, RetentionConfig

__all__ = [
    "init_database",
    "DatabaseManager",
    "ConfigStore",
    "HostRecord",
    "HostHistory",
    "AppConfig",
    "IpBlacklist",
    "is_valid_ipv4",
    "Source",
    "Observation",
    "PriorityConfig",
    "PriorityConfigService",
    "FieldResolution",
    "resolve_field",
    "merge_observations",
    "SourcePlugin",
    "PluginManager",
    "NetworkProber",
    "InvalidRangeError",
    "parse_ip_range",
    "ScanService",
    "ScanResult",
    "RefreshResult",
    "PortScanner",
    "PortScanError",
    "ScanScheduler",
    "SchedulerConfig",
    "ScanInProgressError",
    "interval_to_cron",
    "DatabasePurger",
    "RetentionConfig",
]
