"""
HostSweep Configuration Module

Contains all configuration constants and default values for the application.
"""

import os
from pathlib import Path
from typing import Dict, List

# Project Paths
PROJECT_ROOT = Path(__file__).parent
LOGS_DIR = PROJECT_ROOT / "logs"
DB_DIR = PROJECT_ROOT / "data"

# Ensure directories exist
LOGS_DIR.mkdir(exist_ok=True)
DB_DIR.mkdir(exist_ok=True)

# Database Configuration
DATABASE_URL = f"sqlite:///{DB_DIR}/hostsweep.db"
DB_ECHO = False  # Set to True for SQL query debugging

# Host status values
STATUS_ONLINE = "online"
STATUS_OFFLINE = "offline"
STATUS_UNKNOWN = "unknown"
HOST_STATUSES = (STATUS_ONLINE, STATUS_OFFLINE, STATUS_UNKNOWN)

# Scan types
SCAN_TYPE_FULL = "full"
SCAN_TYPE_QUICK = "quick"
SCAN_TYPES = (SCAN_TYPE_FULL, SCAN_TYPE_QUICK)

# Network Scanning Configuration
MAX_CONCURRENT_PINGS = 20
PING_TIMEOUT = 2  # seconds, per packet
PING_BATCH_DELAY = 0.1  # seconds between ping batches
MAX_SCAN_HOSTS = 1024
COMMAND_TIMEOUT = 5  # seconds, for ip/arp/getent helpers
PRIVATE_NETWORKS = ["10.0.0.0/8", "172.16.0.0/12", "192.168.0.0/16"]
SKIPPED_INTERFACE_PREFIXES = ["lo", "docker", "veth", "br-"]

# Port Scan Configuration
DEFAULT_PORT_RANGE = "1-10000"
PORT_SCAN_TIMEOUT = 120  # seconds, per host
PORT_SCAN_MAX_HOSTS = 200

# Host store query limits
DEFAULT_QUERY_LIMIT = 100
HISTORY_BUCKET_MINUTES = 15
HISTORY_MAX_BUCKETS = 48

# Scheduler Configuration
FULL_SCAN_INTERVALS = (15, 30, 60, 120, 360, 720, 1440)  # minutes
REFRESH_INTERVALS = (5, 10, 15, 30, 60)  # minutes
DEFAULT_FULL_SCAN_INTERVAL = 1440
DEFAULT_REFRESH_INTERVAL = 10
INTERVAL_CRON: Dict[int, str] = {
    5: "*/5 * * * *",
    10: "*/10 * * * *",
    15: "*/15 * * * *",
    30: "*/30 * * * *",
    60: "0 * * * *",
    120: "0 */2 * * *",
    360: "0 */6 * * *",
    720: "0 */12 * * *",
    1440: "0 0 * * *",
}

# Feature gate id of the network scan itself
SCAN_FEATURE_ID = "scanner"

# Persisted configuration keys
SCHEDULER_CONFIG_KEY = "network_scan_unified_auto"
BLACKLIST_CONFIG_KEY = "network_scan_blacklist"
PRIORITY_CONFIG_KEY = "plugin_priority_config"
DEFAULT_RANGE_CONFIG_KEY = "network_scan_default"
LAST_AUTO_SCAN_KEY = "network_scan_last_auto"
LAST_MANUAL_SCAN_KEY = "network_scan_last_manual"
RETENTION_CONFIG_KEY = "network_scan_retention"
PLUGIN_STATES_KEY = "plugin_states"

# Data retention
HISTORY_RETENTION_DAYS = 30
SCAN_RETENTION_DAYS = 90
OFFLINE_RETENTION_DAYS = 7
OPTIMIZE_AFTER_PURGED_ROWS = 100
CLEANUP_INTERVAL_SECONDS = 6 * 60 * 60  # 6 hours

# Logging Configuration
LOG_FILE = LOGS_DIR / "hostsweep.log"
LOG_MAX_BYTES = 10 * 1024 * 1024  # 10MB
LOG_BACKUP_COUNT = 5
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Environment Variable Overrides
def get_env_int(key: str, default: int) -> int:
    """Get integer from environment variable with fallback to default."""
    try:
        return int(os.getenv(key, default))
    except (ValueError, TypeError):
        return default

def get_env_bool(key: str, default: bool) -> bool:
    """Get boolean from environment variable with fallback to default."""
    value = os.getenv(key, str(default)).lower()
    return value in ("true", "1", "yes", "on")

def get_env_str(key: str, default: str) -> str:
    """Get string from environment variable with fallback to default."""
    value = os.getenv(key)
    return value.strip() if value else default

def get_env_list(key: str, default: List[str]) -> List[str]:
    """Get list from comma-separated environment variable."""
    value = os.getenv(key)
    if not value:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]

# Apply environment overrides
DATABASE_URL = get_env_str("HOSTSWEEP_DATABASE_URL", DATABASE_URL)
MAX_CONCURRENT_PINGS = get_env_int("HOSTSWEEP_MAX_CONCURRENT_PINGS", MAX_CONCURRENT_PINGS)
PORT_SCAN_TIMEOUT = get_env_int("HOSTSWEEP_PORT_SCAN_TIMEOUT", PORT_SCAN_TIMEOUT)
DEFAULT_PORT_RANGE = get_env_str("HOSTSWEEP_PORT_RANGE", DEFAULT_PORT_RANGE)
SKIPPED_INTERFACE_PREFIXES = get_env_list(
    "HOSTSWEEP_SKIPPED_INTERFACES", SKIPPED_INTERFACE_PREFIXES
)
DEBUG_MODE = get_env_bool("HOSTSWEEP_DEBUG", False)
