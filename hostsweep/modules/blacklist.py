"""
IP Blacklist Module

Maintains the set of IPv4 addresses that must never be probed or reported.
The list is persisted as a JSON array in the configuration store.
"""

import json
import logging
import re
from typing import List

from config import BLACKLIST_CONFIG_KEY

logger = logging.getLogger(__name__)

_IPV4_PATTERN = re.compile(r"^(\d{1,3})\.(\d{1,3})\.(\d{1,3})\.(\d{1,3})$", re.ASCII)


def is_valid_ipv4(ip) -> bool:
    """
    Strict dotted-quad IPv4 validation.

    Args:
        ip: Value to check

    Returns:
        True if ip is a string of four decimal octets in 0-255
    """
    if not isinstance(ip, str):
        return False
    match = _IPV4_PATTERN.fullmatch(ip)
    if not match:
        return False
    return all(0 <= int(octet) <= 255 for octet in match.groups())


class IpBlacklist:
    """Exclusion list backed by a ConfigStore."""

    def __init__(self, config_store):
        """
        Initialize the blacklist.

        Args:
            config_store: Object exposing get(key) and set(key, value)
        """
        self.config_store = config_store

    def _load(self) -> List[str]:
        raw = self.config_store.get(BLACKLIST_CONFIG_KEY)
        if not raw:
            return []

        try:
            data = json.loads(raw)
        except (ValueError, TypeError) as e:
            logger.warning(f"Stored blacklist is not valid JSON, using empty list: {e}")
            return []

        if not isinstance(data, list):
            logger.warning("Stored blacklist is not a list, using empty list")
            return []

        entries: List[str] = []
        for item in data:
            if not isinstance(item, str):
                continue
            ip = item.strip()
            if not is_valid_ipv4(ip):
                if ip:
                    logger.warning(f"Ignoring invalid blacklist entry: {ip}")
                continue
            if ip not in entries:
                entries.append(ip)
        return entries

    def _save(self, entries: List[str]) -> bool:
        saved = self.config_store.set(BLACKLIST_CONFIG_KEY, json.dumps(entries))
        if not saved:
            logger.error("Failed to persist IP blacklist")
        return saved

    def list(self) -> List[str]:
        """Get all blacklisted IPs."""
        return self._load()

    def is_blacklisted(self, ip) -> bool:
        """
        Check whether an IP is blacklisted.

        Never raises; malformed input is simply not blacklisted.
        """
        if not isinstance(ip, str) or not ip.strip():
            return False
        try:
            return ip.strip() in self._load()
        except Exception as e:
            logger.error(f"Error checking blacklist for {ip}: {e}")
            return False

    def filter(self, ips: List[str]) -> List[str]:
        """Return the IPs that are not blacklisted, keeping their order."""
        blocked = set(self._load())
        return [ip for ip in ips if ip not in blocked]

    def add(self, ip: str) -> bool:
        """
        Add an IP to the blacklist.

        Args:
            ip: IPv4 address

        Returns:
            True if the IP is blacklisted after the call
        """
        if not isinstance(ip, str):
            logger.warning(f"Cannot blacklist non-string value: {ip!r}")
            return False
        ip = ip.strip()
        if not is_valid_ipv4(ip):
            logger.warning(f"Cannot blacklist invalid IPv4 address: {ip}")
            return False

        entries = self._load()
        if ip in entries:
            logger.debug(f"{ip} already blacklisted")
            return True

        entries.append(ip)
        if not self._save(entries):
            return False
        logger.info(f"Added {ip} to blacklist")
        return True

    def remove(self, ip: str) -> bool:
        """
        Remove an IP from the blacklist.

        Args:
            ip: IPv4 address

        Returns:
            True if the IP is not blacklisted after the call
        """
        if not isinstance(ip, str) or not ip.strip():
            return False
        ip = ip.strip()

        entries = self._load()
        if ip not in entries:
            return True

        entries.remove(ip)
        if not self._save(entries):
            return False
        logger.info(f"Removed {ip} from blacklist")
        return True
