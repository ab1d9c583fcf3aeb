"""
Plugin Module

Vendor controller plugins (router boxes, Wi-Fi controllers) report the
devices they know about. The PluginManager keeps them registered, tracks
which features are enabled, and turns plugin stats into Observations.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from config import PLUGIN_STATES_KEY, SCAN_FEATURE_ID
from .blacklist import is_valid_ipv4
from .priority import Observation, Source

logger = logging.getLogger(__name__)


class SourcePlugin(ABC):
    """Abstract base class for plugins that report network devices."""

    source: Source
    name: str = "plugin"

    @abstractmethod
    def get_stats(self) -> Dict:
        """
        Fetch current stats from the vendor device.

        Returns:
            Dictionary with at least a "devices" list; each device carries
            an "ip" and optionally "mac", "hostname" (or "name") and "vendor"
        """


class PluginManager:
    """Registry of plugins and the enable/disable state of each feature."""

    def __init__(self, config_store, blacklist=None):
        """
        Initialize the manager.

        Args:
            config_store: ConfigStore used to persist feature states
            blacklist: Optional IpBlacklist applied to plugin devices
        """
        self.config_store = config_store
        self.blacklist = blacklist
        self._plugins: Dict[str, SourcePlugin] = {}

    def register(self, plugin: SourcePlugin) -> None:
        """Register a plugin under its source id."""
        source = Source.parse(getattr(plugin, "source", None))
        if source is None or source == Source.SCANNER:
            raise ValueError(f"Plugin {plugin!r} must declare a vendor source")
        self._plugins[source.value] = plugin
        logger.info(f"Registered plugin: {plugin.name} ({source.value})")

    def get_plugin(self, source) -> Optional[SourcePlugin]:
        """Get a registered plugin by source id."""
        parsed = Source.parse(source)
        return self._plugins.get(parsed.value) if parsed else None

    def _load_states(self) -> Dict[str, bool]:
        raw = self.config_store.get(PLUGIN_STATES_KEY)
        if not raw:
            return {}
        try:
            data = json.loads(raw)
        except (ValueError, TypeError) as e:
            logger.warning(f"Invalid stored plugin states, treating all as disabled: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning("Stored plugin states are not an object, treating all as disabled")
            return {}
        return {str(k): bool(v) for k, v in data.items()}

    def is_enabled(self, feature_id: str) -> bool:
        """
        Check whether a feature (the scan itself or a plugin) is enabled.

        Never raises; any failure reads as disabled.
        """
        try:
            return self._load_states().get(feature_id, False)
        except Exception as e:
            logger.error(f"Error checking feature {feature_id}: {e}")
            return False

    def set_enabled(self, feature_id: str, enabled: bool) -> bool:
        """
        Enable or disable a feature.

        Args:
            feature_id: Source id ("scanner" is the network scan itself)
            enabled: New state

        Returns:
            True if the state was saved
        """
        if Source.parse(feature_id) is None:
            logger.warning(f"Unknown feature id: {feature_id}")
            return False
        states = self._load_states()
        states[feature_id] = bool(enabled)
        saved = self.config_store.set(PLUGIN_STATES_KEY, json.dumps(states))
        if saved:
            logger.info(f"Feature {feature_id} {'enabled' if enabled else 'disabled'}")
        return saved

    def get_enabled_plugins(self) -> List[SourcePlugin]:
        """Get registered plugins whose feature is enabled."""
        return [p for source, p in self._plugins.items() if self.is_enabled(source)]

    def _device_observations(self, plugin: SourcePlugin, stats: Dict) -> List[Observation]:
        devices = stats.get("devices") if isinstance(stats, dict) else None
        if not isinstance(devices, list):
            logger.warning(f"Plugin {plugin.name} returned no device list")
            return []

        observations = []
        for device in devices:
            if not isinstance(device, dict):
                continue
            ip = str(device.get("ip") or "").strip()
            if not is_valid_ipv4(ip):
                continue
            if self.blacklist is not None and self.blacklist.is_blacklisted(ip):
                continue
            observations.append(Observation(
                ip=ip,
                source=plugin.source,
                mac=(device.get("mac") or None),
                hostname=(device.get("hostname") or device.get("name") or None),
                vendor=(device.get("vendor") or None),
            ))
        return observations

    async def collect_observations(self) -> Dict[str, List[Observation]]:
        """
        Ask every enabled plugin for its devices.

        A failing plugin is logged and skipped.

        Returns:
            Mapping of IP to the observations reported for it
        """
        by_ip: Dict[str, List[Observation]] = {}
        loop = asyncio.get_running_loop()

        for plugin in self.get_enabled_plugins():
            try:
                stats = await loop.run_in_executor(None, plugin.get_stats)
            except Exception as e:
                logger.warning(f"Plugin {plugin.name} failed to report devices: {e}")
                continue

            observations = self._device_observations(plugin, stats)
            logger.debug(f"Plugin {plugin.name} reported {len(observations)} devices")
            for observation in observations:
                by_ip.setdefault(observation.ip, []).append(observation)

        return by_ip


def is_scan_feature_enabled(gate) -> bool:
    """Check the master scan feature on any object exposing is_enabled()."""
    try:
        return bool(gate.is_enabled(SCAN_FEATURE_ID))
    except Exception as e:
        logger.error(f"Feature gate check failed, treating scan as disabled: {e}")
        return False
