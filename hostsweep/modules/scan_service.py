"""
Scan Service Module

Runs scan cycles: pings every target address with bounded concurrency,
enriches responders (MAC, vendor, hostname), merges plugin observations
through the priority resolver and writes the outcome to the host store
and its history log.
"""

import asyncio
import logging
import time
from dataclasses import asdict, dataclass
from typing import Dict, List, Optional, Tuple

from mac_vendor_lookup import AsyncMacLookup

from config import (
    DEFAULT_RANGE_CONFIG_KEY,
    MAX_CONCURRENT_PINGS,
    PING_BATCH_DELAY,
    SCAN_TYPE_FULL,
    SCAN_TYPE_QUICK,
    SCAN_TYPES,
    STATUS_OFFLINE,
    STATUS_ONLINE,
)
from .database import ip_sort_key
from .priority import Observation, Source, merge_observations
from .scanner import NetworkProber, parse_ip_range

logger = logging.getLogger(__name__)


@dataclass
class ScanResult:
    """Outcome of a full range scan."""

    scanned: int = 0
    found: int = 0
    updated: int = 0
    skipped: int = 0
    duration_ms: int = 0

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class RefreshResult:
    """Outcome of a refresh of known hosts."""

    scanned: int = 0
    online: int = 0
    offline: int = 0
    skipped: int = 0
    duration_ms: int = 0

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class ScanProgress:
    """Progress of the running scan cycle."""

    active: bool = False
    kind: Optional[str] = None
    scan_type: Optional[str] = None
    total: int = 0
    scanned: int = 0
    found: int = 0
    updated: int = 0


@dataclass
class _ProbeOutcome:
    ip: str
    alive: bool
    latency_ms: Optional[float] = None
    observation: Optional[Observation] = None


class ScanService:
    """Range probe provider backed by a NetworkProber and the host store."""

    def __init__(
        self,
        db,
        config_store,
        blacklist,
        priority_service,
        plugin_manager=None,
        prober: Optional[NetworkProber] = None,
        max_concurrent: int = MAX_CONCURRENT_PINGS,
        batch_delay: float = PING_BATCH_DELAY,
    ):
        """
        Initialize the scan service.

        Args:
            db: DatabaseManager
            config_store: ConfigStore holding the default range
            blacklist: IpBlacklist consulted before probing
            priority_service: PriorityConfigService for merges
            plugin_manager: Optional PluginManager supplying plugin observations
            prober: NetworkProber (created if omitted)
            max_concurrent: Pings in flight per batch
            batch_delay: Pause between ping batches in seconds
        """
        self.db = db
        self.config_store = config_store
        self.blacklist = blacklist
        self.priority_service = priority_service
        self.plugin_manager = plugin_manager
        self.prober = prober or NetworkProber()
        self.max_concurrent = max(1, max_concurrent)
        self.batch_delay = batch_delay
        self._progress = ScanProgress()
        self._mac_lookup: Optional[AsyncMacLookup] = None

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def is_running(self) -> bool:
        """True while a scan or refresh cycle is in progress."""
        return self._progress.active

    def get_progress(self) -> Dict:
        """Get a snapshot of the current cycle's progress."""
        return asdict(self._progress)

    # ------------------------------------------------------------------
    # Range selection
    # ------------------------------------------------------------------

    def get_network_range(self) -> Optional[str]:
        """Auto-detect the local /24 (None if undetectable)."""
        return self.prober.get_network_range()

    def resolve_scan_range(self) -> Optional[str]:
        """
        Range used by scheduled full scans.

        The stored default range wins unless auto-detection is enabled or
        nothing usable is stored.
        """
        stored = self.config_store.get_json(DEFAULT_RANGE_CONFIG_KEY, default=None)
        if isinstance(stored, dict):
            default_range = stored.get("default_range")
            if default_range and not stored.get("auto_detect", False):
                return default_range
        elif stored is not None:
            logger.warning("Stored default range is not an object, auto-detecting")
        return self.get_network_range()

    def set_default_range(self, default_range: Optional[str], auto_detect: bool = False) -> bool:
        """
        Store the default range for scheduled scans.

        Args:
            default_range: Range in any form parse_ip_range accepts
            auto_detect: Ignore default_range and detect the LAN instead

        Returns:
            True if saved

        Raises:
            InvalidRangeError: If default_range cannot be scanned
        """
        if default_range:
            parse_ip_range(default_range)
        return self.config_store.set_json(
            DEFAULT_RANGE_CONFIG_KEY,
            {"default_range": default_range, "auto_detect": bool(auto_detect)},
        )

    # ------------------------------------------------------------------
    # Probing
    # ------------------------------------------------------------------

    async def _lookup_vendor(self, mac: Optional[str]) -> Optional[str]:
        if not mac:
            return None
        if self._mac_lookup is None:
            self._mac_lookup = AsyncMacLookup()
        try:
            return await self._mac_lookup.lookup(mac)
        except Exception:
            return None

    async def _probe(self, ip: str, scan_type: str) -> _ProbeOutcome:
        loop = asyncio.get_running_loop()
        try:
            alive, latency = await loop.run_in_executor(None, self.prober.ping_host, ip)
        except Exception as e:
            logger.debug(f"Ping of {ip} failed: {e}")
            return _ProbeOutcome(ip=ip, alive=False)

        if not alive:
            return _ProbeOutcome(ip=ip, alive=False)

        observation = Observation(ip=ip, source=Source.SCANNER, status=STATUS_ONLINE, ping_latency_ms=latency)
        if scan_type == SCAN_TYPE_FULL:
            try:
                observation.mac = await loop.run_in_executor(None, self.prober.get_mac_address, ip)
                observation.vendor = await self._lookup_vendor(observation.mac)
                observation.hostname = await loop.run_in_executor(None, self.prober.get_hostname, ip)
            except Exception as e:
                logger.debug(f"Could not enrich {ip}: {e}")
        return _ProbeOutcome(ip=ip, alive=True, latency_ms=latency, observation=observation)

    async def _probe_all(self, ips: List[str], scan_type: str, on_result) -> None:
        for start in range(0, len(ips), self.max_concurrent):
            batch = ips[start:start + self.max_concurrent]
            tasks = [asyncio.ensure_future(self._probe(ip, scan_type)) for ip in batch]
            for finished in asyncio.as_completed(tasks):
                outcome = await finished
                try:
                    on_result(outcome)
                except Exception as e:
                    logger.error(f"Error recording result for {outcome.ip}: {e}")
                self._progress.scanned += 1
            if start + self.max_concurrent < len(ips) and self.batch_delay:
                await asyncio.sleep(self.batch_delay)

    def _record(
        self,
        outcome: _ProbeOutcome,
        plugin_observations: Dict[str, List[Observation]],
        priority_config,
    ) -> Tuple[Optional[str], bool]:
        """
        Write one probe outcome to the store.

        Returns:
            (status written or None, whether the host was new)
        """
        existing = self.db.get_host(outcome.ip)
        observations = plugin_observations.get(outcome.ip, [])

        if outcome.alive:
            merged = merge_observations(existing, [outcome.observation] + observations, priority_config)
            self.db.upsert_host(
                outcome.ip,
                status=STATUS_ONLINE,
                ping_latency_ms=outcome.latency_ms,
                **merged,
            )
            self.db.add_history_entry(outcome.ip, STATUS_ONLINE, outcome.latency_ms)
            return STATUS_ONLINE, existing is None

        if existing is None:
            return None, False

        merged = merge_observations(existing, observations, priority_config)
        if existing.status != STATUS_OFFLINE:
            self.db.upsert_host(outcome.ip, status=STATUS_OFFLINE, **merged)
        elif merged:
            self.db.update_host(outcome.ip, **merged)
        self.db.add_history_entry(outcome.ip, STATUS_OFFLINE, None)
        return STATUS_OFFLINE, False

    async def _plugin_observations(self, scan_type: str) -> Dict[str, List[Observation]]:
        if self.plugin_manager is None or scan_type != SCAN_TYPE_FULL:
            return {}
        try:
            return await self.plugin_manager.collect_observations()
        except Exception as e:
            logger.warning(f"Could not collect plugin observations: {e}")
            return {}

    def _enrich_from_plugins(
        self,
        plugin_observations: Dict[str, List[Observation]],
        handled: set,
        priority_config,
    ) -> int:
        """
        Apply plugin observations to known hosts the sweep did not touch.

        These hosts were not probed, so last_seen and scan_count stay as they are.
        """
        enriched = 0
        for ip, observations in plugin_observations.items():
            if ip in handled:
                continue
            existing = self.db.get_host(ip)
            if existing is None:
                continue
            merged = merge_observations(existing, observations, priority_config)
            if merged:
                try:
                    self.db.update_host(ip, **merged)
                    enriched += 1
                except Exception as e:
                    logger.error(f"Error applying plugin data to {ip}: {e}")
        return enriched

    # ------------------------------------------------------------------
    # Cycles
    # ------------------------------------------------------------------

    def _check_scan_type(self, scan_type: str) -> str:
        if scan_type not in SCAN_TYPES:
            raise ValueError(f"Unknown scan type: {scan_type}")
        return scan_type

    async def scan_network(self, ip_range: str, scan_type: str = SCAN_TYPE_FULL) -> ScanResult:
        """
        Probe every address of a range.

        Args:
            ip_range: CIDR, dash range or single IP
            scan_type: "full" (ping + MAC, vendor, hostname) or "quick" (ping only)

        Returns:
            ScanResult

        Raises:
            InvalidRangeError: If the range cannot be scanned
            RuntimeError: If another cycle is already running
        """
        self._check_scan_type(scan_type)
        targets = parse_ip_range(ip_range)
        if self._progress.active:
            raise RuntimeError("A scan cycle is already running")

        started = time.monotonic()
        allowed = self.blacklist.filter(targets)
        result = ScanResult(scanned=len(allowed), skipped=len(targets) - len(allowed))
        if result.skipped:
            logger.info(f"Skipping {result.skipped} blacklisted addresses")

        self._progress = ScanProgress(active=True, kind="scan", scan_type=scan_type, total=len(allowed))
        logger.info(f"Starting {scan_type} scan of {ip_range} ({len(allowed)} addresses)")
        try:
            plugin_observations = await self._plugin_observations(scan_type)
            priority_config = self.priority_service.get_config()
            handled = set()

            def on_result(outcome: _ProbeOutcome) -> None:
                handled.add(outcome.ip)
                status, created = self._record(outcome, plugin_observations, priority_config)
                if status == STATUS_ONLINE:
                    result.found += 1
                    self._progress.found += 1
                    if not created:
                        result.updated += 1
                        self._progress.updated += 1

            await self._probe_all(allowed, scan_type, on_result)
            self._enrich_from_plugins(plugin_observations, handled, priority_config)
        finally:
            self._progress.active = False
            result.duration_ms = int((time.monotonic() - started) * 1000)

        logger.info(
            f"Scan of {ip_range} complete: {result.found} online "
            f"({result.updated} known) out of {result.scanned} in {result.duration_ms}ms"
        )
        return result

    async def refresh_existing_ips(self, scan_type: str = SCAN_TYPE_QUICK) -> RefreshResult:
        """
        Re-probe every known host.

        Args:
            scan_type: "quick" keeps identity fields, "full" refreshes them

        Returns:
            RefreshResult

        Raises:
            RuntimeError: If another cycle is already running
        """
        self._check_scan_type(scan_type)
        if self._progress.active:
            raise RuntimeError("A scan cycle is already running")

        started = time.monotonic()
        known = sorted(self.db.get_all_ips(), key=ip_sort_key)
        allowed = self.blacklist.filter(known)
        result = RefreshResult(scanned=len(allowed), skipped=len(known) - len(allowed))

        self._progress = ScanProgress(active=True, kind="refresh", scan_type=scan_type, total=len(allowed))
        logger.info(f"Refreshing {len(allowed)} known hosts ({scan_type})")
        try:
            plugin_observations = await self._plugin_observations(scan_type)
            priority_config = self.priority_service.get_config()

            def on_result(outcome: _ProbeOutcome) -> None:
                status, _ = self._record(outcome, plugin_observations, priority_config)
                if status == STATUS_ONLINE:
                    result.online += 1
                    self._progress.found += 1
                elif status == STATUS_OFFLINE:
                    result.offline += 1

            await self._probe_all(allowed, scan_type, on_result)
        finally:
            self._progress.active = False
            result.duration_ms = int((time.monotonic() - started) * 1000)

        logger.info(
            f"Refresh complete: {result.online} online, {result.offline} offline "
            f"in {result.duration_ms}ms"
        )
        return result

