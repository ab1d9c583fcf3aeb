"""
Scan Scheduler Module

Owns the full-scan and refresh timers, the manual-scan lock and the master
feature gate. Timers fire on wall-clock slots matching a fixed set of cron
expressions; at most one scan-family workflow (full scan, refresh, port
scan) runs at a time.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional, Set

from croniter import croniter

from config import (
    DEFAULT_FULL_SCAN_INTERVAL,
    DEFAULT_REFRESH_INTERVAL,
    FULL_SCAN_INTERVALS,
    INTERVAL_CRON,
    LAST_AUTO_SCAN_KEY,
    LAST_MANUAL_SCAN_KEY,
    REFRESH_INTERVALS,
    SCAN_TYPE_FULL,
    SCAN_TYPE_QUICK,
    SCAN_TYPES,
    SCHEDULER_CONFIG_KEY,
)
from .plugins import is_scan_feature_enabled
from .scanner import InvalidRangeError

logger = logging.getLogger(__name__)

FULL_SCAN = "full_scan"
REFRESH = "refresh"
PORT_SCAN = "port_scan"


class ScanInProgressError(RuntimeError):
    """Raised when a manual workflow is requested while another one runs."""


def interval_to_cron(minutes) -> Optional[str]:
    """Cron expression for a supported interval in minutes, or None."""
    if isinstance(minutes, bool) or not isinstance(minutes, int):
        return None
    return INTERVAL_CRON.get(minutes)


def _as_int(value, default: int):
    if value is None:
        return default
    if isinstance(value, str) and value.strip().isascii() and value.strip().isdigit():
        return int(value.strip())
    # Anything else is kept as is so validate() rejects it
    return value


def _is_allowed(interval, allowed) -> bool:
    return interval_to_cron(interval) is not None and interval in allowed


@dataclass
class FullScanConfig:
    enabled: bool = False
    interval: int = DEFAULT_FULL_SCAN_INTERVAL
    port_scan_enabled: bool = False


@dataclass
class RefreshConfig:
    enabled: bool = False
    interval: int = DEFAULT_REFRESH_INTERVAL
    scan_type: str = SCAN_TYPE_QUICK


@dataclass
class SchedulerConfig:
    """Unified automatic scan configuration."""

    enabled: bool = False
    full_scan: FullScanConfig = field(default_factory=FullScanConfig)
    refresh: RefreshConfig = field(default_factory=RefreshConfig)

    def to_dict(self) -> Dict:
        """Convert to dictionary representation."""
        return {
            "enabled": self.enabled,
            "full_scan": {
                "enabled": self.full_scan.enabled,
                "interval": self.full_scan.interval,
                "port_scan_enabled": self.full_scan.port_scan_enabled,
            },
            "refresh": {
                "enabled": self.refresh.enabled,
                "interval": self.refresh.interval,
                "scan_type": self.refresh.scan_type,
            },
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "SchedulerConfig":
        """
        Build a config from its dictionary form; missing keys use defaults.

        Raises:
            ValueError: If the data is not shaped like a scheduler config
        """
        if not isinstance(data, dict):
            raise ValueError("Scheduler config must be an object")
        full = data.get("full_scan") or {}
        refresh = data.get("refresh") or {}
        if not isinstance(full, dict) or not isinstance(refresh, dict):
            raise ValueError("full_scan and refresh must be objects")

        return cls(
            enabled=bool(data.get("enabled", False)),
            full_scan=FullScanConfig(
                enabled=bool(full.get("enabled", False)),
                interval=_as_int(full.get("interval"), DEFAULT_FULL_SCAN_INTERVAL),
                port_scan_enabled=bool(full.get("port_scan_enabled", False)),
            ),
            refresh=RefreshConfig(
                enabled=bool(refresh.get("enabled", False)),
                interval=_as_int(refresh.get("interval"), DEFAULT_REFRESH_INTERVAL),
                scan_type=refresh.get("scan_type") or SCAN_TYPE_QUICK,
            ),
        )

    def validate(self) -> List[str]:
        """List the problems that prevent enabled timers from starting."""
        errors = []
        if self.full_scan.enabled and not _is_allowed(self.full_scan.interval, FULL_SCAN_INTERVALS):
            errors.append(
                f"Invalid full scan interval {self.full_scan.interval!r}, "
                f"allowed: {list(FULL_SCAN_INTERVALS)}"
            )
        if self.refresh.enabled and not _is_allowed(self.refresh.interval, REFRESH_INTERVALS):
            errors.append(
                f"Invalid refresh interval {self.refresh.interval!r}, "
                f"allowed: {list(REFRESH_INTERVALS)}"
            )
        if self.refresh.scan_type not in SCAN_TYPES:
            errors.append(f"Invalid refresh scan type {self.refresh.scan_type!r}")
        return errors


class _IntervalTimer:
    """Asyncio task that awaits a callback on every cron slot of an interval."""

    def __init__(
        self,
        name: str,
        interval: int,
        callback: Callable[[], Awaitable[None]],
        spawn: Callable[[Awaitable[None]], asyncio.Task],
    ):
        self.name = name
        self.interval = interval
        self.cron = INTERVAL_CRON[interval]
        self.next_run: Optional[datetime] = None
        self._callback = callback
        self._spawn = spawn
        self._task: Optional[asyncio.Task] = None

    def start(self) -> None:
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info(f"{self.name} timer started: every {self.interval} min ({self.cron})")

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
            logger.info(f"{self.name} timer stopped")

    async def _run(self) -> None:
        while True:
            self.next_run = croniter(self.cron, datetime.now()).get_next(datetime)
            delay = (self.next_run - datetime.now()).total_seconds()
            await asyncio.sleep(max(delay, 0))
            # A started cycle outlives the timer being stopped
            cycle = self._spawn(self._callback())
            try:
                await asyncio.shield(cycle)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"{self.name} timer callback failed: {e}", exc_info=True)


class ScanScheduler:
    """Drives automatic scans and serializes every scan-family workflow."""

    def __init__(self, scan_service, port_scanner, config_store, feature_gate):
        """
        Initialize the scheduler.

        Args:
            scan_service: ScanService running scans and refreshes
            port_scanner: PortScanner for open-port enrichment
            config_store: ConfigStore holding the scheduler config
            feature_gate: Object exposing is_enabled(feature_id)
        """
        self.scan_service = scan_service
        self.port_scanner = port_scanner
        self.config_store = config_store
        self.feature_gate = feature_gate

        self._config = SchedulerConfig()
        self._full_timer: Optional[_IntervalTimer] = None
        self._refresh_timer: Optional[_IntervalTimer] = None
        self._manual_scan_in_progress = False
        self._active_workflow: Optional[str] = None
        self._tasks: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def load_config(self) -> SchedulerConfig:
        """Read the stored config; missing or malformed data gives the defaults."""
        data = self.config_store.get_json(SCHEDULER_CONFIG_KEY, default=None)
        if data is None:
            return SchedulerConfig()
        try:
            return SchedulerConfig.from_dict(data)
        except ValueError as e:
            logger.warning(f"Invalid stored scheduler config, using defaults: {e}")
            return SchedulerConfig()

    def get_config(self) -> SchedulerConfig:
        """Config currently applied to the timers."""
        return self._config

    def update_config(self, config) -> bool:
        """
        Replace the whole scheduler configuration.

        The config is validated and saved before any timer changes. Both
        timers then reflect the new config, or both are stopped when the
        scan feature is disabled. Must be called from the event loop.

        Args:
            config: SchedulerConfig or its dictionary form

        Returns:
            True if the config was accepted and saved
        """
        try:
            if not isinstance(config, SchedulerConfig):
                config = SchedulerConfig.from_dict(config)
        except ValueError as e:
            logger.error(f"Rejected scheduler config: {e}")
            return False

        errors = config.validate()
        if errors:
            for error in errors:
                logger.error(f"Rejected scheduler config: {error}")
            return False

        if not self.config_store.set_json(SCHEDULER_CONFIG_KEY, config.to_dict()):
            logger.error("Failed to persist scheduler config")
            return False

        self._config = config
        self._apply(config)
        return True

    def _gate_open(self) -> bool:
        return is_scan_feature_enabled(self.feature_gate)

    def _stop_timers(self) -> None:
        if self._full_timer is not None:
            self._full_timer.stop()
            self._full_timer = None
        if self._refresh_timer is not None:
            self._refresh_timer.stop()
            self._refresh_timer = None

    def _make_timer(self, name: str, interval, allowed, callback) -> Optional[_IntervalTimer]:
        if not _is_allowed(interval, allowed):
            logger.error(f"Not starting {name} timer: unsupported interval {interval!r}")
            return None
        timer = _IntervalTimer(name, interval, callback, self._spawn)
        timer.start()
        return timer

    def _apply(self, config: SchedulerConfig) -> None:
        self._stop_timers()

        if not self._gate_open():
            logger.info("Network scan feature disabled, automatic scans stopped")
            return
        if not config.enabled:
            logger.info("Automatic scans disabled")
            return

        if config.full_scan.enabled:
            self._full_timer = self._make_timer(
                FULL_SCAN, config.full_scan.interval, FULL_SCAN_INTERVALS, self._on_full_scan_timer
            )
        if config.refresh.enabled:
            self._refresh_timer = self._make_timer(
                REFRESH, config.refresh.interval, REFRESH_INTERVALS, self._on_refresh_timer
            )

    def check_feature_gate_and_update(self) -> bool:
        """
        Re-read the feature gate and start or tear down the timers.

        Call this whenever the scan feature is toggled.

        Returns:
            True if the scan feature is enabled
        """
        if not self._gate_open():
            if self._full_timer is not None or self._refresh_timer is not None:
                logger.info("Network scan feature disabled, stopping automatic scans")
            self._stop_timers()
            return False

        self._config = self.load_config()
        self._apply(self._config)
        return True

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _spawn(self, coro: Awaitable[None]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def start(self, ready: Optional[asyncio.Event] = None, startup_scan: bool = True) -> None:
        """
        Start the timers from the stored config.

        Args:
            ready: Event set once storage is usable; awaited first
            startup_scan: Fire one full scan right away when it is scheduled
        """
        if ready is not None:
            await ready.wait()

        self._config = self.load_config()
        self._apply(self._config)

        if startup_scan and self._full_timer is not None:
            logger.info("Running startup full scan in the background")
            self._spawn(self._startup_scan())

    def stop(self) -> None:
        """Stop both timers; workflows already running finish on their own."""
        self._stop_timers()

    async def wait_idle(self, timeout: Optional[float] = None) -> None:
        """Wait for background workflows to finish."""
        if self._tasks:
            await asyncio.wait(list(self._tasks), timeout=timeout)

    async def _startup_scan(self) -> None:
        try:
            if self._busy():
                logger.info("Startup scan skipped: another scan is running")
                return
            await self._run_full_scan_cycle()
        except Exception as e:
            logger.error(f"Startup scan failed: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Manual-scan lock
    # ------------------------------------------------------------------

    def pause_auto_scans(self) -> None:
        """Take the manual-scan lock; timer fires are skipped until resumed."""
        if self._manual_scan_in_progress:
            logger.debug("Automatic scans already paused")
            return
        self._manual_scan_in_progress = True
        logger.info("Automatic scans paused (manual scan in progress)")

    def resume_auto_scans(self) -> None:
        """Release the manual-scan lock."""
        if not self._manual_scan_in_progress:
            logger.debug("Automatic scans are not paused")
            return
        self._manual_scan_in_progress = False
        logger.info("Automatic scans resumed")

    def is_paused(self) -> bool:
        return self._manual_scan_in_progress

    def _busy(self) -> bool:
        return (
            self._manual_scan_in_progress
            or self._active_workflow is not None
            or self.scan_service.is_running()
        )

    # ------------------------------------------------------------------
    # Timer callbacks
    # ------------------------------------------------------------------

    async def _on_full_scan_timer(self) -> None:
        if not self._gate_open():
            logger.info("Scheduled full scan skipped: network scan feature disabled")
            return
        if self._busy():
            logger.info("Scheduled full scan skipped: another scan is in progress")
            return
        await self._run_full_scan_cycle()

    async def _on_refresh_timer(self) -> None:
        if not self._gate_open():
            logger.info("Scheduled refresh skipped: network scan feature disabled")
            return
        if self._busy():
            logger.info("Scheduled refresh skipped: another scan is in progress")
            return
        await self._run_refresh_cycle()

    def _record_last_run(self, key: str, run_type: str, scan_type: str, ip_range: Optional[str], result: Dict) -> None:
        self.config_store.set_json(key, {
            "type": run_type,
            "scan_type": scan_type,
            "range": ip_range,
            "timestamp": datetime.now().isoformat(),
            "result": result,
        })

    async def _run_full_scan_cycle(self) -> None:
        self._active_workflow = FULL_SCAN
        try:
            ip_range = self.scan_service.resolve_scan_range()
            if not ip_range:
                logger.warning("Scheduled full scan skipped: no network range configured or detected")
                return

            result = await self.scan_service.scan_network(ip_range, SCAN_TYPE_FULL)
            self._record_last_run(LAST_AUTO_SCAN_KEY, FULL_SCAN, SCAN_TYPE_FULL, ip_range, result.to_dict())

            if self._config.full_scan.port_scan_enabled:
                if self.port_scanner.is_available():
                    self._active_workflow = PORT_SCAN
                    await self.port_scanner.run_for_online_hosts()
                else:
                    logger.warning("Port scan after full scan skipped: nmap not available")
        except Exception as e:
            logger.error(f"Scheduled full scan failed: {e}", exc_info=True)
        finally:
            self._active_workflow = None

    async def _run_refresh_cycle(self) -> None:
        scan_type = self._config.refresh.scan_type
        self._active_workflow = REFRESH
        try:
            result = await self.scan_service.refresh_existing_ips(scan_type)
            self._record_last_run(LAST_AUTO_SCAN_KEY, REFRESH, scan_type, None, result.to_dict())
        except Exception as e:
            logger.error(f"Scheduled refresh failed: {e}", exc_info=True)
        finally:
            self._active_workflow = None

    # ------------------------------------------------------------------
    # Manual workflows
    # ------------------------------------------------------------------

    def _acquire_manual(self, name: str) -> None:
        if self._busy():
            raise ScanInProgressError(f"Cannot start {name}: another scan is in progress")
        self.pause_auto_scans()

    async def run_manual_scan(
        self,
        ip_range: Optional[str] = None,
        scan_type: str = SCAN_TYPE_FULL,
        port_scan: bool = False,
    ):
        """
        Run a user-requested range scan while holding the manual-scan lock.

        Args:
            ip_range: Range to scan (stored default or detected LAN if omitted)
            scan_type: "full" or "quick"
            port_scan: Run the port scan batch afterwards

        Returns:
            ScanResult

        Raises:
            ScanInProgressError: If another scan-family workflow is running
            InvalidRangeError: If no usable range is available
        """
        self._acquire_manual("manual scan")
        try:
            ip_range = ip_range or self.scan_service.resolve_scan_range()
            if not ip_range:
                raise InvalidRangeError("No range given and none could be detected")

            result = await self.scan_service.scan_network(ip_range, scan_type)
            self._record_last_run(LAST_MANUAL_SCAN_KEY, FULL_SCAN, scan_type, ip_range, result.to_dict())

            if port_scan:
                await self.port_scanner.run_for_online_hosts()
            return result
        finally:
            self.resume_auto_scans()

    async def run_manual_refresh(self, scan_type: str = SCAN_TYPE_QUICK):
        """Re-probe known hosts while holding the manual-scan lock."""
        self._acquire_manual("manual refresh")
        try:
            result = await self.scan_service.refresh_existing_ips(scan_type)
            self._record_last_run(LAST_MANUAL_SCAN_KEY, REFRESH, scan_type, None, result.to_dict())
            return result
        finally:
            self.resume_auto_scans()

    async def run_port_scan(self, port_range: Optional[str] = None) -> Dict:
        """Port scan the online hosts while holding the manual-scan lock."""
        self._acquire_manual("port scan")
        try:
            if port_range:
                return await self.port_scanner.run_for_online_hosts(port_range)
            return await self.port_scanner.run_for_online_hosts()
        finally:
            self.resume_auto_scans()

    def request_port_scan_abort(self) -> None:
        """Ask the running port scan batch to stop at the next host."""
        self.port_scanner.request_abort()

    def get_port_scan_progress(self) -> Dict:
        """Snapshot of the port scan batch progress."""
        return self.port_scanner.get_progress()

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def _timer_status(self, timer: Optional[_IntervalTimer], kind: str, workflow: str, interval: int) -> Dict:
        progress = self.scan_service.get_progress()
        return {
            "enabled": timer is not None,
            "running": self._active_workflow == workflow or (
                progress.get("active", False) and progress.get("kind") == kind
            ),
            "interval": interval,
            "cron": timer.cron if timer else interval_to_cron(interval),
            "next_run": timer.next_run.isoformat() if timer and timer.next_run else None,
            "paused": self._manual_scan_in_progress,
        }

    def get_scan_status(self) -> Dict:
        """Status of the full-scan timer."""
        return self._timer_status(self._full_timer, "scan", FULL_SCAN, self._config.full_scan.interval)

    def get_refresh_status(self) -> Dict:
        """Status of the refresh timer."""
        return self._timer_status(self._refresh_timer, "refresh", REFRESH, self._config.refresh.interval)
