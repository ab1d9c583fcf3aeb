#!/usr/bin/env python3
"""
HostSweep - LAN Host Discovery & Reconciliation Daemon

Main entry point for the application.

Architecture:
    1. **ScanScheduler** fires full scans and lightweight refreshes on
       cron-aligned slots, behind the network scan feature gate and the
       manual-scan lock. One full scan runs at startup once storage is ready.

    2. **ScanService** pings the target range with bounded concurrency and
       merges direct-scan and plugin observations by source priority.

    3. **PortScanner** enriches online hosts with nmap open-port data after
       full scans (when enabled) or on demand.

    4. **Cleanup loop** applies the retention policy every 6 hours.
"""

import argparse
import asyncio
import logging
import signal
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

from config import (
    CLEANUP_INTERVAL_SECONDS,
    DATABASE_URL,
    DEBUG_MODE,
    LOG_BACKUP_COUNT,
    LOG_DATE_FORMAT,
    LOG_FILE,
    LOG_FORMAT,
    LOG_MAX_BYTES,
    SCAN_FEATURE_ID,
    SCAN_TYPE_FULL,
    SCHEDULER_CONFIG_KEY,
)

from modules import (
    init_database,
    ConfigStore,
    IpBlacklist,
    PriorityConfigService,
    PluginManager,
    ScanService,
    PortScanner,
    ScanScheduler,
    DatabasePurger,
    InvalidRangeError,
    ScanInProgressError,
)

VERSION = "1.0.0"


def setup_logging(verbose: bool = False) -> None:
    """
    Setup application logging.

    Args:
        verbose: Enable debug logging
    """
    level = logging.DEBUG if verbose else logging.INFO

    # Create formatters and handlers
    formatter = logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT)

    # File handler with rotation
    file_handler = RotatingFileHandler(
        LOG_FILE,
        maxBytes=LOG_MAX_BYTES,
        backupCount=LOG_BACKUP_COUNT
    )
    file_handler.setFormatter(formatter)
    file_handler.setLevel(logging.DEBUG)

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(level)

    # Root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    # Suppress noisy libraries
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)
    logging.getLogger('asyncio').setLevel(logging.WARNING)

    logging.info("Logging initialized")


logger = logging.getLogger(__name__)


class HostSweep:
    """Main application class for HostSweep."""

    def __init__(self, database_url: str = DATABASE_URL, default_range: Optional[str] = None):
        """
        Build every component.

        Args:
            database_url: SQLAlchemy database URL
            default_range: Range stored as the default for scheduled scans
        """
        self.database_url = database_url
        self.default_range = default_range
        self.running = False

        self.db = None
        self.config_store = None
        self.blacklist = None
        self.priority_service = None
        self.plugin_manager = None
        self.scan_service = None
        self.port_scanner = None
        self.scheduler = None
        self.purger = None

        self.storage_ready: Optional[asyncio.Event] = None
        self._stop_event: Optional[asyncio.Event] = None
        self.cleanup_task: Optional[asyncio.Task] = None

    def init_components(self) -> None:
        """Open the database and wire the services together."""
        self.db = init_database(self.database_url)
        self.config_store = ConfigStore(self.db)
        self.blacklist = IpBlacklist(self.config_store)
        self.priority_service = PriorityConfigService(self.config_store)
        self.plugin_manager = PluginManager(self.config_store, self.blacklist)
        self.scan_service = ScanService(
            self.db,
            self.config_store,
            self.blacklist,
            self.priority_service,
            self.plugin_manager,
        )
        self.port_scanner = PortScanner(self.db)
        self.scheduler = ScanScheduler(
            self.scan_service,
            self.port_scanner,
            self.config_store,
            self.plugin_manager,
        )
        self.purger = DatabasePurger(self.db, self.config_store)

        if self.default_range:
            self.scan_service.set_default_range(self.default_range)
            logger.info(f"Default scan range set to {self.default_range}")

        if not self.port_scanner.is_available():
            logger.warning("nmap not found in PATH, port scans will be skipped")

    def enable_scheduler(self) -> None:
        """Turn the scan feature on and enable both timers if no config is stored."""
        self.plugin_manager.set_enabled(SCAN_FEATURE_ID, True)
        config = self.scheduler.load_config()
        config.enabled = True
        if not config.full_scan.enabled and not config.refresh.enabled:
            config.full_scan.enabled = True
            config.refresh.enabled = True
        self.config_store.set_json(SCHEDULER_CONFIG_KEY, config.to_dict())

    # ------------------------------------------------------------------
    # Background: periodic data cleanup
    # ------------------------------------------------------------------

    async def cleanup_loop(self) -> None:
        """Background task that periodically applies the retention policy."""
        logger.info("Starting cleanup loop (interval: %d seconds)", CLEANUP_INTERVAL_SECONDS)

        while self.running:
            try:
                await asyncio.sleep(CLEANUP_INTERVAL_SECONDS)

                if not self.running:
                    break

                if not self.purger.get_config().auto_purge_enabled:
                    logger.debug("Automatic purge disabled, skipping cleanup")
                    continue

                logger.info("Running periodic data cleanup...")
                stats = self.purger.execute_purge()
                logger.info(f"Cleanup results: {stats}")

            except asyncio.CancelledError:
                logger.info("Cleanup loop cancelled")
                break

            except Exception as e:
                logger.error(f"Error in cleanup loop: {e}", exc_info=True)

        logger.info("Cleanup loop stopped")

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def _request_stop(self, sig: signal.Signals) -> None:
        logger.info("Shutdown signal received (%s)", sig.name)
        self.running = False
        if self._stop_event is not None:
            self._stop_event.set()

    async def serve(self) -> None:
        """Run the scheduler and cleanup loop until a shutdown signal."""
        loop = asyncio.get_running_loop()
        self.storage_ready = asyncio.Event()
        self._stop_event = asyncio.Event()
        self.running = True

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._request_stop, sig)
            except NotImplementedError:
                logger.debug(f"Signal handlers not supported for {sig.name}")

        scheduler_task = asyncio.create_task(self.scheduler.start(self.storage_ready))
        self.cleanup_task = asyncio.create_task(self.cleanup_loop())

        self.signal_storage_ready()
        logger.info("HostSweep running")

        try:
            await self._stop_event.wait()
        finally:
            self.running = False
            scheduler_task.cancel()
            self.scheduler.stop()
            self.scheduler.request_port_scan_abort()
            self.cleanup_task.cancel()
            await self.scheduler.wait_idle(timeout=10)
            logger.info("HostSweep shut down")

    def signal_storage_ready(self) -> None:
        """Signal that the database is initialized and usable."""
        if self.db is not None and self.storage_ready is not None:
            self.storage_ready.set()

    async def run_once(self, action: str, ip_range: Optional[str] = None) -> None:
        """
        Run one manual workflow and return.

        Args:
            action: "scan", "refresh" or "ports"
            ip_range: Range for "scan" (default range or detection if omitted)
        """
        if action == "scan":
            result = await self.scheduler.run_manual_scan(ip_range, SCAN_TYPE_FULL)
        elif action == "refresh":
            result = await self.scheduler.run_manual_refresh()
        elif action == "ports":
            result = await self.scheduler.run_port_scan()
        else:
            raise ValueError(f"Unknown action: {action}")

        summary = result.to_dict() if hasattr(result, "to_dict") else result
        logger.info(f"{action} finished: {summary}")
        print(summary)


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="HostSweep - LAN Host Discovery & Reconciliation Daemon",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --enable-scheduler
  python main.py --range 192.168.1.0/24 --verbose
  python main.py --once scan --range 192.168.1.1-50
  python main.py --once ports
        """
    )

    parser.add_argument(
        '--db-url',
        type=str,
        default=DATABASE_URL,
        help=f'SQLAlchemy database URL (default: {DATABASE_URL})'
    )

    parser.add_argument(
        '-r', '--range',
        type=str,
        default=None,
        help='Default scan range (CIDR, dash range or single IP; default: auto-detect)'
    )

    parser.add_argument(
        '--once',
        choices=['scan', 'refresh', 'ports'],
        default=None,
        help='Run a single manual workflow and exit'
    )

    parser.add_argument(
        '--enable-scheduler',
        action='store_true',
        help='Enable the network scan feature and automatic scans'
    )

    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        default=DEBUG_MODE,
        help='Enable verbose logging'
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'HostSweep {VERSION}'
    )

    args = parser.parse_args()

    setup_logging(args.verbose)

    try:
        app = HostSweep(database_url=args.db_url, default_range=args.range)
        app.init_components()

        if args.enable_scheduler:
            app.enable_scheduler()

        if args.once:
            asyncio.run(app.run_once(args.once, args.range))
        else:
            asyncio.run(app.serve())

    except KeyboardInterrupt:
        logger.info("Application stopped by user")
        sys.exit(0)

    except (InvalidRangeError, ScanInProgressError) as e:
        logger.error(str(e))
        sys.exit(2)

    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
