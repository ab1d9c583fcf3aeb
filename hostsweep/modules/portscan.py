"""
Port Scan Module

Enriches online hosts with their open TCP ports using nmap. Hosts are
scanned one after another; a batch can be aborted between hosts.
"""

import asyncio
import logging
import re
import shutil
import subprocess
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Dict, List, Optional

from config import DEFAULT_PORT_RANGE, PORT_SCAN_MAX_HOSTS, PORT_SCAN_TIMEOUT

logger = logging.getLogger(__name__)

_OPEN_PORT_PATTERN = re.compile(r"^\s*(\d+)/(tcp|udp)\s+open\b", re.IGNORECASE)
_PORT_RANGE_PATTERN = re.compile(r"\d+(-\d+)?(,\d+(-\d+)?)*", re.ASCII)


class PortScanError(RuntimeError):
    """Raised when nmap produced no usable output for a host."""


@dataclass
class PortScanProgress:
    """Progress of the running (or last) port scan batch."""

    active: bool = False
    current: int = 0
    total: int = 0
    current_ip: Optional[str] = None


def parse_open_ports(output: str) -> List[Dict]:
    """
    Extract open ports from nmap normal output.

    Args:
        output: nmap stdout

    Returns:
        List of {"port", "protocol"} sorted by port
    """
    ports = []
    seen = set()
    for line in output.splitlines():
        match = _OPEN_PORT_PATTERN.match(line)
        if not match:
            continue
        port = int(match.group(1))
        protocol = match.group(2).lower()
        if not 1 <= port <= 65535 or (port, protocol) in seen:
            continue
        seen.add((port, protocol))
        ports.append({"port": port, "protocol": protocol})
    return sorted(ports, key=lambda p: (p["port"], p["protocol"]))


def _decode(output) -> str:
    if output is None:
        return ""
    if isinstance(output, bytes):
        return output.decode("utf-8", errors="replace")
    return output


class PortScanner:
    """Sequential nmap port scans over the online hosts in the store."""

    def __init__(self, db, timeout: int = PORT_SCAN_TIMEOUT, max_hosts: int = PORT_SCAN_MAX_HOSTS):
        """
        Initialize the port scanner.

        Args:
            db: DatabaseManager holding the host records
            timeout: Seconds allowed for one host
            max_hosts: Maximum number of online hosts per batch
        """
        self.db = db
        self.timeout = timeout
        self.max_hosts = max_hosts
        self._progress = PortScanProgress()
        self._abort_requested = False

    def is_available(self) -> bool:
        """Check whether nmap is installed and on the PATH."""
        return shutil.which("nmap") is not None

    def scan(self, ip: str, port_range: str = DEFAULT_PORT_RANGE) -> List[Dict]:
        """
        Scan one host for open TCP ports.

        Output is parsed even when nmap exits with an error or times out,
        as long as it printed something.

        Args:
            ip: Target IP address
            port_range: nmap port specification, e.g. "1-10000"

        Returns:
            Open ports sorted ascending

        Raises:
            PortScanError: If nmap could not run or printed nothing usable
        """
        if not _PORT_RANGE_PATTERN.fullmatch(port_range or ""):
            raise PortScanError(f"Invalid port range: {port_range}")

        cmd = ["nmap", "-sT", "-Pn", "-p", port_range, ip]
        logger.debug(f"Running command: {' '.join(cmd)}")
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
            stdout, stderr, returncode = result.stdout, result.stderr, result.returncode
        except subprocess.TimeoutExpired as e:
            stdout, stderr, returncode = _decode(e.stdout), "Command timed out", -1
            logger.warning(f"Port scan of {ip} timed out after {self.timeout}s")
        except OSError as e:
            raise PortScanError(f"Could not run nmap for {ip}: {e}") from e

        if returncode != 0:
            if not stdout or not stdout.strip():
                raise PortScanError(
                    f"nmap failed for {ip} (rc={returncode}): {(stderr or '').strip()}"
                )
            logger.debug(f"nmap exited with {returncode} for {ip}, parsing partial output")

        return parse_open_ports(stdout)

    def request_abort(self) -> None:
        """Stop the running batch before its next host."""
        if self._progress.active:
            logger.info("Port scan abort requested")
        self._abort_requested = True

    def get_progress(self) -> Dict:
        """Get a snapshot of the batch progress."""
        return asdict(self._progress)

    def _merge_result(self, ip: str, open_ports: List[Dict]) -> None:
        host = self.db.get_host(ip)
        if host is None:
            logger.debug(f"Host {ip} disappeared before its port scan was saved")
            return
        info = dict(host.additional_info)
        info["openPorts"] = open_ports
        info["lastPortScan"] = datetime.now().isoformat()
        self.db.update_host(ip, additional_info=info)

    async def run_for_online_hosts(self, port_range: str = DEFAULT_PORT_RANGE) -> Dict:
        """
        Scan every online host, most recently seen first.

        Each host's result is saved as soon as it completes. A failure on
        one host is logged and the batch continues.

        Args:
            port_range: nmap port specification

        Returns:
            Summary with scanned, failed, total and aborted
        """
        summary = {"scanned": 0, "failed": 0, "total": 0, "aborted": False}
        if not self.is_available():
            logger.warning("nmap not found in PATH, port scan skipped")
            return summary

        hosts = self.db.get_online_hosts(limit=self.max_hosts)
        total = len(hosts)
        summary["total"] = total
        self._abort_requested = False
        self._progress = PortScanProgress(active=True, current=0, total=total)
        logger.info(f"Starting port scan of {total} online hosts (ports {port_range})")

        loop = asyncio.get_running_loop()
        try:
            for index, host in enumerate(hosts):
                if self._abort_requested:
                    self._progress = PortScanProgress(
                        active=False, current=index, total=total, current_ip=None
                    )
                    summary["aborted"] = True
                    logger.info(f"Port scan stopped at {index}/{total} hosts")
                    return summary

                self._progress = PortScanProgress(
                    active=True, current=index + 1, total=total, current_ip=host.ip
                )
                try:
                    open_ports = await loop.run_in_executor(None, self.scan, host.ip, port_range)
                    self._merge_result(host.ip, open_ports)
                    summary["scanned"] += 1
                    logger.debug(f"{host.ip}: {len(open_ports)} open ports")
                except Exception as e:
                    summary["failed"] += 1
                    logger.warning(f"Port scan failed for {host.ip}: {e}")

            self._progress = PortScanProgress(active=False, current=total, total=total)
            logger.info(
                f"Port scan complete: {summary['scanned']} scanned, {summary['failed']} failed"
            )
            return summary
        finally:
            if self._progress.active:
                self._progress.active = False
            self._abort_requested = False
