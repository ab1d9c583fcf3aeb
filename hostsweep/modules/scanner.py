"""
Network Scanner Module

Low-level probing primitives: ICMP ping with latency, MAC lookup from the
kernel neighbour/ARP tables, reverse hostname resolution, local network
range detection, and parsing of user supplied address ranges.
"""

import ipaddress
import logging
import re
import socket
import subprocess
from pathlib import Path
from typing import List, Optional, Tuple

import psutil

from config import (
    COMMAND_TIMEOUT,
    MAX_SCAN_HOSTS,
    PING_TIMEOUT,
    PRIVATE_NETWORKS,
    SKIPPED_INTERFACE_PREFIXES,
)

logger = logging.getLogger(__name__)

_ARP_CACHE_PATH = Path("/proc/net/arp")
_ZERO_MAC = "00:00:00:00:00:00"
_MAC_PATTERN = re.compile(r"([0-9a-fA-F]{1,2}(?::[0-9a-fA-F]{1,2}){5})")
_PRIVATE_NETWORKS = [ipaddress.IPv4Network(n) for n in PRIVATE_NETWORKS]
_DOCKER_NETWORK = ipaddress.IPv4Network("172.16.0.0/12")


class InvalidRangeError(ValueError):
    """Raised when an address range cannot be scanned."""


def is_private_ipv4(address: ipaddress.IPv4Address) -> bool:
    """True if the address belongs to an RFC 1918 private network."""
    return any(address in network for network in _PRIVATE_NETWORKS)


def normalize_mac(mac: Optional[str]) -> Optional[str]:
    """Upper-case, zero-padded MAC, or None for empty/incomplete entries."""
    if not mac:
        return None
    match = _MAC_PATTERN.search(mac)
    if not match:
        return None
    normalized = ":".join(part.zfill(2) for part in match.group(1).split(":")).upper()
    return None if normalized == _ZERO_MAC else normalized


def parse_ip_range(ip_range: str) -> List[str]:
    """
    Expand a scan target into individual IPv4 addresses.

    Accepted forms: CIDR ("192.168.1.0/24"), dash ranges
    ("192.168.1.10-50" or "192.168.1.10-192.168.1.50") and single addresses.
    Only private addresses are accepted.

    Args:
        ip_range: Range specification

    Returns:
        List of IP address strings in ascending order

    Raises:
        InvalidRangeError: If the range is malformed, public or too large
    """
    if not isinstance(ip_range, str) or not ip_range.strip():
        raise InvalidRangeError("Empty IP range")
    range_text = ip_range.strip()

    try:
        if "/" in range_text:
            network = ipaddress.IPv4Network(range_text, strict=False)
            if network.num_addresses > MAX_SCAN_HOSTS + 2:
                raise InvalidRangeError(
                    f"Range {range_text} is too large (max {MAX_SCAN_HOSTS} hosts)"
                )
            addresses = list(network.hosts()) if network.prefixlen < 31 else list(network)
        elif "-" in range_text:
            start_text, end_text = (part.strip() for part in range_text.split("-", 1))
            start = ipaddress.IPv4Address(start_text)
            if "." in end_text:
                end = ipaddress.IPv4Address(end_text)
            else:
                octets = start_text.split(".")
                end = ipaddress.IPv4Address(".".join(octets[:3] + [end_text]))
            if int(end) < int(start):
                raise InvalidRangeError(f"Range {range_text} ends before it starts")
            if int(end) - int(start) + 1 > MAX_SCAN_HOSTS:
                raise InvalidRangeError(
                    f"Range {range_text} is too large (max {MAX_SCAN_HOSTS} hosts)"
                )
            addresses = [ipaddress.IPv4Address(i) for i in range(int(start), int(end) + 1)]
        else:
            addresses = [ipaddress.IPv4Address(range_text)]
    except (ipaddress.AddressValueError, ipaddress.NetmaskValueError, ValueError) as e:
        if isinstance(e, InvalidRangeError):
            raise
        raise InvalidRangeError(f"Invalid IP range '{range_text}': {e}") from e

    if not all(is_private_ipv4(address) for address in addresses):
        raise InvalidRangeError(f"Range {range_text} contains non-private addresses")

    return [str(address) for address in addresses]


class NetworkProber:
    """Blocking probes built on system tools. Run them in an executor."""

    def __init__(self, ping_timeout: int = PING_TIMEOUT):
        """
        Initialize the prober.

        Args:
            ping_timeout: Seconds to wait for each ping reply
        """
        self.ping_timeout = ping_timeout

    # ------------------------------------------------------------------
    # Command execution
    # ------------------------------------------------------------------

    def _run_command(
        self, cmd: List[str], timeout: int = COMMAND_TIMEOUT
    ) -> Tuple[str, str, int]:
        """
        Execute a command and return output.

        Args:
            cmd: Command and arguments
            timeout: Command timeout in seconds

        Returns:
            Tuple of (stdout, stderr, return_code)
        """
        try:
            logger.debug(f"Running command: {' '.join(cmd)}")
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
            return result.stdout, result.stderr, result.returncode
        except subprocess.TimeoutExpired:
            logger.debug(f"Command timed out after {timeout}s: {' '.join(cmd)}")
            return "", "Command timed out", -1
        except FileNotFoundError:
            logger.debug(f"Command not found: {cmd[0]}")
            return "", f"Command not found: {cmd[0]}", -1
        except PermissionError:
            logger.warning(f"Permission denied running: {cmd[0]}")
            return "", f"Permission denied: {cmd[0]}", -1
        except OSError as e:
            logger.warning(f"OS error running command {cmd[0]}: {e}")
            return "", str(e), -1

    # ------------------------------------------------------------------
    # Ping
    # ------------------------------------------------------------------

    def ping_host(self, ip: str) -> Tuple[bool, Optional[float]]:
        """Send one ICMP echo request.

        Args:
            ip: Target IP address.

        Returns:
            (alive, latency_ms); latency is rounded to whole milliseconds
            and None when the host did not answer or no time was printed.
        """
        cmd = ["ping", "-c", "1", "-W", str(self.ping_timeout), ip]
        stdout, stderr, returncode = self._run_command(cmd, timeout=self.ping_timeout + 3)
        if returncode != 0:
            return False, None

        match = re.search(r"time[=<]([\d.]+)\s*ms", stdout)
        if match:
            try:
                return True, float(round(float(match.group(1))))
            except ValueError:
                pass
        return True, None

    # ------------------------------------------------------------------
    # MAC address
    # ------------------------------------------------------------------

    def get_mac_address(self, ip: str) -> Optional[str]:
        """Read the MAC of a recently contacted host from the neighbour tables.

        Tries ``ip neigh``, then ``/proc/net/arp``, then ``arp -n``.

        Args:
            ip: Target IP address.

        Returns:
            Upper-case MAC address or None if unknown.
        """
        # --- Attempt 1: ip neigh ---
        stdout, stderr, returncode = self._run_command(["ip", "neigh", "show", ip])
        if returncode == 0 and stdout:
            match = re.search(r"lladdr\s+(\S+)", stdout)
            mac = normalize_mac(match.group(1)) if match else None
            if mac:
                return mac

        # --- Attempt 2: kernel ARP cache ---
        try:
            if _ARP_CACHE_PATH.exists():
                for line in _ARP_CACHE_PATH.read_text().splitlines()[1:]:  # skip header
                    parts = line.split()
                    if len(parts) >= 4 and parts[0] == ip:
                        mac = normalize_mac(parts[3])
                        if mac:
                            return mac
        except OSError as e:
            logger.debug(f"ARP cache read failed: {e}")

        # --- Attempt 3: arp -n ---
        stdout, stderr, returncode = self._run_command(["arp", "-n", ip])
        if returncode == 0 and stdout:
            for line in stdout.splitlines():
                if ip in line:
                    mac = normalize_mac(line)
                    if mac:
                        return mac

        logger.debug(f"No MAC address found for {ip}")
        return None

    # ------------------------------------------------------------------
    # Hostname
    # ------------------------------------------------------------------

    def get_hostname(self, ip: str) -> Optional[str]:
        """Resolve a hostname by reverse DNS, falling back to getent.

        Args:
            ip: Target IP address.

        Returns:
            Hostname or None.
        """
        try:
            hostname = socket.gethostbyaddr(ip)[0]
            if hostname and hostname != ip:
                return hostname
        except (socket.herror, socket.gaierror, OSError):
            pass

        stdout, stderr, returncode = self._run_command(["getent", "hosts", ip])
        if returncode == 0 and stdout:
            parts = stdout.split()
            if len(parts) >= 2 and parts[1] != ip:
                return parts[1]
        return None

    # ------------------------------------------------------------------
    # Network range detection
    # ------------------------------------------------------------------

    def get_network_range(self) -> Optional[str]:
        """
        Detect the /24 of the local LAN interface.

        Loopback, docker, veth and bridge interfaces and Docker networks in
        172.17-31 are skipped. Addresses in 192.168/16 are preferred, then
        10/8, then 172.16/12.

        Returns:
            CIDR notation network range (e.g., '192.168.1.0/24') or None
        """
        try:
            interfaces = psutil.net_if_addrs()
        except Exception as e:
            logger.error(f"Failed to list network interfaces: {e}")
            return None

        candidates = []
        for name, addresses in interfaces.items():
            if any(name.startswith(prefix) for prefix in SKIPPED_INTERFACE_PREFIXES):
                continue
            for addr in addresses:
                if addr.family != socket.AF_INET or not addr.address:
                    continue
                try:
                    address = ipaddress.IPv4Address(addr.address)
                except ValueError:
                    continue
                if address.is_loopback or not is_private_ipv4(address):
                    continue
                if address in _DOCKER_NETWORK and address.packed[1] >= 17:
                    continue
                candidates.append(address)

        def preference(address: ipaddress.IPv4Address) -> int:
            first = address.packed[0]
            if first == 192:
                return 0
            if first == 10:
                return 1
            return 2

        if not candidates:
            logger.warning("Could not determine network range")
            return None

        best = sorted(candidates, key=preference)[0]
        cidr = str(ipaddress.IPv4Network(f"{best}/24", strict=False))
        logger.debug(f"Detected network range: {cidr}")
        return cidr
