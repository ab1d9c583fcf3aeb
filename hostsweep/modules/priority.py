"""
Source Priority Module

Decides which source's hostname, vendor and MAC win when the direct scan
and vendor plugins report different values for the same host.
"""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional

from config import PRIORITY_CONFIG_KEY

logger = logging.getLogger(__name__)


class Source(str, Enum):
    """Known origins of host observations."""

    FREEBOX = "freebox"
    UNIFI = "unifi"
    SCANNER = "scanner"

    @classmethod
    def parse(cls, value) -> Optional["Source"]:
        """Return the matching Source, or None for unknown values."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


DEFAULT_ORDER = [Source.FREEBOX, Source.UNIFI, Source.SCANNER]

RESOLVED_FIELDS = ("hostname", "vendor", "mac")


@dataclass
class Observation:
    """One source's report about one host."""

    ip: str
    source: Source
    mac: Optional[str] = None
    hostname: Optional[str] = None
    vendor: Optional[str] = None
    status: Optional[str] = None
    ping_latency_ms: Optional[float] = None


@dataclass
class PriorityConfig:
    """Source orderings (highest priority first) and overwrite flags."""

    hostname_priority: List[Source] = field(default_factory=lambda: list(DEFAULT_ORDER))
    vendor_priority: List[Source] = field(default_factory=lambda: list(DEFAULT_ORDER))
    overwrite_hostname: bool = True
    overwrite_vendor: bool = True

    def order_for(self, field_name: str) -> List[Source]:
        """Priority order used for a field (MAC follows the vendor order)."""
        return self.hostname_priority if field_name == "hostname" else self.vendor_priority

    def overwrite_for(self, field_name: str) -> bool:
        """Overwrite flag used for a field (MAC follows the vendor flag)."""
        return self.overwrite_hostname if field_name == "hostname" else self.overwrite_vendor

    def to_dict(self) -> Dict:
        """Convert to dictionary representation."""
        return {
            "hostname_priority": [s.value for s in self.hostname_priority],
            "vendor_priority": [s.value for s in self.vendor_priority],
            "overwrite_existing": {
                "hostname": self.overwrite_hostname,
                "vendor": self.overwrite_vendor,
            },
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "PriorityConfig":
        """
        Build a config from its dictionary form.

        Raises:
            ValueError: If either ordering is not exactly the set of known sources
        """
        if not isinstance(data, dict):
            raise ValueError("Priority config must be an object")

        hostname_priority = _parse_order(data.get("hostname_priority"), "hostname_priority")
        vendor_priority = _parse_order(data.get("vendor_priority"), "vendor_priority")

        overwrite = data.get("overwrite_existing") or {}
        if not isinstance(overwrite, dict):
            raise ValueError("overwrite_existing must be an object")

        return cls(
            hostname_priority=hostname_priority,
            vendor_priority=vendor_priority,
            overwrite_hostname=bool(overwrite.get("hostname", True)),
            overwrite_vendor=bool(overwrite.get("vendor", True)),
        )


def _parse_order(values, name: str) -> List[Source]:
    if not isinstance(values, list):
        raise ValueError(f"{name} must be a list")
    order = [Source.parse(v) for v in values]
    if None in order:
        raise ValueError(f"{name} contains unknown sources: {values}")
    if len(order) != len(Source) or set(order) != set(Source):
        raise ValueError(f"{name} must list each of {[s.value for s in Source]} exactly once")
    return order


class PriorityConfigService:
    """Loads and saves the PriorityConfig through a ConfigStore."""

    def __init__(self, config_store):
        self.config_store = config_store

    def get_config(self) -> PriorityConfig:
        """
        Get the stored priority config.

        Missing or invalid stored data falls back to the default config.
        """
        raw = self.config_store.get(PRIORITY_CONFIG_KEY)
        if not raw:
            return PriorityConfig()
        try:
            return PriorityConfig.from_dict(json.loads(raw))
        except (ValueError, TypeError) as e:
            logger.warning(f"Invalid stored priority config, using defaults: {e}")
            return PriorityConfig()

    def set_config(self, config) -> bool:
        """
        Validate and store a full priority config.

        Args:
            config: PriorityConfig or its dictionary form

        Returns:
            True if the config was valid and saved
        """
        try:
            if not isinstance(config, PriorityConfig):
                config = PriorityConfig.from_dict(config)
            else:
                config = PriorityConfig.from_dict(config.to_dict())
        except (ValueError, TypeError) as e:
            logger.warning(f"Rejected priority config: {e}")
            return False

        if not self.config_store.set(PRIORITY_CONFIG_KEY, json.dumps(config.to_dict())):
            logger.error("Failed to persist priority config")
            return False
        logger.info("Priority config saved")
        return True

    def reset_to_default(self) -> bool:
        """Store the default priority config."""
        return self.set_config(PriorityConfig())


@dataclass
class FieldResolution:
    """Outcome of resolving one field."""

    value: Optional[str]
    source: Optional[str]
    changed: bool


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


def _rank(order: List[Source], source) -> int:
    """Lower is better; unknown sources rank below all known ones, no source ranks last."""
    parsed = Source.parse(source) if source else None
    if parsed is None:
        return len(order) + (1 if source else 2)
    return order.index(parsed)


def resolve_field(
    field_name: str,
    existing_value: Optional[str],
    existing_source: Optional[str],
    candidate_value: Optional[str],
    candidate_source,
    config: PriorityConfig,
) -> FieldResolution:
    """
    Decide whether a candidate value replaces the stored one.

    Rules, in order: an empty candidate never wins; the same source
    reporting again always wins; a higher ranked source always wins;
    a same or lower ranked source only fills an empty stored value, and
    only when the field's overwrite flag is set.

    Args:
        field_name: "hostname", "vendor" or "mac"
        existing_value: Stored value
        existing_source: Source tag of the stored value
        candidate_value: Newly observed value
        candidate_source: Source of the new value
        config: Priority configuration

    Returns:
        FieldResolution with the winning value and source
    """
    keep = FieldResolution(existing_value, existing_source, False)
    if _is_blank(candidate_value):
        return keep

    candidate = Source.parse(candidate_source)
    candidate_tag = candidate.value if candidate else candidate_source
    take = FieldResolution(str(candidate_value).strip(), candidate_tag, True)

    if existing_source and candidate_tag == existing_source:
        return take

    order = config.order_for(field_name)
    if _rank(order, candidate_tag) < _rank(order, existing_source):
        return take

    if config.overwrite_for(field_name) and _is_blank(existing_value):
        return take
    return keep


def merge_observations(
    existing,
    observations: Iterable[Observation],
    config: PriorityConfig,
) -> Dict[str, Optional[str]]:
    """
    Fold observations into the identity fields of a host.

    Args:
        existing: Stored HostRecord or None
        observations: Observations for the host, applied in order
        config: Priority configuration

    Returns:
        Upsert keyword arguments for the fields that changed
        (e.g. hostname and hostname_source)
    """
    current = {}
    for name in RESOLVED_FIELDS:
        current[name] = getattr(existing, name, None) if existing is not None else None
        current[f"{name}_source"] = getattr(existing, f"{name}_source", None) if existing is not None else None

    changes: Dict[str, Optional[str]] = {}
    for observation in observations:
        for name in RESOLVED_FIELDS:
            result = resolve_field(
                name,
                current[name],
                current[f"{name}_source"],
                getattr(observation, name),
                observation.source,
                config,
            )
            if not result.changed:
                continue
            if result.value == current[name] and result.source == current[f"{name}_source"]:
                continue
            current[name] = result.value
            current[f"{name}_source"] = result.source
            changes[name] = result.value
            changes[f"{name}_source"] = result.source
    return changes
