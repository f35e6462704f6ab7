"""
Slashwatch TOML Configuration Loader

Loads config.toml at startup with environment variable overrides. Every
section is a frozen dataclass validated once at construction, so a running
monitor never sees a half-valid configuration.

Environment variable mapping:
    [[networks]] rpc_urls        → SLASHWATCH_<NETWORK>_RPC_URLS (comma separated)
    [[networks]] node_admin_url  → SLASHWATCH_<NETWORK>_NODE_ADMIN_URL
    [networks.polling] interval  → SLASHWATCH_POLL_INTERVAL (all networks)
    [notifications] webhook_url  → SLASHWATCH_WEBHOOK_URL
    [api] enabled / port         → SLASHWATCH_API_ENABLED / SLASHWATCH_API_PORT

<NETWORK> is the network name upper-cased with non-alphanumerics replaced
by underscores. RPC URLs often embed API keys and belong in the environment.
"""

from __future__ import annotations

import copy
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from eth_utils import is_address, to_checksum_address

try:
    import tomllib as tomli  # Python 3.11+
except ImportError:
    import tomli  # type: ignore[no-redef]

from ..constants import (
    API_HOST,
    API_PORT,
    CYCLE_TIMEOUT,
    DEFAULT_COMMITTEE_SIZE,
    DEFAULT_EPOCH_DURATION,
    DEFAULT_EXECUTION_DELAY_ROUNDS,
    DEFAULT_LIFETIME_ROUNDS,
    DEFAULT_QUORUM,
    DEFAULT_ROUND_SIZE,
    DEFAULT_ROUND_SIZE_IN_EPOCHS,
    DEFAULT_SLASH_OFFSET_ROUNDS,
    DEFAULT_SLOT_DURATION,
    DETAILS_CACHE_TTL,
    MAX_CACHED_ROUNDS,
    MAX_EXECUTED_ROUNDS_TO_SHOW,
    MAX_ROUNDS_TO_SCAN_FOR_HISTORY,
    MULTICALL3_ADDRESS,
    POLL_INTERVAL,
    ROUND_CACHE_TTL,
    RPC_TIMEOUT,
)
from ..exceptions import ConfigurationError
from ..logger import get_logger
from ..types import ProtocolParameters

logger = get_logger(__name__)


def _checksum(name: str, value: Any) -> str:
    if not isinstance(value, str) or not is_address(value):
        raise ConfigurationError(f"{name} is not a valid address: {value!r}")
    return to_checksum_address(value)


def _require_positive(name: str, value: Any) -> None:
    if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
        raise ConfigurationError(f"{name} must be > 0, got {value!r}")


def _require_non_negative(name: str, value: Any) -> None:
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        raise ConfigurationError(f"{name} must be an integer >= 0, got {value!r}")


def _env_prefix(network_name: str) -> str:
    return "SLASHWATCH_" + re.sub(r"[^A-Za-z0-9]", "_", network_name).upper()


# ---------------------------------------------------------------------------
# Network subsections
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ContractsConfig:
    """[networks.contracts] section. All three protocol contracts are required."""
    tally_slashing_proposer: str
    slasher: str
    rollup: str
    multicall: str = MULTICALL3_ADDRESS

    def __post_init__(self):
        for name in ("tally_slashing_proposer", "slasher", "rollup", "multicall"):
            object.__setattr__(self, name, _checksum(f"contracts.{name}", getattr(self, name)))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContractsConfig":
        missing = [k for k in ("tally_slashing_proposer", "slasher", "rollup") if not data.get(k)]
        if missing:
            raise ConfigurationError(f"Missing contract addresses: {', '.join(missing)}")
        return cls(
            tally_slashing_proposer=data["tally_slashing_proposer"],
            slasher=data["slasher"],
            rollup=data["rollup"],
            multicall=data.get("multicall", MULTICALL3_ADDRESS),
        )


def protocol_defaults_from_dict(data: Dict[str, Any]) -> ProtocolParameters:
    """[networks.protocol] section. Values are replaced by the on-chain load."""
    params = ProtocolParameters(
        round_size=data.get("round_size", DEFAULT_ROUND_SIZE),
        round_size_in_epochs=data.get("round_size_in_epochs", DEFAULT_ROUND_SIZE_IN_EPOCHS),
        execution_delay_rounds=data.get("execution_delay_rounds", DEFAULT_EXECUTION_DELAY_ROUNDS),
        lifetime_rounds=data.get("lifetime_rounds", DEFAULT_LIFETIME_ROUNDS),
        slash_offset_rounds=data.get("slash_offset_rounds", DEFAULT_SLASH_OFFSET_ROUNDS),
        quorum=data.get("quorum", DEFAULT_QUORUM),
        committee_size=data.get("committee_size", DEFAULT_COMMITTEE_SIZE),
        slot_duration=data.get("slot_duration", DEFAULT_SLOT_DURATION),
        epoch_duration=data.get("epoch_duration", DEFAULT_EPOCH_DURATION),
    )
    validate_protocol_parameters(params)
    return params


def validate_protocol_parameters(params: ProtocolParameters) -> None:
    for name in ("round_size", "round_size_in_epochs", "quorum", "slot_duration", "epoch_duration"):
        _require_positive(f"protocol.{name}", getattr(params, name))
    for name in ("execution_delay_rounds", "lifetime_rounds", "slash_offset_rounds", "committee_size"):
        _require_non_negative(f"protocol.{name}", getattr(params, name))
    if params.lifetime_rounds < params.execution_delay_rounds:
        raise ConfigurationError("protocol.lifetime_rounds must be >= execution_delay_rounds")


@dataclass(frozen=True)
class PollingConfig:
    """[networks.polling] section. All values in seconds."""
    interval: float = POLL_INTERVAL
    rpc_timeout: float = RPC_TIMEOUT
    cycle_timeout: float = CYCLE_TIMEOUT

    def __post_init__(self):
        _require_positive("polling.interval", self.interval)
        _require_positive("polling.rpc_timeout", self.rpc_timeout)
        _require_positive("polling.cycle_timeout", self.cycle_timeout)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PollingConfig":
        return cls(
            interval=data.get("interval", POLL_INTERVAL),
            rpc_timeout=data.get("rpc_timeout", RPC_TIMEOUT),
            cycle_timeout=data.get("cycle_timeout", CYCLE_TIMEOUT),
        )


@dataclass(frozen=True)
class CacheConfig:
    """[networks.cache] section. TTLs in seconds."""
    round_ttl: float = ROUND_CACHE_TTL
    details_ttl: float = DETAILS_CACHE_TTL
    max_cached_rounds: int = MAX_CACHED_ROUNDS

    def __post_init__(self):
        _require_positive("cache.round_ttl", self.round_ttl)
        _require_positive("cache.details_ttl", self.details_ttl)
        _require_positive("cache.max_cached_rounds", self.max_cached_rounds)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheConfig":
        return cls(
            round_ttl=data.get("round_ttl", ROUND_CACHE_TTL),
            details_ttl=data.get("details_ttl", DETAILS_CACHE_TTL),
            max_cached_rounds=data.get("max_cached_rounds", MAX_CACHED_ROUNDS),
        )


@dataclass(frozen=True)
class HistoryConfig:
    """[networks.history] section: trailing window of executed rounds."""
    max_executed_rounds_to_show: int = MAX_EXECUTED_ROUNDS_TO_SHOW
    max_rounds_to_scan: int = MAX_ROUNDS_TO_SCAN_FOR_HISTORY

    def __post_init__(self):
        _require_non_negative("history.max_executed_rounds_to_show", self.max_executed_rounds_to_show)
        _require_non_negative("history.max_rounds_to_scan", self.max_rounds_to_scan)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HistoryConfig":
        return cls(
            max_executed_rounds_to_show=data.get("max_executed_rounds_to_show", MAX_EXECUTED_ROUNDS_TO_SHOW),
            max_rounds_to_scan=data.get("max_rounds_to_scan", MAX_ROUNDS_TO_SCAN_FOR_HISTORY),
        )


@dataclass(frozen=True)
class NetworkConfig:
    """One [[networks]] entry. Each network runs a fully independent monitor."""
    name: str
    rpc_urls: Tuple[str, ...]
    contracts: ContractsConfig
    protocol: ProtocolParameters = field(default_factory=lambda: protocol_defaults_from_dict({}))
    polling: PollingConfig = field(default_factory=PollingConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    node_admin_url: Optional[str] = None

    def __post_init__(self):
        if not self.name or not isinstance(self.name, str):
            raise ConfigurationError("network name is required")
        urls = tuple(u.strip() for u in self.rpc_urls if u and u.strip())
        if not urls:
            raise ConfigurationError(f"network {self.name!r} has no rpc_urls")
        for url in urls:
            if not url.startswith(("http://", "https://")):
                raise ConfigurationError(f"network {self.name!r}: unsupported RPC URL {url!r}")
        object.__setattr__(self, "rpc_urls", urls)
        if self.node_admin_url is not None and not self.node_admin_url.strip():
            object.__setattr__(self, "node_admin_url", None)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NetworkConfig":
        rpc_urls = data.get("rpc_urls", [])
        if isinstance(rpc_urls, str):
            rpc_urls = [rpc_urls]
        return cls(
            name=data.get("name", ""),
            rpc_urls=tuple(rpc_urls),
            contracts=ContractsConfig.from_dict(data.get("contracts", {})),
            protocol=protocol_defaults_from_dict(data.get("protocol", {})),
            polling=PollingConfig.from_dict(data.get("polling", {})),
            cache=CacheConfig.from_dict(data.get("cache", {})),
            history=HistoryConfig.from_dict(data.get("history", {})),
            node_admin_url=data.get("node_admin_url") or None,
        )


# ---------------------------------------------------------------------------
# Global sections
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class NotificationsConfig:
    """[notifications] section. Alerts are always logged; a webhook is optional."""
    webhook_url: Optional[str] = None
    webhook_timeout: float = RPC_TIMEOUT

    def __post_init__(self):
        if self.webhook_url is not None and not self.webhook_url.startswith(("http://", "https://")):
            raise ConfigurationError(f"Invalid webhook_url: {self.webhook_url!r}")
        _require_positive("notifications.webhook_timeout", self.webhook_timeout)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NotificationsConfig":
        return cls(
            webhook_url=data.get("webhook_url") or None,
            webhook_timeout=data.get("webhook_timeout", RPC_TIMEOUT),
        )


@dataclass(frozen=True)
class ApiConfig:
    """[api] section: read-only HTTP views over the results store."""
    enabled: bool = False
    host: str = API_HOST
    port: int = API_PORT

    def __post_init__(self):
        if not isinstance(self.port, int) or not 0 < self.port < 65536:
            raise ConfigurationError(f"Invalid api.port: {self.port!r}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ApiConfig":
        return cls(
            enabled=data.get("enabled", False),
            host=data.get("host", API_HOST),
            port=data.get("port", API_PORT),
        )


# -----------------------------------------------------------------------
# Top-level unified config
# -----------------------------------------------------------------------

@dataclass(frozen=True)
class MonitorConfig:
    """
    Unified monitor configuration.

    This is the single source of truth at runtime.
    """
    networks: Tuple[NetworkConfig, ...]
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)
    api: ApiConfig = field(default_factory=ApiConfig)

    def __post_init__(self):
        if not self.networks:
            raise ConfigurationError("At least one [[networks]] entry is required")
        names = [n.name for n in self.networks]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ConfigurationError(f"Duplicate network names: {', '.join(duplicates)}")

    # --- factories --------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MonitorConfig":
        """Create MonitorConfig from a parsed TOML dict."""
        return cls(
            networks=tuple(NetworkConfig.from_dict(n) for n in data.get("networks", [])),
            notifications=NotificationsConfig.from_dict(data.get("notifications", {})),
            api=ApiConfig.from_dict(data.get("api", {})),
        )

    @classmethod
    def from_file(cls, config_path: str) -> "MonitorConfig":
        """
        Load configuration from a TOML file and apply environment overrides.

        Args:
            config_path: Path to config.toml

        Raises:
            ConfigurationError: File missing, unparsable or invalid
        """
        path = Path(config_path)
        if not path.exists():
            raise ConfigurationError(f"Config file not found: {config_path}")

        try:
            with open(path, "rb") as f:
                raw = tomli.load(f)
        except tomli.TOMLDecodeError as e:
            raise ConfigurationError(f"Invalid TOML in {config_path}: {e}") from e

        cfg = cls.from_dict(apply_env(raw))
        logger.info(
            f"Loaded config from {config_path}: "
            f"{len(cfg.networks)} network(s) [{', '.join(n.name for n in cfg.networks)}]"
        )
        return cfg

    # --- serialisation ----------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dict for diagnostics. RPC URLs are reduced to hosts."""
        return {
            "networks": [
                {
                    "name": n.name,
                    "rpc_endpoints": len(n.rpc_urls),
                    "contracts": {
                        "tally_slashing_proposer": n.contracts.tally_slashing_proposer,
                        "slasher": n.contracts.slasher,
                        "rollup": n.contracts.rollup,
                        "multicall": n.contracts.multicall,
                    },
                    "polling": {
                        "interval": n.polling.interval,
                        "rpc_timeout": n.polling.rpc_timeout,
                        "cycle_timeout": n.polling.cycle_timeout,
                    },
                    "cache": {
                        "round_ttl": n.cache.round_ttl,
                        "details_ttl": n.cache.details_ttl,
                        "max_cached_rounds": n.cache.max_cached_rounds,
                    },
                    "history": {
                        "max_executed_rounds_to_show": n.history.max_executed_rounds_to_show,
                        "max_rounds_to_scan": n.history.max_rounds_to_scan,
                    },
                    "node_admin": n.node_admin_url is not None,
                }
                for n in self.networks
            ],
            "notifications": {"webhook": self.notifications.webhook_url is not None},
            "api": {"enabled": self.api.enabled, "host": self.api.host, "port": self.api.port},
        }


# -----------------------------------------------------------------------
# Environment overrides
# -----------------------------------------------------------------------

def apply_env(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of the parsed TOML dict with environment overrides applied."""
    data = copy.deepcopy(raw)

    poll_interval = os.environ.get("SLASHWATCH_POLL_INTERVAL")
    for network in data.get("networks", []):
        prefix = _env_prefix(network.get("name", ""))
        if v := os.environ.get(f"{prefix}_RPC_URLS"):
            network["rpc_urls"] = [u.strip() for u in v.split(",") if u.strip()]
        if v := os.environ.get(f"{prefix}_NODE_ADMIN_URL"):
            network["node_admin_url"] = v
        if poll_interval:
            network.setdefault("polling", {})["interval"] = float(poll_interval)

    if v := os.environ.get("SLASHWATCH_WEBHOOK_URL"):
        data.setdefault("notifications", {})["webhook_url"] = v
    if v := os.environ.get("SLASHWATCH_API_ENABLED"):
        data.setdefault("api", {})["enabled"] = v.lower() in ("1", "true", "yes")
    if v := os.environ.get("SLASHWATCH_API_PORT"):
        data.setdefault("api", {})["port"] = int(v)

    return data


# -----------------------------------------------------------------------
# Convenience function
# -----------------------------------------------------------------------

def load_config(path: Optional[str] = None) -> MonitorConfig:
    """
    Load monitor configuration.

    Resolution order:
        1. Explicit *path* argument
        2. SLASHWATCH_CONFIG env var
        3. ./config.toml in current directory
    """
    if path is None:
        path = os.environ.get("SLASHWATCH_CONFIG", "config.toml")

    return MonitorConfig.from_file(path)
