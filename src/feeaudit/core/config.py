"""
feeaudit Configuration

Supports goerli and mainnet with separate storage and hotfix addresses.

All runtime settings come from environment variables (optionally loaded from a
.env file). Command-line options override them.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum

from dotenv import find_dotenv, load_dotenv
from eth_utils import is_address, to_checksum_address

from feeaudit.core.audit_exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class NetworkType(Enum):
    GOERLI = "goerli"
    MAINNET = "mainnet"


@dataclass(frozen=True)
class NetworkConfig:
    """Addresses needed to audit one network."""

    network: NetworkType
    storage_address: str
    hotfix_address: str | None


NETWORKS: dict[NetworkType, NetworkConfig] = {
    NetworkType.GOERLI: NetworkConfig(
        network=NetworkType.GOERLI,
        storage_address="0xd8Cd47263414aFEca62d6e2a3917d6600abDceB3",
        hotfix_address="0x52480c793374c6d8065824f174d8b4856bfb5106",
    ),
    NetworkType.MAINNET: NetworkConfig(
        network=NetworkType.MAINNET,
        storage_address="0x1d8f8f00cfa6758d7bE78336684788Fb0ee0Fa46",
        hotfix_address=None,  # not yet deployed
    ),
}

DEFAULT_NETWORK = "goerli"
DEFAULT_PROGRESS_INTERVAL = 100
DEFAULT_CONCURRENCY = 1
DEFAULT_ETH_RPC = "http://localhost:8545"


def normalize_address(value: str, label: str = "address") -> str:
    """Return the EIP-55 checksum form of ``value`` or raise ConfigurationError."""
    candidate = (value or "").strip()
    if not is_address(candidate):
        raise ConfigurationError(
            f"Invalid {label}: {value!r}", details={"field": label, "value": value}
        )
    return to_checksum_address(candidate)


def _positive_int(raw: str | int, label: str) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{label} must be an integer, got {raw!r}") from exc
    if value < 1:
        raise ConfigurationError(f"{label} must be positive, got {value}")
    return value


def resolve_network(name: str, hotfix_override: str | None = None) -> NetworkConfig:
    """
    Look up the addresses for a network name.

    Args:
        name: Network name (goerli, mainnet)
        hotfix_override: Hotfix contract address to use instead of the built-in one

    Raises:
        ConfigurationError: Unknown network, or no hotfix deployed on it
    """
    try:
        network = NetworkType((name or "").strip().lower())
    except ValueError as exc:
        raise ConfigurationError(f"Invalid network {name}", details={"network": name}) from exc

    base = NETWORKS[network]
    hotfix = hotfix_override or base.hotfix_address
    if not hotfix:
        raise ConfigurationError(
            f"{network.value.capitalize()} hotfix not yet deployed",
            details={"network": network.value},
        )

    return NetworkConfig(
        network=network,
        storage_address=to_checksum_address(base.storage_address),
        hotfix_address=normalize_address(hotfix, "hotfix address"),
    )


@dataclass(frozen=True)
class AuditSettings:
    """Resolved settings for a single audit run."""

    network: NetworkConfig
    eth_rpc: str
    progress_interval: int = DEFAULT_PROGRESS_INTERVAL
    concurrency: int = DEFAULT_CONCURRENCY
    log_level: str = "INFO"
    log_file: str | None = None


def load_settings(
    network: str | None = None,
    eth_rpc: str | None = None,
    hotfix_address: str | None = None,
    progress_interval: int | None = None,
    concurrency: int | None = None,
    log_level: str | None = None,
    log_file: str | None = None,
) -> AuditSettings:
    """
    Build AuditSettings from explicit values, falling back to the environment.

    Priority: explicit argument, then FEEAUDIT_* environment variable (a .env
    file in the working directory is loaded first), then built-in default.
    """
    load_dotenv(find_dotenv(usecwd=True))

    network_name = network or os.getenv("FEEAUDIT_NETWORK", DEFAULT_NETWORK)
    rpc = (eth_rpc or os.getenv("FEEAUDIT_ETH_RPC", "")).strip() or DEFAULT_ETH_RPC
    hotfix = hotfix_address or os.getenv("FEEAUDIT_HOTFIX_ADDRESS", "").strip() or None

    network_config = resolve_network(network_name, hotfix)

    interval = _positive_int(
        progress_interval
        if progress_interval is not None
        else os.getenv("FEEAUDIT_PROGRESS_INTERVAL", DEFAULT_PROGRESS_INTERVAL),
        "progress interval",
    )
    workers = _positive_int(
        concurrency
        if concurrency is not None
        else os.getenv("FEEAUDIT_CONCURRENCY", DEFAULT_CONCURRENCY),
        "concurrency",
    )

    level = (log_level or os.getenv("FEEAUDIT_LOG_LEVEL", "INFO")).upper()
    if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        raise ConfigurationError(f"Invalid log level {level}")

    settings = AuditSettings(
        network=network_config,
        eth_rpc=rpc,
        progress_interval=interval,
        concurrency=workers,
        log_level=level,
        log_file=log_file or os.getenv("FEEAUDIT_LOG_FILE") or None,
    )
    logger.debug(
        "Settings loaded",
        extra={
            "network": network_config.network.value,
            "storage_address": network_config.storage_address,
            "hotfix_address": network_config.hotfix_address,
            "concurrency": workers,
        },
    )
    return settings
