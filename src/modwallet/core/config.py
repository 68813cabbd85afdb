"""
modwallet Configuration

Environment-driven settings for deploying and operating wallets.

Environment variables:
- MODWALLET_NETWORK: network name (default ``localhost``)
- MODWALLET_CHAIN_ID: chain id used for user-operation hashes (default 31337)
- MODWALLET_LOG_LEVEL: logging level (default INFO)
- MODWALLET_ENTRY_POINTS_FILE: JSON object mapping network name to entry point address
- MODWALLET_PUBLIC_KEY_FILE: JSON object ``{"x": "0x..", "y": "0x.."}`` with the passkey

Local networks (``localhost``, ``hardhat``) work without any configured entry
point; every other network must have one.
"""

from __future__ import annotations

import json
import logging
import os
from enum import Enum
from pathlib import Path
from typing import Optional

from eth_utils import is_address, to_checksum_address

from .crypto_utils import PublicPoint, is_on_curve

logger = logging.getLogger(__name__)

# Canonical ERC-4337 v0.7 entry point, deployed at the same address on every chain
ENTRY_POINT_V07 = "0x0000000071727De22E5E9d8BAf0edAc6f37da032"

LOCAL_NETWORKS = frozenset({"localhost", "hardhat"})


class NetworkType(Enum):
    LOCAL = "local"
    LIVE = "live"


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


def _get_int(env_var: str, default: int) -> int:
    raw = os.getenv(env_var, "").strip()
    if not raw:
        return default
    try:
        return int(raw, 0)
    except ValueError as exc:
        raise ConfigurationError(f"{env_var} must be an integer, got {raw!r}") from exc


NETWORK = os.getenv("MODWALLET_NETWORK", "localhost").strip() or "localhost"
CHAIN_ID = _get_int("MODWALLET_CHAIN_ID", 31337)
LOG_LEVEL = os.getenv("MODWALLET_LOG_LEVEL", "INFO").strip().upper() or "INFO"
ENTRY_POINTS_FILE = os.getenv("MODWALLET_ENTRY_POINTS_FILE", "").strip()
PUBLIC_KEY_FILE = os.getenv("MODWALLET_PUBLIC_KEY_FILE", "").strip()


def network_type(network: str) -> NetworkType:
    return NetworkType.LOCAL if network.lower() in LOCAL_NETWORKS else NetworkType.LIVE


def _read_json(path: str | Path, what: str) -> object:
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigurationError(f"Cannot read {what} file {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"{what} file {path} is not valid JSON: {exc}") from exc


def load_entry_points(path: Optional[str | Path] = None) -> dict[str, str]:
    """
    Load the network -> entry point map.

    Returns an empty map when no file is configured.
    """
    path = path or ENTRY_POINTS_FILE
    if not path:
        return {}
    data = _read_json(path, "entry points")
    if not isinstance(data, dict):
        raise ConfigurationError(f"Entry points file {path} must contain a JSON object")

    entry_points = {}
    for network, address in data.items():
        if not isinstance(address, str) or not is_address(address):
            raise ConfigurationError(
                f"Entry point for network {network!r} is not an address: {address!r}"
            )
        entry_points[network] = to_checksum_address(address)
    return entry_points


def resolve_entry_point(
    network: str,
    entry_points: Optional[dict[str, str]] = None,
) -> Optional[str]:
    """
    Entry point address for ``network``.

    Returns None for a local network with no configured entry point.

    Raises:
        ConfigurationError: A live network has no entry point configured
    """
    entry_points = load_entry_points() if entry_points is None else entry_points
    if network in entry_points:
        return entry_points[network]
    if network_type(network) is NetworkType.LOCAL:
        logger.warning(
            "Entry point not configured for local network",
            extra={"event": "config.entry_point_missing", "network": network},
        )
        return None
    raise ConfigurationError(f"No entry point address configured for network {network}.")


def _parse_coordinate(value: object, name: str) -> int:
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value, 16) if value.lower().startswith("0x") else int(value)
        except ValueError as exc:
            raise ConfigurationError(f"Public key {name} is not a number: {value!r}") from exc
    raise ConfigurationError(f"Public key {name} must be a hex string or integer")


def load_public_key(path: Optional[str | Path] = None) -> PublicPoint:
    """
    Load the wallet's passkey public key from a JSON file.

    Raises:
        ConfigurationError: No file configured, unreadable, or not a P-256 point
    """
    path = path or PUBLIC_KEY_FILE
    if not path:
        raise ConfigurationError("MODWALLET_PUBLIC_KEY_FILE is not set")
    data = _read_json(path, "public key")
    if not isinstance(data, dict) or "x" not in data or "y" not in data:
        raise ConfigurationError(f"Public key file {path} must contain x and y")

    point = _parse_coordinate(data["x"], "x"), _parse_coordinate(data["y"], "y")
    if not is_on_curve(*point):
        raise ConfigurationError(f"Public key in {path} is not a P-256 point")
    return point


class LocalConfig:
    """Local development network (in-memory ledger, hardhat, anvil)"""

    NETWORK_TYPE = NetworkType.LOCAL
    CHAIN_ID = CHAIN_ID
    # No configured entry point: deployment brings its own
    DEPLOY_ENTRY_POINT = True
    LOG_LEVEL = LOG_LEVEL


class LiveConfig:
    """Any network with a real ERC-4337 entry point"""

    NETWORK_TYPE = NetworkType.LIVE
    CHAIN_ID = CHAIN_ID
    DEPLOY_ENTRY_POINT = False
    LOG_LEVEL = LOG_LEVEL


def get_config(network: Optional[str] = None) -> type:
    network = network or NETWORK
    return LocalConfig if network_type(network) is NetworkType.LOCAL else LiveConfig


Config = get_config(NETWORK)
Config.NETWORK = NETWORK

__all__ = [
    "CHAIN_ID",
    "Config",
    "ConfigurationError",
    "ENTRY_POINT_V07",
    "LiveConfig",
    "LocalConfig",
    "NETWORK",
    "NetworkType",
    "get_config",
    "load_entry_points",
    "load_public_key",
    "network_type",
    "resolve_entry_point",
]
