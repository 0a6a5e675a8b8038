"""
Deployment and network settings.

Settings are frozen dataclasses validated on construction. ``load_settings``
builds them from a network preset, the process environment and an optional
``.env`` file (loaded with python-dotenv, never overriding variables that are
already set).

Environment variables:
    PRIVATE_KEY: Hex private key of the signing account.
    GOERLI_URL / POLYGON_URL: RPC endpoint of the selected network.
    LEGACY_REGISTRY_ADDRESS: Overrides the preset legacy registry.
    CURRENT_REGISTRY_ADDRESS: Overrides the preset current registry.
    MASTER_SLOT: Overrides the preset legacy master slot.

Example:
    >>> settings = load_settings("polygon")
    >>> settings.network.chain_id
    137
    >>> settings.deployment.master_slot
    25
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from dotenv import find_dotenv, load_dotenv
from eth_typing import ChecksumAddress

from poolmigrate.exceptions import ConfigurationError, ValidationError
from poolmigrate.models import DEFAULT_MASTER_SLOT
from poolmigrate.validation import validate_address, validate_non_negative_int

logger = logging.getLogger(__name__)

GWEI = 10**9

_PRIVATE_KEY_PATTERN = re.compile(r"^(0x)?[0-9a-fA-F]{64}$")


@dataclass(frozen=True)
class NetworkConfig:
    """
    An EVM network the registries are deployed on.

    Attributes:
        name: Preset name (e.g. 'polygon').
        chain_id: Chain id embedded in signed transactions.
        rpc_url: HTTP RPC endpoint; empty until read from the environment.
        gas_price_wei: Fixed legacy gas price, None to let the node decide.
    """

    name: str
    chain_id: int
    rpc_url: str = ""
    gas_price_wei: int | None = None

    def __post_init__(self) -> None:
        if self.chain_id <= 0:
            raise ValueError(f"chain_id must be > 0, got {self.chain_id}")
        if self.gas_price_wei is not None and self.gas_price_wei <= 0:
            raise ValueError(f"gas_price_wei must be > 0, got {self.gas_price_wei}")

    @property
    def rpc_url_variable(self) -> str:
        """Environment variable holding this network's RPC endpoint."""
        return f"{self.name.upper()}_URL"


@dataclass(frozen=True)
class DeploymentConfig:
    """
    Addresses of the registry pair and the tracked legacy slot.

    Attributes:
        legacy_registry: MasterChef v1 style registry.
        current_registry: MasterChef v2 style registry.
        master_slot: Legacy pool index aggregating the current registry's share.
    """

    legacy_registry: ChecksumAddress | None = None
    current_registry: ChecksumAddress | None = None
    master_slot: int = DEFAULT_MASTER_SLOT

    def __post_init__(self) -> None:
        if self.master_slot < 0:
            raise ValueError(f"master_slot must be >= 0, got {self.master_slot}")

    @property
    def is_complete(self) -> bool:
        return self.legacy_registry is not None and self.current_registry is not None


@dataclass(frozen=True)
class Settings:
    """
    Everything needed to talk to a deployed registry pair.

    Attributes:
        network: Target network.
        deployment: Registry addresses and master slot.
        private_key: Signing key; None for read-only or dry runs.
        confirmation_timeout_seconds: Receipt wait per transaction.
    """

    network: NetworkConfig
    deployment: DeploymentConfig
    private_key: str | None = field(default=None, repr=False)
    confirmation_timeout_seconds: float = 120.0

    def __post_init__(self) -> None:
        if self.confirmation_timeout_seconds <= 0:
            raise ValueError(
                "confirmation_timeout_seconds must be > 0, "
                f"got {self.confirmation_timeout_seconds}"
            )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging. The private key is never included."""
        return {
            "network": self.network.name,
            "chain_id": self.network.chain_id,
            "rpc_url_configured": bool(self.network.rpc_url),
            "gas_price_wei": self.network.gas_price_wei,
            "legacy_registry": self.deployment.legacy_registry,
            "current_registry": self.deployment.current_registry,
            "master_slot": self.deployment.master_slot,
            "signer_configured": self.private_key is not None,
            "confirmation_timeout_seconds": self.confirmation_timeout_seconds,
        }


REFERENCE_DEPLOYMENT = DeploymentConfig(
    legacy_registry=ChecksumAddress("0xC5C24B76de65808eD1c17E411c6C5cfC78FA1A98"),
    current_registry=ChecksumAddress("0xb80d90DA1231C84DD1327CcaFD9b750e03a0264E"),
    master_slot=DEFAULT_MASTER_SLOT,
)
"""Registry pair the add-pool procedure was first run against (Polygon)."""

NETWORKS: dict[str, tuple[NetworkConfig, DeploymentConfig]] = {
    "goerli": (
        NetworkConfig(name="goerli", chain_id=5, gas_price_wei=45 * GWEI),
        DeploymentConfig(),
    ),
    "polygon": (
        NetworkConfig(name="polygon", chain_id=137, gas_price_wei=45 * GWEI),
        REFERENCE_DEPLOYMENT,
    ),
}


def _optional_address(environ: Mapping[str, str], variable: str) -> ChecksumAddress | None:
    raw = environ.get(variable)
    if not raw:
        return None
    try:
        return validate_address(raw, variable)
    except ValidationError as e:
        raise ConfigurationError(
            f"{variable} is not a valid address: {raw!r}",
            details={"variable": variable},
        ) from e


def load_settings(
    network: str = "polygon",
    *,
    env_file: str | Path | None = None,
    require_signer: bool = True,
) -> Settings:
    """
    Build settings for a network preset from the environment.

    Args:
        network: Preset name, one of NETWORKS.
        env_file: Explicit .env path; searched for when None.
        require_signer: Fail when PRIVATE_KEY or the RPC URL is missing.

    Returns:
        Validated Settings.

    Raises:
        ConfigurationError: For an unknown network, a missing required
            variable, or a malformed value.
    """
    if network not in NETWORKS:
        raise ConfigurationError(
            f"Unknown network {network!r}; expected one of {sorted(NETWORKS)}",
            details={"network": network},
        )

    load_dotenv(env_file or find_dotenv(usecwd=True), override=False)
    environ = os.environ

    preset_network, preset_deployment = NETWORKS[network]

    rpc_url = environ.get(preset_network.rpc_url_variable, "")
    private_key = environ.get("PRIVATE_KEY") or None
    if private_key is not None and not _PRIVATE_KEY_PATTERN.match(private_key):
        raise ConfigurationError(
            "PRIVATE_KEY must be 32 bytes of hex",
            details={"variable": "PRIVATE_KEY"},
        )

    if require_signer:
        missing = [
            variable
            for variable, value in (
                (preset_network.rpc_url_variable, rpc_url),
                ("PRIVATE_KEY", private_key),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(
                f"Missing required environment variables: {', '.join(missing)}",
                details={"missing": missing},
            )

    master_slot = preset_deployment.master_slot
    if environ.get("MASTER_SLOT"):
        try:
            master_slot = validate_non_negative_int(environ["MASTER_SLOT"], "MASTER_SLOT")
        except ValidationError as e:
            raise ConfigurationError(
                f"MASTER_SLOT is not a non-negative integer: {environ['MASTER_SLOT']!r}",
                details={"variable": "MASTER_SLOT"},
            ) from e

    deployment = replace(
        preset_deployment,
        legacy_registry=(
            _optional_address(environ, "LEGACY_REGISTRY_ADDRESS")
            or preset_deployment.legacy_registry
        ),
        current_registry=(
            _optional_address(environ, "CURRENT_REGISTRY_ADDRESS")
            or preset_deployment.current_registry
        ),
        master_slot=master_slot,
    )
    if require_signer and not deployment.is_complete:
        raise ConfigurationError(
            f"No registry deployment known for {network}; set "
            "LEGACY_REGISTRY_ADDRESS and CURRENT_REGISTRY_ADDRESS",
            details={"network": network},
        )

    settings = Settings(
        network=replace(preset_network, rpc_url=rpc_url),
        deployment=deployment,
        private_key=private_key,
    )
    logger.debug("Loaded settings: %s", settings.to_dict())
    return settings


__all__ = [
    "GWEI",
    "NetworkConfig",
    "DeploymentConfig",
    "Settings",
    "REFERENCE_DEPLOYMENT",
    "NETWORKS",
    "load_settings",
]
