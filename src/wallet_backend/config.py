"""Configuration system for the wallet backend.

Loads service config from an optional YAML file, supports environment
variable expansion (``${VAR}``), and falls back to environment-driven
defaults so the service can run with no file at all.
"""

from __future__ import annotations

import os
import re
from decimal import Decimal
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field

from wallet_backend.wallet.chains import Chain, get_chain


# ---------------------------------------------------------------------------
# Environment-variable expansion helper
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)\}")


def _expand_env_vars(value: str) -> str:
    """Replace ``${VAR_NAME}`` placeholders with their environment values.

    A placeholder whose variable is not set expands to an empty string, so
    an unset secret reads as missing rather than as a literal ``${...}``.
    """

    def _replace(match: re.Match) -> str:
        return os.environ.get(match.group(1), "")

    return _ENV_VAR_RE.sub(_replace, value)


def _expand_env_recursive(obj: object) -> object:
    """Walk an arbitrary nested structure and expand env vars in strings."""
    if isinstance(obj, str):
        return _expand_env_vars(obj)
    if isinstance(obj, dict):
        return {k: _expand_env_recursive(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_expand_env_recursive(item) for item in obj]
    return obj


def _deep_merge(base: dict, override: dict) -> dict:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


# ---------------------------------------------------------------------------
# Pydantic v2 models
# ---------------------------------------------------------------------------


class NodeConfig(BaseModel):
    """JSON-RPC node connection settings."""

    chain: str = "ethereum"
    rpc_url: str = "${ALCHEMY_RPC}"  # empty -> the chain's public RPC
    chain_id: Optional[int] = None   # override the chain table's id
    request_timeout: float = 60.0


class WalletConfig(BaseModel):
    """The single custodial key."""

    private_key: str = "${BACKEND_PRIVATE_KEY}"


class TransfersConfig(BaseModel):
    """Transfer submission and treasury policy settings."""

    confirmations: int = Field(default=1, ge=1)
    confirmation_timeout: float = 600.0
    poll_interval: float = 2.0
    gas_reserve_eth: Decimal = Decimal("0.002")
    default_amount_eth: Decimal = Decimal("0.01")
    treasury_address: str = "${TREASURY_ADDRESS}"


class PricingConfig(BaseModel):
    """USD conversion settings. Quotes are advisory only."""

    source: str = "fixed"  # "fixed" or "coinbase"
    usd_per_eth: Decimal = Decimal("3450")
    timeout: float = 10.0


class ServerConfig(BaseModel):
    """HTTP server settings."""

    host: str = "0.0.0.0"
    port: int = 3000
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    log_level: str = "info"


class ServiceConfig(BaseModel):
    """Root configuration object for the whole service."""

    node: NodeConfig = Field(default_factory=NodeConfig)
    wallet: WalletConfig = Field(default_factory=WalletConfig)
    transfers: TransfersConfig = Field(default_factory=TransfersConfig)
    pricing: PricingConfig = Field(default_factory=PricingConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)

    @property
    def chain(self) -> Chain:
        """The configured chain, with the RPC URL and id overrides applied."""
        return get_chain(self.node.chain).with_overrides(
            rpc_url=self.node.rpc_url, chain_id=self.node.chain_id
        )


# ---------------------------------------------------------------------------
# Public helpers
# ---------------------------------------------------------------------------


def load_config(path: Path | None = None) -> ServiceConfig:
    """Load and validate the service configuration.

    The YAML file at *path* (if given) is merged over the defaults, and
    ``${VAR}`` placeholders anywhere in the result are expanded from the
    environment before validation.  ``PORT`` overrides ``server.port``.

    Raises
    ------
    FileNotFoundError
        If *path* is given but does not exist.
    """
    data = ServiceConfig().model_dump(mode="python")
    if path is not None:
        raw_text = path.read_text(encoding="utf-8")
        raw_data = yaml.safe_load(raw_text) or {}
        data = _deep_merge(data, raw_data)

    expanded = _expand_env_recursive(data)
    config = ServiceConfig.model_validate(expanded)

    port = os.environ.get("PORT")
    if port:
        config.server.port = int(port)
    return config


def save_config(config: ServiceConfig, path: Path) -> None:
    """Serialize a :class:`ServiceConfig` to a YAML file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    data = config.model_dump(mode="json", exclude_none=True)
    with open(path, "w", encoding="utf-8") as fh:
        yaml.dump(data, fh, default_flow_style=False, sort_keys=False)
