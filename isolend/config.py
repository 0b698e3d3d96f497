"""Configuration loader: reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChainConfig:
    rpc_endpoints: tuple[str, ...] = ()
    rpc_timeout: int = 30
    chain_id: int = 421614
    receipt_poll_interval: float = 1.0


@dataclass(frozen=True)
class IndexerConfig:
    url: str = "https://api.stylend.xyz/"
    timeout: int = 30


@dataclass(frozen=True)
class CollateralTokenConfig:
    symbol: str = ""
    address: str = ""
    decimals: int = 18


@dataclass(frozen=True)
class ProtocolConfig:
    pool_addresses: tuple[str, ...] = ()
    collateral_tokens: tuple[CollateralTokenConfig, ...] = ()
    stable_symbols: tuple[str, ...] = ("USDC", "USDT")
    swap_fee_tier: int = 3000


@dataclass(frozen=True)
class ThresholdsConfig:
    danger: float = 1.1
    at_risk: float = 1.5


@dataclass(frozen=True)
class DashboardConfig:
    poll_interval_seconds: float = 5.0
    thresholds: ThresholdsConfig = field(default_factory=ThresholdsConfig)


@dataclass(frozen=True)
class WalletConfig:
    address: str = ""
    private_key: str = field(default="", repr=False)


@dataclass(frozen=True)
class AppConfig:
    chain: ChainConfig = field(default_factory=ChainConfig)
    indexer: IndexerConfig = field(default_factory=IndexerConfig)
    protocol: ProtocolConfig = field(default_factory=ProtocolConfig)
    dashboard: DashboardConfig = field(default_factory=DashboardConfig)
    wallet: WalletConfig = field(default_factory=WalletConfig)


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _build_chain(raw: dict[str, Any]) -> ChainConfig:
    return ChainConfig(
        rpc_endpoints=tuple(e for e in raw.get("rpc_endpoints", []) if e),
        rpc_timeout=int(raw.get("rpc_timeout", 30)),
        chain_id=int(raw.get("chain_id", 421614)),
        receipt_poll_interval=float(raw.get("receipt_poll_interval", 1.0)),
    )


def _build_indexer(raw: dict[str, Any]) -> IndexerConfig:
    return IndexerConfig(
        url=raw.get("url", IndexerConfig.url),
        timeout=int(raw.get("timeout", 30)),
    )


def _build_protocol(raw: dict[str, Any]) -> ProtocolConfig:
    tokens: list[CollateralTokenConfig] = []
    for t in raw.get("collateral_tokens", []):
        tokens.append(
            CollateralTokenConfig(
                symbol=t.get("symbol", ""),
                address=t.get("address", ""),
                decimals=int(t.get("decimals", 18)),
            )
        )
    return ProtocolConfig(
        pool_addresses=tuple(raw.get("pool_addresses", [])),
        collateral_tokens=tuple(tokens),
        stable_symbols=tuple(s.upper() for s in raw.get("stable_symbols", ["USDC", "USDT"])),
        swap_fee_tier=int(raw.get("swap_fee_tier", 3000)),
    )


def _build_dashboard(raw: dict[str, Any]) -> DashboardConfig:
    th = raw.get("thresholds", {})
    return DashboardConfig(
        poll_interval_seconds=float(raw.get("poll_interval_seconds", 5)),
        thresholds=ThresholdsConfig(
            danger=float(th.get("danger", 1.1)),
            at_risk=float(th.get("at_risk", 1.5)),
        ),
    )


def _build_wallet(raw: dict[str, Any]) -> WalletConfig:
    return WalletConfig(
        address=raw.get("address", ""),
        private_key=raw.get("private_key", ""),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (one level up from the package).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    cfg = AppConfig(
        chain=_build_chain(raw.get("chain", {})),
        indexer=_build_indexer(raw.get("indexer", {})),
        protocol=_build_protocol(raw.get("protocol", {})),
        dashboard=_build_dashboard(raw.get("dashboard", {})),
        wallet=_build_wallet(raw.get("wallet", {})),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    if not cfg.chain.rpc_endpoints:
        raise ValueError("At least one RPC endpoint must be configured")

    for token in cfg.protocol.collateral_tokens:
        if not token.address:
            raise ValueError(f"Collateral token '{token.symbol}' has no address")
        if token.decimals < 0:
            raise ValueError(f"Collateral token '{token.symbol}' has negative decimals")

    thresholds = cfg.dashboard.thresholds
    if thresholds.danger >= thresholds.at_risk:
        raise ValueError("Health thresholds must satisfy danger < at_risk")

    if cfg.dashboard.poll_interval_seconds <= 0:
        raise ValueError("poll_interval_seconds must be positive")
