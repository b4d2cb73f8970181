"""Configuration loader — reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .exceptions import ConfigurationError
from .units import WAD

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RiskConfig:
    liquidation_threshold: int = 50
    liquidation_bonus: int = 10
    liquidation_precision: int = 100
    precision: int = WAD
    min_health_factor: int = WAD
    oracle_timeout_seconds: int = 3 * 60 * 60


@dataclass(frozen=True)
class CollateralAssetConfig:
    asset: str = ""
    price_feed: str = ""


@dataclass(frozen=True)
class BoundaryConfig:
    call_timeout_seconds: float = 10.0
    oracle_retries: int = 2


@dataclass(frozen=True)
class PythConfig:
    hermes_url: str = "https://hermes.pyth.network/v2/updates/price/latest"
    timeout: int = 10


@dataclass(frozen=True)
class PriceOracleConfig:
    provider: str = "pyth"
    pyth: PythConfig = field(default_factory=PythConfig)


@dataclass(frozen=True)
class SimulationConfig:
    prices: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class AppConfig:
    risk: RiskConfig = field(default_factory=RiskConfig)
    collateral: tuple[CollateralAssetConfig, ...] = ()
    boundary: BoundaryConfig = field(default_factory=BoundaryConfig)
    price_oracle: PriceOracleConfig = field(default_factory=PriceOracleConfig)
    simulation: SimulationConfig = field(default_factory=SimulationConfig)

    @property
    def assets(self) -> tuple[str, ...]:
        return tuple(c.asset for c in self.collateral)

    @property
    def price_feeds(self) -> tuple[str, ...]:
        return tuple(c.price_feed for c in self.collateral)


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


def _build_risk(raw: dict[str, Any]) -> RiskConfig:
    defaults = RiskConfig()
    return RiskConfig(
        liquidation_threshold=int(
            raw.get("liquidation_threshold", defaults.liquidation_threshold)
        ),
        liquidation_bonus=int(raw.get("liquidation_bonus", defaults.liquidation_bonus)),
        liquidation_precision=int(
            raw.get("liquidation_precision", defaults.liquidation_precision)
        ),
        precision=int(raw.get("precision", defaults.precision)),
        min_health_factor=int(raw.get("min_health_factor", defaults.min_health_factor)),
        oracle_timeout_seconds=int(
            raw.get("oracle_timeout_seconds", defaults.oracle_timeout_seconds)
        ),
    )


def _build_collateral(raw: list[dict[str, Any]]) -> tuple[CollateralAssetConfig, ...]:
    assets: list[CollateralAssetConfig] = []
    for c in raw:
        assets.append(
            CollateralAssetConfig(
                asset=str(c.get("asset", "")),
                price_feed=str(c.get("price_feed", "")),
            )
        )
    return tuple(assets)


def _build_boundary(raw: dict[str, Any]) -> BoundaryConfig:
    return BoundaryConfig(
        call_timeout_seconds=float(raw.get("call_timeout_seconds", 10.0)),
        oracle_retries=int(raw.get("oracle_retries", 2)),
    )


def _build_price_oracle(raw: dict[str, Any]) -> PriceOracleConfig:
    pyth_raw = raw.get("pyth", {}) or {}
    return PriceOracleConfig(
        provider=raw.get("provider", "pyth"),
        pyth=PythConfig(
            hermes_url=pyth_raw.get("hermes_url", PythConfig.hermes_url),
            timeout=int(pyth_raw.get("timeout", PythConfig.timeout)),
        ),
    )


def _build_simulation(raw: dict[str, Any]) -> SimulationConfig:
    # Prices stay strings so they can be parsed as Decimal without float loss.
    prices = raw.get("prices", {}) or {}
    return SimulationConfig(prices={k: str(v) for k, v in prices.items()})


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (one level up from this package).
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
        risk=_build_risk(raw.get("risk", {}) or {}),
        collateral=_build_collateral(raw.get("collateral", []) or []),
        boundary=_build_boundary(raw.get("boundary", {}) or {}),
        price_oracle=_build_price_oracle(raw.get("price_oracle", {}) or {}),
        simulation=_build_simulation(raw.get("simulation", {}) or {}),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    if not cfg.collateral:
        raise ConfigurationError("At least one collateral asset must be configured")

    seen: set[str] = set()
    for entry in cfg.collateral:
        if not entry.asset:
            raise ConfigurationError("Collateral entry has no asset")
        if not entry.price_feed:
            raise ConfigurationError(f"Collateral '{entry.asset}' has no price_feed")
        if entry.asset in seen:
            raise ConfigurationError(f"Collateral '{entry.asset}' listed twice")
        seen.add(entry.asset)

    risk = cfg.risk
    if not 0 < risk.liquidation_threshold <= risk.liquidation_precision:
        raise ConfigurationError(
            "liquidation_threshold must be in (0, liquidation_precision]"
        )
    if not 0 <= risk.liquidation_bonus < risk.liquidation_precision:
        raise ConfigurationError(
            "liquidation_bonus must be in [0, liquidation_precision)"
        )
    if risk.precision <= 0 or risk.min_health_factor <= 0:
        raise ConfigurationError("precision and min_health_factor must be positive")
    if risk.oracle_timeout_seconds <= 0:
        raise ConfigurationError("oracle_timeout_seconds must be positive")

    if cfg.boundary.call_timeout_seconds <= 0:
        raise ConfigurationError("call_timeout_seconds must be positive")
    if cfg.boundary.oracle_retries < 0:
        raise ConfigurationError("oracle_retries cannot be negative")

    if cfg.price_oracle.provider not in ("pyth", "static"):
        raise ConfigurationError(
            f"Unknown price oracle provider '{cfg.price_oracle.provider}'"
        )
    if cfg.price_oracle.provider == "static":
        missing = [c.asset for c in cfg.collateral if c.asset not in cfg.simulation.prices]
        if missing:
            raise ConfigurationError(
                f"Static oracle has no simulation price for: {', '.join(missing)}"
            )
