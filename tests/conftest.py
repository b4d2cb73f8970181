"""Shared test fixtures and sample data."""
from __future__ import annotations

import textwrap
from pathlib import Path

import pytest
import pytest_asyncio

from collateral_engine.config import (
    AppConfig,
    BoundaryConfig,
    CollateralAssetConfig,
    PriceOracleConfig,
    RiskConfig,
    SimulationConfig,
)
from collateral_engine.engine import CollateralEngine
from collateral_engine.oracles import StaticPriceOracle
from collateral_engine.tokens import SyntheticAsset, TokenLedger
from collateral_engine.units import WAD

WETH_FEED = "eth-usd"
WBTC_FEED = "btc-usd"
ETH_USD_PRICE = "2000"
BTC_USD_PRICE = "1000"

USER = "0xUSER"
LIQUIDATOR = "0xLIQUIDATOR"
DEPLOYER = "0xDEPLOYER"

COLLATERAL_AMOUNT = 10 * WAD
AMOUNT_TO_MINT = 100 * WAD
COLLATERAL_TO_COVER = 20 * WAD


# ---------------------------------------------------------------------------
# Collaborator fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def oracle() -> StaticPriceOracle:
    oracle = StaticPriceOracle()
    oracle.set_price(WETH_FEED, ETH_USD_PRICE)
    oracle.set_price(WBTC_FEED, BTC_USD_PRICE)
    return oracle


@pytest.fixture()
def weth() -> TokenLedger:
    return TokenLedger("WETH")


@pytest.fixture()
def wbtc() -> TokenLedger:
    return TokenLedger("WBTC")


@pytest.fixture()
def synthetic() -> SyntheticAsset:
    return SyntheticAsset("DSC", controller=DEPLOYER)


@pytest.fixture()
def risk_config() -> RiskConfig:
    return RiskConfig()


@pytest.fixture()
def boundary_config() -> BoundaryConfig:
    return BoundaryConfig(call_timeout_seconds=1.0, oracle_retries=1)


@pytest.fixture()
def engine(
    weth: TokenLedger,
    wbtc: TokenLedger,
    synthetic: SyntheticAsset,
    oracle: StaticPriceOracle,
    risk_config: RiskConfig,
    boundary_config: BoundaryConfig,
) -> CollateralEngine:
    engine = CollateralEngine(
        ["WETH", "WBTC"],
        [WETH_FEED, WBTC_FEED],
        synthetic,
        {"WETH": weth, "WBTC": wbtc},
        oracle,
        risk=risk_config,
        boundary=boundary_config,
    )
    synthetic.transfer_ownership(DEPLOYER, engine.address)
    return engine


# ---------------------------------------------------------------------------
# Engine state fixtures
# ---------------------------------------------------------------------------


async def fund(ledger: TokenLedger, account: str, spender: str, amount: int) -> None:
    """Give ``account`` ``amount`` tokens and approve ``spender`` for all of it."""
    await ledger.mint_to(account, amount)
    await ledger.approve(account, spender, amount)


@pytest_asyncio.fixture()
async def deposited(engine: CollateralEngine, weth: TokenLedger) -> CollateralEngine:
    await fund(weth, USER, engine.address, COLLATERAL_AMOUNT)
    await engine.deposit_collateral(USER, "WETH", COLLATERAL_AMOUNT)
    return engine


@pytest_asyncio.fixture()
async def minted(engine: CollateralEngine, weth: TokenLedger) -> CollateralEngine:
    await fund(weth, USER, engine.address, COLLATERAL_AMOUNT)
    await engine.deposit_collateral_and_mint(
        USER, "WETH", COLLATERAL_AMOUNT, AMOUNT_TO_MINT
    )
    return engine


@pytest_asyncio.fixture()
async def liquidator_ready(
    minted: CollateralEngine, weth: TokenLedger, synthetic: SyntheticAsset
) -> CollateralEngine:
    """Liquidator holds AMOUNT_TO_MINT of synthetic, approved for the engine."""
    await fund(weth, LIQUIDATOR, minted.address, COLLATERAL_TO_COVER)
    await minted.deposit_collateral_and_mint(
        LIQUIDATOR, "WETH", COLLATERAL_TO_COVER, AMOUNT_TO_MINT
    )
    await synthetic.approve(LIQUIDATOR, minted.address, AMOUNT_TO_MINT)
    return minted


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_app_config() -> AppConfig:
    return AppConfig(
        risk=RiskConfig(),
        collateral=(
            CollateralAssetConfig(asset="WETH", price_feed=WETH_FEED),
            CollateralAssetConfig(asset="WBTC", price_feed=WBTC_FEED),
        ),
        boundary=BoundaryConfig(call_timeout_seconds=1.0, oracle_retries=0),
        price_oracle=PriceOracleConfig(provider="static"),
        simulation=SimulationConfig(prices={"WETH": "2000", "WBTC": "1000"}),
    )


SAMPLE_YAML = textwrap.dedent("""\
    risk:
      liquidation_threshold: 50
      liquidation_bonus: 10
      liquidation_precision: 100
      oracle_timeout_seconds: 3600
    collateral:
      - asset: WETH
        price_feed: "aaa"
      - asset: WBTC
        price_feed: "bbb"
    boundary:
      call_timeout_seconds: 5
      oracle_retries: 1
    price_oracle:
      provider: pyth
      pyth:
        hermes_url: "https://hermes.example.com"
        timeout: 3
    simulation:
      prices: {WETH: 2000, WBTC: "1000.5"}
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file
