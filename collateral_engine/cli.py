"""Command-line interface for the collateral engine."""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
from decimal import Decimal

from .config import AppConfig, load_config
from .engine import CollateralEngine
from .exceptions import ConfigurationError, EngineError
from .interfaces import PriceOracle
from .logging_setup import configure_logging
from .oracles import PythOracle, StaticPriceOracle
from .pricing import PriceResolver
from .tokens import SyntheticAsset, TokenLedger
from .units import WAD, MAX_HEALTH_FACTOR, from_wad, to_wad

logger = logging.getLogger(__name__)

DEPLOYER = "deployer"
BORROWER = "alice"
KEEPER = "keeper"


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="collateral-engine",
        description="Over-collateralized synthetic asset engine",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("prices", help="Show the latest validated price of every collateral")

    quote_parser = sub.add_parser("quote", help="USD value of an amount of collateral")
    quote_parser.add_argument("asset", help="Collateral asset, e.g. WETH")
    quote_parser.add_argument("amount", type=Decimal, help="Amount in whole units")

    sim_parser = sub.add_parser(
        "simulate", help="Run a deposit/mint/price-shock/liquidation scenario in memory"
    )
    sim_parser.add_argument(
        "--shock",
        type=Decimal,
        default=Decimal("-60"),
        help="Price change applied to the first collateral, in percent (default: -60)",
    )

    return parser


def build_oracle(config: AppConfig) -> PriceOracle:
    """Oracle selected by ``price_oracle.provider``."""
    if config.price_oracle.provider == "static":
        return seeded_static_oracle(config)
    return PythOracle(config.price_oracle.pyth)


def seeded_static_oracle(config: AppConfig) -> StaticPriceOracle:
    oracle = StaticPriceOracle()
    for entry in config.collateral:
        price = config.simulation.prices.get(entry.asset)
        if price is None:
            raise ConfigurationError(f"No simulation price for '{entry.asset}'")
        oracle.set_price(entry.price_feed, price)
    return oracle


def _format_health_factor(health_factor: int) -> str:
    if health_factor == MAX_HEALTH_FACTOR:
        return "∞"
    return f"{from_wad(health_factor):.4f}"


async def _show_prices(config: AppConfig) -> None:
    oracle = build_oracle(config)
    for entry in config.collateral:
        reading = await oracle.latest_price(entry.price_feed)
        age = int(time.time()) - reading.updated_at
        resolver = PriceResolver(
            oracle,
            {entry.asset: entry.price_feed},
            max_age_seconds=config.risk.oracle_timeout_seconds,
            call_timeout=config.boundary.call_timeout_seconds,
            retries=config.boundary.oracle_retries,
        )
        try:
            price = await resolver.price(entry.asset)
            status = f"${from_wad(price):,.4f}"
        except EngineError as e:
            status = f"REJECTED ({e})"
        print(f"{entry.asset:<8} {status:<24} age {age}s  feed {entry.price_feed}")


async def _quote(config: AppConfig, asset: str, amount: Decimal) -> None:
    resolver = PriceResolver(
        build_oracle(config),
        {c.asset: c.price_feed for c in config.collateral},
        max_age_seconds=config.risk.oracle_timeout_seconds,
        call_timeout=config.boundary.call_timeout_seconds,
        retries=config.boundary.oracle_retries,
    )
    usd = await resolver.usd_value(asset, to_wad(amount))
    print(f"{amount} {asset} = ${from_wad(usd):,.2f}")


async def _print_account(engine: CollateralEngine, account: str) -> None:
    info = await engine.account_information(account)
    health_factor = await engine.health_factor(account)
    balances = ", ".join(
        f"{from_wad(engine.collateral_balance(account, a))} {a}"
        for a in engine.collateral_tokens
    )
    print(
        f"  {account:<8} debt {from_wad(info.total_minted):,.2f}  "
        f"collateral ${from_wad(info.collateral_value_usd):,.2f} ({balances})  "
        f"HF {_format_health_factor(health_factor)}"
    )


async def simulate(config: AppConfig, shock: Decimal) -> CollateralEngine:
    """Drive one borrower into liquidation and let a keeper liquidate it."""
    oracle = seeded_static_oracle(config)
    ledgers = {c.asset: TokenLedger(c.asset) for c in config.collateral}
    synthetic = SyntheticAsset("DSC", controller=DEPLOYER)
    engine = CollateralEngine.from_config(config, synthetic, ledgers, oracle)
    synthetic.transfer_ownership(DEPLOYER, engine.address)

    asset = config.collateral[0].asset
    feed = config.collateral[0].price_feed
    ledger = ledgers[asset]

    borrower_collateral = 10 * WAD
    keeper_collateral = 20 * WAD
    collateral_usd = await engine.usd_value(asset, borrower_collateral)
    # Mint half of the maximum so the borrower starts at a health factor of 2.
    debt = (
        collateral_usd * engine.liquidation_threshold // engine.liquidation_precision // 2
    )

    for account, amount in ((BORROWER, borrower_collateral), (KEEPER, keeper_collateral)):
        await ledger.mint_to(account, amount)
        await ledger.approve(account, engine.address, amount)
        await engine.deposit_collateral_and_mint(account, asset, amount, debt)

    print("After deposits:")
    for account in (BORROWER, KEEPER):
        await _print_account(engine, account)

    oracle.apply_shock(feed, shock)
    print(f"After a {shock}% move in {asset}:")
    for account in (BORROWER, KEEPER):
        await _print_account(engine, account)

    health_factor = await engine.health_factor(BORROWER)
    if health_factor < engine.min_health_factor:
        await synthetic.approve(KEEPER, engine.address, debt)
        try:
            await engine.liquidate(KEEPER, BORROWER, asset, debt)
        except EngineError as e:
            print(f"Liquidation rejected: {e}")
        else:
            print("After liquidation:")
            for account in (BORROWER, KEEPER):
                await _print_account(engine, account)
            print(f"  keeper received {from_wad(await ledger.balance_of(KEEPER))} {asset}")
    else:
        print("Borrower is still healthy; nothing to liquidate.")

    report = await engine.solvency_report()
    print(
        f"Solvency: debt {from_wad(report.total_debt):,.2f} vs collateral "
        f"${from_wad(report.total_collateral_value):,.2f} -> "
        f"{'solvent' if report.solvent else 'INSOLVENT'}"
    )
    return engine


async def _run(args: argparse.Namespace) -> None:
    """Execute the selected command."""
    configure_logging(args.log_level)
    config = load_config(args.config)

    if args.command == "prices":
        await _show_prices(config)
    elif args.command == "quote":
        await _quote(config, args.asset, args.amount)
    elif args.command == "simulate":
        await simulate(config, args.shock)
    else:
        build_parser().print_help()
        sys.exit(1)


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        asyncio.run(_run(args))
    except EngineError as e:
        logger.error("%s", e)
        sys.exit(2)
