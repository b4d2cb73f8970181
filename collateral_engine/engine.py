"""Collateral engine — deposit, redeem, mint, burn and liquidate.

Every mutating operation runs inside a guarded transaction: ledger deltas
are applied first, health checks run against the resulting state, and
external transfers happen last. Any failure restores the ledger and undoes
the external effects already applied.

Operations write to a working ledger. Accessors read a committed ledger
that only changes when an operation succeeds.
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from typing import Awaitable, Callable, Mapping, Sequence, TypeVar

from .config import AppConfig, BoundaryConfig, RiskConfig
from .exceptions import (
    BurnFailed,
    CollaboratorTimeout,
    ConfigurationError,
    DuplicateCollateralAsset,
    HealthFactorBroken,
    HealthFactorNotImproved,
    HealthFactorOk,
    MintFailed,
    MustBeMoreThanZero,
    TokenAddressesAndPriceFeedAddressesMustBeSameLength,
    TokenNotAllowed,
    TransferFailed,
)
from .guard import ReentrancyGuard, Transaction
from .interfaces import CollateralLedger, PriceOracle, SyntheticLedger
from .ledger import AccountLedger
from .models import (
    AccountInformation,
    CollateralDeposited,
    CollateralRedeemed,
    EngineEvent,
    Liquidated,
    SolvencyReport,
    SyntheticBurned,
    SyntheticMinted,
)
from .pricing import PriceResolver
from .risk import RiskEvaluator, calculate_health_factor

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_ENGINE_ADDRESS = "collateral-engine"
EVENT_HISTORY = 10_000


class CollateralEngine:
    """Over-collateralized issuance of a unit-pegged synthetic asset."""

    def __init__(
        self,
        token_addresses: Sequence[str],
        price_feed_addresses: Sequence[str],
        synthetic: SyntheticLedger,
        collateral_ledgers: Mapping[str, CollateralLedger],
        oracle: PriceOracle,
        risk: RiskConfig | None = None,
        boundary: BoundaryConfig | None = None,
        address: str = DEFAULT_ENGINE_ADDRESS,
        clock: Callable[[], float] = time.time,
        event_history: int = EVENT_HISTORY,
    ) -> None:
        if len(token_addresses) != len(price_feed_addresses):
            raise TokenAddressesAndPriceFeedAddressesMustBeSameLength(
                len(token_addresses), len(price_feed_addresses)
            )
        seen: set[str] = set()
        for asset in token_addresses:
            if asset in seen:
                raise DuplicateCollateralAsset(asset)
            seen.add(asset)
        missing = [a for a in token_addresses if a not in collateral_ledgers]
        if missing:
            raise ConfigurationError(f"No ledger for collateral: {', '.join(missing)}")

        self.address = address
        self._risk_config = risk or RiskConfig()
        self._boundary = boundary or BoundaryConfig()
        self._collateral_tokens = tuple(token_addresses)
        self._synthetic = synthetic
        self._collateral_ledgers = {a: collateral_ledgers[a] for a in token_addresses}

        self._working = AccountLedger(self._collateral_tokens)
        self._committed = AccountLedger(self._collateral_tokens)
        self._resolver = PriceResolver(
            oracle,
            dict(zip(token_addresses, price_feed_addresses)),
            max_age_seconds=self._risk_config.oracle_timeout_seconds,
            precision=self._risk_config.precision,
            call_timeout=self._boundary.call_timeout_seconds,
            retries=self._boundary.oracle_retries,
            clock=clock,
        )
        self._risk = RiskEvaluator(
            self._working, self._resolver, self._collateral_tokens, self._risk_config
        )
        self._committed_risk = RiskEvaluator(
            self._committed, self._resolver, self._collateral_tokens, self._risk_config
        )
        self._events: deque[EngineEvent] = deque(maxlen=event_history)
        self._guard = ReentrancyGuard(
            self._working,
            self._committed,
            self._publish,
            compensation_timeout=self._boundary.call_timeout_seconds,
        )

        logger.info(
            "Collateral engine %s accepting %s",
            address, ", ".join(self._collateral_tokens),
        )

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        synthetic: SyntheticLedger,
        collateral_ledgers: Mapping[str, CollateralLedger],
        oracle: PriceOracle,
        address: str = DEFAULT_ENGINE_ADDRESS,
    ) -> "CollateralEngine":
        return cls(
            config.assets,
            config.price_feeds,
            synthetic,
            collateral_ledgers,
            oracle,
            risk=config.risk,
            boundary=config.boundary,
            address=address,
        )

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def deposit_collateral(self, account: str, asset: str, amount: int) -> None:
        async with self._guard.transaction("deposit_collateral") as tx:
            await self._deposit(tx, account, asset, amount)

    async def redeem_collateral(self, account: str, asset: str, amount: int) -> None:
        """Withdraw collateral; fails if it would leave ``account`` unhealthy.

        Asking for more than the recorded balance changes nothing.
        """
        async with self._guard.transaction("redeem_collateral") as tx:
            self._require_positive(amount)
            self._require_allowed(asset)
            moved = self._redeem(tx, asset, amount, account, account)
            await self._revert_if_health_factor_is_broken(account)
            if moved:
                await self._transfer_out(asset, account, amount)

    async def mint(self, account: str, amount: int) -> None:
        async with self._guard.transaction("mint") as tx:
            await self._mint(tx, account, amount)

    async def burn(self, account: str, amount: int) -> None:
        async with self._guard.transaction("burn") as tx:
            self._require_positive(amount)
            self._burn_debt(tx, amount, on_behalf_of=account, payer=account)
            await self._collect_and_burn(tx, amount, payer=account)

    async def deposit_collateral_and_mint(
        self, account: str, asset: str, collateral_amount: int, mint_amount: int
    ) -> None:
        async with self._guard.transaction("deposit_collateral_and_mint") as tx:
            await self._deposit(tx, account, asset, collateral_amount)
            await self._mint(tx, account, mint_amount)

    async def redeem_collateral_for_synthetic(
        self, account: str, asset: str, collateral_amount: int, burn_amount: int
    ) -> None:
        """Burn ``burn_amount`` of debt, then withdraw ``collateral_amount``."""
        async with self._guard.transaction("redeem_collateral_for_synthetic") as tx:
            self._require_positive(collateral_amount)
            self._require_positive(burn_amount)
            self._require_allowed(asset)
            self._burn_debt(tx, burn_amount, on_behalf_of=account, payer=account)
            moved = self._redeem(tx, asset, collateral_amount, account, account)
            await self._revert_if_health_factor_is_broken(account)
            await self._collect_and_burn(tx, burn_amount, payer=account)
            if moved:
                await self._transfer_out(asset, account, collateral_amount)

    async def liquidate(
        self, liquidator: str, account: str, asset: str, debt_to_cover: int
    ) -> None:
        """Retire ``debt_to_cover`` of ``account``'s debt with the liquidator's
        synthetic balance and pay the liquidator the equivalent collateral
        plus the liquidation bonus.

        The seized amount is not capped: if ``account`` holds less than the
        debt-plus-bonus equivalent, no collateral moves but the debt is still
        retired.
        """
        async with self._guard.transaction("liquidate") as tx:
            self._require_positive(debt_to_cover)
            self._require_allowed(asset)

            starting = await self._risk.health_factor(account)
            if self._risk.is_healthy(starting):
                raise HealthFactorOk(account, starting)

            token_amount = await self._resolver.token_amount_from_usd(asset, debt_to_cover)
            bonus = (
                token_amount
                * self._risk_config.liquidation_bonus
                // self._risk_config.liquidation_precision
            )
            total_seized = token_amount + bonus

            seized = self._redeem(tx, asset, total_seized, account, liquidator)
            self._burn_debt(tx, debt_to_cover, on_behalf_of=account, payer=liquidator)

            ending = await self._risk.health_factor(account)
            if ending <= starting:
                raise HealthFactorNotImproved(account, starting, ending)
            await self._revert_if_health_factor_is_broken(liquidator)

            await self._collect_and_burn(tx, debt_to_cover, payer=liquidator)
            if seized:
                await self._transfer_out(asset, liquidator, total_seized)

            tx.emit(
                Liquidated(
                    liquidator=liquidator,
                    account=account,
                    asset=asset,
                    debt_covered=debt_to_cover,
                    collateral_seized=total_seized if seized else 0,
                )
            )

    # ------------------------------------------------------------------
    # Transition building blocks
    # ------------------------------------------------------------------

    async def _deposit(
        self, tx: Transaction, account: str, asset: str, amount: int
    ) -> None:
        self._require_positive(amount)
        self._require_allowed(asset)

        self._working.credit_collateral(account, asset, amount)
        tx.emit(CollateralDeposited(account=account, asset=asset, amount=amount))

        ledger = self._collateral_ledgers[asset]
        ok = await self._call(
            f"{asset}.transfer_from",
            ledger.transfer_from(self.address, account, self.address, amount),
        )
        if not ok:
            raise TransferFailed(asset, account, self.address, amount)
        tx.on_rollback(
            f"return {amount} {asset} to {account}",
            lambda: ledger.transfer(self.address, account, amount),
        )

    async def _mint(self, tx: Transaction, account: str, amount: int) -> None:
        self._require_positive(amount)

        self._working.add_debt(account, amount)
        await self._revert_if_health_factor_is_broken(account)

        ok = await self._call(
            "mint", self._synthetic.mint(self.address, account, amount)
        )
        if not ok:
            raise MintFailed(account, amount)
        tx.emit(SyntheticMinted(account=account, amount=amount))

    def _redeem(
        self, tx: Transaction, asset: str, amount: int, source: str, recipient: str
    ) -> bool:
        """Move collateral out of ``source``'s ledger entry.

        Returns False without any effect when ``source`` holds too little.
        """
        if not self._working.debit_collateral(source, asset, amount):
            return False
        tx.emit(
            CollateralRedeemed(
                redeemed_from=source, redeemed_to=recipient, asset=asset, amount=amount
            )
        )
        return True

    def _burn_debt(
        self, tx: Transaction, amount: int, on_behalf_of: str, payer: str
    ) -> None:
        self._working.remove_debt(on_behalf_of, amount)
        tx.emit(SyntheticBurned(on_behalf_of=on_behalf_of, payer=payer, amount=amount))

    async def _collect_and_burn(self, tx: Transaction, amount: int, payer: str) -> None:
        """Pull ``amount`` of synthetic from ``payer`` and destroy it."""
        synthetic = self._synthetic
        ok = await self._call(
            "synthetic.transfer_from",
            synthetic.transfer_from(self.address, payer, self.address, amount),
        )
        if not ok:
            raise TransferFailed(synthetic.symbol, payer, self.address, amount)
        tx.on_rollback(
            f"return {amount} {synthetic.symbol} to {payer}",
            lambda: synthetic.transfer(self.address, payer, amount),
        )

        ok = await self._call("synthetic.burn", synthetic.burn(self.address, amount))
        if not ok:
            raise BurnFailed(amount)
        tx.on_rollback(
            f"re-mint {amount} {synthetic.symbol}",
            lambda: synthetic.mint(self.address, self.address, amount),
        )

    async def _transfer_out(self, asset: str, recipient: str, amount: int) -> None:
        # Always the last effect of an operation: nothing can fail after it.
        ok = await self._call(
            f"{asset}.transfer",
            self._collateral_ledgers[asset].transfer(self.address, recipient, amount),
        )
        if not ok:
            raise TransferFailed(asset, self.address, recipient, amount)

    async def _revert_if_health_factor_is_broken(self, account: str) -> None:
        health_factor = await self._risk.health_factor(account)
        if not self._risk.is_healthy(health_factor):
            raise HealthFactorBroken(account, health_factor)

    def _require_positive(self, amount: int) -> None:
        if amount <= 0:
            raise MustBeMoreThanZero(amount)

    def _require_allowed(self, asset: str) -> None:
        if asset not in self._collateral_ledgers:
            raise TokenNotAllowed(asset)

    async def _call(self, operation: str, call: Awaitable[T]) -> T:
        timeout = self._boundary.call_timeout_seconds
        try:
            return await asyncio.wait_for(call, timeout=timeout)
        except asyncio.TimeoutError:
            raise CollaboratorTimeout(operation, timeout) from None

    def _publish(self, events: list[EngineEvent]) -> None:
        for event in events:
            logger.info("%s", event)
        self._events.extend(events)

    # ------------------------------------------------------------------
    # Read-only accessors
    # ------------------------------------------------------------------

    async def usd_value(self, asset: str, amount: int) -> int:
        return await self._resolver.usd_value(asset, amount)

    async def token_amount_from_usd(self, asset: str, usd_amount: int) -> int:
        return await self._resolver.token_amount_from_usd(asset, usd_amount)

    async def account_collateral_value(self, account: str) -> int:
        return await self._committed_risk.total_collateral_value(account)

    async def account_information(self, account: str) -> AccountInformation:
        return await self._committed_risk.account_information(account)

    async def health_factor(self, account: str) -> int:
        return await self._committed_risk.health_factor(account)

    def calculate_health_factor(self, total_minted: int, collateral_value_usd: int) -> int:
        return calculate_health_factor(total_minted, collateral_value_usd, self._risk_config)

    def collateral_balance(self, account: str, asset: str) -> int:
        return self._committed.collateral(account, asset)

    def minted_debt(self, account: str) -> int:
        return self._committed.debt(account)

    def price_feed(self, asset: str) -> str:
        return self._resolver.price_feed(asset)

    @property
    def collateral_tokens(self) -> tuple[str, ...]:
        return self._collateral_tokens

    @property
    def synthetic(self) -> SyntheticLedger:
        return self._synthetic

    @property
    def precision(self) -> int:
        return self._risk_config.precision

    @property
    def liquidation_threshold(self) -> int:
        return self._risk_config.liquidation_threshold

    @property
    def liquidation_bonus(self) -> int:
        return self._risk_config.liquidation_bonus

    @property
    def liquidation_precision(self) -> int:
        return self._risk_config.liquidation_precision

    @property
    def min_health_factor(self) -> int:
        return self._risk_config.min_health_factor

    @property
    def events(self) -> tuple[EngineEvent, ...]:
        return tuple(self._events)

    async def solvency_report(self) -> SolvencyReport:
        """Compare recorded debt against the value of collateral in custody."""
        collateral_value = 0
        for asset in self._collateral_tokens:
            held = await self._call(
                f"{asset}.balance_of",
                self._collateral_ledgers[asset].balance_of(self.address),
            )
            collateral_value += await self._resolver.usd_value(asset, held)

        total_supply = await self._call(
            "synthetic.total_supply", self._synthetic.total_supply()
        )
        return SolvencyReport(
            total_debt=self._committed.total_debt(),
            total_supply=total_supply,
            total_collateral_value=collateral_value,
        )
