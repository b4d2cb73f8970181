"""Integration tests for liquidation."""
from __future__ import annotations

import pytest
import pytest_asyncio

from collateral_engine.engine import CollateralEngine
from collateral_engine.exceptions import (
    HealthFactorBroken,
    HealthFactorNotImproved,
    HealthFactorOk,
    MustBeMoreThanZero,
    StalePrice,
    TokenNotAllowed,
    TransferFailed,
)
from collateral_engine.models import Liquidated
from collateral_engine.oracles import StaticPriceOracle
from collateral_engine.tokens import SyntheticAsset, TokenLedger
from collateral_engine.units import MAX_HEALTH_FACTOR, WAD

from tests.conftest import (
    AMOUNT_TO_MINT,
    COLLATERAL_AMOUNT,
    LIQUIDATOR,
    USER,
    WETH_FEED,
    fund,
)

ETH_USD_UPDATED_PRICE = "18"

# 100 USD of debt at 18 USD per WETH, plus the 10% bonus
SEIZED_BASE = 100 * WAD * WAD // (18 * WAD)
SEIZED_TOTAL = SEIZED_BASE + SEIZED_BASE * 10 // 100


@pytest_asyncio.fixture()
async def liquidated(
    liquidator_ready: CollateralEngine, oracle: StaticPriceOracle
) -> CollateralEngine:
    oracle.set_price(WETH_FEED, ETH_USD_UPDATED_PRICE)
    await liquidator_ready.liquidate(LIQUIDATOR, USER, "WETH", AMOUNT_TO_MINT)
    return liquidator_ready


class TestHealthFactorBelowOne:
    @pytest.mark.asyncio
    async def test_health_factor_can_go_below_one(
        self, minted: CollateralEngine, oracle: StaticPriceOracle
    ) -> None:
        oracle.set_price(WETH_FEED, ETH_USD_UPDATED_PRICE)
        # 180 USD of collateral * 50% / 100 of debt = 0.9
        assert await minted.health_factor(USER) == 9 * WAD // 10


class TestLiquidationGuards:
    @pytest.mark.asyncio
    async def test_cant_liquidate_good_health_factor(
        self, liquidator_ready: CollateralEngine
    ) -> None:
        with pytest.raises(HealthFactorOk) as exc:
            await liquidator_ready.liquidate(LIQUIDATOR, USER, "WETH", AMOUNT_TO_MINT)
        assert exc.value.health_factor == 100 * WAD

    @pytest.mark.asyncio
    async def test_cant_liquidate_debt_free_account(
        self, liquidator_ready: CollateralEngine
    ) -> None:
        with pytest.raises(HealthFactorOk) as exc:
            await liquidator_ready.liquidate(LIQUIDATOR, "0xNOBODY", "WETH", WAD)
        assert exc.value.health_factor == MAX_HEALTH_FACTOR

    @pytest.mark.asyncio
    async def test_zero_debt_to_cover_reverts(
        self, liquidator_ready: CollateralEngine
    ) -> None:
        with pytest.raises(MustBeMoreThanZero):
            await liquidator_ready.liquidate(LIQUIDATOR, USER, "WETH", 0)

    @pytest.mark.asyncio
    async def test_unsupported_asset_reverts(
        self, liquidator_ready: CollateralEngine, oracle: StaticPriceOracle
    ) -> None:
        oracle.set_price(WETH_FEED, ETH_USD_UPDATED_PRICE)
        with pytest.raises(TokenNotAllowed):
            await liquidator_ready.liquidate(LIQUIDATOR, USER, "DOGE", AMOUNT_TO_MINT)

    @pytest.mark.asyncio
    async def test_stale_price_blocks_liquidation(
        self, liquidator_ready: CollateralEngine, oracle: StaticPriceOracle
    ) -> None:
        oracle.set_price(WETH_FEED, ETH_USD_UPDATED_PRICE, updated_at=1)
        with pytest.raises(StalePrice):
            await liquidator_ready.liquidate(LIQUIDATOR, USER, "WETH", AMOUNT_TO_MINT)


class TestLiquidationPayout:
    @pytest.mark.asyncio
    async def test_liquidation_payout_is_correct(
        self, liquidated: CollateralEngine, weth: TokenLedger
    ) -> None:
        assert SEIZED_TOTAL == 6_111_111_111_111_111_110
        assert await weth.balance_of(LIQUIDATOR) == SEIZED_TOTAL

    @pytest.mark.asyncio
    async def test_user_still_has_some_collateral(
        self, liquidated: CollateralEngine
    ) -> None:
        remaining = liquidated.collateral_balance(USER, "WETH")
        assert remaining == COLLATERAL_AMOUNT - SEIZED_TOTAL
        info = await liquidated.account_information(USER)
        assert info.collateral_value_usd == remaining * 18

    @pytest.mark.asyncio
    async def test_user_debt_is_retired(self, liquidated: CollateralEngine) -> None:
        assert liquidated.minted_debt(USER) == 0
        assert await liquidated.health_factor(USER) == MAX_HEALTH_FACTOR

    @pytest.mark.asyncio
    async def test_liquidator_paid_with_own_synthetic(
        self, liquidated: CollateralEngine, synthetic: SyntheticAsset
    ) -> None:
        assert await synthetic.balance_of(LIQUIDATOR) == 0
        assert liquidated.minted_debt(LIQUIDATOR) == AMOUNT_TO_MINT
        assert await synthetic.total_supply() == AMOUNT_TO_MINT

    @pytest.mark.asyncio
    async def test_emits_liquidated_event(self, liquidated: CollateralEngine) -> None:
        assert liquidated.events[-1] == Liquidated(
            liquidator=LIQUIDATOR,
            account=USER,
            asset="WETH",
            debt_covered=AMOUNT_TO_MINT,
            collateral_seized=SEIZED_TOTAL,
        )

    @pytest.mark.asyncio
    async def test_protocol_stays_solvent(self, liquidated: CollateralEngine) -> None:
        report = await liquidated.solvency_report()
        assert report.total_debt == report.total_supply == AMOUNT_TO_MINT
        assert report.solvent


class TestPartialLiquidation:
    @pytest.mark.asyncio
    async def test_partial_liquidation_improves_health_factor(
        self, liquidator_ready: CollateralEngine, oracle: StaticPriceOracle
    ) -> None:
        oracle.set_price(WETH_FEED, ETH_USD_UPDATED_PRICE)
        starting = await liquidator_ready.health_factor(USER)

        await liquidator_ready.liquidate(LIQUIDATOR, USER, "WETH", AMOUNT_TO_MINT // 2)

        ending = await liquidator_ready.health_factor(USER)
        assert ending > starting
        assert liquidator_ready.minted_debt(USER) == AMOUNT_TO_MINT // 2

    @pytest.mark.asyncio
    async def test_liquidation_that_worsens_position_reverts(
        self, liquidator_ready: CollateralEngine, oracle: StaticPriceOracle,
        synthetic: SyntheticAsset,
    ) -> None:
        # Collateral worth 105 against 100 of debt: paying a 10% bonus on a
        # partial cover leaves the account worse off.
        oracle.set_price(WETH_FEED, "10.5")
        with pytest.raises(HealthFactorNotImproved) as exc:
            await liquidator_ready.liquidate(LIQUIDATOR, USER, "WETH", AMOUNT_TO_MINT // 2)
        assert exc.value.ending <= exc.value.starting
        assert liquidator_ready.minted_debt(USER) == AMOUNT_TO_MINT
        assert liquidator_ready.collateral_balance(USER, "WETH") == COLLATERAL_AMOUNT
        assert await synthetic.balance_of(LIQUIDATOR) == AMOUNT_TO_MINT


class TestUndercollateralizedLimit:
    @pytest.mark.asyncio
    async def test_seize_larger_than_balance_moves_no_collateral(
        self, liquidator_ready: CollateralEngine, oracle: StaticPriceOracle,
        weth: TokenLedger,
    ) -> None:
        # At 10 USD the account is exactly 100% collateralized: debt plus bonus
        # (11 WETH) exceeds the 10 WETH it holds.
        oracle.set_price(WETH_FEED, "10")
        await liquidator_ready.liquidate(LIQUIDATOR, USER, "WETH", AMOUNT_TO_MINT)

        assert liquidator_ready.minted_debt(USER) == 0
        assert liquidator_ready.collateral_balance(USER, "WETH") == COLLATERAL_AMOUNT
        assert await weth.balance_of(LIQUIDATOR) == 0
        assert liquidator_ready.events[-1].collateral_seized == 0


class TestLiquidatorHealth:
    @pytest.mark.asyncio
    async def test_liquidator_health_factor_must_hold(
        self, minted: CollateralEngine, oracle: StaticPriceOracle,
        weth: TokenLedger, synthetic: SyntheticAsset,
    ) -> None:
        thin = 11 * WAD
        await fund(weth, LIQUIDATOR, minted.address, thin)
        await minted.deposit_collateral_and_mint(LIQUIDATOR, "WETH", thin, AMOUNT_TO_MINT)
        await synthetic.approve(LIQUIDATOR, minted.address, AMOUNT_TO_MINT)

        # 11 WETH at 18 USD backs only 99 of the liquidator's own 100 of debt.
        oracle.set_price(WETH_FEED, ETH_USD_UPDATED_PRICE)
        with pytest.raises(HealthFactorBroken) as exc:
            await minted.liquidate(LIQUIDATOR, USER, "WETH", AMOUNT_TO_MINT)

        assert exc.value.account == LIQUIDATOR
        assert minted.minted_debt(USER) == AMOUNT_TO_MINT
        assert minted.collateral_balance(USER, "WETH") == COLLATERAL_AMOUNT
        assert await synthetic.balance_of(LIQUIDATOR) == AMOUNT_TO_MINT
        assert await weth.balance_of(LIQUIDATOR) == 0


class TestLiquidationRollback:
    @pytest.mark.asyncio
    async def test_liquidator_without_allowance_reverts(
        self, liquidator_ready: CollateralEngine, oracle: StaticPriceOracle,
        synthetic: SyntheticAsset,
    ) -> None:
        await synthetic.approve(LIQUIDATOR, liquidator_ready.address, 0)
        oracle.set_price(WETH_FEED, ETH_USD_UPDATED_PRICE)
        with pytest.raises(TransferFailed):
            await liquidator_ready.liquidate(LIQUIDATOR, USER, "WETH", AMOUNT_TO_MINT)
        assert liquidator_ready.minted_debt(USER) == AMOUNT_TO_MINT
        assert liquidator_ready.collateral_balance(USER, "WETH") == COLLATERAL_AMOUNT

    @pytest.mark.asyncio
    async def test_failed_payout_restores_burned_synthetic(
        self, liquidator_ready: CollateralEngine, oracle: StaticPriceOracle,
        synthetic: SyntheticAsset, weth: TokenLedger,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        async def refuse(sender: str, recipient: str, amount: int) -> bool:
            return False

        monkeypatch.setattr(weth, "transfer", refuse)
        oracle.set_price(WETH_FEED, ETH_USD_UPDATED_PRICE)

        with pytest.raises(TransferFailed):
            await liquidator_ready.liquidate(LIQUIDATOR, USER, "WETH", AMOUNT_TO_MINT)

        assert liquidator_ready.minted_debt(USER) == AMOUNT_TO_MINT
        assert liquidator_ready.collateral_balance(USER, "WETH") == COLLATERAL_AMOUNT
        assert await synthetic.balance_of(LIQUIDATOR) == AMOUNT_TO_MINT
        assert await synthetic.balance_of(liquidator_ready.address) == 0
        assert await synthetic.total_supply() == 2 * AMOUNT_TO_MINT
