"""Risk evaluator — health factor of an account."""
from __future__ import annotations

import logging
from typing import Sequence

from .config import RiskConfig
from .ledger import AccountLedger
from .models import AccountInformation
from .pricing import PriceResolver
from .units import MAX_HEALTH_FACTOR

logger = logging.getLogger(__name__)


def calculate_health_factor(
    total_minted: int, collateral_value_usd: int, risk: RiskConfig
) -> int:
    """Health factor for a given debt and raw collateral value.

    Only ``liquidation_threshold / liquidation_precision`` of the collateral
    counts toward coverage. Both divisions round down. An account without
    debt gets ``MAX_HEALTH_FACTOR``.
    """
    if total_minted == 0:
        return MAX_HEALTH_FACTOR
    adjusted = (
        collateral_value_usd * risk.liquidation_threshold // risk.liquidation_precision
    )
    return adjusted * risk.precision // total_minted


class RiskEvaluator:
    def __init__(
        self,
        ledger: AccountLedger,
        resolver: PriceResolver,
        collateral_tokens: Sequence[str],
        risk: RiskConfig,
    ) -> None:
        self._ledger = ledger
        self._resolver = resolver
        self._tokens = tuple(collateral_tokens)
        self.risk = risk

    async def total_collateral_value(self, account: str) -> int:
        """Sum of the USD value of every supported asset held by ``account``.

        A stale or unavailable feed fails the whole call; no asset is skipped.
        """
        total = 0
        for asset in self._tokens:
            amount = self._ledger.collateral(account, asset)
            total += await self._resolver.usd_value(asset, amount)
        return total

    async def account_information(self, account: str) -> AccountInformation:
        return AccountInformation(
            total_minted=self._ledger.debt(account),
            collateral_value_usd=await self.total_collateral_value(account),
        )

    async def health_factor(self, account: str) -> int:
        # Debt-free accounts are never priced, so a dead feed cannot block them.
        if self._ledger.debt(account) == 0:
            return MAX_HEALTH_FACTOR
        info = await self.account_information(account)
        return calculate_health_factor(
            info.total_minted, info.collateral_value_usd, self.risk
        )

    def is_healthy(self, health_factor: int) -> bool:
        return health_factor >= self.risk.min_health_factor
