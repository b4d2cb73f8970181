"""Synthetic asset ledger whose supply is controlled by a single owner."""
from __future__ import annotations

import logging

from .token import TokenLedger

logger = logging.getLogger(__name__)


class SyntheticAsset(TokenLedger):
    """Unit-pegged synthetic asset.

    Only ``controller`` may mint or burn; the engine becomes the controller
    through ``transfer_ownership`` once it has been constructed.
    """

    def __init__(self, symbol: str = "DSC", controller: str = "") -> None:
        super().__init__(symbol)
        self._controller = controller

    @property
    def controller(self) -> str:
        return self._controller

    def transfer_ownership(self, caller: str, new_controller: str) -> None:
        if caller != self._controller:
            raise PermissionError(f"{caller} does not control {self.symbol}")
        logger.info("%s controller: %s -> %s", self.symbol, caller, new_controller)
        self._controller = new_controller

    async def mint(self, caller: str, recipient: str, amount: int) -> bool:
        if caller != self._controller:
            logger.warning("Rejected %s mint from non-controller %s", self.symbol, caller)
            return False
        if amount <= 0 or not recipient:
            return False
        await self.mint_to(recipient, amount)
        return True

    async def burn(self, caller: str, amount: int) -> bool:
        """Destroy ``amount`` from the controller's own balance."""
        if caller != self._controller:
            logger.warning("Rejected %s burn from non-controller %s", self.symbol, caller)
            return False
        return self._burn_from(caller, amount)
