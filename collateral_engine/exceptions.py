"""Engine error taxonomy.

Every error carries the values needed to diagnose it, so callers can
correct and resubmit a request without the engine retrying anything.
"""
from __future__ import annotations


class EngineError(Exception):
    """Base class for every error raised by the collateral engine."""


# ---------------------------------------------------------------------------
# Input validation / construction
# ---------------------------------------------------------------------------


class ConfigurationError(EngineError):
    """Invalid engine or application configuration."""


class TokenAddressesAndPriceFeedAddressesMustBeSameLength(ConfigurationError):
    def __init__(self, n_tokens: int, n_feeds: int) -> None:
        super().__init__(
            f"{n_tokens} collateral assets but {n_feeds} price feeds"
        )
        self.n_tokens = n_tokens
        self.n_feeds = n_feeds


class DuplicateCollateralAsset(ConfigurationError):
    def __init__(self, asset: str) -> None:
        super().__init__(f"Collateral asset '{asset}' listed more than once")
        self.asset = asset


class MustBeMoreThanZero(EngineError):
    def __init__(self, amount: int) -> None:
        super().__init__(f"Amount must be more than zero, got {amount}")
        self.amount = amount


class TokenNotAllowed(EngineError):
    def __init__(self, asset: str) -> None:
        super().__init__(f"Asset '{asset}' is not an accepted collateral")
        self.asset = asset


# ---------------------------------------------------------------------------
# Solvency / liquidation
# ---------------------------------------------------------------------------


class HealthFactorBroken(EngineError):
    def __init__(self, account: str, health_factor: int) -> None:
        super().__init__(
            f"Health factor of {account} would be {health_factor}"
        )
        self.account = account
        self.health_factor = health_factor


class HealthFactorOk(EngineError):
    def __init__(self, account: str, health_factor: int) -> None:
        super().__init__(
            f"Account {account} is not liquidatable (health factor {health_factor})"
        )
        self.account = account
        self.health_factor = health_factor


class HealthFactorNotImproved(EngineError):
    def __init__(self, account: str, starting: int, ending: int) -> None:
        super().__init__(
            f"Liquidation of {account} did not improve its health factor "
            f"({starting} -> {ending})"
        )
        self.account = account
        self.starting = starting
        self.ending = ending


# ---------------------------------------------------------------------------
# External collaborators
# ---------------------------------------------------------------------------


class TransferFailed(EngineError):
    def __init__(self, asset: str, source: str, recipient: str, amount: int) -> None:
        super().__init__(
            f"Transfer of {amount} {asset} from {source} to {recipient} failed"
        )
        self.asset = asset
        self.source = source
        self.recipient = recipient
        self.amount = amount


class MintFailed(EngineError):
    def __init__(self, account: str, amount: int) -> None:
        super().__init__(f"Mint of {amount} to {account} failed")
        self.account = account
        self.amount = amount


class BurnFailed(EngineError):
    def __init__(self, amount: int) -> None:
        super().__init__(f"Burn of {amount} failed")
        self.amount = amount


class CollaboratorTimeout(EngineError):
    def __init__(self, operation: str, timeout: float) -> None:
        super().__init__(f"{operation} did not complete within {timeout}s")
        self.operation = operation
        self.timeout = timeout


class OracleError(EngineError):
    """A price could not be used."""


class OracleUnavailable(OracleError):
    def __init__(self, feed_id: str, reason: str) -> None:
        super().__init__(f"Price feed {feed_id} unavailable: {reason}")
        self.feed_id = feed_id
        self.reason = reason


class StalePrice(OracleError):
    def __init__(self, feed_id: str, updated_at: int, age: float) -> None:
        super().__init__(
            f"Price feed {feed_id} is stale (updated_at={updated_at}, age={age:.0f}s)"
        )
        self.feed_id = feed_id
        self.updated_at = updated_at
        self.age = age


# ---------------------------------------------------------------------------
# Concurrency / bookkeeping
# ---------------------------------------------------------------------------


class ReentrancyError(EngineError):
    def __init__(self, operation: str) -> None:
        super().__init__(f"Reentrant call to {operation} rejected")
        self.operation = operation


class BookkeepingError(EngineError):
    """The engine's own ledger was asked to do something impossible."""


class DebtUnderflow(BookkeepingError):
    def __init__(self, account: str, recorded: int, requested: int) -> None:
        super().__init__(
            f"Cannot burn {requested} for {account}: only {recorded} recorded"
        )
        self.account = account
        self.recorded = recorded
        self.requested = requested
