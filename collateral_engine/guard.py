"""Serialized, all-or-nothing execution of engine operations."""
from __future__ import annotations

import asyncio
import contextvars
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable

from .exceptions import ReentrancyError
from .ledger import AccountLedger
from .models import EngineEvent

logger = logging.getLogger(__name__)

Compensation = Callable[[], Awaitable[Any]]


class Transaction:
    """Effects staged by one in-flight operation."""

    def __init__(self, operation: str, timeout: float | None = None) -> None:
        self.operation = operation
        self.timeout = timeout
        self.events: list[EngineEvent] = []
        self._compensations: list[tuple[str, Compensation]] = []

    def emit(self, event: EngineEvent) -> None:
        self.events.append(event)

    def on_rollback(self, description: str, action: Compensation) -> None:
        """Register an action that undoes an external effect already applied."""
        self._compensations.append((description, action))

    async def compensate(self) -> None:
        """Run compensations newest first; a failed one does not stop the rest."""
        for description, action in reversed(self._compensations):
            try:
                result = await asyncio.wait_for(action(), timeout=self.timeout)
            except asyncio.TimeoutError:
                logger.error(
                    "%s: compensation '%s' did not complete within %ss",
                    self.operation, description, self.timeout,
                )
                continue
            except Exception as e:
                logger.error(
                    "%s: compensation '%s' raised: %s", self.operation, description, e
                )
                continue
            if result is False:
                logger.error(
                    "%s: compensation '%s' reported failure", self.operation, description
                )


class ReentrancyGuard:
    """One operation at a time, and no re-entry from inside an operation.

    Independent tasks queue on a lock. A call made while the current
    context already holds the guard (a collaborator calling back into the
    engine) is rejected instead of deadlocking.

    Operations write to ``working``. Readers see ``committed``, which only
    receives the accounts an operation touched once it succeeds.
    """

    def __init__(
        self,
        working: AccountLedger,
        committed: AccountLedger,
        on_commit: Callable[[list[EngineEvent]], None],
        compensation_timeout: float | None = None,
    ) -> None:
        self._working = working
        self._committed = committed
        self._on_commit = on_commit
        self._compensation_timeout = compensation_timeout
        self._lock = asyncio.Lock()
        self._entered: contextvars.ContextVar[bool] = contextvars.ContextVar(
            f"engine_guard_{id(self)}", default=False
        )

    @property
    def in_flight(self) -> bool:
        return self._lock.locked()

    @asynccontextmanager
    async def transaction(self, operation: str) -> AsyncIterator[Transaction]:
        if self._entered.get():
            raise ReentrancyError(operation)

        async with self._lock:
            token = self._entered.set(True)
            self._working.take_touched()
            tx = Transaction(operation, timeout=self._compensation_timeout)
            try:
                yield tx
            except BaseException as e:
                logger.warning("%s rolled back: %s", operation, e)
                self._working.copy_accounts(
                    self._committed, self._working.take_touched()
                )
                await tx.compensate()
                raise
            else:
                self._committed.copy_accounts(
                    self._working, self._working.take_touched()
                )
            finally:
                self._entered.reset(token)

        self._on_commit(tx.events)
