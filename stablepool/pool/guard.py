"""Reentrancy guard and all-or-nothing execution for pool entry points."""

from __future__ import annotations

import functools
from collections.abc import Callable
from typing import Any, Protocol, TypeVar

import structlog

from stablepool.errors import ReentrancyError

logger = structlog.get_logger()

F = TypeVar("F", bound=Callable[..., Any])


class Transactional(Protocol):
    """Object whose state and token movements can be rolled back."""

    @property
    def locked(self) -> bool: ...

    def _enter(self) -> None: ...

    def _exit(self) -> None: ...

    def snapshot(self) -> Any: ...

    def restore(self, snapshot: Any) -> None: ...

    def _unwind_transfers(self) -> None: ...


def nonreentrant(method: F) -> F:
    """Wrap a mutating method in a reentrancy lock and a rollback scope.

    The lock is held on the shared ledger, so a call made while any pool of
    that ledger is inside a wrapped call fails immediately with
    ReentrancyError. Any exception escaping the wrapped call restores the
    state captured on entry and reverses the token transfers the call
    completed before propagating.
    """

    @functools.wraps(method)
    def wrapper(self: Transactional, *args: Any, **kwargs: Any) -> Any:
        if self.locked:
            raise ReentrancyError(f"Reentrant call to {method.__name__}")
        self._enter()
        snapshot = self.snapshot()
        try:
            return method(self, *args, **kwargs)
        except Exception as err:
            self.restore(snapshot)
            self._unwind_transfers()
            logger.info(
                "pool_call_reverted",
                operation=method.__name__,
                error=type(err).__name__,
                detail=str(err),
            )
            raise
        finally:
            self._exit()

    return wrapper  # type: ignore[return-value]
