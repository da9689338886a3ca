"""External collaborators of a pool and in-memory implementations.

A pool only talks to the outside world through three small interfaces:
- Token: a fungible token ledger (transfer, transfer_from, balance_of, approve,
  allowance)
- ExchangeRateProvider: rate() / rate_decimals() for converting native
  amounts to the pool's common 18-decimal unit
- RampAuthority: an external source for the current amplification A

The in-memory classes below are what the simulator host and the tests plug in.
"""

from __future__ import annotations

import contextlib
from collections.abc import Callable, Iterator
from typing import Protocol, runtime_checkable

from stablepool.errors import InsufficientBalance, InsufficientTokenAllowance, ZeroAmount

Clock = Callable[[], int]


@runtime_checkable
class Token(Protocol):
    """Fungible token interface consumed by the pool."""

    address: str
    decimals: int

    def balance_of(self, account: str) -> int: ...

    def transfer(self, sender: str, recipient: str, amount: int) -> None: ...

    def transfer_from(self, spender: str, owner: str, recipient: str, amount: int) -> None: ...

    def approve(self, owner: str, spender: str, amount: int) -> None: ...

    def allowance(self, owner: str, spender: str) -> int: ...


@runtime_checkable
class ExchangeRateProvider(Protocol):
    """Exchange rate of a token against the pool's peg."""

    def rate(self) -> int: ...

    def rate_decimals(self) -> int: ...


@runtime_checkable
class RampAuthority(Protocol):
    """External controller of the amplification coefficient."""

    def get_current_a(self) -> int: ...


class ManualClock:
    """Clock advanced explicitly by the host."""

    def __init__(self, now: int = 0) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> int:
        self.now += seconds
        return self.now

    def set(self, timestamp: int) -> None:
        self.now = timestamp


class ConstantExchangeRate:
    """1:1 peg (rate 10^18 with 18 decimals) unless told otherwise."""

    def __init__(self, rate: int = 10**18, decimals: int = 18) -> None:
        self._rate = rate
        self._decimals = decimals

    def rate(self) -> int:
        return self._rate

    def rate_decimals(self) -> int:
        return self._decimals


class MutableExchangeRate(ConstantExchangeRate):
    """Exchange rate that can be moved, e.g. to simulate a yield-bearing token."""

    def set_rate(self, rate: int) -> None:
        self._rate = rate


class InMemoryToken:
    """Minimal ERC20-style token ledger.

    Attributes:
        address: Token address
        symbol: Display symbol
        decimals: Native decimals
        on_transfer: Optional hook called after every balance movement with
            (sender, recipient, amount). Used to simulate tokens that call
            back into the pool. A hook that raises reverts the transfer.
    """

    def __init__(
        self,
        address: str,
        symbol: str = "TKN",
        decimals: int = 18,
        on_transfer: Callable[[str, str, int], None] | None = None,
    ) -> None:
        self.address = address
        self.symbol = symbol
        self.decimals = decimals
        self.on_transfer = on_transfer
        self.total_supply = 0
        self._balances: dict[str, int] = {}
        self._allowances: dict[tuple[str, str], int] = {}

    def balance_of(self, account: str) -> int:
        return self._balances.get(account, 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((owner, spender), 0)

    def mint(self, account: str, amount: int) -> None:
        self._balances[account] = self.balance_of(account) + amount
        self.total_supply += amount

    def burn(self, account: str, amount: int) -> None:
        """Remove tokens from an account, e.g. to simulate a slashing loss."""
        if amount > self.balance_of(account):
            raise InsufficientBalance(f"{account} holds {self.balance_of(account)} < {amount}")
        self._balances[account] = self.balance_of(account) - amount
        self.total_supply -= amount

    def approve(self, owner: str, spender: str, amount: int) -> None:
        self._allowances[(owner, spender)] = amount

    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        with self._reverting():
            self._move(sender, recipient, amount)

    def transfer_from(self, spender: str, owner: str, recipient: str, amount: int) -> None:
        allowed = self.allowance(owner, spender)
        if amount > allowed:
            raise InsufficientTokenAllowance(
                f"{spender} may spend {allowed} of {owner}'s {self.symbol}, needs {amount}"
            )
        if amount > self.balance_of(owner):
            raise InsufficientBalance(f"{owner} holds {self.balance_of(owner)} {self.symbol} < {amount}")
        with self._reverting():
            self._allowances[(owner, spender)] = allowed - amount
            self._move(owner, recipient, amount)

    @contextlib.contextmanager
    def _reverting(self) -> Iterator[None]:
        balances, allowances = dict(self._balances), dict(self._allowances)
        try:
            yield
        except Exception:
            self._balances, self._allowances = balances, allowances
            raise

    def _move(self, sender: str, recipient: str, amount: int) -> None:
        if amount < 0:
            raise ZeroAmount(f"Negative transfer amount: {amount}")
        balance = self.balance_of(sender)
        if amount > balance:
            raise InsufficientBalance(f"{sender} holds {balance} {self.symbol} < {amount}")
        self._balances[sender] = balance - amount
        self._balances[recipient] = self.balance_of(recipient) + amount
        if self.on_transfer is not None:
            self.on_transfer(sender, recipient, amount)
