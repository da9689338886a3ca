"""Rebasing share ledger backing a pool's receipt token.

Holders own shares; their pegged balance is

    balance_of(account) = shares[account] * total_supply // total_shares

Yield and fees raise total_supply without minting shares, which rebases every
holder's balance at once. Part of each accrual can be held back in a buffer
that later absorbs losses. Losses larger than the buffer are either recorded
as bad debt (repaid first out of future accruals) or rejected.

Only authorised pools may mint, burn or move supply. One ledger may back
several pools, each added to the allow-list explicitly.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field

import structlog

from stablepool.constants import BUFFER_DENOMINATOR, DEAD_ADDRESS, NUMBER_OF_DEAD_SHARES
from stablepool.errors import (
    InsufficientAllowance,
    InsufficientBuffer,
    InsufficientShares,
    InsufficientSupply,
    InvalidBufferPercent,
    LedgerZeroAmount,
    UnauthorizedCaller,
)
from stablepool.models.events import (
    Approval,
    BadDebtRecorded,
    BadDebtRepaid,
    BufferDecreased,
    BufferIncreased,
    Event,
    RewardsMinted,
    SharesBurnt,
    SharesMinted,
    SupplyRemoved,
    TransferShares,
)
from stablepool.safe_int import S

logger = structlog.get_logger()


@dataclass
class LedgerState:
    """Mutable accounting state of a ShareLedger."""

    shares: dict[str, int] = field(default_factory=dict)
    allowances: dict[tuple[str, str], int] = field(default_factory=dict)
    total_shares: int = 0
    total_supply: int = 0
    total_rewards: int = 0
    buffer_amount: int = 0
    buffer_bad_debt: int = 0
    buffer_percent: int = 0


@dataclass(frozen=True)
class LedgerSnapshot:
    state: LedgerState
    event_count: int


class ShareLedger:
    """Receipt token with rebasing balances.

    Attributes:
        name: Token name
        symbol: Token symbol
        decimals: Always 18 (the pool's common unit)
        pools: Addresses allowed to call the supply-changing entry points
        events: Emitted events, oldest first
    """

    decimals = 18

    def __init__(self, name: str, symbol: str, buffer_percent: int = 0) -> None:
        if not 0 <= buffer_percent <= BUFFER_DENOMINATOR:
            raise InvalidBufferPercent(f"buffer_percent out of range: {buffer_percent}")
        self.name = name
        self.symbol = symbol
        self.state = LedgerState(buffer_percent=buffer_percent)
        self.pools: set[str] = set()
        self.events: list[Event] = []
        # Pool whose guarded call is running; locks out every pool of this ledger
        self.active_pool: str | None = None

    # --- Read-only views ---

    @property
    def total_supply(self) -> int:
        return self.state.total_supply

    @property
    def total_shares(self) -> int:
        return self.state.total_shares

    @property
    def total_rewards(self) -> int:
        return self.state.total_rewards

    @property
    def buffer_amount(self) -> int:
        return self.state.buffer_amount

    @property
    def buffer_bad_debt(self) -> int:
        return self.state.buffer_bad_debt

    @property
    def buffer_percent(self) -> int:
        return self.state.buffer_percent

    def shares_of(self, account: str) -> int:
        return self.state.shares.get(account, 0)

    def balance_of(self, account: str) -> int:
        return self.get_peg_amount_by_shares(self.shares_of(account))

    def allowance(self, owner: str, spender: str) -> int:
        return self.state.allowances.get((owner, spender), 0)

    def get_shares_by_peg_amount(self, peg_amount: int) -> int:
        """Shares worth peg_amount, rounded down. 0 when total_supply is 0."""
        if self.state.total_supply == 0:
            return 0
        return peg_amount * self.state.total_shares // self.state.total_supply

    def get_peg_amount_by_shares(self, shares: int) -> int:
        """Pegged value of shares, rounded down. 0 when no shares exist."""
        if self.state.total_shares == 0:
            return 0
        return shares * self.state.total_supply // self.state.total_shares

    # --- Governance ---

    def add_pool(self, pool: str) -> None:
        self.pools.add(pool)
        logger.info("ledger_pool_added", ledger=self.symbol, pool=pool)

    def remove_pool(self, pool: str) -> None:
        self.pools.discard(pool)
        logger.info("ledger_pool_removed", ledger=self.symbol, pool=pool)

    def set_buffer_percent(self, buffer_percent: int) -> None:
        if not 0 <= buffer_percent <= BUFFER_DENOMINATOR:
            raise InvalidBufferPercent(f"buffer_percent out of range: {buffer_percent}")
        self.state.buffer_percent = buffer_percent

    # --- Holder operations ---

    def approve(self, owner: str, spender: str, amount: int) -> None:
        self.state.allowances[(owner, spender)] = amount
        self._emit(Approval(owner=owner, spender=spender, amount=amount))

    def increase_allowance(self, owner: str, spender: str, added: int) -> None:
        self.approve(owner, spender, self.allowance(owner, spender) + added)

    def decrease_allowance(self, owner: str, spender: str, subtracted: int) -> None:
        current = self.allowance(owner, spender)
        if subtracted > current:
            raise InsufficientAllowance(f"Allowance {current} is below {subtracted}")
        self.approve(owner, spender, current - subtracted)

    def transfer(self, sender: str, recipient: str, amount: int) -> int:
        """Move a pegged amount. Returns the number of shares moved."""
        shares = self.get_shares_by_peg_amount(amount)
        self._transfer_shares(sender, recipient, shares)
        return shares

    def transfer_shares(self, sender: str, recipient: str, shares: int) -> int:
        """Move shares. Returns their pegged value."""
        self._transfer_shares(sender, recipient, shares)
        return self.get_peg_amount_by_shares(shares)

    def transfer_from(self, spender: str, owner: str, recipient: str, amount: int) -> int:
        allowed = self.allowance(owner, spender)
        if amount > allowed:
            raise InsufficientAllowance(f"{spender} may move {allowed} of {owner}, needs {amount}")
        shares = self.get_shares_by_peg_amount(amount)
        self._transfer_shares(owner, recipient, shares)
        self.state.allowances[(owner, spender)] = allowed - amount
        return shares

    def burn_shares(self, account: str, shares: int) -> None:
        """Destroy shares without touching total_supply.

        The burnt value is spread over the remaining holders.
        """
        if shares == 0:
            raise LedgerZeroAmount("Cannot burn zero shares")
        peg_amount = self.get_peg_amount_by_shares(shares)
        self._burn(account, shares)
        self._emit(SharesBurnt(account=account, peg_amount=peg_amount, shares=shares))

    # --- Pool-only operations ---

    def mint_shares(self, recipient: str, peg_amount: int, *, caller: str) -> int:
        """Mint shares worth peg_amount to recipient.

        On the very first mint NUMBER_OF_DEAD_SHARES of them go to
        DEAD_ADDRESS so the ledger can never be fully drained and re-priced.

        Returns:
            Shares credited to recipient
        """
        self._require_pool(caller)
        if peg_amount == 0:
            raise LedgerZeroAmount("Cannot mint zero")

        if self.state.total_shares == 0:
            if peg_amount <= NUMBER_OF_DEAD_SHARES:
                raise LedgerZeroAmount(
                    f"First mint must exceed {NUMBER_OF_DEAD_SHARES}, got {peg_amount}"
                )
            self._mint(DEAD_ADDRESS, NUMBER_OF_DEAD_SHARES)
            shares = peg_amount - NUMBER_OF_DEAD_SHARES
        else:
            shares = self.get_shares_by_peg_amount(peg_amount)
        self._mint(recipient, shares)
        self.state.total_supply += peg_amount

        self._emit(SharesMinted(account=recipient, peg_amount=peg_amount, shares=shares))
        return shares

    def burn_shares_from(self, owner: str, peg_amount: int, *, caller: str) -> int:
        """Burn shares worth peg_amount from owner, rounding shares up.

        Returns:
            Shares burnt

        Raises:
            InsufficientShares: If owner holds fewer shares than required
        """
        self._require_pool(caller)
        if peg_amount == 0:
            raise LedgerZeroAmount("Cannot burn zero")
        if self.state.total_supply == 0:
            raise InsufficientShares("Ledger has no supply")

        shares = (S(peg_amount) * self.state.total_shares).ceiling_div(self.state.total_supply).value
        if shares > self.shares_of(owner):
            raise InsufficientShares(f"{owner} holds {self.shares_of(owner)} shares, needs {shares}")
        self._burn(owner, shares)
        self.state.total_supply -= peg_amount

        self._emit(SharesBurnt(account=owner, peg_amount=peg_amount, shares=shares))
        return shares

    def add_total_supply(self, amount: int, *, caller: str) -> None:
        """Accrue fee or yield.

        Outstanding bad debt is repaid first. The rest is split: the
        buffer_percent portion is reserved in the buffer, the remainder is
        distributed to holders by raising total_supply.
        """
        self._require_pool(caller)
        if amount == 0:
            raise LedgerZeroAmount("Cannot add zero supply")

        amount = self._repay_bad_debt(amount)
        if amount == 0:
            return
        buffered = amount * self.state.buffer_percent // BUFFER_DENOMINATOR
        distributed = amount - buffered
        self.state.buffer_amount += buffered
        self.state.total_supply += distributed
        self.state.total_rewards += distributed

        self._emit(
            RewardsMinted(
                amount=amount,
                distributed=distributed,
                buffered=buffered,
                total_supply=self.state.total_supply,
            )
        )

    def remove_total_supply(
        self,
        amount: int,
        from_buffer: bool = True,
        allow_bad_debt: bool = False,
        *,
        caller: str,
    ) -> None:
        """Absorb a loss.

        With from_buffer, the loss is drawn from the buffer. A shortfall is
        recorded as bad debt when allow_bad_debt is set and rejected
        otherwise. Without from_buffer the loss is socialised by lowering
        total_supply directly.

        Raises:
            InsufficientBuffer: Buffer too small and bad debt not allowed
            InsufficientSupply: Socialised loss larger than total_supply
        """
        self._require_pool(caller)
        if amount == 0:
            raise LedgerZeroAmount("Cannot remove zero supply")

        if not from_buffer:
            if amount > self.state.total_supply:
                raise InsufficientSupply(f"Loss {amount} exceeds supply {self.state.total_supply}")
            self.state.total_supply -= amount
            self._emit(SupplyRemoved(amount=amount, total_supply=self.state.total_supply))
            return

        buffer = self.state.buffer_amount
        if amount > buffer and not allow_bad_debt:
            raise InsufficientBuffer(f"Loss {amount} exceeds buffer {buffer}")

        drawn = min(amount, buffer)
        if drawn > 0:
            self.state.buffer_amount -= drawn
            self._emit(BufferDecreased(amount=drawn, buffer=self.state.buffer_amount))
        if amount > drawn:
            self.state.buffer_bad_debt += amount - drawn
            self._emit(BadDebtRecorded(amount=amount - drawn, bad_debt=self.state.buffer_bad_debt))

    def add_buffer(self, amount: int, *, caller: str) -> None:
        """Reserve value in the buffer without distributing it."""
        self._require_pool(caller)
        if amount == 0:
            raise LedgerZeroAmount("Cannot add zero buffer")

        amount = self._repay_bad_debt(amount)
        if amount == 0:
            return
        self.state.buffer_amount += amount
        self._emit(BufferIncreased(amount=amount, buffer=self.state.buffer_amount))

    # --- Transactions ---

    def snapshot(self) -> LedgerSnapshot:
        return LedgerSnapshot(state=copy.deepcopy(self.state), event_count=len(self.events))

    def restore(self, snapshot: LedgerSnapshot) -> None:
        self.state = copy.deepcopy(snapshot.state)
        del self.events[snapshot.event_count :]

    # --- Internals ---

    def _require_pool(self, caller: str) -> None:
        if caller not in self.pools:
            raise UnauthorizedCaller(f"{caller} is not a pool of {self.symbol}")

    def _repay_bad_debt(self, amount: int) -> int:
        repaid = min(amount, self.state.buffer_bad_debt)
        if repaid == 0:
            return amount
        self.state.buffer_bad_debt -= repaid
        self._emit(BadDebtRepaid(amount=repaid, bad_debt=self.state.buffer_bad_debt))
        return amount - repaid

    def _mint(self, account: str, shares: int) -> None:
        self.state.shares[account] = self.shares_of(account) + shares
        self.state.total_shares += shares

    def _burn(self, account: str, shares: int) -> None:
        balance = self.shares_of(account)
        if shares > balance:
            raise InsufficientShares(f"{account} holds {balance} shares, needs {shares}")
        self.state.shares[account] = balance - shares
        self.state.total_shares -= shares

    def _transfer_shares(self, sender: str, recipient: str, shares: int) -> None:
        balance = self.shares_of(sender)
        if shares > balance:
            raise InsufficientShares(f"{sender} holds {balance} shares, needs {shares}")
        self.state.shares[sender] = balance - shares
        self.state.shares[recipient] = self.shares_of(recipient) + shares
        self._emit(TransferShares(sender=sender, recipient=recipient, shares=shares))

    def _emit(self, event: Event) -> None:
        self.events.append(event)
        logger.debug(event.log_key, ledger=self.symbol, **event.as_dict())
