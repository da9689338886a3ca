"""Audit-trail events emitted by pools, ledgers and ramp controllers.

Events are immutable records of the economic deltas of one state change.
They are appended to the emitter's `events` list in emission order and
mirrored to the structured log. Given the same inputs and clock, the
sequence is reproducible exactly.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


@dataclass(frozen=True)
class Event:
    """Base class for all events."""

    @property
    def name(self) -> str:
        return type(self).__name__

    @property
    def log_key(self) -> str:
        """Snake-case name used as the structured log event."""
        return _CAMEL_BOUNDARY.sub("_", self.name).lower()

    def as_dict(self) -> dict[str, object]:
        return asdict(self)


# =============================================================================
# Pool events
# =============================================================================


@dataclass(frozen=True)
class Minted(Event):
    provider: str
    mint_amount: int
    amounts: tuple[int, ...]
    fee_amount: int


@dataclass(frozen=True)
class TokenSwapped(Event):
    buyer: str
    swap_amount: int
    amounts: tuple[int, ...]
    fee_amount: int


@dataclass(frozen=True)
class Redeemed(Event):
    redeemer: str
    amount: int
    amounts: tuple[int, ...]
    fee_amount: int


@dataclass(frozen=True)
class Donated(Event):
    donor: str
    amount: int
    amounts: tuple[int, ...]


@dataclass(frozen=True)
class FeeCollected(Event):
    fee_amount: int
    total_supply: int


@dataclass(frozen=True)
class YieldCollected(Event):
    amount: int
    total_supply: int


@dataclass(frozen=True)
class LossDistributed(Event):
    amount: int
    total_supply: int


@dataclass(frozen=True)
class AModified(Event):
    old_a: int
    new_a: int
    old_d: int
    new_d: int


@dataclass(frozen=True)
class FeeModified(Event):
    parameter: str
    value: int


@dataclass(frozen=True)
class Paused(Event):
    pass


@dataclass(frozen=True)
class Unpaused(Event):
    pass


# =============================================================================
# Ramp events
# =============================================================================


@dataclass(frozen=True)
class RampInitiated(Event):
    initial_a: int
    future_a: int
    initial_time: int
    future_time: int


@dataclass(frozen=True)
class RampStopped(Event):
    current_a: int
    time: int


# =============================================================================
# Ledger events
# =============================================================================


@dataclass(frozen=True)
class SharesMinted(Event):
    account: str
    peg_amount: int
    shares: int


@dataclass(frozen=True)
class SharesBurnt(Event):
    account: str
    peg_amount: int
    shares: int


@dataclass(frozen=True)
class TransferShares(Event):
    sender: str
    recipient: str
    shares: int


@dataclass(frozen=True)
class Approval(Event):
    owner: str
    spender: str
    amount: int


@dataclass(frozen=True)
class RewardsMinted(Event):
    amount: int
    distributed: int
    buffered: int
    total_supply: int


@dataclass(frozen=True)
class BufferIncreased(Event):
    amount: int
    buffer: int


@dataclass(frozen=True)
class BufferDecreased(Event):
    amount: int
    buffer: int


@dataclass(frozen=True)
class BadDebtRecorded(Event):
    amount: int
    bad_debt: int


@dataclass(frozen=True)
class BadDebtRepaid(Event):
    amount: int
    bad_debt: int


@dataclass(frozen=True)
class SupplyRemoved(Event):
    amount: int
    total_supply: int
