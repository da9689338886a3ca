"""Computed outcomes of pool operations.

Each operation is first computed into one of these records, checked against
the caller's bounds, and only then applied. The read-only quote methods
return the same records.

Amounts named `amount_out`/`amounts` are in native token units; everything
else is in the pool's converted 18-decimal unit.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class MintQuote:
    mint_amount: int
    fee_amount: int
    balances: tuple[int, ...]
    new_d: int


@dataclass(frozen=True)
class SwapQuote:
    amount_out: int
    fee_amount: int
    balances: tuple[int, ...]
    dy: int


@dataclass(frozen=True)
class RedeemProportionQuote:
    amounts: tuple[int, ...]
    fee_amount: int
    balances: tuple[int, ...]
    new_d: int


@dataclass(frozen=True)
class RedeemSingleQuote:
    amount_out: int
    fee_amount: int
    balances: tuple[int, ...]
    new_d: int


@dataclass(frozen=True)
class RedeemMultiQuote:
    redeem_amount: int
    fee_amount: int
    balances: tuple[int, ...]
    new_d: int


@dataclass(frozen=True)
class DonationQuote:
    donation: int
    balances: tuple[int, ...]
    new_d: int
