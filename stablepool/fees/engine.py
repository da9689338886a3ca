"""Fee formulas and the per-token volatility multiplier.

Three fee components are combined additively per operation:
- static fee: a flat share of the amount (proportional redeem)
- off-peg fee: the base fee scaled up as the two balances involved diverge
- volatility fee: the base fee scaled by how far a token's decayed
  multiplier sits above FEE_DENOMINATOR after a recent exchange-rate jump
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from stablepool.constants import FEE_DENOMINATOR
from stablepool.fees.config import FeeConfig

logger = structlog.get_logger()


@dataclass
class TokenFeeStatus:
    """Volatility-fee state for one pool token.

    Attributes:
        last_rate: Last observed exchange rate (0 until first observed)
        multiplier: Multiplier set at raised_at, >= FEE_DENOMINATOR. The
            effective value decays from here, see decayed_multiplier().
        raised_at: Timestamp the multiplier was last raised
    """

    last_rate: int = 0
    multiplier: int = FEE_DENOMINATOR
    raised_at: int = 0


def static_fee(amount: int, rate: int) -> int:
    """Flat fee on amount, rounded down."""
    return amount * rate // FEE_DENOMINATOR


def dynamic_fee(xpi: int, xpj: int, base_fee: int, off_peg_fee_multiplier: int) -> int:
    """Off-peg fee rate for an operation touching balances xpi and xpj.

    Equals base_fee for a balanced pair and grows towards
    off_peg_fee_multiplier * base_fee / FEE_DENOMINATOR as the pair diverges.
    Symmetric in (xpi, xpj).
    """
    if off_peg_fee_multiplier <= FEE_DENOMINATOR:
        return base_fee
    xps2 = (xpi + xpj) ** 2
    if xps2 == 0:
        return base_fee
    return (off_peg_fee_multiplier * base_fee) // (
        (off_peg_fee_multiplier - FEE_DENOMINATOR) * 4 * xpi * xpj // xps2 + FEE_DENOMINATOR
    )


def volatility_fee(base_fee: int, multiplier: int) -> int:
    """Surcharge rate added on top of the off-peg fee."""
    if multiplier <= FEE_DENOMINATOR:
        return 0
    return base_fee * (multiplier - FEE_DENOMINATOR) // FEE_DENOMINATOR


def decayed_multiplier(status: TokenFeeStatus, now: int, decay_period: int) -> int:
    """Current multiplier: the excess decays linearly to 0 over decay_period."""
    excess = status.multiplier - FEE_DENOMINATOR
    if excess <= 0:
        return FEE_DENOMINATOR
    elapsed = max(now - status.raised_at, 0)
    if decay_period == 0 or elapsed >= decay_period:
        return FEE_DENOMINATOR
    return FEE_DENOMINATOR + excess * (decay_period - elapsed) // decay_period


def rate_change_multiplier(last_rate: int, new_rate: int, exchange_rate_fee_factor: int) -> int:
    """Candidate multiplier for a jump from last_rate to new_rate."""
    if last_rate == 0:
        return FEE_DENOMINATOR
    relative_change = abs(new_rate - last_rate) * FEE_DENOMINATOR // last_rate
    return FEE_DENOMINATOR + relative_change * exchange_rate_fee_factor // FEE_DENOMINATOR


def update_multiplier(
    status: TokenFeeStatus,
    new_rate: int,
    now: int,
    last_activity: int,
    config: FeeConfig,
) -> TokenFeeStatus:
    """Refresh a token's fee status against its current exchange rate.

    The multiplier is raised when the rate jump since the last observation
    maps to a larger multiplier than the currently decayed one. A pool that
    has been inactive longer than rate_change_skip_period resets to baseline
    instead, as does one whose decay period has fully elapsed.

    Args:
        status: Status to update in place
        new_rate: Exchange rate reported now
        now: Current timestamp
        last_activity: Timestamp of the pool's last economic operation
        config: Pool fee configuration

    Returns:
        The updated status (same object)
    """
    if status.last_rate == 0:
        status.last_rate = new_rate
        return status

    current = decayed_multiplier(status, now, config.decay_period)
    if now - last_activity > config.rate_change_skip_period or current == FEE_DENOMINATOR:
        status.multiplier = FEE_DENOMINATOR

    if now - last_activity <= config.rate_change_skip_period:
        candidate = rate_change_multiplier(
            status.last_rate, new_rate, config.exchange_rate_fee_factor
        )
        if candidate > current:
            logger.info(
                "volatility_multiplier_raised",
                last_rate=status.last_rate,
                new_rate=new_rate,
                multiplier=candidate,
                previous=current,
            )
            status.multiplier = candidate
            status.raised_at = now

    status.last_rate = new_rate
    return status


def worst_multiplier(statuses: list[TokenFeeStatus], now: int, decay_period: int) -> int:
    """Largest decayed multiplier among the touched tokens."""
    return max(
        (decayed_multiplier(s, now, decay_period) for s in statuses),
        default=FEE_DENOMINATOR,
    )
