"""Fee configuration for a pool."""

from dataclasses import dataclass, replace

from stablepool.constants import FEE_DENOMINATOR
from stablepool.errors import InvalidFeeConfig


@dataclass(frozen=True)
class FeeConfig:
    """Fee rates and volatility-fee tuning for one pool.

    All rates are parts of FEE_DENOMINATOR (10^10 == 100%).

    Attributes:
        mint_fee: Base fee charged on imbalanced mint contributions
        swap_fee: Base fee charged on swap output
        redeem_fee: Base fee charged on redemptions
        off_peg_fee_multiplier: Convexity multiplier for the off-peg fee.
            Values <= FEE_DENOMINATOR disable the off-peg fee.
        exchange_rate_fee_factor: Scales a relative exchange-rate jump into a
            volatility multiplier. 0 disables the volatility fee.
        decay_period: Seconds for a raised multiplier to decay to baseline
        rate_change_skip_period: Inactivity (seconds) after which a rate
            change is not treated as a jump
        fee_error_margin: After an operation, a shortfall of live D against
            the recorded supply up to this many units is rounding noise
        yield_error_margin: Before an operation and on rebase, gains and
            losses up to this many units are left uncollected
    """

    mint_fee: int = 0
    swap_fee: int = 0
    redeem_fee: int = 0
    off_peg_fee_multiplier: int = FEE_DENOMINATOR
    exchange_rate_fee_factor: int = 0
    decay_period: int = 300
    rate_change_skip_period: int = 86_400
    fee_error_margin: int = 100
    yield_error_margin: int = 100

    def __post_init__(self) -> None:
        for name in ("mint_fee", "swap_fee", "redeem_fee"):
            value = getattr(self, name)
            if not 0 <= value < FEE_DENOMINATOR:
                raise InvalidFeeConfig(f"{name} must be in [0, {FEE_DENOMINATOR}), got {value}")
        for name in (
            "off_peg_fee_multiplier",
            "exchange_rate_fee_factor",
            "decay_period",
            "rate_change_skip_period",
            "fee_error_margin",
            "yield_error_margin",
        ):
            value = getattr(self, name)
            if value < 0:
                raise InvalidFeeConfig(f"{name} must be non-negative, got {value}")

    def with_changes(self, **changes: int) -> "FeeConfig":
        """Return a validated copy with some fields replaced."""
        return replace(self, **changes)


# Default configuration instance
DEFAULT_FEE_CONFIG = FeeConfig()
