"""Fee configuration and fee formulas."""

from stablepool.fees.config import DEFAULT_FEE_CONFIG, FeeConfig
from stablepool.fees.engine import (
    TokenFeeStatus,
    decayed_multiplier,
    dynamic_fee,
    rate_change_multiplier,
    static_fee,
    update_multiplier,
    volatility_fee,
    worst_multiplier,
)

__all__ = [
    "FeeConfig",
    "DEFAULT_FEE_CONFIG",
    "TokenFeeStatus",
    "static_fee",
    "dynamic_fee",
    "volatility_fee",
    "decayed_multiplier",
    "rate_change_multiplier",
    "update_multiplier",
    "worst_multiplier",
]
