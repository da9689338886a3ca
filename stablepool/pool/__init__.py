"""StableSwap pool orchestrator."""

from stablepool.pool.guard import nonreentrant
from stablepool.pool.pool import PoolSnapshot, PoolState, StableSwapPool
from stablepool.pool.results import (
    DonationQuote,
    MintQuote,
    RedeemMultiQuote,
    RedeemProportionQuote,
    RedeemSingleQuote,
    SwapQuote,
)

__all__ = [
    "StableSwapPool",
    "PoolState",
    "PoolSnapshot",
    "nonreentrant",
    # Quotes
    "MintQuote",
    "SwapQuote",
    "RedeemProportionQuote",
    "RedeemSingleQuote",
    "RedeemMultiQuote",
    "DonationQuote",
]
