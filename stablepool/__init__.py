"""StableSwap pool engine - Python implementation."""

from stablepool.ledger import ShareLedger
from stablepool.pool import StableSwapPool
from stablepool.ramp import RampController

__version__ = "0.1.0"
__all__ = ["StableSwapPool", "ShareLedger", "RampController", "__version__"]
