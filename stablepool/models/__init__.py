"""Event records and shared HTTP types.

The request/response models live in stablepool.models.api.
"""

from stablepool.models.events import (
    AModified,
    Approval,
    BadDebtRecorded,
    BadDebtRepaid,
    BufferDecreased,
    BufferIncreased,
    Donated,
    Event,
    FeeCollected,
    FeeModified,
    LossDistributed,
    Minted,
    Paused,
    RampInitiated,
    RampStopped,
    Redeemed,
    RewardsMinted,
    SharesBurnt,
    SharesMinted,
    SupplyRemoved,
    TokenSwapped,
    TransferShares,
    Unpaused,
    YieldCollected,
)
from stablepool.models.types import PoolId, Uint256

__all__ = [
    # Types
    "PoolId",
    "Uint256",
    # Pool events
    "Event",
    "Minted",
    "TokenSwapped",
    "Redeemed",
    "Donated",
    "FeeCollected",
    "YieldCollected",
    "LossDistributed",
    "AModified",
    "FeeModified",
    "Paused",
    "Unpaused",
    # Ramp events
    "RampInitiated",
    "RampStopped",
    # Ledger events
    "SharesMinted",
    "SharesBurnt",
    "TransferShares",
    "Approval",
    "RewardsMinted",
    "BufferIncreased",
    "BufferDecreased",
    "BadDebtRecorded",
    "BadDebtRepaid",
    "SupplyRemoved",
]
