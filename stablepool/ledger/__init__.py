"""Rebasing share accounting for the pool's receipt token."""

from .share_ledger import LedgerSnapshot, LedgerState, ShareLedger

__all__ = [
    "ShareLedger",
    "LedgerState",
    "LedgerSnapshot",
]
