"""Invariant math for StableSwap pools."""

from .stable_math import compute_balance_for, compute_d

__all__ = [
    "compute_d",
    "compute_balance_for",
]
