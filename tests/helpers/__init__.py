"""Test helpers module for shared test utilities.

This module consolidates common test utilities to reduce duplication:
- constants: Accounts, fee rates and common amounts
- factories: Pool construction and funding helpers
"""

from tests.helpers.constants import (
    ALICE,
    BOB,
    CAROL,
    E18,
    MINT_FEE_0_1_PCT,
    POOL_ADDRESS,
    REDEEM_FEE_0_5_PCT,
    START_TIME,
    SWAP_FEE_0_2_PCT,
)
from tests.helpers.factories import PoolHarness, accounting_gap, fund, make_pool, seed

__all__ = [
    # Constants
    "ALICE",
    "BOB",
    "CAROL",
    "E18",
    "POOL_ADDRESS",
    "MINT_FEE_0_1_PCT",
    "SWAP_FEE_0_2_PCT",
    "REDEEM_FEE_0_5_PCT",
    "START_TIME",
    # Factories
    "PoolHarness",
    "make_pool",
    "fund",
    "seed",
    "accounting_gap",
]
