"""Pytest configuration and fixtures."""

import pytest

from stablepool.fees import FeeConfig
from stablepool.tokens import ManualClock
from tests.helpers import (
    ALICE,
    E18,
    MINT_FEE_0_1_PCT,
    REDEEM_FEE_0_5_PCT,
    START_TIME,
    SWAP_FEE_0_2_PCT,
    PoolHarness,
    make_pool,
    seed,
)


@pytest.fixture
def clock() -> ManualClock:
    """Manual clock at START_TIME."""
    return ManualClock(START_TIME)


@pytest.fixture
def fee_config() -> FeeConfig:
    """Mint 0.1%, swap 0.2%, redeem 0.5%."""
    return FeeConfig(
        mint_fee=MINT_FEE_0_1_PCT,
        swap_fee=SWAP_FEE_0_2_PCT,
        redeem_fee=REDEEM_FEE_0_5_PCT,
    )


@pytest.fixture
def empty_pool(clock: ManualClock) -> PoolHarness:
    """Two 18-decimal tokens, A=100, no fees, no liquidity."""
    return make_pool(a=100, clock=clock)


@pytest.fixture
def seeded_pool(clock: ManualClock) -> PoolHarness:
    """Two 18-decimal tokens, A=100, no fees, 100e18 of each minted by ALICE."""
    harness = make_pool(a=100, clock=clock)
    seed(harness, ALICE, [100 * E18, 100 * E18])
    return harness


@pytest.fixture
def fee_pool(clock: ManualClock, fee_config: FeeConfig) -> PoolHarness:
    """Fee-charging pool seeded with an unequal 105e18 / 85e18 mint."""
    harness = make_pool(a=100, clock=clock, fee_config=fee_config)
    seed(harness, ALICE, [105 * E18, 85 * E18])
    return harness
