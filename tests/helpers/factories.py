"""Factory functions for creating test pools.

Usage:
    from tests.helpers import make_pool, fund

    harness = make_pool(a=100)
    fund(harness, ALICE, [100 * E18, 100 * E18])
    harness.pool.mint([100 * E18, 100 * E18], 0, sender=ALICE)
"""

from dataclasses import dataclass

from stablepool.fees import DEFAULT_FEE_CONFIG, FeeConfig
from stablepool.ledger import ShareLedger
from stablepool.pool import StableSwapPool
from stablepool.ramp import RampController
from stablepool.tokens import InMemoryToken, ManualClock, MutableExchangeRate
from tests.helpers.constants import POOL_ADDRESS, START_TIME


@dataclass
class PoolHarness:
    """A pool with the in-memory collaborators it was built from."""

    pool: StableSwapPool
    ledger: ShareLedger
    tokens: list[InMemoryToken]
    rates: list[MutableExchangeRate]
    clock: ManualClock
    ramp: RampController | None = None


def make_pool(
    a: int = 100,
    n_coins: int = 2,
    decimals: list[int] | None = None,
    fee_config: FeeConfig = DEFAULT_FEE_CONFIG,
    buffer_percent: int = 0,
    clock: ManualClock | None = None,
    with_ramp: bool = False,
    ledger: ShareLedger | None = None,
    address: str = POOL_ADDRESS,
) -> PoolHarness:
    """Create a pool with in-memory tokens at a 1:1 exchange rate.

    Args:
        a: Amplification coefficient
        n_coins: Number of tokens
        decimals: Native decimals per token (default: 18 for all)
        fee_config: Pool fee configuration
        buffer_percent: Ledger buffer share of accrued yield
        clock: Shared clock (default: a ManualClock at START_TIME)
        with_ramp: Attach a RampController starting at `a`
        ledger: Existing ledger to share (default: a fresh one)
        address: Pool address

    Returns:
        PoolHarness with the pool authorised on its ledger
    """
    clock = clock if clock is not None else ManualClock(START_TIME)
    decimals = decimals if decimals is not None else [18] * n_coins
    tokens = [
        InMemoryToken(f"token{i}", symbol=f"TK{i}", decimals=d) for i, d in enumerate(decimals)
    ]
    rates = [MutableExchangeRate() for _ in tokens]
    if ledger is None:
        ledger = ShareLedger("Test LP", "tLP", buffer_percent)
    ledger.add_pool(address)
    ramp = RampController(a, clock) if with_ramp else None
    pool = StableSwapPool(
        address=address,
        tokens=tokens,
        rate_providers=rates,
        ledger=ledger,
        a=a,
        clock=clock,
        fee_config=fee_config,
        ramp_controller=ramp,
    )
    return PoolHarness(pool=pool, ledger=ledger, tokens=tokens, rates=rates, clock=clock, ramp=ramp)


def fund(harness: PoolHarness, account: str, amounts: list[int]) -> None:
    """Mint tokens to account and approve the pool to pull them."""
    for token, amount in zip(harness.tokens, amounts):
        token.mint(account, amount)
        token.approve(account, harness.pool.address, token.allowance(account, harness.pool.address) + amount)


def seed(harness: PoolHarness, account: str, amounts: list[int]) -> int:
    """Fund account and mint into the pool. Returns the minted amount."""
    fund(harness, account, amounts)
    return harness.pool.mint(amounts, 0, sender=account)


def accounting_gap(harness: PoolHarness) -> int:
    """pool.total_supply - (ledger supply + buffer - bad debt); 0 when in sync."""
    ledger = harness.ledger
    return harness.pool.total_supply - (
        ledger.total_supply + ledger.buffer_amount - ledger.buffer_bad_debt
    )
