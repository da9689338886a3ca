"""Tests for pool swaps."""

import pytest

from stablepool.constants import FEE_DENOMINATOR as FD
from stablepool.errors import (
    InsufficientSwapOutAmount,
    InvalidTokenIndex,
    PoolEmpty,
    SameTokenSwap,
    ZeroAmount,
)
from stablepool.fees import FeeConfig
from stablepool.models import TokenSwapped
from tests.helpers import (
    ALICE,
    BOB,
    E18,
    SWAP_FEE_0_2_PCT,
    accounting_gap,
    fund,
    make_pool,
    seed,
)


class TestSwap:
    """Tests for fee-free swaps."""

    def test_swap_output_near_one_to_one(self, seeded_pool):
        """A balanced A=100 pool swaps close to 1:1, never above."""
        fund(seeded_pool, BOB, [10 * E18, 0])
        out = seeded_pool.pool.swap(0, 1, 10 * E18, 0, sender=BOB)
        assert 99 * E18 // 10 < out < 10 * E18

    def test_tokens_move(self, seeded_pool):
        """dx is pulled and dy is pushed."""
        fund(seeded_pool, BOB, [10 * E18, 0])
        out = seeded_pool.pool.swap(0, 1, 10 * E18, 0, sender=BOB)
        assert seeded_pool.tokens[0].balance_of(BOB) == 0
        assert seeded_pool.tokens[1].balance_of(BOB) == out
        assert seeded_pool.pool.get_balances()[0] == 110 * E18

    def test_d_does_not_decrease(self, seeded_pool):
        """Rounding always favours the pool."""
        fund(seeded_pool, BOB, [10 * E18, 0])
        seeded_pool.pool.swap(0, 1, 10 * E18, 0, sender=BOB)
        assert seeded_pool.pool.total_supply >= 200 * E18
        assert accounting_gap(seeded_pool) == 0

    def test_quote_matches_execution(self, seeded_pool):
        """get_swap_amount predicts swap exactly."""
        quote = seeded_pool.pool.get_swap_amount(1, 0, 5 * E18)
        fund(seeded_pool, BOB, [0, 5 * E18])
        assert seeded_pool.pool.swap(1, 0, 5 * E18, quote.amount_out, sender=BOB) == quote.amount_out

    def test_event(self, seeded_pool):
        """TokenSwapped records both legs."""
        fund(seeded_pool, BOB, [E18, 0])
        out = seeded_pool.pool.swap(0, 1, E18, 0, sender=BOB)
        swaps = [e for e in seeded_pool.pool.events if isinstance(e, TokenSwapped)]
        assert swaps == [TokenSwapped(buyer=BOB, swap_amount=E18, amounts=(E18, out), fee_amount=0)]

    def test_mixed_decimals(self):
        """Outputs are converted back to the output token's decimals."""
        into_18 = make_pool(decimals=[18, 6])
        seed(into_18, ALICE, [100 * E18, 100 * 10**6])
        fund(into_18, BOB, [0, 10**6])
        out_18 = into_18.pool.swap(1, 0, 10**6, 0, sender=BOB)
        assert 999 * E18 // 1000 < out_18 < E18

        into_6 = make_pool(decimals=[18, 6])
        seed(into_6, ALICE, [100 * E18, 100 * 10**6])
        fund(into_6, BOB, [E18, 0])
        out_6 = into_6.pool.swap(0, 1, E18, 0, sender=BOB)
        assert 999 * 10**3 < out_6 < 10**6


class TestSwapValidation:
    """Tests for rejected swaps."""

    def test_same_token(self, seeded_pool):
        """i and j must differ."""
        with pytest.raises(SameTokenSwap):
            seeded_pool.pool.swap(0, 0, E18, 0, sender=BOB)

    def test_index_out_of_range(self, seeded_pool):
        """Indices must address pool tokens."""
        with pytest.raises(InvalidTokenIndex):
            seeded_pool.pool.swap(0, 2, E18, 0, sender=BOB)

    def test_zero_amount(self, seeded_pool):
        """dx must be positive."""
        with pytest.raises(ZeroAmount):
            seeded_pool.pool.swap(0, 1, 0, 0, sender=BOB)

    def test_empty_pool(self, empty_pool):
        """Nothing to swap against."""
        fund(empty_pool, BOB, [E18, 0])
        with pytest.raises(PoolEmpty):
            empty_pool.pool.swap(0, 1, E18, 0, sender=BOB)

    def test_slippage(self, seeded_pool):
        """Output below min_dy fails and leaves everything in place."""
        fund(seeded_pool, BOB, [E18, 0])
        with pytest.raises(InsufficientSwapOutAmount):
            seeded_pool.pool.swap(0, 1, E18, E18, sender=BOB)
        assert seeded_pool.tokens[0].balance_of(BOB) == E18
        assert seeded_pool.pool.get_balances() == [100 * E18, 100 * E18]


class TestSwapFees:
    """Tests for swap fees."""

    def test_swap_after_imbalance(self, fee_pool):
        """Swapping 8e18 of the scarcer token back returns less than 8e18."""
        d_before = fee_pool.pool.total_supply
        fund(fee_pool, BOB, [0, 8 * E18])
        out = fee_pool.pool.swap(1, 0, 8 * E18, 0, sender=BOB)
        assert out < 8 * E18
        assert fee_pool.pool.total_supply >= d_before
        assert accounting_gap(fee_pool) == 0

    def test_fee_reported(self, fee_pool):
        """The swap event carries the fee kept by the pool."""
        fund(fee_pool, BOB, [E18, 0])
        fee_pool.pool.swap(0, 1, E18, 0, sender=BOB)
        swap = next(e for e in fee_pool.pool.events if isinstance(e, TokenSwapped))
        assert swap.fee_amount > 0

    def test_off_peg_fee_monotonic(self, fee_pool):
        """A larger off-peg multiplier never lowers the fee on a skewing swap."""
        pool = fee_pool.pool
        fees = []
        for multiplier in (FD, 2 * FD, 5 * FD):
            pool.set_off_peg_fee_multiplier(multiplier)
            fees.append(pool.get_swap_amount(0, 1, 10 * E18).fee_amount)
        assert fees == sorted(fees)
        assert fees[0] < fees[1]

    def test_rate_jump_raises_fee_multiplier(self):
        """A jump in a token's exchange rate raises its multiplier, then it decays."""
        config = FeeConfig(swap_fee=SWAP_FEE_0_2_PCT, exchange_rate_fee_factor=10 * FD, decay_period=300)
        harness = make_pool(fee_config=config)
        seed(harness, ALICE, [100 * E18, 100 * E18])

        harness.rates[1].set_rate(E18 + E18 // 100)
        fund(harness, BOB, [E18, 0])
        harness.pool.swap(0, 1, E18, 0, sender=BOB)
        assert harness.pool.get_fee_multiplier(1) == FD + FD // 10
        assert harness.pool.get_fee_multiplier(0) == FD

        harness.clock.advance(150)
        assert harness.pool.get_fee_multiplier(1) == FD + FD // 20
        harness.clock.advance(150)
        assert harness.pool.get_fee_multiplier(1) == FD

    def test_volatility_surcharge_applies(self):
        """While the multiplier is raised the same swap pays more."""
        config = FeeConfig(swap_fee=SWAP_FEE_0_2_PCT, exchange_rate_fee_factor=10 * FD, decay_period=300)
        harness = make_pool(fee_config=config)
        seed(harness, ALICE, [100 * E18, 100 * E18])
        harness.pool.state.fee_status[1].multiplier = 2 * FD
        harness.pool.state.fee_status[1].raised_at = harness.clock()
        surcharged = harness.pool.get_swap_amount(0, 1, E18).fee_amount

        harness.clock.advance(300)
        calm = harness.pool.get_swap_amount(0, 1, E18).fee_amount
        assert surcharged > calm
