"""Tests for reentrancy protection and all-or-nothing execution."""

import pytest

from stablepool.errors import (
    InsufficientShares,
    InsufficientTokenAllowance,
    ReentrancyError,
    UnauthorizedCaller,
)
from stablepool.models import Minted, TokenSwapped
from tests.helpers import (
    ALICE,
    BOB,
    E18,
    POOL_ADDRESS,
    PoolHarness,
    accounting_gap,
    fund,
    make_pool,
    seed,
)

SECOND_POOL = "pool:second"


class TransferRejected(Exception):
    pass


def reject_outgoing(sender, recipient, amount):
    if sender == POOL_ADDRESS:
        raise TransferRejected(f"{recipient} cannot receive {amount}")


@pytest.fixture
def shared_pools(clock) -> tuple[PoolHarness, PoolHarness]:
    """Two pools on one ledger, each seeded with 100e18 per token by ALICE."""
    first = make_pool(clock=clock)
    second = make_pool(clock=clock, ledger=first.ledger, address=SECOND_POOL)
    seed(first, ALICE, [100 * E18, 100 * E18])
    seed(second, ALICE, [100 * E18, 100 * E18])
    return first, second


class TestReentrancy:
    """Tests for calls made back into the pool from a token hook."""

    def test_reentrant_call_rejected(self, seeded_pool):
        """A token calling back into the pool gets ReentrancyError."""
        pool = seeded_pool.pool
        fund(seeded_pool, BOB, [2 * E18, 0])
        caught = []

        def hook(sender, recipient, amount):
            try:
                pool.swap(0, 1, E18, 0, sender=BOB)
            except ReentrancyError as err:
                caught.append(err)

        seeded_pool.tokens[0].on_transfer = hook
        out = pool.swap(0, 1, E18, 0, sender=BOB)

        assert out > 0
        assert len(caught) == 1
        assert sum(isinstance(e, TokenSwapped) for e in pool.events) == 1

    def test_uncaught_reentry_reverts_outer_call(self, seeded_pool):
        """When the reentrancy error escapes, the outer call is undone."""
        pool = seeded_pool.pool
        fund(seeded_pool, BOB, [E18, 0])
        balances = pool.get_balances()
        event_count = len(pool.events)

        def hook(sender, recipient, amount):
            pool.redeem_proportion(E18, [0, 0], sender=ALICE)

        seeded_pool.tokens[0].on_transfer = hook
        with pytest.raises(ReentrancyError):
            pool.swap(0, 1, E18, 0, sender=BOB)

        assert pool.get_balances() == balances
        assert pool.total_supply == 200 * E18
        assert len(pool.events) == event_count

    def test_lock_released_after_failure(self, seeded_pool):
        """A failed call does not leave the pool locked."""
        pool = seeded_pool.pool
        with pytest.raises(InsufficientShares):
            pool.redeem_proportion(E18, [0, 0], sender=BOB)
        assert not pool.locked
        assert seeded_pool.ledger.active_pool is None

        fund(seeded_pool, BOB, [E18, 0])
        assert pool.swap(0, 1, E18, 0, sender=BOB) > 0

    def test_rebase_from_hook_rejected(self, seeded_pool):
        """A hook cannot collect yield or book a loss while a mint is half applied."""
        pool = seeded_pool.pool
        fund(seeded_pool, ALICE, [5 * E18, 5 * E18])
        pool.donate_d([5 * E18, 5 * E18], 0, sender=ALICE)
        buffer = seeded_pool.ledger.buffer_amount
        fund(seeded_pool, BOB, [E18, E18])
        caught = []

        def hook(sender, recipient, amount):
            try:
                pool.rebase()
            except ReentrancyError as err:
                caught.append(err)

        seeded_pool.tokens[0].on_transfer = hook
        minted = pool.mint([E18, E18], 0, sender=BOB)

        assert len(caught) == 1
        assert buffer == 10 * E18
        assert seeded_pool.ledger.buffer_amount == buffer
        assert seeded_pool.ledger.balance_of(BOB) == minted
        assert accounting_gap(seeded_pool) == 0

    def test_yield_collection_only_through_rebase(self, seeded_pool):
        """Reconciling with live holdings has no unguarded public entry point."""
        assert not hasattr(seeded_pool.pool, "collect_fee_or_yield")
        seeded_pool.tokens[0].mint(POOL_ADDRESS, E18)
        assert seeded_pool.pool.rebase() > 0
        assert accounting_gap(seeded_pool) == 0


class TestSharedLedger:
    """Tests for pools that back the same receipt token."""

    def test_other_pool_locked_during_call(self, shared_pools):
        """A hook in one pool cannot mutate another pool of the same ledger."""
        first, second = shared_pools
        fund(first, BOB, [E18, E18])
        fund(second, BOB, [10 * E18, 10 * E18])
        caught = []

        def hook(sender, recipient, amount):
            try:
                second.pool.mint([10 * E18, 10 * E18], 0, sender=BOB)
            except ReentrancyError as err:
                caught.append(err)

        first.tokens[0].on_transfer = hook
        minted = first.pool.mint([E18, E18], 0, sender=BOB)

        ledger = first.ledger
        assert len(caught) == 1
        assert second.pool.total_supply == 200 * E18
        assert ledger.balance_of(BOB) == minted
        assert ledger.total_supply == first.pool.total_supply + second.pool.total_supply

    def test_failed_call_keeps_other_pool_in_sync(self, shared_pools):
        """A rolled-back call leaves the other pool and the ledger agreeing."""
        first, second = shared_pools
        fund(first, BOB, [E18, 0])
        first.tokens[1].mint(BOB, E18)
        fund(second, BOB, [10 * E18, 10 * E18])

        def hook(sender, recipient, amount):
            try:
                second.pool.mint([10 * E18, 10 * E18], 0, sender=BOB)
            except ReentrancyError:
                pass

        first.tokens[0].on_transfer = hook
        with pytest.raises(InsufficientTokenAllowance):
            first.pool.mint([E18, E18], 0, sender=BOB)

        ledger = first.ledger
        assert ledger.total_supply == 400 * E18
        assert second.pool.total_supply == 200 * E18
        assert ledger.balance_of(BOB) == 0
        assert second.tokens[0].balance_of(BOB) == 10 * E18
        assert first.tokens[0].balance_of(BOB) == E18
        assert ledger.active_pool is None

    def test_other_pool_usable_after_call(self, shared_pools):
        """The ledger lock is released once the first pool's call returns."""
        first, second = shared_pools
        fund(first, BOB, [E18, 0])
        first.pool.swap(0, 1, E18, 0, sender=BOB)

        assert seed(second, BOB, [10 * E18, 10 * E18]) == 20 * E18
        assert first.ledger.total_supply == first.pool.total_supply + second.pool.total_supply


class TestAtomicity:
    """Tests that failures leave pool, ledger and tokens untouched."""

    def test_ledger_rejection_rolls_back_mint(self, seeded_pool):
        """A ledger that no longer accepts the pool aborts the mint."""
        fund(seeded_pool, BOB, [E18, E18])
        seeded_pool.ledger.remove_pool(POOL_ADDRESS)

        with pytest.raises(UnauthorizedCaller):
            seeded_pool.pool.mint([E18, E18], 0, sender=BOB)

        assert seeded_pool.pool.total_supply == 200 * E18
        assert seeded_pool.pool.get_balances() == [100 * E18, 100 * E18]
        assert seeded_pool.tokens[0].balance_of(BOB) == E18
        assert seeded_pool.tokens[1].balance_of(POOL_ADDRESS) == 100 * E18

    def test_burn_failure_rolls_back_redeem(self, seeded_pool):
        """Redeeming more than the sender holds changes nothing."""
        ledger_supply = seeded_pool.ledger.total_supply
        with pytest.raises(InsufficientShares):
            seeded_pool.pool.redeem_single(E18, 0, 0, sender=BOB)
        assert seeded_pool.pool.get_balances() == [100 * E18, 100 * E18]
        assert seeded_pool.ledger.total_supply == ledger_supply
        assert seeded_pool.tokens[0].balance_of(BOB) == 0

    def test_prologue_effects_rolled_back(self, seeded_pool):
        """Yield collected by a failed call's prologue is undone too."""
        seeded_pool.tokens[0].mint(POOL_ADDRESS, 10 * E18)
        ledger_events = len(seeded_pool.ledger.events)
        with pytest.raises(InsufficientShares):
            seeded_pool.pool.redeem_proportion(E18, [0, 0], sender=BOB)
        assert seeded_pool.pool.total_supply == 200 * E18
        assert seeded_pool.ledger.total_supply == 200 * E18
        assert len(seeded_pool.ledger.events) == ledger_events

    def test_failed_push_refunds_swap_input(self, seeded_pool):
        """When the output transfer fails the trader gets the input back."""
        pool = seeded_pool.pool
        fund(seeded_pool, BOB, [E18, 0])
        seeded_pool.tokens[1].on_transfer = reject_outgoing

        with pytest.raises(TransferRejected):
            pool.swap(0, 1, E18, 0, sender=BOB)

        assert seeded_pool.tokens[0].balance_of(BOB) == E18
        assert seeded_pool.tokens[1].balance_of(BOB) == 0
        assert seeded_pool.tokens[0].balance_of(POOL_ADDRESS) == 100 * E18
        assert seeded_pool.tokens[0].allowance(BOB, POOL_ADDRESS) == E18
        seeded_pool.tokens[1].on_transfer = None
        assert pool.rebase() == 0
        assert pool.total_supply == 200 * E18

    def test_failed_second_pull_refunds_first(self, seeded_pool):
        """A mint that cannot pull its second token returns the first."""
        fund(seeded_pool, BOB, [E18, 0])
        seeded_pool.tokens[1].mint(BOB, E18)

        with pytest.raises(InsufficientTokenAllowance):
            seeded_pool.pool.mint([E18, E18], 0, sender=BOB)

        assert seeded_pool.tokens[0].balance_of(BOB) == E18
        assert seeded_pool.tokens[0].balance_of(POOL_ADDRESS) == 100 * E18
        assert seeded_pool.ledger.balance_of(BOB) == 0
        assert seeded_pool.pool.rebase() == 0

    def test_failed_push_reverses_earlier_push(self, seeded_pool):
        """A redeem whose second payout fails takes back the first."""
        ledger = seeded_pool.ledger
        shares = ledger.balance_of(ALICE)
        seeded_pool.tokens[1].on_transfer = reject_outgoing

        with pytest.raises(TransferRejected):
            seeded_pool.pool.redeem_proportion(10 * E18, [0, 0], sender=ALICE)

        assert seeded_pool.tokens[0].balance_of(ALICE) == 0
        assert seeded_pool.tokens[0].balance_of(POOL_ADDRESS) == 100 * E18
        assert ledger.balance_of(ALICE) == shares
        assert seeded_pool.pool.get_balances() == [100 * E18, 100 * E18]


class TestDeterminism:
    """Tests that identical call sequences produce identical results."""

    def test_event_sequences_match(self):
        """Two pools fed the same calls emit the same events."""

        def run():
            harness = make_pool(a=200)
            seed(harness, ALICE, [50 * E18, 70 * E18])
            fund(harness, BOB, [5 * E18, 0])
            harness.pool.swap(0, 1, 5 * E18, 0, sender=BOB)
            harness.pool.redeem_proportion(10 * E18, [0, 0], sender=ALICE)
            return harness.pool.events, harness.ledger.events

        assert run() == run()

    def test_first_event_is_mint(self):
        """A fresh pool records its first mint."""
        harness = make_pool()
        minted = seed(harness, ALICE, [E18, E18])
        assert harness.pool.events[0] == Minted(
            provider=ALICE, mint_amount=minted, amounts=(E18, E18), fee_amount=0
        )
