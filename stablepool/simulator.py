"""In-process host for a set of named pools.

The simulator owns the tokens, rate providers and ledgers of each pool and
serialises every call behind one lock, the way a chain executes one
transaction at a time.
"""

from __future__ import annotations

import os
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import TypeVar

import structlog
from pydantic import TypeAdapter

from stablepool.errors import InvalidPoolConfig, UnknownPool
from stablepool.ledger import ShareLedger
from stablepool.models.api import FeeSpec, PoolSpec, PoolSummary
from stablepool.models.types import to_ints
from stablepool.pool import StableSwapPool
from stablepool.tokens import Clock, InMemoryToken, MutableExchangeRate

logger = structlog.get_logger()

T = TypeVar("T")

# Account that provides the seed liquidity of pools with initial_amounts
SEED_PROVIDER = "seed-provider"


def wall_clock() -> int:
    return int(time.time())


@dataclass
class SimulatedPool:
    """A pool together with the collaborators the simulator created for it."""

    spec: PoolSpec
    pool: StableSwapPool
    ledger: ShareLedger
    tokens: list[InMemoryToken]
    rates: list[MutableExchangeRate]


class Simulator:
    """Registry of simulated pools.

    Args:
        specs: Pools to build at construction
        clock: Timestamp source shared by every pool (default: wall clock)
    """

    def __init__(self, specs: Iterable[PoolSpec] = (), clock: Clock | None = None) -> None:
        self.clock = clock if clock is not None else wall_clock
        self._lock = threading.Lock()
        self._pools: dict[str, SimulatedPool] = {}
        for spec in specs:
            self.add_pool(spec)

    @classmethod
    def from_file(cls, path: str | Path, clock: Clock | None = None) -> Simulator:
        """Build a simulator from a JSON list of pool definitions."""
        specs = TypeAdapter(list[PoolSpec]).validate_json(Path(path).read_text())
        logger.info("pools_file_loaded", path=str(path), pool_count=len(specs))
        return cls(specs, clock=clock)

    def add_pool(self, spec: PoolSpec) -> SimulatedPool:
        """Create a pool, its tokens and ledger; seed it if requested."""
        with self._lock:
            if spec.id in self._pools:
                raise InvalidPoolConfig(f"Pool {spec.id} already exists")

            tokens = [
                InMemoryToken(f"{spec.id}:{t.symbol}", symbol=t.symbol, decimals=t.decimals)
                for t in spec.tokens
            ]
            rates = [MutableExchangeRate(int(t.rate), t.rate_decimals) for t in spec.tokens]
            ledger = ShareLedger(f"{spec.id} LP", f"{spec.id}-lp", spec.buffer_percent)
            address = f"pool:{spec.id}"
            ledger.add_pool(address)
            pool = StableSwapPool(
                address=address,
                tokens=tokens,
                rate_providers=rates,
                ledger=ledger,
                a=spec.a,
                clock=self.clock,
                fee_config=spec.fees.to_config(),
            )
            entry = SimulatedPool(spec=spec, pool=pool, ledger=ledger, tokens=tokens, rates=rates)

            if spec.initial_amounts is not None:
                amounts = to_ints(spec.initial_amounts)
                for token, amount in zip(tokens, amounts):
                    token.mint(SEED_PROVIDER, amount)
                    token.approve(SEED_PROVIDER, address, amount)
                pool.mint(amounts, 0, sender=SEED_PROVIDER)

            self._pools[spec.id] = entry
            logger.info("simulated_pool_added", pool_id=spec.id, tokens=len(tokens), a=spec.a)
            return entry

    def pool_ids(self) -> list[str]:
        with self._lock:
            return sorted(self._pools)

    def get(self, pool_id: str) -> SimulatedPool:
        with self._lock:
            return self._entry(pool_id)

    def _entry(self, pool_id: str) -> SimulatedPool:
        # Callers hold _lock
        try:
            return self._pools[pool_id]
        except KeyError:
            raise UnknownPool(f"No pool named {pool_id}") from None

    def run(self, pool_id: str, call: Callable[[StableSwapPool], T]) -> T:
        """Run one call against a pool while holding the global lock."""
        with self._lock:
            return call(self._entry(pool_id).pool)

    def summary(self, pool_id: str) -> PoolSummary:
        with self._lock:
            entry = self._entry(pool_id)
            pool = entry.pool
            config = pool.fee_config
            return PoolSummary(
                id=pool_id,
                tokens=[t.symbol for t in entry.tokens],
                a=pool.get_current_a(),
                total_supply=pool.total_supply,
                balances=pool.get_balances(),
                paused=pool.paused,
                buffer_amount=entry.ledger.buffer_amount,
                buffer_bad_debt=entry.ledger.buffer_bad_debt,
                fees=FeeSpec(
                    mint_fee=config.mint_fee,
                    swap_fee=config.swap_fee,
                    redeem_fee=config.redeem_fee,
                    off_peg_fee_multiplier=config.off_peg_fee_multiplier,
                    exchange_rate_fee_factor=config.exchange_rate_fee_factor,
                    decay_period=config.decay_period,
                    rate_change_skip_period=config.rate_change_skip_period,
                ),
            )


@lru_cache(maxsize=1)
def get_default_simulator() -> Simulator:
    """Simulator configured from the environment.

    STABLEPOOL_POOLS_FILE points to a JSON list of pool definitions. Without
    it the simulator starts empty.
    """
    pools_file = os.environ.get("STABLEPOOL_POOLS_FILE")
    if pools_file:
        return Simulator.from_file(pools_file)
    logger.info("no_pools_file", reason="STABLEPOOL_POOLS_FILE not set")
    return Simulator()
