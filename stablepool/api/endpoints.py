"""API endpoints for the pool simulator.

Every quote runs the pool's full prologue (A sync, fee status refresh,
yield collection) and rolls it back, so quotes never change pool state.
"""

import asyncio
from collections.abc import Callable
from typing import TypeVar

import structlog
from fastapi import APIRouter, Depends

from stablepool.models.api import (
    MintQuoteRequest,
    MintQuoteResponse,
    PoolSummary,
    RedeemMultiQuoteRequest,
    RedeemMultiQuoteResponse,
    RedeemProportionQuoteRequest,
    RedeemProportionQuoteResponse,
    RedeemSingleQuoteRequest,
    RedeemSingleQuoteResponse,
    SwapQuoteRequest,
    SwapQuoteResponse,
)
from stablepool.models.types import to_ints
from stablepool.pool import StableSwapPool
from stablepool.simulator import Simulator, get_default_simulator

logger = structlog.get_logger()

router = APIRouter()

T = TypeVar("T")


def get_simulator() -> Simulator:
    """Dependency provider for the simulator instance.

    Override this in tests to inject a prepared simulator:
        app.dependency_overrides[get_simulator] = lambda: simulator

    Returns:
        The simulator to serve quotes from.
    """
    return get_default_simulator()


async def _run(simulator: Simulator, pool_id: str, call: Callable[[StableSwapPool], T]) -> T:
    # The simulator lock blocks, keep it off the event loop
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, simulator.run, pool_id, call)


@router.get("/pools")
async def list_pools(simulator: Simulator = Depends(get_simulator)) -> list[str]:
    """Ids of all simulated pools."""
    return simulator.pool_ids()


@router.get("/pools/{pool_id}")
async def get_pool(pool_id: str, simulator: Simulator = Depends(get_simulator)) -> PoolSummary:
    """Current state of one pool."""
    return simulator.summary(pool_id)


@router.post("/pools/{pool_id}/quote/mint")
async def quote_mint(
    pool_id: str,
    request: MintQuoteRequest,
    simulator: Simulator = Depends(get_simulator),
) -> MintQuoteResponse:
    """Receipt tokens minted for a deposit."""
    amounts = to_ints(request.amounts)
    quote = await _run(simulator, pool_id, lambda pool: pool.get_mint_amount(amounts))
    logger.debug("quoted_mint", pool_id=pool_id, mint_amount=quote.mint_amount)
    return MintQuoteResponse.from_quote(quote)


@router.post("/pools/{pool_id}/quote/swap")
async def quote_swap(
    pool_id: str,
    request: SwapQuoteRequest,
    simulator: Simulator = Depends(get_simulator),
) -> SwapQuoteResponse:
    """Output of swapping dx of token i for token j."""
    dx = int(request.dx)
    quote = await _run(
        simulator, pool_id, lambda pool: pool.get_swap_amount(request.i, request.j, dx)
    )
    logger.debug("quoted_swap", pool_id=pool_id, i=request.i, j=request.j, amount_out=quote.amount_out)
    return SwapQuoteResponse.from_quote(quote)


@router.post("/pools/{pool_id}/quote/redeem-proportion")
async def quote_redeem_proportion(
    pool_id: str,
    request: RedeemProportionQuoteRequest,
    simulator: Simulator = Depends(get_simulator),
) -> RedeemProportionQuoteResponse:
    """Tokens paid out for a proportional redemption."""
    amount = int(request.amount)
    quote = await _run(simulator, pool_id, lambda pool: pool.get_redeem_proportion_amount(amount))
    return RedeemProportionQuoteResponse.from_quote(quote)


@router.post("/pools/{pool_id}/quote/redeem-single")
async def quote_redeem_single(
    pool_id: str,
    request: RedeemSingleQuoteRequest,
    simulator: Simulator = Depends(get_simulator),
) -> RedeemSingleQuoteResponse:
    """Token i paid out for a single-token redemption."""
    amount = int(request.amount)
    quote = await _run(
        simulator, pool_id, lambda pool: pool.get_redeem_single_amount(amount, request.i)
    )
    return RedeemSingleQuoteResponse.from_quote(quote)


@router.post("/pools/{pool_id}/quote/redeem-multi")
async def quote_redeem_multi(
    pool_id: str,
    request: RedeemMultiQuoteRequest,
    simulator: Simulator = Depends(get_simulator),
) -> RedeemMultiQuoteResponse:
    """Receipt tokens burnt to withdraw exact amounts."""
    amounts = to_ints(request.amounts)
    quote = await _run(simulator, pool_id, lambda pool: pool.get_redeem_multi_amount(amounts))
    return RedeemMultiQuoteResponse.from_quote(quote)
