"""Pydantic models for pool definitions and the quote endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator

from stablepool.constants import FEE_DENOMINATOR, MAX_A, PRECISION_DECIMALS
from stablepool.fees import FeeConfig
from stablepool.models.types import PoolId, Uint256
from stablepool.pool.results import (
    MintQuote,
    RedeemMultiQuote,
    RedeemProportionQuote,
    RedeemSingleQuote,
    SwapQuote,
)

# =============================================================================
# Pool definitions
# =============================================================================


class TokenSpec(BaseModel):
    """A pool token and its exchange rate."""

    symbol: str = Field(min_length=1, max_length=16)
    decimals: int = Field(default=18, ge=0, le=PRECISION_DECIMALS)
    rate: Uint256 = str(10**18)
    rate_decimals: int = Field(default=18, ge=0, le=36)

    @model_validator(mode="after")
    def check_rate(self) -> TokenSpec:
        if int(self.rate) == 0:
            raise ValueError(f"Exchange rate of {self.symbol} must be positive")
        return self


class FeeSpec(BaseModel):
    """Fee settings, in parts of FEE_DENOMINATOR."""

    mint_fee: int = Field(default=0, ge=0, lt=FEE_DENOMINATOR)
    swap_fee: int = Field(default=0, ge=0, lt=FEE_DENOMINATOR)
    redeem_fee: int = Field(default=0, ge=0, lt=FEE_DENOMINATOR)
    off_peg_fee_multiplier: int = Field(default=FEE_DENOMINATOR, ge=0)
    exchange_rate_fee_factor: int = Field(default=0, ge=0)
    decay_period: int = Field(default=300, ge=0)
    rate_change_skip_period: int = Field(default=86_400, ge=0)

    def to_config(self) -> FeeConfig:
        return FeeConfig(**self.model_dump())


class PoolSpec(BaseModel):
    """Definition of a simulated pool.

    When initial_amounts is given the pool is seeded with that liquidity
    (native units per token) at build time.
    """

    id: PoolId
    a: int = Field(gt=0, le=MAX_A)
    tokens: list[TokenSpec] = Field(min_length=2)
    fees: FeeSpec = Field(default_factory=FeeSpec)
    buffer_percent: int = Field(default=0, ge=0, le=10**10)
    initial_amounts: list[Uint256] | None = None

    @model_validator(mode="after")
    def check_tokens(self) -> PoolSpec:
        symbols = [t.symbol for t in self.tokens]
        if len(set(symbols)) != len(symbols):
            raise ValueError(f"Duplicate token symbols in pool {self.id}")
        if self.initial_amounts is not None and len(self.initial_amounts) != len(self.tokens):
            raise ValueError(
                f"Pool {self.id}: {len(self.initial_amounts)} initial amounts "
                f"for {len(self.tokens)} tokens"
            )
        return self


class PoolSummary(BaseModel):
    """Current state of a simulated pool."""

    id: str
    tokens: list[str]
    a: int
    total_supply: Uint256
    balances: list[Uint256]
    paused: bool
    buffer_amount: Uint256
    buffer_bad_debt: Uint256
    fees: FeeSpec


# =============================================================================
# Quote requests
# =============================================================================


class MintQuoteRequest(BaseModel):
    amounts: list[Uint256]


class SwapQuoteRequest(BaseModel):
    i: int = Field(ge=0)
    j: int = Field(ge=0)
    dx: Uint256


class RedeemProportionQuoteRequest(BaseModel):
    amount: Uint256


class RedeemSingleQuoteRequest(BaseModel):
    amount: Uint256
    i: int = Field(ge=0)


class RedeemMultiQuoteRequest(BaseModel):
    amounts: list[Uint256]


# =============================================================================
# Quote responses
# =============================================================================


class MintQuoteResponse(BaseModel):
    mint_amount: Uint256
    fee_amount: Uint256

    @classmethod
    def from_quote(cls, quote: MintQuote) -> MintQuoteResponse:
        return cls(mint_amount=quote.mint_amount, fee_amount=quote.fee_amount)


class SwapQuoteResponse(BaseModel):
    amount_out: Uint256
    fee_amount: Uint256

    @classmethod
    def from_quote(cls, quote: SwapQuote) -> SwapQuoteResponse:
        return cls(amount_out=quote.amount_out, fee_amount=quote.fee_amount)


class RedeemProportionQuoteResponse(BaseModel):
    amounts: list[Uint256]
    fee_amount: Uint256

    @classmethod
    def from_quote(cls, quote: RedeemProportionQuote) -> RedeemProportionQuoteResponse:
        return cls(amounts=list(quote.amounts), fee_amount=quote.fee_amount)


class RedeemSingleQuoteResponse(BaseModel):
    amount_out: Uint256
    fee_amount: Uint256

    @classmethod
    def from_quote(cls, quote: RedeemSingleQuote) -> RedeemSingleQuoteResponse:
        return cls(amount_out=quote.amount_out, fee_amount=quote.fee_amount)


class RedeemMultiQuoteResponse(BaseModel):
    redeem_amount: Uint256
    fee_amount: Uint256

    @classmethod
    def from_quote(cls, quote: RedeemMultiQuote) -> RedeemMultiQuoteResponse:
        return cls(redeem_amount=quote.redeem_amount, fee_amount=quote.fee_amount)


class ErrorResponse(BaseModel):
    """Body of a rejected request."""

    error: str
    detail: str
