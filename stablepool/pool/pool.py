"""StableSwap pool for pegged assets.

The pool composes the invariant solver, the fee engine, an optional ramp
authority for A, and the share ledger backing its receipt token. Every
mutating entry point runs the same prologue before its own math:

    1. reject if paused
    2. adopt the current A; re-derive D and settle the difference in the
       ledger buffer
    3. refresh the volatility-fee status of the tokens it touches
    4. collect pending yield from the live token holdings

and then computes its result, checks the caller's bounds, pulls tokens,
updates balances, pushes tokens, updates the ledger and finally collects the
fee it left in the pool. Token transfers are journaled so a failed operation
hands them back along with its state.

Stored balances deliberately lag the live holdings by the fees of the last
operation. rebase() and every operation harvest that gap into the ledger.
"""

from __future__ import annotations

import copy
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import TypeVar

import structlog

from stablepool.constants import FEE_DENOMINATOR, MAX_A, PRECISION_DECIMALS
from stablepool.errors import (
    AOutOfBounds,
    InsufficientDonationAmount,
    InsufficientMintAmount,
    InsufficientRedeemAmount,
    InsufficientSwapOutAmount,
    InvalidAmounts,
    InvalidPoolConfig,
    InvalidTokenIndex,
    MaxRedeemAmountExceeded,
    NoLosses,
    PoolEmpty,
    PoolNotPaused,
    PoolPaused,
    SameTokenSwap,
    ZeroAmount,
)
from stablepool.fees import (
    DEFAULT_FEE_CONFIG,
    FeeConfig,
    TokenFeeStatus,
    decayed_multiplier,
    dynamic_fee,
    static_fee,
    update_multiplier,
    volatility_fee,
    worst_multiplier,
)
from stablepool.ledger import LedgerSnapshot, ShareLedger
from stablepool.math import compute_balance_for, compute_d
from stablepool.models.events import (
    AModified,
    Donated,
    Event,
    FeeCollected,
    FeeModified,
    LossDistributed,
    Minted,
    Paused,
    Redeemed,
    TokenSwapped,
    Unpaused,
    YieldCollected,
)
from stablepool.pool.guard import nonreentrant
from stablepool.pool.results import (
    DonationQuote,
    MintQuote,
    RedeemMultiQuote,
    RedeemProportionQuote,
    RedeemSingleQuote,
    SwapQuote,
)
from stablepool.safe_int import S
from stablepool.tokens import Clock, ExchangeRateProvider, RampAuthority, Token

logger = structlog.get_logger()

T = TypeVar("T")


@dataclass
class PoolState:
    """Mutable state of a pool.

    Attributes:
        balances: Converted balances (18 decimals), lagging live holdings
            by uncollected fees and yield
        total_supply: The invariant D, equal to the receipt token's
            economic supply
        a: Cached amplification coefficient
        fee_status: Volatility-fee state per token
        last_activity: Timestamp of the last mint, swap, redeem or donation
        paused: Whether economic operations are blocked
    """

    balances: list[int]
    a: int
    fee_status: list[TokenFeeStatus]
    last_activity: int
    total_supply: int = 0
    paused: bool = False


@dataclass(frozen=True)
class TransferRecord:
    """A token movement completed inside a guarded call."""

    token: Token
    sender: str
    recipient: str
    amount: int


@dataclass(frozen=True)
class PoolSnapshot:
    state: PoolState
    fee_config: FeeConfig
    event_count: int
    ledger: LedgerSnapshot = field(repr=False)


class StableSwapPool:
    """Constant-function market maker for a basket of pegged tokens.

    Attributes:
        address: Identity of the pool as a token holder and ledger caller
        tokens: Pool tokens, in index order
        rate_providers: Exchange-rate provider per token
        precisions: 10^(18 - decimals) per token
        ledger: Share ledger of the receipt token
        fee_config: Fee rates and tuning
        ramp_controller: Optional external source of A
        events: Emitted events, oldest first
    """

    def __init__(
        self,
        address: str,
        tokens: Sequence[Token],
        rate_providers: Sequence[ExchangeRateProvider],
        ledger: ShareLedger,
        a: int,
        clock: Clock,
        fee_config: FeeConfig = DEFAULT_FEE_CONFIG,
        ramp_controller: RampAuthority | None = None,
    ) -> None:
        if len(tokens) < 2:
            raise InvalidPoolConfig(f"A pool needs at least 2 tokens, got {len(tokens)}")
        if len(rate_providers) != len(tokens):
            raise InvalidPoolConfig(
                f"Got {len(rate_providers)} rate providers for {len(tokens)} tokens"
            )
        if len({t.address for t in tokens}) != len(tokens):
            raise InvalidPoolConfig("Duplicate token in pool")
        for token in tokens:
            if not 0 <= token.decimals <= PRECISION_DECIMALS:
                raise InvalidPoolConfig(f"Unsupported decimals {token.decimals} for {token.address}")
        if not 0 < a <= MAX_A:
            raise AOutOfBounds(f"A must be in (0, {MAX_A}], got {a}")

        self.address = address
        self.tokens = list(tokens)
        self.rate_providers = list(rate_providers)
        self.precisions = [10 ** (PRECISION_DECIMALS - t.decimals) for t in tokens]
        self.ledger = ledger
        self.fee_config = fee_config
        self.ramp_controller = ramp_controller
        self._clock = clock
        self.events: list[Event] = []
        self._transfers: list[TransferRecord] = []

        now = clock()
        self.state = PoolState(
            balances=[0] * len(tokens),
            a=a,
            fee_status=[TokenFeeStatus(last_rate=p.rate(), raised_at=now) for p in rate_providers],
            last_activity=now,
        )

        logger.info(
            "pool_created",
            pool=address,
            tokens=[t.address for t in tokens],
            a=a,
            ledger=ledger.symbol,
        )

    # =========================================================================
    # Views
    # =========================================================================

    @property
    def n_coins(self) -> int:
        return len(self.tokens)

    @property
    def total_supply(self) -> int:
        return self.state.total_supply

    @property
    def a(self) -> int:
        return self.state.a

    @property
    def paused(self) -> bool:
        return self.state.paused

    def get_tokens(self) -> list[str]:
        return [t.address for t in self.tokens]

    def get_balances(self) -> list[int]:
        return list(self.state.balances)

    def get_current_a(self) -> int:
        """A as reported by the ramp authority, or the cached A if unavailable."""
        return self._lookup_a()

    def get_pending_yield_amount(self) -> tuple[list[int], int]:
        """Live converted balances and the invariant they imply."""
        balances = self._live_balances()
        return balances, compute_d(balances, self._lookup_a())

    def get_fee_multiplier(self, token_index: int) -> int:
        """Current decayed volatility multiplier of a token."""
        self._check_index(token_index)
        return decayed_multiplier(
            self.state.fee_status[token_index], self._clock(), self.fee_config.decay_period
        )

    # =========================================================================
    # Quotes (read-only: the prologue runs inside a rolled-back scope)
    # =========================================================================

    def get_mint_amount(self, amounts: Sequence[int]) -> MintQuote:
        self._check_amounts(amounts)
        return self._simulate(self._touched(amounts), lambda: self._calc_mint(amounts))

    def get_swap_amount(self, i: int, j: int, dx: int) -> SwapQuote:
        self._check_swap(i, j, dx)
        return self._simulate([i, j], lambda: self._calc_swap(i, j, dx))

    def get_redeem_proportion_amount(self, amount: int) -> RedeemProportionQuote:
        return self._simulate([], lambda: self._calc_redeem_proportion(amount))

    def get_redeem_single_amount(self, amount: int, i: int) -> RedeemSingleQuote:
        self._check_index(i)
        return self._simulate([i], lambda: self._calc_redeem_single(amount, i))

    def get_redeem_multi_amount(self, amounts: Sequence[int]) -> RedeemMultiQuote:
        self._check_amounts(amounts)
        return self._simulate(self._touched(amounts), lambda: self._calc_redeem_multi(amounts))

    # =========================================================================
    # Operations
    # =========================================================================

    @nonreentrant
    def mint(self, amounts: Sequence[int], min_mint_amount: int, *, sender: str) -> int:
        """Deposit tokens and mint receipt tokens.

        Args:
            amounts: Native amount per token
            min_mint_amount: Minimum receipt tokens to mint
            sender: Depositor and recipient

        Returns:
            Amount of receipt tokens minted

        Raises:
            InsufficientMintAmount: If the mint is below min_mint_amount
        """
        self._check_amounts(amounts)
        self._prologue(self._touched(amounts))

        quote = self._calc_mint(amounts)
        if quote.mint_amount < min_mint_amount:
            raise InsufficientMintAmount(f"Mint {quote.mint_amount} < minimum {min_mint_amount}")

        self.state.balances = list(quote.balances)
        self.state.total_supply = quote.new_d
        self.ledger.mint_shares(sender, quote.mint_amount, caller=self.address)
        self._pull(amounts, sender)
        self._emit(
            Minted(
                provider=sender,
                mint_amount=quote.mint_amount,
                amounts=tuple(amounts),
                fee_amount=quote.fee_amount,
            )
        )
        self._collect_fee_or_yield(is_fee=True)
        self._touch()
        return quote.mint_amount

    @nonreentrant
    def swap(self, i: int, j: int, dx: int, min_dy: int, *, sender: str) -> int:
        """Exchange dx of token i for token j.

        Returns:
            Native amount of token j sent to sender

        Raises:
            InsufficientSwapOutAmount: If the output is below min_dy
        """
        self._check_swap(i, j, dx)
        self._prologue([i, j])

        quote = self._calc_swap(i, j, dx)
        if quote.amount_out < min_dy:
            raise InsufficientSwapOutAmount(f"Output {quote.amount_out} < minimum {min_dy}")

        self._pull_token(i, sender, dx)
        self.state.balances = list(quote.balances)
        self._push_token(j, sender, quote.amount_out)

        amounts = [0] * self.n_coins
        amounts[i] = dx
        amounts[j] = quote.amount_out
        self._emit(
            TokenSwapped(
                buyer=sender,
                swap_amount=dx,
                amounts=tuple(amounts),
                fee_amount=quote.fee_amount,
            )
        )
        self._collect_fee_or_yield(is_fee=True)
        self._touch()
        return quote.amount_out

    @nonreentrant
    def redeem_proportion(
        self, amount: int, min_redeem_amounts: Sequence[int], *, sender: str
    ) -> list[int]:
        """Burn receipt tokens for a proportional share of every token.

        Returns:
            Native amount paid out per token

        Raises:
            InsufficientRedeemAmount: If any output is below its minimum
        """
        self._check_amounts(min_redeem_amounts)
        self._prologue([])

        quote = self._calc_redeem_proportion(amount)
        for index, (out, minimum) in enumerate(zip(quote.amounts, min_redeem_amounts)):
            if out < minimum:
                raise InsufficientRedeemAmount(f"Token {index}: output {out} < minimum {minimum}")

        self.state.balances = list(quote.balances)
        self.state.total_supply = quote.new_d
        self.ledger.burn_shares_from(sender, amount, caller=self.address)
        self._push(quote.amounts, sender)

        self._emit(
            Redeemed(
                redeemer=sender,
                amount=amount,
                amounts=quote.amounts,
                fee_amount=quote.fee_amount,
            )
        )
        self._collect_fee_or_yield(is_fee=True)
        self._touch()
        return list(quote.amounts)

    @nonreentrant
    def redeem_single(self, amount: int, i: int, min_redeem_amount: int, *, sender: str) -> int:
        """Burn receipt tokens for a single token.

        Returns:
            Native amount of token i paid out
        """
        self._check_index(i)
        self._prologue([i])

        quote = self._calc_redeem_single(amount, i)
        if quote.amount_out < min_redeem_amount:
            raise InsufficientRedeemAmount(
                f"Output {quote.amount_out} < minimum {min_redeem_amount}"
            )

        self.state.balances = list(quote.balances)
        self.state.total_supply = quote.new_d
        self.ledger.burn_shares_from(sender, amount, caller=self.address)
        self._push_token(i, sender, quote.amount_out)

        amounts = [0] * self.n_coins
        amounts[i] = quote.amount_out
        self._emit(
            Redeemed(
                redeemer=sender,
                amount=amount,
                amounts=tuple(amounts),
                fee_amount=quote.fee_amount,
            )
        )
        self._collect_fee_or_yield(is_fee=True)
        self._touch()
        return quote.amount_out

    @nonreentrant
    def redeem_multi(
        self, amounts: Sequence[int], max_redeem_amount: int, *, sender: str
    ) -> int:
        """Withdraw exact token amounts, burning what they are worth.

        Returns:
            Amount of receipt tokens burnt

        Raises:
            MaxRedeemAmountExceeded: If the burn exceeds max_redeem_amount
        """
        self._check_amounts(amounts)
        self._prologue(self._touched(amounts))

        quote = self._calc_redeem_multi(amounts)
        if quote.redeem_amount > max_redeem_amount:
            raise MaxRedeemAmountExceeded(
                f"Burn {quote.redeem_amount} > maximum {max_redeem_amount}"
            )

        self.state.balances = list(quote.balances)
        self.state.total_supply = quote.new_d
        self.ledger.burn_shares_from(sender, quote.redeem_amount, caller=self.address)
        self._push(amounts, sender)

        self._emit(
            Redeemed(
                redeemer=sender,
                amount=quote.redeem_amount,
                amounts=tuple(amounts),
                fee_amount=quote.fee_amount,
            )
        )
        self._collect_fee_or_yield(is_fee=True)
        self._touch()
        return quote.redeem_amount

    @nonreentrant
    def donate_d(self, amounts: Sequence[int], min_donation_amount: int, *, sender: str) -> int:
        """Add tokens whose D goes to the ledger buffer instead of new shares.

        Returns:
            Donated D

        Raises:
            PoolEmpty: If the pool has no liquidity yet
            InsufficientDonationAmount: If the donation is below the minimum
        """
        self._check_amounts(amounts)
        self._prologue(self._touched(amounts))

        quote = self._calc_donation(amounts)
        if quote.donation < min_donation_amount:
            raise InsufficientDonationAmount(
                f"Donation {quote.donation} < minimum {min_donation_amount}"
            )

        self.state.balances = list(quote.balances)
        self.state.total_supply = quote.new_d
        self.ledger.add_buffer(quote.donation, caller=self.address)
        self._pull(amounts, sender)
        self._emit(Donated(donor=sender, amount=quote.donation, amounts=tuple(amounts)))
        self._collect_fee_or_yield(is_fee=True)
        self._touch()
        return quote.donation

    @nonreentrant
    def rebase(self) -> int:
        """Collect yield accrued in the live holdings.

        A loss is drawn from the ledger buffer. A loss larger than the buffer
        fails with InsufficientBuffer: such losses go through
        distribute_loss() on a paused pool.

        Returns:
            Yield collected (0 for none or a loss)
        """
        self._prologue_checks()
        self._sync_a()
        self._update_fee_statuses(range(self.n_coins))
        return self._collect_fee_or_yield(is_fee=False)

    @nonreentrant
    def distribute_loss(self) -> int:
        """Socialise a loss across all holders. Only while paused.

        Returns:
            The loss removed from the receipt token supply

        Raises:
            PoolNotPaused: If the pool is not paused
            NoLosses: If live holdings are worth at least the recorded supply
        """
        if not self.state.paused:
            raise PoolNotPaused("distribute_loss requires a paused pool")
        self._sync_a()

        old_d = self.state.total_supply
        balances = self._live_balances()
        new_d = compute_d(balances, self.state.a)
        if new_d >= old_d:
            raise NoLosses(f"Live D {new_d} >= recorded supply {old_d}")

        loss = old_d - new_d
        self.ledger.remove_total_supply(loss, from_buffer=False, caller=self.address)
        self.state.balances = balances
        self.state.total_supply = new_d
        self._emit(LossDistributed(amount=loss, total_supply=new_d))
        return loss

    def _collect_fee_or_yield(self, is_fee: bool) -> int:
        """Reconcile stored balances and D with the live holdings.

        Gains are passed to the ledger via add_total_supply (FeeCollected or
        YieldCollected). Losses are drawn from the ledger buffer and fail
        with InsufficientBuffer when it is too small. Before an operation
        (is_fee=False) changes within yield_error_margin are ignored; after an
        operation (is_fee=True) every gain is collected and shortfalls within
        fee_error_margin are ignored as rounding.

        Returns:
            Amount collected
        """
        old_d = self.state.total_supply
        if old_d == 0:
            return 0

        balances = self._live_balances()
        new_d = compute_d(balances, self.state.a)
        loss_margin = self.fee_config.fee_error_margin if is_fee else self.fee_config.yield_error_margin
        gain_margin = 0 if is_fee else self.fee_config.yield_error_margin

        if new_d > old_d:
            gain = new_d - old_d
            if gain <= gain_margin:
                logger.debug("dust_gain_ignored", pool=self.address, gain=gain)
                return 0
            self.state.balances = balances
            self.state.total_supply = new_d
            self.ledger.add_total_supply(gain, caller=self.address)
            if is_fee:
                self._emit(FeeCollected(fee_amount=gain, total_supply=new_d))
            else:
                self._emit(YieldCollected(amount=gain, total_supply=new_d))
            return gain

        if old_d > new_d:
            loss = old_d - new_d
            if loss <= loss_margin:
                logger.debug("dust_loss_ignored", pool=self.address, loss=loss)
                return 0
            self.ledger.remove_total_supply(loss, from_buffer=True, caller=self.address)
            self.state.balances = balances
            self.state.total_supply = new_d
            logger.warning("loss_absorbed_by_buffer", pool=self.address, loss=loss, total_supply=new_d)
        return 0

    # =========================================================================
    # Governance (access control is the host's concern)
    # =========================================================================

    def pause(self) -> None:
        if self.state.paused:
            raise PoolPaused("Pool is already paused")
        self.state.paused = True
        self._emit(Paused())

    def unpause(self) -> None:
        if not self.state.paused:
            raise PoolNotPaused("Pool is not paused")
        self.state.paused = False
        self._emit(Unpaused())

    def set_ramp_controller(self, controller: RampAuthority | None) -> None:
        self.ramp_controller = controller
        logger.info("ramp_controller_set", pool=self.address, enabled=controller is not None)

    def set_mint_fee(self, value: int) -> None:
        self._set_fee_parameter("mint_fee", value)

    def set_swap_fee(self, value: int) -> None:
        self._set_fee_parameter("swap_fee", value)

    def set_redeem_fee(self, value: int) -> None:
        self._set_fee_parameter("redeem_fee", value)

    def set_off_peg_fee_multiplier(self, value: int) -> None:
        self._set_fee_parameter("off_peg_fee_multiplier", value)

    def set_exchange_rate_fee_factor(self, value: int) -> None:
        self._set_fee_parameter("exchange_rate_fee_factor", value)

    def set_decay_period(self, value: int) -> None:
        self._set_fee_parameter("decay_period", value)

    def set_rate_change_skip_period(self, value: int) -> None:
        self._set_fee_parameter("rate_change_skip_period", value)

    def set_fee_error_margin(self, value: int) -> None:
        self._set_fee_parameter("fee_error_margin", value)

    def set_yield_error_margin(self, value: int) -> None:
        self._set_fee_parameter("yield_error_margin", value)

    # =========================================================================
    # Transactions
    # =========================================================================

    @property
    def locked(self) -> bool:
        """Whether this pool or another pool of its ledger is mid-call."""
        return self.ledger.active_pool is not None

    def _enter(self) -> None:
        self.ledger.active_pool = self.address
        self._transfers = []

    def _exit(self) -> None:
        self.ledger.active_pool = None
        self._transfers = []

    def _unwind_transfers(self) -> None:
        """Send back every token movement of the failed call, newest first.

        A reversed pull also gives back the allowance it spent.
        """
        while self._transfers:
            record = self._transfers.pop()
            token = record.token
            token.transfer(record.recipient, record.sender, record.amount)
            if record.recipient == self.address:
                allowed = token.allowance(record.sender, self.address)
                token.approve(record.sender, self.address, allowed + record.amount)
            logger.debug(
                "transfer_reversed",
                pool=self.address,
                token=token.address,
                recipient=record.sender,
                amount=record.amount,
            )

    def snapshot(self) -> PoolSnapshot:
        return PoolSnapshot(
            state=copy.deepcopy(self.state),
            fee_config=self.fee_config,
            event_count=len(self.events),
            ledger=self.ledger.snapshot(),
        )

    def restore(self, snapshot: PoolSnapshot) -> None:
        self.state = copy.deepcopy(snapshot.state)
        self.fee_config = snapshot.fee_config
        del self.events[snapshot.event_count :]
        self.ledger.restore(snapshot.ledger)

    # =========================================================================
    # Calculations (pure with respect to pool state)
    # =========================================================================

    def _calc_mint(self, amounts: Sequence[int]) -> MintQuote:
        old_d = self.state.total_supply
        if not any(amounts):
            raise ZeroAmount("Nothing to mint")
        if old_d == 0 and not all(amounts):
            raise ZeroAmount("The first mint must include every token")

        a = self.state.a
        old_balances = list(self.state.balances)
        balances = list(old_balances)
        for index, amount in enumerate(amounts):
            if amount > 0:
                balances[index] += self._to_converted(index, amount)

        new_d = compute_d(balances, a)
        fee_amount = 0
        mint_fee = self.fee_config.mint_fee
        if old_d > 0 and mint_fee > 0:
            fees = self._imbalance_fees(old_balances, balances, old_d, new_d, mint_fee)
            for index, fee in enumerate(fees):
                balances[index] -= fee
            fee_d = compute_d(balances, a)
            fee_amount = new_d - fee_d
            new_d = fee_d

        if new_d <= old_d:
            raise ZeroAmount("Mint amount is zero")
        return MintQuote(
            mint_amount=new_d - old_d,
            fee_amount=fee_amount,
            balances=tuple(balances),
            new_d=new_d,
        )

    def _calc_swap(self, i: int, j: int, dx: int) -> SwapQuote:
        if self.state.total_supply == 0:
            raise PoolEmpty("Cannot swap in an empty pool")

        balances = list(self.state.balances)
        prev_balance_i = balances[i]
        balances[i] += self._to_converted(i, dx)
        y = compute_balance_for(balances, j, self.state.total_supply, self.state.a)
        # One unit below the solved balance so rounding never overpays
        dy = max(balances[j] - y - 1, 0)

        fee_amount = 0
        swap_fee = self.fee_config.swap_fee
        if swap_fee > 0:
            rate = dynamic_fee(
                (prev_balance_i + balances[i]) // 2,
                (balances[j] + y) // 2,
                swap_fee,
                self.fee_config.off_peg_fee_multiplier,
            )
            multiplier = worst_multiplier(
                [self.state.fee_status[i], self.state.fee_status[j]],
                self._clock(),
                self.fee_config.decay_period,
            )
            rate += volatility_fee(swap_fee, multiplier)
            fee_amount = min(dy * rate // FEE_DENOMINATOR, dy)

        dy -= fee_amount
        # Stored balance keeps the fee; _collect_fee_or_yield() harvests it
        balances[j] = y
        return SwapQuote(
            amount_out=self._to_native(j, dy),
            fee_amount=fee_amount,
            balances=tuple(balances),
            dy=dy,
        )

    def _calc_redeem_proportion(self, amount: int) -> RedeemProportionQuote:
        d = self.state.total_supply
        if amount == 0:
            raise ZeroAmount("Cannot redeem zero")
        if d == 0:
            raise PoolEmpty("Nothing to redeem")
        if amount > d:
            raise InvalidAmounts(f"Redeem {amount} exceeds total supply {d}")

        fee_amount = static_fee(amount, self.fee_config.redeem_fee)
        redeem_amount = amount - fee_amount

        balances = list(self.state.balances)
        amounts = []
        for index in range(self.n_coins):
            # Floor: the pool keeps the remainder
            converted = (S(balances[index]) * redeem_amount // d).value
            balances[index] -= converted
            amounts.append(self._to_native(index, converted))

        return RedeemProportionQuote(
            amounts=tuple(amounts),
            fee_amount=fee_amount,
            balances=tuple(balances),
            new_d=d - amount,
        )

    def _calc_redeem_single(self, amount: int, i: int) -> RedeemSingleQuote:
        d = self.state.total_supply
        if amount == 0:
            raise ZeroAmount("Cannot redeem zero")
        if amount >= d:
            raise InvalidAmounts(f"Single-token redeem {amount} must be below total supply {d}")

        new_d = d - amount
        balances = list(self.state.balances)
        y = compute_balance_for(balances, i, new_d, self.state.a)
        dy = max(balances[i] - y - 1, 0)

        fee_amount = 0
        redeem_fee = self.fee_config.redeem_fee
        if redeem_fee > 0:
            rate = dynamic_fee(
                (balances[i] + y) // 2,
                (d + new_d) // (2 * self.n_coins),
                redeem_fee,
                self.fee_config.off_peg_fee_multiplier,
            )
            multiplier = decayed_multiplier(
                self.state.fee_status[i], self._clock(), self.fee_config.decay_period
            )
            rate += volatility_fee(redeem_fee, multiplier)
            fee_amount = min(dy * rate // FEE_DENOMINATOR, dy)

        dy -= fee_amount
        balances[i] = y
        return RedeemSingleQuote(
            amount_out=self._to_native(i, dy),
            fee_amount=fee_amount,
            balances=tuple(balances),
            new_d=new_d,
        )

    def _calc_redeem_multi(self, amounts: Sequence[int]) -> RedeemMultiQuote:
        old_d = self.state.total_supply
        if not any(amounts):
            raise ZeroAmount("Nothing to redeem")
        if old_d == 0:
            raise PoolEmpty("Nothing to redeem")

        a = self.state.a
        old_balances = list(self.state.balances)
        balances = list(old_balances)
        for index, amount in enumerate(amounts):
            if amount == 0:
                continue
            # Round up: the pool never gives out more than it books
            converted = self._to_converted(index, amount, round_up=True)
            if converted >= balances[index]:
                raise InvalidAmounts(f"Token {index}: cannot withdraw the whole balance")
            balances[index] -= converted

        new_d = compute_d(balances, a)
        fee_amount = 0
        redeem_fee = self.fee_config.redeem_fee
        if redeem_fee > 0:
            fees = self._imbalance_fees(old_balances, balances, old_d, new_d, redeem_fee)
            for index, fee in enumerate(fees):
                balances[index] -= fee
            fee_d = compute_d(balances, a)
            fee_amount = new_d - fee_d
            new_d = fee_d

        return RedeemMultiQuote(
            redeem_amount=old_d - new_d,
            fee_amount=fee_amount,
            balances=tuple(balances),
            new_d=new_d,
        )

    def _calc_donation(self, amounts: Sequence[int]) -> DonationQuote:
        old_d = self.state.total_supply
        if old_d == 0:
            raise PoolEmpty("Cannot donate to an empty pool")
        if not any(amounts):
            raise ZeroAmount("Nothing to donate")

        balances = list(self.state.balances)
        for index, amount in enumerate(amounts):
            if amount > 0:
                balances[index] += self._to_converted(index, amount)
        new_d = compute_d(balances, self.state.a)
        return DonationQuote(donation=new_d - old_d, balances=tuple(balances), new_d=new_d)

    def _imbalance_fees(
        self,
        old_balances: list[int],
        new_balances: list[int],
        old_d: int,
        new_d: int,
        base_fee: int,
    ) -> list[int]:
        """Per-token fee on the deviation from a proportional deposit/withdrawal.

        Each token pays (off-peg fee + its volatility fee) on the distance
        between its new balance and the balance it would have if the
        invariant had moved proportionally.
        """
        now = self._clock()
        ys = (old_d + new_d) // self.n_coins
        fees = []
        for index in range(self.n_coins):
            ideal = new_d * old_balances[index] // old_d
            difference = abs(ideal - new_balances[index])
            rate = dynamic_fee(
                old_balances[index] + new_balances[index],
                ys,
                base_fee,
                self.fee_config.off_peg_fee_multiplier,
            )
            multiplier = decayed_multiplier(
                self.state.fee_status[index], now, self.fee_config.decay_period
            )
            rate += volatility_fee(base_fee, multiplier)
            fees.append(min(difference * rate // FEE_DENOMINATOR, new_balances[index] - 1))
        return fees

    # =========================================================================
    # Prologue helpers
    # =========================================================================

    def _prologue(self, touched: Sequence[int]) -> None:
        self._prologue_checks()
        self._sync_a()
        self._update_fee_statuses(touched)
        self._collect_fee_or_yield(is_fee=False)

    def _prologue_checks(self) -> None:
        if self.state.paused:
            raise PoolPaused("Pool is paused")

    def _simulate(self, touched: Sequence[int], calculate: Callable[[], T]) -> T:
        """Run the prologue and a calculation, then roll every change back."""
        snapshot = self.snapshot()
        try:
            self._sync_a()
            self._update_fee_statuses(touched)
            self._collect_fee_or_yield(is_fee=False)
            return calculate()
        finally:
            self.restore(snapshot)

    def _lookup_a(self) -> int:
        if self.ramp_controller is None:
            return self.state.a
        try:
            a = self.ramp_controller.get_current_a()
        except Exception as err:
            logger.warning(
                "ramp_lookup_failed",
                pool=self.address,
                error=type(err).__name__,
                detail=str(err),
                fallback_a=self.state.a,
            )
            return self.state.a
        if not 0 < a <= MAX_A:
            logger.warning("ramp_lookup_out_of_bounds", pool=self.address, a=a, fallback_a=self.state.a)
            return self.state.a
        return a

    def _sync_a(self) -> None:
        """Adopt a changed A and settle the D difference in the ledger buffer."""
        new_a = self._lookup_a()
        old_a = self.state.a
        if new_a == old_a:
            return

        old_d = self.state.total_supply
        new_d = compute_d(self.state.balances, new_a) if old_d > 0 else 0
        self.state.a = new_a
        if new_d > old_d:
            self.ledger.add_buffer(new_d - old_d, caller=self.address)
        elif old_d > new_d:
            self.ledger.remove_total_supply(
                old_d - new_d, from_buffer=True, allow_bad_debt=True, caller=self.address
            )
        self.state.total_supply = new_d
        self._emit(AModified(old_a=old_a, new_a=new_a, old_d=old_d, new_d=new_d))

    def _update_fee_statuses(self, touched: Sequence[int]) -> None:
        now = self._clock()
        for index in sorted(set(touched)):
            update_multiplier(
                self.state.fee_status[index],
                self.rate_providers[index].rate(),
                now,
                self.state.last_activity,
                self.fee_config,
            )

    def _pull(self, amounts: Sequence[int], sender: str) -> None:
        for index, amount in enumerate(amounts):
            if amount > 0:
                self._pull_token(index, sender, amount)

    def _push(self, amounts: Sequence[int], recipient: str) -> None:
        for index, amount in enumerate(amounts):
            if amount > 0:
                self._push_token(index, recipient, amount)

    def _pull_token(self, index: int, sender: str, amount: int) -> None:
        token = self.tokens[index]
        token.transfer_from(self.address, sender, self.address, amount)
        self._transfers.append(TransferRecord(token, sender, self.address, amount))

    def _push_token(self, index: int, recipient: str, amount: int) -> None:
        token = self.tokens[index]
        token.transfer(self.address, recipient, amount)
        self._transfers.append(TransferRecord(token, self.address, recipient, amount))

    def _touch(self) -> None:
        self.state.last_activity = self._clock()

    # =========================================================================
    # Conversions and validation
    # =========================================================================

    def _to_converted(self, index: int, amount: int, round_up: bool = False) -> int:
        """Native amount -> 18-decimal pool unit at the current exchange rate."""
        provider = self.rate_providers[index]
        scaled = S(amount) * provider.rate()
        unit = 10 ** provider.rate_decimals()
        value = scaled.ceiling_div(unit) if round_up else scaled // unit
        return (value * self.precisions[index]).to_uint256()

    def _to_native(self, index: int, converted: int) -> int:
        """18-decimal pool unit -> native amount, rounded down."""
        provider = self.rate_providers[index]
        return (
            S(converted) * 10 ** provider.rate_decimals() // provider.rate() // self.precisions[index]
        ).value

    def _live_balances(self) -> list[int]:
        return [
            self._to_converted(index, token.balance_of(self.address))
            for index, token in enumerate(self.tokens)
        ]

    def _touched(self, amounts: Sequence[int]) -> list[int]:
        return [index for index, amount in enumerate(amounts) if amount > 0]

    def _check_index(self, index: int) -> None:
        if not 0 <= index < self.n_coins:
            raise InvalidTokenIndex(f"Token index {index} out of range for {self.n_coins} tokens")

    def _check_amounts(self, amounts: Sequence[int]) -> None:
        if len(amounts) != self.n_coins:
            raise InvalidAmounts(f"Expected {self.n_coins} amounts, got {len(amounts)}")
        if any(amount < 0 for amount in amounts):
            raise InvalidAmounts("Amounts must be non-negative")

    def _check_swap(self, i: int, j: int, dx: int) -> None:
        self._check_index(i)
        self._check_index(j)
        if i == j:
            raise SameTokenSwap(f"Cannot swap token {i} with itself")
        if dx <= 0:
            raise ZeroAmount("Swap amount must be positive")

    def _set_fee_parameter(self, name: str, value: int) -> None:
        self.fee_config = self.fee_config.with_changes(**{name: value})
        self._emit(FeeModified(parameter=name, value=value))

    def _emit(self, event: Event) -> None:
        self.events.append(event)
        logger.info(event.log_key, pool=self.address, **event.as_dict())
