"""Pool engine error classes.

Every failure rejects the whole call. The grouping mirrors when a check runs:
- PoolValidationError: malformed input, raised before any computation
- SlippageError: result worse than the caller's bound, raised before effects
- StatePreconditionError: the pool is not in a state that allows the call
- LedgerError / RampError: raised by the share ledger and the ramp controller
- NumericalError: the Newton-Raphson solver did not converge
- TokenError: a token collaborator rejected a transfer
"""


class StablePoolError(Exception):
    """Base error for the pool engine."""

    pass


# =============================================================================
# Validation
# =============================================================================


class PoolValidationError(StablePoolError):
    """Input shape or value is invalid."""

    pass


class InvalidAmounts(PoolValidationError):
    """Amounts are malformed or out of range for the pool state."""

    pass


class InvalidTokenIndex(PoolValidationError):
    """Token index is outside the pool's token list."""

    pass


class SameTokenSwap(PoolValidationError):
    """Input and output token of a swap are the same."""

    pass


class ZeroAmount(PoolValidationError):
    """A required amount is zero."""

    pass


class InvalidPoolConfig(PoolValidationError):
    """Pool construction arguments are inconsistent."""

    pass


class InvalidFeeConfig(PoolValidationError):
    """Fee rate or fee tuning parameter is out of range."""

    pass


# =============================================================================
# Slippage
# =============================================================================


class SlippageError(StablePoolError):
    """Economic result violates the caller's declared bound."""

    pass


class InsufficientMintAmount(SlippageError):
    """Minted amount is below min_mint_amount."""

    pass


class InsufficientSwapOutAmount(SlippageError):
    """Swap output is below min_dy."""

    pass


class InsufficientRedeemAmount(SlippageError):
    """A redeemed token amount is below its minimum."""

    pass


class MaxRedeemAmountExceeded(SlippageError):
    """Amount to burn for a multi-token redeem exceeds max_redeem_amount."""

    pass


class InsufficientDonationAmount(SlippageError):
    """Donated D is below min_donation_amount."""

    pass


# =============================================================================
# State preconditions
# =============================================================================


class StatePreconditionError(StablePoolError):
    """The pool is not in a state that allows the call."""

    pass


class PoolPaused(StatePreconditionError):
    """Operation is not allowed while the pool is paused."""

    pass


class PoolNotPaused(StatePreconditionError):
    """Operation is only allowed while the pool is paused."""

    pass


class PoolEmpty(StatePreconditionError):
    """Operation needs existing liquidity."""

    pass


class NoLosses(StatePreconditionError):
    """distribute_loss found no loss to distribute."""

    pass


class ReentrancyError(StatePreconditionError):
    """A mutating call was made while another one is executing."""

    pass


# =============================================================================
# Share ledger
# =============================================================================


class LedgerError(StablePoolError):
    """Base error for the share ledger."""

    pass


class UnauthorizedCaller(LedgerError):
    """Caller is not an authorised pool of this ledger."""

    pass


class InsufficientShares(LedgerError):
    """Account does not hold enough shares."""

    pass


class InsufficientAllowance(LedgerError):
    """Spender allowance is too low."""

    pass


class InsufficientBuffer(LedgerError):
    """Loss exceeds the buffer and bad debt is not allowed."""

    pass


class InvalidBufferPercent(LedgerError):
    """Buffer percent exceeds BUFFER_DENOMINATOR."""

    pass


class LedgerZeroAmount(LedgerError):
    """Ledger operation with a zero amount."""

    pass


class InsufficientSupply(LedgerError):
    """Supply reduction exceeds the distributed total supply."""

    pass


# =============================================================================
# Ramp controller
# =============================================================================


class RampError(StablePoolError):
    """Base error for A ramp scheduling."""

    pass


class InvalidFutureTime(RampError):
    """Ramp end time is not in the future."""

    pass


class InsufficientRampTime(RampError):
    """Ramp window is shorter than min_ramp_time."""

    pass


class AOutOfBounds(RampError):
    """Target A is zero or above MAX_A."""

    pass


class ExcessiveAChange(RampError):
    """Target A moves too far from the current A."""

    pass


# =============================================================================
# Numerical
# =============================================================================


class NumericalError(StablePoolError):
    """Solver failure on well-formed input."""

    pass


class InvariantDidNotConverge(NumericalError):
    """Newton-Raphson iteration for the invariant D did not converge."""

    pass


class BalanceDidNotConverge(NumericalError):
    """Newton-Raphson iteration for a single balance did not converge."""

    pass


# =============================================================================
# Tokens
# =============================================================================


class TokenError(StablePoolError):
    """Transfer failure reported by a token collaborator."""

    pass


class InsufficientBalance(TokenError):
    """Sender does not hold enough tokens."""

    pass


class InsufficientTokenAllowance(TokenError):
    """Spender is not approved for the transfer amount."""

    pass


# =============================================================================
# Simulator
# =============================================================================


class UnknownPool(StablePoolError):
    """No pool is registered under the requested id."""

    pass
