"""StableSwap invariant solver.

Pure Newton-Raphson routines for the invariant

    A * n^n * sum(x_i) + D = A * n^n * D + D^(n+1) / (n^n * prod(x_i))

Balances are integers in the pool's common 18-decimal unit. All intermediate
arithmetic goes through SafeInt, so a division by zero or a negative
intermediate raises instead of producing a wrong root.
"""

from stablepool.constants import MAX_ITERATIONS
from stablepool.errors import (
    AOutOfBounds,
    BalanceDidNotConverge,
    InvalidTokenIndex,
    InvariantDidNotConverge,
)
from stablepool.safe_int import S


def _amp_times_n_pow_n(amp: int, n_coins: int) -> int:
    if amp <= 0:
        raise AOutOfBounds(f"A must be positive, got {amp}")
    return amp * n_coins**n_coins


def compute_d(balances: list[int], amp: int) -> int:
    """Calculate the invariant D for the given balances.

    Algorithm:
        1. Substitute 1 for every zero balance (keeps the product non-zero)
        2. Initial guess: D = sum(balances)
        3. Iterate D = (Ann*S + n*D_P) * D / ((Ann - 1) * D + (n + 1) * D_P)
           with D_P = D^(n+1) / (n^n * prod(balances)), until |D_new - D| <= 1
        4. Max iterations: 255

    Args:
        balances: Converted token balances (18 decimals)
        amp: Amplification coefficient A (unscaled)

    Returns:
        The invariant D, or 0 if every balance is zero

    Raises:
        InvariantDidNotConverge: If iteration doesn't converge
        AOutOfBounds: If amp is not positive
    """
    n_coins = len(balances)
    if n_coins == 0 or all(b == 0 for b in balances):
        return 0

    xp = [max(b, 1) for b in balances]
    ann = S(_amp_times_n_pow_n(amp, n_coins))
    sum_balances = S(sum(xp))

    d = sum_balances
    for _ in range(MAX_ITERATIONS):
        # d_p = D^(n+1) / (n^n * prod(x)), built one balance at a time
        d_p = d
        for x in xp:
            d_p = d_p * d // (S(x) * n_coins)

        d_prev = d
        numerator = (ann * sum_balances + d_p * n_coins) * d
        denominator = (ann - 1) * d + d_p * (n_coins + 1)
        d = numerator // denominator

        if d.abs_diff(d_prev) <= 1:
            return d.value

    raise InvariantDidNotConverge(
        f"Invariant did not converge after {MAX_ITERATIONS} iterations"
    )


def compute_balance_for(balances: list[int], token_index: int, d: int, amp: int) -> int:
    """Solve for balances[token_index] given D and all other balances.

    The current value at token_index is ignored. Zero balances among the
    others are treated as 1, as in compute_d.

    Args:
        balances: Converted token balances (18 decimals)
        token_index: Index of the balance to solve for
        d: The invariant to preserve
        amp: Amplification coefficient A (unscaled)

    Returns:
        The balance y such that the invariant holds, rounded down by the
        integer iteration (callers subtract one more unit before paying out)

    Raises:
        BalanceDidNotConverge: If iteration doesn't converge
        InvalidTokenIndex: If token_index is out of range
    """
    n_coins = len(balances)
    if not 0 <= token_index < n_coins:
        raise InvalidTokenIndex(f"token_index {token_index} out of range for {n_coins} tokens")

    ann = S(_amp_times_n_pow_n(amp, n_coins))
    d_s = S(d)

    # c = D^(n+1) / (n^n * prod(others) * Ann), b = sum(others) + D / Ann
    c = d_s
    sum_others = S(0)
    for i, balance in enumerate(balances):
        if i == token_index:
            continue
        x = max(balance, 1)
        sum_others = sum_others + x
        c = c * d_s // (S(x) * n_coins)
    c = c * d_s // (ann * n_coins)
    b = sum_others + d_s // ann

    y = d_s
    for _ in range(MAX_ITERATIONS):
        y_prev = y
        # y = (y^2 + c) / (2y + b - D)
        y = (y * y + c) // (y * 2 + b - d_s)

        if y.abs_diff(y_prev) <= 1:
            return y.value

    raise BalanceDidNotConverge(
        f"Balance did not converge after {MAX_ITERATIONS} iterations"
    )
