"""Constants shared across the pool engine."""

# Fixed-point unit every token balance is converted to (18 decimals)
PRECISION_DECIMALS = 18

# Fee rates are expressed as parts of FEE_DENOMINATOR (10^10 == 100%)
FEE_DENOMINATOR = 10**10

# Buffer percent is expressed as parts of BUFFER_DENOMINATOR (10^10 == 100%)
BUFFER_DENOMINATOR = 10**10

# Upper bound for the amplification coefficient
MAX_A = 10**6

# Newton-Raphson iteration cap for the invariant solver
MAX_ITERATIONS = 255

# Shares minted to DEAD_ADDRESS on the first mint of a ledger
NUMBER_OF_DEAD_SHARES = 1000
DEAD_ADDRESS = "0x000000000000000000000000000000000000dead"

# Default ramp window lower bound (1 day)
DEFAULT_MIN_RAMP_TIME = 86_400

# A ramp may move A by at most this factor in either direction
MAX_A_CHANGE_FACTOR = 10

# Pools with A at or below this value get a wider increase allowance
LOW_A_THRESHOLD = 2
