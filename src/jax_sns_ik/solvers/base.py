"""Strategy kinds and status codes shared by the SNS solvers.

Status convention: 0 or positive is a success variant, negative is a failure.
Codes produced by a solver are passed through the facade unchanged.
"""

import enum

SUCCESS = 0
SCALED = 1  # primary task achieved at a reduced scale factor
SETUP_FAILURE = -1
NOT_INITIALIZED = SETUP_FAILURE
INFEASIBLE = -2
INVALID_INPUT = -3
MAX_ITERATIONS = -4


class SolveStrategyKind(enum.Enum):
    """Velocity IK strategy. Exactly one is active per solver facade."""
    STANDARD = "standard"
    OPTIMAL = "optimal"
    OPTIMAL_SCALE_MARGIN = "optimal_scale_margin"
    FAST = "fast"
    FAST_OPTIMAL = "fast_optimal"
