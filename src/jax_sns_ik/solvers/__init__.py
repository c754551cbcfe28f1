"""SNS velocity and position IK solvers.

Status codes returned by every solver: 0 or positive is a success variant,
negative is a failure.
"""

from .base import (
    INFEASIBLE,
    INVALID_INPUT,
    MAX_ITERATIONS,
    NOT_INITIALIZED,
    SCALED,
    SETUP_FAILURE,
    SUCCESS,
    SolveStrategyKind,
)
from .position_ik import SNSPositionIK
from .registry import ActiveSolverState, SolverStrategyRegistry, make_velocity_solver
from .velocity_ik import (
    FOSNSVelocityIK,
    FSNSVelocityIK,
    OSNSsmVelocityIK,
    OSNSVelocityIK,
    SNSVelocityIK,
)

__all__ = [
    "SUCCESS",
    "SCALED",
    "SETUP_FAILURE",
    "NOT_INITIALIZED",
    "INFEASIBLE",
    "INVALID_INPUT",
    "MAX_ITERATIONS",
    "SolveStrategyKind",
    "SNSVelocityIK",
    "OSNSVelocityIK",
    "OSNSsmVelocityIK",
    "FSNSVelocityIK",
    "FOSNSVelocityIK",
    "SNSPositionIK",
    "ActiveSolverState",
    "SolverStrategyRegistry",
    "make_velocity_solver",
]
