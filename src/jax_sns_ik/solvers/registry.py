"""Ownership and runtime switching of the active velocity IK strategy."""

from dataclasses import dataclass
from logging import getLogger
from typing import Any, Callable, Dict, Optional

from ..core.chain_config import KinematicChainConfig
from ..core.kinematic_chain import Chain
from .base import SolveStrategyKind
from .position_ik import SNSPositionIK
from .velocity_ik import (FOSNSVelocityIK, FSNSVelocityIK, OSNSsmVelocityIK,
                          OSNSVelocityIK, SNSVelocityIK)

logger = getLogger(__name__)

VELOCITY_SOLVERS: Dict[SolveStrategyKind, Callable[[int, float], SNSVelocityIK]] = {
    SolveStrategyKind.STANDARD: SNSVelocityIK,
    SolveStrategyKind.OPTIMAL: OSNSVelocityIK,
    SolveStrategyKind.OPTIMAL_SCALE_MARGIN: OSNSsmVelocityIK,
    SolveStrategyKind.FAST: FSNSVelocityIK,
    SolveStrategyKind.FAST_OPTIMAL: FOSNSVelocityIK,
}

_DISPLAY_NAMES = {
    SolveStrategyKind.STANDARD: "Standard SNS",
    SolveStrategyKind.OPTIMAL: "SNS Optimal",
    SolveStrategyKind.OPTIMAL_SCALE_MARGIN: "SNS Optimal Scale Margin",
    SolveStrategyKind.FAST: "Fast SNS",
    SolveStrategyKind.FAST_OPTIMAL: "Fast Optimal SNS",
}


@dataclass(frozen=True)
class ActiveSolverState:
    """The velocity engine and the position solver built on it.

    Replaced as a whole on every strategy change, so both solvers always agree
    on kind and limits.
    """
    kind: Optional[SolveStrategyKind] = None
    velocity_solver: Any = None
    position_solver: Optional[SNSPositionIK] = None
    initialized: bool = False


def make_velocity_solver(kind: SolveStrategyKind, num_joints: int,
                         loop_rate: float) -> SNSVelocityIK:
    """Instantiate the engine for ``kind``. Raises KeyError for an unknown kind."""
    return VELOCITY_SOLVERS[kind](num_joints, loop_rate)


class SolverStrategyRegistry:
    """Holds the single active strategy of one IK facade."""

    def __init__(self):
        self.state = ActiveSolverState()

    @property
    def kind(self) -> Optional[SolveStrategyKind]:
        return self.state.kind

    @property
    def initialized(self) -> bool:
        return self.state.initialized

    @property
    def velocity_solver(self):
        return self.state.velocity_solver

    @property
    def position_solver(self) -> Optional[SNSPositionIK]:
        return self.state.position_solver

    def select(self, kind, num_joints: int, loop_rate: float,
               config: KinematicChainConfig, chain: Chain, eps: float) -> bool:
        """Make ``kind`` the active strategy.

        Args:
            kind: SolveStrategyKind or its string value.
            num_joints: Number of chain joints.
            loop_rate: Control loop rate in Hz.
            config: Resolved joint limits pushed into the new engine.
            chain: Chain the position solver integrates over.
            eps: Position solver convergence threshold.

        Returns:
            True if a new strategy was installed. False if ``kind`` is unknown,
            is already active, or its solvers could not be built; the previous
            state is kept in every such case.
        """
        try:
            kind = SolveStrategyKind(kind)
        except ValueError:
            logger.error("Unknown velocity solver type requested: %r", kind)
            return False

        if self.state.initialized and self.state.kind is kind:
            return False

        try:
            velocity_solver = make_velocity_solver(kind, num_joints, loop_rate)
            velocity_solver.set_joints_capabilities(
                config.lower, config.upper, config.effective_velocity, config.acceleration)
            velocity_solver.use_position_limits(False)
            position_solver = SNSPositionIK(chain, velocity_solver, eps)
        except ValueError as e:
            logger.error("Failed to create a new SNS velocity and position solver: %s", e)
            return False

        self.state = ActiveSolverState(kind=kind, velocity_solver=velocity_solver,
                                       position_solver=position_solver, initialized=True)
        logger.info("Set Velocity solver to %s solver.", _DISPLAY_NAMES[kind])
        return True
