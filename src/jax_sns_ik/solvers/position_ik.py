"""Position IK by integrating SNS velocity solves."""

from logging import getLogger
from typing import Optional, Sequence, Tuple

import jax.numpy as jnp
import numpy as np

from ..chain import ChainFkSolver, ChainJacobianSolver
from ..core.kinematic_chain import Chain
from ..tasks import Task
from ..transforms import se3
from .base import INVALID_INPUT, MAX_ITERATIONS, SETUP_FAILURE, SUCCESS

logger = getLogger(__name__)


class SNSPositionIK:
    """Newton-style position solver on top of a velocity engine.

    Each iteration asks the velocity engine for the joint velocity that would
    close the current pose error within one control cycle, integrates it over
    one cycle and clamps the result to the joint position limits.

    Args:
        chain: Serial chain, base to tip.
        velocity_solver: Engine with limits already installed.
        eps: Convergence threshold on the norm of the pose error.
        max_iterations: Iteration budget before giving up.
    """

    def __init__(self, chain: Chain, velocity_solver, eps: float = 1e-5,
                 max_iterations: int = 150):
        self.chain = chain
        self.velocity_solver = velocity_solver
        self.eps = eps
        self.max_iterations = max_iterations
        self._fk = ChainFkSolver(chain)
        self._jacobian = ChainJacobianSolver(chain)

    def pose_error(self, q, pose) -> Tuple[int, Optional[np.ndarray]]:
        status, T = self._fk.jnt_to_cart(q)
        if status < 0:
            return status, None
        return SUCCESS, np.asarray(se3.pose_error(jnp.asarray(T), jnp.asarray(pose)))

    def converged(self, error: np.ndarray, tolerances: Optional[Sequence[float]] = None) -> bool:
        """Whether ``error`` is small enough to stop.

        Components whose magnitude is within the matching per-axis tolerance
        count as zero before the norm is compared against ``eps``.
        """
        if tolerances is not None:
            tolerances = np.abs(np.asarray(tolerances, dtype=np.float64))
            error = np.where(np.abs(error) <= tolerances, 0.0, error)
        return float(np.linalg.norm(error)) < self.eps

    def cart_to_jnt(self, q_init, pose, q_bias=None, bias_jacobian=None,
                    bias_indices: Optional[Sequence[int]] = None, gain: float = 1.0,
                    tolerances: Optional[Sequence[float]] = None) -> Tuple[int, Optional[np.ndarray]]:
        """Find joint positions that place the tip at ``pose``.

        Args:
            q_init: Starting joint positions (N,).
            pose: (4, 4) goal pose of the tip in the base frame.
            q_bias: Optional posture targets, one per row of ``bias_jacobian``.
            bias_jacobian: (k, N) selection matrix of the biased joints.
            bias_indices: Joint index of each row of ``bias_jacobian``.
            gain: Nullspace bias gain.
            tolerances: Optional per-axis error tolerances [x, y, z, rx, ry, rz].

        Returns:
            (status, q). SUCCESS with the converged positions, the engine's
            negative status, or MAX_ITERATIONS with the last iterate.
        """
        q = np.asarray(q_init, dtype=np.float64).ravel().copy()
        pose = np.asarray(pose, dtype=np.float64)
        if pose.shape != (4, 4):
            logger.error("Goal pose must be a 4x4 transform, got %s", pose.shape)
            return INVALID_INPUT, None

        use_bias = q_bias is not None and bias_jacobian is not None and len(q_bias) > 0
        if use_bias:
            q_bias = np.asarray(q_bias, dtype=np.float64)
            bias_indices = list(bias_indices)
            bias_jacobian = np.asarray(bias_jacobian, dtype=np.float64)

        rate = self.velocity_solver.loop_rate
        lower = self.velocity_solver.joint_lower_limits
        upper = self.velocity_solver.joint_upper_limits

        for iteration in range(self.max_iterations):
            status, error = self.pose_error(q, pose)
            if status < 0:
                return SETUP_FAILURE, None
            if self.converged(error, tolerances):
                logger.debug("Converged after %d iterations", iteration)
                return SUCCESS, q

            status, J = self._jacobian.jnt_to_jac(q)
            if status < 0:
                return SETUP_FAILURE, None

            tasks = [Task(jacobian=J, desired=error * rate)]
            if use_bias:
                tasks.append(Task(jacobian=bias_jacobian,
                                  desired=gain * (q_bias - q[bias_indices])))

            status, qdot = self.velocity_solver.get_joint_velocity(tasks, q)
            if status < 0:
                return status, q

            q = np.clip(q + qdot / rate, lower, upper)

        logger.debug("Position IK did not converge in %d iterations", self.max_iterations)
        return MAX_ITERATIONS, q
