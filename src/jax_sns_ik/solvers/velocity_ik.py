"""Saturation-in-the-null-space (SNS) velocity IK solvers.

Every solver maps a prioritized task stack to joint velocities that stay
inside a per-cycle velocity box. When the primary task cannot be met inside
the box, joints are saturated at their bounds one set at a time and the
remaining free joints take over the task; if that still fails, the task
velocity is scaled down by the largest factor that fits.

Lower-priority tasks are solved in the null space of every higher task and of
the saturated joints, and scaled so the combined velocity stays in the box.

The five variants differ only in which joints they saturate per iteration:

- ``SNSVelocityIK``: the single most critical joint.
- ``OSNSVelocityIK``: the violating joint whose saturation gives the largest scale.
- ``OSNSsmVelocityIK``: as OSNS, against a box shrunk by a scale margin.
- ``FSNSVelocityIK``: every violating joint at once.
- ``FOSNSVelocityIK``: as FSNS, then releases saturated joints that are not needed.

Reference: F. Flacco, A. De Luca, O. Khatib, "Control of Redundant Robots
Under Hard Joint Constraints: Saturation in the Null Space", IEEE T-RO 2015.
"""

from logging import getLogger
from typing import List, Optional, Sequence, Tuple

import numpy as np

from ..tasks import Task
from .base import INFEASIBLE, INVALID_INPUT, SCALED, SUCCESS

logger = getLogger(__name__)

_TOL = 1e-9


def null_space_basis(A: np.ndarray, num_columns: int, rcond: float = 1e-10) -> np.ndarray:
    """Orthonormal basis (num_columns, r) of the null space of ``A``."""
    if A.shape[0] == 0 or num_columns == 0:
        return np.eye(num_columns)
    _, S, Vt = np.linalg.svd(A, full_matrices=True)
    tol = rcond * max(A.shape) * (S[0] if S.size else 0.0)
    rank = int(np.sum(S > tol))
    return Vt[rank:].T


def max_feasible_scale(a: np.ndarray, b: np.ndarray, lower: np.ndarray,
                       upper: np.ndarray) -> Tuple[float, int]:
    """Largest s with lower <= a + s*b <= upper.

    Returns:
        (s, critical joint). s is ``inf`` when no joint limits the scale and
        ``-inf`` when no s is feasible; the critical joint is -1 in the former case.
    """
    if a.size == 0:
        return np.inf, -1

    moving = np.abs(b) > _TOL
    safe_b = np.where(moving, b, 1.0)
    to_upper = (upper - a) / safe_b
    to_lower = (lower - a) / safe_b

    s_max = np.where(moving, np.maximum(to_upper, to_lower), np.inf)
    s_min = np.where(moving, np.minimum(to_upper, to_lower), -np.inf)

    # A joint that does not move with s must already be inside the box
    static_ok = (a <= upper + _TOL) & (a >= lower - _TOL)
    if not np.all(static_ok | moving):
        return -np.inf, int(np.argmin(static_ok | moving))

    critical = int(np.argmin(s_max))
    scale = float(s_max[critical])
    if scale < max(float(np.max(s_min)), 0.0) - _TOL:
        return -np.inf, critical
    if np.isinf(scale):
        critical = -1
    return scale, critical


class SNSVelocityIK:
    """Standard SNS velocity solver.

    Args:
        num_joints: Number of joints N.
        loop_rate: Control loop rate in Hz, used to turn position limits into
                   per-cycle velocity limits.
    """

    def __init__(self, num_joints: int, loop_rate: float):
        if num_joints < 1:
            raise ValueError(f"num_joints must be positive, got {num_joints}")
        if loop_rate <= 0:
            raise ValueError(f"loop_rate must be positive, got {loop_rate}")

        self._num_joints = int(num_joints)
        self._loop_rate = float(loop_rate)
        self._lower = np.full(self._num_joints, -np.inf)
        self._upper = np.full(self._num_joints, np.inf)
        self._max_velocity = np.full(self._num_joints, np.inf)
        self._max_acceleration = np.zeros(self._num_joints)
        self._use_position_limits = True
        self._scale_factors: List[float] = []
        self._saturated = np.zeros(self._num_joints, dtype=bool)

    @property
    def num_joints(self) -> int:
        return self._num_joints

    @property
    def loop_rate(self) -> float:
        return self._loop_rate

    @property
    def joint_lower_limits(self) -> np.ndarray:
        return self._lower.copy()

    @property
    def joint_upper_limits(self) -> np.ndarray:
        return self._upper.copy()

    @property
    def uses_position_limits(self) -> bool:
        return self._use_position_limits

    def set_joints_capabilities(self, lower: Sequence[float], upper: Sequence[float],
                                velocity: Sequence[float],
                                acceleration: Sequence[float]) -> None:
        """Install joint limits. All arrays must have one entry per joint.

        A velocity limit of 0 locks the joint and ``inf`` leaves it unbounded;
        an acceleration limit of 0 disables stopping-distance shaping.
        """
        arrays = [np.asarray(values, dtype=np.float64).ravel()
                  for values in (lower, upper, velocity, acceleration)]
        for values in arrays:
            if values.shape[0] != self._num_joints:
                raise ValueError(
                    f"Expected {self._num_joints} joint limits, got {values.shape[0]}")
        self._lower, self._upper = arrays[0], arrays[1]
        self._max_velocity = np.abs(arrays[2])
        self._max_acceleration = np.abs(arrays[3])

    def use_position_limits(self, enable: bool) -> None:
        self._use_position_limits = bool(enable)

    def get_task_scale_factors(self) -> List[float]:
        """Scale factor applied to each task in the last solve."""
        return list(self._scale_factors)

    def get_saturated_joints(self) -> np.ndarray:
        """Mask of joints saturated by the primary task in the last solve."""
        return self._saturated.copy()

    def velocity_bounds(self, q: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Per-cycle joint velocity box at configuration ``q``."""
        lower = -self._max_velocity
        upper = self._max_velocity.copy()
        if self._use_position_limits:
            lower = np.maximum(lower, (self._lower - q) * self._loop_rate)
            upper = np.minimum(upper, (self._upper - q) * self._loop_rate)

            # Stopping distance: v² <= 2 a d
            accel = self._max_acceleration > 0
            if np.any(accel):
                to_lower = np.maximum(q - self._lower, 0.0)
                to_upper = np.maximum(self._upper - q, 0.0)
                lower = np.where(accel, np.maximum(
                    lower, -np.sqrt(2.0 * self._max_acceleration * to_lower)), lower)
                upper = np.where(accel, np.minimum(
                    upper, np.sqrt(2.0 * self._max_acceleration * to_upper)), upper)

            # Outside the position range the box collapses onto its nearest edge
            upper = np.maximum(upper, lower)
        return lower, upper

    def get_joint_velocity(self, tasks: Sequence[Task], q) -> Tuple[int, Optional[np.ndarray]]:
        """Solve the task stack at configuration ``q``.

        Returns:
            (status, joint velocities). Status is SUCCESS when the primary task
            is met exactly, SCALED when it is met at a reduced scale, INFEASIBLE
            when no motion along it fits the velocity box, and INVALID_INPUT
            (with None) for a mis-shaped request.
        """
        q = np.asarray(q, dtype=np.float64).ravel()
        if not self._valid_request(tasks, q):
            return INVALID_INPUT, None

        lower, upper = self.velocity_bounds(q)
        primary = tasks[0]
        scale, dq, saturated = self._solve_primary(primary.jacobian, primary.desired, lower, upper)
        self._saturated = saturated

        scales = [scale]
        higher = [primary.jacobian]
        for task in tasks[1:]:
            task_scale, dq = self._solve_secondary(task, dq, np.vstack(higher),
                                                   saturated, lower, upper)
            scales.append(task_scale)
            higher.append(task.jacobian)
        self._scale_factors = scales

        if scale >= 1.0 - _TOL:
            return SUCCESS, dq
        if scale > 0.0:
            return SCALED, dq
        return INFEASIBLE, dq

    def _valid_request(self, tasks: Sequence[Task], q: np.ndarray) -> bool:
        if q.shape[0] != self._num_joints:
            logger.error("Expected %d joint positions, got %d", self._num_joints, q.shape[0])
            return False
        if not tasks:
            logger.error("Empty task stack")
            return False
        for i, task in enumerate(tasks):
            J = task.jacobian
            if J.ndim != 2 or J.shape[1] != self._num_joints or J.shape[0] != task.desired.shape[0]:
                logger.error("Task %d has Jacobian %s and desired velocity %s",
                             i, J.shape, task.desired.shape)
                return False
        return True

    def _primary_terms(self, J: np.ndarray, xd: np.ndarray, saturated: np.ndarray,
                       dq_sat: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Split the primary solution into dq(s) = a + s*b for the given saturation set."""
        free = ~saturated
        J_free_pinv = np.linalg.pinv(J[:, free])
        a = dq_sat.copy()
        b = np.zeros(self._num_joints)
        # Free joints compensate the motion of the saturated ones
        a[free] = -J_free_pinv @ (J @ dq_sat)
        b[free] = J_free_pinv @ xd
        return a, b

    def _solve_primary(self, J: np.ndarray, xd: np.ndarray, lower: np.ndarray,
                       upper: np.ndarray) -> Tuple[float, np.ndarray, np.ndarray]:
        n = self._num_joints
        saturated = np.zeros(n, dtype=bool)
        dq_sat = np.zeros(n)
        full_rank = np.linalg.matrix_rank(J)

        best_scale = -np.inf
        best_dq = np.clip(np.zeros(n), lower, upper)
        best_saturated = saturated.copy()
        best_dq_sat = dq_sat.copy()

        for iteration in range(n + 1):
            a, b = self._primary_terms(J, xd, saturated, dq_sat)
            dq = a + b
            if self._within(dq, lower, upper):
                return self._refine(J, xd, 1.0, dq, saturated, dq_sat, lower, upper)

            scale, critical = max_feasible_scale(a, b, lower, upper)
            logger.debug("SNS iteration %d: scale %.4f, critical joint %d",
                         iteration, scale, critical)
            if scale > best_scale and scale >= 0.0:
                best_scale = min(scale, 1.0)
                best_dq = a + best_scale * b
                best_saturated = saturated.copy()
                best_dq_sat = dq_sat.copy()

            joints = self._select_saturation(J, xd, saturated, dq_sat, dq, lower, upper, critical)
            if not joints:
                break
            for j in joints:
                saturated[j] = True
                dq_sat[j] = upper[j] if dq[j] > upper[j] or (dq[j] >= lower[j] and b[j] > 0) \
                    else lower[j]

            if saturated.all() or np.linalg.matrix_rank(J[:, ~saturated]) < full_rank:
                break

        if best_scale < 0.0:
            return 0.0, best_dq, best_saturated
        return self._refine(J, xd, best_scale, best_dq, best_saturated, best_dq_sat, lower, upper)

    def _select_saturation(self, J, xd, saturated, dq_sat, dq, lower, upper,
                           critical: int) -> List[int]:
        """Joints to saturate next. Standard SNS takes the most critical one."""
        if critical < 0 or saturated[critical]:
            violating = self._violating(dq, lower, upper) & ~saturated
            return [int(np.argmax(violating))] if violating.any() else []
        return [critical]

    def _refine(self, J, xd, scale, dq, saturated, dq_sat, lower,
                upper) -> Tuple[float, np.ndarray, np.ndarray]:
        return scale, dq, saturated

    def _solve_secondary(self, task: Task, dq: np.ndarray, higher: np.ndarray,
                         saturated: np.ndarray, lower: np.ndarray,
                         upper: np.ndarray) -> Tuple[float, np.ndarray]:
        free = ~saturated
        basis = null_space_basis(higher[:, free], int(free.sum()))
        if basis.shape[1] == 0:
            return 0.0, dq

        Z = np.zeros((self._num_joints, basis.shape[1]))
        Z[free] = basis
        step = Z @ np.linalg.pinv(task.jacobian @ Z) @ (task.desired - task.jacobian @ dq)

        scale, _ = max_feasible_scale(dq, step, lower, upper)
        scale = float(np.clip(scale, 0.0, 1.0))
        return scale, dq + scale * step

    @staticmethod
    def _violating(dq, lower, upper) -> np.ndarray:
        return (dq > upper + _TOL) | (dq < lower - _TOL)

    @staticmethod
    def _within(dq, lower, upper) -> bool:
        return bool(np.all(dq <= upper + _TOL) and np.all(dq >= lower - _TOL))


class OSNSVelocityIK(SNSVelocityIK):
    """Optimal SNS: saturate the joint that leaves the largest task scale."""

    def _select_saturation(self, J, xd, saturated, dq_sat, dq, lower, upper,
                           critical: int) -> List[int]:
        candidates = np.flatnonzero(self._violating(dq, lower, upper) & ~saturated)
        best_joint, best_scale = -1, -np.inf
        for j in candidates:
            trial = saturated.copy()
            trial_sat = dq_sat.copy()
            trial[j] = True
            trial_sat[j] = upper[j] if dq[j] > upper[j] else lower[j]
            if trial.all():
                scale = 1.0 if self._within(trial_sat, lower, upper) else -np.inf
            else:
                a, b = self._primary_terms(J, xd, trial, trial_sat)
                scale, _ = max_feasible_scale(a, b, lower, upper)
            if scale > best_scale:
                best_joint, best_scale = int(j), scale
        if best_joint < 0:
            return super()._select_saturation(J, xd, saturated, dq_sat, dq, lower, upper, critical)
        return [best_joint]


class OSNSsmVelocityIK(OSNSVelocityIK):
    """Optimal SNS against a velocity box shrunk by ``scale_margin``."""

    def __init__(self, num_joints: int, loop_rate: float, scale_margin: float = 0.98):
        super().__init__(num_joints, loop_rate)
        if not 0.0 < scale_margin <= 1.0:
            raise ValueError(f"scale_margin must be in (0, 1], got {scale_margin}")
        self.scale_margin = scale_margin

    def velocity_bounds(self, q: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        lower, upper = super().velocity_bounds(q)
        return self.scale_margin * lower, self.scale_margin * upper


class FSNSVelocityIK(SNSVelocityIK):
    """Fast SNS: saturate every violating joint per iteration."""

    def _select_saturation(self, J, xd, saturated, dq_sat, dq, lower, upper,
                           critical: int) -> List[int]:
        return [int(j) for j in np.flatnonzero(self._violating(dq, lower, upper) & ~saturated)]


class FOSNSVelocityIK(FSNSVelocityIK):
    """Fast optimal SNS: fast saturation, then release joints that are not needed."""

    def _refine(self, J, xd, scale, dq, saturated, dq_sat, lower,
                upper) -> Tuple[float, np.ndarray, np.ndarray]:
        saturated = saturated.copy()
        dq_sat = dq_sat.copy()
        for j in np.flatnonzero(saturated):
            trial = saturated.copy()
            trial[j] = False
            trial_sat = dq_sat.copy()
            trial_sat[j] = 0.0
            a, b = self._primary_terms(J, xd, trial, trial_sat)
            trial_scale, _ = max_feasible_scale(a, b, lower, upper)
            trial_scale = min(trial_scale, 1.0)
            if trial_scale >= scale - _TOL:
                saturated, dq_sat = trial, trial_sat
                scale = trial_scale
                dq = a + scale * b
        return scale, dq, saturated
