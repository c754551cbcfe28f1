"""Prioritized task stacks for velocity IK.

A task is a Jacobian and the task-space velocity it should produce. Tasks are
passed to the velocity solvers as an ordered list: index 0 is the primary
Cartesian task, any later entry is satisfied only inside the null space of the
ones before it.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .exceptions import UnknownJointName, ValidationError


@dataclass(frozen=True, eq=False)
class Task:
    """One level of the task stack.

    Attributes:
        jacobian: (m, N) task Jacobian.
        desired: (m,) desired task velocity.
    """
    jacobian: np.ndarray
    desired: np.ndarray

    @property
    def dimension(self) -> int:
        return self.desired.shape[0]


@dataclass(frozen=True, eq=False)
class BiasMapping:
    """Selection of a subset of joints for a posture-bias task.

    Attributes:
        jacobian: (k, N) selection matrix with a single 1 per row.
        indices: Column (joint index) selected by each row.
    """
    jacobian: np.ndarray
    indices: Tuple[int, ...]


def build_bias_mapping(bias_names: Sequence[str], joint_names: Sequence[str]) -> BiasMapping:
    """Map named joints onto their columns in the full joint space.

    Args:
        bias_names: Joints to bias, one per row of the result.
        joint_names: Names of all N chain joints, in chain order.

    Returns:
        BiasMapping of shape (len(bias_names), N).

    Raises:
        UnknownJointName: For the first name missing from ``joint_names``.
    """
    joint_names = list(joint_names)
    indices = []
    for name in bias_names:
        try:
            indices.append(joint_names.index(name))
        except ValueError:
            raise UnknownJointName(name)

    selection = np.zeros((len(indices), len(joint_names)))
    selection[np.arange(len(indices)), np.asarray(indices, dtype=int)] = 1.0
    return BiasMapping(jacobian=selection, indices=tuple(indices))


def check_bias_request(q_bias: Sequence[float], bias_names: Sequence[str]) -> None:
    """Raise ValidationError unless there is exactly one bias value per name."""
    if len(q_bias) != len(bias_names):
        raise ValidationError(
            "Number of joint bias and names differ in nullspace bias request.")


def nullspace_bias_velocity(q, q_bias, indices: Sequence[int], gain: float,
                            loop_rate: float) -> np.ndarray:
    """Proportional per-cycle velocity driving the biased joints toward ``q_bias``."""
    q = np.asarray(q, dtype=np.float64)
    q_bias = np.asarray(q_bias, dtype=np.float64)
    return gain * (q_bias - q[list(indices)]) / loop_rate


def build_velocity_request(q, twist, jacobian, bias_mapping: Optional[BiasMapping] = None,
                           q_bias=None, gain: float = 1.0,
                           loop_rate: float = 100.0) -> List[Task]:
    """Assemble the task stack for one velocity IK solve.

    Args:
        q: Current joint positions (N,).
        twist: Desired tip twist [vx, vy, vz, wx, wy, wz].
        jacobian: (6, N) geometric Jacobian at ``q``.
        bias_mapping: Optional bias selection; adds a secondary task when given.
        q_bias: Bias targets, one per row of ``bias_mapping``.
        gain: Nullspace bias gain.
        loop_rate: Control loop rate in Hz.

    Returns:
        [primary Cartesian task] or [primary task, bias task].
    """
    tasks = [Task(
        jacobian=np.asarray(jacobian, dtype=np.float64),
        desired=np.asarray(twist, dtype=np.float64).reshape(6),
    )]

    if bias_mapping is not None:
        tasks.append(Task(
            jacobian=bias_mapping.jacobian,
            desired=nullspace_bias_velocity(q, q_bias, bias_mapping.indices, gain, loop_rate),
        ))
    return tasks
