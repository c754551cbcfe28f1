"""Forward kinematics and geometric Jacobian of a serial chain.

The functions here are pure JAX and JIT-compilable: the chain's joint kinds
are static PyTree fields, so the Python loop over segments unrolls at trace
time. ``ChainFkSolver`` and ``ChainJacobianSolver`` wrap them in the
status-returning form the IK solvers consume.
"""

from logging import getLogger
from typing import List, Optional, Tuple

import jax
import jax.numpy as jnp
import numpy as np
from jax import Array

from .core.kinematic_chain import Chain, is_movable, is_rotational, is_translational
from .transforms import se3

logger = getLogger(__name__)

E_SIZE_MISMATCH = -1


def _joint_frames(chain: Chain, q: Array) -> Tuple[Array, List[Tuple[Array, Array, bool]]]:
    """Walk the chain and collect every movable joint's world frame.

    Returns:
        Tip pose (4, 4) and, per movable joint, (joint frame, world axis, is_rotational).
    """
    T = jnp.eye(4, dtype=q.dtype)
    frames = []
    qi = 0
    for i, kind in enumerate(chain.joint_kinds):
        # Joint frame before the joint's own motion
        T = T @ chain.origins[i]
        if not is_movable(kind):
            continue

        axis = chain.axes[i]
        world_axis = T[:3, :3] @ axis
        if is_rotational(kind):
            motion = jnp.concatenate([jnp.zeros(3, dtype=q.dtype), axis * q[qi]])
            frames.append((T, world_axis, True))
        elif is_translational(kind):
            motion = jnp.concatenate([axis * q[qi], jnp.zeros(3, dtype=q.dtype)])
            frames.append((T, world_axis, False))
        else:
            raise ValueError(f"Joint '{chain.joint_names[i]}' has unsupported kind '{kind}'")
        T = T @ se3.exp(motion)
        qi += 1
    return T, frames


def forward_kinematics(chain: Chain, q: Array) -> Array:
    """Compute the tip pose of the chain.

    Args:
        chain: Serial chain, base to tip
        q: Joint positions of shape (num_joints,) for movable joints only

    Returns:
        4x4 SE(3) pose of the tip in the base frame
    """
    T_tip, _ = _joint_frames(chain, q)
    return T_tip


def jacobian(chain: Chain, q: Array) -> Array:
    """Compute the 6xN geometric Jacobian of the chain tip.

    Rows are [vx, vy, vz, wx, wy, wz] of the tip point, expressed in the base
    frame. A revolute column is [z × (p_tip − o), z]; a prismatic column is [z, 0].

    Args:
        chain: Serial chain, base to tip
        q: Joint positions of shape (num_joints,)

    Returns:
        (6, num_joints) Jacobian
    """
    T_tip, frames = _joint_frames(chain, q)
    p_tip = se3.get_position(T_tip)

    columns = []
    for T_joint, z, rotational in frames:
        if rotational:
            columns.append(jnp.concatenate([jnp.cross(z, p_tip - se3.get_position(T_joint)), z]))
        else:
            columns.append(jnp.concatenate([z, jnp.zeros(3, dtype=q.dtype)]))

    if not columns:
        return jnp.zeros((6, 0), dtype=q.dtype)
    return jnp.stack(columns, axis=-1)


class ChainFkSolver:
    """Tip pose of a fixed chain, with size checking."""

    def __init__(self, chain: Chain):
        self.chain = chain
        self._fk = jax.jit(forward_kinematics)

    def jnt_to_cart(self, q) -> Tuple[int, Optional[np.ndarray]]:
        q = np.asarray(q, dtype=np.float64).ravel()
        if q.shape[0] != self.chain.num_joints:
            logger.error("Expected %d joint positions, got %d", self.chain.num_joints, q.shape[0])
            return E_SIZE_MISMATCH, None
        return 0, np.asarray(self._fk(self.chain, jnp.asarray(q)))


class ChainJacobianSolver:
    """Geometric Jacobian of a fixed chain, with size checking."""

    def __init__(self, chain: Chain):
        self.chain = chain
        self._jacobian = jax.jit(jacobian)

    def jnt_to_jac(self, q) -> Tuple[int, Optional[np.ndarray]]:
        """Return (0, J) on success or (negative status, None)."""
        q = np.asarray(q, dtype=np.float64).ravel()
        if q.shape[0] != self.chain.num_joints:
            logger.error("Expected %d joint positions, got %d", self.chain.num_joints, q.shape[0])
            return E_SIZE_MISMATCH, None
        return 0, np.asarray(self._jacobian(self.chain, jnp.asarray(q)))
