"""SE(3) rigid body transforms in JAX.

Homogeneous 4x4 matrices and 6D twists ordered [vx, vy, vz, wx, wy, wz]
(linear first, angular last), the same ordering the IK task stack uses.
"""

import jax
import jax.numpy as jnp

from . import so3

Array = jax.Array


def from_position_and_rotation(p: Array, R: Array) -> Array:
    """
    Construct SE(3) transform from position and rotation.

    Args:
        p: (..., 3) position vector
        R: (..., 3, 3) rotation matrix

    Returns:
        (..., 4, 4) homogeneous transformation matrix
    """
    batch_shape = jnp.broadcast_shapes(p.shape[:-1], R.shape[:-2])
    p = jnp.broadcast_to(p, batch_shape + (3,))
    R = jnp.broadcast_to(R, batch_shape + (3, 3))

    T = jnp.zeros(batch_shape + (4, 4), dtype=p.dtype)
    T = T.at[..., :3, :3].set(R)
    T = T.at[..., :3, 3].set(p)
    T = T.at[..., 3, 3].set(1.0)
    return T


def exp(twist: Array) -> Array:
    """
    SE(3) exponential map: convert twist to transformation matrix.

    Small angles use Taylor approximations of the V-matrix coefficients.

    Args:
        twist: (..., 6) array of twists [vx, vy, vz, wx, wy, wz].

    Returns:
        (..., 4, 4) array of transformation matrices.
    """
    v, w = twist[..., :3], twist[..., 3:]
    angle = jnp.linalg.norm(w, axis=-1, keepdims=True)
    angle_sq = angle * angle
    is_small_angle = angle < 1e-6
    safe_angle = jnp.where(is_small_angle, 1.0, angle)

    R = so3.exp(w)

    # A = (1 - cos θ) / θ², B = (θ - sin θ) / θ³
    A = jnp.where(is_small_angle, 0.5 - angle_sq / 24.0,
                  (1.0 - jnp.cos(safe_angle)) / (safe_angle * safe_angle))
    B = jnp.where(is_small_angle, 1.0 / 6.0 - angle_sq / 120.0,
                  (safe_angle - jnp.sin(safe_angle)) / (safe_angle ** 3))

    K = so3.skew_symmetric(w)
    I = jnp.broadcast_to(jnp.eye(3, dtype=twist.dtype), K.shape)
    V = I + A[..., None] * K + B[..., None] * jnp.matmul(K, K)

    t = jnp.einsum("...ij,...j->...i", V, v)
    return from_position_and_rotation(t, R)


def pose_error(T_current: Array, T_goal: Array) -> Array:
    """
    Twist that moves ``T_current`` onto ``T_goal``, expressed in the base frame.

    The linear part is the position difference; the angular part is the
    axis-angle vector of R_goal R_currentᵀ.

    Args:
        T_current: (..., 4, 4) current pose
        T_goal: (..., 4, 4) goal pose

    Returns:
        (..., 6) error twist [vx, vy, vz, wx, wy, wz]
    """
    dp = get_position(T_goal) - get_position(T_current)
    dR = jnp.matmul(get_rotation(T_goal), jnp.swapaxes(get_rotation(T_current), -1, -2))
    return jnp.concatenate([dp, so3.log(dR)], axis=-1)


def get_position(T: Array) -> Array:
    """(..., 3) translation part of a transform."""
    return T[..., :3, 3]


def get_rotation(T: Array) -> Array:
    """(..., 3, 3) rotation part of a transform."""
    return T[..., :3, :3]
