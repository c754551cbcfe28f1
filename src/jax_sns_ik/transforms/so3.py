"""SO(3) and so(3) Lie group operations in JAX.

Rotation matrices and axis-angle vectors. Used for joint motion in forward
kinematics and for orientation errors in position IK. All functions are
pure, JIT-able, and operate on JAX arrays.
"""

import jax
import jax.numpy as jnp

Array = jax.Array


def exp(log_r: Array) -> Array:
    """
    SO(3) exponential map: convert axis-angle vector to rotation matrix.

    Rodrigues' formula, with a Taylor expansion near zero angle.

    Args:
        log_r: (..., 3) array of axis-angle vectors

    Returns:
        (..., 3, 3) array of rotation matrices
    """
    angle = jnp.linalg.norm(log_r, axis=-1, keepdims=True)
    small_angle = angle < 1e-8
    safe_angle = jnp.where(small_angle, 1.0, angle)

    # A = sin(θ) / θ, B = (1 - cos(θ)) / θ²
    A = jnp.where(small_angle, 1.0 - angle**2 / 6.0, jnp.sin(safe_angle) / safe_angle)
    B = jnp.where(small_angle, 0.5 - angle**2 / 24.0,
                  (1.0 - jnp.cos(safe_angle)) / (safe_angle * safe_angle))
    K = skew_symmetric(log_r)

    I = jnp.broadcast_to(jnp.eye(3, dtype=log_r.dtype), log_r.shape[:-1] + (3, 3))

    # R = I + A [ω]× + B [ω]×²
    return I + A[..., None] * K + B[..., None] * jnp.matmul(K, K)


def log(R: Array) -> Array:
    """
    SO(3) logarithm map: convert rotation matrix to axis-angle vector.

    Handles the small-angle and near-π cases separately.

    Args:
        R: (..., 3, 3) array of rotation matrices

    Returns:
        (..., 3) array of axis-angle vectors
    """
    trace = jnp.trace(R, axis1=-2, axis2=-1)
    cos_angle = jnp.clip((trace - 1.0) / 2.0, -1.0, 1.0)
    angle = jnp.arccos(cos_angle)

    small_angle = angle < 1e-8
    near_pi = jnp.abs(angle - jnp.pi) < 1e-6

    sin_angle = jnp.where(small_angle, 1.0 - angle**2 / 6.0, jnp.sin(angle))

    skew_part = jnp.stack([
        R[..., 2, 1] - R[..., 1, 2],
        R[..., 0, 2] - R[..., 2, 0],
        R[..., 1, 0] - R[..., 0, 1]
    ], axis=-1)

    axis_small = skew_part / 2.0
    axis_general = skew_part / (2.0 * jnp.where(near_pi, 1.0, sin_angle)[..., None])

    # Near π the skew part vanishes; the axis is the dominant column of (R + I) / 2
    B = (R + jnp.eye(3, dtype=R.dtype)) / 2.0
    diag_vals = jnp.diagonal(B, axis1=-2, axis2=-1)
    max_idx = jnp.argmax(diag_vals, axis=-1)
    axis_pi = jnp.take_along_axis(B, max_idx[..., None, None], axis=-1)[..., 0]
    axis_pi = axis_pi / jnp.linalg.norm(axis_pi, axis=-1, keepdims=True)

    return jnp.where(
        small_angle[..., None],
        axis_small,
        angle[..., None] * jnp.where(near_pi[..., None], axis_pi, axis_general),
    )


def skew_symmetric(v: Array) -> Array:
    """
    Convert 3D vector to skew-symmetric matrix.

    Args:
        v: (..., 3) vector

    Returns:
        (..., 3, 3) skew-symmetric matrix
    """
    zeros = jnp.zeros(v.shape[:-1], dtype=v.dtype)

    return jnp.stack([
        jnp.stack([zeros, -v[..., 2], v[..., 1]], axis=-1),
        jnp.stack([v[..., 2], zeros, -v[..., 0]], axis=-1),
        jnp.stack([-v[..., 1], v[..., 0], zeros], axis=-1)
    ], axis=-2)
