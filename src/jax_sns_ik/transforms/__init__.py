"""
JAX-based Lie group helpers used by the kinematics and IK solvers.

- SO(3) rotations (so3 module)
- SE(3) rigid body transforms (se3 module)

All functions are pure, stateless, and JIT-compilable.
"""

from . import so3
from . import se3

__all__ = [
    "so3",
    "se3",
]
