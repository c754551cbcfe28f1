"""
JAX SNS IK: inverse kinematics for redundant manipulators under hard joint limits.

Chain kinematics are JIT-compilable JAX; the saturation-in-the-null-space
velocity solvers run on numpy. ``SNSIK`` is the public entry point.
"""

import jax
jax.config.update("jax_enable_x64", True)

# Import core modules
from . import transforms
from . import core
from . import io
from . import solvers
from .exceptions import ConfigurationError, SNSIKError, UnknownJointName, ValidationError
from .solvers import SolveStrategyKind
from .sns_ik import SNSIK

__version__ = "0.1.0"
__all__ = [
    "transforms",
    "core",
    "io",
    "solvers",
    "SNSIK",
    "SolveStrategyKind",
    "SNSIKError",
    "ConfigurationError",
    "ValidationError",
    "UnknownJointName",
]
