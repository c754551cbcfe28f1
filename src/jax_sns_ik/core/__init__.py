"""Core data structures for jax_sns_ik.

Robot and chain models in a JAX-native, immutable format, and the resolved
per-joint limit configuration consumed by the IK solvers.
"""

from .chain_config import (
    FLOAT_SENTINEL,
    ChainConfigResolver,
    JointBounds,
    JointType,
    KinematicChainConfig,
    tighten,
)
from .kinematic_chain import Chain, Segment, extract_chain
from .robot_model import JointDescription, JointLimits, RobotModel, SafetyLimits

__all__ = [
    "RobotModel",
    "JointDescription",
    "JointLimits",
    "SafetyLimits",
    "Chain",
    "Segment",
    "extract_chain",
    "JointType",
    "JointBounds",
    "KinematicChainConfig",
    "ChainConfigResolver",
    "FLOAT_SENTINEL",
    "tighten",
]
