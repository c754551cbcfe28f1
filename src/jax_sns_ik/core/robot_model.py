"""RobotModel PyTree data structure for JAX-native robot representation.

This module defines the core data structure for representing robots in a
stateless, immutable format that is fully compatible with JAX transformations,
together with the per-joint limit records read from the robot description.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from flax import struct
from jax import Array


@dataclass(frozen=True)
class JointLimits:
    """Hard limits declared by a URDF ``<limit>`` element."""
    lower: float = 0.0
    upper: float = 0.0
    velocity: float = 0.0
    effort: float = 0.0


@dataclass(frozen=True)
class SafetyLimits:
    """Soft limits declared by a URDF ``<safety_controller>`` element."""
    soft_lower_limit: float = 0.0
    soft_upper_limit: float = 0.0
    k_position: float = 0.0
    k_velocity: float = 0.0


@dataclass(frozen=True)
class JointDescription:
    """Description-model view of one joint.

    Attributes:
        name: Joint name, unique within the robot.
        type: URDF joint type string ("revolute", "continuous", "prismatic",
              "fixed", "floating", "planar").
        parent: Parent link name.
        child: Child link name.
        limits: Hard limits, or None when the description declares none.
        safety: Soft limits, or None when no safety controller is declared.
    """
    name: str
    type: str
    parent: str
    child: str
    limits: Optional[JointLimits] = None
    safety: Optional[SafetyLimits] = None


@struct.dataclass
class RobotModel:
    """Immutable PyTree representation of a robot's kinematic structure.

    This dataclass represents a robot as a flattened tree structure using
    integer indices for parent-child relationships. All kinematic data is
    stored in JAX arrays; names and joint descriptions are static fields.

    Attributes:
        link_names: Tuple of all link names. Index corresponds to link ID.
        joint_names: Tuple of all actuated (non-fixed) joint names.
        joints: Tuple of JointDescription for every joint in the description,
                in document order.
        link_joints: Tuple parallel to ``link_names`` holding the name of the
                     joint that connects each link to its parent ("" for the root).
        parent_indices: Array of shape (num_links,) where parent_indices[i]
                       is the parent link index of link i. Root link parents itself.
        joint_transforms: Array of shape (num_links, 4, 4) containing SE(3)
                         transformations from each link to its parent.
        joint_axes: Array of shape (num_links, 6) containing 6D se(3) twist
                   vectors for each joint. [vx,vy,vz,wx,wy,wz] format.
    """
    link_names: Tuple[str, ...] = struct.field(pytree_node=False)
    joint_names: Tuple[str, ...] = struct.field(pytree_node=False)
    joints: Tuple[JointDescription, ...] = struct.field(pytree_node=False)
    link_joints: Tuple[str, ...] = struct.field(pytree_node=False)
    parent_indices: Array
    joint_transforms: Array
    joint_axes: Array

    def get_joint(self, name: str) -> Optional[JointDescription]:
        """Look up a joint description by name, or None if absent."""
        for joint in self.joints:
            if joint.name == name:
                return joint
        return None
