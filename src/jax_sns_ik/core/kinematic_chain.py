"""Serial kinematic chains extracted from a robot tree.

A ``Chain`` is the ordered list of segments between a base link and a tip link.
Each segment carries the joint that moves it, tagged with a joint-kind string:
``"RotAxis"`` and ``"TransAxis"`` for movable joints, ``"Fixed"`` and ``"None"``
(unknown) for joints that contribute no degree of freedom.
"""

from dataclasses import dataclass
from typing import List, Sequence, Tuple

import jax.numpy as jnp
import numpy as np
from flax import struct
from jax import Array

from .robot_model import RobotModel

ROTATIONAL_KIND = "RotAxis"
TRANSLATIONAL_KIND = "TransAxis"
FIXED_KIND = "Fixed"
UNKNOWN_KIND = "None"

NON_MOVABLE_KINDS = (FIXED_KIND, UNKNOWN_KIND)

_ROTATIONAL_MARKER = "Rot"
_TRANSLATIONAL_MARKER = "Trans"

_URDF_KINDS = {
    "revolute": ROTATIONAL_KIND,
    "continuous": ROTATIONAL_KIND,
    "prismatic": TRANSLATIONAL_KIND,
    "fixed": FIXED_KIND,
}


def is_movable(kind: str) -> bool:
    return kind not in NON_MOVABLE_KINDS


def is_rotational(kind: str) -> bool:
    return _ROTATIONAL_MARKER in kind


def is_translational(kind: str) -> bool:
    return _TRANSLATIONAL_MARKER in kind


@dataclass(frozen=True)
class Segment:
    """Plain description of one chain segment, used to build a Chain by hand.

    Attributes:
        name: Name of the link this segment ends in.
        joint_name: Name of the joint moving this segment.
        joint_kind: Joint-kind string (see module docstring).
        origin: 4x4 transform from the previous segment frame to the joint frame.
        axis: Joint axis expressed in the joint frame.
    """
    name: str
    joint_name: str
    joint_kind: str = ROTATIONAL_KIND
    origin: Tuple[Tuple[float, ...], ...] = tuple(tuple(row) for row in np.eye(4))
    axis: Tuple[float, float, float] = (0.0, 0.0, 1.0)


@struct.dataclass
class Chain:
    """Immutable PyTree of a serial chain, base to tip.

    Attributes:
        segment_names: Link name at the end of each segment.
        joint_names: Joint name of each segment (fixed joints included).
        joint_kinds: Joint-kind string of each segment.
        origins: Array of shape (num_segments, 4, 4), joint frame relative to the
                 previous segment frame.
        axes: Array of shape (num_segments, 3), unit joint axes in the joint frame.
    """
    segment_names: Tuple[str, ...] = struct.field(pytree_node=False)
    joint_names: Tuple[str, ...] = struct.field(pytree_node=False)
    joint_kinds: Tuple[str, ...] = struct.field(pytree_node=False)
    origins: Array
    axes: Array

    @property
    def num_segments(self) -> int:
        return len(self.segment_names)

    @property
    def num_joints(self) -> int:
        """Number of movable joints (fixed and unknown joints excluded)."""
        return sum(1 for kind in self.joint_kinds if is_movable(kind))

    @property
    def movable_joint_names(self) -> Tuple[str, ...]:
        return tuple(name for name, kind in zip(self.joint_names, self.joint_kinds)
                     if is_movable(kind))

    @classmethod
    def from_segments(cls, segments: Sequence[Segment]) -> "Chain":
        """Build a chain from a list of Segment records."""
        if not segments:
            return cls(
                segment_names=(), joint_names=(), joint_kinds=(),
                origins=jnp.zeros((0, 4, 4)), axes=jnp.zeros((0, 3)),
            )
        axes = np.array([s.axis for s in segments], dtype=np.float64)
        norms = np.linalg.norm(axes, axis=1, keepdims=True)
        axes = np.where(norms > 0.0, axes / np.where(norms > 0.0, norms, 1.0), axes)
        return cls(
            segment_names=tuple(s.name for s in segments),
            joint_names=tuple(s.joint_name for s in segments),
            joint_kinds=tuple(s.joint_kind for s in segments),
            origins=jnp.array([np.asarray(s.origin, dtype=np.float64) for s in segments]),
            axes=jnp.array(axes),
        )


def extract_chain(robot: RobotModel, base_link: str, tip_link: str) -> Chain:
    """Extract the serial chain from ``base_link`` to ``tip_link``.

    The tip must be a descendant of the base; walking up the tree from the tip
    must reach the base.

    Args:
        robot: RobotModel loaded from a robot description.
        base_link: Name of the chain root link.
        tip_link: Name of the chain end link.

    Returns:
        Chain with one segment per joint between base and tip.

    Raises:
        ValueError: If either link is unknown or the tip does not descend from
                    the base.
    """
    try:
        base_idx = robot.link_names.index(base_link)
    except ValueError:
        raise ValueError(f"Link '{base_link}' not found in robot model")
    try:
        tip_idx = robot.link_names.index(tip_link)
    except ValueError:
        raise ValueError(f"Link '{tip_link}' not found in robot model")

    parent_indices = np.asarray(robot.parent_indices)

    # Walk from the tip up to the base, then reverse into base->tip order.
    path: List[int] = []
    current = tip_idx
    while current != base_idx:
        parent = int(parent_indices[current])
        if parent == current:
            raise ValueError(f"Couldn't find chain {base_link} to {tip_link}")
        path.append(current)
        current = parent
    path.reverse()

    joints_by_name = {joint.name: joint for joint in robot.joints}
    segments = []
    for link_idx in path:
        joint_name = robot.link_joints[link_idx]
        joint = joints_by_name.get(joint_name)
        kind = _URDF_KINDS.get(joint.type, UNKNOWN_KIND) if joint is not None else UNKNOWN_KIND

        twist = np.asarray(robot.joint_axes[link_idx])
        if kind == TRANSLATIONAL_KIND:
            axis = twist[:3]
        elif kind == ROTATIONAL_KIND:
            axis = twist[3:]
        else:
            axis = np.array([0.0, 0.0, 1.0])

        segments.append(Segment(
            name=robot.link_names[link_idx],
            joint_name=joint_name,
            joint_kind=kind,
            origin=tuple(tuple(row) for row in np.asarray(robot.joint_transforms[link_idx])),
            axis=tuple(float(a) for a in axis),
        ))

    return Chain.from_segments(segments)
