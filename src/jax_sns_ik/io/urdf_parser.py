"""URDF parser for loading robot models into JAX-native data structures.

This module provides functionality to parse URDF documents and convert them
into RobotModel PyTree structures, keeping the per-joint limit and safety
controller data that the IK limit resolution needs.
"""

from collections import deque
from typing import Dict, List, Optional

import jax.numpy as jnp
import numpy as np
from lxml import etree

from jax_sns_ik.core.robot_model import (
    JointDescription,
    JointLimits,
    RobotModel,
    SafetyLimits,
)
from jax_sns_ik.transforms import se3


def load_urdf(urdf_path: str) -> RobotModel:
    """Load a URDF file and convert it to a RobotModel PyTree.

    Args:
        urdf_path: Path to the URDF file to load.

    Returns:
        RobotModel: A JAX-native robot representation.
    """
    tree = etree.parse(urdf_path)
    return _build_robot_model(tree.getroot())


def load_urdf_string(xml_string: str) -> RobotModel:
    """Parse a URDF document held in memory (e.g. a ``robot_description`` parameter).

    Args:
        xml_string: Complete URDF XML text.

    Returns:
        RobotModel: A JAX-native robot representation.
    """
    if isinstance(xml_string, str):
        xml_string = xml_string.encode("utf-8")
    root = etree.fromstring(xml_string)
    return _build_robot_model(root)


def _build_robot_model(root) -> RobotModel:
    # First pass: Build topology mappings
    link_map: Dict[str, int] = {}
    child_to_parent_map: Dict[str, str] = {}
    all_links = set()
    child_links = set()

    for link in root.findall('.//link'):
        all_links.add(link.get('name'))

    # Collect joints and build parent-child relationships
    joints_info = []
    for joint in root.findall('.//joint'):
        parent_elem = joint.find('parent')
        child_elem = joint.find('child')

        # <transmission> blocks also contain <joint> tags, without parent/child
        if parent_elem is None or child_elem is None:
            continue

        parent_name = parent_elem.get('link')
        child_name = child_elem.get('link')
        child_to_parent_map[child_name] = parent_name
        child_links.add(child_name)

        joints_info.append({
            'name': joint.get('name'),
            'type': joint.get('type'),
            'parent': parent_name,
            'child': child_name,
            'joint_elem': joint,
        })

    # Find root link (not a child of any joint)
    root_links = all_links - child_links
    if len(root_links) != 1:
        raise ValueError(f"Expected exactly one root link, found: {root_links}")
    root_link = list(root_links)[0]

    # Order links using breadth-first traversal from root
    ordered_links: List[str] = []
    queue = deque([root_link])
    visited = set()

    while queue:
        current_link = queue.popleft()
        if current_link in visited:
            continue

        visited.add(current_link)
        ordered_links.append(current_link)

        for joint_info in joints_info:
            if joint_info['parent'] == current_link:
                child = joint_info['child']
                if child not in visited:
                    queue.append(child)

    for i, link_name in enumerate(ordered_links):
        link_map[link_name] = i

    actuated_joint_names = [info['name'] for info in joints_info if info['type'] != 'fixed']

    # Second pass: Populate data arrays
    parent_indices_list = []
    joint_transforms_list = []
    joint_axes_list = []
    link_joints = []

    joint_by_child = {info['child']: info for info in joints_info}

    for i, link_name in enumerate(ordered_links):
        if link_name == root_link:
            parent_indices_list.append(i)  # Root parents itself
        else:
            parent_indices_list.append(link_map[child_to_parent_map[link_name]])

        if link_name not in joint_by_child:
            # Root link has identity transform and zero axis
            joint_transforms_list.append(jnp.eye(4))
            joint_axes_list.append(jnp.zeros(6))
            link_joints.append("")
            continue

        joint_info = joint_by_child[link_name]
        joint_elem = joint_info['joint_elem']
        joint_type = joint_info['type']
        link_joints.append(joint_info['name'])

        origin_elem = joint_elem.find('origin')
        if origin_elem is not None:
            xyz = _parse_vector(origin_elem.get('xyz', '0 0 0'))
            rpy = _parse_vector(origin_elem.get('rpy', '0 0 0'))
            R = _rpy_to_rotation_matrix(rpy)
            transform = se3.from_position_and_rotation(jnp.array(xyz), jnp.array(R))
        else:
            transform = jnp.eye(4)
        joint_transforms_list.append(transform)

        if joint_type in ('revolute', 'continuous', 'prismatic'):
            axis_elem = joint_elem.find('axis')
            if axis_elem is not None:
                axis_xyz = _parse_vector(axis_elem.get('xyz', '0 0 1'))
            else:
                axis_xyz = np.array([1.0, 0.0, 0.0])  # URDF default axis
            norm = np.linalg.norm(axis_xyz)
            if norm > 0.0:
                axis_xyz = axis_xyz / norm

            if joint_type == 'prismatic':
                # Prismatic: [vx, vy, vz, 0, 0, 0]
                axis = jnp.concatenate([jnp.array(axis_xyz), jnp.zeros(3)])
            else:
                # Revolute: [0, 0, 0, wx, wy, wz]
                axis = jnp.concatenate([jnp.zeros(3), jnp.array(axis_xyz)])
        else:
            axis = jnp.zeros(6)
        joint_axes_list.append(axis)

    joints = tuple(_parse_joint_description(info) for info in joints_info)

    return RobotModel(
        link_names=tuple(ordered_links),
        joint_names=tuple(actuated_joint_names),
        joints=joints,
        link_joints=tuple(link_joints),
        parent_indices=jnp.array(parent_indices_list, dtype=jnp.int32),
        joint_transforms=jnp.stack(joint_transforms_list),
        joint_axes=jnp.stack(joint_axes_list),
    )


def _parse_joint_description(joint_info: dict) -> JointDescription:
    joint_elem = joint_info['joint_elem']

    limits: Optional[JointLimits] = None
    limit_elem = joint_elem.find('limit')
    if limit_elem is not None:
        limits = JointLimits(
            lower=float(limit_elem.get('lower', 0.0)),
            upper=float(limit_elem.get('upper', 0.0)),
            velocity=float(limit_elem.get('velocity', 0.0)),
            effort=float(limit_elem.get('effort', 0.0)),
        )

    safety: Optional[SafetyLimits] = None
    safety_elem = joint_elem.find('safety_controller')
    if safety_elem is not None:
        safety = SafetyLimits(
            soft_lower_limit=float(safety_elem.get('soft_lower_limit', 0.0)),
            soft_upper_limit=float(safety_elem.get('soft_upper_limit', 0.0)),
            k_position=float(safety_elem.get('k_position', 0.0)),
            k_velocity=float(safety_elem.get('k_velocity', 0.0)),
        )

    return JointDescription(
        name=joint_info['name'],
        type=joint_info['type'],
        parent=joint_info['parent'],
        child=joint_info['child'],
        limits=limits,
        safety=safety,
    )


def _parse_vector(text: str) -> np.ndarray:
    return np.array([float(x) for x in text.split()])


def _rpy_to_rotation_matrix(rpy: np.ndarray) -> np.ndarray:
    """Convert roll-pitch-yaw angles to rotation matrix.

    Args:
        rpy: Array of [roll, pitch, yaw] angles in radians.

    Returns:
        3x3 rotation matrix.
    """
    roll, pitch, yaw = rpy

    R_x = np.array([
        [1, 0, 0],
        [0, np.cos(roll), -np.sin(roll)],
        [0, np.sin(roll), np.cos(roll)]
    ])

    R_y = np.array([
        [np.cos(pitch), 0, np.sin(pitch)],
        [0, 1, 0],
        [-np.sin(pitch), 0, np.cos(pitch)]
    ])

    R_z = np.array([
        [np.cos(yaw), -np.sin(yaw), 0],
        [np.sin(yaw), np.cos(yaw), 0],
        [0, 0, 1]
    ])

    # Combined rotation: R = R_z * R_y * R_x
    return R_z @ R_y @ R_x
