"""Per-joint limit resolution for a kinematic chain.

Joint limits come from several sources that are applied in order, each one only
narrowing what the previous ones allowed:

1. the robot description (URDF ``<limit>``; continuous joints are unbounded),
2. the description's safety controller soft limits,
3. parameter overrides under ``<source>_planning/joint_limits/<joint>/``.

Each source is expressed as a ``LimitLayer`` and the final bounds are a left
fold of ``tighten`` over the layers. ``KinematicChainConfig.from_arrays``
validates the dense result against the chain and classifies every joint.
"""

import enum
from dataclasses import dataclass, field
from functools import reduce
from logging import getLogger
from typing import Any, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np

from jax_sns_ik.exceptions import ConfigurationError
from jax_sns_ik.io.parameters import LIMIT_KEYS, ParameterLookup, joint_limits_prefix

from .kinematic_chain import Chain, is_movable, is_rotational, is_translational
from .robot_model import JointDescription, RobotModel

logger = getLogger(__name__)

# Stand-in for an infinite position limit. Largest finite float32, so the
# bound survives a round trip through single-precision consumers.
FLOAT_SENTINEL = float(np.finfo(np.float32).max)


class JointType(enum.Enum):
    REVOLUTE = "revolute"
    CONTINUOUS = "continuous"
    PRISMATIC = "prismatic"


class JointBounds(NamedTuple):
    """Limits of a single joint. A velocity or acceleration of 0 means "unset"."""
    lower: float
    upper: float
    velocity: float = 0.0
    acceleration: float = 0.0


@dataclass(frozen=True)
class LimitLayer:
    """One source of joint limits. None fields leave the bound untouched."""
    lower: Optional[float] = None
    upper: Optional[float] = None
    velocity: Optional[float] = None
    acceleration: Optional[float] = None


def tighten(bounds: JointBounds, layer: LimitLayer) -> JointBounds:
    """Apply one limit layer to ``bounds``.

    Position limits can only shrink. A velocity limit is capped by the layer
    when a positive limit already exists, and installed otherwise. An
    acceleration limit replaces whatever was there.
    """
    lower, upper, velocity, acceleration = bounds
    if layer.lower is not None:
        lower = max(lower, layer.lower)
    if layer.upper is not None:
        upper = min(upper, layer.upper)
    if layer.velocity is not None:
        velocity = min(velocity, abs(layer.velocity)) if velocity > 0 else abs(layer.velocity)
    if layer.acceleration is not None:
        acceleration = abs(layer.acceleration)
    return JointBounds(lower, upper, velocity, acceleration)


def resolve_bounds(base: JointBounds, layers: Sequence[Optional[LimitLayer]]) -> JointBounds:
    """Fold ``tighten`` over the layers, skipping missing ones."""
    return reduce(tighten, (layer for layer in layers if layer is not None), base)


def classify_joint_kind(kind: str) -> Optional[JointType]:
    """Joint type implied by a chain joint-kind string, or None if unrecognized."""
    if is_rotational(kind):
        return JointType.REVOLUTE
    if is_translational(kind):
        return JointType.PRISMATIC
    return None


def _readonly(values: Any) -> np.ndarray:
    array = np.array(values, dtype=np.float64)
    array.setflags(write=False)
    return array


@dataclass(frozen=True, eq=False)
class KinematicChainConfig:
    """Validated, dense per-joint bounds of a chain's movable joints.

    All arrays have one entry per movable joint, in chain order. A velocity of
    0 locks its joint unless ``velocity_unset`` flags it as never configured.
    """
    lower: np.ndarray
    upper: np.ndarray
    velocity: np.ndarray
    acceleration: np.ndarray
    joint_names: Tuple[str, ...]
    joint_types: Tuple[JointType, ...] = field(default=())
    velocity_unset: Optional[np.ndarray] = None

    @property
    def num_joints(self) -> int:
        return len(self.joint_names)

    @property
    def effective_velocity(self) -> np.ndarray:
        """Velocity limits as the engines take them; unset limits are unbounded."""
        if self.velocity_unset is None:
            return self.velocity
        return np.where(self.velocity_unset, np.inf, self.velocity)

    @classmethod
    def from_arrays(cls, chain: Chain, lower: Sequence[float], upper: Sequence[float],
                    velocity: Sequence[float], acceleration: Sequence[float],
                    joint_names: Sequence[str],
                    velocity_unset: Optional[Sequence[bool]] = None) -> "KinematicChainConfig":
        """Validate bound arrays against ``chain`` and classify its joints.

        Args:
            velocity_unset: Optional per-joint flags marking velocity limits that
                no source configured. Defaults to every limit being explicit.

        Raises:
            ConfigurationError: On the first failed check, in this order: array
                lengths vs. the chain's joint count, zero movable joints, a joint
                whose kind is neither rotational nor translational.
        """
        if chain is None:
            raise ConfigurationError("No kinematic chain was provided.")

        lower = np.atleast_1d(np.asarray(lower, dtype=np.float64))
        upper = np.atleast_1d(np.asarray(upper, dtype=np.float64))
        velocity = np.atleast_1d(np.asarray(velocity, dtype=np.float64))
        acceleration = np.atleast_1d(np.asarray(acceleration, dtype=np.float64))
        joint_names = tuple(joint_names)

        num_joints = chain.num_joints
        checks = (
            (lower, "Number of joint lower bounds does not equal number of joints."),
            (upper, "Number of joint upper bounds does not equal number of joints."),
            (velocity, "Number of max joint velocity bounds does not equal number of joints."),
            (acceleration, "Number of max joint acceleration bounds does not equal number of joints."),
            (joint_names, "Number of joint names does not equal number of joints."),
        )
        for values, message in checks:
            if len(values) != num_joints:
                raise ConfigurationError(message)
        if len(joint_names) == 0:
            raise ConfigurationError(
                "Requested chain contains zero non-fixed joints. There is no IK to solve.")

        joint_types: List[JointType] = []
        for kind in chain.joint_kinds:
            joint_type = classify_joint_kind(kind)
            if joint_type is None:
                continue
            idx = len(joint_types)
            if (joint_type is JointType.REVOLUTE
                    and upper[idx] >= FLOAT_SENTINEL and lower[idx] <= -FLOAT_SENTINEL):
                joint_type = JointType.CONTINUOUS
            joint_types.append(joint_type)
        if len(joint_types) != len(lower):
            raise ConfigurationError(
                "Could not determine joint limits for all non-continuous joints")

        if velocity_unset is not None:
            velocity_unset = np.array(velocity_unset, dtype=bool).ravel()
            if len(velocity_unset) != num_joints:
                raise ConfigurationError(
                    "Number of velocity unset flags does not equal number of joints.")
            velocity_unset.setflags(write=False)

        return cls(
            lower=_readonly(lower),
            upper=_readonly(upper),
            velocity=_readonly(velocity),
            acceleration=_readonly(acceleration),
            joint_names=joint_names,
            joint_types=tuple(joint_types),
            velocity_unset=velocity_unset,
        )


class ChainConfigResolver:
    """Build a KinematicChainConfig from a chain, its description and overrides.

    Args:
        source_key: Name of the description source (e.g. "robot_description");
                    overrides are read under ``<source_key>_planning/joint_limits``.
    """

    def __init__(self, source_key: str = "robot_description"):
        self.source_key = source_key

    def resolve(self, chain: Chain, description: RobotModel,
                parameters: Optional[ParameterLookup] = None) -> KinematicChainConfig:
        """Resolve the limits of every movable joint of ``chain``.

        Args:
            chain: Serial chain, base to tip.
            description: Robot description holding the joints' URDF limits.
            parameters: Optional override lookup.

        Returns:
            Validated KinematicChainConfig.

        Raises:
            ConfigurationError: If a joint is missing from the description, lacks
                limits, has a non-numeric override, or validation fails.
        """
        lower, upper, velocity, acceleration, names, unset = [], [], [], [], [], []

        for joint_name, kind in zip(chain.joint_names, chain.joint_kinds):
            if not is_movable(kind):
                continue
            joint = description.get_joint(joint_name)
            if joint is None:
                raise ConfigurationError(
                    f"Joint '{joint_name}' not found in the robot description.")

            override = self._override_layer(joint_name, parameters)
            bounds = resolve_bounds(self._model_bounds(joint),
                                    [self._safety_layer(joint), override])

            lower.append(bounds.lower)
            upper.append(bounds.upper)
            velocity.append(bounds.velocity)
            acceleration.append(bounds.acceleration)
            names.append(joint_name)
            # An override of 0 freezes the joint; only a 0 nobody set is unbounded.
            unset.append(bounds.velocity == 0.0 and override.velocity is None)
            logger.info("Using joint %s lb: %.3f, ub: %.3f, v: %.3f, a: %.3f",
                        joint_name, *bounds)

        return KinematicChainConfig.from_arrays(chain, lower, upper, velocity, acceleration,
                                                names, velocity_unset=unset)

    @staticmethod
    def _model_bounds(joint: JointDescription) -> JointBounds:
        if joint.type == "continuous":
            return JointBounds(-FLOAT_SENTINEL, FLOAT_SENTINEL, 0.0, 0.0)
        if joint.limits is None:
            raise ConfigurationError(
                f"Joint '{joint.name}' of type '{joint.type}' declares no limits.")
        return JointBounds(joint.limits.lower, joint.limits.upper,
                           abs(joint.limits.velocity), 0.0)

    @staticmethod
    def _safety_layer(joint: JointDescription) -> Optional[LimitLayer]:
        if joint.type == "continuous" or joint.safety is None:
            return None
        return LimitLayer(lower=joint.safety.soft_lower_limit,
                          upper=joint.safety.soft_upper_limit)

    def _override_layer(self, joint_name: str,
                        parameters: Optional[ParameterLookup]) -> LimitLayer:
        # Acceleration defaults to 0: no acceleration limiting unless configured.
        if parameters is None:
            return LimitLayer(acceleration=0.0)

        prefix = joint_limits_prefix(self.source_key, joint_name)
        values = {}
        for key in LIMIT_KEYS:
            value = parameters.get(prefix + key)
            if value is None:
                continue
            try:
                values[key] = float(value)
            except (TypeError, ValueError):
                raise ConfigurationError(
                    f"Parameter '{prefix + key}' is not a number: {value!r}")

        return LimitLayer(
            lower=values.get("min_position"),
            upper=values.get("max_position"),
            velocity=values.get("max_velocity"),
            acceleration=values.get("max_acceleration", 0.0),
        )
