"""Public entry point: SNS inverse kinematics for one serial chain.

``SNSIK`` resolves the chain's joint limits once at construction, owns the
active velocity strategy and turns Cartesian requests into task stacks for
it. Expected failures never raise out of the facade; construction problems
leave it uninitialized and every solve then returns ``NOT_INITIALIZED``.
"""

from logging import getLogger
from typing import Optional, Sequence, Tuple

import numpy as np
from lxml import etree

from .chain import ChainJacobianSolver
from .core.chain_config import ChainConfigResolver, JointType, KinematicChainConfig
from .core.kinematic_chain import Chain, extract_chain
from .exceptions import ConfigurationError, ValidationError
from .io.parameters import DictParameterLookup, ParameterLookup
from .io.urdf_parser import load_urdf_string
from .solvers.base import INVALID_INPUT, NOT_INITIALIZED, SolveStrategyKind
from .solvers.registry import SolverStrategyRegistry
from .tasks import build_bias_mapping, build_velocity_request, check_bias_request

logger = getLogger(__name__)

_NOT_INITIALIZED_MESSAGE = "SNSIK was not properly initialized with a valid chain or limits."


class SNSIK:
    """Velocity and position IK with hard joint limits.

    Args:
        chain: Serial chain, base to tip.
        q_min: Lower position limit of each movable joint.
        q_max: Upper position limit of each movable joint.
        v_max: Maximum velocity of each movable joint; 0 locks the joint and
               ``inf`` leaves it unbounded.
        a_max: Maximum acceleration of each movable joint.
        joint_names: Name of each movable joint, in chain order.
        loop_rate: Control loop rate in Hz.
        eps: Position IK convergence threshold.
        solve_type: Initial velocity strategy.

    Example:
        >>> ik = SNSIK.from_urdf_file("arm.urdf", "base_link", "tool0")
        >>> status, qdot = ik.cart_to_jnt_vel(q, twist)
    """

    def __init__(self, chain: Chain, q_min: Sequence[float], q_max: Sequence[float],
                 v_max: Sequence[float], a_max: Sequence[float], joint_names: Sequence[str],
                 loop_rate: float = 100.0, eps: float = 1e-5,
                 solve_type: SolveStrategyKind = SolveStrategyKind.STANDARD):
        self._reset(loop_rate, eps, solve_type)
        try:
            config = KinematicChainConfig.from_arrays(chain, q_min, q_max, v_max, a_max,
                                                      joint_names)
        except ConfigurationError as e:
            logger.error("SNSIK: %s", e)
            return
        self._initialize(chain, config)

    def _reset(self, loop_rate: float, eps: float, solve_type) -> None:
        self._loop_rate = float(loop_rate)
        self._eps = float(eps)
        self._requested_kind = solve_type
        self._nullspace_gain = 1.0
        self._chain: Optional[Chain] = None
        self._config: Optional[KinematicChainConfig] = None
        self._jacobian_solver: Optional[ChainJacobianSolver] = None
        self._registry = SolverStrategyRegistry()

    def _initialize(self, chain: Chain, config: KinematicChainConfig) -> None:
        self._chain = chain
        self._config = config
        self._jacobian_solver = ChainJacobianSolver(chain)
        if not self.set_velocity_solve_type(self._requested_kind):
            logger.error("SNSIK: Failed to create a new SNS velocity and position solver.")

    @classmethod
    def _uninitialized(cls, loop_rate: float = 100.0, eps: float = 1e-5,
                       solve_type: SolveStrategyKind = SolveStrategyKind.STANDARD) -> "SNSIK":
        ik = cls.__new__(cls)
        ik._reset(loop_rate, eps, solve_type)
        return ik

    @classmethod
    def from_robot_description(cls, base_link: str, tip_link: str, parameters: ParameterLookup,
                               description_key: str = "robot_description",
                               loop_rate: float = 100.0, eps: float = 1e-5,
                               solve_type: SolveStrategyKind = SolveStrategyKind.STANDARD
                               ) -> "SNSIK":
        """Build a solver from a URDF held in a parameter lookup.

        Joint limits come from the URDF, tightened by its safety controllers and
        by overrides under ``<description_key>_planning/joint_limits``.

        Args:
            base_link: Chain root link.
            tip_link: Chain end link.
            parameters: Lookup holding the URDF XML under ``description_key``.
            description_key: Key of the robot description.
            loop_rate: Control loop rate in Hz.
            eps: Position IK convergence threshold.
            solve_type: Initial velocity strategy.

        Returns:
            SNSIK, uninitialized if the description or limits are unusable.
        """
        ik = cls._uninitialized(loop_rate, eps, solve_type)

        xml = parameters.get(description_key)
        if not xml:
            logger.error("SNSIK: Failed to load robot description from '%s'", description_key)
            return ik

        try:
            robot = load_urdf_string(xml)
            chain = extract_chain(robot, base_link, tip_link)
            config = ChainConfigResolver(description_key).resolve(chain, robot, parameters)
        except (ConfigurationError, ValueError, etree.XMLSyntaxError) as e:
            logger.error("SNSIK: %s", e)
            return ik

        ik._initialize(chain, config)
        return ik

    @classmethod
    def from_urdf_file(cls, path: str, base_link: str, tip_link: str,
                       parameters: Optional[DictParameterLookup] = None,
                       description_key: str = "robot_description", **kwargs) -> "SNSIK":
        """Build a solver from a URDF file on disk.

        ``parameters`` may carry joint-limit overrides. It is left untouched;
        the file's contents are served under ``description_key`` from a copy.
        """
        try:
            with open(path, 'r') as f:
                xml = f.read()
        except OSError as e:
            logger.error("SNSIK: Could not read robot description %s: %s", path, e)
            return cls._uninitialized(**kwargs)

        parameters = parameters.copy() if parameters is not None else DictParameterLookup()
        parameters.set(description_key, xml)
        return cls.from_robot_description(base_link, tip_link, parameters,
                                          description_key=description_key, **kwargs)

    def set_velocity_solve_type(self, kind) -> bool:
        """Switch the velocity strategy.

        Returns:
            True if a new strategy was installed. False when the facade has no
            valid limits, the kind is unknown or already active, or the
            solvers could not be built.
        """
        if self._config is None:
            return False
        return self._registry.select(kind, self._config.num_joints, self._loop_rate,
                                     self._config, self._chain, self._eps)

    def cart_to_jnt_vel(self, q, twist, q_bias: Optional[Sequence[float]] = None,
                        bias_names: Optional[Sequence[str]] = None
                        ) -> Tuple[int, Optional[np.ndarray]]:
        """Joint velocities realizing ``twist`` at configuration ``q``.

        Args:
            q: Current joint positions (N,).
            twist: Desired tip twist [vx, vy, vz, wx, wy, wz] in the base frame.
            q_bias: Optional posture targets for a nullspace bias task.
            bias_names: Joint of each ``q_bias`` entry.

        Returns:
            (status, qdot). Status is the velocity solver's, the Jacobian
            solver's failure status, INVALID_INPUT for a twist that is not
            6-long, or NOT_INITIALIZED when the facade or the bias request is
            unusable.
        """
        if not self.initialized:
            logger.error(_NOT_INITIALIZED_MESSAGE)
            return NOT_INITIALIZED, None

        twist = np.asarray(twist, dtype=np.float64)
        if twist.size != 6:
            logger.error("SNSIK: Expected a 6D twist, got shape %s", twist.shape)
            return INVALID_INPUT, None

        status, J = self._jacobian_solver.jnt_to_jac(q)
        if status < 0:
            logger.error("SNSIK: Jacobian computation failed")
            return status, None

        bias_mapping = None
        if q_bias is not None and len(q_bias) > 0:
            try:
                check_bias_request(q_bias, () if bias_names is None else bias_names)
                bias_mapping = build_bias_mapping(bias_names, self.joint_names)
            except ValidationError as e:
                logger.error("SNSIK: %s", e)
                return NOT_INITIALIZED, None

        tasks = build_velocity_request(q, twist, J, bias_mapping=bias_mapping, q_bias=q_bias,
                                       gain=self._nullspace_gain, loop_rate=self._loop_rate)
        return self._registry.velocity_solver.get_joint_velocity(tasks, q)

    def cart_to_jnt(self, q_init, pose, q_bias: Optional[Sequence[float]] = None,
                    bias_names: Optional[Sequence[str]] = None,
                    tolerances: Optional[Sequence[float]] = None
                    ) -> Tuple[int, Optional[np.ndarray]]:
        """Joint positions placing the tip at ``pose``.

        Args:
            q_init: Starting joint positions (N,).
            pose: (4, 4) goal pose of the tip in the base frame.
            q_bias: Optional posture targets for a nullspace bias task.
            bias_names: Joint of each ``q_bias`` entry.
            tolerances: Optional per-axis error tolerances [x, y, z, rx, ry, rz].

        Returns:
            (status, q). Status is the position solver's, or NOT_INITIALIZED
            when the facade or the bias request is unusable.
        """
        if not self.initialized:
            logger.error(_NOT_INITIALIZED_MESSAGE)
            return NOT_INITIALIZED, None

        position_solver = self._registry.position_solver
        if q_bias is None or len(q_bias) == 0:
            return position_solver.cart_to_jnt(q_init, pose, tolerances=tolerances)

        try:
            check_bias_request(q_bias, () if bias_names is None else bias_names)
            bias_mapping = build_bias_mapping(bias_names, self.joint_names)
        except ValidationError as e:
            logger.error("SNSIK: %s", e)
            return NOT_INITIALIZED, None

        return position_solver.cart_to_jnt(q_init, pose, q_bias=q_bias,
                                           bias_jacobian=bias_mapping.jacobian,
                                           bias_indices=bias_mapping.indices,
                                           gain=self._nullspace_gain, tolerances=tolerances)

    @property
    def initialized(self) -> bool:
        return self._registry.initialized

    @property
    def velocity_solve_type(self) -> Optional[SolveStrategyKind]:
        return self._registry.kind

    @property
    def chain(self) -> Optional[Chain]:
        return self._chain

    @property
    def joint_names(self) -> Tuple[str, ...]:
        return self._config.joint_names if self._config is not None else ()

    @property
    def joint_types(self) -> Tuple[JointType, ...]:
        return self._config.joint_types if self._config is not None else ()

    @property
    def position_limits(self) -> Tuple[Optional[np.ndarray], Optional[np.ndarray]]:
        """(lower, upper) joint position limits."""
        if self._config is None:
            return None, None
        return self._config.lower, self._config.upper

    @property
    def velocity_limits(self) -> Optional[np.ndarray]:
        return self._config.velocity if self._config is not None else None

    @property
    def acceleration_limits(self) -> Optional[np.ndarray]:
        return self._config.acceleration if self._config is not None else None

    @property
    def loop_rate(self) -> float:
        return self._loop_rate

    @property
    def nullspace_gain(self) -> float:
        return self._nullspace_gain

    @nullspace_gain.setter
    def nullspace_gain(self, gain: float) -> None:
        self._nullspace_gain = float(gain)

    def get_velocity_ik_solver(self):
        return self._registry.velocity_solver

    def get_position_ik_solver(self):
        return self._registry.position_solver
