"""Tests for joint-limit resolution and chain configuration validation."""

import logging
from pathlib import Path

import numpy as np
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from jax_sns_ik.core import (
    FLOAT_SENTINEL,
    Chain,
    ChainConfigResolver,
    JointBounds,
    JointType,
    KinematicChainConfig,
    Segment,
    extract_chain,
    tighten,
)
from jax_sns_ik.core.chain_config import LimitLayer, resolve_bounds
from jax_sns_ik.exceptions import ConfigurationError
from jax_sns_ik.io import DictParameterLookup, load_parameters_yaml, load_urdf, load_urdf_string

FIXTURES = Path(__file__).parent / "fixtures"

finite = st.floats(min_value=-10.0, max_value=10.0, allow_nan=False)
positive = st.floats(min_value=0.0, max_value=10.0, allow_nan=False)
optional_finite = st.none() | finite


@pytest.fixture(scope="module")
def arm():
    robot = load_urdf(str(FIXTURES / "redundant_arm.urdf"))
    return robot, extract_chain(robot, "base_link", "tool0")


def _chain(*kinds):
    return Chain.from_segments([
        Segment(name=f"link{i}", joint_name=f"j{i}", joint_kind=kind)
        for i, kind in enumerate(kinds)
    ])


@given(lower=finite, upper=finite, velocity=positive,
       layer_lower=optional_finite, layer_upper=optional_finite)
@settings(deadline=None)
def test_tighten_never_widens_position_limits(lower, upper, velocity, layer_lower, layer_upper):
    bounds = JointBounds(lower, upper, velocity)
    result = tighten(bounds, LimitLayer(lower=layer_lower, upper=layer_upper))

    assert result.lower >= lower
    assert result.upper <= upper
    assert result.velocity == velocity


@given(existing=positive, override=finite)
@settings(deadline=None)
def test_tighten_velocity_rule(existing, override):
    result = tighten(JointBounds(-1.0, 1.0, existing), LimitLayer(velocity=override))

    if existing > 0:
        assert result.velocity == min(existing, abs(override))
    else:
        assert result.velocity == abs(override)


@given(accelerations=st.lists(st.none() | finite, min_size=1, max_size=4))
@settings(deadline=None)
def test_resolve_bounds_last_acceleration_wins(accelerations):
    layers = [LimitLayer(acceleration=a) for a in accelerations]
    result = resolve_bounds(JointBounds(-1.0, 1.0, 1.0, 7.0), layers)

    given_values = [abs(a) for a in accelerations if a is not None]
    assert result.acceleration == (given_values[-1] if given_values else 7.0)


def test_resolve_bounds_skips_missing_layers():
    base = JointBounds(-2.0, 2.0, 1.0, 0.0)
    assert resolve_bounds(base, [None, None]) == base


def test_resolve_without_overrides(arm):
    robot, chain = arm
    config = ChainConfigResolver().resolve(chain, robot)

    assert config.joint_names == tuple(f"joint{i}" for i in range(1, 8))
    # joint1: safety controller narrows [-2.9, 2.9] to [-2.5, 2.5]
    assert config.lower[0] == pytest.approx(-2.5)
    assert config.upper[0] == pytest.approx(2.5)
    assert config.velocity[0] == pytest.approx(2.0)
    # joint2: URDF velocity is stored as an absolute value
    assert config.velocity[1] == pytest.approx(1.5)
    # joint3: continuous, unbounded and without a velocity limit
    assert config.lower[2] == -FLOAT_SENTINEL
    assert config.upper[2] == FLOAT_SENTINEL
    assert config.velocity[2] == 0.0
    np.testing.assert_array_equal(config.acceleration, np.zeros(7))
    assert config.joint_types == (
        JointType.REVOLUTE, JointType.REVOLUTE, JointType.CONTINUOUS, JointType.PRISMATIC,
        JointType.REVOLUTE, JointType.REVOLUTE, JointType.REVOLUTE)


def test_resolve_with_yaml_overrides(arm):
    robot, chain = arm
    parameters = load_parameters_yaml(str(FIXTURES / "joint_limits.yaml"),
                                      namespace="robot_description_planning")

    config = ChainConfigResolver().resolve(chain, robot, parameters)

    # min_position -3.0 cannot widen the safety limit, max_position 2.0 tightens it
    assert config.lower[0] == pytest.approx(-2.5)
    assert config.upper[0] == pytest.approx(2.0)
    assert config.velocity[0] == pytest.approx(1.2)
    assert config.acceleration[0] == pytest.approx(4.0)
    # A velocity override installs a limit where none existed
    assert config.velocity[2] == pytest.approx(1.0)
    assert config.joint_types[2] is JointType.CONTINUOUS
    assert config.upper[3] == pytest.approx(0.15)
    assert config.velocity[3] == pytest.approx(0.3)


def test_resolve_uses_source_key(arm):
    robot, chain = arm
    parameters = DictParameterLookup({
        "left_description_planning/joint_limits/joint2/max_velocity": 0.5,
        "robot_description_planning/joint_limits/joint2/max_velocity": 0.1,
    })

    config = ChainConfigResolver("left_description").resolve(chain, robot, parameters)

    assert config.velocity[1] == pytest.approx(0.5)


def test_position_override_bounds_continuous_joint(arm):
    robot, chain = arm
    parameters = DictParameterLookup({
        "/robot_description_planning/joint_limits/joint3/max_position": 3.0,
    })

    config = ChainConfigResolver().resolve(chain, robot, parameters)

    assert config.upper[2] == pytest.approx(3.0)
    assert config.joint_types[2] is JointType.REVOLUTE


def test_non_numeric_override_is_rejected(arm):
    robot, chain = arm
    parameters = DictParameterLookup({
        "robot_description_planning": {"joint_limits": {"joint1": {"max_velocity": "fast"}}},
    })

    with pytest.raises(ConfigurationError, match="is not a number"):
        ChainConfigResolver().resolve(chain, robot, parameters)


def test_resolve_logs_each_joint(arm, caplog):
    robot, chain = arm
    with caplog.at_level(logging.INFO, logger="jax_sns_ik.core.chain_config"):
        ChainConfigResolver().resolve(chain, robot)

    messages = [r.getMessage() for r in caplog.records
                if r.name == "jax_sns_ik.core.chain_config"]
    assert len(messages) == 7
    assert messages[0] == "Using joint joint1 lb: -2.500, ub: 2.500, v: 2.000, a: 0.000"


def test_from_arrays_classifies_joints():
    chain = _chain("RotAxis", "Fixed", "TransAxis", "RotAxis")

    config = KinematicChainConfig.from_arrays(
        chain,
        [-1.0, 0.0, -FLOAT_SENTINEL],
        [1.0, 0.5, FLOAT_SENTINEL],
        [1.0, 1.0, 1.0],
        [0.0, 0.0, 0.0],
        ["j0", "j2", "j3"],
    )

    assert config.num_joints == 3
    assert config.joint_types == (JointType.REVOLUTE, JointType.PRISMATIC, JointType.CONTINUOUS)
    with pytest.raises(ValueError):
        config.lower[0] = 0.0


def test_unbounded_prismatic_joint_stays_prismatic():
    config = KinematicChainConfig.from_arrays(
        _chain("TransAxis"), [-FLOAT_SENTINEL], [FLOAT_SENTINEL], [1.0], [0.0], ["j0"])

    assert config.joint_types == (JointType.PRISMATIC,)


@pytest.mark.parametrize("field, message", [
    ("lower", "Number of joint lower bounds"),
    ("upper", "Number of joint upper bounds"),
    ("velocity", "Number of max joint velocity bounds"),
    ("acceleration", "Number of max joint acceleration bounds"),
    ("names", "Number of joint names"),
])
def test_from_arrays_count_mismatch(field, message):
    values = {
        "lower": [-1.0, -1.0],
        "upper": [1.0, 1.0],
        "velocity": [1.0, 1.0],
        "acceleration": [0.0, 0.0],
        "names": ["j0", "j1"],
    }
    values[field] = values[field][:1]

    with pytest.raises(ConfigurationError, match=message):
        KinematicChainConfig.from_arrays(_chain("RotAxis", "RotAxis"), values["lower"],
                                         values["upper"], values["velocity"],
                                         values["acceleration"], values["names"])


def test_from_arrays_mismatch_checked_before_zero_joints():
    with pytest.raises(ConfigurationError, match="Number of joint lower bounds"):
        KinematicChainConfig.from_arrays(_chain("Fixed"), [0.0], [], [], [], [])


def test_from_arrays_zero_joints():
    with pytest.raises(ConfigurationError, match="zero non-fixed joints"):
        KinematicChainConfig.from_arrays(_chain("Fixed"), [], [], [], [], [])


def test_from_arrays_unclassifiable_joint():
    with pytest.raises(ConfigurationError, match="Could not determine joint limits"):
        KinematicChainConfig.from_arrays(_chain("Spherical"), [-1.0], [1.0], [1.0], [0.0], ["j0"])


def test_continuous_joint_without_limits_is_resolved():
    """Only non-continuous joints need a <limit> element."""
    robot = load_urdf(str(FIXTURES / "redundant_arm.urdf"))
    chain = extract_chain(robot, "link2", "link3")

    config = ChainConfigResolver().resolve(chain, robot)

    assert config.joint_types == (JointType.CONTINUOUS,)


def test_unset_velocity_is_unbounded_for_the_engines(arm):
    robot, chain = arm
    config = ChainConfigResolver().resolve(chain, robot)

    np.testing.assert_array_equal(config.velocity_unset,
                                  [False, False, True, False, False, False, False])
    assert config.effective_velocity[2] == np.inf
    assert config.effective_velocity[0] == pytest.approx(2.0)


def test_zero_velocity_override_freezes_joint(arm):
    robot, chain = arm
    parameters = DictParameterLookup({
        "robot_description_planning/joint_limits/joint2/max_velocity": 0.0,
        "robot_description_planning/joint_limits/joint3/max_velocity": 0.0,
    })

    config = ChainConfigResolver().resolve(chain, robot, parameters)

    assert config.velocity[1] == 0.0
    assert config.velocity[2] == 0.0
    assert not config.velocity_unset[1]
    assert not config.velocity_unset[2]
    assert config.effective_velocity[1] == 0.0
    assert config.effective_velocity[2] == 0.0


def test_from_arrays_velocity_is_explicit_by_default():
    config = KinematicChainConfig.from_arrays(_chain("RotAxis"), [-1.0], [1.0], [0.0], [0.0],
                                              ["j0"])

    assert config.velocity_unset is None
    np.testing.assert_array_equal(config.effective_velocity, [0.0])

    with pytest.raises(ConfigurationError, match="velocity unset flags"):
        KinematicChainConfig.from_arrays(_chain("RotAxis"), [-1.0], [1.0], [0.0], [0.0],
                                         ["j0"], velocity_unset=[True, False])


URDF_TYPES = {"RotAxis": "revolute", "TransAxis": "prismatic", "Fixed": "fixed", "None": "floating"}
MOVABLE_KINDS = ("RotAxis", "TransAxis")


def _urdf(kinds):
    links = "".join(f'<link name="l{i}"/>' for i in range(len(kinds) + 1))
    joints = []
    for i, kind in enumerate(kinds):
        limit = ('<limit lower="-1" upper="1" velocity="1" effort="1"/>'
                 if kind in MOVABLE_KINDS else "")
        joints.append(f'<joint name="j{i}" type="{URDF_TYPES[kind]}">'
                      f'<parent link="l{i}"/><child link="l{i + 1}"/>{limit}</joint>')
    return f'<robot name="r">{links}{"".join(joints)}</robot>'


segment_kinds = st.lists(st.sampled_from(sorted(URDF_TYPES)), min_size=1, max_size=8)


@given(kinds=segment_kinds)
@settings(deadline=None, max_examples=40)
def test_from_arrays_has_one_entry_per_movable_joint(kinds):
    chain = _chain(*kinds)
    names = [f"j{i}" for i, kind in enumerate(kinds) if kind in MOVABLE_KINDS]
    k = len(names)
    arrays = ([-1.0] * k, [1.0] * k, [1.0] * k, [0.0] * k)

    if k == 0:
        with pytest.raises(ConfigurationError, match="zero non-fixed joints"):
            KinematicChainConfig.from_arrays(chain, *arrays, names)
        return

    config = KinematicChainConfig.from_arrays(chain, *arrays, names)

    assert config.num_joints == k
    for values in (config.lower, config.upper, config.velocity, config.acceleration):
        assert len(values) == k
    assert len(config.joint_types) == k


@given(kinds=segment_kinds)
@settings(deadline=None, max_examples=25)
def test_resolve_has_one_entry_per_movable_joint(kinds):
    robot = load_urdf_string(_urdf(kinds))
    chain = extract_chain(robot, "l0", f"l{len(kinds)}")
    k = sum(kind in MOVABLE_KINDS for kind in kinds)

    assert len(chain.joint_kinds) == len(kinds)
    if k == 0:
        with pytest.raises(ConfigurationError):
            ChainConfigResolver().resolve(chain, robot)
        return

    config = ChainConfigResolver().resolve(chain, robot)

    assert config.joint_names == tuple(f"j{i}" for i, kind in enumerate(kinds)
                                       if kind in MOVABLE_KINDS)
    for values in (config.lower, config.upper, config.velocity, config.acceleration,
                   config.velocity_unset):
        assert len(values) == k
