"""Tests for nullspace bias mapping and task stack construction."""

import numpy as np
import pytest

from jax_sns_ik.exceptions import UnknownJointName, ValidationError
from jax_sns_ik.tasks import (
    build_bias_mapping,
    build_velocity_request,
    check_bias_request,
    nullspace_bias_velocity,
)


def test_bias_mapping_selects_named_joints():
    mapping = build_bias_mapping(["j2", "j1"], ["j1", "j2", "j3"])

    expected = np.array([[0.0, 1.0, 0.0], [1.0, 0.0, 0.0]])
    np.testing.assert_array_equal(mapping.jacobian, expected)
    assert mapping.indices == (1, 0)


def test_bias_mapping_unknown_name():
    with pytest.raises(UnknownJointName, match="Could not find bias joint name: j4") as info:
        build_bias_mapping(["j2", "j4"], ["j1", "j2", "j3"])

    assert info.value.joint_name == "j4"
    assert isinstance(info.value, ValidationError)


def test_bias_mapping_uses_first_match():
    mapping = build_bias_mapping(["a"], ["a", "b", "a"])
    assert mapping.indices == (0,)


def test_empty_bias_mapping():
    mapping = build_bias_mapping([], ["j1", "j2"])

    assert mapping.jacobian.shape == (0, 2)
    assert mapping.indices == ()


def test_check_bias_request():
    check_bias_request([0.1, 0.2], ["j1", "j2"])
    with pytest.raises(ValidationError, match="Number of joint bias and names differ"):
        check_bias_request([0.1, 0.2], ["j1"])


def test_nullspace_bias_velocity():
    velocity = nullspace_bias_velocity([0.0, 0.5, 1.0], [0.7, 0.2], (1, 0), gain=1.0,
                                       loop_rate=100.0)

    np.testing.assert_allclose(velocity, [0.002, 0.002])


def test_velocity_request_primary_only():
    J = np.arange(18, dtype=float).reshape(6, 3)
    twist = [0.1, 0.0, 0.0, 0.0, 0.0, 0.2]

    tasks = build_velocity_request(np.zeros(3), twist, J)

    assert len(tasks) == 1
    np.testing.assert_array_equal(tasks[0].jacobian, J)
    np.testing.assert_array_equal(tasks[0].desired, twist)
    assert tasks[0].dimension == 6


def test_velocity_request_with_bias_task():
    J = np.ones((6, 3))
    q = np.array([0.0, 0.5, 1.0])
    mapping = build_bias_mapping(["j3"], ["j1", "j2", "j3"])

    tasks = build_velocity_request(q, np.zeros(6), J, bias_mapping=mapping, q_bias=[0.0],
                                   gain=2.0, loop_rate=50.0)

    assert len(tasks) == 2
    np.testing.assert_array_equal(tasks[1].jacobian, [[0.0, 0.0, 1.0]])
    np.testing.assert_allclose(tasks[1].desired, [2.0 * (0.0 - 1.0) / 50.0])
