"""Tests for the parameter lookup and YAML loading."""

from pathlib import Path

import pytest

from jax_sns_ik.io import DictParameterLookup, joint_limits_prefix, load_parameters_yaml

FIXTURES = Path(__file__).parent / "fixtures"


def test_joint_limits_prefix():
    assert joint_limits_prefix("robot_description", "joint1") == \
        "robot_description_planning/joint_limits/joint1/"


def test_nested_and_flat_keys_are_equivalent():
    nested = DictParameterLookup({"a": {"b": {"c": 1}}})
    flat = DictParameterLookup({"a/b/c": 1})

    assert nested.get("a/b/c") == flat.get("a/b/c") == 1
    assert "a/b/c" in nested
    assert "/a/b/c" in flat


def test_leading_slashes_are_ignored():
    lookup = DictParameterLookup({"/robot_description": "<robot/>"})

    assert lookup.get("robot_description") == "<robot/>"
    assert lookup.get("/robot_description") == "<robot/>"
    assert lookup.get("missing", 3.0) == 3.0


def test_set_mounts_mappings():
    lookup = DictParameterLookup()
    lookup.set("ns", {"x": 1, "y": {"z": 2}})
    lookup.set("/w", 4)

    assert len(lookup) == 3
    assert lookup.get("ns/y/z") == 2
    assert lookup.get("w") == 4


def test_load_joint_limits_yaml():
    lookup = load_parameters_yaml(str(FIXTURES / "joint_limits.yaml"),
                                  namespace="robot_description_planning")

    prefix = joint_limits_prefix("robot_description", "joint1")
    assert lookup.get(prefix + "max_velocity") == pytest.approx(1.2)
    assert lookup.get(prefix + "max_acceleration") == pytest.approx(-4.0)
    assert lookup.get(prefix + "has_position_limits") is True


def test_load_yaml_into_existing_lookup(tmp_path):
    path = tmp_path / "params.yaml"
    path.write_text("loop_rate: 200\nsolver:\n  eps: 0.001\n")
    lookup = DictParameterLookup({"robot_description": "<robot/>"})

    result = load_parameters_yaml(str(path), lookup=lookup)

    assert result is lookup
    assert lookup.get("loop_rate") == 200
    assert lookup.get("solver/eps") == pytest.approx(0.001)
    assert lookup.get("robot_description") == "<robot/>"


def test_load_yaml_rejects_non_mapping(tmp_path):
    path = tmp_path / "list.yaml"
    path.write_text("- 1\n- 2\n")

    with pytest.raises(ValueError, match="Expected a mapping"):
        load_parameters_yaml(str(path))


def test_copy_is_independent():
    lookup = DictParameterLookup({"a": {"b": 1}})

    copy = lookup.copy()
    copy.set("c", 2)

    assert copy.get("a/b") == 1
    assert "c" not in lookup
