"""I/O utilities for loading robot models and solver parameters.

This module provides functions for parsing standard robotics file formats
and converting them to JAX-native data structures, plus the read-only
parameter lookup used for joint-limit overrides.
"""

from .parameters import (
    DictParameterLookup,
    ParameterLookup,
    joint_limits_prefix,
    load_parameters_yaml,
)
from .urdf_parser import load_urdf, load_urdf_string

__all__ = [
    "load_urdf",
    "load_urdf_string",
    "ParameterLookup",
    "DictParameterLookup",
    "joint_limits_prefix",
    "load_parameters_yaml",
]
