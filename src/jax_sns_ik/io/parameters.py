"""Read-only parameter lookup for robot descriptions and joint-limit overrides.

The IK layer never talks to a live parameter service. It receives an object
implementing ``ParameterLookup`` and reads keys such as::

    robot_description
    robot_description_planning/joint_limits/<joint>/max_velocity

``DictParameterLookup`` serves those keys from a plain mapping, and
``load_parameters_yaml`` fills one from a MoveIt-style ``joint_limits.yaml``.
"""

from logging import getLogger
from typing import Any, Dict, Mapping, Optional, Protocol

import yaml

logger = getLogger(__name__)

LIMIT_KEYS = ("max_position", "min_position", "max_velocity", "max_acceleration")


class ParameterLookup(Protocol):
    """Anything that can answer ``get(key, default)`` for slash-separated keys."""

    def get(self, key: str, default: Any = None) -> Any:
        ...


def joint_limits_prefix(source_key: str, joint_name: str) -> str:
    """Namespace holding the limit overrides of one joint."""
    return f"{source_key}_planning/joint_limits/{joint_name}/"


def _flatten(mapping: Mapping[str, Any], prefix: str = "") -> Dict[str, Any]:
    flat: Dict[str, Any] = {}
    for key, value in mapping.items():
        path = f"{prefix}/{key}" if prefix else str(key).lstrip("/")
        if isinstance(value, Mapping):
            flat.update(_flatten(value, path))
        else:
            flat[path] = value
    return flat


class DictParameterLookup:
    """Parameter lookup backed by a dictionary.

    Nested dictionaries are flattened into slash-separated keys, so
    ``{"a": {"b": 1}}`` and ``{"a/b": 1}`` answer the same lookups.
    Leading slashes in queried keys are ignored.
    """

    def __init__(self, parameters: Optional[Mapping[str, Any]] = None):
        self._parameters = _flatten(parameters or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self._parameters.get(key.lstrip("/"), default)

    def set(self, key: str, value: Any) -> None:
        if isinstance(value, Mapping):
            self._parameters.update(_flatten(value, key.lstrip("/")))
        else:
            self._parameters[key.lstrip("/")] = value

    def copy(self) -> "DictParameterLookup":
        return DictParameterLookup(self._parameters)

    def __contains__(self, key: str) -> bool:
        return key.lstrip("/") in self._parameters

    def __len__(self) -> int:
        return len(self._parameters)


def load_parameters_yaml(path: str, namespace: str = "",
                         lookup: Optional[DictParameterLookup] = None) -> DictParameterLookup:
    """Load a YAML document into a parameter lookup.

    A MoveIt ``joint_limits.yaml`` loaded with
    ``namespace="robot_description_planning"`` produces exactly the override keys
    consumed by the limit resolver.

    Args:
        path: YAML file to read.
        namespace: Key prefix under which the document is mounted.
        lookup: Existing lookup to extend; a new one is created if None.

    Returns:
        The populated lookup.
    """
    with open(path, 'r') as f:
        document = yaml.safe_load(f) or {}
    if not isinstance(document, Mapping):
        raise ValueError(f"Expected a mapping at the top of {path}, got {type(document).__name__}")

    if lookup is None:
        lookup = DictParameterLookup()
    if namespace:
        lookup.set(namespace, document)
    else:
        for key, value in document.items():
            lookup.set(str(key), value)
    logger.debug("Loaded %d parameters from %s", len(lookup), path)
    return lookup
