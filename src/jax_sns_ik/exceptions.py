"""Exception hierarchy for jax_sns_ik.

These are raised internally by the configuration and task-building layers.
The public solver facade catches them at its boundary and reports failures
as status codes, so callers of ``SNSIK`` only see them when they use the
lower-level building blocks directly.
"""


class SNSIKError(Exception):
    """Base class for all jax_sns_ik errors."""


class ConfigurationError(SNSIKError, ValueError):
    """The chain or its joint limits cannot be turned into a usable solver.

    Fatal at construction time: a facade whose configuration failed stays
    uninitialized for its whole lifetime.
    """


class ValidationError(SNSIKError, ValueError):
    """A per-call request is inconsistent (e.g. bias names vs. bias values)."""


class UnknownJointName(ValidationError):
    """A requested joint name is not part of the configured chain."""

    def __init__(self, joint_name: str):
        super().__init__(f"Could not find bias joint name: {joint_name}")
        self.joint_name = joint_name
