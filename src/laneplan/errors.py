"""Error types raised by the scheduling core.

Both derive from ValueError so callers that already guard scheduling calls
with ``except ValueError`` keep working.
"""


class LanePlanError(ValueError):
    """Base class for scheduling errors."""


class ConfigurationError(LanePlanError):
    """Raised for an unusable planner configuration (e.g. empty working-day set)."""


class InvalidInputError(LanePlanError):
    """Raised for project parameters outside their legal range."""
