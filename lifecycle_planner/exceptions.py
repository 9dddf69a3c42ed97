"""
Exceptions for the Lifecycle Planner.

Only caller defects propagate out of the engine. Missing configuration and
malformed expressions are logged where they are found and degrade to
"not applicable" results.
"""


class LifecycleError(Exception):
    """Base class for lifecycle planner errors."""


class ConfigurationMissing(LifecycleError):
    """A trigger, population or birthright definition could not be found."""

    def __init__(self, kind: str, key: str):
        self.kind = kind
        self.key = key
        super().__init__(f"No {kind} configured for '{key}'")


class MalformedExpression(LifecycleError, ValueError):
    """A population or token expression does not have the expected shape."""

    def __init__(self, expression: str, reason: str):
        self.expression = expression
        self.reason = reason
        super().__init__(f"Malformed expression '{expression}': {reason}")
