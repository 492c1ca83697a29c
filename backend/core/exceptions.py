"""Error taxonomy for the compliance engine.

Only configuration and caller errors are raised. Bad item data, failing ticks
and failing mutation replays are reported as data in result structures.
"""


class ComplianceEngineError(Exception):
    """Base class for errors raised by the engine."""


class ConfigurationError(ComplianceEngineError, ValueError):
    """Invalid timezone, interval or threshold detected at start-up."""


class InvalidMutationError(ComplianceEngineError, ValueError):
    """Offline mutation payload does not match its action."""
