"""Engine error taxonomy.

All engine errors are raised synchronously at the service boundary.
Nothing is queued or retried on the caller's behalf.
"""


class OOSEngineError(Exception):
    """Base class for every error raised by the engine."""
    pass


class RuleDefinitionError(OOSEngineError):
    """Raised when a condition tree (or a whole rule set) is malformed.

    Raised while parsing, which happens at version activation, never
    during evaluation. ``errors`` lists every problem found so that a
    DRAFT can be fixed in one pass.
    """

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or [message]


class StaleVersionError(OOSEngineError):
    """Raised when a concurrent writer already changed the record being written."""
    pass


class InvalidTransitionError(OOSEngineError):
    """Raised for a lifecycle or triage transition that is not permitted."""
    pass


class RuleVersionNotFoundError(OOSEngineError):
    """Raised when a rule version does not exist."""
    pass


class RuleNotFoundError(OOSEngineError):
    """Raised when a rule does not exist."""
    pass


class InspectionNotFoundError(OOSEngineError):
    """Raised when an inspection does not exist."""
    pass


class FindingNotFoundError(OOSEngineError):
    """Raised when a finding does not exist."""
    pass


class SourceNotFoundError(OOSEngineError):
    """Raised when a regulatory source does not exist."""
    pass


class SourceInUseError(OOSEngineError):
    """Raised when deleting a regulatory source a rule version still references."""
    pass


class NoActiveRuleVersionError(OOSEngineError):
    """Raised when no enabled ACTIVE rule version applies to an inspection."""
    pass


class AmbiguousRuleVersionError(OOSEngineError):
    """Raised when several enabled ACTIVE rule versions apply and none was named."""
    pass
