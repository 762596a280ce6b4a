"""Domain errors raised by the occurrence and matching services."""


class PlannerError(Exception):
    """Base error for the planned-transaction engine."""


class InvalidRecurrenceConfig(PlannerError):
    """Template recurrence fields describe an impossible schedule."""


class InvalidOccurrenceId(PlannerError):
    """Occurrence identifier is neither a UUID nor a well-formed virtual id."""


class OutOfRangeWindow(PlannerError):
    """Requested date window is inverted or wider than the configured cap."""


class BatchTooLarge(PlannerError):
    """Batch request exceeds the configured size cap."""


class NotFound(PlannerError):
    """Template, occurrence, transaction or match does not exist for the user."""

    def __init__(self, resource: str, identifier: object | None = None) -> None:
        self.resource = resource
        self.identifier = identifier
        message = f"{resource} not found"
        if identifier is not None:
            message = f"{resource} {identifier} not found"
        super().__init__(message)


class MatchConflict(PlannerError):
    """Transaction or occurrence already has an active match."""


class InvalidMatchState(PlannerError):
    """Requested lifecycle transition is not allowed from the match's state."""
