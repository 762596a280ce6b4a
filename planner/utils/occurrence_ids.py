"""Virtual occurrence identifiers.

Format: ``virtual_{templateId}_{YYYY-MM-DD}``. Consumers outside this service
store these strings before the occurrence is ever persisted, so the format must
stay stable.
"""

from datetime import date
from uuid import UUID

from planner.services.errors import InvalidOccurrenceId

VIRTUAL_PREFIX = "virtual_"


def virtual_occurrence_id(template_id: UUID, occurrence_date: date) -> str:
    """Build the identifier of a template slot."""
    return f"{VIRTUAL_PREFIX}{template_id}_{occurrence_date.isoformat()}"


def is_virtual_occurrence_id(value: str) -> bool:
    return value.startswith(VIRTUAL_PREFIX)


def parse_virtual_occurrence_id(value: str) -> tuple[UUID, date]:
    """Split a virtual identifier back into ``(template_id, occurrence_date)``.

    Raises:
        InvalidOccurrenceId: If the string is not a well-formed virtual id.
    """
    if not is_virtual_occurrence_id(value):
        raise InvalidOccurrenceId(f"Not a virtual occurrence id: {value!r}")

    parts = value[len(VIRTUAL_PREFIX) :].split("_")
    if len(parts) != 2:
        raise InvalidOccurrenceId(f"Malformed virtual occurrence id: {value!r}")

    raw_template_id, raw_date = parts
    try:
        template_id = UUID(raw_template_id)
        occurrence_date = date.fromisoformat(raw_date)
    except ValueError as exc:
        raise InvalidOccurrenceId(f"Malformed virtual occurrence id: {value!r}") from exc
    return template_id, occurrence_date


def parse_occurrence_id(value: str) -> UUID | tuple[UUID, date]:
    """Parse either a persisted occurrence UUID or a virtual identifier."""
    if is_virtual_occurrence_id(value):
        return parse_virtual_occurrence_id(value)
    try:
        return UUID(value)
    except ValueError as exc:
        raise InvalidOccurrenceId(f"Invalid occurrence id: {value!r}") from exc
