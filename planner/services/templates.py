"""Template management."""

from collections.abc import Sequence
from datetime import date
from typing import Any
from uuid import UUID, uuid4

from planner.logger import get_logger
from planner.models import PlannedTransactionTemplate
from planner.repositories.ports import TemplateStore
from planner.services.errors import NotFound
from planner.services.occurrences import Occurrence, OccurrenceService
from planner.services.recurrence import RecurrenceRule, validate_recurrence

logger = get_logger(__name__)


class TemplateService:
    def __init__(self, templates: TemplateStore, occurrences: OccurrenceService) -> None:
        self.templates = templates
        self.occurrences = occurrences

    async def get(self, user_id: UUID, template_id: UUID) -> PlannedTransactionTemplate:
        template = await self.templates.get(user_id, template_id)
        if template is None:
            raise NotFound("Template", template_id)
        return template

    async def list(
        self,
        user_id: UUID,
        *,
        active_only: bool = False,
        account_id: UUID | None = None,
    ) -> Sequence[PlannedTransactionTemplate]:
        return await self.templates.list(user_id, active_only=active_only, account_id=account_id)

    async def create(self, user_id: UUID, **fields: Any) -> PlannedTransactionTemplate:
        """Create a template after validating its recurrence.

        Raises:
            InvalidRecurrenceConfig: If the recurrence fields are inconsistent.
        """
        template = PlannedTransactionTemplate(id=uuid4(), user_id=user_id, **fields)
        validate_recurrence(RecurrenceRule.from_template(template))
        await self.templates.add(template)
        logger.info(
            "Created template",
            template_id=str(template.id),
            user_id=str(user_id),
            period_type=template.period_type.value,
        )
        return template

    async def update(self, user_id: UUID, template_id: UUID, changes: dict[str, Any]) -> PlannedTransactionTemplate:
        """Apply partial changes; existing overrides keep their slots."""
        template = await self.get(user_id, template_id)
        for name, value in changes.items():
            setattr(template, name, value)
        validate_recurrence(RecurrenceRule.from_template(template))
        await self.templates.add(template)
        logger.info("Updated template", template_id=str(template_id), fields=sorted(changes))
        return template

    async def delete(self, user_id: UUID, template_id: UUID) -> None:
        template = await self.get(user_id, template_id)
        await self.templates.delete(template)
        logger.info("Deleted template", template_id=str(template_id), user_id=str(user_id))

    async def next_occurrence(self, user_id: UUID, template_id: UUID, as_of: date) -> Occurrence | None:
        return await self.occurrences.next_occurrence(user_id, template_id, as_of)
