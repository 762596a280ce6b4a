"""Pydantic schemas for planned occurrences."""

from datetime import date
from decimal import Decimal
from typing import Annotated, Any
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from planner.models import PlannedKind, TransactionType
from planner.schemas.base import BaseResponse


class OccurrenceResponse(BaseResponse):
    """Effective occurrence, virtual or persisted."""

    occurrence_id: str
    occurrence_key: str
    template_id: UUID | None = None
    kind: PlannedKind | None = None
    occurrence_date: date | None = None
    expected_date: date
    name: str
    amount: Decimal
    type: TransactionType
    account_id: UUID
    account_name: str = ""
    category_id: UUID | None = None
    category_name: str | None = None
    is_transfer: bool = False
    transfer_to_account_id: UUID | None = None
    description: str | None = None
    notes: str | None = None
    auto_match_enabled: bool = True
    skip_review: bool = False
    match_tolerance: Decimal | None = None
    match_window_days: int = 7
    is_virtual: bool
    is_skipped: bool = False


class RejectedOverrideResponse(BaseResponse):
    planned_id: UUID
    reason: str


class OccurrenceListResponse(BaseModel):
    """Effective occurrences plus any persisted rows excluded as malformed."""

    items: list[OccurrenceResponse]
    total: int
    rejected: list[RejectedOverrideResponse] = Field(default_factory=list)


class NextOccurrenceResponse(BaseModel):
    occurrence: OccurrenceResponse | None = None


class OneTimeCreate(BaseModel):
    """Schema for creating a planned transaction with no template."""

    name: Annotated[str, Field(min_length=1, max_length=100)]
    expected_date: date
    account_id: UUID
    account_name: Annotated[str, Field(max_length=100)] = ""
    category_id: UUID | None = None
    category_name: Annotated[str | None, Field(max_length=100)] = None
    is_transfer: bool = False
    transfer_to_account_id: UUID | None = None
    amount: Annotated[Decimal, Field(max_digits=12, decimal_places=2)]
    type: TransactionType
    description: Annotated[str | None, Field(max_length=255)] = None
    notes: Annotated[str | None, Field(max_length=1000)] = None
    auto_match_enabled: bool = True
    skip_review: bool = False
    match_tolerance: Annotated[Decimal | None, Field(ge=0, max_digits=12, decimal_places=2)] = None
    match_window_days: Annotated[int, Field(ge=0, le=90)] = 7

    @model_validator(mode="after")
    def validate_transfer(self) -> "OneTimeCreate":
        if self.is_transfer != (self.type == TransactionType.TRANSFER):
            raise ValueError("is_transfer must be set exactly when type is transfer")
        if self.is_transfer and self.transfer_to_account_id is None:
            raise ValueError("Transfers require transfer_to_account_id")
        return self


class OccurrenceUpdate(BaseModel):
    """Per-occurrence customization; unset fields keep the template's values."""

    expected_date: date | None = None
    name: Annotated[str | None, Field(min_length=1, max_length=100)] = None
    amount: Annotated[Decimal | None, Field(max_digits=12, decimal_places=2)] = None
    account_id: UUID | None = None
    account_name: Annotated[str | None, Field(max_length=100)] = None
    category_id: UUID | None = None
    category_name: Annotated[str | None, Field(max_length=100)] = None
    description: Annotated[str | None, Field(max_length=255)] = None
    notes: Annotated[str | None, Field(max_length=1000)] = None
    auto_match_enabled: bool | None = None
    skip_review: bool | None = None
    match_tolerance: Annotated[Decimal | None, Field(ge=0, max_digits=12, decimal_places=2)] = None
    match_window_days: Annotated[int | None, Field(ge=0, le=90)] = None

    @model_validator(mode="after")
    def validate_changes(self) -> "OccurrenceUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        for field_name in (
            "expected_date",
            "name",
            "amount",
            "account_id",
            "match_window_days",
            "auto_match_enabled",
            "skip_review",
        ):
            if field_name in self.model_fields_set and getattr(self, field_name) is None:
                raise ValueError(f"{field_name} cannot be null")
        return self


def build_occurrence_list(merged: Any) -> OccurrenceListResponse:
    """Render a merge result (effective occurrences plus rejected rows)."""
    items = [OccurrenceResponse.model_validate(occurrence) for occurrence in merged.occurrences]
    return OccurrenceListResponse(
        items=items,
        total=len(items),
        rejected=[RejectedOverrideResponse.model_validate(row) for row in merged.rejected],
    )
