"""Pydantic schemas for planned-transaction templates."""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from planner.models import DayOfMonthType, PeriodType, TransactionType
from planner.schemas.base import BaseResponse, ListResponse


class TemplateBase(BaseModel):
    """Fields shared by template create and response schemas."""

    name: Annotated[str, Field(min_length=1, max_length=100)]
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

    period_type: PeriodType
    interval: Annotated[int, Field(ge=1, le=365)] = 1
    first_occurrence: date
    end_date: date | None = None
    day_of_month: Annotated[int | None, Field(ge=1, le=31)] = None
    day_of_month_type: DayOfMonthType | None = None
    day_of_week: Annotated[int | None, Field(ge=0, le=6, description="0=Sunday .. 6=Saturday")] = None

    auto_match_enabled: bool = True
    skip_review: bool = False
    match_tolerance: Annotated[Decimal | None, Field(ge=0, max_digits=12, decimal_places=2)] = None
    match_window_days: Annotated[int, Field(ge=0, le=90)] = 7


class TemplateCreate(TemplateBase):
    """Schema for creating a template."""

    @model_validator(mode="after")
    def validate_transfer(self) -> "TemplateCreate":
        if self.is_transfer != (self.type == TransactionType.TRANSFER):
            raise ValueError("is_transfer must be set exactly when type is transfer")
        if self.is_transfer and self.transfer_to_account_id is None:
            raise ValueError("Transfers require transfer_to_account_id")
        if self.transfer_to_account_id is not None and self.transfer_to_account_id == self.account_id:
            raise ValueError("Transfer destination must differ from the source account")
        return self


class TemplateUpdate(BaseModel):
    """Schema for partially updating a template."""

    name: Annotated[str | None, Field(min_length=1, max_length=100)] = None
    account_id: UUID | None = None
    account_name: Annotated[str | None, Field(max_length=100)] = None
    category_id: UUID | None = None
    category_name: Annotated[str | None, Field(max_length=100)] = None
    transfer_to_account_id: UUID | None = None
    amount: Annotated[Decimal | None, Field(max_digits=12, decimal_places=2)] = None
    description: Annotated[str | None, Field(max_length=255)] = None
    notes: Annotated[str | None, Field(max_length=1000)] = None

    period_type: PeriodType | None = None
    interval: Annotated[int | None, Field(ge=1, le=365)] = None
    first_occurrence: date | None = None
    end_date: date | None = None
    day_of_month: Annotated[int | None, Field(ge=1, le=31)] = None
    day_of_month_type: DayOfMonthType | None = None
    day_of_week: Annotated[int | None, Field(ge=0, le=6)] = None

    auto_match_enabled: bool | None = None
    skip_review: bool | None = None
    match_tolerance: Annotated[Decimal | None, Field(ge=0, max_digits=12, decimal_places=2)] = None
    match_window_days: Annotated[int | None, Field(ge=0, le=90)] = None
    is_active: bool | None = None

    @model_validator(mode="after")
    def reject_null_required(self) -> "TemplateUpdate":
        required = (
            "name",
            "account_id",
            "amount",
            "period_type",
            "interval",
            "first_occurrence",
            "auto_match_enabled",
            "skip_review",
            "match_window_days",
            "is_active",
        )
        for field_name in required:
            if field_name in self.model_fields_set and getattr(self, field_name) is None:
                raise ValueError(f"{field_name} cannot be null")
        return self


class TemplateResponse(TemplateBase, BaseResponse):
    """Schema for template response."""

    id: UUID
    user_id: UUID
    is_active: bool
    created_at: datetime
    updated_at: datetime


TemplateListResponse = ListResponse[TemplateResponse]
