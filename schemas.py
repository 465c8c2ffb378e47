import datetime as dt
from datetime import date, datetime
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from models import (
    NUMERIC_FIELD_TYPES,
    AssetCategory,
    CategoryType,
    CustomFieldType,
    LiabilityCategory,
    MonthDayPolicy,
    TransactionType,
)


class CustomFieldIn(BaseModel):
    id: Optional[str] = Field(default=None, max_length=64)
    name: str = Field(..., min_length=1, max_length=100)
    type: CustomFieldType
    required: bool = False
    placeholder: Optional[str] = Field(default=None, max_length=200)

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Field name is required")
        return value


class CustomFieldValue(CustomFieldIn):
    """A field copied onto an asset or liability, carrying its value."""

    value: Optional[Union[int, float, str]] = None

    @model_validator(mode="after")
    def value_matches_type(self) -> "CustomFieldValue":
        value = self.value
        if value is None:
            return self
        if self.type in NUMERIC_FIELD_TYPES:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"Field '{self.name}' expects a numeric value")
        elif self.type == CustomFieldType.date:
            if not isinstance(value, str):
                raise ValueError(f"Field '{self.name}' expects an ISO date")
            try:
                date.fromisoformat(value)
            except ValueError as exc:
                raise ValueError(f"Field '{self.name}' expects an ISO date") from exc
        elif not isinstance(value, str):
            raise ValueError(f"Field '{self.name}' expects a text value")
        return self


class CustomCategoryTemplateIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    category_type: CategoryType
    description: Optional[str] = Field(default=None, max_length=500)
    icon: Optional[str] = Field(default=None, max_length=100)
    fields: list[CustomFieldIn] = Field(..., min_length=1)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Category name is required")
        return value


class CustomCategoryTemplateUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    category_type: Optional[CategoryType] = None
    description: Optional[str] = Field(default=None, max_length=500)
    icon: Optional[str] = Field(default=None, max_length=100)
    # Emptiness is rejected by the service so the error is a conflict.
    fields: Optional[list[CustomFieldIn]] = None

    @model_validator(mode="after")
    def require_any_field(self) -> "CustomCategoryTemplateUpdate":
        if not self.model_fields_set:
            raise ValueError(
                "At least one field must be provided to update the custom category"
            )
        return self


def _check_custom_category(category, name, template_id) -> None:
    if category is not None and category.value == "custom":
        if not (name and name.strip()) and template_id is None:
            raise ValueError("custom_category_name is required for custom categories")


class AssetIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    category: AssetCategory
    value_cents: int = Field(..., ge=0)
    purchase_date: Optional[date] = None
    maturity_date: Optional[date] = None
    interest_rate: Optional[float] = Field(default=None, ge=0, le=100)
    institution: Optional[str] = Field(default=None, max_length=100)
    location: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = Field(default=None, max_length=500)
    owner: str = Field(..., min_length=1, max_length=100)
    documents: list[str] = Field(default_factory=list)
    document_url: Optional[str] = Field(default=None, max_length=500)
    custom_category_name: Optional[str] = Field(default=None, max_length=100)
    custom_category_id: Optional[int] = None
    custom_fields: Optional[list[CustomFieldValue]] = None

    @model_validator(mode="after")
    def custom_category_named(self) -> "AssetIn":
        _check_custom_category(
            self.category, self.custom_category_name, self.custom_category_id
        )
        return self


class AssetUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    category: Optional[AssetCategory] = None
    value_cents: Optional[int] = Field(default=None, ge=0)
    purchase_date: Optional[date] = None
    maturity_date: Optional[date] = None
    interest_rate: Optional[float] = Field(default=None, ge=0, le=100)
    institution: Optional[str] = Field(default=None, max_length=100)
    location: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = Field(default=None, max_length=500)
    owner: Optional[str] = Field(default=None, min_length=1, max_length=100)
    documents: Optional[list[str]] = None
    document_url: Optional[str] = Field(default=None, max_length=500)
    custom_category_name: Optional[str] = Field(default=None, max_length=100)
    custom_category_id: Optional[int] = None
    custom_fields: Optional[list[CustomFieldValue]] = None


class LiabilityIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    category: LiabilityCategory
    balance_cents: int = Field(..., ge=0)
    interest_rate: Optional[float] = Field(default=None, ge=0, le=100)
    due_date: Optional[date] = None
    institution: Optional[str] = Field(default=None, max_length=100)
    owner: str = Field(..., min_length=1, max_length=100)
    notes: Optional[str] = Field(default=None, max_length=500)
    custom_category_name: Optional[str] = Field(default=None, max_length=100)
    custom_category_id: Optional[int] = None
    custom_fields: Optional[list[CustomFieldValue]] = None

    @model_validator(mode="after")
    def custom_category_named(self) -> "LiabilityIn":
        _check_custom_category(
            self.category, self.custom_category_name, self.custom_category_id
        )
        return self


class LiabilityUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    category: Optional[LiabilityCategory] = None
    balance_cents: Optional[int] = Field(default=None, ge=0)
    interest_rate: Optional[float] = Field(default=None, ge=0, le=100)
    due_date: Optional[date] = None
    institution: Optional[str] = Field(default=None, max_length=100)
    owner: Optional[str] = Field(default=None, min_length=1, max_length=100)
    notes: Optional[str] = Field(default=None, max_length=500)
    custom_category_name: Optional[str] = Field(default=None, max_length=100)
    custom_category_id: Optional[int] = None
    custom_fields: Optional[list[CustomFieldValue]] = None


def _check_single_target(asset_id, liability_id) -> None:
    if (asset_id is None) == (liability_id is None):
        raise ValueError("Exactly one of asset_id or liability_id is required")


def _check_amount_sign(txn_type, amount_cents) -> None:
    if amount_cents < 0 and txn_type != TransactionType.adjustment:
        raise ValueError("Amount must be positive unless the type is adjustment")


class TransactionIn(BaseModel):
    asset_id: Optional[int] = None
    liability_id: Optional[int] = None
    type: TransactionType
    amount_cents: int
    date: date
    description: Optional[str] = Field(default=None, max_length=200)
    notes: Optional[str] = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def target_and_sign(self) -> "TransactionIn":
        _check_single_target(self.asset_id, self.liability_id)
        _check_amount_sign(self.type, self.amount_cents)
        return self


class TransactionUpdate(BaseModel):
    asset_id: Optional[int] = None
    liability_id: Optional[int] = None
    type: Optional[TransactionType] = None
    amount_cents: Optional[int] = None
    date: Optional[dt.date] = None
    description: Optional[str] = Field(default=None, max_length=200)
    notes: Optional[str] = Field(default=None, max_length=1000)


class RecurringScheduleIn(BaseModel):
    asset_id: Optional[int] = None
    liability_id: Optional[int] = None
    amount_cents: int = Field(..., ge=0)
    day_of_month: int = Field(..., ge=1, le=31)
    start_date: date
    end_date: Optional[date] = None
    description: Optional[str] = Field(default=None, max_length=200)
    is_active: bool = True
    month_day_policy: MonthDayPolicy = MonthDayPolicy.snap_to_end

    @model_validator(mode="after")
    def target_and_dates(self) -> "RecurringScheduleIn":
        _check_single_target(self.asset_id, self.liability_id)
        if self.end_date and self.end_date < self.start_date:
            raise ValueError("End date must be after start date")
        return self


class RecurringScheduleUpdate(BaseModel):
    amount_cents: Optional[int] = Field(default=None, ge=0)
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    description: Optional[str] = Field(default=None, max_length=200)
    is_active: Optional[bool] = None
    month_day_policy: Optional[MonthDayPolicy] = None


class RecordOccurrenceIn(BaseModel):
    occurrence_date: date
    amount_cents: Optional[int] = Field(default=None, ge=0)
    description: Optional[str] = Field(default=None, max_length=200)


class CustomCategoryTemplateOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    category_type: CategoryType
    description: Optional[str]
    icon: Optional[str]
    fields: list[dict]
    created_at: datetime
    updated_at: datetime


class AssetOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    category: AssetCategory
    value_cents: int
    purchase_date: Optional[date]
    maturity_date: Optional[date]
    interest_rate: Optional[float]
    institution: Optional[str]
    location: Optional[str]
    description: Optional[str]
    owner: str
    documents: list[str]
    document_url: Optional[str]
    custom_category_name: Optional[str]
    custom_category_id: Optional[int]
    custom_fields: list[dict]
    version: int
    created_at: datetime
    updated_at: datetime


class LiabilityOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    category: LiabilityCategory
    balance_cents: int
    interest_rate: Optional[float]
    due_date: Optional[date]
    institution: Optional[str]
    owner: str
    notes: Optional[str]
    custom_category_name: Optional[str]
    custom_category_id: Optional[int]
    custom_fields: list[dict]
    version: int
    created_at: datetime
    updated_at: datetime


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    asset_id: Optional[int]
    liability_id: Optional[int]
    type: TransactionType
    amount_cents: int
    date: date
    description: Optional[str]
    notes: Optional[str]
    schedule_id: Optional[int]
    occurrence_date: Optional[date]
    created_at: datetime
    updated_at: datetime


class RecurringScheduleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    asset_id: Optional[int]
    liability_id: Optional[int]
    amount_cents: int
    day_of_month: int
    start_date: date
    end_date: Optional[date]
    description: Optional[str]
    is_active: bool
    month_day_policy: MonthDayPolicy
    created_at: datetime
    updated_at: datetime
