from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class CategoryType(str, Enum):
    asset = "asset"
    liability = "liability"


class CustomFieldType(str, Enum):
    text = "text"
    textarea = "textarea"
    number = "number"
    currency = "currency"
    percentage = "percentage"
    date = "date"
    email = "email"
    phone = "phone"
    url = "url"


NUMERIC_FIELD_TYPES = frozenset(
    {CustomFieldType.number, CustomFieldType.currency, CustomFieldType.percentage}
)


class AssetCategory(str, Enum):
    savings = "savings"
    fixed_deposit = "fixed_deposit"
    land = "land"
    gold = "gold"
    gold_scheme = "gold_scheme"
    lent_money = "lent_money"
    investment = "investment"
    property = "property"
    retirement = "retirement"
    other = "other"
    custom = "custom"


class LiabilityCategory(str, Enum):
    credit_card = "credit_card"
    loan = "loan"
    mortgage = "mortgage"
    tax = "tax"
    other = "other"
    custom = "custom"


class TransactionType(str, Enum):
    emi_payment = "emi_payment"
    payment = "payment"
    deposit = "deposit"
    withdrawal = "withdrawal"
    interest = "interest"
    adjustment = "adjustment"


class MonthDayPolicy(str, Enum):
    snap_to_end = "snap_to_end"
    skip = "skip"
    roll_forward = "roll_forward"


def _values(enum_cls):
    return [member.value for member in enum_cls]


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class CustomCategoryTemplate(Base, TimestampMixin):
    __tablename__ = "custom_category_templates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    # Lowercased copy of ``name``; backs the case-insensitive unique index.
    name_key: Mapped[str] = mapped_column(String(100), nullable=False)
    category_type: Mapped[CategoryType] = mapped_column(
        SAEnum(CategoryType, values_callable=_values), nullable=False
    )
    description: Mapped[Optional[str]] = mapped_column(String(500))
    icon: Mapped[Optional[str]] = mapped_column(String(100))
    fields: Mapped[list[dict]] = mapped_column(JSON, nullable=False, default=list)

    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "category_type",
            "name_key",
            name="uq_custom_category_user_type_name",
        ),
        Index("ix_custom_category_user_created", "user_id", "created_at"),
    )


class Asset(Base, TimestampMixin):
    __tablename__ = "assets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    category: Mapped[AssetCategory] = mapped_column(
        SAEnum(AssetCategory, values_callable=_values), nullable=False
    )
    value_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    purchase_date: Mapped[Optional[date]] = mapped_column(Date)
    maturity_date: Mapped[Optional[date]] = mapped_column(Date)
    interest_rate: Mapped[Optional[float]] = mapped_column(Float)
    institution: Mapped[Optional[str]] = mapped_column(String(100))
    location: Mapped[Optional[str]] = mapped_column(String(200))
    description: Mapped[Optional[str]] = mapped_column(String(500))
    owner: Mapped[str] = mapped_column(String(100), nullable=False)
    documents: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    document_url: Mapped[Optional[str]] = mapped_column(String(500))
    custom_category_name: Mapped[Optional[str]] = mapped_column(String(100))
    # Weak back-reference for display only; the template may be gone.
    custom_category_id: Mapped[Optional[int]] = mapped_column(Integer)
    custom_fields: Mapped[list[dict]] = mapped_column(
        JSON, nullable=False, default=list
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction", back_populates="asset", cascade="all, delete-orphan"
    )
    schedules: Mapped[list["RecurringSchedule"]] = relationship(
        "RecurringSchedule", back_populates="asset", cascade="all, delete-orphan"
    )

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        CheckConstraint("value_cents >= 0", name="ck_assets_value_non_negative"),
        Index("ix_assets_user_category", "user_id", "category"),
        Index("ix_assets_user_created", "user_id", "created_at"),
    )


class Liability(Base, TimestampMixin):
    __tablename__ = "liabilities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    category: Mapped[LiabilityCategory] = mapped_column(
        SAEnum(LiabilityCategory, values_callable=_values), nullable=False
    )
    balance_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    interest_rate: Mapped[Optional[float]] = mapped_column(Float)
    due_date: Mapped[Optional[date]] = mapped_column(Date)
    institution: Mapped[Optional[str]] = mapped_column(String(100))
    owner: Mapped[str] = mapped_column(String(100), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(String(500))
    custom_category_name: Mapped[Optional[str]] = mapped_column(String(100))
    custom_category_id: Mapped[Optional[int]] = mapped_column(Integer)
    custom_fields: Mapped[list[dict]] = mapped_column(
        JSON, nullable=False, default=list
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction", back_populates="liability", cascade="all, delete-orphan"
    )
    schedules: Mapped[list["RecurringSchedule"]] = relationship(
        "RecurringSchedule", back_populates="liability", cascade="all, delete-orphan"
    )

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        CheckConstraint(
            "balance_cents >= 0", name="ck_liabilities_balance_non_negative"
        ),
        CheckConstraint(
            "interest_rate IS NULL OR (interest_rate >= 0 AND interest_rate <= 100)",
            name="ck_liabilities_interest_rate_range",
        ),
        Index("ix_liabilities_user_category", "user_id", "category"),
        Index("ix_liabilities_user_created", "user_id", "created_at"),
    )


_EXACTLY_ONE_TARGET = (
    "(asset_id IS NOT NULL AND liability_id IS NULL) "
    "OR (asset_id IS NULL AND liability_id IS NOT NULL)"
)


class Transaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    asset_id: Mapped[Optional[int]] = mapped_column(ForeignKey("assets.id"))
    liability_id: Mapped[Optional[int]] = mapped_column(ForeignKey("liabilities.id"))
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType, values_callable=_values), nullable=False
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(200))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    schedule_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("recurring_schedules.id")
    )
    occurrence_date: Mapped[Optional[date]] = mapped_column(Date)
    date: Mapped[date] = mapped_column(Date, nullable=False)

    asset: Mapped[Optional["Asset"]] = relationship(
        "Asset", back_populates="transactions"
    )
    liability: Mapped[Optional["Liability"]] = relationship(
        "Liability", back_populates="transactions"
    )
    schedule: Mapped[Optional["RecurringSchedule"]] = relationship(
        "RecurringSchedule", back_populates="transactions"
    )

    __table_args__ = (
        CheckConstraint(_EXACTLY_ONE_TARGET, name="ck_transactions_single_target"),
        CheckConstraint(
            "amount_cents >= 0 OR type = 'adjustment'",
            name="ck_transactions_amount_positive",
        ),
        UniqueConstraint(
            "schedule_id", "occurrence_date", name="uq_txn_schedule_occurrence"
        ),
        Index("ix_transactions_user_date", "user_id", "date"),
        Index("ix_transactions_asset_date", "asset_id", "date"),
        Index("ix_transactions_liability_date", "liability_id", "date"),
    )


class RecurringSchedule(Base, TimestampMixin):
    __tablename__ = "recurring_schedules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    asset_id: Mapped[Optional[int]] = mapped_column(ForeignKey("assets.id"))
    liability_id: Mapped[Optional[int]] = mapped_column(ForeignKey("liabilities.id"))
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    day_of_month: Mapped[int] = mapped_column(Integer, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[date]] = mapped_column(Date)
    description: Mapped[Optional[str]] = mapped_column(String(200))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    month_day_policy: Mapped[MonthDayPolicy] = mapped_column(
        SAEnum(MonthDayPolicy, values_callable=_values),
        default=MonthDayPolicy.snap_to_end,
        nullable=False,
    )

    asset: Mapped[Optional["Asset"]] = relationship("Asset", back_populates="schedules")
    liability: Mapped[Optional["Liability"]] = relationship(
        "Liability", back_populates="schedules"
    )
    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction", back_populates="schedule"
    )

    __table_args__ = (
        CheckConstraint(_EXACTLY_ONE_TARGET, name="ck_schedules_single_target"),
        CheckConstraint(
            "day_of_month >= 1 AND day_of_month <= 31", name="ck_schedule_day_range"
        ),
        CheckConstraint("amount_cents >= 0", name="ck_schedule_amount_positive"),
        CheckConstraint(
            "end_date IS NULL OR end_date >= start_date",
            name="ck_schedule_end_after_start",
        ),
        Index("ix_schedules_user_active", "user_id", "is_active"),
    )
