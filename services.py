from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional, Union
from uuid import uuid4

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from errors import (
    ConflictError,
    ValidationError,
    duplicate_template_name,
    fields_required,
    not_found,
)
from ledger import BalanceEngine
from models import (
    Asset,
    AssetCategory,
    CategoryType,
    CustomCategoryTemplate,
    Liability,
    LiabilityCategory,
    RecurringSchedule,
    Transaction,
    TransactionType,
)
from recurrence import UpcomingPayment, local_today, project_upcoming
from schemas import (
    CustomCategoryTemplateIn,
    CustomCategoryTemplateUpdate,
    CustomFieldIn,
    RecordOccurrenceIn,
    RecurringScheduleIn,
    RecurringScheduleUpdate,
    TransactionIn,
    TransactionUpdate,
)


logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


@dataclass
class Page:
    items: list
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


def _paginate(session: Session, stmt, page: int, limit: int) -> Page:
    page = max(page, 1)
    limit = min(max(limit, 1), MAX_PAGE_SIZE)
    total = session.execute(
        select(func.count()).select_from(stmt.order_by(None).subquery())
    ).scalar_one()
    items = session.scalars(stmt.limit(limit).offset((page - 1) * limit)).all()
    return Page(items=list(items), total=int(total or 0), page=page, limit=limit)


def new_field_id() -> str:
    return f"field-{uuid4().hex[:16]}"


def sanitize_fields(fields: Iterable[CustomFieldIn]) -> list[dict]:
    """Template field definitions with freshly minted ids."""
    return [
        {
            "id": new_field_id(),
            "name": field.name.strip(),
            "type": field.type.value,
            "required": bool(field.required),
            "placeholder": field.placeholder,
        }
        for field in fields
    ]


def hydrate(fields: Iterable[dict]) -> list[dict]:
    """Independent copies of template fields, ready to carry values."""
    return [{**field, "id": new_field_id(), "value": None} for field in fields]


def _record_fields(fields) -> list[dict]:
    copies: list[dict] = []
    for field in fields:
        data = field.model_dump(mode="json")
        data["id"] = data.get("id") or new_field_id()
        copies.append(data)
    return copies


class CustomCategoryTemplateService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_templates(
        self, category_type: Optional[CategoryType] = None
    ) -> list[CustomCategoryTemplate]:
        stmt = (
            select(CustomCategoryTemplate)
            .where(CustomCategoryTemplate.user_id == self.user_id)
            .order_by(
                CustomCategoryTemplate.created_at.desc(),
                CustomCategoryTemplate.id.desc(),
            )
        )
        if category_type is not None:
            stmt = stmt.where(CustomCategoryTemplate.category_type == category_type)
        return list(self.session.scalars(stmt).all())

    def get(self, template_id: int) -> CustomCategoryTemplate:
        template = self.session.get(CustomCategoryTemplate, template_id)
        if not template or template.user_id != self.user_id:
            raise not_found("Custom category")
        return template

    def _find_duplicate(
        self,
        name: str,
        category_type: CategoryType,
        exclude_id: Optional[int] = None,
    ) -> Optional[CustomCategoryTemplate]:
        stmt = select(CustomCategoryTemplate).where(
            CustomCategoryTemplate.user_id == self.user_id,
            CustomCategoryTemplate.category_type == category_type,
            CustomCategoryTemplate.name_key == name.lower(),
        )
        if exclude_id is not None:
            stmt = stmt.where(CustomCategoryTemplate.id != exclude_id)
        return self.session.scalar(stmt)

    def _commit(self, name: str, category_type: CategoryType) -> None:
        try:
            self.session.commit()
        except IntegrityError as exc:
            # Lost the race against a concurrent insert of the same name.
            self.session.rollback()
            raise duplicate_template_name(category_type.value, name) from exc

    def create(self, data: CustomCategoryTemplateIn) -> CustomCategoryTemplate:
        name = data.name.strip()
        if not name:
            raise ValidationError("Category name is required")
        if not data.fields:
            raise ValidationError("At least one custom field is required")
        if self._find_duplicate(name, data.category_type):
            raise duplicate_template_name(data.category_type.value, name)

        template = CustomCategoryTemplate(
            user_id=self.user_id,
            name=name,
            name_key=name.lower(),
            category_type=data.category_type,
            description=data.description,
            icon=data.icon,
            fields=sanitize_fields(data.fields),
        )
        self.session.add(template)
        self._commit(name, data.category_type)
        self.session.refresh(template)
        logger.info(
            f"custom_category_created: id={template.id} user={self.user_id} "
            f"type={template.category_type.value}"
        )
        return template

    def update(
        self, template_id: int, data: CustomCategoryTemplateUpdate
    ) -> CustomCategoryTemplate:
        template = self.get(template_id)
        provided = data.model_fields_set
        for required in ("name", "category_type"):
            if required in provided and getattr(data, required) is None:
                raise ValidationError(f"{required} cannot be null")

        name = template.name
        if "name" in provided:
            name = data.name.strip()
            if not name:
                raise ValidationError("Category name is required")
        category_type = template.category_type
        if "category_type" in provided:
            category_type = data.category_type

        if name.lower() != template.name_key or category_type != template.category_type:
            if self._find_duplicate(name, category_type, exclude_id=template.id):
                raise duplicate_template_name(category_type.value, name)

        fields = None
        if "fields" in provided:
            fields = sanitize_fields(data.fields or [])
            if not fields:
                raise fields_required()

        # Validation is complete; nothing below can fail half-way.
        template.name = name
        template.name_key = name.lower()
        template.category_type = category_type
        if "description" in provided:
            template.description = data.description
        if "icon" in provided:
            template.icon = data.icon
        if fields is not None:
            template.fields = fields

        self._commit(name, category_type)
        self.session.refresh(template)
        logger.info(f"custom_category_updated: id={template.id} user={self.user_id}")
        return template

    def delete(self, template_id: int) -> None:
        template = self.get(template_id)
        self.session.delete(template)
        self.session.commit()
        logger.info(f"custom_category_deleted: id={template_id} user={self.user_id}")

    def hydrate_fields(self, template_id: int) -> list[dict]:
        return hydrate(self.get(template_id).fields)


LedgerRecord = Union[Asset, Liability]


class _LedgerRecordService:
    """Shared CRUD for assets and liabilities."""

    model: type = Asset
    label = "Asset"
    category_type = CategoryType.asset
    custom_category = AssetCategory.custom
    balance_attr = "value_cents"

    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def get(self, record_id: int):
        record = self.session.get(self.model, record_id)
        if not record or record.user_id != self.user_id:
            raise not_found(self.label)
        return record

    def list(self, page: int = 1, limit: int = 50, category=None) -> Page:
        model = self.model
        stmt = (
            select(model)
            .where(model.user_id == self.user_id)
            .order_by(model.created_at.desc(), model.id.desc())
        )
        if category is not None:
            stmt = stmt.where(model.category == category)
        return _paginate(self.session, stmt, page, limit)

    def _resolve_template(self, template_id: int) -> CustomCategoryTemplate:
        template = CustomCategoryTemplateService(self.session, self.user_id).get(
            template_id
        )
        if template.category_type != self.category_type:
            raise ValidationError(
                f"Custom category {template_id} holds {template.category_type.value} "
                f"records, not {self.category_type.value} records"
            )
        return template

    def _apply_custom_category(
        self, values: dict, *, resolve_template: bool, fields_given: bool
    ) -> dict:
        """Fill in or clear the custom-category attributes of ``values``.

        Selecting a template switches the record to the custom category,
        defaults the display name to the template's and, unless the caller
        sent its own fields, hydrates the template's fields onto the record.
        """
        template_id = values.get("custom_category_id")
        if resolve_template and template_id is not None:
            template = self._resolve_template(template_id)
            values["category"] = self.custom_category
            if not (values.get("custom_category_name") or "").strip():
                values["custom_category_name"] = template.name
            if not fields_given:
                values["custom_fields"] = hydrate(template.fields)

        if values.get("category") == self.custom_category:
            name = (values.get("custom_category_name") or "").strip()
            if not name:
                raise ValidationError(
                    "custom_category_name is required for custom categories"
                )
            values["custom_category_name"] = name
        else:
            values["custom_category_name"] = None
            values["custom_category_id"] = None
        return values

    def create(self, data):
        values = data.model_dump(exclude={"custom_fields"})
        fields_given = data.custom_fields is not None
        values["custom_fields"] = (
            _record_fields(data.custom_fields) if fields_given else []
        )
        values = self._apply_custom_category(
            values, resolve_template=True, fields_given=fields_given
        )
        record = self.model(user_id=self.user_id, **values)
        self.session.add(record)
        self.session.commit()
        self.session.refresh(record)
        logger.info(
            f"{self.model.__tablename__}_created: id={record.id} user={self.user_id}"
        )
        return record

    def update(self, record_id: int, data):
        record = self.get(record_id)
        provided = data.model_fields_set
        changes = data.model_dump(include=provided - {"custom_fields"})
        for required in ("name", "owner", "category", self.balance_attr):
            if required in changes and changes[required] is None:
                raise ValidationError(f"{required} cannot be null")
        fields_given = "custom_fields" in provided
        if fields_given:
            changes["custom_fields"] = _record_fields(data.custom_fields or [])

        values = {
            "category": record.category,
            "custom_category_name": record.custom_category_name,
            "custom_category_id": record.custom_category_id,
            **changes,
        }
        values = self._apply_custom_category(
            values,
            resolve_template="custom_category_id" in provided,
            fields_given=fields_given,
        )

        for key, value in values.items():
            setattr(record, key, value)
        try:
            self.session.commit()
        except StaleDataError as exc:
            self.session.rollback()
            raise ConflictError(
                f"{self.label} was modified concurrently, please retry"
            ) from exc
        self.session.refresh(record)
        logger.info(
            f"{self.model.__tablename__}_updated: id={record.id} user={self.user_id}"
        )
        return record

    def delete(self, record_id: int) -> None:
        record = self.get(record_id)
        self.session.delete(record)
        self.session.commit()
        logger.info(
            f"{self.model.__tablename__}_deleted: id={record_id} user={self.user_id}"
        )

    def summary(self) -> dict[str, object]:
        model = self.model
        column = getattr(model, self.balance_attr)
        total = func.coalesce(func.sum(column), 0)
        rows = self.session.execute(
            select(model.category, total, func.count(model.id))
            .where(model.user_id == self.user_id)
            .group_by(model.category)
            .order_by(total.desc())
        ).all()
        by_category = [
            {"category": category.value, "total_cents": int(amount), "count": count}
            for category, amount, count in rows
        ]
        return {
            "total_cents": sum(item["total_cents"] for item in by_category),
            "by_category": by_category,
        }


class AssetService(_LedgerRecordService):
    model = Asset
    label = "Asset"
    category_type = CategoryType.asset
    custom_category = AssetCategory.custom
    balance_attr = "value_cents"


class LiabilityService(_LedgerRecordService):
    model = Liability
    label = "Liability"
    category_type = CategoryType.liability
    custom_category = LiabilityCategory.custom
    balance_attr = "balance_cents"


def _require_target(
    session: Session, user_id: int, asset_id: Optional[int], liability_id: Optional[int]
) -> LedgerRecord:
    if asset_id is not None:
        return AssetService(session, user_id).get(asset_id)
    return LiabilityService(session, user_id).get(liability_id)


class TransactionService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id
        self.balances = BalanceEngine(session, user_id)

    def get(self, transaction_id: int) -> Transaction:
        txn = self.session.get(Transaction, transaction_id)
        if not txn or txn.user_id != self.user_id:
            raise not_found("Transaction")
        return txn

    def list(
        self,
        asset_id: Optional[int] = None,
        liability_id: Optional[int] = None,
        page: int = 1,
        limit: int = 50,
    ) -> Page:
        stmt = (
            select(Transaction)
            .where(Transaction.user_id == self.user_id)
            .order_by(Transaction.date.desc(), Transaction.id.desc())
        )
        if asset_id is not None:
            stmt = stmt.where(Transaction.asset_id == asset_id)
        if liability_id is not None:
            stmt = stmt.where(Transaction.liability_id == liability_id)
        return _paginate(self.session, stmt, page, limit)

    def create(
        self,
        data: TransactionIn,
        *,
        schedule_id: Optional[int] = None,
        occurrence_date: Optional[date] = None,
    ) -> Transaction:
        _require_target(self.session, self.user_id, data.asset_id, data.liability_id)
        txn = Transaction(
            user_id=self.user_id,
            asset_id=data.asset_id,
            liability_id=data.liability_id,
            type=data.type,
            amount_cents=data.amount_cents,
            date=data.date,
            description=data.description,
            notes=data.notes,
            schedule_id=schedule_id,
            occurrence_date=occurrence_date,
        )
        self.session.add(txn)
        self.session.flush()
        self.balances.apply(txn)
        self.session.commit()
        self.session.refresh(txn)
        logger.info(
            f"transaction_created: id={txn.id} user={self.user_id} "
            f"type={txn.type.value} amount_cents={txn.amount_cents}"
        )
        return txn

    def update(self, transaction_id: int, data: TransactionUpdate) -> Transaction:
        txn = self.get(transaction_id)
        changes = data.model_dump(include=data.model_fields_set)

        # Pointing at the other kind of record drops the previous target.
        if changes.get("asset_id") is not None and "liability_id" not in changes:
            changes["liability_id"] = None
        if changes.get("liability_id") is not None and "asset_id" not in changes:
            changes["asset_id"] = None

        for required in ("type", "amount_cents", "date"):
            if required in changes and changes[required] is None:
                raise ValidationError(f"{required} cannot be null")

        asset_id = changes.get("asset_id", txn.asset_id)
        liability_id = changes.get("liability_id", txn.liability_id)
        if (asset_id is None) == (liability_id is None):
            raise ValidationError("Exactly one of asset_id or liability_id is required")
        txn_type = changes.get("type", txn.type)
        amount_cents = changes.get("amount_cents", txn.amount_cents)
        if amount_cents < 0 and txn_type != TransactionType.adjustment:
            raise ValidationError(
                "Amount must be positive unless the type is adjustment"
            )
        _require_target(self.session, self.user_id, asset_id, liability_id)

        self.balances.apply(txn, reverse=True)
        for key, value in changes.items():
            setattr(txn, key, value)
        self.session.flush()
        self.balances.apply(txn)
        self.session.commit()
        self.session.refresh(txn)
        logger.info(f"transaction_updated: id={txn.id} user={self.user_id}")
        return txn

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        self.balances.apply(txn, reverse=True)
        self.session.delete(txn)
        self.session.commit()
        logger.info(f"transaction_deleted: id={transaction_id} user={self.user_id}")


class RecurringScheduleService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def get(self, schedule_id: int) -> RecurringSchedule:
        schedule = self.session.get(RecurringSchedule, schedule_id)
        if not schedule or schedule.user_id != self.user_id:
            raise not_found("Schedule")
        return schedule

    def list(
        self, asset_id: Optional[int] = None, liability_id: Optional[int] = None
    ) -> list[RecurringSchedule]:
        """Schedules for a target (active or not), or all active schedules."""
        stmt = (
            select(RecurringSchedule)
            .where(RecurringSchedule.user_id == self.user_id)
            .order_by(RecurringSchedule.day_of_month, RecurringSchedule.id)
        )
        if asset_id is None and liability_id is None:
            stmt = stmt.where(RecurringSchedule.is_active.is_(True))
        if asset_id is not None:
            stmt = stmt.where(RecurringSchedule.asset_id == asset_id)
        if liability_id is not None:
            stmt = stmt.where(RecurringSchedule.liability_id == liability_id)
        return list(self.session.scalars(stmt).all())

    def create(self, data: RecurringScheduleIn) -> RecurringSchedule:
        _require_target(self.session, self.user_id, data.asset_id, data.liability_id)
        schedule = RecurringSchedule(user_id=self.user_id, **data.model_dump())
        self.session.add(schedule)
        self.session.commit()
        self.session.refresh(schedule)
        logger.info(f"schedule_created: id={schedule.id} user={self.user_id}")
        return schedule

    def update(
        self, schedule_id: int, data: RecurringScheduleUpdate
    ) -> RecurringSchedule:
        schedule = self.get(schedule_id)
        changes = data.model_dump(include=data.model_fields_set)
        for required in (
            "amount_cents",
            "day_of_month",
            "start_date",
            "is_active",
            "month_day_policy",
        ):
            if required in changes and changes[required] is None:
                raise ValidationError(f"{required} cannot be null")
        start_date = changes.get("start_date", schedule.start_date)
        end_date = changes.get("end_date", schedule.end_date)
        if end_date is not None and end_date < start_date:
            raise ValidationError("End date must be after start date")

        for key, value in changes.items():
            setattr(schedule, key, value)
        self.session.commit()
        self.session.refresh(schedule)
        logger.info(f"schedule_updated: id={schedule.id} user={self.user_id}")
        return schedule

    def deactivate(self, schedule_id: int) -> RecurringSchedule:
        schedule = self.get(schedule_id)
        schedule.is_active = False
        self.session.commit()
        self.session.refresh(schedule)
        logger.info(f"schedule_deactivated: id={schedule.id} user={self.user_id}")
        return schedule

    def delete(self, schedule_id: int) -> None:
        schedule = self.get(schedule_id)
        # Recorded payments stay in the ledger; only their link is cleared.
        self.session.delete(schedule)
        self.session.commit()
        logger.info(f"schedule_deleted: id={schedule_id} user={self.user_id}")

    def _ledger_for(self, schedules: list[RecurringSchedule]) -> list[Transaction]:
        asset_ids = {s.asset_id for s in schedules if s.asset_id is not None}
        liability_ids = {s.liability_id for s in schedules if s.liability_id is not None}
        if not asset_ids and not liability_ids:
            return []
        stmt = select(Transaction).where(
            Transaction.user_id == self.user_id,
            or_(
                Transaction.asset_id.in_(sorted(asset_ids)),
                Transaction.liability_id.in_(sorted(liability_ids)),
            ),
        )
        return list(self.session.scalars(stmt).all())

    def upcoming(
        self,
        asset_id: Optional[int] = None,
        liability_id: Optional[int] = None,
        months: int = 12,
        today: Optional[date] = None,
    ) -> list[UpcomingPayment]:
        if asset_id is not None:
            AssetService(self.session, self.user_id).get(asset_id)
        if liability_id is not None:
            LiabilityService(self.session, self.user_id).get(liability_id)
        schedules = self.list(asset_id=asset_id, liability_id=liability_id)
        return project_upcoming(
            schedules, self._ledger_for(schedules), months, today or local_today()
        )

    def record_occurrence(
        self, schedule_id: int, data: RecordOccurrenceIn
    ) -> Transaction:
        schedule = self.get(schedule_id)
        occurrence = data.occurrence_date
        if occurrence < schedule.start_date or (
            schedule.end_date and occurrence > schedule.end_date
        ):
            raise ValidationError("Occurrence date is outside the schedule window")
        existing = self.session.scalar(
            select(Transaction.id).where(
                Transaction.schedule_id == schedule.id,
                Transaction.occurrence_date == occurrence,
            )
        )
        if existing:
            raise ConflictError("This occurrence has already been recorded")

        txn_type = (
            TransactionType.deposit
            if schedule.asset_id is not None
            else TransactionType.emi_payment
        )
        description = (
            data.description
            or schedule.description
            or f"Scheduled payment - {occurrence.strftime('%B %Y')}"
        )
        payload = TransactionIn(
            asset_id=schedule.asset_id,
            liability_id=schedule.liability_id,
            type=txn_type,
            amount_cents=(
                data.amount_cents
                if data.amount_cents is not None
                else schedule.amount_cents
            ),
            date=occurrence,
            description=description,
        )
        try:
            return TransactionService(self.session, self.user_id).create(
                payload, schedule_id=schedule.id, occurrence_date=occurrence
            )
        except IntegrityError as exc:
            self.session.rollback()
            raise ConflictError("This occurrence has already been recorded") from exc
