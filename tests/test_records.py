from datetime import date

import pytest
from pydantic import ValidationError as SchemaError
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session

from database import Base
from errors import NotFoundError, ValidationError
from models import (
    AssetCategory,
    CategoryType,
    LiabilityCategory,
    RecurringSchedule,
    Transaction,
)
from schemas import (
    AssetIn,
    AssetUpdate,
    CustomCategoryTemplateIn,
    CustomFieldIn,
    CustomFieldValue,
    LiabilityIn,
    LiabilityUpdate,
    RecurringScheduleIn,
    TransactionIn,
)
from services import (
    AssetService,
    CustomCategoryTemplateService,
    LiabilityService,
    RecurringScheduleService,
    TransactionService,
)


def _engine():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return engine


def _crypto_template(session: Session, category_type=CategoryType.asset):
    return CustomCategoryTemplateService(session, 1).create(
        CustomCategoryTemplateIn(
            name="Crypto",
            category_type=category_type,
            fields=[
                CustomFieldIn(name="Wallet", type="text", required=True),
                CustomFieldIn(name="Units", type="number"),
            ],
        )
    )


def test_assets_are_paginated_newest_first() -> None:
    with Session(_engine()) as session:
        service = AssetService(session, 1)
        created = [
            service.create(
                AssetIn(name=f"FD {i}", category="fixed_deposit", value_cents=i, owner="Alice")
            )
            for i in range(3)
        ]

        first = service.list(page=1, limit=2)
        second = service.list(page=2, limit=2)

        assert first.total == 3
        assert first.pages == 2
        assert [a.id for a in first.items] == [created[2].id, created[1].id]
        assert [a.id for a in second.items] == [created[0].id]


def test_page_size_is_capped() -> None:
    with Session(_engine()) as session:
        page = AssetService(session, 1).list(page=0, limit=10_000)

        assert page.page == 1
        assert page.limit == 100


def test_listing_filters_by_category() -> None:
    with Session(_engine()) as session:
        service = AssetService(session, 1)
        service.create(AssetIn(name="Bars", category="gold", value_cents=1, owner="Alice"))
        service.create(AssetIn(name="Plot", category="land", value_cents=1, owner="Alice"))

        page = service.list(category=AssetCategory.gold)

        assert [a.name for a in page.items] == ["Bars"]


def test_summary_groups_by_category() -> None:
    with Session(_engine()) as session:
        service = LiabilityService(session, 1)
        for name, category, balance in (
            ("Visa", "credit_card", 5000),
            ("Amex", "credit_card", 2500),
            ("Home", "mortgage", 900000),
        ):
            service.create(
                LiabilityIn(name=name, category=category, balance_cents=balance, owner="Bob")
            )
        LiabilityService(session, 2).create(
            LiabilityIn(name="Other", category="tax", balance_cents=1, owner="Eve")
        )

        summary = service.summary()

        assert summary["total_cents"] == 907500
        assert summary["by_category"] == [
            {"category": "mortgage", "total_cents": 900000, "count": 1},
            {"category": "credit_card", "total_cents": 7500, "count": 2},
        ]


def test_template_is_hydrated_onto_new_asset() -> None:
    with Session(_engine()) as session:
        template = _crypto_template(session)

        asset = AssetService(session, 1).create(
            AssetIn(
                name="Cold wallet",
                category="custom",
                custom_category_id=template.id,
                value_cents=50000,
                owner="Alice",
            )
        )

        assert asset.category == AssetCategory.custom
        assert asset.custom_category_name == "Crypto"
        assert [f["name"] for f in asset.custom_fields] == ["Wallet", "Units"]
        assert all(f["value"] is None for f in asset.custom_fields)
        template_ids = {f["id"] for f in template.fields}
        assert not template_ids & {f["id"] for f in asset.custom_fields}


def test_custom_fields_are_a_snapshot_of_the_template() -> None:
    with Session(_engine()) as session:
        template = _crypto_template(session)
        asset = AssetService(session, 1).create(
            AssetIn(
                name="Cold wallet",
                category="custom",
                custom_category_id=template.id,
                value_cents=1,
                owner="Alice",
            )
        )

        CustomCategoryTemplateService(session, 1).delete(template.id)

        reloaded = AssetService(session, 1).get(asset.id)
        assert reloaded.custom_category_name == "Crypto"
        assert len(reloaded.custom_fields) == 2


def test_template_of_wrong_type_is_rejected() -> None:
    with Session(_engine()) as session:
        template = _crypto_template(session, CategoryType.liability)

        with pytest.raises(ValidationError, match="not asset records"):
            AssetService(session, 1).create(
                AssetIn(
                    name="Cold wallet",
                    category="custom",
                    custom_category_id=template.id,
                    value_cents=1,
                    owner="Alice",
                )
            )


def test_custom_category_needs_a_name() -> None:
    with pytest.raises(SchemaError):
        LiabilityIn(name="IOU", category="custom", balance_cents=1, owner="Bob")

    loan = LiabilityIn(
        name="IOU", category="custom", custom_category_name="Family", balance_cents=1, owner="Bob"
    )
    assert loan.custom_category_name == "Family"


def test_leaving_custom_category_clears_custom_name() -> None:
    with Session(_engine()) as session:
        service = AssetService(session, 1)
        asset = service.create(
            AssetIn(
                name="Cold wallet",
                category="custom",
                custom_category_name="Crypto",
                value_cents=1,
                owner="Alice",
            )
        )

        updated = service.update(asset.id, AssetUpdate(category=AssetCategory.investment))

        assert updated.category == AssetCategory.investment
        assert updated.custom_category_name is None
        assert updated.custom_category_id is None


def test_update_keeps_unsent_attributes_and_rejects_nulls() -> None:
    with Session(_engine()) as session:
        service = LiabilityService(session, 1)
        loan = service.create(
            LiabilityIn(
                name="Car Loan",
                category="loan",
                balance_cents=200000,
                interest_rate=8.5,
                owner="Bob",
            )
        )

        with pytest.raises(ValidationError, match="owner cannot be null"):
            service.update(loan.id, LiabilityUpdate(owner=None))

        renamed = service.update(loan.id, LiabilityUpdate(name="Car Loan (SBI)"))
        assert renamed.name == "Car Loan (SBI)"
        assert renamed.category == LiabilityCategory.loan
        assert renamed.balance_cents == 200000
        assert renamed.interest_rate == 8.5
        assert renamed.owner == "Bob"


def test_custom_field_values_are_type_checked() -> None:
    CustomFieldValue(name="Units", type="number", value=1.5)
    CustomFieldValue(name="Opened", type="date", value="2024-02-29")
    CustomFieldValue(name="Wallet", type="text", value=None)

    with pytest.raises(SchemaError):
        CustomFieldValue(name="Units", type="number", value="lots")
    with pytest.raises(SchemaError):
        CustomFieldValue(name="Opened", type="date", value="29/02/2024")
    with pytest.raises(SchemaError):
        CustomFieldValue(name="Wallet", type="text", value=12)


def test_record_custom_fields_keep_caller_ids() -> None:
    with Session(_engine()) as session:
        service = AssetService(session, 1)
        asset = service.create(
            AssetIn(
                name="Cold wallet",
                category="custom",
                custom_category_name="Crypto",
                value_cents=1,
                owner="Alice",
                custom_fields=[
                    CustomFieldValue(id="field-wallet", name="Wallet", type="text", value="0xabc"),
                    CustomFieldValue(name="Units", type="number", value=2),
                ],
            )
        )

        assert asset.custom_fields[0]["id"] == "field-wallet"
        assert asset.custom_fields[0]["value"] == "0xabc"
        assert asset.custom_fields[1]["id"].startswith("field-")


def test_records_of_other_users_are_not_found() -> None:
    with Session(_engine()) as session:
        asset = AssetService(session, 1).create(
            AssetIn(name="Plot", category="land", value_cents=1, owner="Alice")
        )

        with pytest.raises(NotFoundError):
            AssetService(session, 2).get(asset.id)
        with pytest.raises(NotFoundError):
            AssetService(session, 2).update(asset.id, AssetUpdate(name="Mine"))
        with pytest.raises(NotFoundError):
            AssetService(session, 2).delete(asset.id)


def test_deleting_a_record_removes_its_transactions_and_schedules() -> None:
    with Session(_engine()) as session:
        loan = LiabilityService(session, 1).create(
            LiabilityIn(name="Car Loan", category="loan", balance_cents=200000, owner="Bob")
        )
        TransactionService(session, 1).create(
            TransactionIn(
                liability_id=loan.id,
                type="emi_payment",
                amount_cents=15000,
                date=date(2024, 1, 5),
            )
        )
        RecurringScheduleService(session, 1).create(
            RecurringScheduleIn(
                liability_id=loan.id,
                amount_cents=15000,
                day_of_month=5,
                start_date=date(2024, 1, 1),
            )
        )

        LiabilityService(session, 1).delete(loan.id)

        assert session.scalar(select(func.count()).select_from(Transaction)) == 0
        assert session.scalar(select(func.count()).select_from(RecurringSchedule)) == 0
