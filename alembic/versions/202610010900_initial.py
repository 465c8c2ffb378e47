"""initial ledger schema

Revision ID: 202610010900
Revises:
Create Date: 2026-10-01 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610010900"
down_revision = None
branch_labels = None
depends_on = None


EXACTLY_ONE_TARGET = (
    "(asset_id IS NOT NULL AND liability_id IS NULL) "
    "OR (asset_id IS NULL AND liability_id IS NOT NULL)"
)

asset_category = sa.Enum(
    "savings",
    "fixed_deposit",
    "land",
    "gold",
    "gold_scheme",
    "lent_money",
    "investment",
    "property",
    "retirement",
    "other",
    "custom",
    name="assetcategory",
)
liability_category = sa.Enum(
    "credit_card", "loan", "mortgage", "tax", "other", "custom", name="liabilitycategory"
)


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "custom_category_templates",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("name_key", sa.String(length=100), nullable=False),
        sa.Column(
            "category_type",
            sa.Enum("asset", "liability", name="categorytype"),
            nullable=False,
        ),
        sa.Column("description", sa.String(length=500)),
        sa.Column("icon", sa.String(length=100)),
        sa.Column("fields", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint(
            "user_id",
            "category_type",
            "name_key",
            name="uq_custom_category_user_type_name",
        ),
    )
    op.create_index(
        "ix_custom_category_templates_user_id",
        "custom_category_templates",
        ["user_id"],
    )
    op.create_index(
        "ix_custom_category_user_created",
        "custom_category_templates",
        ["user_id", "created_at"],
    )

    op.create_table(
        "assets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("category", asset_category, nullable=False),
        sa.Column("value_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("purchase_date", sa.Date()),
        sa.Column("maturity_date", sa.Date()),
        sa.Column("interest_rate", sa.Float()),
        sa.Column("institution", sa.String(length=100)),
        sa.Column("location", sa.String(length=200)),
        sa.Column("description", sa.String(length=500)),
        sa.Column("owner", sa.String(length=100), nullable=False),
        sa.Column("documents", sa.JSON(), nullable=False),
        sa.Column("document_url", sa.String(length=500)),
        sa.Column("custom_category_name", sa.String(length=100)),
        sa.Column("custom_category_id", sa.Integer()),
        sa.Column("custom_fields", sa.JSON(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.CheckConstraint("value_cents >= 0", name="ck_assets_value_non_negative"),
    )
    op.create_index("ix_assets_user_category", "assets", ["user_id", "category"])
    op.create_index("ix_assets_user_created", "assets", ["user_id", "created_at"])

    op.create_table(
        "liabilities",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("category", liability_category, nullable=False),
        sa.Column("balance_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("interest_rate", sa.Float()),
        sa.Column("due_date", sa.Date()),
        sa.Column("institution", sa.String(length=100)),
        sa.Column("owner", sa.String(length=100), nullable=False),
        sa.Column("notes", sa.String(length=500)),
        sa.Column("custom_category_name", sa.String(length=100)),
        sa.Column("custom_category_id", sa.Integer()),
        sa.Column("custom_fields", sa.JSON(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.CheckConstraint(
            "balance_cents >= 0", name="ck_liabilities_balance_non_negative"
        ),
        sa.CheckConstraint(
            "interest_rate IS NULL OR (interest_rate >= 0 AND interest_rate <= 100)",
            name="ck_liabilities_interest_rate_range",
        ),
    )
    op.create_index(
        "ix_liabilities_user_category", "liabilities", ["user_id", "category"]
    )
    op.create_index(
        "ix_liabilities_user_created", "liabilities", ["user_id", "created_at"]
    )

    op.create_table(
        "recurring_schedules",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("asset_id", sa.Integer(), sa.ForeignKey("assets.id")),
        sa.Column("liability_id", sa.Integer(), sa.ForeignKey("liabilities.id")),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("day_of_month", sa.Integer(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date()),
        sa.Column("description", sa.String(length=200)),
        sa.Column(
            "is_active", sa.Boolean(), nullable=False, server_default=sa.true()
        ),
        sa.Column(
            "month_day_policy",
            sa.Enum("snap_to_end", "skip", "roll_forward", name="monthdaypolicy"),
            nullable=False,
            server_default="snap_to_end",
        ),
        *_timestamps(),
        sa.CheckConstraint(EXACTLY_ONE_TARGET, name="ck_schedules_single_target"),
        sa.CheckConstraint(
            "day_of_month >= 1 AND day_of_month <= 31", name="ck_schedule_day_range"
        ),
        sa.CheckConstraint("amount_cents >= 0", name="ck_schedule_amount_positive"),
        sa.CheckConstraint(
            "end_date IS NULL OR end_date >= start_date",
            name="ck_schedule_end_after_start",
        ),
    )
    op.create_index(
        "ix_schedules_user_active", "recurring_schedules", ["user_id", "is_active"]
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("asset_id", sa.Integer(), sa.ForeignKey("assets.id")),
        sa.Column("liability_id", sa.Integer(), sa.ForeignKey("liabilities.id")),
        sa.Column(
            "type",
            sa.Enum(
                "emi_payment",
                "payment",
                "deposit",
                "withdrawal",
                "interest",
                "adjustment",
                name="transactiontype",
            ),
            nullable=False,
        ),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(length=200)),
        sa.Column("notes", sa.Text()),
        sa.Column(
            "schedule_id", sa.Integer(), sa.ForeignKey("recurring_schedules.id")
        ),
        sa.Column("occurrence_date", sa.Date()),
        sa.Column("date", sa.Date(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint(EXACTLY_ONE_TARGET, name="ck_transactions_single_target"),
        sa.CheckConstraint(
            "amount_cents >= 0 OR type = 'adjustment'",
            name="ck_transactions_amount_positive",
        ),
        sa.UniqueConstraint(
            "schedule_id", "occurrence_date", name="uq_txn_schedule_occurrence"
        ),
    )
    op.create_index("ix_transactions_user_date", "transactions", ["user_id", "date"])
    op.create_index(
        "ix_transactions_asset_date", "transactions", ["asset_id", "date"]
    )
    op.create_index(
        "ix_transactions_liability_date", "transactions", ["liability_id", "date"]
    )


def downgrade():
    op.drop_table("transactions")
    op.drop_table("recurring_schedules")
    op.drop_table("liabilities")
    op.drop_table("assets")
    op.drop_table("custom_category_templates")
