# backend/alembic/versions/001_coworking_core.py
"""Coworking core schema - members, catalog, ledger, subscriptions, bookings

Revision ID: 001_coworking_core
Revises:
Create Date: 2024-05-20 00:00:00.000000

Creates every table of the booking and subscription ledger engine in its
final form. On PostgreSQL an exclusion constraint additionally rejects
overlapping confirmed bookings on the same space.
"""
from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001_coworking_core"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


staff_role_enum = sa.Enum(
    "superadmin", "admin", "staff", "inactive", name="staff_role", native_enum=True
)
space_status_enum = sa.Enum(
    "available", "occupied", "maintenance", name="space_status", native_enum=True
)
tariff_type_enum = sa.Enum("fixed", "hourly", "package", name="tariff_type", native_enum=True)
transaction_type_enum = sa.Enum(
    "deposit", "payment", "refund", "bonus", "withdrawal", name="transaction_type", native_enum=True
)
subscription_status_enum = sa.Enum(
    "active", "expired", "cancelled", name="subscription_status", native_enum=True
)
booking_type_enum = sa.Enum("one_time", "subscription", name="booking_type", native_enum=True)
booking_status_enum = sa.Enum(
    "confirmed", "cancelled", "completed", name="booking_status", native_enum=True
)

ALL_ENUMS = (
    staff_role_enum,
    space_status_enum,
    tariff_type_enum,
    transaction_type_enum,
    subscription_status_enum,
    booking_type_enum,
    booking_status_enum,
)


def _ulid_pk() -> sa.Column:
    return sa.Column("id", sa.String(26), primary_key=True, nullable=False)


def upgrade() -> None:
    """Create the coworking core tables."""
    bind = op.get_bind()
    is_postgres = bind is not None and bind.dialect.name == "postgresql"

    op.create_table(
        "members",
        _ulid_pk(),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("balance", sa.Numeric(10, 2), nullable=False, server_default="0.00"),
        sa.Column(
            "registered_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint("email", name="uq_members_email"),
        sa.UniqueConstraint("phone", name="uq_members_phone"),
        sa.CheckConstraint("balance >= 0", name="ck_members_balance_non_negative"),
    )

    op.create_table(
        "staff",
        _ulid_pk(),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("role", staff_role_enum, nullable=False, server_default="staff"),
        sa.UniqueConstraint("email", name="uq_staff_email"),
    )

    op.create_table(
        "spaces",
        _ulid_pk(),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("floor", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("capacity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("status", space_status_enum, nullable=False, server_default="available"),
        sa.CheckConstraint("capacity > 0", name="ck_spaces_capacity_positive"),
    )

    op.create_table(
        "tariffs",
        _ulid_pk(),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("type", tariff_type_enum, nullable=False),
        sa.Column("duration_days", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("included_minutes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.UniqueConstraint("name", name="uq_tariffs_name"),
        sa.CheckConstraint("price >= 0", name="ck_tariffs_price_non_negative"),
        sa.CheckConstraint("duration_days >= 0", name="ck_tariffs_duration_non_negative"),
        sa.CheckConstraint("included_minutes >= 0", name="ck_tariffs_minutes_non_negative"),
    )

    op.create_table(
        "tariff_spaces",
        sa.Column(
            "tariff_id",
            sa.String(26),
            sa.ForeignKey("tariffs.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "space_id",
            sa.String(26),
            sa.ForeignKey("spaces.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )

    op.create_table(
        "transactions",
        _ulid_pk(),
        sa.Column(
            "member_id",
            sa.String(26),
            sa.ForeignKey("members.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("type", transaction_type_enum, nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
    )
    op.create_index(
        "idx_transactions_member_created", "transactions", ["member_id", "created_at"]
    )

    op.create_table(
        "subscriptions",
        _ulid_pk(),
        sa.Column(
            "member_id",
            sa.String(26),
            sa.ForeignKey("members.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "tariff_id",
            sa.String(26),
            sa.ForeignKey("tariffs.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("remaining_minutes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("unlimited_minutes", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("status", subscription_status_enum, nullable=False, server_default="active"),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.CheckConstraint(
            "remaining_minutes >= 0", name="ck_subscriptions_minutes_non_negative"
        ),
        sa.CheckConstraint("end_date >= start_date", name="ck_subscriptions_period"),
    )
    op.create_index(
        "idx_subscriptions_member_status", "subscriptions", ["member_id", "status"]
    )

    op.create_table(
        "transaction_subscriptions",
        sa.Column(
            "transaction_id",
            sa.String(26),
            sa.ForeignKey("transactions.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "subscription_id",
            sa.String(26),
            sa.ForeignKey("subscriptions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.UniqueConstraint("subscription_id", name="uq_transaction_subscriptions_subscription"),
    )

    op.create_table(
        "bookings",
        _ulid_pk(),
        sa.Column(
            "space_id",
            sa.String(26),
            sa.ForeignKey("spaces.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "created_by",
            sa.String(26),
            sa.ForeignKey("members.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("booking_type", booking_type_enum, nullable=False),
        sa.Column("start_time", sa.DateTime(), nullable=False),
        sa.Column("end_time", sa.DateTime(), nullable=False),
        sa.Column("status", booking_status_enum, nullable=False, server_default="confirmed"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.CheckConstraint("end_time > start_time", name="ck_bookings_time_order"),
    )
    op.create_index("idx_bookings_space_start", "bookings", ["space_id", "start_time"])
    op.create_index("idx_bookings_created_by", "bookings", ["created_by"])

    op.create_table(
        "booking_participants",
        sa.Column(
            "booking_id",
            sa.String(26),
            sa.ForeignKey("bookings.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "member_id",
            sa.String(26),
            sa.ForeignKey("members.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )

    op.create_table(
        "booking_subscriptions",
        sa.Column(
            "booking_id",
            sa.String(26),
            sa.ForeignKey("bookings.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "subscription_id",
            sa.String(26),
            sa.ForeignKey("subscriptions.id", ondelete="CASCADE"),
            nullable=False,
        ),
    )
    op.create_index(
        "ix_booking_subscriptions_subscription_id", "booking_subscriptions", ["subscription_id"]
    )

    op.create_table(
        "one_offs",
        _ulid_pk(),
        sa.Column(
            "booking_id",
            sa.String(26),
            sa.ForeignKey("bookings.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "member_id",
            sa.String(26),
            sa.ForeignKey("members.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "tariff_id",
            sa.String(26),
            sa.ForeignKey("tariffs.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.UniqueConstraint("booking_id", name="uq_one_offs_booking"),
        sa.CheckConstraint("quantity > 0", name="ck_one_offs_quantity_positive"),
    )

    op.create_table(
        "transaction_one_offs",
        sa.Column(
            "transaction_id",
            sa.String(26),
            sa.ForeignKey("transactions.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "one_off_id",
            sa.String(26),
            sa.ForeignKey("one_offs.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.UniqueConstraint("one_off_id", name="uq_transaction_one_offs_one_off"),
    )

    op.create_table(
        "system_settings",
        sa.Column("key", sa.String(64), primary_key=True),
        sa.Column("value", sa.String(255), nullable=False),
    )

    op.create_table(
        "working_hours",
        sa.Column("day_of_week", sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column("opening_time", sa.String(5), nullable=False),
        sa.Column("closing_time", sa.String(5), nullable=False),
        sa.CheckConstraint("day_of_week BETWEEN 1 AND 7", name="ck_working_hours_day"),
    )

    if is_postgres:
        op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")
        op.execute(
            """
            ALTER TABLE bookings
              ADD CONSTRAINT bookings_no_overlap_per_space
              EXCLUDE USING gist (
                space_id WITH =,
                tsrange(start_time, end_time, '[)') WITH &&
              )
              WHERE (status = 'confirmed')
            """
        )


def downgrade() -> None:
    """Drop the coworking core tables."""
    bind = op.get_bind()
    is_postgres = bind is not None and bind.dialect.name == "postgresql"

    if is_postgres:
        op.execute("ALTER TABLE bookings DROP CONSTRAINT IF EXISTS bookings_no_overlap_per_space")

    op.drop_table("working_hours")
    op.drop_table("system_settings")
    op.drop_table("transaction_one_offs")
    op.drop_table("one_offs")
    op.drop_index("ix_booking_subscriptions_subscription_id", table_name="booking_subscriptions")
    op.drop_table("booking_subscriptions")
    op.drop_table("booking_participants")
    op.drop_index("idx_bookings_created_by", table_name="bookings")
    op.drop_index("idx_bookings_space_start", table_name="bookings")
    op.drop_table("bookings")
    op.drop_table("transaction_subscriptions")
    op.drop_index("idx_subscriptions_member_status", table_name="subscriptions")
    op.drop_table("subscriptions")
    op.drop_index("idx_transactions_member_created", table_name="transactions")
    op.drop_table("transactions")
    op.drop_table("tariff_spaces")
    op.drop_table("tariffs")
    op.drop_table("spaces")
    op.drop_table("staff")
    op.drop_table("members")

    if is_postgres:
        for enum_type in ALL_ENUMS:
            enum_type.drop(bind, checkfirst=True)
