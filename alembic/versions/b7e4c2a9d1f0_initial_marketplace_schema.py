"""initial_marketplace_schema

Revision ID: b7e4c2a9d1f0
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'b7e4c2a9d1f0'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

MONEY = sa.Numeric(10, 2)


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("hashed_password", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(20), nullable=True),
        sa.Column("bio", sa.String(500), nullable=True),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("avatar_url", sa.String(512), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("role", sa.String(50), nullable=False, server_default="user"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "listings",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("owner_id", sa.UUID(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("category", sa.String(50), nullable=False, server_default="other"),
        sa.Column("nightly_rate", MONEY, nullable=False),
        sa.Column("cleaning_fee", MONEY, nullable=False, server_default="0"),
        sa.Column("max_guests", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("status", sa.String(50), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("nightly_rate > 0", name="ck_listings_nightly_rate_positive"),
    )
    op.create_index("ix_listings_owner_id", "listings", ["owner_id"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("reference_number", sa.String(20), nullable=False, unique=True),
        sa.Column("listing_id", sa.UUID(), sa.ForeignKey("listings.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("owner_id", sa.UUID(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("renter_id", sa.UUID(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("guest_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("special_requests", sa.Text(), nullable=True),
        sa.Column("currency", sa.String(3), nullable=False, server_default="USD"),
        sa.Column("nightly_rate", MONEY, nullable=False),
        sa.Column("nights", sa.Integer(), nullable=False),
        sa.Column("base_price", MONEY, nullable=False),
        sa.Column("cleaning_fee", MONEY, nullable=False),
        sa.Column("service_fee", MONEY, nullable=False),
        sa.Column("tax_amount", MONEY, nullable=False),
        sa.Column("total_cost", MONEY, nullable=False),
        sa.Column("status", sa.String(50), nullable=False, server_default="pending_approval"),
        sa.Column("cancellation_reason", sa.String(500), nullable=True),
        sa.Column("cancelled_by", sa.String(20), nullable=True),
        sa.Column("review_left", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_due_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("checked_in_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("end_date > start_date", name="ck_bookings_date_order"),
        sa.CheckConstraint("guest_count >= 1", name="ck_bookings_guest_count"),
        sa.CheckConstraint(
            "status IN ('pending_approval', 'approved', 'rejected', 'confirmed', 'active', 'completed', 'cancelled')",
            name="ck_bookings_status",
        ),
    )
    op.create_index("ix_bookings_listing_id", "bookings", ["listing_id"])
    op.create_index("ix_bookings_owner_id", "bookings", ["owner_id"])
    op.create_index("ix_bookings_renter_id", "bookings", ["renter_id"])
    op.create_index("ix_bookings_status", "bookings", ["status"])
    op.create_index("ix_bookings_listing_dates", "bookings", ["listing_id", "start_date", "end_date"])
    op.create_index("ix_bookings_renter_status", "bookings", ["renter_id", "status"])
    op.create_index("ix_bookings_owner_status", "bookings", ["owner_id", "status"])

    op.create_table(
        "availability_holds",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("listing_id", sa.UUID(), sa.ForeignKey("listings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("booking_id", sa.UUID(), sa.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("released_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "ix_availability_holds_listing_dates",
        "availability_holds",
        ["listing_id", "start_date", "end_date"],
    )

    # Last line of defence against overlapping holds (btree_gist is needed for
    # the equality operator on listing_id).
    op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")
    op.execute("""
        ALTER TABLE availability_holds
        ADD CONSTRAINT ex_availability_holds_no_overlap
        EXCLUDE USING gist (
            listing_id WITH =,
            daterange(start_date, end_date, '[)') WITH &&
        ) WHERE (released_at IS NULL)
    """)

    op.create_table(
        "transactions",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("booking_id", sa.UUID(), sa.ForeignKey("bookings.id", ondelete="RESTRICT"), nullable=False, unique=True),
        sa.Column("payer_id", sa.UUID(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("recipient_id", sa.UUID(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("reference_number", sa.String(20), nullable=False, unique=True),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="USD"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("payment_method", sa.String(20), nullable=False),
        sa.Column("gateway_reference", sa.String(255), nullable=False),
        sa.Column("idempotency_key", sa.String(255), nullable=False),
        sa.Column("card_last_four", sa.String(4), nullable=True),
        sa.Column("card_brand", sa.String(50), nullable=True),
        sa.Column("platform_fee", MONEY, nullable=False, server_default="0"),
        sa.Column("processing_fee", MONEY, nullable=False, server_default="0"),
        sa.Column("net_amount", MONEY, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_transactions_payer_id", "transactions", ["payer_id"])
    op.create_index("ix_transactions_recipient_id", "transactions", ["recipient_id"])

    op.create_table(
        "refunds",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("transaction_id", sa.UUID(), sa.ForeignKey("transactions.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("booking_id", sa.UUID(), sa.ForeignKey("bookings.id"), nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("refund_percent", sa.Numeric(5, 2), nullable=False),
        sa.Column("policy_rule", sa.String(50), nullable=False),
        sa.Column("reason", sa.String(500), nullable=True),
        sa.Column("gateway_reference", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_refunds_transaction_id", "refunds", ["transaction_id"])
    op.create_index("ix_refunds_booking_id", "refunds", ["booking_id"])


def downgrade() -> None:
    op.drop_table("refunds")
    op.drop_table("transactions")
    op.execute("ALTER TABLE availability_holds DROP CONSTRAINT IF EXISTS ex_availability_holds_no_overlap")
    op.drop_table("availability_holds")
    op.drop_table("bookings")
    op.drop_table("listings")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
