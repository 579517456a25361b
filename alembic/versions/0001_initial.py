"""initial

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19

"""

from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

def upgrade() -> None:
    op.create_table(
        "parks",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("location", sa.String(length=300), nullable=False, server_default=""),
        sa.Column("working_hours_json", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("max_booking_days", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("name"),
    )

    op.create_table(
        "pricings",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("park_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("price", sa.Integer(), nullable=False),
        sa.Column("additional_charge", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_pricings_park_id", "pricings", ["park_id"])

    op.create_table(
        "time_slot_templates",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("park_id", sa.String(length=36), nullable=False),
        sa.Column("pricing_ids", sa.String(length=800), nullable=False),
        sa.Column("days_of_week", sa.String(length=20), nullable=False),
        sa.Column("start_time", sa.String(length=5), nullable=False),
        sa.Column("end_time", sa.String(length=5), nullable=False),
        sa.Column("ticket_limit", sa.Integer(), nullable=False),
        sa.Column("price_adjustment", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("valid_from", sa.Date(), nullable=False),
        sa.Column("valid_until", sa.Date(), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("park_id", "days_of_week", "start_time", "end_time", name="uq_template_park_days_times"),
    )
    op.create_index("ix_time_slot_templates_park_id", "time_slot_templates", ["park_id"])

    op.create_table(
        "time_slot_instances",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("template_id", sa.String(length=36), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("ticket_limit", sa.Integer(), nullable=False),
        sa.Column("available_tickets", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("template_id", "date", name="uq_instance_template_date"),
        sa.CheckConstraint("available_tickets >= 0 AND available_tickets <= ticket_limit",
                           name="ck_instance_available_bounds"),
    )
    op.create_index("ix_time_slot_instances_template_id", "time_slot_instances", ["template_id"])
    op.create_index("ix_time_slot_instances_date", "time_slot_instances", ["date"])

    op.create_table(
        "carts",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_carts_user_id", "carts", ["user_id"])
    op.create_index("uq_carts_user_pending", "carts", ["user_id"], unique=True,
                    postgresql_where=sa.text("status = 'pending'"))

    op.create_table(
        "cart_items",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("cart_id", sa.String(length=36), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("park_id", sa.String(length=36), nullable=False),
        sa.Column("pricing_id", sa.String(length=36), nullable=False),
        sa.Column("pricing_name", sa.String(length=120), nullable=False, server_default=""),
        sa.Column("time_slot_instance_id", sa.String(length=36), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Integer(), nullable=False),
        sa.Column("total_price", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.String(length=5), nullable=False),
        sa.Column("end_time", sa.String(length=5), nullable=False),
    )
    op.create_index("ix_cart_items_cart_id", "cart_items", ["cart_id"])
    op.create_index("ix_cart_items_time_slot_instance_id", "cart_items", ["time_slot_instance_id"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("contact_email", sa.String(length=320), nullable=False, server_default=""),
        sa.Column("park_id", sa.String(length=36), nullable=False),
        sa.Column("pricing_id", sa.String(length=36), nullable=False),
        sa.Column("time_slot_instance_id", sa.String(length=36), nullable=False),
        sa.Column("cart_id", sa.String(length=36), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("total_price", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.String(length=5), nullable=False),
        sa.Column("end_time", sa.String(length=5), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("payment_status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("payment_id", sa.String(length=120), nullable=True),
        sa.Column("payment_method", sa.String(length=40), nullable=True),
        sa.Column("currency", sa.String(length=10), nullable=True),
        sa.Column("ticket_code", sa.String(length=20), nullable=False),
        sa.Column("qr_code", sa.Text(), nullable=True),
        sa.Column("inventory_committed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("used", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("quantity >= 1", name="ck_booking_quantity_positive"),
    )
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"])
    op.create_index("ix_bookings_park_id", "bookings", ["park_id"])
    op.create_index("ix_bookings_time_slot_instance_id", "bookings", ["time_slot_instance_id"])
    op.create_index("ix_bookings_cart_id", "bookings", ["cart_id"])
    op.create_index("ix_bookings_date", "bookings", ["date"])
    op.create_index("ix_bookings_payment_id", "bookings", ["payment_id"])
    op.create_index("ix_bookings_ticket_code", "bookings", ["ticket_code"], unique=True)

    op.create_table(
        "payment_events",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("event_id", sa.String(length=120), nullable=False),
        sa.Column("event_type", sa.String(length=60), nullable=False),
        sa.Column("payment_id", sa.String(length=120), nullable=False),
        sa.Column("outcome", sa.String(length=30), nullable=False, server_default=""),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_payment_events_event_id", "payment_events", ["event_id"], unique=True)
    op.create_index("ix_payment_events_payment_id", "payment_events", ["payment_id"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("actor_user_id", sa.String(length=36), nullable=False),
        sa.Column("action", sa.String(length=80), nullable=False),
        sa.Column("entity_type", sa.String(length=40), nullable=False),
        sa.Column("entity_id", sa.String(length=36), nullable=False),
        sa.Column("details_json", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_audit_logs_actor_user_id", "audit_logs", ["actor_user_id"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_entity_type", "audit_logs", ["entity_type"])
    op.create_index("ix_audit_logs_entity_id", "audit_logs", ["entity_id"])

    op.create_table(
        "email_logs",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("to_email", sa.String(length=320), nullable=False),
        sa.Column("subject", sa.String(length=200), nullable=False),
        sa.Column("body", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="queued"),
        sa.Column("related_booking_id", sa.String(length=36), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_email_logs_to_email", "email_logs", ["to_email"])


def downgrade() -> None:
    for table in ["email_logs", "audit_logs", "payment_events", "bookings", "cart_items", "carts",
                  "time_slot_instances", "time_slot_templates", "pricings", "parks"]:
        op.drop_table(table)
