# backend/alembic/versions/001_lessonbook_schema.py
"""Lessonbook schema - teachers, availability, lessons, recurring slots, invoices

Revision ID: 001_lessonbook_schema
Revises:
Create Date: 2026-09-01 00:00:00.000000

Creates every table in its final form. Times of day are stored as
zero-padded "HH:MM" strings in the teacher's zone; instants are
timestamptz. The two partial unique indexes back the booking race
guarantees: one SCHEDULED lesson per (teacher, start) and one ACTIVE
recurring slot per (teacher, day, start, duration).
"""
from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001_lessonbook_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamp(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade() -> None:
    """Create lessonbook tables."""
    print("Creating lessonbook tables...")

    op.create_table(
        "teacher_profiles",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("user_id", sa.String(26), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("timezone", sa.String(64), nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_teacher_profiles_id", "teacher_profiles", ["id"])
    op.create_index("ix_teacher_profiles_user_id", "teacher_profiles", ["user_id"], unique=True)

    op.create_table(
        "student_profiles",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("user_id", sa.String(26), nullable=True),
        sa.Column("teacher_id", sa.String(26), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("email_notifications", sa.Boolean(), nullable=False, server_default=sa.true()),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["teacher_id"], ["teacher_profiles.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_student_profiles_id", "student_profiles", ["id"])
    op.create_index("ix_student_profiles_user_id", "student_profiles", ["user_id"])
    op.create_index("ix_student_profiles_teacher_id", "student_profiles", ["teacher_id"])

    op.create_table(
        "lesson_settings",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("teacher_id", sa.String(26), nullable=False),
        sa.Column("price_30_min", sa.Integer(), nullable=False),
        sa.Column("price_60_min", sa.Integer(), nullable=False),
        _timestamp("updated_at"),
        sa.ForeignKeyConstraint(["teacher_id"], ["teacher_profiles.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("price_30_min >= 0", name="check_price_30_non_negative"),
        sa.CheckConstraint("price_60_min >= 0", name="check_price_60_non_negative"),
    )
    op.create_index("ix_lesson_settings_teacher_id", "lesson_settings", ["teacher_id"], unique=True)

    print("Creating availability tables...")
    op.create_table(
        "availability_windows",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("teacher_id", sa.String(26), nullable=False),
        sa.Column("day_of_week", sa.SmallInteger(), nullable=False),
        sa.Column("start_time", sa.String(5), nullable=False),
        sa.Column("end_time", sa.String(5), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["teacher_id"], ["teacher_profiles.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("day_of_week BETWEEN 0 AND 6", name="check_window_day_of_week"),
        sa.CheckConstraint("start_time < end_time", name="check_window_time_order"),
    )
    op.create_index(
        "idx_availability_windows_teacher_day", "availability_windows", ["teacher_id", "day_of_week"]
    )

    op.create_table(
        "blocked_times",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("teacher_id", sa.String(26), nullable=False),
        _timestamp("start_utc"),
        _timestamp("end_utc"),
        sa.Column("reason", sa.String(255), nullable=True),
        sa.Column("timezone", sa.String(64), nullable=False),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["teacher_id"], ["teacher_profiles.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("end_utc > start_utc", name="check_blocked_time_order"),
    )
    op.create_index(
        "idx_blocked_times_teacher_range", "blocked_times", ["teacher_id", "start_utc", "end_utc"]
    )

    print("Creating recurring slot and lesson tables...")
    op.create_table(
        "recurring_slots",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("teacher_id", sa.String(26), nullable=False),
        sa.Column("student_id", sa.String(26), nullable=False),
        sa.Column("day_of_week", sa.SmallInteger(), nullable=False),
        sa.Column("start_time", sa.String(5), nullable=False),
        sa.Column("duration", sa.Integer(), nullable=False),
        sa.Column("per_lesson_price", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="ACTIVE"),
        _timestamp("created_at"),
        _timestamp("cancelled_at", nullable=True),
        sa.ForeignKeyConstraint(["teacher_id"], ["teacher_profiles.id"]),
        sa.ForeignKeyConstraint(["student_id"], ["student_profiles.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("status IN ('ACTIVE', 'CANCELLED')", name="ck_recurring_slots_status"),
        sa.CheckConstraint("day_of_week BETWEEN 0 AND 6", name="check_slot_day_of_week"),
        sa.CheckConstraint("duration > 0", name="check_slot_duration_positive"),
        sa.CheckConstraint("per_lesson_price >= 0", name="check_slot_price_non_negative"),
    )
    op.create_index("ix_recurring_slots_id", "recurring_slots", ["id"])
    op.create_index(
        "uq_recurring_slots_active_tuple",
        "recurring_slots",
        ["teacher_id", "day_of_week", "start_time", "duration"],
        unique=True,
        postgresql_where=sa.text("status = 'ACTIVE'"),
        sqlite_where=sa.text("status = 'ACTIVE'"),
    )

    op.create_table(
        "lessons",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("teacher_id", sa.String(26), nullable=False),
        sa.Column("student_id", sa.String(26), nullable=False),
        _timestamp("start_utc"),
        _timestamp("end_utc"),
        sa.Column("duration", sa.Integer(), nullable=False),
        sa.Column("timezone", sa.String(64), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="SCHEDULED"),
        sa.Column("is_recurring", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("recurring_slot_id", sa.String(26), nullable=True),
        sa.Column("price", sa.Integer(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at", nullable=True),
        _timestamp("completed_at", nullable=True),
        _timestamp("cancelled_at", nullable=True),
        sa.ForeignKeyConstraint(["teacher_id"], ["teacher_profiles.id"]),
        sa.ForeignKeyConstraint(["student_id"], ["student_profiles.id"]),
        sa.ForeignKeyConstraint(["recurring_slot_id"], ["recurring_slots.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "status IN ('SCHEDULED', 'COMPLETED', 'CANCELLED')", name="ck_lessons_status"
        ),
        sa.CheckConstraint("duration > 0", name="check_lesson_duration_positive"),
        sa.CheckConstraint("end_utc > start_utc", name="check_lesson_time_order"),
        sa.CheckConstraint("price >= 0", name="check_lesson_price_non_negative"),
    )
    op.create_index("ix_lessons_id", "lessons", ["id"])
    op.create_index("ix_lessons_status", "lessons", ["status"])
    op.create_index("idx_lessons_teacher_range", "lessons", ["teacher_id", "start_utc", "end_utc"])
    op.create_index("idx_lessons_slot_start", "lessons", ["recurring_slot_id", "start_utc"])
    op.create_index(
        "uq_lessons_teacher_start_scheduled",
        "lessons",
        ["teacher_id", "start_utc"],
        unique=True,
        postgresql_where=sa.text("status = 'SCHEDULED'"),
        sqlite_where=sa.text("status = 'SCHEDULED'"),
    )

    print("Creating invoice tables...")
    op.create_table(
        "invoices",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("teacher_id", sa.String(26), nullable=False),
        sa.Column("student_id", sa.String(26), nullable=True),
        sa.Column("customer_name", sa.String(200), nullable=True),
        sa.Column("customer_email", sa.String(255), nullable=True),
        sa.Column("invoice_number", sa.String(32), nullable=False),
        sa.Column("month", sa.String(7), nullable=False),
        _timestamp("due_date"),
        sa.Column("subtotal", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        _timestamp("paid_at", nullable=True),
        sa.Column("payment_method", sa.String(100), nullable=True),
        sa.Column("payment_notes", sa.Text(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at", nullable=True),
        sa.ForeignKeyConstraint(["teacher_id"], ["teacher_profiles.id"]),
        sa.ForeignKeyConstraint(["student_id"], ["student_profiles.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("teacher_id", "invoice_number", name="uq_invoices_teacher_number"),
        sa.CheckConstraint(
            "status IN ('PENDING', 'SENT', 'VIEWED', 'PAID', 'OVERDUE', 'CANCELLED')",
            name="ck_invoices_status",
        ),
        sa.CheckConstraint("total = subtotal", name="check_invoice_total_mirrors_subtotal"),
        sa.CheckConstraint(
            "student_id IS NOT NULL OR customer_name IS NOT NULL", name="check_invoice_has_payer"
        ),
    )
    op.create_index("ix_invoices_id", "invoices", ["id"])
    op.create_index(
        "idx_invoices_teacher_student_month", "invoices", ["teacher_id", "student_id", "month"]
    )

    op.create_table(
        "invoice_items",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("invoice_id", sa.String(26), nullable=False),
        sa.Column("lesson_id", sa.String(26), nullable=True),
        sa.Column("description", sa.String(255), nullable=False),
        sa.Column("lesson_date", sa.Date(), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("rate", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["invoice_id"], ["invoices.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["lesson_id"], ["lessons.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("quantity > 0", name="check_item_quantity_positive"),
        sa.CheckConstraint("amount = quantity * rate", name="check_item_amount"),
    )
    op.create_index("ix_invoice_items_invoice_id", "invoice_items", ["invoice_id"])

    op.create_table(
        "invoice_sequences",
        sa.Column("teacher_id", sa.String(26), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("last_value", sa.Integer(), nullable=False, server_default="0"),
        sa.ForeignKeyConstraint(["teacher_id"], ["teacher_profiles.id"]),
        sa.PrimaryKeyConstraint("teacher_id", "year"),
    )

    print("Creating settings and job log tables...")
    op.create_table(
        "system_settings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("default_invoice_due_days", sa.Integer(), nullable=False, server_default="30"),
        sa.Column(
            "enable_booking_confirmations", sa.Boolean(), nullable=False, server_default=sa.true()
        ),
        sa.Column(
            "enable_invoice_notifications", sa.Boolean(), nullable=False, server_default=sa.true()
        ),
        sa.Column("enable_reminder_emails", sa.Boolean(), nullable=False, server_default=sa.true()),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("id = 1", name="check_system_settings_singleton"),
        sa.CheckConstraint("default_invoice_due_days >= 0", name="check_due_days_non_negative"),
    )

    op.create_table(
        "background_job_logs",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("job_name", sa.String(100), nullable=False),
        _timestamp("executed_at"),
        sa.Column("success", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("invoices_created", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("lessons_generated", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("teachers_processed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("errors", sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_background_job_logs_job_name", "background_job_logs", ["job_name"])

    print("Lessonbook schema created successfully!")


def downgrade() -> None:
    """Drop lessonbook tables in dependency order."""
    print("Dropping lessonbook tables...")

    op.drop_index("ix_background_job_logs_job_name", table_name="background_job_logs")
    op.drop_table("background_job_logs")
    op.drop_table("system_settings")
    op.drop_table("invoice_sequences")
    op.drop_index("ix_invoice_items_invoice_id", table_name="invoice_items")
    op.drop_table("invoice_items")
    op.drop_index("idx_invoices_teacher_student_month", table_name="invoices")
    op.drop_index("ix_invoices_id", table_name="invoices")
    op.drop_table("invoices")
    op.drop_index("uq_lessons_teacher_start_scheduled", table_name="lessons")
    op.drop_index("idx_lessons_slot_start", table_name="lessons")
    op.drop_index("idx_lessons_teacher_range", table_name="lessons")
    op.drop_index("ix_lessons_status", table_name="lessons")
    op.drop_index("ix_lessons_id", table_name="lessons")
    op.drop_table("lessons")
    op.drop_index("uq_recurring_slots_active_tuple", table_name="recurring_slots")
    op.drop_index("ix_recurring_slots_id", table_name="recurring_slots")
    op.drop_table("recurring_slots")
    op.drop_index("idx_blocked_times_teacher_range", table_name="blocked_times")
    op.drop_table("blocked_times")
    op.drop_index("idx_availability_windows_teacher_day", table_name="availability_windows")
    op.drop_table("availability_windows")
    op.drop_index("ix_lesson_settings_teacher_id", table_name="lesson_settings")
    op.drop_table("lesson_settings")
    op.drop_index("ix_student_profiles_teacher_id", table_name="student_profiles")
    op.drop_index("ix_student_profiles_user_id", table_name="student_profiles")
    op.drop_index("ix_student_profiles_id", table_name="student_profiles")
    op.drop_table("student_profiles")
    op.drop_index("ix_teacher_profiles_user_id", table_name="teacher_profiles")
    op.drop_index("ix_teacher_profiles_id", table_name="teacher_profiles")
    op.drop_table("teacher_profiles")

    print("Lessonbook schema dropped.")
