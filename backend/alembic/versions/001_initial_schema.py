"""Initial schema: events, registrations, rate limits, audit trail.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Events table (owned by the event service, admission only bumps version)
    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("organizer_id", sa.Integer(), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=True),
        sa.Column("phase", sa.String(20), nullable=False, server_default=sa.text("'draft'")),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("registration_deadline", sa.DateTime(timezone=True), nullable=True),
        sa.Column("check_in_window_minutes", sa.Integer(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("capacity IS NULL OR capacity > 0", name="check_event_capacity_positive"),
        sa.CheckConstraint(
            "phase IN ('draft', 'open', 'active', 'completed', 'cancelled')",
            name="check_event_phase",
        ),
        sa.CheckConstraint(
            "check_in_window_minutes IS NULL OR check_in_window_minutes > 0",
            name="check_event_check_in_window_positive",
        ),
    )
    op.create_index("ix_events_id", "events", ["id"])
    op.create_index("ix_events_organizer_id", "events", ["organizer_id"])
    op.create_index("ix_events_phase_start", "events", ["phase", "start_time"])

    # Registrations table
    op.create_table(
        "registrations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("participant_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'registered'")),
        sa.Column("registered_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("checked_in_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("roster_ref", sa.String(100), nullable=True),
        sa.Column("notes", sa.String(500), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("event_id", "participant_id", name="uq_event_participant_registration"),
        sa.CheckConstraint(
            "status IN ('registered', 'checked_in', 'waitlist', 'dropped', 'withdrawn')",
            name="check_registration_status",
        ),
    )
    op.create_index("ix_registrations_id", "registrations", ["id"])
    op.create_index("ix_registrations_event_id", "registrations", ["event_id"])
    op.create_index("ix_registrations_participant_id", "registrations", ["participant_id"])
    # Covers the active-set scan in capacity reconciliation and the FIFO
    # waitlist lookup: WHERE event_id = ? AND status IN (...) ORDER BY registered_at
    op.create_index(
        "ix_registrations_event_status_registered",
        "registrations",
        ["event_id", "status", "registered_at"],
    )

    # Rate limit state
    op.create_table(
        "rate_limits",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("actor_id", sa.String(64), nullable=False),
        sa.Column("action", sa.String(32), nullable=False),
        sa.Column("request_timestamps", sa.JSON(), nullable=False),
        sa.Column("window_start", sa.BigInteger(), nullable=False),
        sa.Column("expires_at", sa.BigInteger(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.UniqueConstraint("actor_id", "action", name="uq_rate_limit_actor_action"),
    )
    op.create_index("ix_rate_limits_id", "rate_limits", ["id"])
    # The sweep deletes by expires_at < now in batches
    op.create_index("ix_rate_limits_expires_at", "rate_limits", ["expires_at"])

    # Audit trail
    op.create_table(
        "registration_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("kind", sa.String(50), nullable=False),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("participant_id", sa.Integer(), nullable=False),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_registration_events_id", "registration_events", ["id"])
    op.create_index(
        "ix_registration_events_event_created",
        "registration_events",
        ["event_id", "created_at"],
    )


def downgrade() -> None:
    op.drop_table("registration_events")
    op.drop_table("rate_limits")
    op.drop_table("registrations")
    op.drop_table("events")
