"""Add meeting evaluation pipeline tables.

Revision ID: 001_meet_pipeline
Revises:
Create Date: 2026-10-17

Creates the tables the evaluation pipeline reads and writes:
- meet_bot_sessions: Recording sessions keyed by Recall.ai bot id
- meet_evaluations: Evaluation records, unique per meeting_id
- user_notifications: Fire-once user notifications
- calendar_scheduled_bots: Calendar entries with a scheduled bot
- saved_simulations: Practice scenarios linked to an evaluation
- company_data, meet_note_topics, meet_note_observations, sales_playbooks:
  Organization configuration read by the scorer and notes extractor

No foreign key constraints (application-level referential integrity via
repository).
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

# revision identifiers, used by Alembic.
revision: str = "001_meet_pipeline"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id_column() -> sa.Column:
    return sa.Column(
        "id",
        UUID(as_uuid=True),
        primary_key=True,
        server_default=sa.text("gen_random_uuid()"),
    )


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        server_default=sa.text("now()"),
    )


def upgrade() -> None:
    # ── meet_bot_sessions ────────────────────────────────────────────────

    op.create_table(
        "meet_bot_sessions",
        _id_column(),
        sa.Column("bot_id", sa.String(200), nullable=False),
        sa.Column("user_id", sa.String(100), nullable=False),
        sa.Column("company_id", sa.String(100), nullable=False),
        sa.Column(
            "status",
            sa.String(50),
            server_default=sa.text("'pending'"),
            nullable=False,
        ),
        sa.Column("transcript", sa.JSON(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("evaluation_id", UUID(as_uuid=True), nullable=True),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("bot_id", name="uq_meet_bot_sessions_bot_id"),
    )
    op.execute(
        "CREATE INDEX idx_meet_bot_sessions_user_status "
        "ON meet_bot_sessions(user_id, status)"
    )

    # ── meet_evaluations ─────────────────────────────────────────────────

    op.create_table(
        "meet_evaluations",
        _id_column(),
        sa.Column("user_id", sa.String(100), nullable=False),
        sa.Column("company_id", sa.String(100), nullable=False),
        sa.Column("meeting_id", sa.String(200), nullable=False),
        sa.Column("seller_name", sa.String(300), nullable=False),
        sa.Column("call_objective", sa.Text(), nullable=True),
        sa.Column("funnel_stage", sa.String(100), nullable=True),
        sa.Column("transcript", sa.JSON(), server_default=sa.text("'[]'::json")),
        sa.Column("evaluation", sa.JSON(), server_default=sa.text("'{}'::json")),
        sa.Column("overall_score", sa.Integer(), nullable=False),
        sa.Column("performance_level", sa.String(50), nullable=False),
        sa.Column("spin_s_score", sa.Float(), server_default=sa.text("0")),
        sa.Column("spin_p_score", sa.Float(), server_default=sa.text("0")),
        sa.Column("spin_i_score", sa.Float(), server_default=sa.text("0")),
        sa.Column("spin_n_score", sa.Float(), server_default=sa.text("0")),
        sa.Column("smart_notes", sa.JSON(), nullable=True),
        _created_at(),
        # One evaluation per session; insert-or-fetch relies on this
        sa.UniqueConstraint("meeting_id", name="uq_meet_evaluations_meeting_id"),
    )
    op.execute(
        "CREATE INDEX idx_meet_evaluations_user_created "
        "ON meet_evaluations(user_id, created_at DESC)"
    )

    # ── user_notifications ───────────────────────────────────────────────

    op.create_table(
        "user_notifications",
        _id_column(),
        sa.Column("user_id", sa.String(100), nullable=False),
        sa.Column("type", sa.String(100), nullable=False),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("data", sa.JSON(), server_default=sa.text("'{}'::json")),
        sa.Column("read", sa.Boolean(), server_default=sa.text("false")),
        _created_at(),
    )
    op.execute(
        "CREATE INDEX idx_user_notifications_user_read "
        "ON user_notifications(user_id, read)"
    )

    # ── calendar_scheduled_bots ──────────────────────────────────────────

    op.create_table(
        "calendar_scheduled_bots",
        _id_column(),
        sa.Column("user_id", sa.String(100), nullable=False),
        sa.Column("event_id", sa.String(300), nullable=False),
        sa.Column("title", sa.String(500), nullable=True),
        sa.Column("bot_id", sa.String(200), nullable=True),
        sa.Column(
            "bot_status",
            sa.String(50),
            server_default=sa.text("'scheduled'"),
        ),
        sa.Column("evaluation_id", UUID(as_uuid=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.execute(
        "CREATE INDEX idx_calendar_scheduled_bots_bot "
        "ON calendar_scheduled_bots(bot_id)"
    )

    # ── saved_simulations ────────────────────────────────────────────────

    op.create_table(
        "saved_simulations",
        _id_column(),
        sa.Column("user_id", sa.String(100), nullable=False),
        sa.Column("company_id", sa.String(100), nullable=False),
        sa.Column("meet_evaluation_id", UUID(as_uuid=True), nullable=False),
        sa.Column(
            "simulation_config",
            sa.JSON(),
            server_default=sa.text("'{}'::json"),
        ),
        sa.Column("simulation_justification", sa.Text(), nullable=True),
        sa.Column(
            "status",
            sa.String(50),
            server_default=sa.text("'pending'"),
        ),
        _created_at(),
    )

    # ── organization configuration ───────────────────────────────────────

    op.create_table(
        "company_data",
        _id_column(),
        sa.Column("company_id", sa.String(100), nullable=False),
        sa.Column("name", sa.String(300), nullable=True),
        sa.Column("company_type", sa.String(10), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("products_services", sa.Text(), nullable=True),
        sa.Column("product_function", sa.Text(), nullable=True),
        sa.Column("differentiators", sa.Text(), nullable=True),
        sa.Column("competitors", sa.Text(), nullable=True),
        sa.Column("metrics", sa.Text(), nullable=True),
        sa.Column("common_mistakes", sa.Text(), nullable=True),
        sa.Column("desired_perception", sa.Text(), nullable=True),
        sa.Column("pains_solved", sa.Text(), nullable=True),
        sa.UniqueConstraint("company_id", name="uq_company_data_company_id"),
    )

    op.create_table(
        "meet_note_topics",
        _id_column(),
        sa.Column("company_id", sa.String(100), nullable=False),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("enabled", sa.Boolean(), server_default=sa.text("true")),
        sa.Column("sort_order", sa.Integer(), server_default=sa.text("0")),
    )

    op.create_table(
        "meet_note_observations",
        _id_column(),
        sa.Column("company_id", sa.String(100), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("sort_order", sa.Integer(), server_default=sa.text("0")),
    )

    op.create_table(
        "sales_playbooks",
        _id_column(),
        sa.Column("company_id", sa.String(100), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true")),
    )
    op.execute(
        "CREATE INDEX idx_sales_playbooks_company_active "
        "ON sales_playbooks(company_id, is_active)"
    )


def downgrade() -> None:
    op.drop_table("sales_playbooks")
    op.drop_table("meet_note_observations")
    op.drop_table("meet_note_topics")
    op.drop_table("company_data")
    op.drop_table("saved_simulations")
    op.drop_table("calendar_scheduled_bots")
    op.drop_table("user_notifications")
    op.drop_table("meet_evaluations")
    op.drop_table("meet_bot_sessions")
