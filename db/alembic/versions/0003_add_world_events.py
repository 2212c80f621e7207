"""add world events and effects

Revision ID: 0003_add_world_events
Revises: 0002_add_factions
Create Date: 2026-10-08 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0003_add_world_events"
down_revision = "0002_add_factions"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "world_events",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column(
            "campaign_id",
            sa.Integer,
            sa.ForeignKey("campaigns.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text),
        sa.Column("event_type", sa.String(length=20), nullable=False),
        sa.Column("scope", sa.String(length=20), nullable=False, server_default="local"),
        sa.Column("visibility", sa.String(length=10), nullable=False, server_default="public"),
        sa.Column("stages_json", postgresql.JSONB),
        sa.Column("stage_descriptions_json", postgresql.JSONB),
        sa.Column("current_stage", sa.Integer, nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="active"),
        sa.Column("expected_duration_days", sa.Integer),
        sa.Column("days_elapsed", sa.Integer, nullable=False, server_default="0"),
        sa.Column("deadline_day", sa.Integer),
        sa.Column(
            "triggered_by_faction_id",
            sa.Integer,
            sa.ForeignKey("factions.id", ondelete="SET NULL"),
        ),
        sa.Column(
            "triggered_by_goal_id",
            sa.Integer,
            sa.ForeignKey("faction_goals.id", ondelete="SET NULL"),
        ),
        sa.Column("affected_factions_json", postgresql.JSONB),
        sa.Column("possible_outcomes_json", postgresql.JSONB),
        sa.Column("intervention_options_json", postgresql.JSONB),
        sa.Column("discovered_by_json", postgresql.JSONB),
        sa.Column("outcome", sa.String(length=80)),
        sa.Column("outcome_description", sa.Text),
        sa.Column("started_on_day", sa.Integer, nullable=False, server_default="0"),
        sa.Column("ended_on_day", sa.Integer),
    )
    op.create_index("ix_world_events_campaign_id", "world_events", ["campaign_id"])

    op.create_table(
        "event_effects",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column(
            "event_id",
            sa.Integer,
            sa.ForeignKey("world_events.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("effect_type", sa.String(length=80), nullable=False),
        sa.Column("description", sa.Text),
        sa.Column("target_type", sa.String(length=20), nullable=False),
        sa.Column("target_id", sa.Integer),
        sa.Column("parameters_json", postgresql.JSONB),
        sa.Column("duration", sa.String(length=80)),
        sa.Column("stage_applied", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created_on_day", sa.Integer, nullable=False, server_default="0"),
        sa.Column("expires_on_day", sa.Integer),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="active"),
        sa.Column("reversal_reason", sa.Text),
        sa.Column("ended_on_day", sa.Integer),
    )
    op.create_index("ix_event_effects_event_id", "event_effects", ["event_id"])
    op.create_index(
        "ix_event_effects_active_expiry",
        "event_effects",
        ["status", "expires_on_day"],
    )


def downgrade() -> None:
    op.drop_index("ix_event_effects_active_expiry", table_name="event_effects")
    op.drop_index("ix_event_effects_event_id", table_name="event_effects")
    op.drop_table("event_effects")
    op.drop_index("ix_world_events_campaign_id", table_name="world_events")
    op.drop_table("world_events")
