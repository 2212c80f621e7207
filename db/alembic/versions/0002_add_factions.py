"""add factions, goals and standings

Revision ID: 0002_add_factions
Revises: 0001_create_campaigns
Create Date: 2026-10-06 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0002_add_factions"
down_revision = "0001_create_campaigns"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "factions",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column(
            "campaign_id",
            sa.Integer,
            sa.ForeignKey("campaigns.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=160), nullable=False),
        sa.Column("description", sa.Text),
        sa.Column("scope", sa.String(length=20), nullable=False, server_default="local"),
        sa.Column("power_level", sa.Integer, nullable=False, server_default="5"),
        sa.Column("alignment", sa.String(length=40), nullable=False, server_default="neutral"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="active"),
        sa.Column("relationships_json", postgresql.JSONB),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    )
    op.create_index("ix_factions_campaign_id", "factions", ["campaign_id"])

    op.create_table(
        "faction_goals",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column(
            "faction_id",
            sa.Integer,
            sa.ForeignKey("factions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text),
        sa.Column("goal_type", sa.String(length=20), nullable=False),
        sa.Column("urgency", sa.String(length=10), nullable=False, server_default="normal"),
        sa.Column("stakes_level", sa.String(length=20), nullable=False, server_default="moderate"),
        sa.Column("visibility", sa.String(length=10), nullable=False, server_default="secret"),
        sa.Column("progress", sa.Integer, nullable=False, server_default="0"),
        sa.Column("progress_max", sa.Integer, nullable=False, server_default="100"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="active"),
        sa.Column("discovered_by_json", postgresql.JSONB),
        sa.Column("success_consequences", sa.Text),
        sa.Column("failure_consequences", sa.Text),
        sa.Column("completed_on_day", sa.Integer),
        sa.Column("abandoned_reason", sa.Text),
        sa.CheckConstraint("progress >= 0 AND progress <= progress_max", name="ck_goal_progress"),
    )
    op.create_index("ix_faction_goals_faction_id", "faction_goals", ["faction_id"])

    op.create_table(
        "faction_standings",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column(
            "character_id",
            sa.Integer,
            sa.ForeignKey("characters.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "faction_id",
            sa.Integer,
            sa.ForeignKey("factions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("standing", sa.Integer, nullable=False, server_default="0"),
        sa.Column("standing_label", sa.String(length=20), nullable=False, server_default="neutral"),
        sa.Column("is_member", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("membership_level", sa.String(length=40)),
        sa.Column("rank", sa.String(length=80)),
        sa.Column("joined_on_day", sa.Integer),
        sa.Column("deeds_for_json", postgresql.JSONB),
        sa.Column("deeds_against_json", postgresql.JSONB),
        sa.Column("promises_json", postgresql.JSONB),
        sa.Column("debts_json", postgresql.JSONB),
        sa.Column("quests_completed_json", postgresql.JSONB),
        sa.UniqueConstraint("character_id", "faction_id"),
        sa.CheckConstraint("standing >= -100 AND standing <= 100", name="ck_standing_range"),
    )
    op.create_index("ix_faction_standings_character_id", "faction_standings", ["character_id"])
    op.create_index("ix_faction_standings_faction_id", "faction_standings", ["faction_id"])


def downgrade() -> None:
    op.drop_index("ix_faction_standings_faction_id", table_name="faction_standings")
    op.drop_index("ix_faction_standings_character_id", table_name="faction_standings")
    op.drop_table("faction_standings")
    op.drop_index("ix_faction_goals_faction_id", table_name="faction_goals")
    op.drop_table("faction_goals")
    op.drop_index("ix_factions_campaign_id", table_name="factions")
    op.drop_table("factions")
