"""create campaigns and characters

Revision ID: 0001_create_campaigns
Revises:
Create Date: 2026-10-05 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa

revision = "0001_create_campaigns"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "campaigns",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("name", sa.String(length=160), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("world_day", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_tick_at", sa.DateTime(timezone=True)),
    )

    op.create_table(
        "characters",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column(
            "campaign_id",
            sa.Integer,
            sa.ForeignKey("campaigns.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=120), nullable=False),
    )
    op.create_index("ix_characters_campaign_id", "characters", ["campaign_id"])


def downgrade() -> None:
    op.drop_index("ix_characters_campaign_id", table_name="characters")
    op.drop_table("characters")
    op.drop_table("campaigns")
