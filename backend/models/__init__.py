from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    pass


class Campaign(Base):
    __tablename__ = "campaigns"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(160), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    world_day: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_tick_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class Character(Base):
    __tablename__ = "characters"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    campaign_id: Mapped[int] = mapped_column(
        ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(120), nullable=False)


class Faction(Base):
    __tablename__ = "factions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    campaign_id: Mapped[int] = mapped_column(
        ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(160), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    scope: Mapped[str] = mapped_column(String(20), nullable=False, default="local")
    power_level: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    alignment: Mapped[str] = mapped_column(String(40), nullable=False, default="neutral")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    relationships_json: Mapped[dict | None] = mapped_column(JSONType)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class FactionGoal(Base):
    __tablename__ = "faction_goals"
    __table_args__ = (
        CheckConstraint("progress >= 0 AND progress <= progress_max", name="ck_goal_progress"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    faction_id: Mapped[int] = mapped_column(
        ForeignKey("factions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    goal_type: Mapped[str] = mapped_column(String(20), nullable=False)
    urgency: Mapped[str] = mapped_column(String(10), nullable=False, default="normal")
    stakes_level: Mapped[str] = mapped_column(String(20), nullable=False, default="moderate")
    visibility: Mapped[str] = mapped_column(String(10), nullable=False, default="secret")
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    progress_max: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    discovered_by_json: Mapped[list | None] = mapped_column(JSONType)
    success_consequences: Mapped[str | None] = mapped_column(Text)
    failure_consequences: Mapped[str | None] = mapped_column(Text)
    completed_on_day: Mapped[int | None] = mapped_column(Integer)
    abandoned_reason: Mapped[str | None] = mapped_column(Text)


class WorldEvent(Base):
    __tablename__ = "world_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    campaign_id: Mapped[int] = mapped_column(
        ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    event_type: Mapped[str] = mapped_column(String(20), nullable=False)
    scope: Mapped[str] = mapped_column(String(20), nullable=False, default="local")
    visibility: Mapped[str] = mapped_column(String(10), nullable=False, default="public")
    stages_json: Mapped[list | None] = mapped_column(JSONType)
    stage_descriptions_json: Mapped[list | None] = mapped_column(JSONType)
    current_stage: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    expected_duration_days: Mapped[int | None] = mapped_column(Integer)
    days_elapsed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    deadline_day: Mapped[int | None] = mapped_column(Integer)
    triggered_by_faction_id: Mapped[int | None] = mapped_column(
        ForeignKey("factions.id", ondelete="SET NULL")
    )
    triggered_by_goal_id: Mapped[int | None] = mapped_column(
        ForeignKey("faction_goals.id", ondelete="SET NULL")
    )
    affected_factions_json: Mapped[list | None] = mapped_column(JSONType)
    possible_outcomes_json: Mapped[list | None] = mapped_column(JSONType)
    intervention_options_json: Mapped[list | None] = mapped_column(JSONType)
    discovered_by_json: Mapped[list | None] = mapped_column(JSONType)
    outcome: Mapped[str | None] = mapped_column(String(80))
    outcome_description: Mapped[str | None] = mapped_column(Text)
    started_on_day: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ended_on_day: Mapped[int | None] = mapped_column(Integer)


class EventEffect(Base):
    __tablename__ = "event_effects"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    event_id: Mapped[int] = mapped_column(
        ForeignKey("world_events.id", ondelete="CASCADE"), nullable=False, index=True
    )
    effect_type: Mapped[str] = mapped_column(String(80), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    target_type: Mapped[str] = mapped_column(String(20), nullable=False)
    target_id: Mapped[int | None] = mapped_column(Integer)
    parameters_json: Mapped[dict | None] = mapped_column(JSONType)
    duration: Mapped[str | None] = mapped_column(String(80))
    stage_applied: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_on_day: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    expires_on_day: Mapped[int | None] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    reversal_reason: Mapped[str | None] = mapped_column(Text)
    ended_on_day: Mapped[int | None] = mapped_column(Integer)


class FactionStanding(Base):
    __tablename__ = "faction_standings"
    __table_args__ = (
        UniqueConstraint("character_id", "faction_id"),
        CheckConstraint("standing >= -100 AND standing <= 100", name="ck_standing_range"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    character_id: Mapped[int] = mapped_column(
        ForeignKey("characters.id", ondelete="CASCADE"), nullable=False, index=True
    )
    faction_id: Mapped[int] = mapped_column(
        ForeignKey("factions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    standing: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    standing_label: Mapped[str] = mapped_column(String(20), nullable=False, default="neutral")
    is_member: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    membership_level: Mapped[str | None] = mapped_column(String(40))
    rank: Mapped[str | None] = mapped_column(String(80))
    joined_on_day: Mapped[int | None] = mapped_column(Integer)
    deeds_for_json: Mapped[list | None] = mapped_column(JSONType)
    deeds_against_json: Mapped[list | None] = mapped_column(JSONType)
    promises_json: Mapped[list | None] = mapped_column(JSONType)
    debts_json: Mapped[list | None] = mapped_column(JSONType)
    quests_completed_json: Mapped[list | None] = mapped_column(JSONType)
