from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, JsonValue

GoalTypeName = Literal[
    "expansion",
    "defense",
    "economic",
    "political",
    "military",
    "covert",
    "religious",
    "magical",
]
EventTypeName = Literal[
    "political",
    "economic",
    "military",
    "natural",
    "magical",
    "religious",
    "social",
    "conspiracy",
    "threat",
]
UrgencyName = Literal["low", "normal", "high", "critical"]
StakesName = Literal["minor", "moderate", "major", "catastrophic"]
VisibilityName = Literal["public", "rumored", "secret"]
ScopeName = Literal["local", "regional", "continental", "global"]
TargetTypeName = Literal["location", "faction", "character", "npc", "campaign"]


class GoalProposal(BaseModel):
    model_config = ConfigDict(extra="forbid", strict=True)

    title: str = Field(min_length=1)
    description: str | None = None
    goal_type: GoalTypeName
    urgency: UrgencyName = "normal"
    stakes_level: StakesName = "moderate"
    visibility: VisibilityName = "secret"
    progress_max: int = Field(default=100, ge=1)
    success_consequences: str | None = None
    failure_consequences: str | None = None


class EffectProposal(BaseModel):
    model_config = ConfigDict(extra="forbid", strict=True)

    effect_type: str = Field(min_length=1)
    description: str | None = None
    target_type: TargetTypeName
    target_id: int | None = None
    parameters: dict[str, JsonValue] = Field(default_factory=dict)
    duration: str | int | None = None


class EventProposal(BaseModel):
    model_config = ConfigDict(extra="forbid", strict=True)

    title: str = Field(min_length=1)
    description: str | None = None
    event_type: EventTypeName
    scope: ScopeName = "local"
    visibility: VisibilityName = "public"
    stages: list[str] = Field(default_factory=list, max_length=10)
    stage_descriptions: list[str] = Field(default_factory=list, max_length=10)
    expected_duration_days: int | None = Field(default=None, ge=0)
    possible_outcomes: list[str] = Field(default_factory=list)
    player_intervention_options: list[str] = Field(default_factory=list)
    affected_faction_ids: list[int] = Field(default_factory=list)
    effects: list[EffectProposal] = Field(default_factory=list)
