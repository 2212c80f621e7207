from __future__ import annotations

from dataclasses import dataclass, field

from world.errors import InvalidStateError
from world.types import (
    FactionStatus,
    GoalStatus,
    GoalType,
    Scope,
    StakesLevel,
    Urgency,
    Visibility,
    clamp,
    coerce_enum,
    require_days,
)

MIN_POWER = 1
MAX_POWER = 10
MIN_RELATIONSHIP = -100
MAX_RELATIONSHIP = 100
DEFAULT_PROGRESS_MAX = 100

# Progress points per day for each point of faction power.
URGENCY_RATES: dict[Urgency, int] = {
    Urgency.LOW: 1,
    Urgency.NORMAL: 2,
    Urgency.HIGH: 3,
    Urgency.CRITICAL: 4,
}


def daily_progress(power_level: int, urgency: Urgency | str) -> int:
    power = clamp(power_level, MIN_POWER, MAX_POWER)
    rate = URGENCY_RATES[coerce_enum(Urgency, urgency, field="urgency")]
    return power * rate


def progress_delta(power_level: int, urgency: Urgency | str, days: int) -> int:
    return daily_progress(power_level, urgency) * require_days(days)


@dataclass
class Faction:
    id: int | None
    campaign_id: int
    name: str
    description: str | None = None
    scope: Scope = Scope.LOCAL
    power_level: int = 5
    alignment: str = "neutral"
    status: FactionStatus = FactionStatus.ACTIVE
    relationships: dict[int, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.scope = coerce_enum(Scope, self.scope, field="scope", default=Scope.LOCAL)
        self.status = coerce_enum(
            FactionStatus, self.status, field="status", default=FactionStatus.ACTIVE
        )
        if not MIN_POWER <= int(self.power_level) <= MAX_POWER:
            raise InvalidStateError(
                f"power_level must be between {MIN_POWER} and {MAX_POWER}."
            )
        self.power_level = int(self.power_level)
        self.relationships = {
            int(key): clamp(value, MIN_RELATIONSHIP, MAX_RELATIONSHIP)
            for key, value in (self.relationships or {}).items()
        }

    @property
    def is_active(self) -> bool:
        return self.status is FactionStatus.ACTIVE

    def relationship_with(self, other_id: int) -> int:
        return self.relationships.get(int(other_id), 0)

    def boost_power(self, amount: int) -> int:
        previous = self.power_level
        self.power_level = clamp(previous + amount, MIN_POWER, MAX_POWER)
        return self.power_level - previous


def set_relationship(first: Faction, second: Faction, value: int) -> int:
    if first.id is None or second.id is None:
        raise InvalidStateError("Both factions must be saved before relating them.")
    if first.id == second.id:
        raise InvalidStateError("A faction cannot hold a relationship with itself.")
    if first.campaign_id != second.campaign_id:
        raise InvalidStateError("Factions belong to different campaigns.")
    clamped = clamp(value, MIN_RELATIONSHIP, MAX_RELATIONSHIP)
    first.relationships[second.id] = clamped
    second.relationships[first.id] = clamped
    return clamped


@dataclass
class FactionGoal:
    id: int | None
    faction_id: int
    title: str
    description: str | None = None
    goal_type: GoalType = GoalType.EXPANSION
    urgency: Urgency = Urgency.NORMAL
    stakes_level: StakesLevel = StakesLevel.MODERATE
    visibility: Visibility = Visibility.SECRET
    progress: int = 0
    progress_max: int = DEFAULT_PROGRESS_MAX
    status: GoalStatus = GoalStatus.ACTIVE
    discovered_by: set[int] = field(default_factory=set)
    success_consequences: str | None = None
    failure_consequences: str | None = None
    completed_on_day: int | None = None
    abandoned_reason: str | None = None

    def __post_init__(self) -> None:
        self.goal_type = coerce_enum(
            GoalType, self.goal_type, field="goal_type", default=GoalType.EXPANSION
        )
        self.urgency = coerce_enum(Urgency, self.urgency, field="urgency", default=Urgency.NORMAL)
        self.stakes_level = coerce_enum(
            StakesLevel, self.stakes_level, field="stakes_level", default=StakesLevel.MODERATE
        )
        self.visibility = coerce_enum(
            Visibility, self.visibility, field="visibility", default=Visibility.SECRET
        )
        self.status = coerce_enum(
            GoalStatus, self.status, field="status", default=GoalStatus.ACTIVE
        )
        if int(self.progress_max) <= 0:
            raise InvalidStateError("progress_max must be positive.")
        self.progress_max = int(self.progress_max)
        self.progress = clamp(self.progress, 0, self.progress_max)
        self.discovered_by = {int(item) for item in (self.discovered_by or set())}
        if self.status is GoalStatus.ACTIVE and self.progress >= self.progress_max:
            self.status = GoalStatus.COMPLETED

    @property
    def is_active(self) -> bool:
        return self.status is GoalStatus.ACTIVE

    @property
    def percent(self) -> int:
        return self.progress * 100 // self.progress_max

    def advance(self, amount: int, *, day: int) -> int:
        """Adds progress and returns the amount actually gained.

        A completed goal absorbs further progress without changing; an
        abandoned goal cannot be advanced.
        """
        if amount < 0:
            raise InvalidStateError("Goal progress cannot decrease.")
        if self.status is GoalStatus.COMPLETED:
            return 0
        if self.status is GoalStatus.ABANDONED:
            raise InvalidStateError("Goal is not active.")
        previous = self.progress
        self.progress = min(previous + int(amount), self.progress_max)
        if self.progress >= self.progress_max:
            self.status = GoalStatus.COMPLETED
            self.completed_on_day = day
        return self.progress - previous

    def abandon(self, reason: str | None = None) -> None:
        if self.status is not GoalStatus.ACTIVE:
            raise InvalidStateError("Goal is not active.")
        self.status = GoalStatus.ABANDONED
        self.abandoned_reason = reason

    def discover(self, character_id: int) -> bool:
        if character_id in self.discovered_by:
            return False
        self.discovered_by.add(int(character_id))
        return True
