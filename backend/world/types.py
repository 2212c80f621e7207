from __future__ import annotations

from enum import Enum
from typing import TypeVar

from world.errors import InvalidStateError


class Scope(str, Enum):
    LOCAL = "local"
    REGIONAL = "regional"
    CONTINENTAL = "continental"
    GLOBAL = "global"


class Urgency(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"


class Visibility(str, Enum):
    PUBLIC = "public"
    RUMORED = "rumored"
    SECRET = "secret"


class GoalType(str, Enum):
    EXPANSION = "expansion"
    DEFENSE = "defense"
    ECONOMIC = "economic"
    POLITICAL = "political"
    MILITARY = "military"
    COVERT = "covert"
    RELIGIOUS = "religious"
    MAGICAL = "magical"


class StakesLevel(str, Enum):
    MINOR = "minor"
    MODERATE = "moderate"
    MAJOR = "major"
    CATASTROPHIC = "catastrophic"


class EventType(str, Enum):
    POLITICAL = "political"
    ECONOMIC = "economic"
    MILITARY = "military"
    NATURAL = "natural"
    MAGICAL = "magical"
    RELIGIOUS = "religious"
    SOCIAL = "social"
    CONSPIRACY = "conspiracy"
    THREAT = "threat"


class TargetType(str, Enum):
    LOCATION = "location"
    FACTION = "faction"
    CHARACTER = "character"
    NPC = "npc"
    CAMPAIGN = "campaign"


class FactionStatus(str, Enum):
    ACTIVE = "active"
    DISBANDED = "disbanded"


class GoalStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class EventStatus(str, Enum):
    ACTIVE = "active"
    RESOLVED = "resolved"
    CANCELLED = "cancelled"


class EffectStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    REVERSED = "reversed"


E = TypeVar("E", bound=Enum)


def coerce_enum(
    enum_cls: type[E],
    value: E | str | None,
    *,
    field: str,
    default: E | None = None,
) -> E:
    if value is None:
        if default is None:
            raise InvalidStateError(f"{field} is required.")
        return default
    if isinstance(value, enum_cls):
        return value
    key = str(value).strip().lower()
    for member in enum_cls:
        if member.value == key:
            return member
    allowed = ", ".join(member.value for member in enum_cls)
    raise InvalidStateError(f"Invalid {field}: {value} (expected one of {allowed})")


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, int(value)))


def require_days(days: int) -> int:
    if isinstance(days, bool) or not isinstance(days, int):
        raise InvalidStateError("days must be a whole number of days.")
    if days < 1:
        raise InvalidStateError("days must be at least 1.")
    return days
