from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Any

from world.errors import InvalidStateError
from world.types import EffectStatus, TargetType, coerce_enum

DURATION_PATTERN = re.compile(
    r"^\s*(\d+)\s*(h|hr|hrs|hours?|d|days?|w|wks?|weeks?|m|mos?|months?|y|yrs?|years?)?\s*$",
    re.IGNORECASE,
)
OPEN_ENDED_DURATIONS = {"permanent", "indefinite", "until resolved", "until reversed", "forever"}

UNIT_DAYS = {
    "d": 1,
    "w": 7,
    "m": 30,
    "y": 365,
}


def parse_duration_days(duration: int | str | None) -> int | None:
    """Turns a free-form duration into a day count.

    ``None`` means the effect has no time limit and only ends when it is
    reversed.
    """
    if duration is None or isinstance(duration, bool):
        return None
    if isinstance(duration, (int, float)):
        if duration < 0:
            raise InvalidStateError("Effect duration cannot be negative.")
        return int(math.ceil(duration))
    text = str(duration).strip().lower()
    if not text or text in OPEN_ENDED_DURATIONS:
        return None
    match = DURATION_PATTERN.match(text)
    if not match:
        return None
    amount = int(match.group(1))
    unit = (match.group(2) or "d").lower()
    if unit.startswith("h"):
        return int(math.ceil(amount / 24))
    if unit.startswith("mo") or unit == "m":
        return amount * UNIT_DAYS["m"]
    return amount * UNIT_DAYS.get(unit[0], 1)


def compute_expiry(
    duration: int | str | None,
    created_on_day: int,
    expires_at: int | None = None,
) -> int | None:
    if expires_at is not None:
        return int(expires_at)
    days = parse_duration_days(duration)
    if days is None:
        return None
    return created_on_day + days


@dataclass
class EventEffect:
    id: int | None
    event_id: int
    effect_type: str
    target_type: TargetType
    target_id: int | None = None
    description: str | None = None
    parameters: dict[str, Any] = field(default_factory=dict)
    duration: str | None = None
    stage_applied: int = 0
    created_on_day: int = 0
    expires_on_day: int | None = None
    status: EffectStatus = EffectStatus.ACTIVE
    reversal_reason: str | None = None
    ended_on_day: int | None = None

    def __post_init__(self) -> None:
        if not self.effect_type or not str(self.effect_type).strip():
            raise InvalidStateError("effect_type is required.")
        self.target_type = coerce_enum(TargetType, self.target_type, field="target_type")
        self.status = coerce_enum(
            EffectStatus, self.status, field="status", default=EffectStatus.ACTIVE
        )
        self.parameters = dict(self.parameters or {})
        if self.duration is not None:
            self.duration = str(self.duration)

    @property
    def is_active(self) -> bool:
        return self.status is EffectStatus.ACTIVE

    def is_due(self, day: int) -> bool:
        return (
            self.status is EffectStatus.ACTIVE
            and self.expires_on_day is not None
            and self.expires_on_day <= day
        )

    def expire(self, *, day: int) -> None:
        if self.status is not EffectStatus.ACTIVE:
            raise InvalidStateError("Effect is not active.")
        self.status = EffectStatus.EXPIRED
        self.ended_on_day = day

    def reverse(self, reason: str | None = None, *, day: int) -> None:
        if self.status is not EffectStatus.ACTIVE:
            raise InvalidStateError("Effect is not active.")
        self.status = EffectStatus.REVERSED
        self.reversal_reason = reason
        self.ended_on_day = day


def new_effect(
    *,
    event_id: int,
    effect_type: str,
    target_type: TargetType | str,
    day: int,
    target_id: int | None = None,
    description: str | None = None,
    parameters: dict | None = None,
    duration: int | str | None = None,
    expires_at: int | None = None,
    stage_applied: int = 0,
) -> EventEffect:
    return EventEffect(
        id=None,
        event_id=event_id,
        effect_type=effect_type,
        target_type=target_type,
        target_id=target_id,
        description=description,
        parameters=parameters or {},
        duration=None if duration is None else str(duration),
        stage_applied=stage_applied,
        created_on_day=day,
        expires_on_day=compute_expiry(duration, day, expires_at),
    )
