from __future__ import annotations

from dataclasses import dataclass, field

from world.errors import InvalidStateError
from world.types import EventStatus, EventType, Scope, Visibility, coerce_enum

DEADLINE_OUTCOME = "deadline_passed"
DEADLINE_DESCRIPTION = "Event deadline reached without intervention"


def stages_reached(stage_count: int, expected_duration_days: int | None, elapsed: int) -> int:
    """Number of stage boundaries crossed after ``elapsed`` days.

    Each stage lasts ``expected_duration_days / stage_count`` days with a
    floor of one day. The result may equal or exceed ``stage_count``,
    which means the final boundary has been crossed.
    """
    if stage_count <= 0 or expected_duration_days is None or elapsed <= 0:
        return 0
    if expected_duration_days < stage_count:
        return elapsed
    return elapsed * stage_count // expected_duration_days


@dataclass
class WorldEvent:
    id: int | None
    campaign_id: int
    title: str
    description: str | None = None
    event_type: EventType = EventType.POLITICAL
    scope: Scope = Scope.LOCAL
    visibility: Visibility = Visibility.PUBLIC
    stages: list[str] = field(default_factory=list)
    stage_descriptions: list[str] = field(default_factory=list)
    current_stage: int = 0
    status: EventStatus = EventStatus.ACTIVE
    expected_duration_days: int | None = None
    days_elapsed: int = 0
    deadline_day: int | None = None
    triggered_by_faction_id: int | None = None
    triggered_by_goal_id: int | None = None
    affected_faction_ids: list[int] = field(default_factory=list)
    possible_outcomes: list[str] = field(default_factory=list)
    player_intervention_options: list[str] = field(default_factory=list)
    discovered_by: set[int] = field(default_factory=set)
    outcome: str | None = None
    outcome_description: str | None = None
    started_on_day: int = 0
    ended_on_day: int | None = None

    def __post_init__(self) -> None:
        self.event_type = coerce_enum(
            EventType, self.event_type, field="event_type", default=EventType.POLITICAL
        )
        self.scope = coerce_enum(Scope, self.scope, field="scope", default=Scope.LOCAL)
        self.visibility = coerce_enum(
            Visibility, self.visibility, field="visibility", default=Visibility.PUBLIC
        )
        self.status = coerce_enum(
            EventStatus, self.status, field="status", default=EventStatus.ACTIVE
        )
        self.stages = [str(stage) for stage in (self.stages or [])]
        descriptions = [str(text) for text in (self.stage_descriptions or [])]
        if descriptions and len(descriptions) != len(self.stages):
            raise InvalidStateError("stage_descriptions must match stages.")
        self.stage_descriptions = descriptions or [""] * len(self.stages)
        if self.expected_duration_days is not None:
            if int(self.expected_duration_days) < 0:
                raise InvalidStateError("expected_duration_days cannot be negative.")
            self.expected_duration_days = int(self.expected_duration_days)
        if self.current_stage < 0 or (
            self.stages and self.current_stage >= len(self.stages)
        ):
            raise InvalidStateError("current_stage is out of range.")
        if not self.stages and self.current_stage != 0:
            raise InvalidStateError("current_stage is out of range.")
        self.discovered_by = {int(item) for item in (self.discovered_by or set())}
        self.affected_faction_ids = [int(item) for item in (self.affected_faction_ids or [])]

    @property
    def is_active(self) -> bool:
        return self.status is EventStatus.ACTIVE

    @property
    def stage_name(self) -> str | None:
        if not self.stages:
            return None
        return self.stages[self.current_stage]

    @property
    def stage_description(self) -> str | None:
        if not self.stage_descriptions:
            return None
        return self.stage_descriptions[self.current_stage] or None

    @property
    def is_final_stage(self) -> bool:
        return not self.stages or self.current_stage >= len(self.stages) - 1

    def _require_active(self) -> None:
        if self.status is not EventStatus.ACTIVE:
            raise InvalidStateError("Event is not active.")

    def advance_stage(self, *, day: int) -> bool:
        """Moves to the next stage; returns True when this resolved the event."""
        self._require_active()
        if self.is_final_stage:
            self._close(EventStatus.RESOLVED, None, None, day)
            return True
        self.current_stage += 1
        return False

    def move_to_stage(self, stage: int, *, day: int) -> bool:
        """Jumps forward to ``stage``; an index past the last stage resolves."""
        self._require_active()
        if stage < self.current_stage:
            raise InvalidStateError("Events never move back a stage.")
        if not self.stages or stage >= len(self.stages):
            if self.stages:
                self.current_stage = len(self.stages) - 1
            self._close(EventStatus.RESOLVED, None, None, day)
            return True
        self.current_stage = stage
        return False

    def resolve(self, outcome: str | None, description: str | None = None, *, day: int) -> None:
        self._require_active()
        self._close(EventStatus.RESOLVED, outcome, description, day)

    def cancel(self, reason: str | None = None, *, day: int) -> None:
        self._require_active()
        self._close(EventStatus.CANCELLED, "cancelled", reason, day)

    def discover(self, character_id: int) -> bool:
        if character_id in self.discovered_by:
            return False
        self.discovered_by.add(int(character_id))
        return True

    def deadline_reached(self, day: int) -> bool:
        return self.deadline_day is not None and day >= self.deadline_day

    def _close(
        self,
        status: EventStatus,
        outcome: str | None,
        description: str | None,
        day: int,
    ) -> None:
        self.status = status
        self.outcome = outcome
        self.outcome_description = description
        self.ended_on_day = day
