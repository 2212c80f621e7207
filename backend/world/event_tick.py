from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field

from world.events import DEADLINE_DESCRIPTION, DEADLINE_OUTCOME, WorldEvent, stages_reached
from world.store import CampaignWorld
from world.types import require_days

logger = logging.getLogger(__name__)

STAGE_ADVANCED = "stage_advanced"
RESOLVED = "resolved"
DEADLINE_PASSED = "deadline_passed"


@dataclass(frozen=True)
class EventTickResult:
    event_id: int
    title: str
    kind: str
    previous_stage: int
    new_stage: int
    stage_name: str | None
    stages_advanced: int

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class EventTickOutcome:
    results: list[EventTickResult] = field(default_factory=list)
    expired_effect_ids: list[int] = field(default_factory=list)


def _advance_event(event: WorldEvent, days: int, end_day: int) -> EventTickResult | None:
    previous = event.current_stage
    event.days_elapsed += days
    kind = None
    if not event.stages:
        event.move_to_stage(0, day=end_day)
        kind = RESOLVED
    else:
        reached = stages_reached(
            len(event.stages), event.expected_duration_days, event.days_elapsed
        )
        if reached > event.current_stage:
            resolved = event.move_to_stage(reached, day=end_day)
            kind = RESOLVED if resolved else STAGE_ADVANCED
    if event.is_active and event.deadline_reached(end_day):
        event.resolve(DEADLINE_OUTCOME, DEADLINE_DESCRIPTION, day=end_day)
        kind = DEADLINE_PASSED
    if kind is None:
        return None
    return EventTickResult(
        event_id=event.id,
        title=event.title,
        kind=kind,
        previous_stage=previous,
        new_stage=event.current_stage,
        stage_name=event.stage_name,
        stages_advanced=event.current_stage - previous,
    )


def expire_effects(world: CampaignWorld, day: int) -> list[int]:
    """Expires every active effect of the campaign that is due by ``day``."""
    expired: list[int] = []
    for effect_id in sorted(world.effects):
        effect = world.effects[effect_id]
        if effect.is_due(day):
            effect.expire(day=day)
            expired.append(effect_id)
    return expired


def process_event_tick(world: CampaignWorld, days: int) -> EventTickOutcome:
    """Moves every active event forward by ``days`` and expires due effects.

    Stage position is derived from the accumulated elapsed days, so one
    long tick and several short ones land on the same stage. Crossing the
    last stage boundary resolves the event with no outcome. The campaign
    day counter advances here.
    """
    require_days(days)
    end_day = world.world_day + days
    outcome = EventTickOutcome()
    for event in world.active_events():
        result = _advance_event(event, days, end_day)
        if result is not None:
            outcome.results.append(result)
            if result.kind != STAGE_ADVANCED:
                logger.info("World event %s ended (%s)", event.title, result.kind)
    outcome.expired_effect_ids = expire_effects(world, end_day)
    world.world_day = end_day
    return outcome
