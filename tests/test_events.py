import itertools

import pytest

from world.effects import new_effect
from world.errors import InvalidStateError
from world.event_tick import DEADLINE_PASSED, RESOLVED, STAGE_ADVANCED, process_event_tick
from world.events import DEADLINE_OUTCOME, WorldEvent, stages_reached
from world.store import CampaignWorld
from world.types import EventStatus


def _world() -> CampaignWorld:
    counter = itertools.count(1)
    return CampaignWorld(campaign_id=1, allocate=lambda kind, record: next(counter))


def _event(**fields) -> WorldEvent:
    fields.setdefault("stages", ["One", "Two", "Three", "Four"])
    fields.setdefault("expected_duration_days", 8)
    return WorldEvent(id=None, campaign_id=1, title="Unrest", **fields)


def test_stages_reached_uses_dwell_per_stage() -> None:
    assert stages_reached(4, 8, 1) == 0
    assert stages_reached(4, 8, 2) == 1
    assert stages_reached(4, 8, 7) == 3
    assert stages_reached(4, 8, 8) == 4
    assert stages_reached(4, 2, 3) == 3
    assert stages_reached(4, None, 30) == 0


def test_long_tick_resolves_instead_of_overflowing_stage() -> None:
    world = _world()
    event = world.add_event(_event())

    outcome = process_event_tick(world, 9)

    assert event.status is EventStatus.RESOLVED
    assert event.current_stage == 3
    assert event.outcome is None
    assert event.ended_on_day == 9
    assert outcome.results[0].kind == RESOLVED
    assert world.world_day == 9


def test_split_ticks_land_on_the_same_stage() -> None:
    split = _world()
    first = split.add_event(_event())
    for _ in range(5):
        process_event_tick(split, 1)

    joined = _world()
    second = joined.add_event(_event())
    process_event_tick(joined, 5)

    assert first.current_stage == second.current_stage == 2
    assert first.days_elapsed == second.days_elapsed == 5


def test_stage_advance_is_reported_once_per_boundary() -> None:
    world = _world()
    event = world.add_event(_event())

    assert process_event_tick(world, 1).results == []
    outcome = process_event_tick(world, 1)
    assert outcome.results[0].kind == STAGE_ADVANCED
    assert outcome.results[0].previous_stage == 0
    assert outcome.results[0].new_stage == 1
    assert outcome.results[0].stage_name == "Two"
    assert event.is_active


def test_event_without_stages_resolves_on_first_tick() -> None:
    world = _world()
    event = world.add_event(_event(stages=[], expected_duration_days=None))

    outcome = process_event_tick(world, 1)

    assert event.status is EventStatus.RESOLVED
    assert outcome.results[0].kind == RESOLVED


def test_deadline_resolves_with_deadline_outcome() -> None:
    world = _world()
    event = world.add_event(_event(expected_duration_days=40, deadline_day=3))

    process_event_tick(world, 2)
    assert event.is_active
    outcome = process_event_tick(world, 1)

    assert outcome.results[0].kind == DEADLINE_PASSED
    assert event.status is EventStatus.RESOLVED
    assert event.outcome == DEADLINE_OUTCOME
    assert event.ended_on_day == 3


def test_resolved_events_are_not_ticked_again() -> None:
    world = _world()
    event = world.add_event(_event())
    process_event_tick(world, 9)

    assert process_event_tick(world, 5).results == []
    assert event.days_elapsed == 9


def test_due_effects_expire_exactly_once() -> None:
    world = _world()
    event = world.add_event(_event(expected_duration_days=40))
    effect = world.add_effect(
        new_effect(
            event_id=event.id,
            effect_type="curfew",
            target_type="location",
            duration="3 days",
            day=0,
        )
    )

    assert process_event_tick(world, 2).expired_effect_ids == []
    assert process_event_tick(world, 1).expired_effect_ids == [effect.id]
    assert process_event_tick(world, 1).expired_effect_ids == []
    assert effect.ended_on_day == 3


def test_manual_stage_changes() -> None:
    event = _event(stages=["Start", "End"])
    assert event.advance_stage(day=1) is False
    assert event.stage_name == "End"
    assert event.advance_stage(day=2) is True
    assert event.status is EventStatus.RESOLVED
    with pytest.raises(InvalidStateError):
        event.advance_stage(day=3)


def test_events_never_move_backwards() -> None:
    event = _event()
    event.move_to_stage(2, day=1)
    with pytest.raises(InvalidStateError):
        event.move_to_stage(1, day=2)


def test_resolving_twice_is_rejected() -> None:
    event = _event()
    event.resolve("victory", "The rebels won", day=4)
    assert event.outcome == "victory"
    with pytest.raises(InvalidStateError):
        event.resolve("victory", day=5)
    with pytest.raises(InvalidStateError):
        event.cancel(day=5)


def test_stage_descriptions_must_match_stages() -> None:
    with pytest.raises(InvalidStateError):
        _event(stage_descriptions=["only one"])
    with pytest.raises(InvalidStateError):
        _event(current_stage=4)
