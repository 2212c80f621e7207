import itertools

import pytest

from world.errors import InvalidStateError
from world.faction_tick import process_faction_tick
from world.goals import (
    Faction,
    FactionGoal,
    daily_progress,
    progress_delta,
    set_relationship,
)
from world.store import CampaignWorld
from world.types import GoalStatus, Urgency


def _world() -> CampaignWorld:
    counter = itertools.count(1)
    return CampaignWorld(campaign_id=1, allocate=lambda kind, record: next(counter))


def _faction_with_goal(
    world: CampaignWorld, power: int, urgency: str
) -> tuple[Faction, FactionGoal]:
    faction = world.add_faction(Faction(id=None, campaign_id=1, name="F", power_level=power))
    goal = world.add_goal(
        FactionGoal(id=None, faction_id=faction.id, title="G", urgency=urgency)
    )
    return faction, goal


def test_progress_is_monotonic_in_power_and_urgency() -> None:
    rates = [daily_progress(5, urgency) for urgency in Urgency]
    assert rates == sorted(rates)
    assert len(set(rates)) == len(rates)
    assert daily_progress(3, "normal") < daily_progress(4, "normal")


def test_progress_is_linear_in_days() -> None:
    assert progress_delta(9, "high", 2) == 2 * progress_delta(9, "high", 1)
    assert progress_delta(9, "high", 1) == 27


def test_progress_delta_rejects_non_positive_days() -> None:
    with pytest.raises(InvalidStateError):
        progress_delta(5, "normal", 0)
    with pytest.raises(InvalidStateError):
        progress_delta(5, "normal", -3)


def test_two_single_day_ticks_match_one_two_day_tick() -> None:
    split = _world()
    _, split_goal = _faction_with_goal(split, 9, "high")
    process_faction_tick(split, 1)
    process_faction_tick(split, 1)

    joined = _world()
    _, joined_goal = _faction_with_goal(joined, 9, "high")
    process_faction_tick(joined, 2)

    assert split_goal.progress == joined_goal.progress == 54


def test_goal_completes_on_the_tick_that_crosses_max() -> None:
    world = _world()
    _, goal = _faction_with_goal(world, 9, "high")

    for expected in (27, 54, 81):
        results = process_faction_tick(world, 1)
        world.world_day += 1
        assert results[0].new_progress == expected
        assert not results[0].completed
        assert goal.status is GoalStatus.ACTIVE

    results = process_faction_tick(world, 1)
    assert results[0].completed
    assert results[0].new_progress == 100
    assert results[0].progress_gained == 19
    assert goal.status is GoalStatus.COMPLETED
    assert goal.completed_on_day == 4

    world.world_day += 1
    assert process_faction_tick(world, 1) == []


def test_long_tick_stamps_the_day_the_goal_finished() -> None:
    world = _world()
    _, goal = _faction_with_goal(world, 9, "high")

    [result] = process_faction_tick(world, 9)

    assert result.completed
    assert goal.completed_on_day == 4

def test_inactive_factions_and_goals_are_skipped() -> None:
    world = _world()
    faction, goal = _faction_with_goal(world, 5, "normal")
    other = world.add_faction(
        Faction(id=None, campaign_id=1, name="Gone", status="disbanded")
    )
    world.add_goal(FactionGoal(id=None, faction_id=other.id, title="Stalled"))
    goal.abandon("lost interest")

    assert process_faction_tick(world, 3) == []


def test_completed_goal_absorbs_progress() -> None:
    goal = FactionGoal(id=1, faction_id=1, title="Done", progress=100)
    assert goal.status is GoalStatus.COMPLETED
    assert goal.advance(10, day=3) == 0
    assert goal.progress == 100


def test_abandoned_goal_cannot_advance() -> None:
    goal = FactionGoal(id=1, faction_id=1, title="Dropped")
    goal.abandon()
    with pytest.raises(InvalidStateError):
        goal.advance(5, day=1)
    with pytest.raises(InvalidStateError):
        goal.abandon()


def test_progress_never_exceeds_max_or_decreases() -> None:
    goal = FactionGoal(id=1, faction_id=1, title="Climb", progress_max=40)
    assert goal.advance(35, day=1) == 35
    assert goal.advance(35, day=2) == 5
    assert goal.progress == 40
    with pytest.raises(InvalidStateError):
        FactionGoal(id=2, faction_id=1, title="Back").advance(-1, day=1)


def test_goal_rejects_unknown_enum_values() -> None:
    with pytest.raises(InvalidStateError) as excinfo:
        FactionGoal(id=1, faction_id=1, title="Bad", urgency="urgent")
    assert "urgency" in str(excinfo.value)


def test_faction_power_level_bounds() -> None:
    with pytest.raises(InvalidStateError):
        Faction(id=1, campaign_id=1, name="Weak", power_level=0)
    faction = Faction(id=1, campaign_id=1, name="Strong", power_level=9)
    assert faction.boost_power(2) == 1
    assert faction.power_level == 10


def test_relationships_are_symmetric_and_clamped() -> None:
    first = Faction(id=1, campaign_id=1, name="A")
    second = Faction(id=2, campaign_id=1, name="B")
    assert set_relationship(first, second, -150) == -100
    assert first.relationship_with(2) == -100
    assert second.relationship_with(1) == -100
    assert first.relationship_with(99) == 0
    with pytest.raises(InvalidStateError):
        set_relationship(first, first, 10)


def test_discovering_a_goal_twice_is_not_an_error() -> None:
    goal = FactionGoal(id=1, faction_id=1, title="Hidden")
    assert goal.discover(7) is True
    assert goal.discover(7) is False
    assert goal.discovered_by == {7}
