from world.faction_tick import GoalTickResult
from world.goals import Faction, FactionGoal
from world.spawning import (
    completion_event,
    completion_visibility,
    crossed_milestones,
    milestone_event,
    milestone_visibility,
    rival_event,
)
from world.types import EventType, Visibility


def _result(previous: int, new: int, progress_max: int = 100) -> GoalTickResult:
    return GoalTickResult(
        goal_id=1,
        faction_id=1,
        title="G",
        progress_gained=new - previous,
        previous_progress=previous,
        new_progress=new,
        progress_max=progress_max,
        completed=new >= progress_max,
    )


def test_crossed_milestones() -> None:
    assert crossed_milestones(_result(0, 24)) == []
    assert crossed_milestones(_result(0, 25)) == [25]
    assert crossed_milestones(_result(25, 49)) == []
    assert crossed_milestones(_result(10, 100)) == [25, 50, 75]
    assert crossed_milestones(_result(50, 100, progress_max=200)) == [50]


def test_spawned_visibility_rules() -> None:
    assert milestone_visibility(Visibility.SECRET, 25) is Visibility.SECRET
    assert milestone_visibility(Visibility.SECRET, 50) is Visibility.RUMORED
    assert milestone_visibility(Visibility.RUMORED, 25) is Visibility.RUMORED
    assert milestone_visibility(Visibility.PUBLIC, 75) is Visibility.PUBLIC
    assert completion_visibility(Visibility.SECRET) is Visibility.RUMORED
    assert completion_visibility(Visibility.PUBLIC) is Visibility.PUBLIC


def test_event_templates_reference_faction_and_goal() -> None:
    faction = Faction(id=4, campaign_id=2, name="Red Wizards", scope="regional")
    rival = Faction(id=5, campaign_id=2, name="Harpers")
    goal = FactionGoal(
        id=9,
        faction_id=4,
        title="Bind the Phoenix",
        goal_type="magical",
        success_consequences="Thay gains an undying guardian.",
    )

    milestone = milestone_event(faction, goal, 75, day=6)
    assert milestone.title == "Red Wizards Nears Goal"
    assert "bind the phoenix" in milestone.description
    assert milestone.event_type is EventType.MAGICAL
    assert milestone.started_on_day == 6
    assert milestone.triggered_by_goal_id == 9

    done = completion_event(faction, goal, day=7)
    assert done.description == "Thay gains an undying guardian."
    assert done.scope.value == "regional"

    counter = rival_event(rival, faction, goal, 50, day=7)
    assert counter.title == "Harpers Moves Against Red Wizards"
    assert counter.affected_faction_ids == [5, 4]
    assert counter.visibility is Visibility.RUMORED
