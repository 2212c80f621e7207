import threading

import pytest

import world.living_world as living_world_module
import world.spawning as spawning
from llm.client import OllamaGateway
from llm.schemas import EffectProposal, EventProposal
from world.errors import GenerationUnavailable, InvalidStateError, NotFoundError
from world.living_world import CampaignLocks, LivingWorld
from world.settings import LivingWorldSettings
from world.spawning import (
    TRIGGER_COMPLETION,
    TRIGGER_MILESTONE,
    TRIGGER_RIVAL,
    reacting_rivals,
)
from world.store import MemoryWorldStore
from world.types import EventStatus, GoalStatus


class StubGateway:
    def __init__(self, proposal=None, error=None):
        self.proposal = proposal
        self.error = error
        self.calls = []

    def generate_faction_goal(self, faction, *, other_factions=(), existing_goals=()):
        raise GenerationUnavailable("not used")

    def generate_world_event(
        self, campaign_id, *, factions=(), active_events=(), event_type=None
    ):
        self.calls.append(("world", campaign_id, event_type))
        if self.error:
            raise self.error
        return self.proposal

    def generate_faction_triggered_event(self, faction, goal):
        self.calls.append(("faction", faction.id, goal.id))
        if self.error:
            raise self.error
        return self.proposal


def _service(gateway=None, **settings):
    store = MemoryWorldStore()
    campaign = store.add_campaign("Ledger")
    hero = store.add_character(campaign.campaign_id, "Ilsa")
    service = LivingWorld(store, gateway=gateway, settings=LivingWorldSettings(**settings))
    return service, campaign.campaign_id, hero


def _proposal() -> EventProposal:
    return EventProposal(
        title="The Guild Hall Opens",
        event_type="economic",
        stages=["Ribbon Cutting", "First Contracts"],
        stage_descriptions=["Crowds gather", "Deals are struck"],
        expected_duration_days=6,
        effects=[
            EffectProposal(
                effect_type="price_decrease",
                target_type="location",
                duration="2 weeks",
            )
        ],
    )


def test_tick_advances_goals_then_events_and_the_clock() -> None:
    service, cid, _ = _service(milestone_events=False)
    faction = service.create_faction(cid, name="F", power_level=9)
    goal = service.create_goal(faction.id, title="G", urgency="high")
    event = service.create_event(
        cid, title="Storm", stages=["Clouds", "Rain"], expected_duration_days=2
    )

    report = service.tick(cid, 1)

    assert report.world_day == 1
    assert report.faction_results[0]["goal_id"] == goal.id
    assert report.faction_results[0]["new_progress"] == 27
    assert report.event_results[0]["event_id"] == event.id
    assert report.event_results[0]["kind"] == "stage_advanced"
    assert service.get_world_state(cid)["world_day"] == 1
    assert service.get_world_state(cid)["last_tick_at"] is not None


def test_tick_rejects_invalid_days_and_unknown_campaign() -> None:
    service, cid, _ = _service()
    with pytest.raises(InvalidStateError):
        service.tick(cid, 0)
    with pytest.raises(NotFoundError):
        service.tick(cid + 100, 1)
    assert service.get_world_state(cid)["world_day"] == 0


def test_milestone_spawns_event_that_advances_in_the_same_tick() -> None:
    service, cid, _ = _service()
    faction = service.create_faction(cid, name="F", power_level=9)
    service.create_goal(faction.id, title="Seize the Harbor", urgency="high", visibility="public")

    report = service.tick(cid, 1)

    assert [item["trigger"] for item in report.spawned_events] == [TRIGGER_MILESTONE]
    assert report.spawned_events[0]["milestone"] == 25
    spawned = service.list_events(cid)[0]
    assert spawned.title == "F Makes Progress"
    assert spawned.triggered_by_faction_id == faction.id
    assert spawned.days_elapsed == 1
    assert spawned.visibility.value == "public"


def test_one_long_tick_reports_every_crossed_milestone() -> None:
    service, cid, _ = _service(rival_reactions=False)
    faction = service.create_faction(cid, name="F", power_level=9)
    service.create_goal(faction.id, title="G", urgency="high")

    report = service.tick(cid, 3)

    milestones = [item["milestone"] for item in report.spawned_events]
    assert milestones == [25, 50, 75]


def _world_ledger(service, cid):
    world = service.store.snapshot(cid)
    return {
        "world_day": world.world_day,
        "power": [(item.id, item.power_level) for item in world.factions.values()],
        "goals": [
            (goal.id, goal.status, goal.progress, goal.completed_on_day)
            for goal in world.goals.values()
        ],
        "events": [
            (
                event.title,
                event.status,
                event.current_stage,
                event.started_on_day,
                event.days_elapsed,
                event.ended_on_day,
            )
            for event in world.events.values()
        ],
        "effects": [
            (effect.effect_type, effect.status, effect.created_on_day, effect.expires_on_day)
            for effect in world.effects.values()
        ],
    }


def _rivalry(service, cid):
    faction = service.create_faction(cid, name="F", power_level=9)
    rival = service.create_faction(cid, name="R", power_level=4)
    service.set_relationship(faction.id, rival.id, -80)
    service.create_goal(
        faction.id, title="G", urgency="high", stakes_level="major", visibility="public"
    )
    service.create_goal(rival.id, title="Hold the Line", urgency="low", progress_max=60)
    return faction


def test_one_long_tick_matches_daily_ticks(monkeypatch) -> None:
    monkeypatch.setattr(spawning, "RIVAL_REACTION_CHANCE", 1.0)
    joined, joined_cid, _ = _service()
    daily, daily_cid, _ = _service()
    faction = _rivalry(joined, joined_cid)
    _rivalry(daily, daily_cid)

    joined.tick(joined_cid, 9)
    daily.simulate(daily_cid, 9)

    assert _world_ledger(joined, joined_cid) == _world_ledger(daily, daily_cid)
    [goal] = joined.list_goals(faction.id)
    assert goal.completed_on_day == 4
    momentum = next(
        item for item in joined.list_events(joined_cid) if item.title == "F Gains Momentum"
    )
    assert momentum.status is EventStatus.ACTIVE
    assert (momentum.started_on_day, momentum.days_elapsed) == (1, 8)


def test_long_tick_report_folds_daily_results() -> None:
    service, cid, _ = _service(rival_reactions=False)
    faction = service.create_faction(cid, name="F", power_level=9)
    goal = service.create_goal(faction.id, title="G", urgency="high")

    report = service.tick(cid, 5)

    [result] = report.faction_results
    assert result["goal_id"] == goal.id
    assert result["previous_progress"] == 0
    assert result["new_progress"] == 100
    assert result["progress_gained"] == 100
    assert result["completed"] is True
    assert report.world_day == 5
    assert len(report.spawned_events) == 4


def test_completion_spawns_event_and_shifts_power() -> None:
    service, cid, _ = _service()
    faction = service.create_faction(cid, name="F", power_level=5)
    goal = service.create_goal(faction.id, title="Crown a King", stakes_level="major", progress=90)

    report = service.tick(cid, 1)

    completion = report.spawned_events[-1]
    assert completion["trigger"] == TRIGGER_COMPLETION
    assert completion["power_shift"] == 1
    assert completion["generated"] is False
    assert service.list_factions(cid)[0].power_level == 6
    assert service.list_goals(faction.id)[0].status is GoalStatus.COMPLETED
    assert service.list_goals(faction.id)[0].completed_on_day == 1

    effects = service.active_effects(cid, target_type="faction", target_id=faction.id)
    assert [effect.effect_type for effect in effects] == ["faction_power_change"]
    assert effects[0].expires_on_day == 31
    assert goal.id == completion["goal_id"]


def test_generated_completion_event_uses_gateway_proposal() -> None:
    gateway = StubGateway(proposal=_proposal())
    service, cid, _ = _service(gateway=gateway, generate_on_completion=True)
    faction = service.create_faction(cid, name="Guild", power_level=5)
    goal = service.create_goal(faction.id, title="Open Hall", progress=95)

    report = service.tick(cid, 1)

    assert gateway.calls == [("faction", faction.id, goal.id)]
    assert report.spawned_events[-1]["generated"] is True
    event = service.list_events(cid)[-1]
    assert event.title == "The Guild Hall Opens"
    assert event.triggered_by_goal_id == goal.id
    assert event.affected_faction_ids == [faction.id]
    effects = service.active_effects(cid, target_type="location")
    assert effects[0].event_id == event.id


def test_completion_uses_templates_unless_generation_is_enabled() -> None:
    gateway = StubGateway(proposal=_proposal())
    service, cid, _ = _service(gateway=gateway)
    faction = service.create_faction(cid, name="Guild", power_level=5)
    service.create_goal(faction.id, title="Open Hall", progress=95)

    report = service.tick(cid, 1)

    assert gateway.calls == []
    assert report.spawned_events[-1]["generated"] is False
    assert service.list_events(cid)[-1].title == "Guild: Open Hall Complete"


def test_generation_failure_is_reported_not_raised() -> None:
    gateway = StubGateway(error=GenerationUnavailable("model offline"))
    service, cid, _ = _service(gateway=gateway, generate_on_completion=True)
    faction = service.create_faction(cid, name="F", power_level=5)
    goal = service.create_goal(faction.id, title="G", stakes_level="catastrophic", progress=95)

    report = service.tick(cid, 1)

    assert report.generation_failures == [
        {"goal_id": goal.id, "faction_id": faction.id, "error": "model offline"}
    ]
    [completion] = report.spawned_events
    assert completion["trigger"] == TRIGGER_COMPLETION
    assert completion["generated"] is False
    assert completion["power_shift"] == 2
    assert service.list_events(cid)[0].title == "F: G Complete"
    assert service.list_goals(faction.id)[0].status is GoalStatus.COMPLETED
    assert service.list_factions(cid)[0].power_level == 7


def test_unexpected_gateway_errors_do_not_fail_the_tick() -> None:
    gateway = StubGateway(error=AttributeError("'list' object has no attribute 'get'"))
    service, cid, _ = _service(gateway=gateway, generate_on_completion=True)
    faction = service.create_faction(cid, name="F", power_level=5)
    service.create_goal(faction.id, title="G", progress=95)

    report = service.tick(cid, 1)

    assert len(report.generation_failures) == 1
    assert "no attribute" in report.generation_failures[0]["error"]
    assert [item["trigger"] for item in report.spawned_events] == [TRIGGER_COMPLETION]
    assert service.get_world_state(cid)["world_day"] == 1


def test_malformed_ollama_reply_is_a_generation_failure(monkeypatch) -> None:
    class ListReply:
        def raise_for_status(self):
            return None

        def json(self):
            return ["not", "a", "dict"]

    monkeypatch.setattr("llm.client.requests.post", lambda url, json, timeout: ListReply())
    gateway = OllamaGateway(base_url="http://ollama.test", model="test", max_attempts=1)
    service, cid, _ = _service(gateway=gateway, generate_on_completion=True)
    faction = service.create_faction(cid, name="F", power_level=5)
    service.create_goal(faction.id, title="G", progress=95)

    report = service.tick(cid, 1)

    assert "Invalid response from Ollama" in report.generation_failures[0]["error"]
    assert report.spawned_events[0]["generated"] is False


def test_failed_tick_leaves_world_untouched(monkeypatch) -> None:
    service, cid, _ = _service()
    faction = service.create_faction(cid, name="F", power_level=9)
    service.create_goal(faction.id, title="G", urgency="high")

    def broken(world, days):
        raise RuntimeError("disk full")

    monkeypatch.setattr(living_world_module, "process_event_tick", broken)
    with pytest.raises(RuntimeError):
        service.tick(cid, 1)

    assert service.list_goals(faction.id)[0].progress == 0
    assert service.list_events(cid) == []
    assert service.get_world_state(cid)["world_day"] == 0


def test_rivals_react_to_late_milestones(monkeypatch) -> None:
    monkeypatch.setattr(spawning, "RIVAL_REACTION_CHANCE", 1.0)
    service, cid, _ = _service()
    faction = service.create_faction(cid, name="F", power_level=9)
    rival = service.create_faction(cid, name="R")
    friend = service.create_faction(cid, name="Friend")
    service.set_relationship(faction.id, rival.id, -70)
    service.set_relationship(faction.id, friend.id, 40)
    service.create_goal(faction.id, title="G", urgency="high", progress=40)

    report = service.tick(cid, 1)

    rival_events = [item for item in report.spawned_events if item["trigger"] == TRIGGER_RIVAL]
    assert [item["faction_id"] for item in rival_events] == [rival.id]
    assert rival_events[0]["milestone"] == 50


def test_rival_roll_is_stable_for_the_same_milestone() -> None:
    service, cid, _ = _service()
    faction = service.create_faction(cid, name="F")
    for index in range(6):
        rival = service.create_faction(cid, name=f"R{index}")
        service.set_relationship(faction.id, rival.id, -90)
    goal = service.create_goal(faction.id, title="G")
    world = service.store.snapshot(cid)

    first = reacting_rivals(world, world.get_faction(faction.id), world.get_goal(goal.id), 50)
    second = reacting_rivals(world, world.get_faction(faction.id), world.get_goal(goal.id), 50)

    assert [item.id for item in first] == [item.id for item in second]


def test_simulate_runs_daily_ticks_and_respects_cap() -> None:
    service, cid, _ = _service(max_simulate_days=5)
    faction = service.create_faction(cid, name="F", power_level=9)
    service.create_goal(faction.id, title="G", urgency="high")

    with pytest.raises(InvalidStateError):
        service.simulate(cid, 6)

    report = service.simulate(cid, 4)

    assert len(report.daily_reports) == 4
    assert [item.world_day for item in report.daily_reports] == [1, 2, 3, 4]
    assert report.summary["goals_completed"] == 1
    assert report.summary["goals_advanced"] == 4
    assert report.to_dict()["summary"] == report.summary


def test_advance_character_time_counts_whole_days() -> None:
    service, cid, hero = _service()
    assert service.advance_character_time(hero.id, 23) is None
    report = service.advance_character_time(hero.id, 50)
    assert report.days == 2
    assert service.get_world_state(cid)["world_day"] == 2
    with pytest.raises(InvalidStateError):
        service.advance_character_time(hero.id, -1)


def test_manual_operations_use_the_campaign_day() -> None:
    service, cid, hero = _service()
    faction = service.create_faction(cid, name="F")
    service.tick(cid, 3)
    event = service.create_event(cid, title="Riot", stages=["Spark", "Blaze"])
    effect = service.create_effect(event.id, effect_type="curfew", target_type="location")

    assert event.started_on_day == 3
    assert effect.expires_on_day is None
    assert service.advance_event(event.id).current_stage == 1
    resolved = service.resolve_event(event.id, "quelled", "The watch restored order")
    assert resolved.status is EventStatus.RESOLVED
    assert resolved.ended_on_day == 3
    with pytest.raises(InvalidStateError):
        service.resolve_event(event.id, "again")
    assert service.reverse_effect(effect.id, "lifted").ended_on_day == 3

    standing, applied = service.modify_standing(hero.id, faction.id, 10, {"description": "Aid"})
    assert applied == 10
    assert standing.deeds_for[0]["day"] == 3


def test_standing_operations_persist_between_calls() -> None:
    service, cid, hero = _service()
    faction = service.create_faction(cid, name="F")

    service.join_faction(hero.id, faction.id, "acolyte")
    service.record_quest(hero.id, faction.id, {"title": "Clear the crypt"}, standing_reward=15)
    service.add_promise(hero.id, faction.id, "Bring back the idol")
    service.break_promise(hero.id, faction.id, 0, "Sold it")
    service.add_debt(hero.id, faction.id, "Free lodging")
    service.settle_debt(hero.id, faction.id, 0, "Paid in coin")

    [standing] = service.list_standings(hero.id)
    assert standing.is_member
    assert standing.membership_level == "acolyte"
    assert standing.standing == 0
    assert standing.quests_completed[0]["title"] == "Clear the crypt"
    assert standing.pending_promises[0]["status"] == "broken"
    assert standing.pending_debts[0]["status"] == "settled"

    with pytest.raises(NotFoundError):
        service.modify_standing(hero.id + 50, faction.id, 5)


def test_generation_requires_a_gateway() -> None:
    service, cid, _ = _service()
    with pytest.raises(GenerationUnavailable):
        service.generate_world_event(cid)


def test_generate_world_event_can_create_the_event() -> None:
    gateway = StubGateway(proposal=_proposal())
    service, cid, _ = _service(gateway=gateway)

    proposal, event = service.generate_world_event(cid, event_type="economic", auto_create=True)

    assert gateway.calls == [("world", cid, "economic")]
    assert event.title == proposal.title
    assert len(service.active_effects(cid)) == 1

    _, preview = service.generate_world_event(cid)
    assert preview is None
    assert len(service.list_events(cid)) == 1


def test_campaign_locks_are_per_campaign() -> None:
    locks = CampaignLocks()
    assert locks.lock_for(1) is locks.lock_for(1)
    assert locks.lock_for(1) is not locks.lock_for(2)


def test_concurrent_ticks_on_one_campaign_do_not_interleave() -> None:
    service, cid, _ = _service(milestone_events=False)
    faction = service.create_faction(cid, name="F", power_level=1)
    service.create_goal(faction.id, title="G", urgency="low", progress_max=1000)

    threads = [threading.Thread(target=service.tick, args=(cid, 1)) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert service.list_goals(faction.id)[0].progress == 8
    assert service.get_world_state(cid)["world_day"] == 8


def test_campaign_lookup_runs_alongside_new_campaigns() -> None:
    store = MemoryWorldStore()
    first = store.add_campaign("First")
    hero = store.add_character(first.campaign_id, "Ilsa")
    errors = []

    def add_campaigns():
        for index in range(200):
            store.add_campaign(f"Campaign {index}")

    def look_up():
        try:
            for _ in range(200):
                assert store.campaign_of("character", hero.id) == first.campaign_id
        except Exception as exc:  # collected for the main thread
            errors.append(exc)

    threads = [threading.Thread(target=add_campaigns), threading.Thread(target=look_up)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
