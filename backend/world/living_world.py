from __future__ import annotations

import logging
import threading
from collections import Counter
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterator

from llm.schemas import EventProposal, GoalProposal
from world.character_view import build_character_view
from world.effects import EventEffect, new_effect
from world.errors import GenerationUnavailable, InvalidStateError
from world.event_tick import DEADLINE_PASSED, RESOLVED, STAGE_ADVANCED, process_event_tick
from world.events import WorldEvent
from world.faction_tick import process_faction_tick
from world.gateway import (
    GenerationGateway,
    effect_from_proposal,
    event_from_proposal,
    goal_from_proposal,
)
from world.goals import Faction, FactionGoal, set_relationship
from world.settings import LivingWorldSettings
from world.spawning import spawn_from_goal_results
from world.standings import FactionStanding
from world.store import CampaignWorld, WorldStore
from world.types import TargetType, coerce_enum, require_days

logger = logging.getLogger(__name__)

HOURS_PER_DAY = 24


class CampaignLocks:
    """One lock per campaign id; different campaigns never share a lock."""

    def __init__(self) -> None:
        self._locks: dict[int, threading.Lock] = {}
        self._guard = threading.Lock()

    def lock_for(self, campaign_id: int) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(campaign_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[campaign_id] = lock
            return lock

    @contextmanager
    def hold(self, campaign_id: int) -> Iterator[None]:
        with self.lock_for(campaign_id):
            yield


def _merge_results(merged: list[dict], daily: list[dict], key: str) -> None:
    """Folds one day's per-record results into the running tick totals."""
    by_key = {entry[key]: entry for entry in merged}
    for item in daily:
        entry = by_key.get(item[key])
        if entry is None:
            merged.append(item)
            by_key[item[key]] = item
            continue
        if "progress_gained" in item:
            entry["progress_gained"] += item["progress_gained"]
            entry["new_progress"] = item["new_progress"]
            entry["completed"] = item["completed"]
        else:
            entry["kind"] = item["kind"]
            entry["new_stage"] = item["new_stage"]
            entry["stage_name"] = item["stage_name"]
            entry["stages_advanced"] = entry["new_stage"] - entry["previous_stage"]


@dataclass
class TickReport:
    campaign_id: int
    days: int
    world_day: int
    faction_results: list[dict] = field(default_factory=list)
    event_results: list[dict] = field(default_factory=list)
    spawned_events: list[dict] = field(default_factory=list)
    effects_expired: list[int] = field(default_factory=list)
    generation_failures: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "campaign_id": self.campaign_id,
            "days": self.days,
            "world_day": self.world_day,
            "faction_results": list(self.faction_results),
            "event_results": list(self.event_results),
            "spawned_events": list(self.spawned_events),
            "effects_expired": list(self.effects_expired),
            "generation_failures": list(self.generation_failures),
        }


@dataclass
class SimulationReport:
    campaign_id: int
    total_days: int
    daily_reports: list[TickReport] = field(default_factory=list)

    @property
    def summary(self) -> dict[str, int]:
        totals = Counter()
        for report in self.daily_reports:
            totals["goals_advanced"] += sum(
                1 for item in report.faction_results if item["progress_gained"] > 0
            )
            totals["goals_completed"] += sum(
                1 for item in report.faction_results if item["completed"]
            )
            totals["events_spawned"] += len(report.spawned_events)
            totals["events_advanced"] += sum(
                1 for item in report.event_results if item["kind"] == STAGE_ADVANCED
            )
            totals["events_resolved"] += sum(
                1
                for item in report.event_results
                if item["kind"] in (RESOLVED, DEADLINE_PASSED)
            )
            totals["effects_expired"] += len(report.effects_expired)
            totals["generation_failures"] += len(report.generation_failures)
        keys = (
            "goals_advanced",
            "goals_completed",
            "events_spawned",
            "events_advanced",
            "events_resolved",
            "effects_expired",
            "generation_failures",
        )
        return {key: totals[key] for key in keys}

    def to_dict(self) -> dict:
        return {
            "campaign_id": self.campaign_id,
            "total_days": self.total_days,
            "daily_reports": [report.to_dict() for report in self.daily_reports],
            "summary": self.summary,
        }


class LivingWorld:
    """Entry point for everything that reads or changes a campaign's world.

    Every mutating call runs as one unit of work under the campaign's
    lock, so a failure leaves the stored world exactly as it was.
    """

    def __init__(
        self,
        store: WorldStore,
        gateway: GenerationGateway | None = None,
        settings: LivingWorldSettings | None = None,
        locks: CampaignLocks | None = None,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.settings = settings or LivingWorldSettings()
        self.locks = locks or CampaignLocks()

    @contextmanager
    def _unit_of_work(self, campaign_id: int) -> Iterator[CampaignWorld]:
        with self.locks.hold(campaign_id):
            with self.store.unit_of_work(campaign_id) as world:
                yield world

    def _campaign_of(self, kind: str, record_id: int) -> int:
        return self.store.campaign_of(kind, record_id)

    # Ticking

    def _tick_one_day(self, world: CampaignWorld, report: TickReport) -> None:
        start_day = world.world_day
        faction_results = process_faction_tick(world, 1)
        spawn = spawn_from_goal_results(
            world,
            faction_results,
            settings=self.settings,
            gateway=self.gateway,
            start_day=start_day,
            end_day=start_day + 1,
        )
        event_outcome = process_event_tick(world, 1)
        _merge_results(
            report.faction_results, [result.to_dict() for result in faction_results], "goal_id"
        )
        _merge_results(
            report.event_results,
            [result.to_dict() for result in event_outcome.results],
            "event_id",
        )
        report.spawned_events.extend(item.to_dict() for item in spawn.spawned)
        report.effects_expired.extend(event_outcome.expired_effect_ids)
        report.generation_failures.extend(spawn.generation_failures)

    def tick(self, campaign_id: int, days: int) -> TickReport:
        """Advances the campaign by ``days`` in one unit of work.

        The days are played one at a time, so a long tick spawns, stamps
        and resolves everything on the same days as that many one-day
        ticks would.
        """
        require_days(days)
        with self._unit_of_work(campaign_id) as world:
            report = TickReport(campaign_id=campaign_id, days=days, world_day=world.world_day)
            for _ in range(days):
                self._tick_one_day(world, report)
            world.last_tick_at = datetime.now(timezone.utc)
            report.world_day = world.world_day
        logger.info(
            "Campaign %s ticked %s day(s) to day %s: %s goals, %s events, %s spawned",
            campaign_id,
            days,
            report.world_day,
            len(report.faction_results),
            len(report.event_results),
            len(report.spawned_events),
        )
        return report

    def simulate(self, campaign_id: int, days: int) -> SimulationReport:
        require_days(days)
        if days > self.settings.max_simulate_days:
            raise InvalidStateError(
                f"Cannot simulate more than {self.settings.max_simulate_days} days at once."
            )
        report = SimulationReport(campaign_id=campaign_id, total_days=days)
        for _ in range(days):
            report.daily_reports.append(self.tick(campaign_id, 1))
        return report

    def advance_character_time(self, character_id: int, hours: int) -> TickReport | None:
        """Ticks the character's campaign by the whole days in ``hours``."""
        if isinstance(hours, bool) or not isinstance(hours, int) or hours < 0:
            raise InvalidStateError("hours must be a non-negative whole number.")
        days = hours // HOURS_PER_DAY
        if days < 1:
            return None
        return self.tick(self._campaign_of("character", character_id), days)

    # Read-only projections

    def get_world_state(self, campaign_id: int) -> dict:
        world = self.store.snapshot(campaign_id)
        factions = world.active_factions()
        goals = [goal for goal in world.goals.values() if goal.is_active]
        events = world.active_events()
        effects = [effect for effect in world.effects.values() if effect.is_active]
        return {
            "campaign_id": world.campaign_id,
            "world_day": world.world_day,
            "last_tick_at": world.last_tick_at.isoformat() if world.last_tick_at else None,
            "factions": {
                "count": len(factions),
                "list": [
                    {
                        "id": faction.id,
                        "name": faction.name,
                        "power_level": faction.power_level,
                        "scope": faction.scope.value,
                        "active_goals": sum(
                            1 for goal in world.goals_of(faction.id) if goal.is_active
                        ),
                    }
                    for faction in factions
                ],
            },
            "goals": {
                "active": len(goals),
                "by_visibility": dict(Counter(goal.visibility.value for goal in goals)),
            },
            "events": {
                "active": len(events),
                "by_type": dict(Counter(event.event_type.value for event in events)),
            },
            "effects": {
                "active": len(effects),
                "by_type": dict(Counter(effect.effect_type for effect in effects)),
            },
        }

    def get_character_view(self, character_id: int) -> dict:
        world = self.store.snapshot(self._campaign_of("character", character_id))
        return build_character_view(world, character_id)

    def list_factions(self, campaign_id: int) -> list[Faction]:
        world = self.store.snapshot(campaign_id)
        return [world.factions[key] for key in sorted(world.factions)]

    def list_goals(self, faction_id: int) -> list[FactionGoal]:
        world = self.store.snapshot(self._campaign_of("faction", faction_id))
        world.get_faction(faction_id)
        return sorted(world.goals_of(faction_id), key=lambda goal: goal.id)

    def list_events(self, campaign_id: int, *, active_only: bool = False) -> list[WorldEvent]:
        world = self.store.snapshot(campaign_id)
        if active_only:
            return world.active_events()
        return [world.events[key] for key in sorted(world.events)]

    def active_effects(
        self,
        campaign_id: int,
        *,
        target_type: str | None = None,
        target_id: int | None = None,
    ) -> list[EventEffect]:
        world = self.store.snapshot(campaign_id)
        wanted = coerce_enum(TargetType, target_type, field="target_type") if target_type else None
        effects = []
        for effect_id in sorted(world.effects):
            effect = world.effects[effect_id]
            if not effect.is_active:
                continue
            if wanted is not None and effect.target_type is not wanted:
                continue
            if target_id is not None and effect.target_id != target_id:
                continue
            effects.append(effect)
        return effects

    def list_standings(self, character_id: int) -> list[FactionStanding]:
        world = self.store.snapshot(self._campaign_of("character", character_id))
        world.get_character(character_id)
        return world.standings_of(character_id)

    # Factions and goals

    def create_faction(self, campaign_id: int, **fields: Any) -> Faction:
        faction = Faction(id=None, campaign_id=campaign_id, **fields)
        with self._unit_of_work(campaign_id) as world:
            return world.add_faction(faction)

    def set_relationship(self, faction_id: int, other_id: int, value: int) -> int:
        campaign_id = self._campaign_of("faction", faction_id)
        if self._campaign_of("faction", other_id) != campaign_id:
            raise InvalidStateError("Factions belong to different campaigns.")
        with self._unit_of_work(campaign_id) as world:
            return set_relationship(
                world.get_faction(faction_id), world.get_faction(other_id), value
            )

    def create_goal(self, faction_id: int, **fields: Any) -> FactionGoal:
        goal = FactionGoal(id=None, faction_id=faction_id, **fields)
        with self._unit_of_work(self._campaign_of("faction", faction_id)) as world:
            return world.add_goal(goal)

    def advance_goal(self, goal_id: int, amount: int) -> FactionGoal:
        with self._unit_of_work(self._campaign_of("goal", goal_id)) as world:
            goal = world.get_goal(goal_id)
            goal.advance(amount, day=world.world_day)
            return goal

    def abandon_goal(self, goal_id: int, reason: str | None = None) -> FactionGoal:
        with self._unit_of_work(self._campaign_of("goal", goal_id)) as world:
            goal = world.get_goal(goal_id)
            goal.abandon(reason)
            return goal

    def discover_goal(self, goal_id: int, character_id: int) -> bool:
        with self._unit_of_work(self._campaign_of("goal", goal_id)) as world:
            world.get_character(character_id)
            return world.get_goal(goal_id).discover(character_id)

    # Events and effects

    def create_event(self, campaign_id: int, **fields: Any) -> WorldEvent:
        with self._unit_of_work(campaign_id) as world:
            fields.setdefault("started_on_day", world.world_day)
            return world.add_event(WorldEvent(id=None, campaign_id=campaign_id, **fields))

    def advance_event(self, event_id: int) -> WorldEvent:
        with self._unit_of_work(self._campaign_of("event", event_id)) as world:
            event = world.get_event(event_id)
            event.advance_stage(day=world.world_day)
            return event

    def resolve_event(
        self, event_id: int, outcome: str, description: str | None = None
    ) -> WorldEvent:
        if not outcome or not outcome.strip():
            raise InvalidStateError("An explicit resolution needs an outcome.")
        with self._unit_of_work(self._campaign_of("event", event_id)) as world:
            event = world.get_event(event_id)
            event.resolve(outcome, description, day=world.world_day)
            return event

    def cancel_event(self, event_id: int, reason: str | None = None) -> WorldEvent:
        with self._unit_of_work(self._campaign_of("event", event_id)) as world:
            event = world.get_event(event_id)
            event.cancel(reason, day=world.world_day)
            return event

    def discover_event(self, event_id: int, character_id: int) -> bool:
        with self._unit_of_work(self._campaign_of("event", event_id)) as world:
            world.get_character(character_id)
            return world.get_event(event_id).discover(character_id)

    def create_effect(self, event_id: int, **fields: Any) -> EventEffect:
        with self._unit_of_work(self._campaign_of("event", event_id)) as world:
            event = world.get_event(event_id)
            fields.setdefault("stage_applied", event.current_stage)
            return world.add_effect(new_effect(event_id=event_id, day=world.world_day, **fields))

    def reverse_effect(self, effect_id: int, reason: str | None = None) -> EventEffect:
        with self._unit_of_work(self._campaign_of("effect", effect_id)) as world:
            effect = world.get_effect(effect_id)
            effect.reverse(reason, day=world.world_day)
            return effect

    # Standings

    def _standing_unit(self, faction_id: int) -> Any:
        return self._unit_of_work(self._campaign_of("faction", faction_id))

    def get_or_create_standing(self, character_id: int, faction_id: int) -> FactionStanding:
        with self._standing_unit(faction_id) as world:
            return world.standing_for(character_id, faction_id)

    def modify_standing(
        self,
        character_id: int,
        faction_id: int,
        delta: int,
        deed: dict | None = None,
    ) -> tuple[FactionStanding, int]:
        with self._standing_unit(faction_id) as world:
            standing = world.standing_for(character_id, faction_id)
            applied = standing.modify(delta, deed, day=world.world_day)
            return standing, applied

    def join_faction(
        self, character_id: int, faction_id: int, membership_level: str | None = None
    ) -> FactionStanding:
        with self._standing_unit(faction_id) as world:
            standing = world.standing_for(character_id, faction_id)
            standing.join(membership_level, day=world.world_day)
            return standing

    def leave_faction(self, character_id: int, faction_id: int) -> FactionStanding:
        with self._standing_unit(faction_id) as world:
            standing = world.standing_for(character_id, faction_id)
            standing.leave()
            return standing

    def record_quest(
        self, character_id: int, faction_id: int, quest: dict, standing_reward: int = 0
    ) -> FactionStanding:
        with self._standing_unit(faction_id) as world:
            standing = world.standing_for(character_id, faction_id)
            standing.record_quest(quest, day=world.world_day)
            if standing_reward:
                standing.modify(standing_reward, quest, day=world.world_day)
            return standing

    def add_promise(self, character_id: int, faction_id: int, promise: str) -> FactionStanding:
        with self._standing_unit(faction_id) as world:
            standing = world.standing_for(character_id, faction_id)
            standing.add_promise(promise, day=world.world_day)
            return standing

    def fulfill_promise(self, character_id: int, faction_id: int, index: int) -> FactionStanding:
        with self._standing_unit(faction_id) as world:
            standing = world.standing_for(character_id, faction_id)
            standing.fulfill_promise(index, day=world.world_day)
            return standing

    def break_promise(
        self, character_id: int, faction_id: int, index: int, reason: str | None = None
    ) -> FactionStanding:
        with self._standing_unit(faction_id) as world:
            standing = world.standing_for(character_id, faction_id)
            standing.break_promise(index, reason, day=world.world_day)
            return standing

    def add_debt(
        self,
        character_id: int,
        faction_id: int,
        description: str,
        *,
        debt_type: str = "favor",
        direction: str = "faction_owes_character",
    ) -> FactionStanding:
        with self._standing_unit(faction_id) as world:
            standing = world.standing_for(character_id, faction_id)
            standing.add_debt(
                description, day=world.world_day, debt_type=debt_type, direction=direction
            )
            return standing

    def settle_debt(
        self, character_id: int, faction_id: int, index: int, how_settled: str | None = None
    ) -> FactionStanding:
        with self._standing_unit(faction_id) as world:
            standing = world.standing_for(character_id, faction_id)
            standing.settle_debt(index, how_settled, day=world.world_day)
            return standing

    # Generated content

    def _require_gateway(self) -> GenerationGateway:
        if self.gateway is None:
            raise GenerationUnavailable("No generation gateway is configured.")
        return self.gateway

    def generate_faction_goal(
        self, faction_id: int, *, auto_create: bool = False
    ) -> tuple[GoalProposal, FactionGoal | None]:
        gateway = self._require_gateway()
        campaign_id = self._campaign_of("faction", faction_id)
        world = self.store.snapshot(campaign_id)
        faction = world.get_faction(faction_id)
        proposal = gateway.generate_faction_goal(
            faction,
            other_factions=[item for item in world.active_factions() if item.id != faction_id],
            existing_goals=sorted(world.goals_of(faction_id), key=lambda goal: goal.id),
        )
        if not auto_create:
            return proposal, None
        with self._unit_of_work(campaign_id) as working:
            goal = working.add_goal(goal_from_proposal(working.get_faction(faction_id), proposal))
        return proposal, goal

    def generate_world_event(
        self,
        campaign_id: int,
        *,
        event_type: str | None = None,
        auto_create: bool = False,
    ) -> tuple[EventProposal, WorldEvent | None]:
        gateway = self._require_gateway()
        world = self.store.snapshot(campaign_id)
        proposal = gateway.generate_world_event(
            campaign_id,
            factions=world.active_factions(),
            active_events=world.active_events(),
            event_type=event_type,
        )
        if not auto_create:
            return proposal, None
        with self._unit_of_work(campaign_id) as working:
            event = self._add_proposed_event(working, proposal)
        return proposal, event

    def generate_faction_event(
        self, faction_id: int, goal_id: int, *, auto_create: bool = False
    ) -> tuple[EventProposal, WorldEvent | None]:
        gateway = self._require_gateway()
        campaign_id = self._campaign_of("faction", faction_id)
        world = self.store.snapshot(campaign_id)
        faction = world.get_faction(faction_id)
        goal = world.get_goal(goal_id)
        if goal.faction_id != faction_id:
            raise InvalidStateError("Goal does not belong to this faction.")
        proposal = gateway.generate_faction_triggered_event(faction, goal)
        if not auto_create:
            return proposal, None
        with self._unit_of_work(campaign_id) as working:
            event = self._add_proposed_event(
                working,
                proposal,
                faction=working.get_faction(faction_id),
                goal=working.get_goal(goal_id),
            )
        return proposal, event

    @staticmethod
    def _add_proposed_event(
        world: CampaignWorld,
        proposal: EventProposal,
        *,
        faction: Faction | None = None,
        goal: FactionGoal | None = None,
    ) -> WorldEvent:
        event = world.add_event(
            event_from_proposal(
                world.campaign_id, proposal, day=world.world_day, faction=faction, goal=goal
            )
        )
        for item in proposal.effects:
            world.add_effect(effect_from_proposal(event.id, item, day=world.world_day))
        return event
