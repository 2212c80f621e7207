from __future__ import annotations

import copy
import itertools
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, ContextManager, Iterator, Protocol

from world.effects import EventEffect
from world.errors import InvalidStateError, NotFoundError
from world.events import WorldEvent
from world.goals import Faction, FactionGoal
from world.standings import FactionStanding

RECORD_COLLECTIONS = {
    "faction": "factions",
    "goal": "goals",
    "event": "events",
    "effect": "effects",
    "character": "characters",
}

Allocator = Callable[[str, Any], int]


@dataclass
class Character:
    id: int
    campaign_id: int
    name: str


@dataclass
class CampaignWorld:
    """Working set of one campaign, loaded for a single unit of work."""

    campaign_id: int
    name: str = ""
    world_day: int = 0
    last_tick_at: datetime | None = None
    factions: dict[int, Faction] = field(default_factory=dict)
    goals: dict[int, FactionGoal] = field(default_factory=dict)
    events: dict[int, WorldEvent] = field(default_factory=dict)
    effects: dict[int, EventEffect] = field(default_factory=dict)
    standings: dict[tuple[int, int], FactionStanding] = field(default_factory=dict)
    characters: dict[int, Character] = field(default_factory=dict)
    allocate: Allocator | None = field(default=None, repr=False, compare=False)

    def _new_id(self, kind: str, record: Any) -> int:
        if self.allocate is None:
            raise InvalidStateError("This campaign view is read-only.")
        return self.allocate(kind, record)

    def add_faction(self, faction: Faction) -> Faction:
        if faction.campaign_id != self.campaign_id:
            raise InvalidStateError("Faction belongs to a different campaign.")
        faction.id = self._new_id("faction", faction)
        self.factions[faction.id] = faction
        return faction

    def add_goal(self, goal: FactionGoal) -> FactionGoal:
        self.get_faction(goal.faction_id)
        goal.id = self._new_id("goal", goal)
        self.goals[goal.id] = goal
        return goal

    def add_event(self, event: WorldEvent) -> WorldEvent:
        if event.campaign_id != self.campaign_id:
            raise InvalidStateError("Event belongs to a different campaign.")
        event.id = self._new_id("event", event)
        self.events[event.id] = event
        return event

    def add_effect(self, effect: EventEffect) -> EventEffect:
        self.get_event(effect.event_id)
        effect.id = self._new_id("effect", effect)
        self.effects[effect.id] = effect
        return effect

    def get_faction(self, faction_id: int) -> Faction:
        faction = self.factions.get(faction_id)
        if faction is None:
            raise NotFoundError("faction", faction_id)
        return faction

    def get_goal(self, goal_id: int) -> FactionGoal:
        goal = self.goals.get(goal_id)
        if goal is None:
            raise NotFoundError("goal", goal_id)
        return goal

    def get_event(self, event_id: int) -> WorldEvent:
        event = self.events.get(event_id)
        if event is None:
            raise NotFoundError("event", event_id)
        return event

    def get_effect(self, effect_id: int) -> EventEffect:
        effect = self.effects.get(effect_id)
        if effect is None:
            raise NotFoundError("effect", effect_id)
        return effect

    def get_character(self, character_id: int) -> Character:
        character = self.characters.get(character_id)
        if character is None:
            raise NotFoundError("character", character_id)
        return character

    def goals_of(self, faction_id: int) -> list[FactionGoal]:
        return [goal for goal in self.goals.values() if goal.faction_id == faction_id]

    def effects_of(self, event_id: int) -> list[EventEffect]:
        return [effect for effect in self.effects.values() if effect.event_id == event_id]

    def active_factions(self) -> list[Faction]:
        factions = (self.factions[key] for key in sorted(self.factions))
        return [faction for faction in factions if faction.is_active]

    def active_events(self) -> list[WorldEvent]:
        events = (self.events[key] for key in sorted(self.events))
        return [event for event in events if event.is_active]

    def find_standing(self, character_id: int, faction_id: int) -> FactionStanding | None:
        return self.standings.get((character_id, faction_id))

    def standing_for(self, character_id: int, faction_id: int) -> FactionStanding:
        self.get_character(character_id)
        self.get_faction(faction_id)
        standing = self.standings.get((character_id, faction_id))
        if standing is None:
            standing = FactionStanding(character_id=character_id, faction_id=faction_id)
            self.standings[(character_id, faction_id)] = standing
        return standing

    def standings_of(self, character_id: int) -> list[FactionStanding]:
        return [
            standing
            for key, standing in sorted(self.standings.items())
            if key[0] == character_id
        ]


class WorldStore(Protocol):
    def unit_of_work(self, campaign_id: int) -> ContextManager[CampaignWorld]:
        ...

    def snapshot(self, campaign_id: int) -> CampaignWorld:
        ...

    def campaign_of(self, kind: str, record_id: int) -> int:
        ...


class MemoryWorldStore:
    """Keeps campaigns in process memory.

    Each unit of work edits a deep copy that replaces the stored campaign
    only when the block exits cleanly.
    """

    def __init__(self) -> None:
        self._worlds: dict[int, CampaignWorld] = {}
        kinds = (*RECORD_COLLECTIONS, "campaign")
        self._counters = {kind: itertools.count(1) for kind in kinds}
        self._guard = threading.Lock()

    def _allocate(self, kind: str, record: Any) -> int:
        with self._guard:
            return next(self._counters[kind])

    def _require(self, campaign_id: int) -> CampaignWorld:
        world = self._worlds.get(campaign_id)
        if world is None:
            raise NotFoundError("campaign", campaign_id)
        return world

    def add_campaign(self, name: str = "", *, world_day: int = 0) -> CampaignWorld:
        campaign_id = self._allocate("campaign", None)
        world = CampaignWorld(campaign_id=campaign_id, name=name, world_day=world_day)
        with self._guard:
            self._worlds[campaign_id] = world
        return self.snapshot(campaign_id)

    def add_character(self, campaign_id: int, name: str) -> Character:
        world = self._require(campaign_id)
        character = Character(
            id=self._allocate("character", None), campaign_id=campaign_id, name=name
        )
        world.characters[character.id] = character
        return copy.deepcopy(character)

    @contextmanager
    def unit_of_work(self, campaign_id: int) -> Iterator[CampaignWorld]:
        working = copy.deepcopy(self._require(campaign_id))
        working.allocate = self._allocate
        yield working
        working.allocate = None
        self._worlds[campaign_id] = copy.deepcopy(working)

    def snapshot(self, campaign_id: int) -> CampaignWorld:
        return copy.deepcopy(self._require(campaign_id))

    def campaign_of(self, kind: str, record_id: int) -> int:
        collection = RECORD_COLLECTIONS.get(kind)
        if collection is None:
            raise InvalidStateError(f"Unknown record kind: {kind}")
        with self._guard:
            worlds = list(self._worlds.items())
        for campaign_id, world in worlds:
            if record_id in getattr(world, collection):
                return campaign_id
        raise NotFoundError(kind, record_id)
