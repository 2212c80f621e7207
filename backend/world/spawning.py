from __future__ import annotations

import hashlib
import logging
import random
from dataclasses import asdict, dataclass, field

from world.effects import EventEffect, new_effect
from world.events import WorldEvent
from world.faction_tick import GoalTickResult
from world.gateway import GenerationGateway, effect_from_proposal, event_from_proposal
from world.goals import Faction, FactionGoal
from world.settings import LivingWorldSettings
from world.store import CampaignWorld
from world.types import EventType, GoalType, StakesLevel, TargetType, Visibility

logger = logging.getLogger(__name__)

MILESTONES = (25, 50, 75)
RIVAL_MILESTONE = 50
RIVAL_RELATIONSHIP_THRESHOLD = -50
RIVAL_REACTION_CHANCE = 0.4
POWER_BOOSTS = {StakesLevel.MAJOR: 1, StakesLevel.CATASTROPHIC: 2}
POWER_EFFECT_DAYS = 30
MILESTONE_EVENT_DAYS = 9
COMPLETION_EVENT_DAYS = 7
RIVAL_EVENT_DAYS = 5

EVENT_TYPE_BY_GOAL = {
    GoalType.EXPANSION: EventType.POLITICAL,
    GoalType.DEFENSE: EventType.MILITARY,
    GoalType.ECONOMIC: EventType.ECONOMIC,
    GoalType.POLITICAL: EventType.POLITICAL,
    GoalType.MILITARY: EventType.MILITARY,
    GoalType.COVERT: EventType.CONSPIRACY,
    GoalType.RELIGIOUS: EventType.RELIGIOUS,
    GoalType.MAGICAL: EventType.MAGICAL,
}

MILESTONE_TEXT = {
    25: (
        "{faction} Makes Progress",
        "The {faction} has made initial progress toward {goal}. "
        "Their activities are beginning to be noticed.",
    ),
    50: (
        "{faction} Gains Momentum",
        "The {faction}'s efforts toward {goal} have reached a critical point. "
        "Their influence is spreading.",
    ),
    75: (
        "{faction} Nears Goal",
        "The {faction} is close to achieving {goal}. "
        "Only direct intervention might stop them now.",
    ),
}

TRIGGER_MILESTONE = "goal_milestone"
TRIGGER_COMPLETION = "goal_completion"
TRIGGER_RIVAL = "rival_reaction"


@dataclass(frozen=True)
class SpawnedEvent:
    event_id: int
    title: str
    trigger: str
    faction_id: int
    goal_id: int
    milestone: int | None = None
    power_shift: int | None = None
    generated: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class SpawnOutcome:
    spawned: list[SpawnedEvent] = field(default_factory=list)
    generation_failures: list[dict] = field(default_factory=list)


def crossed_milestones(result: GoalTickResult) -> list[int]:
    return [
        milestone
        for milestone in MILESTONES
        if result.previous_percent < milestone <= result.new_percent
    ]


def milestone_visibility(goal_visibility: Visibility, milestone: int) -> Visibility:
    if goal_visibility is Visibility.PUBLIC:
        return Visibility.PUBLIC
    if goal_visibility is Visibility.RUMORED or milestone >= 50:
        return Visibility.RUMORED
    return Visibility.SECRET


def completion_visibility(goal_visibility: Visibility) -> Visibility:
    if goal_visibility is Visibility.PUBLIC:
        return Visibility.PUBLIC
    return Visibility.RUMORED


def _stable_seed(parts: list[object]) -> int:
    joined = "|".join(str(part) for part in parts).encode("utf-8")
    digest = hashlib.sha256(joined).hexdigest()
    return int(digest[:8], 16)


def milestone_event(
    faction: Faction, goal: FactionGoal, milestone: int, *, day: int
) -> WorldEvent:
    title, description = MILESTONE_TEXT[milestone]
    return WorldEvent(
        id=None,
        campaign_id=faction.campaign_id,
        title=title.format(faction=faction.name),
        description=description.format(faction=faction.name, goal=goal.title.lower()),
        event_type=EVENT_TYPE_BY_GOAL[goal.goal_type],
        scope=faction.scope,
        visibility=milestone_visibility(goal.visibility, milestone),
        stages=["Unfolding", "Escalating", "Concluding"],
        stage_descriptions=[
            "The situation is developing",
            "Events are escalating",
            "The outcome is becoming clear",
        ],
        expected_duration_days=MILESTONE_EVENT_DAYS,
        triggered_by_faction_id=faction.id,
        triggered_by_goal_id=goal.id,
        affected_faction_ids=[faction.id],
        possible_outcomes=[
            "The faction succeeds completely",
            "The faction is partially successful",
            "The faction is opposed and fails",
            "Unexpected complications arise",
        ],
        player_intervention_options=[
            f"Support the {faction.name}",
            f"Oppose the {faction.name}",
            "Investigate further",
            "Stay out of it",
        ],
        started_on_day=day,
    )


def completion_event(faction: Faction, goal: FactionGoal, *, day: int) -> WorldEvent:
    description = goal.success_consequences or (
        f"The {faction.name} has achieved their goal: {goal.title}. "
        "The consequences will reshape the region."
    )
    return WorldEvent(
        id=None,
        campaign_id=faction.campaign_id,
        title=f"{faction.name}: {goal.title} Complete",
        description=description,
        event_type=EVENT_TYPE_BY_GOAL[goal.goal_type],
        scope=faction.scope,
        visibility=completion_visibility(goal.visibility),
        stages=["Immediate Aftermath", "Settling Effects", "New Normal"],
        stage_descriptions=[
            "The immediate effects of the goal completion are being felt",
            "The changes are settling into place",
            "A new status quo emerges",
        ],
        expected_duration_days=COMPLETION_EVENT_DAYS,
        triggered_by_faction_id=faction.id,
        triggered_by_goal_id=goal.id,
        affected_faction_ids=[faction.id],
        started_on_day=day,
    )


def rival_event(
    rival: Faction, faction: Faction, goal: FactionGoal, milestone: int, *, day: int
) -> WorldEvent:
    return WorldEvent(
        id=None,
        campaign_id=faction.campaign_id,
        title=f"{rival.name} Moves Against {faction.name}",
        description=(
            f"The {rival.name} has launched counter-operations to oppose the "
            f"{faction.name}'s progress on \"{goal.title}\". "
            "Tensions between the two factions are escalating."
        ),
        event_type=EventType.POLITICAL,
        scope=rival.scope,
        visibility=Visibility.PUBLIC if milestone >= 75 else Visibility.RUMORED,
        stages=["Mobilizing", "Active Opposition", "Outcome"],
        stage_descriptions=[
            f"{rival.name} begins mobilizing resources",
            "Open opposition and counter-moves escalate",
            "The conflict between the factions reaches a resolution",
        ],
        expected_duration_days=RIVAL_EVENT_DAYS,
        triggered_by_faction_id=rival.id,
        triggered_by_goal_id=goal.id,
        affected_faction_ids=[rival.id, faction.id],
        player_intervention_options=[
            f"Support {rival.name}",
            f"Support {faction.name}",
            "Mediate between them",
            "Stay out of it",
        ],
        started_on_day=day,
    )


def reacting_rivals(
    world: CampaignWorld, faction: Faction, goal: FactionGoal, milestone: int
) -> list[Faction]:
    """Rivals that answer a milestone, drawn from a per-milestone seeded roll."""
    rivals = []
    for other in world.active_factions():
        if other.id == faction.id:
            continue
        if faction.relationship_with(other.id) > RIVAL_RELATIONSHIP_THRESHOLD:
            continue
        rng = random.Random(_stable_seed([world.campaign_id, goal.id, other.id, milestone]))
        if rng.random() < RIVAL_REACTION_CHANCE:
            rivals.append(other)
    return rivals


def apply_power_shift(
    world: CampaignWorld, faction: Faction, goal: FactionGoal, event: WorldEvent, *, day: int
) -> int:
    boost = POWER_BOOSTS.get(goal.stakes_level, 0)
    if boost == 0:
        return 0
    previous = faction.power_level
    applied = faction.boost_power(boost)
    world.add_effect(
        new_effect(
            event_id=event.id,
            effect_type="faction_power_change",
            target_type=TargetType.FACTION,
            target_id=faction.id,
            description=(
                f"{faction.name} has increased their influence "
                f"(power {previous} -> {faction.power_level})"
            ),
            parameters={"power_change": applied, "new_power": faction.power_level},
            duration=POWER_EFFECT_DAYS,
            day=day,
        )
    )
    return applied


def _generated_completion_event(
    world: CampaignWorld,
    gateway: GenerationGateway,
    faction: Faction,
    goal: FactionGoal,
    *,
    start_day: int,
    end_day: int,
) -> tuple[WorldEvent, list[EventEffect]]:
    proposal = gateway.generate_faction_triggered_event(faction, goal)
    event = event_from_proposal(
        world.campaign_id, proposal, day=start_day, faction=faction, goal=goal
    )
    effects = [effect_from_proposal(0, item, day=end_day) for item in proposal.effects]
    return event, effects


def _spawn_completion(
    world: CampaignWorld,
    faction: Faction,
    goal: FactionGoal,
    outcome: SpawnOutcome,
    *,
    settings: LivingWorldSettings,
    gateway: GenerationGateway | None,
    start_day: int,
    end_day: int,
) -> None:
    event = None
    effects: list[EventEffect] = []
    if gateway is not None and settings.generate_on_completion:
        try:
            event, effects = _generated_completion_event(
                world, gateway, faction, goal, start_day=start_day, end_day=end_day
            )
        except Exception as exc:
            # A failed or malformed generation falls back to the template event.
            logger.warning("Event generation failed for goal %s: %s", goal.id, exc)
            outcome.generation_failures.append(
                {"goal_id": goal.id, "faction_id": faction.id, "error": str(exc)}
            )
    generated = event is not None
    if event is None:
        event = completion_event(faction, goal, day=start_day)
    world.add_event(event)
    for effect in effects:
        effect.event_id = event.id
        world.add_effect(effect)
    shift = apply_power_shift(world, faction, goal, event, day=end_day)
    outcome.spawned.append(
        SpawnedEvent(
            event_id=event.id,
            title=event.title,
            trigger=TRIGGER_COMPLETION,
            faction_id=faction.id,
            goal_id=goal.id,
            power_shift=shift or None,
            generated=generated,
        )
    )


def spawn_from_goal_results(
    world: CampaignWorld,
    results: list[GoalTickResult],
    *,
    settings: LivingWorldSettings,
    gateway: GenerationGateway | None = None,
    start_day: int,
    end_day: int,
) -> SpawnOutcome:
    """Creates the events that follow from this tick's goal progress.

    Spawned events start on ``start_day`` so the event tick that follows
    moves them forward by the same number of days. The coordinator calls
    this once per simulated day.
    """
    outcome = SpawnOutcome()
    for result in results:
        faction = world.get_faction(result.faction_id)
        goal = world.get_goal(result.goal_id)
        if settings.milestone_events:
            for milestone in crossed_milestones(result):
                event = world.add_event(milestone_event(faction, goal, milestone, day=start_day))
                outcome.spawned.append(
                    SpawnedEvent(
                        event_id=event.id,
                        title=event.title,
                        trigger=TRIGGER_MILESTONE,
                        faction_id=faction.id,
                        goal_id=goal.id,
                        milestone=milestone,
                    )
                )
                if settings.rival_reactions and milestone >= RIVAL_MILESTONE:
                    for rival in reacting_rivals(world, faction, goal, milestone):
                        counter = world.add_event(
                            rival_event(rival, faction, goal, milestone, day=start_day)
                        )
                        outcome.spawned.append(
                            SpawnedEvent(
                                event_id=counter.id,
                                title=counter.title,
                                trigger=TRIGGER_RIVAL,
                                faction_id=rival.id,
                                goal_id=goal.id,
                                milestone=milestone,
                            )
                        )
        if result.completed:
            _spawn_completion(
                world,
                faction,
                goal,
                outcome,
                settings=settings,
                gateway=gateway,
                start_day=start_day,
                end_day=end_day,
            )
    return outcome
