from __future__ import annotations

from typing import Protocol, Sequence

from llm.schemas import EffectProposal, EventProposal, GoalProposal
from world.effects import EventEffect, new_effect
from world.events import WorldEvent
from world.goals import Faction, FactionGoal


class GenerationGateway(Protocol):
    """Produces candidate goal and event content.

    Implementations raise ``GenerationUnavailable`` when no proposal can be
    produced. Callers inside a tick treat that as best effort.
    """

    def generate_faction_goal(
        self,
        faction: Faction,
        *,
        other_factions: Sequence[Faction] = (),
        existing_goals: Sequence[FactionGoal] = (),
    ) -> GoalProposal:
        ...

    def generate_world_event(
        self,
        campaign_id: int,
        *,
        factions: Sequence[Faction] = (),
        active_events: Sequence[WorldEvent] = (),
        event_type: str | None = None,
    ) -> EventProposal:
        ...

    def generate_faction_triggered_event(
        self,
        faction: Faction,
        goal: FactionGoal,
    ) -> EventProposal:
        ...


def goal_from_proposal(faction: Faction, proposal: GoalProposal) -> FactionGoal:
    return FactionGoal(
        id=None,
        faction_id=faction.id,
        title=proposal.title,
        description=proposal.description,
        goal_type=proposal.goal_type,
        urgency=proposal.urgency,
        stakes_level=proposal.stakes_level,
        visibility=proposal.visibility,
        progress_max=proposal.progress_max,
        success_consequences=proposal.success_consequences,
        failure_consequences=proposal.failure_consequences,
    )


def event_from_proposal(
    campaign_id: int,
    proposal: EventProposal,
    *,
    day: int,
    faction: Faction | None = None,
    goal: FactionGoal | None = None,
) -> WorldEvent:
    affected = list(proposal.affected_faction_ids)
    if faction is not None and faction.id not in affected:
        affected.insert(0, faction.id)
    return WorldEvent(
        id=None,
        campaign_id=campaign_id,
        title=proposal.title,
        description=proposal.description,
        event_type=proposal.event_type,
        scope=proposal.scope,
        visibility=proposal.visibility,
        stages=list(proposal.stages),
        stage_descriptions=list(proposal.stage_descriptions),
        expected_duration_days=proposal.expected_duration_days,
        triggered_by_faction_id=faction.id if faction is not None else None,
        triggered_by_goal_id=goal.id if goal is not None else None,
        affected_faction_ids=affected,
        possible_outcomes=list(proposal.possible_outcomes),
        player_intervention_options=list(proposal.player_intervention_options),
        started_on_day=day,
    )


def effect_from_proposal(event_id: int, proposal: EffectProposal, *, day: int) -> EventEffect:
    return new_effect(
        event_id=event_id,
        effect_type=proposal.effect_type,
        target_type=proposal.target_type,
        target_id=proposal.target_id,
        description=proposal.description,
        parameters=dict(proposal.parameters),
        duration=proposal.duration,
        day=day,
    )
