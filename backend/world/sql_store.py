from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Callable, Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import models
from world.effects import EventEffect
from world.errors import InvalidStateError, NotFoundError, PersistenceFailure
from world.events import WorldEvent
from world.goals import Faction, FactionGoal
from world.standings import FactionStanding
from world.store import CampaignWorld, Character

logger = logging.getLogger(__name__)

ROW_MODELS = {
    "faction": models.Faction,
    "goal": models.FactionGoal,
    "event": models.WorldEvent,
    "effect": models.EventEffect,
    "character": models.Character,
}


def _faction_from_row(row: models.Faction) -> Faction:
    return Faction(
        id=row.id,
        campaign_id=row.campaign_id,
        name=row.name,
        description=row.description,
        scope=row.scope,
        power_level=row.power_level,
        alignment=row.alignment,
        status=row.status,
        relationships={int(key): value for key, value in (row.relationships_json or {}).items()},
    )


def _faction_to_row(faction: Faction, row: models.Faction) -> None:
    row.campaign_id = faction.campaign_id
    row.name = faction.name
    row.description = faction.description
    row.scope = faction.scope.value
    row.power_level = faction.power_level
    row.alignment = faction.alignment
    row.status = faction.status.value
    row.relationships_json = {str(key): value for key, value in faction.relationships.items()}


def _goal_from_row(row: models.FactionGoal) -> FactionGoal:
    return FactionGoal(
        id=row.id,
        faction_id=row.faction_id,
        title=row.title,
        description=row.description,
        goal_type=row.goal_type,
        urgency=row.urgency,
        stakes_level=row.stakes_level,
        visibility=row.visibility,
        progress=row.progress,
        progress_max=row.progress_max,
        status=row.status,
        discovered_by=set(row.discovered_by_json or []),
        success_consequences=row.success_consequences,
        failure_consequences=row.failure_consequences,
        completed_on_day=row.completed_on_day,
        abandoned_reason=row.abandoned_reason,
    )


def _goal_to_row(goal: FactionGoal, row: models.FactionGoal) -> None:
    row.faction_id = goal.faction_id
    row.title = goal.title
    row.description = goal.description
    row.goal_type = goal.goal_type.value
    row.urgency = goal.urgency.value
    row.stakes_level = goal.stakes_level.value
    row.visibility = goal.visibility.value
    row.progress = goal.progress
    row.progress_max = goal.progress_max
    row.status = goal.status.value
    row.discovered_by_json = sorted(goal.discovered_by)
    row.success_consequences = goal.success_consequences
    row.failure_consequences = goal.failure_consequences
    row.completed_on_day = goal.completed_on_day
    row.abandoned_reason = goal.abandoned_reason


def _event_from_row(row: models.WorldEvent) -> WorldEvent:
    return WorldEvent(
        id=row.id,
        campaign_id=row.campaign_id,
        title=row.title,
        description=row.description,
        event_type=row.event_type,
        scope=row.scope,
        visibility=row.visibility,
        stages=list(row.stages_json or []),
        stage_descriptions=list(row.stage_descriptions_json or []),
        current_stage=row.current_stage,
        status=row.status,
        expected_duration_days=row.expected_duration_days,
        days_elapsed=row.days_elapsed,
        deadline_day=row.deadline_day,
        triggered_by_faction_id=row.triggered_by_faction_id,
        triggered_by_goal_id=row.triggered_by_goal_id,
        affected_faction_ids=list(row.affected_factions_json or []),
        possible_outcomes=list(row.possible_outcomes_json or []),
        player_intervention_options=list(row.intervention_options_json or []),
        discovered_by=set(row.discovered_by_json or []),
        outcome=row.outcome,
        outcome_description=row.outcome_description,
        started_on_day=row.started_on_day,
        ended_on_day=row.ended_on_day,
    )


def _event_to_row(event: WorldEvent, row: models.WorldEvent) -> None:
    row.campaign_id = event.campaign_id
    row.title = event.title
    row.description = event.description
    row.event_type = event.event_type.value
    row.scope = event.scope.value
    row.visibility = event.visibility.value
    row.stages_json = list(event.stages)
    row.stage_descriptions_json = list(event.stage_descriptions)
    row.current_stage = event.current_stage
    row.status = event.status.value
    row.expected_duration_days = event.expected_duration_days
    row.days_elapsed = event.days_elapsed
    row.deadline_day = event.deadline_day
    row.triggered_by_faction_id = event.triggered_by_faction_id
    row.triggered_by_goal_id = event.triggered_by_goal_id
    row.affected_factions_json = list(event.affected_faction_ids)
    row.possible_outcomes_json = list(event.possible_outcomes)
    row.intervention_options_json = list(event.player_intervention_options)
    row.discovered_by_json = sorted(event.discovered_by)
    row.outcome = event.outcome
    row.outcome_description = event.outcome_description
    row.started_on_day = event.started_on_day
    row.ended_on_day = event.ended_on_day


def _effect_from_row(row: models.EventEffect) -> EventEffect:
    return EventEffect(
        id=row.id,
        event_id=row.event_id,
        effect_type=row.effect_type,
        target_type=row.target_type,
        target_id=row.target_id,
        description=row.description,
        parameters=dict(row.parameters_json or {}),
        duration=row.duration,
        stage_applied=row.stage_applied,
        created_on_day=row.created_on_day,
        expires_on_day=row.expires_on_day,
        status=row.status,
        reversal_reason=row.reversal_reason,
        ended_on_day=row.ended_on_day,
    )


def _effect_to_row(effect: EventEffect, row: models.EventEffect) -> None:
    row.event_id = effect.event_id
    row.effect_type = effect.effect_type
    row.target_type = effect.target_type.value
    row.target_id = effect.target_id
    row.description = effect.description
    row.parameters_json = dict(effect.parameters)
    row.duration = effect.duration
    row.stage_applied = effect.stage_applied
    row.created_on_day = effect.created_on_day
    row.expires_on_day = effect.expires_on_day
    row.status = effect.status.value
    row.reversal_reason = effect.reversal_reason
    row.ended_on_day = effect.ended_on_day


def _standing_from_row(row: models.FactionStanding) -> FactionStanding:
    return FactionStanding(
        character_id=row.character_id,
        faction_id=row.faction_id,
        standing=row.standing,
        is_member=row.is_member,
        membership_level=row.membership_level,
        rank=row.rank,
        joined_on_day=row.joined_on_day,
        deeds_for=list(row.deeds_for_json or []),
        deeds_against=list(row.deeds_against_json or []),
        pending_promises=list(row.promises_json or []),
        pending_debts=list(row.debts_json or []),
        quests_completed=list(row.quests_completed_json or []),
    )


def _standing_to_row(standing: FactionStanding, row: models.FactionStanding) -> None:
    row.character_id = standing.character_id
    row.faction_id = standing.faction_id
    row.standing = standing.standing
    row.standing_label = standing.label
    row.is_member = standing.is_member
    row.membership_level = standing.membership_level
    row.rank = standing.rank
    row.joined_on_day = standing.joined_on_day
    row.deeds_for_json = list(standing.deeds_for)
    row.deeds_against_json = list(standing.deeds_against)
    row.promises_json = list(standing.pending_promises)
    row.debts_json = list(standing.pending_debts)
    row.quests_completed_json = list(standing.quests_completed)


WRITERS: dict[str, Callable[[Any, Any], None]] = {
    "faction": _faction_to_row,
    "goal": _goal_to_row,
    "event": _event_to_row,
    "effect": _effect_to_row,
}


def load_world(db: Session, campaign: models.Campaign) -> CampaignWorld:
    world = CampaignWorld(
        campaign_id=campaign.id,
        name=campaign.name,
        world_day=campaign.world_day or 0,
        last_tick_at=campaign.last_tick_at,
    )
    for row in db.query(models.Faction).filter(models.Faction.campaign_id == campaign.id):
        world.factions[row.id] = _faction_from_row(row)
    faction_ids = list(world.factions)
    if faction_ids:
        goal_rows = db.query(models.FactionGoal).filter(
            models.FactionGoal.faction_id.in_(faction_ids)
        )
        for row in goal_rows:
            world.goals[row.id] = _goal_from_row(row)
    for row in db.query(models.WorldEvent).filter(models.WorldEvent.campaign_id == campaign.id):
        world.events[row.id] = _event_from_row(row)
    event_ids = list(world.events)
    if event_ids:
        effect_rows = db.query(models.EventEffect).filter(
            models.EventEffect.event_id.in_(event_ids)
        )
        for row in effect_rows:
            world.effects[row.id] = _effect_from_row(row)
    for row in db.query(models.Character).filter(models.Character.campaign_id == campaign.id):
        world.characters[row.id] = Character(
            id=row.id, campaign_id=row.campaign_id, name=row.name
        )
    character_ids = list(world.characters)
    if character_ids:
        standing_rows = db.query(models.FactionStanding).filter(
            models.FactionStanding.character_id.in_(character_ids)
        )
        for row in standing_rows:
            world.standings[(row.character_id, row.faction_id)] = _standing_from_row(row)
    return world


def save_world(db: Session, campaign: models.Campaign, world: CampaignWorld) -> None:
    campaign.world_day = world.world_day
    campaign.last_tick_at = world.last_tick_at
    for kind, collection in (
        ("faction", world.factions),
        ("goal", world.goals),
        ("event", world.events),
        ("effect", world.effects),
    ):
        for record_id, record in collection.items():
            row = db.get(ROW_MODELS[kind], record_id)
            if row is None:
                raise NotFoundError(kind, record_id)
            WRITERS[kind](record, row)
    existing = {}
    if world.characters:
        rows = db.query(models.FactionStanding).filter(
            models.FactionStanding.character_id.in_(list(world.characters))
        )
        existing = {(row.character_id, row.faction_id): row for row in rows}
    for key, standing in world.standings.items():
        row = existing.get(key)
        if row is None:
            row = models.FactionStanding()
            db.add(row)
        _standing_to_row(standing, row)


class SqlWorldStore:
    """World store backed by a SQLAlchemy session factory.

    A unit of work loads the campaign into domain objects, writes them back
    and commits once. Any failure rolls the session back.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self.session_factory = session_factory

    @staticmethod
    def _require_campaign(db: Session, campaign_id: int) -> models.Campaign:
        campaign = db.get(models.Campaign, campaign_id)
        if campaign is None:
            raise NotFoundError("campaign", campaign_id)
        return campaign

    @staticmethod
    def _insert(db: Session, kind: str, record: Any) -> int:
        writer = WRITERS.get(kind)
        if writer is None:
            raise InvalidStateError(f"Cannot create {kind} records here.")
        row = ROW_MODELS[kind]()
        writer(record, row)
        db.add(row)
        db.flush()
        return row.id

    @contextmanager
    def unit_of_work(self, campaign_id: int) -> Iterator[CampaignWorld]:
        db = self.session_factory()
        try:
            campaign = self._require_campaign(db, campaign_id)
            world = load_world(db, campaign)
            world.allocate = lambda kind, record: self._insert(db, kind, record)
            yield world
            world.allocate = None
            save_world(db, campaign, world)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Campaign %s changes were rolled back: %s", campaign_id, exc)
            raise PersistenceFailure(f"Campaign {campaign_id} changes were not saved.") from exc
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def snapshot(self, campaign_id: int) -> CampaignWorld:
        db = self.session_factory()
        try:
            return load_world(db, self._require_campaign(db, campaign_id))
        finally:
            db.close()

    def campaign_of(self, kind: str, record_id: int) -> int:
        db = self.session_factory()
        try:
            if kind == "goal":
                row = db.get(models.FactionGoal, record_id)
                owner = db.get(models.Faction, row.faction_id) if row else None
                if owner is None:
                    raise NotFoundError(kind, record_id)
                return owner.campaign_id
            if kind == "effect":
                row = db.get(models.EventEffect, record_id)
                owner = db.get(models.WorldEvent, row.event_id) if row else None
                if owner is None:
                    raise NotFoundError(kind, record_id)
                return owner.campaign_id
            model = ROW_MODELS.get(kind)
            if model is None:
                raise InvalidStateError(f"Unknown record kind: {kind}")
            row = db.get(model, record_id)
            if row is None:
                raise NotFoundError(kind, record_id)
            return row.campaign_id
        finally:
            db.close()
