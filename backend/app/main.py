from typing import Any

from fastapi import Body, FastAPI, HTTPException
from pydantic import BaseModel, Field

from db import SessionLocal, check_db_connection
from llm.client import OllamaGateway
from models import Campaign, Character
from world.effects import EventEffect
from world.errors import GenerationUnavailable, NotFoundError, PersistenceFailure, WorldError
from world.events import WorldEvent
from world.goals import Faction, FactionGoal
from world.living_world import LivingWorld
from world.settings import LivingWorldSettings
from world.sql_store import SqlWorldStore
from world.standings import FactionStanding

WORLD_ERRORS = (WorldError, GenerationUnavailable, PersistenceFailure)

_living_world: LivingWorld | None = None


def get_living_world() -> LivingWorld:
    global _living_world
    if _living_world is None:
        _living_world = LivingWorld(
            SqlWorldStore(SessionLocal),
            gateway=OllamaGateway(),
            settings=LivingWorldSettings.from_env(),
        )
    return _living_world


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, GenerationUnavailable):
        return HTTPException(status_code=503, detail=str(exc))
    if isinstance(exc, PersistenceFailure):
        return HTTPException(status_code=500, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


def _faction_payload(faction: Faction) -> dict:
    return {
        "id": faction.id,
        "campaign_id": faction.campaign_id,
        "name": faction.name,
        "description": faction.description,
        "scope": faction.scope.value,
        "power_level": faction.power_level,
        "alignment": faction.alignment,
        "status": faction.status.value,
        "relationships": {str(key): value for key, value in faction.relationships.items()},
    }


def _goal_payload(goal: FactionGoal) -> dict:
    return {
        "id": goal.id,
        "faction_id": goal.faction_id,
        "title": goal.title,
        "description": goal.description,
        "goal_type": goal.goal_type.value,
        "urgency": goal.urgency.value,
        "stakes_level": goal.stakes_level.value,
        "visibility": goal.visibility.value,
        "progress": goal.progress,
        "progress_max": goal.progress_max,
        "progress_percent": goal.percent,
        "status": goal.status.value,
        "discovered_by": sorted(goal.discovered_by),
        "success_consequences": goal.success_consequences,
        "failure_consequences": goal.failure_consequences,
        "completed_on_day": goal.completed_on_day,
        "abandoned_reason": goal.abandoned_reason,
    }


def _event_payload(event: WorldEvent) -> dict:
    return {
        "id": event.id,
        "campaign_id": event.campaign_id,
        "title": event.title,
        "description": event.description,
        "event_type": event.event_type.value,
        "scope": event.scope.value,
        "visibility": event.visibility.value,
        "stages": list(event.stages),
        "stage_descriptions": list(event.stage_descriptions),
        "current_stage": event.current_stage,
        "stage_name": event.stage_name,
        "status": event.status.value,
        "expected_duration_days": event.expected_duration_days,
        "days_elapsed": event.days_elapsed,
        "deadline_day": event.deadline_day,
        "triggered_by_faction_id": event.triggered_by_faction_id,
        "triggered_by_goal_id": event.triggered_by_goal_id,
        "affected_faction_ids": list(event.affected_faction_ids),
        "possible_outcomes": list(event.possible_outcomes),
        "player_intervention_options": list(event.player_intervention_options),
        "discovered_by": sorted(event.discovered_by),
        "outcome": event.outcome,
        "outcome_description": event.outcome_description,
        "started_on_day": event.started_on_day,
        "ended_on_day": event.ended_on_day,
    }


def _effect_payload(effect: EventEffect) -> dict:
    return {
        "id": effect.id,
        "event_id": effect.event_id,
        "effect_type": effect.effect_type,
        "target_type": effect.target_type.value,
        "target_id": effect.target_id,
        "description": effect.description,
        "parameters": dict(effect.parameters),
        "duration": effect.duration,
        "stage_applied": effect.stage_applied,
        "created_on_day": effect.created_on_day,
        "expires_on_day": effect.expires_on_day,
        "status": effect.status.value,
        "reversal_reason": effect.reversal_reason,
    }


def _standing_payload(standing: FactionStanding) -> dict:
    return {
        "character_id": standing.character_id,
        "faction_id": standing.faction_id,
        "standing": standing.standing,
        "label": standing.label,
        "is_member": standing.is_member,
        "membership_level": standing.membership_level,
        "rank": standing.rank,
        "joined_on_day": standing.joined_on_day,
        "deeds_for": list(standing.deeds_for),
        "deeds_against": list(standing.deeds_against),
        "pending_promises": list(standing.pending_promises),
        "pending_debts": list(standing.pending_debts),
        "quests_completed": list(standing.quests_completed),
    }


app = FastAPI(
    title="living-world API",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)


@app.get("/health")
def health() -> dict:
    try:
        check_db_connection()
    except Exception as exc:
        raise HTTPException(status_code=503, detail="Database unavailable") from exc
    return {"status": "ok"}


class CampaignCreate(BaseModel):
    name: str = "New Campaign"


class CharacterCreate(BaseModel):
    name: str


class DaysRequest(BaseModel):
    days: int = 1


class TimeAdvanceRequest(BaseModel):
    hours: int


class FactionCreate(BaseModel):
    name: str
    description: str | None = None
    scope: str = "local"
    power_level: int = 5
    alignment: str = "neutral"


class RelationshipUpdate(BaseModel):
    other_faction_id: int
    value: int


class GoalCreate(BaseModel):
    title: str
    description: str | None = None
    goal_type: str = "expansion"
    urgency: str = "normal"
    stakes_level: str = "moderate"
    visibility: str = "secret"
    progress_max: int = 100
    success_consequences: str | None = None
    failure_consequences: str | None = None


class GoalAdvance(BaseModel):
    amount: int


class ReasonRequest(BaseModel):
    reason: str | None = None


class DiscoverRequest(BaseModel):
    character_id: int


class EventCreate(BaseModel):
    title: str
    description: str | None = None
    event_type: str = "political"
    scope: str = "local"
    visibility: str = "public"
    stages: list[str] = Field(default_factory=list)
    stage_descriptions: list[str] = Field(default_factory=list)
    expected_duration_days: int | None = None
    deadline_day: int | None = None
    triggered_by_faction_id: int | None = None
    affected_faction_ids: list[int] = Field(default_factory=list)
    possible_outcomes: list[str] = Field(default_factory=list)
    player_intervention_options: list[str] = Field(default_factory=list)


class EventResolve(BaseModel):
    outcome: str
    description: str | None = None


class EffectCreate(BaseModel):
    effect_type: str
    target_type: str
    target_id: int | None = None
    description: str | None = None
    parameters: dict[str, Any] = Field(default_factory=dict)
    duration: str | int | None = None
    expires_at: int | None = None


class StandingModify(BaseModel):
    delta: int
    deed: dict[str, Any] | None = None


class JoinRequest(BaseModel):
    membership_level: str | None = None


class QuestRecord(BaseModel):
    quest: dict[str, Any]
    standing_reward: int = 0


class PromiseCreate(BaseModel):
    promise: str


class DebtCreate(BaseModel):
    description: str
    debt_type: str = "favor"
    direction: str = "faction_owes_character"


class DebtSettle(BaseModel):
    how_settled: str | None = None


class GenerateRequest(BaseModel):
    auto_create: bool = False
    event_type: str | None = None


@app.post("/campaigns")
def create_campaign(payload: CampaignCreate | None = Body(default=None)) -> dict:
    data = payload or CampaignCreate()
    with SessionLocal() as db:
        campaign = Campaign(name=data.name, world_day=0)
        db.add(campaign)
        db.commit()
        db.refresh(campaign)
        return {"id": campaign.id, "name": campaign.name, "world_day": campaign.world_day}


@app.post("/campaigns/{campaign_id}/characters")
def create_character(campaign_id: int, payload: CharacterCreate) -> dict:
    with SessionLocal() as db:
        campaign = db.get(Campaign, campaign_id)
        if campaign is None:
            raise HTTPException(status_code=404, detail="Campaign not found")
        character = Character(campaign_id=campaign.id, name=payload.name)
        db.add(character)
        db.commit()
        db.refresh(character)
        return {"id": character.id, "campaign_id": character.campaign_id, "name": character.name}


@app.post("/living-world/tick/{campaign_id}")
def tick_campaign(campaign_id: int, payload: DaysRequest | None = Body(default=None)) -> dict:
    data = payload or DaysRequest()
    try:
        report = get_living_world().tick(campaign_id, data.days)
    except WORLD_ERRORS as exc:
        raise _http_error(exc) from exc
    return report.to_dict()


@app.post("/living-world/simulate/{campaign_id}")
def simulate_campaign(campaign_id: int, payload: DaysRequest | None = Body(default=None)) -> dict:
    data = payload or DaysRequest()
    try:
        report = get_living_world().simulate(campaign_id, data.days)
    except WORLD_ERRORS as exc:
        raise _http_error(exc) from exc
    return report.to_dict()


@app.get("/living-world/state/{campaign_id}")
def world_state(campaign_id: int) -> dict:
    try:
        return get_living_world().get_world_state(campaign_id)
    except WORLD_ERRORS as exc:
        raise _http_error(exc) from exc


@app.get("/living-world/character-view/{character_id}")
def character_view(character_id: int) -> dict:
    try:
        return get_living_world().get_character_view(character_id)
    except WORLD_ERRORS as exc:
        raise _http_error(exc) from exc


@app.post("/living-world/advance-time/{character_id}")
def advance_time(character_id: int, payload: TimeAdvanceRequest) -> dict:
    try:
        report = get_living_world().advance_character_time(character_id, payload.hours)
    except WORLD_ERRORS as exc:
        raise _http_error(exc) from exc
    days = payload.hours // 24
    return {
        "character_id": character_id,
        "days_advanced": days if report else 0,
        "tick": report.to_dict() if report else None,
    }


@app.post("/living-world/generate/faction-goal/{faction_id}")
def generate_faction_goal(
    faction_id: int, payload: GenerateRequest | None = Body(default=None)
) -> dict:
    data = payload or GenerateRequest()
    try:
        proposal, goal = get_living_world().generate_faction_goal(
            faction_id, auto_create=data.auto_create
        )
    except WORLD_ERRORS as exc:
        raise _http_error(exc) from exc
    return {
        "proposal": proposal.model_dump(),
        "goal": _goal_payload(goal) if goal else None,
    }


@app.post("/living-world/generate/world-event/{campaign_id}")
def generate_world_event(
    campaign_id: int, payload: GenerateRequest | None = Body(default=None)
) -> dict:
    data = payload or GenerateRequest()
    try:
        proposal, event = get_living_world().generate_world_event(
            campaign_id, event_type=data.event_type, auto_create=data.auto_create
        )
    except WORLD_ERRORS as exc:
        raise _http_error(exc) from exc
    return {
        "proposal": proposal.model_dump(),
        "event": _event_payload(event) if event else None,
    }


@app.post("/living-world/generate/faction-event/{faction_id}/{goal_id}")
def generate_faction_event(
    faction_id: int, goal_id: int, payload: GenerateRequest | None = Body(default=None)
) -> dict:
    data = payload or GenerateRequest()
    try:
        proposal, event = get_living_world().generate_faction_event(
            faction_id, goal_id, auto_create=data.auto_create
        )
    except WORLD_ERRORS as exc:
        raise _http_error(exc) from exc
    return {
        "proposal": proposal.model_dump(),
        "event": _event_payload(event) if event else None,
    }


@app.get("/living-world/campaigns/{campaign_id}/factions")
def list_factions(campaign_id: int) -> list[dict]:
    try:
        factions = get_living_world().list_factions(campaign_id)
    except WORLD_ERRORS as exc:
        raise _http_error(exc) from exc
    return [_faction_payload(faction) for faction in factions]


@app.post("/living-world/campaigns/{campaign_id}/factions")
def create_faction(campaign_id: int, payload: FactionCreate) -> dict:
    try:
        faction = get_living_world().create_faction(campaign_id, **payload.model_dump())
    except WORLD_ERRORS as exc:
        raise _http_error(exc) from exc
    return _faction_payload(faction)


@app.put("/living-world/factions/{faction_id}/relationships")
def update_relationship(faction_id: int, payload: RelationshipUpdate) -> dict:
    try:
        value = get_living_world().set_relationship(
            faction_id, payload.other_faction_id, payload.value
        )
    except WORLD_ERRORS as exc:
        raise _http_error(exc) from exc
    return {
        "faction_id": faction_id,
        "other_faction_id": payload.other_faction_id,
        "value": value,
    }


@app.get("/living-world/factions/{faction_id}/goals")
def list_goals(faction_id: int) -> list[dict]:
    try:
        goals = get_living_world().list_goals(faction_id)
    except WORLD_ERRORS as exc:
        raise _http_error(exc) from exc
    return [_goal_payload(goal) for goal in goals]


@app.post("/living-world/factions/{faction_id}/goals")
def create_goal(faction_id: int, payload: GoalCreate) -> dict:
    try:
        goal = get_living_world().create_goal(faction_id, **payload.model_dump())
    except WORLD_ERRORS as exc:
        raise _http_error(exc) from exc
    return _goal_payload(goal)


@app.post("/living-world/goals/{goal_id}/advance")
def advance_goal(goal_id: int, payload: GoalAdvance) -> dict:
    try:
        goal = get_living_world().advance_goal(goal_id, payload.amount)
    except WORLD_ERRORS as exc:
        raise _http_error(exc) from exc
    return _goal_payload(goal)


@app.post("/living-world/goals/{goal_id}/abandon")
def abandon_goal(goal_id: int, payload: ReasonRequest | None = Body(default=None)) -> dict:
    data = payload or ReasonRequest()
    try:
        goal = get_living_world().abandon_goal(goal_id, data.reason)
    except WORLD_ERRORS as exc:
        raise _http_error(exc) from exc
    return _goal_payload(goal)


@app.post("/living-world/goals/{goal_id}/discover")
def discover_goal(goal_id: int, payload: DiscoverRequest) -> dict:
    try:
        newly = get_living_world().discover_goal(goal_id, payload.character_id)
    except WORLD_ERRORS as exc:
        raise _http_error(exc) from exc
    return {"goal_id": goal_id, "character_id": payload.character_id, "newly_discovered": newly}


@app.get("/living-world/campaigns/{campaign_id}/events")
def list_events(campaign_id: int, active_only: bool = False) -> list[dict]:
    try:
        events = get_living_world().list_events(campaign_id, active_only=active_only)
    except WORLD_ERRORS as exc:
        raise _http_error(exc) from exc
    return [_event_payload(event) for event in events]


@app.post("/living-world/campaigns/{campaign_id}/events")
def create_event(campaign_id: int, payload: EventCreate) -> dict:
    try:
        event = get_living_world().create_event(campaign_id, **payload.model_dump())
    except WORLD_ERRORS as exc:
        raise _http_error(exc) from exc
    return _event_payload(event)


@app.post("/living-world/events/{event_id}/advance")
def advance_event(event_id: int) -> dict:
    try:
        event = get_living_world().advance_event(event_id)
    except WORLD_ERRORS as exc:
        raise _http_error(exc) from exc
    return _event_payload(event)


@app.post("/living-world/events/{event_id}/resolve")
def resolve_event(event_id: int, payload: EventResolve) -> dict:
    try:
        event = get_living_world().resolve_event(event_id, payload.outcome, payload.description)
    except WORLD_ERRORS as exc:
        raise _http_error(exc) from exc
    return _event_payload(event)


@app.post("/living-world/events/{event_id}/cancel")
def cancel_event(event_id: int, payload: ReasonRequest | None = Body(default=None)) -> dict:
    data = payload or ReasonRequest()
    try:
        event = get_living_world().cancel_event(event_id, data.reason)
    except WORLD_ERRORS as exc:
        raise _http_error(exc) from exc
    return _event_payload(event)


@app.post("/living-world/events/{event_id}/discover")
def discover_event(event_id: int, payload: DiscoverRequest) -> dict:
    try:
        newly = get_living_world().discover_event(event_id, payload.character_id)
    except WORLD_ERRORS as exc:
        raise _http_error(exc) from exc
    return {"event_id": event_id, "character_id": payload.character_id, "newly_discovered": newly}


@app.post("/living-world/events/{event_id}/effects")
def create_effect(event_id: int, payload: EffectCreate) -> dict:
    try:
        effect = get_living_world().create_effect(event_id, **payload.model_dump())
    except WORLD_ERRORS as exc:
        raise _http_error(exc) from exc
    return _effect_payload(effect)


@app.get("/living-world/campaigns/{campaign_id}/effects")
def list_active_effects(
    campaign_id: int, target_type: str | None = None, target_id: int | None = None
) -> list[dict]:
    try:
        effects = get_living_world().active_effects(
            campaign_id, target_type=target_type, target_id=target_id
        )
    except WORLD_ERRORS as exc:
        raise _http_error(exc) from exc
    return [_effect_payload(effect) for effect in effects]


@app.post("/living-world/effects/{effect_id}/reverse")
def reverse_effect(effect_id: int, payload: ReasonRequest | None = Body(default=None)) -> dict:
    data = payload or ReasonRequest()
    try:
        effect = get_living_world().reverse_effect(effect_id, data.reason)
    except WORLD_ERRORS as exc:
        raise _http_error(exc) from exc
    return _effect_payload(effect)


@app.get("/living-world/characters/{character_id}/standings")
def list_standings(character_id: int) -> list[dict]:
    try:
        standings = get_living_world().list_standings(character_id)
    except WORLD_ERRORS as exc:
        raise _http_error(exc) from exc
    return [_standing_payload(standing) for standing in standings]


@app.get("/living-world/standings/{character_id}/{faction_id}")
def get_standing(character_id: int, faction_id: int) -> dict:
    try:
        standing = get_living_world().get_or_create_standing(character_id, faction_id)
    except WORLD_ERRORS as exc:
        raise _http_error(exc) from exc
    return _standing_payload(standing)


@app.post("/living-world/standings/{character_id}/{faction_id}/modify")
def modify_standing(character_id: int, faction_id: int, payload: StandingModify) -> dict:
    try:
        standing, applied = get_living_world().modify_standing(
            character_id, faction_id, payload.delta, payload.deed
        )
    except WORLD_ERRORS as exc:
        raise _http_error(exc) from exc
    return {**_standing_payload(standing), "applied_delta": applied}


@app.post("/living-world/standings/{character_id}/{faction_id}/join")
def join_faction(
    character_id: int, faction_id: int, payload: JoinRequest | None = Body(default=None)
) -> dict:
    data = payload or JoinRequest()
    try:
        standing = get_living_world().join_faction(
            character_id, faction_id, data.membership_level
        )
    except WORLD_ERRORS as exc:
        raise _http_error(exc) from exc
    return _standing_payload(standing)


@app.post("/living-world/standings/{character_id}/{faction_id}/leave")
def leave_faction(character_id: int, faction_id: int) -> dict:
    try:
        standing = get_living_world().leave_faction(character_id, faction_id)
    except WORLD_ERRORS as exc:
        raise _http_error(exc) from exc
    return _standing_payload(standing)


@app.post("/living-world/standings/{character_id}/{faction_id}/quests")
def record_quest(character_id: int, faction_id: int, payload: QuestRecord) -> dict:
    try:
        standing = get_living_world().record_quest(
            character_id, faction_id, payload.quest, payload.standing_reward
        )
    except WORLD_ERRORS as exc:
        raise _http_error(exc) from exc
    return _standing_payload(standing)


@app.post("/living-world/standings/{character_id}/{faction_id}/promises")
def add_promise(character_id: int, faction_id: int, payload: PromiseCreate) -> dict:
    try:
        standing = get_living_world().add_promise(character_id, faction_id, payload.promise)
    except WORLD_ERRORS as exc:
        raise _http_error(exc) from exc
    return _standing_payload(standing)


@app.post("/living-world/standings/{character_id}/{faction_id}/promises/{index}/fulfill")
def fulfill_promise(character_id: int, faction_id: int, index: int) -> dict:
    try:
        standing = get_living_world().fulfill_promise(character_id, faction_id, index)
    except WORLD_ERRORS as exc:
        raise _http_error(exc) from exc
    return _standing_payload(standing)


@app.post("/living-world/standings/{character_id}/{faction_id}/promises/{index}/break")
def break_promise(
    character_id: int,
    faction_id: int,
    index: int,
    payload: ReasonRequest | None = Body(default=None),
) -> dict:
    data = payload or ReasonRequest()
    try:
        standing = get_living_world().break_promise(
            character_id, faction_id, index, data.reason
        )
    except WORLD_ERRORS as exc:
        raise _http_error(exc) from exc
    return _standing_payload(standing)


@app.post("/living-world/standings/{character_id}/{faction_id}/debts")
def add_debt(character_id: int, faction_id: int, payload: DebtCreate) -> dict:
    try:
        standing = get_living_world().add_debt(
            character_id,
            faction_id,
            payload.description,
            debt_type=payload.debt_type,
            direction=payload.direction,
        )
    except WORLD_ERRORS as exc:
        raise _http_error(exc) from exc
    return _standing_payload(standing)


@app.post("/living-world/standings/{character_id}/{faction_id}/debts/{index}/settle")
def settle_debt(
    character_id: int,
    faction_id: int,
    index: int,
    payload: DebtSettle | None = Body(default=None),
) -> dict:
    data = payload or DebtSettle()
    try:
        standing = get_living_world().settle_debt(
            character_id, faction_id, index, data.how_settled
        )
    except WORLD_ERRORS as exc:
        raise _http_error(exc) from exc
    return _standing_payload(standing)
