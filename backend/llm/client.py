from __future__ import annotations

import json
import os
from typing import Any, Sequence

import requests
from pydantic import BaseModel

from llm.schemas import EventProposal, GoalProposal
from world.errors import GenerationUnavailable
from world.events import WorldEvent
from world.goals import Faction, FactionGoal

GOAL_SCHEMA = (
    "{"
    '"title": "string", '
    '"description": "string", '
    '"goal_type": "expansion|defense|economic|political|military|covert|religious|magical", '
    '"urgency": "low|normal|high|critical", '
    '"stakes_level": "minor|moderate|major|catastrophic", '
    '"visibility": "public|rumored|secret", '
    '"progress_max": 100, '
    '"success_consequences": "string", '
    '"failure_consequences": "string"'
    "}"
)

EVENT_SCHEMA = (
    "{"
    '"title": "string", '
    '"description": "string", '
    '"event_type": "political|economic|military|natural|magical|religious|social|conspiracy|threat", '
    '"scope": "local|regional|continental|global", '
    '"visibility": "public|rumored|secret", '
    '"stages": ["string"], '
    '"stage_descriptions": ["string"], '
    '"expected_duration_days": 0, '
    '"possible_outcomes": ["string"], '
    '"player_intervention_options": ["string"], '
    '"affected_faction_ids": [0], '
    '"effects": [{"effect_type": "string", "description": "string", '
    '"target_type": "location|faction|character|npc|campaign", "target_id": 0, '
    '"parameters": {"any": "json"}, "duration": "string"}]'
    "}"
)


class LLMClientError(GenerationUnavailable):
    pass


class OllamaGateway:
    """Generation gateway backed by a local Ollama chat model."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        model: str | None = None,
        timeout: int | None = None,
        max_attempts: int = 3,
    ) -> None:
        self.base_url = (base_url or os.getenv("OLLAMA_URL") or "http://localhost:11434").rstrip(
            "/"
        )
        self.model = model or os.getenv("OLLAMA_MODEL") or "gpt-oss:20b"
        if timeout is None:
            timeout = int(os.getenv("OLLAMA_TIMEOUT", "30"))
        self.timeout = timeout
        self.max_attempts = max_attempts

    def generate_faction_goal(
        self,
        faction: Faction,
        *,
        other_factions: Sequence[Faction] = (),
        existing_goals: Sequence[FactionGoal] = (),
    ) -> GoalProposal:
        context = {
            "faction": _faction_context(faction),
            "other_factions": [_faction_context(item) for item in other_factions],
            "existing_goals": [
                {
                    "title": goal.title,
                    "goal_type": goal.goal_type.value,
                    "status": goal.status.value,
                }
                for goal in existing_goals
            ],
        }
        return self._propose(
            GoalProposal,
            "You invent one new goal for a faction in a tabletop campaign world.",
            GOAL_SCHEMA,
            context,
            temperature=0.8,
        )

    def generate_world_event(
        self,
        campaign_id: int,
        *,
        factions: Sequence[Faction] = (),
        active_events: Sequence[WorldEvent] = (),
        event_type: str | None = None,
    ) -> EventProposal:
        context = {
            "campaign_id": campaign_id,
            "requested_event_type": event_type,
            "factions": [_faction_context(item) for item in factions],
            "active_events": [
                {"title": event.title, "event_type": event.event_type.value}
                for event in active_events
            ],
        }
        return self._propose(
            EventProposal,
            "You invent one world event for a tabletop campaign world. "
            "Use faction ids only from the provided factions.",
            EVENT_SCHEMA,
            context,
            temperature=0.8,
        )

    def generate_faction_triggered_event(
        self,
        faction: Faction,
        goal: FactionGoal,
    ) -> EventProposal:
        context = {
            "faction": _faction_context(faction),
            "goal": {
                "title": goal.title,
                "description": goal.description,
                "goal_type": goal.goal_type.value,
                "stakes_level": goal.stakes_level.value,
                "progress_percent": goal.percent,
                "status": goal.status.value,
                "success_consequences": goal.success_consequences,
            },
        }
        return self._propose(
            EventProposal,
            "You describe the world event caused by a faction pursuing a goal.",
            EVENT_SCHEMA,
            context,
            temperature=0.7,
        )

    def _propose(
        self,
        schema: type[BaseModel],
        instruction: str,
        shape: str,
        context: dict[str, Any],
        *,
        temperature: float,
    ) -> Any:
        attempts = 0
        last_error: str | None = None
        while attempts < self.max_attempts:
            attempts += 1
            try:
                content = self._chat(
                    messages=_proposal_messages(instruction, shape, context, attempts, last_error),
                    temperature=temperature,
                    format="json",
                )
                return _parse_proposal(schema, content)
            except (requests.RequestException, ValueError, LLMClientError) as exc:
                last_error = str(exc)
        raise LLMClientError(f"Failed to build {schema.__name__} JSON: {last_error}")

    def _chat(
        self,
        *,
        messages: list[dict[str, str]],
        temperature: float,
        format: str | None = None,
    ) -> str:
        url = f"{self.base_url}/api/chat"
        payload = {
            "model": self.model,
            "messages": messages,
            "stream": False,
            "options": {"temperature": temperature},
        }
        if format:
            payload["format"] = format
        response = requests.post(url, json=payload, timeout=self.timeout)
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            raise LLMClientError("Invalid response from Ollama.")
        message = data.get("message")
        if not isinstance(message, dict):
            raise LLMClientError("Invalid response from Ollama.")
        content = message.get("content")
        if not isinstance(content, str):
            raise LLMClientError("Invalid response from Ollama.")
        return content


def _faction_context(faction: Faction) -> dict[str, Any]:
    return {
        "id": faction.id,
        "name": faction.name,
        "description": faction.description,
        "scope": faction.scope.value,
        "power_level": faction.power_level,
        "alignment": faction.alignment,
    }


def _proposal_messages(
    instruction: str,
    shape: str,
    context: dict[str, Any],
    attempt: int,
    last_error: str | None,
) -> list[dict[str, str]]:
    system = (
        f"{instruction} "
        f"Return a JSON object matching this schema: {shape}. "
        "Omit keys you have no value for. "
        "No prose, no markdown, no extra keys."
    )
    if attempt > 1 and last_error:
        system += f" Previous output invalid: {last_error}. Return JSON only."
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": json.dumps(context)},
    ]


def _parse_proposal(schema: type[BaseModel], content: str) -> Any:
    payload = _extract_json(content)
    proposal = schema.model_validate(payload)
    if isinstance(proposal, EventProposal) and proposal.stage_descriptions:
        if len(proposal.stage_descriptions) != len(proposal.stages):
            raise LLMClientError("stage_descriptions must match stages.")
    return proposal


def _extract_json(content: str) -> dict[str, Any]:
    try:
        data = json.loads(content)
        if isinstance(data, dict):
            return data
    except json.JSONDecodeError:
        pass

    start = content.find("{")
    end = content.rfind("}")
    if start >= 0 and end > start:
        data = json.loads(content[start : end + 1])
        if isinstance(data, dict):
            return data
    raise LLMClientError("Failed to parse JSON proposal.")
