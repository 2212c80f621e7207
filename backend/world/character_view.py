from __future__ import annotations

from world.standings import is_visible_to
from world.store import CampaignWorld


def build_character_view(world: CampaignWorld, character_id: int) -> dict:
    """What one character knows about the campaign world.

    Factions are listed once the character has a standing with them. A
    faction that owns a visible goal is named on that goal and is not
    counted as hidden. Goals and events appear only when they pass ``is_visible_to``.
    Everything else is reported as a count and nothing more.
    """
    world.get_character(character_id)

    factions = []
    for standing in world.standings_of(character_id):
        faction = world.factions.get(standing.faction_id)
        if faction is None:
            continue
        factions.append(
            {
                "faction_id": faction.id,
                "name": faction.name,
                "scope": faction.scope.value,
                "standing": standing.standing,
                "label": standing.label,
                "is_member": standing.is_member,
                "membership_level": standing.membership_level,
                "rank": standing.rank,
            }
        )
    known_faction_ids = {entry["faction_id"] for entry in factions}

    known_goals = []
    hidden_goals = 0
    for goal_id in sorted(world.goals):
        goal = world.goals[goal_id]
        if not goal.is_active:
            continue
        if not is_visible_to(goal, character_id):
            hidden_goals += 1
            continue
        owner = world.factions.get(goal.faction_id)
        known_goals.append(
            {
                "goal_id": goal.id,
                "faction_id": goal.faction_id,
                "faction_name": owner.name if owner else None,
                "title": goal.title,
                "description": goal.description,
                "goal_type": goal.goal_type.value,
                "visibility": goal.visibility.value,
                "progress_percent": goal.percent,
            }
        )
    # A visible goal names its owner, so that faction is known too.
    known_faction_ids.update(entry["faction_id"] for entry in known_goals)

    events = []
    hidden_events = 0
    for event in world.active_events():
        if not is_visible_to(event, character_id):
            hidden_events += 1
            continue
        events.append(
            {
                "event_id": event.id,
                "title": event.title,
                "description": event.description,
                "event_type": event.event_type.value,
                "scope": event.scope.value,
                "visibility": event.visibility.value,
                "current_stage": event.current_stage,
                "stage_name": event.stage_name,
                "stage_description": event.stage_description,
                "player_intervention_options": list(event.player_intervention_options),
            }
        )

    unknown_factions = sum(
        1
        for faction in world.active_factions()
        if faction.id not in known_faction_ids
    )
    return {
        "character_id": character_id,
        "campaign_id": world.campaign_id,
        "world_day": world.world_day,
        "factions": factions,
        "known_goals": known_goals,
        "events": events,
        "hidden": {
            "factions": unknown_factions,
            "goals": hidden_goals,
            "events": hidden_events,
        },
    }
