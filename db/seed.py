import json
import logging
import sys
from pathlib import Path
from typing import Any

SCRIPT_DIR = Path(__file__).resolve().parent
sys.path = [path for path in sys.path if Path(path).resolve() != SCRIPT_DIR]

REPO_ROOT = Path(__file__).resolve().parents[1]
BACKEND_DIR = REPO_ROOT / "backend"
sys.path.insert(0, str(REPO_ROOT))
sys.path.insert(0, str(BACKEND_DIR))

from db import SessionLocal  # noqa: E402
from models import Campaign, Character, Faction  # noqa: E402
from world.living_world import LivingWorld  # noqa: E402
from world.sql_store import SqlWorldStore  # noqa: E402

logger = logging.getLogger("seed")

SEED_FILE = SCRIPT_DIR / "seed_data" / "living_world.json"


def load_json(path: Path) -> Any | None:
    if not path.exists():
        logger.warning("Missing %s, skipping.", path)
        return None
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def seed_campaign(session, data: dict) -> tuple[int, bool]:
    """Returns the campaign id and whether its world still needs seeding."""
    name = data.get("name") or "Demo Campaign"
    campaign = session.query(Campaign).filter_by(name=name).first()
    if campaign is not None:
        has_factions = (
            session.query(Faction.id).filter_by(campaign_id=campaign.id).first() is not None
        )
        return campaign.id, not has_factions
    campaign = Campaign(name=name, world_day=int(data.get("world_day", 0)))
    session.add(campaign)
    session.flush()
    for item in data.get("characters", []):
        if not isinstance(item, dict) or "name" not in item:
            continue
        character = Character(campaign_id=campaign.id, name=item["name"])
        session.add(character)
    session.commit()
    return campaign.id, True


def seed_world(world: LivingWorld, campaign_id: int, data: dict) -> None:
    faction_ids: dict[str, int] = {}
    for item in data.get("factions", []):
        goals = item.pop("goals", [])
        faction = world.create_faction(campaign_id, **item)
        faction_ids[faction.name] = faction.id
        for goal in goals:
            world.create_goal(faction.id, **goal)
    for item in data.get("relationships", []):
        world.set_relationship(
            faction_ids[item["faction"]], faction_ids[item["other"]], int(item["value"])
        )
    for item in data.get("events", []):
        effects = item.pop("effects", [])
        event = world.create_event(campaign_id, **item)
        for effect in effects:
            world.create_effect(event.id, **effect)


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    data = load_json(SEED_FILE)
    if not isinstance(data, dict):
        return
    with SessionLocal() as session:
        campaign_id, needs_world = seed_campaign(session, data.get("campaign", {}))
    if not needs_world:
        logger.info("Campaign %s already seeded.", campaign_id)
        return
    seed_world(LivingWorld(SqlWorldStore(SessionLocal)), campaign_id, data)
    logger.info("Seeded campaign %s.", campaign_id)


if __name__ == "__main__":
    main()
