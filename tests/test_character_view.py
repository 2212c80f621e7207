import json

from world.living_world import LivingWorld
from world.store import MemoryWorldStore


def _campaign():
    store = MemoryWorldStore()
    campaign = store.add_campaign("Ledger")
    hero = store.add_character(campaign.campaign_id, "Ilsa")
    service = LivingWorld(store)
    cid = campaign.campaign_id
    harpers = service.create_faction(cid, name="Harpers", power_level=6)
    zhents = service.create_faction(cid, name="Zhentarim", power_level=7)
    secret = service.create_goal(zhents.id, title="Poison the Well", visibility="secret")
    public = service.create_goal(harpers.id, title="Open a Safehouse", visibility="public")
    rumor = service.create_event(cid, title="Whispers in the Docks", visibility="rumored")
    fair = service.create_event(cid, title="Harvest Fair", visibility="public")
    return service, hero, {
        "harpers": harpers,
        "zhents": zhents,
        "secret": secret,
        "public": public,
        "rumor": rumor,
        "fair": fair,
    }


def test_new_character_sees_only_public_information() -> None:
    service, hero, records = _campaign()

    view = service.get_character_view(hero.id)

    assert view["factions"] == []
    assert [goal["title"] for goal in view["known_goals"]] == ["Open a Safehouse"]
    assert view["known_goals"][0]["faction_name"] == "Harpers"
    assert [event["title"] for event in view["events"]] == ["Harvest Fair"]
    assert view["hidden"] == {"factions": 1, "goals": 1, "events": 1}

    dumped = json.dumps(view)
    assert "Poison the Well" not in dumped
    assert "Whispers in the Docks" not in dumped
    assert "Zhentarim" not in dumped


def test_discovery_reveals_goals_and_events_to_that_character_only() -> None:
    service, hero, records = _campaign()
    other = service.store.add_character(records["harpers"].campaign_id, "Doran")

    assert service.discover_goal(records["secret"].id, hero.id) is True
    assert service.discover_goal(records["secret"].id, hero.id) is False
    assert service.discover_event(records["rumor"].id, hero.id) is True

    view = service.get_character_view(hero.id)
    titles = {goal["title"] for goal in view["known_goals"]}
    assert titles == {"Open a Safehouse", "Poison the Well"}
    assert {event["title"] for event in view["events"]} == {
        "Harvest Fair",
        "Whispers in the Docks",
    }

    other_view = service.get_character_view(other.id)
    assert other_view["hidden"]["goals"] == 1
    assert other_view["hidden"]["events"] == 1


def test_standing_reveals_faction_with_label() -> None:
    service, hero, records = _campaign()
    service.modify_standing(hero.id, records["harpers"].id, 25)

    view = service.get_character_view(hero.id)

    assert view["factions"] == [
        {
            "faction_id": records["harpers"].id,
            "name": "Harpers",
            "scope": "local",
            "standing": 25,
            "label": "friendly",
            "is_member": False,
            "membership_level": None,
            "rank": None,
        }
    ]
    assert view["hidden"]["factions"] == 1


def test_finished_goals_and_events_drop_out_of_view() -> None:
    service, hero, records = _campaign()
    service.abandon_goal(records["public"].id, "No funds")
    service.resolve_event(records["fair"].id, "held", "The fair went well")

    view = service.get_character_view(hero.id)

    assert view["known_goals"] == []
    assert view["events"] == []


def test_faction_named_by_a_public_goal_is_not_counted_hidden() -> None:
    service, hero, records = _campaign()
    cult = service.create_faction(records["harpers"].campaign_id, name="Cult of the Dragon")
    service.create_goal(cult.id, title="Raise the Tyrant", visibility="secret")

    view = service.get_character_view(hero.id)

    named = {goal["faction_name"] for goal in view["known_goals"]}
    assert named == {"Harpers"}
    assert view["hidden"]["factions"] == 2

    dumped = json.dumps(view)
    for hidden in ("Zhentarim", "Cult of the Dragon", "Raise the Tyrant"):
        assert hidden not in dumped
    hidden_ids = {records["zhents"].id, cult.id}
    assert not hidden_ids & {goal["faction_id"] for goal in view["known_goals"]}
