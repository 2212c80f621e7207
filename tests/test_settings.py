import pytest

from world.settings import LivingWorldSettings


def test_settings_defaults(monkeypatch) -> None:
    for name in (
        "LIVING_WORLD_MAX_SIMULATE_DAYS",
        "LIVING_WORLD_MILESTONE_EVENTS",
        "LIVING_WORLD_RIVAL_REACTIONS",
        "LIVING_WORLD_GENERATE_ON_COMPLETION",
    ):
        monkeypatch.delenv(name, raising=False)
    settings = LivingWorldSettings.from_env()
    assert settings == LivingWorldSettings()
    assert settings.max_simulate_days == 30
    assert settings.generate_on_completion is False


def test_settings_read_environment(monkeypatch) -> None:
    monkeypatch.setenv("LIVING_WORLD_MAX_SIMULATE_DAYS", "10")
    monkeypatch.setenv("LIVING_WORLD_RIVAL_REACTIONS", "off")
    monkeypatch.setenv("LIVING_WORLD_GENERATE_ON_COMPLETION", "No")
    settings = LivingWorldSettings.from_env()
    assert settings.max_simulate_days == 10
    assert settings.rival_reactions is False
    assert settings.generate_on_completion is False
    assert settings.milestone_events is True


def test_settings_reject_bad_values(monkeypatch) -> None:
    monkeypatch.setenv("LIVING_WORLD_MAX_SIMULATE_DAYS", "a week")
    with pytest.raises(ValueError):
        LivingWorldSettings.from_env()
    monkeypatch.setenv("LIVING_WORLD_MAX_SIMULATE_DAYS", "0")
    with pytest.raises(ValueError):
        LivingWorldSettings.from_env()
    monkeypatch.setenv("LIVING_WORLD_MAX_SIMULATE_DAYS", "5")
    monkeypatch.setenv("LIVING_WORLD_MILESTONE_EVENTS", "maybe")
    with pytest.raises(ValueError):
        LivingWorldSettings.from_env()
