from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_MAX_SIMULATE_DAYS = 30

TRUTHY = {"1", "true", "yes", "on"}
FALSY = {"0", "false", "no", "off"}


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    value = raw.strip().lower()
    if value in TRUTHY:
        return True
    if value in FALSY:
        return False
    raise ValueError(f"{name} must be a boolean flag, got {raw!r}")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc
    if value < 1:
        raise ValueError(f"{name} must be at least 1")
    return value


@dataclass(frozen=True)
class LivingWorldSettings:
    """Tick behaviour switches.

    Completion events come from the templates unless
    ``generate_on_completion`` is set. A generated completion event calls
    the gateway inside the tick, under the campaign lock.
    """

    max_simulate_days: int = DEFAULT_MAX_SIMULATE_DAYS
    milestone_events: bool = True
    rival_reactions: bool = True
    generate_on_completion: bool = False

    @classmethod
    def from_env(cls) -> "LivingWorldSettings":
        return cls(
            max_simulate_days=_env_int(
                "LIVING_WORLD_MAX_SIMULATE_DAYS", DEFAULT_MAX_SIMULATE_DAYS
            ),
            milestone_events=_env_flag("LIVING_WORLD_MILESTONE_EVENTS", True),
            rival_reactions=_env_flag("LIVING_WORLD_RIVAL_REACTIONS", True),
            generate_on_completion=_env_flag("LIVING_WORLD_GENERATE_ON_COMPLETION", False),
        )
