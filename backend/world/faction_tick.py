from __future__ import annotations

import logging
from dataclasses import asdict, dataclass

from world.goals import daily_progress, progress_delta
from world.store import CampaignWorld
from world.types import require_days

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GoalTickResult:
    goal_id: int
    faction_id: int
    title: str
    progress_gained: int
    previous_progress: int
    new_progress: int
    progress_max: int
    completed: bool

    @property
    def previous_percent(self) -> int:
        return self.previous_progress * 100 // self.progress_max

    @property
    def new_percent(self) -> int:
        return self.new_progress * 100 // self.progress_max

    def to_dict(self) -> dict:
        return asdict(self)


def process_faction_tick(world: CampaignWorld, days: int) -> list[GoalTickResult]:
    """Advances every active goal of every active faction by ``days``.

    Completion is stamped with the day inside the tick on which the goal
    reached its maximum. Goals that are already completed or abandoned
    produce no result.
    """
    require_days(days)
    results: list[GoalTickResult] = []
    for faction in world.active_factions():
        for goal in sorted(world.goals_of(faction.id), key=lambda item: item.id):
            if not goal.is_active:
                continue
            previous = goal.progress
            rate = daily_progress(faction.power_level, goal.urgency)
            days_to_finish = -(-(goal.progress_max - previous) // rate)
            gained = goal.advance(
                progress_delta(faction.power_level, goal.urgency, days),
                day=world.world_day + min(days, days_to_finish),
            )
            results.append(
                GoalTickResult(
                    goal_id=goal.id,
                    faction_id=faction.id,
                    title=goal.title,
                    progress_gained=gained,
                    previous_progress=previous,
                    new_progress=goal.progress,
                    progress_max=goal.progress_max,
                    completed=not goal.is_active,
                )
            )
            if not goal.is_active:
                logger.info("Faction %s completed goal %s", faction.name, goal.title)
    return results
