from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from world.errors import InvalidStateError
from world.types import Visibility, clamp

MIN_STANDING = -100
MAX_STANDING = 100
BROKEN_PROMISE_PENALTY = -15
DEFAULT_MEMBERSHIP_LEVEL = "initiate"

STANDING_BANDS: list[tuple[int, str]] = [
    (80, "exalted"),
    (60, "revered"),
    (40, "honored"),
    (20, "friendly"),
    (0, "neutral"),
    (-20, "unfriendly"),
    (-40, "hostile"),
    (-60, "hated"),
]
LOWEST_LABEL = "enemy"


def standing_label(value: int) -> str:
    clamped = clamp(value, MIN_STANDING, MAX_STANDING)
    for threshold, label in STANDING_BANDS:
        if clamped >= threshold:
            return label
    return LOWEST_LABEL


class Discoverable(Protocol):
    visibility: Visibility
    discovered_by: set[int]


def is_visible_to(item: Discoverable, character_id: int) -> bool:
    return item.visibility is Visibility.PUBLIC or character_id in item.discovered_by


@dataclass
class FactionStanding:
    character_id: int
    faction_id: int
    standing: int = 0
    is_member: bool = False
    membership_level: str | None = None
    rank: str | None = None
    joined_on_day: int | None = None
    deeds_for: list[dict] = field(default_factory=list)
    deeds_against: list[dict] = field(default_factory=list)
    pending_promises: list[dict] = field(default_factory=list)
    pending_debts: list[dict] = field(default_factory=list)
    quests_completed: list[dict] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.standing = clamp(self.standing, MIN_STANDING, MAX_STANDING)

    @property
    def label(self) -> str:
        return standing_label(self.standing)

    def modify(self, delta: int, deed: dict | None = None, *, day: int) -> int:
        """Applies ``delta`` within the standing bounds and returns the applied change."""
        previous = self.standing
        self.standing = clamp(previous + int(delta), MIN_STANDING, MAX_STANDING)
        if deed:
            entry = {**deed, "day": day, "delta": int(delta)}
            if delta >= 0:
                self.deeds_for.append(entry)
            else:
                self.deeds_against.append(entry)
        return self.standing - previous

    def join(self, membership_level: str | None = None, *, day: int) -> None:
        self.is_member = True
        self.membership_level = membership_level or DEFAULT_MEMBERSHIP_LEVEL
        self.joined_on_day = day

    def leave(self) -> None:
        if not self.is_member:
            raise InvalidStateError("Character is not a member of this faction.")
        self.is_member = False
        self.membership_level = None
        self.rank = None

    def record_quest(self, quest: dict, *, day: int) -> None:
        self.quests_completed.append({**quest, "day": day})

    def add_promise(self, promise: str, *, day: int) -> int:
        self.pending_promises.append({"promise": promise, "status": "pending", "day": day})
        return len(self.pending_promises) - 1

    def fulfill_promise(self, index: int, *, day: int) -> dict:
        entry = self._pending_entry(self.pending_promises, index, "promise")
        entry["status"] = "fulfilled"
        entry["settled_on_day"] = day
        return entry

    def break_promise(self, index: int, reason: str | None = None, *, day: int) -> dict:
        entry = self._pending_entry(self.pending_promises, index, "promise")
        entry["status"] = "broken"
        entry["settled_on_day"] = day
        entry["reason"] = reason
        self.modify(BROKEN_PROMISE_PENALTY, {"description": "Broke a promise"}, day=day)
        return entry

    def add_debt(
        self,
        description: str,
        *,
        day: int,
        debt_type: str = "favor",
        direction: str = "faction_owes_character",
    ) -> int:
        if direction not in {"faction_owes_character", "character_owes_faction"}:
            raise InvalidStateError(f"Invalid debt direction: {direction}")
        self.pending_debts.append(
            {
                "type": debt_type,
                "description": description,
                "direction": direction,
                "status": "pending",
                "day": day,
            }
        )
        return len(self.pending_debts) - 1

    def settle_debt(self, index: int, how_settled: str | None = None, *, day: int) -> dict:
        entry = self._pending_entry(self.pending_debts, index, "debt")
        entry["status"] = "settled"
        entry["settled_on_day"] = day
        entry["how_settled"] = how_settled
        return entry

    @staticmethod
    def _pending_entry(entries: list[dict], index: int, kind: str) -> dict:
        if index < 0 or index >= len(entries):
            raise InvalidStateError(f"Unknown {kind}: {index}")
        entry = entries[index]
        if entry.get("status") != "pending":
            raise InvalidStateError(f"The {kind} is already settled.")
        return entry
