# roster.py
#
# Budget / roster validation for a lineup.
# - Five starter slots (GOL, FIX, ALA1, ALA2, PIV) count against the budget
# - Three reserve slots take any position and are free, but a reserve may not
#   cost more than the cheapest starter of his position
# - One captain, chosen among the starters
#
# Every change is validated first; the roster is only mutated once the change
# passes, so a rejected change leaves it exactly as it was.

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

import config  # type: ignore[import]
from formatting import format_currency  # type: ignore[import]
from models import Player  # type: ignore[import]

ALL_SLOTS: List[str] = list(config.STARTER_SLOTS) + list(config.RESERVE_SLOTS)


class RosterError(Exception):
    """A roster change was rejected; str(exc) is meant for the user."""

    @property
    def message(self) -> str:
        return str(self)


def is_starter_slot(slot: str) -> bool:
    return slot in config.STARTER_SLOTS


def _empty_slots() -> Dict[str, Optional[Player]]:
    return {slot: None for slot in ALL_SLOTS}


def _money(value: float) -> float:
    return round(value, 2)


@dataclass
class Roster:
    budget_limit: float = config.DEFAULT_BUDGET_LIMIT
    slots: Dict[str, Optional[Player]] = field(default_factory=_empty_slots)
    captain_id: Optional[str] = None

    # ------------------------------------------------------------------
    # read helpers
    # ------------------------------------------------------------------

    def starters(self) -> List[Player]:
        return [p for s, p in self.slots.items() if is_starter_slot(s) and p is not None]

    def reserves(self) -> List[Player]:
        return [p for s, p in self.slots.items() if not is_starter_slot(s) and p is not None]

    def filled_slots(self) -> int:
        return sum(1 for p in self.slots.values() if p is not None)

    def starter_cost(self, exclude_slot: Optional[str] = None) -> float:
        return _money(
            sum(
                p.price
                for s, p in self.slots.items()
                if p is not None and is_starter_slot(s) and s != exclude_slot
            )
        )

    def remaining_budget(self) -> float:
        return _money(self.budget_limit - self.starter_cost())

    def slot_of(self, player_id: str) -> Optional[str]:
        for slot, p in self.slots.items():
            if p is not None and p.id == player_id:
                return slot
        return None

    def cheapest_starter(self, position: str) -> Optional[Player]:
        same = [p for p in self.starters() if p.position == position]
        if not same:
            return None
        return min(same, key=lambda p: p.price)

    @property
    def captain(self) -> Optional[Player]:
        if self.captain_id is None:
            return None
        slot = self.slot_of(self.captain_id)
        return self.slots[slot] if slot else None

    # ------------------------------------------------------------------
    # validation predicates
    # ------------------------------------------------------------------

    def _check_starter(self, slot: str, player: Player) -> None:
        wanted = config.STARTER_SLOTS[slot]
        if player.position != wanted:
            raise RosterError(
                f"{player.name} plays {player.position} and cannot start at {slot}"
            )
        spent = self.starter_cost(exclude_slot=slot)
        new_total = _money(spent + player.price)
        if new_total > _money(self.budget_limit):
            raise RosterError(
                f"Insufficient budget: already spent {format_currency(spent)}, "
                f"{player.name} costs {format_currency(player.price)}, "
                f"total would be {format_currency(new_total)} "
                f"(limit {format_currency(self.budget_limit)}). Only starters count."
            )

    def _check_reserve(self, player: Player) -> None:
        cheapest = self.cheapest_starter(player.position)
        if cheapest is None:
            raise RosterError(
                f"Pick a starting {player.position} before choosing a {player.position} reserve"
            )
        if _money(player.price) > _money(cheapest.price):
            raise RosterError(
                f"A reserve must not cost more than the cheapest starting {player.position}: "
                f"{player.name} costs {format_currency(player.price)}, "
                f"{cheapest.name} costs {format_currency(cheapest.price)}"
            )

    def check_change(self, slot: str, player: Player) -> None:
        """Raise RosterError if putting `player` in `slot` would break a rule."""
        if slot not in self.slots:
            raise RosterError(f"Unknown lineup slot {slot!r}")
        current = self.slot_of(player.id)
        if current is not None and current != slot:
            raise RosterError(f"{player.name} is already in your lineup ({current})")
        if not player.active:
            raise RosterError(f"{player.name} is not available")
        if is_starter_slot(slot):
            self._check_starter(slot, player)
        else:
            self._check_reserve(player)

    # ------------------------------------------------------------------
    # mutations
    # ------------------------------------------------------------------

    def place(self, slot: str, player: Player) -> None:
        self.check_change(slot, player)
        previous = self.slots[slot]
        if previous is not None and previous.id == self.captain_id and previous.id != player.id:
            self.captain_id = None
        self.slots[slot] = player

    def add(self, player: Player, starter: bool = True) -> str:
        """
        Put `player` in the first free slot of the right kind and return it.
        """
        if starter:
            free = [
                s for s, pos in config.STARTER_SLOTS.items()
                if pos == player.position and self.slots[s] is None
            ]
            if not free:
                raise RosterError(f"Position {player.position} is already filled among starters")
        else:
            free = [s for s in config.RESERVE_SLOTS if self.slots[s] is None]
            if not free:
                raise RosterError("No reserve slot left")
        self.place(free[0], player)
        return free[0]

    def remove(self, player_id: str) -> Optional[Player]:
        slot = self.slot_of(player_id)
        if slot is None:
            return None
        removed = self.slots[slot]
        self.slots[slot] = None
        if self.captain_id == player_id:
            self.captain_id = None
        return removed

    def clear(self) -> None:
        self.slots = _empty_slots()
        self.captain_id = None

    def set_captain(self, player_id: Optional[str]) -> None:
        """Toggle the captain; only a starter can wear the armband."""
        if player_id is None or player_id == self.captain_id:
            self.captain_id = None
            return
        slot = self.slot_of(player_id)
        if slot is None or not is_starter_slot(slot):
            raise RosterError("The captain must be one of your starters")
        self.captain_id = player_id

    def check_complete(self) -> None:
        """
        Full check before a lineup is submitted: every starter slot filled,
        captain chosen among them, budget respected, and every reserve still
        valid against the current starters.
        """
        missing = [s for s in config.STARTER_SLOTS if self.slots[s] is None]
        if missing:
            raise RosterError(f"Incomplete lineup: missing starters for {', '.join(missing)}")
        cost = self.starter_cost()
        if cost > _money(self.budget_limit):
            raise RosterError(
                f"Budget exceeded: used {format_currency(cost)}, "
                f"limit {format_currency(self.budget_limit)}"
            )
        for slot in config.RESERVE_SLOTS:
            reserve = self.slots[slot]
            if reserve is not None:
                self._check_reserve(reserve)
        captain = self.captain
        if captain is None or not is_starter_slot(self.slot_of(captain.id) or ""):
            raise RosterError("Choose a captain among your starters")

    # ------------------------------------------------------------------
    # row mapping
    # ------------------------------------------------------------------

    def to_rows(self, fantasy_team_id: str) -> List[Dict[str, Any]]:
        rows = []
        for slot, p in self.slots.items():
            if p is None:
                continue
            rows.append(
                {
                    "fantasy_team_id": fantasy_team_id,
                    "player_id": p.id,
                    "position_role": slot,
                    "is_starter": is_starter_slot(slot),
                    "is_captain": p.id == self.captain_id,
                    "points": 0,
                }
            )
        return rows

    @classmethod
    def from_rows(
        cls,
        rows: Iterable[Mapping[str, Any]],
        players: Mapping[str, Player],
        budget_limit: float = config.DEFAULT_BUDGET_LIMIT,
    ) -> "Roster":
        """
        Rebuild a roster from stored team_players rows without re-validating;
        rows pointing at unknown players or slots are skipped.
        """
        rows = list(rows)
        assignments = {row.get("position_role"): row.get("player_id") for row in rows}
        captain_id = next(
            (str(row.get("player_id")) for row in rows if row.get("is_captain")), None
        )
        return cls.load(assignments, players, captain_id, budget_limit=budget_limit)

    @classmethod
    def load(
        cls,
        assignments: Mapping[str, Optional[str]],
        players: Mapping[str, Player],
        captain_id: Optional[str] = None,
        budget_limit: float = config.DEFAULT_BUDGET_LIMIT,
    ) -> "Roster":
        """
        Fill slots from {slot: player_id} as they are, without any rule check,
        so a lineup that has gone stale (deactivated or repriced players) can
        still be edited. Unknown slots and players are skipped.
        """
        roster = cls(budget_limit=budget_limit)
        for slot, player_id in assignments.items():
            player = players.get(str(player_id)) if player_id else None
            if slot not in roster.slots or player is None:
                continue
            roster.slots[slot] = player
        if captain_id is not None and roster.slot_of(captain_id) is not None:
            roster.captain_id = captain_id
        return roster

    @classmethod
    def build(
        cls,
        assignments: Mapping[str, Optional[str]],
        players: Mapping[str, Player],
        captain_id: Optional[str] = None,
        budget_limit: float = config.DEFAULT_BUDGET_LIMIT,
    ) -> "Roster":
        """
        Build a roster from {slot: player_id}, validating each placement.
        Starters are placed before reserves so reserve checks see them.
        """
        roster = cls(budget_limit=budget_limit)
        ordered = sorted(assignments.items(), key=lambda kv: not is_starter_slot(kv[0]))
        for slot, player_id in ordered:
            if player_id is None:
                continue
            player = players.get(str(player_id))
            if player is None:
                raise RosterError(f"Unknown player {player_id!r}")
            roster.place(slot, player)
        if captain_id is not None:
            roster.set_captain(captain_id)
        return roster
