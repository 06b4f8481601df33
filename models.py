# models.py

from dataclasses import dataclass
from typing import Any, Dict, Optional


class RoundStatus:
    UPCOMING = "upcoming"
    ACTIVE = "active"
    FINISHED = "finished"

    ALL = (UPCOMING, ACTIVE, FINISHED)


@dataclass
class User:
    id: str
    email: str
    team_name: str
    role: str = "user"           # user, admin
    cartoletas: float = 0.0      # balance in C$
    total_points: float = 0.0

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "User":
        return cls(
            id=str(row["id"]),
            email=row.get("email", ""),
            team_name=row.get("team_name", ""),
            role=row.get("role") or "user",
            cartoletas=float(row.get("cartoletas") or 0.0),
            total_points=float(row.get("total_points") or 0.0),
        )


@dataclass
class Player:
    id: str
    name: str
    position: str            # GOL, FIX, ALA, PIV
    team: str
    price: float
    active: bool = True
    photo_url: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Player":
        return cls(
            id=str(row["id"]),
            name=row.get("name", ""),
            position=row.get("position", ""),
            team=row.get("team", ""),
            price=float(row.get("price") or 0.0),
            active=bool(row.get("active", True)),
            photo_url=row.get("photo_url"),
        )


@dataclass
class Round:
    id: str
    name: str
    status: str = RoundStatus.UPCOMING
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Round":
        return cls(
            id=str(row["id"]),
            name=row.get("name", ""),
            status=row.get("status") or RoundStatus.UPCOMING,
            created_at=row.get("created_at"),
        )


SCOUT_FIELDS = (
    "goals",
    "assists",
    "shots_on_target",
    "saves",
    "clean_sheet",
    "own_goals",
    "red_cards",
    "fouls",
)


