from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

import config  # type: ignore[import]

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class ValidationError(ValueError):
    """Input rejected before any remote call is made."""

    @property
    def message(self) -> str:
        return str(self)


def validate_email(email: Optional[str]) -> bool:
    return bool(email) and EMAIL_RE.match(email) is not None


def validate_password(password: Optional[str]) -> bool:
    return bool(password) and len(password) >= 6


def validate_team_name(team_name: Optional[str]) -> bool:
    return bool(team_name) and 3 <= len(team_name) <= 30


def check_registration(team_name: str, email: str, password: str) -> None:
    if not validate_team_name((team_name or "").strip()):
        raise ValidationError("Team name must be between 3 and 30 characters")
    if not validate_email((email or "").strip()):
        raise ValidationError("Invalid email")
    if not validate_password(password):
        raise ValidationError("Password must have at least 6 characters")


def price_in_range(price: float) -> bool:
    return config.PRICE_MIN <= price <= config.PRICE_MAX


def check_player(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Normalise and validate a player payload (name, position, team, price,
    optional photo_url / active). Returns the cleaned dict.
    """
    name = (data.get("name") or "").strip()
    team = (data.get("team") or "").strip()
    position = (data.get("position") or "").strip().upper()
    price = data.get("price")

    if not name or not team or not position or price is None:
        raise ValidationError("Name, position, team and price are required")
    if position not in config.POSITIONS:
        raise ValidationError(
            f"Unknown position {position!r}; expected one of {', '.join(config.POSITIONS)}"
        )
    try:
        price = float(price)
    except (TypeError, ValueError):
        raise ValidationError("Price must be a number") from None
    if not price_in_range(price):
        raise ValidationError(
            f"Price must be between C$ {config.PRICE_MIN:.2f} and C$ {config.PRICE_MAX:.2f}"
        )

    cleaned: Dict[str, Any] = {
        "name": name,
        "position": position,
        "team": team,
        "price": round(price, 2),
        "photo_url": (data.get("photo_url") or "").strip() or None,
    }
    if "active" in data and data["active"] is not None:
        cleaned["active"] = bool(data["active"])
    return cleaned


def check_team_squad(team_name: str, players: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Validate a whole squad registered at once: exactly one goalkeeper, at
    least one player in each other role, every price in range.
    """
    team_name = (team_name or "").strip()
    if not team_name:
        raise ValidationError("Team name is required")

    cleaned = [check_player({**p, "team": team_name}) for p in players]

    counts = {pos: 0 for pos in config.POSITIONS}
    for p in cleaned:
        counts[p["position"]] += 1
    if counts["GOL"] != 1:
        raise ValidationError("A team needs exactly 1 goalkeeper (GOL)")
    for pos in ("FIX", "ALA", "PIV"):
        if counts[pos] < 1:
            raise ValidationError(f"A team needs at least 1 {config.POSITION_NAMES[pos]} ({pos})")
    return cleaned
