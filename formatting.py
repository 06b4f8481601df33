from __future__ import annotations

from datetime import datetime
from typing import Optional, Union

Number = Union[int, float, str, None]


def format_currency(value: Number) -> str:
    """C$ with a comma decimal separator, e.g. 10.5 -> "C$ 10,50"."""
    if value is None:
        return "C$ 0,00"
    return f"C$ {float(value):.2f}".replace(".", ",")


def format_points(points: Number) -> str:
    if points is None:
        return "0.00"
    return f"{float(points):.2f}"


def format_date(iso: Optional[str]) -> str:
    """ISO timestamp -> "dd/mm/yyyy"; empty input gives ""."""
    if not iso:
        return ""
    return datetime.fromisoformat(iso.replace("Z", "+00:00")).strftime("%d/%m/%Y")
