"""
backend.py
----------

The contract every persistence backend implements.

The league never talks to a database directly: it reads and writes rows of a
fixed schema through five calls (authenticate, fetch, insert, update, delete).
Filtering, ordering and uniqueness are the backend's job.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import config  # type: ignore[import]

# (column, op, value)
Filter = Tuple[str, str, Any]
# (column, ascending)
Order = Tuple[str, bool]

FILTER_OPS = ("eq", "neq", "gt", "gte", "lt", "lte", "in", "ilike")

DUPLICATE_KEY = "23505"
INVALID_CREDENTIALS = "invalid_credentials"


class BackendError(Exception):
    """Any failure reported by (or while talking to) the backend."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code


@dataclass
class AuthSession:
    user_id: str
    email: str
    access_token: Optional[str] = None


def eq(column: str, value: Any) -> Filter:
    return (column, "eq", value)


def neq(column: str, value: Any) -> Filter:
    return (column, "neq", value)


def in_(column: str, values: Iterable[Any]) -> Filter:
    return (column, "in", list(values))


def ilike(column: str, pattern: str) -> Filter:
    """
    Case-insensitive match; `%` and `_` are wildcards and a backslash makes the
    next character literal (see escape_like).
    """
    return (column, "ilike", pattern)


def escape_like(text: str) -> str:
    """Make user text match literally inside an ilike pattern."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def check_filters(filters: Sequence[Filter]) -> None:
    for column, op, _ in filters:
        if op not in FILTER_OPS:
            raise BackendError(f"Unsupported filter operator {op!r} on {column}")


class Backend(ABC):

    @abstractmethod
    def authenticate(self, email: str, password: str) -> AuthSession:
        """Check credentials; raise BackendError(code=INVALID_CREDENTIALS) on failure."""

    @abstractmethod
    def sign_up(self, email: str, password: str) -> AuthSession:
        """Create a login for email; duplicates raise BackendError(code=DUPLICATE_KEY)."""

    @abstractmethod
    def fetch_rows(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        order: Sequence[Order] = (),
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    def insert_rows(self, table: str, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Insert rows and return them as stored (ids and defaults filled in)."""

    @abstractmethod
    def update_rows(self, table: str, patch: Dict[str, Any], filters: Sequence[Filter]) -> None:
        ...

    @abstractmethod
    def delete_rows(self, table: str, filters: Sequence[Filter]) -> None:
        ...

    def fetch_one(self, table: str, filters: Sequence[Filter] = (),
                  order: Sequence[Order] = ()) -> Optional[Dict[str, Any]]:
        rows = self.fetch_rows(table, filters, order, limit=1)
        return rows[0] if rows else None


def build_backend(kind: Optional[str] = None) -> Backend:
    """
    Build the backend selected by config.BACKEND (or `kind`).
    """
    kind = (kind or config.BACKEND).lower()
    if kind == "supabase":
        from supabase_backend import SupabaseBackend  # type: ignore[import]

        return SupabaseBackend(config.SUPABASE_URL, config.SUPABASE_KEY)
    if kind == "sqlite":
        from sqlite_backend import SqliteBackend  # type: ignore[import]

        return SqliteBackend(config.DB_PATH)
    raise ValueError(f"Unknown backend {kind!r}; expected 'supabase' or 'sqlite'")
