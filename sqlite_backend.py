"""
sqlite_backend.py
-----------------

The backend contract over a local SQLite file, for development and the
test-suite.

Tables mirror the hosted schema. Logins live in a separate `auth_users` table
with PBKDF2 hashes, the way the hosted auth service keeps them apart from the
`users` profiles. `ilike` folds case with Python's str.casefold (SQLite's own
LIKE only folds ASCII) and honours backslash escapes.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import config  # type: ignore[import]
from backend import (  # type: ignore[import]
    AuthSession,
    Backend,
    BackendError,
    DUPLICATE_KEY,
    Filter,
    INVALID_CREDENTIALS,
    Order,
    check_filters,
)

logger = logging.getLogger(__name__)

# Columns per table; anything else is rejected before it reaches SQL.
TABLES: Dict[str, Tuple[str, ...]] = {
    "users": ("id", "email", "team_name", "role", "cartoletas", "total_points", "created_at"),
    "players": ("id", "name", "position", "team", "price", "active", "photo_url", "created_at"),
    "rounds": ("id", "name", "status", "created_at"),
    "game_settings": ("id", "budget_limit"),
    "fantasy_teams": (
        "id", "user_id", "round_id", "team_name", "budget_used", "total_points", "created_at",
    ),
    "team_players": (
        "id", "fantasy_team_id", "player_id", "position_role", "is_starter", "is_captain", "points",
    ),
    "scouts": (
        "id", "round_id", "player_id", "goals", "assists", "shots_on_target", "saves",
        "clean_sheet", "own_goals", "red_cards", "fouls", "points", "price_before", "created_at",
    ),
}

BOOL_COLUMNS = {"active", "is_starter", "is_captain"}

SCHEMA = """
CREATE TABLE IF NOT EXISTS auth_users (
    id TEXT PRIMARY KEY,
    email TEXT UNIQUE NOT NULL,
    password_hash TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    email TEXT UNIQUE NOT NULL,
    team_name TEXT NOT NULL,
    role TEXT NOT NULL DEFAULT 'user',
    cartoletas REAL NOT NULL DEFAULT 0,
    total_points REAL NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS players (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    position TEXT NOT NULL,
    team TEXT NOT NULL,
    price REAL NOT NULL,
    active INTEGER NOT NULL DEFAULT 1,
    photo_url TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS rounds (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'upcoming',
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS game_settings (
    id TEXT PRIMARY KEY,
    budget_limit REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS fantasy_teams (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    round_id TEXT NOT NULL,
    team_name TEXT,
    budget_used REAL NOT NULL DEFAULT 0,
    total_points REAL NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    UNIQUE (user_id, round_id)
);

CREATE TABLE IF NOT EXISTS team_players (
    id TEXT PRIMARY KEY,
    fantasy_team_id TEXT NOT NULL,
    player_id TEXT NOT NULL,
    position_role TEXT NOT NULL,
    is_starter INTEGER NOT NULL DEFAULT 1,
    is_captain INTEGER NOT NULL DEFAULT 0,
    points REAL NOT NULL DEFAULT 0,
    FOREIGN KEY(fantasy_team_id) REFERENCES fantasy_teams(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS scouts (
    id TEXT PRIMARY KEY,
    round_id TEXT NOT NULL,
    player_id TEXT NOT NULL,
    goals INTEGER NOT NULL DEFAULT 0,
    assists INTEGER NOT NULL DEFAULT 0,
    shots_on_target INTEGER NOT NULL DEFAULT 0,
    saves INTEGER NOT NULL DEFAULT 0,
    clean_sheet INTEGER NOT NULL DEFAULT 0,
    own_goals INTEGER NOT NULL DEFAULT 0,
    red_cards INTEGER NOT NULL DEFAULT 0,
    fouls INTEGER NOT NULL DEFAULT 0,
    points REAL NOT NULL DEFAULT 0,
    price_before REAL,
    created_at TEXT NOT NULL,
    UNIQUE (round_id, player_id)
);
"""

_SQL_OPS = {
    "eq": "=",
    "neq": "!=",
    "gt": ">",
    "gte": ">=",
    "lt": "<",
    "lte": "<=",
}


def _casefold(value: Any) -> Any:
    return value.casefold() if isinstance(value, str) else value


def _now() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


def _hash_password(password: str) -> str:
    """Hash a password using PBKDF2-HMAC-SHA256 with a random salt."""
    salt = secrets.token_bytes(16)
    dk = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, 100_000)
    return salt.hex() + ":" + dk.hex()


def _verify_password(password: str, stored_hash: str) -> bool:
    try:
        salt_hex, hash_hex = stored_hash.split(":", 1)
    except ValueError:
        return False
    salt = bytes.fromhex(salt_hex)
    expected = bytes.fromhex(hash_hex)
    dk = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, 100_000)
    return secrets.compare_digest(dk, expected)


class SqliteBackend(Backend):
    """
    The backend contract over a local SQLite file.

    Mirrors what the hosted backend does for us: generated ids, created_at
    defaults, unique keys reported as code 23505 and the one cascade we rely
    on (deleting a fantasy team deletes its team_players).
    """

    def __init__(self, db_path: Union[str, Path] = config.DB_PATH):
        self.db_path = Path(db_path)
        self.init_db()

    def _get_conn(self) -> sqlite3.Connection:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        # SQLite's own lower() and LIKE only fold ASCII.
        conn.create_function("casefold", 1, _casefold, deterministic=True)
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def init_db(self) -> None:
        conn = self._get_conn()
        try:
            conn.executescript(SCHEMA)
            # Files created before scouts carried the pre-settlement price.
            scout_cols = {r["name"] for r in conn.execute("PRAGMA table_info(scouts)")}
            if "price_before" not in scout_cols:
                conn.execute("ALTER TABLE scouts ADD COLUMN price_before REAL")
            row = conn.execute("SELECT COUNT(*) FROM game_settings").fetchone()
            if row[0] == 0:
                conn.execute(
                    "INSERT INTO game_settings (id, budget_limit) VALUES (?, ?)",
                    (uuid.uuid4().hex, config.DEFAULT_BUDGET_LIMIT),
                )
            conn.commit()
        finally:
            conn.close()

    def _execute(self, sql: str, params: Sequence[Any] = (), many: bool = False) -> List[sqlite3.Row]:
        conn = self._get_conn()
        try:
            if many:
                conn.executemany(sql, params)
                rows: List[sqlite3.Row] = []
            else:
                rows = conn.execute(sql, params).fetchall()
            conn.commit()
            return rows
        except sqlite3.IntegrityError as exc:
            if "UNIQUE" in str(exc).upper():
                raise BackendError(f"Duplicate key: {exc}", DUPLICATE_KEY) from exc
            raise BackendError(str(exc), "23503") from exc
        except sqlite3.Error as exc:
            logger.error("SQLite error running %r: %s", sql, exc)
            raise BackendError(str(exc)) from exc
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # validation of identifiers
    # ------------------------------------------------------------------

    @staticmethod
    def _columns(table: str) -> Tuple[str, ...]:
        try:
            return TABLES[table]
        except KeyError:
            raise BackendError(f"Unknown table {table!r}") from None

    def _check_columns(self, table: str, columns) -> None:
        known = self._columns(table)
        for col in columns:
            if col not in known:
                raise BackendError(f"Unknown column {col!r} on {table}")

    def _where(self, table: str, filters: Sequence[Filter]) -> Tuple[str, List[Any]]:
        check_filters(filters)
        self._check_columns(table, [f[0] for f in filters])
        clauses: List[str] = []
        params: List[Any] = []
        for column, op, value in filters:
            if op == "in":
                values = list(value)
                if not values:
                    clauses.append("0")
                    continue
                clauses.append(f"{column} IN ({', '.join('?' for _ in values)})")
                params.extend(self._to_db(column, v) for v in values)
            elif op == "ilike":
                clauses.append(f"casefold({column}) LIKE casefold(?) ESCAPE '\\'")
                params.append(value)
            elif value is None and op in ("eq", "neq"):
                clauses.append(f"{column} IS {'NOT ' if op == 'neq' else ''}NULL")
            else:
                clauses.append(f"{column} {_SQL_OPS[op]} ?")
                params.append(self._to_db(column, value))
        if not clauses:
            return "", params
        return " WHERE " + " AND ".join(clauses), params

    @staticmethod
    def _to_db(column: str, value: Any) -> Any:
        if column in BOOL_COLUMNS and value is not None:
            return 1 if value else 0
        return value

    @staticmethod
    def _from_db(row: sqlite3.Row) -> Dict[str, Any]:
        out = dict(row)
        for col in BOOL_COLUMNS:
            if col in out and out[col] is not None:
                out[col] = bool(out[col])
        return out

    # ------------------------------------------------------------------
    # auth
    # ------------------------------------------------------------------

    def sign_up(self, email: str, password: str) -> AuthSession:
        user_id = uuid.uuid4().hex
        self._execute(
            "INSERT INTO auth_users (id, email, password_hash, created_at) VALUES (?, ?, ?, ?)",
            (user_id, email.lower(), _hash_password(password), _now()),
        )
        return AuthSession(user_id=user_id, email=email.lower())

    def authenticate(self, email: str, password: str) -> AuthSession:
        rows = self._execute("SELECT * FROM auth_users WHERE email = ?", (email.lower(),))
        if not rows or not _verify_password(password, rows[0]["password_hash"]):
            raise BackendError("Invalid email or password", INVALID_CREDENTIALS)
        return AuthSession(user_id=rows[0]["id"], email=rows[0]["email"])

    # ------------------------------------------------------------------
    # rows
    # ------------------------------------------------------------------

    def fetch_rows(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        order: Sequence[Order] = (),
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        where, params = self._where(table, filters)
        sql = f"SELECT * FROM {table}{where}"
        if order:
            self._check_columns(table, [col for col, _ in order])
            parts = [f"{col} {'ASC' if asc else 'DESC'}" for col, asc in order]
            # Stable tie-break on insertion order, same direction as the first key.
            parts.append(f"rowid {'ASC' if order[0][1] else 'DESC'}")
            sql += " ORDER BY " + ", ".join(parts)
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))
        return [self._from_db(r) for r in self._execute(sql, params)]

    def insert_rows(self, table: str, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        columns = self._columns(table)
        stored: List[Dict[str, Any]] = []
        for row in rows:
            self._check_columns(table, row.keys())
            full = dict(row)
            full.setdefault("id", uuid.uuid4().hex)
            if "created_at" in columns:
                full.setdefault("created_at", _now())
            stored.append(full)
        if not stored:
            return []

        # Group by key set so each batch is one executemany.
        by_keys: Dict[Tuple[str, ...], List[Dict[str, Any]]] = {}
        for full in stored:
            by_keys.setdefault(tuple(sorted(full.keys())), []).append(full)
        for keys, batch in by_keys.items():
            sql = (
                f"INSERT INTO {table} ({', '.join(keys)}) "
                f"VALUES ({', '.join('?' for _ in keys)})"
            )
            params = [tuple(self._to_db(k, r[k]) for k in keys) for r in batch]
            self._execute(sql, params, many=True)

        ids = [r["id"] for r in stored]
        fetched = {r["id"]: r for r in self.fetch_rows(table, [("id", "in", ids)])}
        return [fetched[i] for i in ids if i in fetched]

    def update_rows(self, table: str, patch: Dict[str, Any], filters: Sequence[Filter]) -> None:
        if not patch:
            return
        self._check_columns(table, patch.keys())
        where, params = self._where(table, filters)
        assignments = ", ".join(f"{col} = ?" for col in patch)
        values = [self._to_db(col, v) for col, v in patch.items()]
        self._execute(f"UPDATE {table} SET {assignments}{where}", values + params)

    def delete_rows(self, table: str, filters: Sequence[Filter]) -> None:
        where, params = self._where(table, filters)
        self._execute(f"DELETE FROM {table}{where}", params)
