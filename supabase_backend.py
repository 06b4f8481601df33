"""
supabase_backend.py
-------------------

Backend implementation for the hosted Supabase project.

Rows go through PostgREST (`/rest/v1/<table>`), logins through GoTrue
(`/auth/v1/...`). Every call is a single HTTP request on a shared
requests.Session; there is no retry and no caching.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import requests  # type: ignore[import]

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


def _encode_value(value: Any) -> str:
    if value is True:
        return "true"
    if value is False:
        return "false"
    return str(value)


def _quote(value: Any) -> str:
    text = _encode_value(value)
    if any(ch in text for ch in ',()"'):
        return '"' + text.replace('"', '\\"') + '"'
    return text


def _like_pattern(pattern: str) -> str:
    """PostgREST spells the `%` wildcard `*`; escaped characters pass through."""
    out = []
    chars = iter(pattern)
    for ch in chars:
        if ch == "\\":
            out.append(ch + next(chars, ""))
        elif ch == "%":
            out.append("*")
        else:
            out.append(ch)
    return "".join(out)


def encode_filters(filters: Sequence[Filter]) -> List[Tuple[str, str]]:
    """
    Translate (column, op, value) triples into PostgREST query params.

    Examples:
      ("status", "eq", "active")   -> ("status", "eq.active")
      ("id", "in", ["a", "b"])     -> ("id", "in.(a,b)")
      ("name", "ilike", "%joao%")  -> ("name", "ilike.*joao*")
      ("photo_url", "eq", None)    -> ("photo_url", "is.null")
    """
    check_filters(filters)
    params: List[Tuple[str, str]] = []
    for column, op, value in filters:
        if value is None and op in ("eq", "neq"):
            params.append((column, "is.null" if op == "eq" else "not.is.null"))
        elif op == "in":
            params.append((column, "in.(" + ",".join(_quote(v) for v in value) + ")"))
        elif op == "ilike":
            params.append((column, "ilike." + _like_pattern(str(value))))
        else:
            params.append((column, f"{op}.{_encode_value(value)}"))
    return params


def encode_order(order: Sequence[Order]) -> Optional[str]:
    if not order:
        return None
    return ",".join(f"{col}.{'asc' if asc else 'desc'}" for col, asc in order)


class SupabaseBackend(Backend):

    def __init__(self, url: str, api_key: str, timeout: int = config.HTTP_TIMEOUT,
                 session: Optional[requests.Session] = None):
        if not url or not api_key:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set for the supabase backend")
        self.url = url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
                "Accept": "application/json",
                "Content-Type": "application/json",
            }
        )

    # ------------------------------------------------------------------
    # plumbing
    # ------------------------------------------------------------------

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.url}{path}"
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            logger.error("%s %s failed: %s", method, path, exc)
            raise BackendError(f"Could not reach the backend: {exc}") from exc
        return resp

    @staticmethod
    def _error_from(resp: requests.Response) -> BackendError:
        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        message = (
            body.get("message")
            or body.get("msg")
            or body.get("error_description")
            or body.get("error")
            or resp.text[:200]
            or f"HTTP {resp.status_code}"
        )
        code = body.get("code") or body.get("error_code")
        return BackendError(str(message), str(code) if code is not None else None)

    def _rest(self, method: str, table: str, **kwargs) -> requests.Response:
        resp = self._request(method, f"/rest/v1/{table}", **kwargs)
        if not resp.ok:
            err = self._error_from(resp)
            logger.error("%s %s -> HTTP %s: %s", method, table, resp.status_code, err.message)
            raise err
        return resp

    # ------------------------------------------------------------------
    # auth
    # ------------------------------------------------------------------

    def authenticate(self, email: str, password: str) -> AuthSession:
        resp = self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        if resp.status_code in (400, 401):
            raise BackendError("Invalid email or password", INVALID_CREDENTIALS)
        if not resp.ok:
            raise self._error_from(resp)
        body = resp.json()
        user = body.get("user") or {}
        return AuthSession(
            user_id=str(user.get("id")),
            email=user.get("email", email),
            access_token=body.get("access_token"),
        )

    def sign_up(self, email: str, password: str) -> AuthSession:
        resp = self._request(
            "POST",
            "/auth/v1/signup",
            json={"email": email, "password": password},
        )
        if not resp.ok:
            err = self._error_from(resp)
            if "already" in err.message.lower() or err.code == "user_already_exists":
                raise BackendError("Email already registered", DUPLICATE_KEY)
            logger.error("sign_up failed -> HTTP %s: %s", resp.status_code, err.message)
            raise err
        body = resp.json()
        # With e-mail confirmation enabled GoTrue answers with the bare user;
        # otherwise with a full session.
        user = body.get("user") or body
        if not user.get("id"):
            raise BackendError("Sign-up response did not include a user id")
        return AuthSession(
            user_id=str(user["id"]),
            email=user.get("email", email),
            access_token=body.get("access_token"),
        )

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
        params: List[Tuple[str, str]] = [("select", "*")]
        params.extend(encode_filters(filters))
        order_param = encode_order(order)
        if order_param:
            params.append(("order", order_param))
        if limit is not None:
            params.append(("limit", str(int(limit))))
        return self._rest("GET", table, params=params).json()

    def insert_rows(self, table: str, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if not rows:
            return []
        resp = self._rest(
            "POST",
            table,
            json=rows,
            headers={"Prefer": "return=representation"},
        )
        return resp.json()

    def update_rows(self, table: str, patch: Dict[str, Any], filters: Sequence[Filter]) -> None:
        self._rest(
            "PATCH",
            table,
            params=encode_filters(filters),
            json=patch,
            headers={"Prefer": "return=minimal"},
        )

    def delete_rows(self, table: str, filters: Sequence[Filter]) -> None:
        self._rest(
            "DELETE",
            table,
            params=encode_filters(filters),
            headers={"Prefer": "return=minimal"},
        )
