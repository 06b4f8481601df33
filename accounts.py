from __future__ import annotations

import logging
from typing import Optional

from backend import Backend, BackendError, DUPLICATE_KEY, INVALID_CREDENTIALS  # type: ignore[import]
from league import LeagueRepository  # type: ignore[import]
from models import User  # type: ignore[import]
from validation import ValidationError, check_registration  # type: ignore[import]

logger = logging.getLogger(__name__)


class DuplicateAccountError(ValidationError):
    pass


class ProfileMissingError(LookupError):
    pass


def register(backend: Backend, team_name: str, email: str, password: str) -> User:
    """
    Create the login, then the `users` profile row holding team name, balance
    and points.

    If the login already exists but has no profile yet (a previous attempt
    stopped half-way) the profile is created for it; a complete account is
    reported as a duplicate.
    """
    check_registration(team_name, email, password)
    email = email.strip().lower()
    repo = LeagueRepository(backend)

    try:
        session = backend.sign_up(email, password)
    except BackendError as exc:
        if exc.code != DUPLICATE_KEY:
            raise
        try:
            session = backend.authenticate(email, password)
        except BackendError:
            raise DuplicateAccountError("Email already registered") from exc
        if repo.get_user(session.user_id) is not None:
            raise DuplicateAccountError("Email already registered") from exc

    try:
        return repo.create_profile(session, team_name)
    except BackendError as exc:
        if exc.code == DUPLICATE_KEY:
            raise DuplicateAccountError("Email already registered") from exc
        logger.error("Login created for %s but profile insert failed: %s", email, exc.message)
        raise


def login(backend: Backend, email: str, password: str) -> Optional[User]:
    """
    Return the user's profile, or None when the credentials are wrong.
    A valid login without a profile row raises ProfileMissingError.
    """
    try:
        session = backend.authenticate((email or "").strip().lower(), password or "")
    except BackendError as exc:
        if exc.code == INVALID_CREDENTIALS:
            return None
        raise
    user = LeagueRepository(backend).get_user(session.user_id)
    if user is None:
        raise ProfileMissingError(f"No profile found for {session.email}")
    return user
