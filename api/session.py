"""Cookie-based session identity.

There is no server-side session store: the id only scopes the intent
backend's own conversation state. Two cookies hold the id and its expiry
timestamp; both are rewritten on every response.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Mapping, Optional

import structlog
from fastapi import Depends, Response

from libs.common.settings import Settings, get_settings

logger = structlog.get_logger(__name__)

COOKIE_MAX_AGE_SECONDS = 7 * 24 * 60 * 60


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Session:
    session_id: str
    expires_at: datetime
    is_new: bool = False


def _parse_expiry(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        expires_at = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


class SessionManager:
    """Resolves, refreshes and clears the session cookies."""

    def __init__(self, settings: Settings, clock: Callable[[], datetime] = utcnow):
        self.settings = settings
        self.clock = clock

    @property
    def window(self) -> timedelta:
        return timedelta(minutes=self.settings.session_inactivity_minutes)

    def resolve(self, cookies: Mapping[str, str]) -> Session:
        """Reuse the cookie session while it is unexpired, otherwise mint a new one.

        Either way the returned session expires one inactivity window from now.
        """
        now = self.clock()
        session_id = cookies.get(self.settings.session_cookie_name)
        expires_at = _parse_expiry(cookies.get(self.settings.session_expiry_cookie_name))

        if session_id and _is_uuid(session_id) and expires_at and expires_at > now:
            return Session(session_id=session_id, expires_at=now + self.window)

        session = Session(session_id=str(uuid.uuid4()), expires_at=now + self.window, is_new=True)
        logger.info("New session created", had_cookie=bool(session_id))
        return session

    def apply(self, response: Response, session: Session) -> None:
        for name, value in (
            (self.settings.session_cookie_name, session.session_id),
            (self.settings.session_expiry_cookie_name, session.expires_at.isoformat()),
        ):
            response.set_cookie(
                name,
                value,
                max_age=COOKIE_MAX_AGE_SECONDS,
                path="/",
                secure=self.settings.session_cookie_secure,
                httponly=True,
                samesite="strict",
            )

    def clear(self, response: Response) -> None:
        for name in (self.settings.session_cookie_name, self.settings.session_expiry_cookie_name):
            response.delete_cookie(
                name,
                path="/",
                secure=self.settings.session_cookie_secure,
                httponly=True,
                samesite="strict",
            )


def get_session_manager(settings: Settings = Depends(get_settings)) -> SessionManager:
    return SessionManager(settings)
