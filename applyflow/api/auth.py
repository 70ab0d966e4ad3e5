"""In-memory session tokens for the HTTP API.

Sign-in has no password: an email is exchanged for a bearer token that
identifies the user on every later request. Sessions do not survive a
restart.
"""

import logging
import secrets
from datetime import datetime, timedelta

logger = logging.getLogger(__name__)


class SessionStore:
    """Maps bearer tokens to user ids until they expire.

    Sync route dependencies run in a threadpool, so removals use ``pop``
    and tolerate a token that another request already dropped.

    Usage::

        sessions = SessionStore(timedelta(days=7))
        token = sessions.create(user.id)
        user_id = sessions.resolve(token)  # None once expired or destroyed
    """

    def __init__(self, ttl: timedelta) -> None:
        self._ttl = ttl
        self._sessions: dict[str, tuple[str, datetime]] = {}

    def create(self, user_id: str, *, now: datetime | None = None) -> str:
        now = now or datetime.now()
        self.purge_expired(now=now)
        token = secrets.token_urlsafe(32)
        self._sessions[token] = (user_id, now + self._ttl)
        logger.debug("Session opened for user %s", user_id)
        return token

    def resolve(self, token: str, *, now: datetime | None = None) -> str | None:
        """Return the user id behind ``token``, or None if unknown or expired."""
        entry = self._sessions.get(token)
        if entry is None:
            return None
        user_id, expires_at = entry
        if (now or datetime.now()) > expires_at:
            self._sessions.pop(token, None)
            logger.debug("Session for user %s expired", user_id)
            return None
        return user_id

    def purge_expired(self, *, now: datetime | None = None) -> int:
        """Drop every expired session and return how many were dropped."""
        now = now or datetime.now()
        expired = [t for t, (_, expires_at) in list(self._sessions.items()) if now > expires_at]
        for token in expired:
            self._sessions.pop(token, None)
        return len(expired)

    def destroy(self, token: str) -> None:
        self._sessions.pop(token, None)

    def __len__(self) -> int:
        return len(self._sessions)
