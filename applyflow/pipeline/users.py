"""User identity: sign-in by email and ownership preconditions.

Users come into existence only through sign-in. Operations that create
owned records take a user id and require it to exist already.
"""

import logging
import sqlite3
from datetime import datetime

from applyflow.core import db
from applyflow.core.errors import InvalidArgumentError, NotFoundError
from applyflow.core.schemas import User

logger = logging.getLogger(__name__)


def normalize_email(email: str | None) -> str:
    value = (email or "").strip().lower()
    if "@" not in value:
        msg = "A valid email is required"
        raise InvalidArgumentError(msg)
    return value


def sign_in(conn: sqlite3.Connection, email: str, *, now: datetime | None = None) -> User:
    """Return the user with this email, creating it on first sign-in.

    There are no passwords; whoever knows the email is that user. When two
    first sign-ins race, the one whose insert is ignored reads back the
    winner's row.
    """
    email = normalize_email(email)
    now = now or datetime.now()
    with conn:
        user = db.get_user_by_email(conn, email)
        if user is not None:
            return user
        user_id = db.generate_id()
        if not db.insert_user(conn, user_id, email, now):
            user = db.get_user_by_email(conn, email)
            if user is None:
                msg = "User not found"
                raise NotFoundError(msg)
            return user
    logger.info("Created user %s", user_id)
    return require_user(conn, user_id)


def require_user(conn: sqlite3.Connection, user_id: str) -> User:
    user = db.get_user(conn, user_id)
    if user is None:
        msg = "User not found"
        raise NotFoundError(msg)
    return user
