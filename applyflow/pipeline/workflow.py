"""Status workflow: moves applications through the pipeline.

The status graph is permissive: any of the seven statuses may follow any
other, including itself. Only membership in ApplicationStatus is checked.
Offer and rejected are terminal by convention (the board stops asking for a
next step) but a transition out of them is valid.

Each operation runs as one SQLite transaction. When a transition carries a
next step, the follow-up todo is written in the same transaction as the
status change, so either both land or neither does.
"""

import logging
import sqlite3
from datetime import date, datetime, timedelta

from applyflow.core import db
from applyflow.core.errors import InvalidArgumentError, NotFoundError
from applyflow.core.schemas import Application, ApplicationStatus, NextStepUpdate, TodoPriority

logger = logging.getLogger(__name__)

_ONE_TICK = timedelta(microseconds=1)


def parse_status(value: str | ApplicationStatus | None) -> ApplicationStatus:
    """Return the status named by ``value`` or raise InvalidArgumentError."""
    try:
        return ApplicationStatus(value)
    except ValueError:
        msg = "Valid status is required"
        raise InvalidArgumentError(msg) from None


def follow_up_description(status: ApplicationStatus) -> str:
    return f"Complete next steps for {status.value} status"


def get_application(conn: sqlite3.Connection, application_id: str, user_id: str) -> Application:
    app = db.get_application(conn, application_id, user_id)
    if app is None:
        msg = "Application not found"
        raise NotFoundError(msg)
    return app


def list_applications(conn: sqlite3.Connection, user_id: str) -> list[Application]:
    return db.list_applications(conn, user_id)


def create_application(
    conn: sqlite3.Connection,
    user_id: str,
    vacancy_id: str,
    status: str | ApplicationStatus = ApplicationStatus.SAVED,
    next_step: str | None = None,
    next_step_due_date: date | None = None,
    *,
    now: datetime | None = None,
) -> Application:
    """Open another pipeline instance for an existing vacancy of the same user."""
    if not vacancy_id:
        msg = "Vacancy ID is required"
        raise InvalidArgumentError(msg)
    new_status = parse_status(status)
    now = now or datetime.now()
    application_id = db.generate_id()

    with conn:
        if db.get_vacancy(conn, vacancy_id, user_id) is None:
            msg = "Vacancy not found"
            raise NotFoundError(msg)
        db.insert_application(
            conn, application_id, user_id, vacancy_id, new_status.value,
            next_step, next_step_due_date, now,
        )
        if new_status is ApplicationStatus.APPLIED:
            db.update_application(
                conn, application_id, user_id, {"applied_date": now.date()}, now,
            )

    logger.info("Created application %s for vacancy %s (%s)", application_id, vacancy_id, new_status.value)
    return get_application(conn, application_id, user_id)


def transition_status(
    conn: sqlite3.Connection,
    application_id: str,
    user_id: str,
    new_status: str | ApplicationStatus,
    next_step: str | None = None,
    next_step_due_date: date | None = None,
    *,
    now: datetime | None = None,
) -> Application:
    """Move an application to ``new_status``.

    The change timestamp is stamped on every call, even when the status does
    not change, and always moves forward. ``applied_date`` is set the first
    time the application reaches "applied" and is never cleared. Omitted
    next-step fields keep their stored values; a blank ``next_step`` counts
    as omitted. Use update_next_step to clear them.

    A non-blank ``next_step`` also creates a medium-priority todo linked to
    the application, titled with the trimmed text.

    Raises:
        InvalidArgumentError: ``new_status`` is not a known status.
        NotFoundError: the application does not exist or belongs to someone else.
    """
    status = parse_status(new_status)
    now = now or datetime.now()

    with conn:
        current = db.get_application(conn, application_id, user_id)
        if current is None:
            msg = "Application not found"
            raise NotFoundError(msg)

        changed_at = now
        if changed_at <= current.last_status_change_at:
            changed_at = current.last_status_change_at + _ONE_TICK

        values: dict[str, object] = {
            "status": status.value,
            "last_status_change_at": changed_at,
        }
        if status is ApplicationStatus.APPLIED and current.applied_date is None:
            values["applied_date"] = now.date()
        title = (next_step or "").strip()
        if title:
            values["next_step"] = next_step
        if next_step_due_date is not None:
            values["next_step_due_date"] = next_step_due_date

        db.update_application(conn, application_id, user_id, values, now)

        if title:
            db.insert_todo(
                conn,
                db.generate_id(),
                user_id,
                application_id,
                title,
                follow_up_description(status),
                TodoPriority.MEDIUM.value,
                next_step_due_date,
                now,
            )
            logger.debug("Follow-up todo '%s' created for application %s", title, application_id)

    logger.info(
        "Application %s: %s -> %s", application_id, current.status.value, status.value,
    )
    return get_application(conn, application_id, user_id)


def update_next_step(
    conn: sqlite3.Connection,
    application_id: str,
    user_id: str,
    payload: NextStepUpdate,
    *,
    now: datetime | None = None,
) -> Application:
    """Edit the next step without a status change.

    Only fields present in ``payload`` are written, so an explicit null
    clears a value. The status change timestamp is left alone.
    """
    values = payload.model_dump(exclude_unset=True)
    now = now or datetime.now()

    with conn:
        if db.get_application(conn, application_id, user_id) is None:
            msg = "Application not found"
            raise NotFoundError(msg)
        if values:
            db.update_application(conn, application_id, user_id, values, now)

    return get_application(conn, application_id, user_id)


def delete_application(conn: sqlite3.Connection, application_id: str, user_id: str) -> None:
    """Delete an application. Its vacancy stays; linked todos are unlinked."""
    with conn:
        if db.delete_application(conn, application_id, user_id) == 0:
            msg = "Application not found"
            raise NotFoundError(msg)
    logger.info("Deleted application %s", application_id)
