"""Todos and contacts: follow-up records that hang off applications."""

import logging
import sqlite3
from datetime import datetime

from applyflow.core import db
from applyflow.core.errors import InvalidArgumentError, NotFoundError
from applyflow.core.schemas import (
    Contact,
    ContactCreate,
    ContactRole,
    Todo,
    TodoCreate,
    TodoPriority,
    TodoUpdate,
)
from applyflow.pipeline.users import require_user

logger = logging.getLogger(__name__)


def parse_priority(value: str | None) -> str:
    if not value:
        return TodoPriority.MEDIUM.value
    try:
        return TodoPriority(value).value
    except ValueError:
        msg = "Invalid priority"
        raise InvalidArgumentError(msg) from None


def _require_application(conn: sqlite3.Connection, application_id: str, user_id: str) -> None:
    if db.get_application(conn, application_id, user_id) is None:
        msg = "Application not found"
        raise NotFoundError(msg)


# ---------------------------------------------------------------------------
# Todos
# ---------------------------------------------------------------------------


def create_todo(
    conn: sqlite3.Connection,
    user_id: str,
    payload: TodoCreate,
    *,
    now: datetime | None = None,
) -> Todo:
    title = (payload.title or "").strip()
    if not title:
        msg = "Title is required"
        raise InvalidArgumentError(msg)
    priority = parse_priority(payload.priority)
    now = now or datetime.now()
    todo_id = db.generate_id()

    with conn:
        require_user(conn, user_id)
        if payload.application_id:
            _require_application(conn, payload.application_id, user_id)
        db.insert_todo(
            conn,
            todo_id,
            user_id,
            payload.application_id or None,
            title,
            payload.description or "",
            priority,
            payload.due_date,
            now,
        )

    logger.debug("Created todo %s", todo_id)
    return get_todo(conn, todo_id, user_id)


def get_todo(conn: sqlite3.Connection, todo_id: str, user_id: str) -> Todo:
    todo = db.get_todo(conn, todo_id, user_id)
    if todo is None:
        msg = "Todo not found"
        raise NotFoundError(msg)
    return todo


def list_todos(
    conn: sqlite3.Connection,
    user_id: str,
    application_id: str | None = None,
) -> list[Todo]:
    return db.list_todos(conn, user_id, application_id)


def update_todo(
    conn: sqlite3.Connection,
    todo_id: str,
    user_id: str,
    payload: TodoUpdate,
    *,
    now: datetime | None = None,
) -> Todo:
    """Write only the fields set on ``payload``.

    Title, completed and priority cannot be nulled; a null for them is ignored.
    """
    values = payload.model_dump(exclude_unset=True)
    for field in ("title", "completed", "priority"):
        if field in values and values[field] is None:
            del values[field]
    if "title" in values:
        values["title"] = values["title"].strip()
        if not values["title"]:
            msg = "Title is required"
            raise InvalidArgumentError(msg)
    if "priority" in values:
        values["priority"] = parse_priority(values["priority"])

    with conn:
        if db.get_todo(conn, todo_id, user_id) is None:
            msg = "Todo not found"
            raise NotFoundError(msg)
        if values:
            db.update_todo(conn, todo_id, user_id, values, now or datetime.now())

    return get_todo(conn, todo_id, user_id)


def complete_todo(
    conn: sqlite3.Connection,
    todo_id: str,
    user_id: str,
    *,
    now: datetime | None = None,
) -> Todo:
    return update_todo(conn, todo_id, user_id, TodoUpdate(completed=True), now=now)


def delete_todo(conn: sqlite3.Connection, todo_id: str, user_id: str) -> None:
    with conn:
        if db.delete_todo(conn, todo_id, user_id) == 0:
            msg = "Todo not found"
            raise NotFoundError(msg)


# ---------------------------------------------------------------------------
# Contacts
# ---------------------------------------------------------------------------


def create_contact(
    conn: sqlite3.Connection,
    user_id: str,
    payload: ContactCreate,
    *,
    now: datetime | None = None,
) -> Contact:
    values = payload.model_dump()
    values["name"] = (values["name"] or "").strip()
    if not values["name"]:
        msg = "Name is required"
        raise InvalidArgumentError(msg)
    if values["role"]:
        try:
            values["role"] = ContactRole(values["role"]).value
        except ValueError:
            msg = "Invalid contact role"
            raise InvalidArgumentError(msg) from None
    else:
        values["role"] = None
    values["vacancy_id"] = values["vacancy_id"] or None
    values["application_id"] = values["application_id"] or None

    now = now or datetime.now()
    contact_id = db.generate_id()

    with conn:
        require_user(conn, user_id)
        if values["vacancy_id"] and db.get_vacancy(conn, values["vacancy_id"], user_id) is None:
            msg = "Vacancy not found"
            raise NotFoundError(msg)
        if values["application_id"]:
            _require_application(conn, values["application_id"], user_id)
        db.insert_contact(conn, contact_id, user_id, values, now)

    contact = db.get_contact(conn, contact_id, user_id)
    if contact is None:
        msg = "Contact not found"
        raise NotFoundError(msg)
    return contact


def list_contacts(
    conn: sqlite3.Connection,
    user_id: str,
    application_id: str | None = None,
) -> list[Contact]:
    return db.list_contacts(conn, user_id, application_id)
