"""SQLite database layer for users, vacancies, applications, todos, and contacts.

Every query on owned rows filters by ``user_id``. Write helpers do not
commit: the workflow wraps each operation in ``with conn:`` so that
multi-statement operations apply atomically.
"""

import sqlite3
import uuid
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from applyflow.core.schemas import Application, Contact, Todo, User, Vacancy

_USERS_TABLE = """
CREATE TABLE IF NOT EXISTS users (
    id          TEXT PRIMARY KEY,
    email       TEXT NOT NULL UNIQUE,
    created_at  TEXT NOT NULL
);
"""

_VACANCIES_TABLE = """
CREATE TABLE IF NOT EXISTS vacancies (
    id            TEXT PRIMARY KEY,
    user_id       TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    company_name  TEXT NOT NULL,
    role_title    TEXT NOT NULL,
    link          TEXT NOT NULL,
    source        TEXT CHECK(source IN ('linkedin', 'hh', 'indeed', 'telegram', 'direct', 'other')),
    salary_range  TEXT,
    location      TEXT,
    notes         TEXT,
    created_at    TEXT NOT NULL,
    updated_at    TEXT NOT NULL
);
"""

_APPLICATIONS_TABLE = """
CREATE TABLE IF NOT EXISTS applications (
    id                     TEXT PRIMARY KEY,
    user_id                TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    vacancy_id             TEXT NOT NULL REFERENCES vacancies(id) ON DELETE CASCADE,
    status                 TEXT NOT NULL DEFAULT 'saved'
        CHECK(status IN ('saved', 'applied', 'screening', 'test', 'interview', 'offer', 'rejected')),
    applied_date           TEXT,
    last_status_change_at  TEXT NOT NULL,
    next_step              TEXT,
    next_step_due_date     TEXT,
    created_at             TEXT NOT NULL,
    updated_at             TEXT NOT NULL
);
"""

_TODOS_TABLE = """
CREATE TABLE IF NOT EXISTS todos (
    id              TEXT PRIMARY KEY,
    user_id         TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    application_id  TEXT REFERENCES applications(id) ON DELETE SET NULL,
    title           TEXT NOT NULL,
    description     TEXT,
    completed       INTEGER NOT NULL DEFAULT 0,
    priority        TEXT NOT NULL DEFAULT 'medium' CHECK(priority IN ('high', 'medium', 'low')),
    due_date        TEXT,
    created_at      TEXT NOT NULL,
    updated_at      TEXT NOT NULL
);
"""

_CONTACTS_TABLE = """
CREATE TABLE IF NOT EXISTS contacts (
    id               TEXT PRIMARY KEY,
    user_id          TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    vacancy_id       TEXT REFERENCES vacancies(id) ON DELETE CASCADE,
    application_id   TEXT REFERENCES applications(id) ON DELETE SET NULL,
    name             TEXT NOT NULL,
    role             TEXT CHECK(role IN ('recruiter', 'hiring_manager', 'other')),
    email            TEXT,
    linkedin         TEXT,
    last_message_at  TEXT,
    notes            TEXT,
    created_at       TEXT NOT NULL
);
"""

_INDEXES = (
    "CREATE INDEX IF NOT EXISTS idx_vacancies_user_id ON vacancies(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_applications_user_id ON applications(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_applications_vacancy_id ON applications(vacancy_id)",
    "CREATE INDEX IF NOT EXISTS idx_applications_status ON applications(status)",
    "CREATE INDEX IF NOT EXISTS idx_todos_user_id ON todos(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_todos_application_id ON todos(application_id)",
    "CREATE INDEX IF NOT EXISTS idx_contacts_user_id ON contacts(user_id)",
)

_APPLICATION_SELECT = """
SELECT
    a.*,
    v.company_name,
    v.role_title,
    v.link,
    v.source,
    v.location,
    v.salary_range
FROM applications a
JOIN vacancies v ON a.vacancy_id = v.id
"""

_VACANCY_COLUMNS = frozenset(
    {"company_name", "role_title", "link", "source", "salary_range", "location", "notes"}
)
_APPLICATION_COLUMNS = frozenset(
    {"status", "applied_date", "last_status_change_at", "next_step", "next_step_due_date"}
)
_TODO_COLUMNS = frozenset({"title", "description", "completed", "priority", "due_date"})


def connect(path: str | Path) -> sqlite3.Connection:
    """Open a connection to an existing database with foreign keys enforced."""
    conn = sqlite3.connect(str(path), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_db(path: str | Path) -> sqlite3.Connection:
    """Create the database and tables, returning a connection."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = connect(path)
    conn.execute("PRAGMA journal_mode=WAL")
    for ddl in (_USERS_TABLE, _VACANCIES_TABLE, _APPLICATIONS_TABLE, _TODOS_TABLE, _CONTACTS_TABLE):
        conn.execute(ddl)
    for ddl in _INDEXES:
        conn.execute(ddl)
    conn.commit()
    return conn


def generate_id() -> str:
    return uuid.uuid4().hex


def _to_db(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, Enum):
        return value.value
    return value


def _set_clause(values: dict[str, Any], allowed: frozenset[str]) -> tuple[str, list[Any]]:
    unknown = set(values) - allowed
    if unknown:
        msg = f"Unknown columns: {sorted(unknown)}"
        raise ValueError(msg)
    columns = sorted(values)
    clause = ", ".join(f"{c} = ?" for c in columns)
    return clause, [_to_db(values[c]) for c in columns]


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


def insert_user(conn: sqlite3.Connection, user_id: str, email: str, now: datetime) -> bool:
    """Insert a user, ignoring if the id or email already exists.

    Returns True if a new row was inserted.
    """
    cursor = conn.execute(
        "INSERT OR IGNORE INTO users (id, email, created_at) VALUES (?, ?, ?)",
        (user_id, email, now.isoformat()),
    )
    return cursor.rowcount > 0


def get_user(conn: sqlite3.Connection, user_id: str) -> User | None:
    row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
    return User.model_validate(dict(row)) if row else None


def get_user_by_email(conn: sqlite3.Connection, email: str) -> User | None:
    row = conn.execute("SELECT * FROM users WHERE email = ?", (email,)).fetchone()
    return User.model_validate(dict(row)) if row else None


# ---------------------------------------------------------------------------
# Vacancies
# ---------------------------------------------------------------------------


def insert_vacancy(
    conn: sqlite3.Connection,
    vacancy_id: str,
    user_id: str,
    values: dict[str, Any],
    now: datetime,
) -> None:
    conn.execute(
        """
        INSERT INTO vacancies
            (id, user_id, company_name, role_title, link, source,
             salary_range, location, notes, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            vacancy_id,
            user_id,
            values["company_name"],
            values["role_title"],
            values["link"],
            values.get("source"),
            values.get("salary_range"),
            values.get("location"),
            values.get("notes"),
            now.isoformat(),
            now.isoformat(),
        ),
    )


def get_vacancy(conn: sqlite3.Connection, vacancy_id: str, user_id: str) -> Vacancy | None:
    row = conn.execute(
        "SELECT * FROM vacancies WHERE id = ? AND user_id = ?",
        (vacancy_id, user_id),
    ).fetchone()
    return Vacancy.model_validate(dict(row)) if row else None


def list_vacancies(conn: sqlite3.Connection, user_id: str) -> list[Vacancy]:
    rows = conn.execute(
        "SELECT * FROM vacancies WHERE user_id = ? ORDER BY created_at DESC, rowid DESC",
        (user_id,),
    ).fetchall()
    return [Vacancy.model_validate(dict(r)) for r in rows]


def update_vacancy(
    conn: sqlite3.Connection,
    vacancy_id: str,
    user_id: str,
    values: dict[str, Any],
    now: datetime,
) -> int:
    """Write the given columns. Returns the number of rows changed (0 or 1)."""
    clause, params = _set_clause(values, _VACANCY_COLUMNS)
    cursor = conn.execute(
        f"UPDATE vacancies SET {clause}, updated_at = ? WHERE id = ? AND user_id = ?",
        (*params, now.isoformat(), vacancy_id, user_id),
    )
    return cursor.rowcount


def delete_vacancy(conn: sqlite3.Connection, vacancy_id: str, user_id: str) -> int:
    """Delete a vacancy; applications and contacts go with it."""
    cursor = conn.execute(
        "DELETE FROM vacancies WHERE id = ? AND user_id = ?",
        (vacancy_id, user_id),
    )
    return cursor.rowcount


# ---------------------------------------------------------------------------
# Applications
# ---------------------------------------------------------------------------


def insert_application(
    conn: sqlite3.Connection,
    application_id: str,
    user_id: str,
    vacancy_id: str,
    status: str,
    next_step: str | None,
    next_step_due_date: date | None,
    now: datetime,
) -> None:
    conn.execute(
        """
        INSERT INTO applications
            (id, user_id, vacancy_id, status, last_status_change_at,
             next_step, next_step_due_date, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            application_id,
            user_id,
            vacancy_id,
            status,
            now.isoformat(),
            next_step,
            _to_db(next_step_due_date),
            now.isoformat(),
            now.isoformat(),
        ),
    )


def get_application(
    conn: sqlite3.Connection, application_id: str, user_id: str
) -> Application | None:
    """Fetch one application with its vacancy's display fields."""
    row = conn.execute(
        _APPLICATION_SELECT + " WHERE a.id = ? AND a.user_id = ?",
        (application_id, user_id),
    ).fetchone()
    return Application.model_validate(dict(row)) if row else None


def list_applications(conn: sqlite3.Connection, user_id: str) -> list[Application]:
    rows = conn.execute(
        _APPLICATION_SELECT + " WHERE a.user_id = ? ORDER BY a.created_at DESC, a.rowid DESC",
        (user_id,),
    ).fetchall()
    return [Application.model_validate(dict(r)) for r in rows]


def update_application(
    conn: sqlite3.Connection,
    application_id: str,
    user_id: str,
    values: dict[str, Any],
    now: datetime,
) -> int:
    """Write the given columns. Returns the number of rows changed (0 or 1)."""
    clause, params = _set_clause(values, _APPLICATION_COLUMNS)
    cursor = conn.execute(
        f"UPDATE applications SET {clause}, updated_at = ? WHERE id = ? AND user_id = ?",
        (*params, now.isoformat(), application_id, user_id),
    )
    return cursor.rowcount


def delete_application(conn: sqlite3.Connection, application_id: str, user_id: str) -> int:
    cursor = conn.execute(
        "DELETE FROM applications WHERE id = ? AND user_id = ?",
        (application_id, user_id),
    )
    return cursor.rowcount


# ---------------------------------------------------------------------------
# Todos
# ---------------------------------------------------------------------------


def insert_todo(
    conn: sqlite3.Connection,
    todo_id: str,
    user_id: str,
    application_id: str | None,
    title: str,
    description: str | None,
    priority: str,
    due_date: date | None,
    now: datetime,
) -> None:
    conn.execute(
        """
        INSERT INTO todos
            (id, user_id, application_id, title, description, completed,
             priority, due_date, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, 0, ?, ?, ?, ?)
        """,
        (
            todo_id,
            user_id,
            application_id,
            title,
            description,
            priority,
            _to_db(due_date),
            now.isoformat(),
            now.isoformat(),
        ),
    )


def get_todo(conn: sqlite3.Connection, todo_id: str, user_id: str) -> Todo | None:
    row = conn.execute(
        "SELECT * FROM todos WHERE id = ? AND user_id = ?",
        (todo_id, user_id),
    ).fetchone()
    return Todo.model_validate(dict(row)) if row else None


def list_todos(
    conn: sqlite3.Connection,
    user_id: str,
    application_id: str | None = None,
) -> list[Todo]:
    """List todos: high priority first, then earliest due (undated last), then newest."""
    query = "SELECT * FROM todos WHERE user_id = ?"
    params: list[Any] = [user_id]
    if application_id is not None:
        query += " AND application_id = ?"
        params.append(application_id)
    query += """
        ORDER BY
            CASE priority WHEN 'high' THEN 1 WHEN 'medium' THEN 2 WHEN 'low' THEN 3 END,
            due_date IS NULL,
            due_date ASC,
            created_at DESC,
            rowid DESC
    """
    rows = conn.execute(query, params).fetchall()
    return [Todo.model_validate(dict(r)) for r in rows]


def update_todo(
    conn: sqlite3.Connection,
    todo_id: str,
    user_id: str,
    values: dict[str, Any],
    now: datetime,
) -> int:
    clause, params = _set_clause(values, _TODO_COLUMNS)
    cursor = conn.execute(
        f"UPDATE todos SET {clause}, updated_at = ? WHERE id = ? AND user_id = ?",
        (*params, now.isoformat(), todo_id, user_id),
    )
    return cursor.rowcount


def delete_todo(conn: sqlite3.Connection, todo_id: str, user_id: str) -> int:
    cursor = conn.execute(
        "DELETE FROM todos WHERE id = ? AND user_id = ?",
        (todo_id, user_id),
    )
    return cursor.rowcount


# ---------------------------------------------------------------------------
# Contacts
# ---------------------------------------------------------------------------


def insert_contact(
    conn: sqlite3.Connection,
    contact_id: str,
    user_id: str,
    values: dict[str, Any],
    now: datetime,
) -> None:
    conn.execute(
        """
        INSERT INTO contacts
            (id, user_id, vacancy_id, application_id, name, role, email,
             linkedin, last_message_at, notes, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            contact_id,
            user_id,
            values.get("vacancy_id"),
            values.get("application_id"),
            values["name"],
            values.get("role"),
            values.get("email"),
            values.get("linkedin"),
            _to_db(values.get("last_message_at")),
            values.get("notes"),
            now.isoformat(),
        ),
    )


def get_contact(conn: sqlite3.Connection, contact_id: str, user_id: str) -> Contact | None:
    row = conn.execute(
        "SELECT * FROM contacts WHERE id = ? AND user_id = ?",
        (contact_id, user_id),
    ).fetchone()
    return Contact.model_validate(dict(row)) if row else None


def list_contacts(
    conn: sqlite3.Connection,
    user_id: str,
    application_id: str | None = None,
) -> list[Contact]:
    query = "SELECT * FROM contacts WHERE user_id = ?"
    params: list[Any] = [user_id]
    if application_id is not None:
        query += " AND application_id = ?"
        params.append(application_id)
    query += " ORDER BY created_at DESC, rowid DESC"
    rows = conn.execute(query, params).fetchall()
    return [Contact.model_validate(dict(r)) for r in rows]
