"""Vacancies: the job postings a user tracks.

Creating a vacancy also opens its first application in "saved".
"""

import logging
import sqlite3
from datetime import datetime

from applyflow.core import db
from applyflow.core.errors import InvalidArgumentError, NotFoundError
from applyflow.core.schemas import ApplicationStatus, Vacancy, VacancyCreate, VacancySource, VacancyUpdate
from applyflow.pipeline.users import require_user

logger = logging.getLogger(__name__)

INITIAL_NEXT_STEP = "Review and apply to this vacancy"

_REQUIRED_FIELDS = ("company_name", "role_title", "link")
_OPTIONAL_FIELDS = ("salary_range", "location", "notes")


def parse_source(value: str | None) -> str | None:
    if not value:
        return None
    try:
        return VacancySource(value).value
    except ValueError:
        msg = "Invalid source"
        raise InvalidArgumentError(msg) from None


def create_vacancy(
    conn: sqlite3.Connection,
    user_id: str,
    payload: VacancyCreate,
    *,
    now: datetime | None = None,
) -> Vacancy:
    values = payload.model_dump()
    for field in _REQUIRED_FIELDS:
        values[field] = (values[field] or "").strip()
    if not all(values[field] for field in _REQUIRED_FIELDS):
        msg = "Company name, role title, and link are required"
        raise InvalidArgumentError(msg)
    values["source"] = parse_source(values["source"])
    for field in _OPTIONAL_FIELDS:
        values[field] = values[field] or None

    now = now or datetime.now()
    vacancy_id = db.generate_id()
    application_id = db.generate_id()

    with conn:
        require_user(conn, user_id)
        db.insert_vacancy(conn, vacancy_id, user_id, values, now)
        db.insert_application(
            conn, application_id, user_id, vacancy_id, ApplicationStatus.SAVED.value,
            INITIAL_NEXT_STEP, None, now,
        )

    logger.info(
        "Vacancy %s (%s at %s) saved with application %s",
        vacancy_id, values["role_title"], values["company_name"], application_id,
    )
    return get_vacancy(conn, vacancy_id, user_id)


def get_vacancy(conn: sqlite3.Connection, vacancy_id: str, user_id: str) -> Vacancy:
    vacancy = db.get_vacancy(conn, vacancy_id, user_id)
    if vacancy is None:
        msg = "Vacancy not found"
        raise NotFoundError(msg)
    return vacancy


def list_vacancies(conn: sqlite3.Connection, user_id: str) -> list[Vacancy]:
    return db.list_vacancies(conn, user_id)


def update_vacancy(
    conn: sqlite3.Connection,
    vacancy_id: str,
    user_id: str,
    payload: VacancyUpdate,
    *,
    now: datetime | None = None,
) -> Vacancy:
    """Write only the fields set on ``payload``; everything else is kept."""
    values = payload.model_dump(exclude_unset=True)
    for field in _REQUIRED_FIELDS:
        if field in values:
            values[field] = (values[field] or "").strip()
            if not values[field]:
                msg = "Company name, role title, and link are required"
                raise InvalidArgumentError(msg)
    if "source" in values:
        values["source"] = parse_source(values["source"])

    with conn:
        if db.get_vacancy(conn, vacancy_id, user_id) is None:
            msg = "Vacancy not found"
            raise NotFoundError(msg)
        if values:
            db.update_vacancy(conn, vacancy_id, user_id, values, now or datetime.now())

    return get_vacancy(conn, vacancy_id, user_id)


def delete_vacancy(conn: sqlite3.Connection, vacancy_id: str, user_id: str) -> None:
    """Delete a vacancy together with its applications and contacts."""
    with conn:
        if db.delete_vacancy(conn, vacancy_id, user_id) == 0:
            msg = "Vacancy not found"
            raise NotFoundError(msg)
    logger.info("Deleted vacancy %s", vacancy_id)
