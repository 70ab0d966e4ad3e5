"""FastAPI entry point for the ApplyFlow HTTP API.

All routes except sign-in and health take the caller's identity from a
bearer token. Errors leave the API as ``{"error": message}`` with 400 for
bad input, 401 for missing sessions, 404 for records the caller does not
own, and 500 (detail logged, not returned) for anything else.
"""

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from applyflow.api.auth import SessionStore
from applyflow.core.config import Settings
from applyflow.core.db import connect, init_db
from applyflow.core.errors import TrackerError
from applyflow.core.schemas import (
    AnalyticsSummary,
    Application,
    ApplicationCreate,
    Contact,
    ContactCreate,
    NextStepUpdate,
    ReminderBuckets,
    StatusChange,
    Todo,
    TodoCreate,
    TodoUpdate,
    User,
    Vacancy,
    VacancyCreate,
    VacancyUpdate,
)
from applyflow.pipeline import analytics, todos, users, vacancies, workflow

logger = logging.getLogger(__name__)


class SignInRequest(BaseModel):
    email: str = ""


class SignInResponse(BaseModel):
    token: str
    user: User


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def get_conn(request: Request) -> Iterator[sqlite3.Connection]:
    conn = connect(request.app.state.settings.database.path)
    try:
        yield conn
    finally:
        conn.close()


def _bearer_token(authorization: str | None) -> str:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing Bearer token")
    return authorization.split(" ", 1)[1].strip()


def current_user_id(
    request: Request,
    authorization: str | None = Header(default=None),
) -> str:
    user_id = request.app.state.sessions.resolve(_bearer_token(authorization))
    if user_id is None:
        raise HTTPException(status_code=401, detail="Invalid or expired session")
    return user_id


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


async def _tracker_error(request: Request, exc: TrackerError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})


async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def _request_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = ", ".join(".".join(str(p) for p in err["loc"][1:]) for err in exc.errors())
    message = f"Invalid request: {fields}" if fields else "Invalid request"
    return JSONResponse(status_code=400, content={"error": message})


async def _unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("%s %s failed", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting ApplyFlow API (database: %s)", settings.database.path)
        init_db(settings.database.path).close()
        yield
        logger.info("ApplyFlow API stopped")

    app = FastAPI(
        title="ApplyFlow",
        description="Personal job-application tracker",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.sessions = SessionStore(timedelta(days=settings.server.session_ttl_days))

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(TrackerError, _tracker_error)
    app.add_exception_handler(StarletteHTTPException, _http_error)
    app.add_exception_handler(RequestValidationError, _request_error)
    app.add_exception_handler(Exception, _unexpected_error)

    _register_routes(app)
    return app


def _register_routes(app: FastAPI) -> None:
    @app.get("/api/health")
    def health() -> dict:
        return {"ok": True}

    # --- Auth ---------------------------------------------------------------

    @app.post("/api/auth/signin", response_model=SignInResponse)
    def sign_in(
        payload: SignInRequest,
        request: Request,
        conn: sqlite3.Connection = Depends(get_conn),
    ) -> SignInResponse:
        user = users.sign_in(conn, payload.email)
        token = request.app.state.sessions.create(user.id)
        return SignInResponse(token=token, user=user)

    @app.get("/api/auth/check", response_model=User)
    def check(
        user_id: str = Depends(current_user_id),
        conn: sqlite3.Connection = Depends(get_conn),
    ) -> User:
        return users.require_user(conn, user_id)

    @app.post("/api/auth/signout")
    def sign_out(request: Request, authorization: str | None = Header(default=None)) -> dict:
        request.app.state.sessions.destroy(_bearer_token(authorization))
        return {"success": True}

    # --- Vacancies ----------------------------------------------------------

    @app.get("/api/vacancies", response_model=list[Vacancy])
    def list_vacancies(
        user_id: str = Depends(current_user_id),
        conn: sqlite3.Connection = Depends(get_conn),
    ) -> list[Vacancy]:
        return vacancies.list_vacancies(conn, user_id)

    @app.post("/api/vacancies", response_model=Vacancy, status_code=201)
    def create_vacancy(
        payload: VacancyCreate,
        user_id: str = Depends(current_user_id),
        conn: sqlite3.Connection = Depends(get_conn),
    ) -> Vacancy:
        return vacancies.create_vacancy(conn, user_id, payload)

    @app.get("/api/vacancies/{vacancy_id}", response_model=Vacancy)
    def get_vacancy(
        vacancy_id: str,
        user_id: str = Depends(current_user_id),
        conn: sqlite3.Connection = Depends(get_conn),
    ) -> Vacancy:
        return vacancies.get_vacancy(conn, vacancy_id, user_id)

    @app.put("/api/vacancies/{vacancy_id}", response_model=Vacancy)
    def update_vacancy(
        vacancy_id: str,
        payload: VacancyUpdate,
        user_id: str = Depends(current_user_id),
        conn: sqlite3.Connection = Depends(get_conn),
    ) -> Vacancy:
        return vacancies.update_vacancy(conn, vacancy_id, user_id, payload)

    @app.delete("/api/vacancies/{vacancy_id}")
    def delete_vacancy(
        vacancy_id: str,
        user_id: str = Depends(current_user_id),
        conn: sqlite3.Connection = Depends(get_conn),
    ) -> dict:
        vacancies.delete_vacancy(conn, vacancy_id, user_id)
        return {"success": True}

    # --- Applications -------------------------------------------------------

    @app.get("/api/applications", response_model=list[Application])
    def list_applications(
        user_id: str = Depends(current_user_id),
        conn: sqlite3.Connection = Depends(get_conn),
    ) -> list[Application]:
        return workflow.list_applications(conn, user_id)

    @app.post("/api/applications", response_model=Application, status_code=201)
    def create_application(
        payload: ApplicationCreate,
        user_id: str = Depends(current_user_id),
        conn: sqlite3.Connection = Depends(get_conn),
    ) -> Application:
        return workflow.create_application(
            conn, user_id, payload.vacancy_id, payload.status,
            payload.next_step, payload.next_step_due_date,
        )

    @app.get("/api/applications/{application_id}", response_model=Application)
    def get_application(
        application_id: str,
        user_id: str = Depends(current_user_id),
        conn: sqlite3.Connection = Depends(get_conn),
    ) -> Application:
        return workflow.get_application(conn, application_id, user_id)

    @app.put("/api/applications/{application_id}/status", response_model=Application)
    def change_status(
        application_id: str,
        payload: StatusChange,
        user_id: str = Depends(current_user_id),
        conn: sqlite3.Connection = Depends(get_conn),
    ) -> Application:
        return workflow.transition_status(
            conn, application_id, user_id, payload.status,
            payload.next_step, payload.next_step_due_date,
        )

    @app.put("/api/applications/{application_id}/next-step", response_model=Application)
    def change_next_step(
        application_id: str,
        payload: NextStepUpdate,
        user_id: str = Depends(current_user_id),
        conn: sqlite3.Connection = Depends(get_conn),
    ) -> Application:
        return workflow.update_next_step(conn, application_id, user_id, payload)

    @app.delete("/api/applications/{application_id}")
    def delete_application(
        application_id: str,
        user_id: str = Depends(current_user_id),
        conn: sqlite3.Connection = Depends(get_conn),
    ) -> dict:
        workflow.delete_application(conn, application_id, user_id)
        return {"success": True}

    # --- Todos --------------------------------------------------------------

    @app.get("/api/todos", response_model=list[Todo])
    def list_todos(
        application_id: str | None = None,
        user_id: str = Depends(current_user_id),
        conn: sqlite3.Connection = Depends(get_conn),
    ) -> list[Todo]:
        return todos.list_todos(conn, user_id, application_id)

    @app.post("/api/todos", response_model=Todo, status_code=201)
    def create_todo(
        payload: TodoCreate,
        user_id: str = Depends(current_user_id),
        conn: sqlite3.Connection = Depends(get_conn),
    ) -> Todo:
        return todos.create_todo(conn, user_id, payload)

    @app.put("/api/todos/{todo_id}", response_model=Todo)
    def update_todo(
        todo_id: str,
        payload: TodoUpdate,
        user_id: str = Depends(current_user_id),
        conn: sqlite3.Connection = Depends(get_conn),
    ) -> Todo:
        return todos.update_todo(conn, todo_id, user_id, payload)

    @app.delete("/api/todos/{todo_id}")
    def delete_todo(
        todo_id: str,
        user_id: str = Depends(current_user_id),
        conn: sqlite3.Connection = Depends(get_conn),
    ) -> dict:
        todos.delete_todo(conn, todo_id, user_id)
        return {"success": True}

    # --- Contacts -----------------------------------------------------------

    @app.get("/api/contacts", response_model=list[Contact])
    def list_contacts(
        application_id: str | None = None,
        user_id: str = Depends(current_user_id),
        conn: sqlite3.Connection = Depends(get_conn),
    ) -> list[Contact]:
        return todos.list_contacts(conn, user_id, application_id)

    @app.post("/api/contacts", response_model=Contact, status_code=201)
    def create_contact(
        payload: ContactCreate,
        user_id: str = Depends(current_user_id),
        conn: sqlite3.Connection = Depends(get_conn),
    ) -> Contact:
        return todos.create_contact(conn, user_id, payload)

    # --- Reminders & analytics ----------------------------------------------

    @app.get("/api/reminders", response_model=ReminderBuckets)
    def reminders(
        user_id: str = Depends(current_user_id),
        conn: sqlite3.Connection = Depends(get_conn),
    ) -> ReminderBuckets:
        return analytics.build_reminders(conn, user_id)

    @app.get("/api/analytics", response_model=AnalyticsSummary)
    def analytics_summary(
        user_id: str = Depends(current_user_id),
        conn: sqlite3.Connection = Depends(get_conn),
    ) -> AnalyticsSummary:
        return analytics.build_analytics(conn, user_id)
