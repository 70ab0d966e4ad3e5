"""Core data models for the application tracker.

Records read from the store are frozen; changes go through the workflow
functions, which write the row and read it back. Every model serialises
with camelCase aliases and accepts either spelling on input.
"""

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApplicationStatus(str, Enum):
    SAVED = "saved"
    APPLIED = "applied"
    SCREENING = "screening"
    TEST = "test"
    INTERVIEW = "interview"
    OFFER = "offer"
    REJECTED = "rejected"


class VacancySource(str, Enum):
    LINKEDIN = "linkedin"
    HH = "hh"
    INDEED = "indeed"
    TELEGRAM = "telegram"
    DIRECT = "direct"
    OTHER = "other"


class TodoPriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ContactRole(str, Enum):
    RECRUITER = "recruiter"
    HIRING_MANAGER = "hiring_manager"
    OTHER = "other"


# Board column order, left to right.
PIPELINE_ORDER: tuple[ApplicationStatus, ...] = tuple(ApplicationStatus)

# No next step is asked for once an application lands here. Not enforced.
TERMINAL_STATUSES = frozenset({ApplicationStatus.OFFER, ApplicationStatus.REJECTED})


class _Record(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class _Payload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Stored records
# ---------------------------------------------------------------------------


class User(_Record):
    id: str
    email: str
    created_at: datetime


class Vacancy(_Record):
    id: str
    user_id: str
    company_name: str
    role_title: str
    link: str
    source: VacancySource | None = None
    salary_range: str | None = None
    location: str | None = None
    notes: str | None = None
    created_at: datetime
    updated_at: datetime


class Application(_Record):
    """An application joined with the display fields of its vacancy."""

    id: str
    user_id: str
    vacancy_id: str
    status: ApplicationStatus
    applied_date: date | None = None
    last_status_change_at: datetime
    next_step: str | None = None
    next_step_due_date: date | None = None
    created_at: datetime
    updated_at: datetime

    company_name: str
    role_title: str
    link: str
    source: VacancySource | None = None
    location: str | None = None
    salary_range: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class Todo(_Record):
    id: str
    user_id: str
    application_id: str | None = None
    title: str
    description: str | None = None
    completed: bool = False
    priority: TodoPriority = TodoPriority.MEDIUM
    due_date: date | None = None
    created_at: datetime
    updated_at: datetime


class Contact(_Record):
    id: str
    user_id: str
    vacancy_id: str | None = None
    application_id: str | None = None
    name: str
    role: ContactRole | None = None
    email: str | None = None
    linkedin: str | None = None
    last_message_at: date | None = None
    notes: str | None = None
    created_at: datetime


# ---------------------------------------------------------------------------
# Inputs
#
# Enum-valued fields are plain strings here; the workflow validates them so
# that a bad value surfaces as InvalidArgumentError rather than a schema error.
# ---------------------------------------------------------------------------


class VacancyCreate(_Payload):
    company_name: str = ""
    role_title: str = ""
    link: str = ""
    source: str | None = None
    salary_range: str | None = None
    location: str | None = None
    notes: str | None = None


class VacancyUpdate(_Payload):
    """Partial update: only fields explicitly set are written."""

    company_name: str | None = None
    role_title: str | None = None
    link: str | None = None
    source: str | None = None
    salary_range: str | None = None
    location: str | None = None
    notes: str | None = None


class ApplicationCreate(_Payload):
    vacancy_id: str = ""
    status: str = ApplicationStatus.SAVED.value
    next_step: str | None = None
    next_step_due_date: date | None = None


class StatusChange(_Payload):
    status: str = ""
    next_step: str | None = None
    next_step_due_date: date | None = None


class NextStepUpdate(_Payload):
    next_step: str | None = None
    next_step_due_date: date | None = None


class TodoCreate(_Payload):
    title: str = ""
    description: str | None = None
    priority: str | None = None
    due_date: date | None = None
    application_id: str | None = None


class TodoUpdate(_Payload):
    """Partial update: only fields explicitly set are written."""

    title: str | None = None
    description: str | None = None
    completed: bool | None = None
    priority: str | None = None
    due_date: date | None = None


class ContactCreate(_Payload):
    name: str = ""
    role: str | None = None
    email: str | None = None
    linkedin: str | None = None
    last_message_at: date | None = None
    notes: str | None = None
    vacancy_id: str | None = None
    application_id: str | None = None


# ---------------------------------------------------------------------------
# Read models
# ---------------------------------------------------------------------------


class StatusCount(_Record):
    status: ApplicationStatus
    count: int = Field(default=0, ge=0)


class ConversionMetric(_Record):
    stage: str
    count: int = Field(default=0, ge=0)
    conversion: float = Field(default=0.0, ge=0.0)


class StageTime(_Record):
    status: ApplicationStatus
    median_days: float = Field(default=0.0, ge=0.0)


class AnalyticsSummary(_Record):
    status_distribution: list[StatusCount]
    stalled_applications: int
    overdue_reminders: int
    conversion_metrics: list[ConversionMetric]
    time_in_stage: list[StageTime]
    total_applications: int


class ReminderBuckets(_Record):
    overdue: list[Application] = Field(default_factory=list)
    today: list[Application] = Field(default_factory=list)
    upcoming: list[Application] = Field(default_factory=list)
