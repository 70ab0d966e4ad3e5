"""Reminder and analytics views over one user's applications.

Everything here is a pure function of an application snapshot plus the
current time; nothing is cached and nothing is written. The two ``build_*``
helpers load the snapshot, always filtered by the caller's user id.
"""

import sqlite3
import statistics
from collections import Counter
from collections.abc import Iterable
from datetime import date, datetime, timedelta

from applyflow.core import db
from applyflow.core.schemas import (
    PIPELINE_ORDER,
    TERMINAL_STATUSES,
    AnalyticsSummary,
    Application,
    ApplicationStatus,
    ConversionMetric,
    ReminderBuckets,
    StageTime,
    StatusCount,
)

STALLED_AFTER = timedelta(days=7)
UPCOMING_WINDOW = timedelta(days=7)

# (from, to) pairs of the conversion funnel. The first stage is measured
# against all applications rather than against "saved" alone.
FUNNEL_STAGES: tuple[tuple[ApplicationStatus, ApplicationStatus], ...] = (
    (ApplicationStatus.SAVED, ApplicationStatus.APPLIED),
    (ApplicationStatus.APPLIED, ApplicationStatus.SCREENING),
    (ApplicationStatus.SCREENING, ApplicationStatus.INTERVIEW),
    (ApplicationStatus.INTERVIEW, ApplicationStatus.OFFER),
)

_SECONDS_PER_DAY = 86_400


def status_distribution(apps: Iterable[Application]) -> list[StatusCount]:
    """Count applications per status, zero-filled, in pipeline order."""
    counts = Counter(a.status for a in apps)
    return [StatusCount(status=s, count=counts.get(s, 0)) for s in PIPELINE_ORDER]


def board_columns(apps: Iterable[Application]) -> dict[ApplicationStatus, list[Application]]:
    """Group applications into one column per status, in pipeline order."""
    columns: dict[ApplicationStatus, list[Application]] = {s: [] for s in PIPELINE_ORDER}
    for app in apps:
        columns[app.status].append(app)
    return columns


def stalled_applications(apps: Iterable[Application], now: datetime) -> list[Application]:
    """Open applications whose status has not changed for over STALLED_AFTER."""
    cutoff = now - STALLED_AFTER
    return [
        a for a in apps
        if a.status not in TERMINAL_STATUSES and a.last_status_change_at < cutoff
    ]


def _open_due(apps: Iterable[Application]) -> list[tuple[Application, date]]:
    return [
        (a, a.next_step_due_date) for a in apps
        if a.next_step_due_date is not None and a.status not in TERMINAL_STATUSES
    ]


def overdue_reminders(apps: Iterable[Application], today: date) -> list[Application]:
    """Open applications whose next step was due before today."""
    return [a for a, due in _open_due(apps) if due < today]


def today_reminders(apps: Iterable[Application], today: date) -> list[Application]:
    return [a for a, due in _open_due(apps) if due == today]


def upcoming_reminders(apps: Iterable[Application], today: date) -> list[Application]:
    """Open applications due after today and within UPCOMING_WINDOW."""
    horizon = today + UPCOMING_WINDOW
    return [a for a, due in _open_due(apps) if today < due <= horizon]


def reminder_buckets(apps: Iterable[Application], today: date) -> ReminderBuckets:
    apps = list(apps)
    return ReminderBuckets(
        overdue=overdue_reminders(apps, today),
        today=today_reminders(apps, today),
        upcoming=upcoming_reminders(apps, today),
    )


def conversion_rate(count: int, base: int) -> float:
    """Percentage of ``count`` over ``base``; 0.0 when ``base`` is zero."""
    if base <= 0:
        return 0.0
    return count / base * 100


def conversion_metrics(distribution: list[StatusCount]) -> list[ConversionMetric]:
    """Funnel conversion between adjacent pipeline stages.

    ``count`` is the number of applications currently at the target stage;
    ``conversion`` is that number as a percentage of the source stage (or of
    all applications for the first stage).
    """
    counts = {c.status: c.count for c in distribution}
    total = sum(counts.values())
    metrics: list[ConversionMetric] = []
    for source, target in FUNNEL_STAGES:
        base = total if source is ApplicationStatus.SAVED else counts.get(source, 0)
        count = counts.get(target, 0)
        metrics.append(
            ConversionMetric(
                stage=f"{source.value} → {target.value}",
                count=count,
                conversion=conversion_rate(count, base),
            )
        )
    return metrics


def time_in_stage(apps: Iterable[Application], now: datetime) -> list[StageTime]:
    """Median days spent so far by the applications sitting in each open stage."""
    days: dict[ApplicationStatus, list[float]] = {
        s: [] for s in PIPELINE_ORDER if s not in TERMINAL_STATUSES
    }
    for app in apps:
        if app.status in days:
            elapsed = (now - app.last_status_change_at).total_seconds() / _SECONDS_PER_DAY
            days[app.status].append(max(0.0, elapsed))
    return [
        StageTime(status=s, median_days=round(statistics.median(v), 1) if v else 0.0)
        for s, v in days.items()
    ]


def summarize(apps: Iterable[Application], now: datetime) -> AnalyticsSummary:
    apps = list(apps)
    distribution = status_distribution(apps)
    return AnalyticsSummary(
        status_distribution=distribution,
        stalled_applications=len(stalled_applications(apps, now)),
        overdue_reminders=len(overdue_reminders(apps, now.date())),
        conversion_metrics=conversion_metrics(distribution),
        time_in_stage=time_in_stage(apps, now),
        total_applications=len(apps),
    )


def build_analytics(
    conn: sqlite3.Connection,
    user_id: str,
    *,
    now: datetime | None = None,
) -> AnalyticsSummary:
    return summarize(db.list_applications(conn, user_id), now or datetime.now())


def build_reminders(
    conn: sqlite3.Connection,
    user_id: str,
    *,
    today: date | None = None,
) -> ReminderBuckets:
    return reminder_buckets(db.list_applications(conn, user_id), today or date.today())
