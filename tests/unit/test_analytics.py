"""Tests for reminder and analytics views: distribution, stalled, reminders, funnel."""

import sqlite3
from datetime import date, datetime, timedelta
from itertools import count

import pytest

from applyflow.core.db import init_db
from applyflow.core.schemas import Application, ApplicationStatus, StatusCount, VacancyCreate
from applyflow.pipeline import analytics, users, vacancies, workflow

NOW = datetime(2025, 6, 15, 10, 0)
TODAY = NOW.date()

_ids = count(1)


def _app(
    status: str = "saved",
    *,
    changed_days_ago: float = 0,
    due: date | None = None,
    user_id: str = "u1",
) -> Application:
    changed = NOW - timedelta(days=changed_days_ago)
    return Application(
        id=f"a{next(_ids)}",
        user_id=user_id,
        vacancy_id="v1",
        status=ApplicationStatus(status),
        last_status_change_at=changed,
        next_step="Follow up" if due else None,
        next_step_due_date=due,
        created_at=changed,
        updated_at=changed,
        company_name="Acme",
        role_title="Engineer",
        link="https://acme.example/1",
    )


def _dist(**counts: int) -> list[StatusCount]:
    return analytics.status_distribution(
        [_app(status) for status, n in counts.items() for _ in range(n)]
    )


# ---------------------------------------------------------------------------
# status_distribution / board_columns
# ---------------------------------------------------------------------------


class TestStatusDistribution:
    def test_zero_filled_in_pipeline_order(self) -> None:
        dist = analytics.status_distribution([])
        assert [c.status.value for c in dist] == [
            "saved", "applied", "screening", "test", "interview", "offer", "rejected",
        ]
        assert all(c.count == 0 for c in dist)

    def test_counts(self) -> None:
        dist = analytics.status_distribution([_app("saved"), _app("applied"), _app("applied")])
        counts = {c.status.value: c.count for c in dist}
        assert counts["saved"] == 1
        assert counts["applied"] == 2
        assert counts["offer"] == 0


class TestBoardColumns:
    def test_every_status_has_a_column(self) -> None:
        columns = analytics.board_columns([_app("interview")])
        assert list(columns) == list(ApplicationStatus)
        assert len(columns[ApplicationStatus.INTERVIEW]) == 1
        assert columns[ApplicationStatus.SAVED] == []


# ---------------------------------------------------------------------------
# stalled_applications
# ---------------------------------------------------------------------------


class TestStalledApplications:
    def test_older_than_seven_days(self) -> None:
        old = _app("applied", changed_days_ago=8)
        fresh = _app("applied", changed_days_ago=2)
        assert analytics.stalled_applications([old, fresh], NOW) == [old]

    def test_exactly_seven_days_not_stalled(self) -> None:
        assert analytics.stalled_applications([_app("applied", changed_days_ago=7)], NOW) == []

    @pytest.mark.parametrize("status", ["offer", "rejected"])
    def test_terminal_excluded(self, status: str) -> None:
        assert analytics.stalled_applications([_app(status, changed_days_ago=90)], NOW) == []

    def test_saved_counts(self) -> None:
        app = _app("saved", changed_days_ago=30)
        assert analytics.stalled_applications([app], NOW) == [app]


# ---------------------------------------------------------------------------
# Reminders
# ---------------------------------------------------------------------------


class TestReminders:
    def test_overdue_is_strictly_before_today(self) -> None:
        yesterday = _app("applied", due=TODAY - timedelta(days=1))
        today = _app("applied", due=TODAY)
        assert analytics.overdue_reminders([yesterday, today], TODAY) == [yesterday]

    def test_overdue_ignores_time_of_day(self) -> None:
        """Due today is not overdue even late in the evening."""
        late = datetime(2025, 6, 15, 23, 59)
        app = _app("applied", due=TODAY)
        summary = analytics.summarize([app], late)
        assert summary.overdue_reminders == 0

    @pytest.mark.parametrize("status", ["offer", "rejected"])
    def test_terminal_excluded(self, status: str) -> None:
        app = _app(status, due=TODAY - timedelta(days=3))
        assert analytics.overdue_reminders([app], TODAY) == []
        assert analytics.today_reminders([_app(status, due=TODAY)], TODAY) == []

    def test_undated_ignored(self) -> None:
        buckets = analytics.reminder_buckets([_app("applied")], TODAY)
        assert buckets.overdue == buckets.today == buckets.upcoming == []

    def test_buckets(self) -> None:
        overdue = _app("screening", due=TODAY - timedelta(days=2))
        today = _app("interview", due=TODAY)
        tomorrow = _app("applied", due=TODAY + timedelta(days=1))
        week = _app("applied", due=TODAY + timedelta(days=7))
        later = _app("applied", due=TODAY + timedelta(days=8))
        buckets = analytics.reminder_buckets([overdue, today, tomorrow, week, later], TODAY)
        assert buckets.overdue == [overdue]
        assert buckets.today == [today]
        assert buckets.upcoming == [tomorrow, week]


# ---------------------------------------------------------------------------
# conversion_metrics
# ---------------------------------------------------------------------------


class TestConversionMetrics:
    def test_stages(self) -> None:
        metrics = analytics.conversion_metrics(_dist())
        assert [m.stage for m in metrics] == [
            "saved → applied",
            "applied → screening",
            "screening → interview",
            "interview → offer",
        ]

    def test_empty_is_zero(self) -> None:
        metrics = analytics.conversion_metrics(_dist())
        assert all(m.conversion == 0.0 for m in metrics)
        assert all(m.count == 0 for m in metrics)

    def test_ratios(self) -> None:
        metrics = analytics.conversion_metrics(
            _dist(saved=2, applied=4, screening=2, interview=1, offer=1)
        )
        assert [m.count for m in metrics] == [4, 2, 1, 1]
        assert metrics[0].conversion == pytest.approx(40.0)  # 4 of 10 total
        assert metrics[1].conversion == pytest.approx(50.0)  # 2 of 4 applied
        assert metrics[2].conversion == pytest.approx(50.0)  # 1 of 2 screening
        assert metrics[3].conversion == pytest.approx(100.0)

    def test_zero_prior_stage_guarded(self) -> None:
        """Offers with nobody in interview give 0, not a division error."""
        metrics = analytics.conversion_metrics(_dist(saved=1, offer=2))
        assert metrics[3].count == 2
        assert metrics[3].conversion == 0.0

    def test_conversion_rate(self) -> None:
        assert analytics.conversion_rate(3, 0) == 0.0
        assert analytics.conversion_rate(1, 4) == pytest.approx(25.0)


# ---------------------------------------------------------------------------
# time_in_stage / summarize
# ---------------------------------------------------------------------------


class TestTimeInStage:
    def test_median_days(self) -> None:
        apps = [_app("saved", changed_days_ago=2), _app("saved", changed_days_ago=4)]
        stages = {s.status.value: s.median_days for s in analytics.time_in_stage(apps, NOW)}
        assert stages["saved"] == pytest.approx(3.0)
        assert stages["applied"] == 0.0

    def test_terminal_stages_omitted(self) -> None:
        statuses = [s.status.value for s in analytics.time_in_stage([], NOW)]
        assert statuses == ["saved", "applied", "screening", "test", "interview"]


class TestSummarize:
    def test_counts(self) -> None:
        apps = [
            _app("applied", changed_days_ago=10, due=TODAY - timedelta(days=1)),
            _app("offer", changed_days_ago=10, due=TODAY - timedelta(days=1)),
            _app("interview", changed_days_ago=1),
        ]
        summary = analytics.summarize(apps, NOW)
        assert summary.total_applications == 3
        assert summary.stalled_applications == 1
        assert summary.overdue_reminders == 1
        assert len(summary.status_distribution) == 7
        assert len(summary.conversion_metrics) == 4

    def test_empty(self) -> None:
        summary = analytics.summarize([], NOW)
        assert summary.total_applications == 0
        assert summary.conversion_metrics[0].conversion == 0.0

    def test_serialises_camel_case(self) -> None:
        data = analytics.summarize([], NOW).model_dump(by_alias=True)
        assert set(data) == {
            "statusDistribution",
            "stalledApplications",
            "overdueReminders",
            "conversionMetrics",
            "timeInStage",
            "totalApplications",
        }


# ---------------------------------------------------------------------------
# build_* (store-backed)
# ---------------------------------------------------------------------------


class TestBuildFromStore:
    @pytest.fixture
    def conn(self, tmp_path) -> sqlite3.Connection:  # type: ignore[no-untyped-def]
        return init_db(tmp_path / "test.db")

    def test_scoped_to_user(self, conn: sqlite3.Connection) -> None:
        me = users.sign_in(conn, "me@example.com")
        other = users.sign_in(conn, "other@example.com")
        payload = VacancyCreate(company_name="Acme", role_title="Engineer", link="https://acme.example/1")
        vacancies.create_vacancy(conn, me.id, payload, now=NOW - timedelta(days=30))
        vacancies.create_vacancy(conn, other.id, payload, now=NOW - timedelta(days=30))
        vacancies.create_vacancy(conn, other.id, payload, now=NOW)

        mine = analytics.build_analytics(conn, me.id, now=NOW)
        theirs = analytics.build_analytics(conn, other.id, now=NOW)
        assert mine.total_applications == 1
        assert mine.stalled_applications == 1
        assert theirs.total_applications == 2

    def test_reminders(self, conn: sqlite3.Connection) -> None:
        me = users.sign_in(conn, "me@example.com")
        payload = VacancyCreate(company_name="Acme", role_title="Engineer", link="https://acme.example/1")
        vacancies.create_vacancy(conn, me.id, payload)
        app = workflow.list_applications(conn, me.id)[0]
        workflow.transition_status(conn, app.id, me.id, "applied", "Call back", TODAY)

        buckets = analytics.build_reminders(conn, me.id, today=TODAY)
        assert [a.id for a in buckets.today] == [app.id]
        assert buckets.overdue == []
