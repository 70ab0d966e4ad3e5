"""CLI entry point for the ApplyFlow application tracker."""

import argparse
import logging
import sqlite3
import sys
from datetime import date

from applyflow.core.config import Settings
from applyflow.core.db import init_db
from applyflow.core.errors import TrackerError
from applyflow.core.schemas import TodoCreate, VacancyCreate
from applyflow.pipeline import analytics, todos, users, vacancies, workflow


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        default="config/settings.yaml",
        help="Path to settings YAML file (default: config/settings.yaml)",
    )
    common.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    owned = argparse.ArgumentParser(add_help=False, parents=[common])
    owned.add_argument("--user", required=True, help="Id of the signed-in user")

    parser = argparse.ArgumentParser(
        description="ApplyFlow - track vacancies and move applications through your pipeline",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # --- signin ---
    signin_parser = subparsers.add_parser(
        "signin", parents=[common], help="Sign in by email and print your user id",
    )
    signin_parser.add_argument("--email", required=True, help="Email address")

    # --- add-vacancy ---
    add_parser = subparsers.add_parser(
        "add-vacancy", parents=[owned], help="Save a vacancy (opens an application in 'saved')",
    )
    add_parser.add_argument("--company", required=True, help="Company name")
    add_parser.add_argument("--role", required=True, help="Role title")
    add_parser.add_argument("--link", required=True, help="Link to the posting")
    add_parser.add_argument(
        "--source",
        choices=["linkedin", "hh", "indeed", "telegram", "direct", "other"],
        help="Where the vacancy was found",
    )
    add_parser.add_argument("--salary", help="Salary range")
    add_parser.add_argument("--location", help="Location")
    add_parser.add_argument("--notes", help="Free-form notes")

    # --- vacancies / board ---
    subparsers.add_parser("vacancies", parents=[owned], help="List saved vacancies")
    subparsers.add_parser("board", parents=[owned], help="Show applications grouped by status")

    # --- move ---
    move_parser = subparsers.add_parser(
        "move", parents=[owned], help="Move an application to another status",
    )
    move_parser.add_argument("application_id", help="Application id")
    move_parser.add_argument("status", help="New status")
    move_parser.add_argument("--next-step", help="Next action; also creates a todo")
    move_parser.add_argument("--due", type=date.fromisoformat, help="Next step due date (YYYY-MM-DD)")

    # --- todos ---
    subparsers.add_parser("todos", parents=[owned], help="List todos")
    todo_parser = subparsers.add_parser("add-todo", parents=[owned], help="Add a todo")
    todo_parser.add_argument("--title", required=True, help="Todo title")
    todo_parser.add_argument("--description", help="Todo description")
    todo_parser.add_argument("--priority", choices=["low", "medium", "high"], default="medium")
    todo_parser.add_argument("--due", type=date.fromisoformat, help="Due date (YYYY-MM-DD)")
    todo_parser.add_argument("--application", help="Link to an application id")
    done_parser = subparsers.add_parser("complete-todo", parents=[owned], help="Mark a todo done")
    done_parser.add_argument("todo_id", help="Todo id")

    # --- reminders / analytics ---
    subparsers.add_parser("reminders", parents=[owned], help="Show overdue, today and upcoming next steps")
    analytics_parser = subparsers.add_parser("analytics", parents=[owned], help="Show pipeline analytics")
    analytics_parser.add_argument("--json", action="store_true", help="Print analytics as JSON")

    # --- serve ---
    serve_parser = subparsers.add_parser("serve", parents=[common], help="Run the HTTP API")
    serve_parser.add_argument("--host", help="Bind address (default from settings)")
    serve_parser.add_argument("--port", type=int, help="Port (default from settings)")

    return parser.parse_args(argv)


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def cmd_signin(conn: sqlite3.Connection, args: argparse.Namespace) -> None:
    user = users.sign_in(conn, args.email)
    print(f"Signed in as {user.email}")
    print(f"  User id: {user.id}")


def cmd_add_vacancy(conn: sqlite3.Connection, args: argparse.Namespace) -> None:
    payload = VacancyCreate(
        company_name=args.company,
        role_title=args.role,
        link=args.link,
        source=args.source,
        salary_range=args.salary,
        location=args.location,
        notes=args.notes,
    )
    vacancy = vacancies.create_vacancy(conn, args.user, payload)
    print(f"Saved {vacancy.role_title} at {vacancy.company_name} ({vacancy.id})")


def cmd_vacancies(conn: sqlite3.Connection, args: argparse.Namespace) -> None:
    items = vacancies.list_vacancies(conn, args.user)
    print(f"{len(items)} vacancies")
    for v in items:
        source = f" [{v.source.value}]" if v.source else ""
        print(f"  {v.id}  {v.role_title} at {v.company_name}{source}  {v.link}")


def cmd_board(conn: sqlite3.Connection, args: argparse.Namespace) -> None:
    columns = analytics.board_columns(workflow.list_applications(conn, args.user))
    for status, apps in columns.items():
        print(f"{status.value.upper()} ({len(apps)})")
        for a in apps:
            due = f" (due {a.next_step_due_date.isoformat()})" if a.next_step_due_date else ""
            next_step = f" - next: {a.next_step}{due}" if a.next_step else ""
            print(f"  {a.id}  {a.company_name} - {a.role_title}{next_step}")


def cmd_move(conn: sqlite3.Connection, args: argparse.Namespace) -> None:
    app = workflow.transition_status(
        conn, args.application_id, args.user, args.status, args.next_step, args.due,
    )
    print(f"{app.company_name} - {app.role_title}: now {app.status.value}")
    if app.applied_date:
        print(f"  Applied on {app.applied_date.isoformat()}")
    if args.next_step and args.next_step.strip():
        print(f"  Todo added: {args.next_step.strip()}")


def cmd_todos(conn: sqlite3.Connection, args: argparse.Namespace) -> None:
    items = todos.list_todos(conn, args.user)
    print(f"{len(items)} todos")
    for t in items:
        mark = "x" if t.completed else " "
        due = f" (due {t.due_date.isoformat()})" if t.due_date else ""
        print(f"  [{mark}] {t.id}  {t.priority.value:<6} {t.title}{due}")


def cmd_add_todo(conn: sqlite3.Connection, args: argparse.Namespace) -> None:
    payload = TodoCreate(
        title=args.title,
        description=args.description,
        priority=args.priority,
        due_date=args.due,
        application_id=args.application,
    )
    todo = todos.create_todo(conn, args.user, payload)
    print(f"Added todo {todo.id}: {todo.title}")


def cmd_complete_todo(conn: sqlite3.Connection, args: argparse.Namespace) -> None:
    todo = todos.complete_todo(conn, args.todo_id, args.user)
    print(f"Completed: {todo.title}")


def cmd_reminders(conn: sqlite3.Connection, args: argparse.Namespace) -> None:
    buckets = analytics.build_reminders(conn, args.user)
    for label, apps in (("Overdue", buckets.overdue), ("Today", buckets.today),
                        ("Upcoming", buckets.upcoming)):
        print(f"{label}: {len(apps)}")
        for a in apps:
            due = a.next_step_due_date.isoformat() if a.next_step_due_date else ""
            print(f"  {a.company_name} - {a.role_title}: {a.next_step or ''} ({due})")


def cmd_analytics(conn: sqlite3.Connection, args: argparse.Namespace) -> None:
    summary = analytics.build_analytics(conn, args.user)
    if args.json:
        print(summary.model_dump_json(by_alias=True, indent=2))
        return

    print(f"Total applications: {summary.total_applications}")
    print(f"Stalled (no status change in 7+ days): {summary.stalled_applications}")
    print(f"Overdue next steps: {summary.overdue_reminders}")
    print("Status distribution:")
    for item in summary.status_distribution:
        print(f"  {item.status.value:<10} {item.count}")
    print("Conversion:")
    for metric in summary.conversion_metrics:
        print(f"  {metric.stage:<24} {metric.count:>3}  {metric.conversion:.1f}%")
    print("Median days in stage:")
    for stage in summary.time_in_stage:
        print(f"  {stage.status.value:<10} {stage.median_days:.1f}")


def cmd_serve(settings: Settings, args: argparse.Namespace) -> None:
    import uvicorn

    from applyflow.api.app import create_app

    uvicorn.run(
        create_app(settings),
        host=args.host or settings.server.host,
        port=args.port or settings.server.port,
    )


_COMMANDS = {
    "signin": cmd_signin,
    "add-vacancy": cmd_add_vacancy,
    "vacancies": cmd_vacancies,
    "board": cmd_board,
    "move": cmd_move,
    "todos": cmd_todos,
    "add-todo": cmd_add_todo,
    "complete-todo": cmd_complete_todo,
    "reminders": cmd_reminders,
    "analytics": cmd_analytics,
}


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        settings = Settings.from_yaml(args.config)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    if args.command == "serve":
        cmd_serve(settings, args)
        return

    conn = init_db(settings.database.path)
    try:
        _COMMANDS[args.command](conn, args)
    except TrackerError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        conn.close()


if __name__ == "__main__":
    main()
