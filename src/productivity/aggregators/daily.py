"""Daily aggregator for the home dashboard."""

from collections.abc import Callable
from datetime import date
from typing import Any

import structlog
from sqlmodel import Session

from productivity.aggregators.calendar import habit_progress
from productivity.aggregators.summary import DailySummaryEngine, local_today
from productivity.db.models import User
from productivity.db.store import EventStore, HabitStore, TaskStore

logger = structlog.get_logger()


class DashboardAssembler:
    """Aggregates today's data for the dashboard.

    Combines:
    - Pending tasks (priority first, then due date, undated last)
    - Active habits with today's log
    - Today's events in time order
    - Today's live summary
    """

    def __init__(self, session: Session, today: Callable[[], date] = local_today) -> None:
        self.tasks = TaskStore(session)
        self.events = EventStore(session)
        self.habits = HabitStore(session)
        self.summaries = DailySummaryEngine(session, today=today)
        self._today = today

    def get_dashboard(self, user: User) -> dict[str, Any]:
        """Generate the dashboard for today.

        Returns:
            Complete dashboard data.
        """
        today = self._today()

        pending = self.tasks.find_pending(user.id, today)
        events = self.events.find_by_owner_and_date(user.id, today)

        logs = {log.habit_id: log for log in self.habits.find_logs_on(user.id, today)}
        habits = []
        for habit in self.habits.find_active(user.id):
            log = logs.get(habit.id)
            habits.append(
                {
                    **habit.model_dump(mode="json"),
                    "today_log": log.model_dump(mode="json") if log else None,
                    "progress": habit_progress(habit, log),
                }
            )

        summary = self.summaries.get_or_compute(user, today)

        dashboard: dict[str, Any] = {
            "date": today.isoformat(),
            "user": {"id": user.id, "name": user.name},
            "pending_tasks": [task.model_dump(mode="json") for task in pending],
            "habits": habits,
            "events": [event.model_dump(mode="json") for event in events],
            "summary": {
                "total_tasks": summary.total_tasks,
                "completed_tasks": summary.completed_tasks,
                "total_habits": summary.total_habits,
                "completed_habits": summary.completed_habits,
                "progress": summary.progress_percentage,
            },
        }
        dashboard["summary_text"] = self._generate_summary_text(dashboard)

        logger.debug("Built dashboard", user_id=user.id, pending=len(pending))
        return dashboard

    def _generate_summary_text(self, dashboard: dict[str, Any]) -> str:
        """Generate a one-line natural language summary."""
        parts = [f"Hi {dashboard['user']['name']}!"]

        pending = dashboard["pending_tasks"]
        if pending:
            high = sum(1 for task in pending if task["priority"] == "HIGH")
            parts.append(
                f"You have {len(pending)} pending tasks"
                + (f", {high} of them high priority" if high else "")
                + "."
            )
        else:
            parts.append("No pending tasks.")

        events = dashboard["events"]
        if events:
            exams = sum(1 for event in events if event["category"] == "EXAM")
            parts.append(
                f"{len(events)} events today"
                + (f" including {exams} exams" if exams else "")
                + "."
            )

        summary = dashboard["summary"]
        if summary["total_tasks"] or summary["total_habits"]:
            parts.append(f"Progress so far: {summary['progress']}%.")

        return " ".join(parts)
