"""Calendar aggregator: month grid and single-day details."""

from collections.abc import Callable
from datetime import date
from typing import Any

import structlog
from sqlmodel import Session

from productivity.aggregators.summary import DailySummaryEngine, local_today, progress_percentage
from productivity.db.models import Habit, HabitLog, User
from productivity.db.store import EventStore, HabitStore, TaskStore

logger = structlog.get_logger()


def habit_progress(habit: Habit, log: HabitLog | None) -> int:
    """Percent of the daily goal reached, capped at 100; 0 without a logged value."""
    if log is None or log.value is None:
        return 0
    return min(100, progress_percentage(log.value, habit.daily_goal))


class CalendarAssembler:
    """Builds the calendar screens from stored records and summaries.

    Features:
    - Month grid with per-day activity and progress
    - Day details with tasks, events and habit progress
    """

    def __init__(self, session: Session, today: Callable[[], date] = local_today) -> None:
        self.tasks = TaskStore(session)
        self.events = EventStore(session)
        self.habits = HabitStore(session)
        self.summaries = DailySummaryEngine(session, today=today)

    def get_month_view(self, user: User, year: int, month: int) -> dict[str, Any]:
        """Get every day of a month.

        Args:
            user: Owner of the records.
            year: Calendar year.
            month: Month number, 1-12.

        Returns:
            Year, month and one entry per day keyed by ISO date.
        """
        days = self.summaries.monthly_view(user, year, month)
        logger.debug("Built month view", user_id=user.id, year=year, month=month)
        return {
            "year": year,
            "month": month,
            "days": {day.isoformat(): info.model_dump(mode="json") for day, info in days.items()},
        }

    def get_day_details(self, user: User, day: date) -> dict[str, Any]:
        """Get tasks, events, habits and the summary for one day.

        Args:
            user: Owner of the records.
            day: Day to describe.

        Returns:
            Day details with habit progress and summary totals.
        """
        tasks = self.tasks.find_by_owner_and_date(user.id, day)
        events = self.events.find_by_owner_and_date(user.id, day)

        logs = {log.habit_id: log for log in self.habits.find_logs_on(user.id, day)}
        habits = []
        for habit in self.habits.find_active(user.id):
            log = logs.get(habit.id)
            habits.append(
                {
                    **habit.model_dump(mode="json"),
                    "completed": bool(log and log.completed),
                    "value": log.value if log else None,
                    "progress": habit_progress(habit, log),
                }
            )

        summary = self.summaries.get_or_compute(user, day)

        return {
            "date": day.isoformat(),
            "tasks": [task.model_dump(mode="json") for task in tasks],
            "events": [event.model_dump(mode="json") for event in events],
            "habits": habits,
            "summary": {
                "total_tasks": summary.total_tasks,
                "completed_tasks": summary.completed_tasks,
                "total_habits": summary.total_habits,
                "completed_habits": summary.completed_habits,
                "progress": summary.progress_percentage,
            },
        }
