"""Daily progress rollups over tasks and habits.

Today is always recomputed because its data is still changing. A past day
returns its persisted snapshot when one exists; snapshots are write-once.
"""

import calendar
from collections.abc import Callable
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

import structlog
from pydantic import BaseModel
from sqlmodel import Session

from productivity.config.settings import settings
from productivity.db.models import DailySummary, User
from productivity.db.store import EventStore, HabitStore, SummaryStore, TaskStore, UserStore

logger = structlog.get_logger()


def local_today() -> date:
    """Today's date in the configured timezone."""
    return datetime.now(ZoneInfo(settings.timezone)).date()


def progress_percentage(completed: int, total: int) -> int:
    """Round-half-up of 100 * completed / total; 0 when total is 0."""
    if total <= 0:
        return 0
    return (200 * completed + total) // (2 * total)


class DayInfo(BaseModel):
    """One cell of the month view."""

    day: date
    has_activity: bool
    task_count: int
    event_count: int
    progress: int | None = None
    is_today: bool
    is_past: bool


class DailySummaryEngine:
    """Computes, snapshots and reads per-day summaries.

    Args:
        session: Database session.
        today: Clock for "today" (defaults to the configured timezone).
    """

    def __init__(self, session: Session, today: Callable[[], date] = local_today) -> None:
        self.session = session
        self.tasks = TaskStore(session)
        self.events = EventStore(session)
        self.habits = HabitStore(session)
        self.summaries = SummaryStore(session)
        self._today = today

    def compute(self, user: User, day: date) -> DailySummary:
        """Build a fresh, unsaved summary for ``day``."""
        total_tasks = self.tasks.count_due_on(user.id, day)
        completed_tasks = self.tasks.count_due_on(user.id, day, completed=True)
        total_habits = self.habits.count_active(user.id)
        completed_habits = self.habits.count_completed_on(user.id, day)

        return DailySummary(
            user_id=user.id,
            summary_date=day,
            total_tasks=total_tasks,
            completed_tasks=completed_tasks,
            total_habits=total_habits,
            completed_habits=completed_habits,
            progress_percentage=progress_percentage(
                completed_tasks + completed_habits, total_tasks + total_habits
            ),
        )

    def get_or_compute(self, user: User, day: date) -> DailySummary:
        """Stored snapshot for a past day, otherwise a live computation (not saved)."""
        if day < self._today():
            existing = self.summaries.find(user.id, day)
            if existing is not None:
                logger.debug("Summary snapshot found", user_id=user.id, date=day.isoformat())
                return existing

        logger.debug("Computing live summary", user_id=user.id, date=day.isoformat())
        return self.compute(user, day)

    def snapshot(self, user: User, day: date) -> DailySummary:
        """Persist the summary for ``day``; an existing row is returned unchanged."""
        existing = self.summaries.find(user.id, day)
        if existing is not None:
            logger.warning("Summary already exists", user_id=user.id, date=day.isoformat())
            return existing

        summary = self.summaries.save(self.compute(user, day))
        self.session.commit()
        logger.info(
            "Summary saved",
            user_id=user.id,
            date=day.isoformat(),
            progress=summary.progress_percentage,
        )
        return summary

    def snapshot_all(self, day: date | None = None) -> int:
        """Snapshot ``day`` (default yesterday) for every user. Returns new rows written."""
        day = day or self._today() - timedelta(days=1)
        written = 0
        for user in UserStore(self.session).find_all():
            if not self.summaries.exists(user.id, day):
                self.snapshot(user, day)
                written += 1
        logger.info("Nightly snapshot complete", date=day.isoformat(), written=written)
        return written

    def monthly_view(self, user: User, year: int, month: int) -> dict[date, DayInfo]:
        """Activity and progress for every day of a month.

        Past days use their snapshot, or a computation when they had activity;
        today is computed live; future days have no progress.
        """
        today = self._today()
        start = date(year, month, 1)
        end = date(year, month, calendar.monthrange(year, month)[1])

        task_counts: dict[date, int] = {}
        for task in self.tasks.find_by_owner_and_date_range(user.id, start, end):
            task_counts[task.due_date] = task_counts.get(task.due_date, 0) + 1
        event_counts: dict[date, int] = {}
        for event in self.events.find_by_owner_and_date_range(user.id, start, end):
            event_counts[event.event_date] = event_counts.get(event.event_date, 0) + 1
        snapshots = {s.summary_date: s for s in self.summaries.find_range(user.id, start, end)}

        days: dict[date, DayInfo] = {}
        day = start
        while day <= end:
            task_count = task_counts.get(day, 0)
            event_count = event_counts.get(day, 0)
            has_activity = task_count > 0 or event_count > 0

            progress = None
            if day < today:
                if day in snapshots:
                    progress = snapshots[day].progress_percentage
                elif has_activity:
                    progress = self.compute(user, day).progress_percentage
            elif day == today:
                progress = self.compute(user, day).progress_percentage

            days[day] = DayInfo(
                day=day,
                has_activity=has_activity,
                task_count=task_count,
                event_count=event_count,
                progress=progress,
                is_today=day == today,
                is_past=day < today,
            )
            day += timedelta(days=1)

        return days

    def monthly_summaries(self, user: User, year: int, month: int) -> list[DailySummary]:
        """Snapshots stored for a month, newest first."""
        start = date(year, month, 1)
        end = date(year, month, calendar.monthrange(year, month)[1])
        return self.summaries.find_range(user.id, start, end)

    def recent(self, user: User, limit: int = 7) -> list[DailySummary]:
        return self.summaries.find_recent(user.id, limit)

    def clean_older_than(self, days_to_keep: int) -> int:
        """Delete snapshots older than ``days_to_keep`` days, for all users."""
        cutoff = self._today() - timedelta(days=days_to_keep)
        removed = self.summaries.delete_older_than(cutoff)
        self.session.commit()
        logger.info("Old summaries removed", cutoff=cutoff.isoformat(), removed=removed)
        return removed
