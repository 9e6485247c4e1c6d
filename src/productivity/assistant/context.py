"""Structured view of a user's data for the assistant."""

from datetime import date, timedelta
from typing import Any

import structlog
from sqlmodel import Session

from productivity.aggregators.calendar import habit_progress
from productivity.aggregators.summary import DailySummaryEngine
from productivity.db.models import Event, RecordSource, Task, User
from productivity.db.store import EventStore, HabitStore, TaskStore, UserStore

logger = structlog.get_logger()


def _task(task: Task) -> dict[str, Any]:
    return {
        "title": task.title,
        "priority": task.priority.value,
        "due_date": task.due_date.isoformat() if task.due_date else None,
        "completed": task.completed,
        "from_tecsup": task.source == RecordSource.TECSUP,
    }


def _event(event: Event) -> dict[str, Any]:
    return {
        "title": event.title,
        "time": event.start_time.strftime("%H:%M") if event.start_time else None,
        "category": event.category.value,
        "course": event.course_name,
    }


def _has_tecsup_sync(session: Session, user: User) -> bool:
    state = UserStore(session).find_sync_state(user)
    return state is not None and state.enabled


def build_user_context(session: Session, user: User, today: date) -> dict[str, Any]:
    """Collect everything the assistant may reference about the user.

    Sections: user, today, upcoming (next 7 days), overdue, yesterday and
    overall summary stats.
    """
    tasks = TaskStore(session)
    events = EventStore(session)
    habits = HabitStore(session)
    summaries = DailySummaryEngine(session, today=lambda: today)

    today_tasks = tasks.find_by_owner_and_date(user.id, today)
    logs = {log.habit_id: log for log in habits.find_logs_on(user.id, today)}
    active_habits = habits.find_active(user.id)
    today_summary = summaries.get_or_compute(user, today)
    yesterday = summaries.get_or_compute(user, today - timedelta(days=1))

    upcoming = tasks.find_upcoming(user.id, today, days=7)
    overdue = tasks.find_overdue(user.id, today)
    all_tasks = tasks.find_by_owner(user.id)
    completed_count = sum(1 for task in all_tasks if task.completed)

    context = {
        "user": {
            "name": user.name,
            "email": user.email,
            "account_type": user.account_type.value,
            "has_tecsup_sync": _has_tecsup_sync(session, user),
        },
        "today": {
            "date": today.isoformat(),
            "tasks": [_task(task) for task in today_tasks],
            "events": [_event(event) for event in events.find_by_owner_and_date(user.id, today)],
            "habits": [
                {
                    "name": habit.name,
                    "type": habit.habit_type.value,
                    "goal": habit.daily_goal,
                    "completed": bool(logs.get(habit.id) and logs[habit.id].completed),
                    "progress": habit_progress(habit, logs.get(habit.id)),
                }
                for habit in active_habits
            ],
            "progress": today_summary.progress_percentage,
        },
        "upcoming": [_task(task) for task in upcoming],
        "overdue": [_task(task) for task in overdue],
        "yesterday": {
            "date": yesterday.summary_date.isoformat(),
            "completed_tasks": yesterday.completed_tasks,
            "total_tasks": yesterday.total_tasks,
            "completed_habits": yesterday.completed_habits,
            "total_habits": yesterday.total_habits,
            "progress": yesterday.progress_percentage,
        },
        "summary": {
            "total_tasks": len(all_tasks),
            "completed_tasks": completed_count,
            "pending_tasks": len(all_tasks) - completed_count,
            "overdue_tasks": len(overdue),
            "active_habits": len(active_habits),
        },
    }
    logger.debug("Built assistant context", user_id=user.id, sections=len(context))
    return context
