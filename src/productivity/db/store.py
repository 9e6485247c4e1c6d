"""Query surface over the SQLModel tables.

Stores flush so that new rows get their ids, but never commit: the calling
service owns the transaction. Ownership checks are the caller's job too.
"""

from collections.abc import Iterable
from datetime import date, time, timedelta
from typing import Generic, TypeVar

from sqlalchemy import func
from sqlmodel import Session, select

from productivity.db.models import (
    PRIORITY_ORDER,
    DailySummary,
    Event,
    EventCategory,
    Habit,
    HabitLog,
    RecordSource,
    SyncState,
    Task,
    User,
)
from productivity.errors import RecordNotFound

R = TypeVar("R", Task, Event)


class RecordStore(Generic[R]):
    """Persistence for one kind of sourced record (tasks or events)."""

    model: type[R]
    date_field: str
    label: str

    def __init__(self, session: Session) -> None:
        self.session = session

    @property
    def _date_column(self):
        return getattr(self.model, self.date_field)

    def find_by_id(self, record_id: int) -> R:
        record = self.session.get(self.model, record_id)
        if record is None:
            raise RecordNotFound(f"{self.label} {record_id} not found")
        return record

    def find_by_owner(self, owner_id: int) -> list[R]:
        statement = select(self.model).where(self.model.user_id == owner_id)
        return list(self.session.exec(statement).all())

    def find_by_owner_and_source(self, owner_id: int, source: RecordSource) -> list[R]:
        statement = select(self.model).where(
            self.model.user_id == owner_id,
            self.model.source == source,
        )
        return list(self.session.exec(statement).all())

    def count_by_owner_and_source(self, owner_id: int, source: RecordSource) -> int:
        statement = (
            select(func.count())
            .select_from(self.model)
            .where(self.model.user_id == owner_id, self.model.source == source)
        )
        return self.session.exec(statement).one()

    def find_by_owner_and_date_range(self, owner_id: int, start: date, end: date) -> list[R]:
        """Records dated within [start, end], inclusive."""
        column = self._date_column
        statement = (
            select(self.model)
            .where(self.model.user_id == owner_id, column >= start, column <= end)
            .order_by(column)
        )
        return list(self.session.exec(statement).all())

    def find_by_owner_and_date(self, owner_id: int, day: date) -> list[R]:
        return self.find_by_owner_and_date_range(owner_id, day, day)

    def delete_by_owner_and_source(self, owner_id: int, source: RecordSource) -> int:
        """Bulk delete; used only by the sync engine."""
        records = self.find_by_owner_and_source(owner_id, source)
        for record in records:
            self.session.delete(record)
        self.session.flush()
        return len(records)

    def save(self, record: R) -> R:
        record.check_provenance()
        self.session.add(record)
        self.session.flush()
        return record

    def save_all(self, records: Iterable[R]) -> list[R]:
        records = list(records)
        for record in records:
            record.check_provenance()
            self.session.add(record)
        self.session.flush()
        return records

    def delete(self, record: R) -> None:
        self.session.delete(record)
        self.session.flush()

    def replace_source(
        self, owner_id: int, source: RecordSource, records: Iterable[R]
    ) -> list[R]:
        """Swap every record of (owner, source) for ``records``.

        Both steps happen inside the caller's transaction, so a rollback
        restores the previous set.
        """
        self.delete_by_owner_and_source(owner_id, source)
        return self.save_all(records)


class TaskStore(RecordStore[Task]):
    model = Task
    date_field = "due_date"
    label = "Task"

    def find_by_owner_and_completion(self, owner_id: int, completed: bool) -> list[Task]:
        statement = select(Task).where(Task.user_id == owner_id, Task.completed == completed)
        return list(self.session.exec(statement).all())

    def find_pending(self, owner_id: int, today: date) -> list[Task]:
        """Open tasks due today or later (or undated), by priority then due date."""
        tasks = [
            task
            for task in self.find_by_owner_and_completion(owner_id, False)
            if task.due_date is None or task.due_date >= today
        ]
        return sorted(tasks, key=_priority_then_due)

    def find_overdue(self, owner_id: int, today: date) -> list[Task]:
        statement = (
            select(Task)
            .where(
                Task.user_id == owner_id,
                Task.completed == False,  # noqa: E712
                Task.due_date < today,
            )
            .order_by(Task.due_date)
        )
        return list(self.session.exec(statement).all())

    def find_upcoming(self, owner_id: int, today: date, days: int = 7) -> list[Task]:
        """Open tasks due in the ``days`` after today."""
        tasks = self.find_by_owner_and_date_range(
            owner_id, today + timedelta(days=1), today + timedelta(days=days)
        )
        return [task for task in tasks if not task.completed]

    def count_due_on(self, owner_id: int, day: date, completed: bool | None = None) -> int:
        statement = (
            select(func.count())
            .select_from(Task)
            .where(Task.user_id == owner_id, Task.due_date == day)
        )
        if completed is not None:
            statement = statement.where(Task.completed == completed)
        return self.session.exec(statement).one()


class EventStore(RecordStore[Event]):
    model = Event
    date_field = "event_date"
    label = "Event"

    def find_by_owner_and_date_range(self, owner_id: int, start: date, end: date) -> list[Event]:
        events = super().find_by_owner_and_date_range(owner_id, start, end)
        return sorted(events, key=_date_then_time)

    def find_by_owner_and_category(self, owner_id: int, category: EventCategory) -> list[Event]:
        statement = select(Event).where(Event.user_id == owner_id, Event.category == category)
        return sorted(self.session.exec(statement).all(), key=_date_then_time)


class HabitStore:
    """Habits and their daily logs."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def find_by_id(self, habit_id: int) -> Habit:
        habit = self.session.get(Habit, habit_id)
        if habit is None:
            raise RecordNotFound(f"Habit {habit_id} not found")
        return habit

    def find_by_owner(self, owner_id: int) -> list[Habit]:
        statement = select(Habit).where(Habit.user_id == owner_id).order_by(Habit.created_at)
        return list(self.session.exec(statement).all())

    def find_active(self, owner_id: int) -> list[Habit]:
        statement = (
            select(Habit)
            .where(Habit.user_id == owner_id, Habit.active == True)  # noqa: E712
            .order_by(Habit.created_at)
        )
        return list(self.session.exec(statement).all())

    def count_active(self, owner_id: int) -> int:
        statement = (
            select(func.count())
            .select_from(Habit)
            .where(Habit.user_id == owner_id, Habit.active == True)  # noqa: E712
        )
        return self.session.exec(statement).one()

    def find_log(self, habit_id: int, day: date) -> HabitLog | None:
        statement = select(HabitLog).where(HabitLog.habit_id == habit_id, HabitLog.log_date == day)
        return self.session.exec(statement).first()

    def find_logs_on(self, owner_id: int, day: date) -> list[HabitLog]:
        statement = (
            select(HabitLog)
            .join(Habit, HabitLog.habit_id == Habit.id)
            .where(Habit.user_id == owner_id, HabitLog.log_date == day)
        )
        return list(self.session.exec(statement).all())

    def count_completed_on(self, owner_id: int, day: date) -> int:
        """Completed logs on ``day`` for the owner's active habits."""
        statement = (
            select(func.count())
            .select_from(HabitLog)
            .join(Habit, HabitLog.habit_id == Habit.id)
            .where(
                Habit.user_id == owner_id,
                Habit.active == True,  # noqa: E712
                HabitLog.log_date == day,
                HabitLog.completed == True,  # noqa: E712
            )
        )
        return self.session.exec(statement).one()

    def save(self, habit: Habit) -> Habit:
        self.session.add(habit)
        self.session.flush()
        return habit

    def save_log(self, log: HabitLog) -> HabitLog:
        self.session.add(log)
        self.session.flush()
        return log

    def delete(self, habit: Habit) -> None:
        for log in self.session.exec(select(HabitLog).where(HabitLog.habit_id == habit.id)).all():
            self.session.delete(log)
        self.session.delete(habit)
        self.session.flush()


class SummaryStore:
    """Persisted daily summaries."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def find(self, owner_id: int, day: date) -> DailySummary | None:
        statement = select(DailySummary).where(
            DailySummary.user_id == owner_id, DailySummary.summary_date == day
        )
        return self.session.exec(statement).first()

    def exists(self, owner_id: int, day: date) -> bool:
        return self.find(owner_id, day) is not None

    def save(self, summary: DailySummary) -> DailySummary:
        self.session.add(summary)
        self.session.flush()
        return summary

    def find_range(self, owner_id: int, start: date, end: date) -> list[DailySummary]:
        statement = (
            select(DailySummary)
            .where(
                DailySummary.user_id == owner_id,
                DailySummary.summary_date >= start,
                DailySummary.summary_date <= end,
            )
            .order_by(DailySummary.summary_date.desc())
        )
        return list(self.session.exec(statement).all())

    def find_recent(self, owner_id: int, limit: int) -> list[DailySummary]:
        statement = (
            select(DailySummary)
            .where(DailySummary.user_id == owner_id)
            .order_by(DailySummary.summary_date.desc())
            .limit(limit)
        )
        return list(self.session.exec(statement).all())

    def delete_older_than(self, cutoff: date) -> int:
        old = self.session.exec(
            select(DailySummary).where(DailySummary.summary_date < cutoff)
        ).all()
        for summary in old:
            self.session.delete(summary)
        self.session.flush()
        return len(old)


class UserStore:
    """Users and their sync state."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def find_by_id(self, user_id: int) -> User:
        user = self.session.get(User, user_id)
        if user is None:
            raise RecordNotFound(f"User {user_id} not found")
        return user

    def find_all(self) -> list[User]:
        return list(self.session.exec(select(User).order_by(User.id)).all())

    def save(self, user: User) -> User:
        self.session.add(user)
        self.session.flush()
        return user

    def find_sync_state(self, user: User) -> SyncState | None:
        return self.session.exec(select(SyncState).where(SyncState.user_id == user.id)).first()

    def sync_state_for(self, user: User) -> SyncState:
        """The user's sync state, created disabled on first access."""
        state = self.find_sync_state(user)
        if state is None:
            state = SyncState(user_id=user.id)
            self.session.add(state)
            self.session.flush()
        return state

    def find_sync_enabled(self) -> list[User]:
        statement = (
            select(User)
            .join(SyncState, SyncState.user_id == User.id)
            .where(SyncState.enabled == True)  # noqa: E712
            .order_by(User.id)
        )
        return list(self.session.exec(statement).all())


def _priority_then_due(task: Task) -> tuple:
    return (PRIORITY_ORDER[task.priority], task.due_date is None, task.due_date or date.max)


def _date_then_time(event: Event) -> tuple:
    return (event.event_date, event.start_time is None, event.start_time or time.min)
