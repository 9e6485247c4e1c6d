"""CRUD services for the user's tasks, events and habits.

Every write goes through the protection policy, so records imported from
Tecsup only accept the local changes the policy allows.
"""

from datetime import date, time
from typing import Any

import structlog
from pydantic import BaseModel, Field, field_validator
from sqlmodel import Session

from productivity.db.models import (
    PRIORITY_ORDER,
    Event,
    EventCategory,
    Habit,
    HabitLog,
    HabitType,
    Priority,
    Task,
    User,
)
from productivity.db.store import EventStore, HabitStore, TaskStore
from productivity.errors import NotOwner
from productivity.sync.protection import check_update, ensure_deletable

logger = structlog.get_logger()


def _clean_title(value: str | None) -> str:
    if value is None:
        raise ValueError("title must not be null")
    value = value.strip()
    if not value:
        raise ValueError("title must not be blank")
    return value


def _not_null(value: Any) -> Any:
    if value is None:
        raise ValueError("must not be null")
    return value


class TaskCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str | None = None
    priority: Priority = Priority.MEDIUM
    due_date: date | None = None

    @field_validator("title")
    @classmethod
    def strip_title(cls, value: str) -> str:
        return _clean_title(value)


class TaskUpdate(BaseModel):
    """Partial update; only fields that are set are applied.

    ``description`` and ``due_date`` may be cleared with an explicit null,
    the other fields may not.
    """

    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    priority: Priority | None = None
    due_date: date | None = None
    completed: bool | None = None

    @field_validator("title")
    @classmethod
    def strip_title(cls, value: str | None) -> str:
        return _clean_title(value)

    @field_validator("priority", "completed")
    @classmethod
    def reject_null(cls, value: Any) -> Any:
        return _not_null(value)


class EventCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    event_date: date
    start_time: time | None = None
    category: EventCategory = EventCategory.PERSONAL
    description: str | None = None
    course_name: str | None = None

    @field_validator("title")
    @classmethod
    def strip_title(cls, value: str) -> str:
        return _clean_title(value)


class EventUpdate(BaseModel):
    """Partial update; only fields that are set are applied."""

    title: str | None = Field(default=None, min_length=1, max_length=200)
    event_date: date | None = None
    start_time: time | None = None
    category: EventCategory | None = None
    description: str | None = None
    course_name: str | None = None

    @field_validator("title")
    @classmethod
    def strip_title(cls, value: str | None) -> str:
        return _clean_title(value)

    @field_validator("event_date", "category")
    @classmethod
    def reject_null(cls, value: Any) -> Any:
        return _not_null(value)


class HabitCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    habit_type: HabitType = HabitType.OTHER
    daily_goal: int = Field(default=1, ge=1)


class HabitUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    habit_type: HabitType | None = None
    daily_goal: int | None = Field(default=None, ge=1)
    active: bool | None = None

    @field_validator("name", "habit_type", "daily_goal", "active")
    @classmethod
    def reject_null(cls, value: Any) -> Any:
        return _not_null(value)


class HabitLogRequest(BaseModel):
    habit_id: int
    log_date: date
    completed: bool = False
    value: int | None = Field(default=None, ge=0)


def _ensure_owner(user: User, record: Any, label: str) -> None:
    if record.user_id != user.id:
        raise NotOwner(f"{label} {record.id} does not belong to this user")


def _changes(update: BaseModel) -> dict[str, Any]:
    return update.model_dump(exclude_unset=True)


class TaskService:
    """Task CRUD for one session."""

    def __init__(self, session: Session) -> None:
        self.session = session
        self.store = TaskStore(session)

    def list_all(
        self, user: User, completed: bool | None = None, priority: Priority | None = None
    ) -> list[Task]:
        """User's tasks by priority, newest first within a priority."""
        if completed is None:
            tasks = self.store.find_by_owner(user.id)
        else:
            tasks = self.store.find_by_owner_and_completion(user.id, completed)
        if priority is not None:
            tasks = [task for task in tasks if task.priority == priority]
        tasks.sort(key=lambda task: task.created_at, reverse=True)
        tasks.sort(key=lambda task: PRIORITY_ORDER[task.priority])
        return tasks

    def get(self, user: User, task_id: int) -> Task:
        task = self.store.find_by_id(task_id)
        _ensure_owner(user, task, "Task")
        return task

    def create(self, user: User, request: TaskCreate) -> Task:
        task = self.store.save(Task(user_id=user.id, **request.model_dump()))
        self.session.commit()
        self.session.refresh(task)
        logger.info("Task created", user_id=user.id, task_id=task.id)
        return task

    def update(self, user: User, task_id: int, request: TaskUpdate) -> Task:
        """Apply a partial update.

        Raises:
            ProtectedRecordError: The task is imported and a field other
                than completion or priority would change.
        """
        task = self.get(user, task_id)
        changes = check_update(task, _changes(request))
        for name, value in changes.items():
            setattr(task, name, value)
        self.store.save(task)
        self.session.commit()
        self.session.refresh(task)
        logger.info("Task updated", user_id=user.id, task_id=task.id, fields=sorted(changes))
        return task

    def toggle(self, user: User, task_id: int) -> Task:
        """Flip completion; allowed for imported tasks too."""
        task = self.get(user, task_id)
        task.completed = not task.completed
        self.store.save(task)
        self.session.commit()
        self.session.refresh(task)
        return task

    def delete(self, user: User, task_id: int) -> None:
        task = self.get(user, task_id)
        ensure_deletable(task)
        self.store.delete(task)
        self.session.commit()
        logger.info("Task deleted", user_id=user.id, task_id=task_id)


class EventService:
    """Event CRUD for one session."""

    def __init__(self, session: Session) -> None:
        self.session = session
        self.store = EventStore(session)

    def list_all(
        self, user: User, day: date | None = None, category: EventCategory | None = None
    ) -> list[Event]:
        """User's events by date then time, optionally filtered."""
        if day is not None:
            events = self.store.find_by_owner_and_date(user.id, day)
            if category is not None:
                events = [event for event in events if event.category == category]
            return events
        if category is not None:
            return self.store.find_by_owner_and_category(user.id, category)
        return self.store.find_by_owner_and_date_range(user.id, date.min, date.max)

    def get(self, user: User, event_id: int) -> Event:
        event = self.store.find_by_id(event_id)
        _ensure_owner(user, event, "Event")
        return event

    def create(self, user: User, request: EventCreate) -> Event:
        data = request.model_dump()
        data["title"] = data["title"].strip()
        event = self.store.save(Event(user_id=user.id, **data))
        self.session.commit()
        self.session.refresh(event)
        logger.info("Event created", user_id=user.id, event_id=event.id)
        return event

    def update(self, user: User, event_id: int, request: EventUpdate) -> Event:
        """Apply a partial update; imported events reject any change."""
        event = self.get(user, event_id)
        changes = check_update(event, _changes(request))
        for name, value in changes.items():
            setattr(event, name, value)
        self.store.save(event)
        self.session.commit()
        self.session.refresh(event)
        logger.info("Event updated", user_id=user.id, event_id=event.id, fields=sorted(changes))
        return event

    def delete(self, user: User, event_id: int) -> None:
        event = self.get(user, event_id)
        ensure_deletable(event)
        self.store.delete(event)
        self.session.commit()
        logger.info("Event deleted", user_id=user.id, event_id=event_id)


class HabitService:
    """Habit CRUD and daily logging."""

    def __init__(self, session: Session) -> None:
        self.session = session
        self.store = HabitStore(session)

    def list_all(self, user: User) -> list[Habit]:
        return list(reversed(self.store.find_by_owner(user.id)))

    def get(self, user: User, habit_id: int) -> Habit:
        habit = self.store.find_by_id(habit_id)
        _ensure_owner(user, habit, "Habit")
        return habit

    def create(self, user: User, request: HabitCreate) -> Habit:
        data = request.model_dump()
        data["name"] = data["name"].strip()
        habit = self.store.save(Habit(user_id=user.id, **data))
        self.session.commit()
        self.session.refresh(habit)
        logger.info("Habit created", user_id=user.id, habit_id=habit.id)
        return habit

    def update(self, user: User, habit_id: int, request: HabitUpdate) -> Habit:
        habit = self.get(user, habit_id)
        for name, value in request.model_dump(exclude_unset=True).items():
            if value is not None:
                setattr(habit, name, value.strip() if name == "name" else value)
        self.store.save(habit)
        self.session.commit()
        self.session.refresh(habit)
        return habit

    def delete(self, user: User, habit_id: int) -> None:
        habit = self.get(user, habit_id)
        self.store.delete(habit)
        self.session.commit()
        logger.info("Habit deleted", user_id=user.id, habit_id=habit_id)

    def log(self, user: User, request: HabitLogRequest) -> HabitLog:
        """Record a day's progress, replacing that day's previous log."""
        habit = self.get(user, request.habit_id)
        log = self.store.find_log(habit.id, request.log_date)
        if log is None:
            log = HabitLog(habit_id=habit.id, log_date=request.log_date)
        log.completed = request.completed
        log.value = request.value
        self.store.save_log(log)
        self.session.commit()
        self.session.refresh(log)
        logger.info(
            "Habit logged",
            user_id=user.id,
            habit_id=habit.id,
            date=request.log_date.isoformat(),
            completed=log.completed,
        )
        return log
