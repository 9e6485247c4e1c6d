"""Database models for the productivity backend using SQLModel."""

from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from enum import Enum

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    """Timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


class AccountType(str, Enum):
    STUDENT = "STUDENT"
    GENERAL = "GENERAL"


class RecordSource(str, Enum):
    """Provenance tag of a task or event."""

    USER = "user"
    TECSUP = "tecsup"


class Priority(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


PRIORITY_ORDER = {Priority.HIGH: 1, Priority.MEDIUM: 2, Priority.LOW: 3}


class EventCategory(str, Enum):
    CLASS = "CLASS"
    EXAM = "EXAM"
    PERSONAL = "PERSONAL"


class HabitType(str, Enum):
    SLEEP = "SLEEP"
    EXERCISE = "EXERCISE"
    WATER = "WATER"
    STUDY = "STUDY"
    OTHER = "OTHER"


@dataclass(frozen=True)
class Owned:
    """Record authored by the user."""


@dataclass(frozen=True)
class Imported:
    """Record imported from the Tecsup feed."""

    external_id: str


Provenance = Owned | Imported


class User(SQLModel, table=True):
    """Account owning tasks, events and habits."""

    __tablename__ = "users"

    id: int | None = Field(default=None, primary_key=True)
    email: str = Field(index=True, unique=True)
    name: str
    account_type: AccountType = AccountType.GENERAL
    chat_enabled: bool = True

    created_at: datetime = Field(default_factory=utcnow)


class SyncState(SQLModel, table=True):
    """Tecsup sync state for one user.

    ``enabled`` implies a validated token is stored; disabling clears it.
    """

    __tablename__ = "sync_states"

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True, unique=True)
    enabled: bool = False
    token: str | None = None
    last_sync_at: datetime | None = None
    last_error: str | None = None
    sync_count: int = 0


class SourcedRecord(SQLModel):
    """Columns and helpers shared by records that can come from the feed."""

    source: RecordSource = Field(default=RecordSource.USER, index=True)
    external_id: str | None = Field(default=None, index=True)
    synced: bool = False

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(
        default_factory=utcnow, sa_column_kwargs={"onupdate": utcnow}
    )

    @property
    def provenance(self) -> Provenance:
        if self.source == RecordSource.TECSUP and self.external_id is not None:
            return Imported(self.external_id)
        return Owned()

    @property
    def is_imported(self) -> bool:
        return isinstance(self.provenance, Imported)

    def check_provenance(self) -> None:
        """Raise ValueError unless external_id is set exactly for tecsup records."""
        imported = self.source == RecordSource.TECSUP
        if imported != (self.external_id is not None):
            raise ValueError(
                f"{type(self).__name__} with source={self.source.value!r} "
                f"has external_id={self.external_id!r}"
            )


class Task(SourcedRecord, table=True):
    """Actionable item, optionally due on a date."""

    __tablename__ = "tasks"

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)

    title: str
    description: str | None = None
    priority: Priority = Priority.MEDIUM
    due_date: date | None = Field(default=None, index=True)
    completed: bool = False


class Event(SourcedRecord, table=True):
    """Calendar entry (class, exam or personal)."""

    __tablename__ = "events"

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)

    title: str
    event_date: date = Field(index=True)
    start_time: time | None = None
    category: EventCategory = EventCategory.PERSONAL
    description: str | None = None
    course_name: str | None = None


class Habit(SQLModel, table=True):
    """Recurring daily goal."""

    __tablename__ = "habits"

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)

    name: str
    habit_type: HabitType = HabitType.OTHER
    daily_goal: int = 1
    active: bool = True

    created_at: datetime = Field(default_factory=utcnow)


class HabitLog(SQLModel, table=True):
    """One day's record against a habit."""

    __tablename__ = "habit_logs"
    __table_args__ = (UniqueConstraint("habit_id", "log_date"),)

    id: int | None = Field(default=None, primary_key=True)
    habit_id: int = Field(foreign_key="habits.id", index=True)
    log_date: date = Field(index=True)

    completed: bool = False
    value: int | None = None

    created_at: datetime = Field(default_factory=utcnow)


class DailySummary(SQLModel, table=True):
    """Per-user, per-day progress rollup; persisted rows are historical fact."""

    __tablename__ = "daily_summaries"
    __table_args__ = (UniqueConstraint("user_id", "summary_date"),)

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    summary_date: date = Field(index=True)

    # Tasks
    total_tasks: int = 0
    completed_tasks: int = 0

    # Habits
    total_habits: int = 0
    completed_habits: int = 0

    progress_percentage: int = 0

    created_at: datetime = Field(default_factory=utcnow)


class ChatMessage(SQLModel, table=True):
    """Assistant exchange."""

    __tablename__ = "chat_messages"

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)

    message: str
    response: str

    created_at: datetime = Field(default_factory=utcnow)
