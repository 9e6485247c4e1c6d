"""Pytest configuration and fixtures for productivity tests."""

from dataclasses import dataclass, field
from datetime import date

import httpx
import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from productivity.adapters.canvas import CanvasAdapter
from productivity.db import models  # noqa: F401
from productivity.db.models import AccountType, User
from productivity.sync.reconciler import SyncReconciler, UserLocks

TODAY = date(2026, 3, 18)
CANVAS_URL = "https://canvas.test/api/v1"
VALID_TOKEN = "valid-token"


@dataclass
class FakeCanvas:
    """In-memory Canvas API served through httpx.MockTransport."""

    token: str = VALID_TOKEN
    courses: list[dict] = field(default_factory=list)
    assignments: dict[str, list[dict]] = field(default_factory=dict)
    calendar_events: dict[str, list[dict]] = field(default_factory=dict)
    failing: set[tuple[str, str]] = field(default_factory=set)
    course_list_status: int = 200
    requests: list[str] = field(default_factory=list)

    def add_course(self, course_id: int, name: str, assignments=(), events=()) -> None:
        self.courses.append({"id": course_id, "name": name})
        self.assignments[str(course_id)] = list(assignments)
        self.calendar_events[str(course_id)] = list(events)

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/api/v1")
        self.requests.append(path)

        if request.headers.get("Authorization") != f"Bearer {self.token}":
            return httpx.Response(401, json={"errors": [{"message": "Invalid access token"}]})

        if path == "/users/self":
            return httpx.Response(200, json={"id": 1, "name": "Student"})

        if path == "/courses":
            if self.course_list_status != 200:
                return httpx.Response(self.course_list_status, json={"errors": []})
            return httpx.Response(200, json=self.courses)

        if path.startswith("/courses/") and path.endswith("/assignments"):
            course_id = path.split("/")[2]
            if (course_id, "assignments") in self.failing:
                return httpx.Response(500, json={"errors": []})
            return httpx.Response(200, json=self.assignments.get(course_id, []))

        if path == "/calendar_events":
            course_id = request.url.params["context_codes[]"].removeprefix("course_")
            if (course_id, "calendar_events") in self.failing:
                return httpx.Response(500, json={"errors": []})
            return httpx.Response(200, json=self.calendar_events.get(course_id, []))

        return httpx.Response(404)

    def adapter(self, token: str) -> CanvasAdapter:
        return CanvasAdapter(token, base_url=CANVAS_URL, transport=httpx.MockTransport(self.handler))


def assignment(assignment_id: int, name: str, due_at: str | None = "2026-03-20T23:59:00Z") -> dict:
    return {"id": assignment_id, "name": name, "due_at": due_at, "description": None}


def calendar_event(event_id: int, title: str, start_at: str | None = "2026-03-19T08:00:00Z") -> dict:
    return {"id": event_id, "title": title, "start_at": start_at, "description": None}


@pytest.fixture
def engine():
    """In-memory SQLite shared across connections."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def student(session):
    user = User(email="ana@tecsup.edu.pe", name="Ana", account_type=AccountType.STUDENT)
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture
def general_user(session):
    user = User(email="luis@example.com", name="Luis", account_type=AccountType.GENERAL)
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture
def canvas():
    """Fake Canvas with two healthy courses."""
    fake = FakeCanvas()
    fake.add_course(
        101,
        "Redes",
        assignments=[assignment(1, "Lab 1"), assignment(2, "Informe", due_at=None)],
        events=[calendar_event(11, "Clase de redes"), calendar_event(12, "Examen parcial", start_at="2026-03-19T10:00:00Z")],
    )
    fake.add_course(
        102,
        "Bases de datos",
        assignments=[assignment(3, "Proyecto SQL", due_at="2026-03-25T12:00:00Z")],
        events=[calendar_event(13, "Evaluación final", start_at="2026-03-26T14:30:00Z")],
    )
    return fake


@pytest.fixture
def reconciler(session, canvas):
    return SyncReconciler(session, feed_factory=canvas.adapter, locks=UserLocks())


@pytest.fixture
def today():
    return lambda: TODAY
