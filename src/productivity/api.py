"""Productivity API server: sync, summaries, calendar, dashboard, records and chat."""

from contextlib import asynccontextmanager
from datetime import date
from typing import Annotated, Any

import structlog
from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlmodel import Session

from productivity.adapters.canvas import CanvasAdapter
from productivity.aggregators import (
    CalendarAssembler,
    DailySummaryEngine,
    DashboardAssembler,
    local_today,
)
from productivity.assistant import AIResponder, AssistantService, PydanticAIResponder
from productivity.db import close_db, get_session, init_db
from productivity.db.models import AccountType, EventCategory, Priority, User
from productivity.db.store import UserStore
from productivity.errors import ProductivityError, ProtectedRecordError
from productivity.logging_config import configure_logging
from productivity.records import (
    EventCreate,
    EventService,
    EventUpdate,
    HabitCreate,
    HabitLogRequest,
    HabitService,
    HabitUpdate,
    TaskCreate,
    TaskService,
    TaskUpdate,
)
from productivity.sync.reconciler import FeedFactory, SyncReconciler

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    configure_logging()
    await init_db()
    logger.info("Database initialized")

    yield

    await close_db()
    logger.info("Database connections closed")


app = FastAPI(
    title="Productivity API",
    description="Tasks, events, habits and Tecsup sync",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def envelope(data: Any = None, message: str = "OK", success: bool = True) -> dict[str, Any]:
    """Standard response body."""
    return {"success": success, "message": message, "data": data}


@app.exception_handler(ProductivityError)
async def productivity_error_handler(request: Request, exc: ProductivityError) -> JSONResponse:
    data = {"fields": exc.fields} if isinstance(exc, ProtectedRecordError) else None
    logger.info(
        "Request rejected",
        path=request.url.path,
        error=type(exc).__name__,
        status=exc.status_code,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=envelope(data, message=exc.message, success=False),
    )


# Dependencies
def get_today() -> date:
    return local_today()


def get_feed_factory() -> FeedFactory:
    return CanvasAdapter


def get_responder() -> AIResponder:
    return PydanticAIResponder()


SessionDep = Annotated[Session, Depends(get_session)]
TodayDep = Annotated[date, Depends(get_today)]


def get_current_user(
    session: SessionDep,
    user_id: Annotated[int, Header(alias="X-User-Id")],
) -> User:
    """Acting user; authentication happens upstream of this service."""
    return UserStore(session).find_by_id(user_id)


UserDep = Annotated[User, Depends(get_current_user)]


def _dump(record: Any) -> dict[str, Any]:
    return record.model_dump(mode="json")


# Users
class UserCreate(BaseModel):
    email: str = Field(min_length=3, max_length=254)
    name: str = Field(min_length=1, max_length=100)
    account_type: AccountType = AccountType.GENERAL
    chat_enabled: bool = True


@app.post("/api/users", status_code=201)
async def create_user(request: UserCreate, session: SessionDep) -> dict[str, Any]:
    user = UserStore(session).save(User(**request.model_dump()))
    session.commit()
    session.refresh(user)
    return envelope(_dump(user), message="User created")


@app.get("/api/users/me")
async def get_me(user: UserDep) -> dict[str, Any]:
    return envelope(_dump(user))


# Tecsup sync
class EnableSyncRequest(BaseModel):
    token: str


@app.post("/api/sync/tecsup")
async def enable_sync(
    request: EnableSyncRequest,
    user: UserDep,
    session: SessionDep,
    feed_factory: Annotated[FeedFactory, Depends(get_feed_factory)],
) -> dict[str, Any]:
    """Validate the token and import the Tecsup feed."""
    result = await SyncReconciler(session, feed_factory=feed_factory).enable(user, request.token)
    message = "Tecsup sync enabled" + (" with incomplete courses" if result.partial else "")
    return envelope(result.model_dump(mode="json"), message=message)


@app.get("/api/sync/tecsup")
async def sync_status(user: UserDep, session: SessionDep) -> dict[str, Any]:
    return envelope(SyncReconciler(session).status(user).model_dump(mode="json"))


@app.delete("/api/sync/tecsup")
async def disable_sync(user: UserDep, session: SessionDep) -> dict[str, Any]:
    """Remove imported records and forget the token."""
    await SyncReconciler(session).disable(user)
    return envelope(message="Tecsup sync disabled")


@app.post("/api/sync/tecsup/refresh")
async def refresh_sync(
    user: UserDep,
    session: SessionDep,
    feed_factory: Annotated[FeedFactory, Depends(get_feed_factory)],
) -> dict[str, Any]:
    result = await SyncReconciler(session, feed_factory=feed_factory).refresh(user)
    return envelope(result.model_dump(mode="json"), message="Tecsup sync refreshed")


# Summaries
@app.get("/api/summary/recent")
async def recent_summaries(
    user: UserDep,
    session: SessionDep,
    today: TodayDep,
    limit: int = Query(7, ge=1, le=90),
) -> dict[str, Any]:
    summaries = DailySummaryEngine(session, today=lambda: today).recent(user, limit)
    return envelope([_dump(summary) for summary in summaries])


@app.get("/api/summary/{day}")
async def get_summary(day: date, user: UserDep, session: SessionDep, today: TodayDep) -> dict[str, Any]:
    """Snapshot for a past day, live computation otherwise."""
    summary = DailySummaryEngine(session, today=lambda: today).get_or_compute(user, day)
    return envelope(_dump(summary))


@app.post("/api/summary/{day}/snapshot")
async def snapshot_summary(
    day: date, user: UserDep, session: SessionDep, today: TodayDep
) -> dict[str, Any]:
    summary = DailySummaryEngine(session, today=lambda: today).snapshot(user, day)
    return envelope(_dump(summary), message="Summary saved")


# Calendar and dashboard
@app.get("/api/calendar/month")
async def month_view(
    user: UserDep,
    session: SessionDep,
    today: TodayDep,
    year: int = Query(..., ge=1970, le=9999),
    month: int = Query(..., ge=1, le=12),
) -> dict[str, Any]:
    return envelope(CalendarAssembler(session, today=lambda: today).get_month_view(user, year, month))


@app.get("/api/calendar/day/{day}")
async def day_details(day: date, user: UserDep, session: SessionDep, today: TodayDep) -> dict[str, Any]:
    return envelope(CalendarAssembler(session, today=lambda: today).get_day_details(user, day))


@app.get("/api/dashboard")
async def dashboard(user: UserDep, session: SessionDep, today: TodayDep) -> dict[str, Any]:
    return envelope(DashboardAssembler(session, today=lambda: today).get_dashboard(user))


# Tasks
@app.get("/api/tasks")
async def list_tasks(
    user: UserDep,
    session: SessionDep,
    completed: bool | None = None,
    priority: Priority | None = None,
) -> dict[str, Any]:
    tasks = TaskService(session).list_all(user, completed=completed, priority=priority)
    return envelope([_dump(task) for task in tasks])


@app.post("/api/tasks", status_code=201)
async def create_task(request: TaskCreate, user: UserDep, session: SessionDep) -> dict[str, Any]:
    return envelope(_dump(TaskService(session).create(user, request)), message="Task created")


@app.get("/api/tasks/{task_id}")
async def get_task(task_id: int, user: UserDep, session: SessionDep) -> dict[str, Any]:
    return envelope(_dump(TaskService(session).get(user, task_id)))


@app.patch("/api/tasks/{task_id}")
async def update_task(
    task_id: int, request: TaskUpdate, user: UserDep, session: SessionDep
) -> dict[str, Any]:
    return envelope(_dump(TaskService(session).update(user, task_id, request)), message="Task updated")


@app.patch("/api/tasks/{task_id}/toggle")
async def toggle_task(task_id: int, user: UserDep, session: SessionDep) -> dict[str, Any]:
    return envelope(_dump(TaskService(session).toggle(user, task_id)))


@app.delete("/api/tasks/{task_id}")
async def delete_task(task_id: int, user: UserDep, session: SessionDep) -> dict[str, Any]:
    TaskService(session).delete(user, task_id)
    return envelope(message="Task deleted")


# Events
@app.get("/api/events")
async def list_events(
    user: UserDep,
    session: SessionDep,
    day: date | None = Query(None, alias="date"),
    category: EventCategory | None = None,
) -> dict[str, Any]:
    events = EventService(session).list_all(user, day=day, category=category)
    return envelope([_dump(event) for event in events])


@app.post("/api/events", status_code=201)
async def create_event(request: EventCreate, user: UserDep, session: SessionDep) -> dict[str, Any]:
    return envelope(_dump(EventService(session).create(user, request)), message="Event created")


@app.get("/api/events/{event_id}")
async def get_event(event_id: int, user: UserDep, session: SessionDep) -> dict[str, Any]:
    return envelope(_dump(EventService(session).get(user, event_id)))


@app.patch("/api/events/{event_id}")
async def update_event(
    event_id: int, request: EventUpdate, user: UserDep, session: SessionDep
) -> dict[str, Any]:
    event = EventService(session).update(user, event_id, request)
    return envelope(_dump(event), message="Event updated")


@app.delete("/api/events/{event_id}")
async def delete_event(event_id: int, user: UserDep, session: SessionDep) -> dict[str, Any]:
    EventService(session).delete(user, event_id)
    return envelope(message="Event deleted")


# Habits
@app.get("/api/habits")
async def list_habits(user: UserDep, session: SessionDep) -> dict[str, Any]:
    return envelope([_dump(habit) for habit in HabitService(session).list_all(user)])


@app.post("/api/habits", status_code=201)
async def create_habit(request: HabitCreate, user: UserDep, session: SessionDep) -> dict[str, Any]:
    return envelope(_dump(HabitService(session).create(user, request)), message="Habit created")


@app.post("/api/habits/log")
async def log_habit(request: HabitLogRequest, user: UserDep, session: SessionDep) -> dict[str, Any]:
    return envelope(_dump(HabitService(session).log(user, request)), message="Habit logged")


@app.get("/api/habits/{habit_id}")
async def get_habit(habit_id: int, user: UserDep, session: SessionDep) -> dict[str, Any]:
    return envelope(_dump(HabitService(session).get(user, habit_id)))


@app.patch("/api/habits/{habit_id}")
async def update_habit(
    habit_id: int, request: HabitUpdate, user: UserDep, session: SessionDep
) -> dict[str, Any]:
    habit = HabitService(session).update(user, habit_id, request)
    return envelope(_dump(habit), message="Habit updated")


@app.delete("/api/habits/{habit_id}")
async def delete_habit(habit_id: int, user: UserDep, session: SessionDep) -> dict[str, Any]:
    HabitService(session).delete(user, habit_id)
    return envelope(message="Habit deleted")


# Assistant
class ChatRequest(BaseModel):
    """Chat request model."""

    message: str = Field(min_length=1, max_length=2000)


@app.post("/api/chat")
async def chat_endpoint(
    request: ChatRequest,
    user: UserDep,
    session: SessionDep,
    today: TodayDep,
    responder: Annotated[AIResponder, Depends(get_responder)],
) -> dict[str, Any]:
    """Chat with the assistant about the user's own data."""
    service = AssistantService(session, responder=responder, today=lambda: today)
    chat = await service.send_message(user, request.message)
    return envelope(_dump(chat))


@app.get("/api/chat/history")
async def chat_history(
    user: UserDep,
    session: SessionDep,
    limit: int = Query(20, ge=1, le=100),
) -> dict[str, Any]:
    messages = AssistantService(session).history(user, limit)
    return envelope([_dump(message) for message in messages])


def run_server(host: str = "0.0.0.0", port: int = 8000) -> None:
    """Run the API server."""
    import uvicorn

    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run_server()
