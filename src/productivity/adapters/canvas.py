"""Tecsup adapter for course assignments and calendar events via the Canvas LMS API."""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, time
from typing import Any, TypeVar

import httpx

from productivity.adapters.base import (
    AuthenticationError,
    BaseAdapter,
    CourseFetchError,
    FetchError,
)
from productivity.config.settings import settings
from productivity.db.models import Event, EventCategory, Priority, RecordSource, Task

# Lowercase substrings that mark a calendar event as an exam
EXAM_KEYWORDS = ("exam", "evaluación", "evaluacion", "evaluation", "parcial")

T = TypeVar("T")


@dataclass
class FeedResult:
    """Unsaved candidates from one full fetch, plus per-course failures."""

    tasks: list[Task] = field(default_factory=list)
    events: list[Event] = field(default_factory=list)
    errors: list[CourseFetchError] = field(default_factory=list)
    courses_total: int = 0

    @property
    def courses_failed(self) -> int:
        return len({error.course_id for error in self.errors})


def classify_event(title: str) -> EventCategory:
    """EXAM if the title looks like an assessment, else CLASS."""
    lowered = title.lower()
    if any(keyword in lowered for keyword in EXAM_KEYWORDS):
        return EventCategory.EXAM
    return EventCategory.CLASS


def parse_start_time(start_at: str) -> time:
    """Time from chars 11-16 of an ISO timestamp; 00:00 when unparseable."""
    try:
        return time.fromisoformat(start_at[11:16])
    except ValueError:
        return time(0, 0)


def _external_id(item: dict[str, Any]) -> str:
    raw_id = item.get("id")
    if raw_id is None or isinstance(raw_id, (dict, list)):
        raise ValueError("Feed item has no usable id")
    return str(raw_id)


def _text(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def assignment_to_task(assignment: Any) -> Task | None:
    """Map a Canvas assignment to an unsaved task; None when it has no due date.

    Raises:
        ValueError: The item is not an assignment object or lacks an id.
    """
    if not isinstance(assignment, dict):
        raise ValueError(f"Expected an assignment object, got {type(assignment).__name__}")
    external_id = _external_id(assignment)

    due_at = assignment.get("due_at")
    if not due_at:
        return None
    if not isinstance(due_at, str):
        raise ValueError(f"Unreadable due_at {due_at!r}")
    try:
        due_date = date.fromisoformat(due_at[:10])
    except ValueError:
        return None

    return Task(
        title=_text(assignment.get("name")) or "Untitled assignment",
        description=_text(assignment.get("description")),
        priority=Priority.MEDIUM,
        due_date=due_date,
        completed=False,
        source=RecordSource.TECSUP,
        external_id=external_id,
        synced=True,
    )


def calendar_event_to_event(raw: Any, course_name: str | None) -> Event | None:
    """Map a Canvas calendar event to an unsaved event; None when it has no start.

    Raises:
        ValueError: The item is not an event object or lacks an id.
    """
    if not isinstance(raw, dict):
        raise ValueError(f"Expected a calendar event object, got {type(raw).__name__}")
    external_id = _external_id(raw)

    start_at = raw.get("start_at")
    if not start_at:
        return None
    if not isinstance(start_at, str):
        raise ValueError(f"Unreadable start_at {start_at!r}")
    try:
        event_date = date.fromisoformat(start_at[:10])
    except ValueError:
        return None

    title = _text(raw.get("title")) or "Untitled event"
    return Event(
        title=title,
        event_date=event_date,
        start_time=parse_start_time(start_at),
        category=classify_event(title),
        description=_text(raw.get("description")),
        course_name=course_name,
        source=RecordSource.TECSUP,
        external_id=external_id,
        synced=True,
    )


class CanvasAdapter(BaseAdapter):
    """Adapter for the Tecsup Canvas feed of one user's token.

    Fetches:
    - Courses the token's user is enrolled in
    - Assignments per course (become tasks)
    - Calendar events per course (become events)

    Per-course fetches fan out in parallel, bounded by ``max_concurrency``.
    A failing course is reported in ``FeedResult.errors`` and never cancels
    the others.
    """

    def __init__(
        self,
        token: str,
        base_url: str | None = None,
        timeout: float | None = None,
        max_concurrency: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__("tecsup")
        self._token = token
        self._base_url = base_url or settings.tecsup.base_url
        self._timeout = timeout if timeout is not None else settings.tecsup.timeout_seconds
        self._max_concurrency = max_concurrency or settings.tecsup.max_concurrency
        self._per_page = settings.tecsup.per_page
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def connect(self) -> bool:
        """Open the HTTP client. Credentials are checked by health_check()."""
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"Authorization": f"Bearer {self._token}"},
            timeout=self._timeout,
            transport=self._transport,
        )
        self._connected = True
        return True

    async def disconnect(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
        self._client = None
        self._connected = False

    async def health_check(self) -> bool:
        """Check the token against the whoami endpoint."""
        return await self.validate_token()

    async def validate_token(self) -> bool:
        """True only for a 200 from /users/self; network errors count as invalid."""
        if not self._client:
            return False
        try:
            response = await self._client.get("/users/self")
        except httpx.HTTPError as e:
            self.logger.warning("Token validation request failed", error=str(e))
            return False
        if response.status_code != 200:
            self.logger.info("Token rejected", status=response.status_code)
            return False
        return True

    async def fetch(self, **kwargs: Any) -> FeedResult:
        """Fetch every course's assignments and calendar events."""
        return await self.fetch_all()

    async def fetch_all(self) -> FeedResult:
        """Fetch the whole feed.

        Returns:
            Unsaved tasks and events stamped as tecsup records.

        Raises:
            AuthenticationError: The token was rejected (401) on the course list.
            FetchError: The course list could not be read, or every course failed.
        """
        if not self._client:
            raise FetchError(self.name, "Not connected")

        try:
            courses = await self._get_all("/courses")
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 401:
                raise AuthenticationError(self.name, "Token rejected by Tecsup") from e
            self.logger.error("Failed to fetch course list", status=e.response.status_code)
            raise FetchError(self.name, f"Course list fetch failed: {e}") from e
        except (httpx.HTTPError, ValueError) as e:
            self.logger.error("Failed to fetch course list", error=str(e))
            raise FetchError(self.name, f"Course list fetch failed: {e}") from e

        usable = [
            course
            for course in courses
            if isinstance(course, dict) and course.get("id") is not None
        ]
        if len(usable) != len(courses):
            self.logger.warning("Skipping malformed courses", skipped=len(courses) - len(usable))
        courses = usable

        semaphore = asyncio.Semaphore(self._max_concurrency)
        per_course = await asyncio.gather(
            *(self._fetch_course(course, semaphore) for course in courses)
        )

        result = FeedResult(courses_total=len(courses))
        for tasks, events, errors in per_course:
            result.tasks.extend(tasks)
            result.events.extend(events)
            result.errors.extend(errors)

        for error in result.errors:
            self.logger.warning(
                "Course fetch failed",
                course_id=error.course_id,
                resource=error.resource,
                error=error.message,
            )

        if courses and result.courses_failed == len(courses):
            raise FetchError(self.name, f"All {len(courses)} courses failed to fetch")

        self.logger.info(
            "Fetched Tecsup feed",
            courses=len(courses),
            tasks=len(result.tasks),
            events=len(result.events),
            failed_courses=result.courses_failed,
        )
        return result

    async def _fetch_course(
        self, course: dict[str, Any], semaphore: asyncio.Semaphore
    ) -> tuple[list[Task], list[Event], list[CourseFetchError]]:
        """Fetch one course; failures are returned, not raised."""
        course_id = str(course.get("id"))
        course_name = _text(course.get("name"))
        tasks: list[Task] = []
        events: list[Event] = []
        errors: list[CourseFetchError] = []

        async with semaphore:
            try:
                assignments = await self._get_all(f"/courses/{course_id}/assignments")
                tasks = self._map_items(assignments, assignment_to_task, course_id, "assignments")
            except (httpx.HTTPError, ValueError) as e:
                errors.append(
                    CourseFetchError(self.name, course_id, course_name, "assignments", str(e))
                )

            try:
                raw_events = await self._get_all(
                    "/calendar_events",
                    params={"context_codes[]": [f"course_{course_id}"]},
                )
                events = self._map_items(
                    raw_events,
                    lambda raw: calendar_event_to_event(raw, course_name),
                    course_id,
                    "calendar_events",
                )
            except (httpx.HTTPError, ValueError) as e:
                errors.append(
                    CourseFetchError(self.name, course_id, course_name, "calendar_events", str(e))
                )

        return tasks, events, errors

    def _map_items(
        self,
        items: list[Any],
        mapper: Callable[[Any], T | None],
        course_id: str,
        resource: str,
    ) -> list[T]:
        """Map raw feed items, skipping and logging the ones that cannot be read."""
        mapped: list[T] = []
        for item in items:
            try:
                record = mapper(item)
            except ValueError as e:
                self.logger.warning(
                    "Skipping malformed feed item",
                    course_id=course_id,
                    resource=resource,
                    error=str(e),
                )
                continue
            if record is not None:
                mapped.append(record)
        return mapped

    async def _get_all(
        self, path: str, params: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        """GET a list endpoint, following Canvas ``Link: rel="next"`` pages."""
        if not self._client:
            raise FetchError(self.name, "Not connected")
        items: list[dict[str, Any]] = []
        url: str | None = path
        query: dict[str, Any] | None = {"per_page": self._per_page, **(params or {})}

        while url:
            response = await self._client.get(url, params=query)
            response.raise_for_status()
            page = response.json()
            if not isinstance(page, list):
                raise ValueError(f"Expected a list from {path}")
            items.extend(page)

            next_link = response.links.get("next")
            url = next_link.get("url") if next_link else None
            query = None  # the next link carries its own query string

        return items


# Convenience functions
async def validate_tecsup_token(token: str) -> bool:
    """Check a Tecsup token against the upstream."""
    async with CanvasAdapter(token) as adapter:
        return await adapter.validate_token()


async def fetch_tecsup_feed(token: str) -> FeedResult:
    """Fetch the full Tecsup feed for a token."""
    async with CanvasAdapter(token) as adapter:
        return await adapter.fetch_all()
