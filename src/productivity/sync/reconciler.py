"""Tecsup sync engine: replaces a user's imported records with the upstream state.

User-authored records are never touched. Imports are fetch-then-swap: the
whole feed is read first, then old tecsup rows are deleted and the new ones
inserted in a single transaction, so an upstream failure leaves the previous
set in place.
"""

import asyncio
import weakref
from collections.abc import Callable
from datetime import datetime

import structlog
from pydantic import BaseModel, computed_field
from sqlmodel import Session

from productivity.adapters.base import AdapterError
from productivity.adapters.canvas import CanvasAdapter
from productivity.db.models import AccountType, RecordSource, SyncState, User, utcnow
from productivity.db.store import EventStore, TaskStore, UserStore
from productivity.errors import (
    IneligibleAccount,
    InvalidToken,
    NoStoredToken,
    ProductivityError,
    UpstreamUnavailable,
)

logger = structlog.get_logger()


class CourseFailure(BaseModel):
    """A course sub-resource that could not be imported."""

    course_id: str
    course_name: str | None = None
    resource: str
    message: str


class SyncResult(BaseModel):
    """Outcome of one import."""

    events_imported: int = 0
    tasks_imported: int = 0
    failures: list[CourseFailure] = []

    @computed_field  # type: ignore[prop-decorator]
    @property
    def partial(self) -> bool:
        return bool(self.failures)


class SyncStatus(BaseModel):
    """Sync state as shown to the user."""

    enabled: bool
    last_sync_at: datetime | None = None
    last_error: str | None = None
    sync_count: int = 0
    imported_tasks: int = 0
    imported_events: int = 0


class UserLocks:
    """One asyncio lock per user, so sync operations for a user never interleave.

    Locks are held weakly: an entry lives only while a coroutine holds or
    waits on it, and a new event loop starts from an empty registry.
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[int, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def __len__(self) -> int:
        return len(self._locks)

    def for_user(self, user_id: int) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock


# Process-wide registry shared by every reconciler
user_locks = UserLocks()

FeedFactory = Callable[[str], CanvasAdapter]


class SyncReconciler:
    """Drives enable / disable / refresh for one database session.

    Args:
        session: Session owning the transaction.
        feed_factory: Builds an adapter for a token (tests inject a fake transport).
        locks: Per-user lock registry.
        clock: Source of sync timestamps.
    """

    def __init__(
        self,
        session: Session,
        feed_factory: FeedFactory = CanvasAdapter,
        locks: UserLocks | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.session = session
        self.tasks = TaskStore(session)
        self.events = EventStore(session)
        self.users = UserStore(session)
        self._feed_factory = feed_factory
        self._locks = locks if locks is not None else user_locks
        self._clock = clock

    async def enable(self, user: User, token: str) -> SyncResult:
        """Validate and store the token, then import the feed.

        The token and enabled flag stay persisted even when the import
        itself fails; the failure is recorded on the sync state.
        """
        if user.account_type != AccountType.STUDENT:
            raise IneligibleAccount("Only student accounts can sync with Tecsup")
        if not token or not token.strip():
            raise InvalidToken("Tecsup token is blank")
        token = token.strip()

        async with self._locks.for_user(user.id):
            async with self._feed_factory(token) as feed:
                if not await feed.validate_token():
                    logger.info("Tecsup token rejected", user_id=user.id)
                    raise InvalidToken("Tecsup rejected the token")

                state = self.users.sync_state_for(user)
                state.enabled = True
                state.token = token
                state.last_sync_at = self._clock()
                state.last_error = None
                self.session.add(state)
                self.session.commit()
                logger.info("Tecsup sync enabled", user_id=user.id)

                return await self._import(user, feed, state)

    async def disable(self, user: User) -> None:
        """Remove every imported record and forget the token. Idempotent."""
        async with self._locks.for_user(user.id):
            try:
                removed_tasks = self.tasks.delete_by_owner_and_source(user.id, RecordSource.TECSUP)
                removed_events = self.events.delete_by_owner_and_source(
                    user.id, RecordSource.TECSUP
                )
                state = self.users.sync_state_for(user)
                state.enabled = False
                state.token = None
                state.last_sync_at = None
                state.last_error = None
                self.session.add(state)
                self.session.commit()
            except Exception:
                self.session.rollback()
                raise

        logger.info(
            "Tecsup sync disabled",
            user_id=user.id,
            removed_tasks=removed_tasks,
            removed_events=removed_events,
        )

    async def refresh(self, user: User) -> SyncResult:
        """Replace all imported records with the latest upstream state."""
        async with self._locks.for_user(user.id):
            state = self.users.sync_state_for(user)
            if not state.token:
                raise NoStoredToken("No Tecsup token stored; enable sync first")

            async with self._feed_factory(state.token) as feed:
                return await self._import(user, feed, state)

    async def refresh_all(self) -> dict[int, SyncResult | str]:
        """Refresh every sync-enabled user; failures are logged and reported per user."""
        outcomes: dict[int, SyncResult | str] = {}
        for user in self.users.find_sync_enabled():
            try:
                outcomes[user.id] = await self.refresh(user)
            except ProductivityError as e:
                logger.warning("Scheduled refresh failed", user_id=user.id, error=e.message)
                outcomes[user.id] = e.message
        return outcomes

    def status(self, user: User) -> SyncStatus:
        state = self.users.find_sync_state(user) or SyncState(user_id=user.id)
        return SyncStatus(
            enabled=state.enabled,
            last_sync_at=state.last_sync_at,
            last_error=state.last_error,
            sync_count=state.sync_count,
            imported_tasks=self.tasks.count_by_owner_and_source(user.id, RecordSource.TECSUP),
            imported_events=self.events.count_by_owner_and_source(user.id, RecordSource.TECSUP),
        )

    async def _import(self, user: User, feed: CanvasAdapter, state: SyncState) -> SyncResult:
        """Fetch the whole feed, then swap the user's tecsup rows in one transaction."""
        try:
            feed_result = await feed.fetch_all()
        except AdapterError as e:
            self.session.rollback()
            state.last_error = e.message
            self.session.add(state)
            self.session.commit()
            logger.error("Tecsup import failed", user_id=user.id, error=e.message)
            raise UpstreamUnavailable(f"Tecsup feed unavailable: {e.message}") from e

        for record in [*feed_result.tasks, *feed_result.events]:
            record.user_id = user.id

        failures = [
            CourseFailure(
                course_id=error.course_id,
                course_name=error.course_name,
                resource=error.resource,
                message=error.message,
            )
            for error in feed_result.errors
        ]

        try:
            tasks = self.tasks.replace_source(user.id, RecordSource.TECSUP, feed_result.tasks)
            events = self.events.replace_source(user.id, RecordSource.TECSUP, feed_result.events)
            state.last_sync_at = self._clock()
            state.sync_count += 1
            state.last_error = (
                f"{feed_result.courses_failed} of {feed_result.courses_total} courses incomplete"
                if failures
                else None
            )
            self.session.add(state)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.info(
            "Imported Tecsup records",
            user_id=user.id,
            tasks=len(tasks),
            events=len(events),
            failures=len(failures),
        )
        return SyncResult(
            events_imported=len(events),
            tasks_imported=len(tasks),
            failures=failures,
        )
