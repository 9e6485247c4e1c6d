"""Tests for the Tecsup sync engine."""

import asyncio
from datetime import date, datetime, timezone

import pytest

from conftest import FakeCanvas, assignment, calendar_event
from productivity.db.models import Event, RecordSource, Task
from productivity.db.store import EventStore, TaskStore, UserStore
from productivity.errors import (
    IneligibleAccount,
    InvalidToken,
    NoStoredToken,
    UpstreamUnavailable,
)
from productivity.sync.reconciler import SyncReconciler, SyncResult, UserLocks


def imported_ids(session, user_id, store_cls=TaskStore):
    records = store_cls(session).find_by_owner_and_source(user_id, RecordSource.TECSUP)
    return sorted(record.external_id for record in records)


class TestEnable:
    @pytest.mark.asyncio
    async def test_imports_feed_and_stores_token(self, session, student, reconciler):
        result = await reconciler.enable(student, "  valid-token ")

        assert result.tasks_imported == 2
        assert result.events_imported == 3
        assert result.partial is False

        state = UserStore(session).sync_state_for(student)
        assert state.enabled is True
        assert state.token == "valid-token"
        assert state.last_sync_at is not None
        assert state.sync_count == 1
        assert imported_ids(session, student.id) == ["1", "3"]
        assert imported_ids(session, student.id, EventStore) == ["11", "12", "13"]

    @pytest.mark.asyncio
    async def test_general_account_is_ineligible(self, session, general_user, reconciler, canvas):
        with pytest.raises(IneligibleAccount):
            await reconciler.enable(general_user, "valid-token")

        assert UserStore(session).sync_state_for(general_user).enabled is False
        assert canvas.requests == []

    @pytest.mark.asyncio
    async def test_blank_token(self, student, reconciler):
        with pytest.raises(InvalidToken):
            await reconciler.enable(student, "   ")

    @pytest.mark.asyncio
    async def test_rejected_token_changes_nothing(self, session, student, reconciler):
        with pytest.raises(InvalidToken):
            await reconciler.enable(student, "wrong-token")

        state = UserStore(session).sync_state_for(student)
        assert state.enabled is False
        assert state.token is None
        assert imported_ids(session, student.id) == []

    @pytest.mark.asyncio
    async def test_import_failure_keeps_token_and_records_error(self, session, student, reconciler, canvas):
        canvas.course_list_status = 503

        with pytest.raises(UpstreamUnavailable):
            await reconciler.enable(student, "valid-token")

        state = UserStore(session).sync_state_for(student)
        assert state.enabled is True
        assert state.token == "valid-token"
        assert state.last_error is not None


class TestRefresh:
    @pytest.mark.asyncio
    async def test_requires_stored_token(self, student, reconciler):
        with pytest.raises(NoStoredToken):
            await reconciler.refresh(student)

    @pytest.mark.asyncio
    async def test_refresh_is_idempotent(self, session, student, reconciler):
        await reconciler.enable(student, "valid-token")
        first = TaskStore(session).count_by_owner_and_source(student.id, RecordSource.TECSUP)

        result = await reconciler.refresh(student)

        assert TaskStore(session).count_by_owner_and_source(student.id, RecordSource.TECSUP) == first
        assert result.tasks_imported == first
        assert UserStore(session).sync_state_for(student).sync_count == 2

    @pytest.mark.asyncio
    async def test_refresh_replaces_with_upstream_state(self, session, student, reconciler, canvas):
        await reconciler.enable(student, "valid-token")
        canvas.assignments["101"] = [assignment(5, "Lab 2")]

        await reconciler.refresh(student)

        assert imported_ids(session, student.id) == ["3", "5"]

    @pytest.mark.asyncio
    async def test_user_records_survive_refresh(self, session, student, reconciler):
        TaskStore(session).save(Task(user_id=student.id, title="Buy notebook"))
        session.commit()

        await reconciler.enable(student, "valid-token")
        await reconciler.refresh(student)

        owned = TaskStore(session).find_by_owner_and_source(student.id, RecordSource.USER)
        assert [task.title for task in owned] == ["Buy notebook"]

    @pytest.mark.asyncio
    async def test_upstream_failure_keeps_previous_records(self, session, student, reconciler, canvas):
        await reconciler.enable(student, "valid-token")
        canvas.course_list_status = 500

        with pytest.raises(UpstreamUnavailable):
            await reconciler.refresh(student)

        assert imported_ids(session, student.id) == ["1", "3"]
        assert imported_ids(session, student.id, EventStore) == ["11", "12", "13"]
        state = UserStore(session).sync_state_for(student)
        assert state.last_error is not None
        assert state.sync_count == 1

    @pytest.mark.asyncio
    async def test_partial_failure_is_reported(self, session, student):
        fake = FakeCanvas()
        fake.add_course(1, "Uno", assignments=[assignment(10, "A1")])
        fake.add_course(2, "Dos", assignments=[assignment(20, "A2")], events=[calendar_event(21, "Clase")])
        fake.add_course(3, "Tres", assignments=[assignment(30, "A3")])
        fake.failing.add(("2", "assignments"))
        reconciler = SyncReconciler(session, feed_factory=fake.adapter, locks=UserLocks())

        result = await reconciler.enable(student, "valid-token")

        assert result.partial is True
        assert len(result.failures) == 1
        assert result.failures[0].course_id == "2"
        assert result.failures[0].resource == "assignments"
        assert imported_ids(session, student.id) == ["10", "30"]
        assert imported_ids(session, student.id, EventStore) == ["21"]
        assert UserStore(session).sync_state_for(student).last_error == "1 of 3 courses incomplete"

    @pytest.mark.asyncio
    async def test_malformed_feed_item_does_not_block_import(self, session, student):
        fake = FakeCanvas()
        fake.add_course(1, "Uno", assignments=[assignment(10, "A1")])
        fake.add_course(2, "Dos", assignments=[{"name": "Sin id", "due_at": "2026-03-20T23:59:00Z"}])
        reconciler = SyncReconciler(session, feed_factory=fake.adapter, locks=UserLocks())

        result = await reconciler.enable(student, "valid-token")

        assert result.partial is False
        assert imported_ids(session, student.id) == ["10"]
        assert UserStore(session).sync_state_for(student).last_error is None

    @pytest.mark.asyncio
    async def test_refresh_all_reports_per_user(self, session, student, reconciler):
        await reconciler.enable(student, "valid-token")

        outcomes = await reconciler.refresh_all()

        assert isinstance(outcomes[student.id], SyncResult)


class TestDisable:
    @pytest.mark.asyncio
    async def test_removes_only_imported_records(self, session, student, reconciler):
        TaskStore(session).save(Task(user_id=student.id, title="Mine"))
        EventStore(session).save(Event(user_id=student.id, title="Birthday", event_date=date(2026, 3, 20)))
        session.commit()
        await reconciler.enable(student, "valid-token")

        await reconciler.disable(student)

        assert [t.title for t in TaskStore(session).find_by_owner(student.id)] == ["Mine"]
        assert [e.title for e in EventStore(session).find_by_owner(student.id)] == ["Birthday"]
        state = UserStore(session).sync_state_for(student)
        assert state.enabled is False
        assert state.token is None
        assert state.last_sync_at is None

    @pytest.mark.asyncio
    async def test_disable_is_idempotent(self, session, student, reconciler):
        await reconciler.disable(student)
        await reconciler.disable(student)

        assert UserStore(session).sync_state_for(student).enabled is False


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_concurrent_refreshes_do_not_duplicate(self, session, student, reconciler):
        await reconciler.enable(student, "valid-token")

        await asyncio.gather(reconciler.refresh(student), reconciler.refresh(student))

        assert imported_ids(session, student.id) == ["1", "3"]
        assert UserStore(session).sync_state_for(student).sync_count == 3

    def test_same_lock_while_referenced(self):
        locks = UserLocks()

        lock = locks.for_user(1)

        assert locks.for_user(1) is lock
        assert locks.for_user(2) is not lock

    @pytest.mark.asyncio
    async def test_released_locks_leave_the_registry(self, student, canvas, session):
        locks = UserLocks()
        reconciler = SyncReconciler(session, feed_factory=canvas.adapter, locks=locks)

        await reconciler.enable(student, "valid-token")
        await reconciler.refresh(student)

        assert len(locks) == 0


class TestStatus:
    def test_status_without_sync_state(self, session, general_user, reconciler):
        status = reconciler.status(general_user)

        assert status.enabled is False
        assert status.sync_count == 0
        assert UserStore(session).find_sync_state(general_user) is None

    @pytest.mark.asyncio
    async def test_status_counts_imports(self, student, canvas, session):
        fixed = datetime(2026, 3, 18, 12, 0, tzinfo=timezone.utc)
        reconciler = SyncReconciler(
            session, feed_factory=canvas.adapter, locks=UserLocks(), clock=lambda: fixed
        )
        await reconciler.enable(student, "valid-token")

        status = reconciler.status(student)

        assert status.enabled is True
        assert status.last_sync_at == fixed
        assert status.imported_tasks == 2
        assert status.imported_events == 3
        assert status.model_dump(mode="json")["last_sync_at"] == "2026-03-18T12:00:00Z"
