"""Tests for the record stores."""

from datetime import date, datetime, time, timedelta, timezone

import pytest

from productivity.db.models import (
    ChatMessage,
    DailySummary,
    Event,
    Habit,
    HabitLog,
    Imported,
    Owned,
    Priority,
    RecordSource,
    Task,
    User,
    utcnow,
)
from productivity.db.store import EventStore, HabitStore, SummaryStore, TaskStore, UserStore
from productivity.errors import RecordNotFound

TODAY = date(2026, 3, 18)


def tecsup_task(user_id: int, external_id: str, **kwargs) -> Task:
    return Task(
        user_id=user_id,
        title=kwargs.pop("title", f"Assignment {external_id}"),
        source=RecordSource.TECSUP,
        external_id=external_id,
        synced=True,
        **kwargs,
    )


class TestProvenance:
    def test_owned_and_imported(self, student):
        assert Task(user_id=student.id, title="Mine").provenance == Owned()
        assert tecsup_task(student.id, "9").provenance == Imported("9")

    def test_save_rejects_tecsup_record_without_external_id(self, session, student):
        task = Task(user_id=student.id, title="Broken", source=RecordSource.TECSUP)
        with pytest.raises(ValueError):
            TaskStore(session).save(task)

    def test_save_rejects_user_record_with_external_id(self, session, student):
        event = Event(user_id=student.id, title="Broken", event_date=TODAY, external_id="1")
        with pytest.raises(ValueError):
            EventStore(session).save(event)


class TestTaskStore:
    def test_find_by_id_missing(self, session):
        with pytest.raises(RecordNotFound):
            TaskStore(session).find_by_id(999)

    def test_replace_source_keeps_user_records(self, session, student):
        store = TaskStore(session)
        store.save(Task(user_id=student.id, title="Mine"))
        store.save_all([tecsup_task(student.id, "1"), tecsup_task(student.id, "2")])

        store.replace_source(student.id, RecordSource.TECSUP, [tecsup_task(student.id, "3")])

        titles = sorted(task.title for task in store.find_by_owner(student.id))
        assert titles == ["Assignment 3", "Mine"]
        assert store.count_by_owner_and_source(student.id, RecordSource.TECSUP) == 1

    def test_delete_by_owner_and_source_only_touches_owner(self, session, student, general_user):
        store = TaskStore(session)
        store.save(tecsup_task(student.id, "1"))
        store.save(tecsup_task(general_user.id, "1"))

        assert store.delete_by_owner_and_source(student.id, RecordSource.TECSUP) == 1
        assert store.count_by_owner_and_source(general_user.id, RecordSource.TECSUP) == 1

    def test_pending_ordered_by_priority_then_due_date(self, session, student):
        store = TaskStore(session)
        store.save_all(
            [
                Task(user_id=student.id, title="low", priority=Priority.LOW, due_date=TODAY),
                Task(user_id=student.id, title="high undated", priority=Priority.HIGH),
                Task(user_id=student.id, title="high late", priority=Priority.HIGH, due_date=date(2026, 3, 30)),
                Task(user_id=student.id, title="high soon", priority=Priority.HIGH, due_date=TODAY),
                Task(user_id=student.id, title="overdue", due_date=date(2026, 3, 1)),
                Task(user_id=student.id, title="done", due_date=TODAY, completed=True),
            ]
        )

        titles = [task.title for task in store.find_pending(student.id, TODAY)]

        assert titles == ["high soon", "high late", "high undated", "low"]
        assert [task.title for task in store.find_overdue(student.id, TODAY)] == ["overdue"]

    def test_count_due_on(self, session, student):
        store = TaskStore(session)
        store.save_all(
            [
                Task(user_id=student.id, title="a", due_date=TODAY, completed=True),
                Task(user_id=student.id, title="b", due_date=TODAY),
                Task(user_id=student.id, title="c", due_date=date(2026, 3, 19)),
            ]
        )

        assert store.count_due_on(student.id, TODAY) == 2
        assert store.count_due_on(student.id, TODAY, completed=True) == 1


class TestEventStore:
    def test_date_range_sorted_by_date_then_time(self, session, student):
        store = EventStore(session)
        store.save_all(
            [
                Event(user_id=student.id, title="late", event_date=TODAY, start_time=time(15, 0)),
                Event(user_id=student.id, title="untimed", event_date=TODAY),
                Event(user_id=student.id, title="early", event_date=TODAY, start_time=time(8, 0)),
                Event(user_id=student.id, title="outside", event_date=date(2026, 4, 1)),
            ]
        )

        events = store.find_by_owner_and_date_range(student.id, TODAY, date(2026, 3, 31))

        assert [event.title for event in events] == ["early", "late", "untimed"]


class TestHabitStore:
    def test_completed_count_ignores_inactive_habits(self, session, student):
        store = HabitStore(session)
        active = store.save(Habit(user_id=student.id, name="Water"))
        inactive = store.save(Habit(user_id=student.id, name="Old", active=False))
        store.save_log(HabitLog(habit_id=active.id, log_date=TODAY, completed=True))
        store.save_log(HabitLog(habit_id=inactive.id, log_date=TODAY, completed=True))

        assert store.count_active(student.id) == 1
        assert store.count_completed_on(student.id, TODAY) == 1

    def test_delete_removes_logs(self, session, student):
        store = HabitStore(session)
        habit = store.save(Habit(user_id=student.id, name="Run"))
        store.save_log(HabitLog(habit_id=habit.id, log_date=TODAY, completed=True))

        store.delete(habit)

        assert store.find_logs_on(student.id, TODAY) == []


class TestSummaryStore:
    def test_recent_and_cleanup(self, session, student):
        store = SummaryStore(session)
        for day in (1, 2, 3):
            store.save(DailySummary(user_id=student.id, summary_date=date(2026, 3, day)))

        assert [s.summary_date.day for s in store.find_recent(student.id, 2)] == [3, 2]
        assert store.delete_older_than(date(2026, 3, 3)) == 2
        assert store.exists(student.id, date(2026, 3, 3))


class TestUserStore:
    def test_sync_state_created_disabled(self, session, student):
        state = UserStore(session).sync_state_for(student)

        assert state.enabled is False
        assert state.token is None
        assert UserStore(session).find_sync_enabled() == []


class TestTimestamps:
    def test_timestamps_round_trip_in_utc(self, session, student):
        before = utcnow()
        task = TaskStore(session).save(Task(user_id=student.id, title="Informe"))
        message = ChatMessage(user_id=student.id, message="Hola", response="Hola Ana")
        session.add(message)
        session.commit()
        session.expire_all()

        stored_task = TaskStore(session).find_by_id(task.id)
        stored_user = session.get(User, student.id)
        stored_message = session.get(ChatMessage, message.id)

        stamps = [
            stored_task.created_at,
            stored_task.updated_at,
            stored_user.created_at,
            stored_message.created_at,
        ]
        for stamp in stamps:
            assert stamp.utcoffset() == timedelta(0)
            assert stamp - before < timedelta(minutes=1)

    def test_sync_timestamp_round_trip(self, session, student):
        state = UserStore(session).sync_state_for(student)
        state.last_sync_at = datetime(2026, 3, 18, 7, 30, tzinfo=timezone.utc)
        session.commit()
        session.expire_all()

        assert UserStore(session).sync_state_for(student).last_sync_at == datetime(
            2026, 3, 18, 7, 30, tzinfo=timezone.utc
        )
