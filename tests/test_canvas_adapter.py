"""Tests for the Tecsup Canvas adapter."""

from datetime import date, time

import httpx
import pytest

from conftest import CANVAS_URL, FakeCanvas, assignment, calendar_event
from productivity.adapters.base import AuthenticationError, FetchError
from productivity.adapters.canvas import (
    CanvasAdapter,
    assignment_to_task,
    calendar_event_to_event,
    classify_event,
    parse_start_time,
)
from productivity.db.models import EventCategory, Priority, RecordSource


class TestMapping:
    @pytest.mark.parametrize(
        "title",
        ["Examen final", "EXAM 2", "Evaluación continua", "evaluacion 1", "Midterm evaluation", "Parcial"],
    )
    def test_exam_keywords(self, title):
        assert classify_event(title) == EventCategory.EXAM

    def test_other_titles_are_classes(self):
        assert classify_event("Clase de redes") == EventCategory.CLASS

    def test_start_time_from_timestamp(self):
        assert parse_start_time("2026-03-19T08:30:00Z") == time(8, 30)

    def test_start_time_defaults_to_midnight(self):
        assert parse_start_time("2026-03-19") == time(0, 0)

    def test_assignment_without_due_date_is_dropped(self):
        assert assignment_to_task(assignment(1, "Informe", due_at=None)) is None

    def test_assignment_becomes_tecsup_task(self):
        task = assignment_to_task(assignment(42, "Lab 1", due_at="2026-03-20T23:59:00Z"))

        assert task.title == "Lab 1"
        assert task.due_date == date(2026, 3, 20)
        assert task.priority == Priority.MEDIUM
        assert task.source == RecordSource.TECSUP
        assert task.external_id == "42"
        assert task.synced is True
        assert task.completed is False

    def test_event_without_start_is_dropped(self):
        assert calendar_event_to_event(calendar_event(1, "Clase", start_at=None), "Redes") is None

    def test_event_carries_course_name(self):
        event = calendar_event_to_event(calendar_event(7, "Examen parcial"), "Redes")

        assert event.event_date == date(2026, 3, 19)
        assert event.start_time == time(8, 0)
        assert event.category == EventCategory.EXAM
        assert event.course_name == "Redes"
        assert event.external_id == "7"

    @pytest.mark.parametrize(
        "item",
        [
            {"name": "Sin id", "due_at": "2026-03-20T23:59:00Z"},
            {"id": 5, "name": "Fecha rara", "due_at": 20260320},
            "not an object",
        ],
    )
    def test_malformed_assignment_raises_value_error(self, item):
        with pytest.raises(ValueError):
            assignment_to_task(item)

    def test_malformed_event_raises_value_error(self):
        with pytest.raises(ValueError):
            calendar_event_to_event({"title": "Sin id", "start_at": "2026-03-19T08:00:00Z"}, "Redes")


class TestValidateToken:
    @pytest.mark.asyncio
    async def test_valid_token(self, canvas):
        async with canvas.adapter("valid-token") as adapter:
            assert await adapter.validate_token() is True

    @pytest.mark.asyncio
    async def test_rejected_token(self, canvas):
        async with canvas.adapter("wrong") as adapter:
            assert await adapter.validate_token() is False

    @pytest.mark.asyncio
    async def test_network_failure_is_invalid(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        adapter = CanvasAdapter("t", base_url=CANVAS_URL, transport=httpx.MockTransport(handler))
        async with adapter:
            assert await adapter.validate_token() is False


class TestFetchAll:
    @pytest.mark.asyncio
    async def test_fetches_every_course(self, canvas):
        async with canvas.adapter("valid-token") as adapter:
            result = await adapter.fetch_all()

        assert sorted(task.title for task in result.tasks) == ["Lab 1", "Proyecto SQL"]
        assert sorted(event.external_id for event in result.events) == ["11", "12", "13"]
        assert result.errors == []
        assert result.courses_total == 2

    @pytest.mark.asyncio
    async def test_failing_course_does_not_abort_others(self):
        fake = FakeCanvas()
        fake.add_course(1, "Uno", assignments=[assignment(10, "A1")])
        fake.add_course(2, "Dos", assignments=[assignment(20, "A2")], events=[calendar_event(21, "Clase")])
        fake.add_course(3, "Tres", assignments=[assignment(30, "A3")])
        fake.failing.add(("2", "assignments"))

        async with fake.adapter("valid-token") as adapter:
            result = await adapter.fetch_all()

        assert sorted(task.external_id for task in result.tasks) == ["10", "30"]
        assert [event.external_id for event in result.events] == ["21"]
        assert len(result.errors) == 1
        error = result.errors[0]
        assert error.course_id == "2"
        assert error.course_name == "Dos"
        assert error.resource == "assignments"
        assert result.courses_failed == 1

    @pytest.mark.asyncio
    async def test_malformed_items_are_skipped(self):
        fake = FakeCanvas()
        fake.add_course(1, "Uno", assignments=[assignment(10, "A1")])
        fake.add_course(
            2,
            "Dos",
            assignments=[{"name": "Sin id", "due_at": "2026-03-20T23:59:00Z"}, assignment(20, "A2")],
            events=[["not", "an", "event"], calendar_event(21, "Clase")],
        )
        fake.courses.append({"name": "Curso sin id"})

        async with fake.adapter("valid-token") as adapter:
            result = await adapter.fetch_all()

        assert sorted(task.external_id for task in result.tasks) == ["10", "20"]
        assert [event.external_id for event in result.events] == ["21"]
        assert result.errors == []
        assert result.courses_total == 2

    @pytest.mark.asyncio
    async def test_every_course_failing_raises(self):
        fake = FakeCanvas()
        fake.add_course(1, "Uno")
        fake.add_course(2, "Dos")
        fake.failing.update({("1", "calendar_events"), ("2", "assignments")})

        async with fake.adapter("valid-token") as adapter:
            with pytest.raises(FetchError):
                await adapter.fetch_all()

    @pytest.mark.asyncio
    async def test_no_courses_is_empty_result(self):
        async with FakeCanvas().adapter("valid-token") as adapter:
            result = await adapter.fetch_all()

        assert result.tasks == [] and result.events == [] and result.errors == []

    @pytest.mark.asyncio
    async def test_course_list_failure_raises(self, canvas):
        canvas.course_list_status = 503

        async with canvas.adapter("valid-token") as adapter:
            with pytest.raises(FetchError):
                await adapter.fetch_all()

    @pytest.mark.asyncio
    async def test_revoked_token_raises_authentication_error(self, canvas):
        async with canvas.adapter("revoked") as adapter:
            with pytest.raises(AuthenticationError):
                await adapter.fetch_all()

    @pytest.mark.asyncio
    async def test_not_connected(self, canvas):
        with pytest.raises(FetchError):
            await canvas.adapter("valid-token").fetch_all()

    @pytest.mark.asyncio
    async def test_follows_pagination(self):
        def handler(request):
            path = request.url.path
            if path.endswith("/courses") and request.url.params.get("page") != "2":
                return httpx.Response(
                    200,
                    json=[{"id": 1, "name": "Uno"}],
                    headers={"Link": f'<{CANVAS_URL}/courses?page=2>; rel="next"'},
                )
            if path.endswith("/courses"):
                return httpx.Response(200, json=[{"id": 2, "name": "Dos"}])
            if path.endswith("/assignments"):
                course_id = path.split("/")[-2]
                return httpx.Response(200, json=[assignment(int(course_id) * 10, f"A{course_id}")])
            return httpx.Response(200, json=[])

        adapter = CanvasAdapter("t", base_url=CANVAS_URL, transport=httpx.MockTransport(handler))
        async with adapter:
            result = await adapter.fetch_all()

        assert result.courses_total == 2
        assert sorted(task.external_id for task in result.tasks) == ["10", "20"]
