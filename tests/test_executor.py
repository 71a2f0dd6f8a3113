"""
Tests for BatchExecutor in graphbatch.executor.
"""

import typing as t

import pytest

from graphbatch.enums import ErrorCategory
from graphbatch.errors import LoggingErrorSink
from graphbatch.exceptions import INVALID_RESPONSE, TransportError
from graphbatch.executor import BatchExecutor, build_batch_payload
from graphbatch.task import Task, TaskPool
from graphbatch.transport import HttpxBatchTransport
from tests.mocks.graph import FakeGraphAPI


class StaticTransport:
    """Transport returning a canned body, or raising a canned error."""

    base_path = "/v1.0"

    def __init__(self, *, response: t.Any = None, error: Exception | None = None) -> None:
        self._response = response
        self._error = error
        self.payloads: list[dict[str, t.Any]] = []

    def submit_batch(self, *, payload: dict[str, t.Any]) -> dict[str, t.Any]:
        self.payloads.append(payload)
        if self._error is not None:
            raise self._error
        return self._response


def _tasks(pool: TaskPool, *ids: int) -> list[Task]:
    tasks = [Task(id=task_id, url=f"/items/{task_id}") for task_id in ids]
    for task in tasks:
        pool.add(task)
    return tasks


def test_payload_is_sorted_by_numeric_id():
    tasks = [Task(id=10, url="/c"), Task(id=2, url="/a"), Task(id=9, url="/b")]

    payload = build_batch_payload(tasks=tasks)

    assert [item["id"] for item in payload["requests"]] == ["2", "9", "10"]


def test_execute_pairs_responses_with_tasks(
    transport: HttpxBatchTransport, graph_api: FakeGraphAPI, sink: LoggingErrorSink
):
    pool = TaskPool()
    tasks = _tasks(pool, 1, 2, 3)
    executor = BatchExecutor(transport=transport, pool=pool, error_sink=sink)

    paired = executor.execute(tasks=tasks)

    assert [(task.id, item.status) for task, item in paired] == [(1, 200), (2, 200), (3, 200)]
    assert paired[0][1].body == {"url": "/items/1"}
    assert len(graph_api.batches) == 1
    assert len(pool) == 3


def test_transport_failure_abandons_whole_sub_batch(sink: LoggingErrorSink):
    pool = TaskPool()
    sent = _tasks(pool, 1, 2)
    _tasks(pool, 3)
    transport = StaticTransport(
        error=TransportError("boom", classification="401|InvalidAuthenticationToken")
    )
    executor = BatchExecutor(transport=transport, pool=pool, error_sink=sink)

    assert executor.execute(tasks=sent) == []

    assert [task.id for task in pool] == [3]
    assert len(sink.errors) == 1
    error = sink.errors[0]
    assert error.error_code == "401|InvalidAuthenticationToken"
    assert error.category is ErrorCategory.CONNECTION_ERROR
    assert [request["id"] for request in error.context["requests"]] == [1, 2]


def test_malformed_response_items_abandon_sub_batch(sink: LoggingErrorSink):
    pool = TaskPool()
    tasks = _tasks(pool, 1)
    transport = StaticTransport(response={"responses": [{"id": "1"}]})
    executor = BatchExecutor(transport=transport, pool=pool, error_sink=sink)

    assert executor.execute(tasks=tasks) == []
    assert len(pool) == 0
    assert sink.errors[0].error_code == "InvalidResponse"


@pytest.mark.parametrize("response", [{}, None, {"responses": {"id": "1"}}])
def test_response_without_responses_list_abandons_sub_batch(
    sink: LoggingErrorSink, response: t.Any
):
    pool = TaskPool()
    tasks = _tasks(pool, 1, 2)
    executor = BatchExecutor(
        transport=StaticTransport(response=response), pool=pool, error_sink=sink
    )

    assert executor.execute(tasks=tasks) == []
    assert len(pool) == 0
    (error,) = sink.errors
    assert error.error_code == INVALID_RESPONSE
    assert error.category is ErrorCategory.CONNECTION_ERROR


def test_missing_and_unknown_responses_are_warned(sink: LoggingErrorSink):
    pool = TaskPool()
    tasks = _tasks(pool, 1, 2)
    transport = StaticTransport(
        response={
            "responses": [
                {"id": "1", "status": 204, "body": None, "headers": None},
                {"id": "99", "status": 200},
            ]
        }
    )
    executor = BatchExecutor(transport=transport, pool=pool, error_sink=sink)

    paired = executor.execute(tasks=tasks)

    assert [task.id for task, _ in paired] == [1]
    assert paired[0][1].headers == {}
    assert [task.id for task in pool] == [1]
    assert len(sink.warnings) == 2
    assert "'99'" in sink.warnings[0]
    assert "No response received for request 2" in sink.warnings[1]


def test_empty_batch_sends_nothing(sink: LoggingErrorSink):
    transport = StaticTransport(response={"responses": []})
    executor = BatchExecutor(transport=transport, pool=TaskPool(), error_sink=sink)

    assert executor.execute(tasks=[]) == []
    assert transport.payloads == []
