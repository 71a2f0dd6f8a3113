"""
Tests for ResultRouter in graphbatch.router.
"""

import typing as t

import pytest

from graphbatch.enums import ErrorCategory, OutputMode
from graphbatch.errors import LoggingErrorSink
from graphbatch.exceptions import THROTTLING_RETRIES_EXHAUSTED
from graphbatch.models import BatchResponseItem, CorrelatedResult
from graphbatch.router import ResultRouter
from graphbatch.task import Task, TaskPool

NOW = 50.0
NEXT_LINK = "https://graph.microsoft.com/v1.0/users?$skiptoken=page2"


def _item(status: int, body: t.Any = None, headers: dict | None = None) -> BatchResponseItem:
    return BatchResponseItem(id="1", status=status, body=body, headers=headers or {})


@pytest.fixture
def task() -> Task:
    return Task(id=1, url="/users", argument="users-arg", wait_limit=NOW + 60)


@pytest.fixture
def pool(task: Task) -> TaskPool:
    pool = TaskPool()
    pool.add(task)
    return pool


def _router(
    pool: TaskPool, sink: LoggingErrorSink, mode: OutputMode = OutputMode.plain, **kwargs
) -> ResultRouter:
    correlation = {task.id: task.argument for task in pool} if mode is OutputMode.correlated else None
    return ResultRouter(
        pool=pool,
        error_sink=sink,
        output_mode=mode,
        correlation=correlation,
        base_path="/v1.0",
        **kwargs,
    )


def test_plain_success_unwraps_value(task: Task, pool: TaskPool, sink: LoggingErrorSink):
    records = _router(pool, sink).route(task=task, item=_item(200, {"value": [1, 2]}), now=NOW)

    assert records == [[1, 2]]
    assert len(pool) == 0


def test_plain_success_without_value_yields_body(
    task: Task, pool: TaskPool, sink: LoggingErrorSink
):
    records = _router(pool, sink).route(task=task, item=_item(201, {"id": "x"}), now=NOW)

    assert records == [{"id": "x"}]


def test_plain_success_without_body_yields_nothing(
    task: Task, pool: TaskPool, sink: LoggingErrorSink
):
    assert _router(pool, sink).route(task=task, item=_item(204), now=NOW) == []
    assert len(pool) == 0


def test_raw_success_yields_envelope_as_received(
    task: Task, pool: TaskPool, sink: LoggingErrorSink
):
    envelope = {"id": 1, "status": 200, "body": {"value": []}}
    item = BatchResponseItem.model_validate(envelope)

    (record,) = _router(pool, sink, OutputMode.raw).route(task=task, item=item, now=NOW)

    assert record == {"id": 1, "status": 200, "body": {"value": []}}


def test_next_link_keeps_task_and_rewrites_url(
    task: Task, pool: TaskPool, sink: LoggingErrorSink
):
    item = _item(200, {"value": [1], "@odata.nextLink": NEXT_LINK})

    records = _router(pool, sink).route(task=task, item=item, now=NOW)

    assert records == [[1]]
    assert task.url == "/users?$skiptoken=page2"
    assert 1 in pool


def test_paging_disabled_ignores_next_link(task: Task, pool: TaskPool, sink: LoggingErrorSink):
    item = _item(200, {"value": [1], "@odata.nextLink": NEXT_LINK})

    records = _router(pool, sink, paging=False).route(task=task, item=item, now=NOW)

    assert records == [[1]]
    assert len(pool) == 0


def test_correlated_buffers_pages_until_last(task: Task, pool: TaskPool, sink: LoggingErrorSink):
    router = _router(pool, sink, OutputMode.correlated)

    first = router.route(
        task=task, item=_item(200, {"value": [1, 2], "@odata.nextLink": NEXT_LINK}), now=NOW
    )
    last = router.route(task=task, item=_item(200, {"value": [3]}), now=NOW)

    assert first == []
    assert last == [
        CorrelatedResult(id=1, argument="users-arg", success=True, result=[1, 2, 3], status=200)
    ]
    assert len(pool) == 0


def test_throttled_sets_cooldown(task: Task, pool: TaskPool, sink: LoggingErrorSink):
    records = _router(pool, sink).route(
        task=task, item=_item(429, headers={"retry-after": "7"}), now=NOW
    )

    assert records == []
    assert task.wait_until == NOW + 7
    assert 1 in pool
    assert sink.errors == []


def test_throttled_without_header_uses_default(
    task: Task, pool: TaskPool, sink: LoggingErrorSink
):
    _router(pool, sink, default_retry_after=3).route(task=task, item=_item(429), now=NOW)

    assert task.wait_until == NOW + 3


def test_throttled_past_deadline_is_dropped(task: Task, pool: TaskPool, sink: LoggingErrorSink):
    task.wait_limit = NOW + 1

    _router(pool, sink).route(task=task, item=_item(429, headers={"Retry-After": "2"}), now=NOW)

    assert len(pool) == 0
    assert sink.errors[0].error_code == THROTTLING_RETRIES_EXHAUSTED
    assert sink.errors[0].category is ErrorCategory.LIMITS_EXCEEDED


def test_client_error_is_reported(task: Task, pool: TaskPool, sink: LoggingErrorSink):
    body = {"error": {"code": "Request_ResourceNotFound", "message": "Resource not found"}}

    records = _router(pool, sink).route(task=task, item=_item(404, body), now=NOW)

    assert records == []
    assert len(pool) == 0
    error = sink.errors[0]
    assert error.error_code == "404|Request_ResourceNotFound"
    assert error.message == "Resource not found"
    assert error.category is ErrorCategory.INVALID_OPERATION
    assert error.context["response"] == body
    assert error.context["argument"] == "users-arg"


def test_client_error_correlated_record(task: Task, pool: TaskPool, sink: LoggingErrorSink):
    body = {"error": {"code": "Forbidden"}}

    records = _router(pool, sink, OutputMode.correlated).route(
        task=task, item=_item(403, body), now=NOW
    )

    assert records == [
        CorrelatedResult(id=1, argument="users-arg", success=False, result=body, status=403)
    ]


def test_unexpected_status_is_a_warning(task: Task, pool: TaskPool, sink: LoggingErrorSink):
    records = _router(pool, sink, OutputMode.correlated).route(
        task=task, item=_item(503), now=NOW
    )

    assert sink.errors == []
    assert "Unexpected status 503" in sink.warnings[0]
    assert records[0].success is False
    assert records[0].status == 503
    assert len(pool) == 0


def test_correlated_requires_table(pool: TaskPool, sink: LoggingErrorSink):
    with pytest.raises(ValueError):
        ResultRouter(pool=pool, error_sink=sink, output_mode=OutputMode.correlated)


def test_correlated_keeps_whole_pages_when_not_all_lists(
    task: Task, pool: TaskPool, sink: LoggingErrorSink
):
    router = _router(pool, sink, OutputMode.correlated)

    router.route(task=task, item=_item(200, {"id": "a", "@odata.nextLink": NEXT_LINK}), now=NOW)
    (record,) = router.route(task=task, item=_item(200, {"value": [1, 2]}), now=NOW)

    assert record.result == [{"id": "a", "@odata.nextLink": NEXT_LINK}, [1, 2]]


def test_first_throttle_starts_retry_budget(pool: TaskPool, sink: LoggingErrorSink):
    task = Task(id=2, url="/late")
    pool.add(task)

    _router(pool, sink, retry_timeout=10).route(
        task=task, item=_item(429, headers={"Retry-After": "1"}), now=NOW
    )

    assert task.wait_limit == NOW + 10
    assert task.wait_until == NOW + 1
    assert 2 in pool
    assert sink.errors == []


def test_zero_retry_timeout_drops_on_first_throttle(pool: TaskPool, sink: LoggingErrorSink):
    task = Task(id=2, url="/late")
    pool.add(task)

    _router(pool, sink, retry_timeout=0).route(task=task, item=_item(429), now=NOW)

    assert 2 not in pool
    assert sink.errors[0].error_code == THROTTLING_RETRIES_EXHAUSTED


def test_success_clears_cooldown(task: Task, pool: TaskPool, sink: LoggingErrorSink):
    task.wait_until = NOW - 1
    item = _item(200, {"value": [1], "@odata.nextLink": NEXT_LINK})

    _router(pool, sink, OutputMode.correlated).route(task=task, item=item, now=NOW)

    assert task.wait_until is None
    assert 1 in pool
