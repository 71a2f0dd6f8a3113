"""
Send one sub-batch and pair every response item with its task.
"""

from __future__ import annotations

import typing as t

import structlog
from pydantic import ValidationError

from graphbatch.enums import ErrorCategory
from graphbatch.errors import ErrorSink
from graphbatch.exceptions import INVALID_RESPONSE, TransportError
from graphbatch.models import BatchResponseItem, batch_response_list_adapter
from graphbatch.task import Task, TaskPool
from graphbatch.transport import BatchTransport

log = structlog.get_logger(__name__)


def build_batch_payload(*, tasks: t.Iterable[Task]) -> dict[str, t.Any]:
    """
    Serialize tasks into a ``$batch`` body, ordered by numeric id.

    Parameters
    ----------
    tasks : Iterable[Task]
        Tasks of the sub-batch.

    Returns
    -------
    dict[str, typing.Any]
        ``{"requests": [...]}``.
    """
    ordered = sorted(tasks, key=lambda task: task.id)
    return {"requests": [task.to_batch_item() for task in ordered]}


class BatchExecutor:
    """
    Submit sub-batches through a transport.

    Parameters
    ----------
    transport : BatchTransport
        Authenticated transport.
    pool : TaskPool
        Pool the tasks are removed from when their batch fails.
    error_sink : ErrorSink
        Receiver of submission failures.
    """

    def __init__(self, *, transport: BatchTransport, pool: TaskPool, error_sink: ErrorSink) -> None:
        self._transport = transport
        self._pool = pool
        self._error_sink = error_sink

    def _abandon(self, *, tasks: list[Task], classification: str, message: str) -> None:
        for task in tasks:
            self._pool.remove(task.id)
        self._error_sink.report_error(
            message,
            error_code=classification,
            category=ErrorCategory.CONNECTION_ERROR,
            context={"requests": [task.describe() for task in tasks]},
        )

    def execute(self, *, tasks: list[Task]) -> list[tuple[Task, BatchResponseItem]]:
        """
        Submit ``tasks`` as one batch.

        Parameters
        ----------
        tasks : list[Task]
            Selected tasks, at most one batch worth.

        Returns
        -------
        list[tuple[Task, BatchResponseItem]]
            Response items paired with their task, in response order. Empty
            when the submission failed, in which case every task of the
            sub-batch has been removed from the pool.
        """
        if not tasks:
            return []
        payload = build_batch_payload(tasks=tasks)
        log.info(event="Sending batch", request_count=len(tasks))
        try:
            response = self._transport.submit_batch(payload=payload)
        except TransportError as error:
            self._abandon(tasks=tasks, classification=error.classification, message=str(error))
            return []

        raw_items = response.get("responses") if isinstance(response, dict) else None
        if not isinstance(raw_items, list):
            self._abandon(
                tasks=tasks,
                classification=INVALID_RESPONSE,
                message="Malformed batch response: no 'responses' list",
            )
            return []
        try:
            items = batch_response_list_adapter.validate_python(raw_items)
        except ValidationError as error:
            self._abandon(
                tasks=tasks,
                classification=INVALID_RESPONSE,
                message=f"Malformed batch response: {error.error_count()} invalid item(s)",
            )
            return []

        by_id = {str(task.id): task for task in tasks}
        paired: list[tuple[Task, BatchResponseItem]] = []
        for item in items:
            task = by_id.pop(item.id, None)
            if task is None:
                self._error_sink.report_warning(
                    f"Ignoring batch response for unknown request id {item.id!r}"
                )
                continue
            paired.append((task, item))

        for task in by_id.values():
            self._pool.remove(task.id)
            self._error_sink.report_warning(
                f"No response received for request {task.id} ({task.method} {task.url})"
            )
        log.debug(event="Received batch responses", response_count=len(paired))
        return paired
