"""
Error reporting for batch runs.

Failures never interrupt a run: they are pushed into an error sink and the
loop keeps draining the pool.
"""

from __future__ import annotations

import typing as t
from dataclasses import dataclass, field

import structlog

from graphbatch.enums import ErrorCategory
from graphbatch.exceptions import THROTTLING_RETRIES_EXHAUSTED

if t.TYPE_CHECKING:
    from graphbatch.task import Task

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class BatchErrorRecord:
    """
    A failure reported during a run.

    Parameters
    ----------
    message : str
        Human readable description.
    error_code : str
        Machine-friendly tag, e.g. ``"404|Request_ResourceNotFound"``.
    category : ErrorCategory
        Failure family.
    context : dict[str, typing.Any]
        Request data needed to retry by hand.
    """

    message: str
    error_code: str
    category: ErrorCategory
    context: dict[str, t.Any] = field(default_factory=dict)


class ErrorSink(t.Protocol):
    """Receiver for non-fatal failures."""

    def report_error(
        self,
        message: str,
        *,
        error_code: str,
        category: ErrorCategory,
        context: dict[str, t.Any] | None = None,
    ) -> None: ...

    def report_warning(self, message: str) -> None: ...


class LoggingErrorSink:
    """
    Error sink that logs every report and keeps it for later inspection.
    """

    def __init__(self) -> None:
        self.errors: list[BatchErrorRecord] = []
        self.warnings: list[str] = []

    def report_error(
        self,
        message: str,
        *,
        error_code: str,
        category: ErrorCategory,
        context: dict[str, t.Any] | None = None,
    ) -> None:
        record = BatchErrorRecord(
            message=message,
            error_code=error_code,
            category=category,
            context=context or {},
        )
        self.errors.append(record)
        log.error(
            event=message,
            error_code=error_code,
            category=str(category),
            task_id=record.context.get("id"),
            url=record.context.get("url"),
        )

    def report_warning(self, message: str) -> None:
        self.warnings.append(message)
        log.warning(event=message)


def report_throttling_exhausted(*, sink: ErrorSink, task: Task) -> None:
    """
    Report a task dropped because its throttling wait outlives the timeout.

    Parameters
    ----------
    sink : ErrorSink
        Destination of the report.
    task : Task
        The dropped task.
    """
    sink.report_error(
        f"Throttling retries exhausted for request {task.id} ({task.method} {task.url})",
        error_code=THROTTLING_RETRIES_EXHAUSTED,
        category=ErrorCategory.LIMITS_EXCEEDED,
        context=task.describe(),
    )
