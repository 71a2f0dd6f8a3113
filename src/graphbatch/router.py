"""
Interpret per-item batch responses.

Each response either resolves its task (success, client error, unexpected
status), advances it to the next page, or puts it on a throttling cooldown.
"""

from __future__ import annotations

import typing as t

import structlog

from graphbatch.enums import ErrorCategory, OutputMode
from graphbatch.errors import ErrorSink, report_throttling_exhausted
from graphbatch.models import BatchResponseItem, CorrelatedResult
from graphbatch.task import Task, TaskPool, relative_url

log = structlog.get_logger(__name__)

NEXT_LINK_FIELD = "@odata.nextLink"
THROTTLED_STATUS = 429
DEFAULT_RETRY_AFTER_SECONDS = 5.0
DEFAULT_RETRY_TIMEOUT_SECONDS = 300.0


def _page_items(body: t.Any) -> t.Any:
    if isinstance(body, dict) and "value" in body:
        return body["value"]
    return body


def _merge_pages(pages: list[t.Any]) -> t.Any:
    if len(pages) == 1:
        return pages[0]
    if all(isinstance(page, list) for page in pages):
        return [value for page in pages for value in page]
    return list(pages)


class ResultRouter:
    """
    Route response items to output records and task state changes.

    Parameters
    ----------
    pool : TaskPool
        Pending tasks; resolved tasks are removed from it.
    error_sink : ErrorSink
        Receiver of failures.
    output_mode : OutputMode, optional
        Shape of emitted records.
    paging : bool, optional
        Follow ``@odata.nextLink`` continuations.
    correlation : dict[int, typing.Any] | None, optional
        Task id to original argument table, required in correlated mode.
        Entries are removed once their record is emitted.
    base_path : str, optional
        Service base path stripped from next-page links.
    default_retry_after : float, optional
        Cooldown used when a throttled response has no ``Retry-After``.
    retry_timeout : float, optional
        Seconds a task keeps being retried after its first throttled response.
    """

    def __init__(
        self,
        *,
        pool: TaskPool,
        error_sink: ErrorSink,
        output_mode: OutputMode = OutputMode.plain,
        paging: bool = True,
        correlation: dict[int, t.Any] | None = None,
        base_path: str = "",
        default_retry_after: float = DEFAULT_RETRY_AFTER_SECONDS,
        retry_timeout: float = DEFAULT_RETRY_TIMEOUT_SECONDS,
    ) -> None:
        if output_mode == OutputMode.correlated and correlation is None:
            raise ValueError("Correlated output requires a correlation table")
        self._pool = pool
        self._error_sink = error_sink
        self._output_mode = output_mode
        self._paging = paging
        self._correlation = correlation
        self._base_path = base_path
        self._default_retry_after = default_retry_after
        self._retry_timeout = retry_timeout

    def route(self, *, task: Task, item: BatchResponseItem, now: float) -> list[t.Any]:
        """
        Apply one response item to its task.

        Parameters
        ----------
        task : Task
            Task the response belongs to.
        item : BatchResponseItem
            Per-item response envelope.
        now : float
            Current clock value.

        Returns
        -------
        list[typing.Any]
            Output records produced by this response, possibly none.
        """
        status = item.status
        if 200 <= status <= 299:
            return self._on_success(task=task, item=item)
        if status == THROTTLED_STATUS:
            self._on_throttled(task=task, item=item, now=now)
            return []
        if 400 <= status <= 499:
            return self._on_client_error(task=task, item=item)
        return self._on_unexpected(task=task, item=item)

    def _resolve(
        self, *, task: Task, success: bool, result: t.Any, status: int
    ) -> list[t.Any]:
        self._pool.remove(task.id)
        if self._output_mode != OutputMode.correlated or self._correlation is None:
            return []
        argument = self._correlation.pop(task.id, task.argument)
        return [
            CorrelatedResult(
                id=task.id,
                argument=argument,
                success=success,
                result=result,
                status=status,
            )
        ]

    def _on_success(self, *, task: Task, item: BatchResponseItem) -> list[t.Any]:
        task.wait_until = None
        body = item.body
        next_link = body.get(NEXT_LINK_FIELD) if self._paging and isinstance(body, dict) else None

        if self._output_mode == OutputMode.correlated:
            task.pages.append(_page_items(body))
            task.result = _merge_pages(task.pages)
            if next_link:
                task.url = relative_url(next_link, base_path=self._base_path)
                log.debug(event="Buffered page", task_id=task.id, next_url=task.url)
                return []
            return self._resolve(task=task, success=True, result=task.result, status=item.status)

        if next_link:
            task.url = relative_url(next_link, base_path=self._base_path)
            log.debug(event="Following next page", task_id=task.id, next_url=task.url)
        else:
            self._pool.remove(task.id)

        if self._output_mode == OutputMode.raw:
            return [item.envelope]
        payload = _page_items(body)
        return [] if payload is None else [payload]

    def _retry_after(self, *, item: BatchResponseItem) -> float:
        value = item.header("Retry-After")
        if value is None:
            return self._default_retry_after
        try:
            return max(float(value), 0.0)
        except ValueError:
            return self._default_retry_after

    def _on_throttled(self, *, task: Task, item: BatchResponseItem, now: float) -> None:
        retry_after = self._retry_after(item=item)
        # the retry budget starts with the first throttle and covers later ones
        if task.wait_limit is None:
            task.wait_limit = now + self._retry_timeout
        task.wait_until = now + retry_after
        if task.wait_limit < task.wait_until:
            self._pool.remove(task.id)
            report_throttling_exhausted(sink=self._error_sink, task=task)
            return
        log.info(event="Request throttled", task_id=task.id, retry_after=retry_after)

    def _on_client_error(self, *, task: Task, item: BatchResponseItem) -> list[t.Any]:
        body = item.body
        message = None
        if isinstance(body, dict) and isinstance(body.get("error"), dict):
            message = body["error"].get("message")
        self._error_sink.report_error(
            message or f"Request {task.id} failed with status {item.status}",
            error_code=f"{item.status}|{item.error_code or 'Unknown'}",
            category=ErrorCategory.INVALID_OPERATION,
            context={**task.describe(), "response": body},
        )
        return self._resolve(task=task, success=False, result=body, status=item.status)

    def _on_unexpected(self, *, task: Task, item: BatchResponseItem) -> list[t.Any]:
        self._error_sink.report_warning(
            f"Unexpected status {item.status} for request {task.id} ({task.method} {task.url})"
        )
        return self._resolve(task=task, success=False, result=item.body, status=item.status)
