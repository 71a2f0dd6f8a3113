"""
Core engine draining a task pool through the ``$batch`` endpoint.

A run repeatedly schedules up to one batch of ready tasks, submits it, and
routes every response item, until no task is left. Throttled tasks wait for
their cooldown, paged tasks come back with their next-page url.
"""

from __future__ import annotations

import time
import typing as t
from collections.abc import Iterable, Iterator, Sequence

import structlog

from graphbatch.builder import TaskBuilder
from graphbatch.config import BatchSettings
from graphbatch.enums import OutputMode
from graphbatch.errors import ErrorSink, LoggingErrorSink
from graphbatch.exceptions import RunConsumedError
from graphbatch.executor import BatchExecutor
from graphbatch.models import CorrelatedResult
from graphbatch.router import ResultRouter
from graphbatch.scheduler import BatchScheduler
from graphbatch.task import DEFAULT_METHOD, IdAllocator, TaskPool
from graphbatch.transport import BatchTransport

log = structlog.get_logger(__name__)


class Batcher:
    """
    Collect requests, then send them in batches and stream the results.

    Parameters
    ----------
    transport : BatchTransport
        Authenticated transport submitting batch payloads.
    settings : BatchSettings | None, optional
        Run tunables; defaults apply when omitted.
    error_sink : ErrorSink | None, optional
        Receiver of failures; a ``LoggingErrorSink`` when omitted.
    method : str, optional
        Method of requests that do not specify one.
    body : typing.Any, optional
        Body of requests that do not specify one.
    headers : dict[str, str] | None, optional
        Headers added to every request.
    clock : Callable[[], float], optional
        Monotonic time source, in seconds.
    sleep : Callable[[float], None], optional
        Blocking pause used while every task is cooling down.
    """

    def __init__(
        self,
        *,
        transport: BatchTransport,
        settings: BatchSettings | None = None,
        error_sink: ErrorSink | None = None,
        method: str = DEFAULT_METHOD,
        body: t.Any = None,
        headers: dict[str, str] | None = None,
        clock: t.Callable[[], float] = time.monotonic,
        sleep: t.Callable[[float], None] = time.sleep,
    ) -> None:
        self._settings = settings or BatchSettings()
        self._transport = transport
        self.error_sink: ErrorSink = error_sink or LoggingErrorSink()
        self._clock = clock
        self._sleep = sleep
        self._pool = TaskPool()
        self._builder = TaskBuilder(
            pool=self._pool,
            error_sink=self.error_sink,
            allocator=IdAllocator(),
            method=method,
            body=body,
            headers=headers,
            base_path=transport.base_path,
        )
        self._scheduler = BatchScheduler(
            error_sink=self.error_sink,
            batch_size=self._settings.batch_size,
        )
        self._executor = BatchExecutor(
            transport=transport,
            pool=self._pool,
            error_sink=self.error_sink,
        )
        self._consumed = False
        self._cancelled = False

        log.debug(
            event="Initialized Batcher",
            batch_size=self._settings.batch_size,
            timeout_seconds=self._settings.timeout_seconds,
            output_mode=str(self._settings.output_mode),
            paging=self._settings.paging,
        )

    @property
    def pending_count(self) -> int:
        return len(self._pool)

    def add_requests(self, requests: Iterable[t.Any]) -> int:
        """
        Queue request descriptors.

        Parameters
        ----------
        requests : Iterable[typing.Any]
            Url strings or structured requests.

        Returns
        -------
        int
            Number of tasks created.
        """
        return len(self._builder.add_requests(requests))

    def add_templates(
        self,
        templates: str | Sequence[str],
        arguments: Iterable[t.Any],
        properties: Sequence[str] | None = None,
    ) -> int:
        """
        Queue requests expanded from url templates.

        Parameters
        ----------
        templates : str | Sequence[str]
            Url templates with positional placeholders.
        arguments : Iterable[typing.Any]
            Values the templates are expanded over.
        properties : Sequence[str] | None, optional
            Argument keys or attributes substituted positionally.

        Returns
        -------
        int
            Number of tasks created.
        """
        return len(self._builder.add_templates(templates, arguments, properties))

    def cancel(self) -> None:
        """
        Stop the run before the next scheduling round.

        Remaining tasks are abandoned and reported.
        """
        self._cancelled = True

    def run(self) -> Iterator[t.Any]:
        """
        Send every queued request and stream the output records.

        Returns
        -------
        Iterator[typing.Any]
            Lazy records shaped by the configured output mode. The iterator
            ends when no task is pending.

        Raises
        ------
        RunConsumedError
            If the batcher already ran.
        """
        if self._consumed:
            raise RunConsumedError("This batcher has already been run")
        self._consumed = True
        return self._iter_records()

    def _abandon_pending(self) -> None:
        abandoned = self._pool.clear()
        if abandoned:
            self.error_sink.report_warning(
                f"Run cancelled, abandoned {len(abandoned)} pending request(s): "
                + ", ".join(str(task.id) for task in abandoned)
            )

    def _iter_records(self) -> Iterator[t.Any]:
        settings = self._settings
        started_at = self._clock()

        correlation: dict[int, t.Any] | None = None
        if settings.output_mode == OutputMode.correlated:
            correlation = {task.id: task.argument for task in self._pool}
        router = ResultRouter(
            pool=self._pool,
            error_sink=self.error_sink,
            output_mode=settings.output_mode,
            paging=settings.paging,
            correlation=correlation,
            base_path=self._transport.base_path,
            default_retry_after=settings.default_retry_after_seconds,
            retry_timeout=settings.timeout_seconds,
        )

        log.info(event="Starting batch run", request_count=len(self._pool))
        batch_count = 0
        while self._pool:
            if self._cancelled:
                self._abandon_pending()
                break
            tasks = self._scheduler.next_batch(pool=self._pool, now=self._clock())
            if not tasks:
                if self._pool:
                    log.debug(
                        event="All pending requests cooling down",
                        pending_count=len(self._pool),
                        idle_interval_seconds=settings.idle_interval_seconds,
                    )
                    self._sleep(settings.idle_interval_seconds)
                continue
            batch_count += 1
            for task, item in self._executor.execute(tasks=tasks):
                yield from router.route(task=task, item=item, now=self._clock())

        if correlation is not None:
            for task_id, argument in correlation.items():
                yield CorrelatedResult(id=task_id, argument=argument, success=False)
            for argument in self._builder.rejected:
                yield CorrelatedResult(id=None, argument=argument, success=False)
        log.info(
            event="Finished batch run",
            batch_count=batch_count,
            elapsed_seconds=round(self._clock() - started_at, 3),
        )
