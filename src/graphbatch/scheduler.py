from __future__ import annotations

import structlog

from graphbatch.config import MAX_BATCH_SIZE
from graphbatch.errors import ErrorSink, report_throttling_exhausted
from graphbatch.task import Task, TaskPool

log = structlog.get_logger(__name__)


def is_exhausted(*, task: Task, now: float) -> bool:
    """
    Whether a throttled task can no longer be retried.

    A task is exhausted when its deadline has passed, or when its cooldown
    ends after its deadline.
    """
    if task.wait_until is None or task.wait_limit is None:
        return False
    return task.wait_limit < now or task.wait_limit < task.wait_until


class BatchScheduler:
    """
    Pick the tasks that go into the next batch.

    Parameters
    ----------
    error_sink : ErrorSink
        Receiver of exhaustion reports.
    batch_size : int, optional
        Maximum number of tasks per batch.
    """

    def __init__(self, *, error_sink: ErrorSink, batch_size: int = MAX_BATCH_SIZE) -> None:
        if not 1 <= batch_size <= MAX_BATCH_SIZE:
            raise ValueError(f"batch_size must be between 1 and {MAX_BATCH_SIZE}")
        self._error_sink = error_sink
        self._batch_size = batch_size

    @staticmethod
    def is_ready(*, task: Task, now: float) -> bool:
        if task.wait_until is None:
            return True
        return task.wait_until <= now and not is_exhausted(task=task, now=now)

    def next_batch(self, *, pool: TaskPool, now: float) -> list[Task]:
        """
        Select up to ``batch_size`` ready tasks in pool order, then prune.

        Parameters
        ----------
        pool : TaskPool
            Pending tasks.
        now : float
            Current clock value.

        Returns
        -------
        list[Task]
            Selected tasks; empty when every task is cooling down.
        """
        selected: list[Task] = []
        for task in pool:
            if len(selected) >= self._batch_size:
                break
            if self.is_ready(task=task, now=now):
                selected.append(task)

        pruned = self.prune(pool=pool, now=now)
        log.debug(
            event="Scheduled batch",
            selected_count=len(selected),
            pruned_count=len(pruned),
            pending_count=len(pool),
        )
        return selected

    def prune(self, *, pool: TaskPool, now: float) -> list[Task]:
        """
        Drop tasks whose throttling wait can no longer finish in time.

        Parameters
        ----------
        pool : TaskPool
            Pending tasks.
        now : float
            Current clock value.

        Returns
        -------
        list[Task]
            Removed tasks, each reported as exhausted.
        """
        pruned: list[Task] = []
        for task in pool:
            if is_exhausted(task=task, now=now):
                pool.remove(task.id)
                report_throttling_exhausted(sink=self._error_sink, task=task)
                pruned.append(task)
        return pruned
