"""
Task model for batched requests.

A task tracks one logical request through scheduling, throttling retries
and pagination until it resolves or is abandoned.
"""

from __future__ import annotations

import typing as t
from collections.abc import Iterator
from dataclasses import dataclass, field
from urllib.parse import urlsplit

import httpx
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

DEFAULT_METHOD = "GET"


class UrlOnly(BaseModel):
    """A request descriptor given as a bare url."""

    url: str = Field(min_length=1)


class FullRequest(BaseModel):
    """A structured request descriptor."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", from_attributes=True)

    url: str = Field(min_length=1)
    method: str | None = None
    body: t.Any = None
    headers: dict[str, str] | None = None
    id: int | None = Field(default=None, gt=0)
    depends_on: int | None = Field(
        default=None,
        gt=0,
        validation_alias=AliasChoices("dependsOn", "depends_on"),
    )

    @field_validator("method")
    @classmethod
    def upper_method(cls, value: str | None) -> str | None:
        return value.upper() if value else None


RequestDescriptor = UrlOnly | FullRequest


def to_descriptor(raw: t.Any) -> RequestDescriptor:
    """
    Resolve a caller-supplied request into a descriptor.

    Parameters
    ----------
    raw : typing.Any
        A url string, a mapping, an object exposing request attributes, or
        an already-built descriptor.

    Returns
    -------
    RequestDescriptor
        ``UrlOnly`` for strings, ``FullRequest`` otherwise.

    Raises
    ------
    pydantic.ValidationError
        If no usable url can be resolved.
    """
    if isinstance(raw, (UrlOnly, FullRequest)):
        return raw
    if isinstance(raw, str):
        return UrlOnly(url=raw)
    return FullRequest.model_validate(raw)


def relative_url(url: str, *, base_path: str = "") -> str:
    """
    Strip scheme and host from a url, keeping a server-relative path.

    Parameters
    ----------
    url : str
        Absolute or relative url, e.g. an ``@odata.nextLink``.
    base_path : str, optional
        Path prefix the batch endpoint already lives under (``/v1.0``),
        removed from the path when present.

    Returns
    -------
    str
        Path plus query string, always starting with ``/``.
    """
    parts = urlsplit(url)
    path = parts.path
    base_path = base_path.rstrip("/")
    # only absolute links carry the api version prefix
    if parts.netloc and base_path and (path == base_path or path.startswith(base_path + "/")):
        path = path[len(base_path) :]
    if not path.startswith("/"):
        path = "/" + path
    return f"{path}?{parts.query}" if parts.query else path


@dataclass
class Task:
    """One logical request plus its batching, retry and paging state."""

    id: int
    url: str
    method: str = DEFAULT_METHOD
    body: t.Any = None
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    depends_on: int | None = None
    argument: t.Any = None
    result: t.Any = None
    pages: list[t.Any] = field(default_factory=list)
    wait_until: float | None = None
    wait_limit: float | None = None

    def to_batch_item(self) -> dict[str, t.Any]:
        """
        Serialize the task into one entry of a ``$batch`` request.

        Returns
        -------
        dict[str, typing.Any]
            Wire representation built from the task's current url.
        """
        item: dict[str, t.Any] = {"id": str(self.id), "method": self.method, "url": self.url}
        headers = httpx.Headers(self.headers)
        if self.body is not None:
            item["body"] = self.body
            if "content-type" not in headers:
                headers["content-type"] = "application/json"
        if headers:
            item["headers"] = dict(headers.items())
        if self.depends_on is not None:
            item["dependsOn"] = [str(self.depends_on)]
        return item

    def describe(self) -> dict[str, t.Any]:
        """Identifying data carried by reported errors."""
        return {
            "id": self.id,
            "method": self.method,
            "url": self.url,
            "body": self.body,
            "argument": self.argument,
        }


class TaskPool:
    """
    Insertion-ordered collection of the tasks still pending in one run.

    Iterating yields a snapshot, so tasks may be removed while looping.
    """

    def __init__(self) -> None:
        self._tasks: dict[int, Task] = {}

    def add(self, task: Task) -> None:
        if task.id in self._tasks:
            raise ValueError(f"Task id {task.id} is already pending")
        self._tasks[task.id] = task

    def remove(self, task_id: int) -> Task | None:
        return self._tasks.pop(task_id, None)

    def get(self, task_id: int) -> Task | None:
        return self._tasks.get(task_id)

    def clear(self) -> list[Task]:
        tasks = list(self._tasks.values())
        self._tasks.clear()
        return tasks

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks

    def __iter__(self) -> Iterator[Task]:
        return iter(list(self._tasks.values()))

    def __len__(self) -> int:
        return len(self._tasks)

    def __bool__(self) -> bool:
        return bool(self._tasks)


class IdAllocator:
    """
    Hand out task ids for one run.

    Explicit ids are respected and push the counter past them; implicit ids
    come from the counter and skip anything pending in the pool or reserved
    for an explicit id still to be built.
    """

    def __init__(self, *, start: int = 1) -> None:
        self._next = start

    @property
    def next_id(self) -> int:
        return self._next

    def allocate(
        self,
        *,
        pool: TaskPool,
        explicit: int | None = None,
        reserved: t.Container[int] = (),
    ) -> int:
        """
        Pick the id for a new task.

        Parameters
        ----------
        pool : TaskPool
            Pool the task will join; its ids are the ones in use.
        explicit : int | None, optional
            Caller-chosen id.
        reserved : Container[int], optional
            Explicit ids of requests not built yet, never handed out implicitly.

        Returns
        -------
        int
            The allocated id.

        Raises
        ------
        ValueError
            If ``explicit`` is already used by a pending task.
        """
        if explicit is not None:
            task_id = int(explicit)
            if task_id in pool:
                raise ValueError(f"Request id {task_id} is already used by a pending request")
            self._next = max(self._next, task_id + 1)
            return task_id
        while self._next in pool or self._next in reserved:
            self._next += 1
        task_id = self._next
        self._next += 1
        return task_id
