"""
Turn caller input into tasks.

Two input shapes are supported: a list of request descriptors, or url
templates expanded over an argument list.
"""

from __future__ import annotations

import typing as t
from collections.abc import Iterable, Mapping, Sequence

import httpx
import structlog
from pydantic import ValidationError

from graphbatch.enums import ErrorCategory
from graphbatch.errors import ErrorSink
from graphbatch.task import (
    DEFAULT_METHOD,
    FullRequest,
    IdAllocator,
    RequestDescriptor,
    Task,
    TaskPool,
    UrlOnly,
    relative_url,
    to_descriptor,
)

log = structlog.get_logger(__name__)

CONSTRUCTION_ERROR = "InvalidRequest"


def _argument_property(*, argument: t.Any, name: str) -> t.Any:
    if isinstance(argument, Mapping):
        return argument[name]
    return getattr(argument, name)


class TaskBuilder:
    """
    Build tasks into a pool.

    Malformed input is reported to the error sink and skipped; the remaining
    items are still built.

    Parameters
    ----------
    pool : TaskPool
        Pool receiving the tasks.
    error_sink : ErrorSink
        Receiver of construction errors.
    allocator : IdAllocator | None, optional
        Id source, scoped to one run.
    method : str, optional
        Method used when a request does not specify one.
    body : typing.Any, optional
        Body used when a request does not specify one.
    headers : dict[str, str] | None, optional
        Headers every request starts from.
    base_path : str, optional
        Service base path stripped from absolute urls.
    """

    def __init__(
        self,
        *,
        pool: TaskPool,
        error_sink: ErrorSink,
        allocator: IdAllocator | None = None,
        method: str = DEFAULT_METHOD,
        body: t.Any = None,
        headers: dict[str, str] | None = None,
        base_path: str = "",
    ) -> None:
        self._pool = pool
        self._error_sink = error_sink
        self._allocator = allocator or IdAllocator()
        self._method = method.upper()
        self._body = body
        self._headers = headers or {}
        self._base_path = base_path
        self.rejected: list[t.Any] = []

    def _reject(self, *, argument: t.Any, message: str) -> None:
        self.rejected.append(argument)
        self._error_sink.report_error(
            message,
            error_code=CONSTRUCTION_ERROR,
            category=ErrorCategory.INVALID_ARGUMENT,
            context={"argument": argument},
        )

    def _add_task(
        self,
        *,
        url: str,
        argument: t.Any,
        method: str | None = None,
        body: t.Any = None,
        headers: dict[str, str] | None = None,
        explicit_id: int | None = None,
        depends_on: int | None = None,
        reserved: t.Container[int] = (),
    ) -> Task | None:
        try:
            task_id = self._allocator.allocate(
                pool=self._pool, explicit=explicit_id, reserved=reserved
            )
        except ValueError as error:
            self._reject(argument=argument, message=str(error))
            return None

        merged_headers = httpx.Headers(self._headers)
        if headers:
            merged_headers.update(headers)
        task = Task(
            id=task_id,
            url=relative_url(url, base_path=self._base_path),
            method=(method or self._method).upper(),
            body=self._body if body is None else body,
            headers=merged_headers,
            depends_on=depends_on,
            argument=argument,
        )
        self._pool.add(task)
        log.debug(event="Built task", task_id=task.id, method=task.method, url=task.url)
        return task

    def add_requests(self, requests: Iterable[t.Any]) -> list[Task]:
        """
        Build one task per request descriptor.

        Explicit ids of the whole input are reserved before any implicit id
        is handed out, so caller-chosen ids may appear in any position.

        Parameters
        ----------
        requests : Iterable[typing.Any]
            Url strings, mappings or objects exposing ``url`` and optionally
            ``method``, ``body``, ``headers``, ``id`` and ``dependsOn``.

        Returns
        -------
        list[Task]
            Tasks added to the pool, in input order.
        """
        resolved: list[tuple[t.Any, RequestDescriptor]] = []
        for raw in requests:
            try:
                resolved.append((raw, to_descriptor(raw)))
            except ValidationError as error:
                first = error.errors()[0]
                field = ".".join(str(part) for part in first["loc"]) or "request"
                self._reject(
                    argument=raw,
                    message=f"Invalid request descriptor: {field}: {first['msg']}",
                )

        reserved = {
            descriptor.id
            for _, descriptor in resolved
            if isinstance(descriptor, FullRequest) and descriptor.id is not None
        }
        tasks: list[Task] = []
        for raw, descriptor in resolved:
            if isinstance(descriptor, UrlOnly):
                task = self._add_task(url=descriptor.url, argument=raw, reserved=reserved)
            else:
                task = self._add_task(
                    url=descriptor.url,
                    argument=raw,
                    method=descriptor.method,
                    body=descriptor.body,
                    headers=descriptor.headers,
                    explicit_id=descriptor.id,
                    depends_on=descriptor.depends_on,
                    reserved=reserved,
                )
            if task is not None:
                tasks.append(task)
        return tasks

    def add_templates(
        self,
        templates: str | Sequence[str],
        arguments: Iterable[t.Any],
        properties: Sequence[str] | None = None,
    ) -> list[Task]:
        """
        Build one task per (argument, template) combination.

        Parameters
        ----------
        templates : str | Sequence[str]
            Url templates with positional placeholders, e.g. ``/users/{0}``.
        arguments : Iterable[typing.Any]
            Values the templates are expanded over.
        properties : Sequence[str] | None, optional
            Names of the argument's keys or attributes passed, in order, as
            the positional values. When omitted the argument itself is
            passed as ``{0}``.

        Returns
        -------
        list[Task]
            Tasks added to the pool, argument-major then template order.
        """
        if isinstance(templates, str):
            templates = [templates]
        tasks: list[Task] = []
        for argument in arguments:
            for template in templates:
                try:
                    if properties:
                        values = [
                            _argument_property(argument=argument, name=name)
                            for name in properties
                        ]
                    else:
                        values = [argument]
                    url = template.format(*values)
                except (KeyError, AttributeError, IndexError, ValueError) as error:
                    self._reject(
                        argument=argument,
                        message=f"Cannot expand url template {template!r}: {error!r}",
                    )
                    continue
                if not url:
                    self._reject(
                        argument=argument,
                        message=f"Template {template!r} expanded to an empty url",
                    )
                    continue
                task = self._add_task(url=url, argument=argument)
                if task is not None:
                    tasks.append(task)
        return tasks
