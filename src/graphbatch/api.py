"""
Main endpoint for users.
Exposes ``invoke_batch``, which queues requests on a ``Batcher`` and returns
the lazy stream of output records.
"""

import typing as t
from collections.abc import Iterable, Iterator, Sequence

from graphbatch.config import BatchSettings
from graphbatch.core import Batcher
from graphbatch.enums import OutputMode
from graphbatch.errors import ErrorSink
from graphbatch.transport import BatchTransport


def invoke_batch(
    transport: BatchTransport,
    *,
    requests: Iterable[t.Any] | None = None,
    templates: str | Sequence[str] | None = None,
    arguments: Iterable[t.Any] | None = None,
    properties: Sequence[str] | None = None,
    method: str = "GET",
    body: t.Any = None,
    headers: dict[str, str] | None = None,
    timeout_seconds: float | None = None,
    output_mode: OutputMode | str | None = None,
    paging: bool | None = None,
    settings: BatchSettings | None = None,
    error_sink: ErrorSink | None = None,
) -> Iterator[t.Any]:
    """
    Send many requests through the ``$batch`` endpoint.<br>
    Requests are sent 20 at a time; throttled ones are retried after their
    ``Retry-After`` window and paged results are followed.

    Parameters
    ----------
    transport : BatchTransport
        Authenticated transport, e.g. ``HttpxBatchTransport.with_token(token=...)``.
    requests : Iterable[typing.Any] | None, optional
        Url strings or structured requests (``url``, ``method``, ``body``,
        ``headers``, ``id``, ``dependsOn``).
    templates : str | Sequence[str] | None, optional
        Url templates expanded over ``arguments``, e.g. ``/users/{0}/manager``.
    arguments : Iterable[typing.Any] | None, optional
        Values the templates are expanded over.
    properties : Sequence[str] | None, optional
        Argument keys or attributes substituted into the templates, in order.
    method : str, optional
        Method of requests that do not specify one.
    body : typing.Any, optional
        Body of requests that do not specify one.
    headers : dict[str, str] | None, optional
        Headers added to every request.
    timeout_seconds : float | None, optional
        How long throttled requests keep being retried. ``0`` disables retries.
    output_mode : OutputMode | str | None, optional
        ``plain`` (default) yields response payloads, ``raw`` yields response
        envelopes, ``correlated`` yields one ``CorrelatedResult`` per input.
    paging : bool | None, optional
        If ``False``, only the first page of each result is returned.
    settings : BatchSettings | None, optional
        Base settings the explicit arguments override.
    error_sink : ErrorSink | None, optional
        Receiver of failures.

    Returns
    -------
    Iterator[typing.Any]
        Lazy, non-restartable stream of output records.

    Raises
    ------
    ValueError
        If neither ``requests`` nor ``templates`` with ``arguments`` are given.
    """
    if requests is None and (templates is None or arguments is None):
        raise ValueError("Provide either requests, or templates together with arguments")

    overrides = {
        "timeout_seconds": timeout_seconds,
        "output_mode": output_mode,
        "paging": paging,
    }
    base = settings or BatchSettings()
    settings = BatchSettings.model_validate(
        {
            **base.model_dump(),
            **{key: value for key, value in overrides.items() if value is not None},
        }
    )

    batcher = Batcher(
        transport=transport,
        settings=settings,
        error_sink=error_sink,
        method=method,
        body=body,
        headers=headers,
    )
    if requests is not None:
        batcher.add_requests(requests)
    if templates is not None and arguments is not None:
        batcher.add_templates(templates, arguments, properties)
    return batcher.run()
