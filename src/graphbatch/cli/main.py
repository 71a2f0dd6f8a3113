import logging
import sys
import uuid
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.table import Table

from graphbatch.cli.callbacks import (
    headers_callback,
    json_body_callback,
    load_file_callback,
    output_mode_callback,
    parse_headers,
)
from graphbatch.cli.completions import complete_output_mode
from graphbatch.config import BatchSettings
from graphbatch.core import Batcher
from graphbatch.errors import LoggingErrorSink
from graphbatch.models import CorrelatedResult
from graphbatch.transport import HttpxBatchTransport
from graphbatch.utils.files import read_jsonl_file, write_jsonl_line
from graphbatch.utils.logging import logging_context, setup_logging

app = typer.Typer(no_args_is_help=True)


@app.callback()
def main():
    """Send many Microsoft Graph style requests through the $batch endpoint."""


def build_transport(*, token: str, settings: BatchSettings) -> HttpxBatchTransport:
    return HttpxBatchTransport.with_token(
        token=token,
        base_url=settings.base_url,
        batch_endpoint=settings.batch_endpoint,
        timeout=settings.http_timeout_seconds,
    )


def print_errors(sink: LoggingErrorSink):
    console = Console(stderr=True)
    table = Table(title="Failed requests")
    table.add_column("Code", no_wrap=True)
    table.add_column("Category")
    table.add_column("Request")
    table.add_column("Message")
    for error in sink.errors:
        request = error.context.get("url") or error.context.get("argument") or ""
        table.add_row(error.error_code, str(error.category), str(request), error.message)
    console.print(table)
    for warning in sink.warnings:
        console.print(f"[yellow]warning:[/yellow] {warning}")


def _to_json(record: Any) -> Any:
    if isinstance(record, CorrelatedResult):
        return record.model_dump()
    return record


@app.command(name="run")
def run_batch(
    url: Annotated[
        list[str] | None,
        typer.Option(
            "--url",
            "-u",
            help="Request url, or url template when --arguments-file is given. Repeatable.",
        ),
    ] = None,
    requests_file: Annotated[
        Path | None,
        typer.Option(
            help="JSONL file of requests: url strings or objects with url, method, body, headers, id, dependsOn",
            callback=load_file_callback,
        ),
    ] = None,
    arguments_file: Annotated[
        Path | None,
        typer.Option(
            help="JSONL file of arguments the --url templates are expanded over",
            callback=load_file_callback,
        ),
    ] = None,
    properties: Annotated[
        list[str] | None,
        typer.Option(
            "--property",
            "-p",
            help="Argument property substituted positionally into the templates. Repeatable.",
        ),
    ] = None,
    method: Annotated[str, typer.Option(help="Method of requests that do not set one")] = "GET",
    body: Annotated[
        str | None,
        typer.Option(help="JSON body of requests that do not set one", callback=json_body_callback),
    ] = None,
    headers: Annotated[
        list[str] | None,
        typer.Option(
            "--header",
            "-H",
            help="'Name: value' header added to every request. Repeatable.",
            callback=headers_callback,
        ),
    ] = None,
    timeout: Annotated[
        float | None,
        typer.Option(help="Seconds during which throttled requests are retried, 0 disables retries"),
    ] = None,
    output_mode: Annotated[
        str,
        typer.Option(
            "-o",
            "--output-mode",
            help="plain, raw or correlated",
            callback=output_mode_callback,
            autocompletion=complete_output_mode,
        ),
    ] = "plain",
    paging: Annotated[
        bool,
        typer.Option("--paging/--no-paging", help="Follow next-page links"),
    ] = True,
    token: Annotated[
        str,
        typer.Option(envvar="GRAPHBATCH_TOKEN", help="Bearer token", show_default=False),
    ] = "",
    base_url: Annotated[str | None, typer.Option(help="Service root url")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")] = False,
):
    """Run a batch of requests and print one JSON record per line"""
    setup_logging(level=logging.DEBUG if verbose else logging.WARNING)
    if not url and requests_file is None:
        raise typer.BadParameter("provide --url or --requests-file")
    if arguments_file is not None and not url:
        raise typer.BadParameter("--arguments-file requires at least one --url template")

    settings = BatchSettings.from_env(
        timeout_seconds=timeout,
        output_mode=output_mode,
        paging=paging,
        base_url=base_url,
    )
    sink = LoggingErrorSink()
    transport = build_transport(token=token, settings=settings)
    with transport, logging_context(run_id=uuid.uuid4().hex[:8]):
        batcher = Batcher(
            transport=transport,
            settings=settings,
            error_sink=sink,
            method=method,
            body=body,
            headers=parse_headers(headers) or None,
        )
        if arguments_file is not None:
            batcher.add_templates(url or [], read_jsonl_file(arguments_file), properties)
        else:
            if requests_file is not None:
                batcher.add_requests(read_jsonl_file(requests_file))
            batcher.add_requests(url or [])

        for record in batcher.run():
            write_jsonl_line(sys.stdout, _to_json(record))

    if sink.errors or sink.warnings:
        print_errors(sink)
    if sink.errors:
        raise typer.Exit(1)
