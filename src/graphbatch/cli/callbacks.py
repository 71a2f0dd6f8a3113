import json
from pathlib import Path

import typer

from graphbatch.enums import OutputMode


def load_file_callback(ctx: typer.Context, value: Path | None):
    if ctx.resilient_parsing or value is None:
        return value
    if not value.exists():
        raise typer.BadParameter(
            message=f"file at path: '{value.as_posix()}' does not exist",
        )
    return value


def json_body_callback(ctx: typer.Context, value: str | None):
    if ctx.resilient_parsing or value is None:
        return value
    try:
        return json.loads(value)
    except json.JSONDecodeError as error:
        raise typer.BadParameter(
            message=f"body is not valid JSON: {error.msg}",
            param_hint="--body",
        ) from error


def parse_headers(values: list[str] | None) -> dict[str, str]:
    headers = {}
    for header in values or []:
        name, sep, header_value = header.partition(":")
        if not sep or not name.strip():
            raise typer.BadParameter(
                message=f"'{header}' is not a valid header, expected 'Name: value'",
                param_hint="--header, -H",
            )
        headers[name.strip()] = header_value.strip()
    return headers


def headers_callback(ctx: typer.Context, value: list[str] | None):
    if ctx.resilient_parsing or not value:
        return value
    parse_headers(value)
    return value


def output_mode_callback(ctx: typer.Context, value: str):
    if ctx.resilient_parsing:
        return
    if value not in OutputMode.__members__.values():
        raise typer.BadParameter(
            message=f"'{value}' is not a valid output mode, supported modes are: {', '.join(OutputMode.__members__.values())}",
            param_hint="--output-mode, -o",
        )
    return OutputMode(value)
