import json
import typing as t
from pathlib import Path


def read_jsonl_file(file_path: str | Path) -> list[t.Any]:
    """Read a JSONL file and return one decoded value per non-empty line

    Args:
        file_path (str | Path): The path to the file to read
    """
    with open(file_path, "r") as f:
        return [json.loads(line) for line in f if line.strip()]


def write_jsonl_line(stream: t.TextIO, value: t.Any) -> None:
    """Write one JSON value followed by a newline

    Args:
        stream (TextIO): Destination stream
        value (Any): JSON-serializable value
    """
    stream.write(json.dumps(value, default=str) + "\n")
