"""Library for formatting output."""

import sys
from typing import Any, Generator, TextIO

import yaml

PADDING = 4


def column_format_string(rows: list[list[str]]) -> str:
    """Produce a format string based on max width of columns."""
    widths = [0] * len(rows[0])
    for row in rows:
        for i, value in enumerate(row):
            widths[i] = max(widths[i], len(value))
    return "".join([f"{{:{w + PADDING}}}" for w in widths])


def format_columns(
    headers: list[str], rows: list[list[str]]
) -> Generator[str, None, None]:
    """Yield the specified output rows in a column format."""
    data = [headers] + rows
    format_string = column_format_string(data)
    for row in data:
        yield format_string.format(*row).rstrip()


class PrintFormatter:
    """A formatter that prints human readable console output."""

    def __init__(self, keys: list[str]) -> None:
        """Initialize the PrintFormatter with the keys to print."""
        self._keys = keys

    def format(self, data: list[dict[str, Any]]) -> Generator[str, None, None]:
        """Format the data objects."""
        if not data:
            return
        rows = [[str(row[key]) for key in self._keys] for row in data]
        cols = [col.upper() for col in self._keys]
        yield from format_columns(cols, rows)

    def print(self, data: list[dict[str, Any]], file: TextIO = sys.stdout) -> None:
        """Output the data objects."""
        for result in self.format(data):
            print(result, file=file)


class YamlListFormatter:
    """A formatter that prints yaml output for a list."""

    def print(self, data: list[dict[str, Any]], file: TextIO = sys.stdout) -> None:
        """Output the data objects."""
        print(yaml.dump(data, sort_keys=False, explicit_start=True), end="", file=file)
