"""CSV stream writer: header and rows straight to an append-only sink.

Rows are rendered one at a time with ``csv.writer`` over a pass-through line
object, so nothing but the current line is ever held. Quoting is standard
minimal CSV: cells containing a comma, a quote or a line break are quoted and
inner quotes doubled.
"""

from __future__ import annotations

import csv
import re
from typing import Any, Iterable, Protocol

from catalog_export.pipeline.records import FieldSpec

IDENTIFIER_COLUMN = "ID"
TITLE_COLUMN = "Title"
ATTACHMENT_COLUMNS = ("Hash", "Filename", "Status", "Description", "Location", "Full Path")

_REPEATED_SLASHES = re.compile(r"/{2,}")


class OutputSink(Protocol):
    def write(self, data: bytes) -> Any: ...

    def flush(self) -> None: ...


class ChunkBuffer:
    """Sink holding only what was written since the last ``drain()``."""

    def __init__(self) -> None:
        self._chunks: list[bytes] = []

    def write(self, data: bytes) -> int:
        self._chunks.append(data)
        return len(data)

    def flush(self) -> None:
        return None

    def drain(self) -> bytes:
        data = b"".join(self._chunks)
        self._chunks.clear()
        return data


class _Line:
    """File-like object whose ``write`` hands the rendered line back."""

    def write(self, value: str) -> str:
        return value


class CsvStreamWriter:
    def __init__(self, sink: OutputSink, encoding: str = "utf-8") -> None:
        self._sink = sink
        self._encoding = encoding
        self._csv = csv.writer(_Line(), lineterminator="\n", quoting=csv.QUOTE_MINIMAL)
        self.header_written = False
        self.rows_written = 0

    def write_header(self, columns: Iterable[str]) -> None:
        self._emit(columns)
        self.header_written = True

    def write_row(self, cells: Iterable[str]) -> None:
        self._emit(cells)
        self.rows_written += 1

    def flush(self) -> None:
        self._sink.flush()

    def _emit(self, cells: Iterable[str]) -> None:
        line = self._csv.writerow(cells)
        self._sink.write(line.encode(self._encoding))


def header_columns(
    specs: Iterable[FieldSpec], attachments_field: str, include_identifier: bool
) -> list[str]:
    """Column labels in row order.

    The attachments field keeps its own label, under which attachment rows
    carry the ``file`` tag, followed by the fixed attachment columns with
    ``Hash`` first. Attachment rows still end with the hash value, so the
    attachment values sit one column left of their labels.
    """
    columns = [IDENTIFIER_COLUMN] if include_identifier else []
    columns.append(TITLE_COLUMN)
    for spec in specs:
        columns.append(spec.label)
        if spec.name == attachments_field:
            columns.extend(ATTACHMENT_COLUMNS)
    return columns


def full_path(location: str, title: str) -> str:
    """Join an attachment location and title with exactly one '/' between parts."""
    if not location:
        return title
    if not title:
        return _REPEATED_SLASHES.sub("/", location)
    return _REPEATED_SLASHES.sub("/", f"{location}/{title}")


def attachment_column(
    specs: Iterable[FieldSpec], attachments_field: str, include_identifier: bool
) -> int | None:
    """Index of the attachments field's own column, or None if it is not exported."""
    index = 2 if include_identifier else 1
    for spec in specs:
        if spec.name == attachments_field:
            return index
        index += 1
    return None
