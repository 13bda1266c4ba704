"""JSONL-backed catalog: the search backend, record store and field catalog
the API serves.

Layout of a catalog directory:

- ``records.jsonl``: one record per line:
  ``{"identifier", "kind", "title", "fields": {name: [items]}}``
- ``attachments.jsonl``: one attachment per line:
  ``{"identifier", "title", "status", "description", "location", "hash"}``
- ``fields.json``: ``{category: [field spec, ...]}``

Searching streams ``records.jsonl`` line by line. The record store keeps an
identifier -> byte offset index and parses a single line per lookup, so no
component ever holds the whole catalog in memory. Lines that are not a UTF-8
JSON object are skipped; a catalog file that cannot be read fails the search
with ``SearchBackendError``.
"""

from __future__ import annotations

import json
import logging
from itertools import islice
from pathlib import Path
from typing import Any, Iterator

from pydantic import ValidationError

from catalog_export.pipeline.records import AttachmentRecord, FieldSpec, RawHit, ResolvedRecord
from catalog_export.store.protocols import SearchBackendError
from catalog_export.telemetry.errors import ErrorCode, emit_structured_error

logger = logging.getLogger(__name__)


def _parse_line(raw: bytes) -> dict[str, Any] | None:
    """The JSON object on one line, or None when the line does not hold one."""
    line = raw.strip()
    if not line:
        return None
    try:
        document = json.loads(line.decode("utf-8"))
    except ValueError:
        # UnicodeDecodeError and JSONDecodeError
        return None
    return document if isinstance(document, dict) else None


def _iter_documents(path: Path) -> Iterator[dict[str, Any]]:
    try:
        with open(path, "rb") as f:
            for raw in f:
                document = _parse_line(raw)
                if document is None:
                    logger.debug("Skipping unreadable line in %s", path)
                    continue
                yield document
    except OSError as exc:
        raise SearchBackendError(f"Catalog unreadable: {path}: {exc}") from exc


def _item_strings(items: Any) -> list[str]:
    values: list[str] = []
    if not isinstance(items, list):
        return values
    for item in items:
        if not isinstance(item, dict):
            continue
        for key in ("value", "label", "target_id"):
            if item.get(key) is not None:
                values.append(str(item[key]))
    return values


def _field_strings(document: dict[str, Any], name: str) -> list[str]:
    if name in ("title", "kind", "identifier"):
        value = document.get(name)
        return [] if value is None else [str(value)]
    fields = document.get("fields") or {}
    return _item_strings(fields.get(name)) if isinstance(fields, dict) else []


def _document_text(document: dict[str, Any]) -> str:
    parts = [str(document.get("title", ""))]
    fields = document.get("fields") or {}
    if isinstance(fields, dict):
        for items in fields.values():
            parts.extend(_item_strings(items))
    return " ".join(parts).lower()


class JsonlSearchBackend:
    """Substring search over ``records.jsonl``.

    Filters match when any stored value, label or target id of the named field
    equals the filter value. A sorted search collects (sort key, hit) pairs
    before yielding; unsorted searches stream in file order.
    """

    def __init__(self, records_path: Path) -> None:
        self._records_path = records_path

    def search(
        self,
        query: str,
        filters: dict[str, str],
        sort: tuple[str, str] | None,
        row_count: int,
        offset: int = 0,
    ) -> Iterator[RawHit]:
        if not self._records_path.is_file():
            raise SearchBackendError(f"Catalog not found: {self._records_path}")
        matches = self._matching(query.strip().lower(), filters, sort[0] if sort else None)
        if sort is None:
            hits = (hit for _, hit in matches)
        else:
            keyed = list(matches)
            keyed.sort(
                key=lambda pair: (pair[0] is None, (pair[0] or "").lower()),
                reverse=sort[1] == "desc",
            )
            hits = (hit for _, hit in keyed)
        return islice(hits, offset, offset + row_count)

    def _matching(
        self, needle: str, filters: dict[str, str], sort_field: str | None
    ) -> Iterator[tuple[str | None, RawHit]]:
        for document in _iter_documents(self._records_path):
            if needle and needle not in _document_text(document):
                continue
            if not all(value in _field_strings(document, name) for name, value in filters.items()):
                continue
            identifier = document.get("identifier")
            sort_values = _field_strings(document, sort_field) if sort_field else []
            yield sort_values[0] if sort_values else None, RawHit(
                kind=str(document.get("kind", "")),
                identifier=None if identifier is None else str(identifier),
                score=1.0,
                payload={"title": document.get("title", "")},
            )


class _OffsetIndex:
    """identifier -> byte offset of its line, built on first lookup."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._offsets: dict[str, int] | None = None

    def read(self, identifier: str) -> dict[str, Any] | None:
        offsets = self._build()
        offset = offsets.get(identifier)
        if offset is None:
            return None
        with open(self._path, "rb") as f:
            f.seek(offset)
            line = f.readline()
        return _parse_line(line)

    def _build(self) -> dict[str, int]:
        if self._offsets is not None:
            return self._offsets
        self._offsets = {}
        try:
            with open(self._path, "rb") as f:
                offset = f.tell()
                for line in iter(f.readline, b""):
                    document = _parse_line(line)
                    if document is not None and document.get("identifier") is not None:
                        self._offsets[str(document["identifier"])] = offset
                    offset = f.tell()
        except OSError as exc:
            emit_structured_error(
                logger,
                code=ErrorCode.CATALOG_READ_FAILED,
                message=str(exc),
                suppressed=True,
                details={"path": str(self._path)},
            )
        return self._offsets


class JsonlRecordStore:
    """Resolves records and attachments by identifier, one line per lookup."""

    def __init__(self, records_path: Path, attachments_path: Path) -> None:
        self._records = _OffsetIndex(records_path)
        self._attachments = _OffsetIndex(attachments_path)

    def load(self, identifier: str) -> ResolvedRecord | None:
        document = self._records.read(identifier)
        if document is None:
            return None
        try:
            return ResolvedRecord.model_validate({**document, "identifier": identifier})
        except ValidationError:
            return None

    def load_attachment(self, identifier: str) -> AttachmentRecord | None:
        document = self._attachments.read(identifier)
        if document is None:
            return None
        try:
            return AttachmentRecord.model_validate({**document, "identifier": identifier})
        except ValidationError:
            return None


class JsonlFieldCatalog:
    """Field specs per category from ``fields.json``."""

    def __init__(self, fields_path: Path) -> None:
        self._fields_path = fields_path

    def fields_for(
        self, category: str, sample: ResolvedRecord, authenticated: bool
    ) -> list[FieldSpec]:
        try:
            catalog = json.loads(self._fields_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            emit_structured_error(
                logger,
                code=ErrorCode.CATALOG_READ_FAILED,
                message=str(exc),
                suppressed=True,
                details={"path": str(self._fields_path)},
            )
            return []
        specs = [FieldSpec.model_validate(entry) for entry in catalog.get(category, [])]
        return [spec for spec in specs if authenticated or not spec.restricted]
