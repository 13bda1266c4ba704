"""In-memory search backend, record store and field catalog."""

from __future__ import annotations

from itertools import islice
from typing import Any, Iterable, Iterator

from catalog_export.pipeline.records import AttachmentRecord, FieldSpec, RawHit, ResolvedRecord
from catalog_export.store.protocols import KIND_FILTER


class InMemorySearchBackend:
    """Searches hits by their payload.

    The query is a case-insensitive substring match on ``payload["title"]``;
    filters are equality matches on payload keys, except ``kind`` which matches
    the hit's kind tag. Without a sort, hits come back by descending score,
    ties in insertion order.
    """

    def __init__(self, hits: Iterable[RawHit] = ()) -> None:
        self._hits = list(hits)

    def add(self, hit: RawHit) -> None:
        self._hits.append(hit)

    def search(
        self,
        query: str,
        filters: dict[str, str],
        sort: tuple[str, str] | None,
        row_count: int,
        offset: int = 0,
    ) -> Iterator[RawHit]:
        needle = query.strip().lower()
        matches = [
            hit
            for hit in self._hits
            if needle in str(hit.payload.get("title", "")).lower()
            and all(_filter_value(hit, name) == value for name, value in filters.items())
        ]
        if sort is None:
            matches.sort(key=lambda hit: hit.score, reverse=True)
        else:
            name, order = sort
            matches.sort(key=lambda hit: _sort_key(hit.payload.get(name)), reverse=order == "desc")
        return islice(iter(matches), offset, offset + row_count)


def _filter_value(hit: RawHit, name: str) -> str:
    if name == KIND_FILTER:
        return hit.kind
    return str(hit.payload.get(name, ""))


def _sort_key(value: Any) -> tuple[int, str]:
    # Missing values sort last in ascending order.
    return (1, "") if value is None else (0, str(value).lower())


class InMemoryRecordStore:
    def __init__(
        self,
        records: Iterable[ResolvedRecord] = (),
        attachments: Iterable[AttachmentRecord] = (),
    ) -> None:
        self._records = {record.identifier: record for record in records}
        self._attachments = {attachment.identifier: attachment for attachment in attachments}

    def load(self, identifier: str) -> ResolvedRecord | None:
        return self._records.get(identifier)

    def load_attachment(self, identifier: str) -> AttachmentRecord | None:
        return self._attachments.get(identifier)

    def remove(self, identifier: str) -> None:
        self._records.pop(identifier, None)


class StaticFieldCatalog:
    """Fixed field lists per category; restricted fields need authentication."""

    def __init__(self, fields: dict[str, list[FieldSpec]]) -> None:
        self._fields = fields

    def fields_for(
        self, category: str, sample: ResolvedRecord, authenticated: bool
    ) -> list[FieldSpec]:
        return [
            spec
            for spec in self._fields.get(category, [])
            if authenticated or not spec.restricted
        ]
