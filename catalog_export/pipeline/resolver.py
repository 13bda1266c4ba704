"""Lazy record resolution: raw hits in, resolved records out, one at a time."""

from __future__ import annotations

from typing import Iterable, Iterator

from catalog_export.pipeline.records import RawHit, ResolvedRecord
from catalog_export.store.protocols import RecordStore


class ResolverConsumedError(Exception):
    """Raised when a resolver is asked for a second pass."""


class LazyRecordResolver:
    """Turns a hit sequence into a single-pass sequence of resolved records.

    Contract: exactly one record is resolved per step, and the resolver holds
    no reference to a record once the consumer has asked for the next one.
    Hits whose kind is not ``category``, hits without an identifier and
    identifiers the store cannot resolve are skipped and only counted.
    """

    def __init__(self, store: RecordStore, category: str) -> None:
        self._store = store
        self._category = category
        self._consumed = False
        self.hits_seen = 0
        self.skipped_kind = 0
        self.skipped_unresolved = 0

    def resolve(self, hits: Iterable[RawHit]) -> Iterator[tuple[str, ResolvedRecord]]:
        if self._consumed:
            raise ResolverConsumedError("LazyRecordResolver supports a single pass")
        self._consumed = True
        return self._resolve(iter(hits))

    def _resolve(self, hits: Iterator[RawHit]) -> Iterator[tuple[str, ResolvedRecord]]:
        for hit in hits:
            self.hits_seen += 1
            if hit.kind != self._category:
                self.skipped_kind += 1
                continue
            identifier = hit.identifier
            if not identifier:
                self.skipped_unresolved += 1
                continue
            record = self._store.load(identifier)
            if record is None:
                self.skipped_unresolved += 1
                continue
            yield identifier, record
            del record
