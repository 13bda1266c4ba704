"""Interfaces of the search/record subsystem the export consumes."""

from __future__ import annotations

import re
from typing import Iterable, Literal, Protocol

from pydantic import BaseModel, Field

from catalog_export.pipeline.records import AttachmentRecord, FieldSpec, RawHit, ResolvedRecord


class SearchBackendError(Exception):
    """Raised when a search query cannot be executed."""


class InvalidSearchParam(ValueError):
    """Raised for a malformed filter or sort field."""


# Filters on this name match a hit's kind tag rather than its payload.
KIND_FILTER = "kind"

_FIELD_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def parse_filters(raw_filters: Iterable[str]) -> dict[str, str]:
    """Parse repeated ``name:value`` filter terms.

    A later filter on the same field replaces an earlier one.
    """
    filters: dict[str, str] = {}
    for raw in raw_filters:
        name, sep, value = raw.partition(":")
        name = name.strip()
        if not sep or not _FIELD_NAME.match(name):
            raise InvalidSearchParam(f"Invalid filter '{raw}'. Expected 'field:value'.")
        filters[name] = value.strip()
    return filters


def parse_sort_field(sort: str | None) -> str | None:
    if sort is None or not sort.strip():
        return None
    sort = sort.strip()
    if not _FIELD_NAME.match(sort):
        raise InvalidSearchParam(f"Invalid sort field '{sort}'.")
    return sort


class SearchParams(BaseModel):
    """Query parameters shared by the paginated search view and the export."""

    query: str = ""
    filters: dict[str, str] = Field(default_factory=dict)
    sort: str | None = None
    order: Literal["asc", "desc"] = "asc"
    page: int = Field(default=1, ge=1)


class SearchBackend(Protocol):
    def search(
        self,
        query: str,
        filters: dict[str, str],
        sort: tuple[str, str] | None,
        row_count: int,
        offset: int = 0,
    ) -> Iterable[RawHit]:
        """Return hits in ranking order. Raises SearchBackendError on failure."""
        ...


class RecordStore(Protocol):
    def load(self, identifier: str) -> ResolvedRecord | None:
        """Return the full record, or None if it is gone or inaccessible."""
        ...

    def load_attachment(self, identifier: str) -> AttachmentRecord | None:
        ...


class FieldCatalog(Protocol):
    def fields_for(
        self, category: str, sample: ResolvedRecord, authenticated: bool
    ) -> list[FieldSpec]:
        """Ordered exportable fields of ``category`` visible to the caller."""
        ...
