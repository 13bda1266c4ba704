"""Validation helpers for API request parameters."""

from __future__ import annotations

from fastapi import HTTPException

from catalog_export.store import protocols
from catalog_export.store.protocols import InvalidSearchParam


def parse_filters(raw_filters: list[str]) -> dict[str, str]:
    """Parse repeated ``filter=name:value`` query parameters (400 if malformed)."""
    try:
        return protocols.parse_filters(raw_filters)
    except InvalidSearchParam as exc:
        raise HTTPException(status_code=400, detail=str(exc))


def validate_sort_field(sort: str | None) -> str | None:
    try:
        return protocols.parse_sort_field(sort)
    except InvalidSearchParam as exc:
        raise HTTPException(status_code=400, detail=str(exc))
