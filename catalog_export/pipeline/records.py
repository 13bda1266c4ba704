"""Export data models: raw hits, resolved records, field specs and values."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class RawHit(BaseModel):
    """One search result before resolution."""

    kind: str
    identifier: str | None = None
    score: float = 0.0
    payload: dict[str, Any] = Field(default_factory=dict)


class ResolvedRecord(BaseModel):
    """A record loaded from the store.

    ``fields`` maps field name to the stored items for that field, in stored
    order. Reference fields hold items with a ``target_id`` and usually a
    ``label``; scalar fields hold items with a ``value``.
    """

    identifier: str
    title: str = ""
    fields: dict[str, list[Any]] = Field(default_factory=dict)


class AttachmentRecord(BaseModel):
    """A secondary record referenced from the attachments field."""

    identifier: str
    title: str = ""
    status: str = ""
    description: str = ""
    location: str = ""
    hash: str = ""


class FieldKind(str, Enum):
    """Field kinds the formatter knows how to render."""

    TAXONOMY_REFERENCE = "taxonomy_term_reference"
    TEXT = "string"
    LONG_TEXT = "text_long"
    DATETIME = "datetime"
    BOOLEAN = "boolean"
    ENTITY_REFERENCE = "entity_reference"
    ENUMERATED_TEXT = "list_string"


class FieldSpec(BaseModel):
    """Schema entry for one exportable field.

    ``kind`` stays a plain string: schemas may carry kinds the formatter does
    not support, and those must reach the formatter to become sentinel cells.
    """

    name: str
    label: str
    kind: str
    date_format: str = "%Y-%m-%d"
    allowed_values: dict[str, str] = Field(default_factory=dict)
    restricted: bool = False

    model_config = {"frozen": True}


class FieldValue(BaseModel):
    """The stored items of one field on one record; empty when absent."""

    items: list[Any] = Field(default_factory=list)

    @classmethod
    def extract(cls, record: ResolvedRecord, spec: FieldSpec) -> FieldValue:
        return cls(items=record.fields.get(spec.name) or [])

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def first(self) -> Any:
        return self.items[0]


class ExportSummary(BaseModel):
    """Counters for one export, logged when it finishes."""

    export_id: str
    phase: str = "INIT"
    hits_seen: int = 0
    skipped_kind: int = 0
    skipped_unresolved: int = 0
    records_written: int = 0
    attachment_rows_written: int = 0
    search_failed: bool = False
    aborted: bool = False
    duration_s: float = 0
