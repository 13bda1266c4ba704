"""Shared fixtures: fake process limits and a small catalog."""

from __future__ import annotations

import pytest

from catalog_export.config.settings import ExportConfig
from catalog_export.pipeline.records import AttachmentRecord, FieldSpec, RawHit, ResolvedRecord
from catalog_export.store.memory import (
    InMemoryRecordStore,
    InMemorySearchBackend,
    StaticFieldCatalog,
)

MB = 1024 * 1024
CATEGORY = "catalog_entry"


class FakeProcessLimits:
    """In-memory ProcessLimits; ``hard_memory`` caps what may be applied."""

    def __init__(
        self,
        memory: int | None = 256 * MB,
        time: int | None = 30,
        hard_memory: int | None = None,
    ) -> None:
        self.memory = memory
        self.time = time
        self.hard_memory = hard_memory
        self.history: list[tuple[str, int | None]] = []

    def memory_ceiling(self) -> int | None:
        return self.memory

    def set_memory_ceiling(self, value: int | None) -> None:
        if self.hard_memory is not None and (value is None or value > self.hard_memory):
            raise ValueError("not allowed to raise maximum limit")
        self.history.append(("memory", value))
        self.memory = value

    def time_ceiling(self) -> int | None:
        return self.time

    def set_time_ceiling(self, value: int | None) -> None:
        self.history.append(("time", value))
        self.time = value

    def snapshot(self) -> tuple[int | None, int | None]:
        return self.memory, self.time


FIELD_SPECS = [
    FieldSpec(name="field_tags", label="Tags", kind="taxonomy_term_reference"),
    FieldSpec(name="field_summary", label="Summary", kind="string"),
    FieldSpec(name="field_published", label="Published", kind="boolean"),
    FieldSpec(name="field_attachments", label="Attachments", kind="entity_reference"),
    FieldSpec(
        name="field_status",
        label="Status code",
        kind="list_string",
        allowed_values={"draft": "Draft", "live": "Live"},
    ),
    FieldSpec(name="field_notes", label="Internal notes", kind="text_long", restricted=True),
]


def make_record(identifier: str, title: str, **fields: list[dict]) -> ResolvedRecord:
    return ResolvedRecord(identifier=identifier, title=title, fields=fields)


def hit(
    identifier: str | None, title: str = "", kind: str = CATEGORY, score: float = 1.0
) -> RawHit:
    return RawHit(kind=kind, identifier=identifier, score=score, payload={"title": title})


@pytest.fixture
def limits() -> FakeProcessLimits:
    return FakeProcessLimits()


@pytest.fixture
def export_config() -> ExportConfig:
    return ExportConfig(
        category=CATEGORY,
        attachments_field="field_attachments",
        filename="search-results",
        memory_ceiling_mb=1024,
        time_ceiling_s=600,
    )


@pytest.fixture
def field_catalog() -> StaticFieldCatalog:
    return StaticFieldCatalog({CATEGORY: FIELD_SPECS})


@pytest.fixture
def record_store() -> InMemoryRecordStore:
    return InMemoryRecordStore(
        records=[
            make_record(
                "101",
                "Alpha report",
                field_tags=[
                    {"target_id": "7", "label": "Energy"},
                    {"target_id": "8", "label": "Water"},
                ],
                field_summary=[{"value": "First, and \"best\""}],
                field_published=[{"value": True}],
                field_attachments=[{"target_id": "a1"}, {"target_id": "a2"}],
                field_status=[{"value": "live"}],
                field_notes=[{"value": "internal only"}],
            ),
            make_record(
                "102",
                "Beta survey",
                field_summary=[{"value": "Second line\nwith a break"}],
                field_published=[{"value": 0}],
                field_status=[{"value": "draft"}],
            ),
        ],
        attachments=[
            AttachmentRecord(
                identifier="a1",
                title="data.csv",
                status="Published",
                description="Raw data",
                location="/files/alpha/",
                hash="abc123",
            ),
            AttachmentRecord(
                identifier="a2",
                title="notes.pdf",
                status="Draft",
                description="Field notes",
                location="files//alpha",
                hash="def456",
            ),
        ],
    )


@pytest.fixture
def search_backend() -> InMemorySearchBackend:
    return InMemorySearchBackend(
        [hit("101", "Alpha report", score=2.0), hit("102", "Beta survey", score=1.0)]
    )
