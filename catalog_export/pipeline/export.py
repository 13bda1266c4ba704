"""Export pipeline: a full search result set streamed as CSV.

The pipeline is a finite state machine:

    INIT -> BUDGET_ACQUIRED -> STREAMING -> FINALIZED

Every exit path, including an exception or the consumer closing the stream
mid-way, ends in FINALIZED with the resource budget released. Bytes already
handed to the consumer stay sent; an interrupted export is a truncated file.

Memory contract: at most one resolved record is alive at any time. Each
record is formatted, written and dropped before the resolver is advanced.
"""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import closing
from typing import Any, Iterator

from catalog_export.budget.scope import ProcessLimits, ResourceBudgetScope, RlimitProcessLimits
from catalog_export.config.settings import ExportConfig
from catalog_export.pipeline.formatter import format_field
from catalog_export.pipeline.phases import VALID_TRANSITIONS, ExportPhase
from catalog_export.pipeline.records import (
    AttachmentRecord,
    ExportSummary,
    FieldSpec,
    FieldValue,
    RawHit,
    ResolvedRecord,
)
from catalog_export.pipeline.resolver import LazyRecordResolver
from catalog_export.pipeline.writer import (
    ATTACHMENT_COLUMNS,
    ChunkBuffer,
    CsvStreamWriter,
    OutputSink,
    attachment_column,
    full_path,
    header_columns,
)
from catalog_export.store.protocols import (
    FieldCatalog,
    RecordStore,
    SearchBackend,
    SearchBackendError,
    SearchParams,
)
from catalog_export.telemetry.errors import ErrorCode, emit_structured_error

logger = logging.getLogger(__name__)

CSV_MEDIA_TYPE = "text/csv; charset=utf-8"
ATTACHMENT_TAG = "file"

_ATTACHMENT_BLOCK_WIDTH = 1 + len(ATTACHMENT_COLUMNS)


class ExportPipelineError(Exception):
    """Raised on pipeline misuse: reuse or an invalid phase transition."""


class ExportPipeline:
    """Runs one export. Instances are single-use."""

    def __init__(
        self,
        search: SearchBackend,
        store: RecordStore,
        catalog: FieldCatalog,
        config: ExportConfig,
        limits: ProcessLimits | None = None,
        authenticated: bool = False,
    ) -> None:
        self._search_backend = search
        self._store = store
        self._catalog = catalog
        self._config = config
        self._limits = limits or RlimitProcessLimits()
        self._authenticated = authenticated
        self._export_id = f"export_{uuid.uuid4().hex[:12]}"
        self._phase = ExportPhase.INIT
        self._summary = ExportSummary(export_id=self._export_id)
        self._attachment_index: int | None = None

    @property
    def export_id(self) -> str:
        return self._export_id

    @property
    def phase(self) -> ExportPhase:
        return self._phase

    @property
    def summary(self) -> ExportSummary:
        return self._summary

    @property
    def content_disposition(self) -> str:
        return f'attachment; filename="{self._config.download_name}"'

    # --- Entry points ---

    def iter_csv(self, params: SearchParams) -> Iterator[bytes]:
        """Yield the CSV body in chunks: the header, then one chunk per record."""
        buffer = ChunkBuffer()
        with closing(self._stream(params, CsvStreamWriter(buffer))) as steps:
            for _ in steps:
                chunk = buffer.drain()
                if chunk:
                    yield chunk

    def export_to(self, params: SearchParams, sink: OutputSink) -> ExportSummary:
        """Write the whole CSV body to ``sink``."""
        for _ in self._stream(params, CsvStreamWriter(sink)):
            pass
        return self._summary

    # --- Phase Transition ---

    def _transition(self, to_phase: ExportPhase) -> None:
        if to_phase not in VALID_TRANSITIONS.get(self._phase, set()):
            raise ExportPipelineError(
                f"Invalid transition: {self._phase.value} -> {to_phase.value}"
            )
        logger.debug(
            "Export %s: %s -> %s", self._export_id, self._phase.value, to_phase.value
        )
        self._phase = to_phase
        self._summary.phase = to_phase.value

    # --- Main loop ---

    def _stream(self, params: SearchParams, writer: CsvStreamWriter) -> Iterator[None]:
        if self._phase is not ExportPhase.INIT:
            raise ExportPipelineError(f"Export {self._export_id} has already run")

        started = time.monotonic()
        scope: ResourceBudgetScope | None = None
        resolver = LazyRecordResolver(self._store, self._config.category)
        try:
            scope = ResourceBudgetScope.enter(
                self._limits,
                self._config.memory_ceiling_bytes,
                self._config.time_ceiling,
            )
            self._transition(ExportPhase.BUDGET_ACQUIRED)

            records = resolver.resolve(self._search(params))
            self._transition(ExportPhase.STREAMING)

            first = next(records, None)
            if first is None:
                writer.write_header(self._header([]))
                yield
            else:
                identifier, record = first
                del first
                specs = self._catalog.fields_for(
                    self._config.category, record, self._authenticated
                )
                self._attachment_index = attachment_column(
                    specs, self._config.attachments_field, self._authenticated
                )
                writer.write_header(self._header(specs))
                yield
                self._write_record(writer, specs, identifier, record)
                del record
                yield
                for identifier, record in records:
                    self._write_record(writer, specs, identifier, record)
                    del record
                    yield
            writer.flush()
        except GeneratorExit:
            self._abort("stream closed before the export completed")
            raise
        except Exception as exc:
            self._abort(str(exc))
            raise
        finally:
            if scope is not None:
                scope.release()
            self._finalize(resolver, started)

    def _search(self, params: SearchParams) -> Iterator[RawHit]:
        """Every hit of the result set. A backend failure ends the hits, not the export."""
        # The export ignores params.page: it always covers every page.
        sort = (params.sort, params.order) if params.sort else None
        try:
            yield from self._search_backend.search(
                params.query, params.filters, sort, self._config.max_row_count
            )
        except SearchBackendError as exc:
            self._summary.search_failed = True
            emit_structured_error(
                logger,
                code=ErrorCode.SEARCH_BACKEND_FAILED,
                message=str(exc),
                suppressed=True,
                export_id=self._export_id,
                phase=self._phase.value,
                details={"query": params.query, "filters": params.filters},
            )

    # --- Rows ---

    def _header(self, specs: list[FieldSpec]) -> list[str]:
        return header_columns(specs, self._config.attachments_field, self._authenticated)

    def _write_record(
        self,
        writer: CsvStreamWriter,
        specs: list[FieldSpec],
        identifier: str,
        record: ResolvedRecord,
    ) -> None:
        cells = self._primary_cells(specs, identifier, record)
        writer.write_row(cells)
        self._summary.records_written += 1

        if self._attachment_index is None:
            return
        for reference in record.fields.get(self._config.attachments_field) or []:
            attachment = self._load_attachment(reference)
            if attachment is None:
                continue
            writer.write_row(self._attachment_cells(cells, attachment))
            self._summary.attachment_rows_written += 1

    def _primary_cells(
        self, specs: list[FieldSpec], identifier: str, record: ResolvedRecord
    ) -> list[str]:
        cells = [identifier] if self._authenticated else []
        cells.append(record.title)
        for spec in specs:
            if spec.name == self._config.attachments_field:
                cells.extend([""] * _ATTACHMENT_BLOCK_WIDTH)
            else:
                cells.append(format_field(FieldValue.extract(record, spec), spec))
        return cells

    def _attachment_cells(self, primary: list[str], attachment: AttachmentRecord) -> list[str]:
        start = self._attachment_index
        return [
            *primary[:start],
            ATTACHMENT_TAG,
            attachment.title,
            attachment.status,
            attachment.description,
            attachment.location,
            full_path(attachment.location, attachment.title),
            attachment.hash,
            *primary[start + _ATTACHMENT_BLOCK_WIDTH :],
        ]

    def _load_attachment(self, reference: Any) -> AttachmentRecord | None:
        if not isinstance(reference, dict):
            return None
        target_id = reference.get("target_id")
        if target_id is None or target_id == "":
            return None
        return self._store.load_attachment(str(target_id))

    # --- Termination ---

    def _abort(self, reason: str) -> None:
        self._summary.aborted = True
        emit_structured_error(
            logger,
            code=ErrorCode.EXPORT_ABORTED,
            message=reason,
            suppressed=False,
            export_id=self._export_id,
            phase=self._phase.value,
            details={"records_written": self._summary.records_written},
        )

    def _finalize(self, resolver: LazyRecordResolver, started: float) -> None:
        self._summary.hits_seen = resolver.hits_seen
        self._summary.skipped_kind = resolver.skipped_kind
        self._summary.skipped_unresolved = resolver.skipped_unresolved
        self._summary.duration_s = round(time.monotonic() - started, 2)
        self._transition(ExportPhase.FINALIZED)
        logger.info(
            "Export %s finished: %d records, %d attachment rows",
            self._export_id,
            self._summary.records_written,
            self._summary.attachment_rows_written,
            extra={"summary": self._summary.model_dump()},
        )
