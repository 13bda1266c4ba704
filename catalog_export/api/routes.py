"""REST API routes for catalog search and export.

Provides endpoints for:
- The paginated search view
- Exporting every result of the same search as a streamed CSV download
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from catalog_export.api.auth import caller_is_authenticated
from catalog_export.api.validators import parse_filters, validate_sort_field
from catalog_export.budget.scope import ProcessLimits, RlimitProcessLimits
from catalog_export.config.settings import APIConfig, CatalogConfig, ExportConfig
from catalog_export.pipeline.export import CSV_MEDIA_TYPE, ExportPipeline
from catalog_export.store.jsonl import JsonlFieldCatalog, JsonlRecordStore, JsonlSearchBackend
from catalog_export.store.protocols import (
    KIND_FILTER,
    FieldCatalog,
    RecordStore,
    SearchBackend,
    SearchBackendError,
    SearchParams,
)

router = APIRouter()


@dataclass(frozen=True)
class CatalogServices:
    """The search/record subsystem one request works against."""

    search: SearchBackend
    store: RecordStore
    fields: FieldCatalog


# --- Dependencies ---


def get_catalog() -> CatalogServices:
    config = CatalogConfig()
    return CatalogServices(
        search=JsonlSearchBackend(config.records_path),
        store=JsonlRecordStore(config.records_path, config.attachments_path),
        fields=JsonlFieldCatalog(config.fields_path),
    )


def get_export_config() -> ExportConfig:
    return ExportConfig()


def get_api_config() -> APIConfig:
    return APIConfig()


def get_process_limits() -> ProcessLimits:
    return RlimitProcessLimits()


def search_params(
    q: str = Query(default="", description="Free-text query"),
    filters: list[str] = Query(default=[], alias="filter", description="field:value"),
    sort: str | None = Query(default=None, description="Field to sort by"),
    order: Literal["asc", "desc"] = Query(default="asc"),
    page: int = Query(default=1, ge=1),
) -> SearchParams:
    return SearchParams(
        query=q,
        filters=parse_filters(filters),
        sort=validate_sort_field(sort),
        order=order,
        page=page,
    )


# --- Request/Response Models ---


class SearchHit(BaseModel):
    identifier: str
    title: str
    score: float


class SearchPage(BaseModel):
    items: list[SearchHit]
    page: int
    per_page: int


# --- Endpoints ---


@router.get("/search", response_model=SearchPage)
def search(
    params: SearchParams = Depends(search_params),
    per_page: int | None = Query(default=None, ge=1),
    catalog: CatalogServices = Depends(get_catalog),
    export_config: ExportConfig = Depends(get_export_config),
    api_config: APIConfig = Depends(get_api_config),
) -> SearchPage:
    """One page of search results, as shown in the web view."""
    size = min(per_page or api_config.default_per_page, api_config.max_per_page)
    sort = (params.sort, params.order) if params.sort else None
    # Other kinds are excluded by the backend, before offset and row count apply.
    filters = {**params.filters, KIND_FILTER: export_config.category}
    try:
        hits = catalog.search.search(
            params.query,
            filters,
            sort,
            row_count=size,
            offset=(params.page - 1) * size,
        )
        items = [
            SearchHit(
                identifier=hit.identifier,
                title=str(hit.payload.get("title", "")),
                score=hit.score,
            )
            for hit in hits
            if hit.identifier
        ]
    except SearchBackendError as exc:
        raise HTTPException(status_code=503, detail=f"Search unavailable: {exc}")
    return SearchPage(items=items, page=params.page, per_page=size)


@router.get("/search/export")
def export_search(
    params: SearchParams = Depends(search_params),
    authenticated: bool = Depends(caller_is_authenticated),
    catalog: CatalogServices = Depends(get_catalog),
    export_config: ExportConfig = Depends(get_export_config),
    limits: ProcessLimits = Depends(get_process_limits),
) -> StreamingResponse:
    """Stream every result of the search as CSV.

    ``page`` is accepted so the web view's URL can be reused unchanged, but the
    export always covers all pages.
    """
    pipeline = ExportPipeline(
        catalog.search,
        catalog.store,
        catalog.fields,
        export_config,
        limits=limits,
        authenticated=authenticated,
    )
    return StreamingResponse(
        pipeline.iter_csv(params),
        media_type=CSV_MEDIA_TYPE,
        headers={"Content-Disposition": pipeline.content_disposition},
    )
