"""Tests for the FastAPI REST API endpoints."""

from __future__ import annotations

import csv
import io

import pytest
from conftest import CATEGORY, hit
from fastapi.testclient import TestClient

from catalog_export.api import routes
from catalog_export.api.app import app
from catalog_export.pipeline.records import RawHit
from catalog_export.store.protocols import SearchBackendError


class _FailingSearch:
    def search(self, query, filters, sort, row_count, offset=0):
        raise SearchBackendError("index offline")


class _FailingReadSearch:
    def search(self, query, filters, sort, row_count, offset=0):
        yield from ()
        raise SearchBackendError("index offline while reading")


@pytest.fixture
def services(search_backend, record_store, field_catalog):
    return routes.CatalogServices(
        search=search_backend, store=record_store, fields=field_catalog
    )


@pytest.fixture
def client(services, export_config, limits, monkeypatch):
    monkeypatch.delenv("CATALOG_EXPORT_API_TOKEN", raising=False)
    app.dependency_overrides[routes.get_catalog] = lambda: services
    app.dependency_overrides[routes.get_export_config] = lambda: export_config
    app.dependency_overrides[routes.get_process_limits] = lambda: limits
    yield TestClient(app)
    app.dependency_overrides.clear()


def _rows(text: str) -> list[list[str]]:
    return list(csv.reader(io.StringIO(text, newline="")))


class TestHealthEndpoint:
    def test_health_check(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "catalog-export"
        assert data["version"] == "1.0.0"


class TestSearchEndpoint:
    def test_first_page(self, client):
        response = client.get("/api/v1/search")
        assert response.status_code == 200
        data = response.json()
        assert [item["identifier"] for item in data["items"]] == ["101", "102"]
        assert data["page"] == 1
        assert data["per_page"] == 25

    def test_pagination(self, client):
        response = client.get("/api/v1/search", params={"per_page": 1, "page": 2})
        assert response.status_code == 200
        data = response.json()
        assert [item["identifier"] for item in data["items"]] == ["102"]
        assert data["items"][0]["title"] == "Beta survey"

    def test_per_page_is_capped(self, client):
        response = client.get("/api/v1/search", params={"per_page": 5000})
        assert response.json()["per_page"] == 100

    def test_query(self, client):
        response = client.get("/api/v1/search", params={"q": "alpha"})
        assert [item["identifier"] for item in response.json()["items"]] == ["101"]

    def test_backend_failure_is_503(self, client, services):
        app.dependency_overrides[routes.get_catalog] = lambda: routes.CatalogServices(
            search=_FailingSearch(), store=services.store, fields=services.fields
        )
        response = client.get("/api/v1/search")
        assert response.status_code == 503

    def test_backend_failure_while_reading_is_503(self, client, services):
        app.dependency_overrides[routes.get_catalog] = lambda: routes.CatalogServices(
            search=_FailingReadSearch(), store=services.store, fields=services.fields
        )
        assert client.get("/api/v1/search").status_code == 503

    def test_other_kinds_do_not_shorten_pages(self, client, services):
        services.search.add(hit("u1", "Someone", kind="user", score=5.0))
        response = client.get("/api/v1/search", params={"per_page": 2})
        assert [item["identifier"] for item in response.json()["items"]] == ["101", "102"]


class TestExportEndpoint:
    def test_streams_csv_download(self, client):
        response = client.get("/api/v1/search/export")
        assert response.status_code == 200
        assert response.headers["content-type"] == "text/csv; charset=utf-8"
        assert (
            response.headers["content-disposition"]
            == 'attachment; filename="search-results.csv"'
        )
        rows = _rows(response.text)
        assert rows[0][:2] == ["Title", "Tags"]
        assert len(rows) == 5

    def test_anonymous_export_has_no_identifier_column(self, client):
        rows = _rows(client.get("/api/v1/search/export").text)
        assert "ID" not in rows[0]
        assert "Internal notes" not in rows[0]

    def test_authenticated_export_has_identifier_column(self, client, monkeypatch):
        monkeypatch.setenv("CATALOG_EXPORT_API_TOKEN", "test-secret-token")
        response = client.get(
            "/api/v1/search/export",
            headers={"Authorization": "Bearer test-secret-token"},
        )
        assert response.status_code == 200
        rows = _rows(response.text)
        assert rows[0][:2] == ["ID", "Title"]
        assert "Internal notes" in rows[0]
        assert rows[1][0] == "101"

    def test_invalid_token_is_rejected(self, client, monkeypatch):
        monkeypatch.setenv("CATALOG_EXPORT_API_TOKEN", "test-secret-token")
        response = client.get(
            "/api/v1/search/export",
            headers={"Authorization": "Bearer wrong-token"},
        )
        assert response.status_code == 401

    def test_page_parameter_is_ignored(self, client):
        everything = client.get("/api/v1/search/export").text
        assert client.get("/api/v1/search/export", params={"page": 5}).text == everything

    def test_query_narrows_export(self, client):
        rows = _rows(client.get("/api/v1/search/export", params={"q": "beta"}).text)
        assert [row[0] for row in rows[1:]] == ["Beta survey"]

    def test_filter_and_sort(self, client, services):
        for identifier, title in (("101", "Alpha report"), ("102", "Beta survey")):
            services.search.add(
                RawHit(
                    kind=CATEGORY,
                    identifier=identifier,
                    payload={"title": title, "lang": "de"},
                )
            )
        response = client.get(
            "/api/v1/search/export",
            params={"filter": ["lang:de"], "sort": "title", "order": "desc"},
        )
        assert response.status_code == 200
        titles = [row[0] for row in _rows(response.text)[1:]]
        assert titles == ["Beta survey"] + ["Alpha report"] * 3

    def test_invalid_filter_is_400(self, client):
        response = client.get("/api/v1/search/export", params={"filter": "no-separator"})
        assert response.status_code == 400

    def test_invalid_sort_is_400(self, client):
        response = client.get("/api/v1/search/export", params={"sort": "title;drop"})
        assert response.status_code == 400

    def test_invalid_order_is_422(self, client):
        response = client.get("/api/v1/search/export", params={"order": "sideways"})
        assert response.status_code == 422

    def test_backend_failure_yields_header_only(self, client, services):
        app.dependency_overrides[routes.get_catalog] = lambda: routes.CatalogServices(
            search=_FailingSearch(), store=services.store, fields=services.fields
        )
        response = client.get("/api/v1/search/export")
        assert response.status_code == 200
        assert response.text == "Title\n"

    def test_backend_failure_while_reading_yields_header_only(self, client, services):
        app.dependency_overrides[routes.get_catalog] = lambda: routes.CatalogServices(
            search=_FailingReadSearch(), store=services.store, fields=services.fields
        )
        response = client.get("/api/v1/search/export")
        assert response.status_code == 200
        assert response.text == "Title\n"

    def test_ceilings_restored_after_request(self, client, limits):
        before = limits.snapshot()
        client.get("/api/v1/search/export")
        assert limits.snapshot() == before
        assert len(limits.history) == 4
