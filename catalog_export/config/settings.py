"""Catalog export configuration settings."""

from __future__ import annotations

import os
import sys
from pathlib import Path
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator

_MEGABYTE = 1024 * 1024


def _int_env(var_name: str, default: str) -> int:
    return int(os.getenv(var_name, default).strip() or default)


class ExportConfig(BaseModel):
    """What gets exported and under which resource budget."""

    category: str = Field(
        default_factory=lambda: os.getenv("CATALOG_EXPORT_CATEGORY", "catalog_entry")
    )
    attachments_field: str = Field(
        default_factory=lambda: os.getenv("CATALOG_EXPORT_ATTACHMENTS_FIELD", "field_attachments")
    )
    filename: str = Field(
        default_factory=lambda: os.getenv("CATALOG_EXPORT_FILENAME", "search-results")
    )
    # 0 means unlimited for both ceilings
    memory_ceiling_mb: int = Field(
        default_factory=lambda: _int_env("CATALOG_EXPORT_MEMORY_CEILING_MB", "2048")
    )
    time_ceiling_s: int = Field(
        default_factory=lambda: _int_env("CATALOG_EXPORT_TIME_CEILING_S", "0")
    )
    max_row_count: int = sys.maxsize

    @field_validator("memory_ceiling_mb", "time_ceiling_s")
    @classmethod
    def _validate_ceiling(cls, value: int) -> int:
        if value < 0:
            raise ValueError("resource ceilings must be >= 0")
        return value

    @field_validator("max_row_count")
    @classmethod
    def _validate_row_count(cls, value: int) -> int:
        if value < 1:
            raise ValueError("max_row_count must be >= 1")
        return value

    @field_validator("filename")
    @classmethod
    def _validate_filename(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("filename cannot be empty")
        if any(ch in value for ch in '/\\"\r\n'):
            raise ValueError(f"Invalid export filename: {value!r}")
        return value

    @property
    def memory_ceiling_bytes(self) -> int | None:
        return self.memory_ceiling_mb * _MEGABYTE if self.memory_ceiling_mb else None

    @property
    def time_ceiling(self) -> int | None:
        return self.time_ceiling_s or None

    @property
    def download_name(self) -> str:
        return f"{self.filename}.csv"


class CatalogConfig(BaseModel):
    """Location of the JSONL-backed catalog served by the API."""

    data_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("CATALOG_EXPORT_DATA_DIR", "./data"))
    )

    @property
    def records_path(self) -> Path:
        return self.data_dir / "records.jsonl"

    @property
    def attachments_path(self) -> Path:
        return self.data_dir / "attachments.jsonl"

    @property
    def fields_path(self) -> Path:
        return self.data_dir / "fields.json"


class APIConfig(BaseModel):
    """API/security and paging controls from environment."""

    api_token: str = Field(default_factory=lambda: os.getenv("CATALOG_EXPORT_API_TOKEN", ""))
    allowed_origins: list[str] = Field(
        default_factory=lambda: APIConfig.parse_allowed_origins(
            os.getenv("CATALOG_EXPORT_ALLOWED_ORIGINS", "")
        )
    )
    default_per_page: int = 25
    max_per_page: int = 100
    log_level: str = Field(default_factory=lambda: os.getenv("CATALOG_EXPORT_LOG_LEVEL", "INFO"))

    @staticmethod
    def parse_allowed_origins(value: str) -> list[str]:
        if not value.strip():
            return ["http://localhost", "http://127.0.0.1"]
        origins = [origin.strip() for origin in value.split(",") if origin.strip()]
        if "*" in origins:
            raise ValueError("CATALOG_EXPORT_ALLOWED_ORIGINS cannot include '*'")
        return origins

    @field_validator("allowed_origins")
    @classmethod
    def _validate_allowed_origins(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError("allowed_origins cannot be empty")
        for origin in value:
            parsed = urlparse(origin)
            if parsed.scheme not in {"http", "https"} or not parsed.netloc:
                raise ValueError(f"Invalid CORS origin: {origin}")
        return value

    @field_validator("default_per_page", "max_per_page")
    @classmethod
    def _validate_page_size(cls, value: int) -> int:
        if value < 1:
            raise ValueError("page sizes must be >= 1")
        return value
