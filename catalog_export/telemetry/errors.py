"""Structured error telemetry helpers."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Canonical error codes for operational telemetry."""

    SEARCH_BACKEND_FAILED = "SEARCH_BACKEND_FAILED"
    RESOURCE_LIMIT_APPLY_FAILED = "RESOURCE_LIMIT_APPLY_FAILED"
    RESOURCE_LIMIT_RESTORE_FAILED = "RESOURCE_LIMIT_RESTORE_FAILED"
    EXPORT_ABORTED = "EXPORT_ABORTED"
    CATALOG_READ_FAILED = "CATALOG_READ_FAILED"


def emit_structured_error(
    logger: logging.Logger,
    *,
    code: ErrorCode,
    message: str,
    suppressed: bool,
    export_id: str | None = None,
    phase: str | None = None,
    details: dict[str, Any] | None = None,
) -> None:
    """Emit a structured telemetry event via logging."""
    logger.error(
        "catalog_export_error",
        extra={
            "error_code": code,
            "error_message": message,
            "suppressed": suppressed,
            "export_id": export_id,
            "phase": phase,
            "details": details or {},
        },
    )
