"""Field formatting: render one stored field value as one CSV cell.

``format_field`` never raises. A field kind without a formatter becomes the
UNSUPPORTED_FIELD sentinel and stored items of the wrong shape become
UNREADABLE_FIELD, so one bad field costs one cell and never the whole row.
Quoting is not done here; the CSV writer escapes every cell.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable

from catalog_export.pipeline.records import FieldKind, FieldSpec, FieldValue

UNSUPPORTED_FIELD = "Error: Field not supported"
UNREADABLE_FIELD = "Error: Field value unreadable"

_FALSE_STRINGS = {"", "0", "false", "no", "off"}

# Stored items are free-form JSON; these are the ways a wrong shape fails.
_MALFORMED_ERRORS = (
    AttributeError,
    IndexError,
    KeyError,
    OSError,
    OverflowError,
    TypeError,
    ValueError,
)


def _referenced_labels(value: FieldValue, spec: FieldSpec) -> str:
    labels = []
    for item in value.items:
        label = item.get("label") or item.get("name")
        if label:
            labels.append(str(label))
    return ", ".join(labels)


def _first_text(value: FieldValue, spec: FieldSpec) -> str:
    text = value.first.get("value")
    return "" if text is None else str(text)


def _parse_datetime(raw: Any) -> datetime | None:
    if isinstance(raw, datetime):
        return raw
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return datetime.fromtimestamp(raw, tz=timezone.utc)
    if isinstance(raw, str):
        raw = raw.strip()
        if raw.isdigit():
            return datetime.fromtimestamp(int(raw), tz=timezone.utc)
        try:
            return datetime.fromisoformat(raw)
        except ValueError:
            return None
    return None


def _datetime(value: FieldValue, spec: FieldSpec) -> str:
    raw = value.first.get("value")
    if raw is None or raw == "":
        return ""
    moment = _parse_datetime(raw)
    if moment is None:
        return str(raw)
    return moment.strftime(spec.date_format)


def _boolean(value: FieldValue, spec: FieldSpec) -> str:
    flag = value.first.get("value")
    if flag is None:
        return ""
    if isinstance(flag, str):
        flag = flag.strip().lower() not in _FALSE_STRINGS
    return "True" if flag else "False"


def _allowed_value(value: FieldValue, spec: FieldSpec) -> str:
    key = value.first.get("value")
    if key is None:
        return ""
    key = str(key)
    return spec.allowed_values.get(key, key)


_FORMATTERS: dict[FieldKind, Callable[[FieldValue, FieldSpec], str]] = {
    FieldKind.TAXONOMY_REFERENCE: _referenced_labels,
    FieldKind.TEXT: _first_text,
    FieldKind.LONG_TEXT: _first_text,
    FieldKind.DATETIME: _datetime,
    FieldKind.BOOLEAN: _boolean,
    FieldKind.ENTITY_REFERENCE: _referenced_labels,
    FieldKind.ENUMERATED_TEXT: _allowed_value,
}


def supported_kinds() -> frozenset[FieldKind]:
    return frozenset(_FORMATTERS)


def format_field(value: FieldValue, spec: FieldSpec) -> str:
    """Render ``value`` according to ``spec.kind``."""
    try:
        kind = FieldKind(spec.kind)
    except ValueError:
        return UNSUPPORTED_FIELD
    formatter = _FORMATTERS.get(kind)
    if formatter is None:
        return UNSUPPORTED_FIELD
    if value.is_empty:
        return ""
    try:
        return formatter(value, spec)
    except _MALFORMED_ERRORS:
        return UNREADABLE_FIELD
