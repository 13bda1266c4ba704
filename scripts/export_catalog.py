#!/usr/bin/env python3
"""Export every search result of a JSONL catalog to a CSV file."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from catalog_export.config.settings import APIConfig, CatalogConfig, ExportConfig
from catalog_export.pipeline.export import ExportPipeline
from catalog_export.store.jsonl import JsonlFieldCatalog, JsonlRecordStore, JsonlSearchBackend
from catalog_export.store.protocols import (
    InvalidSearchParam,
    SearchParams,
    parse_filters,
    parse_sort_field,
)
from catalog_export.telemetry.log_setup import setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("output", type=Path, help="CSV file to write")
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="catalog directory (default: CATALOG_EXPORT_DATA_DIR)",
    )
    parser.add_argument("-q", "--query", default="")
    parser.add_argument(
        "--filter", dest="filters", action="append", default=[], metavar="FIELD:VALUE"
    )
    parser.add_argument("--sort", default=None)
    parser.add_argument("--order", choices=("asc", "desc"), default="asc")
    parser.add_argument(
        "--authenticated",
        action="store_true",
        help="include the ID column and restricted fields",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(APIConfig().log_level)

    try:
        filters = parse_filters(args.filters)
        sort = parse_sort_field(args.sort)
    except InvalidSearchParam as exc:
        print(exc, file=sys.stderr)
        return 2

    catalog = CatalogConfig(data_dir=args.data_dir) if args.data_dir else CatalogConfig()
    pipeline = ExportPipeline(
        JsonlSearchBackend(catalog.records_path),
        JsonlRecordStore(catalog.records_path, catalog.attachments_path),
        JsonlFieldCatalog(catalog.fields_path),
        ExportConfig(),
        authenticated=args.authenticated,
    )
    params = SearchParams(query=args.query, filters=filters, sort=sort, order=args.order)
    with args.output.open("wb") as f:
        summary = pipeline.export_to(params, f)

    print(
        f"Wrote {summary.records_written} records "
        f"({summary.attachment_rows_written} attachment rows) to {args.output}"
    )
    if summary.search_failed:
        print("Search failed; the file stops at the failure.", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
