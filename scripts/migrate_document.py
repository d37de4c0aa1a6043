#!/usr/bin/env python3
"""
Upgrade the stored document to the current schema version.

Usage:
  python scripts/migrate_document.py [--source data/homecare.json] [--to-sql] [--dry-run]

Without --to-sql the JSON file is rewritten in place; with --to-sql the
upgraded document is written to the DATABASE_URL backend instead.
"""
from __future__ import annotations

import argparse
import json
from pathlib import Path
import sys

# Make the homecare package importable when run directly
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from homecare.core.config import get_settings
from homecare.core.errors import HomecareError
from homecare.core.log import configure_logging
from homecare.repositories.json_storage import JsonFileStore
from homecare.repositories.migrations import document_version, upgrade
from homecare.repositories.schema import COLLECTIONS, VERSION_KEY, db_defaults


def _counts(doc: dict) -> dict:
    return {name: len(doc.get(name) or []) for name in COLLECTIONS}


def migrate(source: Path, *, to_sql: bool = False, dry_run: bool = False) -> dict:
    settings = get_settings()
    if not source.exists():
        raise SystemExit(f"File not found: {source}")
    raw = JsonFileStore(source).read()
    from_version = document_version(raw)
    doc = db_defaults(upgrade(raw))
    summary = {
        "source": str(source),
        "from_version": from_version,
        "to_version": doc[VERSION_KEY],
        "counts": _counts(doc),
        "target": "sql" if to_sql else str(source),
        "written": False,
    }
    if dry_run:
        return summary
    if to_sql:
        from homecare.repositories.sql_storage import SqlDocumentStore

        SqlDocumentStore(slot=settings.document_slot).write(doc)
    else:
        JsonFileStore(source).write(doc)
    summary["written"] = True
    return summary


def main(argv: list[str] | None = None) -> None:
    settings = get_settings()
    ap = argparse.ArgumentParser(description="Upgrade the home-care document to the current schema")
    ap.add_argument("--source", default=str(settings.data_file), help="JSON document to read (default: DATA_FILE)")
    ap.add_argument("--to-sql", action="store_true", help="write the result to DATABASE_URL instead of the file")
    ap.add_argument("--dry-run", action="store_true", help="only report what would change")
    args = ap.parse_args(argv)

    configure_logging(settings.log_level)
    summary = migrate(Path(args.source), to_sql=args.to_sql, dry_run=args.dry_run)
    print(json.dumps(summary, ensure_ascii=False, indent=2))


if __name__ == "__main__":
    try:
        main()
    except HomecareError as exc:  # pragma: no cover - CLI usage
        sys.stderr.write(f"Error: {exc.message}\n")
        raise SystemExit(1)
