#!/usr/bin/env python3
"""
Ingest Payload Script
Runs one ingestion against the configured database from a local file.

Usage:
    python -m scripts.ingest_payload <run_id> <user_id> <file>
    python -m scripts.ingest_payload --dry-run

A .json file is treated as a captured-lists payload; anything else is read as
extracted document text.
"""
import json
import sys
from pathlib import Path

from app.config import IngestionConfig
from app.database import SessionLocal, init_db
from app.services.ingestion import IngestionError, IngestionService, IngestRequest


def load_payload(path: Path):
    if path.suffix.lower() == ".json":
        with path.open() as f:
            return json.load(f)
    return {"rawText": path.read_text(errors="replace")}


def run(request: IngestRequest) -> int:
    init_db()
    db = SessionLocal()
    try:
        service = IngestionService(db, IngestionConfig.from_env())
        outcome = service.ingest(request)
    except IngestionError as e:
        print(f"Error [{e.code}]: {e.message}")
        return 1
    finally:
        db.close()

    print(f"Run {outcome.run_id}: {outcome.status.value}")
    for name, count in outcome.row_counts.items():
        print(f"  {name}: {count}")
    if outcome.missing_bureaus:
        print(f"  missing bureaus: {', '.join(outcome.missing_bureaus)}")
    if outcome.confidence_score is not None:
        print(f"  confidence: {outcome.confidence_score}")
    for warning in outcome.warnings:
        print(f"  warning: {warning}")
    return 0


def main(argv) -> int:
    if len(argv) == 2 and argv[1] == "--dry-run":
        return run(IngestRequest(dry_run=True))

    if len(argv) != 4:
        print(__doc__)
        return 2

    run_id, user_id, file_path = argv[1], argv[2], Path(argv[3])
    if not file_path.exists():
        print(f"Error: file not found: {file_path}")
        return 2

    return run(IngestRequest(run_id=run_id, user_id=user_id, payload=load_payload(file_path)))


if __name__ == "__main__":
    sys.exit(main(sys.argv))
