"""CLI entrypoint importing an edited Word document into the record store."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from dotenv import load_dotenv

from odpdoc.config import LoopSettings
from odpdoc.extraction.docx_extractor import ExtractionError
from odpdoc.loop import DocumentLoop
from odpdoc.store.repository import RecordStore, StoreError

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=logging.INFO,
    )

    parser = argparse.ArgumentParser(description="Import an edited ON/OR/OC Word document")
    parser.add_argument("--path", required=True, help="Word (.docx) document to import")
    parser.add_argument("--scope", required=True, help="Drafting group token, e.g. idl")
    parser.add_argument("--db-path", default=None, help="SQLite record store path (overrides ODPDOC_DB_PATH)")
    parser.add_argument("--actor", default=None, help="Author recorded on new versions")
    parser.add_argument(
        "--force",
        action="store_true",
        help="Apply updates even when the document edits an outdated version",
    )
    args = parser.parse_args(argv)

    settings = LoopSettings.from_env()
    db_path = Path(args.db_path) if args.db_path else settings.db_path

    try:
        data = Path(args.path).read_bytes()
    except OSError as exc:
        print(json.dumps({"fatal": f"Cannot read {args.path}: {exc}"}, ensure_ascii=True, indent=2))
        return 2

    try:
        with RecordStore(db_path) as store:
            result = DocumentLoop(store, settings).import_document(
                data,
                args.scope,
                force=args.force,
                actor=args.actor,
            )
    except (ExtractionError, StoreError, ValueError) as exc:
        logger.error("Import failed: %s", exc)
        print(json.dumps({"fatal": str(exc)}, ensure_ascii=True, indent=2))
        return 2

    payload = {"path": args.path, "scope": args.scope, "force": args.force, **result.to_dict()}
    print(json.dumps(payload, ensure_ascii=True, indent=2))
    return 0 if result.committed else 1


if __name__ == "__main__":
    raise SystemExit(main())
