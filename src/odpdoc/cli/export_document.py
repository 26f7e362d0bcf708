"""CLI entrypoint exporting one drafting group to a Word document."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from dotenv import load_dotenv

from odpdoc.config import LoopSettings
from odpdoc.loop import DocumentLoop
from odpdoc.store.repository import RecordStore, StoreError

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=logging.INFO,
    )

    parser = argparse.ArgumentParser(description="Export ON/OR/OC records of a drafting group to Word")
    parser.add_argument("--scope", required=True, help="Drafting group token, e.g. idl")
    parser.add_argument("--output", required=True, help="Destination .docx path")
    parser.add_argument("--db-path", default=None, help="SQLite record store path (overrides ODPDOC_DB_PATH)")
    args = parser.parse_args(argv)

    settings = LoopSettings.from_env()
    db_path = Path(args.db_path) if args.db_path else settings.db_path

    try:
        with RecordStore(db_path) as store:
            data = DocumentLoop(store, settings).export_document(args.scope)
    except (StoreError, ValueError) as exc:
        logger.error("Export failed: %s", exc)
        print(json.dumps({"fatal": str(exc)}, ensure_ascii=True, indent=2))
        return 2

    output = Path(args.output)
    output.write_bytes(data)
    print(json.dumps({"scope": args.scope, "output": str(output), "bytes": len(data)}, ensure_ascii=True, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
