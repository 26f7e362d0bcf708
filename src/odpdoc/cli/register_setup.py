"""CLI to register or list setup elements (stakeholders, data, services, documents)."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from dotenv import load_dotenv

from odpdoc.config import LoopSettings
from odpdoc.model.entities import SetupKind
from odpdoc.store.repository import RecordStore, StoreError

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=logging.INFO,
    )

    parser = argparse.ArgumentParser(description="Register setup elements referenced by ON/OR/OC records")
    parser.add_argument("--kind", required=True, choices=[kind.value for kind in SetupKind], help="Setup element kind")
    parser.add_argument("--name", action="append", default=[], help="Element name (repeatable); omit to list")
    parser.add_argument("--description", default=None, help="Optional description for the new elements")
    parser.add_argument("--db-path", default=None, help="SQLite record store path (overrides ODPDOC_DB_PATH)")
    args = parser.parse_args(argv)

    settings = LoopSettings.from_env()
    db_path = Path(args.db_path) if args.db_path else settings.db_path
    kind = SetupKind(args.kind)

    try:
        with RecordStore(db_path) as store:
            created = [store.register_setup_element(kind, name, args.description) for name in args.name]
            elements = store.list_setup_elements(kind)
    except (StoreError, ValueError) as exc:
        logger.error("Setup registration failed: %s", exc)
        print(json.dumps({"fatal": str(exc)}, ensure_ascii=True, indent=2))
        return 2

    payload = {
        "kind": kind.value,
        "created": [{"id": element.id, "name": element.name} for element in created],
        "elements": [
            {"id": element.id, "name": element.name, "description": element.description} for element in elements
        ],
    }
    print(json.dumps(payload, ensure_ascii=True, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
