"""CLI dump of the generic document tree as JSON."""

from __future__ import annotations

import argparse
import json

from odpdoc.extraction.docx_extractor import DocxExtractor, ExtractionError


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Print the heading/paragraph/link tree of a Word document")
    parser.add_argument("--path", required=True, help="Word (.docx) document")
    args = parser.parse_args(argv)

    try:
        root, warnings = DocxExtractor().extract_path(args.path)
    except ExtractionError as exc:
        print(json.dumps({"fatal": str(exc)}, ensure_ascii=True, indent=2))
        return 2

    payload = {
        "path": args.path,
        "tree": root.to_dict(),
        "warnings": [warning.to_dict() for warning in warnings],
    }
    print(json.dumps(payload, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
