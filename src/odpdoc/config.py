"""Runtime configuration for the document import/export loop."""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
from typing import Mapping


DEFAULT_DB_PATH = ".odpdoc-records.db"
DEFAULT_NOOP_UPDATES = "skip"
DEFAULT_UNRESOLVED_SETUP = "error"
DEFAULT_ACTOR = "document-import"

NOOP_UPDATE_CHOICES = ("skip", "bump")
UNRESOLVED_SETUP_CHOICES = ("error", "create")


def _parse_choice(*, name: str, raw_value: str, choices: tuple[str, ...]) -> str:
    value = raw_value.lower()
    if value not in choices:
        raise ValueError(f"{name} must be one of {', '.join(choices)}")
    return value


@dataclass(frozen=True, slots=True)
class LoopSettings:
    """Validated settings for imports and exports.

    ``noop_updates`` decides whether an update with unchanged content is
    skipped or still mints a new version; ``unresolved_setup`` decides
    whether unknown setup-element names are errors or get created.
    """

    db_path: Path = Path(DEFAULT_DB_PATH)
    noop_updates: str = DEFAULT_NOOP_UPDATES
    unresolved_setup: str = DEFAULT_UNRESOLVED_SETUP
    actor: str = DEFAULT_ACTOR

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "LoopSettings":
        source: Mapping[str, str] = os.environ if environ is None else environ

        db_path_raw = source.get("ODPDOC_DB_PATH", DEFAULT_DB_PATH).strip()
        if not db_path_raw:
            raise ValueError("ODPDOC_DB_PATH cannot be empty")

        actor = source.get("ODPDOC_ACTOR", DEFAULT_ACTOR).strip()
        if not actor:
            raise ValueError("ODPDOC_ACTOR cannot be empty")

        noop_updates = _parse_choice(
            name="ODPDOC_NOOP_UPDATES",
            raw_value=source.get("ODPDOC_NOOP_UPDATES", DEFAULT_NOOP_UPDATES).strip(),
            choices=NOOP_UPDATE_CHOICES,
        )
        unresolved_setup = _parse_choice(
            name="ODPDOC_UNRESOLVED_SETUP",
            raw_value=source.get("ODPDOC_UNRESOLVED_SETUP", DEFAULT_UNRESOLVED_SETUP).strip(),
            choices=UNRESOLVED_SETUP_CHOICES,
        )

        return cls(
            db_path=Path(db_path_raw),
            noop_updates=noop_updates,
            unresolved_setup=unresolved_setup,
            actor=actor,
        )
