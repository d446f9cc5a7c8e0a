"""JSON state store — durable snapshot of the whole ledger.

The store holds one JSON document with a section per component (courses,
evaluators, enrollment, evaluations, roles, custody, treasury). Writes go
to a temporary file that replaces the target, so a crash mid-write keeps
the previous snapshot.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Optional


STATE_VERSION = 1


class StateStore:
    def __init__(self, storage_path: Path) -> None:
        self._path = storage_path

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Optional[dict[str, Any]]:
        """Return the stored sections, or None if nothing was saved yet."""
        if not self._path.exists():
            return None
        data = json.loads(self._path.read_text(encoding="utf-8"))
        version = data.get("version")
        if version != STATE_VERSION:
            raise ValueError(
                f"Unsupported state version {version!r} in {self._path}"
            )
        return data["sections"]

    def save(self, sections: dict[str, Any]) -> None:
        """Write all sections. Raises OSError on I/O failure."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        document = {"version": STATE_VERSION, "sections": sections}
        with tmp.open("w", encoding="utf-8") as f:
            json.dump(document, f, indent=2, sort_keys=True)
        os.replace(tmp, self._path)
