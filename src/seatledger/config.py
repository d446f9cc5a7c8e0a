"""Ledger configuration — JSON parameters with environment overrides.

Defaults live in ``config/ledger_params.json``. A ``.env`` file next to
the config directory (or any variable already in the environment) can
override individual values:

    SEATLEDGER_MAX_EVALUATORS=3
    SEATLEDGER_EVALUATION_KEYING=scan_index
    SEATLEDGER_LEGACY_DOUBLE_RECLAIM=true
    SEATLEDGER_ENFORCE_SEAT_AVAILABILITY=true
    SEATLEDGER_METADATA_BASE_URI=https://example.org/meta/
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Mapping, Optional

from dotenv import load_dotenv

from seatledger.errors import InvalidCapacity, InvalidInput
from seatledger.models.course import EvaluationKeying


PARAMS_FILENAME = "ledger_params.json"
DEFAULT_MAX_EVALUATORS = 5

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise InvalidInput(f"{name} must be a boolean, got {raw!r}")


@dataclass(frozen=True)
class LedgerConfig:
    """Process-wide ledger parameters."""
    max_evaluators_amount: int = DEFAULT_MAX_EVALUATORS
    evaluation_keying: EvaluationKeying = EvaluationKeying.COURSE
    legacy_double_reclaim: bool = False
    enforce_seat_availability: bool = False
    metadata_base_uri: str = ""

    def __post_init__(self) -> None:
        if self.max_evaluators_amount <= 0:
            raise InvalidCapacity(self.max_evaluators_amount)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> LedgerConfig:
        try:
            keying = EvaluationKeying(data.get("evaluation_keying", "course"))
        except ValueError:
            raise InvalidInput(
                f"Unknown evaluation_keying: {data.get('evaluation_keying')!r}"
            ) from None
        return cls(
            max_evaluators_amount=int(
                data.get("max_evaluators_amount", DEFAULT_MAX_EVALUATORS)
            ),
            evaluation_keying=keying,
            legacy_double_reclaim=bool(data.get("legacy_double_reclaim", False)),
            enforce_seat_availability=bool(
                data.get("enforce_seat_availability", False)
            ),
            metadata_base_uri=str(data.get("metadata_base_uri", "")),
        )

    @classmethod
    def from_config_dir(
        cls,
        config_dir: Path,
        environ: Optional[Mapping[str, str]] = None,
    ) -> LedgerConfig:
        """Load ``ledger_params.json`` from config_dir, then apply env overrides.

        When ``environ`` is None the process environment is used, after
        loading a ``.env`` file from the config directory's parent.
        """
        params_path = config_dir / PARAMS_FILENAME
        data: dict[str, Any] = {}
        if params_path.exists():
            data = json.loads(params_path.read_text(encoding="utf-8"))
        config = cls.from_dict(data)

        if environ is None:
            load_dotenv(config_dir.parent / ".env")
            environ = os.environ
        return config.with_overrides(environ)

    def with_overrides(self, environ: Mapping[str, str]) -> LedgerConfig:
        """Return a copy with any SEATLEDGER_* variables applied."""
        changes: dict[str, Any] = {}
        raw = environ.get("SEATLEDGER_MAX_EVALUATORS")
        if raw is not None:
            try:
                changes["max_evaluators_amount"] = int(raw)
            except ValueError:
                raise InvalidInput(
                    f"SEATLEDGER_MAX_EVALUATORS must be an integer, got {raw!r}"
                ) from None
        raw = environ.get("SEATLEDGER_EVALUATION_KEYING")
        if raw is not None:
            try:
                changes["evaluation_keying"] = EvaluationKeying(raw.strip())
            except ValueError:
                raise InvalidInput(f"Unknown evaluation_keying: {raw!r}") from None
        raw = environ.get("SEATLEDGER_LEGACY_DOUBLE_RECLAIM")
        if raw is not None:
            changes["legacy_double_reclaim"] = _parse_bool(
                "SEATLEDGER_LEGACY_DOUBLE_RECLAIM", raw,
            )
        raw = environ.get("SEATLEDGER_ENFORCE_SEAT_AVAILABILITY")
        if raw is not None:
            changes["enforce_seat_availability"] = _parse_bool(
                "SEATLEDGER_ENFORCE_SEAT_AVAILABILITY", raw,
            )
        raw = environ.get("SEATLEDGER_METADATA_BASE_URI")
        if raw is not None:
            changes["metadata_base_uri"] = raw
        if not changes:
            return self
        return replace(self, **changes)
