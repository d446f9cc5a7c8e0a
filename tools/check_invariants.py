#!/usr/bin/env python3
"""Seat ledger invariant checks against the shipped parameters."""

import json
from pathlib import Path
from typing import Optional

from seatledger.models.course import (
    CERTIFICATE_THRESHOLD,
    MAX_MARK,
    MIN_MARK,
    PASS_COUNT_THRESHOLD,
    EvaluationKeying,
)


ROOT = Path(__file__).resolve().parents[1]
CONFIG_DIR = ROOT / "config"
PARAMS_FILENAME = "ledger_params.json"


def load_json(path: Path) -> dict:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def check(config_dir: Optional[Path] = None) -> int:
    params = load_json((config_dir or CONFIG_DIR) / PARAMS_FILENAME)
    errors: list[str] = []

    # --- Evaluator capacity ---
    cap = params.get("max_evaluators_amount")
    if not isinstance(cap, int) or isinstance(cap, bool):
        errors.append(f"max_evaluators_amount must be an integer, got {cap!r}")
    elif cap <= 0:
        errors.append(f"max_evaluators_amount must be > 0, got {cap}")

    # --- Evaluation keying ---
    keying = params.get("evaluation_keying")
    allowed = {k.value for k in EvaluationKeying}
    if keying not in allowed:
        errors.append(f"evaluation_keying must be one of {sorted(allowed)}, got {keying!r}")

    # --- Flags ---
    for flag in ("legacy_double_reclaim", "enforce_seat_availability"):
        if not isinstance(params.get(flag), bool):
            errors.append(f"{flag} must be a boolean")

    if not isinstance(params.get("metadata_base_uri", ""), str):
        errors.append("metadata_base_uri must be a string")

    # --- Mark thresholds ---
    for name, value in (
        ("PASS_COUNT_THRESHOLD", PASS_COUNT_THRESHOLD),
        ("CERTIFICATE_THRESHOLD", CERTIFICATE_THRESHOLD),
    ):
        if not MIN_MARK <= value <= MAX_MARK:
            errors.append(f"{name} must lie within [{MIN_MARK}, {MAX_MARK}], got {value}")
    if PASS_COUNT_THRESHOLD < CERTIFICATE_THRESHOLD:
        # Every counted pass must also earn a certificate.
        errors.append("PASS_COUNT_THRESHOLD must not be below CERTIFICATE_THRESHOLD")

    if errors:
        print("Invariant check failed:")
        for err in errors:
            print(f"- {err}")
        return 1

    print("Invariant check passed.")
    return 0


if __name__ == "__main__":
    raise SystemExit(check())
