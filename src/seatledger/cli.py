"""Seat ledger CLI — command-line interface for the course ledger.

Usage:
    python -m seatledger.cli status
    python -m seatledger.cli create-courses --course 1:30:course-1.json:50
    python -m seatledger.cli assign-evaluator --course 1 --evaluator prof
    python -m seatledger.cli --as alice purchase --course 1 --payment 50
    python -m seatledger.cli transfer-seat --course 1 --student alice
    python -m seatledger.cli --as prof evaluate --course 1 --student alice --mark 8
    python -m seatledger.cli finalize --course 1 --ref certificate-1.json
    python -m seatledger.cli anchor
    python -m seatledger.cli check-invariants

State is kept in ``--data`` (events.jsonl, state.json, anchors.jsonl)
between runs. ``anchor`` reads SEATLEDGER_RPC_URL and SEATLEDGER_PRIVATE_KEY
from the environment or the .env file next to the config directory.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from seatledger.config import LedgerConfig
from seatledger.errors import LedgerError
from seatledger.persistence.anchor import SEPOLIA_CHAIN_ID, AnchorLog, anchor_event_log
from seatledger.persistence.event_log import EventLog
from seatledger.persistence.state_store import StateStore
from seatledger.service import SeatLedgerService, ServiceResult


DEFAULT_CONFIG = Path(__file__).resolve().parents[2] / "config"
DEFAULT_DATA = Path(__file__).resolve().parents[2] / "data"
DEFAULT_ADMIN = "admin"

logger = logging.getLogger(__name__)


def _make_service(args: argparse.Namespace) -> SeatLedgerService:
    """Create a SeatLedgerService with durable persistence."""
    data_dir: Path = args.data
    data_dir.mkdir(parents=True, exist_ok=True)
    config = LedgerConfig.from_config_dir(args.config)
    return SeatLedgerService(
        config,
        admin=args.admin,
        event_log=EventLog(storage_path=data_dir / "events.jsonl"),
        state_store=StateStore(storage_path=data_dir / "state.json"),
    )


def _caller(args: argparse.Namespace) -> str:
    return args.caller or args.admin


def _report(result: ServiceResult, message: str) -> int:
    if result.success:
        print(message)
        warning = result.data.get("warning")
        if warning:
            print(f"Warning: {warning}", file=sys.stderr)
        return 0
    code = f" [{result.error_code}]" if result.error_code else ""
    print(f"Failed{code}: {'; '.join(result.errors)}", file=sys.stderr)
    return 1


def _parse_course_spec(raw: str) -> tuple[int, int, str, str]:
    """Parse ID:SEATS:REF:FEE."""
    parts = raw.split(":", 3)
    if len(parts) != 4:
        raise argparse.ArgumentTypeError(
            f"Course must be ID:SEATS:REF:FEE, got {raw!r}"
        )
    course_id, seats, ref, fee = parts
    try:
        return int(course_id), int(seats), ref, fee
    except ValueError:
        raise argparse.ArgumentTypeError(
            f"Course id and seats must be integers, got {raw!r}"
        ) from None


def cmd_status(args: argparse.Namespace) -> int:
    service = _make_service(args)
    print(json.dumps(service.status(), indent=2))
    return 0


def cmd_create_courses(args: argparse.Namespace) -> int:
    service = _make_service(args)
    specs = args.course
    result = service.create_courses(
        _caller(args),
        [s[0] for s in specs],
        [s[1] for s in specs],
        [s[2] for s in specs],
        [s[3] for s in specs],
    )
    return _report(result, f"Created {result.data.get('count', 0)} course entries")


def cmd_assign_evaluator(args: argparse.Namespace) -> int:
    service = _make_service(args)
    result = service.assign_evaluator(_caller(args), args.course, args.evaluator)
    return _report(result, f"Assigned {args.evaluator} to course {args.course}")


def cmd_unassign_evaluator(args: argparse.Namespace) -> int:
    service = _make_service(args)
    result = service.unassign_evaluator(_caller(args), args.course, args.evaluator)
    return _report(result, f"Unassigned {args.evaluator} from course {args.course}")


def cmd_set_max_evaluators(args: argparse.Namespace) -> int:
    service = _make_service(args)
    result = service.set_max_evaluators_amount(_caller(args), args.amount)
    return _report(result, f"Max evaluators per course: {args.amount}")


def cmd_purchase(args: argparse.Namespace) -> int:
    service = _make_service(args)
    result = service.purchase_seat(_caller(args), args.course, args.payment)
    return _report(
        result,
        f"Purchased seat in course {args.course} "
        f"({result.data.get('purchased_seats')} sold)",
    )


def cmd_transfer_seat(args: argparse.Namespace) -> int:
    service = _make_service(args)
    result = service.transfer_seat(_caller(args), args.student, args.course)
    return _report(result, f"Transferred a seat of course {args.course} to {args.student}")


def cmd_evaluate(args: argparse.Namespace) -> int:
    service = _make_service(args)
    result = service.evaluate(_caller(args), args.course, args.student, args.mark)
    return _report(result, f"Recorded mark {args.mark} for {args.student}")


def cmd_finalize(args: argparse.Namespace) -> int:
    service = _make_service(args)
    result = service.finalize_course(_caller(args), args.course, args.ref)
    if result.success:
        print(json.dumps(result.data, indent=2))
        return 0
    return _report(result, "")


def cmd_course(args: argparse.Namespace) -> int:
    service = _make_service(args)
    try:
        summary = service.course_summary(args.course)
    except LedgerError as e:
        print(f"Failed [{e.code}]: {e.message}", file=sys.stderr)
        return 1
    print(json.dumps(summary, indent=2))
    return 0


def cmd_withdraw(args: argparse.Namespace) -> int:
    service = _make_service(args)
    result = service.withdraw(_caller(args))
    return _report(result, f"Withdrew {result.data.get('amount')}")


def cmd_anchor(args: argparse.Namespace) -> int:
    """Anchor the event log digest on chain."""
    load_dotenv(args.config.parent / ".env")
    rpc_url = os.getenv("SEATLEDGER_RPC_URL")
    private_key = os.getenv("SEATLEDGER_PRIVATE_KEY")
    if not rpc_url or not private_key:
        print(
            "Failed: SEATLEDGER_RPC_URL and SEATLEDGER_PRIVATE_KEY must be set",
            file=sys.stderr,
        )
        return 1
    log = EventLog(storage_path=args.data / "events.jsonl")
    if log.count == 0:
        print("Failed: event log is empty", file=sys.stderr)
        return 1
    try:
        record = anchor_event_log(log, rpc_url, private_key, chain_id=args.chain_id)
    except (OSError, ValueError) as e:
        print(f"Failed: anchoring did not complete: {e}", file=sys.stderr)
        return 1
    AnchorLog(args.data / "anchors.jsonl").append(record)
    print(f"Anchored {record.event_count} events: {record.digest}")
    print(f"Tx: {record.tx_hash} (block {record.block_number})")
    return 0


def cmd_verify_anchors(args: argparse.Namespace) -> int:
    log = EventLog(storage_path=args.data / "events.jsonl")
    anchors = AnchorLog(args.data / "anchors.jsonl")
    errors = anchors.verify(log)
    if errors:
        for err in errors:
            print(f"- {err}", file=sys.stderr)
        return 1
    print(f"{len(anchors.records())} anchors match the event log")
    return 0


def cmd_check_invariants(args: argparse.Namespace) -> int:
    """Run configuration invariant checks."""
    tools_dir = Path(__file__).resolve().parents[2] / "tools"
    sys.path.insert(0, str(tools_dir))
    from check_invariants import check
    return check(args.config)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="seatledger",
        description="Course seat ledger CLI",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG,
        help="Path to config directory (default: config/)",
    )
    parser.add_argument(
        "--data",
        type=Path,
        default=DEFAULT_DATA,
        help="Path to data directory (default: data/)",
    )
    parser.add_argument(
        "--admin",
        default=DEFAULT_ADMIN,
        help=f"Bootstrap administrator identity (default: {DEFAULT_ADMIN})",
    )
    parser.add_argument(
        "--as",
        dest="caller",
        help="Identity performing the command (default: the administrator)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command")

    # status
    sub.add_parser("status", help="Show ledger status")

    # create-courses
    p_create = sub.add_parser("create-courses", help="Create or top up courses")
    p_create.add_argument(
        "--course", required=True, action="append", type=_parse_course_spec,
        metavar="ID:SEATS:REF:FEE", help="Course to create (repeatable)",
    )

    # evaluators
    p_assign = sub.add_parser("assign-evaluator", help="Assign an evaluator to a course")
    p_assign.add_argument("--course", required=True, type=int, help="Course ID")
    p_assign.add_argument("--evaluator", required=True, help="Evaluator identity")

    p_unassign = sub.add_parser("unassign-evaluator", help="Remove an evaluator from a course")
    p_unassign.add_argument("--course", required=True, type=int, help="Course ID")
    p_unassign.add_argument("--evaluator", required=True, help="Evaluator identity")

    p_max = sub.add_parser("set-max-evaluators", help="Set the per-course evaluator cap")
    p_max.add_argument("--amount", required=True, type=int, help="New cap (> 0)")

    # enrollment
    p_buy = sub.add_parser("purchase", help="Purchase a seat (as --as)")
    p_buy.add_argument("--course", required=True, type=int, help="Course ID")
    p_buy.add_argument("--payment", required=True, help="Payment amount (Decimal)")

    p_transfer = sub.add_parser("transfer-seat", help="Hand a seat unit to a student")
    p_transfer.add_argument("--course", required=True, type=int, help="Course ID")
    p_transfer.add_argument("--student", required=True, help="Student identity")

    # evaluation
    p_eval = sub.add_parser("evaluate", help="Record a mark (as an evaluator)")
    p_eval.add_argument("--course", required=True, type=int, help="Course ID")
    p_eval.add_argument("--student", required=True, help="Student identity")
    p_eval.add_argument("--mark", required=True, type=int, help="Mark from 1 to 10")

    # finalization
    p_final = sub.add_parser("finalize", help="Close a course")
    p_final.add_argument("--course", required=True, type=int, help="Course ID")
    p_final.add_argument("--ref", required=True, help="Certificate metadata reference")

    p_course = sub.add_parser("course", help="Show one course")
    p_course.add_argument("--course", required=True, type=int, help="Course ID")

    sub.add_parser("withdraw", help="Sweep collected payments to the caller")

    # audit anchoring
    p_anchor = sub.add_parser("anchor", help="Anchor the event log digest on Ethereum")
    p_anchor.add_argument(
        "--chain-id", type=int, default=SEPOLIA_CHAIN_ID,
        help=f"Chain ID (default: {SEPOLIA_CHAIN_ID}, Sepolia)",
    )
    sub.add_parser("verify-anchors", help="Check the event log against recorded anchors")

    # check-invariants
    sub.add_parser("check-invariants", help="Run configuration invariant checks")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "status": cmd_status,
        "create-courses": cmd_create_courses,
        "assign-evaluator": cmd_assign_evaluator,
        "unassign-evaluator": cmd_unassign_evaluator,
        "set-max-evaluators": cmd_set_max_evaluators,
        "purchase": cmd_purchase,
        "transfer-seat": cmd_transfer_seat,
        "evaluate": cmd_evaluate,
        "finalize": cmd_finalize,
        "course": cmd_course,
        "withdraw": cmd_withdraw,
        "anchor": cmd_anchor,
        "verify-anchors": cmd_verify_anchors,
        "check-invariants": cmd_check_invariants,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    logger.debug("Running %s", args.command)
    return handler(args)


if __name__ == "__main__":
    raise SystemExit(main())
