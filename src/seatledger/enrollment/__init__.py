"""Seat purchase and reclaim bookkeeping."""

from seatledger.enrollment.ledger import EnrollmentLedger

__all__ = ["EnrollmentLedger"]
