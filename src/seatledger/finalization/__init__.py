"""Course close-out."""

from seatledger.finalization.engine import FinalizationEngine, FinalizationPlan

__all__ = ["FinalizationEngine", "FinalizationPlan"]
