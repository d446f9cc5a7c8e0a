"""Course seat ledger — seat sales, evaluator assignment, marks and close-out."""

__version__ = "0.1.0"
