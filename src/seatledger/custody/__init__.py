"""External collaborators — seat-unit custody and the payment treasury.

The ledger depends only on the TokenCustody and PaymentCollector
protocols. The in-memory implementations back the tests and the CLI.
"""

from seatledger.custody.tokens import (
    CustodyJournal,
    InMemoryTokenCustody,
    TokenCustody,
)
from seatledger.custody.treasury import InMemoryTreasury, PaymentCollector

__all__ = [
    "CustodyJournal",
    "InMemoryTokenCustody",
    "InMemoryTreasury",
    "PaymentCollector",
    "TokenCustody",
]
