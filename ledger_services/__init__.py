"""
ledger_services -- stateful orchestration over the ledger engines.

Services own the validate -> append -> update-aggregate transaction step and
the dispatch of StockReplenished to listeners.  They flush within the
caller's session and never commit.
"""

from ledger_services.stock_ledger import (
    IntegrityReport,
    ReorderCloser,
    ReplenishmentListener,
    StockLedgerService,
)

__all__ = [
    "IntegrityReport",
    "ReorderCloser",
    "ReplenishmentListener",
    "StockLedgerService",
]
