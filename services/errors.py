"""
Error types raised by the portfolio core.
"""


class PortfolioError(Exception):
    """Base class for portfolio core errors."""


class TransactionNotFoundError(PortfolioError, KeyError):
    """A referenced transaction id is not in the ledger."""

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction not found: {transaction_id}")

    def __str__(self) -> str:
        return self.args[0]


class InvalidOperationError(PortfolioError):
    """Attempt to edit or delete a transaction that did not originate manually."""


class InconsistentLedgerError(PortfolioError):
    """A sell precedes or exceeds the recorded position for its symbol."""

    def __init__(self, message: str, transaction=None):
        self.transaction = transaction
        super().__init__(message)


class LedgerPersistenceError(PortfolioError, OSError):
    """The ledger could not be written to its backing store."""


class FetchFailure(PortfolioError):
    """An external price or exchange call failed."""
