"""
Transaction ledger: the authoritative, ordered log of buy/sell events.

Every successful mutation replays the whole ledger into holdings and then
persists it. Mutations are serialized by a lock; readers get snapshots.
"""

import logging
import threading
from dataclasses import replace
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from models import Holding, Transaction, TransactionOrigin
from repositories import TransactionRepository
from services.common import normalize_symbol
from services.errors import InvalidOperationError, LedgerPersistenceError, TransactionNotFoundError
from services.reconciler import LedgerIssue, reconcile_with_report

logger = logging.getLogger(__name__)


class TransactionLedger:
    """
    In-memory ledger backed by a TransactionRepository.

    Args:
        repository: Persistence collaborator; None keeps the ledger in memory only
        favorites: Symbols flagged as favorites on reconciled holdings
        on_change: Called with the new holdings map after each mutation
    """

    def __init__(
        self,
        repository: Optional[TransactionRepository] = None,
        favorites: Optional[Iterable[str]] = None,
        on_change: Optional[Callable[[Dict[str, Holding]], None]] = None
    ):
        self.repository = repository
        self.on_change = on_change
        self._lock = threading.RLock()
        self._transactions: List[Transaction] = []
        self._holdings: Dict[str, Holding] = {}
        self._issues: List[LedgerIssue] = []
        self._favorites = frozenset(normalize_symbol(s) for s in (favorites or ()))

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    @property
    def transactions(self) -> Tuple[Transaction, ...]:
        """Ledger entries in insertion order."""
        return tuple(self._transactions)

    @property
    def holdings(self) -> Dict[str, Holding]:
        """Holdings from the last reconciliation (unpriced)."""
        return dict(self._holdings)

    @property
    def issues(self) -> List[LedgerIssue]:
        """Inconsistencies found by the last reconciliation."""
        return list(self._issues)

    def __len__(self) -> int:
        return len(self._transactions)

    def get(self, transaction_id: str) -> Transaction:
        """Return the transaction with the given id or raise TransactionNotFoundError."""
        with self._lock:
            return self._transactions[self._index_of(transaction_id)]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add(self, transaction: Transaction) -> Transaction:
        """Append a transaction, reconcile, then persist."""
        with self._lock:
            if any(t.id == transaction.id for t in self._transactions):
                raise InvalidOperationError(f"Duplicate transaction id: {transaction.id}")
            self._transactions.append(transaction)
            self._reconcile()
        self._commit()
        logger.info(
            f"Added {transaction.transaction_type.value} {transaction.quantity} "
            f"{transaction.normalized_symbol} ({transaction.origin.value})"
        )
        return transaction

    def record_synced(self, transaction: Transaction) -> Transaction:
        """Append a transaction ingested from an exchange."""
        if transaction.origin is not TransactionOrigin.EXCHANGE:
            transaction = replace(transaction, origin=TransactionOrigin.EXCHANGE)
        return self.add(transaction)

    def update(self, old_id: str, new_transaction: Transaction) -> Transaction:
        """
        Replace a manual transaction in place.

        The replacement keeps the old id and its position in the ledger, and
        stays manual.

        Raises:
            TransactionNotFoundError: old_id is not in the ledger
            InvalidOperationError: the stored transaction is not manual
        """
        with self._lock:
            index = self._index_of(old_id)
            existing = self._transactions[index]
            if not existing.is_manual:
                raise InvalidOperationError(f"Cannot update an exchange transaction: {old_id}")

            updated = replace(new_transaction, id=old_id, origin=TransactionOrigin.MANUAL)
            self._transactions[index] = updated
            self._reconcile()
        self._commit()
        logger.info(f"Updated transaction {old_id}")
        return updated

    def delete(self, transaction_id: str) -> Transaction:
        """
        Remove a manual transaction.

        Raises:
            TransactionNotFoundError: transaction_id is not in the ledger
            InvalidOperationError: the stored transaction is not manual
        """
        with self._lock:
            index = self._index_of(transaction_id)
            existing = self._transactions[index]
            if not existing.is_manual:
                raise InvalidOperationError(f"Cannot delete an exchange transaction: {transaction_id}")

            del self._transactions[index]
            self._reconcile()
        self._commit()
        logger.info(f"Deleted transaction {transaction_id}")
        return existing

    def clear(self):
        """Remove every transaction, including synced ones."""
        with self._lock:
            self._transactions = []
            self._reconcile()
        self._commit()

    def set_favorites(self, favorites: Iterable[str]):
        """Change the favorite set and re-reconcile without persisting."""
        with self._lock:
            self._favorites = frozenset(normalize_symbol(s) for s in favorites)
            self._reconcile()
        self._notify()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> int:
        """
        Load the ledger from the repository.
        Missing or corrupt data leaves an empty ledger; nothing is raised.
        Without a repository the in-memory entries are kept as they are.

        Returns:
            Number of transactions in the ledger
        """
        if self.repository is None:
            return len(self._transactions)

        with self._lock:
            try:
                transactions = self.repository.load_all()
            except (SQLAlchemyError, ValueError, LookupError, TypeError) as e:
                logger.warning(f"Failed to load transactions, starting with an empty ledger: {e}")
                transactions = []

            self._transactions = transactions
            self._reconcile()
        self._notify()
        logger.info(f"Loaded {len(transactions)} transactions")
        return len(transactions)

    def save(self):
        """
        Persist the ledger.

        Raises:
            LedgerPersistenceError: the repository write failed
        """
        if self.repository is None:
            return
        with self._lock:
            try:
                self.repository.save_all(list(self._transactions))
            except SQLAlchemyError as e:
                logger.error(f"Failed to save transactions: {e}")
                raise LedgerPersistenceError(f"Failed to save transactions: {e}") from e

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _index_of(self, transaction_id: str) -> int:
        for index, tx in enumerate(self._transactions):
            if tx.id == transaction_id:
                return index
        raise TransactionNotFoundError(transaction_id)

    def _reconcile(self) -> Dict[str, Holding]:
        result = reconcile_with_report(self._transactions, favorites=self._favorites)
        # Swap, never mutate in place: readers hold the previous map
        self._holdings = result.holdings
        self._issues = result.issues
        return result.holdings

    def _notify(self):
        # Runs without the ledger lock; listeners may take their own locks
        if self.on_change is None:
            return
        try:
            self.on_change(self.holdings)
        except Exception as e:
            logger.error(f"Ledger change listener failed: {e}")

    def _commit(self):
        self._notify()
        self.save()
