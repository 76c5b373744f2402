"""
Transaction Repository - data access layer for the persisted ledger.
The ledger is stored as an ordered sequence and rewritten as a whole on save.
"""

from typing import Optional, List, Sequence
from sqlalchemy import delete
from sqlmodel import Session, select

from db_engine import get_engine
from models import Transaction, TransactionRecord


class TransactionRepository:
    """Repository for loading and saving the transaction ledger."""

    def __init__(self, engine=None):
        self.engine = engine or get_engine()

    def load_all(self, session: Optional[Session] = None) -> List[Transaction]:
        """
        Load every ledger entry in insertion order.

        Args:
            session: Optional existing session for transaction reuse

        Returns:
            List of Transaction objects

        Raises:
            SQLAlchemyError: if the table is missing or unreadable
            ValueError: if a stored row does not form a valid Transaction
        """
        def _load_all(sess: Session) -> List[Transaction]:
            statement = select(TransactionRecord).order_by(TransactionRecord.sequence)
            results = sess.exec(statement)
            return [record.to_transaction() for record in results.all()]

        if session is not None:
            return _load_all(session)
        else:
            with Session(self.engine) as session:
                return _load_all(session)

    def save_all(self, transactions: Sequence[Transaction], session: Optional[Session] = None) -> int:
        """
        Replace the stored ledger with the given ordered sequence.

        Args:
            transactions: Ledger entries in insertion order
            session: Optional existing session for transaction reuse

        Returns:
            Number of rows written
        """
        def _save_all(sess: Session) -> int:
            try:
                sess.execute(delete(TransactionRecord))
                for sequence, transaction in enumerate(transactions):
                    sess.add(TransactionRecord.from_transaction(transaction, sequence))
                sess.commit()
                return len(transactions)
            except Exception as e:
                sess.rollback()
                raise e

        if session is not None:
            return _save_all(session)
        else:
            with Session(self.engine) as session:
                return _save_all(session)

    def count(self) -> int:
        """Number of stored ledger entries."""
        with Session(self.engine) as session:
            return len(session.exec(select(TransactionRecord.id)).all())
