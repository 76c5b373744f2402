"""
TransactionRecord model - the persisted row form of a ledger Transaction.
"""

from datetime import datetime
from sqlalchemy import Column, DateTime
from sqlmodel import SQLModel, Field

from models.transaction import Transaction, to_utc


class TransactionRecord(SQLModel, table=True):
    """Stores one ledger entry. `sequence` keeps the ledger's insertion order."""
    __tablename__ = "ledger_transaction"

    id: str = Field(primary_key=True)
    sequence: int = Field(index=True)
    symbol: str = Field(index=True)
    quantity: float
    price_per_unit: float
    # UTC. SQLite drops the offset on read; to_transaction restores it
    trade_date: datetime = Field(sa_column=Column(DateTime(timezone=True), index=True, nullable=False))
    transaction_type: str  # "buy" or "sell"
    origin: str  # "manual" or "exchange"

    @classmethod
    def from_transaction(cls, transaction: Transaction, sequence: int) -> "TransactionRecord":
        return cls(
            id=transaction.id,
            sequence=sequence,
            symbol=transaction.symbol,
            quantity=transaction.quantity,
            price_per_unit=transaction.price_per_unit,
            trade_date=transaction.trade_date,
            transaction_type=transaction.transaction_type.value,
            origin=transaction.origin.value,
        )

    def to_transaction(self) -> Transaction:
        """Convert back to a domain Transaction. Raises ValueError on invalid rows."""
        return Transaction(
            id=self.id,
            symbol=self.symbol,
            quantity=self.quantity,
            price_per_unit=self.price_per_unit,
            trade_date=to_utc(self.trade_date),
            transaction_type=self.transaction_type,
            origin=self.origin,
        )
