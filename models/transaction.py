"""
Transaction model - an immutable buy/sell event in the ledger.
"""

import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class TransactionType(str, Enum):
    """Direction of a trade."""
    BUY = "buy"
    SELL = "sell"


class TransactionOrigin(str, Enum):
    """Where a transaction came from. Only manual entries may be edited."""
    MANUAL = "manual"
    EXCHANGE = "exchange"


def new_transaction_id() -> str:
    return uuid.uuid4().hex


def to_utc(value: datetime) -> datetime:
    """Return `value` as an aware UTC datetime. Naive values are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class Transaction:
    """Represents a buy/sell transaction for a coin."""
    symbol: str  # e.g., "BTC", matched case-insensitively
    quantity: float
    price_per_unit: float  # Price per unit at trade time
    trade_date: datetime  # Stored as aware UTC
    transaction_type: TransactionType = TransactionType.BUY
    origin: TransactionOrigin = TransactionOrigin.MANUAL
    id: str = field(default_factory=new_transaction_id)

    def __post_init__(self):
        if not self.symbol or not self.symbol.strip():
            raise ValueError("Transaction symbol must not be empty")
        if not math.isfinite(self.quantity) or self.quantity < 0:
            raise ValueError(f"Invalid quantity for {self.symbol}: {self.quantity}")
        if not math.isfinite(self.price_per_unit) or self.price_per_unit < 0:
            raise ValueError(f"Invalid price for {self.symbol}: {self.price_per_unit}")
        # Accept raw strings ("buy", "manual") as well as enum members
        object.__setattr__(self, 'transaction_type', TransactionType(self.transaction_type))
        object.__setattr__(self, 'origin', TransactionOrigin(self.origin))
        object.__setattr__(self, 'trade_date', to_utc(self.trade_date))

    @property
    def is_buy(self) -> bool:
        return self.transaction_type is TransactionType.BUY

    @property
    def is_manual(self) -> bool:
        return self.origin is TransactionOrigin.MANUAL

    @property
    def normalized_symbol(self) -> str:
        return self.symbol.strip().upper()

    @property
    def total_value(self) -> float:
        return self.quantity * self.price_per_unit
