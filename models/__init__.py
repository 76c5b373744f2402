"""
Models for CryptoSage.
Domain records are frozen dataclasses; SQLModel table definitions live beside them.
"""

from models.transaction import Transaction, TransactionType, TransactionOrigin, new_transaction_id, to_utc
from models.transaction_record import TransactionRecord
from models.holding import Holding
from models.exchange import Account, Balance
from models.user_preferences import UserPreferences, DataMode, PortfolioMode

__all__ = [
    'Transaction',
    'TransactionType',
    'TransactionOrigin',
    'new_transaction_id',
    'to_utc',
    'TransactionRecord',
    'Holding',
    'Account',
    'Balance',
    'UserPreferences',
    'DataMode',
    'PortfolioMode',
]
