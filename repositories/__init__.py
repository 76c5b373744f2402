"""
Repositories package for CryptoSage.
Provides data access layer for all database operations.
"""

from repositories.transaction_repository import TransactionRepository
from repositories.user_preferences_repository import UserPreferencesRepository

__all__ = [
    'TransactionRepository',
    'UserPreferencesRepository',
]
