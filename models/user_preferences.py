"""
UserPreferences model - stores user preferences and settings.
"""

from enum import Enum
from typing import Optional, Set
from sqlmodel import SQLModel, Field


class DataMode(str, Enum):
    """Whether prices and exchange data come from live services or sample data."""
    LIVE = "live"
    MOCK = "mock"


class PortfolioMode(str, Enum):
    """Which data source(s) the published holdings are built from."""
    MANUAL = "manual"  # only ledger transactions
    SYNCED = "synced"  # only exchange-synced balances
    COMBINED = "combined"  # ledger and exchange merged per symbol


class UserPreferences(SQLModel, table=True):
    """Stores user preferences and settings."""
    id: Optional[int] = Field(default=None, primary_key=True)
    data_mode: Optional[str] = None  # None falls back to settings
    portfolio_mode: Optional[str] = None
    favorite_symbols: Optional[str] = Field(default="")  # Comma-separated, e.g. "BTC,ETH"

    @property
    def favorites(self) -> Set[str]:
        """Favorite symbols as an upper-cased set."""
        if not self.favorite_symbols:
            return set()
        return {s.strip().upper() for s in self.favorite_symbols.split(',') if s.strip()}
