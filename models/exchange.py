"""
Exchange account models - records returned by an exchange-sync client.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Account:
    """An exchange account holding a single currency."""
    id: str
    currency: Optional[str] = None  # e.g., "BTC"
    name: Optional[str] = None


@dataclass(frozen=True)
class Balance:
    """Balance of one currency inside an exchange account."""
    currency: str
    balance: float
