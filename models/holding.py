"""
Holding model - a per-coin aggregate derived from the ledger.
"""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class Holding:
    """
    Quantity and average cost of one coin, annotated with its live price.
    Holdings are rebuilt on every reconciliation and never edited in place.
    """
    name: str  # e.g., "Bitcoin"
    symbol: str  # e.g., "BTC"
    quantity: float
    cost_basis: float  # Weighted-average purchase price per unit
    current_price: float
    purchase_date: datetime  # First buy of the symbol in the ledger; kept when a closed position is reopened
    is_favorite: bool = False
    daily_change: float = 0.0  # 24h price change, percent

    @property
    def current_value(self) -> float:
        return self.quantity * self.current_price

    @property
    def total_cost(self) -> float:
        return self.quantity * self.cost_basis

    @property
    def unrealized_pnl(self) -> float:
        return self.quantity * (self.current_price - self.cost_basis)

    @property
    def pnl_pct(self) -> float:
        """Unrealized gain relative to cost, in percent (0 when there is no cost)."""
        total_cost = self.total_cost
        return (self.unrealized_pnl / total_cost * 100) if total_cost > 0 else 0.0

    @property
    def is_closed(self) -> bool:
        return self.quantity <= 0
