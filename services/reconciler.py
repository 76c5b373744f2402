"""
Holdings reconciliation: replays the transaction ledger into per-coin holdings.

Cost basis is a weighted average over buys. Sells reduce quantity and leave
the cost basis untouched. Reconciliation always replays the full ledger, since
editing or deleting a historical entry changes every average computed after it.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional, Sequence

from models import Holding, Transaction
from services.common import display_name, normalize_symbol
from services.errors import InconsistentLedgerError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerIssue:
    """A transaction that could not be applied as recorded."""
    transaction: Transaction
    reason: str  # "sell_without_position" or "oversell"
    message: str


@dataclass
class ReconciliationResult:
    """Holdings produced by a replay, plus any inconsistencies found on the way."""
    holdings: Dict[str, Holding]
    issues: List[LedgerIssue] = field(default_factory=list)

    @property
    def is_consistent(self) -> bool:
        return not self.issues


def _apply_buy(holding: Holding, tx: Transaction) -> Holding:
    new_quantity = holding.quantity + tx.quantity
    if new_quantity > 0:
        new_cost_basis = (holding.quantity * holding.cost_basis + tx.quantity * tx.price_per_unit) / new_quantity
    else:
        new_cost_basis = 0.0
    return replace(holding, quantity=new_quantity, cost_basis=new_cost_basis)


def _open_holding(tx: Transaction, symbol: str, favorites: Iterable[str]) -> Holding:
    return Holding(
        name=display_name(symbol),
        symbol=symbol,
        quantity=tx.quantity,
        cost_basis=tx.price_per_unit,
        current_price=tx.price_per_unit,  # Placeholder until a quote arrives
        purchase_date=tx.trade_date,
        is_favorite=symbol in favorites,
    )


def reconcile_with_report(
    transactions: Sequence[Transaction],
    favorites: Optional[Iterable[str]] = None,
    strict: bool = False,
    log_issues: bool = True
) -> ReconciliationResult:
    """
    Replay transactions into holdings keyed by upper-cased symbol.

    Transactions are applied in trade-date order; entries with equal dates keep
    their ledger order. A sell with no open position is skipped, and a sell
    larger than the position closes it at zero quantity. Both are reported as
    issues rather than aborting the replay.

    Args:
        transactions: Ledger entries in insertion order
        favorites: Symbols to flag as favorites
        strict: Raise InconsistentLedgerError on the first issue instead of recording it
        log_issues: Log a warning for each recorded issue

    Returns:
        ReconciliationResult with holdings in first-acquisition order
    """
    favorite_set = {normalize_symbol(s) for s in (favorites or ())}
    holdings: Dict[str, Holding] = {}
    issues: List[LedgerIssue] = []

    # sorted() is stable, so same-date entries keep insertion order
    for tx in sorted(transactions, key=lambda t: t.trade_date):
        symbol = tx.normalized_symbol
        holding = holdings.get(symbol)

        if holding is None:
            if tx.is_buy:
                holdings[symbol] = _open_holding(tx, symbol, favorite_set)
                continue
            issue = LedgerIssue(
                transaction=tx,
                reason="sell_without_position",
                message=f"Sell of {tx.quantity} {symbol} on {tx.trade_date} has no prior position",
            )
        elif tx.is_buy:
            holdings[symbol] = _apply_buy(holding, tx)
            continue
        elif tx.quantity <= holding.quantity:
            holdings[symbol] = replace(holding, quantity=holding.quantity - tx.quantity)
            continue
        else:
            holdings[symbol] = replace(holding, quantity=0.0)
            issue = LedgerIssue(
                transaction=tx,
                reason="oversell",
                message=(
                    f"Sell of {tx.quantity} {symbol} on {tx.trade_date} exceeds "
                    f"held quantity {holding.quantity}; position closed at zero"
                ),
            )

        if strict:
            raise InconsistentLedgerError(issue.message, transaction=tx)
        if log_issues:
            logger.warning(f"Inconsistent ledger: {issue.message} (transaction {tx.id})")
        issues.append(issue)

    return ReconciliationResult(holdings=holdings, issues=issues)


def reconcile(
    transactions: Sequence[Transaction],
    favorites: Optional[Iterable[str]] = None,
    strict: bool = False
) -> Dict[str, Holding]:
    """Replay transactions into holdings. See reconcile_with_report."""
    return reconcile_with_report(transactions, favorites=favorites, strict=strict).holdings


# Sort keys available for display ordering
SORT_KEYS = {
    "symbol": lambda h: h.symbol,
    "name": lambda h: h.name.lower(),
    "quantity": lambda h: h.quantity,
    "value": lambda h: h.current_value,
    "cost": lambda h: h.total_cost,
    "pnl": lambda h: h.unrealized_pnl,
    "daily_change": lambda h: h.daily_change,
    "purchase_date": lambda h: h.purchase_date,
}


def order_holdings(
    holdings: Dict[str, Holding],
    key: Optional[str] = None,
    descending: bool = False,
    include_closed: bool = False,
    favorites_first: bool = False
) -> List[Holding]:
    """
    Convert a holdings map into a display sequence.

    Args:
        holdings: Holdings keyed by symbol
        key: One of SORT_KEYS, or None to keep first-acquisition order
        descending: Reverse the sort
        include_closed: Keep holdings whose quantity has dropped to zero
        favorites_first: Put favorites ahead of the rest (stable within each group)

    Returns:
        List of Holding objects
    """
    result = [h for h in holdings.values() if include_closed or not h.is_closed]
    if key is not None:
        if key not in SORT_KEYS:
            raise ValueError(f"Unknown sort key: {key}")
        result.sort(key=SORT_KEYS[key], reverse=descending)
    if favorites_first:
        result.sort(key=lambda h: not h.is_favorite)
    return result
