"""
Portfolio service: composes the ledger, price quotes and exchange sync into
published holdings snapshots.

Instances are built explicitly by the application (see monitor.build_portfolio)
and handed to whatever needs them; there is no shared global instance.
"""

import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime, time, timezone
from typing import Dict, List, Mapping, Optional, Set, Tuple, Union

import pandas as pd

from models import Holding, PortfolioMode, Transaction, to_utc
from repositories import UserPreferencesRepository
from services.annotator import annotate, valid_prices
from services.channel import SnapshotChannel
from services.common import normalize_symbol
from services.exchange_sync import ExchangeSyncService
from services.ledger import TransactionLedger
from services.market_data import PriceQuote, PriceService, split_quotes
from services.reconciler import order_holdings, reconcile_with_report

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PortfolioSnapshot:
    """Immutable view of the portfolio handed to display logic."""
    holdings: Tuple[Holding, ...]
    transactions: Tuple[Transaction, ...]
    mode: PortfolioMode
    generated_at: datetime
    prices_stale: bool = False
    exchange_stale: bool = False
    last_price_update: Optional[datetime] = None

    @property
    def holdings_by_symbol(self) -> Dict[str, Holding]:
        return {h.symbol: h for h in self.holdings}

    @property
    def total_value(self) -> float:
        return sum(h.current_value for h in self.holdings)


def merge_holdings(
    manual: Mapping[str, Holding],
    synced: Mapping[str, Holding]
) -> Dict[str, Holding]:
    """
    Combine ledger and exchange holdings per symbol.

    Quantities add up. The ledger's cost basis and purchase date are kept,
    since synced balances carry no purchase history; synced-only coins keep a
    zero cost basis.
    """
    merged = dict(manual)
    for symbol, synced_holding in synced.items():
        existing = merged.get(symbol)
        if existing is None:
            merged[symbol] = synced_holding
        else:
            merged[symbol] = replace(existing, quantity=existing.quantity + synced_holding.quantity)
    return merged


class PortfolioService:
    """
    Service for portfolio state: ledger mutations, price overlays and snapshots.
    All writes are serialized by one lock; every change publishes a new snapshot.
    """

    def __init__(
        self,
        ledger: TransactionLedger,
        price_service: PriceService,
        exchange_sync: Optional[ExchangeSyncService] = None,
        preferences: Optional[UserPreferencesRepository] = None,
        channel: Optional[SnapshotChannel] = None,
        mode: Union[PortfolioMode, str] = PortfolioMode.MANUAL
    ):
        self.ledger = ledger
        self.price_service = price_service
        self.exchange_sync = exchange_sync
        self.preferences = preferences
        self.channel = channel or SnapshotChannel()
        self.mode = PortfolioMode(mode)

        self._lock = threading.RLock()
        self._favorites: Set[str] = set()
        self._quotes: Dict[str, float] = {}
        self._daily_changes: Dict[str, float] = {}
        self._ledger_holdings: Dict[str, Holding] = ledger.holdings
        self._synced_holdings: Dict[str, Holding] = {}
        self._holdings: Dict[str, Holding] = {}
        self._prices_stale = False
        self._exchange_stale = False
        self._last_price_update: Optional[datetime] = None
        self._snapshot: Optional[PortfolioSnapshot] = None

        self.ledger.on_change = self._on_ledger_change

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def load(self) -> PortfolioSnapshot:
        """Restore preferences and the ledger, then publish the first snapshot."""
        with self._lock:
            if self.preferences is not None:
                prefs = self.preferences.get()
                if prefs is not None:
                    self._favorites = prefs.favorites
                    if prefs.portfolio_mode:
                        try:
                            self.mode = PortfolioMode(prefs.portfolio_mode)
                        except ValueError:
                            logger.warning(f"Ignoring unknown portfolio mode: {prefs.portfolio_mode}")
            self.ledger.set_favorites(self._favorites)
            self.ledger.load()  # Publishes through _on_ledger_change
            return self._snapshot or self._rebuild()

    def snapshot(self) -> PortfolioSnapshot:
        """Latest published snapshot."""
        snapshot = self._snapshot
        if snapshot is None:
            with self._lock:
                snapshot = self._snapshot or self._rebuild()
        return snapshot

    @property
    def holdings(self) -> Dict[str, Holding]:
        """Annotated holdings for the current mode, keyed by symbol."""
        return dict(self._holdings)

    # ------------------------------------------------------------------
    # Ledger operations
    # ------------------------------------------------------------------

    def add_transaction(self, transaction: Transaction) -> Transaction:
        with self._lock:
            return self.ledger.add(transaction)

    def update_transaction(self, old_id: str, new_transaction: Transaction) -> Transaction:
        with self._lock:
            return self.ledger.update(old_id, new_transaction)

    def delete_transaction(self, transaction_id: str) -> Transaction:
        with self._lock:
            return self.ledger.delete(transaction_id)

    def record_synced_transaction(self, transaction: Transaction) -> Transaction:
        with self._lock:
            return self.ledger.record_synced(transaction)

    # ------------------------------------------------------------------
    # Prices and exchange sync
    # ------------------------------------------------------------------

    def tracked_symbols(self) -> List[str]:
        """Symbols from the ledger and the exchange, in first-seen order."""
        symbols = list(self._ledger_holdings)
        symbols.extend(s for s in self._synced_holdings if s not in self._ledger_holdings)
        return symbols

    def apply_quotes(
        self,
        quotes: Mapping[str, Union[float, PriceQuote]],
        daily_changes: Optional[Mapping[str, float]] = None
    ) -> PortfolioSnapshot:
        """
        Merge quotes into the quote cache and re-annotate holdings.
        Symbols missing from `quotes` keep their last known price.
        """
        prices: Dict[str, float] = {}
        changes: Dict[str, float] = dict(daily_changes or {})
        for symbol, quote in quotes.items():
            if isinstance(quote, PriceQuote):
                quote_prices, quote_changes = split_quotes({symbol: quote})
                prices.update(quote_prices)
                changes.update(quote_changes)
            else:
                prices[symbol] = quote

        with self._lock:
            self._quotes.update(valid_prices(prices))
            self._daily_changes.update({normalize_symbol(s): c for s, c in changes.items()})
            self._prices_stale = False
            self._last_price_update = datetime.now(timezone.utc)
            return self._rebuild()

    def refresh_prices(self) -> Dict[str, PriceQuote]:
        """
        Fetch quotes for every tracked symbol and apply them.
        An empty result is treated as "no update this tick": prices are kept
        and the snapshot is flagged stale.
        """
        symbols = self.tracked_symbols()
        if not symbols:
            logger.debug("No holdings to price")
            return {}

        quotes = self.price_service.fetch_quotes(symbols)
        if not quotes:
            logger.warning(f"No quotes received for {len(symbols)} symbols, keeping prior prices")
            with self._lock:
                self._prices_stale = True
                self._rebuild()
            return {}

        self.apply_quotes(quotes)
        logger.info(f"Applied {len(quotes)} quotes")
        return quotes

    def sync_exchange(self) -> Optional[Dict[str, Holding]]:
        """
        Refresh exchange-synced holdings.
        On failure the previous synced holdings stay in place.
        """
        if self.exchange_sync is None:
            return None

        synced = self.exchange_sync.sync()
        with self._lock:
            if synced is None:
                self._exchange_stale = True
                self._rebuild()
                return None
            self._synced_holdings = synced
            self._exchange_stale = False
            self._rebuild()
            return dict(synced)

    # ------------------------------------------------------------------
    # Preferences
    # ------------------------------------------------------------------

    def set_mode(self, mode: Union[PortfolioMode, str]) -> PortfolioSnapshot:
        """Switch between manual, synced and combined holdings."""
        mode = PortfolioMode(mode)
        with self._lock:
            self.mode = mode
            if self.preferences is not None:
                self.preferences.save_portfolio_mode(mode.value)
            logger.info(f"Portfolio mode set to {mode.value}")
            return self._rebuild()

    @property
    def favorites(self) -> Set[str]:
        return set(self._favorites)

    def toggle_favorite(self, symbol: str) -> bool:
        """
        Flip the favorite flag for a coin.

        Returns:
            True if the coin is now a favorite
        """
        symbol = normalize_symbol(symbol)
        with self._lock:
            if symbol in self._favorites:
                self._favorites.discard(symbol)
            else:
                self._favorites.add(symbol)
            if self.preferences is not None:
                self.preferences.save_favorites(self._favorites)
            self.ledger.set_favorites(self._favorites)  # Triggers a rebuild
            return symbol in self._favorites

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    def summary(self) -> Dict:
        """
        Calculate total portfolio value and unrealized PnL.

        Returns:
            Dictionary with portfolio totals and per-holding rows
        """
        holdings = order_holdings(self.holdings)
        total_value = sum(h.current_value for h in holdings)
        total_cost = sum(h.total_cost for h in holdings)
        total_pnl = total_value - total_cost
        total_pnl_pct = (total_pnl / total_cost * 100) if total_cost > 0 else 0.0

        return {
            'mode': self.mode.value,
            'total_value': round(total_value, 2),
            'total_cost': round(total_cost, 2),
            'total_pnl': round(total_pnl, 2),
            'total_pnl_pct': round(total_pnl_pct, 2),
            'holdings': [
                {
                    'symbol': h.symbol,
                    'name': h.name,
                    'quantity': h.quantity,
                    'cost_basis': round(h.cost_basis, 2),
                    'current_price': round(h.current_price, 2),
                    'current_value': round(h.current_value, 2),
                    'pnl': round(h.unrealized_pnl, 2),
                    'pnl_pct': round(h.pnl_pct, 2),
                    'daily_change': h.daily_change,
                    'is_favorite': h.is_favorite,
                }
                for h in holdings
            ],
        }

    def allocation(self) -> pd.DataFrame:
        """Share of total value per coin, for the allocation chart."""
        holdings = order_holdings(self.holdings)
        df = pd.DataFrame(
            [{'symbol': h.symbol, 'value': h.current_value} for h in holdings],
            columns=['symbol', 'value']
        )
        total = df['value'].sum()
        df['percent'] = (df['value'] / total * 100) if total > 0 else 0.0
        return df

    def value_history(self, days: int = 30, end: Optional[datetime] = None) -> pd.DataFrame:
        """
        Daily portfolio value over the last `days` days.

        Each day replays the ledger up to the end of that day and values the
        resulting quantities at today's prices. Days are UTC calendar days.

        Returns:
            DataFrame with 'date' and 'value' columns, oldest first
        """
        end = to_utc(end) if end is not None else datetime.now(timezone.utc)
        transactions = self.ledger.transactions
        with self._lock:
            quotes = dict(self._quotes)

        rows = []
        for day in pd.date_range(end=pd.Timestamp(end.date()), periods=days + 1, freq='D'):
            cutoff = datetime.combine(day.date(), time.max, tzinfo=timezone.utc)
            included = [t for t in transactions if t.trade_date <= cutoff]
            result = reconcile_with_report(included, log_issues=False)
            priced = annotate(result.holdings, quotes)
            rows.append({
                'date': day.date(),
                'value': sum(h.current_value for h in priced.values()),
            })
        return pd.DataFrame(rows, columns=['date', 'value'])

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _on_ledger_change(self, holdings: Dict[str, Holding]):
        with self._lock:
            # Callbacks run outside the ledger lock and may arrive out of order
            self._ledger_holdings = self.ledger.holdings
            self._rebuild()

    def _base_holdings(self) -> Dict[str, Holding]:
        synced = {
            s: replace(h, is_favorite=s in self._favorites)
            for s, h in self._synced_holdings.items()
        }
        if self.mode is PortfolioMode.SYNCED:
            return synced
        if self.mode is PortfolioMode.COMBINED:
            return merge_holdings(self._ledger_holdings, synced)
        return dict(self._ledger_holdings)

    def _rebuild(self) -> PortfolioSnapshot:
        holdings = annotate(self._base_holdings(), self._quotes, self._daily_changes)
        self._holdings = holdings
        snapshot = PortfolioSnapshot(
            holdings=tuple(order_holdings(holdings, include_closed=True)),
            transactions=self.ledger.transactions,
            mode=self.mode,
            generated_at=datetime.now(timezone.utc),
            prices_stale=self._prices_stale,
            exchange_stale=self._exchange_stale,
            last_price_update=self._last_price_update,
        )
        self._snapshot = snapshot
        self.channel.publish(snapshot)
        return snapshot
