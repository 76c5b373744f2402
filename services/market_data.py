"""
Market data services for fetching live coin prices.
Uses yfinance crypto tickers (e.g. "BTC-USD") and fetches symbols in parallel.
Enhanced with tenacity for retry logic and resilience.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Optional, Tuple, Union

import yfinance as yf
from tenacity import Retrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from services.common import normalize_symbol, to_yf_symbol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PriceQuote:
    """Latest price for a coin, with its 24h change when the source provides one."""
    price: float
    change_pct: Optional[float] = None


# Sample quotes used in mock data mode
SAMPLE_QUOTES = {
    "BTC": PriceQuote(price=35000.0, change_pct=2.1),
    "ETH": PriceQuote(price=1800.0, change_pct=-1.2),
    "SOL": PriceQuote(price=20.0, change_pct=3.5),
}


def split_quotes(quotes: Mapping[str, PriceQuote]) -> Tuple[Dict[str, float], Dict[str, float]]:
    """Split quotes into (prices, daily_changes) maps for the annotator."""
    prices = {symbol: quote.price for symbol, quote in quotes.items()}
    changes = {symbol: quote.change_pct for symbol, quote in quotes.items() if quote.change_pct is not None}
    return prices, changes


class PriceService:
    """
    Source of live price quotes.
    Implementations never raise: a failed fetch yields an empty map.
    """

    def fetch_quotes(self, symbols: Iterable[str]) -> Dict[str, PriceQuote]:
        raise NotImplementedError


class StaticPriceService(PriceService):
    """Serves quotes from a fixed table. Used in mock mode and tests."""

    def __init__(self, quotes: Optional[Mapping[str, Union[float, PriceQuote]]] = None):
        self.quotes: Dict[str, PriceQuote] = {}
        self.set_quotes(quotes or {})

    def set_quotes(self, quotes: Mapping[str, Union[float, PriceQuote]]):
        self.quotes = {
            normalize_symbol(symbol): quote if isinstance(quote, PriceQuote) else PriceQuote(price=float(quote))
            for symbol, quote in quotes.items()
        }

    def fetch_quotes(self, symbols: Iterable[str]) -> Dict[str, PriceQuote]:
        wanted = {normalize_symbol(s) for s in symbols}
        return {symbol: quote for symbol, quote in self.quotes.items() if symbol in wanted}


class YFinancePriceService(PriceService):
    """
    Fetches coin prices from Yahoo Finance.
    Each ticker is retried with exponential backoff; the batch runs on a thread pool.
    """

    def __init__(self, quote_currency: str = "USD", max_workers: int = 8, retries: int = 3):
        self.quote_currency = quote_currency
        self.max_workers = max_workers
        self._retrying = Retrying(
            stop=stop_after_attempt(retries),
            wait=wait_exponential(multiplier=1, min=2, max=10),
            retry=retry_if_exception_type(Exception),
            reraise=True
        )

    @staticmethod
    def _fetch_ticker_info(yf_symbol: str) -> Dict:
        """Fetch ticker info."""
        ticker = yf.Ticker(yf_symbol)
        return ticker.info

    @staticmethod
    def _fetch_last_close(yf_symbol: str) -> Optional[float]:
        """Fetch the most recent close from the last two days of history."""
        hist = yf.Ticker(yf_symbol).history(period="2d")
        if hist.empty:
            return None
        return float(hist['Close'].iloc[-1])

    def fetch_quote(self, symbol: str) -> Optional[PriceQuote]:
        """Fetch the current quote for one coin, or None if unavailable."""
        yf_symbol = to_yf_symbol(symbol, self.quote_currency)
        try:
            info = self._retrying.copy()(self._fetch_ticker_info, yf_symbol)

            # Try multiple price fields
            price = info.get('regularMarketPrice') or info.get('currentPrice') or info.get('lastPrice')
            change_pct = info.get('regularMarketChangePercent')

            if price is None:
                price = self._retrying.copy()(self._fetch_last_close, yf_symbol)

            if price:
                return PriceQuote(
                    price=float(price),
                    change_pct=float(change_pct) if change_pct is not None else None
                )
            logger.warning(f"Could not retrieve price for {yf_symbol}")
            return None

        except Exception as e:
            logger.error(f"Error fetching price for {yf_symbol}: {e}")
            return None

    def fetch_quotes(self, symbols: Iterable[str]) -> Dict[str, PriceQuote]:
        """
        Fetch quotes for several coins in parallel.

        Args:
            symbols: Coin symbols, e.g. ["BTC", "ETH"]

        Returns:
            Dict of symbol -> PriceQuote for every symbol that could be priced
        """
        unique_symbols = sorted({normalize_symbol(s) for s in symbols if normalize_symbol(s)})
        if not unique_symbols:
            return {}

        quotes = {}
        try:
            with ThreadPoolExecutor(max_workers=min(self.max_workers, len(unique_symbols))) as executor:
                future_to_symbol = {
                    executor.submit(self.fetch_quote, symbol): symbol
                    for symbol in unique_symbols
                }
                for future in as_completed(future_to_symbol):
                    symbol = future_to_symbol[future]
                    quote = future.result()
                    if quote is not None:
                        quotes[symbol] = quote
        except Exception as e:
            logger.error(f"Price batch fetch failed: {e}")
            return {}

        logger.debug(f"Fetched {len(quotes)}/{len(unique_symbols)} quotes")
        return quotes
