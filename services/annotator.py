"""
Price annotation: overlays live quotes onto reconciled holdings.
"""

import logging
import math
from dataclasses import replace
from typing import Dict, Mapping, Optional

from models import Holding
from services.common import normalize_symbol

logger = logging.getLogger(__name__)


def valid_prices(quotes: Mapping[str, float]) -> Dict[str, float]:
    """Drop negative, missing or non-finite quotes and normalize symbol keys."""
    prices = {}
    for symbol, price in quotes.items():
        if price is None or not math.isfinite(price) or price < 0:
            logger.warning(f"Ignoring invalid quote for {symbol}: {price}")
            continue
        prices[normalize_symbol(symbol)] = float(price)
    return prices


def annotate(
    holdings: Mapping[str, Holding],
    quotes: Mapping[str, float],
    daily_changes: Optional[Mapping[str, float]] = None
) -> Dict[str, Holding]:
    """
    Apply quotes to holdings without touching quantity or cost basis.

    Holdings with no quote keep their previous current price. The input map is
    not modified; a new map is returned. Applying the same quotes twice gives
    the same result as applying them once.

    Args:
        holdings: Holdings keyed by symbol
        quotes: Latest price per symbol (case-insensitive keys)
        daily_changes: Optional 24h change percent per symbol

    Returns:
        New dict of annotated holdings, in the input order
    """
    prices = valid_prices(quotes)
    changes = {normalize_symbol(s): c for s, c in (daily_changes or {}).items() if c is not None}

    annotated = {}
    for key, holding in holdings.items():
        symbol = normalize_symbol(holding.symbol)
        updates = {}
        if symbol in prices:
            updates['current_price'] = prices[symbol]
        if symbol in changes:
            updates['daily_change'] = float(changes[symbol])
        annotated[key] = replace(holding, **updates) if updates else holding
    return annotated
