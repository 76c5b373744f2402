"""
Common utilities and shared functions.
Symbol normalization and coin display names.
"""

from typing import Optional


# Display names for well-known coins; unknown symbols display as themselves
COIN_NAMES = {
    "BTC": "Bitcoin",
    "ETH": "Ethereum",
    "SOL": "Solana",
    "BNB": "BNB",
    "XRP": "XRP",
    "ADA": "Cardano",
    "DOGE": "Dogecoin",
    "DOT": "Polkadot",
    "AVAX": "Avalanche",
    "LINK": "Chainlink",
    "LTC": "Litecoin",
    "MATIC": "Polygon",
    "USDT": "Tether",
    "USDC": "USD Coin",
}


def normalize_symbol(symbol: Optional[str]) -> str:
    """
    Normalize a coin symbol for matching: trimmed and upper-cased.

    Examples:
        normalize_symbol(" btc ") -> "BTC"
        normalize_symbol(None) -> ""
    """
    if not symbol:
        return ""
    return symbol.strip().upper()


def display_name(symbol: str, name: Optional[str] = None) -> str:
    """Return the display name for a coin, falling back to its symbol."""
    if name:
        return name
    normalized = normalize_symbol(symbol)
    return COIN_NAMES.get(normalized, normalized)


def to_yf_symbol(symbol: str, quote_currency: str = "USD") -> str:
    """
    Convert a coin symbol to yfinance format.

    Examples:
        to_yf_symbol("btc") -> "BTC-USD"
        to_yf_symbol("ETH-EUR") -> "ETH-EUR"
    """
    normalized = normalize_symbol(symbol)
    if "-" in normalized:
        return normalized
    return f"{normalized}-{normalize_symbol(quote_currency) or 'USD'}"
