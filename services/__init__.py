"""
Services package for CryptoSage.
Provides the portfolio core separated from presentation and data layers.
"""

from services.common import (
    normalize_symbol,
    display_name,
    to_yf_symbol,
    COIN_NAMES,
)
from services.errors import (
    PortfolioError,
    TransactionNotFoundError,
    InvalidOperationError,
    InconsistentLedgerError,
    LedgerPersistenceError,
    FetchFailure,
)
from services.reconciler import (
    reconcile,
    reconcile_with_report,
    order_holdings,
    LedgerIssue,
    ReconciliationResult,
)
from services.annotator import annotate
from services.market_data import (
    PriceQuote,
    PriceService,
    StaticPriceService,
    YFinancePriceService,
    SAMPLE_QUOTES,
    split_quotes,
)
from services.exchange_sync import ExchangeClient, StaticExchangeClient, ExchangeSyncService
from services.channel import SnapshotChannel
from services.ledger import TransactionLedger
from services.portfolio import PortfolioService, PortfolioSnapshot, merge_holdings

__all__ = [
    # Common utilities
    'normalize_symbol',
    'display_name',
    'to_yf_symbol',
    'COIN_NAMES',
    # Errors
    'PortfolioError',
    'TransactionNotFoundError',
    'InvalidOperationError',
    'InconsistentLedgerError',
    'LedgerPersistenceError',
    'FetchFailure',
    # Reconciliation
    'reconcile',
    'reconcile_with_report',
    'order_holdings',
    'LedgerIssue',
    'ReconciliationResult',
    'annotate',
    # Data sources
    'PriceQuote',
    'PriceService',
    'StaticPriceService',
    'YFinancePriceService',
    'SAMPLE_QUOTES',
    'split_quotes',
    'ExchangeClient',
    'StaticExchangeClient',
    'ExchangeSyncService',
    # Services
    'SnapshotChannel',
    'TransactionLedger',
    'PortfolioService',
    'PortfolioSnapshot',
    'merge_holdings',
]
