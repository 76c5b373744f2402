"""
Background portfolio monitor using APScheduler.
Builds the portfolio service and polls prices and exchange balances on fixed intervals.
"""

import logging
import time
from typing import Optional, Union

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config import Settings, get_settings
from db_engine import create_db_engine, init_db
from models import Account, Balance, DataMode
from repositories import TransactionRepository, UserPreferencesRepository
from services import (
    ExchangeClient,
    ExchangeSyncService,
    PortfolioService,
    PriceService,
    SAMPLE_QUOTES,
    SnapshotChannel,
    StaticExchangeClient,
    StaticPriceService,
    TransactionLedger,
    YFinancePriceService,
)

logger = logging.getLogger(__name__)


def _mock_exchange_client() -> StaticExchangeClient:
    return StaticExchangeClient(
        accounts=[Account(id="mock-btc", currency="BTC", name="Bitcoin")],
        balances={"mock-btc": [Balance(currency="BTC", balance=0.5)]},
    )


def build_portfolio(
    settings: Optional[Settings] = None,
    engine=None,
    price_service: Optional[PriceService] = None,
    exchange_client: Optional[ExchangeClient] = None,
    data_mode: Optional[Union[DataMode, str]] = None
) -> PortfolioService:
    """
    Wire the portfolio service and its collaborators.

    Args:
        settings: Application settings (default: global settings)
        engine: Database engine (default: one built from settings.database_url)
        price_service: Override the quote source
        exchange_client: Override the exchange client
        data_mode: Switch to this data mode and remember it for later runs

    Returns:
        A loaded PortfolioService
    """
    settings = settings or get_settings()
    engine = engine or create_db_engine(settings.database_url, settings.db_echo)
    init_db(engine)

    preferences = UserPreferencesRepository(engine)
    if data_mode is not None:
        data_mode = DataMode(data_mode)
        preferences.save_data_mode(data_mode.value)
    else:
        prefs = preferences.get()
        data_mode = DataMode((prefs.data_mode if prefs and prefs.data_mode else settings.data_mode).lower())

    if price_service is None:
        if data_mode is DataMode.MOCK:
            price_service = StaticPriceService(SAMPLE_QUOTES)
        else:
            price_service = YFinancePriceService(
                quote_currency=settings.quote_currency,
                max_workers=settings.fetch_workers,
                retries=settings.price_fetch_retries,
            )

    if exchange_client is None:
        exchange_client = _mock_exchange_client() if data_mode is DataMode.MOCK else StaticExchangeClient()

    portfolio = PortfolioService(
        ledger=TransactionLedger(TransactionRepository(engine)),
        price_service=price_service,
        exchange_sync=ExchangeSyncService(exchange_client),
        preferences=preferences,
        channel=SnapshotChannel(),
        mode=settings.portfolio_mode,
    )
    portfolio.load()
    logger.info(f"Portfolio ready in {data_mode.value} mode ({portfolio.mode.value} holdings)")
    return portfolio


class PortfolioMonitor:
    """
    Polls prices and exchange balances for a portfolio.
    Each job runs at most once at a time; a tick that is still running when
    the next one is due is skipped rather than queued.
    """

    PRICE_JOB_ID = 'price_refresh'
    EXCHANGE_JOB_ID = 'exchange_sync'

    def __init__(
        self,
        portfolio: PortfolioService,
        price_interval: int = 60,
        exchange_interval: int = 60,
        scheduler: Optional[BackgroundScheduler] = None
    ):
        self.portfolio = portfolio
        self.price_interval = price_interval
        self.exchange_interval = exchange_interval
        self.scheduler = scheduler or BackgroundScheduler()

    def refresh_prices(self):
        """Price job. Failures are logged; the next tick retries."""
        try:
            self.portfolio.refresh_prices()
        except Exception as e:
            logger.error(f"Price refresh failed: {e}")

    def sync_exchange(self):
        """Exchange job. Failures are logged; the next tick retries."""
        try:
            self.portfolio.sync_exchange()
        except Exception as e:
            logger.error(f"Exchange sync failed: {e}")

    def run_once(self):
        """Run a single sync + price tick (useful for testing)."""
        self.sync_exchange()
        self.refresh_prices()

    def start(self, run_immediately: bool = True):
        """Schedule both jobs and start the scheduler."""
        self.scheduler.add_job(
            self.refresh_prices,
            trigger=IntervalTrigger(seconds=self.price_interval),
            id=self.PRICE_JOB_ID,
            name='Price Refresh',
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )
        self.scheduler.add_job(
            self.sync_exchange,
            trigger=IntervalTrigger(seconds=self.exchange_interval),
            id=self.EXCHANGE_JOB_ID,
            name='Exchange Sync',
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )

        if run_immediately:
            logger.info("Running initial refresh on startup...")
            self.run_once()

        self.scheduler.start()
        logger.info(
            f"Portfolio monitor started. Prices every {self.price_interval}s, "
            f"exchange every {self.exchange_interval}s."
        )

    def stop(self):
        """Stop the scheduler and the snapshot channel."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        self.portfolio.channel.close(wait=False)
        logger.info("Portfolio monitor stopped.")

    @property
    def running(self) -> bool:
        return self.scheduler.running


def main(argv=None):
    import sys

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    argv = sys.argv[1:] if argv is None else argv
    settings = get_settings()
    data_mode = None
    if "--mock" in argv:
        data_mode = DataMode.MOCK
    elif "--live" in argv:
        data_mode = DataMode.LIVE
    portfolio = build_portfolio(settings, data_mode=data_mode)
    monitor = PortfolioMonitor(
        portfolio,
        price_interval=settings.price_refresh_seconds,
        exchange_interval=settings.exchange_sync_seconds,
    )

    if "--once" in argv:
        monitor.run_once()
        summary = portfolio.summary()
        logger.info(
            f"Total value {summary['total_value']:.2f} {settings.quote_currency}, "
            f"PnL {summary['total_pnl']:.2f} ({summary['total_pnl_pct']:.2f}%)"
        )
        portfolio.channel.close()
        return

    try:
        monitor.start()
        print("\n" + "=" * 60)
        print("CryptoSage Portfolio Monitor is running...")
        print("Press Ctrl+C to stop.")
        print("=" * 60 + "\n")

        while True:
            time.sleep(1)

    except (KeyboardInterrupt, SystemExit):
        logger.info("Shutting down portfolio monitor...")
        monitor.stop()


if __name__ == "__main__":
    main()
