import pytest
from datetime import datetime, timedelta, timezone

from db_engine import create_db_engine, init_db
from models import Transaction
from repositories import TransactionRepository, UserPreferencesRepository
from services import (
    ExchangeSyncService,
    PortfolioService,
    SnapshotChannel,
    StaticExchangeClient,
    StaticPriceService,
    TransactionLedger,
)

# ── All trades happen at noon on consecutive days from DAY_ONE ──
DAY_ONE = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def day(n: int) -> datetime:
    """Noon on day n (day 1 == DAY_ONE)."""
    return DAY_ONE + timedelta(days=n - 1)


def buy(symbol, quantity, price, on=1, **kwargs) -> Transaction:
    return Transaction(symbol=symbol, quantity=quantity, price_per_unit=price,
                       trade_date=day(on), transaction_type="buy", **kwargs)


def sell(symbol, quantity, price=0.0, on=1, **kwargs) -> Transaction:
    return Transaction(symbol=symbol, quantity=quantity, price_per_unit=price,
                       trade_date=day(on), transaction_type="sell", **kwargs)


@pytest.fixture
def engine(tmp_path):
    """Isolated SQLite database in a temp directory, tables created."""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'test_portfolio.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def repository(engine):
    return TransactionRepository(engine)


@pytest.fixture
def preferences(engine):
    return UserPreferencesRepository(engine)


@pytest.fixture
def ledger(repository):
    ledger = TransactionLedger(repository)
    ledger.load()
    return ledger


@pytest.fixture
def price_service():
    return StaticPriceService({"BTC": 40000.0, "ETH": 2000.0})


@pytest.fixture
def exchange_client():
    return StaticExchangeClient()


@pytest.fixture
def channel():
    channel = SnapshotChannel("test")
    yield channel
    channel.close()


@pytest.fixture
def portfolio(repository, preferences, price_service, exchange_client, channel):
    """
    PortfolioService over the temp DB with static prices and an empty exchange.
    Loaded and ready; holdings empty.
    """
    service = PortfolioService(
        ledger=TransactionLedger(repository),
        price_service=price_service,
        exchange_sync=ExchangeSyncService(exchange_client),
        preferences=preferences,
        channel=channel,
    )
    service.load()
    return service
