import queue
import threading
from datetime import datetime, timezone

import pytest

from conftest import buy, sell
from models import Account, Balance, PortfolioMode
from services import (
    ExchangeSyncService,
    FetchFailure,
    InvalidOperationError,
    PortfolioService,
    PriceQuote,
    StaticExchangeClient,
    StaticPriceService,
    TransactionLedger,
    TransactionNotFoundError,
    merge_holdings,
    order_holdings,
    reconcile,
)


class TestLedgerOperations:
    def test_add_publishes_snapshot(self, portfolio, channel):
        received = queue.Queue()
        channel.subscribe(received.put)

        portfolio.add_transaction(buy("BTC", 1, 20000, on=1))

        snapshot = received.get(timeout=2)
        assert snapshot.holdings_by_symbol["BTC"].quantity == 1
        assert len(snapshot.transactions) == 1
        assert portfolio.snapshot() is channel.latest()

    def test_end_to_end(self, portfolio):
        portfolio.add_transaction(buy("BTC", 1, 20000, on=1))
        portfolio.add_transaction(buy("BTC", 1, 30000, on=2))
        portfolio.add_transaction(sell("BTC", 1, 35000, on=3))

        btc = portfolio.holdings["BTC"]
        assert btc.quantity == 1
        assert btc.cost_basis == 25000

    def test_exchange_transaction_guard(self, portfolio):
        synced = portfolio.record_synced_transaction(buy("ETH", 2, 1500))
        before = portfolio.snapshot()

        with pytest.raises(InvalidOperationError):
            portfolio.update_transaction(synced.id, buy("ETH", 9, 1))
        with pytest.raises(InvalidOperationError):
            portfolio.delete_transaction(synced.id)

        assert portfolio.snapshot() is before
        assert portfolio.holdings["ETH"].quantity == 2

    def test_not_found(self, portfolio):
        with pytest.raises(TransactionNotFoundError):
            portfolio.delete_transaction("nope")

    def test_reload_restores_ledger(self, portfolio, repository, preferences, price_service):
        portfolio.add_transaction(buy("SOL", 100, 20))

        fresh = PortfolioService(TransactionLedger(repository), price_service, preferences=preferences)
        snapshot = fresh.load()
        assert snapshot.holdings_by_symbol["SOL"].quantity == 100
        fresh.channel.close()


class TestPrices:
    def test_refresh_applies_quotes(self, portfolio):
        portfolio.add_transaction(buy("BTC", 2, 25000))
        portfolio.refresh_prices()

        btc = portfolio.holdings["BTC"]
        assert btc.current_price == 40000.0
        assert btc.unrealized_pnl == 30000.0
        assert not portfolio.snapshot().prices_stale

    def test_quotes_survive_ledger_rebuild(self, portfolio):
        portfolio.add_transaction(buy("BTC", 1, 25000, on=1))
        portfolio.apply_quotes({"BTC": 41000.0})

        portfolio.add_transaction(buy("BTC", 1, 35000, on=2))

        assert portfolio.holdings["BTC"].current_price == 41000.0
        assert portfolio.holdings["BTC"].cost_basis == 30000

    def test_missing_quote_keeps_prior_price(self, portfolio):
        portfolio.add_transaction(buy("BTC", 1, 25000))
        portfolio.add_transaction(buy("ETH", 1, 1500))
        portfolio.apply_quotes({"BTC": 39000.0, "ETH": 1900.0})

        portfolio.apply_quotes({"BTC": 40000.0})

        assert portfolio.holdings["BTC"].current_price == 40000.0
        assert portfolio.holdings["ETH"].current_price == 1900.0

    def test_price_quote_objects_carry_daily_change(self, portfolio):
        portfolio.add_transaction(buy("BTC", 1, 25000))
        portfolio.apply_quotes({"BTC": PriceQuote(price=40000.0, change_pct=-3.2)})
        assert portfolio.holdings["BTC"].daily_change == -3.2

    def test_empty_tick_marks_stale_and_keeps_prices(self, portfolio, price_service):
        portfolio.add_transaction(buy("BTC", 1, 25000))
        portfolio.refresh_prices()

        price_service.set_quotes({})
        assert portfolio.refresh_prices() == {}

        snapshot = portfolio.snapshot()
        assert snapshot.prices_stale
        assert snapshot.holdings_by_symbol["BTC"].current_price == 40000.0

    def test_no_holdings_no_fetch(self, portfolio):
        assert portfolio.refresh_prices() == {}
        assert not portfolio.snapshot().prices_stale


class TestModes:
    @pytest.fixture
    def synced_portfolio(self, portfolio, exchange_client):
        exchange_client.accounts = [
            Account(id="a1", currency="BTC"),
            Account(id="a2", currency="SOL"),
        ]
        exchange_client.balances = {"a1": [Balance("BTC", 0.5)], "a2": [Balance("SOL", 10.0)]}
        portfolio.add_transaction(buy("BTC", 1, 20000))
        portfolio.add_transaction(buy("ETH", 2, 1500))
        portfolio.sync_exchange()
        return portfolio

    def test_manual_mode_ignores_exchange(self, synced_portfolio):
        assert set(synced_portfolio.holdings) == {"BTC", "ETH"}
        assert synced_portfolio.holdings["BTC"].quantity == 1

    def test_synced_mode(self, synced_portfolio):
        snapshot = synced_portfolio.set_mode("synced")
        assert snapshot.mode is PortfolioMode.SYNCED
        assert set(synced_portfolio.holdings) == {"BTC", "SOL"}
        assert synced_portfolio.holdings["BTC"].quantity == 0.5

    def test_combined_mode(self, synced_portfolio):
        synced_portfolio.set_mode(PortfolioMode.COMBINED)
        holdings = synced_portfolio.holdings
        assert set(holdings) == {"BTC", "ETH", "SOL"}
        assert holdings["BTC"].quantity == 1.5
        assert holdings["BTC"].cost_basis == 20000
        assert holdings["SOL"].cost_basis == 0.0

    def test_mode_persisted(self, synced_portfolio, preferences):
        synced_portfolio.set_mode("combined")
        assert preferences.get().portfolio_mode == "combined"

    def test_combined_holdings_sort_by_purchase_date(self, synced_portfolio):
        # Ledger buys date from 2024; synced balances are stamped at sync time
        synced_portfolio.set_mode("combined")
        ordered = order_holdings(synced_portfolio.holdings, key="purchase_date")
        assert [h.symbol for h in ordered] == ["BTC", "ETH", "SOL"]
        assert all(h.purchase_date.tzinfo is not None for h in ordered)

    def test_tracked_symbols_cover_both_sources(self, synced_portfolio):
        assert synced_portfolio.tracked_symbols() == ["BTC", "ETH", "SOL"]

    def test_exchange_failure_keeps_prior_holdings(self, synced_portfolio, exchange_client, monkeypatch):
        synced_portfolio.set_mode("synced")

        def _fail():
            raise FetchFailure("timeout")

        monkeypatch.setattr(exchange_client, "list_accounts", _fail)
        assert synced_portfolio.sync_exchange() is None

        snapshot = synced_portfolio.snapshot()
        assert snapshot.exchange_stale
        assert snapshot.holdings_by_symbol["SOL"].quantity == 10.0

    def test_merge_holdings_leaves_inputs(self):
        manual = reconcile([buy("BTC", 1, 100)])
        synced = reconcile([buy("BTC", 2, 0)])
        merged = merge_holdings(manual, synced)
        assert merged["BTC"].quantity == 3
        assert manual["BTC"].quantity == 1

    def test_no_exchange_service(self, repository, price_service):
        service = PortfolioService(TransactionLedger(repository), price_service)
        assert service.sync_exchange() is None
        service.channel.close()


class TestFavorites:
    def test_toggle_favorite(self, portfolio, preferences):
        portfolio.add_transaction(buy("ETH", 1, 1500))

        assert portfolio.toggle_favorite("eth") is True
        assert portfolio.holdings["ETH"].is_favorite
        assert preferences.get().favorites == {"ETH"}

        assert portfolio.toggle_favorite("ETH") is False
        assert not portfolio.holdings["ETH"].is_favorite

    def test_favorites_restored_on_load(self, portfolio, repository, preferences, price_service):
        portfolio.add_transaction(buy("BTC", 1, 20000))
        portfolio.toggle_favorite("BTC")

        fresh = PortfolioService(TransactionLedger(repository), price_service, preferences=preferences)
        fresh.load()
        assert fresh.holdings["BTC"].is_favorite
        fresh.channel.close()

    def test_direct_ledger_writes_alongside_service_calls(self, portfolio):
        def via_ledger():
            for n in range(20):
                portfolio.ledger.add(buy("BTC", 1, 100 + n))

        def via_service():
            for _ in range(20):
                portfolio.toggle_favorite("BTC")

        threads = [threading.Thread(target=via_ledger, daemon=True),
                   threading.Thread(target=via_service, daemon=True)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert not any(t.is_alive() for t in threads)
        assert portfolio.holdings["BTC"].quantity == 20


class TestDerivedViews:
    @pytest.fixture
    def priced_portfolio(self, portfolio):
        # Cost: 1*100 + 10*50 = 600; value at quotes: 1*300 + 10*70 = 1000
        portfolio.add_transaction(buy("BTC", 1, 100, on=1))
        portfolio.add_transaction(buy("ETH", 10, 50, on=2))
        portfolio.apply_quotes({"BTC": 300.0, "ETH": 70.0})
        return portfolio

    def test_summary(self, priced_portfolio):
        summary = priced_portfolio.summary()
        # value 300 + 700 = 1000, cost 100 + 500 = 600
        assert summary['total_value'] == 1000.0
        assert summary['total_cost'] == 600.0
        assert summary['total_pnl'] == 400.0
        assert summary['total_pnl_pct'] == pytest.approx(66.67)
        assert [row['symbol'] for row in summary['holdings']] == ["BTC", "ETH"]

    def test_allocation(self, priced_portfolio):
        df = priced_portfolio.allocation()
        assert list(df['symbol']) == ["BTC", "ETH"]
        assert list(df['percent']) == pytest.approx([30.0, 70.0])

    def test_allocation_empty(self, portfolio):
        df = portfolio.allocation()
        assert df.empty
        assert list(df.columns) == ['symbol', 'value', 'percent']

    def test_value_history(self, priced_portfolio):
        from conftest import day

        df = priced_portfolio.value_history(days=3, end=day(3))
        assert len(df) == 4
        values = dict(zip(df['date'], df['value']))
        assert values[day(0).date()] == 0.0
        assert values[day(1).date()] == 300.0
        assert values[day(2).date()] == 1000.0
        assert values[day(3).date()] == 1000.0

    def test_snapshot_is_immutable_tuple(self, priced_portfolio):
        snapshot = priced_portfolio.snapshot()
        assert isinstance(snapshot.holdings, tuple)
        assert snapshot.total_value == 1000.0
        assert isinstance(snapshot.generated_at, datetime)

    def test_value_history_defaults_to_today(self, priced_portfolio):
        df = priced_portfolio.value_history(days=2)
        assert len(df) == 3
        assert df['date'].iloc[-1] == datetime.now(timezone.utc).date()
        assert list(df['value']) == [1000.0, 1000.0, 1000.0]
