from conftest import buy, sell
from models import TransactionOrigin, TransactionType


class TestTransactionRepository:
    def test_empty_ledger(self, repository):
        assert repository.load_all() == []
        assert repository.count() == 0

    def test_round_trip_preserves_fields(self, repository):
        tx = sell("eth", 1.25, 1999.5, on=4, origin="exchange")
        repository.save_all([tx])

        [loaded] = repository.load_all()
        assert loaded == tx
        assert loaded.transaction_type is TransactionType.SELL
        assert loaded.origin is TransactionOrigin.EXCHANGE

    def test_save_replaces_previous_contents(self, repository):
        repository.save_all([buy("BTC", 1, 1), buy("ETH", 1, 1)])
        repository.save_all([buy("SOL", 1, 1)])

        loaded = repository.load_all()
        assert [t.symbol for t in loaded] == ["SOL"]
        assert repository.count() == 1

    def test_insertion_order_not_date_order(self, repository):
        txs = [buy("BTC", 1, 1, on=3), buy("ETH", 1, 1, on=1), buy("SOL", 1, 1, on=2)]
        repository.save_all(txs)
        assert [t.symbol for t in repository.load_all()] == ["BTC", "ETH", "SOL"]


class TestUserPreferencesRepository:
    def test_no_preferences_initially(self, preferences):
        assert preferences.get() is None

    def test_favorites_normalized(self, preferences):
        preferences.save_favorites(["eth", " btc ", "ETH", ""])
        prefs = preferences.get()
        assert prefs.favorite_symbols == "BTC,ETH"
        assert prefs.favorites == {"BTC", "ETH"}

    def test_single_row_updated(self, preferences):
        preferences.save_portfolio_mode("combined")
        preferences.save_data_mode("mock")
        prefs = preferences.get()
        assert prefs.portfolio_mode == "combined"
        assert prefs.data_mode == "mock"
        assert prefs.id == 1
