"""
Exchange sync service: turns exchange account balances into holdings.
"""

import logging
import math
from datetime import datetime, timezone
from typing import Dict, List, Mapping, Optional, Sequence

from models import Account, Balance, Holding, to_utc
from services.common import display_name, normalize_symbol
from services.errors import FetchFailure

logger = logging.getLogger(__name__)


def _valid_balance(balance) -> bool:
    return balance is not None and math.isfinite(balance) and balance >= 0


class ExchangeClient:
    """Source of exchange accounts and balances. Calls may raise FetchFailure."""

    def list_accounts(self) -> List[Account]:
        raise NotImplementedError

    def load_balances(self, account_id: str) -> List[Balance]:
        raise NotImplementedError


class StaticExchangeClient(ExchangeClient):
    """In-memory exchange client. Used in mock mode and tests."""

    def __init__(
        self,
        accounts: Optional[Sequence[Account]] = None,
        balances: Optional[Mapping[str, Sequence[Balance]]] = None
    ):
        self.accounts = list(accounts or [])
        self.balances = {k: list(v) for k, v in (balances or {}).items()}

    def list_accounts(self) -> List[Account]:
        return list(self.accounts)

    def load_balances(self, account_id: str) -> List[Balance]:
        if account_id not in self.balances:
            raise FetchFailure(f"Unknown exchange account: {account_id}")
        return list(self.balances[account_id])


class ExchangeSyncService:
    """
    Builds synced holdings from exchange balances.
    Each account contributes the balance entry matching its own currency.
    """

    def __init__(self, client: ExchangeClient):
        self.client = client

    def sync(self, now: Optional[datetime] = None) -> Optional[Dict[str, Holding]]:
        """
        Fetch balances for every account and convert them to holdings.

        Synced balances carry no purchase history, so their cost basis and
        current price start at zero until quotes are applied. Negative or
        non-finite balances are skipped.

        Returns:
            Holdings keyed by symbol, or None if the exchange could not be read
        """
        now = to_utc(now) if now is not None else datetime.now(timezone.utc)
        try:
            accounts = self.client.list_accounts()
            holdings: Dict[str, Holding] = {}
            for account in accounts:
                currency = normalize_symbol(account.currency)
                if not currency:
                    logger.debug(f"Skipping exchange account {account.id} with no currency")
                    continue

                balances = self.client.load_balances(account.id)
                entry = next((b for b in balances if normalize_symbol(b.currency) == currency), None)
                if entry is None:
                    continue
                if not _valid_balance(entry.balance):
                    logger.warning(f"Ignoring invalid {currency} balance on account {account.id}: {entry.balance}")
                    continue

                existing = holdings.get(currency)
                quantity = entry.balance + (existing.quantity if existing else 0.0)
                holdings[currency] = Holding(
                    name=display_name(currency, account.name if existing is None else existing.name),
                    symbol=currency,
                    quantity=quantity,
                    cost_basis=0.0,
                    current_price=0.0,
                    purchase_date=now,
                )
        except Exception as e:
            logger.error(f"Error syncing exchange holdings: {e}")
            return None

        logger.info(f"Synced {len(holdings)} holdings from {len(accounts)} exchange accounts")
        return holdings
