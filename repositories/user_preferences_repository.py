"""
UserPreferences Repository - data access layer for UserPreferences model.
"""

from typing import Optional, Iterable
from sqlmodel import Session, select

from db_engine import get_engine
from models import UserPreferences


class UserPreferencesRepository:
    """Repository for UserPreferences CRUD operations."""

    def __init__(self, engine=None):
        self.engine = engine or get_engine()

    def get(self) -> Optional[UserPreferences]:
        """Retrieve user preferences (singleton - only one record expected)."""
        with Session(self.engine) as session:
            statement = select(UserPreferences)
            results = session.exec(statement)
            return results.first()

    def _save(self, **values) -> UserPreferences:
        with Session(self.engine) as session:
            statement = select(UserPreferences)
            prefs = session.exec(statement).first()

            if prefs is None:
                prefs = UserPreferences()
            for key, value in values.items():
                setattr(prefs, key, value)
            session.add(prefs)
            session.commit()
            session.refresh(prefs)
            return prefs

    def save_data_mode(self, data_mode: str) -> UserPreferences:
        """Save or update the live/mock data mode."""
        return self._save(data_mode=data_mode)

    def save_portfolio_mode(self, portfolio_mode: str) -> UserPreferences:
        """Save or update the manual/synced/combined portfolio mode."""
        return self._save(portfolio_mode=portfolio_mode)

    def save_favorites(self, symbols: Iterable[str]) -> UserPreferences:
        """Save the favorite symbol set."""
        favorites = sorted({s.strip().upper() for s in symbols if s and s.strip()})
        return self._save(favorite_symbols=','.join(favorites))
