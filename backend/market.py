"""
Stock Market

Companies whose valuations drift over time and the exchange that lists
them. The ticker drives the drift; the exchange handles share trades
against the player's bank.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import numpy as np

from config import CONFIG
from player import Player
from reactive import Observable
from scheduling import EPOCH, AsyncioScheduler, Scheduler
from snapshots import CompanySnapshot, StockExchangeSnapshot

logger = logging.getLogger(__name__)


class Company:
    """
    A listed company.

    value, stock_value_change and last_updated are observable so that
    derived views (the ticker preview) follow every random change.
    """

    def __init__(
        self,
        name: str,
        value: float,
        clock: Callable[[], datetime],
        rng: np.random.Generator,
        stock_value_change: float = 0.0,
        last_updated: datetime = EPOCH
    ):
        if value < 0:
            raise ValueError(f"value cannot be negative, got {value}")
        self.name = name
        self.value = Observable(float(value))
        self.stock_value_change = Observable(float(stock_value_change))
        self.last_updated = Observable(last_updated)
        self._clock = clock
        self._rng = rng

    def make_random_change(self) -> None:
        """Move the valuation by a normally distributed percentage and stamp the time."""
        previous = self.value.peek()
        percent_change = float(self._rng.normal(0.0, CONFIG.market.volatility))
        new_value = max(CONFIG.market.min_company_value, round(previous * (1.0 + percent_change), 2))

        self.value.value = new_value
        self.stock_value_change.value = round(new_value - previous, 2)
        self.last_updated.value = self._clock()

    def to_json(self) -> Dict[str, Any]:
        return CompanySnapshot(
            name=self.name,
            value=self.value.peek(),
            stock_value_change=self.stock_value_change.peek(),
            last_updated=self.last_updated.peek()
        ).dump()

    def __repr__(self) -> str:
        return f"Company({self.name!r}, value={self.value.peek():.2f}, change={self.stock_value_change.peek():+.2f})"


class StockExchange:
    """
    The single exchange every company is listed on.

    `companies` is an observable list in listing order. `selected_company`
    is transient UI state and is not saved.
    """

    def __init__(self, scheduler: Optional[Scheduler] = None, rng: Optional[np.random.Generator] = None):
        self._scheduler = scheduler or AsyncioScheduler()
        self._rng = rng if rng is not None else np.random.default_rng(CONFIG.market.seed)
        self.companies = Observable([])
        self.selected_company = Observable(None)

    def list_company(
        self,
        name: str,
        value: float,
        stock_value_change: float = 0.0,
        last_updated: datetime = EPOCH
    ) -> Company:
        """Add a company at the end of the listing. Names are unique."""
        if not name:
            raise ValueError("company name cannot be empty")
        if self.find_company(name) is not None:
            raise ValueError(f"Company {name!r} is already listed")

        company = Company(
            name=name,
            value=value,
            clock=self._scheduler.now,
            rng=self._rng,
            stock_value_change=stock_value_change,
            last_updated=last_updated
        )
        self.companies.value = self.companies.peek() + [company]
        return company

    def find_company(self, name: str) -> Optional[Company]:
        for company in self.companies.peek():
            if company.name == name:
                return company
        return None

    def _require_company(self, name: str) -> Company:
        company = self.find_company(name)
        if company is None:
            raise ValueError(f"No company named {name!r} is listed")
        return company

    def select_company(self, name: Optional[str]) -> None:
        """Select a company by name, or clear the selection with None."""
        self.selected_company.value = None if name is None else self._require_company(name)

    def buy_shares(self, player: Player, company_name: str, shares: int) -> bool:
        """
        Buy shares at the current valuation.

        Returns:
            False (nothing changed) if the player cannot afford them
        """
        if shares <= 0:
            raise ValueError(f"shares must be positive, got {shares}")
        company = self._require_company(company_name)
        cost = round(company.value.peek() * shares, 2)
        if not player.bank.try_withdraw(cost):
            return False
        player.add_shares(company_name, shares)
        logger.debug(f"Bought {shares} x {company_name} for {cost:.2f}")
        return True

    def sell_shares(self, player: Player, company_name: str, shares: int) -> bool:
        """
        Sell held shares at the current valuation.

        Returns:
            False (nothing changed) if the player holds fewer shares than requested
        """
        if shares <= 0:
            raise ValueError(f"shares must be positive, got {shares}")
        company = self._require_company(company_name)
        if player.shares_of(company_name) < shares:
            return False
        proceeds = round(company.value.peek() * shares, 2)
        player.remove_shares(company_name, shares)
        player.bank.deposit(proceeds)
        logger.debug(f"Sold {shares} x {company_name} for {proceeds:.2f}")
        return True

    def to_json(self) -> Dict[str, Any]:
        return StockExchangeSnapshot(companies=[company.to_json() for company in self.companies.peek()]).dump()

    @classmethod
    def restore(
        cls,
        saved_stock_exchange: Any,
        scheduler: Optional[Scheduler] = None,
        rng: Optional[np.random.Generator] = None
    ) -> "StockExchange":
        stock_exchange = cls(scheduler=scheduler, rng=rng)
        snapshot = StockExchangeSnapshot.load(saved_stock_exchange)
        if snapshot is None or not snapshot.companies:
            return stock_exchange

        restored: List[Company] = []
        for saved_company in snapshot.companies:
            if not saved_company.name or saved_company.value is None:
                logger.warning(f"Skipping saved company without a name or value: {saved_company!r}")
                continue
            if stock_exchange.find_company(saved_company.name) is not None:
                logger.warning(f"Skipping duplicate saved company {saved_company.name!r}")
                continue
            restored.append(stock_exchange.list_company(
                name=saved_company.name,
                value=saved_company.value,
                stock_value_change=saved_company.stock_value_change or 0.0,
                last_updated=saved_company.last_updated or EPOCH
            ))
        logger.debug(f"Restored {len(restored)} companies")
        return stock_exchange
