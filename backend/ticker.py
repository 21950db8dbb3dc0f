"""
Market Ticker

Periodically applies a random change to every listed company and keeps a
short, recency-ordered preview of the companies that moved.
"""

import logging
from typing import Any, Dict, List, Optional

from config import CONFIG
from market import Company, StockExchange
from reactive import Computed, Observable
from scheduling import AsyncioScheduler, Scheduler, TimerHandle
from snapshots import TickerSnapshot

logger = logging.getLogger(__name__)


class Ticker:
    """
    Monitors the companies on the exchange and moves their valuations over time.

    Changing `ticker_interval` while ticking cancels the running timer and
    arms a new one straight away, inside the change notification, so the
    cadence switches without a lost or doubled firing. An interval that is
    not a positive integer is rejected with ValueError and the previous
    value is kept, whether or not the ticker is running.
    """

    def __init__(self, stock_exchange: Optional[StockExchange] = None, scheduler: Optional[Scheduler] = None):
        self._scheduler = scheduler or AsyncioScheduler()
        self.stock_exchange = stock_exchange if stock_exchange is not None else StockExchange(scheduler=self._scheduler)

        self.ticker_interval = Observable(CONFIG.ticker.default_interval_ms)
        self.max_previewed_companies = Observable(CONFIG.ticker.default_max_previewed_companies)
        self.companies_preview = Computed(self._calculate_companies_preview)

        self._timer: Optional[TimerHandle] = None
        self._accepted_interval = self.ticker_interval.peek()
        self.ticker_interval.subscribe(self._on_interval_changed)
        self.ticks = 0

    def _calculate_companies_preview(self) -> List[Company]:
        companies = self.stock_exchange.companies.value
        changed = [company for company in companies if company.stock_value_change.value != 0]
        # sorted() is stable, so equal timestamps keep listing order
        most_recent_first = sorted(changed, key=lambda company: company.last_updated.value, reverse=True)
        return most_recent_first[:self.max_previewed_companies.value]

    @property
    def is_ticking(self) -> bool:
        return self._timer is not None

    def start_ticking(self) -> None:
        """Start moving the companies every `ticker_interval` milliseconds."""
        if self._timer is not None:
            return
        self._arm_timer()

    def stop_ticking(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
            logger.info("Ticker stopped")

    def _arm_timer(self) -> None:
        interval = self.ticker_interval.peek()
        self._timer = self._scheduler.call_every(interval, self.tick)
        logger.info(f"Ticker running every {interval}ms")

    def _on_interval_changed(self, interval: int) -> None:
        if interval == self._accepted_interval:
            return
        if not isinstance(interval, int) or interval <= 0:
            # Put the last accepted value back before rejecting, so the cell
            # always describes the running cadence
            self.ticker_interval.value = self._accepted_interval
            raise ValueError(f"ticker_interval must be a positive number of milliseconds, got {interval!r}")

        self._accepted_interval = interval
        if self._timer is not None:
            self._timer.cancel()
            self._arm_timer()

    def tick(self) -> None:
        """Apply one random change to every company, in listing order."""
        self.ticks += 1
        companies = self.stock_exchange.companies.peek()
        failures = 0
        for company in companies:
            try:
                company.make_random_change()
            except Exception as e:
                failures += 1
                logger.error(f"Random change failed for {company.name!r}: {e}", exc_info=True)
        logger.debug(f"Tick {self.ticks}: moved {len(companies) - failures}/{len(companies)} companies")

    def to_json(self) -> Dict[str, Any]:
        return TickerSnapshot(
            max_previewed_companies=self.max_previewed_companies.peek(),
            stock_exchange=self.stock_exchange.to_json(),
            ticker_interval=self.ticker_interval.peek()
        ).dump()

    @classmethod
    def restore(cls, saved_ticker: Any, scheduler: Optional[Scheduler] = None) -> "Ticker":
        scheduler = scheduler or AsyncioScheduler()
        snapshot = TickerSnapshot.load(saved_ticker)
        if snapshot is None:
            return cls(StockExchange.restore(None, scheduler=scheduler), scheduler=scheduler)

        stock_exchange = StockExchange.restore(snapshot.stock_exchange, scheduler=scheduler)
        ticker = cls(stock_exchange, scheduler=scheduler)
        if snapshot.max_previewed_companies is not None:
            ticker.max_previewed_companies.value = snapshot.max_previewed_companies
        if snapshot.ticker_interval is not None:
            ticker.ticker_interval.value = snapshot.ticker_interval
        return ticker
