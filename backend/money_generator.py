"""
Money Generator

The manual-click economy: a base yield that grows one unit per upgrade,
a temporary x2 boost bought by the second, and the cost curves for both.

Costs are pure functions of the base yield so the UI can preview them
before the player commits. Every purchase withdraws first and mutates only
if the withdrawal succeeded.
"""

import logging
import math
from typing import Any, Dict, Optional

from config import CONFIG
from player import Bank
from reactive import Computed, Observable
from scheduling import EPOCH, AsyncioScheduler, Scheduler, TimerHandle, add_calendar_seconds
from snapshots import MoneyGeneratorSnapshot

logger = logging.getLogger(__name__)


def floor2(amount: float) -> float:
    """Round down to 2 decimal places."""
    return math.floor(amount * 100) / 100


def upgrade_cost_for(base_cash_per_click: float) -> float:
    """Cost of the next upgrade at a given base yield: floor2(20 * base^2)."""
    generator = CONFIG.generator
    return floor2(generator.upgrade_cost_coefficient * base_cash_per_click ** generator.upgrade_cost_exponent)


def boost_cost_for(seconds: float, base_cash_per_click: float) -> float:
    """Cost of boosting for `seconds` at a given base yield: floor2(seconds * base^1.85)."""
    if seconds < 0:
        raise ValueError(f"boost seconds must be non-negative, got {seconds}")
    return floor2(seconds * base_cash_per_click ** CONFIG.generator.boost_cost_exponent)


class MoneyGenerator:
    """
    Generates money for the player from thin air.

    Observable state:
        base_cash_per_click: yield per click without boosts
        boost_expires: moment the current boost runs out (epoch = none)

    Derived (recomputed on change):
        cash_per_click: doubled while boosted
        upgrade_cost: price of the next +1 upgrade
        boosted_seconds_remaining: whole seconds of boost left, rounded up

    The two time-based cells depend on the clock, which is not observable;
    watch_current_time() touches boost_expires every second so they refresh.
    """

    def __init__(self, scheduler: Optional[Scheduler] = None):
        self._scheduler = scheduler or AsyncioScheduler()
        self._time_watch: Optional[TimerHandle] = None

        self.base_cash_per_click = Observable(CONFIG.generator.starting_cash_per_click)
        self.boost_expires = Observable(EPOCH)

        self.boosted_seconds_remaining = Computed(self._calculate_boosted_seconds_remaining)
        self.upgrade_cost = Computed(lambda: upgrade_cost_for(self.base_cash_per_click.value))
        self.cash_per_click = Computed(self._calculate_cash_per_click)

    def _calculate_boosted_seconds_remaining(self) -> int:
        remaining = (self.boost_expires.value - self._scheduler.now()).total_seconds()
        if remaining <= 0:
            return 0
        return math.ceil(remaining)

    def _calculate_cash_per_click(self) -> int:
        base = self.base_cash_per_click.value
        if self.boost_expires.value > self._scheduler.now():
            return base * CONFIG.generator.boost_multiplier
        return base

    @property
    def is_boosted(self) -> bool:
        return self.boost_expires.peek() > self._scheduler.now()

    def get_boost_cost(self, seconds: float) -> float:
        return boost_cost_for(seconds, self.base_cash_per_click.peek())

    def boost_generator(self, seconds: float, bank: Bank) -> bool:
        """
        Double the generator's output for a limited number of seconds.

        The expiry is rebuilt from local calendar fields (now, whole seconds,
        plus `seconds`), not by adding a raw duration. A new boost replaces
        any boost still running.

        Args:
            seconds: Number of seconds to boost for
            bank: Bank the boost is paid from

        Returns:
            Whether the player could afford the boost
        """
        cost = self.get_boost_cost(seconds)
        if not bank.try_withdraw(cost):
            return False

        self.boost_expires.value = add_calendar_seconds(self._scheduler.now(), seconds, CONFIG.timezone)
        logger.debug(f"Boosted for {seconds}s at a cost of {cost:.2f}")
        return True

    def generate_cash(self, bank: Bank) -> None:
        bank.deposit(self.cash_per_click.value)

    def upgrade_generator(self, bank: Bank) -> bool:
        """
        Upgrade the generator to give 1 more currency per click.

        Returns:
            Whether the player could afford the upgrade
        """
        cost = self.upgrade_cost.value
        if not bank.try_withdraw(cost):
            return False

        self.base_cash_per_click.value = self.base_cash_per_click.peek() + 1
        logger.debug(f"Upgraded generator to {self.base_cash_per_click.peek()} per click for {cost:.2f}")
        return True

    def watch_current_time(self) -> None:
        """Refresh the time-based cells every second. Safe to call more than once."""
        if self._time_watch is not None and not self._time_watch.cancelled:
            return
        self._time_watch = self._scheduler.call_every(
            CONFIG.generator.time_watch_interval_ms,
            self.boost_expires.touch
        )

    def stop_watching_time(self) -> None:
        if self._time_watch is not None:
            self._time_watch.cancel()
            self._time_watch = None

    @property
    def is_watching_time(self) -> bool:
        return self._time_watch is not None and not self._time_watch.cancelled

    def to_json(self) -> Dict[str, Any]:
        return MoneyGeneratorSnapshot(
            base_cash_per_click=self.base_cash_per_click.peek(),
            boost_expires=self.boost_expires.peek()
        ).dump()

    @classmethod
    def restore(cls, saved_money_generator: Any, scheduler: Optional[Scheduler] = None) -> "MoneyGenerator":
        money_generator = cls(scheduler=scheduler)
        snapshot = MoneyGeneratorSnapshot.load(saved_money_generator)
        if snapshot is None:
            return money_generator

        if snapshot.base_cash_per_click is not None:
            money_generator.base_cash_per_click.value = snapshot.base_cash_per_click
        if snapshot.boost_expires is not None:
            money_generator.boost_expires.value = snapshot.boost_expires
        return money_generator
