"""
Game Controller

Top-level aggregate that owns the player, the money generator and the
ticker (which in turn owns the one stock exchange). Starts every timer on
construction and saves/restores the whole game as one snapshot.
"""

import logging
from typing import Any, Dict, Optional

from config import CONFIG
from market import StockExchange
from money_generator import MoneyGenerator
from player import Player
from reactive import Observable
from scheduling import AsyncioScheduler, Scheduler
from snapshots import GameSnapshot
from ticker import Ticker

logger = logging.getLogger(__name__)


class Game:
    """
    The main controller for the game.

    Constructing a Game initialises it: the money generator starts watching
    the clock and the ticker starts moving the market. Call stop() to cancel
    both timers and initialise() to start them again.
    """

    def __init__(
        self,
        player: Optional[Player] = None,
        money_generator: Optional[MoneyGenerator] = None,
        ticker: Optional[Ticker] = None,
        scheduler: Optional[Scheduler] = None
    ):
        self.scheduler = scheduler or AsyncioScheduler()
        self.player = player if player is not None else Player()
        self.money_generator = money_generator if money_generator is not None else MoneyGenerator(self.scheduler)
        self.ticker = ticker if ticker is not None else Ticker(scheduler=self.scheduler)
        self.current_panel = Observable(CONFIG.default_panel)
        self._initialised = False
        self.initialise()

    @property
    def stock_exchange(self) -> StockExchange:
        return self.ticker.stock_exchange

    def initialise(self) -> None:
        """Start the time watch and the market ticker. Does nothing if they are already running."""
        if self._initialised:
            return
        self.money_generator.watch_current_time()
        self.ticker.start_ticking()
        self._initialised = True
        logger.info(f"Game initialised on panel {self.current_panel.peek()!r}")

    def stop(self) -> None:
        self.money_generator.stop_watching_time()
        self.ticker.stop_ticking()
        self._initialised = False
        logger.info("Game stopped")

    def change_panel(self, panel_name: str) -> None:
        """Show another panel; the company selection always starts fresh."""
        self.current_panel.value = panel_name
        self.stock_exchange.selected_company.value = None

    # Player actions against the player's own bank

    def generate_cash(self) -> None:
        self.money_generator.generate_cash(self.player.bank)

    def upgrade_generator(self) -> bool:
        return self.money_generator.upgrade_generator(self.player.bank)

    def boost_generator(self, seconds: float) -> bool:
        return self.money_generator.boost_generator(seconds, self.player.bank)

    def buy_shares(self, company_name: str, shares: int) -> bool:
        return self.stock_exchange.buy_shares(self.player, company_name, shares)

    def sell_shares(self, company_name: str, shares: int) -> bool:
        return self.stock_exchange.sell_shares(self.player, company_name, shares)

    def to_json(self) -> Dict[str, Any]:
        return GameSnapshot(
            player=self.player.to_json(),
            money_generator=self.money_generator.to_json(),
            ticker=self.ticker.to_json(),
            current_panel=self.current_panel.peek()
        ).dump()

    @classmethod
    def restore(cls, saved_game: Any, scheduler: Optional[Scheduler] = None) -> "Game":
        """
        Rebuild a game from a snapshot produced by to_json().

        Missing or invalid parts fall back to their defaults; None restores a
        brand new game. The restored game is initialised, so its timers run.
        """
        scheduler = scheduler or AsyncioScheduler()
        snapshot = GameSnapshot.load(saved_game)
        if snapshot is None:
            snapshot = GameSnapshot()

        player = Player.restore(snapshot.player)
        money_generator = MoneyGenerator.restore(snapshot.money_generator, scheduler=scheduler)
        ticker = Ticker.restore(snapshot.ticker, scheduler=scheduler)

        game = cls(player, money_generator, ticker, scheduler=scheduler)
        if snapshot.current_panel is not None:
            game.current_panel.value = snapshot.current_panel
        return game
