"""
Game Configuration

Cost curves, timer cadences and market drift for the idle economy, with
optional IDLE_* overrides read from the environment or a .env file.
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv


@dataclass
class GeneratorConfig:
    """Money generator cost curves and boost parameters."""

    starting_cash_per_click: int = 1

    # Upgrade cost = coefficient * base^exponent
    upgrade_cost_coefficient: float = 20.0
    upgrade_cost_exponent: float = 2.0

    # Boost cost = seconds * base^exponent
    boost_cost_exponent: float = 1.85
    boost_multiplier: int = 2  # Yield multiplier while boosted

    time_watch_interval_ms: int = 1000  # Refresh rate for time-based displays


@dataclass
class TickerConfig:
    """Market ticker cadence and preview size."""

    default_interval_ms: int = 5000
    default_max_previewed_companies: int = 5


@dataclass
class MarketConfig:
    """Company valuation drift."""

    volatility: float = 0.05  # Std dev of the per-tick percentage move
    min_company_value: float = 0.01  # Valuations never fall below a cent
    seed: Optional[int] = None  # Fixed seed for reproducible markets


@dataclass
class GameConfig:
    """Master configuration for the whole game."""

    # Sub-configurations
    generator: GeneratorConfig = field(default_factory=GeneratorConfig)
    ticker: TickerConfig = field(default_factory=TickerConfig)
    market: MarketConfig = field(default_factory=MarketConfig)

    default_panel: str = "MoneyGenerator"  # The first panel the player sees
    timezone: Optional[str] = None  # IANA name for boost calendar arithmetic, None = system local

    def __post_init__(self):
        """Validation and derived values."""
        if self.generator.starting_cash_per_click < 0:
            raise ValueError("starting_cash_per_click cannot be negative")
        if self.generator.time_watch_interval_ms <= 0:
            raise ValueError("time_watch_interval_ms must be positive")
        if self.ticker.default_interval_ms <= 0:
            raise ValueError("default_interval_ms must be positive")
        if self.ticker.default_max_previewed_companies < 0:
            raise ValueError("default_max_previewed_companies cannot be negative")
        if self.market.volatility < 0:
            raise ValueError("volatility must be non-negative")
        if self.market.min_company_value < 0:
            raise ValueError("min_company_value must be non-negative")


def load_config(env_file: Optional[str] = None, config: Optional[GameConfig] = None) -> GameConfig:
    """
    Apply IDLE_* environment overrides to a config, in place.

    A .env file is loaded first (python-dotenv) so local overrides can live
    next to the code without touching the shell environment. Modules read
    the global CONFIG at call time, so overriding it affects games created
    afterwards.

    Args:
        env_file: Path to a .env file; None searches upward for one
        config: Config to update; defaults to the global CONFIG
    """
    load_dotenv(env_file)

    if config is None:
        config = CONFIG

    interval = os.getenv("IDLE_TICKER_INTERVAL_MS")
    if interval:
        config.ticker.default_interval_ms = int(interval)
    max_previewed = os.getenv("IDLE_MAX_PREVIEWED_COMPANIES")
    if max_previewed:
        config.ticker.default_max_previewed_companies = int(max_previewed)
    volatility = os.getenv("IDLE_MARKET_VOLATILITY")
    if volatility:
        config.market.volatility = float(volatility)
    seed = os.getenv("IDLE_MARKET_SEED")
    if seed:
        config.market.seed = int(seed)
    timezone = os.getenv("IDLE_TIMEZONE")
    if timezone:
        config.timezone = timezone

    # Re-run validation now that overrides are applied
    config.__post_init__()
    return config


# Global configuration instance
CONFIG = GameConfig()
