"""
Demonstration of an idle economy session

This script plays a short scripted session on the real asyncio clock:
clicking the generator, buying upgrades and a boost, watching the market
ticker move, then saving and restoring the whole game.
"""

import asyncio
import json
import logging

from config import load_config
from game import Game
from scheduling import AsyncioScheduler


async def run_session():
    """Play for a few seconds and show how the economy evolves"""

    print("=" * 60)
    print("IDLE ECONOMY SESSION")
    print("=" * 60)
    print()

    game = Game(scheduler=AsyncioScheduler())
    game.ticker.ticker_interval.value = 500  # Speed the market up for the demo

    for name, value in [("Acme Corp", 100.0), ("Globex", 250.0), ("Initech", 40.0), ("Umbrella", 75.0)]:
        game.stock_exchange.list_company(name, value)

    # Click until the first upgrade is affordable
    clicks = 0
    while not game.upgrade_generator():
        game.generate_cash()
        clicks += 1
    print(f"Upgraded after {clicks} clicks -> {game.money_generator.base_cash_per_click.value} per click")

    for _ in range(200):
        game.generate_cash()
    print(f"Balance after 200 more clicks: {game.player.bank.balance.value:.2f}")
    print(f"Boost cost for 3s: {game.money_generator.get_boost_cost(3):.2f}")

    if game.boost_generator(3):
        print(f"Boosted! {game.money_generator.cash_per_click.value} per click "
              f"for {game.money_generator.boosted_seconds_remaining.value}s")

    game.money_generator.boosted_seconds_remaining.subscribe(
        lambda seconds: print(f"  boost: {seconds}s remaining")
    )

    await asyncio.sleep(3.5)

    print()
    print("Market preview (most recent first):")
    for company in game.ticker.companies_preview.value:
        print(f"  {company.name:12s} {company.value.value:10.2f} ({company.stock_value_change.value:+.2f})")
    print()

    saved = json.dumps(game.to_json())
    game.stop()
    print(f"Saved game ({len(saved)} bytes)")

    restored = Game.restore(json.loads(saved), scheduler=AsyncioScheduler())
    print(f"Restored: {restored.money_generator.base_cash_per_click.value} per click, "
          f"balance {restored.player.bank.balance.value:.2f}, "
          f"{len(restored.stock_exchange.companies.value)} companies, "
          f"ticking every {restored.ticker.ticker_interval.value}ms")
    restored.stop()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    load_config()
    asyncio.run(run_session())
