"""
Unit tests for Ticker

Tests cover:
- Periodic random changes across every listed company
- Rescheduling when the interval changes mid-run
- Rejection of invalid intervals
- Failure isolation between companies
- The recency-ordered companies preview
- Save/restore round trips
"""

from datetime import datetime, timedelta, timezone

import numpy as np
import pytest
from market import StockExchange
from scheduling import EPOCH, ManualScheduler
from ticker import Ticker


@pytest.fixture
def scheduler():
    return ManualScheduler(datetime(2024, 1, 1, tzinfo=timezone.utc))


@pytest.fixture
def exchange(scheduler):
    return StockExchange(scheduler=scheduler, rng=np.random.default_rng(7))


def make_counting_ticker(scheduler, exchange):
    """Ticker whose tick() only counts, so firings can be asserted exactly."""
    ticker = Ticker(exchange, scheduler=scheduler)
    fired_at = []
    ticker.tick = lambda: fired_at.append(scheduler.elapsed_ms)
    return ticker, fired_at


class TestTickerScheduling:
    """Test suite for the ticker timer"""

    def test_defaults(self, scheduler, exchange):
        """A new ticker runs every 5s, previews 5 companies and is not started"""
        ticker = Ticker(exchange, scheduler=scheduler)

        assert ticker.ticker_interval.value == 5000
        assert ticker.max_previewed_companies.value == 5
        assert not ticker.is_ticking

    def test_fires_every_interval(self, scheduler, exchange):
        """Ticks land on every multiple of the interval"""
        ticker, fired_at = make_counting_ticker(scheduler, exchange)
        ticker.start_ticking()

        scheduler.advance(16_000)

        assert fired_at == [5000, 10_000, 15_000]

    def test_every_company_moves_each_tick(self, scheduler, exchange):
        """One tick stamps every listed company with the tick time"""
        companies = [exchange.list_company(f"Co{i}", 100.0) for i in range(4)]
        ticker = Ticker(exchange, scheduler=scheduler)
        ticker.start_ticking()

        scheduler.advance(5000)

        for company in companies:
            assert company.last_updated.value == scheduler.now()
        assert ticker.ticks == 1

    def test_interval_change_reschedules_without_extra_or_missing_firings(self, scheduler, exchange):
        """Shortening the interval mid-run switches cadence from the moment of change"""
        ticker, fired_at = make_counting_ticker(scheduler, exchange)
        ticker.start_ticking()

        scheduler.advance(12_000)
        assert fired_at == [5000, 10_000]

        ticker.ticker_interval.value = 1000
        assert scheduler.active_timers == 1  # Old timer gone, new one armed

        scheduler.advance(3000)

        # Next firing is one new interval after the change, then every second
        assert fired_at == [5000, 10_000, 13_000, 14_000, 15_000]

    def test_interval_change_at_a_firing_boundary(self, scheduler, exchange):
        """Changing the interval right after a tick does not fire twice"""
        ticker, fired_at = make_counting_ticker(scheduler, exchange)
        ticker.start_ticking()

        scheduler.advance(5000)
        ticker.ticker_interval.value = 2000
        scheduler.advance(4000)

        assert fired_at == [5000, 7000, 9000]

    def test_interval_changed_from_inside_a_tick(self, scheduler, exchange):
        """A tick that changes the interval is followed by ticks at the new cadence"""
        ticker = Ticker(exchange, scheduler=scheduler)
        fired_at = []

        def tick():
            fired_at.append(scheduler.elapsed_ms)
            ticker.ticker_interval.value = 3000

        ticker.tick = tick
        ticker.start_ticking()

        scheduler.advance(11_000)

        assert fired_at == [5000, 8000, 11_000]

    def test_setting_same_interval_does_not_reschedule(self, scheduler, exchange):
        """Assigning the current interval keeps the running timer's phase"""
        ticker, fired_at = make_counting_ticker(scheduler, exchange)
        ticker.start_ticking()

        scheduler.advance(3000)
        ticker.ticker_interval.value = 5000
        scheduler.advance(2000)

        assert fired_at == [5000]

    def test_start_ticking_twice_arms_one_timer(self, scheduler, exchange):
        """start_ticking() is idempotent"""
        ticker, _ = make_counting_ticker(scheduler, exchange)

        ticker.start_ticking()
        ticker.start_ticking()

        assert scheduler.active_timers == 1

    def test_stop_ticking_cancels_timer_and_ignores_later_interval_changes(self, scheduler, exchange):
        """After stop_ticking() an interval change does not re-arm anything"""
        ticker, fired_at = make_counting_ticker(scheduler, exchange)
        ticker.start_ticking()
        scheduler.advance(5000)

        ticker.stop_ticking()
        ticker.ticker_interval.value = 100
        scheduler.advance(10_000)

        assert fired_at == [5000]
        assert scheduler.active_timers == 0

    def test_restarted_ticker_uses_interval_set_while_stopped(self, scheduler, exchange):
        """An interval chosen while stopped takes effect on the next start"""
        ticker, fired_at = make_counting_ticker(scheduler, exchange)
        ticker.ticker_interval.value = 1500

        ticker.start_ticking()
        scheduler.advance(3000)

        assert fired_at == [1500, 3000]

    def test_failing_company_does_not_block_the_rest(self, scheduler, exchange):
        """A company whose change raises is skipped and the others still move"""
        first = exchange.list_company("First", 10.0)
        broken = exchange.list_company("Broken", 10.0)
        last = exchange.list_company("Last", 10.0)

        def explode():
            raise RuntimeError("bad data feed")

        broken.make_random_change = explode
        ticker = Ticker(exchange, scheduler=scheduler)
        ticker.start_ticking()

        scheduler.advance(5000)

        assert first.last_updated.value == scheduler.now()
        assert last.last_updated.value == scheduler.now()
        assert broken.last_updated.value == EPOCH


class TestInvalidInterval:
    """Test suite for rejecting intervals that cannot drive a timer"""

    def test_non_positive_interval_is_rejected_while_ticking(self, scheduler, exchange):
        """A zero interval raises and leaves the value, the cadence and the save untouched"""
        ticker, fired_at = make_counting_ticker(scheduler, exchange)
        ticker.start_ticking()
        saved_before = ticker.to_json()

        with pytest.raises(ValueError, match="positive"):
            ticker.ticker_interval.value = 0

        assert ticker.ticker_interval.peek() == 5000
        assert ticker.to_json() == saved_before
        assert ticker.to_json()["tickerInterval"] == 5000

        scheduler.advance(10_000)
        assert fired_at == [5000, 10_000]

    def test_negative_interval_is_rejected_while_stopped(self, scheduler, exchange):
        """Validation does not depend on the ticker running"""
        ticker = Ticker(exchange, scheduler=scheduler)

        with pytest.raises(ValueError, match="positive"):
            ticker.ticker_interval.value = -250

        assert ticker.ticker_interval.peek() == 5000
        ticker.start_ticking()
        assert scheduler.active_timers == 1

    def test_rejection_keeps_the_last_accepted_interval(self, scheduler, exchange):
        """After a valid change, a rejected one falls back to that change"""
        ticker, fired_at = make_counting_ticker(scheduler, exchange)
        ticker.start_ticking()
        ticker.ticker_interval.value = 2000

        with pytest.raises(ValueError):
            ticker.ticker_interval.value = 0

        assert ticker.ticker_interval.peek() == 2000
        scheduler.advance(4000)
        assert fired_at == [2000, 4000]

    def test_non_integer_interval_is_rejected(self, scheduler, exchange):
        """Intervals are whole milliseconds"""
        ticker = Ticker(exchange, scheduler=scheduler)

        with pytest.raises(ValueError, match="milliseconds"):
            ticker.ticker_interval.value = "fast"

        assert ticker.ticker_interval.peek() == 5000


class TestCompaniesPreview:
    """Test suite for the companies preview"""

    def test_empty_exchange_gives_empty_preview(self, scheduler, exchange):
        """No companies, no preview"""
        assert Ticker(exchange, scheduler=scheduler).companies_preview.value == []

    def test_preview_filters_sorts_and_truncates(self, scheduler, exchange):
        """10 companies, 3 unchanged, max 5 -> the 5 most recently changed"""
        start = scheduler.now()
        for i in range(10):
            change = 0.0 if i in (2, 5, 8) else float(i + 1)
            exchange.list_company(
                f"Co{i}",
                100.0,
                stock_value_change=change,
                last_updated=start + timedelta(minutes=i)
            )
        ticker = Ticker(exchange, scheduler=scheduler)

        preview = ticker.companies_preview.value

        assert [company.name for company in preview] == ["Co9", "Co7", "Co6", "Co4", "Co3"]
        assert all(company.stock_value_change.value != 0 for company in preview)
        stamps = [company.last_updated.value for company in preview]
        assert stamps == sorted(stamps, reverse=True)

    def test_preview_ties_keep_listing_order(self, scheduler, exchange):
        """Companies updated at the same instant appear in listing order"""
        for name in ("A", "B", "C"):
            exchange.list_company(name, 50.0, stock_value_change=1.0, last_updated=scheduler.now())

        preview = Ticker(exchange, scheduler=scheduler).companies_preview.value

        assert [company.name for company in preview] == ["A", "B", "C"]

    def test_preview_follows_company_changes(self, scheduler, exchange):
        """A company enters the preview as soon as its change becomes nonzero"""
        quiet = exchange.list_company("Quiet", 10.0)
        ticker = Ticker(exchange, scheduler=scheduler)
        assert ticker.companies_preview.value == []

        quiet.stock_value_change.value = 1.5
        quiet.last_updated.value = scheduler.now()

        assert ticker.companies_preview.value == [quiet]

    def test_preview_follows_new_listings_and_size_limit(self, scheduler, exchange):
        """Subscribers see the preview change with each listing and with the size limit"""
        ticker = Ticker(exchange, scheduler=scheduler)
        seen = []
        ticker.companies_preview.subscribe(lambda preview: seen.append([c.name for c in preview]))

        exchange.list_company("A", 10.0, stock_value_change=1.0, last_updated=scheduler.now())
        exchange.list_company("B", 10.0, stock_value_change=1.0, last_updated=scheduler.now() + timedelta(seconds=1))
        ticker.max_previewed_companies.value = 1

        assert seen == [["A"], ["B", "A"], ["B"]]

    def test_preview_after_ticking_never_exceeds_limit(self, scheduler, exchange):
        """A busy market never overflows the preview"""
        for i in range(12):
            exchange.list_company(f"Co{i}", 100.0 + i)
        ticker = Ticker(exchange, scheduler=scheduler)
        ticker.max_previewed_companies.value = 4
        ticker.start_ticking()

        scheduler.advance(20_000)

        preview = ticker.companies_preview.value
        assert len(preview) <= 4
        assert all(company.stock_value_change.value != 0 for company in preview)


class TestTickerPersistence:
    """Test suite for Ticker save/restore"""

    def test_default_snapshot(self, scheduler):
        """A fresh ticker saves an empty exchange and the default settings"""
        assert Ticker(scheduler=scheduler).to_json() == {
            "stockExchange": {"companies": []},
            "maxPreviewedCompanies": 5,
            "tickerInterval": 5000,
        }

    def test_restore_none_matches_default_construction(self, scheduler):
        """Restoring nothing gives a fresh ticker"""
        restored = Ticker.restore(None, scheduler=scheduler)

        assert restored.to_json() == Ticker(scheduler=scheduler).to_json()
        assert restored.stock_exchange.companies.value == []
        assert restored.companies_preview.value == []

    def test_round_trip_with_companies(self, scheduler, exchange):
        """Settings, companies and the preview survive a save after ticking"""
        exchange.list_company("Acme", 120.5)
        exchange.list_company("Globex", 80.0)
        ticker = Ticker(exchange, scheduler=scheduler)
        ticker.ticker_interval.value = 2500
        ticker.max_previewed_companies.value = 3
        ticker.start_ticking()
        scheduler.advance(5000)

        restored = Ticker.restore(ticker.to_json(), scheduler=scheduler)

        assert restored.to_json() == ticker.to_json()
        assert [c.name for c in restored.companies_preview.value] == [c.name for c in ticker.companies_preview.value]
        assert not restored.is_ticking

    def test_missing_interval_still_restores_preview_size(self, scheduler):
        """A save without an interval keeps its preview size"""
        restored = Ticker.restore({"maxPreviewedCompanies": 2}, scheduler=scheduler)

        assert restored.max_previewed_companies.value == 2
        assert restored.ticker_interval.value == 5000

    def test_invalid_interval_falls_back_to_default(self, scheduler):
        """A negative saved interval is replaced by the default"""
        restored = Ticker.restore({"tickerInterval": -10, "maxPreviewedCompanies": 8}, scheduler=scheduler)

        assert restored.ticker_interval.value == 5000
        assert restored.max_previewed_companies.value == 8
