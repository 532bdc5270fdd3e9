"""Tests for price oracles and the concurrent latest-price fetch."""

from datetime import date, datetime, timedelta
from decimal import Decimal

import pandas as pd
import pytest
import requests

from folioscope import pricingdata
from folioscope.pricingdata import (
    FallbackPriceOracle,
    FinnhubPriceOracle,
    FixedPriceOracle,
    LatestQuote,
    PriceUnavailableError,
    SimulatedPriceOracle,
    YFinancePriceOracle,
    fetch_latest_prices,
)


class TestFixedPriceOracle:
    """Tests for FixedPriceOracle."""

    def test_latest_from_bare_decimal(self):
        oracle = FixedPriceOracle({"AAPL": Decimal("185.92")})
        quote = oracle.get_latest_price("AAPL")
        assert quote.price == Decimal("185.92")
        assert quote.change_percent == Decimal("0")
        assert not quote.simulated

    def test_unknown_symbol_raises(self):
        oracle = FixedPriceOracle({})
        with pytest.raises(PriceUnavailableError, match="ZZZ"):
            oracle.get_latest_price("ZZZ")
        with pytest.raises(ValueError):
            oracle.get_price_as_of("ZZZ", datetime(2025, 1, 1))

    def test_as_of_uses_most_recent_entry_on_or_before(self):
        oracle = FixedPriceOracle(
            {"AAPL": Decimal("200")},
            history={"AAPL": {date(2025, 1, 2): Decimal("110"), date(2025, 1, 6): Decimal("130")}},
        )
        assert oracle.get_price_as_of("AAPL", datetime(2025, 1, 2, 15)) == Decimal("110")
        assert oracle.get_price_as_of("AAPL", datetime(2025, 1, 5)) == Decimal("110")
        assert oracle.get_price_as_of("AAPL", datetime(2025, 1, 7)) == Decimal("130")
        # Before any history, fall back to the latest price
        assert oracle.get_price_as_of("AAPL", datetime(2024, 12, 1)) == Decimal("200")


class TestSimulatedPriceOracle:
    """Tests for SimulatedPriceOracle."""

    def test_deterministic_and_bounded(self):
        oracle = SimulatedPriceOracle()
        when = datetime(2025, 3, 14, 12)
        first = oracle.get_price_as_of("AAPL", when)
        assert first == oracle.get_price_as_of("AAPL", when)
        assert Decimal("185.92") * Decimal("0.9") - Decimal("0.01") <= first
        assert first <= Decimal("185.92") * Decimal("1.1") + Decimal("0.01")

    def test_unknown_symbol_uses_default_price(self):
        oracle = SimulatedPriceOracle(base_prices={}, default_price=Decimal("50"))
        price = oracle.get_price_as_of("NEW", datetime(2025, 3, 14, 12))
        assert Decimal("44.99") <= price <= Decimal("55.01")

    def test_latest_quote_is_flagged_simulated(self):
        quote = SimulatedPriceOracle().get_latest_price("MSFT")
        assert quote.simulated
        assert quote.price > 0


class TestFetchLatestPrices:
    """Tests for fetch_latest_prices()."""

    def test_collects_quotes_and_missing(self):
        oracle = FixedPriceOracle({"AAPL": Decimal("1"), "MSFT": Decimal("2")})
        result = fetch_latest_prices(["MSFT", "NOPE", "AAPL", "MSFT"], oracle, max_workers=3)

        assert list(result.values) == ["MSFT", "AAPL"]
        assert result.missing == ["NOPE"]
        assert not result.simulated

    def test_simulated_flag(self):
        oracle = FixedPriceOracle({
            "AAPL": Decimal("1"),
            "SIM": LatestQuote("SIM", Decimal("3"), Decimal("0"), simulated=True),
        })
        result = fetch_latest_prices(["AAPL", "SIM"], oracle)
        assert result.simulated

    def test_empty(self):
        result = fetch_latest_prices([], FixedPriceOracle({}))
        assert result.values == {}
        assert result.missing == []


class TestFallbackPriceOracle:
    """Tests for FallbackPriceOracle."""

    def test_primary_used_when_available(self):
        oracle = FallbackPriceOracle(FixedPriceOracle({"AAPL": Decimal("100")}))
        quote = oracle.get_latest_price("AAPL")
        assert quote.price == Decimal("100")
        assert not quote.simulated

    def test_fallback_marks_quote_simulated(self):
        fallback = FixedPriceOracle({"AAPL": Decimal("99")})
        oracle = FallbackPriceOracle(FixedPriceOracle({}), fallback)

        quote = oracle.get_latest_price("AAPL")
        assert quote.price == Decimal("99")
        assert quote.simulated
        assert oracle.get_price_as_of("AAPL", datetime(2025, 1, 1)) == Decimal("99")


class _FakeResponse:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self._payload


class TestFinnhubPriceOracle:
    """Tests for FinnhubPriceOracle with a stubbed HTTP session."""

    def test_parses_quote(self, monkeypatch):
        oracle = FinnhubPriceOracle("token", history_oracle=FixedPriceOracle({}), retries=1)
        calls = []

        def fake_get(url, params=None, timeout=None):
            calls.append(params)
            return _FakeResponse({"c": 185.92, "dp": 1.25})

        monkeypatch.setattr(oracle._session, "get", fake_get)
        quote = oracle.get_latest_price("AAPL")

        assert quote.price == Decimal("185.92")
        assert quote.change_percent == Decimal("1.25")
        assert calls == [{"symbol": "AAPL", "token": "token"}]

    def test_empty_quote_is_unavailable(self, monkeypatch):
        oracle = FinnhubPriceOracle("token", history_oracle=FixedPriceOracle({}), retries=1)
        monkeypatch.setattr(oracle._session, "get", lambda *a, **k: _FakeResponse({"c": 0, "dp": None}))
        with pytest.raises(PriceUnavailableError):
            oracle.get_latest_price("AAPL")

    def test_retries_then_gives_up(self, monkeypatch):
        oracle = FinnhubPriceOracle("token", history_oracle=FixedPriceOracle({}), retries=3)
        attempts = []
        sleeps = []

        def failing_get(*args, **kwargs):
            attempts.append(1)
            raise requests.ConnectionError("down")

        monkeypatch.setattr(oracle._session, "get", failing_get)
        monkeypatch.setattr(pricingdata.time, "sleep", sleeps.append)

        with pytest.raises(PriceUnavailableError, match="down"):
            oracle.get_latest_price("AAPL")
        assert len(attempts) == 3
        assert sleeps == [1, 2]

    def test_history_is_delegated(self):
        history = FixedPriceOracle({"AAPL": Decimal("150")})
        oracle = FinnhubPriceOracle("token", history_oracle=history)
        assert oracle.get_price_as_of("AAPL", datetime(2025, 1, 1)) == Decimal("150")


class TestYFinancePriceOracle:
    """Tests for YFinancePriceOracle with stubbed daily data."""

    def _closes(self, rows: dict[date, float]) -> pd.DataFrame:
        return pd.DataFrame({"Date": list(rows), "Close": list(rows.values())})

    def test_as_of_looks_back_over_weekend(self, monkeypatch):
        data = self._closes({date(2025, 1, 2): 100.0, date(2025, 1, 3): 101.234})
        monkeypatch.setattr(pricingdata, "fetch_yfinance_data", lambda *args: data)

        oracle = YFinancePriceOracle()
        # Sunday resolves to Friday's close
        assert oracle.get_price_as_of("AAPL", datetime(2025, 1, 5, 12)) == Decimal("101.23")

    def test_as_of_without_recent_data(self, monkeypatch):
        data = self._closes({date(2024, 12, 1): 90.0})
        monkeypatch.setattr(pricingdata, "fetch_yfinance_data", lambda *args: data)

        with pytest.raises(PriceUnavailableError):
            YFinancePriceOracle().get_price_as_of("AAPL", datetime(2025, 1, 5, 12))

    def test_no_data(self, monkeypatch):
        monkeypatch.setattr(pricingdata, "fetch_yfinance_data", lambda *args: pd.DataFrame(columns=["Date", "Close"]))
        with pytest.raises(PriceUnavailableError):
            YFinancePriceOracle().get_latest_price("AAPL")

    def test_latest_quote_change(self, monkeypatch):
        today = date.today()
        data = self._closes({today - timedelta(days=1): 100.0, today: 102.0})
        monkeypatch.setattr(pricingdata, "fetch_yfinance_data", lambda *args: data)

        quote = YFinancePriceOracle().get_latest_price("AAPL")
        assert quote.price == Decimal("102.00")
        assert quote.change_percent == Decimal("2.00")

    def test_cache_covering_range_skips_network(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        cache_path = pricingdata.get_yfinance_cache_path("AAPL")
        cache_path.parent.mkdir(parents=True)
        self._closes({date(2025, 1, 1): 99.0, date(2025, 1, 10): 105.0}).to_csv(cache_path, index=False)

        def no_network(symbol):
            raise AssertionError("yfinance should not be called")

        monkeypatch.setattr(pricingdata.yf, "Ticker", no_network)
        df = pricingdata.fetch_yfinance_data("AAPL", date(2025, 1, 2), date(2025, 1, 9))
        assert len(df) == 2
        assert df["Date"].iloc[0] == date(2025, 1, 1)

    def test_weekend_requests_stop_at_friday(self, monkeypatch):
        """A cache ending on Friday already covers a Sunday lookup."""
        requested = []

        def fake_fetch(symbol, min_date, max_date, force_cache_refresh):
            requested.append((min_date, max_date))
            return self._closes({date(2025, 1, 3): 101.0})

        monkeypatch.setattr(pricingdata, "fetch_yfinance_data", fake_fetch)
        YFinancePriceOracle().get_price_as_of("AAPL", datetime(2025, 1, 5, 12))

        assert requested == [(date(2024, 12, 24), date(2025, 1, 3))]

    def test_weekend_lookup_is_served_from_cache(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        cache_path = pricingdata.get_yfinance_cache_path("AAPL")
        cache_path.parent.mkdir(parents=True)
        self._closes({date(2024, 12, 20): 95.0, date(2025, 1, 3): 101.0}).to_csv(cache_path, index=False)

        def no_network(symbol):
            raise AssertionError("yfinance should not be called")

        monkeypatch.setattr(pricingdata.yf, "Ticker", no_network)
        assert YFinancePriceOracle().get_price_as_of("AAPL", datetime(2025, 1, 4, 12)) == Decimal("101.00")


def test_last_weekday():
    assert pricingdata.last_weekday(date(2025, 1, 3)) == date(2025, 1, 3)
    assert pricingdata.last_weekday(date(2025, 1, 4)) == date(2025, 1, 3)
    assert pricingdata.last_weekday(date(2025, 1, 5)) == date(2025, 1, 3)
    assert pricingdata.last_weekday(date(2025, 1, 6)) == date(2025, 1, 6)
