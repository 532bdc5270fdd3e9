from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from datetime import datetime, date, timedelta
from math import sin
from pathlib import Path
import concurrent.futures
import sys
import time

import pandas as pd
import requests
import yfinance as yf  # type: ignore[import-untyped]

# Track which symbols have been force-refreshed this session
_refreshed_symbols: set[str] = set()

# When True, print status messages during data fetching (e.g. "Fetching AAPL …").
verbose: bool = False

FINNHUB_QUOTE_URL = "https://finnhub.io/api/v1/quote"

# Base prices used by the simulated oracle when no table is supplied.
DEFAULT_SIMULATED_PRICES: dict[str, Decimal] = {
    "AAPL": Decimal("185.92"),
    "MSFT": Decimal("408.35"),
    "GOOGL": Decimal("161.25"),
    "AMZN": Decimal("182.40"),
    "TSLA": Decimal("235.45"),
    "NVDA": Decimal("950.02"),
    "META": Decimal("480.00"),
    "JPM": Decimal("198.75"),
    "V": Decimal("275.35"),
    "JNJ": Decimal("158.22"),
    "PG": Decimal("162.50"),
    "KO": Decimal("62.45"),
    "DIS": Decimal("108.75"),
    "INTC": Decimal("43.25"),
}


class PriceUnavailableError(ValueError):
    """Raised by a price oracle that cannot price a symbol."""

    def __init__(self, symbol: str, detail: str = ""):
        self.symbol = symbol
        message = f"No price data available for {symbol}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


@dataclass(frozen=True)
class LatestQuote:
    """The most recent price for a symbol and its percent change on the day."""

    symbol: str
    price: Decimal
    change_percent: Decimal
    simulated: bool = False


@dataclass
class PriceFetchResult:
    """Outcome of a batch of latest-price lookups.

    ``simulated`` is True when any returned quote came from a simulated
    source. Symbols that could not be priced at all are listed in ``missing``.
    """

    values: dict[str, LatestQuote] = field(default_factory=dict)
    simulated: bool = False
    missing: list[str] = field(default_factory=list)


class PriceOracle(ABC):
    """Abstract base class for all price sources used by the engine."""

    @abstractmethod
    def get_latest_price(self, symbol: str) -> LatestQuote:
        raise NotImplementedError("This method should be overridden by subclasses.")

    @abstractmethod
    def get_price_as_of(self, symbol: str, price_datetime: datetime) -> Decimal:
        raise NotImplementedError("This method should be overridden by subclasses.")


def fetch_latest_prices(
    symbols: list[str],
    oracle: PriceOracle,
    max_workers: int = 8
) -> PriceFetchResult:
    """
    Look up the latest quote for several symbols in parallel.

    A symbol the oracle cannot price is recorded in ``missing`` and does not
    affect the other lookups.

    Args:
        symbols: Symbols to price. Duplicates are looked up once.
        oracle: The price source.
        max_workers: Upper bound on concurrent lookups.

    Returns:
        A PriceFetchResult keyed by symbol, in the order symbols were given.
    """
    unique_symbols = list(dict.fromkeys(symbols))
    result = PriceFetchResult()
    if not unique_symbols:
        return result

    quotes: dict[str, LatestQuote] = {}
    with concurrent.futures.ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(unique_symbols)))) as pool:
        futures = {
            pool.submit(oracle.get_latest_price, symbol): symbol
            for symbol in unique_symbols
        }
        for future in concurrent.futures.as_completed(futures):
            symbol = futures[future]
            try:
                quotes[symbol] = future.result()
            except PriceUnavailableError:
                continue

    for symbol in unique_symbols:
        quote = quotes.get(symbol)
        if quote is None:
            result.missing.append(symbol)
            continue
        result.values[symbol] = quote
        if quote.simulated:
            result.simulated = True

    return result


class FixedPriceOracle(PriceOracle):
    """Price oracle backed by explicit in-memory tables.

    Latest quotes come from ``latest``. Historical lookups use ``history``
    (symbol -> {date: price}) and take the most recent entry on or before
    the requested date, falling back to the latest price.
    """

    def __init__(
        self,
        latest: dict[str, LatestQuote | Decimal],
        history: dict[str, dict[date, Decimal]] | None = None
    ):
        """Initialize with price tables.

        Args:
            latest: Symbol to latest quote. A bare Decimal is treated as a
                quote with zero percent change.
            history: Optional symbol to {date: close price} mapping.
        """
        self.latest: dict[str, LatestQuote] = {}
        for symbol, value in latest.items():
            if isinstance(value, LatestQuote):
                self.latest[symbol] = value
            else:
                self.latest[symbol] = LatestQuote(symbol=symbol, price=value, change_percent=Decimal("0"))
        self.history = history or {}

    def get_latest_price(self, symbol: str) -> LatestQuote:
        quote = self.latest.get(symbol)
        if quote is None:
            raise PriceUnavailableError(symbol)
        return quote

    def get_price_as_of(self, symbol: str, price_datetime: datetime) -> Decimal:
        target_date = price_datetime.date()
        series = self.history.get(symbol)
        if series:
            eligible = [d for d in series if d <= target_date]
            if eligible:
                return series[max(eligible)]
        return self.get_latest_price(symbol).price


class SimulatedPriceOracle(PriceOracle):
    """Deterministic stand-in for a market data feed.

    Historical prices swing within ±10% of the base price following a sine
    of the day number, so repeated calls for the same date agree.
    """

    def __init__(
        self,
        base_prices: dict[str, Decimal] | None = None,
        default_price: Decimal = Decimal("100")
    ):
        self.base_prices = base_prices if base_prices is not None else DEFAULT_SIMULATED_PRICES
        self.default_price = default_price

    def _base_price(self, symbol: str) -> Decimal:
        return self.base_prices.get(symbol, self.default_price)

    def get_latest_price(self, symbol: str) -> LatestQuote:
        today = datetime.combine(date.today(), datetime.min.time())
        yesterday = today - timedelta(days=1)
        price = self.get_price_as_of(symbol, today)
        previous = self.get_price_as_of(symbol, yesterday)
        change = ((price - previous) / previous * 100).quantize(Decimal("0.01")) if previous else Decimal("0")
        return LatestQuote(symbol=symbol, price=price, change_percent=change, simulated=True)

    def get_price_as_of(self, symbol: str, price_datetime: datetime) -> Decimal:
        epoch_days = price_datetime.timestamp() / 86400
        factor = Decimal(str(sin(epoch_days) * 0.1))
        return (self._base_price(symbol) * (1 + factor)).quantize(Decimal("0.01"))


def get_yfinance_cache_path(symbol: str) -> Path:
    """Get the cache file path for a given symbol.

    Args:
        symbol: The ticker symbol (e.g., "AAPL", "MSFT").

    Returns:
        Path to the CSV cache file under ``.cache/yfinance_prices/``.
    """
    return Path.cwd() / ".cache" / "yfinance_prices" / f"{symbol}.csv"


def fetch_yfinance_data(symbol: str, min_date: date, max_date: date, force_cache_refresh: bool = False) -> pd.DataFrame:
    """
    Fetch daily closes for a symbol from yfinance, using the CSV cache.

    If cached data covers the requested range it is returned directly.
    Otherwise the request is widened to cover the cache as well, and the
    merged result is written back.

    Args:
        symbol: The ticker symbol (e.g., "AAPL", "MSFT").
        min_date: The minimum date needed.
        max_date: The maximum date needed.
        force_cache_refresh: If True, force a fresh fetch from Yahoo Finance
            (only once per symbol per session).

    Returns:
        DataFrame with columns Date and Close, sorted by Date. Empty when
        nothing could be fetched.
    """
    cache_path = get_yfinance_cache_path(symbol)

    cached_df: pd.DataFrame | None = None
    cached_min: date | None = None
    cached_max: date | None = None

    if cache_path.exists():
        try:
            cached_df = pd.read_csv(cache_path)
            if not cached_df.empty:
                cached_df['Date'] = pd.to_datetime(cached_df['Date']).dt.date
                cached_min = cached_df['Date'].min()
                cached_max = cached_df['Date'].max()
        except (OSError, ValueError, KeyError, pd.errors.ParserError):
            # Corrupted cache is refetched
            cached_df = None

    fetch_start = min_date
    fetch_end = max_date

    should_force_refresh = force_cache_refresh and symbol not in _refreshed_symbols

    if should_force_refresh:
        need_fetch = True
        if cached_min is not None and cached_max is not None:
            fetch_start = min(min_date, cached_min)
            fetch_end = max(max_date, cached_max)
    elif cached_df is None or cached_df.empty or cached_min is None or cached_max is None:
        need_fetch = True
    elif min_date < cached_min or max_date > cached_max:
        need_fetch = True
        fetch_start = min(min_date, cached_min)
        fetch_end = max(max_date, cached_max)
    else:
        need_fetch = False

    if not need_fetch:
        assert cached_df is not None
        return cached_df

    _refreshed_symbols.add(symbol)

    # yfinance end date is exclusive
    fetch_end_exclusive = fetch_end + timedelta(days=1)

    if verbose:
        print(f"  Fetching {symbol} ({fetch_start} to {fetch_end}) …", flush=True)
    try:
        ticker = yf.Ticker(symbol)
        new_df: pd.DataFrame = ticker.history(  # type: ignore[call-arg]
            start=fetch_start.isoformat(),
            end=fetch_end_exclusive.isoformat(),
            auto_adjust=False
        )
    except Exception as e:
        # yfinance raises a variety of errors on rate limiting and network failures
        print(f"Warning: yfinance request failed for {symbol}: {e}", file=sys.stderr)
        if cached_df is not None and not cached_df.empty:
            return cached_df
        return pd.DataFrame(columns=['Date', 'Close'])

    if new_df.empty:
        print(f"Warning: yfinance returned no data for {symbol} (possible rate limiting)", file=sys.stderr)
        if cached_df is not None and not cached_df.empty:
            return cached_df
        return pd.DataFrame(columns=['Date', 'Close'])

    new_df = new_df.reset_index()
    new_df['Date'] = pd.to_datetime(new_df['Date']).dt.date
    new_df = new_df[['Date', 'Close']]

    if cached_df is not None and not cached_df.empty:
        combined_df = pd.concat([cached_df[['Date', 'Close']], new_df], ignore_index=True)
        combined_df = combined_df.drop_duplicates(subset=['Date'], keep='last')
        combined_df = combined_df.sort_values('Date').reset_index(drop=True)
    else:
        combined_df = new_df.sort_values('Date').reset_index(drop=True)

    cache_path.parent.mkdir(parents=True, exist_ok=True)
    combined_df.to_csv(cache_path, index=False)

    return combined_df


def last_weekday(day: date) -> date:
    """Return the day itself, or the Friday before it if it falls on a weekend."""
    while day.weekday() >= 5:
        day -= timedelta(days=1)
    return day


class YFinancePriceOracle(PriceOracle):
    """Daily closing prices from Yahoo Finance."""

    def __init__(self, force_cache_refresh: bool = False):
        """Initialize the yfinance oracle.

        Args:
            force_cache_refresh: If True, bypass the disk cache and fetch
                fresh data from Yahoo Finance (once per symbol per session).
        """
        self.force_cache_refresh = force_cache_refresh

    def _closes(self, symbol: str, target_date: date) -> pd.DataFrame:
        # Markets are shut at weekends, so a cache ending on Friday covers them
        session_date = last_weekday(target_date)
        # Ask for a window before the target so holidays resolve too
        df = fetch_yfinance_data(symbol, session_date - timedelta(days=10), session_date, self.force_cache_refresh)
        if df.empty:
            raise PriceUnavailableError(symbol)
        return df[df['Date'] <= target_date].sort_values('Date')

    def get_latest_price(self, symbol: str) -> LatestQuote:
        """Get the latest close and its change from the previous close."""
        closes = self._closes(symbol, date.today())
        if closes.empty:
            raise PriceUnavailableError(symbol, "no recent closes")

        price = Decimal(str(closes.iloc[-1]['Close'])).quantize(Decimal("0.01"))
        change = Decimal("0")
        if len(closes) > 1:
            previous = Decimal(str(closes.iloc[-2]['Close']))
            if previous != 0:
                change = ((price - previous) / previous * 100).quantize(Decimal("0.01"))
        return LatestQuote(symbol=symbol, price=price, change_percent=change)

    def get_price_as_of(self, symbol: str, price_datetime: datetime) -> Decimal:
        """Get the close for a symbol on a date.

        If no data is available for the requested date (weekend, holiday),
        looks back up to 7 days to find the most recent trading day.
        """
        target_date = price_datetime.date()
        closes = self._closes(symbol, target_date)
        earliest = target_date - timedelta(days=7)
        window = closes[closes['Date'] >= earliest]
        if window.empty:
            raise PriceUnavailableError(symbol, f"none on {target_date} or the previous 7 days")
        return Decimal(str(window.iloc[-1]['Close'])).quantize(Decimal("0.01"))


class FinnhubPriceOracle(PriceOracle):
    """Latest quotes from Finnhub; historical prices from another oracle."""

    def __init__(
        self,
        api_key: str,
        history_oracle: PriceOracle | None = None,
        retries: int = 3,
        timeout: float = 10.0
    ):
        """Initialize the Finnhub client.

        Args:
            api_key: Finnhub API token.
            history_oracle: Oracle used for ``get_price_as_of``. Defaults to
                YFinancePriceOracle.
            retries: Attempts per quote request.
            timeout: Per-request timeout in seconds.
        """
        self._api_key = api_key
        self.history_oracle = history_oracle or YFinancePriceOracle()
        self.retries = max(1, retries)
        self.timeout = timeout
        self._session = requests.Session()

    def _request_quote(self, symbol: str) -> dict[str, object]:
        last_error: Exception | None = None
        for attempt in range(self.retries):
            try:
                response = self._session.get(
                    FINNHUB_QUOTE_URL,
                    params={"symbol": symbol, "token": self._api_key},
                    timeout=self.timeout,
                )
                response.raise_for_status()
                return response.json()
            except (requests.RequestException, ValueError) as e:
                last_error = e
                if attempt < self.retries - 1:
                    # Linear backoff: 1s, 2s, ...
                    time.sleep(attempt + 1)
        raise PriceUnavailableError(symbol, str(last_error))

    def get_latest_price(self, symbol: str) -> LatestQuote:
        if verbose:
            print(f"  Fetching quote for {symbol} …", flush=True)
        data = self._request_quote(symbol)
        current = data.get("c")
        if not current:
            raise PriceUnavailableError(symbol, "empty quote")
        change = data.get("dp") or 0
        return LatestQuote(
            symbol=symbol,
            price=Decimal(str(current)),
            change_percent=Decimal(str(change)),
        )

    def get_price_as_of(self, symbol: str, price_datetime: datetime) -> Decimal:
        return self.history_oracle.get_price_as_of(symbol, price_datetime)


class FallbackPriceOracle(PriceOracle):
    """Try a primary oracle and fall back to a secondary one per symbol.

    Latest quotes served by the fallback are flagged ``simulated``.
    """

    def __init__(self, primary: PriceOracle, fallback: PriceOracle | None = None):
        self.primary = primary
        self.fallback = fallback or SimulatedPriceOracle()

    def get_latest_price(self, symbol: str) -> LatestQuote:
        try:
            return self.primary.get_latest_price(symbol)
        except PriceUnavailableError as e:
            print(f"Warning: {e}; using simulated data", file=sys.stderr)
            quote = self.fallback.get_latest_price(symbol)
            return LatestQuote(
                symbol=quote.symbol,
                price=quote.price,
                change_percent=quote.change_percent,
                simulated=True,
            )

    def get_price_as_of(self, symbol: str, price_datetime: datetime) -> Decimal:
        try:
            return self.primary.get_price_as_of(symbol, price_datetime)
        except PriceUnavailableError as e:
            print(f"Warning: {e}; using simulated data", file=sys.stderr)
            return self.fallback.get_price_as_of(symbol, price_datetime)
