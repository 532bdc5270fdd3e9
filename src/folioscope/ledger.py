from dataclasses import dataclass
from datetime import datetime, date
from decimal import Decimal, InvalidOperation
from enum import Enum
from math import ceil
from typing import Any
from zoneinfo import ZoneInfo

import json
import os
import warnings

import pandas as pd

# Default timezone for transactions without timezone info
NYC_TIMEZONE = ZoneInfo("America/New_York")

EXCEL_COLUMNS = ["ID", "DATE", "TYPE", "SYMBOL", "NAME", "SHARES", "PRICE", "TOTAL", "CATEGORY"]


def _normalize_transaction_datetime(dt: datetime) -> tuple[datetime, bool, bool]:
    """
    Normalize a transaction datetime to ensure it has timezone information.

    If timezone is missing, assumes NYC timezone.
    If time is midnight (00:00:00), assumes 12:00 PM as the time may be missing.

    Args:
        dt: The datetime to normalize.

    Returns:
        A tuple of (normalized_datetime, time_was_missing, timezone_was_missing).
    """
    time_was_missing = False
    timezone_was_missing = False

    if dt.hour == 0 and dt.minute == 0 and dt.second == 0 and dt.microsecond == 0:
        dt = dt.replace(hour=12, minute=0, second=0, microsecond=0)
        time_was_missing = True

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=NYC_TIMEZONE)
        timezone_was_missing = True

    return dt, time_was_missing, timezone_was_missing


class TransactionType(Enum):
    """Enumeration of supported ledger transaction types."""

    BUY = "buy"
    SELL = "sell"
    DIVIDEND = "dividend"
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"

    @property
    def is_trade(self) -> bool:
        """True for transaction types that move shares (BUY and SELL)."""
        return self in (TransactionType.BUY, TransactionType.SELL)


@dataclass(frozen=True)
class Transaction:
    """A single immutable ledger entry.

    ``total`` is the authoritative cash amount of the entry. ``shares`` and
    ``price`` drive position accounting for BUY and SELL entries.
    """

    id: str
    transaction_datetime: datetime
    transaction_type: TransactionType
    symbol: str = ""
    name: str = ""
    shares: Decimal = Decimal("0")
    price: Decimal = Decimal("0")
    total: Decimal = Decimal("0")
    category: str = ""

    def __repr__(self):
        return (
            f"Transaction(id={self.id}, date={self.transaction_datetime}, type={self.transaction_type.value}, "
            f"symbol={self.symbol}, shares={self.shares}, price={self.price}, total={self.total})"
        )


@dataclass
class TransactionStats:
    """Aggregate buy/sell figures for a ledger."""

    total_buys: Decimal
    total_sells: Decimal
    buy_count: int
    sell_count: int
    net_cash_flow: Decimal
    last_transaction: Transaction | None
    days_since_last_transaction: int | None


def validate_transaction(txn: Transaction) -> None:
    """Reject a malformed transaction at ingestion time.

    Args:
        txn: The transaction to check.

    Raises:
        ValueError: If amounts are negative, a trade has no symbol, or a
            trade has zero shares or a zero price.
    """
    if txn.shares < 0 or txn.price < 0 or txn.total < 0:
        raise ValueError(f"Negative amount in transaction: {txn}")

    if txn.transaction_type.is_trade:
        if not txn.symbol:
            raise ValueError(f"Missing symbol on {txn.transaction_type.value} transaction: {txn}")
        if txn.shares == 0:
            raise ValueError(f"Zero shares on {txn.transaction_type.value} transaction: {txn}")
        if txn.price == 0:
            raise ValueError(f"Zero price on {txn.transaction_type.value} transaction: {txn}")


def _is_blank(value: Any) -> bool:
    """True for cells pandas or JSON leave empty (None, NaN, NaT, whitespace)."""
    if value is None or value is pd.NaT:
        return True
    if isinstance(value, str):
        return not value.strip()
    return isinstance(value, float) and pd.isna(value)


def _to_decimal(value: Any, field_name: str) -> Decimal | None:
    if _is_blank(value):
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"Invalid number for {field_name}: {value!r}") from e


def _to_text(value: Any) -> str:
    if _is_blank(value):
        return ""
    return str(value).strip()


def _build_transaction(item: dict[str, Any], index: int) -> tuple[Transaction, bool, bool]:
    """Build and validate a Transaction from a loosely-typed record.

    Returns:
        A tuple of (transaction, time_was_missing, timezone_was_missing).
    """
    raw_date = item.get("date")
    if _is_blank(raw_date):
        raise ValueError(f"Transaction #{index + 1} has no date")
    if isinstance(raw_date, pd.Timestamp):
        raw_datetime = raw_date.to_pydatetime()
    elif isinstance(raw_date, datetime):
        raw_datetime = raw_date
    elif isinstance(raw_date, date):
        raw_datetime = datetime(raw_date.year, raw_date.month, raw_date.day)
    else:
        parsed = pd.to_datetime(raw_date)
        if parsed is pd.NaT:
            raise ValueError(f"Transaction #{index + 1} has no date")
        raw_datetime = parsed.to_pydatetime()  # type: ignore[union-attr]
    transaction_datetime, time_missing, tz_missing = _normalize_transaction_datetime(raw_datetime)

    transaction_type = TransactionType(_to_text(item.get("type")).lower())
    shares = _to_decimal(item.get("shares"), "shares") or Decimal("0")
    price = _to_decimal(item.get("price"), "price") or Decimal("0")
    total = _to_decimal(item.get("total"), "total")
    if total is None:
        total = shares * price

    txn_id = _to_text(item.get("id")) or f"tx-{index + 1}"

    transaction = Transaction(
        id=txn_id,
        transaction_datetime=transaction_datetime,
        transaction_type=transaction_type,
        symbol=_to_text(item.get("symbol")).upper(),
        name=_to_text(item.get("name")),
        shares=shares,
        price=price,
        total=total,
        category=_to_text(item.get("category")),
    )
    validate_transaction(transaction)
    return transaction, time_missing, tz_missing


def _warn_about_assumptions(file_path: str, any_missing_time: bool, any_missing_timezone: bool) -> None:
    if any_missing_time and any_missing_timezone:
        warnings.warn(
            f"Some transactions in '{file_path}' were missing time and timezone information. "
            f"Assuming 12:00 PM NYC time (America/New_York) for these transactions.",
            UserWarning
        )
    elif any_missing_time:
        warnings.warn(
            f"Some transactions in '{file_path}' were missing time information. "
            f"Assuming 12:00 PM for these transactions.",
            UserWarning
        )
    elif any_missing_timezone:
        warnings.warn(
            f"Some transactions in '{file_path}' were missing timezone information. "
            f"Assuming NYC timezone (America/New_York) for these transactions.",
            UserWarning
        )


def _build_ledger(records: list[dict[str, Any]], file_path: str) -> list[Transaction]:
    transactions: list[Transaction] = []
    any_missing_time = False
    any_missing_timezone = False

    for index, item in enumerate(records):
        transaction, time_missing, tz_missing = _build_transaction(item, index)
        any_missing_time = any_missing_time or time_missing
        any_missing_timezone = any_missing_timezone or tz_missing
        transactions.append(transaction)

    # Emit warnings once after processing all transactions
    _warn_about_assumptions(file_path, any_missing_time, any_missing_timezone)
    return transactions


def load_ledger_from_json(file_path: str) -> list[Transaction]:
    """
    Load a transaction ledger from a JSON file.

    Args:
        file_path: Path to the JSON file containing transactions.

    Returns:
        The transactions in file order.

    Raises:
        ValueError: If the file is not a list or any row is malformed.

    Expected JSON structure:
        [
            {
                "id": "1",
                "date": "2024-01-15T10:30:00",
                "type": "buy",
                "symbol": "AAPL",
                "name": "Apple Inc.",
                "shares": 10,
                "price": 150.50,
                "total": 1505.00,
                "category": "Technology"
            },
            ...
        ]
    """
    with open(file_path, "r") as f:
        data = json.load(f)

    if not isinstance(data, list):
        raise ValueError("JSON file must contain a list of transactions")

    return _build_ledger(data, file_path)  # type: ignore[arg-type]


def load_ledger_from_excel(file_path: str) -> list[Transaction]:
    """
    Load a transaction ledger from an Excel file.

    Args:
        file_path: Path to the Excel file containing transactions.

    Returns:
        The transactions in row order.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If required columns are missing or any row is malformed.

    Expected Excel columns (order independent):
        ID, DATE, TYPE, SYMBOL, NAME, SHARES, PRICE, TOTAL, CATEGORY.
        ID, NAME, TOTAL and CATEGORY may be empty.
    """
    if not os.path.exists(file_path):
        raise FileNotFoundError(f"Ledger file not found: {file_path}")

    df = pd.read_excel(file_path)

    if df.empty:
        return []

    required_columns = {"DATE", "TYPE", "SYMBOL", "SHARES", "PRICE"}
    missing_columns = required_columns - set(df.columns)
    if missing_columns:
        raise ValueError(f"Missing required columns: {missing_columns}")

    records: list[dict[str, Any]] = []
    for _, row in df.iterrows():
        records.append({
            column.lower(): row[column]
            for column in EXCEL_COLUMNS
            if column in df.columns
        })

    return _build_ledger(records, file_path)


def load_ledger(file_path: str) -> list[Transaction]:
    """Load a ledger, picking the reader from the file extension (.json or .xlsx)."""
    extension = os.path.splitext(file_path)[1].lower()
    if extension == ".json":
        return load_ledger_from_json(file_path)
    if extension in (".xlsx", ".xls"):
        return load_ledger_from_excel(file_path)
    raise ValueError(f"Unsupported ledger format: {extension or file_path}")


def sort_transactions(transactions: list[Transaction], descending: bool = False) -> list[Transaction]:
    """Return a new list sorted by transaction datetime.

    The sort is stable, so entries with equal datetimes keep ledger order.
    """
    return sorted(transactions, key=lambda t: t.transaction_datetime, reverse=descending)


def _as_datetime(value: datetime | date) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=NYC_TIMEZONE)
        return value
    return datetime(value.year, value.month, value.day, tzinfo=NYC_TIMEZONE)


def filter_transactions(
    transactions: list[Transaction],
    transaction_type: TransactionType | None = None,
    symbol: str | None = None,
    category: str | None = None,
    date_from: datetime | date | None = None,
    date_to: datetime | date | None = None,
    search: str | None = None,
    sort_by: str = "transaction_datetime",
    descending: bool = True,
    limit: int | None = None,
    offset: int = 0,
) -> list[Transaction]:
    """
    Filter, sort and paginate a ledger.

    Args:
        transactions: The ledger to query. It is not modified.
        transaction_type: Keep only this type.
        symbol: Keep only this symbol (case-insensitive).
        category: Keep only this category.
        date_from: Keep transactions on or after this point. A plain date
            means the start of that day.
        date_to: Keep transactions on or before this point. A plain date
            includes the whole day.
        search: Case-insensitive substring matched against symbol, name
            and category.
        sort_by: Transaction attribute to sort on.
        descending: Sort direction.
        limit: Maximum number of results. None returns everything.
        offset: Number of results to skip before applying ``limit``.

    Returns:
        The matching transactions.

    Raises:
        ValueError: If ``sort_by`` is not a Transaction attribute.
    """
    if sort_by not in Transaction.__dataclass_fields__:
        raise ValueError(f"Cannot sort transactions by '{sort_by}'")

    result = list(transactions)

    if transaction_type is not None:
        result = [t for t in result if t.transaction_type == transaction_type]

    if symbol:
        result = [t for t in result if t.symbol.upper() == symbol.upper()]

    if category:
        result = [t for t in result if t.category == category]

    if date_from is not None:
        start = _as_datetime(date_from)
        result = [t for t in result if t.transaction_datetime >= start]

    if date_to is not None:
        if isinstance(date_to, datetime):
            result = [t for t in result if t.transaction_datetime <= _as_datetime(date_to)]
        else:
            result = [t for t in result if t.transaction_datetime.astimezone(NYC_TIMEZONE).date() <= date_to]

    if search:
        needle = search.lower()
        result = [
            t for t in result
            if needle in t.symbol.lower() or needle in t.name.lower() or needle in t.category.lower()
        ]

    def sort_key(t: Transaction) -> Any:
        value = getattr(t, sort_by)
        if isinstance(value, Enum):
            return value.value
        return value

    result.sort(key=sort_key, reverse=descending)

    if limit is not None:
        return result[offset:offset + limit]
    return result[offset:]


def recent_transactions(transactions: list[Transaction], limit: int = 5) -> list[Transaction]:
    """Return the ``limit`` most recent transactions, newest first."""
    return filter_transactions(transactions, limit=limit)


def calculate_transaction_stats(
    transactions: list[Transaction],
    today: datetime | None = None
) -> TransactionStats:
    """
    Summarize buy and sell activity across a ledger.

    Args:
        transactions: The ledger to summarize.
        today: Reference time for ``days_since_last_transaction``.
            Defaults to the current time.

    Returns:
        A TransactionStats. ``net_cash_flow`` is total buys minus total sells.
        For an empty ledger the last transaction and day count are None.
    """
    buys = [t for t in transactions if t.transaction_type == TransactionType.BUY]
    sells = [t for t in transactions if t.transaction_type == TransactionType.SELL]
    total_buys = sum((t.total for t in buys), Decimal("0"))
    total_sells = sum((t.total for t in sells), Decimal("0"))

    last_transaction: Transaction | None = None
    days_since: int | None = None
    if transactions:
        last_transaction = max(transactions, key=lambda t: t.transaction_datetime)
        now = _as_datetime(today) if today is not None else datetime.now(NYC_TIMEZONE)
        elapsed = abs((now - last_transaction.transaction_datetime).total_seconds())
        days_since = ceil(elapsed / 86400)

    return TransactionStats(
        total_buys=total_buys,
        total_sells=total_sells,
        buy_count=len(buys),
        sell_count=len(sells),
        net_cash_flow=total_buys - total_sells,
        last_transaction=last_transaction,
        days_since_last_transaction=days_since,
    )
