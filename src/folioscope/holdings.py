"""Current holdings reconstructed from a transaction ledger."""

from dataclasses import dataclass
from decimal import Decimal

import warnings

from .ledger import Transaction, TransactionType
from .pricingdata import PriceOracle, fetch_latest_prices

ZERO = Decimal("0")
HUNDRED = Decimal("100")


class Holding():
    """An open position with its cost basis and market valuation."""

    def __init__(
        self,
        symbol: str,
        name: str,
        category: str,
        shares: Decimal,
        cost_basis: Decimal,
        price: Decimal = ZERO,
        change: Decimal = ZERO,
        price_missing: bool = False,
        price_simulated: bool = False,
    ):
        """Initialize a Holding.

        Args:
            symbol: Ticker symbol of the held asset.
            name: Display name, taken from the latest trade of the symbol.
            category: Free-text classification, taken from the latest trade.
            shares: Number of shares held. Always positive.
            cost_basis: Weighted-average price paid per open share.
            price: Latest market price. Zero when ``price_missing``.
            change: Latest percent change of the price on the day.
            price_missing: True if no price could be found for the symbol.
                The holding is then left out of value and allocation totals.
            price_simulated: True if the price came from a simulated source.
        """
        self.symbol: str = symbol
        self.name: str = name
        self.category: str = category
        self.shares: Decimal = shares
        self.cost_basis: Decimal = cost_basis
        self.price: Decimal = price
        self.change: Decimal = change
        self.price_missing: bool = price_missing
        self.price_simulated: bool = price_simulated
        self.allocation: Decimal = ZERO

    @property
    def value(self) -> Decimal:
        """Market value of the position (shares * price)."""
        if self.price_missing:
            return ZERO
        return self.shares * self.price

    @property
    def book_value(self) -> Decimal:
        """Total amount paid for the open shares."""
        return self.shares * self.cost_basis

    @property
    def gain(self) -> Decimal:
        """Percent gain of the market price over the cost basis."""
        if self.price_missing or self.cost_basis == 0:
            return ZERO
        return (self.price - self.cost_basis) / self.cost_basis * HUNDRED

    def __repr__(self):
        return f"Holding(symbol={self.symbol}, shares={self.shares}, cost_basis={self.cost_basis}, price={self.price})"


class _OpenPosition():
    """Running state for one symbol during the fold."""

    def __init__(self, name: str, category: str):
        self.name = name
        self.category = category
        self.shares = ZERO
        self.cost_basis = ZERO


def _fold_positions(transactions: list[Transaction]) -> dict[str, _OpenPosition]:
    positions: dict[str, _OpenPosition] = {}

    for txn in transactions:
        if not txn.transaction_type.is_trade or not txn.symbol:
            continue

        position = positions.get(txn.symbol)

        if txn.transaction_type == TransactionType.BUY:
            if position is None:
                position = _OpenPosition(txn.name, txn.category)
                positions[txn.symbol] = position
            total_shares = position.shares + txn.shares
            if total_shares > 0:
                position.cost_basis = (position.shares * position.cost_basis + txn.shares * txn.price) / total_shares
            else:
                position.cost_basis = ZERO
            position.shares = total_shares

        else:
            if position is None:
                # Selling a symbol that is not held opens nothing
                continue
            # Average cost survives partial sales
            position.shares -= txn.shares

        position.name = txn.name or position.name
        position.category = txn.category or position.category

        if position.shares <= 0:
            del positions[txn.symbol]

    return positions


def compute_holdings(
    transactions: list[Transaction],
    price_oracle: PriceOracle,
    max_workers: int = 8
) -> list[Holding]:
    """
    Fold a ledger into the currently open holdings.

    Transactions are processed in the order given, not by date. Sort the
    ledger first (see ``ledger.sort_transactions``) when cost basis must
    follow chronology. Only BUY and SELL entries with a symbol change
    positions. A symbol whose shares fall to zero or below is dropped at
    that point, so a later BUY starts a fresh average cost.

    Latest prices are looked up concurrently. A symbol the oracle cannot
    price is kept with ``price_missing`` set and is excluded from the value
    and allocation totals.

    Args:
        transactions: The ledger. It is not modified.
        price_oracle: Source of latest prices.
        max_workers: Upper bound on concurrent price lookups.

    Returns:
        Holdings in the order their symbols were opened. Allocations sum to
        100 when the total value is positive and are all zero otherwise.
    """
    positions = _fold_positions(transactions)
    if not positions:
        return []

    prices = fetch_latest_prices(list(positions), price_oracle, max_workers=max_workers)
    if prices.missing:
        warnings.warn(
            f"No price available for {', '.join(prices.missing)}; "
            f"excluded from portfolio value and allocation.",
            UserWarning
        )

    holdings: list[Holding] = []
    for symbol, position in positions.items():
        quote = prices.values.get(symbol)
        holding = Holding(
            symbol=symbol,
            name=position.name,
            category=position.category,
            shares=position.shares,
            cost_basis=position.cost_basis,
        )
        if quote is None:
            holding.price_missing = True
        else:
            holding.price = quote.price
            holding.change = quote.change_percent
            holding.price_simulated = quote.simulated
        holdings.append(holding)

    total_value = sum((h.value for h in holdings), ZERO)
    for holding in holdings:
        if total_value > 0:
            holding.allocation = holding.value / total_value * HUNDRED
        else:
            holding.allocation = ZERO

    return holdings


@dataclass
class PortfolioSummary:
    """Headline figures for a set of holdings."""

    total_value: Decimal
    daily_change: Decimal
    daily_change_percent: Decimal


def summarize_holdings(holdings: list[Holding]) -> PortfolioSummary:
    """
    Total value and the day's change implied by each holding's percent change.

    Args:
        holdings: Holdings as returned by ``compute_holdings``.

    Returns:
        A PortfolioSummary. The percent is measured against the value before
        the day's change and is zero when that value is zero.
    """
    total_value = sum((h.value for h in holdings), ZERO)
    daily_change = sum((h.value * h.change / HUNDRED for h in holdings), ZERO)

    opening_value = total_value - daily_change
    if opening_value != 0:
        daily_change_percent = daily_change / opening_value * HUNDRED
    else:
        daily_change_percent = ZERO

    return PortfolioSummary(
        total_value=total_value,
        daily_change=daily_change,
        daily_change_percent=daily_change_percent,
    )


def allocation_by_category(holdings: list[Holding]) -> dict[str, Decimal]:
    """Sum holding allocations per category, in first-seen order."""
    allocations: dict[str, Decimal] = {}
    for holding in holdings:
        category = holding.category or "Uncategorized"
        allocations[category] = allocations.get(category, ZERO) + holding.allocation
    return allocations
