"""Portfolio value snapshots taken after every ledger transaction."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

import warnings

from .ledger import Transaction, TransactionType, sort_transactions
from .pricingdata import PriceOracle, PriceUnavailableError

ZERO = Decimal("0")
HUNDRED = Decimal("100")


@dataclass
class SnapshotHolding:
    """One position valued at the moment of a snapshot."""

    symbol: str
    shares: Decimal
    cost_basis: Decimal
    price: Decimal
    value: Decimal
    price_missing: bool = False


@dataclass
class PortfolioSnapshot:
    """Whole-portfolio valuation immediately after ``transaction``."""

    snapshot_datetime: datetime
    total_value: Decimal
    change: Decimal
    change_percent: Decimal
    transaction: Transaction
    cash_balance: Decimal
    stocks_value: Decimal
    holdings: list[SnapshotHolding] = field(default_factory=list)


class _LedgerState():
    """Cash and share positions carried through the chronological walk."""

    def __init__(self):
        self.cash_balance: Decimal = ZERO
        # symbol -> [shares, cost_basis]
        self.positions: dict[str, list[Decimal]] = {}

    def apply(self, txn: Transaction) -> None:
        """Apply one transaction to cash and positions."""
        if txn.transaction_type == TransactionType.DEPOSIT:
            self.cash_balance += txn.total

        elif txn.transaction_type == TransactionType.WITHDRAWAL:
            # Never withdraw more than is available
            self.cash_balance -= min(self.cash_balance, txn.total)

        elif txn.transaction_type == TransactionType.DIVIDEND:
            self.cash_balance += txn.total

        elif txn.transaction_type == TransactionType.BUY:
            self.cash_balance -= txn.total
            if txn.symbol:
                shares, cost_basis = self.positions.get(txn.symbol, [ZERO, ZERO])
                total_shares = shares + txn.shares
                if total_shares > 0:
                    new_cost_basis = (shares * cost_basis + txn.shares * txn.price) / total_shares
                    self.positions[txn.symbol] = [total_shares, new_cost_basis]
                else:
                    self.positions.pop(txn.symbol, None)

        elif txn.transaction_type == TransactionType.SELL:
            self.cash_balance += txn.total
            position = self.positions.get(txn.symbol) if txn.symbol else None
            if position is not None:
                remaining = position[0] - txn.shares
                if remaining > 0:
                    position[0] = remaining
                else:
                    del self.positions[txn.symbol]


def _take_snapshot(
    txn: Transaction,
    state: _LedgerState,
    previous_total_value: Decimal,
    price_oracle: PriceOracle,
    missing: set[str]
) -> PortfolioSnapshot:
    stocks_value = ZERO
    holdings: list[SnapshotHolding] = []

    for symbol, (shares, cost_basis) in state.positions.items():
        try:
            price = price_oracle.get_price_as_of(symbol, txn.transaction_datetime)
        except PriceUnavailableError:
            missing.add(symbol)
            holdings.append(SnapshotHolding(symbol, shares, cost_basis, ZERO, ZERO, price_missing=True))
            continue

        value = shares * price
        stocks_value += value
        holdings.append(SnapshotHolding(symbol, shares, cost_basis, price, value))

    total_value = stocks_value + state.cash_balance
    change = total_value - previous_total_value
    if previous_total_value == 0:
        change_percent = ZERO
    else:
        change_percent = change / previous_total_value * HUNDRED

    return PortfolioSnapshot(
        snapshot_datetime=txn.transaction_datetime,
        total_value=total_value,
        change=change,
        change_percent=change_percent,
        transaction=txn,
        cash_balance=state.cash_balance,
        stocks_value=stocks_value,
        holdings=holdings,
    )


def generate_snapshots(
    transactions: list[Transaction],
    price_oracle: PriceOracle
) -> list[PortfolioSnapshot]:
    """
    Walk the ledger chronologically and value the portfolio after each entry.

    The ledger is sorted by date first (stably, so same-time entries keep
    their ledger order). Cash starts at zero. Withdrawals are capped at the
    available cash. Held symbols are priced as of each transaction's
    datetime; a symbol the oracle cannot price is listed with
    ``price_missing`` and adds nothing to the value.

    When the earliest transaction is a deposit, its snapshot opens the
    series at the deposited amount with a change of 100%.

    Args:
        transactions: The ledger. It is not modified.
        price_oracle: Source of historical prices.

    Returns:
        One snapshot per transaction, oldest first.
    """
    sorted_transactions = sort_transactions(transactions)
    if not sorted_transactions:
        return []

    state = _LedgerState()
    snapshots: list[PortfolioSnapshot] = []
    previous_total_value = ZERO
    missing: set[str] = set()

    first = sorted_transactions[0]
    if first.transaction_type == TransactionType.DEPOSIT:
        state.cash_balance += first.total
        snapshots.append(PortfolioSnapshot(
            snapshot_datetime=first.transaction_datetime,
            total_value=first.total,
            change=first.total,
            change_percent=HUNDRED,
            transaction=first,
            cash_balance=state.cash_balance,
            stocks_value=ZERO,
        ))
        previous_total_value = first.total
        sorted_transactions = sorted_transactions[1:]

    for txn in sorted_transactions:
        state.apply(txn)
        snapshot = _take_snapshot(txn, state, previous_total_value, price_oracle, missing)
        snapshots.append(snapshot)
        previous_total_value = snapshot.total_value

    if missing:
        warnings.warn(
            f"No historical price available for {', '.join(sorted(missing))}; "
            f"those positions were valued at zero in the affected snapshots.",
            UserWarning
        )

    return snapshots
