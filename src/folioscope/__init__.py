"""Portfolio reconstruction from a transaction ledger.

Provides the holdings fold (current positions with average cost basis and
allocation), the chronological snapshot walk used for performance charts,
and the price-oracle interface both depend on.
"""

from .holdings import (
    Holding,
    PortfolioSummary,
    allocation_by_category,
    compute_holdings,
    summarize_holdings,
)
from .ledger import (
    Transaction,
    TransactionStats,
    TransactionType,
    calculate_transaction_stats,
    filter_transactions,
    load_ledger,
    load_ledger_from_excel,
    load_ledger_from_json,
    recent_transactions,
    sort_transactions,
    validate_transaction,
)
from .pricingdata import (
    FallbackPriceOracle,
    FinnhubPriceOracle,
    FixedPriceOracle,
    LatestQuote,
    PriceFetchResult,
    PriceOracle,
    PriceUnavailableError,
    SimulatedPriceOracle,
    YFinancePriceOracle,
    fetch_latest_prices,
)
from .snapshots import (
    PortfolioSnapshot,
    SnapshotHolding,
    generate_snapshots,
)

__all__ = [
    # Holdings
    "Holding",
    "PortfolioSummary",
    "allocation_by_category",
    "compute_holdings",
    "summarize_holdings",
    # Ledger
    "Transaction",
    "TransactionStats",
    "TransactionType",
    "calculate_transaction_stats",
    "filter_transactions",
    "load_ledger",
    "load_ledger_from_excel",
    "load_ledger_from_json",
    "recent_transactions",
    "sort_transactions",
    "validate_transaction",
    # Prices
    "FallbackPriceOracle",
    "FinnhubPriceOracle",
    "FixedPriceOracle",
    "LatestQuote",
    "PriceFetchResult",
    "PriceOracle",
    "PriceUnavailableError",
    "SimulatedPriceOracle",
    "YFinancePriceOracle",
    "fetch_latest_prices",
    # Snapshots
    "PortfolioSnapshot",
    "SnapshotHolding",
    "generate_snapshots",
]
