"""Helpers shared by the folioscope subcommands."""

import json
import os

from dotenv import load_dotenv

from ..ledger import Transaction, load_ledger
from ..pricingdata import (
    FallbackPriceOracle,
    FinnhubPriceOracle,
    PriceOracle,
    SimulatedPriceOracle,
    YFinancePriceOracle,
)

load_dotenv()

PRICE_SOURCES = ("yfinance", "finnhub", "simulated")


def add_ledger_arguments(parser):
    """Add the ledger path argument.

    Args:
        parser: The subcommand parser.
    """
    parser.add_argument("filename", help="Path to the ledger file (.json or .xlsx)")


def add_price_arguments(parser):
    """Add price source selection arguments.

    Args:
        parser: The subcommand parser.
    """
    parser.add_argument(
        "--prices",
        choices=PRICE_SOURCES,
        default="yfinance",
        help="Price source (default: yfinance; finnhub requires FINNHUB_API_KEY env var)",
    )
    parser.add_argument(
        "--no-cache",
        action="store_true",
        help="Bypass cache and fetch fresh pricing data",
    )
    parser.add_argument(
        "--no-fallback",
        action="store_true",
        help="Leave unpriced symbols out instead of using simulated prices",
    )


def load_ledger_for_cli(filename: str) -> list[Transaction] | None:
    """Load a ledger, printing an error instead of raising.

    Returns:
        The transactions, or None if the file could not be loaded.
    """
    try:
        return load_ledger(filename)
    except FileNotFoundError:
        print(f"Error: Ledger file not found: {filename}")
    except (ValueError, KeyError, json.JSONDecodeError) as e:
        print(f"Error: Could not load ledger '{filename}': {e}")
    return None


def build_price_oracle(args) -> PriceOracle | None:
    """Build the price oracle selected on the command line.

    Args:
        args: Parsed namespace with prices, no_cache and no_fallback.

    Returns:
        The oracle, or None if its configuration is missing.
    """
    oracle: PriceOracle
    if args.prices == "simulated":
        return SimulatedPriceOracle()
    elif args.prices == "finnhub":
        api_key = os.getenv("FINNHUB_API_KEY")
        if not api_key:
            print("Error: FINNHUB_API_KEY environment variable not set")
            return None
        oracle = FinnhubPriceOracle(
            api_key,
            history_oracle=YFinancePriceOracle(force_cache_refresh=args.no_cache),
        )
    else:
        oracle = YFinancePriceOracle(force_cache_refresh=args.no_cache)

    if args.no_fallback:
        return oracle
    return FallbackPriceOracle(oracle, SimulatedPriceOracle())
