#!/usr/bin/env python3
"""Transactions subcommand - filtered ledger listing and activity stats."""

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..ledger import TransactionType, calculate_transaction_stats, filter_transactions
from .common import add_ledger_arguments, load_ledger_for_cli


def register_subcommand(subparsers):
    """Register the transactions subcommand with the argument parser.

    Args:
        subparsers: The argparse subparsers action to add the command to.
    """
    parser = subparsers.add_parser(
        "transactions",
        help="List ledger transactions",
        description="List ledger transactions, newest first, with optional filters.",
    )
    add_ledger_arguments(parser)
    parser.add_argument(
        "--type",
        choices=[t.value for t in TransactionType],
        help="Only show this transaction type",
    )
    parser.add_argument("--symbol", help="Only show this symbol")
    parser.add_argument("--category", help="Only show this category")
    parser.add_argument("--search", help="Search symbol, name and category")
    parser.add_argument("--limit", type=int, default=None, help="Maximum rows to show")
    parser.set_defaults(func=run)


def run(args):
    """Display matching transactions and buy/sell statistics.

    Args:
        args: Parsed argparse namespace.

    Returns:
        int: Exit code (0 for success, 1 for errors).
    """
    transactions = load_ledger_for_cli(args.filename)
    if transactions is None:
        return 1

    selected = filter_transactions(
        transactions,
        transaction_type=TransactionType(args.type) if args.type else None,
        symbol=args.symbol,
        category=args.category,
        search=args.search,
        limit=args.limit,
    )

    console = Console()
    table = Table(title=f"Transactions ({len(selected)} shown)")
    table.add_column("Date", style="cyan", justify="left")
    table.add_column("Type", justify="left")
    table.add_column("Symbol", style="magenta", justify="left")
    table.add_column("Shares", justify="right")
    table.add_column("Price", justify="right")
    table.add_column("Total", style="yellow", justify="right")
    table.add_column("Category", justify="left")

    for txn in selected:
        table.add_row(
            txn.transaction_datetime.strftime("%Y-%m-%d"),
            txn.transaction_type.value,
            txn.symbol or "-",
            f"{txn.shares:,}" if txn.transaction_type.is_trade else "-",
            f"${txn.price:,.2f}" if txn.transaction_type.is_trade else "-",
            f"${txn.total:,.2f}",
            txn.category or "-",
        )
    console.print(table)

    stats = calculate_transaction_stats(transactions)
    last = "N/A"
    if stats.last_transaction is not None:
        last = f"{stats.last_transaction.transaction_datetime:%Y-%m-%d} ({stats.days_since_last_transaction} days ago)"
    console.print(
        Panel(
            f"Total Buys: ${stats.total_buys:,.2f} ({stats.buy_count} transactions)\n"
            f"Total Sells: ${stats.total_sells:,.2f} ({stats.sell_count} transactions)\n"
            f"Net Cash Flow: ${stats.net_cash_flow:,.2f}\n"
            f"Last Transaction: {last}",
            title="Activity",
        )
    )
    return 0
