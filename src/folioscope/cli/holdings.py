#!/usr/bin/env python3
"""Holdings subcommand - current positions, cost basis and allocation."""

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..holdings import allocation_by_category, compute_holdings, summarize_holdings
from ..ledger import sort_transactions
from .common import add_ledger_arguments, add_price_arguments, build_price_oracle, load_ledger_for_cli


def register_subcommand(subparsers):
    """Register the holdings subcommand with the argument parser.

    Args:
        subparsers: The argparse subparsers action to add the command to.
    """
    parser = subparsers.add_parser(
        "holdings",
        help="Display current holdings",
        description="Fold a ledger into current holdings with cost basis, gain and allocation.",
    )
    add_ledger_arguments(parser)
    add_price_arguments(parser)
    parser.add_argument(
        "--chronological",
        action="store_true",
        help="Sort the ledger by date before folding (default: file order)",
    )
    parser.set_defaults(func=run)


def _signed_percent(value) -> str:
    if value >= 0:
        return f"[green]+{value:.2f}%[/green]"
    return f"[red]{value:.2f}%[/red]"


def run(args):
    """Display holdings, category allocation and the portfolio summary.

    Args:
        args: Parsed argparse namespace.

    Returns:
        int: Exit code (0 for success, 1 for errors).
    """
    transactions = load_ledger_for_cli(args.filename)
    if transactions is None:
        return 1

    oracle = build_price_oracle(args)
    if oracle is None:
        return 1

    if args.chronological:
        transactions = sort_transactions(transactions)

    holdings = compute_holdings(transactions, oracle)
    console = Console()

    if not holdings:
        console.print("[yellow]No open holdings.[/yellow]")
        return 0

    holdings_table = Table(title="Holdings")
    holdings_table.add_column("Symbol", style="cyan", justify="left")
    holdings_table.add_column("Name", justify="left")
    holdings_table.add_column("Shares", style="magenta", justify="right")
    holdings_table.add_column("Cost Basis", style="yellow", justify="right")
    holdings_table.add_column("Price", justify="right")
    holdings_table.add_column("Day", justify="right")
    holdings_table.add_column("Value", style="green", justify="right")
    holdings_table.add_column("Gain", justify="right")
    holdings_table.add_column("Allocation", justify="right")

    for holding in holdings:
        if holding.price_missing:
            price_str = "N/A"
            day_str = "N/A"
            gain_str = "N/A"
        else:
            price_str = f"${holding.price:,.2f}"
            if holding.price_simulated:
                price_str += " [dim](sim)[/dim]"
            day_str = _signed_percent(holding.change)
            gain_str = _signed_percent(holding.gain)

        holdings_table.add_row(
            holding.symbol,
            holding.name,
            f"{holding.shares:,.4f}".rstrip("0").rstrip("."),
            f"${holding.cost_basis:,.2f}",
            price_str,
            day_str,
            f"${holding.value:,.2f}",
            gain_str,
            f"{holding.allocation:.2f}%",
        )

    console.print(holdings_table)

    category_table = Table(title="Allocation by Category")
    category_table.add_column("Category", style="cyan", justify="left")
    category_table.add_column("Allocation", style="yellow", justify="right")
    for category, allocation in allocation_by_category(holdings).items():
        category_table.add_row(category, f"{allocation:.2f}%")
    console.print(category_table)

    summary = summarize_holdings(holdings)
    console.print(
        Panel(
            f"[bold green]Total Value: ${summary.total_value:,.2f}[/bold green]\n"
            f"Day Change: ${summary.daily_change:,.2f} ({_signed_percent(summary.daily_change_percent)})",
            title="Summary",
        )
    )

    return 0
