#!/usr/bin/env python3
"""Snapshots subcommand - portfolio value after each transaction."""

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..performance import calculate_max_drawdown
from ..snapshots import generate_snapshots
from .common import add_ledger_arguments, add_price_arguments, build_price_oracle, load_ledger_for_cli


def register_subcommand(subparsers):
    """Register the snapshots subcommand with the argument parser.

    Args:
        subparsers: The argparse subparsers action to add the command to.
    """
    parser = subparsers.add_parser(
        "snapshots",
        help="Display portfolio value after each transaction",
        description="Walk the ledger chronologically and value the portfolio after every transaction.",
    )
    add_ledger_arguments(parser)
    add_price_arguments(parser)
    parser.set_defaults(func=run)


def run(args):
    """Display the snapshot series and its maximum drawdown.

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

    snapshots = generate_snapshots(transactions, oracle)
    console = Console()

    if not snapshots:
        console.print("[yellow]The ledger has no transactions.[/yellow]")
        return 0

    table = Table(title="Portfolio Snapshots")
    table.add_column("Date", style="cyan", justify="left")
    table.add_column("Transaction", justify="left")
    table.add_column("Cash", style="yellow", justify="right")
    table.add_column("Stocks", style="magenta", justify="right")
    table.add_column("Total", style="green", justify="right")
    table.add_column("Change", justify="right")

    for snapshot in snapshots:
        txn = snapshot.transaction
        label = txn.transaction_type.value
        if txn.symbol:
            label = f"{label} {txn.symbol}"

        if snapshot.change_percent >= 0:
            change_str = f"[green]+{snapshot.change_percent:.2f}%[/green]"
        else:
            change_str = f"[red]{snapshot.change_percent:.2f}%[/red]"

        table.add_row(
            snapshot.snapshot_datetime.strftime("%Y-%m-%d %H:%M"),
            label,
            f"${snapshot.cash_balance:,.2f}",
            f"${snapshot.stocks_value:,.2f}",
            f"${snapshot.total_value:,.2f}",
            change_str,
        )

    console.print(table)

    lines = [f"[bold green]Latest Value: ${snapshots[-1].total_value:,.2f}[/bold green]"]
    if len(snapshots) >= 2:
        drawdown = calculate_max_drawdown(snapshots)
        if drawdown.trough is not None:
            lines.append(
                f"Max Drawdown: [red]{drawdown.depth * 100:.2f}%[/red] "
                f"({drawdown.peak.snapshot_datetime:%Y-%m-%d} → {drawdown.trough.snapshot_datetime:%Y-%m-%d})"
            )
        else:
            lines.append("Max Drawdown: 0.00%")
    console.print(Panel("\n".join(lines), title="Performance"))

    return 0
