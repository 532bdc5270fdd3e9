#!/usr/bin/env python3
"""Main entry point for the folioscope CLI."""

import argparse
import sys

FOLIOSCOPE_BANNER = """
 ┌─┐┌─┐┬  ┬┌─┐┌─┐┌─┐┌─┐┌─┐┌─┐
 ├┤ │ ││  ││ │└─┐│  │ │├─┘├┤
 └  └─┘┴─┘┴└─┘└─┘└─┘└─┘┴  └─┘
 folioscope — holdings and performance from your transaction ledger
"""


def main():
    """Parse CLI arguments and dispatch to the appropriate subcommand.

    Returns:
        int: Exit code (0 for success, non-zero for errors).
    """
    parser = argparse.ArgumentParser(
        prog="folioscope",
        description="folioscope - holdings and performance from a transaction ledger",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  folioscope holdings ledger.json                  Current holdings and allocation
  folioscope holdings ledger.xlsx --chronological  Fold the ledger in date order
  folioscope snapshots ledger.json                 Portfolio value after each transaction
  folioscope transactions ledger.json --type buy   List buy transactions
        """,
    )

    subparsers = parser.add_subparsers(
        title="commands",
        dest="command",
        help="Available commands",
    )

    from .holdings import register_subcommand as register_holdings
    from .snapshots import register_subcommand as register_snapshots
    from .transactions import register_subcommand as register_transactions
    from .version import register_subcommand as register_version

    register_holdings(subparsers)
    register_snapshots(subparsers)
    register_transactions(subparsers)
    register_version(subparsers)

    args = parser.parse_args()

    if args.command is None:
        print(FOLIOSCOPE_BANNER)
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
