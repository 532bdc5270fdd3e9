"""Peak-to-trough performance of a snapshot series."""

from dataclasses import dataclass
from decimal import Decimal

from .snapshots import PortfolioSnapshot

ZERO = Decimal("0")


@dataclass
class Drawdown:
    """The deepest fall in total value between two snapshots.

    ``depth`` is zero or negative (-0.25 is a 25% fall from the peak).
    ``trough`` is None when the value never fell below an earlier peak.
    """

    depth: Decimal
    peak: PortfolioSnapshot
    trough: PortfolioSnapshot | None = None


def calculate_max_drawdown(snapshots: list[PortfolioSnapshot]) -> Drawdown:
    """
    Find the largest decline of total value from a running peak.

    Snapshots are taken in the order given, which is chronological for the
    output of ``generate_snapshots``. A peak of zero or less cannot be
    fallen from, so values are only compared once the portfolio has been
    worth something.

    Args:
        snapshots: Snapshots as returned by ``generate_snapshots``.

    Returns:
        The maximum Drawdown with the snapshots at its peak and trough.

    Raises:
        ValueError: If fewer than two snapshots are given.
    """
    if len(snapshots) < 2:
        raise ValueError("Need at least two snapshots to measure a drawdown.")

    running_peak = snapshots[0]
    worst = Drawdown(depth=ZERO, peak=running_peak)

    for snapshot in snapshots[1:]:
        if snapshot.total_value > running_peak.total_value:
            running_peak = snapshot
            continue
        if running_peak.total_value <= 0:
            continue

        depth = (snapshot.total_value - running_peak.total_value) / running_peak.total_value
        if depth < worst.depth:
            worst = Drawdown(depth=depth, peak=running_peak, trough=snapshot)

    return worst
