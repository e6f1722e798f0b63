"""Quarterly cash-flow history.

Buckets dated capital-call and distribution events into calendar quarters
labelled ``Qn YYYY`` and produces a contiguous series (empty quarters are
zero rows) with cumulative columns.  The same labels are the join key used
to stitch history and projections onto one timeline.
"""

from __future__ import annotations

import re
from datetime import date
from typing import Iterable, List, Optional, Tuple

import pandas as pd
import structlog

from lp_engine.models import CashFlowEvent, CashFlowType, QuarterlyCashFlow, clean_amount

logger = structlog.get_logger(__name__)

CALL_TYPES = frozenset({
    CashFlowType.CAPITAL_CALL,
    CashFlowType.NEW_HOLDING,
    CashFlowType.DIRECT_INVESTMENT,
})

_LABEL_PATTERN = re.compile(r"^Q([1-4])\s+(\d{4})$")


def quarter_of(day: date) -> pd.Period:
    """Return the calendar quarter containing *day*."""
    return pd.Period(day, freq="Q")


def quarter_label(period: pd.Period) -> str:
    """Format a quarterly period as ``Qn YYYY``."""
    return f"Q{period.quarter} {period.year}"


def parse_quarter_label(label: str) -> pd.Period:
    """Parse a ``Qn YYYY`` label back into a quarterly period.

    Raises:
        ValueError: If the label is not in ``Qn YYYY`` form
    """
    match = _LABEL_PATTERN.match(label.strip()) if isinstance(label, str) else None
    if match is None:
        raise ValueError(f"Invalid quarter label: {label!r}. Expected 'Qn YYYY'")
    return pd.Period(year=int(match.group(2)), quarter=int(match.group(1)), freq="Q")


def build_quarterly_history(
    events: Iterable[CashFlowEvent],
    as_of: Optional[date] = None,
    trailing_quarters: Optional[int] = None,
) -> List[QuarterlyCashFlow]:
    """Aggregate cash-flow events into a contiguous quarterly series.

    Events dated after *as_of* are not history and are ignored.  Negative or
    non-finite amounts contribute zero.

    Args:
        events: Dated capital calls / distributions
        as_of: Reporting date (defaults to today)
        trailing_quarters: If given, the axis is exactly the last N quarters
            ending with the quarter of *as_of*; otherwise it spans the first
            to the last quarter with activity

    Returns:
        List of QuarterlyCashFlow ordered oldest to newest
    """
    as_of = as_of or date.today()

    if trailing_quarters is not None and trailing_quarters < 1:
        raise ValueError(f"trailing_quarters must be >= 1, got {trailing_quarters}")

    rows = []
    skipped_future = 0
    for event in events:
        if event.event_date > as_of:
            skipped_future += 1
            continue
        amount = clean_amount(event.amount)
        is_call = event.type in CALL_TYPES
        rows.append({
            "period": quarter_of(event.event_date),
            "capital_calls": amount if is_call else 0.0,
            "distributions": 0.0 if is_call else amount,
        })

    if skipped_future:
        logger.info(
            "build_quarterly_history: future-dated events excluded",
            count=skipped_future,
            as_of=as_of.isoformat(),
        )

    if trailing_quarters is not None:
        end = quarter_of(as_of)
        axis = pd.period_range(end=end, periods=trailing_quarters, freq="Q")
    elif rows:
        periods = [row["period"] for row in rows]
        axis = pd.period_range(start=min(periods), end=max(periods), freq="Q")
    else:
        return []

    if rows:
        frame = pd.DataFrame(rows)
        totals = frame.groupby("period")[["capital_calls", "distributions"]].sum()
    else:
        totals = pd.DataFrame(columns=["capital_calls", "distributions"], dtype=float)

    totals = totals.reindex(axis, fill_value=0.0).astype(float)
    totals["net"] = totals["distributions"] - totals["capital_calls"]
    totals["cumulative_calls"] = totals["capital_calls"].cumsum()
    totals["cumulative_distributions"] = totals["distributions"].cumsum()

    history = [
        QuarterlyCashFlow(
            period=quarter_label(period),
            capital_calls=float(row["capital_calls"]),
            distributions=float(row["distributions"]),
            net=float(row["net"]),
            cumulative_calls=float(row["cumulative_calls"]),
            cumulative_distributions=float(row["cumulative_distributions"]),
        )
        for period, row in totals.iterrows()
    ]

    logger.info(
        "build_quarterly_history: history built",
        quarters=len(history),
        events=len(rows),
    )

    return history


def split_series(history: Iterable[QuarterlyCashFlow]) -> Tuple[List[float], List[float]]:
    """Split a history into (capital call series, distribution series)."""
    history = list(history)
    calls = [point.capital_calls for point in history]
    distributions = [point.distributions for point in history]
    return calls, distributions


def latest_period(history: Iterable[QuarterlyCashFlow]) -> Optional[pd.Period]:
    """Return the latest quarter present in *history*, or None when empty."""
    periods = [parse_quarter_label(point.period) for point in history]
    return max(periods) if periods else None
