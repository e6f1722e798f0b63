"""
Exposure Aggregation Module

Groups holdings by a dimension (manager, geography, vintage, asset class,
sector, currency, fund) and computes each category's amount and percentage of
the portfolio.  Output keeps the order in which categories first appear;
callers rank separately with ``rank_exposures``.
"""

from __future__ import annotations

from typing import Callable, Dict, Iterable, List, Optional, Sequence

import pandas as pd
import structlog

from lp_engine.models import (
    Dimension,
    ExposureBasis,
    ExposureEntry,
    Holding,
    HoldingKind,
    PortfolioMetrics,
    is_clean_amount,
)

logger = structlog.get_logger(__name__)


UNASSIGNED = "Unassigned"
UNSPECIFIED = "Unspecified"
UNKNOWN = "Unknown"

# Label used when a holding has no value for the dimension
SENTINELS: Dict[Dimension, str] = {
    Dimension.FUND: UNASSIGNED,
    Dimension.MANAGER: UNASSIGNED,
    Dimension.ASSET_CLASS: UNASSIGNED,
    Dimension.GEOGRAPHY: UNSPECIFIED,
    Dimension.SECTOR: UNSPECIFIED,
    Dimension.VINTAGE: UNKNOWN,
    Dimension.VINTAGE_BAND: UNKNOWN,
    Dimension.CURRENCY: UNKNOWN,
}


def _label(value: Optional[str], sentinel: str) -> str:
    if value is None:
        return sentinel
    text = str(value).strip()
    return text or sentinel


def vintage_band(year: Optional[int]) -> str:
    """Bucket a vintage year into the ranges used by portfolio targets."""
    if year is None:
        return UNKNOWN
    if year < 2020:
        return "Pre-2020"
    if year <= 2022:
        return "2020-2022"
    if year <= 2024:
        return "2023-2024"
    return "2025+"


SELECTORS: Dict[Dimension, Callable[[Holding], str]] = {
    Dimension.FUND: lambda h: _label(h.name, SENTINELS[Dimension.FUND]),
    Dimension.MANAGER: lambda h: _label(h.manager, SENTINELS[Dimension.MANAGER]),
    Dimension.GEOGRAPHY: lambda h: _label(h.domicile, SENTINELS[Dimension.GEOGRAPHY]),
    Dimension.VINTAGE: lambda h: str(h.vintage) if h.vintage is not None else SENTINELS[Dimension.VINTAGE],
    Dimension.VINTAGE_BAND: lambda h: vintage_band(h.vintage),
    Dimension.ASSET_CLASS: lambda h: _label(h.asset_class, SENTINELS[Dimension.ASSET_CLASS]),
    Dimension.SECTOR: lambda h: _label(h.sector, SENTINELS[Dimension.SECTOR]),
    Dimension.CURRENCY: lambda h: _label(h.currency, SENTINELS[Dimension.CURRENCY]),
}


def select_category(holding: Holding, dimension: Dimension | str) -> str:
    """Return the category label of *holding* along *dimension*."""
    return SELECTORS[Dimension(dimension)](holding)


def _amount(holding: Holding, basis: ExposureBasis) -> float:
    """Return the amount for a single holding given *basis*."""
    if basis == ExposureBasis.COMMITMENT:
        return holding.commitment_amount
    if basis == ExposureBasis.UNFUNDED:
        return holding.unfunded_amount
    return holding.nav_amount


def _raw_fields(basis: ExposureBasis) -> tuple[str, ...]:
    if basis == ExposureBasis.NAV:
        return ("current_value",)
    if basis == ExposureBasis.COMMITMENT:
        return ("commitment",)
    return ("commitment", "paid_in")


def aggregate(
    holdings: Iterable[Holding],
    dimension: Dimension | str,
    basis: ExposureBasis | str = ExposureBasis.NAV,
) -> List[ExposureEntry]:
    """Compute per-category exposure along one dimension.

    percentage = 100 * amount / total.  When the total is zero every
    percentage is zero.  Non-finite or negative amounts count as zero.
    Categories with zero amount are still listed.

    Args:
        holdings: Holdings snapshot
        dimension: Grouping dimension
        basis: Amount basis (NAV by default)

    Returns:
        List of ExposureEntry in order of first occurrence

    Raises:
        ValueError: If dimension or basis is not recognised
    """
    dimension = Dimension(dimension)
    basis = ExposureBasis(basis)
    holdings = list(holdings)

    if not holdings:
        return []

    selector = SELECTORS[dimension]

    invalid = [
        h.id for h in holdings
        if not all(is_clean_amount(getattr(h, field)) for field in _raw_fields(basis))
    ]
    if invalid:
        logger.warning(
            "aggregate: non-finite or negative amounts treated as zero",
            dimension=dimension.value,
            holding_ids=invalid,
        )

    frame = pd.DataFrame({
        "category": [selector(h) for h in holdings],
        "amount": [_amount(h, basis) for h in holdings],
    })

    totals = frame.groupby("category", sort=False)["amount"].sum()
    total = float(frame["amount"].sum())

    entries = [
        ExposureEntry(
            name=str(name),
            amount=float(amount),
            percentage=(float(amount) * 100.0 / total) if total > 0 else 0.0,
        )
        for name, amount in totals.items()
    ]

    logger.info(
        "aggregate: exposures computed",
        dimension=dimension.value,
        basis=basis.value,
        num_categories=len(entries),
        total=total,
    )

    return entries


def aggregate_all(
    holdings: Iterable[Holding],
    dimensions: Optional[Sequence[Dimension | str]] = None,
    basis: ExposureBasis | str = ExposureBasis.NAV,
) -> Dict[Dimension, List[ExposureEntry]]:
    """Aggregate along several dimensions (all of them by default)."""
    holdings = list(holdings)
    selected = [Dimension(d) for d in dimensions] if dimensions is not None else list(Dimension)
    return {dimension: aggregate(holdings, dimension, basis) for dimension in selected}


def rank_exposures(entries: Iterable[ExposureEntry]) -> List[ExposureEntry]:
    """Return entries sorted by amount descending (ties keep input order)."""
    return sorted(entries, key=lambda entry: entry.amount, reverse=True)


def top_exposure(entries: Iterable[ExposureEntry]) -> Optional[ExposureEntry]:
    """Return the largest entry, or None when there are none."""
    ranked = rank_exposures(entries)
    return ranked[0] if ranked else None


def max_percentage(entries: Iterable[ExposureEntry]) -> float:
    """Largest single-category percentage, 0.0 for no entries."""
    return max((entry.percentage for entry in entries), default=0.0)


def portfolio_metrics(holdings: Iterable[Holding]) -> PortfolioMetrics:
    """Compute portfolio totals.

    Unfunded commitments are summed per holding, so an over-called fund
    (paid_in > commitment) never offsets another fund's unfunded balance.
    """
    holdings = list(holdings)

    fund_nav = sum(h.nav_amount for h in holdings if h.kind == HoldingKind.FUND)
    direct_nav = sum(h.nav_amount for h in holdings if h.kind == HoldingKind.DIRECT)

    return PortfolioMetrics(
        total_nav=fund_nav + direct_nav,
        total_commitment=sum(h.commitment_amount for h in holdings),
        total_paid_in=sum(h.paid_in_amount for h in holdings),
        unfunded_commitments=sum(h.unfunded_amount for h in holdings),
        fund_nav=fund_nav,
        direct_nav=direct_nav,
        fund_count=sum(1 for h in holdings if h.kind == HoldingKind.FUND),
        holding_count=len(holdings),
    )


def filter_holdings(
    holdings: Iterable[Holding],
    dimension: Dimension | str,
    category: str,
) -> List[Holding]:
    """Restrict a snapshot to the holdings in one category (focus mode)."""
    dimension = Dimension(dimension)
    return [h for h in holdings if select_category(h, dimension) == category]


def resolve_focus(
    available: Iterable[ExposureEntry | str],
    requested: Optional[str],
) -> Optional[str]:
    """Resolve a focus selection against the categories that exist now.

    A stale or missing selection falls back to the first available category.
    Returns None only when nothing is available.
    """
    names = [item.name if isinstance(item, ExposureEntry) else str(item) for item in available]
    if not names:
        return None
    if requested in names:
        return requested
    if requested is not None:
        logger.info(
            "resolve_focus: selection not found, using first category",
            requested=requested,
            fallback=names[0],
        )
    return names[0]
