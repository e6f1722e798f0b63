"""
Allocation Drift Module

Compares current exposures with target allocations per dimension, flags
categories whose drift exceeds the dimension tolerance, and turns the
flagged categories into rebalancing recommendations with a fund-level
execution plan.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Union

import structlog

from lp_engine.models import (
    Dimension,
    DriftItem,
    ExposureEntry,
    FundAction,
    Holding,
    RebalanceAction,
    Recommendation,
)
from lp_engine.risk.exposure import select_category

logger = structlog.get_logger(__name__)


# Percentage points of drift tolerated before a category is flagged
DEFAULT_TOLERANCES: Dict[Dimension, float] = {
    Dimension.MANAGER: 2.0,
    Dimension.ASSET_CLASS: 2.0,
    Dimension.SECTOR: 2.0,
    Dimension.FUND: 2.0,
    Dimension.GEOGRAPHY: 1.0,
    Dimension.CURRENCY: 1.0,
    Dimension.VINTAGE: 1.5,
    Dimension.VINTAGE_BAND: 1.5,
}

MAX_FUND_ACTIONS = 3

NEAR_FULLY_CALLED = 0.9
EARLY_STAGE = 0.3

REDUCE_TIMELINE = "Execute in 30–60 days"
INCREASE_TIMELINE = "Deploy across 1–3 quarters"
EMPTY_PLAN_CONSTRAINT = "Review allocation"

CurrentExposures = Mapping[Dimension, Union[Sequence[ExposureEntry], Mapping[str, float]]]


def default_portfolio_targets() -> Dict[Dimension, Dict[str, float]]:
    """Default target allocation: strategy mix, geography mix and vintage bands."""
    return {
        Dimension.ASSET_CLASS: {
            "Venture Capital": 30.0,
            "Private Equity": 35.0,
            "Growth Equity": 20.0,
            "Other": 15.0,
        },
        Dimension.GEOGRAPHY: {
            "North America": 50.0,
            "Europe": 30.0,
            "Asia": 15.0,
            "Other": 5.0,
        },
        Dimension.VINTAGE_BAND: {
            "2020-2022": 40.0,
            "2023-2024": 35.0,
            "2025+": 25.0,
        },
    }


def _as_percentages(
    exposures: Union[Sequence[ExposureEntry], Mapping[str, float], None],
) -> Dict[str, float]:
    if exposures is None:
        return {}
    if isinstance(exposures, Mapping):
        return {str(name): float(pct) for name, pct in exposures.items()}
    return {entry.name: entry.percentage for entry in exposures}


def compute_drift(
    current_exposures: CurrentExposures,
    target_policy: Mapping[Dimension, Mapping[str, float]],
    tolerance_by_dimension: Optional[Mapping[Dimension, float]] = None,
) -> List[DriftItem]:
    """Compute drift for every category in the union of current and target.

    A category missing on either side counts as 0%.  Dimensions without
    targets are not compared.

    Args:
        current_exposures: Exposure entries (or {category: pct}) by dimension
        target_policy: {dimension: {category: target pct}}
        tolerance_by_dimension: Overrides for DEFAULT_TOLERANCES

    Returns:
        List of DriftItem; per dimension, current categories come first in
        their original order followed by target-only categories
    """
    tolerances = dict(DEFAULT_TOLERANCES)
    if tolerance_by_dimension:
        tolerances.update({Dimension(k): float(v) for k, v in tolerance_by_dimension.items()})

    current_by_dimension = {Dimension(k): v for k, v in current_exposures.items()}

    items: List[DriftItem] = []
    for dimension, targets in target_policy.items():
        dimension = Dimension(dimension)
        current = _as_percentages(current_by_dimension.get(dimension))
        targets = {str(name): float(pct) for name, pct in targets.items()}

        categories = list(current)
        categories.extend(name for name in targets if name not in current)

        for category in categories:
            current_pct = current.get(category, 0.0)
            target_pct = targets.get(category, 0.0)
            items.append(DriftItem(
                dimension=dimension,
                category=category,
                current_pct=current_pct,
                target_pct=target_pct,
                drift=current_pct - target_pct,
                tolerance=tolerances[dimension],
            ))

    logger.info(
        "compute_drift: drift computed",
        num_items=len(items),
        num_breaches=sum(1 for item in items if item.in_breach),
    )

    return items


def gp_constraint(holding: Holding) -> str:
    """Qualitative capacity label from the share of the commitment already called."""
    ratio = holding.call_ratio
    if ratio >= NEAR_FULLY_CALLED:
        return "Near fully called"
    if ratio <= EARLY_STAGE:
        return "Early-stage deployment"
    return "Standard capacity"


def _fund_plan(
    members: List[Holding],
    adjustment_amount: float,
) -> List[FundAction]:
    category_nav = sum(h.nav_amount for h in members)

    actions = []
    for holding in members:
        if category_nav > 0:
            weight = holding.nav_amount / category_nav
        else:
            weight = 1.0 / len(members)
        actions.append(FundAction(
            holding_id=holding.id,
            name=holding.name,
            weight=weight,
            cash_impact=adjustment_amount * weight,
            call_ratio=holding.call_ratio,
            gp_constraint=gp_constraint(holding),
        ))

    actions.sort(key=lambda action: abs(action.cash_impact), reverse=True)
    return actions[:MAX_FUND_ACTIONS]


def recommend_rebalancing(
    drift_items: Iterable[DriftItem],
    holdings: Iterable[Holding] = (),
    total_portfolio_value: Optional[float] = None,
) -> List[Recommendation]:
    """Turn breached drift items into rebalancing recommendations.

    Args:
        drift_items: Output of compute_drift
        holdings: Holdings used to build the fund-level plan
        total_portfolio_value: Value the drift percentages refer to
            (defaults to the holdings' total NAV)

    Returns:
        Recommendations sorted by absolute drift, largest first
    """
    holdings = list(holdings)
    if total_portfolio_value is None:
        total_portfolio_value = sum(h.nav_amount for h in holdings)

    breached = [item for item in drift_items if item.in_breach]
    breached.sort(key=lambda item: abs(item.drift), reverse=True)

    recommendations: List[Recommendation] = []
    for item in breached:
        action = RebalanceAction.REDUCE if item.drift > 0 else RebalanceAction.INCREASE
        adjustment_amount = abs(item.drift) / 100.0 * total_portfolio_value

        members = [h for h in holdings if select_category(h, item.dimension) == item.category]
        plan = _fund_plan(members, adjustment_amount) if members else []

        recommendations.append(Recommendation(
            dimension=item.dimension,
            category=item.category,
            action=action,
            current_pct=item.current_pct,
            target_pct=item.target_pct,
            drift=item.drift,
            adjustment_amount=adjustment_amount,
            timeline=REDUCE_TIMELINE if action == RebalanceAction.REDUCE else INCREASE_TIMELINE,
            fund_plan=plan,
            constraint=None if plan else EMPTY_PLAN_CONSTRAINT,
        ))

    logger.info(
        "recommend_rebalancing: recommendations built",
        num_recommendations=len(recommendations),
        total_portfolio_value=total_portfolio_value,
    )

    return recommendations


def drift_summary(drift_items: Iterable[DriftItem]) -> Dict[str, float]:
    """Headline figures for a drift analysis."""
    items = list(drift_items)
    breached = [item for item in items if item.in_breach]
    return {
        "categories": len(items),
        "breaches": len(breached),
        "overweight": sum(1 for item in breached if item.drift > 0),
        "underweight": sum(1 for item in breached if item.drift < 0),
        "max_abs_drift": max((abs(item.drift) for item in items), default=0.0),
        "total_abs_drift": sum(abs(item.drift) for item in items),
    }
