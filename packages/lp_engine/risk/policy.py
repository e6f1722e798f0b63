"""
Risk Policy Module

Policy defaults and overrides, and evaluation of a portfolio against the
policy limits.  A PolicyConfig is always passed explicitly; there is no
process-wide policy state.
"""

from __future__ import annotations

import math
from typing import Any, Dict, Iterable, List, Mapping, Optional

import structlog

from lp_engine.models import (
    BreachDimension,
    Dimension,
    ExposureEntry,
    Holding,
    HoldingKind,
    LiquiditySummary,
    PolicyBreach,
    PolicyConfig,
    PortfolioMetrics,
    Severity,
)

logger = structlog.get_logger(__name__)


# current/limit ratios above these thresholds set the breach severity
CRITICAL_RATIO = 1.4
HIGH_RATIO = 1.2
MEDIUM_RATIO = 1.0

# Coverage below this fraction of the policy minimum is HIGH, otherwise MEDIUM
COVERAGE_HIGH_FRACTION = 0.8

# Exposure dimension -> (policy field, breach dimension)
CATEGORY_LIMITS = [
    (Dimension.ASSET_CLASS, "max_asset_class_exposure", BreachDimension.ASSET_CLASS),
    (Dimension.GEOGRAPHY, "max_geography_exposure", BreachDimension.GEOGRAPHY),
    (Dimension.VINTAGE, "max_vintage_exposure", BreachDimension.VINTAGE),
    (Dimension.MANAGER, "max_manager_exposure", BreachDimension.MANAGER),
    (Dimension.SECTOR, "max_sector_exposure", BreachDimension.SECTOR),
    (Dimension.CURRENCY, "max_currency_exposure", BreachDimension.CURRENCY),
]


def default_policy() -> PolicyConfig:
    """Return the system default policy."""
    return PolicyConfig()


def reset_policy() -> PolicyConfig:
    """Return a policy reset to system defaults."""
    return default_policy()


def resolve_policy(overrides: PolicyConfig | Mapping[str, Any] | None = None) -> PolicyConfig:
    """Overlay user-supplied values on the defaults.

    Missing or None values mean "use the system default", never zero.
    Unknown keys are ignored so that a stored policy row with extra columns
    can be passed straight in.
    """
    if overrides is None:
        return default_policy()
    if isinstance(overrides, PolicyConfig):
        return overrides

    known = PolicyConfig.model_fields
    values = {
        key: value for key, value in overrides.items()
        if key in known and value is not None
    }
    ignored = sorted(key for key in overrides if key not in known)
    if ignored:
        logger.debug("resolve_policy: unknown keys ignored", keys=ignored)

    return PolicyConfig(**values)


def update_policy(policy: PolicyConfig, **changes: Any) -> PolicyConfig:
    """Return a copy of *policy* with *changes* applied (None values skipped).

    Raises:
        ValueError: If a change names a field the policy does not have
    """
    unknown = sorted(key for key in changes if key not in PolicyConfig.model_fields)
    if unknown:
        raise ValueError(f"Unknown policy fields: {unknown}")

    merged = policy.model_dump()
    merged.update({key: value for key, value in changes.items() if value is not None})
    return PolicyConfig(**merged)


def breach_severity(current: float, limit: float) -> Optional[Severity]:
    """Severity of exceeding *limit* by *current*, None if within limit."""
    ratio = current / max(limit, 0.0001)
    if ratio > CRITICAL_RATIO:
        return Severity.CRITICAL
    if ratio > HIGH_RATIO:
        return Severity.HIGH
    if ratio > MEDIUM_RATIO:
        return Severity.MEDIUM
    return None


def _limit_breach(
    dimension: BreachDimension,
    label: str,
    current: float,
    limit: float,
    unit: str = "%",
) -> Optional[PolicyBreach]:
    severity = breach_severity(current, limit)
    if severity is None:
        return None
    return PolicyBreach(
        dimension=dimension,
        label=label,
        current=current,
        limit=limit,
        severity=severity,
        message=f"{label} at {current:.1f}{unit} exceeds policy limit of {limit:g}{unit}",
    )


def look_through_leverage(holdings: Iterable[Holding]) -> float:
    """NAV-weighted look-through leverage (debt/equity), 0 for an unlevered book."""
    holdings = list(holdings)
    total_nav = sum(h.nav_amount for h in holdings)
    if total_nav == 0:
        return 0.0
    levered = sum(h.nav_amount * max(h.leverage_multiple - 1.0, 0.0) for h in holdings)
    return levered / total_nav


def weighted_tvpi(holdings: Iterable[Holding]) -> Optional[float]:
    """Paid-in weighted TVPI over holdings reporting a finite one, None if none do."""
    reported = [h for h in holdings if h.tvpi is not None and math.isfinite(h.tvpi)]
    if not reported:
        return None
    paid_in = sum(h.paid_in_amount for h in reported)
    return sum(float(h.tvpi) * h.paid_in_amount for h in reported) / max(paid_in, 1.0)


def evaluate_policy(
    metrics: PortfolioMetrics,
    exposures: Mapping[Dimension, List[ExposureEntry]],
    liquidity: Optional[LiquiditySummary],
    holdings: Iterable[Holding],
    policy: Optional[PolicyConfig] = None,
) -> List[PolicyBreach]:
    """Evaluate the portfolio against every policy limit.

    Args:
        metrics: Portfolio totals
        exposures: Exposure entries by dimension (NAV basis)
        liquidity: Liquidity summary, or None to skip the coverage check
        holdings: Holdings snapshot
        policy: Policy in force (defaults when None)

    Returns:
        List of PolicyBreach; limits that are met produce nothing
    """
    policy = resolve_policy(policy)
    holdings = list(holdings)
    exposures = {Dimension(key): value for key, value in exposures.items()}
    breaches: List[PolicyBreach] = []

    def add(breach: Optional[PolicyBreach]) -> None:
        if breach is not None:
            breaches.append(breach)

    if policy.enable_policy_violation_alerts:
        for dimension, field, breach_dimension in CATEGORY_LIMITS:
            limit = getattr(policy, field)
            for entry in exposures.get(dimension, []):
                if entry.percentage > limit:
                    add(_limit_breach(breach_dimension, entry.name, entry.percentage, limit))

        for holding in holdings:
            if holding.kind != HoldingKind.FUND:
                continue
            exposure_pct = (
                holding.nav_amount * 100.0 / metrics.total_nav if metrics.total_nav > 0 else 0.0
            )
            if exposure_pct > policy.max_single_fund_exposure:
                add(_limit_breach(
                    BreachDimension.FUND, holding.name, exposure_pct, policy.max_single_fund_exposure
                ))

        leverage = look_through_leverage(holdings)
        if leverage > policy.max_portfolio_leverage:
            add(_limit_breach(
                BreachDimension.LEVERAGE,
                "Portfolio Leverage",
                leverage * 100,
                policy.max_portfolio_leverage * 100,
            ))

        for holding in holdings:
            if holding.leverage_multiple > policy.max_leverage_ratio:
                add(_limit_breach(
                    BreachDimension.LEVERAGE,
                    holding.name,
                    holding.leverage_multiple,
                    policy.max_leverage_ratio,
                    unit="x",
                ))

        if holdings and metrics.fund_count < policy.min_number_of_funds:
            severity = (
                Severity.HIGH if metrics.fund_count < policy.min_number_of_funds / 2
                else Severity.MEDIUM
            )
            breaches.append(PolicyBreach(
                dimension=BreachDimension.DIVERSIFICATION,
                label="Number of Funds",
                current=float(metrics.fund_count),
                limit=float(policy.min_number_of_funds),
                severity=severity,
                message=(
                    f"Portfolio holds {metrics.fund_count} funds, below policy minimum "
                    f"of {policy.min_number_of_funds}"
                ),
            ))

    if policy.enable_liquidity_alerts:
        unfunded_pct = (
            metrics.unfunded_commitments * 100.0 / metrics.total_commitment
            if metrics.total_commitment > 0 else 0.0
        )
        if unfunded_pct > policy.max_unfunded_commitments:
            add(_limit_breach(
                BreachDimension.LIQUIDITY,
                "Unfunded Commitments",
                unfunded_pct,
                policy.max_unfunded_commitments,
            ))

        if liquidity is not None and liquidity.coverage_ratio < policy.min_liquidity_coverage:
            coverage = liquidity.coverage_ratio
            minimum = policy.min_liquidity_coverage
            breaches.append(PolicyBreach(
                dimension=BreachDimension.LIQUIDITY,
                label="Liquidity Coverage",
                current=coverage,
                limit=minimum,
                severity=(
                    Severity.HIGH if coverage < minimum * COVERAGE_HIGH_FRACTION else Severity.MEDIUM
                ),
                message=(
                    f"Liquidity coverage {coverage:.2f}x is below policy minimum of {minimum:.2f}x"
                ),
            ))

    if policy.enable_performance_alerts:
        tvpi = weighted_tvpi(holdings)
        if tvpi is not None and tvpi < policy.min_acceptable_tvpi:
            shortfall = policy.min_acceptable_tvpi / max(tvpi, 0.0001)
            breaches.append(PolicyBreach(
                dimension=BreachDimension.PERFORMANCE,
                label="Portfolio TVPI",
                current=tvpi,
                limit=policy.min_acceptable_tvpi,
                severity=breach_severity(shortfall, 1.0) or Severity.MEDIUM,
                message=(
                    f"Paid-in weighted TVPI {tvpi:.2f}x is below policy minimum of "
                    f"{policy.min_acceptable_tvpi:.2f}x"
                ),
            ))

    logger.info(
        "evaluate_policy: policy evaluated",
        num_breaches=len(breaches),
        critical=sum(1 for b in breaches if b.severity == Severity.CRITICAL),
    )

    return breaches


def breaches_by_dimension(breaches: Iterable[PolicyBreach]) -> Dict[BreachDimension, int]:
    """Count breaches per breach dimension."""
    counts: Dict[BreachDimension, int] = {}
    for breach in breaches:
        counts[breach.dimension] = counts.get(breach.dimension, 0) + 1
    return counts
