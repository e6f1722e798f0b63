"""
Risk Scoring Module

0-100 risk scores (higher is riskier) and the combined risk assessment with
VaR.  The overall score blends concentration and liquidity; performance and
policy scores are reported alongside it.
"""

from __future__ import annotations

from typing import Iterable, Optional, Sequence, Union

import numpy as np
import structlog

from lp_engine.models import (
    ExposureEntry,
    Holding,
    LiquiditySummary,
    PolicyBreach,
    PolicyConfig,
    RiskAssessment,
    RiskScores,
    Scenario,
    ScenarioResult,
    VarMethod,
)
from lp_engine.risk.exposure import max_percentage
from lp_engine.risk.policy import resolve_policy, weighted_tvpi
from lp_engine.risk.var import value_at_risk

logger = structlog.get_logger(__name__)


CONCENTRATION_WEIGHT = 0.5
LIQUIDITY_WEIGHT = 0.5

# Split of the concentration score between asset class and manager
ASSET_CLASS_CONCENTRATION_WEIGHT = 0.7
MANAGER_CONCENTRATION_WEIGHT = 0.3

# Score of a dimension sitting exactly at its policy limit
AT_LIMIT_SCORE = 50.0

NEUTRAL_SCORE = 50.0
PERFORMANCE_MET_SCORE = 20.0
BREACH_SCORE = 15.0


def concentration_score(
    asset_class_exposures: Sequence[ExposureEntry],
    policy: PolicyConfig,
    manager_exposures: Optional[Sequence[ExposureEntry]] = None,
) -> float:
    """Largest exposures relative to their policy limits.

    A dimension at its limit scores AT_LIMIT_SCORE.  Without manager
    exposures the asset-class term carries the full weight.
    """
    asset_class_ratio = max_percentage(asset_class_exposures) / max(policy.max_asset_class_exposure, 0.0001)

    if manager_exposures is None:
        raw = AT_LIMIT_SCORE * asset_class_ratio
    else:
        manager_ratio = max_percentage(manager_exposures) / max(policy.max_manager_exposure, 0.0001)
        raw = (
            ASSET_CLASS_CONCENTRATION_WEIGHT * AT_LIMIT_SCORE * asset_class_ratio
            + MANAGER_CONCENTRATION_WEIGHT * AT_LIMIT_SCORE * manager_ratio
        )

    return float(min(100.0, raw))


def liquidity_score(coverage_ratio: float, minimum_coverage: float) -> float:
    """Low when coverage clears the minimum, 70-100 when it falls short."""
    if coverage_ratio >= minimum_coverage:
        return 30.0 - min(30.0, (coverage_ratio - minimum_coverage) * 10.0)
    return 70.0 + min(30.0, (minimum_coverage - coverage_ratio) * 40.0)


def performance_score(holdings: Iterable[Holding], policy: PolicyConfig) -> float:
    """Score paid-in weighted TVPI against the policy minimum.

    Neutral when no holding reports TVPI.
    """
    tvpi = weighted_tvpi(holdings)
    if tvpi is None:
        return NEUTRAL_SCORE

    minimum = policy.min_acceptable_tvpi
    if tvpi >= minimum:
        return PERFORMANCE_MET_SCORE

    shortfall = (minimum - tvpi) / max(minimum, 0.0001) * 100.0
    return NEUTRAL_SCORE + min(30.0, shortfall)


def policy_score(breaches: Iterable[PolicyBreach]) -> float:
    return float(min(100.0, BREACH_SCORE * len(list(breaches))))


def score(
    asset_class_exposures: Sequence[ExposureEntry],
    liquidity: LiquiditySummary,
    scenarios: Iterable[Union[Scenario, ScenarioResult]],
    portfolio_value: float,
    method: Union[VarMethod, str] = VarMethod.PARAMETRIC,
    policy: Optional[PolicyConfig] = None,
    manager_exposures: Optional[Sequence[ExposureEntry]] = None,
    holdings: Iterable[Holding] = (),
    breaches: Iterable[PolicyBreach] = (),
    risk_history: Optional[Sequence[float]] = None,
    use_correlation: bool = True,
    iterations: Optional[int] = None,
    rng: Optional[np.random.Generator] = None,
) -> RiskAssessment:
    """Compute risk scores and VaR for a portfolio.

    The historical VaR method uses *risk_history* with the current overall
    score appended as the latest observation.

    Args:
        asset_class_exposures: Asset-class exposure entries (NAV basis)
        liquidity: Liquidity summary (coverage ratio is used)
        scenarios: Scenarios seeding Monte Carlo draws
        portfolio_value: Total NAV
        method: VaR method
        policy: Policy in force (defaults when None)
        manager_exposures: Manager exposure entries for concentration
        holdings: Holdings used for the performance score
        breaches: Policy breaches used for the policy score
        risk_history: Past overall risk scores, oldest first
        use_correlation: Passed to value_at_risk
        iterations: Monte Carlo draws
        rng: Random generator for Monte Carlo

    Returns:
        RiskAssessment with RiskScores and VarMetrics
    """
    policy = resolve_policy(policy)

    concentration = concentration_score(asset_class_exposures, policy, manager_exposures)
    liquidity_component = liquidity_score(liquidity.coverage_ratio, policy.min_liquidity_coverage)
    overall = CONCENTRATION_WEIGHT * concentration + LIQUIDITY_WEIGHT * liquidity_component

    risk_scores = RiskScores(
        concentration=concentration,
        liquidity=liquidity_component,
        overall=overall,
        performance=performance_score(holdings, policy),
        policy=policy_score(breaches),
    )

    history = [*(risk_history or []), overall]

    var_metrics = value_at_risk(
        asset_class_exposures,
        portfolio_value,
        method=method,
        scenarios=scenarios,
        risk_history=history,
        use_correlation=use_correlation,
        iterations=iterations,
        rng=rng,
    )

    logger.info(
        "score: risk assessed",
        overall=overall,
        concentration=concentration,
        liquidity=liquidity_component,
        method=var_metrics.method.value,
    )

    return RiskAssessment(risk_scores=risk_scores, var_metrics=var_metrics)
