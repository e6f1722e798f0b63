"""
Risk Report Builder

Runs every engine component over one holdings snapshot and assembles the
results into a RiskReport.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Union

import numpy as np
import structlog

from lp_engine.config import EngineSettings, get_settings
from lp_engine.data.cashflows import build_quarterly_history, split_series
from lp_engine.data.classification import classify_holdings
from lp_engine.data.hashing import snapshot_hash
from lp_engine.models import (
    CashFlowEvent,
    Dimension,
    Holding,
    PolicyConfig,
    RiskReport,
    Scenario,
    VarMethod,
)
from lp_engine.risk.drift import compute_drift, default_portfolio_targets, recommend_rebalancing
from lp_engine.risk.exposure import aggregate_all, portfolio_metrics
from lp_engine.risk.forecast import forecast, liquidity_summary
from lp_engine.risk.policy import evaluate_policy, resolve_policy
from lp_engine.risk.scenarios import DEFAULT_PRESET, run_scenarios
from lp_engine.risk.scoring import score

logger = structlog.get_logger(__name__)


def _report_context(
    custom_scenarios: Optional[Sequence[Scenario]],
    targets: Optional[Mapping[Dimension, Mapping[str, float]]],
    method: VarMethod,
    risk_history: Optional[Sequence[float]],
    as_of: date,
    available_liquidity: Optional[float],
    settings: EngineSettings,
) -> Dict[str, Any]:
    """Report options that shape the result, in hashable JSON form."""
    return {
        "custom_scenarios": [s.model_dump(mode="json") for s in custom_scenarios or ()],
        "targets": (
            {
                Dimension(dimension).value: {str(k): float(v) for k, v in categories.items()}
                for dimension, categories in targets.items()
            }
            if targets is not None else None
        ),
        "var_method": VarMethod(method).value,
        "risk_history": [float(v) for v in risk_history] if risk_history is not None else None,
        "as_of": as_of.isoformat(),
        "available_liquidity": available_liquidity,
        "settings": settings.model_dump(mode="json"),
    }


def build_risk_report(
    holdings: Iterable[Holding],
    events: Iterable[CashFlowEvent] = (),
    policy: Optional[PolicyConfig] = None,
    custom_scenarios: Optional[Sequence[Scenario]] = None,
    targets: Optional[Mapping[Dimension, Mapping[str, float]]] = None,
    var_method: Union[VarMethod, str, None] = None,
    risk_history: Optional[Sequence[float]] = None,
    as_of: Optional[date] = None,
    rng: Optional[np.random.Generator] = None,
    preset: str = DEFAULT_PRESET,
    available_liquidity: Optional[float] = None,
    settings: Optional[EngineSettings] = None,
) -> RiskReport:
    """Build the full risk report for a holdings snapshot.

    Args:
        holdings: Holdings snapshot
        events: Dated capital calls and distributions
        policy: Policy in force (defaults when None)
        custom_scenarios: User-defined scenarios, reported separately
        targets: Target allocation by dimension (default targets when None)
        var_method: VaR method (settings VAR_METHOD when None)
        risk_history: Past overall risk scores for historical VaR
        as_of: Reporting date (today by default)
        rng: Random generator for Monte Carlo VaR
        preset: Built-in scenario preset set
        available_liquidity: Cash available to meet scenario calls
        settings: Engine settings (loaded from the environment when None)

    Returns:
        RiskReport
    """
    settings = settings or get_settings()
    policy = resolve_policy(policy)
    as_of = as_of or date.today()

    snapshot = list(holdings)
    holdings = classify_holdings(snapshot)

    metrics = portfolio_metrics(holdings)
    exposures = aggregate_all(holdings)

    events = list(events)

    # No recorded activity means no history; projections then start in the
    # as_of quarter.
    if any(event.event_date <= as_of for event in events):
        history = build_quarterly_history(
            events, as_of=as_of, trailing_quarters=settings.HISTORY_QUARTERS
        )
    else:
        history = []
    call_series, distribution_series = split_series(history)

    liquidity = liquidity_summary(
        metrics, history, policy=policy, as_of=as_of, window=settings.PACING_WINDOW_QUARTERS
    )

    projection = forecast(
        metrics,
        history,
        horizon_quarters=settings.FORECAST_QUARTERS,
        as_of=as_of,
        available_cash=(
            available_liquidity if available_liquidity is not None
            else liquidity.recommended_reserve
        ),
        window=settings.PACING_WINDOW_QUARTERS,
    )

    breaches = evaluate_policy(metrics, exposures, liquidity, holdings, policy)

    drift = compute_drift(exposures, targets if targets is not None else default_portfolio_targets())
    recommendations = recommend_rebalancing(drift, holdings, metrics.total_nav)

    scenarios = run_scenarios(
        holdings,
        call_series,
        distribution_series,
        custom_scenarios=custom_scenarios or (),
        preset=preset,
        available_liquidity=available_liquidity,
        policy=policy,
        window=settings.PACING_WINDOW_QUARTERS,
    )

    assessment = score(
        exposures[Dimension.ASSET_CLASS],
        liquidity,
        scenarios.all(),
        metrics.total_nav,
        method=var_method or settings.VAR_METHOD,
        policy=policy,
        manager_exposures=exposures[Dimension.MANAGER],
        holdings=holdings,
        breaches=breaches,
        risk_history=risk_history,
        iterations=settings.MONTE_CARLO_ITERATIONS,
        rng=rng,
    )

    report = RiskReport(
        snapshot_hash=snapshot_hash(
            snapshot,
            policy,
            preset,
            events=events,
            context=_report_context(
                custom_scenarios, targets, assessment.var_metrics.method, risk_history,
                as_of, available_liquidity, settings,
            ),
        ),
        metrics=metrics,
        exposures=exposures,
        liquidity=liquidity,
        risk_scores=assessment.risk_scores,
        var_metrics=assessment.var_metrics,
        policy_breaches=breaches,
        drift=drift,
        recommendations=recommendations,
        scenarios=scenarios,
        history=history,
        forecast=projection,
    )

    logger.info(
        "build_risk_report: report built",
        snapshot_hash=report.snapshot_hash,
        holdings=metrics.holding_count,
        total_nav=metrics.total_nav,
        breaches=len(breaches),
        overall_score=assessment.risk_scores.overall,
    )

    return report
