"""
Portfolio Risk Engine

Risk and cash-flow analytics for an LP portfolio of fund commitments and
direct investments.  Pure computation modules over immutable snapshots.

Modules:
- exposure: Exposure aggregation by dimension and portfolio totals
- drift: Allocation drift against targets and rebalancing recommendations
- policy: Policy defaults and breach evaluation
- scenarios: Scenario shocks and liquidity coverage
- forecast: Quarterly cash-flow projections and liquidity reserve
- var: Value-at-Risk and Expected Shortfall
- scoring: Risk scores and the combined risk assessment
- report: Full risk report for one snapshot
"""

# Exposure module
from .exposure import (
    aggregate,
    aggregate_all,
    rank_exposures,
    top_exposure,
    portfolio_metrics,
    filter_holdings,
    resolve_focus,
    select_category,
    vintage_band,
    SENTINELS,
)

# Drift module
from .drift import (
    compute_drift,
    recommend_rebalancing,
    default_portfolio_targets,
    drift_summary,
    gp_constraint,
    DEFAULT_TOLERANCES,
)

# Policy module
from .policy import (
    default_policy,
    resolve_policy,
    reset_policy,
    update_policy,
    evaluate_policy,
    breach_severity,
)

# Scenario module
from .scenarios import (
    run_scenario,
    run_scenarios,
    built_in_scenarios,
    remove_custom_scenario,
    find_scenario,
    PRESET_SETS,
)

# Forecast module
from .forecast import (
    derive_pacing_rates,
    forecast,
    stitch_timeline,
    liquidity_summary,
    horizon_for_years,
    FORECAST_PRESETS,
)

# VaR module
from .var import (
    value_at_risk,
    exposure_correlation,
    build_covariance,
    portfolio_variance,
    independent_generators,
)

# Scoring module
from .scoring import (
    score,
    concentration_score,
    liquidity_score,
    performance_score,
    policy_score,
)

# Report module
from .report import build_risk_report

__all__ = [
    # Exposure
    'aggregate',
    'aggregate_all',
    'rank_exposures',
    'top_exposure',
    'portfolio_metrics',
    'filter_holdings',
    'resolve_focus',
    'select_category',
    'vintage_band',
    'SENTINELS',
    # Drift
    'compute_drift',
    'recommend_rebalancing',
    'default_portfolio_targets',
    'drift_summary',
    'gp_constraint',
    'DEFAULT_TOLERANCES',
    # Policy
    'default_policy',
    'resolve_policy',
    'reset_policy',
    'update_policy',
    'evaluate_policy',
    'breach_severity',
    # Scenarios
    'run_scenario',
    'run_scenarios',
    'built_in_scenarios',
    'remove_custom_scenario',
    'find_scenario',
    'PRESET_SETS',
    # Forecast
    'derive_pacing_rates',
    'forecast',
    'stitch_timeline',
    'liquidity_summary',
    'horizon_for_years',
    'FORECAST_PRESETS',
    # VaR
    'value_at_risk',
    'exposure_correlation',
    'build_covariance',
    'portfolio_variance',
    'independent_generators',
    # Scoring
    'score',
    'concentration_score',
    'liquidity_score',
    'performance_score',
    'policy_score',
    # Report
    'build_risk_report',
]
