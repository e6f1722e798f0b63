"""
Cash-Flow Forecast Module

Projects quarterly capital calls and distributions from current unfunded
commitments and NAV.  Calls follow a front-loaded J-curve (a decaying time
factor applied to the remaining unfunded balance) and distributions
accelerate as the portfolio matures.  The running cumulative net cash flow
gives the liquidity reserve required to fund the drawdowns.
"""

from __future__ import annotations

from datetime import date
from typing import Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
import structlog

from lp_engine.data.cashflows import latest_period, parse_quarter_label, quarter_label, quarter_of
from lp_engine.models import (
    CashFlowForecast,
    ForecastAdjustments,
    ForecastProjection,
    LiquiditySummary,
    PacingRates,
    PolicyConfig,
    PortfolioMetrics,
    QuarterlyCashFlow,
    Scenario,
    TimelinePoint,
    clean_amount,
)

logger = structlog.get_logger(__name__)


# Pacing used when history cannot support an estimate
DEFAULT_DEPLOYMENT_RATE = 0.15
DEFAULT_DISTRIBUTION_RATE = 0.08

DEPLOYMENT_RATE_BOUNDS = (0.03, 0.50)
DISTRIBUTION_RATE_BOUNDS = (0.02, 0.50)

DEFAULT_PACING_WINDOW = 8
DEFAULT_FORECAST_QUARTERS = 8

MIN_TIME_FACTOR = 0.3
TIME_FACTOR_DECAY = 0.7
MATURITY_ACCELERATION = 0.5

RESERVE_BUFFER = 1.15

# Coverage ratio reported when no calls are projected
COVERAGE_SENTINEL = 5.0

# Years with no projected calls but open commitments
DEFAULT_DEPLOYMENT_YEARS = 3.0

FORECAST_HORIZONS = {1: 4, 3: 12, 5: 20}

FORECAST_PRESETS = {
    "base": Scenario(id="base", name="Base Case"),
    "downside": Scenario(
        id="downside", name="Downside", capital_call_multiplier=1.15, distribution_multiplier=0.7
    ),
    "severe": Scenario(
        id="severe", name="Severe", capital_call_multiplier=1.3, distribution_multiplier=0.5
    ),
}


def horizon_for_years(years: int) -> int:
    """Number of forecast quarters for a 1, 3 or 5 year horizon."""
    if years not in FORECAST_HORIZONS:
        raise ValueError(
            f"Unsupported forecast horizon: {years} years. "
            f"Use one of {sorted(FORECAST_HORIZONS)}"
        )
    return FORECAST_HORIZONS[years]


def _trailing_average(series: Sequence[float], window: int) -> Optional[float]:
    """Mean of the positive amounts in the last *window* quarters, None if there are none."""
    trailing = [clean_amount(value) for value in list(series)[-window:]]
    active = [value for value in trailing if value > 0]
    if not active:
        return None
    return float(np.mean(active))


def derive_pacing_rates(
    call_series: Sequence[float],
    distribution_series: Sequence[float],
    unfunded: float,
    nav: float,
    window: Optional[int] = None,
) -> PacingRates:
    """Estimate quarterly deployment and distribution rates from history.

    deployment_rate = average quarterly calls / unfunded commitments,
    distribution_rate = average quarterly distributions / NAV, both over the
    quarters with activity in the trailing window and clamped to sane bounds.
    Missing history or a zero denominator falls back to the default pacing.

    Args:
        call_series: Historical quarterly capital calls, oldest first
        distribution_series: Historical quarterly distributions, oldest first
        unfunded: Current unfunded commitments
        nav: Current NAV
        window: Trailing quarters considered (default 8)

    Returns:
        PacingRates
    """
    window = window or DEFAULT_PACING_WINDOW
    if window < 1:
        raise ValueError(f"Pacing window must be >= 1, got {window}")

    unfunded = clean_amount(unfunded)
    nav = clean_amount(nav)

    average_call = _trailing_average(call_series, window)
    if average_call is not None and unfunded > 0:
        deployment_rate = float(np.clip(average_call / unfunded, *DEPLOYMENT_RATE_BOUNDS))
        deployment_from_history = True
    else:
        deployment_rate = DEFAULT_DEPLOYMENT_RATE
        deployment_from_history = False

    average_distribution = _trailing_average(distribution_series, window)
    if average_distribution is not None and nav > 0:
        distribution_rate = float(np.clip(average_distribution / nav, *DISTRIBUTION_RATE_BOUNDS))
        distribution_from_history = True
    else:
        distribution_rate = DEFAULT_DISTRIBUTION_RATE
        distribution_from_history = False

    logger.debug(
        "derive_pacing_rates: pacing derived",
        deployment_rate=deployment_rate,
        distribution_rate=distribution_rate,
        deployment_from_history=deployment_from_history,
        distribution_from_history=distribution_from_history,
    )

    return PacingRates(
        deployment_rate=deployment_rate,
        distribution_rate=distribution_rate,
        deployment_from_history=deployment_from_history,
        distribution_from_history=distribution_from_history,
    )


def time_factor(index: int, total: int) -> float:
    return max(MIN_TIME_FACTOR, 1.0 - (index / total) * TIME_FACTOR_DECAY)


def maturity_factor(index: int, total: int) -> float:
    return 1.0 + (index / total) * MATURITY_ACCELERATION


def project_capital_calls(unfunded: float, pace: float, quarters: int) -> Tuple[np.ndarray, np.ndarray]:
    """Project quarterly capital calls against a shrinking unfunded balance.

    Each quarter calls ``min(remaining, remaining * pace * time_factor)``, so
    the schedule never calls more than what is left.

    Returns:
        (calls, remaining unfunded after each quarter)
    """
    if quarters < 1:
        raise ValueError(f"Horizon must be >= 1 quarter, got {quarters}")

    remaining = clean_amount(unfunded)
    pace = max(pace, 0.0)

    calls = np.zeros(quarters)
    remaining_after = np.zeros(quarters)
    for i in range(quarters):
        amount = min(remaining, remaining * pace * time_factor(i, quarters))
        remaining -= amount
        calls[i] = amount
        remaining_after[i] = remaining

    return calls, remaining_after


def project_distributions(
    nav: float,
    rate: float,
    quarters: int,
    growth_adjustment: float = 1.0,
) -> np.ndarray:
    """Project quarterly distributions, accelerating as the horizon matures."""
    if quarters < 1:
        raise ValueError(f"Horizon must be >= 1 quarter, got {quarters}")

    factors = 1.0 + (np.arange(quarters) / quarters) * MATURITY_ACCELERATION
    return clean_amount(nav) * max(rate, 0.0) * factors * max(growth_adjustment, 0.0)


def reserve_requirements(net_cash_flows: Sequence[float]) -> np.ndarray:
    """Reserve needed at each point: worst cumulative net drawdown so far times the buffer."""
    cumulative = np.cumsum(np.asarray(net_cash_flows, dtype=float))
    if cumulative.size == 0:
        return cumulative
    drawdown = np.minimum.accumulate(np.minimum(cumulative, 0.0))
    return np.abs(drawdown) * RESERVE_BUFFER


def projection_periods(
    history: Iterable[QuarterlyCashFlow],
    quarters: int,
    as_of: Optional[date] = None,
) -> pd.PeriodIndex:
    """Quarter axis for a projection.

    Starts one past the latest historical quarter, or at the quarter
    containing *as_of* (today by default) when there is no history.
    """
    last = latest_period(history)
    start = last + 1 if last is not None else quarter_of(as_of or date.today())
    return pd.period_range(start=start, periods=quarters, freq="Q")


def _resolve_scenario(scenario: Union[Scenario, str, None]) -> Scenario:
    if scenario is None:
        return FORECAST_PRESETS["base"]
    if isinstance(scenario, Scenario):
        return scenario
    if scenario not in FORECAST_PRESETS:
        raise ValueError(
            f"Unknown forecast scenario: {scenario}. Use one of {sorted(FORECAST_PRESETS)}"
        )
    return FORECAST_PRESETS[scenario]


def forecast(
    metrics: PortfolioMetrics,
    history: Sequence[QuarterlyCashFlow],
    scenario: Union[Scenario, str, None] = None,
    horizon_quarters: Optional[int] = None,
    adjustments: Optional[ForecastAdjustments] = None,
    as_of: Optional[date] = None,
    available_cash: float = 0.0,
    window: Optional[int] = None,
) -> CashFlowForecast:
    """Project quarterly cash flows and the liquidity reserve they require.

    Args:
        metrics: Portfolio totals (unfunded commitments and NAV are used)
        history: Contiguous quarterly history, oldest first
        scenario: Scenario or FORECAST_PRESETS key (base by default)
        horizon_quarters: Number of quarters to project (default 8)
        adjustments: User multipliers on top of the scenario
        as_of: Reporting date used when there is no history
        available_cash: Cash on hand, used for the reserve gap
        window: Trailing quarters used for pacing

    Returns:
        CashFlowForecast with one ForecastProjection per quarter

    Raises:
        ValueError: If horizon_quarters < 1 or the scenario key is unknown
    """
    scenario = _resolve_scenario(scenario)
    adjustments = adjustments or ForecastAdjustments()
    quarters = horizon_quarters if horizon_quarters is not None else DEFAULT_FORECAST_QUARTERS
    if quarters < 1:
        raise ValueError(f"Horizon must be >= 1 quarter, got {quarters}")

    history = list(history)
    calls_history = [point.capital_calls for point in history]
    distributions_history = [point.distributions for point in history]

    pacing = derive_pacing_rates(
        calls_history,
        distributions_history,
        metrics.unfunded_commitments,
        metrics.total_nav,
        window=window,
    )

    pace = pacing.deployment_rate * scenario.capital_call_multiplier * adjustments.call_pace_multiplier
    rate = (
        pacing.distribution_rate
        * scenario.distribution_multiplier
        * adjustments.distribution_multiplier
    )
    adjusted_nav = max(
        clean_amount(metrics.total_nav)
        * (1.0 + scenario.nav_shock_pct + adjustments.nav_shock_pct),
        0.0,
    )

    calls, remaining = project_capital_calls(metrics.unfunded_commitments, pace, quarters)
    distributions = project_distributions(
        adjusted_nav, rate, quarters, adjustments.growth_adjustment
    )
    net = distributions - calls
    reserves = reserve_requirements(net)

    periods = projection_periods(history, quarters, as_of)

    projections = [
        ForecastProjection(
            period=quarter_label(period),
            capital_calls=float(call),
            distributions=float(distribution),
            net_cash_flow=float(net_flow),
            cumulative_calls=float(cum_call),
            cumulative_distributions=float(cum_distribution),
            cumulative_net=float(cum_net),
            required_reserve=float(reserve),
            remaining_unfunded=float(left),
        )
        for period, call, distribution, net_flow, cum_call, cum_distribution, cum_net, reserve, left
        in zip(
            periods,
            calls,
            distributions,
            net,
            np.cumsum(calls),
            np.cumsum(distributions),
            np.cumsum(net),
            reserves,
            remaining,
        )
    ]

    peak_reserve = float(reserves.max())

    result = CashFlowForecast(
        scenario_name=scenario.name,
        horizon_quarters=quarters,
        deployment_rate=pacing.deployment_rate,
        distribution_rate=pacing.distribution_rate,
        projections=projections,
        peak_reserve_requirement=peak_reserve,
        total_projected_calls=float(calls.sum()),
        total_projected_distributions=float(distributions.sum()),
        reserve_gap=max(peak_reserve - clean_amount(available_cash), 0.0),
    )

    logger.info(
        "forecast: projection complete",
        scenario=scenario.name,
        quarters=quarters,
        start=projections[0].period,
        total_calls=result.total_projected_calls,
        peak_reserve=peak_reserve,
    )

    return result


def stitch_timeline(
    history: Iterable[QuarterlyCashFlow],
    projection: Optional[CashFlowForecast],
) -> List[TimelinePoint]:
    """Join history and projections on one continuous quarter axis.

    Quarters missing between the first historical quarter and the last
    projected one are filled with zero rows.

    Raises:
        ValueError: If a quarter appears twice or a projection overlaps history
    """
    points = {}

    for point in history:
        period = parse_quarter_label(point.period)
        if period in points:
            raise ValueError(f"Duplicate historical quarter: {point.period}")
        points[period] = TimelinePoint(
            period=point.period,
            capital_calls=point.capital_calls,
            distributions=point.distributions,
            net_cash_flow=point.net,
            projected=False,
        )

    last_historical = max(points) if points else None

    if projection is not None:
        for point in projection.projections:
            period = parse_quarter_label(point.period)
            if last_historical is not None and period <= last_historical:
                raise ValueError(
                    f"Projected quarter {point.period} overlaps history ending "
                    f"{quarter_label(last_historical)}"
                )
            if period in points:
                raise ValueError(f"Duplicate projected quarter: {point.period}")
            points[period] = TimelinePoint(
                period=point.period,
                capital_calls=point.capital_calls,
                distributions=point.distributions,
                net_cash_flow=point.net_cash_flow,
                projected=True,
            )

    if not points:
        return []

    timeline = []
    for period in pd.period_range(start=min(points), end=max(points), freq="Q"):
        if period in points:
            timeline.append(points[period])
        else:
            timeline.append(TimelinePoint(
                period=quarter_label(period),
                capital_calls=0.0,
                distributions=0.0,
                net_cash_flow=0.0,
                projected=last_historical is None or period > last_historical,
            ))

    return timeline


def liquidity_summary(
    metrics: PortfolioMetrics,
    history: Sequence[QuarterlyCashFlow],
    policy: Optional[PolicyConfig] = None,
    as_of: Optional[date] = None,
    scenario: Union[Scenario, str, None] = None,
    window: Optional[int] = None,
) -> LiquiditySummary:
    """Next-twelve-month liquidity position from a four-quarter forecast.

    The recommended reserve is the policy buffer applied to total commitment.
    Coverage is (reserve + distributions) / calls, COVERAGE_SENTINEL when no
    calls are projected.
    """
    policy = policy or PolicyConfig()

    projection = forecast(
        metrics,
        history,
        scenario=scenario,
        horizon_quarters=FORECAST_HORIZONS[1],
        as_of=as_of,
        window=window,
    )

    calls = projection.total_projected_calls
    distributions = projection.total_projected_distributions
    reserve = metrics.total_commitment * policy.target_liquidity_buffer

    coverage = (reserve + distributions) / calls if calls > 0 else COVERAGE_SENTINEL

    if calls > 0:
        deployment_years = metrics.unfunded_commitments / calls
    elif metrics.unfunded_commitments > 0:
        deployment_years = DEFAULT_DEPLOYMENT_YEARS
    else:
        deployment_years = 0.0

    return LiquiditySummary(
        next_12m_calls=calls,
        next_12m_distributions=distributions,
        recommended_reserve=reserve,
        reserve_gap=max(calls - distributions - reserve, 0.0),
        coverage_ratio=coverage,
        average_quarterly_call=calls / FORECAST_HORIZONS[1],
        deployment_years=deployment_years,
        peak_reserve_requirement=projection.peak_reserve_requirement,
    )
