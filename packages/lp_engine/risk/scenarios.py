"""
Scenario Analysis Module

Applies NAV shocks and call/distribution pace multipliers to the current
holdings and reports the liquidity each scenario leaves.  Built-in presets
always run; custom scenarios run alongside them and are listed separately.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence

import structlog

from lp_engine.models import (
    Holding,
    PolicyConfig,
    Scenario,
    ScenarioResult,
    ScenarioSet,
)
from lp_engine.risk.exposure import portfolio_metrics
from lp_engine.risk.forecast import (
    COVERAGE_SENTINEL,
    derive_pacing_rates,
    project_capital_calls,
    project_distributions,
)

logger = structlog.get_logger(__name__)


COVERED = "Covered"
SHORTFALL = "Shortfall"

BASE_DOWNSIDE_SEVERE = "BASE_DOWNSIDE_SEVERE"
BASE_BEST_WORST = "BASE_BEST_WORST"
DEFAULT_PRESET = BASE_DOWNSIDE_SEVERE

PRESET_SETS: Dict[str, List[Scenario]] = {
    BASE_DOWNSIDE_SEVERE: [
        Scenario(id="base", name="Base"),
        Scenario(
            id="downside",
            name="Downside",
            nav_shock_pct=-0.22,
            capital_call_multiplier=1.25,
            distribution_multiplier=0.75,
        ),
        Scenario(
            id="severe",
            name="Severe",
            nav_shock_pct=-0.40,
            capital_call_multiplier=1.5,
            distribution_multiplier=0.5,
        ),
    ],
    BASE_BEST_WORST: [
        Scenario(id="base", name="Base"),
        Scenario(
            id="best",
            name="Best",
            nav_shock_pct=0.10,
            capital_call_multiplier=0.8,
            distribution_multiplier=1.25,
        ),
        Scenario(
            id="worst",
            name="Worst",
            nav_shock_pct=-0.30,
            capital_call_multiplier=1.5,
            distribution_multiplier=0.5,
        ),
    ],
}

BUILT_IN_IDS = frozenset(
    scenario.id for scenarios in PRESET_SETS.values() for scenario in scenarios
)


def built_in_scenarios(preset: str = DEFAULT_PRESET) -> List[Scenario]:
    """Return the built-in scenarios of a preset set."""
    if preset not in PRESET_SETS:
        raise ValueError(f"Unknown scenario preset: {preset}. Use one of {sorted(PRESET_SETS)}")
    return list(PRESET_SETS[preset])


def run_scenario(
    holdings: Iterable[Holding],
    call_series: Sequence[float],
    distribution_series: Sequence[float],
    scenario: Scenario,
    available_liquidity: Optional[float] = None,
    policy: Optional[PolicyConfig] = None,
    horizon_quarters: int = 1,
    window: Optional[int] = None,
) -> ScenarioResult:
    """Apply one scenario to the current holdings.

    Over one quarter, calls are unfunded * deployment_rate * call multiplier
    and distributions are shocked NAV * distribution_rate * distribution
    multiplier.  Longer horizons sum the quarterly forecast schedule.

    Args:
        holdings: Holdings snapshot
        call_series: Historical quarterly capital calls, oldest first
        distribution_series: Historical quarterly distributions, oldest first
        scenario: Scenario to apply
        available_liquidity: Cash available to meet calls (defaults to the
            policy liquidity buffer applied to total commitment)
        policy: Policy in force (defaults when None)
        horizon_quarters: Quarters covered by the result
        window: Trailing quarters used for pacing

    Returns:
        ScenarioResult

    Raises:
        ValueError: If horizon_quarters < 1
    """
    if horizon_quarters < 1:
        raise ValueError(f"Horizon must be >= 1 quarter, got {horizon_quarters}")

    policy = policy or PolicyConfig()
    metrics = portfolio_metrics(holdings)

    pacing = derive_pacing_rates(
        call_series,
        distribution_series,
        metrics.unfunded_commitments,
        metrics.total_nav,
        window=window,
    )

    projected_nav = max(metrics.total_nav * (1.0 + scenario.nav_shock_pct), 0.0)

    calls, _ = project_capital_calls(
        metrics.unfunded_commitments,
        pacing.deployment_rate * scenario.capital_call_multiplier,
        horizon_quarters,
    )
    distributions = project_distributions(
        projected_nav,
        pacing.distribution_rate * scenario.distribution_multiplier,
        horizon_quarters,
    )
    projected_calls = float(calls.sum())
    projected_distributions = float(distributions.sum())

    if available_liquidity is None:
        available_liquidity = metrics.total_commitment * policy.target_liquidity_buffer

    liquidity_gap = max(0.0, projected_calls - available_liquidity - projected_distributions)
    coverage_ratio = (
        (projected_distributions + available_liquidity) / projected_calls
        if projected_calls > 0 else COVERAGE_SENTINEL
    )

    return ScenarioResult(
        name=scenario.name,
        scenario_id=scenario.id,
        custom=scenario.custom,
        nav_shock_pct=scenario.nav_shock_pct,
        capital_call_multiplier=scenario.capital_call_multiplier,
        distribution_multiplier=scenario.distribution_multiplier,
        deployment_rate=pacing.deployment_rate,
        distribution_rate=pacing.distribution_rate,
        horizon_quarters=horizon_quarters,
        projected_nav=projected_nav,
        projected_calls=projected_calls,
        projected_distributions=projected_distributions,
        available_liquidity=available_liquidity,
        liquidity_gap=liquidity_gap,
        coverage_ratio=coverage_ratio,
        status=COVERED if liquidity_gap == 0 else SHORTFALL,
    )


def run_scenarios(
    holdings: Iterable[Holding],
    call_series: Sequence[float],
    distribution_series: Sequence[float],
    custom_scenarios: Iterable[Scenario] = (),
    preset: str = DEFAULT_PRESET,
    available_liquidity: Optional[float] = None,
    policy: Optional[PolicyConfig] = None,
    horizon_quarters: int = 1,
    window: Optional[int] = None,
) -> ScenarioSet:
    """Run the built-in preset set plus any custom scenarios.

    Each scenario is evaluated independently against the same snapshot, so
    the built-in results do not depend on which custom scenarios exist.
    """
    holdings = list(holdings)

    def run(scenario: Scenario) -> ScenarioResult:
        return run_scenario(
            holdings,
            call_series,
            distribution_series,
            scenario,
            available_liquidity=available_liquidity,
            policy=policy,
            horizon_quarters=horizon_quarters,
            window=window,
        )

    built_in = [run(scenario) for scenario in built_in_scenarios(preset)]
    custom = [
        run(scenario if scenario.custom else scenario.model_copy(update={"custom": True}))
        for scenario in custom_scenarios
    ]

    logger.info(
        "run_scenarios: scenarios evaluated",
        preset=preset,
        num_built_in=len(built_in),
        num_custom=len(custom),
        shortfalls=sum(1 for result in built_in + custom if result.status == SHORTFALL),
    )

    return ScenarioSet(built_in=built_in, custom=custom)


def remove_custom_scenario(
    custom_scenarios: Iterable[Scenario],
    scenario_id: str,
) -> List[Scenario]:
    """Return the custom scenario list without *scenario_id*.

    Raises:
        ValueError: If *scenario_id* names a built-in scenario
    """
    if scenario_id in BUILT_IN_IDS:
        raise ValueError(f"Built-in scenario '{scenario_id}' cannot be removed")

    custom_scenarios = list(custom_scenarios)
    remaining = [scenario for scenario in custom_scenarios if scenario.id != scenario_id]
    if len(remaining) == len(custom_scenarios):
        logger.warning("remove_custom_scenario: scenario not found", scenario_id=scenario_id)
    return remaining


def find_scenario(
    results: Iterable[ScenarioResult],
    selection: Optional[str],
) -> Optional[ScenarioResult]:
    """Find a result by id or name, falling back to the first result.

    Returns None only when there are no results.
    """
    results = list(results)
    if not results:
        return None
    for result in results:
        if selection is not None and selection in (result.scenario_id, result.name):
            return result
    return results[0]
