"""
Unit tests for scoring.py - Risk Scoring Module

Tests cover:
- Concentration, liquidity, performance and policy sub-scores
- Overall blend and determinism
- VaR wiring through score()
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from lp_engine.models import (
    BreachDimension,
    Dimension,
    ExposureEntry,
    Holding,
    LiquiditySummary,
    PolicyBreach,
    PolicyConfig,
    Severity,
    VarMethod,
)
from lp_engine.risk.exposure import aggregate_all, portfolio_metrics
from lp_engine.risk.forecast import liquidity_summary
from lp_engine.risk.scenarios import built_in_scenarios
from lp_engine.risk.scoring import (
    CONCENTRATION_WEIGHT,
    LIQUIDITY_WEIGHT,
    concentration_score,
    liquidity_score,
    performance_score,
    policy_score,
    score,
)


def _entries(*percentages):
    return [
        ExposureEntry(name=f"C{i}", amount=pct, percentage=pct)
        for i, pct in enumerate(percentages)
    ]


def _liquidity(coverage):
    return LiquiditySummary(
        next_12m_calls=100.0,
        next_12m_distributions=0.0,
        recommended_reserve=0.0,
        reserve_gap=0.0,
        coverage_ratio=coverage,
        average_quarterly_call=25.0,
        deployment_years=1.0,
        peak_reserve_requirement=0.0,
    )


def _breach():
    return PolicyBreach(
        dimension=BreachDimension.MANAGER,
        label="Acme",
        current=30.0,
        limit=20.0,
        severity=Severity.CRITICAL,
        message="Acme at 30.0% exceeds policy limit of 20%",
    )


class TestConcentrationScore:

    def test_at_limit_scores_50(self, default_policy):
        result = concentration_score(_entries(35.0, 30.0), default_policy, _entries(20.0, 10.0))

        assert_allclose(result, 50.0)

    def test_asset_class_only(self, default_policy):
        assert_allclose(concentration_score(_entries(17.5), default_policy), 25.0)

    def test_capped_at_100(self, two_fund_holdings, default_policy):
        exposures = aggregate_all(two_fund_holdings)

        result = concentration_score(
            exposures[Dimension.ASSET_CLASS], default_policy, exposures[Dimension.MANAGER]
        )

        assert result == 100.0

    def test_empty_exposures(self, default_policy):
        assert concentration_score([], default_policy, []) == 0.0


class TestLiquidityScore:

    @pytest.mark.parametrize(
        "coverage,expected",
        [
            (1.5, 30.0),
            (2.0, 25.0),
            (4.5, 0.0),
            (5.0, 0.0),
            (1.0, 90.0),
            (0.0, 100.0),
        ],
    )
    def test_formula(self, coverage, expected):
        assert_allclose(liquidity_score(coverage, 1.5), expected)

    def test_shortfall_always_riskier(self):
        assert liquidity_score(1.49, 1.5) > liquidity_score(1.5, 1.5)


class TestPerformanceAndPolicyScores:

    def test_neutral_without_tvpi(self, two_fund_holdings, default_policy):
        assert performance_score(two_fund_holdings, default_policy) == 50.0

    def test_meets_minimum(self, default_policy):
        holdings = [Holding(id="1", name="A", paid_in=100, tvpi=1.8)]

        assert performance_score(holdings, default_policy) == 20.0

    def test_below_minimum(self, default_policy):
        holdings = [Holding(id="1", name="A", paid_in=100, tvpi=1.2)]

        assert_allclose(performance_score(holdings, default_policy), 70.0)

    def test_policy_score(self):
        assert policy_score([]) == 0.0
        assert policy_score([_breach()] * 3) == 45.0
        assert policy_score([_breach()] * 10) == 100.0


class TestScore:
    """Tests for score function."""

    def test_overall_blend(self, default_policy):
        assessment = score(
            _entries(35.0, 30.0), _liquidity(2.0), [], 1_000_000,
            policy=default_policy, manager_exposures=_entries(20.0),
        )
        scores = assessment.risk_scores

        assert_allclose(scores.concentration, 50.0)
        assert_allclose(scores.liquidity, 25.0)
        assert_allclose(
            scores.overall, CONCENTRATION_WEIGHT * 50.0 + LIQUIDITY_WEIGHT * 25.0
        )
        assert assessment.var_metrics.method == VarMethod.PARAMETRIC

    def test_breaches_and_holdings_feed_reported_scores(self, default_policy):
        holdings = [Holding(id="1", name="A", paid_in=100, tvpi=1.8)]

        assessment = score(
            _entries(50.0, 50.0), _liquidity(3.0), [], 1_000,
            policy=default_policy, holdings=holdings, breaches=[_breach()],
        )

        assert assessment.risk_scores.performance == 20.0
        assert assessment.risk_scores.policy == 15.0

    def test_historical_uses_current_score(self, default_policy):
        """The current overall score is the last observation in the history."""
        assessment = score(
            _entries(35.0), _liquidity(2.0), [], 1_000_000,
            method="historical", policy=default_policy, risk_history=[40.0],
        )

        overall = assessment.risk_scores.overall
        # A single change has zero variance, so the floor applies
        assert assessment.var_metrics.sigma == 0.012
        assert_allclose(assessment.var_metrics.mean_return, (overall - 40.0) / 40.0)

    def test_historical_volatile_history(self, default_policy):
        assessment = score(
            _entries(35.0), _liquidity(2.0), [], 1_000_000,
            method=VarMethod.HISTORICAL, policy=default_policy, risk_history=[20.0, 40.0],
        )

        overall = assessment.risk_scores.overall
        changes = np.array([1.0, (overall - 40.0) / 40.0])
        assert_allclose(assessment.var_metrics.sigma, max(np.std(changes), 0.012))

    def test_deterministic(self, two_fund_holdings, default_policy, as_of):
        metrics = portfolio_metrics(two_fund_holdings)
        exposures = aggregate_all(two_fund_holdings)
        liquidity = liquidity_summary(metrics, [], default_policy, as_of=as_of)

        def run():
            return score(
                exposures[Dimension.ASSET_CLASS], liquidity, built_in_scenarios(),
                metrics.total_nav, policy=default_policy,
                manager_exposures=exposures[Dimension.MANAGER],
            )

        assert run() == run()

    def test_monte_carlo_uses_scenarios(self, default_policy, rng):
        assessment = score(
            _entries(60.0, 40.0), _liquidity(2.0), built_in_scenarios(), 1_000_000,
            method=VarMethod.MONTE_CARLO, policy=default_policy, rng=rng, iterations=800,
        )

        assert assessment.var_metrics.iterations == 800
        assert assessment.var_metrics.var_return < -0.3

    def test_custom_policy_changes_concentration(self):
        policy = PolicyConfig(max_asset_class_exposure=70.0)

        assessment = score(_entries(35.0), _liquidity(2.0), [], 100.0, policy=policy)

        assert_allclose(assessment.risk_scores.concentration, 25.0)
