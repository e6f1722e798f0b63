"""
Unit tests for policy.py - Risk Policy Module

Tests cover:
- Defaults, overrides, reset and update
- Breach severity thresholds
- Category, fund, leverage, liquidity, diversification and performance breaches
- Alert toggles
"""

import pytest
from numpy.testing import assert_allclose
from pydantic import ValidationError

from lp_engine.models import (
    BreachDimension,
    Dimension,
    Holding,
    LiquiditySummary,
    PolicyConfig,
    Severity,
)
from lp_engine.risk.exposure import aggregate_all, portfolio_metrics
from lp_engine.risk.policy import (
    breach_severity,
    breaches_by_dimension,
    default_policy,
    evaluate_policy,
    look_through_leverage,
    reset_policy,
    resolve_policy,
    update_policy,
    weighted_tvpi,
)


def _liquidity(coverage):
    return LiquiditySummary(
        next_12m_calls=1_000_000,
        next_12m_distributions=0.0,
        recommended_reserve=0.0,
        reserve_gap=0.0,
        coverage_ratio=coverage,
        average_quarterly_call=250_000,
        deployment_years=1.0,
        peak_reserve_requirement=0.0,
    )


def _evaluate(holdings, policy=None, coverage=5.0):
    metrics = portfolio_metrics(holdings)
    exposures = aggregate_all(holdings)
    return evaluate_policy(metrics, exposures, _liquidity(coverage), holdings, policy)


class TestPolicyDefaults:

    def test_default_values(self):
        policy = default_policy()

        assert policy.max_single_fund_exposure == 25.0
        assert policy.max_manager_exposure == 20.0
        assert policy.min_liquidity_coverage == 1.5
        assert policy.target_liquidity_buffer == 0.15
        assert policy.min_number_of_funds == 5
        assert policy.enable_liquidity_alerts is True

    def test_resolve_none_values_use_defaults(self):
        """None means 'use the system default', never zero."""
        policy = resolve_policy({"max_manager_exposure": None, "max_sector_exposure": 45.0})

        assert policy.max_manager_exposure == 20.0
        assert policy.max_sector_exposure == 45.0

    def test_resolve_ignores_unknown_keys(self):
        policy = resolve_policy({"id": "row-1", "client_id": 7, "max_geography_exposure": 55})

        assert policy.max_geography_exposure == 55.0

    def test_resolve_passthrough(self):
        policy = PolicyConfig(max_vintage_exposure=12.0)

        assert resolve_policy(policy) is policy
        assert resolve_policy(None) == default_policy()

    def test_reset(self):
        assert reset_policy() == PolicyConfig()

    def test_update_returns_new_config(self):
        original = default_policy()

        updated = update_policy(original, max_currency_exposure=60.0, min_number_of_funds=None)

        assert updated.max_currency_exposure == 60.0
        assert updated.min_number_of_funds == 5
        assert original.max_currency_exposure == 30.0

    def test_update_unknown_field_raises(self):
        with pytest.raises(ValueError, match="Unknown policy fields"):
            update_policy(default_policy(), max_crypto_exposure=5.0)

    def test_policy_is_frozen(self):
        with pytest.raises(ValidationError):
            default_policy().max_manager_exposure = 99.0


class TestBreachSeverity:

    @pytest.mark.parametrize(
        "current,limit,expected",
        [
            (20.0, 20.0, None),
            (21.0, 20.0, Severity.MEDIUM),
            (24.5, 20.0, Severity.HIGH),
            (28.5, 20.0, Severity.CRITICAL),
        ],
    )
    def test_thresholds(self, current, limit, expected):
        assert breach_severity(current, limit) == expected

    def test_zero_limit(self):
        assert breach_severity(1.0, 0.0) == Severity.CRITICAL


class TestEvaluatePolicy:
    """Tests for evaluate_policy function."""

    def test_two_fund_breaches(self, two_fund_holdings):
        breaches = _evaluate(two_fund_holdings)
        labels = {(b.dimension, b.label): b for b in breaches}

        acme = labels[(BreachDimension.MANAGER, "Acme")]
        assert_allclose(acme.current, 900 / 13)
        assert acme.limit == 20.0
        assert acme.severity == Severity.CRITICAL

        assert (BreachDimension.FUND, "Fund A") in labels
        assert (BreachDimension.ASSET_CLASS, "Buyout") in labels
        assert (BreachDimension.DIVERSIFICATION, "Number of Funds") in labels

    def test_diversification_severity(self, two_fund_holdings):
        breaches = _evaluate(two_fund_holdings)
        diversification = next(
            b for b in breaches if b.dimension == BreachDimension.DIVERSIFICATION
        )

        assert diversification.current == 2.0
        assert diversification.severity == Severity.HIGH

    def test_coverage_breach_severity(self, two_fund_holdings):
        high = _evaluate(two_fund_holdings, coverage=1.0)
        medium = _evaluate(two_fund_holdings, coverage=1.3)

        coverage_high = next(b for b in high if b.label == "Liquidity Coverage")
        coverage_medium = next(b for b in medium if b.label == "Liquidity Coverage")
        assert coverage_high.severity == Severity.HIGH
        assert coverage_medium.severity == Severity.MEDIUM

    def test_no_coverage_breach_when_liquidity_missing(self, two_fund_holdings):
        metrics = portfolio_metrics(two_fund_holdings)
        breaches = evaluate_policy(
            metrics, aggregate_all(two_fund_holdings), None, two_fund_holdings
        )

        assert not any(b.label == "Liquidity Coverage" for b in breaches)

    def test_unfunded_commitment_breach(self):
        holdings = [
            Holding(id=str(i), name=f"F{i}", manager=f"M{i}", commitment=100,
                    paid_in=20, current_value=20)
            for i in range(6)
        ]

        breaches = _evaluate(holdings)
        unfunded = next(b for b in breaches if b.label == "Unfunded Commitments")

        assert unfunded.dimension == BreachDimension.LIQUIDITY
        assert unfunded.current == 80.0
        assert unfunded.severity == Severity.CRITICAL

    def test_leverage_breaches(self):
        holdings = [
            Holding(id="1", name="Levered", current_value=100, leverage=2.5),
            Holding(id="2", name="Plain", current_value=100),
        ]

        breaches = _evaluate(holdings)
        leverage = [b for b in breaches if b.dimension == BreachDimension.LEVERAGE]

        labels = {b.label for b in leverage}
        assert labels == {"Portfolio Leverage", "Levered"}
        portfolio = next(b for b in leverage if b.label == "Portfolio Leverage")
        assert_allclose(portfolio.current, 75.0)

    def test_performance_breach(self):
        holdings = [
            Holding(id="1", name="A", paid_in=100, tvpi=1.0),
            Holding(id="2", name="B", paid_in=300, tvpi=1.2),
        ]

        breaches = _evaluate(holdings)
        performance = next(b for b in breaches if b.dimension == BreachDimension.PERFORMANCE)

        assert_allclose(performance.current, 1.15)
        assert performance.severity == Severity.HIGH

    def test_alert_toggles_suppress_families(self, two_fund_holdings):
        policy = PolicyConfig(
            enable_policy_violation_alerts=False,
            enable_liquidity_alerts=False,
            enable_performance_alerts=False,
        )

        assert _evaluate(two_fund_holdings, policy=policy, coverage=0.5) == []

    def test_well_diversified_portfolio_within_limits(self):
        holdings = [
            Holding(
                id=str(i), name=f"Fund {i}", manager=f"Manager {i}",
                domicile=["North America", "Europe", "Asia"][i % 3],
                currency=["USD", "EUR", "GBP", "JPY", "CHF", "CAD"][i],
                asset_class=["Buyout", "Venture Capital", "Private Credit"][i % 3],
                sector=["Tech", "Health", "Energy"][i % 3],
                vintage=2016 + i, commitment=100, paid_in=80, current_value=100,
                tvpi=1.8,
            )
            for i in range(6)
        ]
        breaches = _evaluate(holdings)

        assert breaches == []

    def test_string_keyed_exposures(self, two_fund_holdings):
        metrics = portfolio_metrics(two_fund_holdings)
        exposures = {d.value: entries for d, entries in aggregate_all(two_fund_holdings).items()}

        breaches = evaluate_policy(metrics, exposures, None, two_fund_holdings)

        assert any(b.dimension == BreachDimension.MANAGER for b in breaches)


class TestHelpers:

    def test_look_through_leverage_unlevered(self, two_fund_holdings):
        assert look_through_leverage(two_fund_holdings) == 0.0

    def test_look_through_leverage_empty(self):
        assert look_through_leverage([]) == 0.0

    def test_weighted_tvpi_none_when_unreported(self, two_fund_holdings):
        assert weighted_tvpi(two_fund_holdings) is None

    @pytest.mark.parametrize("bad", [float("nan"), float("inf")])
    def test_weighted_tvpi_skips_non_finite(self, bad):
        holdings = [
            Holding(id="1", name="A", paid_in=100, tvpi=1.0),
            Holding(id="2", name="B", paid_in=300, tvpi=bad),
        ]

        assert_allclose(weighted_tvpi(holdings), 1.0)
        assert weighted_tvpi(holdings[1:]) is None

    def test_non_finite_tvpi_does_not_hide_breach(self):
        holdings = [
            Holding(id="1", name="A", paid_in=100, tvpi=1.1),
            Holding(id="2", name="B", paid_in=300, tvpi=float("nan")),
        ]

        breaches = _evaluate(holdings)
        performance = [b for b in breaches if b.dimension == BreachDimension.PERFORMANCE]

        assert len(performance) == 1
        assert_allclose(performance[0].current, 1.1)

    def test_breaches_by_dimension(self, two_fund_holdings):
        counts = breaches_by_dimension(_evaluate(two_fund_holdings))

        assert counts[BreachDimension.MANAGER] == 2
        assert Dimension.MANAGER not in counts
