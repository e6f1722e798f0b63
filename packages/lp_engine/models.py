"""Pydantic models for the portfolio risk engine.

Input records (holdings, policy, scenarios, cash-flow events) are frozen so a
snapshot cannot change during a computation.  Derived records are rebuilt on
every call and never persisted by the engine.
"""

from __future__ import annotations

import math
from datetime import date
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field


def clean_amount(value: Any) -> float:
    """Return *value* as a float, or 0.0 when it is missing, non-finite or negative."""
    if value is None:
        return 0.0
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(amount) or amount < 0:
        return 0.0
    return amount


def is_clean_amount(value: Any) -> bool:
    """True when *value* is a finite, non-negative number (or missing)."""
    if value is None:
        return True
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return False
    return math.isfinite(amount) and amount >= 0


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class Dimension(str, Enum):
    """Exposure dimensions.  Each member has one selector in ``lp_engine.risk.exposure``."""

    FUND = "fund"
    MANAGER = "manager"
    GEOGRAPHY = "geography"
    VINTAGE = "vintage"
    VINTAGE_BAND = "vintage_band"
    ASSET_CLASS = "asset_class"
    SECTOR = "sector"
    CURRENCY = "currency"


class ExposureBasis(str, Enum):
    NAV = "nav"
    COMMITMENT = "commitment"
    UNFUNDED = "unfunded"


class HoldingKind(str, Enum):
    FUND = "fund"
    DIRECT = "direct"


class CashFlowType(str, Enum):
    CAPITAL_CALL = "CAPITAL_CALL"
    DISTRIBUTION = "DISTRIBUTION"
    NEW_HOLDING = "NEW_HOLDING"
    DIRECT_INVESTMENT = "DIRECT_INVESTMENT"


class RebalanceAction(str, Enum):
    REDUCE = "Reduce"
    INCREASE = "Increase"


class VarMethod(str, Enum):
    HISTORICAL = "historical"
    PARAMETRIC = "parametric"
    MONTE_CARLO = "monte_carlo"


class Severity(str, Enum):
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class BreachDimension(str, Enum):
    FUND = "FUND"
    ASSET_CLASS = "ASSET_CLASS"
    GEOGRAPHY = "GEOGRAPHY"
    SECTOR = "SECTOR"
    VINTAGE = "VINTAGE"
    MANAGER = "MANAGER"
    CURRENCY = "CURRENCY"
    LIQUIDITY = "LIQUIDITY"
    LEVERAGE = "LEVERAGE"
    DIVERSIFICATION = "DIVERSIFICATION"
    PERFORMANCE = "PERFORMANCE"


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


class Holding(BaseModel):
    """A fund commitment or direct investment position.

    Economic fields accept any float so that upstream data errors (NaN,
    negative marks) degrade to zero contribution instead of failing the whole
    report.  ``paid_in <= commitment`` is expected but not enforced.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    manager: str | None = None
    domicile: str | None = None
    currency: str | None = None
    asset_class: str | None = None
    sector: str | None = None
    vintage: int | None = None
    commitment: float = 0.0
    paid_in: float = 0.0
    current_value: float = 0.0
    leverage: float | None = 1.0
    tvpi: float | None = None
    dpi: float | None = None
    irr: float | None = None
    investment_type: str | None = None  # Direct investments only, e.g. PRIVATE_CREDIT
    kind: HoldingKind = HoldingKind.FUND

    @property
    def nav_amount(self) -> float:
        return clean_amount(self.current_value)

    @property
    def commitment_amount(self) -> float:
        return clean_amount(self.commitment)

    @property
    def paid_in_amount(self) -> float:
        return clean_amount(self.paid_in)

    @property
    def unfunded_amount(self) -> float:
        return max(self.commitment_amount - self.paid_in_amount, 0.0)

    @property
    def call_ratio(self) -> float:
        """Share of the commitment already called; 0.0 when commitment is 0."""
        commitment = self.commitment_amount
        if commitment == 0:
            return 0.0
        return self.paid_in_amount / commitment

    @property
    def leverage_multiple(self) -> float:
        if self.leverage is None or not math.isfinite(self.leverage) or self.leverage < 0:
            return 1.0
        return float(self.leverage)


class PolicyConfig(BaseModel):
    """Risk policy thresholds.  Percentages are expressed as 0-100."""

    model_config = ConfigDict(frozen=True)

    max_single_fund_exposure: float = 25.0
    max_manager_exposure: float = 20.0
    max_geography_exposure: float = 40.0
    max_sector_exposure: float = 35.0
    max_vintage_exposure: float = 30.0
    max_currency_exposure: float = 30.0
    max_asset_class_exposure: float = 35.0
    max_unfunded_commitments: float = 50.0
    min_liquidity_reserve: float = 10.0
    min_liquidity_coverage: float = 1.5  # Multiple of next-12-month calls
    target_liquidity_buffer: float = 0.15  # Fraction of total commitment
    max_portfolio_leverage: float = 0.5  # NAV-weighted look-through debt/equity
    max_leverage_ratio: float = 2.0  # Per-holding leverage multiple
    min_number_of_funds: int = 5
    target_diversification_score: float = 0.7
    min_acceptable_tvpi: float = 1.5
    min_acceptable_dpi: float = 0.5
    min_acceptable_irr: float = 10.0
    enable_policy_violation_alerts: bool = True
    enable_performance_alerts: bool = True
    enable_liquidity_alerts: bool = True


class Scenario(BaseModel):
    """Shock parameters applied to current holdings."""

    model_config = ConfigDict(frozen=True)

    name: str
    nav_shock_pct: float = Field(default=0.0, allow_inf_nan=False)
    capital_call_multiplier: float = Field(default=1.0, ge=0, allow_inf_nan=False)
    distribution_multiplier: float = Field(default=1.0, ge=0, allow_inf_nan=False)
    id: str | None = None
    custom: bool = False


class CashFlowEvent(BaseModel):
    """A dated capital call or distribution."""

    model_config = ConfigDict(frozen=True)

    type: CashFlowType
    event_date: date
    amount: float
    holding_id: str | None = None


class ForecastAdjustments(BaseModel):
    """User overrides applied on top of a forecast scenario."""

    model_config = ConfigDict(frozen=True)

    call_pace_multiplier: float = Field(default=1.0, ge=0, allow_inf_nan=False)
    distribution_multiplier: float = Field(default=1.0, ge=0, allow_inf_nan=False)
    nav_shock_pct: float = Field(default=0.0, allow_inf_nan=False)
    growth_adjustment: float = Field(default=1.0, ge=0, allow_inf_nan=False)


# ---------------------------------------------------------------------------
# Derived records
# ---------------------------------------------------------------------------


class ExposureEntry(BaseModel):
    name: str
    amount: float
    percentage: float


class PortfolioMetrics(BaseModel):
    total_nav: float
    total_commitment: float
    total_paid_in: float
    unfunded_commitments: float
    fund_nav: float
    direct_nav: float
    fund_count: int
    holding_count: int


class DriftItem(BaseModel):
    dimension: Dimension
    category: str
    current_pct: float
    target_pct: float
    drift: float
    tolerance: float

    @computed_field  # type: ignore[prop-decorator]
    @property
    def in_breach(self) -> bool:
        return abs(self.drift) > self.tolerance


class FundAction(BaseModel):
    holding_id: str
    name: str
    weight: float
    cash_impact: float
    call_ratio: float
    gp_constraint: str


class Recommendation(BaseModel):
    dimension: Dimension
    category: str
    action: RebalanceAction
    current_pct: float
    target_pct: float
    drift: float
    adjustment_amount: float
    timeline: str
    fund_plan: list[FundAction] = Field(default_factory=list)
    constraint: str | None = None


class PolicyBreach(BaseModel):
    dimension: BreachDimension
    label: str
    current: float
    limit: float
    severity: Severity
    message: str


class PacingRates(BaseModel):
    deployment_rate: float
    distribution_rate: float
    deployment_from_history: bool
    distribution_from_history: bool


class ScenarioResult(BaseModel):
    name: str
    scenario_id: str | None = None
    custom: bool = False
    nav_shock_pct: float
    capital_call_multiplier: float
    distribution_multiplier: float
    deployment_rate: float
    distribution_rate: float
    horizon_quarters: int
    projected_nav: float
    projected_calls: float
    projected_distributions: float
    available_liquidity: float
    liquidity_gap: float
    coverage_ratio: float
    status: str


class ScenarioSet(BaseModel):
    """Built-in and custom scenario results, listed independently."""

    built_in: list[ScenarioResult] = Field(default_factory=list)
    custom: list[ScenarioResult] = Field(default_factory=list)

    def all(self) -> list[ScenarioResult]:
        return [*self.built_in, *self.custom]


class QuarterlyCashFlow(BaseModel):
    period: str
    capital_calls: float
    distributions: float
    net: float
    cumulative_calls: float
    cumulative_distributions: float


class ForecastProjection(BaseModel):
    period: str
    capital_calls: float
    distributions: float
    net_cash_flow: float
    cumulative_calls: float
    cumulative_distributions: float
    cumulative_net: float
    required_reserve: float
    remaining_unfunded: float


class CashFlowForecast(BaseModel):
    scenario_name: str
    horizon_quarters: int
    deployment_rate: float
    distribution_rate: float
    projections: list[ForecastProjection]
    peak_reserve_requirement: float
    total_projected_calls: float
    total_projected_distributions: float
    reserve_gap: float

    @property
    def upcoming_drawdowns(self) -> list[ForecastProjection]:
        return self.projections[:4]


class TimelinePoint(BaseModel):
    period: str
    capital_calls: float
    distributions: float
    net_cash_flow: float
    projected: bool


class LiquiditySummary(BaseModel):
    next_12m_calls: float
    next_12m_distributions: float
    recommended_reserve: float
    reserve_gap: float
    coverage_ratio: float
    average_quarterly_call: float
    deployment_years: float
    peak_reserve_requirement: float


class RiskScores(BaseModel):
    concentration: float
    liquidity: float
    overall: float
    performance: float
    policy: float


class VarMetrics(BaseModel):
    method: VarMethod
    portfolio_value: float
    portfolio_variance: float
    sigma: float | None = None
    mean_return: float | None = None
    daily_var: float
    monthly_var: float
    annual_var: float
    expected_shortfall: float
    var_return: float | None = None
    es_return: float | None = None
    iterations: int | None = None
    confidence: float = 0.95


class RiskAssessment(BaseModel):
    risk_scores: RiskScores
    var_metrics: VarMetrics


class RiskReport(BaseModel):
    snapshot_hash: str
    metrics: PortfolioMetrics
    exposures: dict[Dimension, list[ExposureEntry]]
    liquidity: LiquiditySummary
    risk_scores: RiskScores
    var_metrics: VarMetrics
    policy_breaches: list[PolicyBreach]
    drift: list[DriftItem]
    recommendations: list[Recommendation]
    scenarios: ScenarioSet
    history: list[QuarterlyCashFlow]
    forecast: CashFlowForecast
