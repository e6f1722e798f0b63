"""
Value-at-Risk Module

Portfolio VaR and Expected Shortfall from asset-class exposure weights.
There is no price history for private holdings, so volatility is a
structural assumption (more concentrated classes are assumed more volatile)
and cross-class correlation is inferred from exposure similarity.

Three methods are available:
- historical: volatility of snapshot-over-snapshot changes in the risk score
- parametric: sqrt of the assumed portfolio variance
- monte_carlo: simulated daily returns from scenario shocks plus noise
"""

from __future__ import annotations

from typing import Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import structlog
from scipy.spatial.distance import pdist, squareform

from lp_engine.models import ExposureEntry, Scenario, ScenarioResult, VarMethod, VarMetrics, clean_amount

logger = structlog.get_logger(__name__)


# Volatility assumption per asset class: BASE_VOLATILITY + weight * CONCENTRATION_VOLATILITY
BASE_VOLATILITY = 0.08
CONCENTRATION_VOLATILITY = 0.15

MIN_CORRELATION = 0.1
MAX_CORRELATION = 0.95

HISTORICAL_SIGMA_FLOOR = 0.012
PARAMETRIC_SIGMA_FLOOR = 0.015

CONFIDENCE = 0.95
Z_SCORE = 1.65
ES_MULTIPLIER = 1.35

TRADING_DAYS_PER_MONTH = 21
TRADING_DAYS_PER_YEAR = 252

MIN_MONTE_CARLO_ITERATIONS = 800
DEFAULT_MONTE_CARLO_ITERATIONS = 1000
PRIMARY_NOISE_WEIGHT = 0.7
SECONDARY_NOISE_WEIGHT = 0.3

Exposures = Union[Sequence[ExposureEntry], Mapping[str, float], Sequence[float]]


def _percentages(exposures: Exposures) -> np.ndarray:
    if isinstance(exposures, Mapping):
        values = list(exposures.values())
    else:
        values = [
            entry.percentage if isinstance(entry, ExposureEntry) else entry
            for entry in exposures
        ]
    return np.array([clean_amount(value) for value in values], dtype=float)


def normalize_weights(exposures: Exposures) -> np.ndarray:
    """Normalise exposure percentages to weights summing to 1.

    A zero total gives a single implicit weight of 1.
    """
    percentages = _percentages(exposures)
    total = percentages.sum()
    if total == 0:
        return np.array([1.0])
    return percentages / total


def exposure_correlation(exposures: Exposures) -> np.ndarray:
    """Correlation matrix inferred from exposure similarity.

    corr[i, j] = similarity * combined exposure, where similarity is
    1 - |p_i - p_j| / 100 and combined exposure is (p_i + p_j) / 100,
    clipped to [MIN_CORRELATION, MAX_CORRELATION].  The diagonal is 1.

    Args:
        exposures: Asset-class exposure percentages (0-100)

    Returns:
        N x N correlation matrix
    """
    percentages = _percentages(exposures)
    if percentages.sum() == 0:
        return np.ones((1, 1))

    n = len(percentages)
    if n == 1:
        return np.ones((1, 1))

    distance = squareform(pdist(percentages.reshape(-1, 1), metric="cityblock"))
    similarity = 1.0 - distance / 100.0
    combined = (percentages[:, None] + percentages[None, :]) / 100.0

    corr = np.clip(similarity * combined, MIN_CORRELATION, MAX_CORRELATION)
    np.fill_diagonal(corr, 1.0)

    return corr


def build_covariance(
    weights: np.ndarray,
    correlation: Optional[np.ndarray] = None,
) -> np.ndarray:
    """Covariance from the structural volatility assumption.

    Without a correlation matrix the covariance is diagonal.

    Raises:
        ValueError: If the correlation shape does not match the weights
    """
    weights = np.asarray(weights, dtype=float).flatten()
    vol = BASE_VOLATILITY + weights * CONCENTRATION_VOLATILITY

    if correlation is None:
        return np.diag(vol ** 2)

    correlation = np.asarray(correlation, dtype=float)
    if correlation.shape != (len(weights), len(weights)):
        raise ValueError(
            f"Correlation shape {correlation.shape} doesn't match {len(weights)} weights"
        )

    cov = correlation * np.outer(vol, vol)
    np.fill_diagonal(cov, vol ** 2)
    return cov


def portfolio_variance(weights: np.ndarray, cov: np.ndarray) -> float:
    """w' * Sigma * w"""
    weights = np.asarray(weights, dtype=float).flatten()

    if weights.shape[0] != cov.shape[0]:
        raise ValueError(
            f"Weights dimension {weights.shape[0]} doesn't match covariance {cov.shape[0]}"
        )

    return float(max(weights @ cov @ weights, 0.0))


def score_changes(score_history: Sequence[float]) -> np.ndarray:
    """Fractional snapshot-over-snapshot changes; a zero prior score gives 0."""
    scores = np.asarray(list(score_history), dtype=float)
    if scores.size < 2:
        return np.array([])

    previous = scores[:-1]
    delta = np.diff(scores)
    safe_previous = np.where(previous == 0, 1.0, previous)
    return np.where(previous == 0, 0.0, delta / safe_previous)


def historical_sigma(score_history: Sequence[float]) -> Tuple[float, float]:
    """(sigma, mean) of risk score changes, sigma floored at HISTORICAL_SIGMA_FLOOR."""
    changes = score_changes(score_history)
    if changes.size == 0:
        return HISTORICAL_SIGMA_FLOOR, 0.0

    mean = float(np.mean(changes))
    variance = float(np.var(changes))
    return max(float(np.sqrt(variance)), HISTORICAL_SIGMA_FLOOR), mean


def parametric_sigma(variance: float) -> float:
    return max(float(np.sqrt(max(variance, 0.0))), PARAMETRIC_SIGMA_FLOOR)


def monte_carlo_returns(
    shocks: Sequence[float],
    variance: float,
    iterations: int = DEFAULT_MONTE_CARLO_ITERATIONS,
    rng: Optional[np.random.Generator] = None,
) -> np.ndarray:
    """Simulate sorted daily returns.

    Each draw picks a random scenario shock and adds two independent
    Gaussian noise terms weighted 0.7 / 0.3, scaled by sqrt(variance).

    Raises:
        ValueError: If iterations < MIN_MONTE_CARLO_ITERATIONS
    """
    if iterations < MIN_MONTE_CARLO_ITERATIONS:
        raise ValueError(
            f"Monte Carlo needs at least {MIN_MONTE_CARLO_ITERATIONS} iterations, got {iterations}"
        )

    rng = rng if rng is not None else np.random.default_rng()
    shock_values = np.asarray(list(shocks) or [0.0], dtype=float)

    picks = rng.integers(0, len(shock_values), size=iterations)
    z1 = rng.standard_normal(iterations)
    z2 = rng.standard_normal(iterations)

    scale = np.sqrt(max(variance, 0.0))
    returns = shock_values[picks] + scale * (PRIMARY_NOISE_WEIGHT * z1 + SECONDARY_NOISE_WEIGHT * z2)

    return np.sort(returns)


def tail_statistics(sorted_returns: np.ndarray, confidence: float = CONFIDENCE) -> Tuple[float, float]:
    """(VaR return, ES return) from ascending simulated returns."""
    if sorted_returns.size == 0:
        raise ValueError("Cannot compute tail statistics from an empty sample")

    index = int(np.floor((1 - confidence) * sorted_returns.size))
    var_return = float(sorted_returns[index])
    tail = sorted_returns[sorted_returns <= var_return]
    return var_return, float(tail.mean())


def _scaled(daily: float) -> Tuple[float, float]:
    return daily * np.sqrt(TRADING_DAYS_PER_MONTH), daily * np.sqrt(TRADING_DAYS_PER_YEAR)


def value_at_risk(
    asset_class_exposures: Exposures,
    portfolio_value: float,
    method: Union[VarMethod, str] = VarMethod.PARAMETRIC,
    scenarios: Optional[Iterable[Union[Scenario, ScenarioResult]]] = None,
    risk_history: Optional[Sequence[float]] = None,
    use_correlation: bool = True,
    iterations: Optional[int] = None,
    rng: Optional[np.random.Generator] = None,
) -> VarMetrics:
    """Compute 95% VaR and Expected Shortfall.

    Args:
        asset_class_exposures: Asset-class exposure percentages
        portfolio_value: Portfolio value the returns apply to
        method: historical, parametric or monte_carlo
        scenarios: Scenarios whose NAV shocks seed the Monte Carlo draws
        risk_history: Overall risk score history, oldest first (historical)
        use_correlation: Use the exposure-similarity correlation matrix;
            otherwise assume zero cross-correlation
        iterations: Monte Carlo draws (default 1000, minimum 800)
        rng: Random generator for Monte Carlo (fresh OS-seeded if None)

    Returns:
        VarMetrics with daily, monthly and annual VaR and ES

    Raises:
        ValueError: If the method is unknown or iterations are too few
    """
    try:
        method = VarMethod(method)
    except ValueError:
        raise ValueError(
            f"Unknown VaR method: {method}. Use one of {[m.value for m in VarMethod]}"
        ) from None

    portfolio_value = clean_amount(portfolio_value)

    weights = normalize_weights(asset_class_exposures)
    correlation = exposure_correlation(asset_class_exposures) if use_correlation else None
    cov = build_covariance(weights, correlation)
    variance = portfolio_variance(weights, cov)

    sigma: Optional[float] = None
    mean_return: Optional[float] = None
    var_return: Optional[float] = None
    es_return: Optional[float] = None
    draws: Optional[int] = None

    if method == VarMethod.MONTE_CARLO:
        draws = iterations if iterations is not None else DEFAULT_MONTE_CARLO_ITERATIONS
        shocks = [scenario.nav_shock_pct for scenario in scenarios or []]
        returns = monte_carlo_returns(shocks, variance, draws, rng)
        var_return, es_return = tail_statistics(returns)
        mean_return = float(returns.mean())
        daily_var = portfolio_value * abs(var_return)
        expected_shortfall = portfolio_value * abs(es_return)
    else:
        if method == VarMethod.HISTORICAL:
            sigma, mean_return = historical_sigma(risk_history or [])
        else:
            sigma = parametric_sigma(variance)
        daily_var = portfolio_value * sigma * Z_SCORE
        expected_shortfall = daily_var * ES_MULTIPLIER

    monthly_var, annual_var = _scaled(daily_var)

    logger.info(
        "value_at_risk: VaR computed",
        method=method.value,
        portfolio_value=portfolio_value,
        num_classes=len(weights),
        daily_var=daily_var,
    )

    return VarMetrics(
        method=method,
        portfolio_value=portfolio_value,
        portfolio_variance=variance,
        sigma=sigma,
        mean_return=mean_return,
        daily_var=float(daily_var),
        monthly_var=float(monthly_var),
        annual_var=float(annual_var),
        expected_shortfall=float(expected_shortfall),
        var_return=var_return,
        es_return=es_return,
        iterations=draws,
        confidence=CONFIDENCE,
    )


def independent_generators(count: int, seed: Optional[int] = None) -> List[np.random.Generator]:
    """Spawn independently seeded generators for concurrent Monte Carlo runs."""
    if count < 1:
        raise ValueError(f"count must be >= 1, got {count}")
    return [np.random.default_rng(child) for child in np.random.SeedSequence(seed).spawn(count)]
