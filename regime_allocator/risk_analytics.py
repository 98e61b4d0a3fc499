"""
================================================================================
PERFORMANCE METRICS & REGIME-CONDITIONAL ANALYTICS
================================================================================

Metrics computed from a finished equity curve, plus diagnostics that break
the underlying asset's behaviour down by detected regime.

Components:
-----------
1. PERFORMANCE METRICS
   - Cumulative and annualized return
   - Annualized volatility (population variance of step returns)
   - Sharpe ratio against a fixed risk-free rate
   - Maximum drawdown from the running peak

2. DRAWDOWN SERIES
   - Underwater curve for charting and inspection

3. REGIME-CONDITIONAL ANALYSIS
   - Asset return statistics on Bull vs Bear days
   - Welch t-test of the difference in mean daily return

Conventions:
------------
- Equity curves start at the base value (100.0) and hold one value per
  price observation.
- years = len(equity) / 252 (number of curve points, not of steps).
- Zero volatility is a defined degenerate case: the Sharpe ratio is 0.0.
- Annualizing a curve whose growth factor is negative is undefined and
  raises MathDomainError.
================================================================================
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, field
from typing import Dict, Optional, Sequence

import numpy as np
import pandas as pd
from scipy import stats

from .config import METRICS, MetricsParameters
from .exceptions import InvalidInputError, MathDomainError
from .regime_detector import Regime

logger = logging.getLogger(__name__)


# =============================================================================
# DATA STRUCTURES
# =============================================================================

@dataclass(frozen=True)
class PerformanceMetrics:
    """
    Performance summary of a single equity curve.

    Attributes
    ----------
    cumulative_return : float
        Final equity relative to the base value, minus one
    annualized_return : float
        Geometric annual growth rate over len(equity) / 252 years
    volatility : float
        Annualized standard deviation of step returns
    sharpe_ratio : float
        (annualized_return - risk_free_rate) / volatility, 0.0 if flat
    max_drawdown : float
        Largest peak-to-trough decline as a fraction of the peak (>= 0)
    """
    cumulative_return: float
    annualized_return: float
    volatility: float
    sharpe_ratio: float
    max_drawdown: float

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass(frozen=True)
class StrategyMetrics(PerformanceMetrics):
    """Performance metrics extended with trading activity."""
    turnover: float             # Annualized sum of absolute allocation changes
    trade_count: int            # Number of allocation switches

    @classmethod
    def from_performance(
        cls,
        metrics: PerformanceMetrics,
        turnover: float,
        trade_count: int
    ) -> 'StrategyMetrics':
        return cls(turnover=turnover, trade_count=trade_count, **asdict(metrics))


@dataclass(frozen=True)
class RegimePerformance:
    """
    Asset behaviour while a given regime was in force.

    Attributes
    ----------
    regime : str
        Regime name (Bull/Bear)
    days : int
        Number of return observations labelled with the regime
    pct_time : float
        Share of all observations
    avg_daily_return : float
        Mean simple daily return of the asset
    volatility : float
        Annualized volatility of the asset's daily returns
    hit_rate : float
        Share of days with a positive asset return
    total_return : float
        Compounded asset return over the regime's days
    """
    regime: str
    days: int
    pct_time: float
    avg_daily_return: float
    volatility: float
    hit_rate: float
    total_return: float


@dataclass(frozen=True)
class RegimeAnalysis:
    """Regime-conditional breakdown with a test for differing mean returns."""
    by_regime: Dict[str, RegimePerformance] = field(default_factory=dict)
    t_statistic: Optional[float] = None
    p_value: Optional[float] = None

    @property
    def means_differ(self) -> bool:
        """Bull and Bear mean returns differ at the 5% level."""
        return self.p_value is not None and self.p_value < 0.05


# =============================================================================
# METRIC FUNCTIONS
# =============================================================================

def _as_equity_array(equity: Sequence[float]) -> np.ndarray:
    values = np.asarray(equity, dtype=float)
    if values.ndim != 1 or len(values) < 2:
        raise InvalidInputError("Equity curve needs at least two points")
    if not np.all(np.isfinite(values)):
        raise InvalidInputError("Equity curve contains non-finite values")
    if np.any(values <= 0):
        raise MathDomainError("Equity curve must stay strictly positive")
    return values


def step_returns(equity: np.ndarray) -> np.ndarray:
    """Simple returns between consecutive equity points."""
    return (equity[1:] - equity[:-1]) / equity[:-1]


def annualize_return(
    cumulative_return: float,
    n_points: int,
    trading_days_year: int = METRICS.trading_days_year
) -> float:
    """
    Geometric annualization of a cumulative return.

    A negative growth factor (cumulative return below -100%) has no real
    fractional power, so it is rejected rather than approximated.
    """
    years = n_points / trading_days_year
    if years <= 0:
        raise InvalidInputError(f"Cannot annualize over {years} years")

    growth = 1.0 + cumulative_return
    if growth < 0:
        raise MathDomainError(
            f"Cannot annualize a cumulative return of {cumulative_return:.4f} "
            f"(growth factor {growth:.4f} is negative)"
        )
    return growth ** (1.0 / years) - 1.0


def annualized_volatility(
    returns: np.ndarray,
    trading_days_year: int = METRICS.trading_days_year
) -> float:
    """Square-root-of-time annualized population standard deviation."""
    return math.sqrt(float(np.var(returns)) * trading_days_year)


def sharpe_ratio(
    annualized: float,
    volatility: float,
    risk_free_rate: float = METRICS.risk_free_rate
) -> float:
    """Excess annual return per unit of volatility; 0.0 for a flat curve."""
    if volatility > 0:
        return (annualized - risk_free_rate) / volatility
    return 0.0


def calculate_drawdown_series(equity: Sequence[float]) -> pd.Series:
    """
    Drawdown at each point as a positive fraction of the running peak.

    Zero on new highs, positive while under water.
    """
    curve = equity if isinstance(equity, pd.Series) else pd.Series(equity, dtype=float)
    running_max = curve.expanding().max()
    return (running_max - curve) / running_max


def max_drawdown(equity: Sequence[float]) -> float:
    """Largest peak-to-trough decline; 0.0 for a non-decreasing curve."""
    values = np.asarray(equity, dtype=float)
    if len(values) == 0:
        return 0.0
    peaks = np.maximum.accumulate(values)
    drawdowns = (peaks - values) / peaks
    return max(0.0, float(drawdowns.max()))


# =============================================================================
# PERFORMANCE CALCULATOR
# =============================================================================

class PerformanceCalculator:
    """
    Compute the performance summary of an equity curve.

    Formulas:
        cumulative = (equity[-1] - 100) / 100
        annualized = (1 + cumulative)^(1 / years) - 1,  years = len / 252
        volatility = sqrt(var(step returns) * 252)
        sharpe     = (annualized - rf) / volatility
        max DD     = max over t of (peak_t - equity_t) / peak_t
    """

    def __init__(self, params: Optional[MetricsParameters] = None):
        self.params = params or METRICS

    def calculate(self, equity: Sequence[float]) -> PerformanceMetrics:
        """
        Calculate all metrics for one curve.

        Args:
            equity: Equity curve (at least two points, strictly positive)

        Returns:
            PerformanceMetrics
        """
        p = self.params
        values = _as_equity_array(equity)

        cumulative = (values[-1] - p.base_equity) / p.base_equity
        annualized = annualize_return(cumulative, len(values), p.trading_days_year)
        volatility = annualized_volatility(step_returns(values), p.trading_days_year)

        return PerformanceMetrics(
            cumulative_return=float(cumulative),
            annualized_return=float(annualized),
            volatility=volatility,
            sharpe_ratio=float(sharpe_ratio(annualized, volatility, p.risk_free_rate)),
            max_drawdown=max_drawdown(values)
        )


def compute_metrics(
    equity: Sequence[float],
    params: Optional[MetricsParameters] = None
) -> PerformanceMetrics:
    """Convenience wrapper around PerformanceCalculator."""
    return PerformanceCalculator(params).calculate(equity)


# =============================================================================
# REGIME-CONDITIONAL ANALYSIS
# =============================================================================

def analyze_regime_performance(
    returns: Sequence[float],
    regimes: Sequence[Regime],
    params: Optional[MetricsParameters] = None
) -> RegimeAnalysis:
    """
    Break asset returns down by the regime in force on each day.

    Uses the same index alignment as the simulator: regimes[i] labels
    returns[i].

    Args:
        returns: Simple daily asset returns
        regimes: Regime label per return
        params: Metric parameters (trading calendar)

    Returns:
        RegimeAnalysis with per-regime statistics and a Welch t-test
    """
    p = params or METRICS
    values = np.asarray(returns, dtype=float)
    if len(values) != len(regimes):
        raise InvalidInputError(
            f"Got {len(values)} returns but {len(regimes)} regime labels"
        )

    labels = np.array([r.value for r in regimes])
    by_regime: Dict[str, RegimePerformance] = {}
    samples: Dict[str, np.ndarray] = {}

    for regime in Regime:
        sample = values[labels == regime.value]
        samples[regime.value] = sample
        if len(sample) == 0:
            continue

        by_regime[regime.value] = RegimePerformance(
            regime=regime.value,
            days=len(sample),
            pct_time=len(sample) / len(values),
            avg_daily_return=float(sample.mean()),
            volatility=annualized_volatility(sample, p.trading_days_year),
            hit_rate=float((sample > 0).mean()),
            total_return=float(np.prod(1.0 + sample) - 1.0)
        )

    t_statistic = None
    p_value = None
    bull = samples[Regime.BULL.value]
    bear = samples[Regime.BEAR.value]
    if len(bull) >= 2 and len(bear) >= 2:
        result = stats.ttest_ind(bull, bear, equal_var=False)
        if np.isfinite(result.statistic):
            t_statistic = float(result.statistic)
            p_value = float(result.pvalue)

    breakdown = ", ".join(f"{k}={v.days}d" for k, v in by_regime.items())
    logger.debug(f"Regime breakdown: {breakdown}")
    return RegimeAnalysis(by_regime=by_regime, t_statistic=t_statistic, p_value=p_value)


__all__ = [
    'PerformanceMetrics',
    'StrategyMetrics',
    'RegimePerformance',
    'RegimeAnalysis',
    'step_returns',
    'annualize_return',
    'annualized_volatility',
    'sharpe_ratio',
    'calculate_drawdown_series',
    'max_drawdown',
    'PerformanceCalculator',
    'compute_metrics',
    'analyze_regime_performance',
]
