#!/usr/bin/env python3
"""
Market Regime Detection
=======================

Two-state (Bull/Bear) regime classification from a daily return series.

The classifier is a deterministic rolling-window heuristic, not a fitted
Hidden Markov Model: each observation is labelled from the statistics of a
trailing window of returns, with no hidden-state inference, transition
matrix or likelihood estimation.

ALGORITHM
---------
    Window length:   W = max(20, sensitivity * 5)
    Window at i:     returns[max(0, i - W) .. i]   (inclusive)

    Fewer than 5 observations in the window  ->  BULL (fixed fallback)

    Otherwise:
        mean         = average(window)
        variance     = average((r - mean)^2)          population variance
        volatility   = sqrt(variance * 252)           annualized
        momentum     = sum(last min(10, len(window)) returns)

        BEAR  if momentum < -0.02  or  volatility > 0.30
        BULL  otherwise

All thresholds live in ``config.ClassifierParameters``.

ARCHITECTURE
------------
    Layer 1: Return construction
        - compute_simple_returns: price -> simple daily return

    Layer 2: Window statistics
        - window_statistics: per-window mean/volatility/momentum
        - classify_window: threshold rule

    Layer 3: Sequence classification
        - detect_regimes: full label sequence ("window" or "rolling" method)
        - regime_statistics: per-index classifier inputs as a DataFrame
        - RegimeDetector: reusable, configured classifier

The "rolling" method restates the per-window computation with pandas
rolling aggregations (running sums maintained as the window slides). It
matches the "window" method within floating-point tolerance.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

from .config import CLASSIFIER, ClassifierParameters
from .exceptions import InvalidInputError

logger = logging.getLogger(__name__)

VERSION = "1.0.0"

DETECTION_METHODS = ("window", "rolling")


# =============================================================================
# SECTION 1: ENUMERATIONS
# =============================================================================

class Regime(Enum):
    """
    Classified market state for a single time step.

    BULL: calm or rising market, strategy fully invested
    BEAR: falling or turbulent market, strategy fully in cash
    """
    BULL = "Bull"
    BEAR = "Bear"


# =============================================================================
# SECTION 2: DATA STRUCTURES
# =============================================================================

@dataclass(frozen=True)
class WindowStatistics:
    """Classifier inputs computed from one lookback window."""
    n_observations: int
    mean: float                 # Daily mean return
    volatility: float           # Annualized volatility
    momentum: float             # Sum of the most recent returns


# =============================================================================
# SECTION 3: UTILITY FUNCTIONS
# =============================================================================

def compute_simple_returns(prices: Sequence[float]) -> np.ndarray:
    """
    Compute simple daily returns from a price series.

    returns[i] = (price[i+1] - price[i]) / price[i]

    Args:
        prices: Ordered price series (length N >= 2)

    Returns:
        Read-only return array of length N - 1
    """
    values = np.asarray(prices, dtype=float)
    if values.ndim != 1 or len(values) < 2:
        raise InvalidInputError("At least two prices are required to compute returns")

    returns = (values[1:] - values[:-1]) / values[:-1]
    returns.flags.writeable = False
    return returns


def validate_sensitivity(sensitivity: int) -> int:
    """Reject non-integer or non-positive sensitivity values."""
    if isinstance(sensitivity, bool) or not isinstance(sensitivity, (int, np.integer)):
        raise InvalidInputError(f"Sensitivity must be an integer, got {sensitivity!r}")
    if sensitivity < 1:
        raise InvalidInputError(f"Sensitivity must be >= 1, got {sensitivity}")
    return int(sensitivity)


def window_statistics(
    window: np.ndarray,
    params: ClassifierParameters = CLASSIFIER
) -> WindowStatistics:
    """
    Compute mean, annualized volatility and momentum of a return window.

    Variance is the population variance (divides by the window length).
    """
    n = len(window)
    mean = float(np.mean(window))
    variance = float(np.mean((window - mean) ** 2))
    volatility = float(np.sqrt(variance * params.trading_days_year))
    momentum = float(np.sum(window[-min(params.momentum_lookback, n):]))

    return WindowStatistics(
        n_observations=n,
        mean=mean,
        volatility=volatility,
        momentum=momentum
    )


def classify_window(
    stats: WindowStatistics,
    params: ClassifierParameters = CLASSIFIER
) -> Regime:
    """Apply the momentum/volatility threshold rule to window statistics."""
    if stats.n_observations < params.min_observations:
        return Regime.BULL

    if stats.momentum < params.momentum_threshold or stats.volatility > params.volatility_threshold:
        return Regime.BEAR
    return Regime.BULL


# =============================================================================
# SECTION 4: WINDOW COMPUTATION
# =============================================================================

def _window_statistics_frame(
    returns: np.ndarray,
    window: int,
    params: ClassifierParameters
) -> pd.DataFrame:
    """Per-index statistics and labels recomputed from each full window slice."""
    rows = []
    for i in range(len(returns)):
        stats = window_statistics(returns[max(0, i - window):i + 1], params)
        regime = classify_window(stats, params)
        rows.append((stats.n_observations, stats.mean, stats.volatility, stats.momentum, regime.value))

    return pd.DataFrame(rows, columns=['n_obs', 'mean', 'volatility', 'momentum', 'regime'])


def _rolling_statistics_frame(
    returns: np.ndarray,
    window: int,
    params: ClassifierParameters
) -> pd.DataFrame:
    """
    Per-index statistics from pandas rolling aggregations.

    A window of W + 1 observations with min_periods=1 reproduces the growing
    window at the start of the series. The momentum slice is capped at the
    window length so that a long momentum lookback never reaches past it.
    """
    series = pd.Series(returns, dtype=float)
    span = window + 1
    rolling = series.rolling(span, min_periods=1)

    variance = rolling.var(ddof=0).clip(lower=0.0)
    lookback = min(params.momentum_lookback, span)

    return pd.DataFrame({
        'n_obs': rolling.count().astype(int),
        'mean': rolling.mean(),
        'volatility': np.sqrt(variance * params.trading_days_year),
        'momentum': series.rolling(lookback, min_periods=1).sum(),
    })


def regime_statistics(
    returns: Sequence[float],
    sensitivity: int,
    params: ClassifierParameters = CLASSIFIER,
    method: str = "window"
) -> pd.DataFrame:
    """
    Classifier inputs and output for every return observation.

    Args:
        returns: Simple daily return series
        sensitivity: Regime sensitivity (>= 1)
        params: Classifier thresholds
        method: "window" (per-slice recomputation) or "rolling" (streaming)

    Returns:
        DataFrame with columns n_obs, mean, volatility, momentum, regime
    """
    sensitivity = validate_sensitivity(sensitivity)
    if method not in DETECTION_METHODS:
        raise InvalidInputError(
            f"Unknown detection method {method!r}; expected one of {DETECTION_METHODS}"
        )

    values = np.asarray(returns, dtype=float)
    window = params.window_size(sensitivity)

    if len(values) == 0:
        return pd.DataFrame(columns=['n_obs', 'mean', 'volatility', 'momentum', 'regime'])

    if method == "window":
        return _window_statistics_frame(values, window, params)

    frame = _rolling_statistics_frame(values, window, params)
    bear = (
        (frame['n_obs'] >= params.min_observations)
        & (
            (frame['momentum'] < params.momentum_threshold)
            | (frame['volatility'] > params.volatility_threshold)
        )
    )
    frame['regime'] = np.where(bear, Regime.BEAR.value, Regime.BULL.value)
    return frame


# =============================================================================
# SECTION 5: REGIME DETECTION
# =============================================================================

def detect_regimes(
    returns: Sequence[float],
    sensitivity: int,
    params: ClassifierParameters = CLASSIFIER,
    method: str = "window"
) -> List[Regime]:
    """
    Classify every return observation as Bull or Bear.

    Output depends only on the inputs: there is no randomness and no state
    retained between calls.

    Args:
        returns: Simple daily return series
        sensitivity: Regime sensitivity (>= 1); larger values lengthen the window
        params: Classifier thresholds
        method: "window" or "rolling"

    Returns:
        List of Regime labels, same length as returns

    Example:
        >>> returns = compute_simple_returns(prices)
        >>> regimes = detect_regimes(returns, sensitivity=3)
        >>> sum(r is Regime.BEAR for r in regimes)
    """
    frame = regime_statistics(returns, sensitivity, params=params, method=method)
    regimes = [Regime(label) for label in frame['regime']]

    n_bear = sum(1 for r in regimes if r is Regime.BEAR)
    logger.debug(
        f"Classified {len(regimes)} observations "
        f"(window={params.window_size(int(sensitivity))}, method={method}): "
        f"{len(regimes) - n_bear} Bull / {n_bear} Bear"
    )
    return regimes


class RegimeDetector:
    """
    Configured Bull/Bear classifier.

    Holds only immutable configuration, so a single instance may be shared
    between threads and reused across series.
    """

    def __init__(
        self,
        sensitivity: int,
        params: Optional[ClassifierParameters] = None,
        method: str = "window"
    ):
        """
        Initialize detector.

        Args:
            sensitivity: Regime sensitivity (>= 1)
            params: Classifier thresholds (defaults from config)
            method: "window" or "rolling"
        """
        if method not in DETECTION_METHODS:
            raise InvalidInputError(
                f"Unknown detection method {method!r}; expected one of {DETECTION_METHODS}"
            )
        self.sensitivity = validate_sensitivity(sensitivity)
        self.params = params or CLASSIFIER
        self.method = method

    @property
    def window_size(self) -> int:
        """Lookback window length W."""
        return self.params.window_size(self.sensitivity)

    def detect(self, returns: Sequence[float]) -> List[Regime]:
        """Classify a return series."""
        return detect_regimes(returns, self.sensitivity, params=self.params, method=self.method)

    def statistics(self, returns: Sequence[float]) -> pd.DataFrame:
        """Per-index classifier inputs for a return series."""
        return regime_statistics(returns, self.sensitivity, params=self.params, method=self.method)

    def __repr__(self) -> str:
        return (
            f"RegimeDetector(sensitivity={self.sensitivity}, "
            f"window={self.window_size}, method={self.method!r})"
        )


# =============================================================================
# SECTION 6: MODULE EXPORTS
# =============================================================================

__all__ = [
    'VERSION',
    'DETECTION_METHODS',
    'Regime',
    'WindowStatistics',
    'compute_simple_returns',
    'validate_sensitivity',
    'window_statistics',
    'classify_window',
    'regime_statistics',
    'detect_regimes',
    'RegimeDetector',
]
