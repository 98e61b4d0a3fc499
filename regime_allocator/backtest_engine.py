#!/usr/bin/env python3
"""
Regime Allocation Backtesting Engine
====================================

Backtests a binary allocation strategy driven by the Bull/Bear classifier
against a static buy-and-hold benchmark.

STRATEGY
--------
    Bull regime  ->  100% invested in the asset
    Bear regime  ->  100% in cash (zero return)

    strategy[i+1] = strategy[i] * (1 + returns[i] * allocation[i])
    benchmark[i+1] = benchmark[i] * (1 + returns[i])

The regime at index i is derived from returns up to and including day i and
gates the return of that same day i. This alignment is reproduced as-is.

METRICS DELIVERED
-----------------
For both curves:
    1. Cumulative and annualized return
    2. Annualized volatility
    3. Sharpe ratio (2% risk-free rate)
    4. Maximum drawdown
For the strategy only:
    5. Trade count (allocation switches)
    6. Annualized turnover

ARCHITECTURE
------------
    Layer 1: Simulation
        - StrategySimulator: allocation loop and equity curves

    Layer 2: Orchestration
        - BacktestRequest: validated, immutable input
        - BacktestEngine: returns -> regimes -> simulation -> metrics
        - BacktestResult: immutable output with per-date chart rows

    Layer 3: Output
        - format_backtest_report: human-readable summary
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .config import (
    CLASSIFIER,
    DATA,
    SIMULATION,
    ClassifierParameters,
    DataParameters,
    MetricsParameters,
    SimulationParameters,
    normalize_symbol,
)
from .exceptions import InsufficientDataError, InvalidInputError
from .regime_detector import (
    DETECTION_METHODS,
    Regime,
    RegimeDetector,
    compute_simple_returns,
    validate_sensitivity,
)
from .risk_analytics import (
    PerformanceCalculator,
    PerformanceMetrics,
    RegimeAnalysis,
    StrategyMetrics,
    analyze_regime_performance,
)

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


# =============================================================================
# SECTION 1: DATA STRUCTURES
# =============================================================================

@dataclass(frozen=True)
class SimulationResult:
    """
    Output of the allocation loop.

    Equity curves and allocations hold one value per price observation.
    """
    strategy_equity: Tuple[float, ...]
    buy_and_hold_equity: Tuple[float, ...]
    allocations: Tuple[float, ...]
    trade_count: int
    total_turnover: float       # Sum of absolute allocation changes


@dataclass(frozen=True)
class ChartRow:
    """One row per price observation for charting and export."""
    date: date
    price: float
    regime: Regime
    allocation: float
    strategy_equity: float
    buy_and_hold_equity: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'date': self.date.isoformat(),
            'price': self.price,
            'regime': self.regime.value,
            'allocation': self.allocation,
            'strategy_equity': self.strategy_equity,
            'buy_and_hold_equity': self.buy_and_hold_equity,
        }


@dataclass(frozen=True)
class BacktestRequest:
    """
    Immutable backtest input.

    Use ``BacktestRequest.create`` to build one from arbitrary sequences.
    """
    symbol: str
    dates: Tuple[Any, ...]
    prices: Tuple[float, ...]
    sensitivity: int

    @classmethod
    def create(
        cls,
        prices: Sequence[float],
        dates: Sequence[Any],
        sensitivity: int,
        symbol: str = "UNKNOWN"
    ) -> 'BacktestRequest':
        return cls(
            symbol=symbol,
            dates=tuple(dates),
            prices=tuple(prices),
            sensitivity=sensitivity
        )


@dataclass(frozen=True)
class BacktestResult:
    """
    Complete backtest result container.

    Contains:
        - Strategy metrics (with trade count and turnover)
        - Buy-and-hold metrics
        - Per-date chart rows (date, price, regime, allocation, both equities)
        - Start and end price
    """
    symbol: str
    sensitivity: int
    strategy: StrategyMetrics
    buy_and_hold: PerformanceMetrics
    chart_data: Tuple[ChartRow, ...]
    start_price: float
    end_price: float
    method: str = "window"
    version: str = VERSION

    @property
    def start_date(self) -> date:
        return self.chart_data[0].date

    @property
    def end_date(self) -> date:
        return self.chart_data[-1].date

    @property
    def trading_days(self) -> int:
        return len(self.chart_data)

    @property
    def regimes(self) -> List[Regime]:
        """Regime label per return (chart rows 1..N-1)."""
        return [row.regime for row in self.chart_data[1:]]

    def asset_returns(self) -> np.ndarray:
        """Simple daily returns of the underlying prices."""
        return compute_simple_returns([row.price for row in self.chart_data])

    def regime_analysis(self, params: Optional[MetricsParameters] = None) -> RegimeAnalysis:
        """Asset behaviour broken down by regime."""
        return analyze_regime_performance(self.asset_returns(), self.regimes, params)

    def to_frame(self) -> pd.DataFrame:
        """Chart rows as a DataFrame indexed by date."""
        frame = pd.DataFrame([row.to_dict() for row in self.chart_data])
        frame['date'] = pd.to_datetime(frame['date'])
        return frame.set_index('date')

    def to_dict(self) -> Dict[str, Any]:
        return {
            'symbol': self.symbol,
            'sensitivity': self.sensitivity,
            'method': self.method,
            'version': self.version,
            'metrics': {
                'strategy': self.strategy.to_dict(),
                'buy_and_hold': self.buy_and_hold.to_dict(),
            },
            'start_price': self.start_price,
            'end_price': self.end_price,
            'chart_data': [row.to_dict() for row in self.chart_data],
        }


# =============================================================================
# SECTION 2: STRATEGY SIMULATOR
# =============================================================================

class StrategySimulator:
    """
    Run the binary allocation policy over a return series.

    Initial state:
        strategy = benchmark = 100.0, allocation = 1.0 (fully invested)

    A switch counts as a trade when the allocation moves by more than the
    trade threshold; the absolute change is added to total turnover.
    """

    def __init__(self, params: Optional[SimulationParameters] = None):
        self.params = params or SIMULATION

    def allocation_for(self, regime: Regime) -> float:
        """Fraction of capital invested under a regime."""
        if regime is Regime.BULL:
            return self.params.bull_allocation
        return self.params.bear_allocation

    def simulate(
        self,
        prices: Sequence[float],
        returns: Sequence[float],
        regimes: Sequence[Regime]
    ) -> SimulationResult:
        """
        Simulate strategy and buy-and-hold equity curves.

        Args:
            prices: Price series (length N)
            returns: Simple returns (length N - 1)
            regimes: Regime label per return (length N - 1)

        Returns:
            SimulationResult with curves and allocations of length N
        """
        n_returns = len(returns)
        if len(prices) != n_returns + 1:
            raise InvalidInputError(
                f"Expected {len(prices) - 1} returns for {len(prices)} prices, got {n_returns}"
            )
        if len(regimes) != n_returns:
            raise InvalidInputError(
                f"Got {n_returns} returns but {len(regimes)} regime labels"
            )

        p = self.params
        strategy = p.initial_equity
        benchmark = p.initial_equity
        strategy_equity = [strategy]
        benchmark_equity = [benchmark]
        allocations = [p.bull_allocation]

        prev_allocation = p.bull_allocation
        trade_count = 0
        total_turnover = 0.0

        for r, regime in zip(np.asarray(returns, dtype=float).tolist(), regimes):
            allocation = self.allocation_for(regime)

            change = abs(allocation - prev_allocation)
            if change > p.trade_threshold:
                trade_count += 1
                total_turnover += change

            strategy *= (1 + r * allocation)
            benchmark *= (1 + r)

            strategy_equity.append(strategy)
            benchmark_equity.append(benchmark)
            allocations.append(allocation)
            prev_allocation = allocation

        return SimulationResult(
            strategy_equity=tuple(strategy_equity),
            buy_and_hold_equity=tuple(benchmark_equity),
            allocations=tuple(allocations),
            trade_count=trade_count,
            total_turnover=total_turnover
        )


def simulate_strategy(
    prices: Sequence[float],
    returns: Sequence[float],
    regimes: Sequence[Regime],
    params: Optional[SimulationParameters] = None
) -> SimulationResult:
    """Convenience wrapper around StrategySimulator."""
    return StrategySimulator(params).simulate(prices, returns, regimes)


# =============================================================================
# SECTION 3: BACKTEST ENGINE
# =============================================================================

def _normalize_dates(dates: Sequence[Any]) -> List[date]:
    """Convert dates to calendar dates and require strict chronological order."""
    try:
        index = pd.DatetimeIndex(pd.to_datetime(list(dates)))
    except (TypeError, ValueError) as e:
        raise InvalidInputError(f"Could not parse dates: {e}") from e

    if index.hasnans:
        raise InvalidInputError("Dates contain missing values")
    if not (index.is_monotonic_increasing and index.is_unique):
        raise InvalidInputError("Dates must be strictly increasing")
    return list(index.date)


class BacktestEngine:
    """
    End-to-end regime allocation backtest.

    Pipeline:
        1. Validate request (symbol, sensitivity, lengths, prices, dates)
        2. Derive simple returns
        3. Classify regimes
        4. Simulate strategy and buy-and-hold
        5. Compute metrics for both curves
        6. Assemble chart rows and turnover

    The engine holds configuration only; every run is independent.
    """

    def __init__(
        self,
        classifier_params: Optional[ClassifierParameters] = None,
        simulation_params: Optional[SimulationParameters] = None,
        metrics_params: Optional[MetricsParameters] = None,
        data_params: Optional[DataParameters] = None,
        method: str = "window"
    ):
        """
        Initialize backtest engine.

        Args:
            classifier_params: Regime classifier thresholds
            simulation_params: Allocation policy parameters
            metrics_params: Metric parameters (risk-free rate, calendar)
            data_params: Input requirements (minimum observations)
            method: Regime detection method ("window" or "rolling")
        """
        if method not in DETECTION_METHODS:
            raise InvalidInputError(
                f"Unknown detection method {method!r}; expected one of {DETECTION_METHODS}"
            )
        self.classifier_params = classifier_params or CLASSIFIER
        self.simulator = StrategySimulator(simulation_params)
        self.calculator = PerformanceCalculator(metrics_params)
        self.data_params = data_params or DATA
        self.method = method

    def validate(self, request: BacktestRequest) -> List[date]:
        """
        Reject invalid requests before any computation.

        Returns:
            Normalized calendar dates
        """
        if not isinstance(request.symbol, str) or not request.symbol.strip():
            raise InvalidInputError("Ticker symbol must not be empty")

        validate_sensitivity(request.sensitivity)

        if len(request.dates) != len(request.prices):
            raise InvalidInputError(
                f"Got {len(request.dates)} dates but {len(request.prices)} prices"
            )

        required = self.data_params.min_observations
        if len(request.prices) < required:
            raise InsufficientDataError(available=len(request.prices), required=required)

        try:
            prices = np.asarray(request.prices, dtype=float)
        except (TypeError, ValueError) as e:
            raise InvalidInputError(f"Prices must be numeric: {e}") from e
        if prices.ndim != 1:
            raise InvalidInputError("Prices must be a flat sequence")
        if not np.all(np.isfinite(prices)):
            raise InvalidInputError("Prices contain missing or non-finite values")
        if np.any(prices <= 0):
            raise InvalidInputError("Prices must be strictly positive")

        return _normalize_dates(request.dates)

    def run(self, request: BacktestRequest) -> BacktestResult:
        """
        Run backtest for a validated request.

        Args:
            request: BacktestRequest

        Returns:
            BacktestResult
        """
        dates = self.validate(request)
        symbol = normalize_symbol(request.symbol)
        sensitivity = int(request.sensitivity)
        prices = tuple(float(p) for p in request.prices)

        logger.info(
            f"Running backtest for {symbol}: {len(prices)} observations, "
            f"sensitivity={sensitivity}"
        )

        returns = compute_simple_returns(prices)
        detector = RegimeDetector(sensitivity, params=self.classifier_params, method=self.method)
        regimes = detector.detect(returns)

        sim = self.simulator.simulate(prices, returns, regimes)

        strategy_metrics = self.calculator.calculate(sim.strategy_equity)
        benchmark_metrics = self.calculator.calculate(sim.buy_and_hold_equity)

        years = len(returns) / self.calculator.params.trading_days_year
        turnover = sim.total_turnover / years

        chart_data = tuple(
            ChartRow(
                date=dates[i],
                price=prices[i],
                regime=Regime.BULL if i == 0 else regimes[i - 1],
                allocation=sim.allocations[i],
                strategy_equity=sim.strategy_equity[i],
                buy_and_hold_equity=sim.buy_and_hold_equity[i]
            )
            for i in range(len(prices))
        )

        logger.info(
            f"Backtest complete: {sim.trade_count} trades, "
            f"strategy {strategy_metrics.cumulative_return:+.2%} vs "
            f"buy & hold {benchmark_metrics.cumulative_return:+.2%}"
        )

        return BacktestResult(
            symbol=symbol,
            sensitivity=sensitivity,
            strategy=StrategyMetrics.from_performance(
                strategy_metrics,
                turnover=turnover,
                trade_count=sim.trade_count
            ),
            buy_and_hold=benchmark_metrics,
            chart_data=chart_data,
            start_price=prices[0],
            end_price=prices[-1],
            method=self.method
        )


# =============================================================================
# SECTION 4: OUTPUT FORMATTING
# =============================================================================

def format_backtest_report(result: BacktestResult) -> str:
    """
    Format backtest result as human-readable text report.

    Args:
        result: BacktestResult from engine

    Returns:
        Formatted string report
    """
    s = result.strategy
    b = result.buy_and_hold
    n_bear = sum(1 for r in result.regimes if r is Regime.BEAR)

    lines = [
        "=" * 70,
        "REGIME ALLOCATION BACKTEST REPORT",
        "=" * 70,
        f"Symbol: {result.symbol}",
        f"Sensitivity: {result.sensitivity} ({result.method} classifier)",
        f"Period: {result.start_date.isoformat()} to {result.end_date.isoformat()}",
        f"Trading Days: {result.trading_days:,}",
        f"Price: {result.start_price:,.2f} -> {result.end_price:,.2f}",
        f"Bear Days: {n_bear} of {len(result.regimes)}",
        "",
        "-" * 70,
        f"{'METRIC':<24}{'STRATEGY':>20}{'BUY & HOLD':>20}",
        "-" * 70,
        f"{'Cumulative Return':<24}{s.cumulative_return:>+20.2%}{b.cumulative_return:>+20.2%}",
        f"{'Annualized Return':<24}{s.annualized_return:>+20.2%}{b.annualized_return:>+20.2%}",
        f"{'Volatility':<24}{s.volatility:>20.2%}{b.volatility:>20.2%}",
        f"{'Sharpe Ratio':<24}{s.sharpe_ratio:>20.3f}{b.sharpe_ratio:>20.3f}",
        f"{'Max Drawdown':<24}{s.max_drawdown:>20.2%}{b.max_drawdown:>20.2%}",
        "",
        "-" * 70,
        "TRADING ACTIVITY",
        "-" * 70,
        f"  Trade Count:     {s.trade_count}",
        f"  Annual Turnover: {s.turnover:.1%}",
        "=" * 70,
    ]
    return "\n".join(lines)


# =============================================================================
# SECTION 5: CONVENIENCE FUNCTIONS
# =============================================================================

def run_backtest(
    prices: Sequence[float],
    dates: Sequence[Any],
    sensitivity: int,
    symbol: str = "UNKNOWN",
    method: str = "window"
) -> BacktestResult:
    """
    Convenience function for running a complete backtest.

    Args:
        prices: Close prices, one per trading day (at least 50)
        dates: Dates parallel to prices, strictly increasing
        sensitivity: Regime sensitivity (>= 1)
        symbol: Asset symbol
        method: Regime detection method ("window" or "rolling")

    Returns:
        BacktestResult

    Raises:
        InvalidInputError: Malformed input
        InsufficientDataError: Fewer than 50 prices

    Example:
        >>> history = DataAcquisition().fetch_price_history('SPY')
        >>> result = run_backtest(history.prices, history.dates, sensitivity=3, symbol='SPY')
        >>> print(f"Sharpe: {result.strategy.sharpe_ratio:.3f}")
    """
    request = BacktestRequest.create(prices, dates, sensitivity, symbol=symbol)
    return BacktestEngine(method=method).run(request)


# =============================================================================
# SECTION 6: MODULE EXPORTS
# =============================================================================

__all__ = [
    'VERSION',
    'SimulationResult',
    'ChartRow',
    'BacktestRequest',
    'BacktestResult',
    'StrategySimulator',
    'simulate_strategy',
    'BacktestEngine',
    'format_backtest_report',
    'run_backtest',
]
