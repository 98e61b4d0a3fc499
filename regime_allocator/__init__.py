"""
Regime Allocation Backtester

Two-state (Bull/Bear) regime detection from a daily price history and a
backtest of the binary allocation strategy it drives, measured against
buy-and-hold.

Example:
    >>> from regime_allocator import run_backtest
    >>> result = run_backtest(prices, dates, sensitivity=3, symbol='SPY')
    >>> result.strategy.sharpe_ratio, result.buy_and_hold.sharpe_ratio
"""

from .backtest_engine import (
    BacktestEngine,
    BacktestRequest,
    BacktestResult,
    ChartRow,
    SimulationResult,
    StrategySimulator,
    format_backtest_report,
    run_backtest,
    simulate_strategy,
)
from .exceptions import (
    BacktestError,
    DataFetchError,
    InsufficientDataError,
    InvalidInputError,
    MathDomainError,
)
from .regime_detector import Regime, RegimeDetector, compute_simple_returns, detect_regimes
from .risk_analytics import PerformanceMetrics, StrategyMetrics, compute_metrics

__version__ = "1.0.0"

__all__ = [
    'BacktestEngine',
    'BacktestRequest',
    'BacktestResult',
    'ChartRow',
    'SimulationResult',
    'StrategySimulator',
    'format_backtest_report',
    'run_backtest',
    'simulate_strategy',
    'BacktestError',
    'DataFetchError',
    'InsufficientDataError',
    'InvalidInputError',
    'MathDomainError',
    'Regime',
    'RegimeDetector',
    'compute_simple_returns',
    'detect_regimes',
    'PerformanceMetrics',
    'StrategyMetrics',
    'compute_metrics',
]
