"""
Configuration Module for the Regime Allocation Backtester

This module centralizes all configuration constants, thresholds and
settings used throughout the regime detection and backtesting pipeline.

All "magic numbers" are defined here to ensure:
1. Single source of truth for all constants
2. Easy modification without touching analysis code
3. Transparency in assumptions and thresholds

The classifier thresholds and annualization constants are fixed design
parameters of the rolling-window heuristic, not fitted model state.
"""

from dataclasses import dataclass
from pathlib import Path


# =============================================================================
# REGIME CLASSIFIER PARAMETERS
# =============================================================================

@dataclass(frozen=True)
class ClassifierParameters:
    """Parameters for the rolling-window Bull/Bear classifier."""

    # Window sizing: W = max(min_window, sensitivity * window_per_sensitivity)
    min_window: int = 20
    window_per_sensitivity: int = 5

    # Fewer observations than this in the window -> fixed Bull fallback
    min_observations: int = 5

    # Momentum = sum of the most recent returns in the window
    momentum_lookback: int = 10

    # Bear when either condition holds
    momentum_threshold: float = -0.02     # Trailing 10-day summed return
    volatility_threshold: float = 0.30    # Annualized volatility (30%)

    # Trading calendar
    trading_days_year: int = 252

    def window_size(self, sensitivity: int) -> int:
        """Lookback length W for a given sensitivity."""
        return max(self.min_window, sensitivity * self.window_per_sensitivity)


# =============================================================================
# STRATEGY SIMULATION PARAMETERS
# =============================================================================

@dataclass(frozen=True)
class SimulationParameters:
    """Parameters for the binary allocation simulator."""

    initial_equity: float = 100.0   # Both equity curves start here

    # Regime -> allocation mapping
    bull_allocation: float = 1.0    # Fully invested
    bear_allocation: float = 0.0    # Fully in cash

    # Allocation changes at or below this size are not counted as trades
    trade_threshold: float = 0.01


# =============================================================================
# PERFORMANCE METRIC PARAMETERS
# =============================================================================

@dataclass(frozen=True)
class MetricsParameters:
    """Parameters for performance metric computation."""

    risk_free_rate: float = 0.02    # 2% annual, used by the Sharpe ratio
    trading_days_year: int = 252
    base_equity: float = 100.0      # Cumulative return is measured from here


# =============================================================================
# DATA REQUIREMENTS
# =============================================================================

@dataclass(frozen=True)
class DataParameters:
    """Data acquisition and input validation settings."""

    # Minimum usable price points for a backtest
    min_observations: int = 50

    # Default history window fetched from the data provider
    lookback_years: int = 2

    # Sensitivity range accepted by the command-line runner
    min_sensitivity: int = 1
    max_sensitivity: int = 10
    default_sensitivity: int = 3

    default_symbol: str = "NVDA"

    # Provider retry policy
    max_retries: int = 3
    timeout: int = 30


# =============================================================================
# OUTPUT CONFIGURATION
# =============================================================================

@dataclass(frozen=True)
class OutputConfig:
    """Configuration for report exports."""

    output_dir: Path = Path("outputs")

    # Enabled output formats
    json_enabled: bool = True
    csv_enabled: bool = True
    markdown_enabled: bool = True

    # Number formatting
    percentage_decimal_places: int = 2
    ratio_decimal_places: int = 3
    equity_decimal_places: int = 4


# =============================================================================
# GLOBAL CONFIGURATION INSTANCES
# =============================================================================

CLASSIFIER = ClassifierParameters()
SIMULATION = SimulationParameters()
METRICS = MetricsParameters()
DATA = DataParameters()
OUTPUT = OutputConfig()


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def is_valid_sensitivity(sensitivity: int, data: DataParameters = DATA) -> bool:
    """Check a sensitivity against the range offered to end users."""
    return data.min_sensitivity <= sensitivity <= data.max_sensitivity


def normalize_symbol(symbol: str) -> str:
    """Strip and upper-case a ticker symbol."""
    return symbol.strip().upper()
