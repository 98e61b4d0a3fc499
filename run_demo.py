#!/usr/bin/env python3
"""
Regime Allocation Backtester - Demo Runner

Fetches a daily price history, classifies each day as Bull or Bear with the
rolling-window regime detector, and backtests the binary allocation strategy
(fully invested in Bull, fully in cash in Bear) against buy-and-hold.

EXECUTION
    python run_demo.py
    python run_demo.py --symbol SPY --sensitivity 5
    python run_demo.py --csv data/spy_daily.csv --no-export

OUTPUT ARTIFACTS
    outputs/reports/
        {symbol}_q{sensitivity}_backtest.json   Metrics, regime breakdown, rows
        {symbol}_q{sensitivity}_backtest.csv    Per-date chart rows
        {symbol}_q{sensitivity}_backtest.md     Summary tables
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from regime_allocator.backtest_engine import BacktestEngine, BacktestRequest, BacktestResult, format_backtest_report
from regime_allocator.config import DATA, OUTPUT, is_valid_sensitivity
from regime_allocator.data_collector import DataAcquisition, PriceHistory, load_price_csv
from regime_allocator.exceptions import BacktestError
from regime_allocator.report_generator import generate_all_reports


# =============================================================================
# CONSTANTS
# =============================================================================

VERSION: str = "1.0.0"
DEFAULT_SYMBOL: str = DATA.default_symbol
DEFAULT_SENSITIVITY: int = DATA.default_sensitivity

BANNER = r'''
╔═══════════════════════════════════════════════════════════════════════════════╗
║                                                                               ║
║              REGIME-BASED ASSET ALLOCATION BACKTESTER                         ║
║                                                                               ║
║              Bull/Bear detection  •  Binary allocation  •  Buy & Hold         ║
║                                                                               ║
╚═══════════════════════════════════════════════════════════════════════════════╝
'''

logger = logging.getLogger(__name__)


# =============================================================================
# DISPLAY COMPONENTS
# =============================================================================

def print_section_header(title: str, char: str = "═") -> None:
    """Print a formatted section header."""
    width = 79
    print()
    print(char * width)
    print(f"  {title}")
    print(char * width)
    print()


def sensitivity_arg(value: str) -> int:
    """argparse type for the sensitivity range offered to users."""
    try:
        sensitivity = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"sensitivity must be an integer, got {value!r}")
    if not is_valid_sensitivity(sensitivity):
        raise argparse.ArgumentTypeError(
            f"sensitivity must be between {DATA.min_sensitivity} and {DATA.max_sensitivity}"
        )
    return sensitivity


# =============================================================================
# PHASE 1: DATA ACQUISITION
# =============================================================================

def run_data_phase(
    symbol: Optional[str],
    start: Optional[str],
    end: Optional[str],
    csv_path: Optional[Path]
) -> PriceHistory:
    """
    Load the price history from CSV or Yahoo Finance.

    Parameters
    ----------
    symbol : str, optional
        Ticker symbol; a CSV source defaults to its file stem, the network
        source to the configured default symbol
    start, end : str, optional
        Date range (YYYY-MM-DD); defaults to the trailing two years
    csv_path : Path, optional
        Offline CSV source; takes precedence over the network fetch

    Returns
    -------
    PriceHistory
    """
    print_section_header("PHASE 1: PRICE DATA")

    if csv_path is not None:
        history = load_price_csv(csv_path, symbol=symbol)
    else:
        history = DataAcquisition().fetch_price_history(
            symbol or DEFAULT_SYMBOL, start=start, end=end
        )

    print(f"  Symbol:        {history.symbol}")
    print(f"  Observations:  {len(history)}")
    if len(history):
        print(f"  Period:        {history.start} to {history.end}")
    return history


# =============================================================================
# PHASE 2: REGIME DETECTION & BACKTEST
# =============================================================================

def run_backtest_phase(
    history: PriceHistory,
    sensitivity: int,
    method: str
) -> BacktestResult:
    """Classify regimes and backtest the allocation strategy."""
    print_section_header("PHASE 2: REGIME DETECTION & BACKTEST")

    request = BacktestRequest.create(
        history.prices,
        history.dates,
        sensitivity,
        symbol=history.symbol
    )
    result = BacktestEngine(method=method).run(request)
    print(format_backtest_report(result))
    return result


# =============================================================================
# PHASE 3: REGIME ANALYSIS & REPORTS
# =============================================================================

def run_report_phase(
    result: BacktestResult,
    output_dir: Path,
    export: bool
) -> None:
    """Print the regime breakdown and write report files."""
    print_section_header("PHASE 3: REGIME ANALYSIS")

    analysis = result.regime_analysis()
    for name, perf in analysis.by_regime.items():
        print(
            f"  {name:<5} {perf.days:>5} days ({perf.pct_time:5.1%})  "
            f"avg {perf.avg_daily_return:+.3%}/day  vol {perf.volatility:.1%}  "
            f"hit rate {perf.hit_rate:.1%}"
        )
    if analysis.p_value is not None:
        verdict = "differ" if analysis.means_differ else "do not differ"
        print(f"\n  Bull/Bear mean returns {verdict} at 5% (p = {analysis.p_value:.4f})")

    if not export:
        logger.info("Report export disabled")
        return

    outputs = generate_all_reports(result, output_dir)
    for fmt, path in outputs.items():
        status = str(path) if path is not None else "FAILED"
        print(f"  {fmt.upper():<5} {status}")


# =============================================================================
# MAIN ENTRY POINT
# =============================================================================

def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the demo runner.

    Returns
    -------
    int
        Exit code (0 for success, 1 for failure)
    """
    start_time = time.time()

    parser = argparse.ArgumentParser(
        description="Regime-Based Asset Allocation Backtester",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_demo.py                              # NVDA, sensitivity 3
  python run_demo.py --symbol SPY --sensitivity 5
  python run_demo.py --symbol aapl --start 2022-01-01 --end 2024-01-01
  python run_demo.py --csv data/spy_daily.csv --no-export
        """
    )
    parser.add_argument(
        "--symbol", "-s",
        type=str,
        default=None,
        help=f"Ticker symbol (default: CSV file name, or {DEFAULT_SYMBOL} when fetching)"
    )
    parser.add_argument(
        "--sensitivity", "-q",
        type=sensitivity_arg,
        default=DEFAULT_SENSITIVITY,
        help=(
            f"Regime sensitivity {DATA.min_sensitivity}-{DATA.max_sensitivity}; "
            f"lookback window is max(20, 5 x sensitivity) (default: {DEFAULT_SENSITIVITY})"
        )
    )
    parser.add_argument("--start", type=str, default=None, help="Start date YYYY-MM-DD (default: two years ago)")
    parser.add_argument("--end", type=str, default=None, help="End date YYYY-MM-DD (default: today)")
    parser.add_argument("--csv", type=Path, default=None, help="Load prices from a CSV with Date and Close columns")
    parser.add_argument(
        "--output-dir", "-o",
        type=Path,
        default=OUTPUT.output_dir,
        help=f"Report directory (default: {OUTPUT.output_dir})"
    )
    parser.add_argument("--no-export", action="store_true", help="Do not write report files")
    parser.add_argument(
        "--rolling",
        action="store_true",
        help="Use the streaming rolling-window classifier"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")

    args = parser.parse_args(argv)

    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="  %(asctime)s │ %(levelname)s │ %(message)s",
        datefmt="%H:%M:%S"
    )

    print(BANNER)
    print(f"  Execution Started: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    target = args.symbol or (args.csv.stem if args.csv is not None else DEFAULT_SYMBOL)
    print(f"  Target Security:   {target.upper()}")
    print(f"  Sensitivity:       {args.sensitivity}")
    print(f"  Version:           {VERSION}")

    try:
        history = run_data_phase(args.symbol, args.start, args.end, args.csv)
        result = run_backtest_phase(history, args.sensitivity, "rolling" if args.rolling else "window")
        run_report_phase(result, args.output_dir, export=not args.no_export)
    except BacktestError as e:
        logger.error(f"Backtest failed ({e.reason}): {e}")
        return 1

    elapsed = time.time() - start_time
    print(f"\n  Completed in {elapsed:.1f}s")
    return 0


if __name__ == "__main__":
    sys.exit(main())
