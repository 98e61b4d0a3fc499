#!/usr/bin/env python3
"""
Report Generator for Regime Allocation Backtests

Writes backtest results in machine- and human-readable formats:
    - JSON: metrics, regime breakdown and every chart row
    - CSV: chart rows (date, price, regime, allocation, both equities)
    - Markdown: summary tables for documentation
"""

from __future__ import annotations

import json
import logging
import math
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from .backtest_engine import BacktestResult
from .config import OUTPUT, OutputConfig

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


def _json_safe(value: Any) -> Any:
    """Replace non-finite floats, which JSON cannot represent, with None."""
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, dict):
        return {k: _json_safe(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_json_safe(v) for v in value]
    return value


# =============================================================================
# JSON REPORT GENERATOR
# =============================================================================

def build_json_report(result: BacktestResult) -> Dict[str, Any]:
    """Assemble the JSON report structure."""
    analysis = result.regime_analysis()

    report = result.to_dict()
    report['metadata'] = {
        'generated_at': datetime.now().isoformat(),
        'report_version': VERSION,
        'start_date': result.start_date.isoformat(),
        'end_date': result.end_date.isoformat(),
        'trading_days': result.trading_days,
    }
    report['regime_analysis'] = {
        'by_regime': {
            name: {
                'days': perf.days,
                'pct_time': perf.pct_time,
                'avg_daily_return': perf.avg_daily_return,
                'volatility': perf.volatility,
                'hit_rate': perf.hit_rate,
                'total_return': perf.total_return,
            }
            for name, perf in analysis.by_regime.items()
        },
        't_statistic': analysis.t_statistic,
        'p_value': analysis.p_value,
    }
    return _json_safe(report)


def generate_json_report(result: BacktestResult, output_path: Path) -> None:
    """Write the JSON report."""
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(build_json_report(result), f, indent=2)


# =============================================================================
# CSV EXPORT
# =============================================================================

def generate_csv_report(
    result: BacktestResult,
    output_path: Path,
    config: OutputConfig = OUTPUT
) -> None:
    """Write chart rows as CSV."""
    frame = result.to_frame()
    frame.to_csv(output_path, float_format=f"%.{config.equity_decimal_places}f")


# =============================================================================
# MARKDOWN REPORT GENERATOR
# =============================================================================

def generate_markdown_report(
    result: BacktestResult,
    output_path: Path,
    config: OutputConfig = OUTPUT
) -> None:
    """Write a Markdown summary of the backtest."""
    output_path = Path(output_path)
    s = result.strategy
    b = result.buy_and_hold
    pct = config.percentage_decimal_places
    ratio = config.ratio_decimal_places
    analysis = result.regime_analysis()

    lines = [
        f"# {result.symbol} Regime Allocation Backtest",
        "",
        f"*Period:* {result.start_date.isoformat()} to {result.end_date.isoformat()} "
        f"({result.trading_days} trading days)  ",
        f"*Sensitivity:* {result.sensitivity}  ",
        f"*Price:* {result.start_price:,.2f} → {result.end_price:,.2f}",
        "",
        "## Performance",
        "",
        "| Metric | Strategy | Buy & Hold |",
        "|---|---:|---:|",
        f"| Cumulative Return | {s.cumulative_return:.{pct}%} | {b.cumulative_return:.{pct}%} |",
        f"| Annualized Return | {s.annualized_return:.{pct}%} | {b.annualized_return:.{pct}%} |",
        f"| Volatility | {s.volatility:.{pct}%} | {b.volatility:.{pct}%} |",
        f"| Sharpe Ratio | {s.sharpe_ratio:.{ratio}f} | {b.sharpe_ratio:.{ratio}f} |",
        f"| Max Drawdown | {s.max_drawdown:.{pct}%} | {b.max_drawdown:.{pct}%} |",
        f"| Trade Count | {s.trade_count} | - |",
        f"| Annual Turnover | {s.turnover:.1%} | - |",
        "",
        "## Regime Breakdown",
        "",
        "| Regime | Days | Time | Avg Daily Return | Volatility | Hit Rate |",
        "|---|---:|---:|---:|---:|---:|",
    ]
    for name, perf in analysis.by_regime.items():
        lines.append(
            f"| {name} | {perf.days} | {perf.pct_time:.1%} | {perf.avg_daily_return:.{pct + 2}%} "
            f"| {perf.volatility:.{pct}%} | {perf.hit_rate:.1%} |"
        )

    if analysis.p_value is not None:
        lines += [
            "",
            f"Welch t-test (Bull vs Bear daily returns): t = {analysis.t_statistic:.3f}, "
            f"p = {analysis.p_value:.4f}",
        ]

    output_path.write_text("\n".join(lines) + "\n", encoding="utf-8")


# =============================================================================
# MAIN GENERATOR
# =============================================================================

def generate_all_reports(
    result: BacktestResult,
    output_dir: Optional[Path] = None,
    config: OutputConfig = OUTPUT
) -> Dict[str, Optional[Path]]:
    """Generate every enabled report format into output_dir/reports."""
    output_dir = Path(output_dir or config.output_dir)
    reports_dir = output_dir / "reports"
    reports_dir.mkdir(parents=True, exist_ok=True)

    stem = f"{result.symbol.lower()}_q{result.sensitivity}_backtest"
    outputs: Dict[str, Optional[Path]] = {}

    if config.json_enabled:
        json_path = reports_dir / f"{stem}.json"
        try:
            generate_json_report(result, json_path)
            outputs['json'] = json_path
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"JSON failed: {e}")
            outputs['json'] = None

    if config.csv_enabled:
        csv_path = reports_dir / f"{stem}.csv"
        try:
            generate_csv_report(result, csv_path, config)
            outputs['csv'] = csv_path
        except OSError as e:
            logger.error(f"CSV failed: {e}")
            outputs['csv'] = None

    if config.markdown_enabled:
        md_path = reports_dir / f"{stem}.md"
        try:
            generate_markdown_report(result, md_path, config)
            outputs['md'] = md_path
        except OSError as e:
            logger.error(f"Markdown failed: {e}")
            outputs['md'] = None

    written = [k for k, v in outputs.items() if v is not None]
    logger.info(f"Reports written to {reports_dir}: {', '.join(written) or 'none'}")
    return outputs


__all__ = [
    'build_json_report',
    'generate_json_report',
    'generate_csv_report',
    'generate_markdown_report',
    'generate_all_reports',
]
