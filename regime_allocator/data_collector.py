#!/usr/bin/env python3
"""
Price Data Acquisition
======================

Supplies the ordered (date, close) series consumed by the backtest engine.

SOURCES
-------
    Yahoo Finance   Daily closes via yfinance, trailing two years by default
    CSV file        Offline histories with a date column and a close column

CLEANING
--------
Rows whose close is missing or non-finite are dropped (holidays and gaps are
simply absent rows, never interpolated). Everything else, including the
50-observation minimum and the chronological ordering check, is enforced by
the backtest engine at request validation.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from .config import DATA, DataParameters, normalize_symbol
from .exceptions import DataFetchError, InvalidInputError

logger = logging.getLogger(__name__)


# =============================================================================
# DATA STRUCTURES
# =============================================================================

@dataclass(frozen=True)
class PriceHistory:
    """Ordered daily close prices for one symbol."""
    symbol: str
    dates: Tuple[date, ...]
    prices: Tuple[float, ...]

    def __len__(self) -> int:
        return len(self.prices)

    @property
    def start(self) -> Optional[date]:
        return self.dates[0] if self.dates else None

    @property
    def end(self) -> Optional[date]:
        return self.dates[-1] if self.dates else None

    def to_series(self) -> pd.Series:
        """Close prices indexed by date."""
        return pd.Series(
            self.prices,
            index=pd.DatetimeIndex(pd.to_datetime(list(self.dates)), name='Date'),
            name='Close',
            dtype=float
        )

    @classmethod
    def from_series(cls, series: pd.Series, symbol: str) -> 'PriceHistory':
        """Build from a date-indexed close series, dropping missing closes."""
        return clean_price_history(list(series.index), series.tolist(), symbol)

    @classmethod
    def from_frame(
        cls,
        df: pd.DataFrame,
        symbol: str,
        column: str = 'Close'
    ) -> 'PriceHistory':
        """Build from a date-indexed OHLCV frame."""
        if column not in df.columns:
            raise InvalidInputError(f"Column {column!r} not found in {list(df.columns)}")
        return cls.from_series(df[column], symbol)


# =============================================================================
# CLEANING
# =============================================================================

def _to_date(value: Any) -> date:
    """Calendar date of a date-like value."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return pd.Timestamp(value).date()


def clean_price_history(
    dates: Sequence[Any],
    closes: Sequence[Any],
    symbol: str
) -> PriceHistory:
    """
    Drop rows with a missing or non-finite close.

    Args:
        dates: Date-like values (date, datetime, Timestamp or ISO string)
        closes: Close prices, possibly containing None/NaN
        symbol: Ticker symbol

    Returns:
        PriceHistory of the remaining rows, in input order

    Raises:
        DataFetchError: No valid price remains
    """
    if len(dates) != len(closes):
        raise InvalidInputError(f"Got {len(dates)} dates but {len(closes)} closes")

    kept_dates = []
    kept_prices = []
    for d, close in zip(dates, closes):
        if close is None:
            continue
        try:
            value = float(close)
        except (TypeError, ValueError):
            continue
        if not np.isfinite(value):
            continue
        kept_dates.append(_to_date(d))
        kept_prices.append(value)

    dropped = len(closes) - len(kept_prices)
    if dropped:
        logger.warning(f"{symbol}: dropped {dropped} rows with missing close prices")

    if not kept_prices:
        raise DataFetchError(f"No valid price data found for {symbol}")

    return PriceHistory(
        symbol=normalize_symbol(symbol),
        dates=tuple(kept_dates),
        prices=tuple(kept_prices)
    )


# =============================================================================
# YAHOO FINANCE ACQUISITION
# =============================================================================

class DataAcquisition:
    """
    Daily close acquisition from Yahoo Finance with retry logic.

    Retries use exponential backoff (1s, 2s, 4s, ...). Timeouts and retry
    policy live here only; the backtest core performs no I/O.
    """

    def __init__(
        self,
        max_retries: Optional[int] = None,
        timeout: Optional[int] = None,
        params: Optional[DataParameters] = None
    ):
        """
        Initialize data acquisition.

        Args:
            max_retries: Maximum attempts for a failed fetch
            timeout: Request timeout in seconds
            params: Data parameters (defaults from config)
        """
        self.params = params or DATA
        self.max_retries = max_retries if max_retries is not None else self.params.max_retries
        self.timeout = timeout if timeout is not None else self.params.timeout
        self._yf = None

    def _get_yf(self):
        """Lazy load yfinance to avoid import overhead."""
        if self._yf is None:
            import yfinance as yf
            self._yf = yf
        return self._yf

    def default_window(self, today: Optional[date] = None) -> Tuple[date, date]:
        """Trailing lookback window ending today."""
        end = today or date.today()
        start = end - timedelta(days=365 * self.params.lookback_years)
        return start, end

    def fetch_price_history(
        self,
        symbol: str,
        start: Optional[Union[str, date]] = None,
        end: Optional[Union[str, date]] = None
    ) -> PriceHistory:
        """
        Fetch daily closes for a symbol.

        Args:
            symbol: Ticker symbol (normalized to upper case)
            start: Start date, defaults to two years before end
            end: End date, defaults to today

        Returns:
            PriceHistory

        Raises:
            InvalidInputError: Empty symbol
            DataFetchError: No data after all retries
        """
        symbol = normalize_symbol(symbol or "")
        if not symbol:
            raise InvalidInputError("Please enter a ticker symbol")

        default_start, default_end = self.default_window()
        start = start or default_start
        end = end or default_end

        yf = self._get_yf()
        logger.info(f"Fetching daily closes: {symbol} ({start} to {end})")

        data = None
        for attempt in range(self.max_retries):
            try:
                data = yf.download(
                    symbol,
                    start=str(start),
                    end=str(end),
                    interval='1d',
                    auto_adjust=False,
                    progress=False,
                    timeout=self.timeout
                )
                if data is not None and len(data) > 0:
                    break
                if attempt < self.max_retries - 1:
                    wait_time = 2 ** attempt
                    logger.warning(f"Empty data for {symbol}, retrying in {wait_time}s...")
                    time.sleep(wait_time)
            except Exception as e:
                if attempt < self.max_retries - 1:
                    wait_time = 2 ** attempt
                    logger.warning(f"Fetch failed: {e}, retrying in {wait_time}s...")
                    time.sleep(wait_time)
                else:
                    raise DataFetchError(
                        f"Failed to fetch data for {symbol}. "
                        f"Please verify the ticker symbol is correct. ({e})"
                    ) from e

        if data is None or len(data) == 0:
            raise DataFetchError(
                f"No data available for ticker {symbol}. Please check if the ticker is valid."
            )

        closes = _extract_close(data, symbol)
        history = PriceHistory.from_series(closes, symbol)
        logger.info(f"Fetched {len(history)} daily closes for {symbol}")
        return history


def _extract_close(data: pd.DataFrame, symbol: str) -> pd.Series:
    """Close column from a yfinance download, flat or ticker-level columns."""
    if isinstance(data.columns, pd.MultiIndex):
        if symbol in data.columns.get_level_values(-1):
            data = data.xs(symbol, axis=1, level=-1)
        else:
            data = data.droplevel(-1, axis=1)

    if 'Close' not in data.columns:
        raise DataFetchError(f"No close prices returned for {symbol}")
    return data['Close']


# =============================================================================
# CSV SOURCE
# =============================================================================

def load_price_csv(
    path: Union[str, Path],
    symbol: Optional[str] = None,
    date_column: str = 'Date',
    close_column: str = 'Close'
) -> PriceHistory:
    """
    Load a price history from CSV.

    Column lookup is case-insensitive. Rows keep file order; an out-of-order
    file is rejected later by the backtest engine's date validation.

    Args:
        path: CSV file path
        symbol: Symbol label, defaults to the file stem
        date_column: Name of the date column
        close_column: Name of the close column

    Returns:
        PriceHistory

    Raises:
        DataFetchError: File missing or unreadable
        InvalidInputError: Missing column or unparseable date
    """
    path = Path(path)
    symbol = symbol or path.stem
    try:
        df = pd.read_csv(path)
    except OSError as e:
        raise DataFetchError(f"Could not read price file {path}: {e}") from e
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise InvalidInputError(f"{path.name}: not a readable CSV ({e})") from e

    columns = {c.lower(): c for c in df.columns}
    for wanted in (date_column, close_column):
        if wanted.lower() not in columns:
            raise InvalidInputError(f"{path.name}: missing column {wanted!r}")

    raw_dates = df[columns[date_column.lower()]]
    dates = pd.to_datetime(raw_dates, errors='coerce')
    unparsed = dates.isna()
    if unparsed.any():
        bad = raw_dates[unparsed].astype(str).tolist()[:3]
        raise InvalidInputError(
            f"{path.name}: {int(unparsed.sum())} unparseable dates (e.g. {', '.join(bad)})"
        )
    closes = pd.to_numeric(df[columns[close_column.lower()]], errors='coerce')

    logger.info(f"Loaded {len(df)} rows from {path}")
    return clean_price_history(dates.tolist(), closes.tolist(), symbol)


__all__ = [
    'PriceHistory',
    'clean_price_history',
    'DataAcquisition',
    'load_price_csv',
]
