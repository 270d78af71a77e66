"""
Snapshot Data Provider - build IndicatorSnapshot sequences from pandas DataFrames / CSV
"""
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import pandas as pd

from indicator_backtest.domain.models import IndicatorSnapshot
from indicator_backtest.errors import InvalidDatasetError
from indicator_backtest.logger_utils import get_logger

logger = get_logger("data_provider")

# snapshot field -> accepted column names (snake_case, camelCase, legacy)
COLUMN_ALIASES: Dict[str, Tuple[str, ...]] = {
    'time': ('time', 'timestamp', 'openTime', 'open_time'),
    'close': ('close', 'price'),
    'sma_short': ('sma_short', 'smaShort', 'sma20'),
    'sma_long': ('sma_long', 'smaLong', 'sma50'),
    'ema_short': ('ema_short', 'emaShort', 'ema20'),
    'ema_long': ('ema_long', 'emaLong', 'ema50'),
    'rsi': ('rsi', 'rsi14'),
    'macd': ('macd', 'macdLine', 'macd_line'),
    'macd_signal': ('macd_signal', 'macdSignal', 'macdSignalLine'),
    'macd_hist': ('macd_hist', 'macdHist', 'macdHistogram'),
    'bb_upper': ('bb_upper', 'bbUpper'),
    'bb_middle': ('bb_middle', 'bbMiddle'),
    'bb_lower': ('bb_lower', 'bbLower'),
    'stoch_k': ('stoch_k', 'stochK'),
    'stoch_d': ('stoch_d', 'stochD'),
    'stoch_rsi_k': ('stoch_rsi_k', 'stochRsiK'),
    'stoch_rsi_d': ('stoch_rsi_d', 'stochRsiD'),
    'psar': ('psar', 'parabolicSar', 'sar'),
}

INDICATOR_FIELDS = [f for f in COLUMN_ALIASES if f not in ('time', 'close')]


def _resolve_column(df: pd.DataFrame, field: str) -> Optional[str]:
    for name in COLUMN_ALIASES[field]:
        if name in df.columns:
            return name
    return None


def _to_epoch_seconds(values) -> pd.Series:
    """datetime -> epoch seconds (UTC)"""
    stamps = pd.to_datetime(values, utc=True)
    seconds = (stamps - pd.Timestamp(0, tz='UTC')) // pd.Timedelta(seconds=1)
    return pd.Series(seconds).astype('int64')


def _optional(value) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    return float(value)


def snapshots_from_frame(df: pd.DataFrame) -> List[IndicatorSnapshot]:
    """
    Convert a merged price + indicator DataFrame into snapshots

    Args:
        df: one row per period; `time` column (epoch or datetime) or a DatetimeIndex

    Returns:
        List of IndicatorSnapshot in row order
    """
    if df is None or df.empty:
        return []

    time_col = _resolve_column(df, 'time')
    if time_col is not None:
        raw_times = df[time_col]
        if raw_times.isna().any():
            raise InvalidDatasetError(f"Column '{time_col}' contains missing timestamps")
        if pd.api.types.is_numeric_dtype(raw_times):
            times = raw_times.astype('int64').tolist()
        else:
            # datetime dtype or ISO strings
            times = _to_epoch_seconds(raw_times).tolist()
    elif isinstance(df.index, pd.DatetimeIndex):
        times = _to_epoch_seconds(df.index).tolist()
    else:
        raise InvalidDatasetError("DataFrame needs a time column or a DatetimeIndex")

    close_col = _resolve_column(df, 'close')
    if close_col is None:
        raise InvalidDatasetError("DataFrame needs a close column")
    closes = df[close_col]
    if closes.isna().any():
        raise InvalidDatasetError(f"Column '{close_col}' contains missing prices")

    columns = {
        field: _resolve_column(df, field)
        for field in INDICATOR_FIELDS
    }
    missing = [f for f, c in columns.items() if c is None]
    if missing:
        logger.debug(f"Indicator columns not found, treated as missing: {missing}")

    series = {field: df[col].tolist() for field, col in columns.items() if col is not None}
    close_values = closes.tolist()

    snapshots = []
    for pos in range(len(df)):
        values = {field: _optional(column[pos]) for field, column in series.items()}
        snapshots.append(IndicatorSnapshot(
            time=int(times[pos]),
            close=float(close_values[pos]),
            **values,
        ))
    return snapshots


def snapshots_from_records(records: Iterable[Mapping[str, Any]]) -> List[IndicatorSnapshot]:
    """Convert dict rows (e.g. JSON API payload) into snapshots"""
    return snapshots_from_frame(pd.DataFrame(list(records)))


def load_csv(path: str) -> List[IndicatorSnapshot]:
    """Read a merged snapshot CSV"""
    df = pd.read_csv(path)
    logger.info(f"Loaded {len(df)} rows from {path}")
    return snapshots_from_frame(df)
