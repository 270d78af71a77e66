"""
pytest 配置文件

提供测试 fixtures 和配置。
"""

import numpy as np
import pytest

from indicator_backtest.domain.models import Indicator, IndicatorSnapshot

# 2023-11-14 00:00:00 UTC
BASE_TIME = 1_699_920_000
HOUR = 3600


def _make_snapshots(closes, start=BASE_TIME, step=HOUR, **series):
    """按收盘价序列（及可选指标序列）生成快照"""
    snapshots = []
    for i, close in enumerate(closes):
        values = {name: column[i] for name, column in series.items()}
        snapshots.append(IndicatorSnapshot(time=start + i * step, close=float(close), **values))
    return snapshots


def _make_trend_snapshots(closes, directions, start=BASE_TIME, step=HOUR):
    """
    生成 SMA 信号受控的快照

    directions 中 'buy' / 'sell' / None 对应 SMA 评估结果 买入 / 卖出 / 中性
    """
    if isinstance(directions, str) or directions is None:
        directions = [directions] * len(closes)

    snapshots = []
    for i, (close, direction) in enumerate(zip(closes, directions)):
        close = float(close)
        if direction == 'buy':
            short, long = close * 0.99, close * 0.98
        elif direction == 'sell':
            short, long = close * 1.01, close * 1.02
        else:
            short, long = None, None
        snapshots.append(IndicatorSnapshot(
            time=start + i * step, close=close, sma_short=short, sma_long=long,
        ))
    return snapshots


@pytest.fixture
def make_snapshots():
    return _make_snapshots


@pytest.fixture
def make_trend_snapshots():
    return _make_trend_snapshots


@pytest.fixture
def sma_weights():
    """只使用 SMA 的权重"""
    return {Indicator.SMA: 1.0}


@pytest.fixture
def neutral_series():
    """50 个周期、无任何指标值的平盘序列"""
    return _make_snapshots([100.0] * 50)


@pytest.fixture
def market_series():
    """
    150 个周期的模拟行情，指标值由价格推导，保证各指标都会给出信号
    """
    rng = np.random.default_rng(42)
    closes = 100 * np.cumprod(1 + rng.normal(0, 0.01, 150))
    snapshots = []
    for i, close in enumerate(closes):
        window = closes[max(0, i - 19):i + 1]
        mean = float(np.mean(window))
        std = float(np.std(window))
        snapshots.append(IndicatorSnapshot(
            time=BASE_TIME + i * HOUR,
            close=float(close),
            sma_short=float(np.mean(closes[max(0, i - 9):i + 1])),
            sma_long=mean,
            ema_short=float(np.mean(closes[max(0, i - 4):i + 1])),
            ema_long=float(np.mean(closes[max(0, i - 14):i + 1])),
            rsi=float(50 + 40 * np.sin(i / 7)),
            macd=float(np.sin(i / 5)),
            macd_signal=float(np.sin((i - 2) / 5)),
            bb_upper=mean + 2 * std,
            bb_middle=mean,
            bb_lower=mean - 2 * std,
            stoch_k=float(50 + 45 * np.sin(i / 6)),
            stoch_d=float(50 + 45 * np.sin((i - 1) / 6)),
            stoch_rsi_k=float(50 + 45 * np.cos(i / 4)),
            stoch_rsi_d=float(50 + 45 * np.cos((i - 1) / 4)),
            psar=float(close * (0.98 if np.sin(i / 9) > 0 else 1.02)),
        ))
    return snapshots
