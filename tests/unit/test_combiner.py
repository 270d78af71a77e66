"""
加权信号合成 单元测试
"""

import pytest

from indicator_backtest.domain.models import Indicator, Signal
from indicator_backtest.optimization.candidates import BASE_WEIGHTS
from indicator_backtest.signals.combiner import combine_series, combine_signals


def _signals(**overrides):
    vector = {indicator: Signal.NEUTRAL for indicator in Indicator}
    for name, signal in overrides.items():
        vector[Indicator[name]] = signal
    return vector


def test_trend_pair_buy_with_base_weights():
    """测试基础权重下均线同向买入"""
    signals = _signals(SMA=Signal.BUY, EMA=Signal.BUY)

    combined = combine_signals(signals, BASE_WEIGHTS)

    assert combined.score == pytest.approx(3.0 / sum(BASE_WEIGHTS.values()))
    assert combined.score == pytest.approx(0.3409, abs=1e-4)
    assert combined.signal is Signal.BUY
    assert combined.strength == pytest.approx(combined.score)


def test_all_zero_weights_is_neutral():
    """测试权重全为 0 时信号中性"""
    signals = _signals(SMA=Signal.BUY, RSI=Signal.SELL)
    weights = {indicator: 0.0 for indicator in Indicator}

    combined = combine_signals(signals, weights)

    assert combined.score == 0.0
    assert combined.signal is Signal.NEUTRAL
    assert combined.strength == 0.0


def test_empty_weights_is_neutral():
    """测试空权重时信号中性"""
    assert combine_signals(_signals(SMA=Signal.BUY), {}).signal is Signal.NEUTRAL


def test_sell_majority():
    """测试卖出占多数"""
    signals = _signals(RSI=Signal.SELL, MACD=Signal.SELL, SMA=Signal.BUY)
    weights = {Indicator.RSI: 1.0, Indicator.MACD: 1.0, Indicator.SMA: 1.0}

    combined = combine_signals(signals, weights)

    assert combined.score == pytest.approx(-1 / 3)
    assert combined.signal is Signal.SELL
    assert combined.strength == pytest.approx(1 / 3)


def test_only_weighted_indicators_count():
    """测试只统计有权重的指标"""
    # 权重向量之外的指标信号不影响结果
    signals = _signals(SMA=Signal.BUY, RSI=Signal.SELL, MACD=Signal.SELL)
    combined = combine_signals(signals, {Indicator.SMA: 2.0})

    assert combined.score == pytest.approx(1.0)
    assert combined.signal is Signal.BUY


def test_balanced_signals_are_neutral_with_zero_strength():
    """测试多空抵消时强度为 0"""
    signals = _signals(SMA=Signal.BUY, RSI=Signal.SELL)
    combined = combine_signals(signals, {Indicator.SMA: 1.0, Indicator.RSI: 1.0})

    assert combined.score == 0.0
    assert combined.signal is Signal.NEUTRAL
    assert combined.strength == 0.0


def test_threshold():
    """测试开仓阈值"""
    signals = _signals(SMA=Signal.BUY, EMA=Signal.BUY)

    assert combine_signals(signals, BASE_WEIGHTS, threshold=0.3).signal is Signal.BUY
    weak = combine_signals(signals, BASE_WEIGHTS, threshold=0.4)
    assert weak.signal is Signal.NEUTRAL
    assert weak.strength == 0.0
    assert weak.score == pytest.approx(0.3409, abs=1e-4)


def test_combine_series():
    """测试逐周期合成"""
    series = [_signals(SMA=Signal.BUY), _signals(), _signals(SMA=Signal.SELL)]
    result = combine_series(series, {Indicator.SMA: 1.0})
    assert [c.signal for c in result] == [Signal.BUY, Signal.NEUTRAL, Signal.SELL]
