"""
单指标信号评估 单元测试
"""

import math

import pytest

from indicator_backtest.domain.models import Indicator, IndicatorSnapshot, Signal
from indicator_backtest.signals.evaluators import (
    EVALUATOR_MAP,
    SignalAggregator,
    aggregate_signals,
    get_evaluator,
    is_missing,
)


def _snap(close=100.0, **values):
    return IndicatorSnapshot(time=0, close=close, **values)


def _signal(indicator, snapshot, legacy=False):
    return get_evaluator(indicator, legacy_falsy_missing=legacy).evaluate(snapshot)


class TestRegistry:
    """评估器注册表"""

    def test_every_indicator_has_evaluator(self):
        """测试每个指标都有评估器"""
        assert set(EVALUATOR_MAP) == set(Indicator)

    def test_evaluator_reports_its_indicator(self):
        """测试评估器对应的指标"""
        for indicator, cls in EVALUATOR_MAP.items():
            assert cls().indicator is indicator

    def test_get_evaluator_accepts_name(self):
        """测试按名称获取评估器"""
        assert get_evaluator("BollingerBands").indicator is Indicator.BOLLINGER_BANDS

    def test_get_evaluator_unknown_name(self):
        """测试未知指标名称"""
        with pytest.raises(ValueError):
            get_evaluator("ADX")


class TestRules:
    """各指标规则"""

    @pytest.mark.parametrize("rsi, expected", [
        (25, Signal.BUY),
        (30, Signal.NEUTRAL),
        (50, Signal.NEUTRAL),
        (70, Signal.NEUTRAL),
        (75.5, Signal.SELL),
    ])
    def test_rsi(self, rsi, expected):
        """测试 RSI 信号"""
        assert _signal(Indicator.RSI, _snap(rsi=rsi)) is expected

    @pytest.mark.parametrize("line, signal, expected", [
        (1.2, 1.0, Signal.BUY),
        (-0.5, 0.1, Signal.SELL),
        (0.3, 0.3, Signal.NEUTRAL),
    ])
    def test_macd(self, line, signal, expected):
        """测试 MACD 信号"""
        assert _signal(Indicator.MACD, _snap(macd=line, macd_signal=signal)) is expected

    @pytest.mark.parametrize("k, d, expected", [
        (10, 15, Signal.BUY),       # 双超卖
        (85, 90, Signal.SELL),      # 双超买
        (15, 30, Signal.SELL),      # 只有 K 超卖，按 K < D
        (60, 40, Signal.BUY),
        (40, 60, Signal.SELL),
        (50, 50, Signal.NEUTRAL),
    ])
    def test_stochastic(self, k, d, expected):
        """测试随机指标信号"""
        assert _signal(Indicator.STOCHASTIC, _snap(stoch_k=k, stoch_d=d)) is expected
        assert _signal(Indicator.STOCHASTIC_RSI, _snap(stoch_rsi_k=k, stoch_rsi_d=d)) is expected

    def test_stochastic_rsi_reads_its_own_fields(self):
        """测试随机 RSI 读取自身字段"""
        snapshot = _snap(stoch_k=10, stoch_d=10)
        assert _signal(Indicator.STOCHASTIC_RSI, snapshot) is Signal.NEUTRAL

    @pytest.mark.parametrize("close, short, long, expected", [
        (105, 102, 100, Signal.BUY),
        (95, 98, 100, Signal.SELL),
        (101, 102, 100, Signal.NEUTRAL),
        (100, 100, 100, Signal.NEUTRAL),
    ])
    def test_moving_averages(self, close, short, long, expected):
        """测试均线排列信号"""
        assert _signal(Indicator.SMA, _snap(close, sma_short=short, sma_long=long)) is expected
        assert _signal(Indicator.EMA, _snap(close, ema_short=short, ema_long=long)) is expected

    @pytest.mark.parametrize("close, sar, expected", [
        (101, 100, Signal.BUY),
        (99, 100, Signal.SELL),
        (100, 100, Signal.NEUTRAL),
    ])
    def test_psar(self, close, sar, expected):
        """测试抛物线 SAR 信号"""
        assert _signal(Indicator.PSAR, _snap(close, psar=sar)) is expected

    @pytest.mark.parametrize("close, expected", [
        (89, Signal.BUY),
        (111, Signal.SELL),
        (100, Signal.NEUTRAL),
        (90, Signal.NEUTRAL),
    ])
    def test_bollinger(self, close, expected):
        """测试布林带信号"""
        snapshot = _snap(close, bb_upper=110, bb_middle=100, bb_lower=90)
        assert _signal(Indicator.BOLLINGER_BANDS, snapshot) is expected


class TestMissingValues:
    """缺失值处理"""

    def test_is_missing(self):
        """测试缺失值判断"""
        assert is_missing(None)
        assert is_missing(float('nan'))
        assert not is_missing(0)
        assert not is_missing(0.0)
        assert is_missing(0, legacy_falsy=True)
        assert not is_missing(12.5, legacy_falsy=True)

    def test_missing_input_is_neutral(self):
        """测试缺失输入时信号中性"""
        for indicator in Indicator:
            assert _signal(indicator, _snap()) is Signal.NEUTRAL

    def test_nan_input_is_neutral(self):
        """测试 NaN 输入时信号中性"""
        assert _signal(Indicator.RSI, _snap(rsi=math.nan)) is Signal.NEUTRAL
        assert _signal(Indicator.MACD, _snap(macd=1.0, macd_signal=math.nan)) is Signal.NEUTRAL

    def test_zero_value_counts_by_default(self):
        """测试默认 0 值为有效输入"""
        # RSI = 0 是合法的超卖值
        assert _signal(Indicator.RSI, _snap(rsi=0)) is Signal.BUY
        assert _signal(Indicator.MACD, _snap(macd=0.5, macd_signal=0.0)) is Signal.BUY

    def test_legacy_falsy_rule(self):
        """测试兼容模式下 0 值视为缺失"""
        assert _signal(Indicator.RSI, _snap(rsi=0), legacy=True) is Signal.NEUTRAL
        assert _signal(Indicator.MACD, _snap(macd=0.5, macd_signal=0.0), legacy=True) is Signal.NEUTRAL


def test_aggregate_signals_returns_full_vector():
    """测试聚合结果包含全部 8 个指标"""
    snapshot = _snap(105, sma_short=102, sma_long=100, rsi=80)
    signals = aggregate_signals(snapshot)

    assert set(signals) == set(Indicator)
    assert signals[Indicator.SMA] is Signal.BUY
    assert signals[Indicator.RSI] is Signal.SELL
    assert signals[Indicator.MACD] is Signal.NEUTRAL


def test_aggregator_subset():
    """测试只评估指定指标"""
    aggregator = SignalAggregator([Indicator.RSI, Indicator.PSAR])
    signals = aggregator.aggregate(_snap(rsi=20, psar=90))
    assert signals == {Indicator.RSI: Signal.BUY, Indicator.PSAR: Signal.BUY}
