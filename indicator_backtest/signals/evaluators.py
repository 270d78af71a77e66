"""
单指标信号评估 - 每个指标一个评估器，统一接口 evaluate(snapshot, previous) -> Signal
"""
import math
from abc import ABC, abstractmethod
from typing import Dict, Iterable, Optional, Type

from indicator_backtest.domain.models import Indicator, IndicatorSnapshot, Signal, SignalVector

RSI_OVERSOLD = 30
RSI_OVERBOUGHT = 70
STOCH_OVERSOLD = 20
STOCH_OVERBOUGHT = 80


def is_missing(value, legacy_falsy: bool = False) -> bool:
    """
    判断指标值是否缺失

    默认只把 None / NaN 视为缺失；legacy_falsy=True 时 0 也视为缺失（与旧版结果一致）
    """
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if legacy_falsy and value == 0:
        return True
    return False


# ==================== 评估器基类 ====================

class SignalEvaluator(ABC):
    """指标评估器基类"""

    indicator: Indicator

    def __init__(self, legacy_falsy_missing: bool = False):
        self.legacy_falsy_missing = legacy_falsy_missing

    @abstractmethod
    def evaluate(self, snapshot: IndicatorSnapshot,
                 previous: Optional[IndicatorSnapshot] = None) -> Signal:
        """根据当前（及上一周期）快照给出信号"""
        pass

    def _missing(self, *values) -> bool:
        return any(is_missing(v, self.legacy_falsy_missing) for v in values)


class RSIEvaluator(SignalEvaluator):
    """RSI 超买超卖"""

    indicator = Indicator.RSI

    def evaluate(self, snapshot, previous=None) -> Signal:
        rsi = snapshot.rsi
        if self._missing(rsi):
            return Signal.NEUTRAL
        if rsi < RSI_OVERSOLD:
            return Signal.BUY
        if rsi > RSI_OVERBOUGHT:
            return Signal.SELL
        return Signal.NEUTRAL


class MACDEvaluator(SignalEvaluator):
    """MACD 线与信号线的相对位置"""

    indicator = Indicator.MACD

    def evaluate(self, snapshot, previous=None) -> Signal:
        line, signal = snapshot.macd, snapshot.macd_signal
        if self._missing(line, signal):
            return Signal.NEUTRAL
        if line > signal:
            return Signal.BUY
        if line < signal:
            return Signal.SELL
        return Signal.NEUTRAL


class MovingAverageEvaluator(SignalEvaluator):
    """价格与短/长均线的排列: 价格 > 短 > 长 做多，反之做空"""

    short_field = ""
    long_field = ""

    def evaluate(self, snapshot, previous=None) -> Signal:
        price = snapshot.close
        short = getattr(snapshot, self.short_field)
        long = getattr(snapshot, self.long_field)
        if self._missing(price, short, long):
            return Signal.NEUTRAL
        if price > short > long:
            return Signal.BUY
        if price < short < long:
            return Signal.SELL
        return Signal.NEUTRAL


class SMAEvaluator(MovingAverageEvaluator):
    indicator = Indicator.SMA
    short_field = "sma_short"
    long_field = "sma_long"


class EMAEvaluator(MovingAverageEvaluator):
    indicator = Indicator.EMA
    short_field = "ema_short"
    long_field = "ema_long"


class StochasticEvaluator(SignalEvaluator):
    """
    随机指标

    %K、%D 同时 < 20 做多，同时 > 80 做空，否则看 K 与 D 的相对位置
    """

    indicator = Indicator.STOCHASTIC
    k_field = "stoch_k"
    d_field = "stoch_d"

    def evaluate(self, snapshot, previous=None) -> Signal:
        k = getattr(snapshot, self.k_field)
        d = getattr(snapshot, self.d_field)
        if self._missing(k, d):
            return Signal.NEUTRAL
        if k < STOCH_OVERSOLD and d < STOCH_OVERSOLD:
            return Signal.BUY
        if k > STOCH_OVERBOUGHT and d > STOCH_OVERBOUGHT:
            return Signal.SELL
        if k > d:
            return Signal.BUY
        if k < d:
            return Signal.SELL
        return Signal.NEUTRAL


class StochasticRSIEvaluator(StochasticEvaluator):
    indicator = Indicator.STOCHASTIC_RSI
    k_field = "stoch_rsi_k"
    d_field = "stoch_rsi_d"


class ParabolicSAREvaluator(SignalEvaluator):
    """价格相对 SAR 的位置"""

    indicator = Indicator.PSAR

    def evaluate(self, snapshot, previous=None) -> Signal:
        price, sar = snapshot.close, snapshot.psar
        if self._missing(price, sar):
            return Signal.NEUTRAL
        if price > sar:
            return Signal.BUY
        if price < sar:
            return Signal.SELL
        return Signal.NEUTRAL


class BollingerBandsEvaluator(SignalEvaluator):
    """跌破下轨做多，突破上轨做空"""

    indicator = Indicator.BOLLINGER_BANDS

    def evaluate(self, snapshot, previous=None) -> Signal:
        price, upper, lower = snapshot.close, snapshot.bb_upper, snapshot.bb_lower
        if self._missing(price, upper, lower):
            return Signal.NEUTRAL
        if price < lower:
            return Signal.BUY
        if price > upper:
            return Signal.SELL
        return Signal.NEUTRAL


# ==================== 评估器注册表 ====================

EVALUATOR_MAP: Dict[Indicator, Type[SignalEvaluator]] = {
    Indicator.SMA: SMAEvaluator,
    Indicator.EMA: EMAEvaluator,
    Indicator.PSAR: ParabolicSAREvaluator,
    Indicator.RSI: RSIEvaluator,
    Indicator.MACD: MACDEvaluator,
    Indicator.STOCHASTIC: StochasticEvaluator,
    Indicator.STOCHASTIC_RSI: StochasticRSIEvaluator,
    Indicator.BOLLINGER_BANDS: BollingerBandsEvaluator,
}

_unregistered = set(Indicator) - set(EVALUATOR_MAP)
if _unregistered:
    raise RuntimeError(f"指标缺少评估器: {sorted(i.value for i in _unregistered)}")


def get_evaluator(indicator, legacy_falsy_missing: bool = False) -> SignalEvaluator:
    """获取评估器实例"""
    try:
        key = indicator if isinstance(indicator, Indicator) else Indicator(indicator)
    except ValueError:
        raise ValueError(f"未知指标: {indicator}")
    return EVALUATOR_MAP[key](legacy_falsy_missing=legacy_falsy_missing)


class SignalAggregator:
    """把一个快照转换为 {指标: 信号}"""

    def __init__(self, indicators: Optional[Iterable[Indicator]] = None,
                 legacy_falsy_missing: bool = False):
        selected = list(indicators) if indicators is not None else list(Indicator)
        self.evaluators = [get_evaluator(i, legacy_falsy_missing) for i in selected]

    def aggregate(self, snapshot: IndicatorSnapshot,
                  previous: Optional[IndicatorSnapshot] = None) -> SignalVector:
        return {e.indicator: e.evaluate(snapshot, previous) for e in self.evaluators}


def aggregate_signals(snapshot: IndicatorSnapshot,
                      previous: Optional[IndicatorSnapshot] = None,
                      legacy_falsy_missing: bool = False) -> SignalVector:
    """计算全部 8 个指标的信号"""
    return SignalAggregator(legacy_falsy_missing=legacy_falsy_missing).aggregate(snapshot, previous)
