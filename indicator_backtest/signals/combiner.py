"""
加权信号合成 - 把多指标信号按权重合成为一个方向信号
"""
from dataclasses import dataclass
from typing import List, Mapping, Sequence

from indicator_backtest.domain.models import Indicator, Signal, SignalVector


@dataclass(frozen=True)
class CombinedSignal:
    """合成信号"""
    score: float       # [-1, 1]
    signal: Signal
    strength: float    # |score|，中性时为 0


NEUTRAL_SIGNAL = CombinedSignal(score=0.0, signal=Signal.NEUTRAL, strength=0.0)


def combine_signals(signals: SignalVector, weights: Mapping[Indicator, float],
                    threshold: float = 0.0) -> CombinedSignal:
    """
    加权合成

    score = Σ(w × s) / Σw，只统计权重向量中的指标；
    score > threshold 为买入，< -threshold 为卖出

    Args:
        signals: 各指标信号，缺失的指标按中性处理
        weights: 指标权重（非负）
        threshold: 开仓阈值

    Returns:
        CombinedSignal
    """
    total_weight = 0.0
    weighted = 0.0
    for indicator, weight in weights.items():
        if weight <= 0:
            continue
        total_weight += weight
        weighted += weight * signals.get(indicator, Signal.NEUTRAL).score

    if total_weight <= 0:
        return NEUTRAL_SIGNAL

    score = weighted / total_weight
    if score > threshold:
        return CombinedSignal(score=score, signal=Signal.BUY, strength=abs(score))
    if score < -threshold:
        return CombinedSignal(score=score, signal=Signal.SELL, strength=abs(score))
    return CombinedSignal(score=score, signal=Signal.NEUTRAL, strength=0.0)


def combine_series(signal_series: Sequence[SignalVector], weights: Mapping[Indicator, float],
                   threshold: float = 0.0) -> List[CombinedSignal]:
    """对整段序列逐周期合成"""
    return [combine_signals(s, weights, threshold) for s in signal_series]
