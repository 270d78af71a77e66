"""
信号层: 单指标评估 + 加权合成
"""
from .combiner import CombinedSignal, combine_series, combine_signals
from .evaluators import (
    EVALUATOR_MAP,
    SignalAggregator,
    SignalEvaluator,
    aggregate_signals,
    get_evaluator,
    is_missing,
)

__all__ = [
    'CombinedSignal',
    'combine_signals',
    'combine_series',
    'EVALUATOR_MAP',
    'SignalAggregator',
    'SignalEvaluator',
    'aggregate_signals',
    'get_evaluator',
    'is_missing',
]
