"""
领域模型
"""

from .models import (
    BacktestResult,
    CandidateResult,
    Direction,
    ExitReason,
    Indicator,
    IndicatorSnapshot,
    OptimizationResult,
    PricePoint,
    Signal,
    SignalVector,
    SymbolOptimizationResult,
    Trade,
    WeightVector,
    coerce_weights,
    normalize_weights,
)

__all__ = [
    'BacktestResult',
    'CandidateResult',
    'Direction',
    'ExitReason',
    'Indicator',
    'IndicatorSnapshot',
    'OptimizationResult',
    'PricePoint',
    'Signal',
    'SignalVector',
    'SymbolOptimizationResult',
    'Trade',
    'WeightVector',
    'coerce_weights',
    'normalize_weights',
]
