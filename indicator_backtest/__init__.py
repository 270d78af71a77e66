"""
指标加权回测引擎与权重优化器
"""
from .config.validator import BacktestConfig, DynamicRiskConfig, load_config
from .domain.models import (
    BacktestResult,
    Indicator,
    IndicatorSnapshot,
    OptimizationResult,
    Signal,
    Trade,
)
from .engine import BacktestEngine, run_backtest
from .errors import (
    BacktestError,
    EmptyDatasetError,
    InsufficientDataError,
    InvalidDatasetError,
    OptimizationCancelled,
)
from .optimization.grid_search import WeightOptimizer, optimize_weights
from .signals import aggregate_signals, combine_signals

__version__ = "1.0.0"

__all__ = [
    'BacktestConfig',
    'DynamicRiskConfig',
    'load_config',
    'BacktestResult',
    'Indicator',
    'IndicatorSnapshot',
    'OptimizationResult',
    'Signal',
    'Trade',
    'BacktestEngine',
    'run_backtest',
    'BacktestError',
    'EmptyDatasetError',
    'InsufficientDataError',
    'InvalidDatasetError',
    'OptimizationCancelled',
    'WeightOptimizer',
    'optimize_weights',
    'aggregate_signals',
    'combine_signals',
]
