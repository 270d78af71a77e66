"""
指标权重优化
"""
from .candidates import BASE_WEIGHTS, COMBOS, GROUPS, WeightCandidate, curated_candidates, grid_candidates
from .grid_search import WeightOptimizer, optimize_weights

__all__ = [
    'BASE_WEIGHTS',
    'COMBOS',
    'GROUPS',
    'WeightCandidate',
    'curated_candidates',
    'grid_candidates',
    'WeightOptimizer',
    'optimize_weights',
]
