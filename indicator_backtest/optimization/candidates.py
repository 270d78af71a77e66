"""
权重候选生成

- curated_candidates: 按指标类别组合的 5 个预设方案
- grid_candidates: 每个指标若干权重档位的笛卡尔积
"""
import itertools
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from indicator_backtest.config import settings
from indicator_backtest.domain.models import Indicator, WeightVector

# 指标分组
TREND = (Indicator.SMA, Indicator.EMA, Indicator.PSAR)
MOMENTUM = (Indicator.RSI, Indicator.MACD, Indicator.STOCHASTIC, Indicator.STOCHASTIC_RSI)
VOLATILITY = (Indicator.BOLLINGER_BANDS,)

GROUPS: Dict[str, tuple] = {
    'TREND': TREND,
    'MOMENTUM': MOMENTUM,
    'VOLATILITY': VOLATILITY,
}

BASE_WEIGHTS: Dict[Indicator, float] = {
    Indicator.SMA: 1.5,
    Indicator.EMA: 1.5,
    Indicator.PSAR: 1.0,
    Indicator.RSI: 1.0,
    Indicator.MACD: 1.0,
    Indicator.STOCHASTIC: 0.8,
    Indicator.STOCHASTIC_RSI: 0.8,
    Indicator.BOLLINGER_BANDS: 1.2,
}

COMBOS: List[tuple] = [
    ("Trend Only", TREND),
    ("Momentum Only", MOMENTUM),
    ("Volatility Only", VOLATILITY),
    ("Trend + Momentum", TREND + MOMENTUM),
    ("All Combined", TREND + MOMENTUM + VOLATILITY),
]


@dataclass(frozen=True)
class WeightCandidate:
    """一个待评估的权重方案"""
    label: str
    weights: WeightVector


def curated_candidates(base_weights: Optional[Dict[Indicator, float]] = None) -> List[WeightCandidate]:
    """按类别组合生成预设候选（顺序固定）"""
    base = base_weights or BASE_WEIGHTS
    return [
        WeightCandidate(label=name, weights={i: base[i] for i in indicators})
        for name, indicators in COMBOS
    ]


def grid_candidates(levels: Sequence[float] = settings.DEFAULT_GRID_LEVELS,
                    indicators: Optional[Iterable[Indicator]] = None) -> List[WeightCandidate]:
    """
    网格候选: 每个指标在 levels 中取值，全零组合跳过

    Args:
        levels: 权重档位，如 (0, 1, 2)
        indicators: 参与搜索的指标，默认全部 8 个

    Returns:
        按笛卡尔积顺序排列的候选列表
    """
    selected = list(indicators) if indicators is not None else list(Indicator)
    if not selected:
        raise ValueError("至少需要一个指标")
    if any(level < 0 for level in levels):
        raise ValueError(f"权重档位不能为负: {list(levels)}")

    candidates = []
    for combo in itertools.product(levels, repeat=len(selected)):
        if all(value == 0 for value in combo):
            continue
        weights = {indicator: float(value) for indicator, value in zip(selected, combo)}
        label = ", ".join(f"{i.value}={v:g}" for i, v in weights.items())
        candidates.append(WeightCandidate(label=label, weights=weights))
    return candidates


def get_search_space_size(levels: Sequence[float], indicator_count: int) -> int:
    """网格大小（不含全零组合）"""
    all_zero = 1 if 0 in levels else 0
    return len(levels) ** indicator_count - all_zero
