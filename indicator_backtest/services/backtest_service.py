"""
回测服务 - 单指标回测、训练/测试集过拟合检查、多结果汇总
"""
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Sequence, Union

from indicator_backtest.config import settings
from indicator_backtest.config.validator import BacktestConfig, load_config
from indicator_backtest.domain.models import BacktestResult, Indicator, IndicatorSnapshot
from indicator_backtest.engine import BacktestEngine, build_signal_vectors
from indicator_backtest.errors import BacktestError
from indicator_backtest.logger_utils import get_logger


@dataclass(frozen=True)
class TrainTestReport:
    """训练集 / 测试集对比"""
    train: BacktestResult
    test: BacktestResult
    roi_ratio: float
    overfitting_detected: bool
    train_size: int
    test_size: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'train_performance': self.train.summary(),
            'test_performance': self.test.summary(),
            'overfitting_detected': self.overfitting_detected,
            'overfit_score': round(self.roi_ratio, 2),
            'train_size': self.train_size,
            'test_size': self.test_size,
            'data_points': self.train_size + self.test_size,
        }


def overfit_ratio(train_roi: float, test_roi: float) -> float:
    """
    测试集 / 训练集 ROI 比值

    训练集 ROI <= 0 时: 测试集也 <= 0 记 1.0，否则记 0.5
    """
    if train_roi <= 0:
        return 1.0 if test_roi <= 0 else 0.5
    return test_roi / train_roi


def summarize_results(named_results: Mapping[str, BacktestResult]) -> Dict[str, Any]:
    """多个回测结果的汇总统计"""
    if not named_results:
        return {
            'total_strategies': 0,
            'avg_roi': 0.0,
            'avg_win_rate': 0.0,
            'avg_max_drawdown': 0.0,
            'best_strategy': None,
            'worst_strategy': None,
            'profitable_strategies': 0,
            'profitability_rate': 0.0,
        }

    items = list(named_results.items())
    count = len(items)

    best_name, best = items[0]
    worst_name, worst = items[0]
    for name, result in items[1:]:
        if result.roi > best.roi:
            best_name, best = name, result
        if result.roi < worst.roi:
            worst_name, worst = name, result

    profitable = sum(1 for _, r in items if r.roi > 0)

    return {
        'total_strategies': count,
        'avg_roi': round(sum(r.roi for _, r in items) / count, 2),
        'avg_win_rate': round(sum(r.win_rate for _, r in items) / count, 2),
        'avg_max_drawdown': round(sum(r.max_drawdown for _, r in items) / count, 2),
        'best_strategy': {'name': best_name, 'roi': best.roi, 'win_rate': best.win_rate},
        'worst_strategy': {'name': worst_name, 'roi': worst.roi, 'win_rate': worst.win_rate},
        'profitable_strategies': profitable,
        'profitability_rate': round(profitable / count * 100, 1),
    }


class BacktestService:
    """回测服务"""

    def __init__(self, config: Union[None, dict, BacktestConfig] = None):
        self.config = load_config(config)
        self.engine = BacktestEngine(self.config)
        self.logger = get_logger(__name__)

    def run(self, data: Sequence[IndicatorSnapshot], weights: Mapping) -> BacktestResult:
        """按给定权重执行回测"""
        return self.engine.run(data, weights)

    def backtest_single_indicator(self, data: Sequence[IndicatorSnapshot], indicator,
                                  signal_vectors=None) -> BacktestResult:
        """只使用一个指标（权重 1）回测"""
        key = indicator if isinstance(indicator, Indicator) else Indicator(indicator)
        return self.engine.run(data, {key: 1.0}, signal_vectors=signal_vectors)

    def backtest_all_indicators(self, data: Sequence[IndicatorSnapshot]) -> Dict[str, Any]:
        """
        逐个指标回测，单个指标失败不影响其他指标

        Returns:
            {'total', 'completed', 'results': [...], 'summary': {...}}
        """
        self.logger.info(f"开始单指标对比回测: {len(Indicator)} 个指标, {len(data)} 条数据")
        signal_vectors = build_signal_vectors(data, self.config.legacy_falsy_missing) if data else None

        entries = []
        succeeded: Dict[str, BacktestResult] = {}
        for indicator in Indicator:
            try:
                result = self.backtest_single_indicator(data, indicator, signal_vectors=signal_vectors)
            except (BacktestError, ValueError) as e:
                self.logger.error(f"指标 {indicator.value} 回测失败: {e}")
                entries.append({'indicator': indicator.value, 'success': False, 'error': str(e)})
                continue

            succeeded[indicator.value] = result
            entries.append({'indicator': indicator.value, 'success': True, **result.summary()})

        return {
            'total': len(entries),
            'completed': len(succeeded),
            'results': entries,
            'summary': summarize_results(succeeded),
        }

    def evaluate_train_test(self, data: Sequence[IndicatorSnapshot], weights: Mapping,
                            split: float = settings.TRAIN_TEST_SPLIT,
                            threshold: Optional[float] = None) -> TrainTestReport:
        """
        训练 / 测试集分段回测，检查过拟合

        Args:
            data: 完整数据
            weights: 指标权重
            split: 训练集比例，默认 0.8
            threshold: 过拟合判定阈值，默认 OVERFIT_RATIO_THRESHOLD

        Returns:
            TrainTestReport
        """
        if not 0 < split < 1:
            raise ValueError(f"split 必须在 (0, 1) 之间: {split}")
        threshold = settings.OVERFIT_RATIO_THRESHOLD if threshold is None else threshold

        split_index = int(len(data) * split)
        train_data = list(data[:split_index])
        test_data = list(data[split_index:])
        self.logger.info(f"训练集 {len(train_data)} 条 | 测试集 {len(test_data)} 条")

        train = self.engine.run(train_data, weights)
        test = self.engine.run(test_data, weights)

        ratio = overfit_ratio(train.roi, test.roi)
        overfitting = ratio < threshold
        self.logger.info(
            f"训练 ROI {train.roi:.2f}% | 测试 ROI {test.roi:.2f}% | "
            f"过拟合: {'是' if overfitting else '否'} ({ratio:.2f})"
        )

        return TrainTestReport(
            train=train,
            test=test,
            roi_ratio=ratio,
            overfitting_detected=overfitting,
            train_size=len(train_data),
            test_size=len(test_data),
        )
