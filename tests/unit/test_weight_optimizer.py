"""
WeightOptimizer / 候选生成 单元测试
"""

import threading

import pytest

from indicator_backtest.domain.models import Indicator
from indicator_backtest.errors import InsufficientDataError, OptimizationCancelled
from indicator_backtest.optimization.candidates import (
    BASE_WEIGHTS,
    WeightCandidate,
    curated_candidates,
    get_search_space_size,
    grid_candidates,
)
from indicator_backtest.optimization.grid_search import WeightOptimizer


class TestCandidates:
    """候选生成"""

    def test_curated_candidates(self):
        """测试预设类别组合"""
        candidates = curated_candidates()

        assert [c.label for c in candidates] == [
            "Trend Only",
            "Momentum Only",
            "Volatility Only",
            "Trend + Momentum",
            "All Combined",
        ]
        assert candidates[0].weights == {
            Indicator.SMA: 1.5, Indicator.EMA: 1.5, Indicator.PSAR: 1.0,
        }
        assert candidates[-1].weights == BASE_WEIGHTS

    def test_grid_skips_all_zero(self):
        """测试网格跳过全零组合"""
        indicators = [Indicator.SMA, Indicator.RSI]
        candidates = grid_candidates((0, 1, 2), indicators)

        assert len(candidates) == 8
        assert len(candidates) == get_search_space_size((0, 1, 2), 2)
        assert all(any(v > 0 for v in c.weights.values()) for c in candidates)
        # 笛卡尔积顺序
        assert candidates[0].weights == {Indicator.SMA: 0.0, Indicator.RSI: 1.0}
        assert candidates[-1].weights == {Indicator.SMA: 2.0, Indicator.RSI: 2.0}

    def test_grid_full_size(self):
        """测试完整网格大小"""
        assert len(grid_candidates((0, 1))) == 2 ** 8 - 1

    def test_grid_rejects_negative_levels(self):
        """测试负数权重档位"""
        with pytest.raises(ValueError):
            grid_candidates((-1, 1), [Indicator.SMA])


class TestWeightOptimizer:
    """权重优化"""

    def test_winner_has_highest_roi(self, market_series):
        """测试最优候选 ROI 最高"""
        result = WeightOptimizer({'longOnly': False}, max_workers=2).optimize(market_series)

        rois = [c.result.roi for c in result.all_candidate_results]
        assert len(rois) == 5
        assert all(result.performance.roi >= roi for roi in rois)
        assert result.best_combo_label in [c.label for c in result.all_candidate_results]
        assert not result.cancelled

    def test_best_weights_normalized(self, market_series):
        """测试最优权重归一化"""
        result = WeightOptimizer(max_workers=2).optimize(market_series)

        assert sum(result.best_weights.values()) == pytest.approx(10.0, abs=0.05)
        assert all(round(v, 2) == v for v in result.best_weights.values())
        assert set(result.best_weights) == set(result.raw_best_weights)

    def test_tie_goes_to_first_candidate(self, market_series):
        """测试 ROI 相同时取靠前的候选"""
        weights = {Indicator.RSI: 1.0}
        candidates = [
            WeightCandidate("first", weights),
            WeightCandidate("second", dict(weights)),
        ]
        result = WeightOptimizer(max_workers=2).optimize(market_series, candidates)

        assert result.best_combo_label == "first"
        assert [c.label for c in result.all_candidate_results] == ["first", "second"]

    def test_results_keep_candidate_order(self, market_series):
        """测试结果保持候选顺序"""
        candidates = grid_candidates((0, 1), [Indicator.SMA, Indicator.MACD, Indicator.PSAR])
        result = WeightOptimizer(max_workers=4).optimize(market_series, candidates)
        assert [c.label for c in result.all_candidate_results] == [c.label for c in candidates]

    def test_progress_callback(self, market_series):
        """测试进度回调"""
        progress = []
        WeightOptimizer(max_workers=2).optimize(market_series, progress_callback=progress.append)

        assert len(progress) == 5
        assert progress[-1]['completed'] == 5
        assert progress[-1]['total'] == 5
        assert progress[-1]['progress'] == 1.0
        assert {'label', 'roi'} <= set(progress[0])

    def test_insufficient_data(self, market_series):
        """测试数据量不足"""
        with pytest.raises(InsufficientDataError):
            WeightOptimizer().optimize(market_series[:50])

    def test_cancel_before_start(self, market_series):
        """测试开始前取消"""
        event = threading.Event()
        event.set()
        with pytest.raises(OptimizationCancelled):
            WeightOptimizer(cancel_event=event).optimize(market_series)

    def test_cancel_during_run_keeps_finished(self, market_series):
        """测试运行中取消保留已完成候选"""
        optimizer = WeightOptimizer(max_workers=1)

        def stop_after_first(progress):
            optimizer.cancel()

        candidates = grid_candidates((0, 1), [Indicator.SMA, Indicator.RSI, Indicator.MACD, Indicator.PSAR])
        result = optimizer.optimize(market_series, candidates, progress_callback=stop_after_first)

        assert result.cancelled
        assert 1 <= len(result.all_candidate_results) < len(candidates)

    def test_name_keyed_candidates(self, market_series):
        """测试以指标名称为键的候选权重"""
        candidates = [
            WeightCandidate("by name", {"SMA": 1.0, "RSI": 2.0}),
            WeightCandidate("by enum", {Indicator.SMA: 1.0, Indicator.RSI: 2.0}),
        ]
        result = WeightOptimizer(max_workers=1).optimize(market_series, candidates)

        by_name, by_enum = result.all_candidate_results
        assert by_name.weights == {'SMA': 1.0, 'RSI': 2.0}
        assert by_name.result.to_dict() == by_enum.result.to_dict()
        assert result.best_combo_label == "by name"

    def test_unknown_indicator_in_candidate(self, market_series):
        """测试候选中包含未知指标"""
        with pytest.raises(ValueError):
            WeightOptimizer().optimize(market_series, [WeightCandidate("bad", {"ADX": 1.0})])

    def test_process_pool(self, market_series):
        """测试进程池模式"""
        candidates = curated_candidates()[:2]
        result = WeightOptimizer(max_workers=2, use_processes=True).optimize(market_series, candidates)
        threaded = WeightOptimizer(max_workers=2).optimize(market_series, candidates)

        assert [c.label for c in result.all_candidate_results] == ["Trend Only", "Momentum Only"]
        assert result.best_combo_label == threaded.best_combo_label
        assert result.performance.to_dict() == threaded.performance.to_dict()

    def test_empty_candidates(self, market_series):
        """测试空候选列表"""
        with pytest.raises(ValueError):
            WeightOptimizer().optimize(market_series, [])

    def test_storage_record(self, market_series):
        """测试存储记录"""
        result = WeightOptimizer(max_workers=2).optimize(market_series)
        record = result.to_record("BTC-USD", "1h", 1_699_920_000, 1_700_460_000)

        assert record['weights'] == result.best_weights
        assert record['roi'] == result.performance.roi
        assert record['trades'] == result.performance.trade_count
        assert result.storage_key("BTC-USD", "1h", 1_699_920_000, 1_700_460_000) == \
            ("BTC-USD", "1h", 1_699_920_000, 1_700_460_000)
