"""
权重优化器 - 在线程池（或进程池）中并行回测所有权重候选，选出 ROI 最高的方案
"""
import threading
from concurrent.futures import ProcessPoolExecutor, ThreadPoolExecutor, as_completed
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Union

from indicator_backtest.config import settings
from indicator_backtest.config.validator import BacktestConfig, load_config
from indicator_backtest.domain.models import (
    BacktestResult,
    CandidateResult,
    IndicatorSnapshot,
    OptimizationResult,
    SignalVector,
    WeightVector,
    coerce_weights,
    normalize_weights,
)
from indicator_backtest.engine import BacktestEngine, build_signal_vectors, validate_dataset
from indicator_backtest.errors import BacktestError, OptimizationCancelled
from indicator_backtest.logger_utils import get_logger
from indicator_backtest.optimization.candidates import WeightCandidate, curated_candidates

logger = get_logger("weight_optimizer")


def _evaluate_candidate(data: Sequence[IndicatorSnapshot], weights: WeightVector,
                        config: BacktestConfig,
                        signal_vectors: Sequence[SignalVector]) -> BacktestResult:
    """单个候选的回测（模块级函数，便于进程池序列化）"""
    return BacktestEngine(config).run(data, weights, signal_vectors=signal_vectors)


class WeightOptimizer:
    """指标权重优化器"""

    def __init__(
        self,
        config: Union[None, dict, BacktestConfig] = None,
        max_workers: Optional[int] = None,
        use_processes: bool = False,
        normalize_to: float = settings.DEFAULT_NORMALIZE_TO,
        cancel_event: Optional[threading.Event] = None,
    ):
        """
        Args:
            config: 回测参数
            max_workers: 并发上限，默认 OPTIMIZER_MAX_WORKERS
            use_processes: 使用进程池（CPU 密集的大网格）
            normalize_to: 最优权重归一化后的总和
            cancel_event: 置位后不再派发剩余候选
        """
        self.config = load_config(config)
        self.max_workers = max_workers or settings.OPTIMIZER_MAX_WORKERS
        self.use_processes = use_processes
        self.normalize_to = normalize_to
        self.cancel_event = cancel_event or threading.Event()

    def cancel(self):
        """请求取消优化"""
        self.cancel_event.set()

    def optimize(
        self,
        data: Sequence[IndicatorSnapshot],
        candidates: Optional[Iterable[WeightCandidate]] = None,
        progress_callback: Optional[Callable[[Dict], None]] = None,
    ) -> OptimizationResult:
        """
        执行权重优化

        Args:
            data: 价格 + 指标快照序列
            candidates: 权重候选，默认使用预设类别组合
            progress_callback: 进度回调，参数为 {completed, total, progress, label, roi}

        Returns:
            OptimizationResult
        """
        validate_dataset(data, settings.MIN_OPTIMIZATION_PERIODS)
        candidate_list = list(candidates) if candidates is not None else curated_candidates()
        if not candidate_list:
            raise ValueError("没有可评估的权重候选")
        # 权重键统一为 Indicator（允许 "SMA" 这类名称）
        candidate_list = [
            WeightCandidate(label=c.label, weights=coerce_weights(c.weights))
            for c in candidate_list
        ]

        total = len(candidate_list)
        logger.info(f"开始权重优化: {total} 个候选, {len(data)} 条数据")

        # 各周期信号与权重无关，只计算一次
        signal_vectors = build_signal_vectors(data, self.config.legacy_falsy_missing)

        results: List[Optional[CandidateResult]] = [None] * total
        executor_cls = ProcessPoolExecutor if self.use_processes else ThreadPoolExecutor
        workers = max(1, min(self.max_workers, total))

        with executor_cls(max_workers=workers) as executor:
            # 提交所有任务
            future_to_index = {}
            for idx, candidate in enumerate(candidate_list):
                if self.cancel_event.is_set():
                    break
                future = executor.submit(
                    _evaluate_candidate, data, candidate.weights, self.config, signal_vectors
                )
                future_to_index[future] = idx

            # 收集结果
            completed = 0
            last_error = None
            for future in as_completed(future_to_index):
                if future.cancelled():
                    continue

                idx = future_to_index[future]
                candidate = candidate_list[idx]
                try:
                    result = future.result()
                except Exception as e:
                    logger.error(f"候选 {candidate.label} 回测失败: {e}")
                    last_error = e
                    continue

                results[idx] = CandidateResult(
                    label=candidate.label,
                    weights={k.value: v for k, v in candidate.weights.items()},
                    result=result,
                )
                completed += 1

                if progress_callback:
                    progress_callback({
                        'completed': completed,
                        'total': total,
                        'progress': completed / total,
                        'label': candidate.label,
                        'roi': result.roi,
                    })

                if self.cancel_event.is_set():
                    for pending in future_to_index:
                        pending.cancel()

        cancelled = self.cancel_event.is_set()
        finished = [r for r in results if r is not None]
        if not finished:
            if cancelled:
                raise OptimizationCancelled("优化在任何候选完成前被取消")
            raise BacktestError(f"所有权重候选回测均失败: {last_error}", raw_error=last_error)

        # 按候选顺序比较，ROI 严格更高才替换（并列取靠前者）
        best = finished[0]
        for candidate_result in finished[1:]:
            if candidate_result.result.roi > best.result.roi:
                best = candidate_result

        best_weights = normalize_weights(best.weights, total=self.normalize_to)
        if cancelled:
            logger.warning(f"优化已取消: 完成 {len(finished)}/{total} 个候选")
        logger.info(
            f"最优组合: {best.label}, ROI {best.result.roi:.2f}%, 权重 {best_weights}"
        )

        return OptimizationResult(
            best_weights=best_weights,
            best_combo_label=best.label,
            performance=best.result,
            all_candidate_results=tuple(finished),
            raw_best_weights=dict(best.weights),
            cancelled=cancelled,
        )


def optimize_weights(data: Sequence[IndicatorSnapshot],
                     config: Union[None, dict, BacktestConfig] = None,
                     candidates: Optional[Iterable[WeightCandidate]] = None) -> OptimizationResult:
    """使用默认设置执行一次权重优化"""
    return WeightOptimizer(config).optimize(data, candidates)
