"""
优化服务 - 多币种批量权重优化

每个币种在线程中执行一次 WeightOptimizer，币种间通过信号量限制并发，
单个币种失败只记录错误，不影响其他币种。
取消以币种为粒度: 已在运行的币种停止派发剩余候选，尚未开始的币种直接记为取消。
"""
import asyncio
import threading
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Union

from indicator_backtest.config import settings
from indicator_backtest.config.validator import BacktestConfig, load_config
from indicator_backtest.domain.models import IndicatorSnapshot, SymbolOptimizationResult
from indicator_backtest.logger_utils import get_logger
from indicator_backtest.optimization.candidates import WeightCandidate
from indicator_backtest.optimization.grid_search import WeightOptimizer

logger = get_logger("optimization_service")

CANCELLED_ERROR = "cancelled"


class OptimizationService:
    """批量优化服务"""

    def __init__(
        self,
        config: Union[None, dict, BacktestConfig] = None,
        max_concurrency: Optional[int] = None,
        optimizer_workers: Optional[int] = None,
    ):
        self.config = load_config(config)
        self.max_concurrency = max_concurrency or settings.BATCH_MAX_CONCURRENCY
        self.optimizer_workers = optimizer_workers
        self.active_optimizers: Dict[str, WeightOptimizer] = {}

        self._cancel_all = threading.Event()
        self._cancelled_symbols: Set[str] = set()
        self._lock = threading.Lock()

    def cancel(self, symbol: Optional[str] = None):
        """取消指定币种（或全部）: 正在运行的停止派发，尚未开始的不再运行"""
        with self._lock:
            if symbol:
                self._cancelled_symbols.add(symbol)
            else:
                self._cancel_all.set()
            targets = [symbol] if symbol else list(self.active_optimizers)
            optimizers = [self.active_optimizers.get(name) for name in targets]

        for optimizer in optimizers:
            if optimizer:
                optimizer.cancel()

    def is_cancelled(self, symbol: str) -> bool:
        return self._cancel_all.is_set() or symbol in self._cancelled_symbols

    def reset_cancel(self):
        """清除取消状态（每次批量优化开始时调用）"""
        with self._lock:
            self._cancel_all.clear()
            self._cancelled_symbols.clear()

    def _optimize_sync(self, symbol: str, data: Sequence[IndicatorSnapshot],
                       candidates: Optional[List[WeightCandidate]]):
        optimizer = WeightOptimizer(self.config, max_workers=self.optimizer_workers)
        with self._lock:
            self.active_optimizers[symbol] = optimizer
            # 注册前到达的取消请求
            if self.is_cancelled(symbol):
                optimizer.cancel()
        try:
            return optimizer.optimize(data, candidates)
        finally:
            with self._lock:
                self.active_optimizers.pop(symbol, None)

    async def optimize_symbol(
        self,
        symbol: str,
        data: Sequence[IndicatorSnapshot],
        candidates: Optional[Iterable[WeightCandidate]] = None,
    ) -> SymbolOptimizationResult:
        """优化单个币种，异常转为失败结果"""
        if self.is_cancelled(symbol):
            logger.warning(f"{symbol} 已取消，跳过优化")
            return SymbolOptimizationResult(symbol=symbol, success=False, error=CANCELLED_ERROR)

        candidate_list = list(candidates) if candidates is not None else None
        try:
            result = await asyncio.to_thread(self._optimize_sync, symbol, data, candidate_list)
        except Exception as e:
            logger.error(f"{symbol} 权重优化失败: {e}")
            return SymbolOptimizationResult(symbol=symbol, success=False, error=str(e))

        logger.info(f"{symbol} 权重优化完成: {result.best_combo_label} ROI {result.performance.roi:.2f}%")
        return SymbolOptimizationResult(symbol=symbol, success=True, result=result)

    async def optimize_batch(
        self,
        datasets: Mapping[str, Sequence[IndicatorSnapshot]],
        candidates: Optional[Iterable[WeightCandidate]] = None,
        progress_callback: Optional[Callable[[Dict], None]] = None,
    ) -> List[SymbolOptimizationResult]:
        """
        批量优化多个币种

        Args:
            datasets: {symbol: 快照序列}
            candidates: 权重候选，默认使用预设组合
            progress_callback: 每完成一个币种回调 {completed, total, progress, symbol, success}

        Returns:
            与 datasets 顺序一致的结果列表；被取消的币种 error 为 "cancelled"
        """
        self.reset_cancel()
        symbols = list(datasets)
        total = len(symbols)
        candidate_list = list(candidates) if candidates is not None else None
        semaphore = asyncio.Semaphore(self.max_concurrency)
        completed = 0

        logger.info(f"开始批量优化: {total} 个币种, 并发 {self.max_concurrency}")

        async def run_one(symbol: str) -> SymbolOptimizationResult:
            nonlocal completed
            async with semaphore:
                outcome = await self.optimize_symbol(symbol, datasets[symbol], candidate_list)
            completed += 1
            if progress_callback:
                progress_callback({
                    'completed': completed,
                    'total': total,
                    'progress': completed / total,
                    'symbol': symbol,
                    'success': outcome.success,
                })
            return outcome

        results = await asyncio.gather(*(run_one(s) for s in symbols), return_exceptions=True)

        # 整合结果
        outcomes: List[SymbolOptimizationResult] = []
        for symbol, result in zip(symbols, results):
            if isinstance(result, Exception):
                logger.error(f"{symbol} 批量任务异常: {result}")
                outcomes.append(SymbolOptimizationResult(symbol=symbol, success=False, error=str(result)))
            else:
                outcomes.append(result)

        succeeded = sum(1 for o in outcomes if o.success)
        logger.info(f"批量优化完成: 成功 {succeeded}/{total}")
        return outcomes
