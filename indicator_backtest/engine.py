"""
回测引擎 - 基于加权指标信号的单仓位状态机

状态: 空仓 / 多仓 / 空仓(做空，仅 longOnly=False 时)
每个周期先检查平仓（止损 > 止盈 > 最长持仓 > 反向信号确认），
空仓时再检查开仓（信号确认 + 风控检查）。
"""
from dataclasses import dataclass
from typing import List, Mapping, Optional, Sequence, Union

from indicator_backtest.config.validator import BacktestConfig, load_config
from indicator_backtest.domain.models import (
    BacktestResult,
    Direction,
    ExitReason,
    IndicatorSnapshot,
    Signal,
    SignalVector,
    Trade,
    coerce_weights,
)
from indicator_backtest.errors import EmptyDatasetError, InsufficientDataError, InvalidDatasetError
from indicator_backtest.logger_utils import get_logger
from indicator_backtest.risk_manager import RiskManager
from indicator_backtest.services.metrics_calculator import MetricsCalculator
from indicator_backtest.signals.combiner import combine_signals
from indicator_backtest.signals.evaluators import SignalAggregator

logger = get_logger("engine")


@dataclass
class OpenPosition:
    """回测中的持仓"""
    direction: Direction
    entry_price: float
    entry_index: int
    entry_time: Optional[int] = None

    def unrealized_return(self, price: float) -> float:
        if self.direction is Direction.LONG:
            return (price - self.entry_price) / self.entry_price
        return (self.entry_price - price) / self.entry_price


def validate_dataset(data: Sequence[IndicatorSnapshot], min_periods: int):
    """
    校验输入序列

    Raises:
        EmptyDatasetError: 数据为空
        InsufficientDataError: 数据量不足
        InvalidDatasetError: 时间戳非严格递增
    """
    if not data:
        raise EmptyDatasetError("回测数据为空")
    if len(data) < min_periods:
        raise InsufficientDataError(
            f"数据量不足: 需要至少 {min_periods} 条，实际 {len(data)} 条",
            required=min_periods,
            actual=len(data),
        )
    for i in range(1, len(data)):
        if data[i].time <= data[i - 1].time:
            raise InvalidDatasetError(
                f"时间戳必须严格递增: 第 {i} 条 ({data[i].time}) <= 第 {i - 1} 条 ({data[i - 1].time})"
            )


def is_signal_confirmed(signals: Sequence[Signal], index: int, target: Signal, periods: int) -> bool:
    """以 index 结尾的连续 periods 个周期信号都等于 target"""
    start = index - periods + 1
    if start < 0:
        return False
    return all(signals[j] is target for j in range(start, index + 1))


def build_signal_vectors(data: Sequence[IndicatorSnapshot],
                         legacy_falsy_missing: bool = False) -> List[SignalVector]:
    """逐周期计算各指标信号（与权重无关，可在多次回测间复用）"""
    aggregator = SignalAggregator(legacy_falsy_missing=legacy_falsy_missing)
    return [
        aggregator.aggregate(snapshot, data[i - 1] if i > 0 else None)
        for i, snapshot in enumerate(data)
    ]


class BacktestEngine:
    """加权信号回测引擎"""

    def __init__(self, config: Union[None, dict, BacktestConfig] = None):
        self.config = load_config(config)

    def run(self, data: Sequence[IndicatorSnapshot], weights: Mapping,
            signal_vectors: Optional[Sequence[SignalVector]] = None) -> BacktestResult:
        """
        执行一次回测

        Args:
            data: 按时间升序的价格 + 指标快照
            weights: 指标权重 {指标: 权重}
            signal_vectors: 预先计算好的各周期信号（可选）

        Returns:
            BacktestResult
        """
        cfg = self.config
        validate_dataset(data, cfg.required_periods)
        weight_vector = coerce_weights(weights)

        if signal_vectors is None:
            signal_vectors = build_signal_vectors(data, cfg.legacy_falsy_missing)
        elif len(signal_vectors) != len(data):
            raise ValueError(f"信号序列长度 {len(signal_vectors)} 与数据长度 {len(data)} 不一致")

        signals = [
            combine_signals(vector, weight_vector, cfg.signal_threshold).signal
            for vector in signal_vectors
        ]
        closes = [float(s.close) for s in data]
        risk = RiskManager(cfg, closes)

        capital = cfg.initial_capital
        position: Optional[OpenPosition] = None
        trades: List[Trade] = []
        equity_curve: List[float] = []
        last = len(data) - 1

        for i, price in enumerate(closes):
            closed_this_period = False

            # 1. 持仓: 检查平仓（开仓当周期不检查）
            if position is not None and i > position.entry_index:
                reason = self._check_exit(position, i, price, signals, risk)
                if reason is not None:
                    capital, trade = self._close_position(position, i, price, reason, capital, data)
                    trades.append(trade)
                    risk.record_trade_result(i, trade.profit)
                    position = None
                    closed_this_period = True

            # 2. 空仓: 检查开仓（最后一个周期不开仓）
            if position is None and not closed_this_period and i < last:
                position = self._try_open(i, price, signals, risk, capital, data, closes)

            risk.update_equity(capital)
            equity_curve.append(capital)

        # 数据结束强制平仓
        if position is not None:
            capital, trade = self._close_position(
                position, last, closes[last], ExitReason.END_OF_DATA, capital, data
            )
            trades.append(trade)
            risk.record_trade_result(last, trade.profit)
            risk.update_equity(capital)
            equity_curve[-1] = capital

        return MetricsCalculator.calculate(
            trades,
            equity_curve,
            cfg.initial_capital,
            risk_free_rate=cfg.risk_free_rate,
            periods_per_year=cfg.periods_per_year,
        )

    # ==================== 状态转移 ====================

    def _check_exit(self, position: OpenPosition, index: int, price: float,
                    signals: Sequence[Signal], risk: RiskManager) -> Optional[ExitReason]:
        """按优先级返回第一个触发的平仓原因"""
        cfg = self.config
        current_return = position.unrealized_return(price)
        thresholds = risk.effective_thresholds(index)
        held = index - position.entry_index

        if current_return <= thresholds.stop_loss:
            return ExitReason.STOP_LOSS
        if current_return >= thresholds.take_profit:
            return ExitReason.TAKE_PROFIT
        if held >= cfg.max_hold_periods:
            return ExitReason.MAX_HOLD_EXCEEDED

        opposite = Signal.SELL if position.direction is Direction.LONG else Signal.BUY
        if held >= cfg.min_hold_periods and is_signal_confirmed(
                signals, index, opposite, cfg.confirmation_periods):
            return ExitReason.SIGNAL_REVERSAL
        return None

    def _try_open(self, index: int, price: float, signals: Sequence[Signal], risk: RiskManager,
                  capital: float, data: Sequence[IndicatorSnapshot],
                  closes: Sequence[float]) -> Optional[OpenPosition]:
        cfg = self.config
        signal = signals[index]
        if signal is Signal.BUY:
            direction = Direction.LONG
        elif signal is Signal.SELL and not cfg.long_only:
            direction = Direction.SHORT
        else:
            return None

        if not is_signal_confirmed(signals, index, signal, cfg.confirmation_periods):
            return None

        allowed, reason = risk.can_open(index, data[index].time, capital)
        if not allowed:
            logger.debug(f"[{index}] 跳过开仓: {reason}")
            return None

        fill_index = index + 1 if cfg.exec_next else index
        entry_price = closes[fill_index]
        if entry_price <= 0:
            logger.debug(f"[{index}] 成交价无效: {entry_price}")
            return None

        risk.record_entry(data[index].time)
        logger.debug(f"[{index}] 开仓 {direction.value} @ {entry_price}")
        return OpenPosition(
            direction=direction,
            entry_price=entry_price,
            entry_index=index,
            entry_time=data[fill_index].time,
        )

    def _close_position(self, position: OpenPosition, index: int, price: float, reason: ExitReason,
                        capital: float, data: Sequence[IndicatorSnapshot]):
        """平仓并结算资金，返回 (新资金, Trade)"""
        cfg = self.config
        raw_return = position.unrealized_return(price)
        net_return = raw_return - 2 * cfg.fee

        base = capital if cfg.compounding else cfg.initial_capital
        new_capital = capital + base * cfg.position_size_pct * net_return
        if new_capital < 0:
            logger.warning(f"[{index}] 资金跌破 0 ({new_capital:.2f})，按 0 处理")
            new_capital = 0.0
        profit = new_capital - capital

        trade = Trade(
            entry_price=position.entry_price,
            exit_price=price,
            direction=position.direction,
            entry_index=position.entry_index,
            exit_index=index,
            net_return=net_return,
            profit=profit,
            is_win=profit > 0,
            exit_reason=reason,
            entry_time=position.entry_time,
            exit_time=data[index].time,
        )
        logger.debug(
            f"[{index}] 平仓 {position.direction.value} @ {price} ({reason.value}) "
            f"收益率 {net_return:.4%} 盈亏 {profit:.2f}"
        )
        return new_capital, trade


def run_backtest(data: Sequence[IndicatorSnapshot], weights: Mapping,
                 config: Union[None, dict, BacktestConfig] = None) -> BacktestResult:
    """执行一次加权指标回测"""
    return BacktestEngine(config).run(data, weights)
