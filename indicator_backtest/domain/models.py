"""
领域模型
"""
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple


class Signal(str, Enum):
    """单指标信号"""
    BUY = "buy"
    SELL = "sell"
    NEUTRAL = "neutral"

    @property
    def score(self) -> int:
        if self is Signal.BUY:
            return 1
        if self is Signal.SELL:
            return -1
        return 0


class Indicator(str, Enum):
    """支持的 8 个技术指标"""
    SMA = "SMA"
    EMA = "EMA"
    PSAR = "PSAR"
    RSI = "RSI"
    MACD = "MACD"
    STOCHASTIC = "Stochastic"
    STOCHASTIC_RSI = "StochasticRSI"
    BOLLINGER_BANDS = "BollingerBands"


class Direction(str, Enum):
    """持仓方向"""
    LONG = "long"
    SHORT = "short"


class ExitReason(str, Enum):
    """平仓原因"""
    STOP_LOSS = "StopLoss"
    TAKE_PROFIT = "TakeProfit"
    SIGNAL_REVERSAL = "SignalReversal"
    MAX_HOLD_EXCEEDED = "MaxHoldExceeded"
    END_OF_DATA = "EndOfData"


WeightVector = Dict[Indicator, float]
SignalVector = Dict[Indicator, Signal]


@dataclass(frozen=True)
class PricePoint:
    """单周期价格"""
    time: int      # epoch 时间戳
    close: float


@dataclass(frozen=True)
class IndicatorSnapshot(PricePoint):
    """价格 + 同一时间戳的指标值，缺失值为 None"""
    sma_short: Optional[float] = None
    sma_long: Optional[float] = None
    ema_short: Optional[float] = None
    ema_long: Optional[float] = None
    rsi: Optional[float] = None
    macd: Optional[float] = None
    macd_signal: Optional[float] = None
    macd_hist: Optional[float] = None
    bb_upper: Optional[float] = None
    bb_middle: Optional[float] = None
    bb_lower: Optional[float] = None
    stoch_k: Optional[float] = None
    stoch_d: Optional[float] = None
    stoch_rsi_k: Optional[float] = None
    stoch_rsi_d: Optional[float] = None
    psar: Optional[float] = None


def coerce_weights(weights: Mapping[Any, float]) -> WeightVector:
    """
    把 {名称: 权重} 转为 {Indicator: 权重} 并校验

    Raises:
        ValueError: 未知指标、负数或非有限权重
    """
    result: WeightVector = {}
    for key, value in weights.items():
        try:
            indicator = key if isinstance(key, Indicator) else Indicator(key)
        except ValueError:
            raise ValueError(f"未知指标: {key}")
        weight = float(value)
        if not math.isfinite(weight) or weight < 0:
            raise ValueError(f"权重必须为非负有限数: {key}={value}")
        result[indicator] = weight
    return result


def normalize_weights(weights: Mapping[Indicator, float], total: float = 10.0,
                      digits: int = 2) -> Dict[str, float]:
    """按总和缩放到 total 并保留 digits 位小数；总和为 0 时原样返回"""
    weight_sum = sum(weights.values())
    if weight_sum <= 0:
        return {_name(k): float(v) for k, v in weights.items()}
    return {
        _name(k): round(v / weight_sum * total, digits)
        for k, v in weights.items()
    }


def _name(key) -> str:
    return key.value if isinstance(key, Indicator) else str(key)


@dataclass(frozen=True)
class Trade:
    """已平仓交易"""
    entry_price: float
    exit_price: float
    direction: Direction
    entry_index: int
    exit_index: int
    net_return: float          # 扣除双边手续费后的收益率
    profit: float              # 资金变动
    is_win: bool
    exit_reason: ExitReason
    entry_time: Optional[int] = None     # 成交周期时间（execNext 时为信号的下一周期）
    exit_time: Optional[int] = None

    @property
    def holding_period(self) -> int:
        return self.exit_index - self.entry_index

    def to_dict(self) -> Dict[str, Any]:
        return {
            'entry_price': self.entry_price,
            'exit_price': self.exit_price,
            'direction': self.direction.value,
            'entry_index': self.entry_index,
            'exit_index': self.exit_index,
            'net_return': self.net_return,
            'profit': self.profit,
            'is_win': self.is_win,
            'exit_reason': self.exit_reason.value,
            'holding_period': self.holding_period,
            'entry_time': self.entry_time,
            'exit_time': self.exit_time,
        }


@dataclass(frozen=True)
class BacktestResult:
    """回测结果（原始数值，未做展示舍入）"""
    roi: float
    win_rate: float
    max_drawdown: float
    sharpe_ratio: float
    sortino_ratio: float
    trade_count: int
    final_capital: float
    trades: Tuple[Trade, ...] = ()
    equity_curve: Tuple[float, ...] = ()
    initial_capital: float = 0.0
    profit_factor: float = 0.0
    wins: int = 0
    losses: int = 0
    avg_win: float = 0.0
    avg_loss: float = 0.0
    expectancy: float = 0.0
    avg_holding_period: float = 0.0
    max_consecutive_losses: int = 0
    annualized_return: float = 0.0
    data_points: int = 0

    def summary(self) -> Dict[str, Any]:
        """展示用指标（舍入）"""
        return {
            'roi': round(self.roi, 2),
            'win_rate': round(self.win_rate, 2),
            'max_drawdown': round(self.max_drawdown, 2),
            'sharpe_ratio': round(self.sharpe_ratio, 4),
            'sortino_ratio': round(self.sortino_ratio, 4),
            'profit_factor': round(self.profit_factor, 4),
            'trades': self.trade_count,
            'wins': self.wins,
            'losses': self.losses,
            'final_capital': round(self.final_capital, 2),
            'avg_win': round(self.avg_win, 2),
            'avg_loss': round(self.avg_loss, 2),
            'expectancy': round(self.expectancy, 2),
            'avg_holding_period': round(self.avg_holding_period, 1),
            'max_consecutive_losses': self.max_consecutive_losses,
            'annualized_return': round(self.annualized_return, 2),
            'data_points': self.data_points,
        }

    def to_dict(self, include_details: bool = True) -> Dict[str, Any]:
        data = {
            'roi': self.roi,
            'win_rate': self.win_rate,
            'max_drawdown': self.max_drawdown,
            'sharpe_ratio': self.sharpe_ratio,
            'sortino_ratio': self.sortino_ratio,
            'profit_factor': self.profit_factor,
            'trade_count': self.trade_count,
            'wins': self.wins,
            'losses': self.losses,
            'initial_capital': self.initial_capital,
            'final_capital': self.final_capital,
            'avg_win': self.avg_win,
            'avg_loss': self.avg_loss,
            'expectancy': self.expectancy,
            'avg_holding_period': self.avg_holding_period,
            'max_consecutive_losses': self.max_consecutive_losses,
            'annualized_return': self.annualized_return,
            'data_points': self.data_points,
        }
        if include_details:
            data['trades'] = [t.to_dict() for t in self.trades]
            data['equity_curve'] = list(self.equity_curve)
        return data


@dataclass(frozen=True)
class CandidateResult:
    """单个权重候选的回测结果"""
    label: str
    weights: Dict[str, float]
    result: BacktestResult

    def to_dict(self, include_details: bool = False) -> Dict[str, Any]:
        return {
            'combo': self.label,
            'weights': dict(self.weights),
            **self.result.to_dict(include_details=include_details),
        }


@dataclass(frozen=True)
class OptimizationResult:
    """权重优化结果"""
    best_weights: Dict[str, float]         # 归一化后的权重
    best_combo_label: str
    performance: BacktestResult
    all_candidate_results: Tuple[CandidateResult, ...] = ()
    raw_best_weights: Dict[str, float] = field(default_factory=dict)
    cancelled: bool = False

    @staticmethod
    def storage_key(symbol: str, timeframe: str, train_start: int, train_end: int) -> Tuple[str, str, int, int]:
        """存储层幂等键: (symbol, timeframe, startTrain, endTrain)"""
        return symbol, timeframe, int(train_start), int(train_end)

    def to_record(self, symbol: str, timeframe: str, train_start: int, train_end: int) -> Dict[str, Any]:
        """交给存储层的记录"""
        perf = self.performance
        return {
            'symbol': symbol,
            'timeframe': timeframe,
            'startTrain': int(train_start),
            'endTrain': int(train_end),
            'weights': dict(self.best_weights),
            'roi': perf.roi,
            'winRate': perf.win_rate,
            'maxDrawdown': perf.max_drawdown,
            'trades': perf.trade_count,
            'finalCapital': perf.final_capital,
            'sharpeRatio': perf.sharpe_ratio,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            'best_combo': self.best_combo_label,
            'best_weights': dict(self.best_weights),
            'performance': self.performance.summary(),
            'all_results': [c.to_dict() for c in self.all_candidate_results],
            'cancelled': self.cancelled,
        }


@dataclass(frozen=True)
class SymbolOptimizationResult:
    """批量优化中单个币种的结果"""
    symbol: str
    success: bool
    result: Optional[OptimizationResult] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {'symbol': self.symbol, 'success': self.success}
        if self.result is not None:
            data.update(self.result.to_dict())
        if self.error is not None:
            data['error'] = self.error
        return data
