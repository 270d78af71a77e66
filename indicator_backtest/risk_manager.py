"""
回测风险管理器

负责单次回测内的风控状态:
- 静态 / 波动率自适应止损止盈
- 平仓冷却、连续亏损暂停
- 每日开仓次数上限
- 回撤上限与最低资金保护
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from indicator_backtest.config.validator import BacktestConfig
from indicator_backtest.logger_utils import get_logger

logger = get_logger("risk_manager")


# ==================== 数据类定义 ====================

@dataclass(frozen=True)
class RiskThresholds:
    """某一周期生效的止损止盈（收益率，止损为负数）"""
    stop_loss: float
    take_profit: float
    dynamic: bool = False


# ==================== 工具函数 ====================

def calc_rolling_volatility(closes: Sequence[float], lookback: int) -> np.ndarray:
    """
    滚动波动率: 最近 lookback 个周期收益率的样本标准差 (ddof=1)

    窗口不足或无法计算的位置为 NaN
    """
    returns = pd.Series(closes, dtype=float).pct_change()
    returns = returns.replace([np.inf, -np.inf], np.nan)
    volatility = returns.rolling(window=lookback, min_periods=lookback).std(ddof=1)
    return volatility.to_numpy()


def utc_day(timestamp) -> int:
    """
    时间戳所在的 UTC 自然日序号

    兼容秒 / 毫秒 / 微秒级时间戳
    """
    ts = float(timestamp)
    if abs(ts) >= 1e15:
        ts /= 1e6
    elif abs(ts) >= 1e12:
        ts /= 1e3
    return datetime.fromtimestamp(ts, tz=timezone.utc).toordinal()


# ==================== 风险管理器 ====================

class RiskManager:
    """单次回测的风控状态，每次回测新建一个实例"""

    def __init__(self, config: BacktestConfig, closes: Optional[Sequence[float]] = None):
        self.config = config

        self.cooldown_until = 0
        self.pause_until = 0
        self.consecutive_losses = 0
        self.daily_trades: Dict[int, int] = {}

        self.peak_capital = config.initial_capital
        self.current_drawdown = 0.0
        self.min_capital = config.initial_capital * config.min_capital_ratio

        self.static_thresholds = RiskThresholds(
            stop_loss=-abs(config.stop_loss_pct),
            take_profit=config.take_profit_pct,
        )

        dynamic = config.dynamic_risk
        self._volatility: Optional[np.ndarray] = None
        if dynamic.enabled and closes is not None:
            self._volatility = calc_rolling_volatility(closes, dynamic.lookback)

    # ==================== 止损止盈 ====================

    def volatility_at(self, index: int) -> float:
        if self._volatility is None or index >= len(self._volatility):
            return float('nan')
        return float(self._volatility[index])

    def effective_thresholds(self, index: int) -> RiskThresholds:
        """
        获取第 index 周期生效的止损止盈

        动态模式:
            SL = -clamp(slMultiplier x vol)
            TP = max(clamp(tpMultiplier x vol), 静态止盈)
        波动率不可用时回退到静态值
        """
        vol = self.volatility_at(index)
        if np.isnan(vol):
            return self.static_thresholds

        dynamic = self.config.dynamic_risk
        stop_loss = -dynamic.sl_clamp.clamp(dynamic.sl_multiplier * vol)
        take_profit = max(
            dynamic.tp_clamp.clamp(dynamic.tp_multiplier * vol),
            self.config.take_profit_pct,
        )
        return RiskThresholds(stop_loss=stop_loss, take_profit=take_profit, dynamic=True)

    # ==================== 开仓检查 ====================

    def can_open(self, index: int, timestamp, capital: float) -> Tuple[bool, str]:
        """检查空仓状态下是否可以开仓"""
        # 1. 平仓冷却
        if index < self.cooldown_until:
            return False, f"冷却中，至第 {self.cooldown_until} 周期"

        # 2. 连续亏损暂停
        if index < self.pause_until:
            return False, f"连续亏损暂停中，至第 {self.pause_until} 周期"

        # 3. 每日开仓次数
        day = utc_day(timestamp)
        if self.daily_trades.get(day, 0) >= self.config.max_daily_trades:
            return False, "已达日内开仓次数上限"

        # 4. 回撤上限
        if self.current_drawdown >= self.config.max_drawdown_limit:
            return False, f"回撤过大: {self.current_drawdown:.1%}"

        # 5. 最低资金
        if capital <= self.min_capital:
            return False, f"资金 {capital:.2f} 低于最低要求 {self.min_capital:.2f}"

        return True, ""

    # ==================== 状态记录 ====================

    def record_entry(self, timestamp):
        """记录一次开仓（计入当日次数）"""
        day = utc_day(timestamp)
        self.daily_trades[day] = self.daily_trades.get(day, 0) + 1

    def record_trade_result(self, index: int, profit: float):
        """记录平仓结果，更新冷却与连续亏损计数"""
        self.cooldown_until = index + self.config.cooldown_periods

        if profit < 0:
            self.consecutive_losses += 1
            if self.consecutive_losses >= self.config.max_consecutive_losses:
                self.pause_until = index + self.config.pause_after_losses
                logger.debug(
                    f"连续亏损 {self.consecutive_losses} 次，暂停开仓至第 {self.pause_until} 周期"
                )
                self.consecutive_losses = 0
        else:
            self.consecutive_losses = 0

    def update_equity(self, capital: float) -> float:
        """更新权益峰值，返回当前回撤（小数）"""
        self.peak_capital = max(self.peak_capital, capital)
        if self.peak_capital > 0:
            self.current_drawdown = (self.peak_capital - capital) / self.peak_capital
        else:
            self.current_drawdown = 0.0
        return self.current_drawdown
