"""
指标计算模块 - 回测绩效指标 (ROI / 胜率 / 回撤 / 夏普 / 索提诺 / 盈亏比 ...)
"""
from typing import Sequence

import numpy as np

from indicator_backtest.domain.models import BacktestResult, Trade

DRAWDOWN_FLOOR = 0.01   # 最大回撤下限（百分比）


def _finite(value) -> float:
    """NaN / inf 统一为 0"""
    value = float(value)
    return value if np.isfinite(value) else 0.0


class MetricsCalculator:
    """回测指标计算器（纯函数，不修改输入）"""

    @staticmethod
    def calculate(
        trades: Sequence[Trade],
        equity_curve: Sequence[float],
        initial_capital: float,
        risk_free_rate: float = 0.02,
        periods_per_year: int = 365 * 24,
    ) -> BacktestResult:
        """计算所有回测指标"""
        final_capital = float(equity_curve[-1]) if len(equity_curve) else float(initial_capital)
        roi = (final_capital - initial_capital) / initial_capital * 100

        # 胜负统计
        trade_count = len(trades)
        profits = np.array([t.profit for t in trades], dtype=float)
        wins = int(sum(1 for t in trades if t.is_win))
        losses = int(np.sum(profits < 0)) if trade_count else 0
        win_rate = wins / trade_count * 100 if trade_count else 0.0

        winning = profits[profits > 0]
        losing = profits[profits < 0]
        avg_win = float(np.mean(winning)) if len(winning) else 0.0
        avg_loss = float(np.mean(losing)) if len(losing) else 0.0
        expectancy = float(np.mean(profits)) if trade_count else 0.0

        # 盈亏比
        gross_loss = abs(float(np.sum(losing)))
        profit_factor = float(np.sum(winning)) / gross_loss if gross_loss > 0 else 0.0

        avg_holding = float(np.mean([t.holding_period for t in trades])) if trade_count else 0.0

        returns = MetricsCalculator.period_returns(equity_curve)

        return BacktestResult(
            roi=_finite(roi),
            win_rate=_finite(win_rate),
            max_drawdown=MetricsCalculator.calculate_max_drawdown(equity_curve),
            sharpe_ratio=MetricsCalculator.calculate_sharpe(returns, risk_free_rate, periods_per_year),
            sortino_ratio=MetricsCalculator.calculate_sortino(returns, risk_free_rate, periods_per_year),
            trade_count=trade_count,
            final_capital=final_capital,
            trades=tuple(trades),
            equity_curve=tuple(float(v) for v in equity_curve),
            initial_capital=float(initial_capital),
            profit_factor=_finite(profit_factor),
            wins=wins,
            losses=losses,
            avg_win=_finite(avg_win),
            avg_loss=_finite(avg_loss),
            expectancy=_finite(expectancy),
            avg_holding_period=_finite(avg_holding),
            max_consecutive_losses=MetricsCalculator.max_consecutive_losses(trades),
            annualized_return=MetricsCalculator.annualized_return(roi, len(equity_curve), periods_per_year),
            data_points=len(equity_curve),
        )

    @staticmethod
    def period_returns(equity_curve: Sequence[float]) -> np.ndarray:
        """逐周期收益率，前值为 0 的周期记为 0"""
        equity = np.asarray(equity_curve, dtype=float)
        if len(equity) < 2:
            return np.array([], dtype=float)

        prev = equity[:-1]
        diff = np.diff(equity)
        returns = np.zeros_like(diff)
        np.divide(diff, prev, out=returns, where=prev != 0)
        return returns

    @staticmethod
    def calculate_max_drawdown(equity_curve: Sequence[float]) -> float:
        """最大回撤（百分比），峰值 <= 0 的位置跳过，下限 0.01"""
        equity = np.asarray(equity_curve, dtype=float)
        if len(equity) == 0:
            return DRAWDOWN_FLOOR

        running_max = np.maximum.accumulate(equity)
        valid = running_max > 0
        if not np.any(valid):
            return DRAWDOWN_FLOOR

        drawdown = (running_max[valid] - equity[valid]) / running_max[valid] * 100
        return max(_finite(np.max(drawdown)), DRAWDOWN_FLOOR)

    @staticmethod
    def calculate_sharpe(returns: np.ndarray, risk_free_rate: float, periods_per_year: int) -> float:
        """夏普比率（样本标准差，按 periods_per_year 年化）"""
        if len(returns) < 2:
            return 0.0

        std = np.std(returns, ddof=1)
        if std == 0 or not np.isfinite(std):
            return 0.0

        excess = np.mean(returns) - risk_free_rate / periods_per_year
        return _finite(excess / std * np.sqrt(periods_per_year))

    @staticmethod
    def calculate_sortino(returns: np.ndarray, risk_free_rate: float, periods_per_year: int) -> float:
        """索提诺比率（下行偏差 sqrt(mean(r^2))，仅取负收益）"""
        if len(returns) == 0:
            return 0.0

        negative = returns[returns < 0]
        if len(negative) == 0:
            return 0.0

        downside = np.sqrt(np.mean(negative ** 2))
        if downside == 0:
            return 0.0

        excess = np.mean(returns) - risk_free_rate / periods_per_year
        return _finite(excess / downside * np.sqrt(periods_per_year))

    @staticmethod
    def max_consecutive_losses(trades: Sequence[Trade]) -> int:
        longest = current = 0
        for trade in trades:
            if trade.profit < 0:
                current += 1
                longest = max(longest, current)
            else:
                current = 0
        return longest

    @staticmethod
    def annualized_return(roi: float, periods: int, periods_per_year: int) -> float:
        """年化收益率（百分比）: (1 + roi/100)^(periods_per_year/periods) - 1"""
        if periods <= 0:
            return 0.0
        growth = 1 + roi / 100
        if growth <= 0:
            return -100.0
        with np.errstate(over='ignore'):
            value = np.power(growth, periods_per_year / periods)
        return _finite((value - 1) * 100)
