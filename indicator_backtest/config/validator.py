"""
回测参数验证模块 - 使用 Pydantic 进行类型安全验证

外部调用方传入扁平的 camelCase 字典 (fee, stopLossPct, dynamicRisk ...)，
内部统一使用 snake_case 字段名。
"""
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from . import settings


class ClampRange(BaseModel):
    """动态止损/止盈的安全区间（收益率绝对值）"""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    min_value: float = Field(..., alias="min", ge=0.0, le=1.0)
    max_value: float = Field(..., alias="max", ge=0.0, le=1.0)

    @model_validator(mode="after")
    def validate_bounds(self):
        if self.min_value > self.max_value:
            raise ValueError(f"区间下限 {self.min_value} 大于上限 {self.max_value}")
        return self

    def clamp(self, value: float) -> float:
        return min(max(value, self.min_value), self.max_value)


class DynamicRiskConfig(BaseModel):
    """波动率自适应止损止盈配置"""
    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    enabled: bool = False
    lookback: int = Field(24, ge=2, description="波动率回看周期数")
    sl_multiplier: float = Field(2.0, gt=0.0, description="止损 = -倍数 x 波动率")
    tp_multiplier: float = Field(3.0, gt=0.0, description="止盈 = 倍数 x 波动率")
    sl_clamp: ClampRange = Field(default_factory=lambda: ClampRange(min=0.005, max=0.05))
    tp_clamp: ClampRange = Field(default_factory=lambda: ClampRange(min=0.01, max=0.10))


class BacktestConfig(BaseModel):
    """单次回测参数（比例均为小数，0.02 = 2%）"""
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        extra="ignore",
    )

    # 交易成本与仓位
    fee: float = Field(0.0005, ge=0.0, lt=0.5, description="单边手续费率")
    stop_loss_pct: float = Field(0.025, ge=0.0, le=1.0, description="静态止损 (按绝对值处理)")
    take_profit_pct: float = Field(0.035, ge=0.0, description="静态止盈")
    position_size_pct: float = Field(0.1, gt=0.0, le=1.0, description="每笔投入资金比例")

    # 时间相关
    min_hold_periods: int = Field(6, ge=0, description="反向信号平仓前的最短持仓周期")
    max_hold_periods: int = Field(72, ge=1, description="最长持仓周期")
    cooldown_periods: int = Field(12, ge=0, description="平仓后冷却周期")
    confirmation_periods: int = Field(3, ge=1, description="信号连续确认周期")

    # 熔断与风控
    max_daily_trades: int = Field(2, ge=1, description="每日最多开仓次数")
    max_consecutive_losses: int = Field(2, ge=1, description="触发暂停的连续亏损次数")
    pause_after_losses: int = Field(48, ge=0, description="连续亏损后的暂停周期")
    max_drawdown_limit: float = Field(0.2, gt=0.0, le=1.0, description="回撤上限，超过后暂停开仓")
    min_capital_ratio: float = Field(0.5, ge=0.0, le=1.0, description="低于 初始资金 x 比例 时不再开仓")

    # 资金与统计
    initial_capital: float = Field(10000.0, gt=0.0)
    risk_free_rate: float = Field(0.02, ge=0.0, lt=1.0, description="年化无风险利率")
    periods_per_year: int = Field(365 * 24, ge=1, description="年化周期数 (默认 1H K线)")

    # 模式开关
    long_only: bool = True
    compounding: bool = True
    exec_next: bool = True
    signal_threshold: float = Field(0.0, ge=0.0, lt=1.0, description="加权分数的开仓阈值")
    legacy_falsy_missing: bool = Field(False, description="把 0 值指标视为缺失（兼容旧结果）")
    min_periods: Optional[int] = Field(None, ge=1, description="单次回测最少数据量")

    dynamic_risk: DynamicRiskConfig = Field(default_factory=DynamicRiskConfig)

    @field_validator('stop_loss_pct', mode='before')
    @classmethod
    def normalize_stop_loss(cls, v):
        """止损允许以负数传入 (-0.025)，统一存为正数"""
        if isinstance(v, (int, float)):
            return abs(v)
        return v

    @property
    def required_periods(self) -> int:
        return self.min_periods or settings.MIN_BACKTEST_PERIODS

    def to_options(self) -> Dict[str, Any]:
        """导出为 camelCase 扁平字典"""
        return self.model_dump(by_alias=True)


def load_config(options: Union[None, Dict[str, Any], BacktestConfig] = None, **overrides) -> BacktestConfig:
    """
    构造回测配置

    Args:
        options: camelCase 或 snake_case 字典，或已有的 BacktestConfig
        overrides: 额外覆盖项

    Returns:
        BacktestConfig
    """
    if isinstance(options, BacktestConfig):
        if not overrides:
            return options
        base = options.to_options()
    else:
        base = dict(options or {})
    # 统一为 camelCase 键，避免同一字段两种写法同时出现
    merged = {_camel_key(k): v for k, v in base.items()}
    merged.update({_camel_key(k): v for k, v in overrides.items()})
    return BacktestConfig.model_validate(merged)


def _camel_key(key: str) -> str:
    # 已是 camelCase 的键原样保留
    return to_camel(key) if '_' in key else key
