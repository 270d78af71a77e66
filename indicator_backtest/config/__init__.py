"""
配置模块汇总

settings: 环境相关的运行参数
validator: 回测参数模型 (Pydantic)
"""
from . import settings
from .validator import BacktestConfig, DynamicRiskConfig, ClampRange, load_config

__all__ = [
    'settings',
    'BacktestConfig',
    'DynamicRiskConfig',
    'ClampRange',
    'load_config',
]
