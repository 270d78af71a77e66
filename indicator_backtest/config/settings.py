"""
运行配置 - 从环境变量 / .env 加载
"""
import os
from dotenv import load_dotenv

# 加载 .env 文件
load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# ==================== 日志配置 ====================

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_DIR = os.getenv("LOG_DIR", "logs")
LOG_FILE = os.getenv("LOG_FILE", "backtest.log")
LOG_TO_FILE = _env_bool("LOG_TO_FILE", False)   # 库模式默认只输出到控制台

# ==================== 数据量要求 ====================

MIN_BACKTEST_PERIODS = int(os.getenv("MIN_BACKTEST_PERIODS", "10"))
MIN_OPTIMIZATION_PERIODS = int(os.getenv("MIN_OPTIMIZATION_PERIODS", "100"))

# ==================== 并发配置 ====================

OPTIMIZER_MAX_WORKERS = int(os.getenv("OPTIMIZER_MAX_WORKERS", str(min(8, os.cpu_count() or 1))))
BATCH_MAX_CONCURRENCY = int(os.getenv("BATCH_MAX_CONCURRENCY", "3"))   # 多币种批量优化并发上限

# ==================== 权重优化 ====================

DEFAULT_NORMALIZE_TO = float(os.getenv("DEFAULT_NORMALIZE_TO", "10"))   # 最优权重归一化总和
DEFAULT_GRID_LEVELS = (0.0, 1.0, 2.0)
TRAIN_TEST_SPLIT = 0.8
OVERFIT_RATIO_THRESHOLD = 0.5
