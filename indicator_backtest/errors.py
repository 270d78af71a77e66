"""
回测引擎异常类定义
"""


class BacktestError(Exception):
    """回测错误基类"""

    def __init__(self, message: str, raw_error: Exception = None):
        super().__init__(message)
        self.raw_error = raw_error


class EmptyDatasetError(BacktestError):
    """数据集为空"""
    pass


class InsufficientDataError(BacktestError):
    """数据量不足"""

    def __init__(self, message: str, required: int = 0, actual: int = 0):
        super().__init__(message)
        self.required = required
        self.actual = actual


class InvalidDatasetError(BacktestError):
    """数据集时间戳非递增或重复"""
    pass


class OptimizationCancelled(BacktestError):
    """优化任务在任何候选完成前被取消"""
    pass
