"""
日志工具
"""
import logging
import os

from indicator_backtest.config import settings


def get_logger(name: str) -> logging.Logger:
    """获取 logger 实例"""
    logger = logging.getLogger(name)

    if not logger.handlers:
        log_level = getattr(settings, 'LOG_LEVEL', 'INFO')
        logger.setLevel(getattr(logging, str(log_level).upper(), logging.INFO))

        # 控制台输出
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.INFO)
        console_format = logging.Formatter(
            '%(asctime)s [%(levelname)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        console_handler.setFormatter(console_format)
        logger.addHandler(console_handler)

        # 文件输出
        if getattr(settings, 'LOG_TO_FILE', False):
            log_dir = getattr(settings, 'LOG_DIR', 'logs')
            os.makedirs(log_dir, exist_ok=True)
            file_handler = logging.FileHandler(
                os.path.join(log_dir, getattr(settings, 'LOG_FILE', 'backtest.log')),
                encoding='utf-8'
            )
            file_handler.setLevel(logging.DEBUG)
            file_format = logging.Formatter(
                '%(asctime)s [%(levelname)s] [%(name)s] %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            file_handler.setFormatter(file_format)
            logger.addHandler(file_handler)

    return logger
