import logging

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logger(level=logging.INFO):
    """配置根日志格式，返回 navkit 顶层 logger"""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logging.basicConfig(format=LOG_FORMAT, level=level)
    logger = logging.getLogger("navkit")
    logger.setLevel(level)
    return logger
