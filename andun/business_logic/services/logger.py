# andun/business_logic/services/logger.py
import logging
import os
import datetime
from pathlib import Path

from andun.core.config import settings


def setup_logger() -> logging.Logger:
    """设置日志"""
    logger = logging.getLogger("andun")
    logger.setLevel(logging.DEBUG if settings.DEBUG_MODE else logging.INFO)

    # 清除可能存在的处理程序，防止重复
    if logger.handlers:
        for handler in logger.handlers[:]:
            logger.removeHandler(handler)

    formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    # 创建控制台处理程序
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # 创建带时间戳的文件处理程序
    logs_dir = Path(settings.LOG_DIR)
    try:
        os.makedirs(logs_dir, exist_ok=True)
        timestamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
        file_handler = logging.FileHandler(logs_dir / f"log_{timestamp}.txt", encoding='utf-8')
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    except OSError as e:
        logger.warning(f"无法创建日志文件目录 {logs_dir}: {e}")

    return logger


logger = setup_logger()
