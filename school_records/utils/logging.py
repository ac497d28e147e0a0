# =============================================
# File: school_records/utils/logging.py
# Purpose: Logging configuration (loguru sinks for service logs)
# =============================================
import os
import sys

from loguru import logger


def configure_logging() -> None:
    """Stderr at LOG_LEVEL, plus a rotating file sink when LOG_FILE is set."""
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    logger.remove()
    logger.add(sys.stderr, level=level)
    log_file = os.getenv("LOG_FILE", "").strip()
    if log_file:
        logger.add(log_file, level=level, rotation="10 MB")
