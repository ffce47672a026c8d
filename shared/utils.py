"""
PosturePomo Shared Utilities
"""

import logging
import sys
from datetime import datetime, timezone


LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


# ============================================
# Logging Configuration
# ============================================

def setup_logger(name: str = "posturepomo", level: int = logging.INFO) -> logging.Logger:
    """
    Get a logger writing to stdout in the service log format.

    The logger does not propagate, so it is not printed twice when the root
    logger is configured as well.

    Usage:
        logger = setup_logger("posturepomo.main")
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
        logger.addHandler(handler)

    return logger


# ============================================
# Time
# ============================================

def now_ms() -> float:
    """Wall clock in epoch milliseconds, the unit stretch timers use."""
    return datetime.now(timezone.utc).timestamp() * 1000
