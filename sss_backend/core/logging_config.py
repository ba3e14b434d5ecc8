"""
Logging configuration utilities.

A basic configuration with a consistent format is enough for the
backend; deployments that need structured output can replace it with
``logging.config.dictConfig``.
"""

import logging
import os
from typing import Optional


def setup_logging(level: Optional[int] = None, log_file: Optional[str] = None) -> None:
    """Configure the root logger.

    Parameters
    ----------
    level: Optional[int]
        Logging level. Defaults to ``SSS_LOG_LEVEL`` or ``INFO``.
    log_file: Optional[str]
        Optional file path to also write logs to.
    """
    if level is None:
        level = getattr(logging, os.getenv("SSS_LOG_LEVEL", "INFO").upper(), logging.INFO)
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )
