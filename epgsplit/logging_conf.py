"""
Logging configuration helpers.

中文:
    日志配置。
"""

from __future__ import annotations

import logging
import os

NOISY_LOGGERS = ("urllib3", "requests")


def configure_logging(default_level: str = "INFO") -> None:
    """
    Configure the root logger once; later calls only adjust the level.

    中文:
        配置根日志记录器（仅一次），之后的调用只调整日志级别。
    """

    level_name = os.getenv("EPGSPLIT_LOGLEVEL", default_level).upper()
    level = getattr(logging, level_name, logging.INFO)
    root = logging.getLogger()

    if root.handlers:
        root.setLevel(level)
    else:
        logging.basicConfig(
            level=level,
            format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
        )

    # HTTP client loggers stay at WARNING outside debug mode.
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(level if level <= logging.DEBUG else logging.WARNING)
