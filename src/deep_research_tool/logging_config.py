"""
Logging setup for the deep_research_tool package.

Modules log through ``logging.getLogger(__name__)``; this module only attaches
handlers to the package logger.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

from deep_research_tool.config import Settings

PACKAGE_LOGGER = "deep_research_tool"

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(
    settings: Optional[Settings] = None,
    level: Optional[Union[int, str]] = None,
    log_dir: Optional[Union[str, Path]] = None,
    console: Optional[bool] = None,
) -> logging.Logger:
    """
    Configure the package logger.

    Writes ERROR and above to ``error.log`` and everything to ``combined.log``
    in ``log_dir``. Outside production a console handler is added as well.
    Calling it again replaces the handlers installed by the previous call.

    Args:
        settings: Settings to derive defaults from.
        level: Log level. Defaults to INFO in production, DEBUG otherwise.
        log_dir: Directory for log files. ``None`` uses settings or disables files.
        console: Force the console handler on or off.

    Returns:
        The configured package logger.
    """
    production = settings.is_production if settings is not None else False

    if level is None:
        level = (settings.log_level if settings is not None else None) or ("INFO" if production else "DEBUG")
    if isinstance(level, str):
        level = level.upper()
    if log_dir is None and settings is not None:
        log_dir = settings.log_dir
    if console is None:
        console = not production

    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)

    for handler in list(logger.handlers):
        if getattr(handler, "_deep_research_tool", False):
            logger.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    handlers = []

    if log_dir is not None:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        error_handler = logging.FileHandler(log_path / "error.log", encoding="utf-8")
        error_handler.setLevel(logging.ERROR)
        handlers.append(error_handler)

        handlers.append(logging.FileHandler(log_path / "combined.log", encoding="utf-8"))

    if console:
        handlers.append(logging.StreamHandler())

    for handler in handlers:
        handler.setFormatter(formatter)
        handler._deep_research_tool = True
        logger.addHandler(handler)

    return logger
