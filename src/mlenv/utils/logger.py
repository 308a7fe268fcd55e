"""Logging setup for mlenv.

Console records are colorized with colorlog and written to stderr, so
``--json`` output on stdout stays parseable. A plain-text copy can also be
written to a file. Nothing is configured on import; the CLI calls
``setup_logging`` once with the level from ``SetupConfig.logging``.

Modules obtain loggers by area name:

    logger = get_logger("mlenv.collector")
    logger.info("[HardwareCollector] Detecting system configuration")
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

import colorlog

TIMESTAMP = "%H:%M:%S"
PLAIN_FORMAT = "%(asctime)s %(levelname)-8s %(name)s | %(message)s"
COLOR_FORMAT = (
    "%(log_color)s%(asctime)s %(levelname)-8s%(reset)s "
    "%(blue)s%(name)s%(reset)s | %(message)s"
)

LEVEL_COLORS = {
    "DEBUG": "white",
    "INFO": "green",
    "WARNING": "bold_yellow",
    "ERROR": "bold_red",
    "CRITICAL": "bold_red,bg_white",
}


def _console_handler(colored: bool) -> logging.Handler:
    if not colored:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(PLAIN_FORMAT, datefmt=TIMESTAMP))
        return handler

    handler = colorlog.StreamHandler(sys.stderr)
    handler.setFormatter(
        colorlog.ColoredFormatter(COLOR_FORMAT, datefmt=TIMESTAMP, log_colors=LEVEL_COLORS)
    )
    return handler


def _file_handler(path: Path) -> logging.Handler:
    path = Path(path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(logging.Formatter(PLAIN_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def setup_logging(
    level: Union[str, int] = "INFO",
    log_file: Optional[Path] = None,
    enable_colors: bool = True,
) -> None:
    """Configure the root logger for a CLI run.

    Args:
        level: Level name from the config ("DEBUG", "INFO", ...) or a logging constant
        log_file: Also write records to this file
        enable_colors: Colorize console output; disable when stderr is not a terminal
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.setLevel(level)

    handlers = [_console_handler(enable_colors and sys.stderr.isatty())]
    if log_file:
        handlers.append(_file_handler(log_file))

    for handler in handlers:
        handler.setLevel(level)
        root.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
