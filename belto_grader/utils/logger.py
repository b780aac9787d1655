# belto_grader/utils/logger.py
import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

ROOT_LOGGER = "belto_grader"

_CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(module)s:%(funcName)s:%(lineno)d] - %(message)s"


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def _file_handler(path: Path, level: int) -> logging.Handler:
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter())
    return handler


def setup_logger(
    name: str = ROOT_LOGGER,
    log_level: Optional[str] = None,
    log_dir: Optional[str] = None,
) -> logging.Logger:
    """
    Configure the service logger: readable console output plus a JSON-lines
    log and an errors-only log under the log directory, one file per day.

    Args:
        name: logger name
        log_level: level name, defaults to $LOG_LEVEL or INFO
        log_dir: directory for the log files, defaults to $LOG_DIR or "logs"
    """
    level_name = (log_level or os.getenv("LOG_LEVEL") or "INFO").upper()
    directory = Path(log_dir or os.getenv("LOG_DIR") or "logs")

    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level_name, logging.INFO))

    # already configured (reload, repeated imports in tests)
    if logger.handlers:
        return logger

    directory.mkdir(parents=True, exist_ok=True)
    day = datetime.now().strftime("%Y%m%d")

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(logging.INFO)
    console.setFormatter(logging.Formatter(_CONSOLE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    logger.addHandler(console)
    logger.addHandler(_file_handler(directory / f"grader_{day}.log", logging.DEBUG))
    logger.addHandler(_file_handler(directory / f"grader_errors_{day}.log", logging.ERROR))
    return logger


def get_logger(name: str) -> logging.Logger:
    """Child logger that propagates to the service handlers."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


logger = setup_logger()
