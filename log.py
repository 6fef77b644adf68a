"""Structured JSON logging for the storefront service and client.

Dispatched actions, store writes and background sync failures are logged
as single-line JSON so they can be grepped out of a log file.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

ROOT_LOGGER = "storefront"


class JSONFormatter(logging.Formatter):
    """Formats log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "ts": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if hasattr(record, "data"):
            entry["data"] = record.data  # type: ignore[attr-defined]
        if record.exc_info and record.exc_info[1]:
            entry["error"] = str(record.exc_info[1])
        return json.dumps(entry, ensure_ascii=False, default=str)


def setup_logging(
    log_dir: Optional[Union[str, Path]] = None,
    level: Union[int, str] = logging.INFO,
) -> logging.Logger:
    """Configure the 'storefront' logger.

    Args:
        log_dir: Directory for a JSON-lines log file. If None, logs go to stderr only.
        level: Logging level for the file handler and the logger itself.

    Returns:
        The root 'storefront' logger.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)

    # Repeated calls (reloads, test app factories) must not stack handlers
    if logger.handlers:
        return logger

    fmt = JSONFormatter()

    if log_dir:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(path / "storefront.jsonl", encoding="utf-8")
        fh.setFormatter(fmt)
        fh.setLevel(level)
        logger.addHandler(fh)

    sh = logging.StreamHandler()
    sh.setFormatter(fmt)
    sh.setLevel(logging.WARNING)
    logger.addHandler(sh)

    return logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def log_action(action: str, success: bool, elapsed_s: float, error: Optional[str] = None) -> None:
    """Log one dispatched write action."""
    get_logger("actions").info(
        "action",
        extra={"data": {
            "action": action,
            "success": success,
            "elapsed_s": round(elapsed_s, 4),
            "error": error,
        }},
    )


__all__ = ["JSONFormatter", "setup_logging", "get_logger", "log_action", "ROOT_LOGGER"]
