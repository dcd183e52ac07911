"""Logging configuration for the pipeline."""

import logging
import sys
import json
from pathlib import Path
from typing import Any, Dict, Optional
from datetime import datetime

# Marks handlers installed here so reconfiguring leaves foreign handlers alone
_HANDLER_TAG = "_aqforecast_handler"

# Libraries that log every trial, epoch or fit at INFO
QUIET_LOGGERS = ("optuna", "jax", "absl", "matplotlib")


class JSONFormatter(logging.Formatter):
    """One JSON object per record; fields passed as extra={"props": {...}} are merged in."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "funcName": record.funcName,
            "lineNo": record.lineno,
        }

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "props"):
            log_obj.update(record.props)

        return json.dumps(log_obj, default=str)


def _tagged(handler: logging.Handler, level, formatter: logging.Formatter) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    setattr(handler, _HANDLER_TAG, True)
    return handler


def setup_logging(
    level: str = "INFO",
    log_dir: Optional[str] = "logs",
) -> None:
    """
    Configure pipeline logging on the root logger.

    Installs a human-readable console handler and, when `log_dir` is set,
    `pipeline.jsonl` (every record) and `errors.jsonl` (ERROR and above)
    JSON-lines files. Calling it again replaces only the handlers it
    installed before.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR)
        log_dir: Directory for the JSON-lines files; None logs to the console only
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in [h for h in root_logger.handlers if getattr(h, _HANDLER_TAG, False)]:
        root_logger.removeHandler(handler)
        handler.close()

    console_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    root_logger.addHandler(_tagged(logging.StreamHandler(sys.stdout), level, console_formatter))

    if log_dir:
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        root_logger.addHandler(
            _tagged(logging.FileHandler(Path(log_dir) / "pipeline.jsonl"), level, JSONFormatter())
        )
        root_logger.addHandler(
            _tagged(logging.FileHandler(Path(log_dir) / "errors.jsonl"), logging.ERROR, JSONFormatter())
        )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        f"Logging configured at {level}" + (f", JSON logs in {log_dir}" if log_dir else "")
    )


def setup_logging_from_config(config: Dict[str, Any]) -> None:
    """Apply the `logging` section of a pipeline configuration."""
    section = config.get("logging", {})
    setup_logging(level=section.get("level", "INFO"), log_dir=section.get("log_dir"))
