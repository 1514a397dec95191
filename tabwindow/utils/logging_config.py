"""Logging configuration for the pipeline."""

import logging
import sys
import json
from pathlib import Path
from typing import Any, Dict, Optional
from datetime import datetime

from tabwindow.utils.error_handling import PipelineError


class JSONFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record as a JSON string."""
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
            exc = record.exc_info[1]
            if isinstance(exc, PipelineError):
                log_obj["error"] = exc.to_dict()

        # Extra fields passed as logger.info(..., extra={"props": {...}})
        if hasattr(record, "props"):
            log_obj.update(record.props)

        return json.dumps(log_obj, default=str)


def setup_logging(
    log_level: str = "INFO",
    log_dir: Optional[str] = "logs",
    config: Optional[Dict[str, Any]] = None
) -> None:
    """
    Setup logging configuration.

    Args:
        log_level: Logging level (INFO, DEBUG, etc.)
        log_dir: Directory to store JSON log files; None logs to the
            console only
        config: Optional pipeline config; its ``logging`` section overrides
            log_level and log_dir
    """
    if config and "logging" in config:
        log_level = config["logging"].get("level", log_level)
        log_dir = config["logging"].get("log_dir", log_dir)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Clear existing handlers
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    # Console Handler (Human readable)
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    ))
    root_logger.addHandler(console_handler)

    if log_dir:
        Path(log_dir).mkdir(parents=True, exist_ok=True)

        # General app logs
        file_handler = logging.FileHandler(Path(log_dir) / "app.jsonl")
        file_handler.setLevel(log_level)
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)

        # Separate Error Log
        error_handler = logging.FileHandler(Path(log_dir) / "errors.jsonl")
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(error_handler)

    logging.info(f"Logging configured with level {log_level}")
