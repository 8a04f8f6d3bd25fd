"""
Structured Logging Configuration
Console logging (JSON or plain) plus the per-run log file
"""

import logging
import sys
from typing import Optional

from pythonjsonlogger import jsonlogger

RUN_LOG_FORMAT = "[%(asctime)s] %(message)s"
RUN_LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def setup_structured_logging(
    log_level: str = "INFO",
    json_format: bool = False,
    extra_fields: Optional[dict] = None
) -> logging.Logger:
    """
    Setup console logging on the root logger

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        json_format: Use python-json-logger's JsonFormatter
        extra_fields: Additional fields to include in all JSON log entries

    Returns:
        Configured root logger
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)

    if json_format:
        format_string = '%(timestamp)s %(levelname)s %(name)s %(message)s'
        for key in (extra_fields or {}):
            format_string += f' %({key})s'
        formatter = jsonlogger.JsonFormatter(format_string, timestamp=True)
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt=RUN_LOG_DATEFMT
        )
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    # Kubernetes client debug output drowns the run log
    logging.getLogger("kubernetes").setLevel(max(level, logging.INFO))
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    return root_logger


def add_run_log_file(path: str, log_level: str = "INFO") -> logging.Handler:
    """Attach the human-readable run log, one `[timestamp] message` line per event"""
    handler = logging.FileHandler(path, mode="a", encoding="utf-8")
    handler.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    handler.setFormatter(logging.Formatter(RUN_LOG_FORMAT, datefmt=RUN_LOG_DATEFMT))
    logging.getLogger().addHandler(handler)
    return handler


def get_logger(name: str, extra_context: Optional[dict] = None) -> logging.Logger:
    """
    Get a logger with optional extra context

    Args:
        name: Logger name (usually __name__)
        extra_context: Additional context to include in all log records

    Returns:
        Logger instance
    """
    logger = logging.getLogger(name)

    if extra_context:
        class ContextAdapter(logging.LoggerAdapter):
            def process(self, msg, kwargs):
                kwargs['extra'] = {**self.extra, **kwargs.get('extra', {})}
                return msg, kwargs

        logger = ContextAdapter(logger, extra_context)

    return logger
