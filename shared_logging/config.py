"""
Local diagnostic logging with JSON formatting and daily rotation
"""

import logging
import json
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from datetime import datetime
from typing import Any, Dict, Optional

DIAGNOSTIC_LOGGER_NAME = "shared-logging"


class JSONFormatter(logging.Formatter):
    """Custom formatter that outputs logs as JSON"""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON"""
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "component": getattr(record, 'component', DIAGNOSTIC_LOGGER_NAME),
            "message": record.getMessage(),
        }

        if hasattr(record, 'context') and record.context:
            log_entry["context"] = record.context

        if record.exc_info:
            log_entry["error"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "stack": self.formatException(record.exc_info)
            }

        return json.dumps(log_entry, ensure_ascii=False, default=str)


def setup_logging(log_dir: Optional[str] = None, service_name: str = DIAGNOSTIC_LOGGER_NAME,
                  level: int = logging.DEBUG) -> logging.Logger:
    """
    Set up the diagnostic logger used when the log store itself cannot be written

    Args:
        log_dir: Directory for daily rotated JSON files, console only when None
        service_name: Name of the logger to configure
        level: Minimum level handled by the logger

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(service_name)
    logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    logger.handlers.clear()

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        file_handler = TimedRotatingFileHandler(
            filename=log_path / f"{service_name}.log",
            when='midnight',
            interval=1,
            backupCount=30,
            encoding='utf-8'
        )
        file_handler.suffix = "%Y-%m-%d"
        file_handler.setLevel(level)
        file_handler.setFormatter(JSONFormatter())
        logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    ))
    logger.addHandler(console_handler)

    return logger


def get_logger(name: str = DIAGNOSTIC_LOGGER_NAME) -> logging.Logger:
    """Get or create a logger instance"""
    return logging.getLogger(name)


class ContextLogger(logging.LoggerAdapter):
    """Logger adapter that adds component context to all log records"""

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        """Add context to log record"""
        context = dict(kwargs.pop('context', {}) or {})

        if self.extra:
            context.update(self.extra)

        kwargs['extra'] = kwargs.get('extra', {})
        kwargs['extra']['context'] = context
        kwargs['extra']['component'] = self.extra.get('component', DIAGNOSTIC_LOGGER_NAME)

        return msg, kwargs
