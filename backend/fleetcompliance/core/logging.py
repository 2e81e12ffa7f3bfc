import logging
import json
import os
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Dict, Any, Optional

from fleetcompliance.core.config import settings

# Log format for file and console output
LOG_FORMAT = logging.Formatter(
    '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

# Log levels map
LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


class StructuredLogger(logging.Logger):
    def structured(
        self,
        level: int,
        msg: str,
        structured_data: Dict[str, Any],
        *args,
        **kwargs
    ):
        """Log with structured data that can be easily parsed"""
        if self.isEnabledFor(level):
            extra = kwargs.pop("extra", None) or {}
            extra["structured_data"] = structured_data
            self._log(level, msg, args, extra=extra, **kwargs)


class JsonFormatter(logging.Formatter):
    """Format logs as JSON for better parsing"""

    def format(self, record):
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }

        if getattr(record, "structured_data", None):
            log_data["data"] = record.structured_data

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logger(
    name: str,
    log_level: str = "INFO",
    log_to_file: bool = False,
    log_to_console: bool = True,
    json_format: bool = False
) -> StructuredLogger:
    """
    Set up a structured logger with file and console handlers

    Args:
        name: Logger name
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_to_file: Whether to log to a rotating file under LOG_DIR
        log_to_console: Whether to log to console
        json_format: Whether to format logs as JSON

    Returns:
        Configured logger
    """
    logging.setLoggerClass(StructuredLogger)

    logger = logging.getLogger(name)
    logger.setLevel(LOG_LEVELS.get(log_level.upper(), logging.INFO))
    logger.handlers = []  # Clear existing handlers

    formatter = JsonFormatter() if json_format else LOG_FORMAT

    if log_to_file:
        os.makedirs(settings.LOG_DIR, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(settings.LOG_DIR, f"{name}.log"),
            maxBytes=10 * 1024 * 1024,  # 10 MB
            backupCount=5
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if log_to_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger


# Application loggers
api_logger = setup_logger("api", log_level=settings.API_LOG_LEVEL, log_to_file=settings.LOG_TO_FILE)
db_logger = setup_logger("db", log_level=settings.DB_LOG_LEVEL, log_to_file=settings.LOG_TO_FILE)
storage_logger = setup_logger("storage", log_level=settings.STORAGE_LOG_LEVEL, log_to_file=settings.LOG_TO_FILE)
report_logger = setup_logger(
    "reports",
    log_level=settings.REPORT_LOG_LEVEL,
    log_to_file=settings.LOG_TO_FILE,
    json_format=True,
)


def configure_logger() -> StructuredLogger:
    """Return the application logger used by the app factory."""
    return api_logger


def _emit(logger: logging.Logger, level: int, msg: str, data: Dict[str, Any]):
    if isinstance(logger, StructuredLogger):
        logger.structured(level, msg, data)
    else:
        logger.log(level, msg, extra={"structured_data": data})


# Helper function to log API requests
def log_api_request(
    request_id: str,
    method: str,
    path: str,
    status_code: int,
    processing_time: float,
    error: Optional[str] = None
):
    """Log an API request with structured data"""
    data = {
        "request_id": request_id,
        "method": method,
        "path": path,
        "status_code": status_code,
        "processing_time_ms": round(processing_time * 1000, 2),
    }

    if error:
        data["error"] = error
        _emit(api_logger, logging.ERROR, f"API Request: {method} {path} - Status: {status_code}", data)
    else:
        _emit(api_logger, logging.INFO, f"API Request: {method} {path} - Status: {status_code}", data)


# Helper function to log operational-store queries
def log_storage_query(
    query_name: str,
    vessel_id: str,
    period: str,
    row_count: int,
    processing_time: float,
    error: Optional[str] = None,
    logger: Optional[logging.Logger] = None,
):
    """Log a range query against the operational store"""
    logger = logger or db_logger
    data = {
        "query": query_name,
        "vessel_id": vessel_id,
        "period": period,
        "rows": row_count,
        "processing_time_ms": round(processing_time * 1000, 2),
    }

    if error:
        data["error"] = error
        _emit(logger, logging.ERROR, f"Storage query failed: {query_name}", data)
    else:
        _emit(logger, logging.INFO, f"Storage query: {query_name}", data)


# Helper function to log report lifecycle transitions
def log_report_event(
    event: str,
    report_id: Optional[int] = None,
    vessel_id: Optional[str] = None,
    template: Optional[str] = None,
    error_code: Optional[str] = None,
    logger: Optional[logging.Logger] = None,
    **details: Any,
):
    """Log a report lifecycle event with structured data"""
    logger = logger or report_logger
    data = {
        "event": event,
        "report_id": report_id,
        "vessel_id": vessel_id,
        "template": template,
    }
    data.update(details)

    if error_code:
        data["error_code"] = error_code
        _emit(logger, logging.WARNING, f"Report {event}: failed ({error_code})", data)
    else:
        _emit(logger, logging.INFO, f"Report {event}", data)
