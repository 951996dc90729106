"""
Logging for zuretable.

Records emitted by the execution engine carry per-attempt fields (operation,
attempt, status code, fatality, retry delay) which the formatters render as
first-class keys. The client request id of the running operation is taken
from a context variable set by the engine. Credentials are redacted before
any handler writes a record.
"""

import json
import logging
import logging.handlers
import re
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

# Set by ExecutionEngine.run for the duration of one operation
client_request_id: ContextVar[Optional[str]] = ContextVar('client_request_id', default=None)

# Record attributes written by log_attempt, in output order
ATTEMPT_FIELDS = (
    "operation",
    "attempt",
    "status_code",
    "error_code",
    "is_fatal",
    "retry_delay_seconds",
)

REDACTED = "***REDACTED***"

_SIZE_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(B|KB|MB|GB)?\s*$", re.IGNORECASE)
_SIZE_UNITS = {None: 1, "B": 1, "KB": 1024, "MB": 1024 ** 2, "GB": 1024 ** 3}


class SensitiveDataFilter(logging.Filter):
    """Redacts SharedKey signatures, account keys and SAS signatures."""

    PATTERNS = [
        (re.compile(r'(Authorization["\']?\s*[:=]\s*["\']?)(?:SharedKey(?:Lite)?\s+|Bearer\s+)?[^\s"\',}]+', re.IGNORECASE), r'\1' + REDACTED),
        (re.compile(r'(SharedKey(?:Lite)?\s+[^:\s]+:)\S+', re.IGNORECASE), r'\1' + REDACTED),
        (re.compile(r'(AccountKey=)[^;]+', re.IGNORECASE), r'\1' + REDACTED),
        (re.compile(r'(account_key["\']?\s*[:=]\s*["\']?)[^\s"\',}]+', re.IGNORECASE), r'\1' + REDACTED),
        (re.compile(r'(sig=)[^;&\s]+', re.IGNORECASE), r'\1' + REDACTED),
    ]

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = message
        for pattern, replacement in self.PATTERNS:
            redacted = pattern.sub(replacement, redacted)
        if redacted != message:
            # Args are already merged into the redacted text.
            record.msg = redacted
            record.args = ()
        return True


def attempt_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """Attempt fields present on record, in ATTEMPT_FIELDS order."""
    return {name: getattr(record, name) for name in ATTEMPT_FIELDS if getattr(record, name, None) is not None}


class JSONFormatter(logging.Formatter):
    """One JSON object per record, attempt fields at top level."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = client_request_id.get()
        if request_id:
            log_data["client_request_id"] = request_id

        log_data.update(attempt_fields(record))

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable lines; attempt fields are appended as key=value pairs."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = attempt_fields(record)
        request_id = client_request_id.get()
        if request_id:
            fields = {"client_request_id": request_id, **fields}
        if fields:
            line += " [" + " ".join(f"{key}={value}" for key, value in fields.items()) + "]"
        return line


def log_attempt(
    logger: logging.Logger,
    level: int,
    message: str,
    operation: str,
    attempt: int,
    status_code: Optional[int] = None,
    error_code: Optional[str] = None,
    is_fatal: Optional[bool] = None,
    retry_delay_seconds: Optional[float] = None,
) -> None:
    """
    Log an engine event with its attempt fields.

    Args:
        logger: Logger instance
        level: Log level
        message: Log message
        operation: Operation kind name
        attempt: 1-based attempt number
        status_code: HTTP status of the attempt, None without a response
        error_code: Service or transport error code
        is_fatal: Classification of the failure
        retry_delay_seconds: Delay before the next attempt
    """
    logger.log(
        level,
        message,
        extra={
            "operation": operation,
            "attempt": attempt,
            "status_code": status_code,
            "error_code": error_code,
            "is_fatal": is_fatal,
            "retry_delay_seconds": retry_delay_seconds,
        },
    )


def _attach(root: logging.Logger, handler: logging.Handler, formatter: logging.Formatter) -> None:
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(formatter)
    handler.addFilter(SensitiveDataFilter())
    root.addHandler(handler)


def setup_logging(
    level: str = "WARNING",
    format_type: str = "text",
    log_file: Optional[str] = None,
    rotation_size: str = "10MB",
    rotation_count: int = 5,
    module_levels: Optional[Dict[str, str]] = None
) -> None:
    """
    Configure logging for command line use.

    Console output goes to stderr so stdout stays parseable.

    Args:
        level: Root log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_type: "json" or "text"
        log_file: Optional rotating log file
        rotation_size: Rotation threshold, e.g. "10MB"
        rotation_count: Rotated files to keep
        module_levels: Per-logger levels, e.g. {"zuretable.core.execution": "DEBUG"}
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    formatter = JSONFormatter() if format_type == "json" else TextFormatter()
    _attach(root_logger, logging.StreamHandler(sys.stderr), formatter)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            filename=log_file,
            maxBytes=_parse_size(rotation_size),
            backupCount=rotation_count,
            encoding='utf-8'
        )
        _attach(root_logger, file_handler, formatter)

    # urllib3 logs full request lines at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    for module_name, module_level in (module_levels or {}).items():
        logging.getLogger(module_name).setLevel(getattr(logging, module_level.upper()))

    root_logger.debug(f"Logging configured: level={level}, format={format_type}, file={log_file}")


def _parse_size(size_str: str) -> int:
    """
    Parse a size such as "10MB" or "1.5 KB" into bytes.

    Raises:
        ValueError: If size_str is not a number with an optional B/KB/MB/GB unit
    """
    match = _SIZE_PATTERN.match(size_str)
    if not match:
        raise ValueError(f"Invalid size: {size_str!r}")
    number, unit = match.groups()
    return int(float(number) * _SIZE_UNITS[unit.upper() if unit else None])
