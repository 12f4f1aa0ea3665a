"""
Structured Logging Infrastructure

JSON lines with a per-update correlation id. ``setup_logging`` runs once per
process (web app, Celery worker); everything else only asks for loggers.

Records never carry the Bot API token (it is part of every Bot API URL) or a
driver's full phone number: both are redacted by the formatters.
"""
import logging
import json
import re
import sys
import time
import uuid
from datetime import datetime, timezone
from typing import Any
from contextvars import ContextVar
from functools import wraps

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")

# https://api.telegram.org/bot123456:AAE.../sendMessage
_BOT_TOKEN_RE = re.compile(r"bot\d{5,}:[A-Za-z0-9_-]{20,}")

# extra_data keys whose values are phone numbers
PHONE_KEYS = frozenset({"phone", "phone_number"})


def redact_token(text: str) -> str:
    return _BOT_TOKEN_RE.sub("bot<redacted>", text)


def mask_phone(value: Any) -> str:
    """'+1 555 123 4567' -> '****4567'"""
    digits = re.sub(r"\D", "", str(value))
    if len(digits) <= 4:
        return "****"
    return "****" + digits[-4:]


def redact_extra(extra: dict[str, Any]) -> dict[str, Any]:
    redacted = {}
    for key, value in extra.items():
        if key in PHONE_KEYS and value:
            redacted[key] = mask_phone(value)
        elif isinstance(value, str):
            redacted[key] = redact_token(value)
        elif isinstance(value, dict):
            redacted[key] = redact_extra(value)
        else:
            redacted[key] = value
    return redacted


class JSONFormatter(logging.Formatter):
    """One JSON object per record"""

    def __init__(self, app_name: str | None = None):
        super().__init__()
        self.app_name = app_name

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": redact_token(record.getMessage()),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if self.app_name:
            log_entry["app"] = self.app_name

        correlation_id = correlation_id_var.get()
        if correlation_id:
            log_entry["correlation_id"] = correlation_id

        if record.exc_info:
            log_entry["exception"] = redact_token(self.formatException(record.exc_info))

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            log_entry["extra"] = redact_extra(extra_data)

        return json.dumps(log_entry, ensure_ascii=False, default=str)


class ConsoleFormatter(logging.Formatter):
    """Human-readable line for DEBUG runs; extra_data is appended as key=value"""

    def __init__(self):
        super().__init__(
            "%(asctime)s | %(levelname)-8s | %(name)s | [%(correlation_id)s] | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        line = redact_token(super().format(record))
        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            pairs = " ".join(f"{k}={v}" for k, v in redact_extra(extra_data).items())
            line = f"{line} | {pairs}"
        return line


class StructuredLogger(logging.Logger):
    """Logger accepting an ``extra_data`` mapping on every level method"""

    def _log_with_extra(
        self,
        level: int,
        msg: str,
        args: tuple,
        extra_data: dict[str, Any] | None = None,
        **kwargs
    ) -> None:
        if extra_data:
            extra = kwargs.get("extra", {})
            extra["extra_data"] = extra_data
            kwargs["extra"] = extra
        super()._log(level, msg, args, **kwargs)

    def debug(self, msg: str, *args, extra_data: dict[str, Any] | None = None, **kwargs) -> None:
        if self.isEnabledFor(logging.DEBUG):
            self._log_with_extra(logging.DEBUG, msg, args, extra_data, **kwargs)

    def info(self, msg: str, *args, extra_data: dict[str, Any] | None = None, **kwargs) -> None:
        if self.isEnabledFor(logging.INFO):
            self._log_with_extra(logging.INFO, msg, args, extra_data, **kwargs)

    def warning(self, msg: str, *args, extra_data: dict[str, Any] | None = None, **kwargs) -> None:
        if self.isEnabledFor(logging.WARNING):
            self._log_with_extra(logging.WARNING, msg, args, extra_data, **kwargs)

    def error(self, msg: str, *args, extra_data: dict[str, Any] | None = None, **kwargs) -> None:
        if self.isEnabledFor(logging.ERROR):
            self._log_with_extra(logging.ERROR, msg, args, extra_data, **kwargs)

    def exception(self, msg: str, *args, extra_data: dict[str, Any] | None = None, **kwargs) -> None:
        kwargs.setdefault("exc_info", True)
        self.error(msg, *args, extra_data=extra_data, **kwargs)

    def critical(self, msg: str, *args, extra_data: dict[str, Any] | None = None, **kwargs) -> None:
        if self.isEnabledFor(logging.CRITICAL):
            self._log_with_extra(logging.CRITICAL, msg, args, extra_data, **kwargs)


logging.setLoggerClass(StructuredLogger)


class CorrelationIdFilter(logging.Filter):
    """Filter that adds correlation_id to log records"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_var.get() or "-"
        return True


# third-party loggers and the level they are held at
_QUIET_LOGGERS = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "openai": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "celery": logging.INFO,
}


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    app_name: str = "driver-helper-bot"
) -> None:
    """
    Configure the root logger.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        json_format: JSON lines (production) or ConsoleFormatter lines (development)
        app_name: added to every JSON record
    """
    numeric_level = getattr(logging, level.upper())
    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    handler.addFilter(CorrelationIdFilter())
    handler.setFormatter(JSONFormatter(app_name=app_name) if json_format else ConsoleFormatter())
    root_logger.addHandler(handler)

    for name, quiet_level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)


def generate_correlation_id() -> str:
    return str(uuid.uuid4())[:8]


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Set the id for the current context (an update, a request or a Celery task)"""
    cid = correlation_id or generate_correlation_id()
    correlation_id_var.set(cid)
    return cid


def get_correlation_id() -> str:
    """Current correlation ID; one is generated and kept when none is set"""
    cid = correlation_id_var.get()
    if not cid:
        cid = generate_correlation_id()
        correlation_id_var.set(cid)
    return cid


def get_logger(name: str) -> StructuredLogger:
    return logging.getLogger(name)  # type: ignore


def log_async_operation(operation_name: str):
    """Decorator logging start, completion and failure of an async operation with timing"""
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            logger = get_logger(func.__module__)
            started = time.monotonic()

            logger.debug(
                f"Starting {operation_name}",
                extra_data={"operation": operation_name, "status": "started"}
            )

            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                logger.error(
                    f"Failed {operation_name}: {e}",
                    extra_data={
                        "operation": operation_name,
                        "status": "failed",
                        "duration_seconds": round(time.monotonic() - started, 3),
                        "error": str(e),
                    },
                    exc_info=True
                )
                raise

            logger.info(
                f"Completed {operation_name}",
                extra_data={
                    "operation": operation_name,
                    "status": "completed",
                    "duration_seconds": round(time.monotonic() - started, 3),
                }
            )
            return result

        return wrapper
    return decorator
