from datetime import datetime
import re
import os
import sys
import json
import logging
import contextvars
import traceback
from contextlib import contextmanager


SUCCESS_LEVEL = 25
LOG_SEVERITY = {
    "DEBUG": "DEBUG",
    "INFO": "INFO",
    "SUCCESS": "SUCCESS",
    "WARNING": "WARNING",
    "ERROR": "ERROR",
    "CRITICAL": "CRITICAL"
}

SENSITIVE_MARKERS = ('password', 'token', 'secret', 'creds', 'key')

# Standard LogRecord attributes that are not rendered as "extra" fields
_RECORD_ATTRS = {
    "msg", "args", "levelname", "levelno", "pathname",
    "filename", "module", "exc_info", "exc_text", "stack_info",
    "lineno", "funcName", "created", "msecs", "relativeCreated",
    "thread", "threadName", "process", "processName", "scope", "name", "taskName",
    "message", "asctime",
}

logging.addLevelName(SUCCESS_LEVEL, "SUCCESS")

# Per-invocation log fields (execution_id, task_id, ...)
log_context = contextvars.ContextVar("natsreq_log_context", default={})


class ContextFilter(logging.Filter):
    def filter(self, record):
        for key, value in log_context.get().items():
            setattr(record, key, value)
        return True


@contextmanager
def LoggingContext(logger: logging.Logger, **kwargs):
    """
    Attach extra fields to every record logged inside the block.
    example:
        with LoggingContext(logger, execution_id="1234", task_id="request"):
            logger.info("This log carries execution_id and task_id")
    """
    current = log_context.get().copy()
    current.update(kwargs)
    token = log_context.set(current)
    try:
        yield
    finally:
        log_context.reset(token)


class CustomLogger(logging.Logger):
    def success(self, message, *args, **kwargs):
        if self.isEnabledFor(SUCCESS_LEVEL):
            self.log(SUCCESS_LEVEL, message, *args, **kwargs, stacklevel=2)


def stringify_extra(value):
    if isinstance(value, (list, dict)):
        return str(value)
    return value


def mask_value(key: str, value):
    """Return '***' for values whose key looks like a credential."""
    if value is None:
        return None
    if any(marker in str(key).lower() for marker in SENSITIVE_MARKERS):
        return '***'
    return value


def mask_mapping(data: dict) -> dict:
    return {k: mask_value(k, v) for k, v in (data or {}).items()}


class CustomFormatter(logging.Formatter):

    def __init__(self, fmt="%(message)s", include_location=False):
        super().__init__(fmt)
        self.include_location = include_location

    def format(self, record):
        level_name = LOG_SEVERITY.get(record.levelname, record.levelname)
        scope = getattr(record, "scope", "")
        location = ""
        if self.include_location:
            location = f"{record.pathname}:{record.lineno}\n({record.module}:{record.funcName}:{record.lineno})"
        metadata_line = f"{datetime.now().isoformat()} [{level_name}] {scope} {location}".strip()

        message = record.getMessage()
        message_split = message.splitlines() or [""]
        message_line = f"     Message: {message_split[0]}"
        for line in message_split[1:]:
            message_line += f"\n             {line}"

        extra_items = [
            f"{key}: {stringify_extra(value)}"
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS
        ]
        formatted_log = f"{metadata_line}\n{message_line}"
        if extra_items:
            formatted_log += f"\n     {' '.join(extra_items)}"
        if record.exc_info:
            # clickable "File path:line" entries
            lines = traceback.format_exception(*record.exc_info)
            lines = [re.sub(r'File "([^"]+)", line (\d+),', r'File "\1:\2"', line) for line in lines]
            formatted_log += "\n" + "".join(lines)
        return formatted_log


class JSONFormatter(logging.Formatter):
    def format(self, record):
        log_dict = {
            "level": record.levelname,
            "message": record.getMessage(),
            "time": self.formatTime(record, self.datefmt),
            "logger": record.name,
            "location": {
                "module": record.module,
                "function": record.funcName,
                "line": record.lineno,
            },
        }
        if hasattr(record, "scope"):
            log_dict["scope"] = record.scope
        for key in log_context.get():
            log_dict[key] = getattr(record, key, None)
        if record.exc_info:
            log_dict["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_dict, ensure_ascii=False, default=str)


def _json_enabled() -> bool:
    from natsreq.core.config import get_settings
    return get_settings().log_json


def setup_logger(name: str, include_location=False, use_json=None):
    logging.setLoggerClass(CustomLogger)
    logger = logging.getLogger(name)
    if not any(isinstance(f, ContextFilter) for f in logger.filters):
        logger.addFilter(ContextFilter())

    if use_json is None:
        use_json = _json_enabled()

    if not any(isinstance(h, logging.StreamHandler) for h in logger.handlers):
        stream_handler = logging.StreamHandler(sys.stdout)
        stream_handler.setLevel(logging.DEBUG)
        if use_json:
            stream_handler.setFormatter(JSONFormatter())
        else:
            stream_handler.setFormatter(CustomFormatter(include_location=include_location))
        logger.addHandler(stream_handler)
    logger.setLevel(os.environ.get("NATSREQ_LOG_LEVEL", "DEBUG").upper())
    logger.propagate = False
    return logger
