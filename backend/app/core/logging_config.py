"""
Structured JSON Logging Configuration

Provides centralized logging configuration with:
- JSON formatted output for machine parsing
- Request ID tracking via contextvars
- File rotation
- Push token masking so full device tokens never reach log files
"""
import logging
import logging.handlers
import os
import contextvars
import re
from datetime import datetime, timezone
from typing import Optional
from pythonjsonlogger import jsonlogger

from app.core.config import settings

# Context variable for request ID propagation
request_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    'request_id', default=None
)

# Application version (can be overridden)
APP_VERSION = "1.0.0"

# Log directory configuration
LOG_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(__file__))), 'data', 'logs')

# Visible prefix length when masking push tokens
TOKEN_VISIBLE_CHARS = 12


class RequestIdFilter(logging.Filter):
    """
    Adds request_id to every record so all logs of one request correlate.

    Scheduled shop-close runs set their own "auto-close-<uuid>" id, so the
    broadcast and cleanup logs of one run correlate the same way.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get() or "-"
        return True


class SanitizingFilter(logging.Filter):
    """
    Filter that sanitizes log records before they are written.

    Titles, bodies and user ids arrive from clients and are logged verbatim,
    so CR/LF must not be able to forge extra log lines. Push tokens are
    device credentials: token-valued extra fields and FCM tokens embedded
    in message text are cut down to the mask_token() prefix.
    """

    # Patterns that could be used for log injection
    DANGEROUS_PATTERNS = [
        (r'\r\n', ' '),  # CRLF injection
        (r'\n', ' '),    # Newline injection
        (r'\r', ' '),    # Carriage return injection
    ]

    # Extra fields that carry a token or a list of tokens
    TOKEN_FIELDS = ('token', 'tokens', 'orphaned_tokens')

    # FCM registration token: "<instance id>:APA91..."
    TOKEN_PATTERN = re.compile(r'[\w-]+:APA91[\w-]{8,}')

    def _clean(self, text: str) -> str:
        for pattern, replacement in self.DANGEROUS_PATTERNS:
            text = re.sub(pattern, replacement, text)
        return self.TOKEN_PATTERN.sub(lambda m: mask_token(m.group(0)), text)

    def filter(self, record: logging.LogRecord) -> bool:
        # Sanitize the message
        if isinstance(record.msg, str):
            record.msg = self._clean(record.msg)

        # Sanitize args if present
        if record.args and isinstance(record.args, tuple):
            record.args = tuple(
                self._clean(arg) if isinstance(arg, str) else arg
                for arg in record.args
            )

        # Mask token-valued extras; already-masked values pass through unchanged
        for name in self.TOKEN_FIELDS:
            value = getattr(record, name, None)
            if isinstance(value, str) and value != "<empty>":
                setattr(record, name, mask_token(value))
            elif isinstance(value, (list, tuple)):
                setattr(record, name, [
                    mask_token(item) if isinstance(item, str) else item
                    for item in value
                ])

        return True


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter that adds standard fields to all log entries.

    Output format:
    {
        "timestamp": "2025-11-23T10:30:00.000Z",
        "level": "INFO",
        "message": "Broadcast complete",
        "module": "delivery_engine",
        "request_id": "uuid-here",
        "logger": "app.services.push.delivery_engine",
        ...extra fields...
    }
    """

    def add_fields(
        self,
        log_record: dict,
        record: logging.LogRecord,
        message_dict: dict
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        # ISO timestamp in UTC
        if not log_record.get('timestamp'):
            log_record['timestamp'] = datetime.now(timezone.utc).isoformat()

        # Standard fields
        log_record['level'] = record.levelname
        log_record['module'] = record.module
        log_record['logger'] = record.name

        # Request ID from context, or the scheduler run id
        log_record['request_id'] = getattr(record, 'request_id', '-')

        # Call site for debugging
        if record.funcName:
            log_record['function'] = record.funcName
        if record.lineno:
            log_record['line'] = record.lineno

        if 'message' not in log_record:
            log_record['message'] = record.getMessage()


def _rotating(path: str, max_mb: int, backups: int) -> logging.Handler:
    return logging.handlers.RotatingFileHandler(
        path,
        maxBytes=max_mb * 1024 * 1024,
        backupCount=backups,
        encoding='utf-8'
    )


def setup_logging(
    log_level: Optional[str] = None,
    log_dir: Optional[str] = None,
    app_version: Optional[str] = None
) -> logging.Logger:
    """
    Configure application-wide logging with JSON format and rotation.

    Every handler gets both filters, so no sink ever sees a full push token
    or a record without a request_id.

    Args:
        log_level: Override log level (default from settings.LOG_LEVEL)
        log_dir: Override log directory (default: backend/data/logs)
        app_version: Application version to include in startup logs

    Returns:
        Root logger configured for the application
    """
    global APP_VERSION

    level = getattr(logging, (log_level or settings.LOG_LEVEL).upper(), logging.INFO)
    directory = log_dir or LOG_DIR
    if app_version:
        APP_VERSION = app_version

    os.makedirs(directory, exist_ok=True)

    json_formatter = CustomJsonFormatter(
        '%(timestamp)s %(level)s %(name)s %(message)s'
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    handlers = [
        (logging.StreamHandler(), level),
        # app.log: 50MB per file, keep 7 rotations
        (_rotating(os.path.join(directory, 'app.log'), 50, 7), level),
        # error.log: errors only, 20MB per file, keep 5
        (_rotating(os.path.join(directory, 'error.log'), 20, 5), logging.ERROR),
    ]
    for handler, handler_level in handlers:
        handler.setLevel(handler_level)
        handler.setFormatter(json_formatter)
        handler.addFilter(RequestIdFilter())
        handler.addFilter(SanitizingFilter())
        root_logger.addHandler(handler)

    # Suppress noisy third-party loggers (firebase-admin logs under google.*)
    for name in ('uvicorn.access', 'apscheduler', 'google', 'urllib3'):
        logging.getLogger(name).setLevel(logging.WARNING)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance (name is typically __name__ of the caller)."""
    return logging.getLogger(name)


def set_request_id(request_id: Optional[str]) -> contextvars.Token:
    """
    Set the request ID for the current context.

    Returns:
        Token that can be used to reset the context
    """
    return request_id_var.set(request_id)


def get_request_id() -> Optional[str]:
    """Get the current request ID from context, or None if not set."""
    return request_id_var.get()


def clear_request_id(token: contextvars.Token) -> None:
    """Reset the request ID context using the token from set_request_id."""
    request_id_var.reset(token)


def mask_token(token: Optional[str]) -> str:
    """
    Shorten a push token for logging.

    Tokens are bearer credentials for a device; only a prefix is ever logged.
    """
    if not token:
        return "<empty>"
    if len(token) <= TOKEN_VISIBLE_CHARS:
        return token[:4] + "..."
    return token[:TOKEN_VISIBLE_CHARS] + "..."
