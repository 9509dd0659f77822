"""
Structured logging configuration shared by the grocery services.

Every record is rendered as one JSON line carrying the service identity, the
ambient request context (request id, correlation id, user id, realtime
connection id) and, when present, exception details and the custom fields
passed through ``extra={'extra_fields': {...}}``.
"""

import json
import logging
import logging.handlers
import re
import sys
import time
import traceback
import uuid
from contextvars import ContextVar
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
correlation_id_var: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)
user_id_var: ContextVar[Optional[str]] = ContextVar('user_id', default=None)
connection_id_var: ContextVar[Optional[str]] = ContextVar('connection_id', default=None)

_CONTEXT_VARS = {
    'request_id': request_id_var,
    'correlation_id': correlation_id_var,
    'user_id': user_id_var,
    'connection_id': connection_id_var,
}

LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5


def current_context() -> Dict[str, str]:
    """The non-empty context variables of the running task or thread."""
    return {name: var.get() for name, var in _CONTEXT_VARS.items() if var.get()}


class StructuredFormatter(logging.Formatter):
    def __init__(self, service_name: str = "unknown-service", environment: str = "development",
                 version: str = "1.0.0"):
        super().__init__()
        self.service = {"name": service_name, "environment": environment, "version": version}

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "@timestamp": datetime.utcfromtimestamp(record.created).isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service,
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }

        context = getattr(record, 'context', None) or current_context()
        if context:
            entry["context"] = context

        fields = getattr(record, 'extra_fields', None)
        if fields:
            entry["fields"] = fields

        if record.exc_info and record.exc_info[0] is not None:
            entry["error"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "stacktrace": "".join(traceback.format_exception(*record.exc_info)),
            }

        return json.dumps(entry, default=str)


class SecurityFilter(logging.Filter):
    """Redact bearer tokens and secret-looking key/value pairs from messages."""

    SENSITIVE_FIELDS = ('password', 'token', 'api_key', 'secret', 'authorization', 'cookie')
    _BEARER = re.compile(r"(Bearer\s+)[A-Za-z0-9\-_.=]+", re.IGNORECASE)
    _PAIR = re.compile(
        r"(?P<key>" + "|".join(SENSITIVE_FIELDS) + r")(?P<sep>['\"]?\s*[:=]\s*['\"]?)[^\s,'\"}]+",
        re.IGNORECASE,
    )

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = self._BEARER.sub(r"\1***REDACTED***", message)
        redacted = self._PAIR.sub(r"\g<key>\g<sep>***REDACTED***", redacted)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def _handler(handler: logging.Handler, formatter: logging.Formatter) -> logging.Handler:
    handler.setFormatter(formatter)
    handler.addFilter(SecurityFilter())
    return handler


def setup_logging(
    service_name: str,
    level: str = "INFO",
    environment: str = "development",
    version: str = "1.0.0",
    log_file: Optional[str] = None
) -> None:
    """
    Route every logger through JSON handlers on the root logger.

    Args:
        service_name: Name reported in every record
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        environment: Deployment environment label
        version: Service version label
        log_file: Optional path of a rotating log file
    """
    formatter = StructuredFormatter(service_name, environment, version)
    handlers = [_handler(logging.StreamHandler(sys.stdout), formatter)]
    if log_file:
        handlers.append(_handler(
            logging.handlers.RotatingFileHandler(log_file, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS),
            formatter,
        ))

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.handlers = handlers

    # Access logs duplicate RequestLoggingMiddleware
    logging.getLogger('uvicorn.access').setLevel(logging.WARNING)
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)

    root_logger.info(
        "Logging initialized",
        extra={'extra_fields': {'service': service_name, 'level': level}}
    )


class LoggerAdapter(logging.LoggerAdapter):
    """Freezes the request context onto each record at the call site.

    Fields bound through ``get_logger(name, **fields)`` are merged into the
    record's ``extra_fields``.
    """

    def process(self, msg, kwargs):
        extra = dict(kwargs.get('extra') or {})
        if self.extra:
            extra['extra_fields'] = {**self.extra, **extra.get('extra_fields', {})}
        extra['context'] = current_context()
        kwargs['extra'] = extra
        return msg, kwargs


def get_logger(name: str, **fields: Any) -> LoggerAdapter:
    return LoggerAdapter(logging.getLogger(name), fields)


def set_request_context(
    request_id: Optional[str] = None,
    correlation_id: Optional[str] = None,
    user_id: Optional[str] = None,
    connection_id: Optional[str] = None,
) -> None:
    values = {
        'request_id': request_id,
        'correlation_id': correlation_id,
        'user_id': user_id,
        'connection_id': connection_id,
    }
    for name, value in values.items():
        if value:
            _CONTEXT_VARS[name].set(value)


def generate_request_id() -> str:
    return str(uuid.uuid4())


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs every HTTP request with its duration and echoes ``X-Request-ID``.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get('X-Request-ID') or generate_request_id()
        set_request_context(
            request_id=request_id,
            correlation_id=request.headers.get('X-Correlation-ID'),
        )

        logger = get_logger(__name__, method=request.method, path=request.url.path)
        logger.debug(
            f"Request started: {request.method} {request.url.path}",
            extra={'extra_fields': {'client_host': request.client.host if request.client else None}}
        )
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            logger.error(
                f"Request failed: {request.method} {request.url.path}",
                exc_info=True,
                extra={'extra_fields': {'duration_ms': round((time.perf_counter() - started) * 1000, 2)}}
            )
            raise

        logger.info(
            f"{request.method} {request.url.path} -> {response.status_code}",
            extra={'extra_fields': {
                'status_code': response.status_code,
                'duration_ms': round((time.perf_counter() - started) * 1000, 2),
            }}
        )
        response.headers['X-Request-ID'] = request_id
        return response
