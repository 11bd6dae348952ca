"""
CapstoneFlow logging.

Every record carries the request id, the authenticated user and the project
being worked on. Production writes one JSON object per line; everywhere else
gets short readable lines on stdout.
"""

import json
import logging
import sys
import traceback
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

from app.core.config import settings


request_id_var: ContextVar[str] = ContextVar('request_id', default='')
user_id_var: ContextVar[str] = ContextVar('user_id', default='')
project_id_var: ContextVar[str] = ContextVar('project_id', default='')

_CONTEXT_VARS = (
    ('request_id', request_id_var),
    ('user_id', user_id_var),
    ('project_id', project_id_var),
)


def get_request_id() -> str:
    return request_id_var.get()


def set_request_id(request_id: str) -> None:
    request_id_var.set(request_id or '')


def get_user_id() -> str:
    return user_id_var.get()


def set_user_id(user_id: str) -> None:
    user_id_var.set(user_id or '')


def get_project_id() -> str:
    return project_id_var.get()


def set_project_id(project_id: str) -> None:
    project_id_var.set(project_id or '')


def clear_context() -> None:
    """Forget the tracing context at the end of a request"""
    for _, var in _CONTEXT_VARS:
        var.set('')


def generate_request_id() -> str:
    """Eight hex characters, enough to correlate the lines of one request"""
    return uuid.uuid4().hex[:8]


# LogRecord attributes that are never copied into the JSON payload as extras
_STANDARD_ATTRS = frozenset(vars(logging.LogRecord('', 0, '', 0, '', None, None))) | {'message', 'asctime'}


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with tracing context and `extra=` fields merged in"""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "where": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        payload.update({name: var.get() for name, var in _CONTEXT_VARS if var.get()})

        if record.exc_info and record.exc_info[0]:
            exc_type, exc_value, exc_tb = record.exc_info
            payload["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc_value),
                "traceback": traceback.format_exception(exc_type, exc_value, exc_tb),
            }

        for key, value in vars(record).items():
            if key not in _STANDARD_ATTRS and not key.startswith('_'):
                payload[key] = value

        return json.dumps(payload, default=str)


class ContextualFormatter(logging.Formatter):
    """Plain-text formatter that can reference %(request_id)s, %(user_id)s and %(project_id)s"""

    def format(self, record: logging.LogRecord) -> str:
        for name, var in _CONTEXT_VARS:
            setattr(record, name, var.get() or '-')
        return super().format(record)


class CapstoneFlowLogger(logging.Logger):
    """Logger with helpers for the events the workflow services emit"""

    def log_transition(self, entity: str, entity_id: str, from_state: Optional[str],
                       to_state: str, actor_id: str = None, **kwargs) -> None:
        """A committed change to a project, task or supervisor assignment"""
        self.info(
            f"{entity} {entity_id}: {from_state or '-'} -> {to_state}",
            extra={
                "event_type": "transition",
                "entity": entity,
                "entity_id": entity_id,
                "from_state": from_state,
                "to_state": to_state,
                "actor_id": actor_id,
                **kwargs
            }
        )

    def log_auth_event(self, event: str, success: bool, user_id: str = None,
                       reason: str = None, **kwargs) -> None:
        outcome = "ok" if success else f"rejected ({reason or 'no reason'})"
        self.log(
            logging.INFO if success else logging.WARNING,
            f"auth {event} for {user_id or 'anonymous'}: {outcome}",
            extra={
                "event_type": "auth",
                "auth_event": event,
                "auth_success": success,
                "auth_user_id": user_id,
                "failure_reason": reason,
                **kwargs
            }
        )

    def log_error_with_context(self, error: Exception, context: str = None, **kwargs) -> None:
        """Log an unexpected failure with its traceback and where it happened"""
        self.error(
            f"{context or 'unknown'} failed: {type(error).__name__}: {error}",
            exc_info=error,
            extra={
                "event_type": "error",
                "error_type": type(error).__name__,
                "error_message": str(error),
                "error_context": context,
                **kwargs
            }
        )


def _stream_handler(formatter: logging.Formatter) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(logging.INFO)
    handler.setFormatter(formatter)
    return handler


def _file_handler(formatter: logging.Formatter, backup_count: int) -> logging.Handler:
    path = Path(settings.LOG_FILE)
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(path, maxBytes=10 * 1024 * 1024, backupCount=backup_count)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(formatter)
    return handler


def setup_logging() -> CapstoneFlowLogger:
    """Build the "capstoneflow" logger for the current ENVIRONMENT"""
    logging.setLoggerClass(CapstoneFlowLogger)
    log = logging.getLogger("capstoneflow")
    log.__class__ = CapstoneFlowLogger
    log.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
    log.handlers.clear()

    json_output = settings.ENVIRONMENT == "production"
    if json_output:
        log.addHandler(_stream_handler(JSONFormatter()))
        if settings.LOG_FILE:
            log.addHandler(_file_handler(JSONFormatter(), backup_count=10))
    else:
        log.addHandler(_stream_handler(ContextualFormatter("%(levelname)-8s | %(message)s")))
        if settings.LOG_FILE:
            file_format = ContextualFormatter(
                "%(asctime)s %(levelname)-8s req=%(request_id)s user=%(user_id)s "
                "project=%(project_id)s %(module)s:%(lineno)d %(message)s"
            )
            log.addHandler(_file_handler(file_format, backup_count=5))

    for noisy in ("httpx", "httpcore", "uvicorn.access", "sqlalchemy.engine", "aiosqlite"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    log.debug("Logging ready", extra={"environment": settings.ENVIRONMENT, "json_logging": json_output})
    return log


logger: CapstoneFlowLogger = setup_logging()


__all__ = [
    'logger',
    'setup_logging',
    'get_request_id',
    'set_request_id',
    'get_user_id',
    'set_user_id',
    'get_project_id',
    'set_project_id',
    'clear_context',
    'generate_request_id',
    'JSONFormatter',
    'ContextualFormatter',
    'CapstoneFlowLogger',
]
