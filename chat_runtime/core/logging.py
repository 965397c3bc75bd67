from __future__ import annotations

import contextvars
import json
import logging
import os
import queue
import time
from logging.handlers import QueueHandler, QueueListener, RotatingFileHandler
from pathlib import Path
from typing import Any

_LOG_CONTEXT: contextvars.ContextVar[dict[str, Any]] = contextvars.ContextVar(
    "chat_runtime_log_ctx", default={}
)
_RESERVED_LOG_RECORD_ATTRS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "taskName",
    "message",
}
_LOG_QUEUE: queue.SimpleQueue[logging.LogRecord] = queue.SimpleQueue()
_LOG_LISTENER: QueueListener | None = None
DEFAULT_LOG_DIR = Path.home() / ".nomic" / "logs"


class ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        context = _LOG_CONTEXT.get({})
        for key, value in context.items():
            setattr(record, key, value)
        return True


class StructuredFormatter(logging.Formatter):
    def _normalize(self, value: Any) -> Any:
        if value is None or isinstance(value, (str, int, float, bool)):
            return value
        if isinstance(value, dict):
            return {str(k): self._normalize(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [self._normalize(v) for v in value]
        return str(value)

    def format(self, record: logging.LogRecord) -> str:
        timestamp = time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(record.created))
        payload: dict[str, Any] = {
            "timestamp": f"{timestamp}.{int(record.msecs):03d}Z",
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key in _RESERVED_LOG_RECORD_ATTRS or key in payload or value is None:
                continue
            payload[key] = self._normalize(value)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def _resolve_log_dir(explicit: str | Path | None = None) -> Path:
    if explicit:
        return Path(explicit).expanduser()
    raw = os.getenv("CHAT_RUNTIME_LOG_DIR")
    if raw:
        return Path(raw).expanduser()
    return DEFAULT_LOG_DIR


def configure_logging(
    level: int = logging.INFO,
    log_dir: str | Path | None = None,
) -> logging.Logger:
    global _LOG_LISTENER
    formatter = StructuredFormatter()
    context_filter = ContextFilter()
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    target_dir = _resolve_log_dir(log_dir)
    target_dir.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        target_dir / "chat-runtime.log", maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)

    # filters on the listener side run in its thread, where the context is empty
    queue_handler = QueueHandler(_LOG_QUEUE)
    queue_handler.addFilter(context_filter)
    root = logging.getLogger()
    root.handlers = [queue_handler]
    root.setLevel(level)
    if _LOG_LISTENER:
        _LOG_LISTENER.stop()
    listener = QueueListener(_LOG_QUEUE, console_handler, file_handler, respect_handler_level=True)
    listener.start()
    _LOG_LISTENER = listener
    return logging.getLogger("chat-runtime")


def push_log_context(**kwargs: Any) -> contextvars.Token:
    context = dict(_LOG_CONTEXT.get({}))
    for key, value in kwargs.items():
        if value is not None:
            context[key] = value
    return _LOG_CONTEXT.set(context)


def pop_log_context(token: contextvars.Token) -> None:
    _LOG_CONTEXT.reset(token)


def shutdown_logging() -> None:
    global _LOG_LISTENER
    if _LOG_LISTENER:
        _LOG_LISTENER.stop()
        _LOG_LISTENER = None
