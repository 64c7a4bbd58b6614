from __future__ import annotations

import json
import logging
import uuid
from contextlib import contextmanager
from contextvars import ContextVar, Token
from functools import wraps
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Optional, TypeVar


_TRACE_ID_CTX: ContextVar[str] = ContextVar("trace_id", default="unknown")
_LOGGER = logging.getLogger("siap_panen")
_INITIALIZED = False

T = TypeVar("T")


def init_logging(*, log_path: Optional[str] = None, level: int = logging.INFO) -> None:
    global _INITIALIZED
    if _INITIALIZED:
        return
    if log_path:
        path = Path(log_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = RotatingFileHandler(
            path, maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8"
        )
    else:
        handler = logging.StreamHandler()
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        handlers=[handler],
    )
    _LOGGER.setLevel(level)
    _INITIALIZED = True


def new_trace_id() -> str:
    return uuid.uuid4().hex[:16]


def get_trace_id() -> str:
    return _TRACE_ID_CTX.get() or "unknown"


def set_trace_id(trace_id: str) -> Token:
    return _TRACE_ID_CTX.set(trace_id)


def reset_trace_id(token: Token) -> None:
    _TRACE_ID_CTX.reset(token)


@contextmanager
def trace_scope(trace_id: Optional[str] = None) -> Iterator[str]:
    """Bind a trace id to the current context for the duration of a request."""
    value = trace_id or new_trace_id()
    token = set_trace_id(value)
    try:
        yield value
    finally:
        reset_trace_id(token)


def propagate_trace(func: Callable[..., T]) -> Callable[..., T]:
    """Carry the caller's trace id into a worker thread."""
    trace_id = get_trace_id()

    @wraps(func)
    def _inner(*args: Any, **kwargs: Any) -> T:
        with trace_scope(trace_id):
            return func(*args, **kwargs)

    return _inner


def summarize_text(text: str, limit: int = 400) -> str:
    if not text:
        return ""
    text = str(text)
    if len(text) <= limit:
        return text
    return f"{text[:limit]}..."


def _build_payload(event: str, fields: Dict[str, Any]) -> str:
    payload = {"event": event, "trace_id": get_trace_id(), **fields}
    return json.dumps(payload, ensure_ascii=False, default=str)


def log_event(event: str, **fields: Any) -> None:
    _LOGGER.info(_build_payload(event, fields))


def log_error(event: str, **fields: Any) -> None:
    """Like log_event, at ERROR level and with the active traceback attached."""
    _LOGGER.error(_build_payload(event, fields), exc_info=True)
