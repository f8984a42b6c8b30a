"""structlog setup shared by every share-service module.

Log lines are key/value events (``share_granted``, ``link_expired`` ...)
rendered as JSON in deployed environments and as coloured console output
locally. The request ID set by ``RequestIdMiddleware`` is stamped onto
each event so one request's lines can be grepped together.

Plaintext link tokens must never be passed to a logger; pass
``redact_token(token)`` instead.
"""

from __future__ import annotations

import logging
import os
import sys
from contextvars import ContextVar
from typing import Any, TextIO

import structlog

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)

TOKEN_PREFIX_LENGTH = 8
REDACTED = "<redacted>"

# Third-party loggers that are chatty at INFO.
_QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore")

_state: dict[str, bool] = {"configured": False}


def redact_token(token: str | None) -> str:
    """Keep only a short prefix of a share token for log correlation."""
    if not token or len(token) < TOKEN_PREFIX_LENGTH:
        return REDACTED
    return token[:TOKEN_PREFIX_LENGTH] + "..."


def _stamp_request_id(_logger: Any, _method: str, event: dict[str, Any]) -> dict[str, Any]:
    request_id = request_id_ctx.get()
    if request_id is not None:
        event.setdefault("request_id", request_id)
    return event


def _pre_chain() -> list[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        _stamp_request_id,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]


def _install_handler(renderer: Any, level: int, stream: TextIO) -> None:
    handler = logging.StreamHandler(stream)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_pre_chain(),
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )
    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def configure_logging(
    *,
    level: str | None = None,
    json_output: bool | None = None,
    stream: TextIO | None = None,
) -> None:
    """Route structlog through the stdlib root logger.

    Only the first call has an effect; app factories call this on every
    ``create_app`` and tests build many apps per process.

    Args:
        level: Level name; falls back to ``LOG_LEVEL`` then INFO.
        json_output: JSON lines when true, console rendering when false.
            Falls back to ``LOG_FORMAT`` (``json`` unless set otherwise).
        stream: Destination, stdout by default.
    """
    if _state["configured"]:
        return
    _state["configured"] = True

    level_name = (level or os.environ.get("LOG_LEVEL") or "INFO").upper()
    if json_output is None:
        json_output = os.environ.get("LOG_FORMAT", "json").lower() == "json"

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
            *_pre_chain(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    level_no = logging.getLevelName(level_name)
    if not isinstance(level_no, int):
        level_no = logging.INFO
    _install_handler(renderer, level_no, stream or sys.stdout)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
