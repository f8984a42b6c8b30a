"""Structured logging, Prometheus metrics and request-ID correlation."""

from .logging import configure_logging, get_logger, redact_token, request_id_ctx
from .metrics import metrics_text

__all__ = [
    "configure_logging",
    "get_logger",
    "metrics_text",
    "redact_token",
    "request_id_ctx",
]
