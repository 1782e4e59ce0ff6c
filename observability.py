"""Observability helpers: structured JSON logging, CloudWatch Embedded Metrics and X-Ray tracing.

Import `init_observability` and call it early in your FastAPI app to activate.
"""
from __future__ import annotations

import logging
import os
from typing import Optional

from aws_embedded_metrics import metric_scope
import structlog

# X-Ray is optional – avoid hard dependency when running locally without AWS
try:
    from aws_xray_sdk.core import xray_recorder, patch_all  # type: ignore
    from aws_xray_sdk.ext.fastapi.middleware import XRayMiddleware  # type: ignore
except ImportError:  # pragma: no cover
    xray_recorder = None  # type: ignore
    patch_all = None  # type: ignore
    XRayMiddleware = None  # type: ignore

__all__ = [
    "init_observability",
    "record_llm_call",
    "record_pipeline_outcome",
]

METRICS_NAMESPACE = "HireLens"


def _metrics_enabled() -> bool:
    return os.getenv("ENABLE_METRICS", "1") == "1"


@metric_scope
def _emit_llm_call(model: str, outcome: str, latency_s: float, metrics=None):
    metrics.set_namespace(METRICS_NAMESPACE)
    metrics.put_dimensions({"Model": model, "Outcome": outcome})
    metrics.put_metric("llm_calls", 1, "Count")
    metrics.put_metric("llm_latency", latency_s * 1000, "Milliseconds")


@metric_scope
def _emit_pipeline_outcome(feature: str, outcome: str, user_id: int, metrics=None):
    metrics.set_namespace(METRICS_NAMESPACE)
    metrics.put_dimensions({"Feature": feature, "Outcome": outcome})
    metrics.put_metric("pipeline_requests", 1, "Count")
    metrics.set_property("user_id", user_id)


def record_llm_call(model: str, outcome: str, latency_s: float) -> None:
    """Emit one LLM call (success, error or timeout) with its latency."""
    if _metrics_enabled():
        _emit_llm_call(model, outcome, latency_s)


def record_pipeline_outcome(feature: str, outcome: str, user_id: int) -> None:
    """Emit the terminal outcome of an analysis/match request."""
    if _metrics_enabled():
        _emit_pipeline_outcome(feature, outcome, user_id)


def _setup_logging() -> None:
    """Configure structlog for structured logging (JSON or console)."""

    log_format = os.getenv("LOG_FORMAT", "json").lower()
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == "json":
        final_processor = structlog.processors.JSONRenderer()
    else:
        final_processor = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=shared_processors + [final_processor],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    if not root_logger.handlers:
        root_logger.addHandler(logging.StreamHandler())
    root_logger.setLevel(log_level)

    # Silence noisy loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _setup_tracing(app: Optional["FastAPI"], segment_name: str = "HireLens") -> None:  # noqa: F821
    """Attach AWS X-Ray SDK middleware if available & ENABLE_XRAY=1."""

    logger = structlog.get_logger(__name__)

    if os.getenv("ENABLE_XRAY", "0") != "1":
        return

    if xray_recorder is None or patch_all is None or XRayMiddleware is None:
        logger.warning("aws_xray_sdk not installed; skipping X-Ray setup")
        return

    # Patch common libs (sqlite3/psycopg2, httpx)
    patch_all()

    if app is not None:
        app.add_middleware(XRayMiddleware, recorder=xray_recorder, segment_name=segment_name)


def init_observability(app: Optional["FastAPI"] = None) -> None:  # noqa: F821
    """Setup logging & tracing. Call once at process start."""

    _setup_logging()
    _setup_tracing(app)

    structlog.get_logger(__name__).info("Observability initialized")
