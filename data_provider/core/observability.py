"""
Observability module for the data provider layer.

Provides:
- Structured logging with JSON format and correlation IDs
- Correlation ID generation and propagation via context variables
- Prometheus metrics for provider operations (count, latency)
- Redaction of sensitive fields before parameters reach a log line

Usage:
    from data_provider.core.observability import (
        configure_logging,
        configure_structured_logging,
        get_correlation_id,
        set_correlation_id,
        metrics,
    )
"""

import json
import logging
import uuid
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

if TYPE_CHECKING:
    from data_provider.core.config import Settings

# ============================================================================
# Context Variables
# ============================================================================

# Correlation ID - links all log lines emitted for one logical caller action
_correlation_id_ctx: ContextVar[str] = ContextVar("correlation_id", default="")


def generate_correlation_id() -> str:
    """Generate a unique correlation ID."""
    return str(uuid.uuid4())


def get_correlation_id() -> str:
    """Get the current correlation ID from context."""
    return _correlation_id_ctx.get()


def set_correlation_id(correlation_id: str) -> None:
    """Set the correlation ID for the current context."""
    _correlation_id_ctx.set(correlation_id)


# ============================================================================
# Redaction
# ============================================================================

# Record fields that must never be written to logs
SENSITIVE_FIELDS = {
    "password",
    "token",
    "secret",
    "api_key",
    "access_token",
    "refresh_token",
    "client_secret",
}


def sanitize_payload(payload: Any) -> Any:
    """Redact sensitive fields from a (possibly nested) payload."""
    if isinstance(payload, dict):
        return {
            k: "***REDACTED***"
            if isinstance(k, str) and k.lower() in SENSITIVE_FIELDS
            else sanitize_payload(v)
            for k, v in payload.items()
        }
    if isinstance(payload, list):
        return [sanitize_payload(item) for item in payload]
    return payload


# ============================================================================
# Structured Logging Configuration
# ============================================================================

_RESERVED_RECORD_KEYS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
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
    "getMessage",
    "exc_info",
    "exc_text",
    "stack_info",
}


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs logs as JSON with standard fields:
    - timestamp: ISO 8601 format
    - level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - logger: Logger name
    - message: Log message
    - correlation_id: Correlation ID (if available)
    - exception: Type and message of an attached exception (if any)
    - service: Application name (when configured)
    - extra: Any additional context from logging.extra
    """

    def __init__(self, service: str | None = None) -> None:
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if self.service:
            log_entry["service"] = self.service

        correlation_id = get_correlation_id()
        if correlation_id:
            log_entry["correlation_id"] = correlation_id

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
            }

        log_entry["file"] = record.pathname
        log_entry["line"] = record.lineno
        log_entry["function"] = record.funcName

        extra_keys = {
            k: v for k, v in record.__dict__.items() if k not in _RESERVED_RECORD_KEYS
        }
        if extra_keys:
            log_entry["extra"] = extra_keys

        return json.dumps(log_entry, default=str)


def configure_structured_logging(level: str = "INFO", service: str | None = None) -> None:
    """
    Configure root logger with structured JSON formatting.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        service: Name stamped on every entry as "service"
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter(service=service))

    root_logger.addHandler(handler)


def configure_logging(settings: "Settings") -> bool:
    """
    Apply the logging settings of an entry point.

    Returns True when structured logging was installed; with
    observability_structured_logs off the root logger is left untouched.
    """
    if not settings.observability_structured_logs:
        return False
    configure_structured_logging(settings.app_log_level, service=settings.app_name)
    return True


# ============================================================================
# Prometheus Metrics
# ============================================================================

# Use a custom registry to avoid conflicts with other Prometheus metrics
_registry = CollectorRegistry()


class Metrics:
    """
    Metrics collected around provider operations.

    - operations_total: calls by operation, resource and outcome
    - operation_duration_seconds: latency by operation and resource
    """

    def __init__(self, registry: CollectorRegistry) -> None:
        self.registry = registry

        self.operations_total = Counter(
            "data_provider_operations_total",
            "Total data provider operations",
            ["operation", "resource", "status"],
            registry=self.registry,
        )

        self.operation_duration_seconds = Histogram(
            "data_provider_operation_duration_seconds",
            "Data provider operation latency in seconds",
            ["operation", "resource"],
            buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
            registry=self.registry,
        )

    def record(self, operation: str, resource: str, status: str, duration: float) -> None:
        self.operations_total.labels(
            operation=operation, resource=resource, status=status
        ).inc()
        self.operation_duration_seconds.labels(
            operation=operation, resource=resource
        ).observe(duration)

    def export(self) -> bytes:
        """Render the registry in the Prometheus text exposition format."""
        return generate_latest(self.registry)


metrics = Metrics(_registry)
