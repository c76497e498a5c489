"""Observability infrastructure for logging and tracing.

setup_logging:
    Console + rotating file logging with run/phase context.

setup_tracing:
    Initialize Logfire with PydanticAI instrumentation.

trace_operation:
    Context manager for custom span creation.

Enable tracing via configuration:
    ENABLE_LOGFIRE=true
    LOGFIRE_TOKEN=your-token  # Optional

Example:
    >>> from observability import setup_tracing, trace_operation
    >>> setup_tracing(enabled=True, service_name="gleaner")
    >>> with trace_operation("ai-cleanup"):
    ...     pass
"""

from observability.logging import setup_logging, set_run_context, set_phase_context, clear_context
from observability.tracing import setup_tracing, trace_operation, TracingContext

__all__ = [
    "setup_logging",
    "set_run_context",
    "set_phase_context",
    "clear_context",
    "setup_tracing",
    "trace_operation",
    "TracingContext",
]
