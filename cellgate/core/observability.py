"""OpenTelemetry tracing for HTTP requests, SQL and cell invocations.

Every router invocation runs inside a ``cell.invoke`` span carrying the
destination, action and channel, so a request that hops through several
cells (B2B access asking the identity cell for permissions, say) shows up
as one trace. In development finished spans are written through Loguru;
elsewhere they are exported over OTLP.
"""

from __future__ import annotations

from contextlib import contextmanager
from functools import lru_cache
from typing import TYPE_CHECKING, Any, Final

from loguru import logger
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SpanExporter,
    SpanExportResult,
)
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased

from cellgate.core.context import RequestContext

if TYPE_CHECKING:
    from collections.abc import Generator, Sequence

    from fastapi import FastAPI
    from sqlalchemy.ext.asyncio import AsyncEngine

    from cellgate.core.config import Settings

DEFAULT_OTLP_ENDPOINT: Final[str] = "http://localhost:4317"

# Paths whose request spans are noise: health checks and API docs
UNTRACED_PATHS: Final[str] = "/health,/docs,/redoc,/openapi.json"

# Span attributes lifted into the log record of a finished cell span
CELL_SPAN_FIELDS: Final[tuple[str, ...]] = ("destination", "action", "channel", "error_code")

# Driver-level spans that add nothing in a development console
_NOISY_SPANS: Final[frozenset[str]] = frozenset(
    {"connect", "http send", "http receive", "cursor.execute"}
)


class LoguruSpanExporter(SpanExporter):
    """Write finished spans as Loguru debug records.

    Cell spans are logged with their destination and action as top-level
    fields, so they line up with the router's own invocation lines.
    """

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        for span in spans:
            span_context = span.get_span_context()
            if span_context is None or span.name in _NOISY_SPANS:
                continue

            attributes = dict(span.attributes or {})
            duration_ms = None
            if span.end_time and span.start_time:
                duration_ms = (span.end_time - span.start_time) // 1_000_000

            cell_fields = {
                field: attributes.pop(field) for field in CELL_SPAN_FIELDS if field in attributes
            }
            logger.bind(
                trace_id=f"0x{span_context.trace_id:032x}",
                span_id=f"0x{span_context.span_id:016x}",
                correlation_id=attributes.pop("correlation_id", None),
                duration_ms=duration_ms,
                status=span.status.status_code.name,
                attributes=attributes or None,
                **cell_fields,
            ).debug("Span {} finished", span.name)

        return SpanExportResult.SUCCESS


def get_span_exporter(settings: Settings) -> SpanExporter | None:
    """Pick the span exporter for ``observability_config.exporter_type``.

    ``console`` logs spans through Loguru, ``otlp`` ships them to a
    collector (plaintext in development), ``none`` disables export.
    """
    config = settings.observability_config

    if config.exporter_type == "console":
        logger.info("Exporting spans to the log")
        return LoguruSpanExporter()

    if config.exporter_type == "otlp":
        endpoint = config.exporter_endpoint or DEFAULT_OTLP_ENDPOINT
        logger.info("Exporting spans over OTLP to {}", endpoint)
        return OTLPSpanExporter(
            endpoint=endpoint,
            insecure=settings.environment == "development",
        )

    logger.info("Span export disabled")
    return None


@lru_cache(maxsize=8)
def get_tracer(name: str) -> trace.Tracer:
    return trace.get_tracer(name)


def setup_tracing(settings: Settings) -> None:
    """Install the global tracer provider for this process.

    The resource names the gateway (service name, version, environment) and
    sampling follows ``trace_sample_rate``.
    """
    config = settings.observability_config
    if not config.enable_tracing:
        logger.info("Tracing disabled by configuration")
        return

    tracer_provider = TracerProvider(
        resource=Resource.create(
            {
                "service.name": settings.app_name,
                "service.version": settings.app_version,
                "deployment.environment": settings.environment,
            }
        ),
        sampler=TraceIdRatioBased(config.trace_sample_rate),
    )

    if exporter := get_span_exporter(settings):
        tracer_provider.add_span_processor(BatchSpanProcessor(exporter))

    trace.set_tracer_provider(tracer_provider)
    logger.info(
        "Tracing configured",
        exporter_type=config.exporter_type,
        sample_rate=config.trace_sample_rate,
    )


def instrument_app(app: FastAPI, settings: Settings) -> None:
    """Open a server span per HTTP request, tagged with the correlation ID."""
    if not settings.observability_config.enable_tracing:
        return

    FastAPIInstrumentor.instrument_app(
        app,
        excluded_urls=UNTRACED_PATHS,
        server_request_hook=add_correlation_id_to_span,
    )
    logger.info("Application instrumented for tracing")


def instrument_engine(engine: AsyncEngine, settings: Settings) -> None:
    """Emit spans for queries run through ``engine``."""
    if not settings.observability_config.enable_tracing:
        return

    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)
    logger.info("Database engine instrumented for tracing")


def add_correlation_id_to_span(span: trace.Span, scope: dict[str, Any]) -> None:  # noqa: ARG001
    if span.is_recording() and (correlation_id := RequestContext.get_correlation_id()):
        span.set_attribute("correlation_id", correlation_id)


@contextmanager
def trace_operation(
    name: str, **attributes: str | int | float | bool
) -> Generator[trace.Span]:
    """Run a block inside a span named ``name``.

    Attribute values are stored as strings, and the current correlation ID
    is attached when one is set. An exception leaving the block is recorded
    on the span and marks it as an error.

    Example:
        >>> with trace_operation("cell.invoke", destination="auth/AuthenticationCore"):
        >>>     result = await handler(payload)
    """
    span = get_tracer(__name__).start_span(
        name, attributes={key: str(value) for key, value in attributes.items()}
    )

    if correlation_id := RequestContext.get_correlation_id():
        span.set_attribute("correlation_id", correlation_id)

    with trace.use_span(span, end_on_exit=True):
        yield span
