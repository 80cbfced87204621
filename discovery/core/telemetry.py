"""
Telemetry configuration (Metrics & Tracing).
HTTP metrics come from the Prometheus instrumentator; engine-level counters
and histograms are declared here so services can record them without
depending on FastAPI.
"""
from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_client import Counter, Histogram
from prometheus_fastapi_instrumentator import Instrumentator

from discovery.config import get_settings

# =============================================================================
# Engine metrics
# =============================================================================

DISCOVERIES_SERVED = Counter(
    "discovery_served_total",
    "Discoveries returned by the ranking orchestrator",
    ["algorithm"],
)
NO_CANDIDATES = Counter(
    "discovery_no_candidates_total",
    "Ranking calls that ended with an empty candidate pool",
)
CANDIDATE_POOL_SIZE = Histogram(
    "discovery_candidate_pool_size",
    "Candidates remaining after domain diversity filtering",
    buckets=(0, 10, 50, 100, 200, 300, 500),
)
TRENDING_RUN_SECONDS = Histogram(
    "discovery_trending_run_seconds",
    "Wall time of a full trending recalculation",
)
TRENDING_WINDOW_FAILURES = Counter(
    "discovery_trending_window_failures_total",
    "Trending windows that failed to refresh",
    ["time_window"],
)
EXPERIMENT_ASSIGNMENTS = Counter(
    "discovery_experiment_assignments_total",
    "New sticky experiment assignments",
    ["experiment_id", "variant"],
)
TELEMETRY_DROPPED = Counter(
    "discovery_events_dropped_total",
    "Discovery events that could not be recorded",
)


def get_tracer(name: str) -> trace.Tracer:
    """Tracer for engine spans; a no-op tracer unless OTEL is configured."""
    return trace.get_tracer(name)


def setup_telemetry(app: FastAPI) -> None:
    """
    Setup Observability (Metrics & Tracing).

    1. Prometheus Metrics via /metrics
    2. OpenTelemetry Tracing via OTLP
    """
    settings = get_settings()

    if settings.ENABLE_PROMETHEUS:
        instrumentator = Instrumentator(
            should_group_status_codes=False,
            should_ignore_untemplated=True,
            should_respect_env_var=True,
            should_instrument_requests_inprogress=True,
            excluded_handlers=["/metrics", "/health", "/health/ready"],
            env_var_name="ENABLE_METRICS",
            inprogress_name="inprogress",
            inprogress_labels=True,
        )
        instrumentator.instrument(app).expose(app, include_in_schema=False)

    if settings.ENABLE_OTEL:
        resource = Resource.create(attributes={
            "service.name": settings.APP_NAME,
            "service.version": settings.APP_VERSION,
            "discovery.algorithm": settings.ALGORITHM_VERSION,
            "deployment.environment": "production" if not settings.DEBUG else "development",
        })

        provider = TracerProvider(resource=resource)
        # Default endpoint is localhost:4317
        processor = BatchSpanProcessor(OTLPSpanExporter())
        provider.add_span_processor(processor)
        trace.set_tracer_provider(provider)

        FastAPIInstrumentor.instrument_app(app, tracer_provider=provider)
