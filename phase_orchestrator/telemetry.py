"""Telemetry setup for OpenTelemetry traces and metrics.

Configures tracing and metrics export over OTLP so runs show up in a
collector (Jaeger for traces, Prometheus for metrics).

When OTLP export is not enabled, falls back to in-process providers.
"""

import logging
import os

from opentelemetry import metrics, trace
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.trace import TracerProvider

from phase_orchestrator.config import OrchestratorConfig

# Suppress gRPC warnings when collector is unavailable
logging.getLogger("opentelemetry.exporter.otlp.proto.grpc").setLevel(logging.ERROR)

# Module-level metric instruments (set by create_metrics)
tasks_counter: metrics.Counter
domains_counter: metrics.Counter
phase_violations_counter: metrics.Counter
task_duration: metrics.Histogram


def setup_telemetry(config: OrchestratorConfig) -> tuple[trace.Tracer, metrics.Meter]:
    """Initialize OpenTelemetry with OTLP export.

    If OTLP_ENABLED is not "true" or no endpoint is configured, installs
    providers without exporters.

    Args:
        config: Orchestrator configuration with OTLP endpoint and service name

    Returns:
        Tuple of (tracer, meter) for creating spans and recording metrics
    """
    otlp_enabled = os.getenv("OTLP_ENABLED", "false").lower() == "true"

    if otlp_enabled and config.otlp_endpoint:
        # Import OTLP exporters only when needed
        from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import (
            OTLPMetricExporter,
        )
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
            OTLPSpanExporter,
        )
        from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
        from opentelemetry.sdk.trace.export import BatchSpanProcessor

        trace_provider = TracerProvider()
        trace_provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=config.otlp_endpoint))
        )
        trace.set_tracer_provider(trace_provider)

        metric_reader = PeriodicExportingMetricReader(
            OTLPMetricExporter(endpoint=config.otlp_endpoint)
        )
        meter_provider = MeterProvider(metric_readers=[metric_reader])
        metrics.set_meter_provider(meter_provider)
    else:
        trace.set_tracer_provider(TracerProvider())
        metrics.set_meter_provider(MeterProvider())

    tracer = trace.get_tracer(config.service_name)
    meter = metrics.get_meter(config.service_name)

    return tracer, meter


def create_metrics(meter: metrics.Meter) -> None:
    """Create metric instruments for orchestration tracking.

    Counters:
    - Tasks finished (by status: completed, failed, blocked)
    - Domains finished (by status)
    - Phase completion gate violations

    Histogram:
    - Task duration distribution

    Args:
        meter: OpenTelemetry meter for creating instruments
    """
    global tasks_counter, domains_counter, phase_violations_counter, task_duration

    tasks_counter = meter.create_counter(
        "orchestrator_tasks_total",
        description="Total tasks finished",
    )

    domains_counter = meter.create_counter(
        "orchestrator_domains_total",
        description="Total domains finished",
    )

    phase_violations_counter = meter.create_counter(
        "orchestrator_phase_violations_total",
        description="Total phase completion gate violations",
    )

    task_duration = meter.create_histogram(
        "orchestrator_task_duration_seconds",
        description="Task execution duration",
        unit="s",
    )


def record_task(status: str, domain: str, duration_seconds: float | None = None) -> None:
    """Record task metrics if counters are initialized."""
    try:
        tasks_counter.add(1, {"status": status, "domain": domain})
        if duration_seconds is not None:
            task_duration.record(duration_seconds, {"domain": domain})
    except NameError:
        # Counters not initialized - telemetry disabled
        pass


def record_domain(status: str) -> None:
    """Record domain metrics if counters are initialized."""
    try:
        domains_counter.add(1, {"status": status})
    except NameError:
        pass


def record_phase_violations(phase: str, count: int) -> None:
    """Record phase gate violations if counters are initialized."""
    try:
        phase_violations_counter.add(count, {"phase": phase})
    except NameError:
        pass
