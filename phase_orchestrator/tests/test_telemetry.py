"""Tests for telemetry module.

These tests verify OpenTelemetry setup for traces and metrics.
"""

import os
from unittest.mock import MagicMock, patch

from phase_orchestrator.config import OrchestratorConfig


class TestSetupTelemetry:
    """Test setup_telemetry function."""

    def test_setup_returns_tracer_and_meter(self):
        """setup_telemetry should return a tracer and meter."""
        from phase_orchestrator.telemetry import setup_telemetry

        config = OrchestratorConfig()

        tracer, meter = setup_telemetry(config)

        assert tracer is not None
        assert meter is not None

    def test_uses_otlp_endpoint_from_config(self):
        """Should use OTLP endpoint from config when enabled."""
        from phase_orchestrator.telemetry import setup_telemetry

        config = OrchestratorConfig(otlp_endpoint="http://custom:4317")

        with patch.dict(os.environ, {"OTLP_ENABLED": "true"}):
            with patch(
                "opentelemetry.exporter.otlp.proto.grpc.trace_exporter.OTLPSpanExporter"
            ) as mock_span_exporter:
                with patch(
                    "opentelemetry.exporter.otlp.proto.grpc.metric_exporter.OTLPMetricExporter"
                ) as mock_metric_exporter:
                    setup_telemetry(config)

        mock_span_exporter.assert_called_with(endpoint="http://custom:4317")
        mock_metric_exporter.assert_called_with(endpoint="http://custom:4317")

    def test_no_export_when_otlp_disabled(self):
        """Exporters are not created when OTLP is disabled."""
        from phase_orchestrator.telemetry import setup_telemetry

        config = OrchestratorConfig(otlp_endpoint="http://localhost:4317")

        with patch.dict(os.environ, {"OTLP_ENABLED": "false"}):
            with patch(
                "opentelemetry.exporter.otlp.proto.grpc.trace_exporter.OTLPSpanExporter"
            ) as mock_span_exporter:
                tracer, meter = setup_telemetry(config)

        mock_span_exporter.assert_not_called()
        assert tracer is not None
        assert meter is not None


class TestCreateMetrics:
    """Test create_metrics function."""

    def test_creates_counters(self):
        """Should create task, domain and phase violation counters."""
        from phase_orchestrator.telemetry import create_metrics

        meter = MagicMock()

        create_metrics(meter)

        counter_names = [call[0][0] for call in meter.create_counter.call_args_list]
        assert counter_names == [
            "orchestrator_tasks_total",
            "orchestrator_domains_total",
            "orchestrator_phase_violations_total",
        ]

    def test_creates_task_duration_histogram(self):
        """Should create a task duration histogram in seconds."""
        from phase_orchestrator.telemetry import create_metrics

        meter = MagicMock()

        create_metrics(meter)

        meter.create_histogram.assert_called_once()
        args, kwargs = meter.create_histogram.call_args
        assert args[0] == "orchestrator_task_duration_seconds"
        assert kwargs["unit"] == "s"


class TestRecordHelpers:
    """Test the metric recording helpers."""

    def test_record_task_uses_counters(self):
        """record_task adds to the task counter and duration histogram."""
        from phase_orchestrator import telemetry

        meter = MagicMock()
        telemetry.create_metrics(meter)

        telemetry.record_task("completed", "Database", 1.5)

        telemetry.tasks_counter.add.assert_called_with(
            1, {"status": "completed", "domain": "Database"}
        )
        telemetry.task_duration.record.assert_called_with(1.5, {"domain": "Database"})

    def test_record_helpers_tolerate_missing_instruments(self, monkeypatch):
        """Helpers do nothing when create_metrics() was never called."""
        from phase_orchestrator import telemetry

        for name in (
            "tasks_counter",
            "domains_counter",
            "phase_violations_counter",
            "task_duration",
        ):
            monkeypatch.delattr(telemetry, name, raising=False)

        telemetry.record_task("failed", "API", 0.5)
        telemetry.record_domain("blocked")
        telemetry.record_phase_violations("Build", 2)
