"""Tests for telemetry module — OpenTelemetry tracing integration."""

from __future__ import annotations

from parley.telemetry import (
    ParleyTracer,
    TelemetryConfig,
    configure_tracing,
    get_tracer,
    trace_context_assembly,
    trace_distillation,
    trace_snapshot,
)


def test_init_with_none_config_succeeds() -> None:
    tracer = ParleyTracer(TelemetryConfig(exporter="none"))
    tracer.init()
    tracer.shutdown()


def test_span_context_manager_works() -> None:
    tracer = ParleyTracer(TelemetryConfig(exporter="none"))
    tracer.init()
    with tracer.span("test-span", {"key": "value"}) as s:
        assert s is not None
    tracer.shutdown()


def test_record_event_does_not_error() -> None:
    tracer = ParleyTracer(TelemetryConfig(exporter="none"))
    tracer.init()
    tracer.record_event("test-event", {"key": "value"})
    tracer.shutdown()


def test_stdout_exporter_records_spans() -> None:
    tracer = ParleyTracer(TelemetryConfig(exporter="stdout"))
    tracer.init()
    with tracer.span("context/assemble", {"conversation.id": "c1"}) as s:
        assert s.is_recording()
    tracer.shutdown()


def test_convenience_functions_do_not_error() -> None:
    with trace_context_assembly("c1", "a") as s:
        assert s is not None
    with trace_distillation("c1", 2) as s:
        assert s is not None
    with trace_snapshot("t1") as s:
        assert s is not None


def test_configure_tracing_replaces_module_tracer() -> None:
    tracer = configure_tracing(TelemetryConfig(exporter="none"))
    assert get_tracer() is tracer
    assert tracer.config.exporter == "none"


def test_config_defaults_are_correct() -> None:
    config = TelemetryConfig()
    assert config.service_name == "parley"
    assert config.enabled is True
    assert config.exporter == "none"
    assert config.otlp_endpoint == "http://localhost:4317"


def test_shutdown_is_safe_to_call_multiple_times() -> None:
    tracer = ParleyTracer(TelemetryConfig(exporter="none"))
    tracer.init()
    tracer.shutdown()
    tracer.shutdown()


def test_record_event_attaches_to_active_span() -> None:
    tracer = ParleyTracer(TelemetryConfig(exporter="stdout"))
    tracer.init()
    assert tracer.config.exporter == "stdout"
    with tracer.span("distillation/compact") as s:
        tracer.record_event("distillation/empty_result", {"conversation.id": "c1"})
    assert [e.name for e in s.events] == ["distillation/empty_result"]
    assert s.events[0].attributes["conversation.id"] == "c1"
    tracer.shutdown()
