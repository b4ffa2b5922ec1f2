"""OpenTelemetry + Prometheus fallback wiring for the dashboard backend."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any

from fastapi import FastAPI

from triagedash import config

logger = logging.getLogger("triagedash.observability")


_initialized = False
_enabled = False
_tracer: Any | None = None
_trace_provider: Any | None = None
_meter_provider: Any | None = None
_fastapi_instrumentor: Any | None = None

_read_counter: Any | None = None
_read_latency_hist: Any | None = None
_parser_failure_counter: Any | None = None
_stream_poll_counter: Any | None = None
_stream_messages_counter: Any | None = None

_prom_enabled = False
_prom_read_counter: Any | None = None
_prom_read_latency_hist: Any | None = None
_prom_parser_failure_counter: Any | None = None
_prom_stream_poll_counter: Any | None = None
_prom_stream_messages_counter: Any | None = None


def _normalize_otlp_endpoint(base_endpoint: str, signal_path: str) -> str:
    endpoint = (base_endpoint or "").strip()
    if not endpoint:
        return ""
    if endpoint.endswith(signal_path):
        return endpoint
    if endpoint.endswith("/"):
        endpoint = endpoint[:-1]
    if endpoint.endswith("/v1"):
        return f"{endpoint}{signal_path[3:]}"
    return f"{endpoint}{signal_path}"


def _prom_labels(**values: str) -> dict[str, str]:
    return {key: (value or "").strip() or "unknown" for key, value in values.items()}


def initialize(app: FastAPI | None = None) -> None:
    global _initialized, _enabled, _tracer, _trace_provider, _meter_provider, _fastapi_instrumentor
    global _read_counter, _read_latency_hist, _parser_failure_counter
    global _stream_poll_counter, _stream_messages_counter
    global _prom_enabled
    global _prom_read_counter, _prom_read_latency_hist, _prom_parser_failure_counter
    global _prom_stream_poll_counter, _prom_stream_messages_counter

    if _initialized:
        if _enabled and app and _fastapi_instrumentor:
            _fastapi_instrumentor.instrument_app(app)
        return

    _initialized = True

    if not config.OTEL_ENABLED:
        logger.info("OpenTelemetry disabled (TRIAGEDASH_OTEL_ENABLED=false)")
        return

    try:
        from opentelemetry import metrics, trace
        from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
        from opentelemetry.sdk.metrics import MeterProvider
        from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
    except ImportError as exc:
        logger.warning("OpenTelemetry dependencies unavailable: %s", exc)
        return

    traces_endpoint = _normalize_otlp_endpoint(config.OTEL_ENDPOINT, "/v1/traces")
    metrics_endpoint = _normalize_otlp_endpoint(config.OTEL_ENDPOINT, "/v1/metrics")
    service_name = config.OTEL_SERVICE_NAME or "triagedash"

    resource = Resource.create(
        {
            "service.name": service_name,
            "service.namespace": "triagedash",
        }
    )

    trace_provider = TracerProvider(resource=resource)
    trace_exporter = OTLPSpanExporter(endpoint=traces_endpoint or None)
    trace_provider.add_span_processor(BatchSpanProcessor(trace_exporter))
    trace.set_tracer_provider(trace_provider)
    tracer = trace.get_tracer("triagedash.backend")

    metric_reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=metrics_endpoint or None)
    )
    meter_provider = MeterProvider(resource=resource, metric_readers=[metric_reader])
    metrics.set_meter_provider(meter_provider)
    meter = metrics.get_meter("triagedash.backend")

    _read_counter = meter.create_counter(
        "triagedash_transcript_reads_total",
        unit="1",
        description="Count of full transcript reads",
    )
    _read_latency_hist = meter.create_histogram(
        "triagedash_transcript_read_latency_ms",
        unit="ms",
        description="Latency of full transcript reads",
    )
    _parser_failure_counter = meter.create_counter(
        "triagedash_parser_failures_total",
        unit="1",
        description="Count of transcript lines that could not be decoded",
    )
    _stream_poll_counter = meter.create_counter(
        "triagedash_stream_polls_total",
        unit="1",
        description="Tail poll cycles by outcome",
    )
    _stream_messages_counter = meter.create_counter(
        "triagedash_stream_messages_total",
        unit="1",
        description="Messages delivered to live stream consumers",
    )

    _trace_provider = trace_provider
    _meter_provider = meter_provider
    _tracer = tracer
    _fastapi_instrumentor = FastAPIInstrumentor()
    _enabled = True

    if app:
        _fastapi_instrumentor.instrument_app(app)

    if config.PROM_PORT > 0:
        try:
            from prometheus_client import Counter, Histogram, start_http_server

            start_http_server(config.PROM_PORT)
            _prom_enabled = True
            _prom_read_counter = Counter(
                "triagedash_transcript_reads_total",
                "Count of full transcript reads",
                ["source", "result"],
            )
            _prom_read_latency_hist = Histogram(
                "triagedash_transcript_read_latency_ms",
                "Latency of full transcript reads",
                ["source", "result"],
            )
            _prom_parser_failure_counter = Counter(
                "triagedash_parser_failures_total",
                "Count of transcript lines that could not be decoded",
                ["parser"],
            )
            _prom_stream_poll_counter = Counter(
                "triagedash_stream_polls_total",
                "Tail poll cycles by outcome",
                ["result"],
            )
            _prom_stream_messages_counter = Counter(
                "triagedash_stream_messages_total",
                "Messages delivered to live stream consumers",
                [],
            )
            logger.info("Prometheus fallback metrics server listening on port %s", config.PROM_PORT)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Prometheus fallback not started: %s", exc)
            _prom_enabled = False

    logger.info(
        "OpenTelemetry initialized (service=%s endpoint=%s)",
        service_name,
        config.OTEL_ENDPOINT,
    )


def shutdown(app: FastAPI | None = None) -> None:
    global _enabled
    if not _initialized:
        return
    try:
        if app and _fastapi_instrumentor:
            _fastapi_instrumentor.uninstrument_app(app)
    except Exception as exc:  # noqa: BLE001
        logger.debug("FastAPI uninstrument failed: %s", exc)
    try:
        if _meter_provider is not None:
            _meter_provider.shutdown()
    except Exception as exc:  # noqa: BLE001
        logger.debug("Meter provider shutdown failed: %s", exc)
    try:
        if _trace_provider is not None:
            _trace_provider.shutdown()
    except Exception as exc:  # noqa: BLE001
        logger.debug("Trace provider shutdown failed: %s", exc)
    _enabled = False


def is_enabled() -> bool:
    return _enabled


@contextmanager
def start_span(name: str, attributes: dict[str, Any] | None = None):
    if not _enabled or _tracer is None:
        yield None
        return
    with _tracer.start_as_current_span(name) as span:
        if attributes:
            for key, value in attributes.items():
                if value is not None:
                    span.set_attribute(key, value)
        yield span


def record_transcript_read(source: str, result: str, duration_ms: float) -> None:
    labels = {
        "source": source or "unknown",
        "result": result or "unknown",
    }
    if _enabled and _read_counter is not None:
        _read_counter.add(1, labels)
    if _enabled and _read_latency_hist is not None:
        _read_latency_hist.record(max(0.0, float(duration_ms)), labels)
    if _prom_enabled and _prom_read_counter is not None:
        _prom_read_counter.labels(**_prom_labels(source=source, result=result)).inc()
    if _prom_enabled and _prom_read_latency_hist is not None:
        _prom_read_latency_hist.labels(**_prom_labels(source=source, result=result)).observe(
            max(0.0, float(duration_ms))
        )


def record_parser_failure(parser: str, *, count: int = 1) -> None:
    safe_count = max(0, int(count))
    if safe_count == 0:
        return
    labels = {"parser": parser or "unknown"}
    if _enabled and _parser_failure_counter is not None:
        _parser_failure_counter.add(safe_count, labels)
    if _prom_enabled and _prom_parser_failure_counter is not None:
        _prom_parser_failure_counter.labels(**_prom_labels(parser=parser)).inc(safe_count)


def record_stream_poll(result: str, messages: int) -> None:
    labels = {"result": result or "unknown"}
    delivered = max(0, int(messages))
    if _enabled and _stream_poll_counter is not None:
        _stream_poll_counter.add(1, labels)
    if _enabled and _stream_messages_counter is not None and delivered > 0:
        _stream_messages_counter.add(delivered)
    if _prom_enabled and _prom_stream_poll_counter is not None:
        _prom_stream_poll_counter.labels(**_prom_labels(result=result)).inc()
    if _prom_enabled and _prom_stream_messages_counter is not None and delivered > 0:
        _prom_stream_messages_counter.inc(delivered)
