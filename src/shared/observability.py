import logging
import os

from opentelemetry import trace
from opentelemetry._logs import set_logger_provider
from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_client import start_http_server

from src.shared.telemetry import Telemetry

_telemetry = Telemetry("Observability")


def configure_observability(
    service_name: str = "quiz-session-engine", metrics_port: int | None = 8000
) -> bool:
    """
    Sends traces and logs to an OTLP collector and exposes Prometheus metrics.

    Returns False (and leaves the process untouched) when the OTLP
    endpoint/headers are not configured in the environment.
    """
    endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    headers = os.getenv("OTEL_EXPORTER_OTLP_HEADERS")

    if not endpoint or not headers:
        _telemetry.log_warning(
            "OTEL env vars not set. Telemetry will not be exported."
        )
        return False

    resource = Resource.create({"service.name": service_name})

    # --- Tracing ---
    trace_provider = TracerProvider(resource=resource)
    span_exporter = OTLPSpanExporter(endpoint=endpoint, headers=headers)
    trace_provider.add_span_processor(BatchSpanProcessor(span_exporter))
    trace.set_tracer_provider(trace_provider)

    # --- Logging ---
    logger_provider = LoggerProvider(resource=resource)
    log_exporter = OTLPLogExporter(endpoint=endpoint, headers=headers)
    logger_provider.add_log_record_processor(BatchLogRecordProcessor(log_exporter))
    set_logger_provider(logger_provider)

    handler = LoggingHandler(level=logging.INFO, logger_provider=logger_provider)
    logging.getLogger().addHandler(handler)

    # --- Metrics ---
    if metrics_port is not None:
        try:
            start_http_server(metrics_port)
            _telemetry.log_info("Prometheus metrics server started", port=metrics_port)
        except OSError:
            _telemetry.log_warning(
                "Prometheus port already in use. Skipping.", port=metrics_port
            )

    _telemetry.log_info("Observability configured", service=service_name)
    return True
