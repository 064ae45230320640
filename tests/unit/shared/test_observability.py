import logging
from unittest.mock import patch

import pytest

from src.shared import observability

MODULE = "src.shared.observability"


@pytest.fixture
def otel_env(monkeypatch):
    monkeypatch.setenv("OTEL_EXPORTER_OTLP_ENDPOINT", "https://otlp.example.test")
    monkeypatch.setenv("OTEL_EXPORTER_OTLP_HEADERS", "Authorization=Basic abc")


@pytest.fixture
def log_handler():
    """
    Stands in for the OTLP LoggingHandler. It ends up on the root logger,
    so it needs a real level for the records that propagate to it.
    """
    with patch(f"{MODULE}.LoggingHandler") as handler_cls:
        handler_cls.return_value.level = logging.INFO
        yield handler_cls
        logging.getLogger().removeHandler(handler_cls.return_value)


def test_returns_false_without_env(monkeypatch):
    monkeypatch.delenv("OTEL_EXPORTER_OTLP_ENDPOINT", raising=False)
    monkeypatch.delenv("OTEL_EXPORTER_OTLP_HEADERS", raising=False)

    with patch(f"{MODULE}.start_http_server") as mock_server:
        assert observability.configure_observability() is False
        mock_server.assert_not_called()


def test_wires_exporters_and_metrics_server(otel_env, log_handler):
    with (
        patch(f"{MODULE}.OTLPSpanExporter") as span_exporter,
        patch(f"{MODULE}.OTLPLogExporter") as log_exporter,
        patch(f"{MODULE}.trace.set_tracer_provider") as set_tracer,
        patch(f"{MODULE}.set_logger_provider") as set_logger,
        patch(f"{MODULE}.start_http_server") as mock_server,
    ):
        assert observability.configure_observability(metrics_port=9100) is True

    span_exporter.assert_called_once_with(
        endpoint="https://otlp.example.test", headers="Authorization=Basic abc"
    )
    log_exporter.assert_called_once()
    set_tracer.assert_called_once()
    set_logger.assert_called_once()
    mock_server.assert_called_once_with(9100)
    assert log_handler.return_value in logging.getLogger().handlers


def test_busy_metrics_port_is_not_fatal(otel_env, log_handler):
    with (
        patch(f"{MODULE}.OTLPSpanExporter"),
        patch(f"{MODULE}.OTLPLogExporter"),
        patch(f"{MODULE}.trace.set_tracer_provider"),
        patch(f"{MODULE}.set_logger_provider"),
        patch(f"{MODULE}.start_http_server", side_effect=OSError("in use")),
    ):
        assert observability.configure_observability() is True
