import logging

from empleos.core.telemetry import TraceContextFilter, parse_otlp_headers


def test_parse_otlp_headers_skips_malformed_pairs() -> None:
    raw = "authorization=Bearer abc, x-tenant = empleos ,broken,=nokey"

    assert parse_otlp_headers(raw) == {"authorization": "Bearer abc", "x-tenant": "empleos"}
    assert parse_otlp_headers(None) == {}
    assert parse_otlp_headers("") == {}


def test_trace_context_filter_marks_untraced_records() -> None:
    record = logging.LogRecord("empleos.test", logging.INFO, __file__, 1, "hola", None, None)

    assert TraceContextFilter().filter(record) is True
    assert record.trace_id == "-"
    assert record.span_id == "-"
