import json
import logging

from shared.core import HealthStatus, ServiceHealth, set_request_context
from shared.core.logging_config import SecurityFilter, StructuredFormatter, connection_id_var, get_logger


def make_record(msg, **extra):
    record = logging.LogRecord("orders", logging.INFO, __file__, 10, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_renders_one_json_object():
    formatter = StructuredFormatter("orders-service", "test", "9.9.9")
    record = make_record("Order 1 created", extra_fields={"order_id": 1}, context={"request_id": "r-1"})

    entry = json.loads(formatter.format(record))

    assert entry["message"] == "Order 1 created"
    assert entry["service"] == {"name": "orders-service", "environment": "test", "version": "9.9.9"}
    assert entry["context"] == {"request_id": "r-1"}
    assert entry["fields"] == {"order_id": 1}


def test_security_filter_redacts_tokens():
    record = make_record("auth Bearer abc.def.ghi with token=s3cr3t")
    SecurityFilter().filter(record)
    message = record.getMessage()
    assert "abc.def.ghi" not in message
    assert "s3cr3t" not in message


def test_adapter_captures_context_and_bound_fields():
    captured = []

    class Capture(logging.Handler):
        def emit(self, record):
            captured.append(record)

    base = logging.getLogger("test.adapter")
    handler = Capture()
    base.addHandler(handler)
    base.setLevel(logging.INFO)
    try:
        token = connection_id_var.set(None)
        set_request_context(connection_id="conn-7")
        get_logger("test.adapter", component="realtime").info("hello", extra={'extra_fields': {'n': 1}})
        connection_id_var.reset(token)
    finally:
        base.removeHandler(handler)

    [record] = captured
    assert record.context["connection_id"] == "conn-7"
    assert record.extra_fields == {"component": "realtime", "n": 1}


def test_overall_status_takes_the_worst_check():
    checks = {"a": {"status": "pass"}, "b": {"status": "warn"}}
    assert ServiceHealth.calculate_overall_status(checks) == HealthStatus.WARN
    checks["c"] = {"status": "fail"}
    assert ServiceHealth.calculate_overall_status(checks) == HealthStatus.FAIL


def test_readiness_reports_realtime_connections(client):
    checks = client.get("/health/ready").json()["checks"]
    assert checks["realtime:connections"]["observedValue"] == 0


def test_broken_gauge_is_a_warning():
    from app.infrastructure.db import engine

    def broken():
        raise RuntimeError("not started")

    checks = ServiceHealth("svc", engine, gauges={"queue:depth": broken}).perform_readiness_checks()
    assert checks["queue:depth"]["status"] == "warn"
    assert checks["database:connectivity"]["status"] == "pass"
