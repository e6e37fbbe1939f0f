from __future__ import annotations

import logging

from tenant_integrity.core.logging import JsonFormatter, RequestIdFilter
from tenant_integrity.core.request_id import bind_request_id, get_request_id


def test_bind_restores_previous_value():
    assert get_request_id() is None

    with bind_request_id("  outer  ") as outer:
        assert outer == "outer"
        with bind_request_id(None, prefix="cli") as inner:
            assert inner.startswith("cli-")
            assert get_request_id() == inner
        assert get_request_id() == "outer"

    assert get_request_id() is None


def test_filter_keeps_explicit_request_id():
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "tenancy_repair", None, None)
    record.request_id = "from-audit"

    with bind_request_id("from-context"):
        RequestIdFilter().filter(record)

    assert record.request_id == "from-audit"


def test_json_formatter_emits_tenancy_extras():
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "tenancy_repair", None, None)
    record.table = "teams"
    record.outcome = "updated"

    with bind_request_id("rid-1"):
        RequestIdFilter().filter(record)
        line = JsonFormatter().format(record)

    assert '"table": "teams"' in line
    assert '"outcome": "updated"' in line
    assert '"request_id": "rid-1"' in line
