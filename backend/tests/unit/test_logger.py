"""Unit tests for the logging utility."""

from __future__ import annotations

import json
import logging

from nexora.core.logger import JSONFormatter, configure_logging, ensure_request_id


def test_configure_logging_sets_level() -> None:
    """``configure_logging`` should set the root logger level."""

    configure_logging("DEBUG")

    assert logging.getLogger().level == logging.DEBUG


def test_json_formatter_copies_known_extras() -> None:
    record = logging.LogRecord("nexora.test", logging.INFO, __file__, 1, "auth.login", None, None)
    record.user_id = 42
    record.outcome = "ok"
    record.password = "should-not-appear"

    payload = json.loads(JSONFormatter().format(record))

    assert payload["message"] == "auth.login"
    assert payload["user_id"] == 42
    assert payload["outcome"] == "ok"
    assert "password" not in payload


def test_request_id_header_is_echoed(client) -> None:
    resp = client.get("/api/v1/health", headers={"X-Request-ID": "req-123"})
    assert resp.headers["X-Request-ID"] == "req-123"


def test_request_id_outside_request_is_random() -> None:
    assert ensure_request_id() != ensure_request_id()
