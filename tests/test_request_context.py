from __future__ import annotations

import logging
import uuid

from treehole.utils.request_context import (
    RequestIdLogFilter,
    clear_request_id,
    get_request_id,
    resolve_request_id,
    set_request_id,
)


def test_resolve_request_id_reuses_sane_upstream_ids() -> None:
    assert resolve_request_id("gateway-req-0001") == "gateway-req-0001"


def test_resolve_request_id_replaces_missing_or_odd_values() -> None:
    for upstream in (None, "", "short", "has spaces in it", "x" * 200):
        generated = resolve_request_id(upstream)
        assert str(uuid.UUID(generated)) == generated


def test_token_restores_previous_request_id() -> None:
    outer = set_request_id("outer-request")
    inner = set_request_id("inner-request")
    assert get_request_id() == "inner-request"

    clear_request_id(inner)
    assert get_request_id() == "outer-request"
    clear_request_id(outer)
    assert get_request_id() == ""


def test_log_filter_stamps_records() -> None:
    record = logging.LogRecord("treehole", logging.INFO, __file__, 1, "hello", None, None)
    log_filter = RequestIdLogFilter()

    assert log_filter.filter(record) is True
    assert record.request_id == "-"

    token = set_request_id("req-logging")
    try:
        log_filter.filter(record)
    finally:
        clear_request_id(token)
    assert record.request_id == "req-logging"
