"""
Tests for logging setup and request context binding.
"""

import logging

import structlog

from liveroom.core.logging import bind_request_context, setup_logging


def test_setup_can_run_repeatedly():
    setup_logging()
    setup_logging()

    ours = [h for h in logging.getLogger().handlers if isinstance(h.formatter, structlog.stdlib.ProcessorFormatter)]
    assert len(ours) == 1
    assert logging.getLogger("redis").level == logging.WARNING


def test_bind_request_context_replaces_previous_fields():
    bind_request_context("req-1", user_id="u1", room_id="r1", path="/gate")
    request_id = bind_request_context(user_id="u2")

    context = structlog.contextvars.get_contextvars()
    assert context["request_id"] == request_id
    assert len(request_id) == 8
    assert context["user_id"] == "u2"
    assert "room_id" not in context
    assert "path" not in context
    structlog.contextvars.clear_contextvars()
