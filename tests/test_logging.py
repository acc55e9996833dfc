"""Tests for the structlog processors."""

import structlog

from delijn_rt.logging import (
    REDACTED,
    bind_poll_context,
    clear_request_context,
    redact_secrets,
    render_bytes,
)


class TestProcessors:
    """Event dict rewriting."""

    def test_redacts_subscription_key(self) -> None:
        event = {
            "event": "fetch",
            "api_key": "secret",
            "headers": {"Ocp-Apim-Subscription-Key": "secret", "Cache-Control": "no-cache"},
        }
        out = redact_secrets(None, "info", event)
        assert out["api_key"] == REDACTED
        assert out["headers"]["Ocp-Apim-Subscription-Key"] == REDACTED
        assert out["headers"]["Cache-Control"] == "no-cache"

    def test_empty_key_left_alone(self) -> None:
        out = redact_secrets(None, "info", {"api_key": ""})
        assert out["api_key"] == ""

    def test_bytes_rendered_as_hex(self) -> None:
        out = render_bytes(None, "warning", {"payload": b"\x0a\x03", "count": 2})
        assert out["payload"] == "0a 03"
        assert out["count"] == 2


def test_poll_context_bound() -> None:
    clear_request_context()
    bind_poll_context("abcd1234")
    try:
        assert structlog.contextvars.get_contextvars()["poll_id"] == "abcd1234"
    finally:
        clear_request_context()
