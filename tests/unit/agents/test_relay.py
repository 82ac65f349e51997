"""
Tests for the server-side question relay.
"""
from unittest.mock import MagicMock

import requests

from agents.relay import ConvexRelay, DisabledRelay, STREAM_ASSISTANT_ACTION, create_relay
from infrastructure.context_store import ConvexHTTPClient


def http_session(value=None, status="success", error=None):
    """A requests.Session stand-in returning one Convex response body."""
    response = MagicMock()
    response.json.return_value = {"status": status, "value": value, "errorMessage": "bad"}
    response.raise_for_status.return_value = None
    session = MagicMock(spec=requests.Session)
    if error is not None:
        session.post.side_effect = error
    else:
        session.post.return_value = response
    return session


def relay_with(session):
    return ConvexRelay(None, client=ConvexHTTPClient("https://example.convex.cloud", session=session))


class TestCreateRelay:
    def test_disabled_without_flag(self):
        assert isinstance(create_relay("https://example.convex.cloud", enabled=False), DisabledRelay)

    def test_disabled_without_url(self):
        assert isinstance(create_relay(None, enabled=True), DisabledRelay)

    def test_enabled(self):
        relay = create_relay("https://example.convex.cloud", enabled=True)
        assert isinstance(relay, ConvexRelay)
        assert relay.enabled


class TestConvexRelay:
    def test_ok_returns_text(self):
        session = http_session(value={"ok": True, "text": "  Which platforms?  "})
        text = relay_with(session).generate("conv-1", "sys", "usr", provider="openai", model="gpt-4o", agent_id="a1")

        assert text == "Which platforms?"
        url = session.post.call_args.args[0]
        body = session.post.call_args.kwargs["json"]
        assert url == "https://example.convex.cloud/api/action"
        assert body["path"] == STREAM_ASSISTANT_ACTION
        assert body["args"] == {
            "sessionId": "conv-1",
            "provider": "openai",
            "system": "sys",
            "user": "usr",
            "model": "gpt-4o",
            "agentId": "a1",
        }

    def test_not_ok_is_unavailable(self):
        session = http_session(value={"ok": False})
        assert relay_with(session).generate("conv-1", "s", "u", provider="openai") is None

    def test_blank_text_is_unavailable(self):
        session = http_session(value={"ok": True, "text": "  "})
        assert relay_with(session).generate("conv-1", "s", "u", provider="openai") is None

    def test_error_status_is_unavailable(self):
        session = http_session(status="error")
        assert relay_with(session).generate("conv-1", "s", "u", provider="openai") is None

    def test_network_error_is_unavailable(self):
        session = http_session(error=requests.ConnectionError("down"))
        assert relay_with(session).generate("conv-1", "s", "u", provider="anthropic") is None

    def test_disabled_never_calls(self):
        session = http_session(value={"ok": True, "text": "q"})
        relay = ConvexRelay(None, enabled=False, client=ConvexHTTPClient("https://x", session=session))
        assert relay.generate("conv-1", "s", "u", provider="openai") is None
        session.post.assert_not_called()
