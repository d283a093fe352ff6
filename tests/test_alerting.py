"""
Webhook alert delivery tests.

Verifies:
1. Unset webhook makes notify a no-op
2. Mass mentions are neutralized before sending
3. Payload is truncated to the configured length
4. Delivery failures are logged, never raised
5. Config loading honours ${VAR} expansion and webhook_env
"""

import json
import socket
import urllib.error
from http.client import RemoteDisconnected
from unittest.mock import MagicMock, Mock, patch

import pytest

from infra.alerting import AlertConfig, AlertService, sanitize


@pytest.fixture
def alert_config():
    """Create test alert configuration."""
    return AlertConfig(enabled=True, webhook_url="https://test.webhook.com/alert", timeout=5.0)


@pytest.fixture
def alert_service(alert_config):
    return AlertService(alert_config)


@pytest.fixture
def mock_urllib():
    """Mock urllib for testing webhook calls."""
    with patch('infra.alerting.urllib.request.urlopen') as mock_urlopen:
        mock_response = MagicMock()
        mock_response.status = 204
        mock_response.__enter__ = Mock(return_value=mock_response)
        mock_response.__exit__ = Mock(return_value=False)
        mock_urlopen.return_value = mock_response
        yield mock_urlopen


def _sent_payload(mock_urlopen):
    request = mock_urlopen.call_args[0][0]
    return json.loads(request.data.decode("utf-8"))


class TestSanitize:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("@everyone buy", "[@everyone] buy"),
            ("hey @here", "hey [@here]"),
            ("@EveryOne", "[@EveryOne]"),
            ("  plain  ", "plain"),
            ("line one   \nline two", "line one\nline two"),
            ("line one\n\n\nline two", "line one\nline two"),
        ],
    )
    def test_neutralizes_mentions(self, text, expected):
        assert sanitize(text) == expected


class TestNotify:
    def test_posts_content(self, alert_service, mock_urllib):
        assert alert_service.notify("🚀 SOXL breakout!") is True

        mock_urllib.assert_called_once()
        assert mock_urllib.call_args.kwargs["timeout"] == 5.0
        request = mock_urllib.call_args[0][0]
        assert request.full_url == "https://test.webhook.com/alert"
        assert request.get_header("Content-type") == "application/json"
        assert _sent_payload(mock_urllib) == {"content": "🚀 SOXL breakout!"}

    def test_mentions_neutralized_in_payload(self, alert_service, mock_urllib):
        alert_service.notify("@everyone BTC oversold @here")
        assert _sent_payload(mock_urllib)["content"] == "[@everyone] BTC oversold [@here]"

    def test_truncates_long_messages(self, mock_urllib):
        service = AlertService(AlertConfig(enabled=True, webhook_url="https://x", max_length=10))
        service.notify("a" * 50)
        assert _sent_payload(mock_urllib)["content"] == "a" * 10

    def test_unset_webhook_is_noop(self, mock_urllib):
        service = AlertService(AlertConfig(enabled=True, webhook_url=None))
        assert service.is_enabled() is False
        assert service.notify("hello") is False
        mock_urllib.assert_not_called()

    def test_disabled_is_noop(self, mock_urllib):
        service = AlertService(AlertConfig(enabled=False, webhook_url="https://x"))
        assert service.notify("hello") is False
        mock_urllib.assert_not_called()

    def test_dry_run_logs_only(self, mock_urllib, caplog):
        service = AlertService(AlertConfig(enabled=True, webhook_url="https://x", dry_run=True))
        with caplog.at_level("INFO"):
            assert service.notify("@here test") is True
        mock_urllib.assert_not_called()
        assert "[ALERT] [@here] test" in caplog.text

    @pytest.mark.parametrize(
        "error",
        [
            urllib.error.URLError("connection refused"),
            urllib.error.HTTPError("https://x", 429, "Too Many Requests", {}, None),
            socket.timeout("timed out"),
            RemoteDisconnected("Remote end closed connection without response"),
            OSError("network unreachable"),
        ],
    )
    def test_delivery_failure_is_swallowed(self, alert_service, mock_urllib, error, caplog):
        mock_urllib.side_effect = error
        assert alert_service.notify("hello") is False
        assert "Failed to deliver alert" in caplog.text

    def test_url_without_scheme_is_swallowed(self, mock_urllib, caplog):
        service = AlertService(AlertConfig(enabled=True, webhook_url="discord.example/api/webhooks/x"))
        assert service.notify("hello") is False
        mock_urllib.assert_not_called()
        assert "Failed to deliver alert" in caplog.text

    def test_http_error_status(self, alert_service, mock_urllib):
        mock_urllib.return_value.status = 500
        assert alert_service.notify("hello") is False


class TestFromConfig:
    def test_expands_env_reference(self, monkeypatch):
        monkeypatch.setenv("DISCORD_WEBHOOK_URL", "https://discord.example/hook")
        service = AlertService.from_config({"webhook_url": "${DISCORD_WEBHOOK_URL}"})
        assert service.is_enabled()
        assert service._config.webhook_url == "https://discord.example/hook"

    def test_unresolved_reference_disables(self):
        service = AlertService.from_config({"webhook_url": "${DISCORD_WEBHOOK_URL}"})
        assert service.is_enabled() is False

    def test_webhook_env(self, monkeypatch):
        monkeypatch.setenv("MY_HOOK", "https://hook")
        service = AlertService.from_config({"webhook_env": "MY_HOOK", "timeout_seconds": 3})
        assert service.is_enabled()
        assert service._config.timeout == 3.0

    def test_empty_config(self):
        assert AlertService.from_config(None).is_enabled() is False
