"""
Tests for the HTTP command/health server.

Runs a real server on an ephemeral port and talks to it with urllib.
"""

import http.client
import json
import urllib.error
import urllib.request

import pytest

from infra.command_server import CommandServer


class FakeHandler:
    def __init__(self):
        self.calls = []

    def __call__(self, user, text):
        self.calls.append((user, text))
        if text == "!ping":
            return "pong"
        return None


@pytest.fixture
def status():
    return {"ok": True, "cycles_run": 2}


@pytest.fixture
def handler():
    return FakeHandler()


@pytest.fixture
def server(handler, status):
    srv = CommandServer(0, handler, lambda: status)
    srv.start()
    try:
        yield srv
    finally:
        srv.stop()


def _url(server, path):
    return f"http://127.0.0.1:{server.port}{path}"


def _get(server, path):
    try:
        with urllib.request.urlopen(_url(server, path), timeout=5) as response:
            return response.status, json.loads(response.read().decode("utf-8"))
    except urllib.error.HTTPError as exc:
        return exc.code, json.loads(exc.read().decode("utf-8"))


def _post(server, path, body):
    data = body if isinstance(body, bytes) else json.dumps(body).encode("utf-8")
    request = urllib.request.Request(
        _url(server, path), data=data, headers={"Content-Type": "application/json"}, method="POST"
    )
    try:
        with urllib.request.urlopen(request, timeout=5) as response:
            return response.status, json.loads(response.read().decode("utf-8"))
    except urllib.error.HTTPError as exc:
        return exc.code, json.loads(exc.read().decode("utf-8"))


class TestLifecycle:
    def test_port_none_until_started(self, handler):
        srv = CommandServer(0, handler, dict)
        assert srv.port is None

    def test_stop_is_idempotent(self, handler):
        srv = CommandServer(0, handler, dict)
        srv.stop()
        srv.start()
        assert srv.port
        srv.stop()
        srv.stop()
        assert srv.port is None


class TestHealth:
    @pytest.mark.parametrize("path", ["/", "/health", "/healthz"])
    def test_healthy(self, server, path):
        code, payload = _get(server, path)
        assert code == 200
        assert payload == {"ok": True, "cycles_run": 2}

    def test_unhealthy_is_503(self, server, status):
        status["ok"] = False
        code, payload = _get(server, "/health")
        assert code == 503
        assert payload["ok"] is False

    def test_unknown_path(self, server):
        code, payload = _get(server, "/metrics")
        assert code == 404
        assert payload == {"ok": False, "error": "not found"}


class TestCommand:
    def test_reply(self, server, handler):
        code, payload = _post(server, "/command", {"user": 42, "text": "!ping"})
        assert code == 200
        assert payload == {"ok": True, "reply": "pong"}
        assert handler.calls == [("42", "!ping")]

    def test_missing_user_is_empty_string(self, server, handler):
        _post(server, "/command", {"text": "!ping"})
        assert handler.calls == [("", "!ping")]

    def test_unknown_command(self, server):
        code, payload = _post(server, "/command", {"user": "1", "text": "hello"})
        assert code == 404
        assert payload["error"] == "unknown command"

    def test_invalid_json(self, server, handler):
        code, payload = _post(server, "/command", b"{not json")
        assert code == 400
        assert payload["error"] == "invalid JSON"
        assert handler.calls == []

    @pytest.mark.parametrize("body", [["!ping"], {"user": "1"}, {"user": "1", "text": 5}])
    def test_wrong_shape(self, server, body):
        code, payload = _post(server, "/command", body)
        assert code == 400
        assert payload["ok"] is False

    def test_wrong_path(self, server):
        code, _ = _post(server, "/cmd", {"text": "!ping"})
        assert code == 404

    @pytest.mark.parametrize("length", ["abc", "0", "99999999"])
    def test_bad_content_length(self, server, handler, length):
        conn = http.client.HTTPConnection("127.0.0.1", server.port, timeout=5)
        try:
            conn.putrequest("POST", "/command")
            conn.putheader("Content-Type", "application/json")
            conn.putheader("Content-Length", length)
            conn.endheaders()
            response = conn.getresponse()
            payload = json.loads(response.read().decode("utf-8"))
        finally:
            conn.close()

        assert response.status == 400
        assert payload == {"ok": False, "error": "invalid body length"}
        assert handler.calls == []
