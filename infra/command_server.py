"""Lightweight HTTP surface for operator commands and health status."""

from __future__ import annotations

import json
import logging
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

# Largest accepted POST body
MAX_BODY_BYTES = 16 * 1024

CommandHandler = Callable[[str, str], Optional[str]]
StatusProvider = Callable[[], Dict[str, Any]]


class CommandServer:
    """
    JSON server with two routes:

    - ``GET /health``: status provider payload (503 when ``ok`` is false)
    - ``POST /command``: ``{"user": ..., "text": "!summary"}`` → ``{"ok": true, "reply": ...}``
    """

    def __init__(self, port: int, command_handler: CommandHandler,
                 status_provider: StatusProvider, host: str = "127.0.0.1"):
        self._host = host
        self._port = int(port)
        self._command_handler = command_handler
        self._status_provider = status_provider
        self._server: Optional[ThreadingHTTPServer] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> Optional[int]:
        if self._server is None:
            return None
        return self._server.server_port

    def start(self) -> None:
        if self._thread:
            return

        handler_cls = self._build_handler(self._command_handler, self._status_provider)
        self._server = ThreadingHTTPServer((self._host, self._port), handler_cls)
        self._thread = threading.Thread(target=self._server.serve_forever, name="CommandServer", daemon=True)
        self._thread.start()
        logger.info("Command server listening on %s:%s", self._host, self._server.server_port)

    def stop(self) -> None:
        if not self._server:
            return
        try:
            self._server.shutdown()
            self._server.server_close()
        except OSError as exc:
            logger.warning("Failed shutting down command server: %s", exc)
        if self._thread:
            self._thread.join(timeout=3)
        self._thread = None
        self._server = None

    @staticmethod
    def _build_handler(command_handler: CommandHandler, status_provider: StatusProvider):
        class CommandRequestHandler(BaseHTTPRequestHandler):
            def _send_json(self, status: int, payload: Dict[str, Any]) -> None:
                body = json.dumps(payload).encode("utf-8")
                self.send_response(status)
                self.send_header("Content-Type", "application/json")
                self.send_header("Content-Length", str(len(body)))
                self.end_headers()
                self.wfile.write(body)

            def do_GET(self):  # type: ignore[override]
                if self.path not in ("/", "/health", "/healthz"):
                    self._send_json(404, {"ok": False, "error": "not found"})
                    return

                payload = status_provider() or {}
                ok = bool(payload.get("ok", True))
                self._send_json(200 if ok else 503, payload)

            def do_POST(self):  # type: ignore[override]
                if self.path != "/command":
                    self._send_json(404, {"ok": False, "error": "not found"})
                    return

                try:
                    length = int(self.headers.get("Content-Length") or 0)
                except ValueError:
                    length = 0
                if length <= 0 or length > MAX_BODY_BYTES:
                    self._send_json(400, {"ok": False, "error": "invalid body length"})
                    return

                try:
                    request = json.loads(self.rfile.read(length).decode("utf-8"))
                except (UnicodeDecodeError, json.JSONDecodeError):
                    self._send_json(400, {"ok": False, "error": "invalid JSON"})
                    return
                if not isinstance(request, dict) or not isinstance(request.get("text"), str):
                    self._send_json(400, {"ok": False, "error": "expected {\"user\", \"text\"}"})
                    return

                user = str(request.get("user", ""))
                reply = command_handler(user, request["text"])
                if reply is None:
                    self._send_json(404, {"ok": False, "error": "unknown command"})
                    return
                self._send_json(200, {"ok": True, "reply": reply})

            def log_message(self, format: str, *args: Any) -> None:  # pragma: no cover - suppress noisy logs
                return

        return CommandRequestHandler


__all__ = ["CommandServer"]
