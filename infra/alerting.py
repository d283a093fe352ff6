"""Webhook notifications for fired signals (Discord-compatible payloads)."""

from __future__ import annotations

import json
import logging
import os
import re
import socket
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

# Discord rejects content over 2000 chars
MAX_CONTENT_LENGTH = 1900

_MASS_MENTIONS = re.compile(r"@(everyone|here)", re.IGNORECASE)
_TRAILING_SPACE = re.compile(r"\s+\n")


@dataclass
class AlertConfig:
    enabled: bool
    webhook_url: Optional[str]
    dry_run: bool = False
    timeout: float = 10.0
    max_length: int = MAX_CONTENT_LENGTH


def sanitize(text: str) -> str:
    """Neutralize @everyone/@here mentions and trim stray whitespace."""
    cleaned = _MASS_MENTIONS.sub(lambda m: f"[@{m.group(1)}]", str(text))
    cleaned = _TRAILING_SPACE.sub("\n", cleaned)
    return cleaned.strip()


class AlertService:
    """
    Fire-and-forget text notifications.

    Delivery is best effort: an unset webhook makes every call a no-op and
    delivery failures are logged, never raised.
    """

    def __init__(self, config: AlertConfig) -> None:
        self._config = config
        self._enabled = bool(config.enabled and config.webhook_url)
        if config.enabled and not config.webhook_url:
            logger.warning("Alerting enabled but no webhook URL set; alerts will be skipped")

    @classmethod
    def from_config(cls, raw_config: Optional[Dict[str, Any]]) -> "AlertService":
        raw_config = raw_config or {}

        webhook_url = raw_config.get("webhook_url")
        if webhook_url and "${" in webhook_url:
            webhook_url = os.path.expandvars(webhook_url)
            if "${" in webhook_url:
                webhook_url = None

        if not webhook_url:
            env_key = raw_config.get("webhook_env", "DISCORD_WEBHOOK_URL")
            webhook_url = os.getenv(env_key, "")

        config = AlertConfig(
            enabled=bool(raw_config.get("enabled", True)),
            webhook_url=webhook_url or None,
            dry_run=bool(raw_config.get("dry_run", False)),
            timeout=float(raw_config.get("timeout_seconds", 10.0)),
            max_length=int(raw_config.get("max_length", MAX_CONTENT_LENGTH)),
        )
        return cls(config)

    def is_enabled(self) -> bool:
        return self._enabled

    def notify(self, message: str) -> bool:
        """Post ``message`` to the webhook. Returns True when delivered (or logged in dry run)."""
        if not self._enabled:
            return False

        payload = self._build_payload(message, self._config.max_length)

        if self._config.dry_run:
            logger.info("[ALERT] %s", payload["content"])
            return True

        try:
            request = urllib.request.Request(
                self._config.webhook_url,
                data=json.dumps(payload).encode("utf-8"),
                headers={"Content-Type": "application/json"},
            )
            with urllib.request.urlopen(request, timeout=self._config.timeout) as response:
                if response.status >= 400:
                    logger.error("Webhook alert rejected: HTTP %s", response.status)
                    return False
        except (urllib.error.URLError, urllib.error.HTTPError, socket.timeout) as exc:
            logger.error("Failed to deliver alert: %s", exc)
            return False
        except Exception as exc:
            logger.error("Failed to deliver alert: %s", exc, exc_info=True)
            return False
        return True

    @staticmethod
    def _build_payload(message: str, max_length: int = MAX_CONTENT_LENGTH) -> Dict[str, Any]:
        return {"content": sanitize(message)[:max_length]}


__all__ = ["AlertService", "AlertConfig", "sanitize"]
