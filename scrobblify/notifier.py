"""
Operator alerts.

- WebhookNotifier POSTs a JSON body to NOTIFY_WEBHOOK_URL.
- GotifyNotifier POSTs to GOTIFY_URL/message with an app token.
- Each respects its own minimum level; sending is best-effort and never raises.
"""

from __future__ import annotations
import logging

import requests

log = logging.getLogger("notifier")

_LEVELS = {"DEBUG": 10, "INFO": 20, "WARNING": 30, "ERROR": 40, "CRITICAL": 50}
DEFAULT_APP_TAG = "Spotify→scrobblify"


def _level(name: str) -> int:
    return _LEVELS.get(name.upper(), 30)


class WebhookNotifier:
    def __init__(self, webhook_url: str | None, min_level: str = "WARNING", app_tag: str = DEFAULT_APP_TAG,
                 timeout: float = 5):
        self.webhook_url = webhook_url.strip() if webhook_url else None
        self.min_level = _level(min_level)
        self.app_tag = app_tag
        self.timeout = timeout

    def send(self, level: str, title: str, message: str, extra: dict | None = None) -> bool:
        if not self.webhook_url or _level(level) < self.min_level:
            return False

        payload = {
            "level": level.upper(),
            "title": f"{self.app_tag}: {title}",
            "message": message,
            "extra": extra or {},
        }
        try:
            requests.post(self.webhook_url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            log.debug("Webhook send failed: %s", e)
            return False
        return True


class GotifyNotifier:
    def __init__(self, url: str | None, token: str | None, min_level: str = "WARNING",
                 default_priority: int = 5, app_tag: str = DEFAULT_APP_TAG, timeout: float = 5):
        self.url = url.rstrip("/") if url else None
        self.token = token.strip() if token else None
        self.min_level = _level(min_level)
        self.default_priority = default_priority
        self.app_tag = app_tag
        self.timeout = timeout

    def send(self, level: str, title: str, message: str, extra: dict | None = None) -> bool:
        if not self.url or not self.token or _level(level) < self.min_level:
            return False

        body = {
            "title": f"{self.app_tag}: {title}",
            "message": message if not extra else f"{message}\n\n{extra}",
            "priority": self.default_priority,
        }
        try:
            requests.post(f"{self.url}/message", json=body, headers={"X-Gotify-Key": self.token},
                          timeout=self.timeout)
        except requests.RequestException as e:
            log.debug("Gotify send failed: %s", e)
            return False
        return True


class Alerter:
    """Fans an alert out to every configured notifier."""

    def __init__(self, *notifiers):
        self.notifiers = notifiers

    def __call__(self, level: str, title: str, message: str, extra: dict | None = None) -> None:
        for notifier in self.notifiers:
            notifier.send(level, title, message, extra)


def from_settings(settings) -> Alerter:
    return Alerter(
        WebhookNotifier(settings.notify_webhook_url, settings.notify_min_level, settings.app_tag),
        GotifyNotifier(settings.gotify_url, settings.gotify_token, settings.gotify_min_level,
                       settings.gotify_priority, settings.app_tag),
    )
