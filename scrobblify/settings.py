"""Runtime settings, loaded from environment variables."""

import logging
import os
from dataclasses import dataclass
from enum import Enum


class FailurePolicy(str, Enum):
    DROP = "drop"
    QUEUE = "queue"


def _bool(value: str | None) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    # Spotify
    spotify_client_id: str | None
    spotify_client_secret: str | None
    spotify_redirect_uri: str | None
    token_cache_path: str

    # Storage
    database_path: str

    # Polling
    poll_interval: int
    source_timeout: float
    backfill_on_scrobble: bool

    # Ingestion failures
    failure_policy: FailurePolicy
    scrobble_cache_path: str
    scrobble_cache_limit: int

    log_level: str = "INFO"

    # Alerts
    notify_webhook_url: str | None = None
    notify_min_level: str = "WARNING"
    gotify_url: str | None = None
    gotify_token: str | None = None
    gotify_priority: int = 5
    gotify_min_level: str = "WARNING"
    app_tag: str = "Spotify→scrobblify"

    @staticmethod
    def from_environment() -> "Settings":
        policy = os.getenv("INGEST_FAILURE_POLICY", "drop").strip().lower()
        try:
            failure_policy = FailurePolicy(policy)
        except ValueError:
            raise SystemExit(f"INGEST_FAILURE_POLICY must be 'drop' or 'queue', got {policy!r}")

        return Settings(
            spotify_client_id=os.getenv("SCROBBLIFY_SPOTIFY_CLIENT_ID"),
            spotify_client_secret=os.getenv("SCROBBLIFY_SPOTIFY_CLIENT_SECRET"),
            spotify_redirect_uri=os.getenv("SCROBBLIFY_SPOTIFY_AUTH_CALLBACK_URI"),
            token_cache_path=os.getenv("SCROBBLIFY_TOKEN_CACHE", ".spotify_cache/scrobblify"),
            database_path=os.getenv("SCROBBLIFY_DATABASE", "scrobblify.db"),
            poll_interval=max(1, int(os.getenv("POLL_INTERVAL", "60"))),
            source_timeout=float(os.getenv("SOURCE_TIMEOUT", "10")),
            backfill_on_scrobble=_bool(os.getenv("BACKFILL_ON_SCROBBLE")),
            failure_policy=failure_policy,
            scrobble_cache_path=os.getenv("SCROBBLE_CACHE_PATH", "data/scrobble_queue.json"),
            scrobble_cache_limit=int(os.getenv("SCROBBLE_CACHE_LIMIT", "500")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            notify_webhook_url=os.getenv("NOTIFY_WEBHOOK_URL"),
            notify_min_level=os.getenv("NOTIFY_MIN_LEVEL", "WARNING"),
            gotify_url=os.getenv("GOTIFY_URL"),
            gotify_token=os.getenv("GOTIFY_TOKEN"),
            gotify_priority=int(os.getenv("GOTIFY_PRIORITY", "5")),
            gotify_min_level=os.getenv("GOTIFY_MIN_LEVEL", "WARNING"),
            app_tag=os.getenv("APP_TAG", "Spotify→scrobblify"),
        )

    def validate(self, logger: logging.Logger) -> None:
        """Exit on missing required values; warn about disabled optional features."""
        missing = [
            name for name, value in (
                ("SCROBBLIFY_SPOTIFY_CLIENT_ID", self.spotify_client_id),
                ("SCROBBLIFY_SPOTIFY_CLIENT_SECRET", self.spotify_client_secret),
                ("SCROBBLIFY_SPOTIFY_AUTH_CALLBACK_URI", self.spotify_redirect_uri),
            ) if not value
        ]
        if missing:
            raise SystemExit(f"{', '.join(missing)} must be set")

        if not self.notify_webhook_url and not (self.gotify_url and self.gotify_token):
            logger.warning("No NOTIFY_WEBHOOK_URL or GOTIFY_URL/GOTIFY_TOKEN set; alerts are log-only")
        if self.failure_policy is FailurePolicy.DROP:
            logger.info("INGEST_FAILURE_POLICY=drop: scrobbles that fail to store are lost")
