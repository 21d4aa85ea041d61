"""
Spotify OAuth token handling.

- Builds the authorize URL and exchanges the callback code for a token.
- Caches the token as JSON on disk and refreshes it when it expires.
"""

from __future__ import annotations
import json
import logging
import os
import threading
import time
from urllib.parse import urlencode

import requests

log = logging.getLogger("auth")

AUTHORIZE_URL = "https://accounts.spotify.com/authorize"
TOKEN_URL = "https://accounts.spotify.com/api/token"
SCOPES = "user-read-recently-played user-read-playback-state user-read-currently-playing"
EXPIRY_MARGIN_SECS = 60


class AuthError(Exception): ...


class SpotifyAuth:
    def __init__(self, client_id: str, client_secret: str, redirect_uri: str,
                 cache_path: str, timeout: float = 10):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.cache_path = cache_path
        self.timeout = timeout
        self._lock = threading.Lock()

    def has_valid_auth(self) -> bool:
        return os.path.isfile(self.cache_path)

    def authorize_url(self) -> str:
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": SCOPES,
            "show_dialog": "true",
        }
        return f"{AUTHORIZE_URL}?{urlencode(params)}"

    def exchange_code(self, code: str) -> None:
        token = self._request_token({
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.redirect_uri,
        })
        with self._lock:
            self._save(token)
        log.info("Spotify token stored at %s", self.cache_path)

    def access_token(self) -> str:
        with self._lock:
            token = self._load()
            if token.get("expires_at", 0) - EXPIRY_MARGIN_SECS <= time.time():
                refresh = token.get("refresh_token")
                if not refresh:
                    raise AuthError("token expired and no refresh token cached")
                log.debug("Refreshing Spotify access token")
                fresh = self._request_token({"grant_type": "refresh_token", "refresh_token": refresh})
                # Spotify may omit the refresh token on refresh
                fresh.setdefault("refresh_token", refresh)
                token = self._save(fresh)
            return token["access_token"]

    # -------- internals --------
    def _request_token(self, data: dict) -> dict:
        try:
            resp = requests.post(
                TOKEN_URL,
                data=data,
                auth=(self.client_id, self.client_secret),
                timeout=self.timeout,
            )
            resp.raise_for_status()
            token = resp.json()
        except requests.RequestException as e:
            raise AuthError(f"token request failed: {e}") from e
        except ValueError as e:
            raise AuthError("token endpoint returned invalid JSON") from e
        if not isinstance(token, dict) or "access_token" not in token:
            raise AuthError("token endpoint returned no access token")
        return token

    def _load(self) -> dict:
        try:
            with open(self.cache_path, "r", encoding="utf-8") as f:
                token = json.load(f)
        except FileNotFoundError as e:
            raise AuthError("not authorized yet; run `scrobblify auth-url`") from e
        except (OSError, ValueError) as e:
            raise AuthError(f"unreadable token cache {self.cache_path}: {e}") from e
        if "access_token" not in token:
            raise AuthError(f"token cache {self.cache_path} has no access token")
        return token

    def _save(self, token: dict) -> dict:
        if "expires_in" in token:
            token["expires_at"] = int(time.time()) + int(token.pop("expires_in"))
        directory = os.path.dirname(self.cache_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        # Write atomically to avoid corruption
        tmp = f"{self.cache_path}.tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(token, f)
        os.replace(tmp, self.cache_path)
        return token
