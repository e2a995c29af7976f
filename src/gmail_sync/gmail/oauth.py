"""OAuth2 web flow and Gmail client construction.

The provider reads the OAuth web client secrets file on every call instead of
holding a process-wide client; tokens are passed around as plain values.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import structlog
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials

from gmail_sync.config import Settings
from gmail_sync.exceptions import AuthenticationError, ConfigurationError
from gmail_sync.gmail.client import GmailClient
from gmail_sync.models import Token

logger = structlog.get_logger()

DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"


def expiry_to_millis(expiry: datetime | None) -> int | None:
    """Convert google-auth's naive-UTC expiry into epoch milliseconds."""

    if expiry is None:
        return None
    if expiry.tzinfo is None:
        expiry = expiry.replace(tzinfo=timezone.utc)
    return int(expiry.timestamp() * 1000)


def credentials_to_token(creds: Credentials) -> Token:
    scopes = getattr(creds, "granted_scopes", None) or creds.scopes or []
    return Token(
        access_token=creds.token,
        refresh_token=creds.refresh_token,
        scope=" ".join(scopes) or None,
        token_type="Bearer",
        expiry_date=expiry_to_millis(creds.expiry),
    )


def build_gmail_client(token: Token, settings: Settings | None = None) -> GmailClient:
    """Return a Gmail client authorized with ``token``'s access token."""

    return GmailClient(Credentials(token=token.access_token), settings=settings)


class GoogleOAuthProvider:
    """Google OAuth2 web-server flow for connecting Gmail accounts."""

    def __init__(self, settings: Settings | None = None) -> None:
        from gmail_sync.config import get_settings

        self.settings = settings or get_settings()

    def build_auth_url(self, scopes: list[str], state: str) -> str:
        """Return the consent URL; ``state`` comes back on the redirect."""

        flow = self._flow(scopes)
        url, _ = flow.authorization_url(
            access_type="offline",
            prompt="consent",
            include_granted_scopes="true",
            state=state,
        )
        return url

    async def exchange_code(self, code: str) -> Token:
        """Exchange an authorization code for tokens.

        Raises:
            AuthenticationError: If the provider rejects the code.
        """

        flow = self._flow(None)
        try:
            await asyncio.to_thread(flow.fetch_token, code=code)
        except Exception as exc:  # noqa: BLE001
            logger.warning("oauth_code_exchange_failed", error=str(exc))
            raise AuthenticationError(str(exc)) from exc

        return credentials_to_token(flow.credentials)

    async def refresh_token(self, refresh_token: str) -> Token:
        """Obtain a fresh access token.

        Callers merge the result with the stored token so that fields the
        provider omits keep their previous values.

        Raises:
            AuthenticationError: If the provider rejects the refresh token.
        """

        config = self._client_config()
        creds = Credentials(
            token=None,
            refresh_token=refresh_token,
            token_uri=config.get("token_uri", DEFAULT_TOKEN_URI),
            client_id=config.get("client_id"),
            client_secret=config.get("client_secret"),
        )
        try:
            await asyncio.to_thread(creds.refresh, Request())
        except GoogleAuthError as exc:
            logger.warning("oauth_refresh_failed", error=str(exc))
            raise AuthenticationError(str(exc)) from exc

        return credentials_to_token(creds)

    def _flow(self, scopes: list[str] | None) -> Any:
        from google_auth_oauthlib.flow import Flow

        path = self._secrets_path()
        return Flow.from_client_secrets_file(
            str(path),
            scopes=scopes,
            redirect_uri=self._redirect_uri(),
            autogenerate_code_verifier=False,
        )

    def _redirect_uri(self) -> str | None:
        if self.settings.gmail_redirect_uri:
            return self.settings.gmail_redirect_uri
        uris = self._client_config().get("redirect_uris") or []
        return uris[0] if uris else None

    def _client_config(self) -> dict[str, Any]:
        path = self._secrets_path()
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ConfigurationError(f"Unreadable OAuth secrets file {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigurationError(f"OAuth secrets file is not a JSON object: {path}")
        config = data.get("web") or data.get("installed")
        if not isinstance(config, dict):
            raise ConfigurationError(f"No 'web' client in OAuth secrets file: {path}")
        return config

    def _secrets_path(self) -> Path:
        path = Path(self.settings.gmail_credentials_path)
        if not path.exists():
            raise ConfigurationError(f"Gmail credentials file not found: {path}")
        return path
