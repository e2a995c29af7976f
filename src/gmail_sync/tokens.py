"""OAuth token lifecycle: expiry check, refresh and persistence."""

from __future__ import annotations

import time
from typing import Callable, Protocol

import structlog

from gmail_sync.config import Settings
from gmail_sync.exceptions import AuthenticationError, ConfigurationError
from gmail_sync.gmail.client import MailClient
from gmail_sync.gmail.oauth import build_gmail_client
from gmail_sync.models import Token
from gmail_sync.store import AccountRepository

logger = structlog.get_logger()


class TokenRefresher(Protocol):
    async def refresh_token(self, refresh_token: str) -> Token: ...


ClientFactory = Callable[[Token], MailClient]


def _now_ms() -> int:
    return int(time.time() * 1000)


class TokenManager:
    """Keeps per-account access tokens usable for Gmail calls."""

    def __init__(
        self,
        accounts: AccountRepository,
        oauth: TokenRefresher,
        settings: Settings | None = None,
        client_factory: ClientFactory | None = None,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        from gmail_sync.config import get_settings

        self.settings = settings or get_settings()
        self._accounts = accounts
        self._oauth = oauth
        self._client_factory = client_factory or (
            lambda token: build_gmail_client(token, self.settings)
        )
        self._clock = clock

    async def valid_token(self, account_id: str) -> Token | None:
        """Return a non-expired token for the account.

        Returns:
            The stored token, a refreshed and persisted token if the stored one
            had expired, or None if the account does not exist or has not
            completed OAuth.

        Raises:
            AuthenticationError: If the token expired and could not be
                refreshed. Nothing is persisted in that case.
        """

        account = self._accounts.get(account_id)
        if account is None:
            return None

        token = account.token
        if token is None:
            return None

        if not token.is_expired(self._clock()):
            return token

        if not token.refresh_token:
            raise AuthenticationError(f"Token for account {account_id} expired without a refresh token")

        logger.info("token_refresh_started", account_id=account_id)
        refreshed = await self._oauth.refresh_token(token.refresh_token)
        merged = token.merged_with(refreshed)

        self._accounts.save_token(account_id, merged)
        logger.info("token_refresh_completed", account_id=account_id, expiry_date=merged.expiry_date)
        return merged

    async def prepare_client(self, account_id: str) -> MailClient | None:
        """Return a Gmail client for the account, or None if it cannot be used now."""

        try:
            token = await self.valid_token(account_id)
        except (AuthenticationError, ConfigurationError) as exc:
            logger.warning("prepare_client_failed", account_id=account_id, error=str(exc))
            return None

        if token is None:
            logger.info("prepare_client_no_token", account_id=account_id)
            return None

        return self._client_factory(token)
