"""
Lifecycle management for MercadoLibre OAuth tokens.

Covers the authorization handshake, on-demand and scheduled refresh, and
disconnect. Refreshes of the same token are serialized: the provider rotates
refresh tokens, so two concurrent refresh grants for one token would leave one
caller holding an already-invalidated credential.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Callable, Dict, List, Optional, Tuple, TYPE_CHECKING

from app.clients.mercadolibre import InvalidOAuthStateError, RemoteApiError
from app.core.config import OAuthSettings
from app.models.oauth import MarketplaceToken
from app.schemas import RemoteUserInfo
from app.services.token_cipher import TokenDecryptionError

if TYPE_CHECKING:  # pragma: no cover - type hints only
    from app.clients.mercadolibre import MercadoLibreClient, OAuthStateEncoder
    from app.clients.token_store import SQLiteTokenStore

logger = logging.getLogger(__name__)


class RemoteAuthError(Exception):
    """Raised when a step of the OAuth handshake fails remotely."""


class RefreshFailedError(Exception):
    """Raised when a token cannot be refreshed; the user must re-authorize."""


class NotConnectedError(Exception):
    """Raised when the user has no active marketplace connection."""


class TokenNotFoundError(Exception):
    """Raised when a token id does not exist."""


class KeyedLocks:
    """Hands out one ``asyncio.Lock`` per key."""

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}

    def get(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        async with self.get(key):
            yield


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class MarketplaceTokenService:
    """Owns every mutation of stored marketplace tokens."""

    def __init__(
        self,
        store: "SQLiteTokenStore",
        client: "MercadoLibreClient",
        state_encoder: "OAuthStateEncoder",
        oauth_settings: OAuthSettings,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._store = store
        self._client = client
        self._state = state_encoder
        self._state_ttl = timedelta(seconds=oauth_settings.state_ttl_seconds)
        self._refresh_lead = timedelta(seconds=oauth_settings.refresh_lead_seconds)
        self._now = clock or _utcnow
        self._locks = KeyedLocks()

    def generate_authorization_url(self, local_user_id: str) -> Tuple[str, str]:
        """Return the consent URL and the signed state embedded in it."""
        state = self._state.encode(
            {
                "user_id": local_user_id,
                "nonce": uuid.uuid4().hex,
                "issued_at": self._now().isoformat(),
            }
        )
        return self._client.build_authorization_url(state), state

    async def complete_authorization(
        self, code: str, state: str
    ) -> Tuple[MarketplaceToken, RemoteUserInfo]:
        """
        Finish the handshake and upsert the user's token record.

        The state is verified before any remote call. Nothing is persisted
        unless both the code exchange and the user info fetch succeed.
        """
        local_user_id = self._user_from_state(state)

        try:
            auth = await self._client.exchange_code(code)
            received_at = self._now()
            user_info = await self._client.fetch_user_info(auth.access_token)
        except RemoteApiError as exc:
            logger.warning(
                "OAuth handshake failed",
                extra={"user_id": local_user_id, "status_code": exc.status_code},
            )
            raise RemoteAuthError(f"MercadoLibre authorization failed: {exc}") from exc

        if not auth.refresh_token:
            raise RemoteAuthError(
                "MercadoLibre did not issue a refresh token; offline access is required."
            )

        existing = self._store.find_identity(local_user_id)
        lock_key = existing.id if existing else f"user:{local_user_id}"
        async with self._locks.hold(lock_key):
            existing = self._store.find_identity(local_user_id)
            token = MarketplaceToken(
                id=existing.id if existing else uuid.uuid4().hex,
                local_user_id=local_user_id,
                remote_user_id=auth.user_id or user_info.id,
                access_token=auth.access_token,
                refresh_token=auth.refresh_token,
                expires_at=received_at + timedelta(seconds=auth.expires_in),
                is_active=True,
                scopes=auth.scopes,
                created_at=existing.created_at if existing else received_at,
                updated_at=received_at,
                last_refresh_at=received_at,
            )
            self._store.put(token)

        logger.info(
            "Linked MercadoLibre account",
            extra={"user_id": local_user_id, "remote_user_id": token.remote_user_id},
        )
        return token, user_info

    def needs_refresh(self, token: MarketplaceToken, now: Optional[datetime] = None) -> bool:
        """True once ``now`` reaches ``expires_at`` minus the refresh lead time."""
        current = _as_aware(now or self._now())
        return current >= _as_aware(token.expires_at) - self._refresh_lead

    async def refresh(self, token_id: str) -> MarketplaceToken:
        """Unconditionally refresh a token."""
        async with self._locks.hold(token_id):
            return await self._refresh_locked(token_id)

    async def refresh_if_needed(self, token_id: str) -> MarketplaceToken:
        """
        Refresh only if the token is still stale once the lock is held.

        A caller that waited on a concurrent refresh gets the rotated token
        instead of issuing a second grant.
        """
        async with self._locks.hold(token_id):
            token = self._store.get(token_id)
            if token is None:
                raise TokenNotFoundError(f"Token {token_id} not found")
            if token.is_active and not self.needs_refresh(token):
                return token
            return await self._refresh_locked(token_id)

    async def get_active_token(self, local_user_id: str) -> MarketplaceToken:
        """Return a usable token for the user, refreshing it first when stale."""
        token = self._find_active(local_user_id)
        if self.needs_refresh(token):
            return await self.refresh_if_needed(token.id)
        return token

    async def force_refresh(self, local_user_id: str) -> MarketplaceToken:
        token = self._find_active(local_user_id)
        return await self.refresh(token.id)

    async def disconnect(self, local_user_id: str) -> None:
        """Deactivate the user's token. No-op when there is nothing to disconnect."""
        identity = self._store.find_identity(local_user_id)
        if identity is None or not identity.is_active:
            return
        async with self._locks.hold(identity.id):
            if not self._store.deactivate(identity.id, self._now()):
                return
        logger.info("Disconnected MercadoLibre account", extra={"user_id": local_user_id})

    def list_active_tokens(self) -> List[MarketplaceToken]:
        return self._store.list_active()

    async def _refresh_locked(self, token_id: str) -> MarketplaceToken:
        token = self._store.get(token_id)
        if token is None:
            raise TokenNotFoundError(f"Token {token_id} not found")
        if not token.is_active:
            raise RefreshFailedError(
                "MercadoLibre token is inactive; the user must authorize again."
            )

        try:
            auth = await self._client.refresh_token(token.refresh_token)
        except RemoteApiError as exc:
            self._store.put(
                token.model_copy(update={"is_active": False, "updated_at": self._now()})
            )
            logger.warning(
                "Token refresh rejected, deactivating",
                extra={
                    "token_id": token_id,
                    "user_id": token.local_user_id,
                    "status_code": exc.status_code,
                },
            )
            raise RefreshFailedError(
                f"Could not refresh the MercadoLibre token: {exc}"
            ) from exc

        refreshed_at = self._now()
        refreshed = token.model_copy(
            update={
                "access_token": auth.access_token,
                "refresh_token": auth.refresh_token or token.refresh_token,
                "expires_at": refreshed_at + timedelta(seconds=auth.expires_in),
                "updated_at": refreshed_at,
                "last_refresh_at": refreshed_at,
            }
        )
        self._store.put(refreshed)
        logger.info(
            "Refreshed MercadoLibre token",
            extra={"token_id": token_id, "user_id": token.local_user_id},
        )
        return refreshed

    def _find_active(self, local_user_id: str) -> MarketplaceToken:
        try:
            token = self._store.find_active_by_user(local_user_id)
        except TokenDecryptionError as exc:
            logger.warning(
                "Stored MercadoLibre token is unreadable",
                extra={"user_id": local_user_id},
            )
            raise NotConnectedError(
                "Stored MercadoLibre credentials are unreadable; re-link the account."
            ) from exc
        if token is None:
            raise NotConnectedError("No active MercadoLibre connection for this user.")
        return token

    def _user_from_state(self, state: str) -> str:
        data = self._state.decode(state)

        issued_at_raw = data.get("issued_at")
        if not issued_at_raw:
            raise InvalidOAuthStateError("Missing issued_at in state token.")
        try:
            issued_at = _as_aware(datetime.fromisoformat(issued_at_raw))
        except (TypeError, ValueError) as exc:
            raise InvalidOAuthStateError("Invalid issued_at in state token.") from exc

        if self._now() - issued_at > self._state_ttl:
            raise InvalidOAuthStateError("OAuth state token has expired.")

        user_id = data.get("user_id")
        if not user_id:
            raise InvalidOAuthStateError("Missing user identifier in state token.")
        return str(user_id)


__all__ = [
    "KeyedLocks",
    "MarketplaceTokenService",
    "NotConnectedError",
    "RefreshFailedError",
    "RemoteAuthError",
    "TokenNotFoundError",
]
