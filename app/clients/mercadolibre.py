"""
MercadoLibre OAuth and catalog API client.

Every call takes the credential it needs explicitly; the client holds
configuration only and never caches tokens.
"""

from __future__ import annotations

import base64
import binascii
import hmac
import json
import logging
from hashlib import sha256
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import urlencode

import httpx

from app.core.config import MercadoLibreSettings
from app.schemas import RemoteAuthResponse, RemoteItem, RemoteUserInfo
from app.utils.http import RetryConfig, request_with_retry

logger = logging.getLogger(__name__)


class RemoteApiError(Exception):
    """Raised for any non-2xx response or transport failure from MercadoLibre."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        payload: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        return f"{self.status_code}: {self.message}"


class InvalidOAuthStateError(ValueError):
    """Raised when an OAuth state value is malformed or has been tampered with."""


class OAuthStateEncoder:
    """Encode and decode OAuth state values to guard against tampering."""

    def __init__(self, secret_key: str) -> None:
        self._secret_key = secret_key.encode("utf-8")

    def encode(self, payload: Dict[str, Any]) -> str:
        serialized = json.dumps(payload, separators=(",", ":"), sort_keys=True)
        signature = hmac.new(self._secret_key, serialized.encode("utf-8"), sha256).digest()
        return base64.urlsafe_b64encode(signature + serialized.encode("utf-8")).decode("utf-8")

    def decode(self, token: str) -> Dict[str, Any]:
        try:
            decoded = base64.urlsafe_b64decode(token.encode("utf-8"))
        except (binascii.Error, ValueError) as exc:
            raise InvalidOAuthStateError("OAuth state is not valid base64.") from exc
        signature, serialized = decoded[:32], decoded[32:]
        expected_signature = hmac.new(self._secret_key, serialized, sha256).digest()
        if not hmac.compare_digest(signature, expected_signature):
            raise InvalidOAuthStateError("Invalid OAuth state signature.")
        try:
            payload = json.loads(serialized)
        except ValueError as exc:  # pragma: no cover - signed payloads are JSON
            raise InvalidOAuthStateError("OAuth state payload is not JSON.") from exc
        if not isinstance(payload, dict):
            raise InvalidOAuthStateError("OAuth state payload must be an object.")
        return payload


class MercadoLibreClient:
    """Thin async wrapper over the MercadoLibre REST endpoints."""

    BATCH_SIZE = 20
    _SEARCH_PAGE_SIZE = 50

    def __init__(
        self,
        settings: MercadoLibreSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        retry_config: RetryConfig | None = None,
    ) -> None:
        self._settings = settings
        self._transport = transport
        self._retry = retry_config or RetryConfig()

    def build_authorization_url(self, state: str) -> str:
        """Construct the MercadoLibre consent URL."""
        params = {
            "response_type": "code",
            "client_id": self._settings.client_id,
            "redirect_uri": str(self._settings.redirect_uri),
            "state": state,
        }
        return f"{self._settings.auth_base_url.rstrip('/')}/authorization?{urlencode(params)}"

    async def exchange_code(self, code: str) -> RemoteAuthResponse:
        """Exchange an authorization code for an access/refresh token pair."""
        return await self._token_grant(
            {
                "grant_type": "authorization_code",
                "client_id": self._settings.client_id,
                "client_secret": self._settings.client_secret,
                "code": code,
                "redirect_uri": str(self._settings.redirect_uri),
            }
        )

    async def refresh_token(self, refresh_token: str) -> RemoteAuthResponse:
        """
        Mint a new access token from a refresh token.

        ``refresh_token`` on the result is ``None`` when the provider keeps the
        previous one.
        """
        return await self._token_grant(
            {
                "grant_type": "refresh_token",
                "client_id": self._settings.client_id,
                "client_secret": self._settings.client_secret,
                "refresh_token": refresh_token,
            }
        )

    async def fetch_user_info(self, access_token: str) -> RemoteUserInfo:
        payload = await self._get("/users/me", access_token)
        try:
            return RemoteUserInfo.model_validate(payload)
        except ValueError as exc:
            raise RemoteApiError("Unexpected user info payload.", payload=payload) from exc

    async def list_active_item_ids(
        self, access_token: str, remote_user_id: str
    ) -> List[str]:
        """Return ids of every active listing owned by the seller."""
        item_ids: List[str] = []
        offset = 0
        while True:
            payload = await self._get(
                f"/users/{remote_user_id}/items/search",
                access_token,
                params={
                    "status": "active",
                    "offset": offset,
                    "limit": self._SEARCH_PAGE_SIZE,
                },
            )
            results = (payload.get("results") or []) if isinstance(payload, dict) else None
            if not isinstance(results, list):
                raise RemoteApiError("Unexpected item search payload.", payload=payload)
            item_ids.extend(str(item_id) for item_id in results)
            paging = payload.get("paging")
            total = paging.get("total") if isinstance(paging, dict) else None
            if not isinstance(total, int):
                total = len(item_ids)
            offset += len(results)
            if not results or offset >= total:
                return item_ids

    async def fetch_items_batch(
        self, access_token: str, ids: Sequence[str]
    ) -> List[RemoteItem]:
        """
        Fetch item details through the multiget endpoint.

        Ids are requested in chunks of ``BATCH_SIZE``, one call per chunk, and
        results keep chunk order. Entries the remote reports as failed are
        dropped instead of failing the whole chunk.
        """
        items: List[RemoteItem] = []
        for start in range(0, len(ids), self.BATCH_SIZE):
            chunk = list(ids[start : start + self.BATCH_SIZE])
            entries = await self._get(
                "/items", access_token, params={"ids": ",".join(chunk)}
            )
            if not isinstance(entries, list):
                raise RemoteApiError("Unexpected multiget payload.", payload=entries)
            for entry in entries:
                if not isinstance(entry, dict) or entry.get("code") != 200:
                    logger.warning(
                        "Dropping item the remote failed to return",
                        extra={"code": entry.get("code") if isinstance(entry, dict) else None},
                    )
                    continue
                try:
                    items.append(RemoteItem.model_validate(entry.get("body") or {}))
                except ValueError:
                    logger.warning("Dropping malformed remote item body")
        return items

    async def create_item(self, access_token: str, payload: Dict[str, Any]) -> str:
        """Publish a new listing and return its remote id."""
        body = await self._send("POST", "/items", access_token, payload)
        item_id = body.get("id") if isinstance(body, dict) else None
        if not item_id:
            raise RemoteApiError("Item created without an id.", payload=body)
        return str(item_id)

    async def update_item(
        self, access_token: str, item_id: str, payload: Dict[str, Any]
    ) -> None:
        await self._send("PUT", f"/items/{item_id}", access_token, payload)

    def _http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._settings.api_base_url,
            timeout=self._settings.request_timeout_seconds,
            transport=self._transport,
        )

    @staticmethod
    def _auth_headers(access_token: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {access_token}"}

    @staticmethod
    def _error_from_response(response: httpx.Response) -> RemoteApiError:
        try:
            payload = response.json()
        except ValueError:
            payload = None
        message = None
        if isinstance(payload, dict):
            message = payload.get("message") or payload.get("error")
        return RemoteApiError(
            message or response.text or response.reason_phrase,
            status_code=response.status_code,
            payload=payload,
        )

    async def _token_grant(self, form: Dict[str, str]) -> RemoteAuthResponse:
        try:
            async with self._http() as client:
                response = await client.post(
                    "/oauth/token", data=form, headers={"Accept": "application/json"}
                )
        except httpx.HTTPError as exc:
            raise RemoteApiError(
                f"Token request failed: {type(exc).__name__}"
            ) from exc

        if response.status_code != 200:
            raise self._error_from_response(response)

        try:
            return RemoteAuthResponse.model_validate(response.json())
        except ValueError as exc:
            raise RemoteApiError(
                "Incomplete token payload returned from MercadoLibre.",
                status_code=response.status_code,
            ) from exc

    async def _get(
        self,
        path: str,
        access_token: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        try:
            async with self._http() as client:
                response = await request_with_retry(
                    client.get,
                    path,
                    params=params,
                    headers=self._auth_headers(access_token),
                    retry_config=self._retry,
                )
        except httpx.HTTPStatusError as exc:
            raise self._error_from_response(exc.response) from exc
        except httpx.HTTPError as exc:
            raise RemoteApiError(f"Request to {path} failed: {type(exc).__name__}") from exc
        return self._json_body(response)

    async def _send(
        self,
        method: str,
        path: str,
        access_token: str,
        payload: Dict[str, Any],
    ) -> Any:
        try:
            async with self._http() as client:
                response = await client.request(
                    method, path, json=payload, headers=self._auth_headers(access_token)
                )
        except httpx.HTTPError as exc:
            raise RemoteApiError(f"Request to {path} failed: {type(exc).__name__}") from exc

        if response.is_error:
            raise self._error_from_response(response)
        if not response.content:
            return {}
        return self._json_body(response)

    @staticmethod
    def _json_body(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteApiError(
                "Response body is not JSON.", status_code=response.status_code
            ) from exc


__all__ = [
    "InvalidOAuthStateError",
    "MercadoLibreClient",
    "OAuthStateEncoder",
    "RemoteApiError",
]
