"""Read-only views over a seller's MercadoLibre catalog."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from app.clients.mercadolibre import RemoteApiError
from app.schemas import CatalogListing, MarketplaceStats
from app.services.marketplace_tokens import (
    MarketplaceTokenService,
    NotConnectedError,
    RefreshFailedError,
)

if TYPE_CHECKING:  # pragma: no cover - type hints only
    from app.clients.mercadolibre import MercadoLibreClient

logger = logging.getLogger(__name__)


class MarketplaceCatalogService:
    """List remote listings and summarize the connection."""

    def __init__(
        self, token_service: MarketplaceTokenService, client: "MercadoLibreClient"
    ) -> None:
        self._tokens = token_service
        self._client = client

    async def list_remote_products(self, local_user_id: str) -> CatalogListing:
        """Fetch every active listing of the linked seller account."""
        token = await self._tokens.get_active_token(local_user_id)
        item_ids = await self._client.list_active_item_ids(
            token.access_token, token.remote_user_id
        )
        if not item_ids:
            return CatalogListing()

        items = await self._client.fetch_items_batch(token.access_token, item_ids)
        return CatalogListing(
            products=items,
            total_products=len(items),
            total_value=sum(item.price * item.available_quantity for item in items),
        )

    async def get_stats(self, local_user_id: str) -> MarketplaceStats:
        """Describe the connection; never raises for engine failures."""
        try:
            token = await self._tokens.get_active_token(local_user_id)
            listing = await self.list_remote_products(local_user_id)
        except (NotConnectedError, RefreshFailedError, RemoteApiError) as exc:
            logger.info(
                "MercadoLibre stats unavailable",
                extra={"user_id": local_user_id, "reason": type(exc).__name__},
            )
            return MarketplaceStats(connected=False, error=str(exc))

        return MarketplaceStats(
            connected=True,
            remote_user_id=token.remote_user_id,
            token_expires_at=token.expires_at,
            total_products=listing.total_products,
            active_products=sum(p.status == "active" for p in listing.products),
            paused_products=sum(p.status == "paused" for p in listing.products),
            last_sync=token.last_refresh_at,
        )


__all__ = ["MarketplaceCatalogService"]
