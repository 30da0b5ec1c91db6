"""
Business logic for publishing local products to the MercadoLibre catalog.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence, Union, TYPE_CHECKING
from urllib.parse import quote

from app.clients.mercadolibre import RemoteApiError
from app.clients.product_store import ProductAccessError, ProductNotFoundError
from app.core.config import MercadoLibreSettings, SyncSettings
from app.models.inventory import Product
from app.models.oauth import MarketplaceToken
from app.schemas import SyncAction, SyncResult
from app.services.marketplace_tokens import MarketplaceTokenService

if TYPE_CHECKING:  # pragma: no cover - type hints only
    from app.clients.mercadolibre import MercadoLibreClient
    from app.clients.product_store import SQLiteProductStore

logger = logging.getLogger(__name__)

_PLACEHOLDER_IMAGE_URL = "https://via.placeholder.com/500x500?text="
_DEADLINE_MESSAGE = "Sync deadline exceeded"


def build_item_payload(product: Product, settings: MercadoLibreSettings) -> Dict[str, Any]:
    """Translate a local product into a MercadoLibre item creation payload."""
    return {
        "title": product.name,
        "category_id": settings.default_category_id,
        "price": product.price,
        "currency_id": settings.currency_id,
        "available_quantity": product.stock,
        "buying_mode": "buy_it_now",
        "listing_type_id": settings.listing_type_id,
        "condition": "new",
        "description": {
            "plain_text": product.description or f"{product.name} - Disponible en stock",
        },
        "pictures": [{"source": _PLACEHOLDER_IMAGE_URL + quote(product.name)}],
        "attributes": [
            {"id": "BRAND", "value_name": "Genérico"},
            {"id": "MODEL", "value_name": product.sku},
        ],
        "tags": ["immediate_payment"],
    }


def build_item_update(product: Product) -> Dict[str, Any]:
    return {
        "title": product.name,
        "price": product.price,
        "available_quantity": product.stock,
    }


class ProductSyncService:
    """Create or update remote listings for a user's products."""

    _PAGE_SIZE = 100

    def __init__(
        self,
        token_service: MarketplaceTokenService,
        client: "MercadoLibreClient",
        product_store: "SQLiteProductStore",
        ml_settings: MercadoLibreSettings,
        sync_settings: SyncSettings,
    ) -> None:
        self._tokens = token_service
        self._client = client
        self._products = product_store
        self._ml_settings = ml_settings
        self._max_concurrency = sync_settings.max_concurrency
        self._deadline = sync_settings.deadline_seconds

    async def sync_products(
        self,
        local_user_id: str,
        product_ids: Optional[Sequence[str]] = None,
        force_sync: bool = False,
    ) -> List[SyncResult]:
        """
        Synchronize products and return one result per attempted product.

        Results follow the order of ``product_ids`` (or of the store listing when
        no ids are given). A product failure never stops the rest of the batch;
        a missing or unusable credential fails the whole call before any remote
        work starts.
        """
        token = await self._tokens.get_active_token(local_user_id)
        slots = self._resolve_candidates(local_user_id, product_ids)
        pending_count = sum(isinstance(slot, Product) for slot in slots)
        logger.info(
            "Syncing products to MercadoLibre",
            extra={
                "user_id": local_user_id,
                "products": pending_count,
                "force_sync": force_sync,
            },
        )

        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def _bounded(product: Product) -> SyncResult:
            async with semaphore:
                return await self._sync_one(local_user_id, token, product)

        tasks: Dict[int, asyncio.Task] = {
            index: asyncio.create_task(_bounded(slot))
            for index, slot in enumerate(slots)
            if isinstance(slot, Product)
        }
        if tasks:
            _, pending = await asyncio.wait(tasks.values(), timeout=self._deadline)
            if pending:
                logger.warning(
                    "Sync deadline exceeded, cancelling remaining products",
                    extra={"user_id": local_user_id, "pending": len(pending)},
                )
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)

        results: List[SyncResult] = []
        for index, slot in enumerate(slots):
            if isinstance(slot, SyncResult):
                results.append(slot)
            else:
                results.append(self._collect(tasks[index], slot))
        return results

    def _resolve_candidates(
        self, local_user_id: str, product_ids: Optional[Sequence[str]]
    ) -> List[Union[Product, SyncResult]]:
        if product_ids:
            slots: List[Union[Product, SyncResult]] = []
            for product_id in product_ids:
                try:
                    slots.append(self._products.find_one(product_id, local_user_id))
                except (ProductNotFoundError, ProductAccessError) as exc:
                    slots.append(
                        SyncResult(
                            success=False,
                            message=(
                                "Product not found"
                                if isinstance(exc, ProductNotFoundError)
                                else "Product not accessible"
                            ),
                            local_product_id=product_id,
                            action=SyncAction.ERROR,
                            error=str(exc),
                        )
                    )
            return slots

        products: List[Union[Product, SyncResult]] = []
        page = 1
        while True:
            listing = self._products.find_all(
                local_user_id, page=page, limit=self._PAGE_SIZE
            )
            products.extend(p for p in listing.products if p.sync_enabled)
            if not listing.has_next:
                return products
            page += 1

    async def _sync_one(
        self, local_user_id: str, token: MarketplaceToken, product: Product
    ) -> SyncResult:
        if product.remote_catalog_id:
            try:
                await self._client.update_item(
                    token.access_token,
                    product.remote_catalog_id,
                    build_item_update(product),
                )
            except RemoteApiError as exc:
                return self._remote_failure(
                    product, "Error updating product on MercadoLibre", exc
                )
            return SyncResult(
                success=True,
                message="Product updated on MercadoLibre",
                local_product_id=product.id,
                remote_catalog_id=product.remote_catalog_id,
                action=SyncAction.UPDATED,
            )

        try:
            remote_id = await self._client.create_item(
                token.access_token, build_item_payload(product, self._ml_settings)
            )
        except RemoteApiError as exc:
            return self._remote_failure(
                product, "Error creating product on MercadoLibre", exc
            )

        if not self._products.assign_remote_catalog_id(
            product.id, local_user_id, remote_id
        ):
            logger.warning(
                "Product already had a remote id, keeping the stored one",
                extra={"product_id": product.id, "remote_catalog_id": remote_id},
            )
        return SyncResult(
            success=True,
            message="Product created on MercadoLibre",
            local_product_id=product.id,
            remote_catalog_id=remote_id,
            action=SyncAction.CREATED,
        )

    @staticmethod
    def _remote_failure(product: Product, message: str, exc: RemoteApiError) -> SyncResult:
        logger.warning(
            message,
            extra={"product_id": product.id, "status_code": exc.status_code},
        )
        return SyncResult(
            success=False,
            message=message,
            local_product_id=product.id,
            action=SyncAction.ERROR,
            error=exc.message,
        )

    @staticmethod
    def _collect(task: asyncio.Task, product: Product) -> SyncResult:
        if task.cancelled():
            return SyncResult(
                success=False,
                message=_DEADLINE_MESSAGE,
                local_product_id=product.id,
                action=SyncAction.ERROR,
                error=_DEADLINE_MESSAGE,
            )
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Unexpected error syncing product",
                exc_info=exc,
                extra={"product_id": product.id},
            )
            return SyncResult(
                success=False,
                message="Error syncing product",
                local_product_id=product.id,
                action=SyncAction.ERROR,
                error=str(exc),
            )
        return task.result()


__all__ = ["ProductSyncService", "build_item_payload", "build_item_update"]
