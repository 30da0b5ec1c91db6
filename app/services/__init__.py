"""Service layer exports."""

from .token_cipher import TokenCipherService
from .marketplace_tokens import (
    MarketplaceTokenService,
    NotConnectedError,
    RefreshFailedError,
    RemoteAuthError,
    TokenNotFoundError,
)
from .marketplace_catalog import MarketplaceCatalogService
from .product_sync import ProductSyncService
from .token_refresh import TokenRefreshScheduler

__all__ = [
    "MarketplaceCatalogService",
    "MarketplaceTokenService",
    "NotConnectedError",
    "ProductSyncService",
    "RefreshFailedError",
    "RemoteAuthError",
    "TokenCipherService",
    "TokenNotFoundError",
    "TokenRefreshScheduler",
]
