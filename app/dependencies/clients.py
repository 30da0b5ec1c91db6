"""
Factory functions to provide shared clients and services as FastAPI dependencies.
"""

from functools import lru_cache

from app.clients import (
    MercadoLibreClient,
    OAuthStateEncoder,
    SQLiteProductStore,
    SQLiteTokenStore,
)
from app.core.config import get_settings
from app.services import (
    MarketplaceCatalogService,
    MarketplaceTokenService,
    ProductSyncService,
    TokenCipherService,
    TokenRefreshScheduler,
)


@lru_cache()
def _settings():
    """Internal helper to cache settings for client factories."""
    return get_settings()


@lru_cache()
def get_oauth_state_encoder() -> OAuthStateEncoder:
    """Provide an OAuth state encoder derived from the MercadoLibre client secret."""
    settings = _settings()
    return OAuthStateEncoder(secret_key=settings.mercadolibre.client_secret)


@lru_cache()
def get_mercadolibre_client() -> MercadoLibreClient:
    """Create a singleton MercadoLibre API client."""
    return MercadoLibreClient(_settings().mercadolibre)


@lru_cache()
def get_token_cipher_service() -> TokenCipherService:
    """Provide symmetric encryption helper for token storage."""
    settings = _settings()
    secret = settings.security.token_encryption_secret or settings.mercadolibre.client_secret
    return TokenCipherService(secret=secret)


@lru_cache()
def get_token_store() -> SQLiteTokenStore:
    """Provide the shared token table."""
    return SQLiteTokenStore(_settings().database_path, get_token_cipher_service())


@lru_cache()
def get_product_store() -> SQLiteProductStore:
    """Provide the shared product table."""
    return SQLiteProductStore(_settings().database_path)


@lru_cache()
def get_marketplace_token_service() -> MarketplaceTokenService:
    """Provide the token lifecycle manager; one per process so locks are shared."""
    settings = _settings()
    return MarketplaceTokenService(
        store=get_token_store(),
        client=get_mercadolibre_client(),
        state_encoder=get_oauth_state_encoder(),
        oauth_settings=settings.oauth,
    )


def get_product_sync_service() -> ProductSyncService:
    """Build a product sync service using the shared clients."""
    settings = _settings()
    return ProductSyncService(
        token_service=get_marketplace_token_service(),
        client=get_mercadolibre_client(),
        product_store=get_product_store(),
        ml_settings=settings.mercadolibre,
        sync_settings=settings.sync,
    )


def get_marketplace_catalog_service() -> MarketplaceCatalogService:
    return MarketplaceCatalogService(
        token_service=get_marketplace_token_service(),
        client=get_mercadolibre_client(),
    )


@lru_cache()
def get_token_refresh_scheduler() -> TokenRefreshScheduler:
    """Provide the process-wide background refresh scheduler."""
    return TokenRefreshScheduler(
        get_marketplace_token_service(),
        interval_seconds=_settings().scheduler.interval_seconds,
    )


__all__ = [
    "get_marketplace_catalog_service",
    "get_marketplace_token_service",
    "get_mercadolibre_client",
    "get_oauth_state_encoder",
    "get_product_store",
    "get_product_sync_service",
    "get_token_cipher_service",
    "get_token_refresh_scheduler",
    "get_token_store",
]
