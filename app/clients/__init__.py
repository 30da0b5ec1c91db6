"""Expose constructed client wrappers."""

from .mercadolibre import (
    InvalidOAuthStateError,
    MercadoLibreClient,
    OAuthStateEncoder,
    RemoteApiError,
)
from .product_store import ProductAccessError, ProductNotFoundError, SQLiteProductStore
from .token_store import SQLiteTokenStore

__all__ = [
    "InvalidOAuthStateError",
    "MercadoLibreClient",
    "OAuthStateEncoder",
    "ProductAccessError",
    "ProductNotFoundError",
    "RemoteApiError",
    "SQLiteProductStore",
    "SQLiteTokenStore",
]
