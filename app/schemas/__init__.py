"""Public schema exports."""

from .auth import (
    AuthorizationUrlResponse,
    OAuthCallbackResponse,
    RemoteAuthResponse,
    RemoteUserInfo,
    RemoteUserSummary,
    TokenRefreshResponse,
)
from .catalog import CatalogListing, MarketplaceStats, RemoteItem
from .sync import (
    SyncAction,
    SyncRequest,
    SyncResponse,
    SyncResult,
    SyncSummary,
    summarize_results,
)

__all__ = [
    "AuthorizationUrlResponse",
    "CatalogListing",
    "MarketplaceStats",
    "OAuthCallbackResponse",
    "RemoteAuthResponse",
    "RemoteItem",
    "RemoteUserInfo",
    "RemoteUserSummary",
    "SyncAction",
    "SyncRequest",
    "SyncResponse",
    "SyncResult",
    "SyncSummary",
    "TokenRefreshResponse",
    "summarize_results",
]
