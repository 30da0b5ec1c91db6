"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    get_marketplace_catalog_service,
    get_marketplace_token_service,
    get_mercadolibre_client,
    get_oauth_state_encoder,
    get_product_store,
    get_product_sync_service,
    get_token_cipher_service,
    get_token_refresh_scheduler,
    get_token_store,
)
from .config import SettingsDependency, get_app_settings
from .identity import SubscriptionPlan, get_current_user_id, require_plan

__all__ = [
    "SettingsDependency",
    "SubscriptionPlan",
    "get_app_settings",
    "get_current_user_id",
    "get_marketplace_catalog_service",
    "get_marketplace_token_service",
    "get_mercadolibre_client",
    "get_oauth_state_encoder",
    "get_product_store",
    "get_product_sync_service",
    "get_token_cipher_service",
    "get_token_refresh_scheduler",
    "get_token_store",
    "require_plan",
]
