"""
Pydantic models describing remote catalog items and connection stats.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class RemoteItem(BaseModel):
    """A MercadoLibre listing as returned by the multiget endpoint."""

    model_config = ConfigDict(extra="ignore")

    id: str
    title: str
    price: float = 0.0
    currency_id: Optional[str] = None
    available_quantity: int = 0
    sold_quantity: int = 0
    condition: Optional[str] = None
    status: Optional[str] = None
    permalink: Optional[str] = None
    thumbnail: Optional[str] = None
    category_id: Optional[str] = None


class CatalogListing(BaseModel):
    """Remote catalog view with the computed stock value."""

    products: List[RemoteItem] = Field(default_factory=list)
    total_products: int = 0
    total_value: float = Field(
        0.0, description="Sum of price times available quantity across listings."
    )


class MarketplaceStats(BaseModel):
    connected: bool
    remote_user_id: Optional[str] = None
    token_expires_at: Optional[datetime] = None
    total_products: Optional[int] = None
    active_products: Optional[int] = None
    paused_products: Optional[int] = None
    last_sync: Optional[datetime] = None
    error: Optional[str] = None


__all__ = ["CatalogListing", "MarketplaceStats", "RemoteItem"]
