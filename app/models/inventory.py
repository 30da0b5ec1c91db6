"""
Slice of the inventory product record consumed by the sync engine.
"""

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Product(BaseModel):
    """Local inventory product owned by the products collaborator."""

    id: str
    user_id: str
    sku: str
    name: str
    description: Optional[str] = None
    price: float
    stock: int
    sync_enabled: bool = Field(
        False, description="Whether bulk syncs should publish this product."
    )
    remote_catalog_id: Optional[str] = Field(
        None, description="MercadoLibre item id assigned after the first publish."
    )
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class ProductPage(BaseModel):
    """One page of a user's products."""

    products: List[Product] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 100

    @property
    def has_next(self) -> bool:
        return self.page * self.limit < self.total


__all__ = ["Product", "ProductPage"]
