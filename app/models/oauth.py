"""
Domain models for marketplace OAuth token persistence.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class MarketplaceToken(BaseModel):
    """Represents the MercadoLibre credential linked to one local user."""

    id: str = Field(..., description="Stable identifier of the token record.")
    local_user_id: str = Field(..., description="Owner of the credential.")
    remote_user_id: str = Field(..., description="MercadoLibre seller identifier.")
    access_token: str
    refresh_token: str
    expires_at: datetime
    is_active: bool = True
    scopes: List[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
    last_refresh_at: Optional[datetime] = None


class TokenIdentity(BaseModel):
    """Plain columns of a token record, readable without the encryption key."""

    id: str
    local_user_id: str
    is_active: bool
    created_at: datetime


__all__ = ["MarketplaceToken", "TokenIdentity"]
