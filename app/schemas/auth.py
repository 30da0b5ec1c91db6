"""Schemas related to the MercadoLibre OAuth flow."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class RemoteAuthResponse(BaseModel):
    """Token endpoint payload for both authorization and refresh grants."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int = Field(..., description="Lifetime of the access token in seconds.")
    scope: str = ""
    user_id: Optional[str] = None
    refresh_token: Optional[str] = Field(
        None, description="Absent on refresh when the provider keeps the old one."
    )

    @property
    def scopes(self) -> List[str]:
        return self.scope.split()


class RemoteUserInfo(BaseModel):
    """Subset of ``/users/me`` used when linking an account."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    id: str
    nickname: str
    email: Optional[str] = None
    country_id: Optional[str] = None
    user_type: Optional[str] = None
    site_id: Optional[str] = None
    permalink: Optional[str] = None


class AuthorizationUrlResponse(BaseModel):
    authorization_url: str
    state: str = Field(..., description="Signed state token echoed by the callback.")


class RemoteUserSummary(BaseModel):
    id: str
    nickname: str
    email: Optional[str] = None
    country: Optional[str] = None
    user_type: Optional[str] = None


class OAuthCallbackResponse(BaseModel):
    """Returned after an account has been linked."""

    status: str = "connected"
    remote_user: RemoteUserSummary
    token_expires_at: datetime
    scopes: List[str] = Field(default_factory=list)


class TokenRefreshResponse(BaseModel):
    expires_at: datetime
    last_refresh_at: Optional[datetime] = None


__all__ = [
    "AuthorizationUrlResponse",
    "OAuthCallbackResponse",
    "RemoteAuthResponse",
    "RemoteUserInfo",
    "RemoteUserSummary",
    "TokenRefreshResponse",
]
