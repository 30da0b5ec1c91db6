"""
FastAPI routes for the MercadoLibre integration.
"""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import RedirectResponse

from app.clients.mercadolibre import InvalidOAuthStateError, RemoteApiError
from app.core.config import AppSettings
from app.dependencies import (
    SettingsDependency,
    SubscriptionPlan,
    get_current_user_id,
    get_marketplace_catalog_service,
    get_marketplace_token_service,
    get_product_sync_service,
    require_plan,
)
from app.schemas import (
    AuthorizationUrlResponse,
    OAuthCallbackResponse,
    RemoteUserSummary,
    SyncRequest,
    SyncResponse,
    TokenRefreshResponse,
    summarize_results,
)
from app.services.marketplace_tokens import (
    NotConnectedError,
    RefreshFailedError,
    RemoteAuthError,
)

router = APIRouter()
logger = logging.getLogger(__name__)

UserId = Annotated[str, Depends(get_current_user_id)]
_premium = [Depends(require_plan(SubscriptionPlan.PREMIUM))]


def _wants_html(request: Request) -> bool:
    return "text/html" in request.headers.get("accept", "").lower()


def _credential_error(exc: Exception) -> HTTPException:
    return HTTPException(status_code=HTTPStatus.UNAUTHORIZED, detail=str(exc))


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok"}


@router.get("/mercadolibre/auth", status_code=HTTPStatus.OK, dependencies=_premium)
async def start_mercadolibre_oauth_flow(
    request: Request,
    user_id: UserId,
    token_service: Annotated[Any, Depends(get_marketplace_token_service)],
    redirect: bool = Query(
        default=False,
        description="When true, respond with a redirect to the MercadoLibre consent screen.",
    ),
) -> dict:
    """Generate the consent URL and the signed state that comes back on the callback."""
    authorization_url, state = token_service.generate_authorization_url(user_id)

    if redirect or _wants_html(request):
        return RedirectResponse(url=authorization_url, status_code=HTTPStatus.TEMPORARY_REDIRECT)

    return AuthorizationUrlResponse(authorization_url=authorization_url, state=state).model_dump()


@router.get("/mercadolibre/callback", status_code=HTTPStatus.OK)
async def handle_mercadolibre_oauth_callback(
    request: Request,
    token_service: Annotated[Any, Depends(get_marketplace_token_service)],
    settings: AppSettings = SettingsDependency,
    code: str = Query(..., description="Authorization code returned by MercadoLibre."),
    state: str = Query(..., description="Signed state issued by /mercadolibre/auth."),
) -> dict:
    """Complete the OAuth exchange and link the MercadoLibre account."""
    try:
        token, user_info = await token_service.complete_authorization(code, state)
    except InvalidOAuthStateError as exc:
        raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail=str(exc)) from exc
    except RemoteAuthError as exc:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail="Failed to complete MercadoLibre authorization.",
        ) from exc

    if settings.frontend_base_url and _wants_html(request):
        return RedirectResponse(
            url=str(settings.frontend_base_url),
            status_code=HTTPStatus.TEMPORARY_REDIRECT,
        )

    return OAuthCallbackResponse(
        remote_user=RemoteUserSummary(
            id=user_info.id,
            nickname=user_info.nickname,
            email=user_info.email,
            country=user_info.country_id,
            user_type=user_info.user_type,
        ),
        token_expires_at=token.expires_at,
        scopes=token.scopes,
    ).model_dump(mode="json")


@router.get("/mercadolibre/products", status_code=HTTPStatus.OK, dependencies=_premium)
async def list_mercadolibre_products(
    user_id: UserId,
    catalog_service: Annotated[Any, Depends(get_marketplace_catalog_service)],
) -> dict:
    """List the seller's active listings with their total stock value."""
    try:
        listing = await catalog_service.list_remote_products(user_id)
    except (NotConnectedError, RefreshFailedError) as exc:
        raise _credential_error(exc) from exc
    except RemoteApiError as exc:
        logger.warning("Listing MercadoLibre products failed", extra={"user_id": user_id})
        raise HTTPException(
            status_code=HTTPStatus.BAD_GATEWAY,
            detail="Error fetching products from MercadoLibre.",
        ) from exc
    return listing.model_dump(mode="json")


@router.post("/mercadolibre/sync", status_code=HTTPStatus.OK, dependencies=_premium)
async def sync_mercadolibre_products(
    payload: SyncRequest,
    user_id: UserId,
    sync_service: Annotated[Any, Depends(get_product_sync_service)],
) -> dict:
    """Create or update remote listings and report a result per product."""
    try:
        results = await sync_service.sync_products(
            user_id, payload.product_ids, payload.force_sync
        )
    except (NotConnectedError, RefreshFailedError) as exc:
        raise _credential_error(exc) from exc

    summary = summarize_results(results)
    return SyncResponse(
        results=results,
        summary=summary,
        message=(
            f"Sync finished: {summary.successful}/{summary.total} products "
            "synchronized successfully"
        ),
    ).model_dump(mode="json")


@router.get("/mercadolibre/stats", status_code=HTTPStatus.OK, dependencies=_premium)
async def get_mercadolibre_stats(
    user_id: UserId,
    catalog_service: Annotated[Any, Depends(get_marketplace_catalog_service)],
) -> dict:
    stats = await catalog_service.get_stats(user_id)
    return stats.model_dump(mode="json", exclude_none=True)


@router.post("/mercadolibre/refresh-token", status_code=HTTPStatus.OK, dependencies=_premium)
async def refresh_mercadolibre_token(
    user_id: UserId,
    token_service: Annotated[Any, Depends(get_marketplace_token_service)],
) -> dict:
    """Force a refresh of the caller's token."""
    try:
        token = await token_service.force_refresh(user_id)
    except (NotConnectedError, RefreshFailedError) as exc:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail=f"Error refreshing token: {exc}",
        ) from exc
    return TokenRefreshResponse(
        expires_at=token.expires_at, last_refresh_at=token.last_refresh_at
    ).model_dump(mode="json")


@router.delete("/mercadolibre/disconnect", status_code=HTTPStatus.OK, dependencies=_premium)
async def disconnect_mercadolibre(
    user_id: UserId,
    token_service: Annotated[Any, Depends(get_marketplace_token_service)],
) -> dict:
    await token_service.disconnect(user_id)
    return {"status": "disconnected"}
