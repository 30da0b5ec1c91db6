try:
    from . import _bootstrap  # noqa: F401
    from ._fakes import make_token
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401
    from _fakes import make_token  # type: ignore

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from app.clients.mercadolibre import InvalidOAuthStateError, RemoteApiError
from app.main import app
from app.schemas import CatalogListing, MarketplaceStats, RemoteItem, RemoteUserInfo, SyncAction, SyncResult
from app.services.marketplace_tokens import NotConnectedError, RefreshFailedError, RemoteAuthError

PREMIUM = {"X-User-Id": "user-1", "X-Subscription-Plan": "premium"}
EXPIRES = datetime(2026, 1, 15, 18, 0, tzinfo=timezone.utc)


class StubTokenService:
    def __init__(self) -> None:
        self.auth_error: Exception | None = None
        self.refresh_error: Exception | None = None
        self.disconnected: list[str] = []

    def generate_authorization_url(self, local_user_id: str):
        return f"https://auth.example.com/authorization?state=s-{local_user_id}", f"s-{local_user_id}"

    async def complete_authorization(self, code: str, state: str):
        if self.auth_error is not None:
            raise self.auth_error
        token = make_token(expires_at=EXPIRES).model_copy(
            update={"scopes": ["offline_access", "read"]}
        )
        return token, RemoteUserInfo(
            id="98765", nickname="SELLER", email="seller@example.com", country_id="AR"
        )

    async def force_refresh(self, local_user_id: str):
        if self.refresh_error is not None:
            raise self.refresh_error
        return make_token(expires_at=EXPIRES).model_copy(
            update={"last_refresh_at": EXPIRES - timedelta(hours=6)}
        )

    async def disconnect(self, local_user_id: str) -> None:
        self.disconnected.append(local_user_id)


class StubSyncService:
    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.error: Exception | None = None

    async def sync_products(self, local_user_id, product_ids=None, force_sync=False):
        self.calls.append((local_user_id, product_ids, force_sync))
        if self.error is not None:
            raise self.error
        return [
            SyncResult(success=True, message="Product created on MercadoLibre", local_product_id="p1", remote_catalog_id="MLA1", action=SyncAction.CREATED),
            SyncResult(success=True, message="Product updated on MercadoLibre", local_product_id="p2", remote_catalog_id="MLA2", action=SyncAction.UPDATED),
            SyncResult(success=False, message="Product not found", local_product_id="p3", action=SyncAction.ERROR, error="missing"),
        ]


class StubCatalogService:
    def __init__(self) -> None:
        self.error: Exception | None = None

    async def list_remote_products(self, local_user_id: str) -> CatalogListing:
        if self.error is not None:
            raise self.error
        item = RemoteItem(id="MLA1", title="Mate", price=1500.0, available_quantity=2, status="active")
        return CatalogListing(products=[item], total_products=1, total_value=3000.0)

    async def get_stats(self, local_user_id: str) -> MarketplaceStats:
        return MarketplaceStats(connected=False, error="No active MercadoLibre connection for this user.")


@pytest.fixture()
def stubs():
    from app import dependencies
    from app.core.config import get_settings

    token_service = StubTokenService()
    sync_service = StubSyncService()
    catalog_service = StubCatalogService()
    settings = get_settings().model_copy(deep=True)
    settings.frontend_base_url = None

    app.dependency_overrides.update(
        {
            dependencies.get_marketplace_token_service: lambda: token_service,
            dependencies.get_product_sync_service: lambda: sync_service,
            dependencies.get_marketplace_catalog_service: lambda: catalog_service,
            dependencies.get_app_settings: lambda: settings,
        }
    )

    yield token_service, sync_service, catalog_service

    app.dependency_overrides.clear()


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")


@pytest.mark.anyio
async def test_health() -> None:
    async with _client() as client:
        response = await client.get("/api/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.anyio
async def test_auth_returns_json_by_default(stubs) -> None:
    async with _client() as client:
        response = await client.get("/api/mercadolibre/auth", headers=PREMIUM)

    assert response.status_code == 200
    data = response.json()
    assert data["state"] == "s-user-1"
    assert data["authorization_url"].startswith("https://auth.example.com/authorization")


@pytest.mark.anyio
async def test_auth_redirects_when_requested(stubs) -> None:
    async with _client() as client:
        response = await client.get(
            "/api/mercadolibre/auth", params={"redirect": "true"}, headers=PREMIUM
        )

    assert response.status_code == 307
    assert response.headers["location"].startswith("https://auth.example.com/")


@pytest.mark.anyio
async def test_plan_and_identity_gates(stubs) -> None:
    async with _client() as client:
        anonymous = await client.get(
            "/api/mercadolibre/auth", headers={"X-Subscription-Plan": "premium"}
        )
        basic = await client.get(
            "/api/mercadolibre/auth",
            headers={"X-User-Id": "user-1", "X-Subscription-Plan": "basic"},
        )
        enterprise = await client.get(
            "/api/mercadolibre/auth",
            headers={"X-User-Id": "user-1", "X-Subscription-Plan": "enterprise"},
        )

    assert anonymous.status_code == 401
    assert basic.status_code == 403
    assert enterprise.status_code == 200


@pytest.mark.anyio
async def test_callback_links_account(stubs) -> None:
    async with _client() as client:
        response = await client.get(
            "/api/mercadolibre/callback", params={"code": "TG-code", "state": "s-user-1"}
        )

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "connected"
    assert data["remote_user"]["nickname"] == "SELLER"
    assert data["remote_user"]["country"] == "AR"
    assert data["scopes"] == ["offline_access", "read"]
    assert data["token_expires_at"].startswith("2026-01-15T18:00:00")


@pytest.mark.anyio
@pytest.mark.parametrize(
    "error",
    [InvalidOAuthStateError("Invalid OAuth state signature."), RemoteAuthError("denied")],
)
async def test_callback_failures_are_bad_requests(stubs, error) -> None:
    token_service, _, _ = stubs
    token_service.auth_error = error

    async with _client() as client:
        response = await client.get(
            "/api/mercadolibre/callback", params={"code": "TG-code", "state": "bogus"}
        )

    assert response.status_code == 400


@pytest.mark.anyio
async def test_products_listing_and_failures(stubs) -> None:
    _, _, catalog_service = stubs

    async with _client() as client:
        ok = await client.get("/api/mercadolibre/products", headers=PREMIUM)
        catalog_service.error = NotConnectedError("No active MercadoLibre connection for this user.")
        not_connected = await client.get("/api/mercadolibre/products", headers=PREMIUM)
        catalog_service.error = RemoteApiError("unavailable", status_code=503)
        upstream = await client.get("/api/mercadolibre/products", headers=PREMIUM)

    assert ok.status_code == 200
    assert ok.json()["total_value"] == 3000.0
    assert ok.json()["products"][0]["id"] == "MLA1"
    assert not_connected.status_code == 401
    assert upstream.status_code == 502


@pytest.mark.anyio
async def test_sync_reports_summary(stubs) -> None:
    _, sync_service, _ = stubs

    async with _client() as client:
        response = await client.post(
            "/api/mercadolibre/sync",
            json={"product_ids": ["p1", "p2", "p3"], "force_sync": True},
            headers=PREMIUM,
        )

    assert response.status_code == 200
    data = response.json()
    assert sync_service.calls == [("user-1", ["p1", "p2", "p3"], True)]
    assert data["summary"] == {"total": 3, "successful": 2, "errors": 1, "created": 1, "updated": 1}
    assert data["message"] == "Sync finished: 2/3 products synchronized successfully"
    assert [r["action"] for r in data["results"]] == ["created", "updated", "error"]


@pytest.mark.anyio
async def test_sync_without_connection_is_unauthorized(stubs) -> None:
    _, sync_service, _ = stubs
    sync_service.error = RefreshFailedError("re-authorize")

    async with _client() as client:
        response = await client.post("/api/mercadolibre/sync", json={}, headers=PREMIUM)

    assert response.status_code == 401


@pytest.mark.anyio
async def test_stats_omit_missing_fields(stubs) -> None:
    async with _client() as client:
        response = await client.get("/api/mercadolibre/stats", headers=PREMIUM)

    assert response.status_code == 200
    assert response.json() == {
        "connected": False,
        "error": "No active MercadoLibre connection for this user.",
    }


@pytest.mark.anyio
async def test_refresh_token_endpoint(stubs) -> None:
    token_service, _, _ = stubs

    async with _client() as client:
        ok = await client.post("/api/mercadolibre/refresh-token", headers=PREMIUM)
        token_service.refresh_error = RefreshFailedError("token revoked")
        failed = await client.post("/api/mercadolibre/refresh-token", headers=PREMIUM)

    assert ok.status_code == 200
    assert ok.json()["expires_at"].startswith("2026-01-15T18:00:00")
    assert failed.status_code == 400
    assert failed.json()["detail"] == "Error refreshing token: token revoked"


@pytest.mark.anyio
async def test_disconnect(stubs) -> None:
    token_service, _, _ = stubs

    async with _client() as client:
        response = await client.delete("/api/mercadolibre/disconnect", headers=PREMIUM)

    assert response.status_code == 200
    assert response.json() == {"status": "disconnected"}
    assert token_service.disconnected == ["user-1"]
