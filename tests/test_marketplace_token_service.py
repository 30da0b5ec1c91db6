try:
    from . import _bootstrap  # noqa: F401
    from ._fakes import FakeMarketplaceClient, FakeStateEncoder, FakeTokenStore, make_token
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401
    from _fakes import FakeMarketplaceClient, FakeStateEncoder, FakeTokenStore, make_token  # type: ignore

import asyncio
from datetime import timedelta

import pytest

from app.clients.mercadolibre import InvalidOAuthStateError, RemoteApiError
from app.clients.token_store import SQLiteTokenStore
from app.core.config import OAuthSettings
from app.services.marketplace_tokens import (
    MarketplaceTokenService,
    NotConnectedError,
    RefreshFailedError,
    RemoteAuthError,
    TokenNotFoundError,
)
from app.services.token_refresh import TokenRefreshScheduler
from app.services.token_cipher import TokenCipherService


def _service(clock, store=None, client=None):
    store = store or FakeTokenStore()
    client = client or FakeMarketplaceClient()
    service = MarketplaceTokenService(
        store,
        client,
        FakeStateEncoder(),
        OAuthSettings(OAUTH_STATE_TTL=900, ML_REFRESH_LEAD_SECONDS=3600),
        clock=clock,
    )
    return service, store, client


def test_needs_refresh_uses_lead_time(clock) -> None:
    service, _, _ = _service(clock)

    just_outside = make_token(expires_at=clock.now + timedelta(seconds=3601))
    boundary = make_token(expires_at=clock.now + timedelta(seconds=3600))
    expired = make_token(expires_at=clock.now - timedelta(minutes=5))

    assert service.needs_refresh(just_outside) is False
    assert service.needs_refresh(boundary) is True
    assert service.needs_refresh(expired) is True


@pytest.mark.asyncio
async def test_get_active_token_without_connection_raises(clock) -> None:
    service, store, _ = _service(clock)
    store.put(make_token(expires_at=clock.now + timedelta(hours=5), is_active=False))

    with pytest.raises(NotConnectedError):
        await service.get_active_token("user-1")
    with pytest.raises(NotConnectedError):
        await service.get_active_token("someone-else")


@pytest.mark.asyncio
async def test_get_active_token_returns_fresh_token_without_remote_call(clock) -> None:
    service, store, client = _service(clock)
    store.put(make_token(expires_at=clock.now + timedelta(hours=5)))

    token = await service.get_active_token("user-1")

    assert token.access_token == "access-0"
    assert client.refresh_calls == []


@pytest.mark.asyncio
async def test_get_active_token_refreshes_stale_token_once(clock) -> None:
    service, store, client = _service(clock)
    original = make_token(expires_at=clock.now + timedelta(minutes=30))
    store.put(original)

    token = await service.get_active_token("user-1")

    assert client.refresh_calls == ["refresh-0"]
    assert token.access_token == "access-1"
    assert token.refresh_token == "refresh-1"
    assert token.expires_at == clock.now + timedelta(seconds=21600)
    assert token.last_refresh_at == clock.now
    assert token.created_at == original.created_at
    assert token.updated_at == clock.now
    assert token.updated_at != original.updated_at

    stored = store.get("tok-1")
    assert stored.access_token == "access-1"
    assert stored.is_active is True
    assert stored.updated_at == clock.now


@pytest.mark.asyncio
async def test_refresh_keeps_refresh_token_when_provider_omits_it(clock) -> None:
    service, store, client = _service(clock)
    client.rotate_refresh_token = False
    store.put(make_token(expires_at=clock.now + timedelta(minutes=10)))

    token = await service.refresh("tok-1")

    assert token.access_token == "access-1"
    assert token.refresh_token == "refresh-0"


@pytest.mark.asyncio
async def test_refresh_sequence_uses_rotated_refresh_token(clock) -> None:
    service, store, client = _service(clock)
    store.put(make_token(expires_at=clock.now + timedelta(minutes=10)))

    await service.refresh("tok-1")
    clock.advance(hours=6)
    await service.refresh("tok-1")

    assert client.refresh_calls == ["refresh-0", "refresh-1"]


@pytest.mark.asyncio
async def test_failed_refresh_deactivates_token_permanently(clock) -> None:
    service, store, client = _service(clock)
    client.refresh_error = RemoteApiError("invalid_grant", status_code=400)
    store.put(make_token(expires_at=clock.now + timedelta(minutes=10)))
    clock.advance(minutes=1)

    with pytest.raises(RefreshFailedError):
        await service.refresh("tok-1")

    assert store.get("tok-1").is_active is False
    assert store.get("tok-1").updated_at == clock.now
    with pytest.raises(NotConnectedError):
        await service.get_active_token("user-1")

    client.refresh_error = None
    with pytest.raises(RefreshFailedError):
        await service.refresh("tok-1")
    assert client.refresh_calls == ["refresh-0"]


@pytest.mark.asyncio
async def test_unreadable_stored_token_requires_relink(clock) -> None:
    service, store, client = _service(clock)
    store.put(make_token(expires_at=clock.now + timedelta(minutes=10)))
    store.unreadable_users.add("user-1")

    with pytest.raises(NotConnectedError, match="re-link"):
        await service.get_active_token("user-1")
    with pytest.raises(NotConnectedError, match="re-link"):
        await service.force_refresh("user-1")
    assert client.refresh_calls == []

    _, state = service.generate_authorization_url("user-1")
    token, _ = await service.complete_authorization("code-123", state)

    assert token.id == "tok-1"
    assert store.get("tok-1").refresh_token == "refresh-initial"


@pytest.mark.asyncio
async def test_refresh_unknown_token_raises(clock) -> None:
    service, _, _ = _service(clock)

    with pytest.raises(TokenNotFoundError):
        await service.refresh("missing")


@pytest.mark.asyncio
async def test_complete_authorization_creates_token(clock) -> None:
    service, store, client = _service(clock)
    url, state = service.generate_authorization_url("user-1")
    assert state in url

    token, user_info = await service.complete_authorization("code-123", state)

    assert client.exchange_calls == ["code-123"]
    assert user_info.nickname == "SELLER"
    assert token.local_user_id == "user-1"
    assert token.remote_user_id == "98765"
    assert token.refresh_token == "refresh-initial"
    assert token.scopes == ["offline_access", "read", "write"]
    assert token.expires_at == clock.now + timedelta(seconds=21600)
    assert token.created_at == clock.now
    assert store.find_active_by_user("user-1").id == token.id


@pytest.mark.asyncio
async def test_complete_authorization_reuses_existing_record(clock) -> None:
    service, store, _ = _service(clock)
    existing = make_token(expires_at=clock.now - timedelta(days=1), is_active=False)
    store.put(existing)
    _, state = service.generate_authorization_url("user-1")

    token, _ = await service.complete_authorization("code-123", state)

    assert token.id == existing.id
    assert token.created_at == existing.created_at
    assert token.is_active is True
    assert len(store.tokens) == 1


@pytest.mark.asyncio
async def test_complete_authorization_remote_failure_persists_nothing(clock) -> None:
    service, store, client = _service(clock)
    client.user_info_error = RemoteApiError("forbidden", status_code=403)
    _, state = service.generate_authorization_url("user-1")

    with pytest.raises(RemoteAuthError):
        await service.complete_authorization("code-123", state)

    assert store.tokens == {}


@pytest.mark.asyncio
async def test_complete_authorization_requires_refresh_token(clock) -> None:
    service, store, client = _service(clock)
    client.exchange_refresh_token = None
    _, state = service.generate_authorization_url("user-1")

    with pytest.raises(RemoteAuthError):
        await service.complete_authorization("code-123", state)
    assert store.tokens == {}


@pytest.mark.asyncio
async def test_complete_authorization_rejects_bad_state(clock) -> None:
    service, store, client = _service(clock)

    with pytest.raises(InvalidOAuthStateError):
        await service.complete_authorization("code-123", "forged")

    _, state = service.generate_authorization_url("user-1")
    clock.advance(seconds=901)
    with pytest.raises(InvalidOAuthStateError):
        await service.complete_authorization("code-123", state)

    assert client.exchange_calls == []
    assert store.tokens == {}


@pytest.mark.asyncio
async def test_disconnect_is_idempotent(clock) -> None:
    service, store, _ = _service(clock)
    store.put(make_token(expires_at=clock.now + timedelta(hours=5)))

    await service.disconnect("user-1")
    puts_after_first = store.put_calls
    await service.disconnect("user-1")
    await service.disconnect("nobody")

    assert store.get("tok-1").is_active is False
    assert store.put_calls == puts_after_first
    assert store.get("tok-1").updated_at == clock.now
    with pytest.raises(NotConnectedError):
        await service.force_refresh("user-1")


@pytest.mark.asyncio
async def test_concurrent_callers_and_sweep_share_one_refresh(clock) -> None:
    service, store, client = _service(clock)
    client.refresh_delay = 0.05
    store.put(make_token(expires_at=clock.now + timedelta(minutes=20)))
    scheduler = TokenRefreshScheduler(service, interval_seconds=60)

    tokens = await asyncio.gather(
        service.get_active_token("user-1"),
        service.get_active_token("user-1"),
        scheduler.run_once(),
        service.get_active_token("user-1"),
    )

    assert client.refresh_calls == ["refresh-0"]
    access_tokens = {t.access_token for t in tokens if not isinstance(t, int)}
    assert access_tokens == {"access-1"}


@pytest.mark.asyncio
async def test_rotated_encryption_secret_maps_to_not_connected(clock, tmp_path) -> None:
    db_path = str(tmp_path / "tokens.db")
    SQLiteTokenStore(db_path, TokenCipherService(secret="old")).put(
        make_token(expires_at=clock.now + timedelta(hours=5))
    )
    store = SQLiteTokenStore(db_path, TokenCipherService(secret="new"))
    service, _, client = _service(clock, store=store)

    with pytest.raises(NotConnectedError):
        await service.get_active_token("user-1")

    _, state = service.generate_authorization_url("user-1")
    relinked, _ = await service.complete_authorization("code-123", state)
    token = await service.get_active_token("user-1")

    assert relinked.id == "tok-1"
    assert token.refresh_token == "refresh-initial"
    assert client.refresh_calls == []
