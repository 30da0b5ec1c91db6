"""Background sweep that refreshes marketplace tokens before they expire."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Optional

from app.services.marketplace_tokens import MarketplaceTokenService

logger = logging.getLogger(__name__)


class TokenRefreshScheduler:
    """Periodically refresh every active token approaching expiry."""

    def __init__(
        self,
        token_service: MarketplaceTokenService,
        interval_seconds: float = 3600.0,
    ) -> None:
        self._tokens = token_service
        self._interval = interval_seconds
        self._task: Optional[asyncio.Task] = None

    async def run_once(self) -> int:
        """Sweep the store once and return how many tokens were refreshed."""
        stale = [
            token
            for token in self._tokens.list_active_tokens()
            if self._tokens.needs_refresh(token)
        ]
        logger.info("Token refresh sweep started", extra={"stale_tokens": len(stale)})

        refreshed = 0
        for token in stale:
            try:
                await self._tokens.refresh_if_needed(token.id)
            except Exception:
                logger.exception(
                    "Scheduled token refresh failed",
                    extra={"token_id": token.id, "user_id": token.local_user_id},
                )
                continue
            refreshed += 1

        logger.info(
            "Token refresh sweep finished",
            extra={"refreshed": refreshed, "failed": len(stale) - refreshed},
        )
        return refreshed

    async def run_forever(self) -> None:
        while True:
            try:
                await self.run_once()
            except Exception:  # pragma: no cover - store outage; retry next tick
                logger.exception("Token refresh sweep aborted")
            await asyncio.sleep(self._interval)

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(
                self.run_forever(), name="marketplace-token-refresh"
            )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None


__all__ = ["TokenRefreshScheduler"]


async def main() -> None:
    from app.core.config import get_settings
    from app.core.logging import configure_logging
    from app.dependencies.clients import get_marketplace_token_service

    settings = get_settings()
    configure_logging(settings.log_level)
    scheduler = TokenRefreshScheduler(
        get_marketplace_token_service(),
        interval_seconds=settings.scheduler.interval_seconds,
    )
    await scheduler.run_forever()


if __name__ == "__main__":  # pragma: no cover - manual execution path
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Token refresh scheduler stopped")

