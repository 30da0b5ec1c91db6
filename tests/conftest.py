"""Pytest configuration shared across the suite."""

from datetime import datetime, timezone

import pytest

try:
    from . import _bootstrap  # noqa: F401
    from ._fakes import FrozenClock
except ImportError:  # pragma: no cover - tests/ is not a package
    import _bootstrap  # type: ignore # noqa: F401
    from _fakes import FrozenClock  # type: ignore


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO-powered tests to run against asyncio backend only."""
    return "asyncio"


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc))
