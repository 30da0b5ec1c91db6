"""
Pydantic models for product synchronization requests and outcomes.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class SyncAction(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    SYNCED = "synced"
    ERROR = "error"


class SyncResult(BaseModel):
    """Outcome of synchronizing a single local product."""

    success: bool
    message: str
    local_product_id: str
    remote_catalog_id: Optional[str] = None
    action: SyncAction
    error: Optional[str] = Field(
        None, description="Remote or lookup failure detail when action is error."
    )


class SyncSummary(BaseModel):
    total: int = 0
    successful: int = 0
    errors: int = 0
    created: int = 0
    updated: int = 0


class SyncRequest(BaseModel):
    """Body of ``POST /mercadolibre/sync``."""

    product_ids: Optional[List[str]] = Field(
        None,
        description=(
            "Explicit products to sync. When empty, every product with "
            "sync_enabled=true is synced."
        ),
    )
    force_sync: bool = Field(
        False, description="Accepted for forward compatibility; no effect yet."
    )


class SyncResponse(BaseModel):
    results: List[SyncResult] = Field(default_factory=list)
    summary: SyncSummary
    message: str


def summarize_results(results: List[SyncResult]) -> SyncSummary:
    """Reduce per-product results into aggregate counts."""
    summary = SyncSummary(total=len(results))
    for result in results:
        if result.success:
            summary.successful += 1
        else:
            summary.errors += 1
        if result.action is SyncAction.CREATED:
            summary.created += 1
        elif result.action is SyncAction.UPDATED:
            summary.updated += 1
    return summary


__all__ = [
    "SyncAction",
    "SyncRequest",
    "SyncResponse",
    "SyncResult",
    "SyncSummary",
    "summarize_results",
]
