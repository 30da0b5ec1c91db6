"""
Request identity and subscription plan gates.

Authentication happens upstream; the gateway forwards the authenticated user
and their plan as headers.
"""

from enum import Enum
from typing import Callable, Optional

from fastapi import Header, HTTPException, status


class SubscriptionPlan(str, Enum):
    BASIC = "basic"
    PREMIUM = "premium"
    ENTERPRISE = "enterprise"


_PLAN_RANK = {
    SubscriptionPlan.BASIC: 1,
    SubscriptionPlan.PREMIUM: 2,
    SubscriptionPlan.ENTERPRISE: 3,
}


def get_current_user_id(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
) -> str:
    """FastAPI dependency returning the authenticated local user id."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required.",
        )
    return x_user_id


def require_plan(minimum: SubscriptionPlan) -> Callable[..., SubscriptionPlan]:
    """Build a dependency rejecting callers below ``minimum``."""

    def _check(
        x_subscription_plan: Optional[str] = Header(
            default=None, alias="X-Subscription-Plan"
        ),
    ) -> SubscriptionPlan:
        try:
            plan = SubscriptionPlan((x_subscription_plan or "").lower())
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="An active subscription is required.",
            ) from None
        if _PLAN_RANK[plan] < _PLAN_RANK[minimum]:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"The {minimum.value} plan or higher is required.",
            )
        return plan

    return _check


__all__ = ["SubscriptionPlan", "get_current_user_id", "require_plan"]
