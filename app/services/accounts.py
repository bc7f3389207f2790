from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict

from app.config import get_settings
from app.services.interfaces import FeatureAccess, QuotaStatus

logger = logging.getLogger(__name__)

RESTYLE_FEATURE = "restyle"

# Feature flags per plan. Plans missing from this table are legacy plans
# whose holders must pick a current subscription first.
PLAN_FEATURES: Dict[str, Dict[str, bool]] = {
    "free": {"restyle": False, "upscale4K": False, "export": True},
    "starter": {"restyle": False, "upscale4K": False, "export": True},
    "pro": {"restyle": True, "upscale4K": True, "export": True},
    "business": {"restyle": True, "upscale4K": True, "export": True},
    "enterprise": {"restyle": True, "upscale4K": True, "export": True},
    "unlimited": {"restyle": True, "upscale4K": True, "export": True},
}


@dataclass(slots=True)
class Account:
    """Billing-relevant view of a user."""

    user_id: str
    plan: str = "free"
    # Remaining generation credits, counted in images.
    credits: int = 0
    # User-supplied generation key; usage on an own key is not metered.
    own_api_key: str | None = None
    usage: Dict[str, int] = field(default_factory=dict)


class AccountDirectory:
    """
    In-memory account service: token resolution, plan entitlements, quota.

    Implements `AccountService`; production deployments swap in a client for
    the real auth and billing backends.
    """

    def __init__(self, platform_api_key: str | None = None) -> None:
        self._accounts: Dict[str, Account] = {}
        self._tokens: Dict[str, str] = {}
        self._platform_api_key = platform_api_key
        self._lock = threading.Lock()

    def add_account(self, account: Account, token: str | None = None) -> Account:
        with self._lock:
            self._accounts[account.user_id] = account
            if token:
                self._tokens[token] = account.user_id
        return account

    def get_account(self, user_id: str) -> Account | None:
        return self._accounts.get(user_id)

    def resolve_token(self, token: str) -> str | None:
        return self._tokens.get(token)

    def check_feature_access(self, user_id: str, feature: str) -> FeatureAccess:
        account = self._accounts.get(user_id)
        plan = account.plan if account else "free"
        features = PLAN_FEATURES.get(plan)
        if features is None:
            return FeatureAccess(
                allowed=False,
                reason="A subscription is required. Please choose a plan.",
                need_subscription=True,
            )
        if not features.get(feature, False):
            return FeatureAccess(
                allowed=False,
                reason=f"The {feature} feature is not available on the {plan} plan. Please upgrade.",
            )
        return FeatureAccess(allowed=True)

    def check_quota(self, user_id: str) -> QuotaStatus:
        account = self._accounts.get(user_id)
        if account is None:
            return QuotaStatus(allowed=False, reason="Unknown account.")
        if account.own_api_key:
            return QuotaStatus(allowed=True, remaining=-1)
        if account.credits <= 0:
            return QuotaStatus(allowed=False, remaining=0, reason="No generation credits remaining.")
        return QuotaStatus(allowed=True, remaining=account.credits)

    def get_generation_api_key(self, user_id: str) -> str | None:
        account = self._accounts.get(user_id)
        if account is not None and account.own_api_key:
            return account.own_api_key
        return self._platform_api_key

    def record_usage(self, user_id: str, feature: str, images: int = 1) -> None:
        with self._lock:
            account = self._accounts.get(user_id)
            if account is None:
                logger.warning("Usage recorded for unknown account %s", user_id)
                return
            account.usage[feature] = account.usage.get(feature, 0) + images
            if not account.own_api_key:
                account.credits = max(0, account.credits - images)


_default_directory: AccountDirectory | None = None


def get_account_service() -> AccountDirectory:
    """Return the process-wide account directory, created on first use."""
    global _default_directory
    if _default_directory is None:
        _default_directory = AccountDirectory(platform_api_key=get_settings().google_api_key)
    return _default_directory
