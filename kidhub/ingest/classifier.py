"""Map a verified ``charge.success`` event to a plan and entitlement length.

A plan echoed back in the payment metadata wins when it is one we sell.
Otherwise the amount is matched against the price list; an amount we do not
recognize leaves the user on ``pending`` without touching their expiry.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

from ..models import PaystackChargeData

PLAN_PENDING = "pending"
PLAN_MONTHLY = "monthly"
PLAN_YEARLY = "yearly"
PLAN_LIFETIME = "lifetime"
PLAN_COMMUNITY = "community"

# KES, in minor units.
PLAN_PRICES: Dict[str, int] = {
    PLAN_MONTHLY: 100 * 100,
    PLAN_YEARLY: 900 * 100,
    PLAN_LIFETIME: 5000 * 100,
    PLAN_COMMUNITY: 5 * 100,
}

# None = never expires.
PLAN_DURATION_DAYS: Dict[str, Optional[int]] = {
    PLAN_MONTHLY: 30,
    PLAN_YEARLY: 365,
    PLAN_LIFETIME: None,
    PLAN_COMMUNITY: None,
}

_PLAN_BY_AMOUNT: Dict[int, str] = {amount: plan for plan, amount in PLAN_PRICES.items()}


@dataclass(frozen=True)
class Classification:
    plan: str
    days: Optional[int]
    source: str  # metadata | amount | none

    @property
    def grants_entitlement(self) -> bool:
        return self.plan != PLAN_PENDING

    @property
    def status(self) -> str:
        return "active" if self.grants_entitlement else "inactive"


def is_known_plan(plan: str) -> bool:
    return plan in PLAN_PRICES


def classify(charge: PaystackChargeData) -> Classification:
    declared = charge.declared_plan
    if is_known_plan(declared):
        return Classification(declared, PLAN_DURATION_DAYS[declared], "metadata")

    plan = _PLAN_BY_AMOUNT.get(charge.amount)
    if plan:
        return Classification(plan, PLAN_DURATION_DAYS[plan], "amount")

    return Classification(PLAN_PENDING, None, "none")
