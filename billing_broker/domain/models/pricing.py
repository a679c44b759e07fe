"""Plan price table used by the subscription simulator and checkout."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping

MONTHLY = "monthly"
ANNUAL = "annual"

RETENTION_DISCOUNT_PERCENT = 30


@dataclass(frozen=True, slots=True)
class PlanPricing:
    original: Decimal
    discounted: Decimal
    period_days: int


class PriceTable:
    """Immutable mapping of plan name to its pricing."""

    def __init__(self, plans: Mapping[str, PlanPricing]) -> None:
        if not plans:
            raise ValueError("Price table must define at least one plan")
        self._plans: Mapping[str, PlanPricing] = MappingProxyType(dict(plans))

    def __contains__(self, plan: object) -> bool:
        return isinstance(plan, str) and plan in self._plans

    def __getitem__(self, plan: str) -> PlanPricing:
        return self._plans[plan]

    def __iter__(self) -> Iterator[str]:
        return iter(self._plans)

    def plans(self) -> List[str]:
        return list(self._plans)

    def as_dict(self) -> Dict[str, Dict[str, float]]:
        return {
            name: {"original": float(p.original), "discounted": float(p.discounted)}
            for name, p in self._plans.items()
        }


DEFAULT_PRICE_TABLE = PriceTable(
    {
        MONTHLY: PlanPricing(original=Decimal("9.99"), discounted=Decimal("6.99"), period_days=30),
        ANNUAL: PlanPricing(original=Decimal("99.99"), discounted=Decimal("69.99"), period_days=365),
    }
)
