"""Ticket tiers, unit prices and server-side order pricing.

Prices are integers in the smallest currency unit (paise for INR). The tier
set is configuration input, so deployments can run Solo/Couple/Group or any
other scheme without code changes.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List, Mapping, Tuple

from .errors import InvalidQuantity, UnknownTier
from .config import DEFAULT_MAX_QUANTITY


class PricingTable:
    def __init__(self, tiers: Mapping[str, int]) -> None:
        if not tiers:
            raise ValueError("at least one ticket tier must be configured")
        self._tiers: Dict[str, int] = {}
        for name, price in tiers.items():
            if (isinstance(price, bool) or not isinstance(price, int)
                    or price <= 0):
                raise ValueError(
                    f"price for tier {name!r} must be a positive integer"
                )
            self._tiers[str(name)] = price

    def price_of(self, tier: str) -> int:
        try:
            return self._tiers[tier]
        except (KeyError, TypeError):
            raise UnknownTier(tier) from None

    def tiers(self) -> List[Tuple[str, int]]:
        return list(self._tiers.items())

    def __contains__(self, tier) -> bool:
        return tier in self._tiers


@dataclass(frozen=True)
class Order:
    tier: str
    quantity: int
    unit_price: int
    total_amount: int


def build_order(pricing: PricingTable, tier: str, quantity,
                max_quantity: int = DEFAULT_MAX_QUANTITY) -> Order:
    # bool is an int subclass; True must not buy one ticket
    if (isinstance(quantity, bool) or not isinstance(quantity, int)
            or quantity < 1 or quantity > max_quantity):
        raise InvalidQuantity(quantity, max_quantity)
    unit_price = pricing.price_of(tier)
    return Order(
        tier=tier,
        quantity=quantity,
        unit_price=unit_price,
        total_amount=unit_price * quantity,
    )
