"""Pricing resolver port (abstract interface).

The product catalogue owns prices. Carts never store a price: every recompute
asks the resolver for the current quote, so the staleness policy lives in
one place.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True)
class PriceQuote:
    """Current regular price and optional discount price of a product/variant."""

    price: float
    discount_price: float | None = None

    @property
    def effective_price(self) -> float:
        if self.discount_price is not None and self.discount_price > 0:
            return self.discount_price
        return self.price


@dataclass(frozen=True)
class ProductSnapshot:
    """Display data captured on a cart line when it is added."""

    title: str
    image: str | None = None
    sku: str | None = None
    attributes: dict = field(default_factory=dict)


class PricingResolver(ABC):
    @abstractmethod
    def resolve_price(self, product_id: str, variant_id: str | None) -> PriceQuote | None:
        """Return the live quote, or None when the product/variant is unknown."""
        ...

    @abstractmethod
    def describe(self, product_id: str, variant_id: str | None) -> ProductSnapshot | None:
        """Return display data for a product/variant, or None when unknown."""
        ...
