"""Pricing resolver factory.

Provides get_resolver() / set_resolver() to swap implementations:
- InMemoryCatalogue for development and testing
- a catalogue-service client in deployments that have one
"""

from storefront.pricing.in_memory import InMemoryCatalogue
from storefront.pricing.port import PricingResolver

_current_resolver: PricingResolver | None = None


def get_resolver() -> PricingResolver:
    """Return the current pricing resolver. Defaults to InMemoryCatalogue."""
    global _current_resolver
    if _current_resolver is None:
        _current_resolver = InMemoryCatalogue()
    return _current_resolver


def set_resolver(resolver: PricingResolver) -> None:
    """Override the active pricing resolver (useful for tests)."""
    global _current_resolver
    _current_resolver = resolver


def reset_resolver() -> None:
    global _current_resolver
    _current_resolver = None
