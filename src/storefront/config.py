"""Runtime settings read from the process environment.

Protean's own configuration (providers, brokers, event store) lives in
``domain.toml``; these are the storefront knobs that operators tune per
deployment without touching that file.
"""

import os

DEFAULT_CURRENCY = "INR"

# Fallbacks when no store setting is persisted for shipping
DEFAULT_FREE_SHIPPING_THRESHOLD = 999.0
DEFAULT_FLAT_SHIPPING = 99.0


def environment() -> str:
    return (os.getenv("ENVIRONMENT") or os.getenv("PROTEAN_ENV") or "development").lower()


def is_production() -> bool:
    return environment() == "production"


def cart_cookie_name() -> str:
    return os.getenv("CART_COOKIE_NAME", "cart_id")


def cart_ttl_days() -> int:
    return int(os.getenv("CART_TTL_DAYS", "30"))


def checkout_ttl_minutes() -> int:
    return int(os.getenv("CHECKOUT_TTL_MINUTES", "5"))


def checkout_abandon_grace_minutes() -> int:
    return int(os.getenv("CHECKOUT_ABANDON_GRACE_MINUTES", "60"))
