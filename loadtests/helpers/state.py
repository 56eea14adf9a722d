"""Per-user state tracking for Locust load test scenarios.

Each Locust user instance maintains its own state, with no cross-user
sharing. State tracks the ids and tokens returned by the API so follow-up
requests can reference them.
"""

from dataclasses import dataclass, field


@dataclass
class ShopperState:
    """Tracks a single simulated shopper from first item to placed order."""

    user_id: str | None = None
    cart_id: str | None = None
    item_ids: list[str] = field(default_factory=list)
    checkout_token: str | None = None
    idempotency_key: str | None = None
    order_id: str | None = None
    requires_payment: bool = False
