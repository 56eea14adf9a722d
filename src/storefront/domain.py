"""Storefront bounded context — Cart lifecycle, checkout locking and order placement.

Handles guest and authenticated carts, coupon application, the checkout
lock that freezes a cart while payment is taken, and idempotent conversion
of a locked cart into an order.
"""

from protean.domain import Domain

from storefront.utils.logging import configure_logging, get_logger

configure_logging()

logger = get_logger(__name__)

storefront = Domain(name="storefront")
