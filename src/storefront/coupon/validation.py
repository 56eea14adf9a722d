"""Coupon eligibility rules.

Rules run in a fixed order and the first failing rule decides the message
the shopper sees. The minimum cart value is measured on item totals after
per-item discounts and before shipping.
"""

from dataclasses import dataclass
from datetime import UTC, datetime

from protean.utils.globals import current_domain

from storefront.cart.totals import PricedLine, items_total, round_money
from storefront.coupon.coupon import Coupon
from storefront.errors import CouponRejected


@dataclass(frozen=True)
class CouponDecision:
    coupon: Coupon
    item_total: float
    discount: float


def _reject(message, error_code, status_code=400):
    error = CouponRejected(message, error_code)
    error.status_code = status_code
    return error


def _prior_orders(user_id, coupon_code=None) -> int:
    from storefront.order.order import Order

    repo = current_domain.repository_for(Order)
    return repo.count_placed_by(user_id, coupon_code=coupon_code)


def evaluate_coupon(code, lines: list[PricedLine], user_id=None, now=None) -> CouponDecision:
    """Check ``code`` against the cart ``lines`` and price the discount.

    Raises ``CouponRejected`` carrying the failing rule's message and code.
    """
    if not code or not str(code).strip():
        raise _reject("Coupon code is required", "COUPON_REQUIRED")

    now = now or datetime.now(UTC)
    coupon = current_domain.repository_for(Coupon).find_by_code(code)
    if coupon is None:
        raise _reject("Invalid coupon code", "INVALID_COUPON", status_code=404)

    if not coupon.is_active:
        raise _reject("Coupon is inactive", "COUPON_INACTIVE")

    if not coupon.started(now):
        raise _reject("Coupon is expired or not yet active", "COUPON_NOT_STARTED")
    if coupon.ended(now):
        raise _reject("Coupon is expired or not yet active", "COUPON_EXPIRED")

    if coupon.depleted:
        raise _reject("Coupon usage limit reached", "USAGE_LIMIT_REACHED")

    if coupon.is_new_user_only:
        if not user_id:
            raise _reject("Please login to use this new user coupon", "LOGIN_REQUIRED")
        if _prior_orders(user_id) > 0:
            raise _reject("This coupon is valid for your first order only", "NOT_FIRST_ORDER")
    elif user_id and coupon.per_user_limit:
        if _prior_orders(user_id, coupon_code=coupon.code) >= coupon.per_user_limit:
            raise _reject("Coupon usage limit reached for your account", "USER_LIMIT_REACHED")

    item_total = items_total(lines)
    if item_total < (coupon.min_cart_value or 0.0):
        raise _reject(f"Minimum cart value of ₹{coupon.min_cart_value:g} required", "MIN_CART_NOT_MET")

    return CouponDecision(
        coupon=coupon,
        item_total=item_total,
        discount=round_money(coupon.discount_for(item_total)),
    )


def available_coupons(now=None) -> list[dict]:
    """Coupons a shopper can currently apply, soonest-ending first."""
    now = now or datetime.now(UTC)
    return [
        {
            "code": coupon.code,
            "description": coupon.description or coupon.label,
            "label": coupon.label,
            "type": coupon.type,
            "value": coupon.value,
            "minCartValue": coupon.min_cart_value,
            "maxDiscount": coupon.max_discount,
            "newUserOnly": bool(coupon.is_new_user_only),
            "expiresAt": coupon.end_date,
        }
        for coupon in current_domain.repository_for(Coupon).find_active()
        if coupon.started(now) and not coupon.ended(now) and not coupon.depleted
    ]
