"""Join a cart with live prices and refresh its cached totals."""

from datetime import UTC, datetime

from storefront.cart.totals import CartTotals, PricedLine, compute_totals
from storefront.coupon.validation import evaluate_coupon
from storefront.domain import logger
from storefront.errors import CouponRejected
from storefront.pricing import get_resolver
from storefront.settings.shipping import shipping_rule


def price_lines(cart) -> list[PricedLine]:
    resolver = get_resolver()
    lines = []
    for item in cart.items:
        quote = resolver.resolve_price(str(item.product_id), item.variant_id)
        if quote is None:
            logger.warning(
                "No live price for cart item",
                cart_id=cart.cart_id,
                product_id=str(item.product_id),
                variant_id=item.variant_id,
            )
        lines.append(
            PricedLine(
                item_id=str(item.id),
                product_id=str(item.product_id),
                variant_id=item.variant_id,
                quantity=item.quantity,
                quote=quote,
            )
        )
    return lines


def recompute(cart, now=None, user_id=None) -> tuple[list[PricedLine], CartTotals]:
    """Recompute and store the cart's totals from its current items.

    An applied coupon is re-checked against the new item set: it is dropped
    if it no longer qualifies, otherwise its discount is re-priced. ``user_id``
    stands in for the owner of a cart the signed-in shopper has not claimed yet.
    """
    now = now or datetime.now(UTC)
    lines = price_lines(cart)

    discount = 0.0
    if cart.coupon is not None:
        if not lines:
            cart.detach_coupon(reason="Cart is empty")
        else:
            try:
                decision = evaluate_coupon(cart.coupon.code, lines, user_id=cart.user_id or user_id, now=now)
                discount = decision.discount
            except CouponRejected as exc:
                logger.info(
                    "Dropping coupon that no longer applies",
                    cart_id=cart.cart_id,
                    coupon_code=cart.coupon.code,
                    reason=exc.message,
                )
                cart.detach_coupon(reason=exc.message)

    totals = compute_totals(lines, shipping_rule(), discount)
    cart.apply_totals(totals)
    return lines, totals
