"""JSON shapes for carts as the storefront client sees them."""

from storefront.cart.cart import as_utc
from storefront.cart.recompute import price_lines
from storefront.cart.totals import CartTotals, compute_totals, price_summary
from storefront.settings.shipping import shipping_rule


def _stamp(value):
    value = as_utc(value)
    return value.isoformat() if value else None


def format_cart(cart, lines=None) -> dict:
    """Full cart with live per-item prices. ``lines`` may be passed in when already priced."""
    lines = lines if lines is not None else price_lines(cart)
    priced = {line.item_id: line for line in lines}

    items = []
    for item in cart.items:
        line = priced.get(str(item.id))
        items.append(
            {
                "itemId": str(item.id),
                "productId": str(item.product_id),
                "variantId": item.variant_id,
                "quantity": item.quantity,
                "title": item.title,
                "image": item.image,
                "sku": item.sku,
                "attributes": item.attribute_map,
                "price": line.regular_price if line else None,
                "discountPrice": line.discount_price if line else None,
                "lineTotal": round(line.effective_price * item.quantity, 2) if line else None,
                "available": bool(line and line.quote),
                "addedAt": _stamp(item.added_at),
            }
        )

    coupon = None
    if cart.coupon is not None:
        coupon = {"code": cart.coupon.code, "discountAmount": cart.coupon.discount_amount}

    body = {
        "cartId": cart.cart_id,
        "userId": str(cart.user_id) if cart.user_id else None,
        "status": cart.status,
        "items": items,
        "subtotal": cart.subtotal,
        "tax": cart.tax,
        "shippingEstimate": cart.shipping_estimate,
        "total": cart.total,
        "coupon": coupon,
        "itemCount": cart.item_count,
        "expiresAt": _stamp(cart.expires_at),
        "createdAt": _stamp(cart.created_at),
        "updatedAt": _stamp(cart.updated_at),
    }
    if cart.checkout_expiry is not None:
        body["checkoutExpiresAt"] = _stamp(cart.checkout_expiry)
    return body


def empty_price_summary() -> dict:
    return price_summary(compute_totals([], shipping_rule()))


def cart_price_summary(cart, totals: CartTotals) -> dict:
    return price_summary(totals, cart.coupon.code if cart.coupon else None)
