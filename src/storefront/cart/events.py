"""Domain events for the Cart aggregate."""

from protean.fields import DateTime, Float, Identifier, Integer, String

from storefront.domain import storefront


@storefront.event(part_of="Cart")
class CartCreated:
    """A new cart was opened for a guest or an authenticated user."""

    __version__ = 1

    cart_id = String(required=True)
    user_id = Identifier()
    created_at = DateTime(required=True)


@storefront.event(part_of="Cart")
class CartItemAdded:
    """A product was added to the cart, or an existing line grew."""

    __version__ = 1

    cart_id = String(required=True)
    item_id = Identifier(required=True)
    product_id = Identifier(required=True)
    variant_id = String()
    quantity = Integer(required=True)
    new_quantity = Integer(required=True)


@storefront.event(part_of="Cart")
class CartItemQuantityUpdated:
    __version__ = 1

    cart_id = String(required=True)
    item_id = Identifier(required=True)
    previous_quantity = Integer(required=True)
    new_quantity = Integer(required=True)


@storefront.event(part_of="Cart")
class CartItemRemoved:
    __version__ = 1

    cart_id = String(required=True)
    item_id = Identifier(required=True)
    product_id = Identifier(required=True)


@storefront.event(part_of="Cart")
class CartCleared:
    __version__ = 1

    cart_id = String(required=True)
    items_removed = Integer(required=True)


@storefront.event(part_of="Cart")
class CartCouponApplied:
    """A coupon passed validation and was attached to the cart."""

    __version__ = 1

    cart_id = String(required=True)
    coupon_code = String(required=True)
    discount_amount = Float(required=True)


@storefront.event(part_of="Cart")
class CartCouponRemoved:
    __version__ = 1

    cart_id = String(required=True)
    coupon_code = String(required=True)
    reason = String()


@storefront.event(part_of="Cart")
class CartClaimed:
    """An ownerless cart was bound to an authenticated user."""

    __version__ = 1

    cart_id = String(required=True)
    user_id = Identifier(required=True)


@storefront.event(part_of="Cart")
class CartsMerged:
    """A guest cart's lines were folded into the user's live cart."""

    __version__ = 1

    cart_id = String(required=True)
    source_cart_id = String(required=True)
    user_id = Identifier(required=True)
    items_merged_count = Integer(required=True)


@storefront.event(part_of="Cart")
class CheckoutStarted:
    __version__ = 1

    cart_id = String(required=True)
    user_id = Identifier(required=True)
    checkout_expiry = DateTime(required=True)


@storefront.event(part_of="Cart")
class CheckoutReleased:
    """An expired checkout lock was dropped and the cart became editable again."""

    __version__ = 1

    cart_id = String(required=True)
    released_at = DateTime(required=True)


@storefront.event(part_of="Cart")
class CheckoutAbandoned:
    __version__ = 1

    cart_id = String(required=True)
    user_id = Identifier()
    abandoned_at = DateTime(required=True)


@storefront.event(part_of="Cart")
class CartOrdered:
    """The locked cart was converted into an order."""

    __version__ = 1

    cart_id = String(required=True)
    order_id = Identifier(required=True)
    user_id = Identifier(required=True)
    completed_at = DateTime(required=True)
