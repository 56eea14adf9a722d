"""Cart coupon management — commands and handler."""

from datetime import UTC, datetime

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from storefront.cart.cart import Cart
from storefront.cart.items import load_mutable_cart, persist
from storefront.cart.recompute import price_lines
from storefront.coupon.validation import evaluate_coupon
from storefront.domain import logger, storefront


@storefront.command(part_of="Cart")
class ApplyCoupon:
    cart_id = String(required=True, max_length=30)
    code = String(max_length=50)
    user_id = Identifier()


@storefront.command(part_of="Cart")
class RemoveCoupon:
    cart_id = String(required=True, max_length=30)
    user_id = Identifier()


@storefront.command_handler(part_of=Cart)
class CartCouponsHandler:
    @handle(ApplyCoupon)
    def apply_coupon(self, command):
        now = datetime.now(UTC)
        cart = load_mutable_cart(command.cart_id, now)

        # The signed-in shopper may not own the cart yet (guest cart before merge)
        user_id = cart.user_id or command.user_id
        decision = evaluate_coupon(command.code, price_lines(cart), user_id=user_id, now=now)

        cart.detach_coupon(reason="Replaced")
        cart.attach_coupon(decision.coupon.code, str(decision.coupon.id), decision.discount)
        persist(cart, now, user_id)
        logger.info(
            "Coupon applied to cart",
            cart_id=cart.cart_id,
            coupon_code=decision.coupon.code,
            discount=cart.coupon.discount_amount if cart.coupon else 0.0,
        )
        return cart

    @handle(RemoveCoupon)
    def remove_coupon(self, command):
        now = datetime.now(UTC)
        cart = load_mutable_cart(command.cart_id, now)
        cart.detach_coupon(reason="Removed by shopper")
        return persist(cart, now, command.user_id)
