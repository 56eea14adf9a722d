"""Order placement — consuming a checkout lock exactly once per idempotency key.

The handler runs in a single unit of work. It writes the order, its payment
record, the cart's move to ``ordered`` (guarded on the cart still being
at the version read), the coupon usage and the idempotency record.
If any of those fails nothing is committed, so a retry either finds the
idempotency record and the order it points to, or finds no trace and places
the order afresh.

Two concurrent requests with the same key both miss the lookup; only one of
them can win the guarded cart write and the idempotency insert. The loser,
whether it fails in the handler or when the provider rejects the duplicate
key at commit, and a request that only reads the cart after the winner
ordered it, are answered by ``place_order`` re-reading the record the winner
committed.
"""

from collections import Counter
from dataclasses import dataclass
from datetime import UTC, datetime

from protean import handle
from protean.exceptions import ProteanException
from protean.fields import Dict, Identifier, List, String
from protean.utils.globals import current_domain
from sqlalchemy.exc import IntegrityError

from storefront.cart.cart import Cart, CartStatus
from storefront.cart.recompute import recompute
from storefront.coupon.coupon import Coupon
from storefront.domain import logger, storefront
from storefront.errors import (
    CartItemsMismatch,
    CartNotFound,
    CartNotLocked,
    CheckoutExpired,
    ConcurrentModification,
    CouponRejected,
    DuplicateIdempotencyKey,
    EmptyCart,
    Forbidden,
    InvalidCheckoutToken,
    MissingIdempotencyKey,
    ProductNotFound,
    Unauthorized,
)
from storefront.order.idempotency import IdempotencyRecord
from storefront.order.order import Order
from storefront.order.payment import Payment


@dataclass
class PlacementResult:
    order: Order
    idempotent: bool = False


@storefront.command(part_of=Order)
class PlaceOrder:
    user_id = Identifier()
    cart_id = String(max_length=30)
    idempotency_key = String(max_length=255)
    address_id = String(max_length=100)
    payment_method = String(max_length=20)
    checkout_token = String(max_length=60)
    items = List(content_type=Dict)  # what the client believes it is buying


def _line_key(product_id, variant_id, quantity):
    return (str(product_id), variant_id or None, int(quantity))


def items_match(cart, requested) -> bool:
    """True when ``requested`` names exactly the cart's lines and quantities."""
    wanted = Counter(
        _line_key(
            item.get("productId") or item.get("product_id"),
            item.get("variantId") or item.get("variant_id"),
            item.get("quantity") or 0,
        )
        for item in requested
    )
    held = Counter(_line_key(item.product_id, item.variant_id, item.quantity) for item in cart.items)
    return wanted == held


def _replay(record) -> PlacementResult:
    order = current_domain.repository_for(Order).get(record.order_id)
    return PlacementResult(order=order, idempotent=True)


@storefront.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        if not command.idempotency_key:
            raise MissingIdempotencyKey()
        if not command.user_id:
            raise Unauthorized()

        user_id = str(command.user_id)
        records = current_domain.repository_for(IdempotencyRecord)
        record = records.lookup(user_id, command.idempotency_key)
        if record is not None:
            logger.info(
                "Idempotent order replay",
                order_id=str(record.order_id),
                user_id=user_id,
                cart_id=record.cart_id,
            )
            return _replay(record)

        now = datetime.now(UTC)
        carts = current_domain.repository_for(Cart)
        cart = carts.find_by_cart_id(command.cart_id) if command.cart_id else carts.find_live_for_user(user_id)
        if cart is None:
            raise CartNotFound()
        if not cart.owned_by(user_id):
            raise Forbidden(message="Cart does not belong to this user")

        self._check_lock(cart, command.checkout_token, now)
        if not cart.items:
            raise EmptyCart()
        if command.items and not items_match(cart, command.items):
            raise CartItemsMismatch()

        lines, totals = recompute(cart, now=now)
        if any(line.quote is None for line in lines):
            raise ProductNotFound(message="A product in your cart is no longer available")

        order = Order.place(
            user_id=user_id,
            cart=cart,
            lines=lines,
            totals=totals,
            payment_method=command.payment_method,
            address_id=command.address_id,
            idempotency_key=command.idempotency_key,
            now=now,
        )
        if cart.coupon is not None:
            self._consume_coupon(cart.coupon.code)

        records.claim(user_id, command.idempotency_key, order.id, cart.cart_id)
        cart.mark_ordered(order.id, now=now)
        carts.save(cart)
        current_domain.repository_for(Order).add(order)
        current_domain.repository_for(Payment).add(Payment.open(order))

        logger.info(
            "Order placed",
            order_id=str(order.id),
            user_id=user_id,
            cart_id=cart.cart_id,
            total_amount=order.total_amount,
            payment_method=order.payment_method,
        )
        return PlacementResult(order=order)

    def _check_lock(self, cart, token, now):
        if CartStatus(cart.status) != CartStatus.CHECKOUT:
            raise CartNotLocked()
        if not cart.checkout_held(now):
            raise CheckoutExpired()
        if token and token != cart.checkout_token:
            raise InvalidCheckoutToken()

    def _consume_coupon(self, code):
        coupons = current_domain.repository_for(Coupon)
        coupon = coupons.find_by_code(code)
        if coupon is None or not coupons.consume(coupon):
            raise CouponRejected(message="Coupon usage limit reached", error_code="COUPON_EXHAUSTED")


def place_order(**fields) -> PlacementResult:
    """Place an order, answering a lost same-key race with the winner's order."""
    try:
        return current_domain.process(PlaceOrder(**fields), asynchronous=False)
    except (ConcurrentModification, DuplicateIdempotencyKey, CartNotLocked, ProteanException, IntegrityError):
        # Provider errors reach here when the unit of work fails to commit
        user_id, key = fields.get("user_id"), fields.get("idempotency_key")
        record = current_domain.repository_for(IdempotencyRecord).lookup(user_id, key)
        if record is None:
            raise
        logger.info("Order race lost, replaying winner", order_id=str(record.order_id), user_id=user_id)
        return _replay(record)
