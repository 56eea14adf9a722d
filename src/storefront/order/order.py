"""Order aggregate — the durable result of a completed checkout.

An order freezes what the cart looked like at the moment the checkout lock
was consumed: live prices resolved at that instant, the coupon discount and
the shipping charge. Nothing on the order is recomputed afterwards.

Payment state machine:
    PENDING → PAID | FAILED
    PAID → REFUNDED
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String, Text

from storefront.config import DEFAULT_CURRENCY
from storefront.domain import storefront
from storefront.order.events import OrderPaid, OrderPaymentFailed, OrderPlaced


class OrderStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentMethod(Enum):
    COD = "COD"
    RAZORPAY = "Razorpay"
    STRIPE = "Stripe"
    WALLET = "Wallet"
    PHONEPE = "PhonePe"


# Methods settled by an external gateway; the client must complete payment
ONLINE_PAYMENT_METHODS = {PaymentMethod.RAZORPAY, PaymentMethod.STRIPE, PaymentMethod.PHONEPE}

_PAYMENT_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.PAID, PaymentStatus.FAILED},
    PaymentStatus.PAID: {PaymentStatus.REFUNDED},
    PaymentStatus.FAILED: set(),
    PaymentStatus.REFUNDED: set(),
}


@storefront.entity(part_of="Order")
class OrderItem:
    product_id = Identifier(required=True)
    variant_id = String(max_length=100)
    quantity = Integer(required=True, min_value=1)
    price = Float(required=True, min_value=0.0)  # sold price after product discount
    regular_price = Float(default=0.0)
    name = String(required=True, max_length=255)
    sku = String(max_length=100)
    image = String(max_length=500)
    attributes = Text()  # JSON object


@storefront.entity(part_of="Order")
class StatusChange:
    status = String(required=True, max_length=30)
    note = String(max_length=255)
    changed_at = DateTime(required=True)


@storefront.aggregate
class Order:
    user_id = Identifier(required=True)
    cart_id = String(required=True, max_length=30)
    idempotency_key = String(max_length=255)
    items = HasMany(OrderItem)
    total_quantity = Integer(default=0)
    subtotal = Float(default=0.0)
    shipping_cost = Float(default=0.0)
    discount = Float(default=0.0)
    total_amount = Float(default=0.0)
    currency = String(max_length=3, default=DEFAULT_CURRENCY)
    coupon_code = String(max_length=50)
    coupon_id = Identifier()
    address_id = String(max_length=100)
    payment_method = String(required=True, choices=PaymentMethod)
    payment_status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    order_status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    status_history = HasMany(StatusChange)
    placed_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def order_must_have_items(self):
        if not self.items:
            raise ValidationError({"items": ["An order needs at least one item"]})

    @classmethod
    def place(cls, user_id, cart, lines, totals, payment_method, address_id=None, idempotency_key=None, now=None):
        """Build an order from a cart's priced ``lines`` and ``totals``."""
        now = now or datetime.now(UTC)
        items_by_id = {str(item.id): item for item in cart.items}

        order_items = []
        for line in lines:
            item = items_by_id[line.item_id]
            order_items.append(
                OrderItem(
                    product_id=line.product_id,
                    variant_id=line.variant_id,
                    quantity=line.quantity,
                    price=line.effective_price,
                    regular_price=line.regular_price,
                    name=item.title or f"Product {line.product_id}",
                    sku=item.sku,
                    image=item.image,
                    attributes=item.attributes,
                )
            )

        order = cls(
            user_id=user_id,
            cart_id=cart.cart_id,
            idempotency_key=idempotency_key,
            items=order_items,
            total_quantity=totals.item_count,
            subtotal=totals.subtotal,
            shipping_cost=totals.shipping_estimate,
            discount=totals.discount,
            total_amount=totals.total,
            currency=totals.currency,
            coupon_code=cart.coupon.code if cart.coupon else None,
            coupon_id=cart.coupon.coupon_id if cart.coupon else None,
            address_id=address_id,
            payment_method=payment_method,
            status_history=[StatusChange(status=OrderStatus.PENDING.value, note="Order placed", changed_at=now)],
            placed_at=now,
            updated_at=now,
        )
        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                user_id=str(user_id),
                cart_id=cart.cart_id,
                total_amount=order.total_amount,
                total_quantity=order.total_quantity,
                payment_method=payment_method,
                coupon_code=order.coupon_code,
                placed_at=now,
            )
        )
        return order

    @property
    def requires_payment(self) -> bool:
        return PaymentMethod(self.payment_method) in ONLINE_PAYMENT_METHODS

    def _move_payment(self, target: PaymentStatus) -> bool:
        current = PaymentStatus(self.payment_status)
        if current == target:
            return False
        if target not in _PAYMENT_TRANSITIONS[current]:
            raise ValidationError({"payment_status": [f"Cannot move payment from {current.value} to {target.value}"]})
        self.payment_status = target.value
        return True

    def mark_paid(self, transaction_id=None, now=None) -> bool:
        """Record a successful payment; repeating it is a no-op."""
        now = now or datetime.now(UTC)
        with atomic_change(self):
            if not self._move_payment(PaymentStatus.PAID):
                return False
            self.order_status = OrderStatus.CONFIRMED.value
            self.add_status_history(
                StatusChange(status=OrderStatus.CONFIRMED.value, note="Payment received", changed_at=now)
            )
            self.updated_at = now

        self.raise_(OrderPaid(order_id=str(self.id), transaction_id=transaction_id, paid_at=now))
        return True

    def mark_payment_failed(self, reason=None, now=None) -> bool:
        now = now or datetime.now(UTC)
        if not self._move_payment(PaymentStatus.FAILED):
            return False
        self.updated_at = now
        self.raise_(OrderPaymentFailed(order_id=str(self.id), reason=reason, failed_at=now))
        return True

    def to_dict(self) -> dict:
        return {
            "orderId": str(self.id),
            "userId": str(self.user_id),
            "cartId": self.cart_id,
            "items": [
                {
                    "productId": str(item.product_id),
                    "variantId": item.variant_id,
                    "quantity": item.quantity,
                    "price": item.price,
                    "regularPrice": item.regular_price,
                    "name": item.name,
                    "sku": item.sku,
                    "image": item.image,
                    "attributes": json.loads(item.attributes) if item.attributes else None,
                }
                for item in self.items
            ],
            "totalQuantity": self.total_quantity,
            "subtotal": self.subtotal,
            "shippingCost": self.shipping_cost,
            "discount": self.discount,
            "totalAmount": self.total_amount,
            "currency": self.currency,
            "coupon": {"code": self.coupon_code, "discountAmount": self.discount} if self.coupon_code else None,
            "addressId": self.address_id,
            "paymentMethod": self.payment_method,
            "paymentStatus": self.payment_status,
            "orderStatus": self.order_status,
            "statusHistory": [
                {"status": change.status, "note": change.note, "changedAt": change.changed_at}
                for change in sorted(self.status_history, key=lambda c: c.changed_at)
            ],
            "placedAt": self.placed_at,
        }
