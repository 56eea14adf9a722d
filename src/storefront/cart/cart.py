"""Cart aggregate — a shopper's selected items, running totals and checkout lock.

State machine:
    ACTIVE → CHECKOUT → ORDERED (terminal)
    CHECKOUT → ABANDONED (terminal, expired lock swept)
    CHECKOUT → ACTIVE (expired lock released before a mutation or re-lock)

Prices are never stored on lines. The money fields on the cart are a cache
written by every recompute. Protean's aggregate version guards each write,
so a save built from a stale read is rejected instead of overwriting a
newer one.
"""

import json
import secrets
import string
from datetime import UTC, datetime, timedelta
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String, Text, ValueObject

from storefront import config
from storefront.cart.events import (
    CartClaimed,
    CartCleared,
    CartCouponApplied,
    CartCouponRemoved,
    CartCreated,
    CartItemAdded,
    CartItemQuantityUpdated,
    CartItemRemoved,
    CartOrdered,
    CartsMerged,
    CheckoutAbandoned,
    CheckoutReleased,
    CheckoutStarted,
)
from storefront.domain import storefront
from storefront.errors import CartLocked, CheckoutConflict, Forbidden, ItemNotFound

CART_ID_PREFIX = "cart_"
CART_ID_LENGTH = 21
_CART_ID_ALPHABET = string.digits + string.ascii_lowercase


class CartStatus(Enum):
    ACTIVE = "active"
    CHECKOUT = "checkout"
    ORDERED = "ordered"
    ABANDONED = "abandoned"


LIVE_STATUSES = (CartStatus.ACTIVE, CartStatus.CHECKOUT)
TERMINAL_STATUSES = (CartStatus.ORDERED, CartStatus.ABANDONED)


def generate_cart_id() -> str:
    return CART_ID_PREFIX + "".join(secrets.choice(_CART_ID_ALPHABET) for _ in range(CART_ID_LENGTH))


def generate_checkout_token(now: datetime) -> str:
    return f"chk_{int(now.timestamp() * 1000)}_{secrets.token_hex(8)}"


def as_utc(value: datetime | None) -> datetime | None:
    """SQL providers hand back naive datetimes; they are stored as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


@storefront.value_object(part_of="Cart")
class AppliedCoupon:
    code = String(required=True, max_length=50)
    coupon_id = Identifier(required=True)
    discount_amount = Float(default=0.0, min_value=0.0)


@storefront.entity(part_of="Cart")
class CartItem:
    product_id = Identifier(required=True)
    variant_id = String(max_length=100)
    quantity = Integer(required=True, min_value=1)
    title = String(max_length=255)
    image = String(max_length=500)
    sku = String(max_length=100)
    attributes = Text()  # JSON object of variant attributes
    added_at = DateTime()

    def matches(self, product_id, variant_id) -> bool:
        return str(self.product_id) == str(product_id) and (self.variant_id or None) == (variant_id or None)

    @property
    def attribute_map(self) -> dict:
        return json.loads(self.attributes) if self.attributes else {}


@storefront.aggregate
class Cart:
    cart_id = String(required=True, max_length=30, unique=True)
    user_id = Identifier()  # None for guest carts
    items = HasMany(CartItem)
    subtotal = Float(default=0.0)
    tax = Float(default=0.0)
    shipping_estimate = Float(default=0.0)
    total = Float(default=0.0)
    coupon = ValueObject(AppliedCoupon)
    status = String(choices=CartStatus, default=CartStatus.ACTIVE.value)
    checkout_token = String(max_length=60)
    checkout_started_at = DateTime()
    checkout_expiry = DateTime()
    order_id = Identifier()
    completed_at = DateTime()
    expires_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def coupon_discount_cannot_exceed_subtotal(self):
        if self.coupon and self.coupon.discount_amount > (self.subtotal or 0.0) + 0.005:
            raise ValidationError({"coupon": ["Coupon discount cannot exceed the cart subtotal"]})

    @invariant.post
    def checkout_fields_only_while_locked(self):
        if self.status == CartStatus.CHECKOUT.value and not (self.checkout_token and self.checkout_expiry):
            raise ValidationError({"checkout_token": ["A checkout lock needs a token and an expiry"]})
        if self.status != CartStatus.CHECKOUT.value and self.checkout_token:
            raise ValidationError({"checkout_token": ["Checkout token is only kept while the cart is locked"]})

    @invariant.post
    def ordered_cart_references_order(self):
        if self.status == CartStatus.ORDERED.value and not self.order_id:
            raise ValidationError({"order_id": ["An ordered cart must reference its order"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, cart_id=None, user_id=None, now=None):
        now = now or datetime.now(UTC)
        cart = cls(
            cart_id=cart_id or generate_cart_id(),
            user_id=user_id,
            status=CartStatus.ACTIVE.value,
            expires_at=now + timedelta(days=config.cart_ttl_days()),
            created_at=now,
            updated_at=now,
        )
        cart.raise_(CartCreated(cart_id=cart.cart_id, user_id=user_id, created_at=now))
        return cart

    # -------------------------------------------------------------------
    # Lifecycle queries
    # -------------------------------------------------------------------
    @property
    def is_live(self) -> bool:
        return CartStatus(self.status) in LIVE_STATUSES

    def is_expired(self, now) -> bool:
        return self.expires_at is not None and as_utc(self.expires_at) < now

    def checkout_held(self, now) -> bool:
        """True while an unexpired checkout lock is held."""
        return (
            CartStatus(self.status) == CartStatus.CHECKOUT
            and self.checkout_expiry is not None
            and as_utc(self.checkout_expiry) > now
        )

    def checkout_lapsed(self, now) -> bool:
        return CartStatus(self.status) == CartStatus.CHECKOUT and not self.checkout_held(now)

    def owned_by(self, user_id) -> bool:
        return self.user_id is not None and str(self.user_id) == str(user_id)

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)

    def find_item(self, item_id):
        return next((i for i in self.items if str(i.id) == str(item_id)), None)

    # -------------------------------------------------------------------
    # Mutation guard
    # -------------------------------------------------------------------
    def assert_mutable(self, now):
        """Reject edits while checkout holds the cart.

        A lapsed lock is released first, so a shopper who walked away from
        payment can keep editing.
        """
        if self.checkout_lapsed(now):
            self.release_checkout(now)

        if CartStatus(self.status) != CartStatus.ACTIVE:
            raise CartLocked()

    # -------------------------------------------------------------------
    # Item management
    # -------------------------------------------------------------------
    def add_item(self, product_id, variant_id=None, quantity=1, snapshot=None, now=None):
        """Add a line, or grow the matching (product, variant) line."""
        if quantity is None or quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})

        now = now or datetime.now(UTC)
        existing = next((i for i in self.items if i.matches(product_id, variant_id)), None)

        if existing:
            existing.quantity += quantity
            item = existing
        else:
            item = CartItem(
                product_id=product_id,
                variant_id=variant_id or None,
                quantity=quantity,
                title=snapshot.title if snapshot else None,
                image=snapshot.image if snapshot else None,
                sku=snapshot.sku if snapshot else None,
                attributes=json.dumps(snapshot.attributes) if snapshot and snapshot.attributes else None,
                added_at=now,
            )
            self.add_items(item)

        self.updated_at = now
        self.raise_(
            CartItemAdded(
                cart_id=self.cart_id,
                item_id=str(item.id),
                product_id=str(product_id),
                variant_id=variant_id or None,
                quantity=quantity,
                new_quantity=item.quantity,
            )
        )
        return item

    def update_item_quantity(self, item_id, quantity, now=None):
        """Set a line's quantity; zero or less removes the line."""
        item = self.find_item(item_id)
        if item is None:
            raise ItemNotFound()

        if quantity is None or quantity <= 0:
            self.remove_item(item_id, now=now)
            return None

        now = now or datetime.now(UTC)
        previous_quantity = item.quantity
        item.quantity = quantity
        self.updated_at = now
        self.raise_(
            CartItemQuantityUpdated(
                cart_id=self.cart_id,
                item_id=str(item.id),
                previous_quantity=previous_quantity,
                new_quantity=quantity,
            )
        )
        return item

    def remove_item(self, item_id, now=None) -> bool:
        """Remove a line. Removing a line that is not there is a no-op."""
        item = self.find_item(item_id)
        if item is None:
            return False

        self.remove_items(item)
        self.updated_at = now or datetime.now(UTC)
        self.raise_(CartItemRemoved(cart_id=self.cart_id, item_id=str(item_id), product_id=str(item.product_id)))
        return True

    def clear(self, now=None):
        removed = len(self.items)
        for item in list(self.items):
            self.remove_items(item)

        with atomic_change(self):
            self.coupon = None
            self.subtotal = 0.0
            self.tax = 0.0
            self.shipping_estimate = 0.0
            self.total = 0.0
            self.updated_at = now or datetime.now(UTC)
        self.raise_(CartCleared(cart_id=self.cart_id, items_removed=removed))

    # -------------------------------------------------------------------
    # Coupons and totals
    # -------------------------------------------------------------------
    def attach_coupon(self, code, coupon_id, discount_amount):
        """Attach a validated coupon. The stored discount is set by the next recompute."""
        self.coupon = AppliedCoupon(code=code, coupon_id=coupon_id, discount_amount=0.0)
        self.raise_(CartCouponApplied(cart_id=self.cart_id, coupon_code=code, discount_amount=discount_amount))

    def detach_coupon(self, reason=None):
        if self.coupon is None:
            return
        code = self.coupon.code
        self.coupon = None
        self.raise_(CartCouponRemoved(cart_id=self.cart_id, coupon_code=code, reason=reason))

    def apply_totals(self, totals):
        """Store a freshly computed ``CartTotals`` on the cart."""
        with atomic_change(self):
            self.subtotal = totals.subtotal
            self.tax = totals.tax
            self.shipping_estimate = totals.shipping_estimate
            self.total = totals.total
            if self.coupon is not None and self.coupon.discount_amount != totals.discount:
                self.coupon = AppliedCoupon(
                    code=self.coupon.code,
                    coupon_id=self.coupon.coupon_id,
                    discount_amount=totals.discount,
                )

    # -------------------------------------------------------------------
    # Ownership
    # -------------------------------------------------------------------
    def claim(self, user_id):
        """Bind an ownerless cart to ``user_id``. Claiming your own cart is a no-op."""
        if self.owned_by(user_id):
            return False
        if self.user_id is not None:
            raise Forbidden()

        self.user_id = user_id
        self.updated_at = datetime.now(UTC)
        self.raise_(CartClaimed(cart_id=self.cart_id, user_id=str(user_id)))
        return True

    def absorb(self, guest_cart, now=None):
        """Fold every line of ``guest_cart`` into this cart."""
        if CartStatus(self.status) != CartStatus.ACTIVE:
            raise CartLocked()

        now = now or datetime.now(UTC)
        for guest_item in guest_cart.items:
            existing = next((i for i in self.items if i.matches(guest_item.product_id, guest_item.variant_id)), None)
            if existing:
                existing.quantity += guest_item.quantity
            else:
                self.add_items(
                    CartItem(
                        product_id=guest_item.product_id,
                        variant_id=guest_item.variant_id,
                        quantity=guest_item.quantity,
                        title=guest_item.title,
                        image=guest_item.image,
                        sku=guest_item.sku,
                        attributes=guest_item.attributes,
                        added_at=now,
                    )
                )

        self.updated_at = now
        self.raise_(
            CartsMerged(
                cart_id=self.cart_id,
                source_cart_id=guest_cart.cart_id,
                user_id=str(self.user_id),
                items_merged_count=len(guest_cart.items),
            )
        )

    # -------------------------------------------------------------------
    # Checkout lock transitions
    # -------------------------------------------------------------------
    def begin_checkout(self, now=None):
        """Lock the cart for checkout with a fresh token.

        Only the ACTIVE → CHECKOUT edge and the re-lock of a lapsed
        CHECKOUT are legal here. Callers return an existing unexpired lock
        instead of calling this.
        """
        now = now or datetime.now(UTC)
        current = CartStatus(self.status)
        if current in TERMINAL_STATUSES or self.checkout_held(now):
            raise CheckoutConflict()

        with atomic_change(self):
            self.status = CartStatus.CHECKOUT.value
            self.checkout_token = generate_checkout_token(now)
            self.checkout_started_at = now
            self.checkout_expiry = now + timedelta(minutes=config.checkout_ttl_minutes())
            self.updated_at = now
        self.raise_(
            CheckoutStarted(
                cart_id=self.cart_id,
                user_id=str(self.user_id),
                checkout_expiry=self.checkout_expiry,
            )
        )
        return self.checkout_token

    def _drop_lock(self):
        self.checkout_token = None
        self.checkout_started_at = None
        self.checkout_expiry = None

    def release_checkout(self, now=None):
        """CHECKOUT → ACTIVE once the lock has lapsed."""
        now = now or datetime.now(UTC)
        if not self.checkout_lapsed(now):
            raise ValidationError({"status": ["Only a lapsed checkout can be released"]})

        with atomic_change(self):
            self.status = CartStatus.ACTIVE.value
            self._drop_lock()
            self.updated_at = now
        self.raise_(CheckoutReleased(cart_id=self.cart_id, released_at=now))

    def abandon_checkout(self, now=None):
        """CHECKOUT → ABANDONED once the lock has lapsed."""
        now = now or datetime.now(UTC)
        if not self.checkout_lapsed(now):
            raise ValidationError({"status": ["Only a lapsed checkout can be abandoned"]})

        with atomic_change(self):
            self.status = CartStatus.ABANDONED.value
            self._drop_lock()
            self.updated_at = now
        self.raise_(
            CheckoutAbandoned(
                cart_id=self.cart_id,
                user_id=str(self.user_id) if self.user_id else None,
                abandoned_at=now,
            )
        )

    def mark_ordered(self, order_id, now=None):
        """CHECKOUT → ORDERED. The lock must still be held."""
        now = now or datetime.now(UTC)
        if not self.checkout_held(now):
            raise ValidationError({"status": ["Only a cart held for checkout can be ordered"]})

        with atomic_change(self):
            self.status = CartStatus.ORDERED.value
            self.order_id = order_id
            self.completed_at = now
            self._drop_lock()
            self.updated_at = now
        self.raise_(
            CartOrdered(
                cart_id=self.cart_id,
                order_id=str(order_id),
                user_id=str(self.user_id),
                completed_at=now,
            )
        )
