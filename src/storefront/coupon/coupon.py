"""Coupon aggregate — discount codes shoppers apply to their carts.

A coupon is either a flat amount or a percentage of the item total (optionally
capped). Usage is counted when an order is placed, never when a coupon is
merely applied to a cart.
"""

from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, Integer, String

from storefront.domain import storefront


class CouponType(Enum):
    FLAT = "flat"
    PERCENTAGE = "percentage"


class CouponStatus(Enum):
    PAUSED = "PAUSED"
    EXPIRED = "EXPIRED"
    DEPLETED = "DEPLETED"
    SCHEDULED = "SCHEDULED"
    ACTIVE = "ACTIVE"


def _utc(value):
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


@storefront.aggregate
class Coupon:
    code = String(required=True, max_length=50, unique=True)
    description = String(max_length=255)
    type = String(required=True, choices=CouponType)
    value = Float(required=True, min_value=0.0)
    min_cart_value = Float(default=0.0, min_value=0.0)
    max_discount = Float(min_value=0.0)
    start_date = DateTime(required=True)
    end_date = DateTime(required=True)
    usage_limit = Integer(min_value=0)  # None means unlimited
    usage_count = Integer(default=0, min_value=0)
    per_user_limit = Integer(default=1, min_value=1)
    is_active = Boolean(default=True)
    is_new_user_only = Boolean(default=False)
    created_at = DateTime(default=lambda: datetime.now(UTC))

    @invariant.post
    def window_must_be_ordered(self):
        if self.start_date and self.end_date and _utc(self.end_date) < _utc(self.start_date):
            raise ValidationError({"end_date": ["End date must be after start date"]})

    @invariant.post
    def percentage_cannot_exceed_hundred(self):
        if self.type == CouponType.PERCENTAGE.value and self.value > 100:
            raise ValidationError({"value": ["Percentage discount cannot exceed 100"]})

    @classmethod
    def create(cls, code, type, value, start_date, end_date, **options):
        is_new_user_only = bool(options.pop("is_new_user_only", False))
        per_user_limit = options.pop("per_user_limit", None) or 1
        return cls(
            code=code.strip().upper(),
            type=type,
            value=value,
            start_date=start_date,
            end_date=end_date,
            is_new_user_only=is_new_user_only,
            # First-order coupons can only ever be used once per user
            per_user_limit=1 if is_new_user_only else per_user_limit,
            **options,
        )

    # -------------------------------------------------------------------
    # Derived state
    # -------------------------------------------------------------------
    def started(self, now) -> bool:
        return _utc(self.start_date) <= now

    def ended(self, now) -> bool:
        return _utc(self.end_date) < now

    @property
    def depleted(self) -> bool:
        return self.usage_limit is not None and (self.usage_count or 0) >= self.usage_limit

    def status_at(self, now=None) -> CouponStatus:
        now = now or datetime.now(UTC)
        if not self.is_active:
            return CouponStatus.PAUSED
        if self.ended(now):
            return CouponStatus.EXPIRED
        if self.depleted:
            return CouponStatus.DEPLETED
        if not self.started(now):
            return CouponStatus.SCHEDULED
        return CouponStatus.ACTIVE

    def discount_for(self, item_total: float) -> float:
        """Raw discount on ``item_total``, before clamping to the cart subtotal."""
        if self.type == CouponType.FLAT.value:
            return float(self.value)

        discount = item_total * self.value / 100
        if self.max_discount:
            discount = min(discount, self.max_discount)
        return discount

    @property
    def label(self) -> str:
        if self.type == CouponType.FLAT.value:
            return f"Flat ₹{self.value:g} off"
        if self.max_discount:
            return f"{self.value:g}% off up to ₹{self.max_discount:g}"
        return f"{self.value:g}% off"
