"""Repositories for orders and payment records."""

from storefront.domain import storefront
from storefront.order.order import Order, OrderStatus
from storefront.order.payment import Payment


@storefront.repository(part_of=Order)
class OrderRepository:
    def count_placed_by(self, user_id: str, coupon_code: str | None = None) -> int:
        """Orders by ``user_id`` that were not cancelled, optionally using ``coupon_code``."""
        criteria = {"user_id": user_id}
        if coupon_code:
            criteria["coupon_code"] = coupon_code
        return len(self._dao.query.filter(**criteria).exclude(order_status=OrderStatus.CANCELLED.value).all().items)

    def find_for_user(self, user_id: str) -> list[Order]:
        return self._dao.query.filter(user_id=user_id).order_by("-placed_at").all().items


@storefront.repository(part_of=Payment)
class PaymentRepository:
    def find_for_order(self, order_id: str) -> Payment | None:
        return self._dao.query.filter(order_id=order_id).all().first
