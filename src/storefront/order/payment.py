"""Payment record and the paid/failed callback.

Gateways are outside this system. Whatever settles the money reports back
through ``MarkOrderPaid`` or ``MarkOrderPaymentFailed``; both move the
payment record and the order together and are safe to repeat.
"""

from datetime import UTC, datetime
from enum import Enum

from protean import handle
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import DateTime, Float, Identifier, String
from protean.utils.globals import current_domain

from storefront.domain import logger, storefront
from storefront.errors import InvalidPaymentTransition, OrderNotFound


class PaymentRecordStatus(Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


@storefront.aggregate
class Payment:
    order_id = Identifier(required=True)
    user_id = Identifier(required=True)
    amount = Float(required=True, min_value=0.0)
    method = String(required=True, max_length=20)
    status = String(choices=PaymentRecordStatus, default=PaymentRecordStatus.PENDING.value)
    transaction_id = String(max_length=255)
    failure_reason = String(max_length=500)
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def open(cls, order):
        now = datetime.now(UTC)
        return cls(
            order_id=order.id,
            user_id=order.user_id,
            amount=order.total_amount,
            method=order.payment_method,
            status=PaymentRecordStatus.PENDING.value,
            created_at=now,
            updated_at=now,
        )

    def _settle(self, target: PaymentRecordStatus) -> bool:
        current = PaymentRecordStatus(self.status)
        if current == target:
            return False
        if current != PaymentRecordStatus.PENDING:
            raise ValidationError({"status": [f"Payment already {current.value}"]})
        self.status = target.value
        self.updated_at = datetime.now(UTC)
        return True

    def succeed(self, transaction_id=None) -> bool:
        changed = self._settle(PaymentRecordStatus.SUCCESS)
        if changed:
            self.transaction_id = transaction_id
        return changed

    def fail(self, reason=None) -> bool:
        changed = self._settle(PaymentRecordStatus.FAILED)
        if changed:
            self.failure_reason = reason
        return changed


@storefront.command(part_of=Payment)
class MarkOrderPaid:
    order_id = Identifier(required=True)
    transaction_id = String(max_length=255)


@storefront.command(part_of=Payment)
class MarkOrderPaymentFailed:
    order_id = Identifier(required=True)
    reason = String(max_length=500)


@storefront.command_handler(part_of=Payment)
class PaymentCallbackHandler:
    def _load(self, order_id):
        from storefront.order.order import Order

        try:
            order = current_domain.repository_for(Order).get(order_id)
        except ObjectNotFoundError:
            raise OrderNotFound() from None

        payment = current_domain.repository_for(Payment).find_for_order(order_id)
        if payment is None:
            payment = Payment.open(order)
        return order, payment

    def _persist(self, order, payment):
        from storefront.order.order import Order

        current_domain.repository_for(Payment).add(payment)
        current_domain.repository_for(Order).add(order)

    @handle(MarkOrderPaid)
    def mark_paid(self, command):
        order, payment = self._load(command.order_id)
        try:
            changed = payment.succeed(command.transaction_id)
            order.mark_paid(command.transaction_id)
        except ValidationError as exc:
            raise InvalidPaymentTransition(detail=exc.messages) from exc

        if changed:
            self._persist(order, payment)
            logger.info("Order paid", order_id=str(order.id), transaction_id=command.transaction_id)
        return order

    @handle(MarkOrderPaymentFailed)
    def mark_failed(self, command):
        order, payment = self._load(command.order_id)
        try:
            changed = payment.fail(command.reason)
            order.mark_payment_failed(command.reason)
        except ValidationError as exc:
            raise InvalidPaymentTransition(detail=exc.messages) from exc

        if changed:
            self._persist(order, payment)
            logger.warning("Order payment failed", order_id=str(order.id), reason=command.reason)
        return order
