"""Idempotency records for order placement.

A record's identity is the caller-scoped key ``"<user_id>:<key>"``, so the
storage primary key is what makes a second insert for the same key fail.
The record is written in the same unit of work as the order it points to:
either both are visible or neither is.
"""

from datetime import UTC, datetime

from protean.fields import DateTime, Identifier, String

from storefront.domain import storefront
from storefront.errors import DuplicateIdempotencyKey


def scoped_key(user_id, key) -> str:
    return f"{user_id}:{key}"


@storefront.aggregate
class IdempotencyRecord:
    key = String(identifier=True, required=True, max_length=400)
    user_id = Identifier(required=True)
    order_id = Identifier(required=True)
    cart_id = String(max_length=30)
    created_at = DateTime(default=lambda: datetime.now(UTC))


@storefront.repository(part_of=IdempotencyRecord)
class IdempotencyRecordRepository:
    def lookup(self, user_id, key) -> IdempotencyRecord | None:
        return self._dao.query.filter(key=scoped_key(user_id, key)).all().first

    def claim(self, user_id, key, order_id, cart_id) -> IdempotencyRecord:
        """Insert the record for ``key``, failing if the store already holds one.

        The check reads the transaction's own view of the store, so a record
        committed by a concurrent request may still be invisible here. On SQL
        providers the primary key then rejects the insert when the unit of
        work commits, and ``place_order`` answers that failure the same way
        as ``DuplicateIdempotencyKey``.
        """
        scoped = scoped_key(user_id, key)
        if self._dao.query.filter(key=scoped).all().total:
            raise DuplicateIdempotencyKey()

        record = IdempotencyRecord(key=scoped, user_id=user_id, order_id=order_id, cart_id=cart_id)
        self.add(record)
        return record
