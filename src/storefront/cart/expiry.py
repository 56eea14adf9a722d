"""Housekeeping sweeps for carts — expired checkout locks and stale carts.

Meant to be run periodically by an external scheduler through
``manage.py expire-checkouts`` and ``manage.py purge-carts``. Both sweeps go
through the same guarded writes as request handlers, so a cart that a
shopper touches mid-sweep is simply skipped.
"""

from datetime import UTC, datetime, timedelta

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import DateTime, Integer
from protean.utils.globals import current_domain

from storefront import config
from storefront.cart.cart import Cart, CartStatus, as_utc
from storefront.domain import logger, storefront
from storefront.errors import ConcurrentModification


@storefront.command(part_of="Cart")
class ExpireCheckouts:
    """Abandon checkout locks that lapsed more than ``grace_minutes`` ago."""

    as_of = DateTime()  # Optional: defaults to now
    grace_minutes = Integer(min_value=0)


@storefront.command(part_of="Cart")
class PurgeExpiredCarts:
    """Delete carts past their ``expires_at`` that are neither locked nor ordered."""

    as_of = DateTime()


@storefront.command_handler(part_of=Cart)
class CartExpiryHandler:
    @handle(ExpireCheckouts)
    def expire_checkouts(self, command):
        as_of = as_utc(command.as_of) or datetime.now(UTC)
        grace = command.grace_minutes
        if grace is None:
            grace = config.checkout_abandon_grace_minutes()
        cutoff = as_of - timedelta(minutes=grace)

        repo = current_domain.repository_for(Cart)
        stale = [cart for cart in repo.find_in_checkout() if cart.checkout_lapsed(cutoff)]
        logger.info("Checking for lapsed checkouts", cutoff=cutoff.isoformat(), candidates=len(stale))

        abandoned = 0
        for cart in stale:
            try:
                cart.abandon_checkout(as_of)
                repo.save(cart)
                abandoned += 1
                logger.info(
                    "Checkout abandoned",
                    cart_id=cart.cart_id,
                    user_id=str(cart.user_id) if cart.user_id else None,
                    item_count=cart.item_count,
                )
            except (ValidationError, ConcurrentModification) as exc:
                logger.warning("Failed to abandon checkout", cart_id=cart.cart_id, error=str(exc))

        logger.info("Lapsed checkout sweep complete", abandoned=abandoned)
        return abandoned

    @handle(PurgeExpiredCarts)
    def purge_expired_carts(self, command):
        as_of = as_utc(command.as_of) or datetime.now(UTC)
        repo = current_domain.repository_for(Cart)

        purged = 0
        for cart in repo.find_all():
            if CartStatus(cart.status) in (CartStatus.CHECKOUT, CartStatus.ORDERED):
                continue
            if not cart.is_expired(as_of):
                continue
            try:
                repo.discard(cart)
                purged += 1
            except ConcurrentModification:
                logger.warning("Cart changed during purge, skipped", cart_id=cart.cart_id)

        logger.info("Expired cart purge complete", purged=purged, as_of=as_of.isoformat())
        return purged
