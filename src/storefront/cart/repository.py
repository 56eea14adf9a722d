"""Repository for the Cart aggregate.

Every write of an existing cart goes through protean's aggregate version
check: ``add`` only lands if the stored cart still carries the ``_version``
the caller read. A mismatch means another request got there first and is
reported as ``ConcurrentModification``.
"""

from protean.exceptions import ExpectedVersionError

from storefront.cart.cart import LIVE_STATUSES, Cart, CartStatus
from storefront.domain import logger, storefront
from storefront.errors import ConcurrentModification


@storefront.repository(part_of=Cart)
class CartRepository:
    def find_by_cart_id(self, cart_id: str) -> Cart | None:
        if not cart_id:
            return None
        return self._dao.query.filter(cart_id=cart_id).all().first

    def find_live_for_user(self, user_id: str, exclude: str | None = None) -> Cart | None:
        """The user's most recently touched ``active`` or ``checkout`` cart, other than ``exclude``."""
        if not user_id:
            return None
        carts = (
            self._dao.query.filter(
                user_id=user_id,
                status__in=[status.value for status in LIVE_STATUSES],
            )
            .order_by("-updated_at")
            .all()
            .items
        )
        return next((cart for cart in carts if cart.cart_id != exclude), None)

    def find_in_checkout(self) -> list[Cart]:
        return self._dao.query.filter(status=CartStatus.CHECKOUT.value).all().items

    def find_all(self) -> list[Cart]:
        return self._dao.query.all().items

    def save(self, cart: Cart) -> Cart:
        """Persist ``cart``, failing if the stored cart moved on since it was read."""
        try:
            self.add(cart)
        except ExpectedVersionError:
            logger.warning("Cart write lost a concurrent update", cart_id=cart.cart_id, version=cart._version)
            raise ConcurrentModification() from None
        return cart

    def discard(self, cart: Cart) -> None:
        """Delete ``cart`` if it is still at the version the caller read."""
        stored = self._dao.query.filter(id=cart.id).all().first
        if stored is None or stored._version != cart._version:
            logger.warning("Cart delete lost a concurrent update", cart_id=cart.cart_id)
            raise ConcurrentModification()
        self._dao.delete(cart)
