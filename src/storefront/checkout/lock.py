"""Checkout lock — moving a cart from ``active`` to ``checkout``.

The lock is a lease: a token and an expiry five minutes out. While it is
held the cart's contents are frozen and only order placement may consume
it. A repeated start-checkout inside the lease answers with the same token;
after the lease lapses the next call simply locks again.

The transition is written with a version guarded save. When two requests
race, the loser's write is rejected; ``start_checkout`` then re-reads the
cart and hands back the winner's lock if it belongs to the same user.
"""

from dataclasses import dataclass
from datetime import UTC, datetime

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from storefront.cart.cart import Cart, as_utc
from storefront.cart.identity import is_valid_cart_id
from storefront.cart.recompute import recompute
from storefront.domain import logger, storefront
from storefront.errors import CheckoutConflict, ConcurrentModification, MissingUserId


@dataclass
class CheckoutLock:
    cart_id: str
    checkout_token: str
    expires_at: datetime
    reused: bool = False

    @classmethod
    def of(cls, cart, reused=False):
        return cls(
            cart_id=cart.cart_id,
            checkout_token=cart.checkout_token,
            expires_at=as_utc(cart.checkout_expiry),
            reused=reused,
        )


@storefront.command(part_of="Cart")
class StartCheckout:
    user_id = Identifier()
    cart_id = String(max_length=30)


def _authoritative_cart(repo, user_id, cart_id):
    """The live cart named by the caller, else the user's own live cart.

    A named cart that was already ordered or abandoned is passed over for
    the user's live cart. With no live cart to fall back to, locking would
    only open an empty cart, so that is a conflict instead.
    """
    # An explicit cart may carry a coupon the user's default cart lacks.
    spent = None
    if is_valid_cart_id(cart_id):
        cart = repo.find_by_cart_id(cart_id)
        if cart is not None and cart.is_live:
            return cart
        spent = cart
    live = repo.find_live_for_user(user_id)
    if live is None and spent is not None:
        raise CheckoutConflict()
    return live


@storefront.command_handler(part_of=Cart)
class CheckoutLockHandler:
    @handle(StartCheckout)
    def start_checkout(self, command):
        if not command.user_id:
            raise MissingUserId()

        now = datetime.now(UTC)
        repo = current_domain.repository_for(Cart)
        cart = _authoritative_cart(repo, command.user_id, command.cart_id)
        if cart is None:
            cart = Cart.create(user_id=command.user_id, now=now)
            logger.info("Cart created at checkout", cart_id=cart.cart_id, user_id=command.user_id)

        displaced = None
        if cart.claim(command.user_id):
            displaced = self._fold_other_live_cart(repo, cart, command.user_id, now)

        if cart.checkout_held(now):
            logger.info("Checkout lock reused", cart_id=cart.cart_id, user_id=command.user_id)
            return CheckoutLock.of(cart, reused=True)

        cart.begin_checkout(now)
        recompute(cart, now=now)
        repo.save(cart)
        if displaced is not None:
            # Source goes only after the destination write
            repo.discard(displaced)

        logger.info(
            "Checkout started",
            cart_id=cart.cart_id,
            user_id=command.user_id,
            checkout_expiry=cart.checkout_expiry.isoformat(),
            total=cart.total,
        )
        return CheckoutLock.of(cart)

    def _fold_other_live_cart(self, repo, cart, user_id, now):
        """Merge the user's other live cart into ``cart`` once it has been claimed.

        A user holds at most one live cart, so the one they already had gives
        up its lines to the cart being checked out. Returns that cart for
        deletion after ``cart`` is written.
        """
        other = repo.find_live_for_user(user_id, exclude=cart.cart_id)
        if other is None:
            return None
        if other.checkout_held(now):
            # Another tab is paying for that cart
            raise CheckoutConflict()

        cart.absorb(other, now=now)
        logger.info(
            "User cart folded into claimed cart at checkout",
            cart_id=cart.cart_id,
            source_cart_id=other.cart_id,
            user_id=user_id,
        )
        return other


def start_checkout(user_id, cart_id=None) -> CheckoutLock:
    """Lock the caller's cart for checkout, tolerating a concurrent winner."""
    try:
        return current_domain.process(StartCheckout(user_id=user_id, cart_id=cart_id), asynchronous=False)
    except ConcurrentModification:
        cart = _authoritative_cart(current_domain.repository_for(Cart), user_id, cart_id)
        if cart is not None and cart.owned_by(user_id) and cart.checkout_held(datetime.now(UTC)):
            logger.info("Checkout race lost, returning winner's lock", cart_id=cart.cart_id, user_id=user_id)
            return CheckoutLock.of(cart, reused=True)
        raise CheckoutConflict() from None
