"""Cart management — creation, and merging a guest cart into a user's cart.

Ownership is only ever bound at two points: the merge that follows login and
the start of checkout. Creating a cart or adding to one never claims it.
"""

from dataclasses import dataclass
from datetime import UTC, datetime

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from storefront.cart.cart import Cart, CartStatus
from storefront.cart.identity import is_valid_cart_id
from storefront.cart.items import persist
from storefront.cart.recompute import price_lines
from storefront.coupon.validation import evaluate_coupon
from storefront.domain import logger, storefront
from storefront.errors import CouponRejected, Forbidden, Unauthorized


@dataclass
class CartOpened:
    cart: Cart
    created: bool = False


@dataclass
class MergeOutcome:
    cart: Cart | None
    message: str
    cookie_cart_id: str | None = None
    clear_cookie: bool = False


@storefront.command(part_of="Cart")
class CreateCart:
    """Open a cart, or hand back the one the caller already has."""

    cart_id = String(max_length=30)
    user_id = Identifier()


@storefront.command(part_of="Cart")
class MergeCart:
    """Reconcile the caller's guest cart with their account after login."""

    user_id = Identifier()
    guest_cart_id = String(max_length=30)


@storefront.command_handler(part_of=Cart)
class ManageCartHandler:
    @handle(CreateCart)
    def create_cart(self, command):
        if command.cart_id and not is_valid_cart_id(command.cart_id):
            raise ValidationError({"cart_id": ["Invalid cart ID format"]})

        repo = current_domain.repository_for(Cart)
        cart_id = command.cart_id
        if cart_id:
            existing = repo.find_by_cart_id(cart_id)
            if existing is not None:
                if existing.user_id is not None and not existing.owned_by(command.user_id):
                    raise Forbidden()
                if existing.is_live:
                    return CartOpened(cart=existing)
                # The id is spent on an ordered or abandoned cart
                cart_id = None

        if command.user_id:
            existing = repo.find_live_for_user(command.user_id)
            if existing is not None:
                return CartOpened(cart=existing)

        # A client-generated id is honoured so the cookie it already holds stays valid
        cart = Cart.create(cart_id=cart_id, user_id=command.user_id)
        repo.save(cart)
        logger.info("Cart created", cart_id=cart.cart_id, user_id=command.user_id)
        return CartOpened(cart=cart, created=True)

    @handle(MergeCart)
    def merge_cart(self, command):
        if not command.user_id:
            raise Unauthorized()

        now = datetime.now(UTC)
        repo = current_domain.repository_for(Cart)
        user_id = command.user_id

        guest = repo.find_by_cart_id(command.guest_cart_id) if is_valid_cart_id(command.guest_cart_id) else None
        if guest is not None and not guest.is_live:
            guest = None
        user_cart = repo.find_live_for_user(user_id)

        # Already this user's, whether or not it is their most recent live cart
        if guest is not None and guest.owned_by(user_id):
            return MergeOutcome(cart=guest, message="Cart already assigned to user", cookie_cart_id=guest.cart_id)

        if guest is not None and guest.user_id is not None and not guest.owned_by(user_id):
            logger.warning("Refused merge of a cart owned by another user", cart_id=guest.cart_id, user_id=user_id)
            return MergeOutcome(
                cart=None,
                message="Cart belongs to another user",
                cookie_cart_id=user_cart.cart_id if user_cart else None,
                clear_cookie=user_cart is None,
            )

        if guest is not None and user_cart is not None:
            return self._merge(repo, guest, user_cart, now)

        if user_cart is not None:
            return MergeOutcome(cart=user_cart, message="Cart restored successfully", cookie_cart_id=user_cart.cart_id)

        if guest is not None:
            guest.claim(user_id)
            persist(guest, now)
            logger.info("Guest cart assigned to user", cart_id=guest.cart_id, user_id=user_id)
            return MergeOutcome(cart=guest, message="Cart assigned to user successfully", cookie_cart_id=guest.cart_id)

        return MergeOutcome(cart=None, message="No cart to merge or restore", clear_cookie=bool(command.guest_cart_id))

    def _merge(self, repo, guest, user_cart, now):
        # A cart held for checkout keeps its contents frozen on both sides
        if CartStatus(guest.status) != CartStatus.ACTIVE or user_cart.checkout_held(now):
            return MergeOutcome(
                cart=user_cart,
                message="Cart restored successfully",
                cookie_cart_id=user_cart.cart_id,
            )
        if user_cart.checkout_lapsed(now):
            user_cart.release_checkout(now)

        user_cart.absorb(guest, now=now)
        if guest.coupon is not None and user_cart.coupon is None:
            self._adopt_coupon(user_cart, guest.coupon.code, now)
        persist(user_cart, now)

        # Source goes only after the destination write
        repo.discard(guest)
        logger.info(
            "Guest cart merged into user cart",
            cart_id=user_cart.cart_id,
            source_cart_id=guest.cart_id,
            user_id=str(user_cart.user_id),
        )
        return MergeOutcome(cart=user_cart, message="Cart merged successfully", cookie_cart_id=user_cart.cart_id)

    def _adopt_coupon(self, cart, code, now):
        try:
            decision = evaluate_coupon(code, price_lines(cart), user_id=cart.user_id, now=now)
        except CouponRejected as exc:
            logger.info("Guest coupon not carried over", cart_id=cart.cart_id, coupon_code=code, reason=exc.message)
            return
        cart.attach_coupon(decision.coupon.code, str(decision.coupon.id), decision.discount)
