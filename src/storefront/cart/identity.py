"""Cart identity resolution.

Decides which cart, if any, a request is talking about. Sources are tried
in order: the explicit ``x-cart-id`` header, the caller's own live cart,
then the ``cart_id`` cookie. A cookie alone never reattaches a cart that
belongs to a user unless that user is the caller, so a cookie left behind
after logout cannot show the next visitor someone else's cart.
"""

import re
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

from protean.utils.globals import current_domain

from storefront.cart.cart import CART_ID_LENGTH, CART_ID_PREFIX, Cart, CartStatus

_CART_ID_PATTERN = re.compile(rf"^{CART_ID_PREFIX}[a-z0-9]{{{CART_ID_LENGTH}}}$")


class CartSource(Enum):
    HEADER = "header"
    USER = "user"
    COOKIE = "cookie"
    NONE = "none"


@dataclass
class CartResolution:
    cart: Cart | None
    source: CartSource = CartSource.NONE
    set_cookie: str | None = None  # cart id the cookie should point at
    clear_cookie: bool = False
    expired: bool = False

    @property
    def found(self) -> bool:
        return self.cart is not None


def is_valid_cart_id(value) -> bool:
    return isinstance(value, str) and bool(_CART_ID_PATTERN.match(value))


def _terminal(cart) -> bool:
    return CartStatus(cart.status) in (CartStatus.ORDERED, CartStatus.ABANDONED)


def resolve_cart(user_id=None, header_cart_id=None, cookie_cart_id=None, now=None) -> CartResolution:
    """Resolve the request's cart. See the module docstring for the order."""
    now = now or datetime.now(UTC)
    repo = current_domain.repository_for(Cart)
    resolution = CartResolution(cart=None)

    if is_valid_cart_id(header_cart_id):
        cart = repo.find_by_cart_id(header_cart_id)
        if cart is not None and cart.is_live:
            resolution = CartResolution(cart=cart, source=CartSource.HEADER)

    if not resolution.found and user_id:
        cart = repo.find_live_for_user(user_id)
        if cart is not None:
            resolution = CartResolution(cart=cart, source=CartSource.USER)
            if cookie_cart_id != cart.cart_id:
                resolution.set_cookie = cart.cart_id

    if not resolution.found and cookie_cart_id:
        cart = repo.find_by_cart_id(cookie_cart_id) if is_valid_cart_id(cookie_cart_id) else None
        if cart is None:
            resolution.clear_cookie = True
        elif cart.user_id is not None and not cart.owned_by(user_id):
            # Stale cookie for someone else's cart
            resolution.clear_cookie = True
        else:
            resolution = CartResolution(cart=cart, source=CartSource.COOKIE)

    cart = resolution.cart
    if cart is None:
        return resolution

    # Only the cookie path can reach an ordered or abandoned cart
    if _terminal(cart):
        return CartResolution(cart=None, clear_cookie=True)

    resolution.expired = cart.is_expired(now)
    return resolution
