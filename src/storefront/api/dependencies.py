"""Request-scoped inputs shared by the cart and order routes.

Authentication happens upstream; the gateway asserts the caller through the
``X-User-Id`` header. The cart travels as ``X-Cart-Id`` or, failing that, the
HTTP-only cart cookie.
"""

from dataclasses import dataclass

from fastapi import Header, Request

from storefront.config import cart_cookie_name


@dataclass
class Caller:
    user_id: str | None = None
    header_cart_id: str | None = None
    cookie_cart_id: str | None = None

    @property
    def cart_id(self) -> str | None:
        return self.header_cart_id or self.cookie_cart_id


def get_caller(
    request: Request,
    x_user_id: str | None = Header(default=None),
    x_cart_id: str | None = Header(default=None),
) -> Caller:
    return Caller(
        user_id=x_user_id or None,
        header_cart_id=x_cart_id or None,
        cookie_cart_id=request.cookies.get(cart_cookie_name()) or None,
    )


def get_idempotency_key(idempotency_key: str | None = Header(default=None)) -> str | None:
    return idempotency_key.strip() if idempotency_key and idempotency_key.strip() else None
