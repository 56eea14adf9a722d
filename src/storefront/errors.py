"""Application errors raised by storefront command handlers.

Aggregate-level rule violations use protean's ``ValidationError``. The
errors here describe outcomes the HTTP layer reports with a specific status
and a machine-readable ``error_code`` alongside the user-facing message.
"""


class StorefrontError(Exception):
    status_code = 400
    error_code = "BAD_REQUEST"
    message = "Request could not be processed"

    def __init__(self, message=None, error_code=None, **extra):
        self.message = message or self.message
        if error_code:
            self.error_code = error_code
        self.extra = extra
        super().__init__(self.message)


# Validation (400)
class MissingUserId(StorefrontError):
    error_code = "MISSING_USER_ID"
    message = "User ID is required"


class MissingIdempotencyKey(StorefrontError):
    error_code = "MISSING_IDEMPOTENCY_KEY"
    message = "Idempotency-Key header is required"


class EmptyCart(StorefrontError):
    error_code = "EMPTY_CART"
    message = "Cart is empty"


class CouponRejected(StorefrontError):
    """A coupon failed one of its eligibility rules."""

    error_code = "INVALID_COUPON"
    message = "Invalid coupon code"


# Authentication / ownership (401, 403)
class Unauthorized(StorefrontError):
    status_code = 401
    error_code = "UNAUTHORIZED"
    message = "Authentication required"


class Forbidden(StorefrontError):
    status_code = 403
    error_code = "FORBIDDEN"
    message = "Cart belongs to another user"


# Not found (404)
class CartNotFound(StorefrontError):
    status_code = 404
    error_code = "CART_NOT_FOUND"
    message = "Cart not found"


class ItemNotFound(StorefrontError):
    status_code = 404
    error_code = "ITEM_NOT_FOUND"
    message = "Item not found in cart"


class ProductNotFound(StorefrontError):
    status_code = 404
    error_code = "PRODUCT_NOT_FOUND"
    message = "Product not found"


class OrderNotFound(StorefrontError):
    status_code = 404
    error_code = "ORDER_NOT_FOUND"
    message = "Order not found"


# Conflicts (409)
class CartLocked(StorefrontError):
    status_code = 409
    error_code = "CART_LOCKED"
    message = "Cart modification not allowed during checkout"


class CheckoutConflict(StorefrontError):
    status_code = 409
    error_code = "CART_ALREADY_IN_CHECKOUT_OR_ORDERED"
    message = "Checkout already in progress or cart has been ordered"


class CartNotLocked(StorefrontError):
    status_code = 409
    error_code = "CART_NOT_LOCKED"
    message = "Cart is not locked for checkout"


class CheckoutExpired(StorefrontError):
    status_code = 409
    error_code = "CHECKOUT_EXPIRED"
    message = "Checkout session has expired, please start checkout again"


class InvalidCheckoutToken(StorefrontError):
    status_code = 409
    error_code = "INVALID_CHECKOUT_TOKEN"
    message = "Checkout token does not match the active checkout"


class CartItemsMismatch(StorefrontError):
    status_code = 409
    error_code = "CART_ITEMS_MISMATCH"
    message = "Order items do not match the cart"


class ConcurrentModification(StorefrontError):
    """A guarded write matched no row: another request changed the record first."""

    status_code = 409
    error_code = "CART_CONFLICT"
    message = "Cart was modified by another request, please retry"


class DuplicateIdempotencyKey(StorefrontError):
    status_code = 409
    error_code = "DUPLICATE_IDEMPOTENCY_KEY"
    message = "An order with this idempotency key is already being processed"


class InvalidPaymentTransition(StorefrontError):
    status_code = 409
    error_code = "INVALID_PAYMENT_TRANSITION"
    message = "Payment is no longer pending"
