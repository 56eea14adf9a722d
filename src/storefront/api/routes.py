"""FastAPI routes for the storefront — cart, checkout and orders."""

from fastapi import APIRouter, Depends, Response
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from storefront.api.dependencies import Caller, get_caller, get_idempotency_key
from storefront.api.presenters import cart_price_summary, empty_price_summary, format_cart
from storefront.api.schemas import (
    AddItemRequest,
    ApplyCouponRequest,
    CreateCartRequest,
    CreateOrderRequest,
    PaymentCallbackRequest,
    RemoveItemRequest,
    StartCheckoutRequest,
    UpdateItemRequest,
)
from storefront.cart.coupons import ApplyCoupon, RemoveCoupon
from storefront.cart.identity import resolve_cart
from storefront.cart.items import AddItem, ClearCart, RemoveItem, UpdateItemQuantity
from storefront.cart.management import CreateCart, MergeCart
from storefront.cart.recompute import recompute
from storefront.checkout.lock import start_checkout
from storefront.config import cart_cookie_name, cart_ttl_days, is_production
from storefront.coupon.validation import available_coupons
from storefront.errors import (
    CartNotFound,
    Forbidden,
    MissingIdempotencyKey,
    MissingUserId,
    OrderNotFound,
    Unauthorized,
)
from storefront.order.order import Order
from storefront.order.payment import MarkOrderPaid, MarkOrderPaymentFailed
from storefront.order.placement import place_order


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _cookie_options() -> dict:
    production = is_production()
    return {"path": "/", "httponly": True, "secure": production, "samesite": "strict" if production else "lax"}


def _respond(content, status_code=200, set_cookie=None, clear_cookie=False) -> JSONResponse:
    response = JSONResponse(status_code=status_code, content=jsonable_encoder(content))
    if set_cookie:
        response.set_cookie(
            key=cart_cookie_name(),
            value=set_cookie,
            max_age=cart_ttl_days() * 24 * 60 * 60,
            **_cookie_options(),
        )
    elif clear_cookie:
        response.delete_cookie(key=cart_cookie_name(), **_cookie_options())
    return response


def _cookie_for(caller: Caller, cart) -> str | None:
    """Cart id to write to the cookie, if it does not already hold it."""
    if cart is not None and cart.cart_id != caller.cookie_cart_id:
        return cart.cart_id
    return None


def _cart_response(caller: Caller, cart, status_code=200, **extra) -> JSONResponse:
    return _respond(
        {"success": True, "cart": format_cart(cart), **extra},
        status_code=status_code,
        set_cookie=_cookie_for(caller, cart),
    )


def _expired() -> JSONResponse:
    return _respond({"success": False, "expired": True, "message": "Cart has expired"})


def _resolve(caller: Caller):
    return resolve_cart(
        user_id=caller.user_id,
        header_cart_id=caller.header_cart_id,
        cookie_cart_id=caller.cookie_cart_id,
    )


def _require_cart(resolution, caller: Caller):
    if not resolution.found:
        raise CartNotFound()
    return _writable(resolution.cart, caller)


def _writable(cart, caller: Caller):
    # An owned cart is only edited by its owner, whichever way its id arrived
    if cart.user_id is not None and not cart.owned_by(caller.user_id):
        raise Forbidden()
    return cart


def _priced_read(caller: Caller):
    """Resolve and price the caller's cart for a read. Nothing is written back."""
    resolution = _resolve(caller)
    if not resolution.found or resolution.expired:
        return resolution, None, None
    lines, totals = recompute(resolution.cart, user_id=caller.user_id)
    return resolution, lines, totals


def _process(command):
    return current_domain.process(command, asynchronous=False)


def _asserted_user(caller: Caller, body_user_id=None) -> str:
    """The user asserted by the upstream auth layer. A body ``userId`` may only repeat it."""
    if not caller.user_id:
        raise Unauthorized()
    if body_user_id and body_user_id != caller.user_id:
        raise Forbidden(message="User mismatch")
    return caller.user_id


# ---------------------------------------------------------------------------
# Cart Router
# ---------------------------------------------------------------------------
cart_router = APIRouter(prefix="/cart", tags=["cart"])


@cart_router.post("/create")
async def create_cart(body: CreateCartRequest | None = None, caller: Caller = Depends(get_caller)) -> JSONResponse:
    body = body or CreateCartRequest()
    if not body.cart_id:
        resolution = _resolve(caller)
        if resolution.found and not resolution.expired:
            return _cart_response(caller, resolution.cart)
    opened = _process(CreateCart(cart_id=body.cart_id, user_id=caller.user_id))
    return _cart_response(caller, opened.cart, status_code=201 if opened.created else 200)


@cart_router.post("/get")
async def get_cart(caller: Caller = Depends(get_caller)) -> JSONResponse:
    resolution, lines, _ = _priced_read(caller)
    if resolution.expired:
        return _expired()
    if not resolution.found:
        return _respond({"success": True, "cart": None}, clear_cookie=resolution.clear_cookie)
    return _respond(
        {"success": True, "cart": format_cart(resolution.cart, lines)},
        set_cookie=resolution.set_cookie,
    )


@cart_router.head("/get")
async def head_cart(caller: Caller = Depends(get_caller)) -> Response:
    resolution = _resolve(caller)
    if not resolution.found or resolution.expired:
        return Response(status_code=404)
    return Response(status_code=200)


@cart_router.post("/add-item")
async def add_item(body: AddItemRequest, caller: Caller = Depends(get_caller)) -> JSONResponse:
    resolution = _resolve(caller)
    if resolution.expired:
        return _expired()
    cart = _process(
        AddItem(
            cart_id=_writable(resolution.cart, caller).cart_id if resolution.found else None,
            user_id=caller.user_id,
            product_id=body.item.product_id,
            variant_id=body.item.variant_id,
            quantity=body.item.quantity,
        )
    )
    return _cart_response(caller, cart)


@cart_router.patch("/update-item")
async def update_item(body: UpdateItemRequest, caller: Caller = Depends(get_caller)) -> JSONResponse:
    resolution = _resolve(caller)
    if resolution.expired:
        return _expired()
    cart = _process(
        UpdateItemQuantity(
            cart_id=_require_cart(resolution, caller).cart_id,
            item_id=body.item_id,
            quantity=body.changes.quantity,
            user_id=caller.user_id,
        )
    )
    return _cart_response(caller, cart)


@cart_router.delete("/remove-item")
async def remove_item(body: RemoveItemRequest, caller: Caller = Depends(get_caller)) -> JSONResponse:
    resolution = _resolve(caller)
    if resolution.expired:
        return _expired()
    cart = _process(
        RemoveItem(cart_id=_require_cart(resolution, caller).cart_id, item_id=body.item_id, user_id=caller.user_id)
    )
    return _cart_response(caller, cart)


@cart_router.post("/clear")
async def clear_cart(caller: Caller = Depends(get_caller)) -> JSONResponse:
    resolution = _resolve(caller)
    if resolution.expired:
        return _expired()
    cart = _process(ClearCart(cart_id=_require_cart(resolution, caller).cart_id, user_id=caller.user_id))
    return _cart_response(caller, cart, message="Cart cleared")


@cart_router.api_route("/count", methods=["GET", "POST"])
async def cart_count(caller: Caller = Depends(get_caller)) -> JSONResponse:
    resolution = _resolve(caller)
    if resolution.expired:
        return _expired()
    count = resolution.cart.item_count if resolution.found else 0
    return _respond({"success": True, "count": count})


@cart_router.api_route("/items", methods=["GET", "POST"])
async def cart_items(caller: Caller = Depends(get_caller)) -> JSONResponse:
    resolution, lines, _ = _priced_read(caller)
    if resolution.expired:
        return _expired()
    items = format_cart(resolution.cart, lines)["items"] if resolution.found else []
    return _respond({"success": True, "items": items})


@cart_router.api_route("/price-summary", methods=["GET", "POST"])
async def cart_price_summary_view(caller: Caller = Depends(get_caller)) -> JSONResponse:
    resolution, _, totals = _priced_read(caller)
    if resolution.expired:
        return _expired()
    summary = cart_price_summary(resolution.cart, totals) if resolution.found else empty_price_summary()
    return _respond({"success": True, "priceSummary": summary})


@cart_router.api_route("/summary", methods=["GET", "POST"])
async def cart_summary(caller: Caller = Depends(get_caller)) -> JSONResponse:
    resolution, _, totals = _priced_read(caller)
    if resolution.expired:
        return _expired()
    if not resolution.found:
        return _respond({"success": True, "summary": {"count": 0, "priceSummary": empty_price_summary()}})
    return _respond(
        {
            "success": True,
            "summary": {
                "count": resolution.cart.item_count,
                "priceSummary": cart_price_summary(resolution.cart, totals),
            },
        }
    )


@cart_router.post("/merge")
async def merge_cart(caller: Caller = Depends(get_caller)) -> JSONResponse:
    if not caller.user_id:
        raise Unauthorized(message="User must be authenticated")
    outcome = _process(MergeCart(user_id=caller.user_id, guest_cart_id=caller.cart_id))
    set_cookie = outcome.cookie_cart_id if outcome.cookie_cart_id != caller.cookie_cart_id else None
    return _respond(
        {
            "success": True,
            "cart": format_cart(outcome.cart) if outcome.cart is not None else None,
            "message": outcome.message,
        },
        set_cookie=set_cookie,
        clear_cookie=outcome.clear_cookie,
    )


@cart_router.post("/apply-coupon")
async def apply_coupon(body: ApplyCouponRequest, caller: Caller = Depends(get_caller)) -> JSONResponse:
    resolution = _resolve(caller)
    if resolution.expired:
        return _expired()
    cart = _process(ApplyCoupon(cart_id=_require_cart(resolution, caller).cart_id, code=body.code, user_id=caller.user_id))
    return _cart_response(caller, cart, message="Coupon applied successfully")


@cart_router.delete("/remove-coupon")
async def remove_coupon(caller: Caller = Depends(get_caller)) -> JSONResponse:
    resolution = _resolve(caller)
    if resolution.expired:
        return _expired()
    cart = _process(RemoveCoupon(cart_id=_require_cart(resolution, caller).cart_id, user_id=caller.user_id))
    return _cart_response(caller, cart, message="Coupon removed")


@cart_router.get("/coupons")
async def list_coupons() -> JSONResponse:
    return _respond({"success": True, "coupons": available_coupons()})


@cart_router.post("/start-checkout")
async def begin_checkout(
    body: StartCheckoutRequest | None = None, caller: Caller = Depends(get_caller)
) -> JSONResponse:
    body = body or StartCheckoutRequest()
    if not caller.user_id and not body.user_id:
        raise MissingUserId()
    user_id = _asserted_user(caller, body.user_id)
    lock = start_checkout(user_id=user_id, cart_id=body.cart_id or caller.cart_id)
    return _respond(
        {
            "success": True,
            "message": "Checkout started successfully",
            "checkoutToken": lock.checkout_token,
            "expiresAt": lock.expires_at,
            "cartId": lock.cart_id,
        },
        set_cookie=lock.cart_id if lock.cart_id != caller.cookie_cart_id else None,
    )


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


def _order_body(order, idempotent) -> dict:
    return {
        "success": True,
        "order": order.to_dict(),
        "idempotent": idempotent,
        "requiresPayment": order.requires_payment,
    }


@order_router.post("/create")
async def create_order(
    body: CreateOrderRequest,
    caller: Caller = Depends(get_caller),
    idempotency_key: str | None = Depends(get_idempotency_key),
) -> JSONResponse:
    if not idempotency_key:
        raise MissingIdempotencyKey()
    user_id = _asserted_user(caller, body.user_id)

    result = place_order(
        user_id=user_id,
        cart_id=body.cart_id or caller.cart_id,
        idempotency_key=idempotency_key,
        address_id=body.address_id,
        payment_method=body.payment_method,
        checkout_token=body.checkout_token,
        items=[item.model_dump(by_alias=True) for item in body.items],
    )
    return _respond(
        _order_body(result.order, result.idempotent),
        status_code=200 if result.idempotent else 201,
        clear_cookie=not result.idempotent and caller.cookie_cart_id == result.order.cart_id,
    )


@order_router.get("/{order_id}")
async def get_order(order_id: str, caller: Caller = Depends(get_caller)) -> JSONResponse:
    if not caller.user_id:
        raise Unauthorized()
    try:
        order = current_domain.repository_for(Order).get(order_id)
    except ObjectNotFoundError:
        raise OrderNotFound() from None
    # Someone else's order is reported as missing
    if str(order.user_id) != str(caller.user_id):
        raise OrderNotFound()
    return _respond({"success": True, "order": order.to_dict()})


@order_router.post("/{order_id}/payment")
async def record_payment(order_id: str, body: PaymentCallbackRequest) -> JSONResponse:
    if body.status == "paid":
        order = _process(MarkOrderPaid(order_id=order_id, transaction_id=body.transaction_id))
    else:
        order = _process(MarkOrderPaymentFailed(order_id=order_id, reason=body.reason))
    return _respond({"success": True, "order": order.to_dict()})
