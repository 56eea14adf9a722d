"""Shared BDD fixtures and step definitions for the storefront."""

import pytest
from protean import current_domain
from pytest_bdd import given, parsers, then, when
from storefront.cart.cart import Cart
from storefront.cart.items import AddItem
from storefront.checkout.lock import start_checkout
from storefront.errors import StorefrontError


@pytest.fixture()
def shopper():
    """What the shopper did and what came back, carried between steps."""
    return {"user_id": None, "cart_id": None, "lock": None, "order": None, "result": None, "error": None}


@pytest.fixture()
def load_cart(shopper):
    """Read the shopper's cart back from the repository."""

    def _load():
        return current_domain.repository_for(Cart).find_by_cart_id(shopper["cart_id"])

    return _load


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given("a guest shopper")
def guest_shopper(shopper):
    shopper["user_id"] = None


@given(parsers.cfparse('a shopper "{user_id}"'))
def signed_in_shopper(shopper, user_id):
    shopper["user_id"] = user_id


@given(parsers.cfparse('a coupon "{code}" worth {value:f} off'))
def flat_coupon(make_coupon, code, value):
    make_coupon(code, value=value)


@given("the shopper has started checkout")
def checkout_started(shopper):
    shopper["lock"] = start_checkout(shopper["user_id"], shopper["cart_id"])


# ---------------------------------------------------------------------------
# Given/When steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('the shopper adds {qty:d} of "{product_id}"'))
@when(parsers.cfparse('the shopper adds {qty:d} of "{product_id}"'))
def shopper_adds(shopper, qty, product_id):
    try:
        cart = current_domain.process(
            AddItem(
                cart_id=shopper["cart_id"],
                user_id=shopper["user_id"],
                product_id=product_id,
                quantity=qty,
            ),
            asynchronous=False,
        )
        shopper["cart_id"] = cart.cart_id
    except StorefrontError as exc:
        shopper["error"] = exc


@when("the shopper starts checkout")
def shopper_starts_checkout(shopper):
    try:
        shopper["result"] = start_checkout(shopper["user_id"], shopper["cart_id"])
    except StorefrontError as exc:
        shopper["error"] = exc


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the request is rejected with "{error_code}"'))
def request_rejected(shopper, error_code):
    assert shopper["error"] is not None
    assert shopper["error"].error_code == error_code


@then(parsers.cfparse('the cart status is "{status}"'))
def cart_status_is(load_cart, status):
    assert load_cart().status == status


@then(parsers.cfparse("the cart total is {total:f}"))
def cart_total_is(load_cart, total):
    assert load_cart().total == total
