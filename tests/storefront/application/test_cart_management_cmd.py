"""Application tests for opening carts, merging after login and resolving a request's cart."""

from datetime import UTC, datetime, timedelta

import pytest
from protean import current_domain
from protean.exceptions import ValidationError
from storefront.cart.cart import Cart, CartStatus
from storefront.cart.coupons import ApplyCoupon
from storefront.cart.identity import CartSource, resolve_cart
from storefront.cart.items import AddItem
from storefront.cart.management import CreateCart, MergeCart
from storefront.errors import Forbidden, Unauthorized

CLIENT_CART_ID = "cart_abcdefghij0123456789z"


def _open(cart_id=None, user_id=None):
    return current_domain.process(CreateCart(cart_id=cart_id, user_id=user_id), asynchronous=False)


def _add(cart_id, product_id="prod-kurta", quantity=1):
    return current_domain.process(
        AddItem(cart_id=cart_id, product_id=product_id, quantity=quantity),
        asynchronous=False,
    )


def _merge(user_id, guest_cart_id):
    return current_domain.process(MergeCart(user_id=user_id, guest_cart_id=guest_cart_id), asynchronous=False)


def _stored(cart_id):
    return current_domain.repository_for(Cart).find_by_cart_id(cart_id)


class TestCreateCart:
    def test_guest_cart(self):
        opened = _open()
        assert opened.created
        assert opened.cart.user_id is None
        assert _stored(opened.cart.cart_id) is not None

    def test_client_supplied_id_is_kept(self):
        opened = _open(cart_id=CLIENT_CART_ID)
        assert opened.cart.cart_id == CLIENT_CART_ID

    def test_existing_cart_is_returned(self):
        first = _open(cart_id=CLIENT_CART_ID)
        second = _open(cart_id=CLIENT_CART_ID)
        assert not second.created
        assert second.cart.id == first.cart.id

    def test_user_gets_their_live_cart(self):
        first = _open(user_id="user-001")
        second = _open(user_id="user-001")
        assert not second.created
        assert second.cart.cart_id == first.cart.cart_id

    def test_malformed_id(self):
        with pytest.raises(ValidationError):
            _open(cart_id="not-a-cart")

    def test_someone_elses_cart(self):
        _open(cart_id=CLIENT_CART_ID, user_id="user-001")
        with pytest.raises(Forbidden):
            _open(cart_id=CLIENT_CART_ID, user_id="user-002")


class TestMergeCart:
    def test_requires_login(self):
        with pytest.raises(Unauthorized):
            _merge(None, CLIENT_CART_ID)

    def test_guest_cart_is_claimed(self):
        guest = _open().cart
        _add(guest.cart_id)

        outcome = _merge("user-001", guest.cart_id)

        assert outcome.message == "Cart assigned to user successfully"
        assert str(_stored(guest.cart_id).user_id) == "user-001"

    def test_guest_lines_fold_into_user_cart(self):
        user_cart = _open(user_id="user-001").cart
        _add(user_cart.cart_id, quantity=1)
        guest = _open().cart
        _add(guest.cart_id, quantity=2)
        _add(guest.cart_id, product_id="prod-socks")

        outcome = _merge("user-001", guest.cart_id)

        assert outcome.message == "Cart merged successfully"
        assert outcome.cookie_cart_id == user_cart.cart_id
        merged = _stored(user_cart.cart_id)
        assert {str(i.product_id): i.quantity for i in merged.items} == {"prod-kurta": 3, "prod-socks": 1}
        assert merged.total == 1599.0
        assert _stored(guest.cart_id) is None

    def test_own_cart_that_is_not_the_latest_is_kept(self):
        repo = current_domain.repository_for(Cart)
        older = repo.save(Cart.create(user_id="user-001"))
        _add(older.cart_id)
        newer = repo.save(Cart.create(user_id="user-001"))

        outcome = _merge("user-001", older.cart_id)

        assert outcome.message == "Cart already assigned to user"
        assert outcome.cookie_cart_id == older.cart_id
        assert len(_stored(older.cart_id).items) == 1
        assert _stored(newer.cart_id).items == []

    def test_guest_coupon_carries_over(self, make_coupon):
        make_coupon("SAVE100")
        user_cart = _open(user_id="user-001").cart
        _add(user_cart.cart_id)
        guest = _open().cart
        _add(guest.cart_id, quantity=2)
        current_domain.process(ApplyCoupon(cart_id=guest.cart_id, code="SAVE100"), asynchronous=False)

        _merge("user-001", guest.cart_id)

        assert _stored(user_cart.cart_id).coupon.code == "SAVE100"

    def test_restore_without_guest_cart(self):
        user_cart = _open(user_id="user-001").cart
        outcome = _merge("user-001", None)
        assert outcome.message == "Cart restored successfully"
        assert outcome.cart.cart_id == user_cart.cart_id

    def test_refuses_another_users_cart(self):
        owned = _open(user_id="user-002").cart
        outcome = _merge("user-001", owned.cart_id)
        assert outcome.cart is None
        assert outcome.message == "Cart belongs to another user"
        assert outcome.clear_cookie

    def test_nothing_to_merge(self):
        outcome = _merge("user-001", None)
        assert outcome.cart is None
        assert outcome.message == "No cart to merge or restore"


class TestResolveCart:
    def test_header_wins(self):
        header_cart = _open().cart
        _open(user_id="user-001")

        resolution = resolve_cart(user_id="user-001", header_cart_id=header_cart.cart_id)

        assert resolution.source == CartSource.HEADER
        assert resolution.cart.cart_id == header_cart.cart_id

    def test_user_cart_before_cookie(self):
        user_cart = _open(user_id="user-001").cart
        guest = _open().cart

        resolution = resolve_cart(user_id="user-001", cookie_cart_id=guest.cart_id)

        assert resolution.source == CartSource.USER
        assert resolution.cart.cart_id == user_cart.cart_id
        assert resolution.set_cookie == user_cart.cart_id

    def test_guest_cookie(self):
        guest = _open().cart
        resolution = resolve_cart(cookie_cart_id=guest.cart_id)
        assert resolution.source == CartSource.COOKIE

    def test_cookie_for_owned_cart_is_not_honoured_for_anonymous_caller(self):
        owned = _open(user_id="user-001").cart

        resolution = resolve_cart(cookie_cart_id=owned.cart_id)

        assert resolution.cart is None
        assert resolution.clear_cookie

    def test_unknown_cookie_is_cleared(self):
        resolution = resolve_cart(cookie_cart_id=CLIENT_CART_ID)
        assert resolution.cart is None
        assert resolution.clear_cookie

    def test_ordered_cart_is_not_resolved(self):
        guest = _open().cart
        repo = current_domain.repository_for(Cart)
        cart = repo.find_by_cart_id(guest.cart_id)
        cart.claim("user-001")
        cart.begin_checkout()
        cart.mark_ordered("ord-001")
        repo.save(cart)

        resolution = resolve_cart(cookie_cart_id=guest.cart_id, user_id="user-001")

        assert resolution.cart is None
        assert resolution.clear_cookie

    def test_expired_cart_is_flagged(self):
        repo = current_domain.repository_for(Cart)
        stale = Cart.create(now=datetime.now(UTC) - timedelta(days=31))
        repo.save(stale)

        resolution = resolve_cart(cookie_cart_id=stale.cart_id)

        assert resolution.expired
        assert CartStatus(resolution.cart.status) == CartStatus.ACTIVE
