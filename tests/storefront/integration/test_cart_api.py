"""Integration tests for the cart endpoints via TestClient."""

from datetime import UTC, datetime, timedelta

from protean import current_domain
from storefront.cart.cart import Cart, CartStatus


def _add(client, product_id="prod-kurta", quantity=1, variant_id=None):
    response = client.post(
        "/cart/add-item",
        json={"item": {"productId": product_id, "variantId": variant_id, "quantity": quantity}},
    )
    assert response.status_code == 200, response.text
    return response.json()["cart"]


def _stored(cart_id):
    return current_domain.repository_for(Cart).find_by_cart_id(cart_id)


class TestCreateCartEndpoint:
    def test_create_guest_cart(self, client):
        response = client.post("/cart/create")

        assert response.status_code == 201
        cart = response.json()["cart"]
        assert cart["status"] == "active"
        assert cart["items"] == []
        assert response.cookies.get("cart_id") == cart["cartId"]

    def test_create_returns_current_cart(self, client):
        first = client.post("/cart/create").json()["cart"]

        response = client.post("/cart/create")

        assert response.status_code == 200
        assert response.json()["cart"]["cartId"] == first["cartId"]

    def test_client_generated_id(self, client):
        response = client.post("/cart/create", json={"cartId": "cart_abcdefghij0123456789z"})
        assert response.status_code == 201
        assert response.json()["cart"]["cartId"] == "cart_abcdefghij0123456789z"

    def test_malformed_id(self, client):
        response = client.post("/cart/create", json={"cartId": "nope"})
        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["message"] == "Invalid cart ID format"


class TestGetCartEndpoint:
    def test_no_cart(self, client):
        response = client.post("/cart/get")
        assert response.status_code == 200
        assert response.json() == {"success": True, "cart": None}

    def test_cart_from_cookie(self, client):
        cart = _add(client, quantity=2)

        body = client.post("/cart/get").json()

        assert body["cart"]["cartId"] == cart["cartId"]
        item = body["cart"]["items"][0]
        assert item["price"] == 500.0
        assert item["lineTotal"] == 1000.0
        assert item["available"] is True

    def test_cart_from_header(self, client):
        cart_id = _add(client)["cartId"]
        client.cookies.clear()

        body = client.post("/cart/get", headers={"X-Cart-Id": cart_id}).json()

        assert body["cart"]["cartId"] == cart_id

    def test_head_request(self, client):
        assert client.head("/cart/get").status_code == 404
        _add(client)
        assert client.head("/cart/get").status_code == 200

    def test_read_shows_live_prices_without_writing(self, client, catalogue):
        cart_id = _add(client)["cartId"]
        version = _stored(cart_id)._version
        catalogue.set_price("prod-kurta", 700.0)

        body = client.post("/cart/get").json()

        assert body["cart"]["subtotal"] == 700.0
        assert _stored(cart_id)._version == version

    def test_expired_cart(self, client):
        stale = Cart.create(now=datetime.now(UTC) - timedelta(days=31))
        current_domain.repository_for(Cart).save(stale)
        client.cookies.set("cart_id", stale.cart_id)

        body = client.post("/cart/get").json()

        assert body == {"success": False, "expired": True, "message": "Cart has expired"}

    def test_stale_cookie_of_owned_cart_is_cleared(self, client):
        owned = Cart.create(user_id="user-001")
        current_domain.repository_for(Cart).save(owned)
        client.cookies.set("cart_id", owned.cart_id)

        response = client.post("/cart/get")

        assert response.json()["cart"] is None
        assert "cart_id=" in response.headers["set-cookie"]
        assert "Max-Age=0" in response.headers["set-cookie"]


class TestItemEndpoints:
    def test_add_item_opens_cart_and_sets_cookie(self, client):
        response = client.post(
            "/cart/add-item",
            json={"item": {"productId": "prod-kurta", "quantity": 1}},
        )

        cart = response.json()["cart"]
        assert cart["total"] == 599.0
        assert cart["shippingEstimate"] == 99.0
        assert response.cookies.get("cart_id") == cart["cartId"]

    def test_add_same_product_grows_line(self, client):
        _add(client)
        cart = _add(client, quantity=2)
        assert len(cart["items"]) == 1
        assert cart["itemCount"] == 3

    def test_add_unknown_product(self, client):
        response = client.post("/cart/add-item", json={"item": {"productId": "prod-missing"}})
        assert response.status_code == 404
        assert response.json()["errorCode"] == "PRODUCT_NOT_FOUND"

    def test_add_rejects_bad_quantity(self, client):
        response = client.post("/cart/add-item", json={"item": {"productId": "prod-kurta", "quantity": 0}})
        assert response.status_code == 400
        assert response.json()["errorCode"] == "VALIDATION_ERROR"

    def test_update_item(self, client):
        item_id = _add(client)["items"][0]["itemId"]

        response = client.patch("/cart/update-item", json={"itemId": item_id, "changes": {"quantity": 3}})

        assert response.status_code == 200
        assert response.json()["cart"]["items"][0]["quantity"] == 3

    def test_update_unknown_item(self, client):
        _add(client)
        response = client.patch("/cart/update-item", json={"itemId": "missing", "changes": {"quantity": 3}})
        assert response.status_code == 404
        assert response.json()["errorCode"] == "ITEM_NOT_FOUND"

    def test_update_without_cart(self, client):
        response = client.patch("/cart/update-item", json={"itemId": "x", "changes": {"quantity": 3}})
        assert response.status_code == 404
        assert response.json()["errorCode"] == "CART_NOT_FOUND"

    def test_remove_item(self, client):
        item_id = _add(client)["items"][0]["itemId"]

        response = client.request("DELETE", "/cart/remove-item", json={"itemId": item_id})

        assert response.json()["cart"]["items"] == []

    def test_clear(self, client):
        _add(client, quantity=3)
        body = client.post("/cart/clear").json()
        assert body["message"] == "Cart cleared"
        assert body["cart"]["total"] == 0.0

    def test_someone_elses_cart_by_header(self, client):
        owned = Cart.create(user_id="user-002")
        current_domain.repository_for(Cart).save(owned)

        response = client.post(
            "/cart/add-item",
            json={"item": {"productId": "prod-kurta"}},
            headers={"X-Cart-Id": owned.cart_id, "X-User-Id": "user-001"},
        )

        assert response.status_code == 403
        assert _stored(owned.cart_id).items == []


class TestReadEndpoints:
    def test_count(self, client):
        assert client.get("/cart/count").json() == {"success": True, "count": 0}
        _add(client, quantity=2)
        assert client.post("/cart/count").json()["count"] == 2

    def test_items(self, client):
        _add(client, product_id="prod-saree", variant_id="var-gold")

        items = client.get("/cart/items").json()["items"]

        assert items[0]["price"] == 1500.0
        assert items[0]["discountPrice"] == 1350.0
        assert items[0]["attributes"] == {"color": "gold"}

    def test_price_summary(self, client):
        _add(client)

        summary = client.get("/cart/price-summary").json()["priceSummary"]

        assert summary["payable"]["amount"] == 599.0
        assert [line["code"] for line in summary["lines"]] == ["items_subtotal", "shipping"]

    def test_empty_summary(self, client):
        summary = client.get("/cart/summary").json()["summary"]
        assert summary["count"] == 0
        assert summary["priceSummary"]["payable"]["amount"] == 0.0


class TestCouponEndpoints:
    def test_apply_and_remove(self, client, make_coupon):
        make_coupon("SAVE100")
        _add(client, quantity=3)

        applied = client.post("/cart/apply-coupon", json={"code": "save100"}).json()
        assert applied["message"] == "Coupon applied successfully"
        assert applied["cart"]["coupon"] == {"code": "SAVE100", "discountAmount": 100.0}
        assert applied["cart"]["total"] == 1400.0

        removed = client.request("DELETE", "/cart/remove-coupon").json()
        assert removed["message"] == "Coupon removed"
        assert removed["cart"]["coupon"] is None

    def test_unknown_coupon(self, client):
        _add(client)
        response = client.post("/cart/apply-coupon", json={"code": "NOPE"})
        assert response.status_code == 404
        assert response.json() == {"success": False, "message": "Invalid coupon code", "errorCode": "INVALID_COUPON"}

    def test_price_summary_shows_coupon_line(self, client, make_coupon):
        make_coupon("SAVE100")
        _add(client, quantity=3)
        client.post("/cart/apply-coupon", json={"code": "SAVE100"})

        lines = client.get("/cart/price-summary").json()["priceSummary"]["lines"]

        assert lines[1]["code"] == "coupon_discount"
        assert lines[1]["amount"] == -100.0

    def test_list_coupons(self, client, make_coupon):
        make_coupon("SAVE100")
        coupons = client.get("/cart/coupons").json()["coupons"]
        assert [c["code"] for c in coupons] == ["SAVE100"]


class TestMergeEndpoint:
    def test_requires_user(self, client):
        response = client.post("/cart/merge")
        assert response.status_code == 401
        assert response.json()["message"] == "User must be authenticated"

    def test_guest_cart_assigned_on_login(self, client):
        cart_id = _add(client)["cartId"]

        response = client.post("/cart/merge", headers={"X-User-Id": "user-001"})

        assert response.json()["message"] == "Cart assigned to user successfully"
        assert str(_stored(cart_id).user_id) == "user-001"

    def test_guest_cart_merged_into_user_cart(self, client):
        user_cart = Cart.create(user_id="user-001")
        user_cart.add_item("prod-socks", None, 1)
        current_domain.repository_for(Cart).save(user_cart)
        guest_id = _add(client)["cartId"]

        response = client.post("/cart/merge", headers={"X-User-Id": "user-001"})

        body = response.json()
        assert body["message"] == "Cart merged successfully"
        assert body["cart"]["cartId"] == user_cart.cart_id
        assert response.cookies.get("cart_id") == user_cart.cart_id
        assert _stored(guest_id) is None


class TestCheckoutLockedCart:
    def test_edits_rejected_while_locked(self, user_client):
        _add(user_client)
        user_client.post("/cart/start-checkout", json={})

        response = user_client.post("/cart/add-item", json={"item": {"productId": "prod-socks"}})

        assert response.status_code == 409
        assert response.json()["errorCode"] == "CART_LOCKED"

    def test_reads_still_work_while_locked(self, user_client):
        cart_id = _add(user_client)["cartId"]
        user_client.post("/cart/start-checkout", json={})

        body = user_client.post("/cart/get").json()

        assert body["cart"]["cartId"] == cart_id
        assert body["cart"]["status"] == CartStatus.CHECKOUT.value
        assert "checkoutExpiresAt" in body["cart"]
