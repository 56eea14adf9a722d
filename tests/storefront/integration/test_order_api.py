"""Integration tests for start-checkout, order creation and payment callbacks."""

from protean import current_domain
from storefront.cart.cart import Cart, CartStatus
from storefront.order.order import Order


def _fill_cart(client, quantity=1):
    response = client.post("/cart/add-item", json={"item": {"productId": "prod-kurta", "quantity": quantity}})
    assert response.status_code == 200, response.text
    return response.json()["cart"]["cartId"]


def _start_checkout(client, **body):
    response = client.post("/cart/start-checkout", json=body)
    assert response.status_code == 200, response.text
    return response.json()


def _create_order(client, key="key-001", **body):
    body.setdefault("paymentMethod", "COD")
    return client.post("/orders/create", json=body, headers={"Idempotency-Key": key})


class TestStartCheckoutEndpoint:
    def test_start_checkout(self, user_client):
        cart_id = _fill_cart(user_client)

        body = _start_checkout(user_client)

        assert body["success"] is True
        assert body["message"] == "Checkout started successfully"
        assert body["cartId"] == cart_id
        assert body["checkoutToken"].startswith("chk_")
        assert body["expiresAt"]

    def test_double_click_gets_same_token(self, user_client):
        _fill_cart(user_client)

        first = _start_checkout(user_client)
        second = _start_checkout(user_client)

        assert second["checkoutToken"] == first["checkoutToken"]

    def test_requires_user(self, client):
        response = client.post("/cart/start-checkout", json={})
        assert response.status_code == 400
        assert response.json()["errorCode"] == "MISSING_USER_ID"

    def test_user_in_body_must_match_header(self, user_client):
        response = user_client.post("/cart/start-checkout", json={"userId": "user-002"})
        assert response.status_code == 403

    def test_user_in_body_without_header_is_unauthorized(self, client):
        cart_id = _fill_cart(client)

        response = client.post("/cart/start-checkout", json={"userId": "user-001"})

        assert response.status_code == 401
        cart = current_domain.repository_for(Cart).find_by_cart_id(cart_id)
        assert cart.user_id is None
        assert cart.status == CartStatus.ACTIVE.value

    def test_guest_cart_claimed_at_checkout(self, client):
        cart_id = _fill_cart(client)
        client.headers["X-User-Id"] = "user-001"

        body = _start_checkout(client)

        assert body["cartId"] == cart_id
        assert str(current_domain.repository_for(Cart).find_by_cart_id(cart_id).user_id) == "user-001"

    def test_ordered_cart_conflicts(self, user_client):
        cart_id = _fill_cart(user_client)
        _start_checkout(user_client)
        _create_order(user_client, cartId=cart_id)

        response = user_client.post("/cart/start-checkout", json={"cartId": cart_id})

        assert response.status_code == 409
        assert response.json()["errorCode"] == "CART_ALREADY_IN_CHECKOUT_OR_ORDERED"


class TestCreateOrderEndpoint:
    def test_create_order(self, user_client):
        cart_id = _fill_cart(user_client, quantity=2)
        token = _start_checkout(user_client)["checkoutToken"]

        response = _create_order(
            user_client,
            cartId=cart_id,
            checkoutToken=token,
            addressId="addr-1",
            items=[{"productId": "prod-kurta", "quantity": 2}],
        )

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["idempotent"] is False
        assert body["requiresPayment"] is False
        assert body["order"]["totalAmount"] == 1000.0
        assert body["order"]["paymentStatus"] == "pending"
        cart = current_domain.repository_for(Cart).find_by_cart_id(cart_id)
        assert cart.status == CartStatus.ORDERED.value

    def test_retry_with_same_key_returns_same_order(self, user_client):
        cart_id = _fill_cart(user_client)
        _start_checkout(user_client)

        first = _create_order(user_client, cartId=cart_id)
        second = _create_order(user_client, cartId=cart_id)

        assert first.status_code == 201
        assert second.status_code == 200
        assert second.json()["idempotent"] is True
        assert second.json()["order"]["orderId"] == first.json()["order"]["orderId"]
        assert len(current_domain.repository_for(Order).find_for_user("user-001")) == 1

    def test_order_clears_cart_cookie(self, user_client):
        cart_id = _fill_cart(user_client)
        _start_checkout(user_client)

        response = _create_order(user_client, cartId=cart_id)

        assert "Max-Age=0" in response.headers["set-cookie"]

    def test_missing_idempotency_key(self, user_client):
        response = user_client.post("/orders/create", json={"paymentMethod": "COD"})
        assert response.status_code == 400
        assert response.json()["errorCode"] == "MISSING_IDEMPOTENCY_KEY"

    def test_cart_not_locked(self, user_client):
        cart_id = _fill_cart(user_client)
        response = _create_order(user_client, cartId=cart_id)
        assert response.status_code == 409
        assert response.json()["errorCode"] == "CART_NOT_LOCKED"

    def test_wrong_token(self, user_client):
        cart_id = _fill_cart(user_client)
        _start_checkout(user_client)

        response = _create_order(user_client, cartId=cart_id, checkoutToken="chk_0_0000000000000000")

        assert response.status_code == 409
        assert response.json()["errorCode"] == "INVALID_CHECKOUT_TOKEN"

    def test_items_mismatch(self, user_client):
        cart_id = _fill_cart(user_client)
        _start_checkout(user_client)

        response = _create_order(user_client, cartId=cart_id, items=[{"productId": "prod-socks", "quantity": 1}])

        assert response.status_code == 409
        assert response.json()["errorCode"] == "CART_ITEMS_MISMATCH"

    def test_unauthenticated(self, client):
        response = _create_order(client)
        assert response.status_code == 401

    def test_user_in_body_without_header_is_unauthorized(self, user_client):
        cart_id = _fill_cart(user_client)
        _start_checkout(user_client)
        del user_client.headers["X-User-Id"]

        response = _create_order(user_client, cartId=cart_id, userId="user-001")

        assert response.status_code == 401
        assert current_domain.repository_for(Order).find_for_user("user-001") == []

    def test_user_in_body_must_match_header(self, user_client):
        cart_id = _fill_cart(user_client)
        _start_checkout(user_client)

        response = _create_order(user_client, cartId=cart_id, userId="user-002")

        assert response.status_code == 403

    def test_online_payment_requires_payment(self, user_client):
        cart_id = _fill_cart(user_client)
        _start_checkout(user_client)

        body = _create_order(user_client, cartId=cart_id, paymentMethod="Stripe").json()

        assert body["requiresPayment"] is True


class TestGetOrderEndpoint:
    def _order_id(self, client):
        cart_id = _fill_cart(client)
        _start_checkout(client)
        return _create_order(client, cartId=cart_id).json()["order"]["orderId"]

    def test_owner_reads_order(self, user_client):
        order_id = self._order_id(user_client)

        response = user_client.get(f"/orders/{order_id}")

        assert response.status_code == 200
        assert response.json()["order"]["orderId"] == order_id

    def test_other_user_sees_not_found(self, user_client):
        order_id = self._order_id(user_client)

        response = user_client.get(f"/orders/{order_id}", headers={"X-User-Id": "user-002"})

        assert response.status_code == 404
        assert response.json()["errorCode"] == "ORDER_NOT_FOUND"

    def test_unknown_order(self, user_client):
        assert user_client.get("/orders/missing").status_code == 404


class TestPaymentCallbackEndpoint:
    def _order_id(self, client):
        cart_id = _fill_cart(client)
        _start_checkout(client)
        return _create_order(client, cartId=cart_id, paymentMethod="Razorpay").json()["order"]["orderId"]

    def test_paid(self, user_client):
        order_id = self._order_id(user_client)

        response = user_client.post(f"/orders/{order_id}/payment", json={"status": "paid", "transactionId": "txn-1"})

        assert response.status_code == 200
        assert response.json()["order"]["paymentStatus"] == "paid"
        assert response.json()["order"]["orderStatus"] == "confirmed"

    def test_failed_after_paid_conflicts(self, user_client):
        order_id = self._order_id(user_client)
        user_client.post(f"/orders/{order_id}/payment", json={"status": "paid"})

        response = user_client.post(f"/orders/{order_id}/payment", json={"status": "failed", "reason": "late"})

        assert response.status_code == 409
        assert response.json()["errorCode"] == "INVALID_PAYMENT_TRANSITION"

    def test_unknown_status(self, user_client):
        order_id = self._order_id(user_client)
        response = user_client.post(f"/orders/{order_id}/payment", json={"status": "refunded"})
        assert response.status_code == 400
