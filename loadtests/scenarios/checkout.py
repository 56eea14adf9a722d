"""Checkout load test scenarios.

CheckoutJourney walks a shopper from an empty cart to a placed order and
deliberately repeats the two requests that must stay idempotent under
retries: start-checkout (a double-clicked button) and order create (a
client retrying with the same Idempotency-Key). BrowsingUser only reads,
which is the bulk of real cart traffic.
"""

import random

from locust import HttpUser, SequentialTaskSet, between, task

from loadtests.data_generators import (
    cart_item_data,
    idempotency_key,
    order_data,
    payment_callback_data,
    shopper_id,
)
from loadtests.helpers.response import error_code, extract_error_detail
from loadtests.helpers.state import ShopperState


class CheckoutJourney(SequentialTaskSet):
    """Add Items -> Start Checkout (x2) -> Create Order (x2) -> Payment -> Read Order.

    The second start-checkout must hand back the same token and the
    second order create must answer 200 with the same order id.
    """

    def on_start(self):
        self.state = ShopperState(user_id=shopper_id())
        self.client.headers["X-User-Id"] = self.state.user_id

    @task
    def add_items(self):
        for _ in range(random.randint(1, 3)):
            with self.client.post(
                "/cart/add-item",
                json=cart_item_data(),
                catch_response=True,
                name="POST /cart/add-item",
            ) as resp:
                if resp.status_code in (200, 201):
                    cart = resp.json()["cart"]
                    self.state.cart_id = cart["cartId"]
                    self.state.item_ids = [item["itemId"] for item in cart["items"]]
                else:
                    resp.failure(f"Add item failed: {resp.status_code} {extract_error_detail(resp)}")
                    self.interrupt()

    @task
    def start_checkout(self):
        with self.client.post(
            "/cart/start-checkout",
            json={"cartId": self.state.cart_id},
            catch_response=True,
            name="POST /cart/start-checkout",
        ) as resp:
            if resp.status_code == 200:
                self.state.checkout_token = resp.json()["checkoutToken"]
            else:
                resp.failure(f"Start checkout failed: {resp.status_code} {extract_error_detail(resp)}")
                self.interrupt()

    @task
    def start_checkout_again(self):
        with self.client.post(
            "/cart/start-checkout",
            json={"cartId": self.state.cart_id},
            catch_response=True,
            name="POST /cart/start-checkout [repeat]",
        ) as resp:
            if resp.status_code != 200:
                resp.failure(f"Repeat checkout failed: {resp.status_code} {extract_error_detail(resp)}")
            elif resp.json()["checkoutToken"] != self.state.checkout_token:
                resp.failure("Repeat checkout issued a new token")

    @task
    def create_order(self):
        self.state.idempotency_key = idempotency_key()
        with self.client.post(
            "/orders/create",
            json=order_data(self.state.cart_id, self.state.checkout_token),
            headers={"Idempotency-Key": self.state.idempotency_key},
            catch_response=True,
            name="POST /orders/create",
        ) as resp:
            if resp.status_code == 201:
                body = resp.json()
                self.state.order_id = body["order"]["orderId"]
                self.state.requires_payment = body["requiresPayment"]
            else:
                resp.failure(f"Create order failed: {resp.status_code} {extract_error_detail(resp)}")
                self.interrupt()

    @task
    def retry_order(self):
        with self.client.post(
            "/orders/create",
            json=order_data(self.state.cart_id, self.state.checkout_token),
            headers={"Idempotency-Key": self.state.idempotency_key},
            catch_response=True,
            name="POST /orders/create [retry]",
        ) as resp:
            if resp.status_code != 200 or not resp.json().get("idempotent"):
                resp.failure(f"Order retry was not idempotent: {resp.status_code} {extract_error_detail(resp)}")
            elif resp.json()["order"]["orderId"] != self.state.order_id:
                resp.failure("Order retry returned a different order")

    @task
    def payment_callback(self):
        if not self.state.requires_payment:
            return
        with self.client.post(
            f"/orders/{self.state.order_id}/payment",
            json=payment_callback_data(),
            catch_response=True,
            name="POST /orders/{id}/payment",
        ) as resp:
            if resp.status_code != 200:
                resp.failure(f"Payment callback failed: {resp.status_code} {extract_error_detail(resp)}")

    @task
    def read_order(self):
        self.client.get(f"/orders/{self.state.order_id}", name="GET /orders/{id}")
        self.interrupt()


class CheckoutUser(HttpUser):
    """A shopper who goes all the way to a placed order."""

    tasks = [CheckoutJourney]
    wait_time = between(1, 3)


class BrowsingUser(HttpUser):
    """A guest who fills a cart and keeps looking at it, relying on the cart cookie."""

    wait_time = between(0.5, 2)

    def on_start(self):
        self.client.post("/cart/create", name="POST /cart/create")

    @task(3)
    def add_item(self):
        self.client.post("/cart/add-item", json=cart_item_data(), name="POST /cart/add-item")

    @task(5)
    def read_summary(self):
        self.client.get("/cart/summary", name="GET /cart/summary")

    @task(2)
    def read_count(self):
        self.client.get("/cart/count", name="GET /cart/count")

    @task(1)
    def apply_unknown_coupon(self):
        with self.client.post(
            "/cart/apply-coupon",
            json={"code": "NOPE"},
            catch_response=True,
            name="POST /cart/apply-coupon",
        ) as resp:
            # An unknown code is an expected rejection
            if resp.status_code == 404 and error_code(resp) == "INVALID_COUPON":
                resp.success()


class StampedeUser(HttpUser):
    """Fires start-checkout and order create for one cart back to back with no pause.

    Exercises the cart version guard: every pair of requests races, and each
    must still yield exactly one lock and one order.
    """

    wait_time = between(0, 0.2)

    def on_start(self):
        self.client.headers["X-User-Id"] = shopper_id()

    @task
    def race(self):
        resp = self.client.post("/cart/add-item", json=cart_item_data("prod-kurta"), name="[RACE] add-item")
        if resp.status_code not in (200, 201):
            return
        cart_id = resp.json()["cart"]["cartId"]
        tokens = set()
        for _ in range(2):
            lock = self.client.post("/cart/start-checkout", json={"cartId": cart_id}, name="[RACE] start-checkout")
            if lock.status_code == 200:
                tokens.add(lock.json()["checkoutToken"])
        if len(tokens) != 1:
            return
        token = tokens.pop()
        key = idempotency_key()
        order_ids = set()
        for _ in range(2):
            with self.client.post(
                "/orders/create",
                json=order_data(cart_id, token),
                headers={"Idempotency-Key": key},
                catch_response=True,
                name="[RACE] orders/create",
            ) as resp:
                if resp.status_code in (200, 201):
                    order_ids.add(resp.json()["order"]["orderId"])
        if len(order_ids) > 1:
            self.environment.events.request.fire(
                request_type="CHECK",
                name="[RACE] one order per key",
                response_time=0,
                response_length=0,
                response=None,
                context={},
                exception=AssertionError(f"Key {key} produced orders {sorted(order_ids)}"),
            )
