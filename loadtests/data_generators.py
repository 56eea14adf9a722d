"""Faker-based data generators for Locust load test scenarios.

Payloads match the camelCase field names the storefront's Pydantic
request schemas accept, and the product ids the demo catalogue serves
when the app runs outside production.
"""

import random
import uuid

from faker import Faker

fake = Faker("en_IN")

DEMO_PRODUCTS = ["prod-kurta", "prod-dupatta", "prod-saree", "prod-socks"]
PAYMENT_METHODS = ["COD", "Razorpay", "Stripe"]


def shopper_id() -> str:
    """Generate user ids like 'user-lt-a1b2c3d4'."""
    return f"user-lt-{uuid.uuid4().hex[:8]}"


def idempotency_key() -> str:
    return f"lt-{uuid.uuid4()}"


def cart_item_data(product_id: str | None = None) -> dict:
    """Generate an add-item payload against the demo catalogue."""
    product_id = product_id or random.choice(DEMO_PRODUCTS)
    item = {"productId": product_id, "quantity": random.randint(1, 3)}
    if product_id == "prod-saree" and random.random() < 0.5:
        item["variantId"] = random.choice(["var-red", "var-gold"])
    return {"item": item}


def order_data(cart_id: str, checkout_token: str) -> dict:
    """Generate a create-order payload for a locked cart."""
    return {
        "cartId": cart_id,
        "checkoutToken": checkout_token,
        "addressId": f"addr-{fake.postcode()}",
        "paymentMethod": random.choice(PAYMENT_METHODS),
    }


def payment_callback_data() -> dict:
    if random.random() < 0.9:
        return {"status": "paid", "transactionId": f"txn_{uuid.uuid4().hex[:16]}"}
    return {"status": "failed", "reason": fake.sentence(nb_words=4)}
