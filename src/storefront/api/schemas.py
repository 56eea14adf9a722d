"""Pydantic request schemas for the storefront API.

These are external contracts (anti-corruption layer), separate from the
protean commands. Clients speak camelCase; the Python side keeps snake_case.
"""

from pydantic import BaseModel, Field


class _Schema(BaseModel):
    model_config = {"populate_by_name": True}


# ---------------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------------
class CreateCartRequest(_Schema):
    cart_id: str | None = Field(default=None, alias="cartId")

    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {"examples": [{"cartId": "cart_k3j9x0q2m8v7w1c5t6y4z"}]},
    }


class CartItemInput(_Schema):
    product_id: str = Field(alias="productId", min_length=1)
    variant_id: str | None = Field(default=None, alias="variantId")
    quantity: int = Field(default=1, ge=1)


class AddItemRequest(_Schema):
    item: CartItemInput

    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {
            "examples": [{"item": {"productId": "prod-001", "variantId": "var-red-m", "quantity": 2}}]
        },
    }


class ItemChanges(_Schema):
    quantity: int


class UpdateItemRequest(_Schema):
    item_id: str = Field(alias="itemId", min_length=1)
    changes: ItemChanges


class RemoveItemRequest(_Schema):
    item_id: str = Field(alias="itemId", min_length=1)


class ApplyCouponRequest(_Schema):
    code: str | None = None


class StartCheckoutRequest(_Schema):
    user_id: str | None = Field(default=None, alias="userId")
    cart_id: str | None = Field(default=None, alias="cartId")


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
class OrderItemInput(_Schema):
    product_id: str = Field(alias="productId")
    variant_id: str | None = Field(default=None, alias="variantId")
    quantity: int = Field(ge=1)


class CreateOrderRequest(_Schema):
    user_id: str | None = Field(default=None, alias="userId")
    cart_id: str | None = Field(default=None, alias="cartId")
    items: list[OrderItemInput] = Field(default_factory=list)
    address_id: str | None = Field(default=None, alias="addressId")
    payment_method: str = Field(alias="paymentMethod")
    checkout_token: str | None = Field(default=None, alias="checkoutToken")

    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {
            "examples": [
                {
                    "userId": "user-001",
                    "cartId": "cart_k3j9x0q2m8v7w1c5t6y4z",
                    "items": [{"productId": "prod-001", "variantId": None, "quantity": 2}],
                    "addressId": "addr-001",
                    "paymentMethod": "COD",
                    "checkoutToken": "chk_1767225600000_9f8e7d6c5b4a3921",
                }
            ]
        },
    }


class PaymentCallbackRequest(_Schema):
    status: str = Field(pattern="^(paid|failed)$")
    transaction_id: str | None = Field(default=None, alias="transactionId")
    reason: str | None = None
