"""Cart item management — commands and handler.

Each handler reloads the cart, applies one change, recomputes totals from
live prices and writes items and totals back together through the
version-guarded save.
"""

from datetime import UTC, datetime

from protean import handle
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from storefront.cart.cart import Cart
from storefront.cart.recompute import recompute
from storefront.domain import logger, storefront
from storefront.errors import CartNotFound, ProductNotFound
from storefront.pricing import get_resolver


@storefront.command(part_of="Cart")
class AddItem:
    """Add a product to the cart, opening a cart first when ``cart_id`` is absent."""

    cart_id = String(max_length=30)
    user_id = Identifier()
    product_id = Identifier(required=True)
    variant_id = String(max_length=100)
    quantity = Integer(required=True, min_value=1)


@storefront.command(part_of="Cart")
class UpdateItemQuantity:
    cart_id = String(required=True, max_length=30)
    item_id = Identifier(required=True)
    quantity = Integer(required=True)  # zero or less removes the line
    user_id = Identifier()


@storefront.command(part_of="Cart")
class RemoveItem:
    cart_id = String(required=True, max_length=30)
    item_id = Identifier(required=True)
    user_id = Identifier()


@storefront.command(part_of="Cart")
class ClearCart:
    cart_id = String(required=True, max_length=30)
    user_id = Identifier()


def load_cart(cart_id) -> Cart:
    cart = current_domain.repository_for(Cart).find_by_cart_id(cart_id)
    if cart is None:
        raise CartNotFound()
    return cart


def load_mutable_cart(cart_id, now) -> Cart:
    """Load a cart that may be edited, releasing a lapsed checkout lock on the way."""
    cart = load_cart(cart_id)
    cart.assert_mutable(now)
    return cart


def persist(cart, now, user_id=None) -> Cart:
    recompute(cart, now=now, user_id=user_id)
    return current_domain.repository_for(Cart).save(cart)


@storefront.command_handler(part_of=Cart)
class ManageCartItemsHandler:
    @handle(AddItem)
    def add_item(self, command):
        now = datetime.now(UTC)
        resolver = get_resolver()
        if resolver.resolve_price(str(command.product_id), command.variant_id) is None:
            raise ProductNotFound()

        if command.cart_id:
            cart = load_mutable_cart(command.cart_id, now)
        else:
            cart = Cart.create(user_id=command.user_id, now=now)
            logger.info("Cart created on first add", cart_id=cart.cart_id, user_id=command.user_id)

        cart.add_item(
            product_id=command.product_id,
            variant_id=command.variant_id,
            quantity=command.quantity,
            snapshot=resolver.describe(str(command.product_id), command.variant_id),
            now=now,
        )
        return persist(cart, now, command.user_id)

    @handle(UpdateItemQuantity)
    def update_item_quantity(self, command):
        now = datetime.now(UTC)
        cart = load_mutable_cart(command.cart_id, now)
        cart.update_item_quantity(command.item_id, command.quantity, now=now)
        return persist(cart, now, command.user_id)

    @handle(RemoveItem)
    def remove_item(self, command):
        now = datetime.now(UTC)
        cart = load_mutable_cart(command.cart_id, now)
        if not cart.remove_item(command.item_id, now=now):
            logger.debug("Remove of absent cart item ignored", cart_id=cart.cart_id, item_id=command.item_id)
        return persist(cart, now, command.user_id)

    @handle(ClearCart)
    def clear_cart(self, command):
        now = datetime.now(UTC)
        cart = load_mutable_cart(command.cart_id, now)
        cart.clear(now=now)
        return persist(cart, now, command.user_id)
