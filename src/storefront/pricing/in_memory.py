"""In-memory catalogue adapter for development and testing.

Products are registered with a base price and optional variants, each of
which may override pricing and display data, the same way catalogue
documents embed their variant lists.
"""

from storefront.pricing.port import PriceQuote, PricingResolver, ProductSnapshot


class InMemoryCatalogue(PricingResolver):
    def __init__(self) -> None:
        self._products: dict[str, dict] = {}

    def register(
        self,
        product_id: str,
        price: float,
        discount_price: float | None = None,
        title: str | None = None,
        image: str | None = None,
        sku: str | None = None,
        variants: dict | None = None,
    ) -> None:
        """Add or replace a product.

        ``variants`` maps variant id to a dict that may carry ``price``,
        ``discount_price``, ``title``, ``image``, ``sku`` and ``attributes``.
        """
        self._products[str(product_id)] = {
            "price": price,
            "discount_price": discount_price,
            "title": title or f"Product {product_id}",
            "image": image,
            "sku": sku,
            "variants": dict(variants or {}),
        }

    def set_price(self, product_id: str, price: float, discount_price: float | None = None) -> None:
        product = self._products[str(product_id)]
        product["price"] = price
        product["discount_price"] = discount_price

    def clear(self) -> None:
        self._products.clear()

    def _lookup(self, product_id, variant_id):
        product = self._products.get(str(product_id))
        if product is None:
            return None, None
        if variant_id:
            variant = product["variants"].get(str(variant_id))
            if variant is None:
                return product, None
            return product, variant
        return product, {}

    def resolve_price(self, product_id, variant_id):
        product, variant = self._lookup(product_id, variant_id)
        if product is None or variant is None:
            return None

        # Variants without their own pricing inherit the product's
        if "price" in variant:
            return PriceQuote(price=variant["price"], discount_price=variant.get("discount_price"))
        return PriceQuote(price=product["price"], discount_price=product["discount_price"])

    def describe(self, product_id, variant_id):
        product, variant = self._lookup(product_id, variant_id)
        if product is None or variant is None:
            return None
        return ProductSnapshot(
            title=variant.get("title") or product["title"],
            image=variant.get("image") or product["image"],
            sku=variant.get("sku") or product["sku"],
            attributes=dict(variant.get("attributes") or {}),
        )


def demo_catalogue() -> InMemoryCatalogue:
    """A small catalogue for local runs and load tests."""
    catalogue = InMemoryCatalogue()
    catalogue.register("prod-kurta", 500.0, title="Cotton Kurta", sku="KUR-001")
    catalogue.register("prod-dupatta", 300.0, discount_price=250.0, title="Silk Dupatta", sku="DUP-001")
    catalogue.register(
        "prod-saree",
        1200.0,
        title="Banarasi Saree",
        sku="SAR-001",
        variants={
            "var-red": {"sku": "SAR-001-RED", "attributes": {"color": "red"}},
            "var-gold": {"price": 1500.0, "discount_price": 1350.0, "attributes": {"color": "gold"}},
        },
    )
    catalogue.register("prod-socks", 99.0, title="Ankle Socks", sku="SOC-001")
    return catalogue
