from protean import current_domain
from storefront.cart.cart import Cart
from storefront.cart.items import AddItem
from storefront.settings.shipping import FLAT_RATE_KEY, ConfigureShipping, StoreSetting, shipping_rule


class TestShippingRule:
    def test_defaults(self):
        rule = shipping_rule()
        assert rule.free_threshold == 999.0
        assert rule.flat_rate == 99.0

    def test_configured_values(self):
        current_domain.process(ConfigureShipping(free_threshold=2000.0, flat_rate=49.0), asynchronous=False)

        rule = shipping_rule()

        assert rule.free_threshold == 2000.0
        assert rule.flat_rate == 49.0

    def test_keys_fall_back_independently(self):
        current_domain.process(ConfigureShipping(flat_rate=149.0), asynchronous=False)
        rule = shipping_rule()
        assert rule.free_threshold == 999.0
        assert rule.flat_rate == 149.0

    def test_unparseable_value_uses_default(self):
        current_domain.repository_for(StoreSetting).add(StoreSetting(key=FLAT_RATE_KEY, value="free"))
        assert shipping_rule().flat_rate == 99.0

    def test_cart_totals_follow_settings(self):
        current_domain.process(ConfigureShipping(free_threshold=2000.0, flat_rate=49.0), asynchronous=False)

        cart = current_domain.process(
            AddItem(product_id="prod-kurta", quantity=3),
            asynchronous=False,
        )

        stored = current_domain.repository_for(Cart).find_by_cart_id(cart.cart_id)
        assert stored.shipping_estimate == 49.0
        assert stored.total == 1549.0
