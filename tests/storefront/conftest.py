from datetime import UTC, datetime, timedelta

import pytest
from protean import current_domain
from protean.integrations.pytest import DomainFixture

from storefront.coupon.management import CreateCoupon
from storefront.pricing import set_resolver
from storefront.pricing.in_memory import InMemoryCatalogue


@pytest.fixture(scope="session")
def storefront_bed():
    from storefront.domain import storefront

    bed = DomainFixture(storefront)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(storefront_bed):
    with storefront_bed.domain_context():
        yield


@pytest.fixture(autouse=True)
def catalogue():
    """Live prices the cart resolves against."""
    products = InMemoryCatalogue()
    products.register("prod-kurta", price=500.0, title="Cotton Kurta", sku="KUR-001", image="kurta.jpg")
    products.register("prod-dupatta", price=300.0, discount_price=250.0, title="Silk Dupatta", sku="DUP-001")
    products.register(
        "prod-saree",
        price=1200.0,
        title="Banarasi Saree",
        sku="SAR-001",
        variants={
            "var-red": {"sku": "SAR-001-RED", "attributes": {"color": "red"}},
            "var-gold": {"price": 1500.0, "discount_price": 1350.0, "attributes": {"color": "gold"}},
        },
    )
    products.register("prod-socks", price=99.0, title="Ankle Socks")
    set_resolver(products)
    return products


@pytest.fixture()
def make_coupon():
    """Create a coupon through the command handler, live for a day either side of now."""

    def _make(code="SAVE100", type="flat", value=100.0, **options):
        now = datetime.now(UTC)
        options.setdefault("start_date", now - timedelta(days=1))
        options.setdefault("end_date", now + timedelta(days=1))
        return current_domain.process(
            CreateCoupon(code=code, type=type, value=value, **options),
            asynchronous=False,
        )

    return _make
