"""Pure cart total computation.

Totals are a function of the line items, their live price quotes, the
shipping rule and the coupon discount. Nothing here touches storage or
module state, so every branch is testable with plain values.
"""

from dataclasses import dataclass, field

from storefront.config import DEFAULT_CURRENCY
from storefront.pricing.port import PriceQuote
from storefront.settings.shipping import ShippingRule


def round_money(amount: float) -> float:
    return round(float(amount), 2)


@dataclass(frozen=True)
class PricedLine:
    """A cart line joined with its current quote."""

    item_id: str
    product_id: str
    variant_id: str | None
    quantity: int
    quote: PriceQuote | None

    @property
    def regular_price(self) -> float:
        return self.quote.price if self.quote else 0.0

    @property
    def effective_price(self) -> float:
        return self.quote.effective_price if self.quote else 0.0

    @property
    def discount_price(self) -> float | None:
        return self.quote.discount_price if self.quote else None


@dataclass(frozen=True)
class CartTotals:
    subtotal: float
    items_total: float
    discount: float
    shipping_estimate: float
    tax: float
    total: float
    item_count: int
    currency: str = DEFAULT_CURRENCY


@dataclass(frozen=True)
class SummaryLine:
    code: str
    label: str
    amount: float
    type: str
    order: int
    meta: dict = field(default_factory=dict)


def items_total(lines: list[PricedLine]) -> float:
    """Item total after per-item discounts, before shipping and coupons."""
    return round_money(sum(line.effective_price * line.quantity for line in lines))


def compute_totals(lines: list[PricedLine], shipping: ShippingRule, coupon_discount: float = 0.0) -> CartTotals:
    """Recompute every derived money field of a cart.

    ``subtotal`` sums regular prices; shipping is decided on the discounted
    item total. The coupon discount is clamped to ``[0, subtotal]`` and never
    exceeds the discounted item total, so the payable amount cannot go negative.
    """
    subtotal = round_money(sum(line.regular_price * line.quantity for line in lines))
    after_item_discounts = items_total(lines)
    discount = round_money(min(max(coupon_discount or 0.0, 0.0), subtotal, after_item_discounts))
    shipping_estimate = round_money(shipping.charge_for(after_item_discounts)) if lines else 0.0
    total = round_money(after_item_discounts - discount + shipping_estimate)

    return CartTotals(
        subtotal=subtotal,
        items_total=after_item_discounts,
        discount=discount,
        shipping_estimate=shipping_estimate,
        tax=0.0,
        total=total,
        item_count=sum(line.quantity for line in lines),
    )


def price_summary(totals: CartTotals, coupon_code: str | None = None) -> dict:
    lines = [
        SummaryLine(
            code="items_subtotal",
            label="Items Subtotal",
            amount=totals.items_total,
            type="base",
            order=1,
        )
    ]
    if totals.discount > 0:
        lines.append(
            SummaryLine(
                code="coupon_discount",
                label=f"Coupon ({coupon_code})" if coupon_code else "Coupon Discount",
                amount=-totals.discount,
                type="discount",
                order=2,
            )
        )
    lines.append(
        SummaryLine(
            code="shipping",
            label="Shipping",
            amount=totals.shipping_estimate,
            type="charge",
            order=3,
            meta={"estimated": True, "free": totals.shipping_estimate == 0},
        )
    )

    return {
        "currency": totals.currency,
        "lines": [
            {
                "code": line.code,
                "label": line.label,
                "amount": line.amount,
                "type": line.type,
                "order": line.order,
                "meta": line.meta,
            }
            for line in lines
        ],
        "payable": {"label": "Total Payable", "amount": totals.total},
    }
