"""Coupon management — command and handler used by operators and seed scripts."""

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, Integer, String
from protean.utils.globals import current_domain

from storefront.coupon.coupon import Coupon, CouponType
from storefront.domain import logger, storefront


@storefront.command(part_of="Coupon")
class CreateCoupon:
    code = String(required=True, max_length=50)
    description = String(max_length=255)
    type = String(required=True, choices=CouponType)
    value = Float(required=True, min_value=0.0)
    min_cart_value = Float(default=0.0)
    max_discount = Float()
    start_date = DateTime(required=True)
    end_date = DateTime(required=True)
    usage_limit = Integer()
    per_user_limit = Integer()
    is_active = Boolean(default=True)
    is_new_user_only = Boolean(default=False)


@storefront.command_handler(part_of=Coupon)
class ManageCouponsHandler:
    @handle(CreateCoupon)
    def create_coupon(self, command):
        repo = current_domain.repository_for(Coupon)
        if repo.find_by_code(command.code) is not None:
            raise ValidationError({"code": ["Coupon code already exists"]})

        coupon = Coupon.create(
            code=command.code,
            type=command.type,
            value=command.value,
            start_date=command.start_date,
            end_date=command.end_date,
            description=command.description,
            min_cart_value=command.min_cart_value or 0.0,
            max_discount=command.max_discount,
            usage_limit=command.usage_limit,
            per_user_limit=command.per_user_limit,
            is_active=command.is_active,
            is_new_user_only=command.is_new_user_only,
        )
        repo.add(coupon)
        logger.info("Coupon created", code=coupon.code, type=coupon.type, value=coupon.value)
        return str(coupon.id)
