"""Repository for the Coupon aggregate."""

from protean.exceptions import ExpectedVersionError

from storefront.coupon.coupon import Coupon
from storefront.domain import logger, storefront


@storefront.repository(part_of=Coupon)
class CouponRepository:
    def find_by_code(self, code: str) -> Coupon | None:
        if not code:
            return None
        return self._dao.query.filter(code=code.strip().upper()).all().first

    def find_active(self) -> list[Coupon]:
        return self._dao.query.filter(is_active=True).order_by("end_date").all().items

    def consume(self, coupon: Coupon, attempts: int = 3) -> bool:
        """Count one use of ``coupon``.

        The increment only lands if the stored coupon is still at the version
        read into ``coupon``. After a lost update the coupon is read again and
        the limit checked against the fresh count, so two orders racing for
        the last use cannot both succeed.
        """
        for _ in range(attempts):
            used = coupon.usage_count or 0
            if coupon.usage_limit is not None and used >= coupon.usage_limit:
                return False

            coupon.usage_count = used + 1
            try:
                self.add(coupon)
                return True
            except ExpectedVersionError:
                logger.warning("Coupon use lost a concurrent update", code=coupon.code)
                coupon = self._dao.query.filter(id=coupon.id).all().first
                if coupon is None:
                    return False
        return False
