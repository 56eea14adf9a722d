"""Store settings and the shipping rule derived from them.

Settings are plain key/value records maintained by store operators. The cart
reads two keys; each falls back to the built-in default independently when
absent or unparseable.
"""

from dataclasses import dataclass
from datetime import UTC, datetime

from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, Float, String
from protean.utils.globals import current_domain

from storefront.config import DEFAULT_FLAT_SHIPPING, DEFAULT_FREE_SHIPPING_THRESHOLD
from storefront.domain import logger, storefront

FREE_THRESHOLD_KEY = "cart.shipping.freeThreshold"
FLAT_RATE_KEY = "cart.shipping.flat"


@storefront.aggregate
class StoreSetting:
    key = String(identifier=True, required=True, max_length=100)
    value = String(required=True, max_length=255)
    updated_at = DateTime()


@dataclass(frozen=True)
class ShippingRule:
    free_threshold: float
    flat_rate: float

    def charge_for(self, amount: float) -> float:
        """Shipping for a cart whose discounted item total is ``amount``."""
        return 0.0 if amount >= self.free_threshold else self.flat_rate


def _read_amount(key: str, default: float) -> float:
    try:
        record = current_domain.repository_for(StoreSetting).get(key)
    except ObjectNotFoundError:
        return default

    try:
        return float(record.value)
    except (TypeError, ValueError):
        logger.warning("Ignoring unparseable store setting", key=key, value=record.value)
        return default


def shipping_rule() -> ShippingRule:
    return ShippingRule(
        free_threshold=_read_amount(FREE_THRESHOLD_KEY, DEFAULT_FREE_SHIPPING_THRESHOLD),
        flat_rate=_read_amount(FLAT_RATE_KEY, DEFAULT_FLAT_SHIPPING),
    )


@storefront.command(part_of=StoreSetting)
class ConfigureShipping:
    """Persist the free-shipping threshold and/or the flat shipping charge."""

    free_threshold = Float(min_value=0.0)
    flat_rate = Float(min_value=0.0)


@storefront.command_handler(part_of=StoreSetting)
class StoreSettingsHandler:
    @handle(ConfigureShipping)
    def configure_shipping(self, command):
        repo = current_domain.repository_for(StoreSetting)
        now = datetime.now(UTC)

        for key, value in (
            (FREE_THRESHOLD_KEY, command.free_threshold),
            (FLAT_RATE_KEY, command.flat_rate),
        ):
            if value is None:
                continue
            try:
                setting = repo.get(key)
                setting.value = str(value)
                setting.updated_at = now
            except ObjectNotFoundError:
                setting = StoreSetting(key=key, value=str(value), updated_at=now)
            repo.add(setting)
            logger.info("Store setting updated", key=key, value=value)
