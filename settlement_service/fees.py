"""
fees.py — Fee & Discount Calculator

Pure pricing functions over injected, read-only tables:

    • Delivery fee by tier (local / national / international) and currency
    • Service fee as a fixed percentage of the subtotal
    • Promo discount
    • Aggregate order totals

All amounts passed in are expected in the currency they are priced in; the
settlement workflow always prices in the base currency.
"""

import logging
from decimal import Decimal

from .config import (
    BASE_CURRENCY,
    DELIVERY_FEES_BY_CURRENCY,
    DOMESTIC_REGIONS,
    INTERNATIONAL_MARKERS,
    LOCAL_REGIONS,
    SERVICE_FEE_PERCENTAGE,
)
from .currency import round_money
from .models import Currency, Money, OrderTotals, PromoCode, currency_code

log = logging.getLogger(__name__)

LOCAL = "local"
NATIONAL = "national"
INTERNATIONAL = "international"


class FeeCalculator:
    """
    Calculates delivery fee, service fee, discount and order totals.

    Args:
        fee_table (Mapping[str, Mapping[str, Decimal]]): Delivery fee per currency and tier.
        local_regions (Sequence[str]): Keywords of the base currency's local delivery area.
        domestic_regions (Sequence[str]): Keywords of known domestic regions and cities.
        international_markers (Sequence[str]): Keywords forcing the international tier
            for non-base currencies.
        service_fee_percentage (Decimal): Fraction of the subtotal charged as service fee.
        base_currency (str): Currency whose table is used as fallback.
    """

    def __init__(
            self,
            fee_table=DELIVERY_FEES_BY_CURRENCY,
            local_regions=LOCAL_REGIONS,
            domestic_regions=DOMESTIC_REGIONS,
            international_markers=INTERNATIONAL_MARKERS,
            service_fee_percentage=SERVICE_FEE_PERCENTAGE,
            base_currency: str = BASE_CURRENCY,
    ):
        self.fee_table = fee_table
        self.local_regions = tuple(k.lower() for k in local_regions)
        self.domestic_regions = tuple(k.lower() for k in domestic_regions)
        self.international_markers = tuple(k.lower() for k in international_markers)
        self.service_fee_percentage = Decimal(service_fee_percentage)
        self.base_currency = currency_code(base_currency)

    def delivery_tier(self, location: str, currency) -> str:
        """
        Selects the delivery tier for a location.

        An empty location is local. For the base currency the location is matched
        against the local keywords, then the domestic ones, and anything else is
        international. Other currencies are national unless the location names an
        international marker. Matching is case-insensitive substring matching.
        """
        normalized = (location or "").strip().lower()
        if not normalized:
            return LOCAL

        if currency_code(currency) == self.base_currency:
            if any(keyword in normalized for keyword in self.local_regions):
                return LOCAL
            if any(keyword in normalized for keyword in self.domestic_regions):
                return NATIONAL
            return INTERNATIONAL

        if any(marker in normalized for marker in self.international_markers):
            return INTERNATIONAL
        return NATIONAL

    def delivery_fee(self, location: str, currency) -> Money:
        code = currency_code(currency)
        # Tier follows the requested currency even when its fee row is missing
        tier = self.delivery_tier(location, code)
        fees = self.fee_table.get(code)
        if fees is None:
            log.warning(f"No delivery fees configured for {code}, using {self.base_currency} table.")
            fees = self.fee_table[self.base_currency]
            code = self.base_currency
        return Money(amount=Decimal(fees[tier]), currency=Currency(code))

    def service_fee(self, subtotal: Money) -> Money:
        """service fee = round_half_up(subtotal x percentage, 2)"""
        return Money(
            amount=round_money(subtotal.amount * self.service_fee_percentage),
            currency=subtotal.currency,
        )

    def discount(self, subtotal: Money, promo: PromoCode) -> Money:
        # Rounded only as part of the final total
        return Money(amount=subtotal.amount * promo.discount, currency=subtotal.currency)

    def order_total(self, subtotal, location: str, currency=None, discount_amount=Decimal("0")) -> OrderTotals:
        """
        Computes the order totals for a subtotal that already has the discount
        subtracted.

        Args:
            subtotal (Decimal): Discounted subtotal.
            location (str): Delivery address or region.
            currency (str): Currency the subtotal is in; selects the fee table.
                Defaults to the base currency.
            discount_amount (Decimal): Discount already applied, carried for display only.

        Returns:
            OrderTotals: total = round(subtotal + service fee + delivery fee, 2).
        """
        subtotal = Money(amount=Decimal(subtotal), currency=Currency(currency_code(currency or self.base_currency)))
        service_fee = self.service_fee(subtotal)
        delivery_fee = self.delivery_fee(location, subtotal.currency)
        total = round_money(subtotal.amount + service_fee.amount + delivery_fee.amount)
        return OrderTotals(
            subtotal=subtotal.amount,
            service_fee=service_fee.amount,
            delivery_fee=delivery_fee.amount,
            discount_amount=Decimal(discount_amount),
            total=total,
            currency=subtotal.currency,
        )
