"""
currency.py — Currency Conversion for Display

Conversion is one-directional: from the base currency outward, for display only.
Fees, discounts and totals are always computed in the base currency and converted
afterwards, so rounding never compounds across legs.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal
from types import MappingProxyType

from .config import BASE_CURRENCY, EXCHANGE_RATES
from .errors import ValidationError
from .models import Currency, Money, OrderTotals, currency_code

log = logging.getLogger(__name__)

CENT = Decimal("0.01")

CURRENCY_SYMBOLS = MappingProxyType({
    "NGN": "₦", "USD": "$", "EUR": "€", "GBP": "£", "CAD": "CA$", "AUD": "A$",
    "JPY": "¥", "CHF": "CHF ", "CNY": "CN¥", "INR": "₹", "ZAR": "R",
})

# Currencies displayed without minor units
ZERO_DECIMAL_CURRENCIES = frozenset({"JPY"})


def round_money(amount) -> Decimal:
    """Rounds half-up to whole cents."""
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


class CurrencyConverter:
    """
    Converts base-currency amounts into a display currency using a fixed rate table.

    Args:
        rates (Mapping[str, Decimal]): Units of each currency per 1 unit of the base currency.
        base_currency (str): Currency all order math is done in.
    """

    def __init__(self, rates=EXCHANGE_RATES, base_currency: str = BASE_CURRENCY):
        self.rates = MappingProxyType({currency_code(k): Decimal(v) for k, v in rates.items()})
        self.base_currency = currency_code(base_currency)

    def is_base(self, currency) -> bool:
        return currency_code(currency) == self.base_currency

    def convert_from_base(self, amount, target_currency) -> Decimal:
        """
        Converts an amount from the base currency into ``target_currency``.

        Returns the amount unchanged when the target is the base currency.

        Raises:
            ValidationError: If no rate is configured for the target currency.
        """
        code = currency_code(target_currency)
        if code == self.base_currency:
            return Decimal(amount)
        rate = self.rates.get(code)
        if rate is None:
            raise ValidationError(f"Unsupported currency: {code}")
        return Decimal(amount) * rate

    def to_display(self, amount, target_currency) -> Money:
        """Converts and rounds to cents, returning Money in the target currency."""
        return Money(
            amount=round_money(self.convert_from_base(amount, target_currency)),
            currency=Currency(currency_code(target_currency)),
        )

    def convert_totals(self, totals: OrderTotals, target_currency) -> OrderTotals:
        """
        Converts every figure of base-currency totals for display.

        Each figure is converted and rounded on its own; nothing is recomputed.
        """
        if self.is_base(target_currency):
            return totals
        return OrderTotals(
            subtotal=self.to_display(totals.subtotal, target_currency).amount,
            service_fee=self.to_display(totals.service_fee, target_currency).amount,
            delivery_fee=self.to_display(totals.delivery_fee, target_currency).amount,
            discount_amount=self.to_display(totals.discount_amount, target_currency).amount,
            total=self.to_display(totals.total, target_currency).amount,
            currency=Currency(currency_code(target_currency)),
        )

    def format(self, amount, currency) -> str:
        """
        Formats an amount for display, e.g. ``₦3,520.00`` or ``¥1,200``.

        Not used for computation.
        """
        code = currency_code(currency)
        symbol = CURRENCY_SYMBOLS.get(code, f"{code} ")
        if code in ZERO_DECIMAL_CURRENCIES:
            value = Decimal(amount).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
            return f"{symbol}{value:,}"
        return f"{symbol}{round_money(amount):,}"
