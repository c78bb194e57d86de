"""
promo.py — Promo Code Validator

Looks up promo codes in an injected catalog and checks them against the current
time and their usage cap. Validation never changes the catalog or the usage
counters.
"""

import logging
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Optional

from .config import PROMO_CODES
from .models import Money, PromoCode

log = logging.getLogger(__name__)


def _utcnow():
    return datetime.now(timezone.utc)


def _aware(moment: datetime) -> datetime:
    # Naive catalog dates are taken as UTC
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


class PromoValidator:
    """
    Validates promo codes against a read-only catalog.

    Args:
        catalog (Mapping[str, PromoCode | dict]): Promo codes keyed by code.
        clock (Callable[[], datetime]): Returns the current time.
    """

    def __init__(self, catalog=PROMO_CODES, clock=_utcnow):
        self.catalog = MappingProxyType({
            code: entry if isinstance(entry, PromoCode) else PromoCode.model_validate(entry)
            for code, entry in catalog.items()
        })
        self.clock = clock

    def validate(self, code: str) -> Optional[PromoCode]:
        """
        Returns the promo code if it can be applied right now, otherwise None.

        A code is rejected when it is unknown or inactive, when the current time is
        before its start date or after its end date, or when its usage count has
        reached the cap.
        """
        promo = self.catalog.get((code or "").strip())
        if promo is None or not promo.is_active:
            log.info(f"[Promo: {code}] Unknown or inactive code.")
            return None

        now = _aware(self.clock())
        if promo.start_date is not None and now < _aware(promo.start_date):
            log.info(f"[Promo: {code}] Not yet valid (starts {promo.start_date}).")
            return None
        if promo.end_date is not None and now > _aware(promo.end_date):
            log.info(f"[Promo: {code}] Expired (ended {promo.end_date}).")
            return None

        if (promo.max_uses is not None
                and promo.current_uses is not None
                and promo.current_uses >= promo.max_uses):
            log.info(f"[Promo: {code}] Usage cap of {promo.max_uses} reached.")
            return None

        return promo

    @staticmethod
    def apply_discount(subtotal: Money, promo: PromoCode) -> Money:
        """subtotal x promo.discount, without rounding."""
        return Money(amount=subtotal.amount * promo.discount, currency=subtotal.currency)
