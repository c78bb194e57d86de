"""
cart.py — Cart Aggregator

Turns a product selection into cart line items and folds a cart into the figures
needed for pricing. Also decodes the cart and promo payloads that the storefront
caches between screens.
"""

import json
import logging
from decimal import Decimal
from typing import Callable, List, Optional

import pydantic
from pydantic import TypeAdapter

from .errors import ValidationError
from .models import CartLineItem, Product, PromoCode

log = logging.getLogger(__name__)

_CART_ADAPTER = TypeAdapter(List[CartLineItem])


def expand_selection(product: Product, sizes: List[str], colors: List[str], quantity: int) -> List[CartLineItem]:
    """
    Expands a size x color selection into one line item per combination.

    Every combination carries the full requested quantity; the quantity is not split
    across combinations.

    Args:
        product (Product): The product being added.
        sizes (List[str]): Selected sizes, at least one.
        colors (List[str]): Selected colors, at least one.
        quantity (int): Quantity per combination, at least 1.

    Returns:
        List[CartLineItem]: len(sizes) * len(colors) line items, sizes outermost.

    Raises:
        ValidationError: If no size or no color is selected, or the quantity is below 1.
    """
    if not sizes or not colors:
        raise ValidationError("Please select at least one size and one color")
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1")

    return [
        CartLineItem(
            product_id=product.id,
            product_name=product.name,
            price=product.price,
            size=size,
            color=color,
            quantity=quantity,
        )
        for size in sizes
        for color in colors
    ]


def add_to_cart(cart: List[CartLineItem], new_items: List[CartLineItem]) -> List[CartLineItem]:
    """Returns a new cart with ``new_items`` appended. Repeated combinations are kept as separate lines."""
    return list(cart) + list(new_items)


def subtotal(items: List[CartLineItem], price_resolver: Optional[Callable[[Decimal], Decimal]] = None) -> Decimal:
    """
    Sums price x quantity over the cart.

    Args:
        items (List[CartLineItem]): Cart lines.
        price_resolver (Callable, optional): Maps a base-currency unit price to the
            price used for summing, e.g. a display-currency conversion. Identity if omitted.
    """
    resolve = price_resolver or (lambda price: price)
    return sum((resolve(item.price) * item.quantity for item in items), Decimal("0"))


def item_count(items: List[CartLineItem]) -> int:
    return sum(item.quantity for item in items)


def parse_cart_payload(payload: str) -> List[CartLineItem]:
    """
    Decodes a cached JSON cart payload.

    Raises:
        ValidationError: If the payload is not valid JSON or not a list of line items.
    """
    try:
        return _CART_ADAPTER.validate_json(payload)
    except pydantic.ValidationError as e:
        log.error(f"Invalid cart data: {e}")
        raise ValidationError("Invalid cart data") from e


def parse_promo_payload(payload: Optional[str]) -> Optional[PromoCode]:
    """Decodes a cached JSON promo payload; an empty payload means no promo."""
    if not payload:
        return None
    try:
        return PromoCode.model_validate(json.loads(payload))
    except (json.JSONDecodeError, pydantic.ValidationError) as e:
        log.error(f"Invalid promo data: {e}")
        raise ValidationError("Invalid promo data") from e
