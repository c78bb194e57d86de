"""Tests for selection expansion and cart folding."""

import json
from decimal import Decimal

import pytest

from settlement_service.cart import (
    add_to_cart,
    expand_selection,
    item_count,
    parse_cart_payload,
    parse_promo_payload,
    subtotal,
)
from settlement_service.errors import ValidationError
from settlement_service.models import Product

from conftest import make_item


@pytest.fixture
def product():
    return Product(id="prod-7", name="Ankara Dress", price=Decimal("12500"),
                   sizes=["S", "M", "L"], colors=["Red", "Blue"])


def test_each_combination_carries_full_quantity(product):
    items = expand_selection(product, ["S", "M"], ["Red"], 2)
    assert len(items) == 2
    assert [(i.size, i.color, i.quantity) for i in items] == [("S", "Red", 2), ("M", "Red", 2)]
    assert all(i.product_id == "prod-7" and i.price == Decimal("12500") for i in items)


def test_cartesian_product(product):
    items = expand_selection(product, ["S", "L"], ["Red", "Blue"], 1)
    assert [(i.size, i.color) for i in items] == [("S", "Red"), ("S", "Blue"), ("L", "Red"), ("L", "Blue")]


@pytest.mark.parametrize("sizes, colors", [([], ["Red"]), (["S"], []), ([], [])])
def test_missing_size_or_color_is_rejected(product, sizes, colors):
    with pytest.raises(ValidationError):
        expand_selection(product, sizes, colors, 1)


def test_quantity_below_one_is_rejected(product):
    with pytest.raises(ValidationError):
        expand_selection(product, ["S"], ["Red"], 0)


def test_add_to_cart_keeps_repeated_combinations_apart(product):
    first = expand_selection(product, ["S"], ["Red"], 1)
    cart = add_to_cart([], first)
    cart = add_to_cart(cart, expand_selection(product, ["S"], ["Red"], 3))
    assert len(cart) == 2
    assert item_count(cart) == 4


def test_subtotal_and_item_count():
    items = [make_item(price="1000", quantity=2), make_item(product_id="prod-2", price="250.50", quantity=1)]
    assert subtotal(items) == Decimal("2250.50")
    assert item_count(items) == 3
    assert subtotal([]) == Decimal("0")


def test_subtotal_with_price_resolver():
    items = [make_item(price="1000", quantity=2)]
    assert subtotal(items, lambda price: price * Decimal("0.001")) == Decimal("2.000")


def test_parse_cart_payload():
    payload = json.dumps([{"product_id": "prod-1", "product_name": "Shirt", "price": "1000",
                           "size": "M", "color": "Red", "quantity": 2}])
    items = parse_cart_payload(payload)
    assert items == [make_item(name="Shirt", quantity=2)]


@pytest.mark.parametrize("payload", ["not json", '{"product_id": "x"}', '[{"product_id": "x", "quantity": 0}]'])
def test_malformed_cart_payload(payload):
    with pytest.raises(ValidationError):
        parse_cart_payload(payload)


def test_parse_promo_payload():
    assert parse_promo_payload(None) is None
    promo = parse_promo_payload('{"code": "SAVE20", "description": "20% off", "discount": 0.2}')
    assert promo.code == "SAVE20"
    with pytest.raises(ValidationError):
        parse_promo_payload('{"code": "BAD", "discount": 2}')
    with pytest.raises(ValidationError):
        parse_promo_payload("{oops")
