"""Shared pytest fixtures: in-memory stand-ins for the backend and publisher."""

from decimal import Decimal

import pytest

from settlement_service.currency import CurrencyConverter
from settlement_service.errors import RemoteFailure
from settlement_service.models import CartLineItem, Order, Profile, StockValidation, UnavailableItem
from settlement_service.workflow import SettlementWorkflow

TEST_RATES = {"NGN": "1", "USD": "0.001", "EUR": "0.0005"}


def make_item(product_id="prod-1", name="Linen Shirt", price="1000", quantity=1, size="M", color="Red"):
    return CartLineItem(
        product_id=product_id,
        product_name=name,
        price=Decimal(price),
        size=size,
        color=color,
        quantity=quantity,
    )


class FakeStock:
    def __init__(self):
        self.calls = []
        self.unavailable = []
        self.message = None
        self.error = None

    def validate(self, checkout_id, items):
        self.calls.append(list(items))
        if self.error:
            raise self.error
        if self.unavailable or self.message:
            return StockValidation(available=False, unavailable=self.unavailable, message=self.message)
        return StockValidation()

    def run_out_of(self, product_id, name=None):
        self.unavailable = [UnavailableItem(product_id=product_id, name=name, requested=1, in_stock=0)]


class FakeOrders:
    def __init__(self):
        self.rows = []
        self.error = None

    def insert(self, checkout_id, draft):
        if self.error:
            raise self.error
        order = Order(id=f"order-{len(self.rows) + 1}", **draft.model_dump())
        self.rows.append(order)
        return order


class FakeProfiles:
    def __init__(self):
        self.profiles = {"user-1": Profile(id="user-1", wallet_balance=Decimal("10000.00"))}
        self.error = None
        self.updates = []

    def get(self, user_id):
        if user_id not in self.profiles:
            raise RemoteFailure(f"Profile {user_id} not found")
        return self.profiles[user_id]

    def update_wallet_balance(self, user_id, new_balance, expected_balance):
        if self.error:
            raise self.error
        profile = self.profiles[user_id]
        assert profile.wallet_balance == expected_balance
        self.profiles[user_id] = profile.model_copy(update={"wallet_balance": new_balance})
        self.updates.append((user_id, new_balance))
        return self.profiles[user_id]

    def set_balance(self, user_id, balance, currency="NGN"):
        self.profiles[user_id] = Profile(id=user_id, wallet_balance=Decimal(balance), preferred_currency=currency)


class FakeLedger:
    def __init__(self):
        self.entries = []
        self.error = None

    def append(self, checkout_id, transaction):
        if self.error:
            raise self.error
        self.entries.append(transaction)


class FakeCartStore:
    def __init__(self):
        self.cleared = []
        self.error = None

    def clear(self, user_id):
        if self.error:
            raise self.error
        self.cleared.append(user_id)


class FakePublisher:
    def __init__(self):
        self.published = []
        self.error = None

    def publish_order_settled(self, order):
        if self.error:
            raise self.error
        self.published.append(order)


@pytest.fixture
def stock():
    return FakeStock()


@pytest.fixture
def orders():
    return FakeOrders()


@pytest.fixture
def profiles():
    return FakeProfiles()


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def cart_store():
    return FakeCartStore()


@pytest.fixture
def publisher():
    return FakePublisher()


@pytest.fixture
def converter():
    return CurrencyConverter(rates=TEST_RATES)


@pytest.fixture
def attempts():
    return []


@pytest.fixture
def workflow(stock, orders, profiles, ledger, cart_store, publisher, converter, attempts):
    return SettlementWorkflow(
        stock=stock,
        orders=orders,
        profiles=profiles,
        ledger=ledger,
        cart_store=cart_store,
        converter=converter,
        publisher=publisher,
        on_transition=attempts.append,
    )
