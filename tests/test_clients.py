"""Tests for the backend REST clients against a mocked transport."""

import json
from decimal import Decimal

import httpx
import pytest

from settlement_service.clients import (
    CartStoreClient,
    LedgerClient,
    OrderStoreClient,
    ProfileStoreClient,
    StockValidatorClient,
)
from settlement_service.errors import RemoteFailure
from settlement_service.models import Currency, OrderDraft, PaymentProvider, PaymentStatus, Transaction

from conftest import make_item


def http_client(handler):
    return httpx.Client(transport=httpx.MockTransport(handler), base_url="http://backend")


class Recorder:
    """Records requests and answers with a fixed response."""

    def __init__(self, status_code=200, body=None, error=None):
        self.requests = []
        self.status_code = status_code
        self.body = body
        self.error = error

    def __call__(self, request):
        self.requests.append(request)
        if self.error:
            raise self.error(request)
        if self.body is None:
            return httpx.Response(self.status_code)
        return httpx.Response(self.status_code, json=self.body)


def test_stock_available():
    recorder = Recorder(body={"available": True})
    client = StockValidatorClient(http_client(recorder))

    result = client.validate("chk-1", [make_item(quantity=2)])

    assert result.available
    request = recorder.requests[0]
    assert request.url.path == "/rest/v1/rpc/validate_stock_availability"
    payload = json.loads(request.content)
    assert payload["order_items"][0]["product_id"] == "prod-1"
    assert payload["order_items"][0]["quantity"] == 2


def test_stock_unavailable_items():
    recorder = Recorder(body={"available": False, "unavailable": [{"product_id": "prod-1", "in_stock": 0}]})
    result = StockValidatorClient(http_client(recorder)).validate("chk-1", [make_item()])
    assert not result.available
    assert result.unavailable[0].product_id == "prod-1"


def test_stock_routine_error_message_is_an_unavailability_report():
    recorder = Recorder(status_code=400, body={"code": "P0001", "message": "Insufficient stock for product prod-1"})
    result = StockValidatorClient(http_client(recorder)).validate("chk-1", [make_item()])
    assert not result.available
    assert result.message == "Insufficient stock for product prod-1"


def test_stock_server_error_is_remote_failure():
    recorder = Recorder(status_code=503, body={"message": "down"})
    with pytest.raises(RemoteFailure):
        StockValidatorClient(http_client(recorder)).validate("chk-1", [make_item()])


def test_stock_unreachable_is_remote_failure():
    recorder = Recorder(error=lambda request: httpx.ConnectError("refused", request=request))
    with pytest.raises(RemoteFailure):
        StockValidatorClient(http_client(recorder)).validate("chk-1", [make_item()])


def test_order_insert():
    draft = OrderDraft(
        user_id="user-1", items=[make_item().to_order_item()], subtotal=Decimal("1000"),
        service_fee=Decimal("20.00"), delivery_fee=Decimal("3500"), total=Decimal("4520.00"),
        payment_method="wallet", payment_status=PaymentStatus.PAID, delivery_address="Lagos",
        currency=Currency.NGN,
    )
    row = dict(draft.model_dump(mode="json"), id="ord-9", created_at="2026-10-19T10:00:00Z")
    recorder = Recorder(status_code=201, body=[row])

    order = OrderStoreClient(http_client(recorder)).insert("chk-1", draft)

    assert order.id == "ord-9"
    assert order.total == Decimal("4520.00")
    request = recorder.requests[0]
    assert request.headers["Prefer"] == "return=representation"
    sent = json.loads(request.content)
    assert sent["payment_status"] == "paid"
    assert "payment_reference" not in sent


def test_order_insert_failure():
    recorder = Recorder(status_code=500, body={"message": "boom"})
    draft = OrderDraft(
        user_id="user-1", items=[], subtotal=Decimal("0"), service_fee=Decimal("0"),
        delivery_fee=Decimal("0"), total=Decimal("0"), payment_method="wallet",
        delivery_address="Lagos", currency=Currency.NGN,
    )
    with pytest.raises(RemoteFailure):
        OrderStoreClient(http_client(recorder)).insert("chk-1", draft)


def test_profile_get():
    recorder = Recorder(body=[{"id": "user-1", "wallet_balance": "2500.50", "preferred_currency": "USD"}])
    profile = ProfileStoreClient(http_client(recorder)).get("user-1")
    assert profile.wallet_balance == Decimal("2500.50")
    assert profile.preferred_currency == Currency.USD
    assert recorder.requests[0].url.params["id"] == "eq.user-1"


def test_profile_missing():
    with pytest.raises(RemoteFailure):
        ProfileStoreClient(http_client(Recorder(body=[]))).get("ghost")


def test_wallet_update_is_conditional():
    recorder = Recorder(body=[{"id": "user-1", "wallet_balance": "480.00"}])

    profile = ProfileStoreClient(http_client(recorder)).update_wallet_balance(
        "user-1", Decimal("480.00"), expected_balance=Decimal("5000.00"))

    assert profile.wallet_balance == Decimal("480.00")
    request = recorder.requests[0]
    assert request.method == "PATCH"
    assert request.url.params["wallet_balance"] == "eq.5000.00"
    assert json.loads(request.content) == {"wallet_balance": "480.00"}


def test_wallet_update_lost_race():
    recorder = Recorder(body=[])
    with pytest.raises(RemoteFailure):
        ProfileStoreClient(http_client(recorder)).update_wallet_balance(
            "user-1", Decimal("480.00"), expected_balance=Decimal("5000.00"))


def test_ledger_append():
    recorder = Recorder(status_code=201)
    transaction = Transaction(
        user_id="user-1", amount=Decimal("4520.00"), currency=Currency.NGN,
        description="Order payment - 1 items", reference="PSK-1", payment_provider=PaymentProvider.PAYSTACK,
    )

    LedgerClient(http_client(recorder)).append("chk-1", transaction)

    sent = json.loads(recorder.requests[0].content)
    assert sent["type"] == "debit"
    assert sent["payment_provider"] == "paystack"
    assert sent["reference"] == "PSK-1"


def test_cart_clear():
    recorder = Recorder(status_code=204)
    CartStoreClient(http_client(recorder)).clear("user-1")
    request = recorder.requests[0]
    assert request.method == "DELETE"
    assert request.url.params["user_id"] == "eq.user-1"


def test_stock_reply_that_is_not_json_is_remote_failure():
    def handler(request):
        return httpx.Response(200, text="<html>gateway hiccup</html>")

    with pytest.raises(RemoteFailure):
        StockValidatorClient(http_client(handler)).validate("chk-1", [make_item()])


def test_stock_reply_with_wrong_shape_is_remote_failure():
    recorder = Recorder(body={"available": "perhaps", "unavailable": "prod-1"})
    with pytest.raises(RemoteFailure):
        StockValidatorClient(http_client(recorder)).validate("chk-1", [make_item()])


def test_order_insert_with_unexpected_row_is_remote_failure():
    recorder = Recorder(status_code=201, body=[{"foo": 1}])
    draft = OrderDraft(
        user_id="user-1", items=[], subtotal=Decimal("0"), service_fee=Decimal("0"),
        delivery_fee=Decimal("0"), total=Decimal("0"), payment_method="wallet",
        delivery_address="Lagos", currency=Currency.NGN,
    )
    with pytest.raises(RemoteFailure):
        OrderStoreClient(http_client(recorder)).insert("chk-1", draft)


def test_profile_with_garbled_balance_is_remote_failure():
    recorder = Recorder(body=[{"id": "user-1", "wallet_balance": "lots"}])
    with pytest.raises(RemoteFailure):
        ProfileStoreClient(http_client(recorder)).get("user-1")
