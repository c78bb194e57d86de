"""
This module provides communication clients for the hosted storefront backend
(PostgREST-style REST API) used by the settlement workflow:
- Stock validator (RPC)
- Order store
- Profile store (wallet balance)
- Ledger store (transactions)
- Cart store
Each class encapsulates one capability contract. HTTP and transport errors are
logged and re-raised as RemoteFailure so the workflow sees one failure type.
"""

import logging
from decimal import Decimal
from typing import List

import httpx
import pydantic

from .config import BACKEND_API_KEY, BACKEND_URL
from .errors import RemoteFailure
from .models import CartLineItem, Order, OrderDraft, Profile, StockValidation, Transaction

log = logging.getLogger(__name__)


def build_http_client(base_url: str = BACKEND_URL, api_key: str = BACKEND_API_KEY) -> httpx.Client:
    """
    Creates the HTTP client shared by the backend clients.

    Timeouts belong to the transport; the workflow itself imposes none.
    """
    timeout_config = httpx.Timeout(5.0, read=10.0)
    headers = {"apikey": api_key, "Authorization": f"Bearer {api_key}"}
    return httpx.Client(base_url=base_url, timeout=timeout_config, headers=headers)


def _decode(response: httpx.Response, model, log_prefix: str, many: bool = False):
    """
    Parses a backend response body into ``model``.

    Args:
        many (bool): The body is a PostgREST row list; returns the first row or None.

    Raises:
        RemoteFailure: If the body is not JSON or does not match the model.
    """
    try:
        body = response.json()
        if many:
            # PostgREST answers inserts and selects with a list of rows
            rows = body if isinstance(body, list) else [body]
            return model.model_validate(rows[0]) if rows else None
        return model.model_validate(body)
    except (ValueError, pydantic.ValidationError) as e:
        log.error(f"{log_prefix} Backend sent an unreadable {model.__name__}: {e}")
        raise RemoteFailure(f"Backend sent an unreadable {model.__name__}") from e


class BackendClient:
    """
    Base class for the backend clients.

    Args:
        http_client (httpx.Client, optional): Client to use. If omitted, one is created
            from the configured backend URL and closed together with this instance.
    """

    def __init__(self, http_client: httpx.Client = None):
        self._owns_client = http_client is None
        self.client = http_client or build_http_client()

    def __del__(self):
        """Closes the HTTP client session if this instance created it."""
        if getattr(self, "_owns_client", False):
            self.client.close()

    def _request(self, method: str, url: str, log_prefix: str, **kwargs) -> httpx.Response:
        try:
            response = self.client.request(method, url, **kwargs)
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as e:
            log.error(f"{log_prefix} Backend returned HTTP {e.response.status_code} for {method} {url}: {e.response.text}")
            raise RemoteFailure(f"Backend request failed with HTTP {e.response.status_code}") from e
        except httpx.TransportError as e:
            log.error(f"{log_prefix} Backend unreachable for {method} {url}: {e}")
            raise RemoteFailure("Backend unreachable") from e


class StockValidatorClient(BackendClient):
    """Client for the backend's server-side stock availability routine."""

    def validate(self, checkout_id: str, items: List[CartLineItem]) -> StockValidation:
        """
        Asks the backend whether every line item can be supplied.

        Args:
            checkout_id (str): Checkout attempt, for logging.
            items (List[CartLineItem]): Full, ordered list of line items.

        Returns:
            StockValidation: ``available`` is False when the backend names items it
            cannot supply, or answers HTTP 400 with a message (raised by the routine).

        Raises:
            RemoteFailure: For any other HTTP or transport error.
        """
        log_prefix = f"[Checkout: {checkout_id}]"
        payload = {"order_items": [item.to_order_item().model_dump(mode="json") for item in items]}
        try:
            response = self.client.post("/rest/v1/rpc/validate_stock_availability", json=payload)
        except httpx.TransportError as e:
            log.error(f"{log_prefix} Stock validation unreachable: {e}")
            raise RemoteFailure("Stock validation unreachable") from e

        if response.status_code == 400:
            try:
                body = response.json()
            except ValueError:
                body = {}
            message = body.get("message") if isinstance(body, dict) else None
            log.warning(f"{log_prefix} Stock validation rejected the cart: {message or response.text}")
            return StockValidation(available=False, message=message or response.text)
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            log.error(f"{log_prefix} Stock validation failed (HTTP {response.status_code}).")
            raise RemoteFailure(f"Stock validation failed with HTTP {response.status_code}") from e

        # A void routine answers with an empty or null body
        if response.content.strip() in (b"", b"null"):
            return StockValidation()
        return _decode(response, StockValidation, log_prefix)


class OrderStoreClient(BackendClient):
    """Insert-only access to the orders table."""

    def insert(self, checkout_id: str, draft: OrderDraft) -> Order:
        response = self._request(
            "POST", "/rest/v1/orders", f"[Checkout: {checkout_id}]",
            json=draft.model_dump(mode="json", exclude_none=True),
            headers={"Prefer": "return=representation"},
        )
        order = _decode(response, Order, f"[Checkout: {checkout_id}]", many=True)
        if order is None:
            raise RemoteFailure("Backend returned no order row")
        return order


class ProfileStoreClient(BackendClient):
    """Reads profiles and updates wallet balances."""

    def get(self, user_id: str) -> Profile:
        response = self._request(
            "GET", "/rest/v1/profiles", f"[User: {user_id}]",
            params={"id": f"eq.{user_id}", "select": "id,wallet_balance,preferred_currency"},
        )
        profile = _decode(response, Profile, f"[User: {user_id}]", many=True)
        if profile is None:
            raise RemoteFailure(f"Profile {user_id} not found")
        return profile

    def update_wallet_balance(self, user_id: str, new_balance: Decimal, expected_balance: Decimal) -> Profile:
        """
        Sets the wallet balance, only if it still equals ``expected_balance``.

        Raises:
            RemoteFailure: If the request fails or the balance changed in the meantime.
        """
        response = self._request(
            "PATCH", "/rest/v1/profiles", f"[User: {user_id}]",
            params={"id": f"eq.{user_id}", "wallet_balance": f"eq.{expected_balance}"},
            json={"wallet_balance": str(new_balance)},
            headers={"Prefer": "return=representation"},
        )
        profile = _decode(response, Profile, f"[User: {user_id}]", many=True)
        if profile is None:
            log.error(f"[User: {user_id}] Wallet balance changed concurrently, update not applied.")
            raise RemoteFailure("Wallet balance changed concurrently")
        return profile


class LedgerClient(BackendClient):
    """Append-only access to the transactions table."""

    def append(self, checkout_id: str, transaction: Transaction):
        self._request(
            "POST", "/rest/v1/transactions", f"[Checkout: {checkout_id}]",
            json=transaction.model_dump(mode="json", exclude_none=True),
        )


class CartStoreClient(BackendClient):
    """Removes a user's saved cart lines once the order is placed."""

    def clear(self, user_id: str):
        self._request(
            "DELETE", "/rest/v1/cart_items", f"[User: {user_id}]",
            params={"user_id": f"eq.{user_id}"},
        )
