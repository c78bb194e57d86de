"""
main.py — FastAPI Entry Point for the Settlement Service

This module provides the REST API the storefront app calls for cart pricing and
checkout. It is a thin adapter: requests are validated with Pydantic models and
handed to the SettlementWorkflow, errors are mapped to HTTP responses.

Responsibilities:
    • Expand product selections into cart line items
    • Price carts (non-committing) and validate promo codes
    • Settle orders with the wallet or through an external payment processor
    • Provide system health information

The caller's identity arrives in the ``X-User-Id`` header, set by the gateway
after authentication.
"""

from functools import lru_cache
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .cart import add_to_cart, expand_selection, item_count
from .clients import (
    CartStoreClient,
    LedgerClient,
    OrderStoreClient,
    ProfileStoreClient,
    StockValidatorClient,
    build_http_client,
)
from .errors import (
    FollowUpRequiredError,
    InsufficientFundsError,
    RemoteFailure,
    SettlementError,
    StockUnavailableError,
    ValidationError,
)
from .events import OrderEventPublisher
from .logging_config import get_logger, setup_logging
from .models import (
    CartLineItem,
    Currency,
    Order,
    OrderTotals,
    PaymentHandle,
    PaymentMethod,
    PaymentOutcome,
    Product,
    PromoCode,
)
from .promo import PromoValidator
from .workflow import SettlementWorkflow

# Initialization
setup_logging()
log = get_logger(__name__)
app = FastAPI(title="Storefront Settlement Service")


# --- Request models ---

class SelectionRequest(BaseModel):
    product: Product
    sizes: List[str] = Field(default_factory=list)
    colors: List[str] = Field(default_factory=list)
    quantity: int = 1
    cart: List[CartLineItem] = Field(default_factory=list)


class SelectionResponse(BaseModel):
    cart: List[CartLineItem]
    added: int
    itemCount: int


class PriceRequest(BaseModel):
    items: List[CartLineItem]
    promoCode: Optional[str] = None
    location: str = ""
    displayCurrency: Currency = Currency.NGN


class WalletCheckoutRequest(BaseModel):
    items: List[CartLineItem]
    deliveryAddress: str
    promoCode: Optional[str] = None


class ExternalCheckoutRequest(BaseModel):
    items: List[CartLineItem]
    deliveryAddress: str
    promoCode: Optional[str] = None
    method: PaymentMethod = PaymentMethod.CARD
    displayCurrency: Optional[Currency] = None  # defaults to the profile's preferred currency


class CompletePaymentRequest(BaseModel):
    handle: PaymentHandle
    outcome: PaymentOutcome


# --- Dependencies ---

@lru_cache()
def get_promo_validator() -> PromoValidator:
    return PromoValidator()


@lru_cache()
def get_workflow() -> SettlementWorkflow:
    """Builds the workflow with clients sharing one HTTP session to the backend."""
    http_client = build_http_client()
    return SettlementWorkflow(
        stock=StockValidatorClient(http_client),
        orders=OrderStoreClient(http_client),
        profiles=ProfileStoreClient(http_client),
        ledger=LedgerClient(http_client),
        cart_store=CartStoreClient(http_client),
        publisher=OrderEventPublisher(),
    )


def resolve_promo(code: Optional[str], validator: PromoValidator) -> Optional[PromoCode]:
    if not code:
        return None
    promo = validator.validate(code)
    if promo is None:
        raise ValidationError(f"Promo code {code} is invalid or expired")
    return promo


def require_user(user_id: Optional[str]) -> str:
    if not user_id:
        raise ValidationError("Please sign in to place an order")
    return user_id


# --- Error mapping ---

def _error_body(error: SettlementError, **extra) -> dict:
    body = {"error": type(error).__name__, "message": error.message}
    body.update(extra)
    return body


@app.exception_handler(ValidationError)
async def handle_validation_error(request: Request, exc: ValidationError):
    return JSONResponse(status_code=422, content=_error_body(exc))


@app.exception_handler(StockUnavailableError)
async def handle_stock_unavailable(request: Request, exc: StockUnavailableError):
    unavailable = [item.model_dump(mode="json") for item in exc.unavailable]
    return JSONResponse(status_code=409, content=_error_body(exc, unavailable=unavailable))


@app.exception_handler(InsufficientFundsError)
async def handle_insufficient_funds(request: Request, exc: InsufficientFundsError):
    return JSONResponse(status_code=402, content=_error_body(
        exc,
        required=exc.required.model_dump(mode="json"),
        available=exc.available.model_dump(mode="json"),
        shortfall=exc.shortfall.model_dump(mode="json"),
    ))


@app.exception_handler(RemoteFailure)
async def handle_remote_failure(request: Request, exc: RemoteFailure):
    return JSONResponse(status_code=502, content=_error_body(exc))


@app.exception_handler(FollowUpRequiredError)
async def handle_follow_up_required(request: Request, exc: FollowUpRequiredError):
    log.critical(f"[Order: {exc.order.id}] Follow-up required after step '{exc.step}'.")
    return JSONResponse(status_code=500, content=_error_body(exc, orderId=exc.order.id, step=exc.step))


# --- Cart & pricing ---

@app.post("/v1/cart/selections", response_model=SelectionResponse)
def add_selection(request: SelectionRequest):
    """
    Expands a size x color selection and appends it to the given cart.

    Returns:
        dict: The new cart, the number of line items added and the total item count.
    """
    new_items = expand_selection(request.product, request.sizes, request.colors, request.quantity)
    cart = add_to_cart(request.cart, new_items)
    log.info(f"[Product: {request.product.id}] {len(new_items)} line items added to cart.")
    return SelectionResponse(cart=cart, added=len(new_items), itemCount=item_count(cart))


@app.post("/v1/cart/price", response_model=OrderTotals)
def price_cart(
        request: PriceRequest,
        workflow: SettlementWorkflow = Depends(get_workflow),
        validator: PromoValidator = Depends(get_promo_validator),
):
    """Prices a cart in the requested display currency. Nothing is written."""
    promo = resolve_promo(request.promoCode, validator)
    return workflow.price_cart(request.items, promo, request.location, request.displayCurrency)


@app.get("/v1/promos/{code}", response_model=PromoCode)
def get_promo(code: str, validator: PromoValidator = Depends(get_promo_validator)):
    return resolve_promo(code, validator)


# --- Checkout ---

@app.post("/v1/checkout/wallet", status_code=201, response_model=Order)
def checkout_with_wallet(
        request: WalletCheckoutRequest,
        x_user_id: Optional[str] = Header(None),
        workflow: SettlementWorkflow = Depends(get_workflow),
        validator: PromoValidator = Depends(get_promo_validator),
):
    """
    Settles the cart against the user's wallet.

    Responses:
        201: Order created and paid.
        402: Wallet balance too low (amounts in the user's display currency).
        409: Items out of stock.
        422: Missing address, identity or invalid promo code.
        500: Order created but a follow-up step failed; manual follow-up needed.
        502: Backend call failed.
    """
    promo = resolve_promo(request.promoCode, validator)
    totals = workflow.price_in_base(request.items, promo, request.deliveryAddress)
    return workflow.settle_with_wallet(x_user_id, request.items, totals, request.deliveryAddress, promo)


@app.post("/v1/checkout/payments", response_model=PaymentHandle)
def begin_payment(
        request: ExternalCheckoutRequest,
        x_user_id: Optional[str] = Header(None),
        workflow: SettlementWorkflow = Depends(get_workflow),
        validator: PromoValidator = Depends(get_promo_validator),
):
    """
    Starts an external payment. The returned handle carries the provider and the
    amount to charge; the app sends it back with the processor's outcome.
    """
    user_id = require_user(x_user_id)
    SettlementWorkflow.check_entry(user_id, request.items, request.deliveryAddress)
    promo = resolve_promo(request.promoCode, validator)
    display_currency = request.displayCurrency
    if display_currency is None:
        display_currency = workflow.profiles.get(user_id).preferred_currency
    totals = workflow.price_in_base(request.items, promo, request.deliveryAddress)
    return workflow.begin_external_payment(
        user_id, request.items, totals, request.deliveryAddress, promo,
        method=request.method, display_currency=display_currency,
    )


@app.post("/v1/checkout/payments/complete")
def complete_payment(
        request: CompletePaymentRequest,
        x_user_id: Optional[str] = Header(None),
        workflow: SettlementWorkflow = Depends(get_workflow),
):
    """
    Receives the processor's outcome for a handle.

    Returns:
        dict: ``{"status": "paid", "order": {...}}`` on success,
        ``{"status": "cancelled"}`` when the customer cancelled.
    """
    user_id = require_user(x_user_id)
    if request.handle.user_id != user_id:
        raise ValidationError("Payment handle belongs to another user")

    order = workflow.resolve_external_payment(request.handle, request.outcome)
    if order is None:
        return {"status": "cancelled", "handleId": request.handle.handle_id}
    return {"status": "paid", "order": order.model_dump(mode="json")}


# Health Check Endpoint
@app.get("/health")
def health_check():
    return {"status": "ok"}
