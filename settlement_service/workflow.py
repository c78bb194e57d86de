"""
workflow.py — Core Orchestration Logic for Order Settlement

This module prices carts and drives a checkout attempt to a persisted, paid order.
It coordinates the backend calls (stock validation, order store, wallet, ledger,
cart) strictly one after the other; a later step only runs if every earlier one
succeeded.

Checkout states:
    PRICED → STOCK_VALIDATING → {WALLET_DEBIT | AWAITING_EXTERNAL_PAYMENT}
           → ORDER_CREATED → LEDGER_RECORDED → CART_CLEARED → DONE
    Any failure ends in FAILED, a cancelled external payment in CANCELLED.

Settlement paths:
    1. Wallet – stock check, balance check, order creation (payment_status=paid,
       which makes the backend decrement stock), wallet debit, ledger entry, cart clear.
    2. External payment – stock check and a PaymentHandle for the UI; the order is
       only created once the processor reports success with a reference.

Steps that already committed are never rolled back. Once the order exists, a
failing follow-up step is reported as FollowUpRequiredError for manual reconciliation.
"""

import hashlib
import hmac
import logging
import uuid
from decimal import Decimal
from enum import Enum
from typing import Callable, List, Optional

import pika

from .cart import item_count, subtotal
from .config import BASE_CURRENCY, HANDLE_SIGNING_KEY
from .currency import CurrencyConverter
from .errors import (
    FollowUpRequiredError,
    InsufficientFundsError,
    SettlementError,
    StockUnavailableError,
    ValidationError,
)
from .fees import FeeCalculator
from .models import (
    CartLineItem,
    Currency,
    Money,
    Order,
    OrderDraft,
    OrderStatus,
    OrderTotals,
    PaymentCancelled,
    PaymentHandle,
    PaymentMethod,
    PaymentProvider,
    PaymentStatus,
    PaymentSucceeded,
    PromoCode,
    Transaction,
    currency_code,
)

log = logging.getLogger(__name__)


class CheckoutState(str, Enum):
    PRICED = "priced"
    STOCK_VALIDATING = "stock_validating"
    WALLET_DEBIT = "wallet_debit"
    AWAITING_EXTERNAL_PAYMENT = "awaiting_external_payment"
    ORDER_CREATED = "order_created"
    LEDGER_RECORDED = "ledger_recorded"
    CART_CLEARED = "cart_cleared"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


class CheckoutAttempt:
    """
    State of one checkout attempt. Only used for logging and transition hooks;
    nothing is carried between calls through it.
    """

    def __init__(self, checkout_id: str, user_id: str, state: CheckoutState = CheckoutState.PRICED):
        self.checkout_id = checkout_id
        self.user_id = user_id
        self.state = state
        self.history = [state]
        self.failure_reason = None

    @property
    def log_prefix(self) -> str:
        return f"[Checkout: {self.checkout_id}]"


class SettlementWorkflow:
    """
    Prices carts and settles orders against the backend.

    Args:
        stock: Stock validator (``validate(checkout_id, items) -> StockValidation``).
        orders: Order store (``insert(checkout_id, draft) -> Order``).
        profiles: Profile store (``get(user_id)``, ``update_wallet_balance(...)``).
        ledger: Ledger store (``append(checkout_id, transaction)``).
        cart_store: Cart store (``clear(user_id)``).
        calculator (FeeCalculator, optional): Fee & discount calculator.
        converter (CurrencyConverter, optional): Display currency converter.
        publisher (optional): Settled-order publisher (``publish_order_settled(order)``).
        on_transition (Callable, optional): Called with the attempt after every state change.
        signing_key (str, optional): Key for the payment handle signature.
    """

    def __init__(
            self,
            stock,
            orders,
            profiles,
            ledger,
            cart_store,
            calculator: FeeCalculator = None,
            converter: CurrencyConverter = None,
            publisher=None,
            on_transition: Optional[Callable[[CheckoutAttempt], None]] = None,
            base_currency: str = BASE_CURRENCY,
            signing_key: str = HANDLE_SIGNING_KEY,
    ):
        self.stock = stock
        self.orders = orders
        self.profiles = profiles
        self.ledger = ledger
        self.cart_store = cart_store
        self.calculator = calculator or FeeCalculator(base_currency=base_currency)
        self.converter = converter or CurrencyConverter(base_currency=base_currency)
        self.publisher = publisher
        self.on_transition = on_transition
        self.base_currency = Currency(currency_code(base_currency))
        self._signing_key = signing_key.encode()

    # --- Pricing ---

    def price_in_base(self, items: List[CartLineItem], promo: Optional[PromoCode], location: str) -> OrderTotals:
        """
        Prices a cart in the base currency.

        The promo discount is taken off the subtotal before fees are computed.
        """
        subtotal_base = subtotal(items)
        discount_amount = Decimal("0")
        if promo is not None:
            discount_amount = self.calculator.discount(
                Money(amount=subtotal_base, currency=self.base_currency), promo
            ).amount
        return self.calculator.order_total(
            subtotal_base - discount_amount, location, self.base_currency, discount_amount
        )

    def price_cart(self, items: List[CartLineItem], promo: Optional[PromoCode], location: str,
                   display_currency=BASE_CURRENCY) -> OrderTotals:
        """
        Prices a cart for display. Computes in the base currency, then converts each
        figure into ``display_currency``. Has no side effects.
        """
        return self.converter.convert_totals(self.price_in_base(items, promo, location), display_currency)

    # --- Wallet path ---

    def settle_with_wallet(self, user_id: str, items: List[CartLineItem], totals: OrderTotals,
                           delivery_address: str, promo: Optional[PromoCode] = None) -> Order:
        """
        Settles a priced cart by debiting the user's wallet.

        Args:
            user_id (str): Authenticated user.
            items (List[CartLineItem]): Cart lines, snapshotted into the order.
            totals (OrderTotals): Totals in the base currency.
            delivery_address (str): Delivery address, must not be blank.
            promo (PromoCode, optional): Promo code applied while pricing.

        Returns:
            Order: The created, paid order.

        Raises:
            ValidationError: Missing address, identity or items, or non-base totals.
            StockUnavailableError: The backend cannot supply every item.
            InsufficientFundsError: Wallet balance below the total.
            RemoteFailure: A backend call before order creation failed.
            FollowUpRequiredError: The order exists but a later step failed.
        """
        address = self.check_entry(user_id, items, delivery_address)
        self._check_base_totals(totals)

        attempt = CheckoutAttempt(str(uuid.uuid4()), user_id)
        log.info(f"{attempt.log_prefix} Wallet checkout started for user {user_id} (total {totals.total} {totals.currency.value}).")

        try:
            self._validate_stock(attempt, items)

            self._advance(attempt, CheckoutState.WALLET_DEBIT)
            profile = self.profiles.get(user_id)
            balance = profile.wallet_balance
            if balance < totals.total:
                raise self._insufficient_funds(totals.total, balance, profile.preferred_currency)

            draft = self._order_draft(
                user_id, items, totals, address, promo,
                payment_method=PaymentMethod.WALLET.value,
            )
            order = self._create_order(attempt, draft)
        except SettlementError as e:
            self._fail(attempt, e)
            raise

        self._follow_up(
            attempt, order, "wallet_debit",
            lambda: self.profiles.update_wallet_balance(user_id, balance - totals.total, expected_balance=balance),
        )
        log.info(f"{attempt.log_prefix} Wallet debited by {totals.total}.")

        transaction = Transaction(
            user_id=user_id,
            amount=totals.total,
            currency=totals.currency,
            description=self._description(items, promo.code if promo else None),
            reference=order.id,
        )
        self._follow_up(attempt, order, "ledger", lambda: self.ledger.append(attempt.checkout_id, transaction))
        self._advance(attempt, CheckoutState.LEDGER_RECORDED)

        self._follow_up(attempt, order, "cart_clear", lambda: self.cart_store.clear(user_id))
        self._advance(attempt, CheckoutState.CART_CLEARED)

        self._finish(attempt, order)
        return order

    # --- External payment path ---

    def begin_external_payment(self, user_id: str, items: List[CartLineItem], totals: OrderTotals,
                               delivery_address: str, promo: Optional[PromoCode] = None,
                               method: PaymentMethod = PaymentMethod.CARD,
                               display_currency=BASE_CURRENCY) -> PaymentHandle:
        """
        Prepares an external payment. No order is created yet.

        Processor selection:
            - card in the base currency → Paystack
            - PayPal requested, or any other display currency → PayPal,
              charged in the display currency

        Returns:
            PaymentHandle: Pass it back to ``complete_external_payment`` or
            ``cancel_external_payment``.

        Raises:
            ValidationError: Missing address, identity or items, wallet method, or
                non-base totals.
            StockUnavailableError: The backend cannot supply every item.
            RemoteFailure: The stock validation call failed.
        """
        address = self.check_entry(user_id, items, delivery_address)
        self._check_base_totals(totals)
        method = PaymentMethod(method)
        if method == PaymentMethod.WALLET:
            raise ValidationError("Wallet payments are settled with settle_with_wallet")

        attempt = CheckoutAttempt(str(uuid.uuid4()), user_id)
        try:
            self._validate_stock(attempt, items)
        except SettlementError as e:
            self._fail(attempt, e)
            raise

        provider = self.select_provider(method, display_currency)
        charge = self.converter.to_display(totals.total, display_currency)
        promo_code = promo.code if promo else None
        handle = PaymentHandle(
            handle_id=attempt.checkout_id,
            user_id=user_id,
            provider=provider,
            method=method,
            items=list(items),
            totals=totals,
            delivery_address=address,
            promo_code=promo_code,
            charge=charge,
            description=self._description(items, promo_code),
        )
        handle = handle.model_copy(update={"signature": self._sign(handle)})
        self._advance(attempt, CheckoutState.AWAITING_EXTERNAL_PAYMENT)
        log.info(f"{attempt.log_prefix} Awaiting {provider.value} payment of {charge.amount} {charge.currency.value}.")
        return handle

    def select_provider(self, method: PaymentMethod, display_currency) -> PaymentProvider:
        if PaymentMethod(method) == PaymentMethod.CARD and self.converter.is_base(display_currency):
            return PaymentProvider.PAYSTACK
        return PaymentProvider.PAYPAL

    def complete_external_payment(self, handle: PaymentHandle, reference: str) -> Order:
        """
        Settles the order after the processor reported success.

        Repeated calls with the same reference are not deduplicated and create a
        second order.

        Raises:
            ValidationError: Empty reference, or a handle not issued by this service.
            StockUnavailableError: Stock ran out while the customer was paying.
            RemoteFailure: Stock validation or order creation failed.
            FollowUpRequiredError: The order exists but the ledger entry or cart clear failed.
        """
        self._verify_handle(handle)
        if not reference:
            raise ValidationError("Payment reference is required")

        attempt = CheckoutAttempt(handle.handle_id, handle.user_id, CheckoutState.AWAITING_EXTERNAL_PAYMENT)
        log.info(f"{attempt.log_prefix} {handle.provider.value} reported success (reference {reference}).")

        try:
            self._validate_stock(attempt, handle.items)
            draft = self._order_draft(
                handle.user_id, handle.items, handle.totals, handle.delivery_address, None,
                payment_method=handle.provider.value,
                promo_code=handle.promo_code,
                original_amount=handle.charge.amount,
                payment_reference=reference,
            )
            order = self._create_order(attempt, draft)
        except SettlementError as e:
            log.critical(f"{attempt.log_prefix} Payment {reference} was captured but no order was created. Needs manual refund or order entry!")
            self._fail(attempt, e)
            raise

        transaction = Transaction(
            user_id=handle.user_id,
            amount=handle.totals.total,
            currency=handle.totals.currency,
            description=handle.description,
            reference=reference,
            payment_provider=handle.provider,
            original_amount=handle.charge.amount,
        )
        self._follow_up(attempt, order, "ledger", lambda: self.ledger.append(attempt.checkout_id, transaction))
        self._advance(attempt, CheckoutState.LEDGER_RECORDED)

        self._follow_up(attempt, order, "cart_clear", lambda: self.cart_store.clear(handle.user_id))
        self._advance(attempt, CheckoutState.CART_CLEARED)

        self._finish(attempt, order)
        return order

    def cancel_external_payment(self, handle: PaymentHandle):
        """Abandons the attempt. Nothing was written, so nothing is undone."""
        self._verify_handle(handle)
        attempt = CheckoutAttempt(handle.handle_id, handle.user_id, CheckoutState.AWAITING_EXTERNAL_PAYMENT)
        log.info(f"{attempt.log_prefix} {handle.provider.value} payment cancelled by the customer.")
        self._advance(attempt, CheckoutState.CANCELLED)

    def resolve_external_payment(self, handle: PaymentHandle, outcome) -> Optional[Order]:
        """
        Dispatches a processor outcome: success completes the order, cancel abandons it.

        Returns:
            Order for a success outcome, None for a cancel outcome.
        """
        if isinstance(outcome, PaymentSucceeded):
            return self.complete_external_payment(handle, outcome.reference)
        if isinstance(outcome, PaymentCancelled):
            self.cancel_external_payment(handle)
            return None
        raise ValidationError(f"Unknown payment outcome: {outcome!r}")

    # --- Steps ---

    def _sign(self, handle: PaymentHandle) -> str:
        payload = handle.model_dump_json(exclude={"signature"}).encode()
        return hmac.new(self._signing_key, payload, hashlib.sha256).hexdigest()

    def _verify_handle(self, handle: PaymentHandle):
        if not hmac.compare_digest(handle.signature, self._sign(handle)):
            log.warning(f"[Checkout: {handle.handle_id}] Rejected payment handle with a bad signature.")
            raise ValidationError("Payment handle was modified or not issued by this service")

    @staticmethod
    def check_entry(user_id: str, items: List[CartLineItem], delivery_address: str) -> str:
        address = (delivery_address or "").strip()
        if not address:
            raise ValidationError("Please enter your delivery address")
        if not user_id:
            raise ValidationError("Please sign in to place an order")
        if not items:
            raise ValidationError("Your cart is empty")
        return address

    def _check_base_totals(self, totals: OrderTotals):
        if totals.currency != self.base_currency:
            raise ValidationError(
                f"Totals must be priced in {self.base_currency.value}, got {totals.currency.value}"
            )

    def _validate_stock(self, attempt: CheckoutAttempt, items: List[CartLineItem]):
        self._advance(attempt, CheckoutState.STOCK_VALIDATING)
        result = self.stock.validate(attempt.checkout_id, items)
        if not result.available:
            names = ", ".join(item.name or item.product_id for item in result.unavailable)
            detail = result.message or f"Not enough stock for: {names}"
            raise StockUnavailableError(f"Stock validation failed: {detail}", result.unavailable)
        log.info(f"{attempt.log_prefix} Stock available for {len(items)} line items.")

    def _create_order(self, attempt: CheckoutAttempt, draft: OrderDraft) -> Order:
        order = self.orders.insert(attempt.checkout_id, draft)
        self._advance(attempt, CheckoutState.ORDER_CREATED)
        log.info(f"{attempt.log_prefix} Order {order.id} created (payment_status={draft.payment_status.value}).")
        return order

    def _follow_up(self, attempt: CheckoutAttempt, order: Order, step: str, action: Callable):
        try:
            return action()
        except Exception as e:
            log.critical(
                f"{attempt.log_prefix} Order {order.id} was created but step '{step}' failed: {e}. "
                f"Manual follow-up required!"
            )
            self._fail(attempt, e)
            raise FollowUpRequiredError(order, step, e) from e

    def _finish(self, attempt: CheckoutAttempt, order: Order):
        self._advance(attempt, CheckoutState.DONE)
        log.info(f"{attempt.log_prefix} Checkout completed, order {order.id}.")
        if self.publisher is None:
            return
        try:
            self.publisher.publish_order_settled(order)
        except pika.exceptions.AMQPError as e:
            # The order is settled; fulfilment has to be notified by hand
            log.critical(f"{attempt.log_prefix} Could not announce order {order.id} to fulfilment: {e}")

    def _order_draft(self, user_id: str, items: List[CartLineItem], totals: OrderTotals, address: str,
                     promo: Optional[PromoCode], payment_method: str, promo_code: str = None,
                     original_amount: Decimal = None, payment_reference: str = None) -> OrderDraft:
        return OrderDraft(
            user_id=user_id,
            items=[item.to_order_item() for item in items],
            subtotal=totals.subtotal,
            service_fee=totals.service_fee,
            delivery_fee=totals.delivery_fee,
            total=totals.total,
            payment_method=payment_method,
            payment_status=PaymentStatus.PAID,  # triggers the backend's stock decrement
            order_status=OrderStatus.PENDING,
            delivery_address=address,
            currency=totals.currency,
            original_amount=original_amount,
            payment_reference=payment_reference,
            promo_code=promo.code if promo else promo_code,
            discount_amount=totals.discount_amount,
        )

    def _insufficient_funds(self, total: Decimal, balance: Decimal, display_currency) -> InsufficientFundsError:
        required = self.converter.to_display(total, display_currency)
        available = self.converter.to_display(balance, display_currency)
        message = (
            f"Your wallet balance is {self.converter.format(available.amount, available.currency)}. "
            f"You need {self.converter.format(required.amount, required.currency)} to complete this order."
        )
        return InsufficientFundsError(required, available, message)

    @staticmethod
    def _description(items: List[CartLineItem], promo_code: Optional[str]) -> str:
        description = f"Order payment - {item_count(items)} items"
        if promo_code:
            description += f" ({promo_code} applied)"
        return description

    def _advance(self, attempt: CheckoutAttempt, state: CheckoutState):
        attempt.state = state
        attempt.history.append(state)
        log.debug(f"{attempt.log_prefix} -> {state.value}")
        if self.on_transition:
            self.on_transition(attempt)

    def _fail(self, attempt: CheckoutAttempt, error: Exception):
        attempt.failure_reason = str(error)
        log.error(f"{attempt.log_prefix} Checkout failed in state {attempt.state.value}: {error}")
        self._advance(attempt, CheckoutState.FAILED)
