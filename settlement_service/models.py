"""
models.py — Data Models for Pricing and Settlement

This module defines the data structures used for cart assembly, pricing and order
settlement. It uses Pydantic models to ensure type safety and automatic validation
of incoming data. Amounts are Decimals; totals are always carried in the base
currency and only converted for display.

Models:
    - Money: An amount tagged with a supported currency.
    - Product / CartLineItem: Catalog product and one size/color line in the cart.
    - PromoCode: Promotional discount with optional validity window and usage cap.
    - OrderTotals: Priced figures of a cart in one currency.
    - OrderItem / OrderDraft / Order: Snapshotted order record as stored by the backend.
    - Transaction: Append-only ledger entry.
    - Profile: Wallet balance and preferred display currency of a user.
    - StockValidation: Result of the backend's stock availability routine.
    - PaymentHandle / PaymentOutcome: State threaded through an external payment.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class Currency(str, Enum):
    """Supported currencies. NGN is the base currency."""
    NGN = "NGN"
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    CAD = "CAD"
    AUD = "AUD"
    JPY = "JPY"
    CHF = "CHF"
    CNY = "CNY"
    INR = "INR"
    ZAR = "ZAR"


def currency_code(currency) -> str:
    """Returns the plain ISO code for a Currency member or a currency string."""
    if isinstance(currency, Currency):
        return currency.value
    return str(currency or "").strip().upper()


class PaymentMethod(str, Enum):
    WALLET = "wallet"
    CARD = "card"
    PAYPAL = "paypal"


class PaymentProvider(str, Enum):
    """External processors. PAYSTACK handles base-currency cards, PAYPAL everything else."""
    PAYSTACK = "paystack"
    PAYPAL = "paypal"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class Money(BaseModel):
    """
    An amount tagged with its currency.

    Attributes:
        amount (Decimal): Non-negative amount in major currency units.
        currency (Currency): Currency of the amount.
    """
    model_config = ConfigDict(frozen=True)

    amount: Decimal = Field(..., ge=0)
    currency: Currency


class Product(BaseModel):
    id: str
    name: str
    price: Decimal = Field(..., ge=0)  # base currency
    sizes: List[str] = Field(default_factory=list)
    colors: List[str] = Field(default_factory=list)


class OrderItem(BaseModel):
    """Line item as snapshotted into an order record."""
    product_id: str
    name: str
    price: Decimal
    quantity: int
    size: str
    color: str


class CartLineItem(BaseModel):
    """
    One size/color combination of a product in the cart.

    Line items are immutable; changing the quantity means replacing the item.

    Attributes:
        product_id (str): Catalog product identifier.
        product_name (str): Product name at the time it was added.
        price (Decimal): Unit price in the base currency.
        size (str): Selected size.
        color (str): Selected color.
        quantity (int): Number of units. Must be greater than zero.
    """
    model_config = ConfigDict(frozen=True)

    product_id: str
    product_name: str
    price: Decimal = Field(..., ge=0)
    size: str
    color: str
    quantity: int = Field(..., gt=0)

    def to_order_item(self) -> OrderItem:
        return OrderItem(
            product_id=self.product_id,
            name=self.product_name,
            price=self.price,
            quantity=self.quantity,
            size=self.size,
            color=self.color,
        )


class PromoCode(BaseModel):
    """
    A promotional discount.

    Attributes:
        code (str): Unique code entered by the customer.
        description (str): Human readable description.
        discount (Decimal): Fraction of the subtotal taken off, in [0, 1).
        is_active (bool): Inactive codes never validate.
        max_uses (int, optional): Usage cap.
        current_uses (int, optional): Uses so far. Only compared, never changed here.
        start_date (datetime, optional): Start of the validity window.
        end_date (datetime, optional): End of the validity window.
    """
    model_config = ConfigDict(frozen=True)

    code: str
    description: str = ""
    discount: Decimal = Field(..., ge=0, lt=1)
    is_active: bool = True
    max_uses: Optional[int] = None
    current_uses: Optional[int] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class OrderTotals(BaseModel):
    """
    Priced figures of a cart, all in one currency.

    ``subtotal`` already has the discount subtracted; ``discount_amount`` is carried
    for display only. total = subtotal + service_fee + delivery_fee.
    """
    model_config = ConfigDict(frozen=True)

    subtotal: Decimal
    service_fee: Decimal
    delivery_fee: Decimal
    discount_amount: Decimal = Decimal("0")
    total: Decimal
    currency: Currency


class OrderDraft(BaseModel):
    """Fields sent to the order store when an order is created."""
    user_id: str
    items: List[OrderItem]
    subtotal: Decimal
    service_fee: Decimal
    delivery_fee: Decimal
    total: Decimal
    payment_method: str
    payment_status: PaymentStatus = PaymentStatus.PENDING
    order_status: OrderStatus = OrderStatus.PENDING
    delivery_address: str
    currency: Currency
    original_amount: Optional[Decimal] = None
    payment_reference: Optional[str] = None
    promo_code: Optional[str] = None
    discount_amount: Decimal = Decimal("0")


class Order(OrderDraft):
    id: str
    created_at: Optional[datetime] = None


class Transaction(BaseModel):
    """Append-only ledger entry for a money movement tied to an order."""
    user_id: str
    type: Literal["debit"] = "debit"
    amount: Decimal
    currency: Currency
    description: str
    reference: str
    status: str = "completed"
    payment_provider: Optional[PaymentProvider] = None
    original_amount: Optional[Decimal] = None


class Profile(BaseModel):
    id: str
    wallet_balance: Decimal = Decimal("0")
    preferred_currency: Currency = Currency.NGN


class UnavailableItem(BaseModel):
    product_id: str
    name: Optional[str] = None
    requested: Optional[int] = None
    in_stock: Optional[int] = None


class StockValidation(BaseModel):
    """
    Answer of the backend's stock availability routine.

    Attributes:
        available (bool): True when every requested item can be supplied.
        unavailable (List[UnavailableItem]): Items that cannot be supplied.
        message (str, optional): Backend message for an unavailability report.
    """
    available: bool = True
    unavailable: List[UnavailableItem] = Field(default_factory=list)
    message: Optional[str] = None


class PaymentHandle(BaseModel):
    """
    Everything needed to finish an external payment, handed to the caller by
    ``begin_external_payment`` and handed back on completion.

    Attributes:
        handle_id (str): Identifier of the checkout attempt.
        user_id (str): Payer.
        provider (PaymentProvider): Processor that collects the payment.
        method (PaymentMethod): Payment method the customer picked.
        items (List[CartLineItem]): Snapshot of the priced cart.
        totals (OrderTotals): Totals in the base currency.
        delivery_address (str): Trimmed delivery address.
        promo_code (str, optional): Applied promo code.
        charge (Money): Amount the processor collects, in the payer's display currency.
        description (str): Charge description shown by the processor.
        created_at (datetime): When the attempt was started.
        signature (str): HMAC over all other fields, set by the server. A handle
            whose fields were changed by the caller no longer matches it.
    """
    model_config = ConfigDict(frozen=True)

    handle_id: str
    user_id: str
    provider: PaymentProvider
    method: PaymentMethod
    items: List[CartLineItem]
    totals: OrderTotals
    delivery_address: str
    promo_code: Optional[str] = None
    charge: Money
    description: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    signature: str = ""


class PaymentSucceeded(BaseModel):
    status: Literal["success"] = "success"
    reference: str = Field(..., min_length=1)


class PaymentCancelled(BaseModel):
    status: Literal["cancelled"] = "cancelled"


PaymentOutcome = Annotated[Union[PaymentSucceeded, PaymentCancelled], Field(discriminator="status")]
