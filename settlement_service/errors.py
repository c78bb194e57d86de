"""
errors.py — Error Taxonomy of the Settlement Service

    • ValidationError        – bad input, caught before any remote call
    • StockUnavailableError  – backend reports items that cannot be supplied
    • InsufficientFundsError – wallet balance below the order total
    • RemoteFailure          – a backend call failed (transport or HTTP error)
    • FollowUpRequiredError  – the order exists but a later step failed

A cancelled external payment is not an error.
"""


class SettlementError(Exception):
    """Base class for all errors raised by the settlement service."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SettlementError):
    pass


class StockUnavailableError(SettlementError):
    """
    Raised when the backend's stock validation rejects the cart.

    Attributes:
        unavailable (list): UnavailableItem entries named by the backend (may be empty
            if the backend only returned a message).
    """

    def __init__(self, message: str, unavailable=None):
        super().__init__(message)
        self.unavailable = list(unavailable or [])


class InsufficientFundsError(SettlementError):
    """
    Raised when the wallet balance does not cover the order total.

    Amounts are Money values in the customer's display currency.
    """

    def __init__(self, required, available, message: str = None):
        self.required = required
        self.available = available
        self.shortfall = required.model_copy(update={"amount": max(required.amount - available.amount, 0)})
        super().__init__(message or (
            f"Your wallet balance is {available.amount} {available.currency.value}. "
            f"You need {required.amount} {required.currency.value} to complete this order."
        ))


class RemoteFailure(SettlementError):
    pass


class FollowUpRequiredError(SettlementError):
    """
    Raised when a step after order creation fails. The order is not rolled back;
    it needs manual reconciliation.

    Attributes:
        order: The order record that was created.
        step (str): Name of the step that failed.
    """

    def __init__(self, order, step: str, cause: Exception):
        super().__init__(
            f"Payment succeeded but order follow-up failed at step '{step}' "
            f"(order {order.id}). Please contact support."
        )
        self.order = order
        self.step = step
        self.cause = cause
