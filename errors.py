"""
Error taxonomy for the checkout flow.

Every CheckoutError carries the HTTP status and the message the API returns
in its {"success": false, "message": ...} envelope.
"""
from typing import Optional


class CheckoutError(Exception):
    status_code = 500
    message = "Server error occurred!"

    def __init__(self, message: Optional[str] = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class ValidationError(CheckoutError):
    status_code = 400
    message = "Invalid request"


class OrderNotFound(CheckoutError):
    status_code = 404
    message = "Order not found!"


class ProductNotFound(CheckoutError):
    status_code = 404

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product {product_id} not found")


class InsufficientStock(CheckoutError):
    status_code = 400

    def __init__(self, product_id: str, title: str, requested: int, available: int):
        self.product_id = product_id
        self.title = title
        self.requested = requested
        self.available = available
        super().__init__(f"Not enough stock for {title}")


class GatewayInitiationError(CheckoutError):
    status_code = 502
    message = "Error creating PayPal payment"


class PaymentCaptureError(CheckoutError):
    status_code = 502
    message = "Payment capture failed"


class PersistenceError(CheckoutError):
    status_code = 503
    message = "Database unavailable"


class GatewayError(Exception):
    """Raised by payment gateway adapters.

    ``transient`` is True when the same call may succeed if repeated later
    (connection failures, 5xx, rate limiting). Timeouts are reported as
    permanent.
    """

    def __init__(self, message: str, transient: bool = False, status_code: Optional[int] = None):
        super().__init__(message)
        self.transient = transient
        self.status_code = status_code
