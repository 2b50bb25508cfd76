"""
Pytest configuration and fixtures.

MongoDB is replaced by mongomock and PayPal by an in-process gateway that
records every call.
"""
from decimal import Decimal
from typing import List, Optional

import mongomock
import pytest

from checkout import CheckoutService
from gateway import CaptureResult, PaymentGateway, PaymentIntent, PaymentIntentRequest
from inventory import InventoryLedger
from orders import CartStore, OrderStore
from schemas import Cart, CartItem, Product


class RecordingGateway(PaymentGateway):
    """Gateway double: succeeds unless told to fail, remembers what it was sent."""

    def __init__(self):
        self.intents: List[PaymentIntentRequest] = []
        self.captures: List[str] = []
        self.fail_create: Optional[Exception] = None
        self.fail_capture: Optional[Exception] = None
        self.payer_id: Optional[str] = "PAYER-1"

    def create_intent(self, intent: PaymentIntentRequest) -> PaymentIntent:
        self.intents.append(intent)
        if self.fail_create:
            raise self.fail_create
        remote_id = f"PP-{len(self.intents)}"
        return PaymentIntent(
            remote_id=remote_id,
            approval_url=f"https://www.sandbox.paypal.com/checkoutnow?token={remote_id}",
        )

    def capture(self, remote_token: str) -> CaptureResult:
        self.captures.append(remote_token)
        if self.fail_capture:
            raise self.fail_capture
        return CaptureResult(payer_id=self.payer_id, status="COMPLETED", raw={"id": remote_token})


@pytest.fixture
def database():
    return mongomock.MongoClient().db


@pytest.fixture
def gateway():
    return RecordingGateway()


@pytest.fixture
def ledger(database):
    return InventoryLedger(database)


@pytest.fixture
def orders(database):
    return OrderStore(database)


@pytest.fixture
def carts(database):
    return CartStore(database)


@pytest.fixture
def service(orders, ledger, carts, gateway):
    return CheckoutService(orders=orders, inventory=ledger, carts=carts, gateway=gateway)


@pytest.fixture
def pen(ledger):
    return ledger.add_product(Product(title="Pen", price=Decimal("10.00"), total_stock=5))


@pytest.fixture
def milk(ledger):
    return ledger.add_product(Product(title="Milk", price=Decimal("5.00"), total_stock=3))


@pytest.fixture
def cart(carts, pen, milk):
    return carts.create(
        Cart(
            user_id="user-1",
            items=[
                CartItem(product_id=pen.id, title="Pen", price=Decimal("10.00"), quantity=1),
                CartItem(product_id=milk.id, title="Milk", price=Decimal("5.00"), quantity=2),
            ],
        )
    )


@pytest.fixture
def checkout_payload(cart):
    """camelCase body as the storefront sends it."""
    return {
        "userId": "user-1",
        "cartId": cart.id,
        "cartItems": [item.model_dump(by_alias=True, mode="json") for item in cart.items],
        "addressInfo": {"address": "1 Main St", "city": "Springfield", "pincode": "12345", "phone": "555-0100"},
        "totalAmount": 20.0,
        "paymentMethod": "paypal",
        "orderDate": "2024-05-01T10:00:00Z",
    }
