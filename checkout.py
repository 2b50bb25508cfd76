"""
Checkout orchestration.

An order moves through these states:

    pending --capture ok--------------> confirmed  (payment pending -> paid)
    pending --payment initiation fails--> deleted
    pending --capture or stock fails-----> pending (left for the buyer to retry)

Stock is reconciled one product at a time with an atomic conditional
decrement. If a later item fails, the decrements already applied are
released again before the error is raised, so a failed capture leaves
inventory as it found it.
"""
import logging
from typing import List, Optional

from pymongo.database import Database

from errors import (
    CheckoutError,
    GatewayError,
    GatewayInitiationError,
    PaymentCaptureError,
    PersistenceError,
    ValidationError,
)
from gateway import IntentItem, PaymentGateway, PaymentIntentRequest, PayPalGateway
from inventory import InventoryLedger
from orders import CartStore, OrderStore
from schemas import CartItem, CheckoutRequest, CheckoutSession, Order, OrderStatus, format_amount
from settings import Settings

logger = logging.getLogger(__name__)


class CheckoutService:
    def __init__(
        self,
        orders: OrderStore,
        inventory: InventoryLedger,
        carts: CartStore,
        gateway: PaymentGateway,
        currency: str = "USD",
        return_url: str = "http://localhost:5173/shop/paypal-return",
        cancel_url: str = "http://localhost:5173/shop/paypal-cancel",
    ):
        self.orders = orders
        self.inventory = inventory
        self.carts = carts
        self.gateway = gateway
        self.currency = currency
        self.return_url = return_url
        self.cancel_url = cancel_url

    @classmethod
    def from_settings(
        cls, database: Database, settings: Settings, gateway: Optional[PaymentGateway] = None
    ) -> "CheckoutService":
        return cls(
            orders=OrderStore(database),
            inventory=InventoryLedger(database),
            carts=CartStore(database),
            gateway=gateway or PayPalGateway.from_settings(settings),
            currency=settings.currency,
            return_url=settings.payment_return_url,
            cancel_url=settings.payment_cancel_url,
        )

    # Initiate

    def build_intent(self, order: Order) -> PaymentIntentRequest:
        return PaymentIntentRequest(
            reference_id=order.id,
            amount=format_amount(order.total_amount),
            currency=self.currency,
            items=[
                IntentItem(
                    name=item.title,
                    sku=item.product_id,
                    unit_amount=format_amount(item.price),
                    quantity=item.quantity,
                )
                for item in order.cart_items
            ],
            return_url=self.return_url,
            cancel_url=self.cancel_url,
        )

    def initiate(self, request: CheckoutRequest) -> CheckoutSession:
        """Persist a pending order, then open a remote payment for it."""
        draft = Order(
            user_id=request.user_id,
            cart_id=request.cart_id,
            cart_items=[item.model_copy() for item in request.cart_items],
            address_info=request.address_info.model_copy(),
            payment_method=request.payment_method,
            total_amount=request.total_amount,
            order_date=request.order_date,
            order_update_date=request.order_date,
        )
        order = self.orders.create(draft)
        logger.info("Created pending order %s for user %s", order.id, order.user_id)

        try:
            intent = self.gateway.create_intent(self.build_intent(order))
        except GatewayError as e:
            logger.error("Payment initiation failed for order %s: %s", order.id, e)
            self._discard_pending(order)
            raise GatewayInitiationError() from e
        except Exception:
            logger.exception("Unexpected error initiating payment for order %s", order.id)
            self._discard_pending(order)
            raise

        order.payment_id = intent.remote_id
        self.orders.update(order)
        return CheckoutSession(approval_url=intent.approval_url, order_id=order.id)

    def _discard_pending(self, order: Order) -> None:
        if not self.orders.delete(order.id):
            logger.warning("Pending order %s was already gone during cleanup", order.id)

    # Capture

    def capture(self, order_id: str, payment_token: str, payer_id: Optional[str] = None) -> Order:
        """Capture the remote payment, take stock and confirm the order."""
        if not payment_token:
            raise ValidationError("Missing payment token")

        order = self.orders.get(order_id)
        if order.order_status == OrderStatus.CONFIRMED:
            logger.info("Order %s is already confirmed, capture skipped", order.id)
            return order
        if order.order_status != OrderStatus.PENDING:
            raise ValidationError(f"Order {order.id} is {order.order_status} and cannot be captured")
        if not order.payment_id:
            raise ValidationError(f"Order {order.id} has no payment to capture")
        if order.payment_id != payment_token:
            raise ValidationError("Payment token does not belong to this order")

        try:
            captured = self.gateway.capture(payment_token)
        except GatewayError as e:
            logger.error(
                "Capture failed for order %s (transient=%s): %s", order.id, e.transient, e
            )
            raise PaymentCaptureError() from e

        payer = captured.payer_id or payer_id
        if not payer:
            raise PaymentCaptureError("Payment capture returned no payer")

        self._reconcile_inventory(order.cart_items)

        try:
            confirmed = self.orders.confirm(order.id, payment_token, payer)
        except PersistenceError:
            self._release(order.cart_items)
            raise
        if confirmed is None:
            # Another capture confirmed this order between our read and write
            logger.warning("Order %s was confirmed concurrently, returning stock", order.id)
            self._release(order.cart_items)
            return self.orders.get(order.id)

        logger.info("Order %s confirmed, payment %s", confirmed.id, payment_token)
        self._discard_cart(confirmed.cart_id)
        return confirmed

    def _reconcile_inventory(self, items: List[CartItem]) -> None:
        reserved: List[CartItem] = []
        try:
            for item in items:
                self.inventory.reserve(item.product_id, item.quantity)
                reserved.append(item)
        except Exception as e:
            if reserved:
                logger.warning("Stock reconciliation stopped (%s), releasing %d item(s)", e, len(reserved))
            self._release(reserved)
            raise

    def _release(self, items: List[CartItem]) -> None:
        for item in reversed(items):
            try:
                self.inventory.release(item.product_id, item.quantity)
            except CheckoutError:
                logger.exception(
                    "Could not return %d unit(s) of product %s to stock", item.quantity, item.product_id
                )

    def _discard_cart(self, cart_id: str) -> None:
        try:
            deleted = self.carts.delete(cart_id)
        except PersistenceError as e:
            logger.warning("Order confirmed but cart %s was not deleted: %s", cart_id, e)
            return
        if not deleted:
            logger.info("Cart %s was already gone", cart_id)

    # Queries

    def list_orders(self, user_id: str) -> List[Order]:
        return self.orders.list_by_user(user_id)

    def get_order(self, order_id: str) -> Order:
        return self.orders.get(order_id)
