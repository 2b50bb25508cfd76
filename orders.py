"""Order records and the carts they are checked out from."""
import logging
from typing import List, Optional

from pymongo import ReturnDocument
from pymongo.database import Database

from database import create_document, get_documents, guarded, oid, to_bson, utcnow
from errors import OrderNotFound
from schemas import Cart, Order, OrderStatus, PaymentStatus

logger = logging.getLogger(__name__)


class OrderStore:
    collection_name = "order"

    def __init__(self, database: Database):
        self._database = database
        self.collection = database[self.collection_name]

    def create(self, draft: Order) -> Order:
        document = create_document(self._database, self.collection_name, draft)
        return Order.model_validate(document)

    def get(self, order_id: str) -> Order:
        _id = oid(order_id)
        if _id is None:
            raise OrderNotFound()
        with guarded("loading order"):
            doc = self.collection.find_one({"_id": _id})
        if doc is None:
            raise OrderNotFound()
        return Order.model_validate(doc)

    def update(self, order: Order) -> Order:
        _id = oid(order.id)
        if _id is None:
            raise OrderNotFound()
        order.updated_at = utcnow()
        fields = to_bson(order.model_dump(exclude={"id", "created_at"}))
        with guarded("updating order"):
            result = self.collection.update_one({"_id": _id}, {"$set": fields})
        if result.matched_count == 0:
            raise OrderNotFound()
        return order

    def confirm(self, order_id: str, payment_id: str, payer_id: str) -> Optional[Order]:
        """Move a pending order to confirmed/paid.

        Returns None when the order is no longer pending.
        """
        now = utcnow()
        with guarded("confirming order"):
            doc = self.collection.find_one_and_update(
                {"_id": oid(order_id), "order_status": OrderStatus.PENDING.value},
                {
                    "$set": {
                        "order_status": OrderStatus.CONFIRMED.value,
                        "payment_status": PaymentStatus.PAID.value,
                        "payment_id": payment_id,
                        "payer_id": payer_id,
                        "order_update_date": now,
                        "updated_at": now,
                    }
                },
                return_document=ReturnDocument.AFTER,
            )
        if doc is None:
            return None
        return Order.model_validate(doc)

    def delete(self, order_id: str) -> bool:
        _id = oid(order_id)
        if _id is None:
            return False
        with guarded("deleting order"):
            result = self.collection.delete_one({"_id": _id})
        return result.deleted_count == 1

    def list_by_user(self, user_id: str) -> List[Order]:
        docs = get_documents(self._database, self.collection_name, {"user_id": user_id})
        return [Order.model_validate(d) for d in docs]


class CartStore:
    collection_name = "cart"

    def __init__(self, database: Database):
        self._database = database
        self.collection = database[self.collection_name]

    def create(self, cart: Cart) -> Cart:
        document = create_document(self._database, self.collection_name, cart)
        return Cart.model_validate(document)

    def get(self, cart_id: str) -> Optional[Cart]:
        _id = oid(cart_id)
        if _id is None:
            return None
        with guarded("loading cart"):
            doc = self.collection.find_one({"_id": _id})
        return Cart.model_validate(doc) if doc else None

    def delete(self, cart_id: str) -> bool:
        _id = oid(cart_id)
        if _id is None:
            logger.warning("Cart id %r is not a valid id, nothing to delete", cart_id)
            return False
        with guarded("deleting cart"):
            result = self.collection.delete_one({"_id": _id})
        return result.deleted_count == 1
