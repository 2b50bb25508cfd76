"""
Inventory ledger over the product collection.

``reserve`` is one conditional update (the stock guard and the decrement are
the same write), so two captures racing on the same product can never push
``total_stock`` below zero.
"""
import logging

from pymongo import ReturnDocument
from pymongo.database import Database

from database import create_document, guarded, oid, utcnow
from errors import InsufficientStock, ProductNotFound, ValidationError
from schemas import Product

logger = logging.getLogger(__name__)


class InventoryLedger:
    collection_name = "product"

    def __init__(self, database: Database):
        self.collection = database[self.collection_name]
        self._database = database

    def add_product(self, product: Product) -> Product:
        document = create_document(self._database, self.collection_name, product)
        return Product.model_validate(document)

    def get_stock(self, product_id: str) -> int:
        _id = oid(product_id)
        if _id is None:
            raise ProductNotFound(product_id)
        with guarded("reading stock"):
            doc = self.collection.find_one({"_id": _id}, {"total_stock": 1})
        if doc is None:
            raise ProductNotFound(product_id)
        return int(doc.get("total_stock", 0))

    def reserve(self, product_id: str, quantity: int) -> int:
        """Take ``quantity`` units out of stock, or fail without touching it.

        Returns the units left after the decrement.
        """
        if quantity < 1:
            raise ValidationError(f"Quantity for product {product_id} must be at least 1")
        _id = oid(product_id)
        if _id is None:
            raise ProductNotFound(product_id)

        with guarded("reserving stock"):
            doc = self.collection.find_one_and_update(
                {"_id": _id, "total_stock": {"$gte": quantity}},
                {"$inc": {"total_stock": -quantity}, "$set": {"updated_at": utcnow()}},
                return_document=ReturnDocument.AFTER,
            )
            if doc is None:
                current = self.collection.find_one({"_id": _id}, {"title": 1, "total_stock": 1})

        if doc is None:
            if current is None:
                raise ProductNotFound(product_id)
            available = int(current.get("total_stock", 0))
            logger.info(
                "Stock check failed for product %s: requested %d, available %d",
                product_id, quantity, available,
            )
            raise InsufficientStock(product_id, current.get("title", product_id), quantity, available)

        remaining = int(doc["total_stock"])
        logger.debug("Reserved %d of product %s, %d left", quantity, product_id, remaining)
        return remaining

    def release(self, product_id: str, quantity: int) -> None:
        """Put back units taken by ``reserve``."""
        _id = oid(product_id)
        if _id is None:
            raise ProductNotFound(product_id)
        with guarded("releasing stock"):
            result = self.collection.update_one(
                {"_id": _id},
                {"$inc": {"total_stock": quantity}, "$set": {"updated_at": utcnow()}},
            )
        if result.matched_count == 0:
            raise ProductNotFound(product_id)
