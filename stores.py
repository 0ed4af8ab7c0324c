"""
Collection repositories over the MongoDB database.

Cart and wishlist mutations are single-document atomic updates, so concurrent
requests for the same user never overwrite each other's item list.
"""

import logging
import re
from typing import Dict, Iterable, List, Optional

from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import create_document, get_documents, oid, public, store_errors, utcnow
from errors import StoreUnavailable
from schemas import (
    Cart,
    CartItem,
    PaymentIntent,
    Product,
    ProductCreateRequest,
    Wishlist,
    WishlistItem,
)

logger = logging.getLogger(__name__)

# Upsert races on the unique user index are retried this many times.
WRITE_ATTEMPTS = 3


def _row_match(product: str, sku: str) -> dict:
    return {"product": product, "sku": sku}


class ProductStore:
    collection_name = "product"

    def __init__(self, db: Database):
        self.db = db
        self.collection = db[self.collection_name]

    def get(self, product_id: str) -> Optional[Product]:
        _id = oid(product_id)
        if _id is None:
            return None
        with store_errors("product lookup"):
            doc = self.collection.find_one({"_id": _id})
        return Product(**public(doc)) if doc else None

    def get_many(self, product_ids: Iterable[str]) -> Dict[str, Product]:
        ids = [i for i in (oid(p) for p in set(product_ids)) if i is not None]
        if not ids:
            return {}
        with store_errors("product batch lookup"):
            docs = list(self.collection.find({"_id": {"$in": ids}}))
        products = [Product(**public(d)) for d in docs]
        return {p.id: p for p in products}

    def list(self, q: Optional[str] = None, category: Optional[str] = None, limit: int = 24) -> List[Product]:
        filt = {}
        if q:
            filt["title"] = {"$regex": re.escape(q), "$options": "i"}
        if category:
            filt["category"] = category
        return [Product(**d) for d in get_documents(self.db, self.collection_name, filt, limit)]

    def create(self, product: ProductCreateRequest) -> str:
        return create_document(self.db, self.collection_name, product)

    def update_variant(self, product_id: str, sku: str, price: Optional[float] = None,
                       stock: Optional[int] = None) -> Optional[Product]:
        _id = oid(product_id)
        if _id is None:
            return None
        changes = {"updated_at": utcnow()}
        if price is not None:
            changes["variants.$.price"] = price
        if stock is not None:
            changes["variants.$.stock"] = stock
        with store_errors("variant update"):
            doc = self.collection.find_one_and_update(
                {"_id": _id, "variants.sku": sku},
                {"$set": changes},
                return_document=ReturnDocument.AFTER,
            )
        return Product(**public(doc)) if doc else None

    def seed(self, products: List[Product]) -> int:
        with store_errors("product count"):
            if self.collection.count_documents({}) > 0:
                return 0
        for p in products:
            create_document(self.db, self.collection_name, p)
        return len(products)


class CartStore:
    collection_name = "cart"

    def __init__(self, db: Database):
        self.collection = db[self.collection_name]

    @staticmethod
    def _to_cart(doc) -> Cart:
        return Cart(
            id=str(doc["_id"]),
            user=doc["user"],
            items=[CartItem(**i) for i in doc.get("items", [])],
        )

    def find_by_user(self, user_id: str) -> Optional[Cart]:
        with store_errors("cart lookup"):
            doc = self.collection.find_one({"user": user_id})
        return self._to_cart(doc) if doc else None

    def add_item(self, user_id: str, item: CartItem) -> Cart:
        """Increments the (product, sku) row if present, otherwise pushes `item`."""
        match = _row_match(item.product, item.sku)
        row = item.model_dump(exclude={"product_title"})
        for _ in range(WRITE_ATTEMPTS):
            now = utcnow()
            with store_errors("cart increment"):
                doc = self.collection.find_one_and_update(
                    {"user": user_id, "items": {"$elemMatch": match}},
                    {"$inc": {"items.$.quantity": item.quantity}, "$set": {"updated_at": now}},
                    return_document=ReturnDocument.AFTER,
                )
            if doc:
                return self._to_cart(doc)
            with store_errors("cart push"):
                try:
                    doc = self.collection.find_one_and_update(
                        {"user": user_id, "items": {"$not": {"$elemMatch": match}}},
                        {
                            "$push": {"items": row},
                            "$set": {"updated_at": now},
                            "$setOnInsert": {"created_at": now},
                        },
                        upsert=True,
                        return_document=ReturnDocument.AFTER,
                    )
                except DuplicateKeyError:
                    # the row appeared between the two updates
                    doc = None
            if doc:
                return self._to_cart(doc)
            logger.info("Concurrent cart write for user %s, retrying", user_id)
        raise StoreUnavailable(f"Could not update cart for user {user_id}")

    def set_item_quantity(self, user_id: str, product: str, sku: str, quantity: int) -> Optional[Cart]:
        with store_errors("cart quantity update"):
            doc = self.collection.find_one_and_update(
                {"user": user_id, "items": {"$elemMatch": _row_match(product, sku)}},
                {"$set": {"items.$.quantity": quantity, "updated_at": utcnow()}},
                return_document=ReturnDocument.AFTER,
            )
        return self._to_cart(doc) if doc else None

    def remove_item(self, user_id: str, item_id: str) -> Optional[Cart]:
        with store_errors("cart item removal"):
            doc = self.collection.find_one_and_update(
                {"user": user_id, "items.id": item_id},
                {"$pull": {"items": {"id": item_id}}, "$set": {"updated_at": utcnow()}},
                return_document=ReturnDocument.AFTER,
            )
        return self._to_cart(doc) if doc else None

    def clear(self, user_id: str) -> Optional[Cart]:
        with store_errors("cart clear"):
            doc = self.collection.find_one_and_update(
                {"user": user_id},
                {"$set": {"items": [], "updated_at": utcnow()}},
                return_document=ReturnDocument.AFTER,
            )
        return self._to_cart(doc) if doc else None


class WishlistStore:
    collection_name = "wishlist"

    def __init__(self, db: Database):
        self.collection = db[self.collection_name]

    @staticmethod
    def _to_wishlist(doc) -> Wishlist:
        return Wishlist(
            id=str(doc["_id"]),
            user=doc["user"],
            items=[WishlistItem(**i) for i in doc.get("items", [])],
        )

    def find_by_user(self, user_id: str) -> Optional[Wishlist]:
        with store_errors("wishlist lookup"):
            doc = self.collection.find_one({"user": user_id})
        return self._to_wishlist(doc) if doc else None

    def add_item(self, user_id: str, item: WishlistItem) -> Wishlist:
        """Pushes `item` unless a row for the same (product, sku) already exists."""
        match = _row_match(item.product, item.sku)
        row = item.model_dump(exclude={"product_title"})
        for _ in range(WRITE_ATTEMPTS):
            now = utcnow()
            with store_errors("wishlist push"):
                try:
                    doc = self.collection.find_one_and_update(
                        {"user": user_id, "items": {"$not": {"$elemMatch": match}}},
                        {
                            "$push": {"items": row},
                            "$set": {"updated_at": now},
                            "$setOnInsert": {"created_at": now},
                        },
                        upsert=True,
                        return_document=ReturnDocument.AFTER,
                    )
                except DuplicateKeyError:
                    doc = None
            if doc:
                return self._to_wishlist(doc)
            existing = self.find_by_user(user_id)
            if existing and any(i.product == item.product and i.sku == item.sku for i in existing.items):
                return existing
        raise StoreUnavailable(f"Could not update wishlist for user {user_id}")

    def remove_item(self, user_id: str, product: str, sku: str) -> Optional[Wishlist]:
        match = _row_match(product, sku)
        with store_errors("wishlist item removal"):
            doc = self.collection.find_one_and_update(
                {"user": user_id, "items": {"$elemMatch": match}},
                {"$pull": {"items": match}, "$set": {"updated_at": utcnow()}},
                return_document=ReturnDocument.AFTER,
            )
        return self._to_wishlist(doc) if doc else None

    def clear(self, user_id: str) -> None:
        with store_errors("wishlist clear"):
            self.collection.update_one({"user": user_id}, {"$set": {"items": [], "updated_at": utcnow()}})


class PaymentIntentStore:
    collection_name = "paymentintent"

    def __init__(self, db: Database):
        self.db = db
        self.collection = db[self.collection_name]

    def create(self, intent: PaymentIntent) -> str:
        return create_document(self.db, self.collection_name, intent)

    def get(self, intent_id: str, user_id: str) -> Optional[PaymentIntent]:
        _id = oid(intent_id)
        if _id is None:
            return None
        with store_errors("payment intent lookup"):
            doc = self.collection.find_one({"_id": _id, "user_id": user_id})
        return PaymentIntent(**public(doc)) if doc else None
