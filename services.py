"""
Storefront operations over an explicit database handle.

Each service wraps the collections it needs. Route handlers build one per
request from the ``get_db`` dependency, so tests can hand in any database.
"""
from datetime import datetime, timezone
from typing import List, Optional

import structlog
from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import PyMongoError

from database import USE_TRANSACTIONS, create_document, get_documents, parse_object_id, serialize_doc
from errors import (
    CategoryInUseError,
    CategoryNotFoundError,
    EmptyOrderError,
    InvalidReferenceError,
    OrderNotCreatedError,
    OrderNotFoundError,
    ProductNotFoundError,
    UserNotFoundError,
)
from schemas import (
    Category,
    CategoryUpdate,
    Order,
    OrderCreate,
    OrderItem,
    Product,
    ProductUpdate,
    User,
)

logger = structlog.get_logger(__name__)

NEWEST_FIRST = [("date_ordered", -1)]


def _update_one(collection, oid: ObjectId, fields: dict) -> Optional[dict]:
    if not fields:
        return collection.find_one({"_id": oid})
    return collection.find_one_and_update(
        {"_id": oid}, {"$set": fields}, return_document=ReturnDocument.AFTER
    )


class CategoryService:
    def __init__(self, db: Database):
        self.db = db
        self.categories = db["category"]

    def list(self) -> List[dict]:
        return [serialize_doc(d) for d in get_documents(self.db, "category")]

    def get(self, category_id: str) -> dict:
        doc = self.categories.find_one({"_id": parse_object_id(category_id, "category")})
        if not doc:
            raise CategoryNotFoundError(category_id)
        return serialize_doc(doc)

    def create(self, category: Category) -> dict:
        return self.get(create_document(self.db, "category", category))

    def update(self, category_id: str, changes: CategoryUpdate) -> dict:
        oid = parse_object_id(category_id, "category")
        fields = changes.model_dump(exclude_unset=True, exclude_none=True)
        doc = _update_one(self.categories, oid, fields)
        if not doc:
            raise CategoryNotFoundError(category_id)
        return serialize_doc(doc)

    def delete(self, category_id: str) -> None:
        oid = parse_object_id(category_id, "category")
        if self.categories.find_one({"_id": oid}, {"_id": 1}) is None:
            raise CategoryNotFoundError(category_id)
        in_use = self.db["product"].count_documents({"category": oid})
        if in_use:
            raise CategoryInUseError(category_id, in_use)
        self.categories.delete_one({"_id": oid})


class ProductService:
    """Catalog operations.

    Products are only referenced by order items; deleting one leaves past
    orders untouched (their items keep a price/name snapshot). Reads return
    the category inline, both for single products and for listings.
    """

    def __init__(self, db: Database):
        self.db = db
        self.products = db["product"]
        self.categories = db["category"]

    def _category_ref(self, category_id: str) -> ObjectId:
        oid = parse_object_id(category_id, "category")
        if self.categories.find_one({"_id": oid}, {"_id": 1}) is None:
            raise InvalidReferenceError("category", category_id)
        return oid

    def _with_categories(self, products: List[dict]) -> List[dict]:
        category_ids = list({p.get("category") for p in products})
        categories = {c["_id"]: c for c in self.categories.find({"_id": {"$in": category_ids}})}
        for p in products:
            p["category"] = categories.get(p.get("category"))
        return [serialize_doc(p) for p in products]

    def list(self, categories: Optional[List[str]] = None) -> List[dict]:
        query = {}
        if categories:
            query["category"] = {"$in": [parse_object_id(c, "category") for c in categories]}
        return self._with_categories(get_documents(self.db, "product", query))

    def get(self, product_id: str) -> dict:
        doc = self.products.find_one({"_id": parse_object_id(product_id, "product")})
        if not doc:
            raise ProductNotFoundError(product_id)
        doc["category"] = self.categories.find_one({"_id": doc.get("category")})
        return serialize_doc(doc)

    def create(self, product: Product) -> dict:
        doc = product.model_dump()
        doc["category"] = self._category_ref(product.category)
        new_id = create_document(self.db, "product", doc)
        logger.info("product_created", product_id=new_id, name=product.name)
        return self.get(new_id)

    def update(self, product_id: str, changes: ProductUpdate) -> dict:
        oid = parse_object_id(product_id, "product")
        fields = changes.model_dump(exclude_unset=True, exclude_none=True)
        if "category" in fields:
            fields["category"] = self._category_ref(fields["category"])
        if not _update_one(self.products, oid, fields):
            raise ProductNotFoundError(product_id)
        return self.get(product_id)

    def delete(self, product_id: str) -> None:
        result = self.products.delete_one({"_id": parse_object_id(product_id, "product")})
        if result.deleted_count == 0:
            raise ProductNotFoundError(product_id)
        logger.info("product_deleted", product_id=product_id)

    def count(self) -> int:
        return self.products.count_documents({})

    def featured(self, count: int = 0) -> List[dict]:
        docs = get_documents(self.db, "product", {"featured": True}, limit=count)
        return self._with_categories(docs)


class UserService:
    def __init__(self, db: Database):
        self.db = db
        self.users = db["user"]

    def list(self) -> List[dict]:
        return [serialize_doc(d) for d in get_documents(self.db, "user")]

    def get(self, user_id: str) -> dict:
        doc = self.users.find_one({"_id": parse_object_id(user_id, "user")})
        if not doc:
            raise UserNotFoundError(user_id)
        return serialize_doc(doc)

    def create(self, user: User) -> dict:
        return self.get(create_document(self.db, "user", user))


class OrderService:
    """The order aggregate: an order owns the order items it lists.

    Items are created together with their order and removed together with
    it. The order total is always computed here from stored product prices.
    """

    def __init__(self, db: Database, use_transactions: bool = USE_TRANSACTIONS):
        self.db = db
        self.use_transactions = use_transactions
        self.orders = db["order"]
        self.order_items = db["order_item"]
        self.products = db["product"]
        self.categories = db["category"]
        self.users = db["user"]

    # ----- population helpers -----

    def _with_user_names(self, orders: List[dict]) -> List[dict]:
        user_ids = list({o.get("user") for o in orders if o.get("user") is not None})
        users = {u["_id"]: u for u in self.users.find({"_id": {"$in": user_ids}}, {"name": 1})}
        for o in orders:
            o["user"] = users.get(o.get("user"))
        return orders

    def _with_items(self, orders: List[dict]) -> List[dict]:
        item_ids = [i for o in orders for i in o.get("order_items", [])]
        items = {i["_id"]: i for i in self.order_items.find({"_id": {"$in": item_ids}})}

        product_ids = list({i.get("product") for i in items.values()})
        products = {p["_id"]: p for p in self.products.find({"_id": {"$in": product_ids}})}

        category_ids = list({p.get("category") for p in products.values()})
        categories = {c["_id"]: c for c in self.categories.find({"_id": {"$in": category_ids}})}

        for p in products.values():
            p["category"] = categories.get(p.get("category"))
        for i in items.values():
            # None when the product was deleted after the order was placed
            i["product"] = products.get(i.get("product"))
        for o in orders:
            o["order_items"] = [items[i] for i in o.get("order_items", []) if i in items]
        return orders

    def _expanded(self, orders: List[dict]) -> List[dict]:
        return [serialize_doc(o) for o in self._with_items(self._with_user_names(orders))]

    # ----- operations -----

    def create(self, payload: OrderCreate) -> dict:
        if not payload.order_items:
            raise EmptyOrderError()

        user_id = parse_object_id(payload.user, "user")
        product_ids = [parse_object_id(line.product, "product") for line in payload.order_items]

        if self.users.find_one({"_id": user_id}, {"_id": 1}) is None:
            raise InvalidReferenceError("user", payload.user)
        products = {
            p["_id"]: p
            for p in self.products.find({"_id": {"$in": product_ids}}, {"name": 1, "price": 1})
        }
        for line, pid in zip(payload.order_items, product_ids):
            if pid not in products:
                raise InvalidReferenceError("product", line.product)

        now = datetime.now(timezone.utc)
        item_docs = []
        for line, pid in zip(payload.order_items, product_ids):
            product = products[pid]
            item = OrderItem(
                product=line.product,
                quantity=line.quantity,
                price=float(product.get("price", 0)),
                name=product.get("name", ""),
            )
            doc = item.model_dump()
            doc["product"] = pid
            doc["created_at"] = now
            item_docs.append(doc)

        try:
            item_ids = self.order_items.insert_many(item_docs).inserted_ids
        except PyMongoError as e:
            logger.error("order_create_failed", user_id=payload.user, stage="order_items", error=str(e))
            raise OrderNotCreatedError(str(e)) from e

        total_price = sum(d["price"] * d["quantity"] for d in item_docs)

        fields = payload.model_dump(exclude={"order_items", "total_price", "date_ordered"})
        order = Order(
            **fields,
            order_items=[str(i) for i in item_ids],
            total_price=total_price,
            date_ordered=payload.date_ordered or now,
        )
        doc = order.model_dump()
        doc["order_items"] = list(item_ids)
        doc["user"] = user_id

        try:
            order_id = create_document(self.db, "order", doc)
        except PyMongoError as e:
            logger.error(
                "order_create_failed",
                user_id=payload.user,
                stage="order",
                order_items=[str(i) for i in item_ids],
                error=str(e),
            )
            self._discard_items(item_ids)
            raise OrderNotCreatedError(str(e)) from e

        logger.info("order_created", order_id=order_id, user_id=payload.user,
                    items=len(item_ids), total_price=total_price)
        return serialize_doc(self.orders.find_one({"_id": ObjectId(order_id)}))

    def _discard_items(self, item_ids: List[ObjectId]) -> None:
        try:
            self.order_items.delete_many({"_id": {"$in": list(item_ids)}})
        except PyMongoError as e:
            logger.warning("order_items_orphaned", order_items=[str(i) for i in item_ids], error=str(e))

    def list(self) -> List[dict]:
        orders = get_documents(self.db, "order", sort=NEWEST_FIRST)
        return [serialize_doc(o) for o in self._with_user_names(orders)]

    def get(self, order_id: str) -> dict:
        doc = self.orders.find_one({"_id": parse_object_id(order_id, "order")})
        if not doc:
            raise OrderNotFoundError(order_id)
        return self._expanded([doc])[0]

    def list_for_user(self, user_id: str) -> List[dict]:
        oid = parse_object_id(user_id, "user")
        return self._expanded(get_documents(self.db, "order", {"user": oid}, sort=NEWEST_FIRST))

    def update_status(self, order_id: str, status: str) -> dict:
        doc = self.orders.find_one_and_update(
            {"_id": parse_object_id(order_id, "order")},
            {"$set": {"status": status}},
            return_document=ReturnDocument.AFTER,
        )
        if not doc:
            raise OrderNotFoundError(order_id)
        logger.info("order_status_updated", order_id=order_id, status=status)
        return serialize_doc(doc)

    def delete(self, order_id: str) -> dict:
        """Delete an order and the order items it owns.

        Returns how many items were removed and which ones could not be.
        """
        oid = parse_object_id(order_id, "order")
        if self.use_transactions:
            return self._delete_in_transaction(oid, order_id)

        order = self.orders.find_one_and_delete({"_id": oid})
        if not order:
            raise OrderNotFoundError(order_id)

        deleted = 0
        failed = []
        for item_id in order.get("order_items", []):
            try:
                deleted += self.order_items.delete_one({"_id": item_id}).deleted_count
            except PyMongoError as e:
                failed.append(str(item_id))
                logger.warning("order_item_delete_failed", order_id=order_id,
                               order_item_id=str(item_id), error=str(e))
        if failed:
            logger.warning("order_cascade_incomplete", order_id=order_id, failed_items=failed)
        logger.info("order_deleted", order_id=order_id, deleted_items=deleted)
        return {"deleted_items": deleted, "failed_items": failed}

    def _delete_in_transaction(self, oid: ObjectId, order_id: str) -> dict:
        with self.db.client.start_session() as session:
            with session.start_transaction():
                order = self.orders.find_one_and_delete({"_id": oid}, session=session)
                if not order:
                    raise OrderNotFoundError(order_id)
                result = self.order_items.delete_many(
                    {"_id": {"$in": order.get("order_items", [])}}, session=session
                )
        logger.info("order_deleted", order_id=order_id, deleted_items=result.deleted_count,
                    transactional=True)
        return {"deleted_items": result.deleted_count, "failed_items": []}

    def total_sales(self) -> float:
        result = list(self.orders.aggregate([
            {"$group": {"_id": None, "totalsales": {"$sum": "$total_price"}}}
        ]))
        if not result:
            return 0
        return result[0]["totalsales"]

    def count(self) -> int:
        return self.orders.count_documents({})
