"""
Order Service: checkout and order administration.

Placing an order writes the order, its items and the cart clear as one unit
(a transaction when the store supports them, otherwise with a compensating
delete of the order if the items cannot be written). Stock decrements come
after and are best effort: a failure is logged and the order stands.
"""

import re
from typing import List, Optional

from bson import ObjectId
from pymongo.errors import PyMongoError

from database import Database, parse_id, to_str_id, utcnow
from errors import NotFoundError, ValidationError
from log import get_logger
from schemas import OrderItemRequest, PlaceOrderRequest
from users import display_name

logger = get_logger(__name__)

UTR_PATTERN = re.compile(r"^\d{12}$")
COD_CHARGE_NAME = "Cash on Delivery Charge"
ADDRESS_FIELDS = ("name", "email", "phone", "house", "street", "city", "state", "zipCode")


def snapshot_address(address: dict) -> dict:
    snap = {field: address.get(field) or "" for field in ADDRESS_FIELDS}
    snap["street"] = address.get("street") or address.get("address") or ""
    snap["country"] = address.get("country") or "IN"
    return snap


def item_view(item: dict) -> dict:
    price = item.get("price") or 0
    quantity = item.get("quantity") or 0
    return {
        "id": str(item["_id"]),
        "productId": item.get("productId"),
        "productName": item.get("productName"),
        "name": item.get("productName"),
        "price": price,
        "quantity": quantity,
        "size": item.get("size"),
        "total": price * quantity,
    }


def validate_order(payload: PlaceOrderRequest) -> None:
    if not payload.items:
        raise ValidationError("Items are required")
    if payload.total_amount is None or payload.total_amount <= 0:
        raise ValidationError("Valid total amount is required")
    if not payload.payment_method:
        raise ValidationError("Payment method is required")
    if payload.payment_method == "upi":
        if not payload.utr_number:
            raise ValidationError("UTR number is required for UPI payments")
        if not UTR_PATTERN.match(payload.utr_number):
            raise ValidationError("UTR number must be exactly 12 digits")
    for item in payload.items:
        if item.quantity < 1:
            raise ValidationError("Item quantity must be at least 1")
        if not item.ref:
            raise ValidationError("Every item needs a product id")


class OrderService:
    def __init__(self, db: Database, cod_fee: int = 10):
        self.db = db
        self.cod_fee = cod_fee

    @property
    def orders(self):
        return self.db["orders"]

    @property
    def order_items(self):
        return self.db["order_items"]

    def _find(self, order_id) -> dict:
        order = self.orders.find_one({"_id": parse_id(order_id, "order id")})
        if not order:
            raise NotFoundError("Order not found")
        return order

    def _items_for(self, order_id: ObjectId) -> list:
        return [item_view(i) for i in self.order_items.find({"orderId": order_id})]

    # ---------- Checkout ----------

    def _price_lines(self, items: List[OrderItemRequest]) -> list:
        """Price every line from the catalog, ignoring client prices."""
        lines = []
        for item in items:
            product = self.db["products"].find_one({"_id": parse_id(item.ref, "product id")})
            if not product:
                raise NotFoundError(f"Product {item.ref} not found")
            lines.append(
                {
                    "productId": str(product["_id"]),
                    "productName": product.get("name") or item.name,
                    "price": int(product.get("price") or 0),
                    "quantity": item.quantity,
                    "size": item.size or None,
                }
            )
        return lines

    def _shipping_address(self, user_id: ObjectId, address_id: Optional[str]) -> Optional[dict]:
        if not address_id:
            return None
        address = self.db["addresses"].find_one({"_id": parse_id(address_id, "address id"), "userId": user_id})
        if not address:
            raise NotFoundError("Address not found")
        return snapshot_address(address)

    def place_order(self, user_id: str, payload: PlaceOrderRequest) -> str:
        validate_order(payload)
        uid = parse_id(user_id, "user id")
        shipping = self._shipping_address(uid, payload.shipping_address_id)
        lines = self._price_lines(payload.items)

        if payload.payment_method == "cod":
            lines.append({"productId": None, "productName": COD_CHARGE_NAME, "price": self.cod_fee, "quantity": 1, "size": None})
        total = sum(line["price"] * line["quantity"] for line in lines)
        if total != payload.total_amount:
            logger.warning("order_total_mismatch", user_id=user_id, client_total=payload.total_amount, total=total)

        now = utcnow()
        order = {
            "userId": uid,
            "totalAmount": total,
            "status": "pending",
            "shippingAddress": shipping,
            "paymentMethod": payload.payment_method,
            "utrNumber": payload.utr_number if payload.payment_method == "upi" else None,
            "createdAt": now,
            "updatedAt": now,
        }

        with self.db.transaction() as session:
            order_id = self.orders.insert_one(order, session=session).inserted_id
            try:
                self.order_items.insert_many([{**line, "orderId": order_id} for line in lines], session=session)
            except PyMongoError:
                if session is None:
                    self.orders.delete_one({"_id": order_id})
                logger.error("order_items_failed", order_id=str(order_id))
                raise
            # the whole cart goes, not only the lines ordered
            self.db["cart"].delete_many({"userId": uid}, session=session)

        logger.info("order_created", order_id=str(order_id), user_id=user_id, total=total, payment_method=payload.payment_method)

        for item in payload.items:
            self._decrement_stock(item)
        return str(order_id)

    def _decrement_stock(self, item: OrderItemRequest) -> None:
        try:
            _id = parse_id(item.ref, "product id")
            product = self.db["products"].find_one({"_id": _id})
            if not product:
                return
            inc = {}
            if "stock" in product:
                inc["stock"] = -item.quantity
            if item.size and product.get("sizes"):
                inc[f"sizes.{item.size}"] = -item.quantity
            if inc:
                self.db["products"].update_one({"_id": _id}, {"$inc": inc})
                logger.debug("stock_decremented", product_id=item.ref, size=item.size)
        except PyMongoError as exc:
            logger.error("stock_update_failed", product_id=item.ref, error=str(exc))

    # ---------- Customer views ----------

    def list_orders(self, user_id: str) -> list:
        orders = self.orders.find({"userId": parse_id(user_id, "user id")}).sort("createdAt", -1)
        return [{**to_str_id(o), "items": self._items_for(o["_id"])} for o in orders]

    # ---------- Admin ----------

    def _customer_name(self, user_id) -> str:
        if not user_id:
            return "Guest"
        user = self.db["users"].find_one({"_id": user_id})
        return display_name(user) if user else "Unknown"

    def list_all_orders(self) -> list:
        result = []
        for order in self.orders.find({}).sort("createdAt", -1):
            result.append(
                {
                    **to_str_id(order),
                    "customerName": self._customer_name(order.get("userId")),
                    "items": self._items_for(order["_id"]),
                }
            )
        return result

    def get_order_details(self, order_id: str) -> dict:
        order = self._find(order_id)
        details = {**to_str_id(order), "items": self._items_for(order["_id"])}
        if order.get("userId"):
            user = self.db["users"].find_one({"_id": order["userId"]})
            if user:
                details.update(
                    customerName=display_name(user),
                    userEmail=user.get("email"),
                    userPhone=user.get("phone"),
                )
        return details

    def update_order(self, order_id: str, status: Optional[str] = None, payment_status: Optional[str] = None) -> None:
        order = self._find(order_id)
        changes = {"updatedAt": utcnow()}
        if status:
            changes["status"] = status
        if payment_status:
            changes["paymentStatus"] = payment_status
        self.orders.update_one({"_id": order["_id"]}, {"$set": changes})
        logger.info("order_updated", order_id=order_id, status=status, payment_status=payment_status)

    def delete_order(self, order_id: str) -> None:
        _id = parse_id(order_id, "order id")
        with self.db.transaction() as session:
            self.order_items.delete_many({"orderId": _id}, session=session)
            result = self.orders.delete_one({"_id": _id}, session=session)
        if result.deleted_count == 0:
            raise NotFoundError("Order not found")
        logger.info("order_deleted", order_id=order_id)
