from database import Database, parse_id, to_str_id, utcnow
from errors import NotFoundError, StockError, ValidationError
from log import get_logger
from schemas import CartItemCreate
from users import display_name

logger = get_logger(__name__)


def available_stock(product: dict, size) -> int:
    sizes = product.get("sizes")
    if size and sizes:
        return int(sizes.get(size, 0))
    return int(product.get("stock") or 0)


class CartService:
    """Per-user cart. One line per (user, product name, size)."""

    def __init__(self, db: Database):
        self.db = db

    @property
    def cart(self):
        return self.db["cart"]

    def list_items(self, user_id: str) -> list:
        items = self.db.get_documents("cart", {"userId": parse_id(user_id, "user id")}, sort=[("createdAt", 1)])
        return [to_str_id(i) for i in items]

    def add_item(self, user_id: str, item: CartItemCreate) -> dict:
        uid = parse_id(user_id, "user id")
        if not item.product_name:
            raise ValidationError("Product name is required")
        user = self.db["users"].find_one({"_id": uid})
        if not user:
            raise NotFoundError("User not found")
        username = display_name(user)

        query = {"userId": uid, "productName": item.product_name}
        if item.size:
            query["size"] = item.size

        existing = self.cart.find_one(query)
        if existing:
            # repeat adds count one unit each, whatever quantity was sent
            self.cart.update_one(
                {"_id": existing["_id"]},
                {"$inc": {"quantity": 1}, "$set": {"username": username, "updatedAt": utcnow()}},
            )
            logger.debug("cart_item_incremented", user_id=user_id, item_id=str(existing["_id"]))
            return {"message": "Cart updated successfully", "itemId": str(existing["_id"])}

        item_id = self.db.create_document(
            "cart",
            {
                "userId": uid,
                "username": username,
                "productName": item.product_name,
                "productId": item.product_id,
                "price": item.price,
                "quantity": item.quantity,
                "size": item.size or None,
            },
        )
        logger.debug("cart_item_added", user_id=user_id, item_id=item_id)
        return {"message": "Item added to cart successfully", "itemId": item_id}

    def update_quantity(self, user_id: str, item_id: str, quantity) -> None:
        if quantity is None or quantity < 1:
            raise ValidationError("Valid quantity is required")
        query = {"_id": parse_id(item_id, "item id"), "userId": parse_id(user_id, "user id")}
        item = self.cart.find_one(query)
        if not item:
            raise NotFoundError("Item not found")

        product_ref = item.get("productId")
        if product_ref:
            product = self.db["products"].find_one({"_id": parse_id(product_ref, "product id")})
            if product:
                available = available_stock(product, item.get("size"))
                if quantity > available:
                    raise StockError(f"Only {available} items available for this size")
        else:
            logger.debug("cart_stock_check_skipped", item_id=item_id)

        self.cart.update_one(query, {"$set": {"quantity": int(quantity), "updatedAt": utcnow()}})

    def remove_item(self, user_id: str, item_id: str) -> None:
        result = self.cart.delete_one({"_id": parse_id(item_id, "item id"), "userId": parse_id(user_id, "user id")})
        if result.deleted_count == 0:
            raise NotFoundError("Item not found")

    def clear(self, user_id: str) -> int:
        return self.cart.delete_many({"userId": parse_id(user_id, "user id")}).deleted_count
