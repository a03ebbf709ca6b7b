"""
Catalog Service: products, categories and stock maintenance.

Products carry two views of inventory: the legacy aggregate ``stock`` and
the ``sizes`` map (size label -> quantity). Products without sizes use a
single ``"One Size"`` key.
"""

import json
import re
from typing import Any, Iterable, Optional

from pydantic import ValidationError as SchemaError

from database import Database, parse_id, to_str_id, utcnow
from errors import NotFoundError, ValidationError
from log import get_logger
from schemas import Product

logger = get_logger(__name__)

ONE_SIZE = "One Size"

DEMO_PRODUCTS = [
    {
        "name": "Classic White Tee",
        "category": "Men",
        "price": 1299,
        "description": "Premium cotton classic fit white t-shirt. Essential for every wardrobe.",
        "images": ["https://images.unsplash.com/photo-1521572163474-6864f9cf17ab?q=80&w=800&auto=format&fit=crop"],
        "sizes": {"S": 10, "M": 20, "L": 15, "XL": 5},
        "collections": ["best-collection", "summer-essentials"],
    },
    {
        "name": "Navy Blue Bomber Jacket",
        "category": "Men",
        "price": 4999,
        "description": "Stylish navy blue bomber jacket with premium finish. Perfect for layering.",
        "images": ["https://images.unsplash.com/photo-1591047139829-d91aecb6caea?q=80&w=800&auto=format&fit=crop"],
        "sizes": {"M": 10, "L": 15, "XL": 5},
        "collections": ["best-collection", "winter-wear"],
    },
    {
        "name": "Slim Fit Chinos",
        "category": "Men",
        "price": 2499,
        "description": "Comfortable slim fit chinos in beige.",
        "images": ["https://images.unsplash.com/photo-1473966968600-fa801b869a1a?q=80&w=800&auto=format&fit=crop"],
        "sizes": {"30": 10, "32": 15, "34": 15},
        "collections": ["office-wear"],
    },
    {
        "name": "Floral Summer Dress",
        "category": "Women",
        "price": 2999,
        "description": "Breezy floral print dress, perfect for summer days.",
        "images": ["https://images.unsplash.com/photo-1572804013309-59a88b7e92f1?q=80&w=800&auto=format&fit=crop"],
        "sizes": {"XS": 5, "S": 10, "M": 15, "L": 5},
        "collections": ["best-collection", "summer-essentials"],
    },
    {
        "name": "Knitted Sweater",
        "category": "Women",
        "price": 2699,
        "description": "Cozy oversized knitted sweater in beige.",
        "images": ["https://images.unsplash.com/photo-1576566588028-4147f3842f27?q=80&w=800&auto=format&fit=crop"],
        "sizes": {"S": 10, "M": 15, "L": 5},
        "collections": ["winter-wear"],
    },
    {
        "name": "Leather Messenger Bag",
        "category": "Accessories",
        "price": 6999,
        "description": "Premium handcrafted leather messenger bag.",
        "images": ["https://images.unsplash.com/photo-1553062407-98eeb64c6a62?q=80&w=800&auto=format&fit=crop"],
        "sizes": {ONE_SIZE: 15},
        "collections": ["best-collection"],
    },
]


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _parse_json(value: Any, default: Any, field: str) -> Any:
    """Form fields may carry JSON-encoded structures."""
    if _blank(value):
        return default
    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError:
            logger.warning("form_field_unparseable", field=field)
            return default
    return value


def _to_int(value: Any, field: str) -> Optional[int]:
    """Whole number from a form value; None when it is not numeric."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not number.is_integer():
        raise ValidationError(f"{field} must be a whole number")
    return int(number)


def _as_list(value: Any) -> list:
    if _blank(value):
        return []
    if isinstance(value, (list, tuple)):
        return [v for v in value if not _blank(v)]
    return [value]


def merge_images(provided: Iterable[str], uploaded: Iterable[str]) -> list:
    images = []
    for path in list(provided) + list(uploaded):
        if path and path not in images:
            images.append(path)
    return images


def build_product(form: dict, uploaded: Iterable[str] = ()) -> dict:
    """Turn create/update form fields into a product document body.

    ``form`` holds the raw field values (strings, or already-decoded
    structures for JSON callers); ``uploaded`` the stored upload paths.
    """
    missing = [f for f in ("name", "category", "price") if _blank(form.get(f))]
    if missing:
        raise ValidationError(f"Name, category, and price are required. Missing: {', '.join(missing)}")

    price = _to_int(form["price"], "Price")
    if price is None or price < 0:
        raise ValidationError("Price must be a non-negative number")

    stock = _to_int(form.get("stock"), "Stock")
    sizes = _parse_json(form.get("sizes"), None, "sizes")
    if isinstance(sizes, dict) and sizes:
        size_map = {}
        for label, qty in sizes.items():
            qty = _to_int(qty, f"Quantity for size {label}")
            if qty is None:
                raise ValidationError(f"Invalid quantity for size {label}")
            size_map[str(label)] = qty
    elif stock is not None:
        size_map = {ONE_SIZE: stock}
    else:
        size_map = {}
    if stock is None:
        stock = sum(size_map.values())

    colors = _parse_json(form.get("colors"), [], "colors")
    collections = form.get("collections")
    if isinstance(collections, str) and not collections.lstrip().startswith("["):
        collections = [c.strip() for c in collections.split(",")]
    collections = _parse_json(collections, [], "collections")
    if isinstance(collections, str):
        collections = [c.strip() for c in collections.split(",")]

    provided = _as_list(form.get("existingImages")) + _as_list(form.get("images")) + _as_list(form.get("image"))
    images = merge_images(provided, uploaded)

    try:
        product = Product(
            name=str(form["name"]).strip(),
            category=str(form["category"]).strip(),
            price=price,
            description=form.get("description") or "",
            stock=stock,
            sizes=size_map,
            image=images[0] if images else "",
            images=images,
            colors=colors if isinstance(colors, list) else [],
            collections=list(dict.fromkeys(str(c) for c in collections if c)) if isinstance(collections, list) else [],
        )
    except SchemaError as exc:
        raise ValidationError(f"Invalid product: {exc.errors()[0]['msg']}")
    return product.model_dump(by_alias=True)


class CatalogService:
    def __init__(self, db: Database):
        self.db = db

    @property
    def products(self):
        return self.db["products"]

    def _find(self, product_id) -> dict:
        product = self.products.find_one({"_id": parse_id(product_id, "product id")})
        if not product:
            raise NotFoundError("Product not found")
        return product

    # ---------- Products ----------

    def list_products(self, category: Optional[str] = None, collection: Optional[str] = None) -> list:
        filt = {}
        if category:
            filt["category"] = category
        if collection:
            filt["collections"] = collection
        docs = self.db.get_documents("products", filt, sort=[("createdAt", -1)])
        return [to_str_id(p) for p in docs]

    def get_product(self, product_id: str) -> dict:
        return to_str_id(self._find(product_id))

    def create_product(self, form: dict, uploaded: Iterable[str] = (), created_by: str = "admin") -> dict:
        body = build_product(form, uploaded)
        body["createdBy"] = created_by
        product_id = self.db.create_document("products", body)
        logger.info("product_created", product_id=product_id, images=len(body["images"]))
        return {"productId": product_id, "images": body["images"]}

    def update_product(self, product_id: str, form: dict, uploaded: Iterable[str] = ()) -> dict:
        """Replace a product's fields. images, sizes and colors are taken as
        the full desired state, not merged with what is stored."""
        _id = parse_id(product_id, "product id")
        body = build_product(form, uploaded)
        body["updatedAt"] = utcnow()
        result = self.products.update_one({"_id": _id}, {"$set": body})
        if result.matched_count == 0:
            raise NotFoundError("Product not found")
        logger.info("product_updated", product_id=product_id)
        return {"productId": product_id, "images": body["images"]}

    def delete_product(self, product_id: str) -> None:
        result = self.products.delete_one({"_id": parse_id(product_id, "product id")})
        if result.deleted_count == 0:
            raise NotFoundError("Product not found")
        logger.info("product_deleted", product_id=product_id)

    def add_stock(self, product_id: str, stock_update: Optional[dict]) -> dict:
        """Increment inventory.

        A positive ``"One Size"`` entry bumps only the aggregate ``stock``.
        Otherwise each positive entry bumps ``sizes.<label>`` and the
        aggregate grows by their sum. Non-positive quantities are ignored.
        Fractional quantities are rejected.

        ``sizes["One Size"]`` is not touched by a one-size top-up and keeps
        the value it was created with; only ``stock`` grows.
        """
        if not isinstance(stock_update, dict) or not stock_update:
            raise ValidationError("Stock update data is required")
        product = self._find(product_id)

        inc = {}
        total_added = 0
        one_size = _to_int(stock_update.get(ONE_SIZE), f"Quantity for size {ONE_SIZE}")
        if one_size is not None and one_size > 0:
            inc["stock"] = one_size
            total_added = one_size
        else:
            for label, qty in stock_update.items():
                qty = _to_int(qty, f"Quantity for size {label}")
                if label == ONE_SIZE or qty is None or qty <= 0:
                    continue
                inc[f"sizes.{label}"] = qty
                total_added += qty
            if total_added:
                inc["stock"] = total_added

        if not inc:
            raise ValidationError("No valid stock quantities provided")

        self.products.update_one({"_id": product["_id"]}, {"$inc": inc, "$set": {"updatedAt": utcnow()}})
        updated = self.products.find_one({"_id": product["_id"]})
        logger.info("stock_added", product_id=product_id, total_added=total_added)
        return {
            "totalStock": updated.get("stock", 0),
            "totalAdded": total_added,
            "sizes": updated.get("sizes", {}),
            "updatedProduct": to_str_id(updated),
        }

    def seed_products(self, force: bool = False) -> int:
        if self.products.count_documents({}) > 0 and not force:
            return 0
        if force:
            self.products.delete_many({})
        for item in DEMO_PRODUCTS:
            self.create_product(item, created_by="system")
        return len(DEMO_PRODUCTS)

    # ---------- Categories ----------

    def list_categories(self) -> list:
        return [to_str_id(c) for c in self.db.get_documents("categories", sort=[("name", 1)])]

    def add_category(self, name: str, description: str = "") -> dict:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Category name is required")
        pattern = re.compile(f"^{re.escape(name)}$", re.IGNORECASE)
        if self.db["categories"].find_one({"name": pattern}):
            raise ValidationError("Category already exists")
        category = {"name": name, "description": description or "", "createdAt": utcnow(), "createdBy": "admin"}
        result = self.db["categories"].insert_one(category)
        category["_id"] = result.inserted_id
        logger.info("category_created", name=name)
        return to_str_id(category)
