"""
Variant grouping.

Products linked as variants of each other ("colors") form an undirected
graph whose edges live in each product's own ``colors`` list: an entry on A
pointing at B must be matched by an entry on B pointing at A.

``group`` makes the given products a clique, replacing whatever links they
had before. ``ungroup`` isolates the given products, cutting their links in
both directions and leaving edges between other products alone.
"""

from typing import Iterable, List

from database import Database, parse_id, utcnow
from errors import NotFoundError, ValidationError
from log import get_logger
from schemas import ColorLink

logger = get_logger(__name__)

PLACEHOLDER_HEX = "#000000"


def _unique(ids: Iterable[str]) -> List[str]:
    """Canonical hex ids, duplicates dropped, first occurrence order kept."""
    return list(dict.fromkeys(str(parse_id(i, "product id")) for i in ids))


def primary_image(product: dict) -> str:
    images = product.get("images") or []
    return product.get("image") or (images[0] if images else "")


def link_to(product: dict) -> dict:
    return ColorLink(
        id=str(product["_id"]),
        name=product.get("name") or "",
        image=primary_image(product),
        hex=PLACEHOLDER_HEX,
    ).model_dump()


class VariantGrouping:
    def __init__(self, db: Database):
        self.db = db

    def group(self, product_ids: Iterable[str]) -> List[str]:
        ids = _unique(product_ids or [])
        if len(ids) < 2:
            raise ValidationError("Please select at least 2 products to group.")
        object_ids = [parse_id(i) for i in ids]

        products = list(self.db["products"].find({"_id": {"$in": object_ids}}))
        if len(products) != len(object_ids):
            raise NotFoundError("One or more products not found.")

        now = utcnow()
        with self.db.transaction() as session:
            for product in products:
                colors = [link_to(other) for other in products if other["_id"] != product["_id"]]
                self.db["products"].update_one(
                    {"_id": product["_id"]},
                    {"$set": {"colors": colors, "updatedAt": now}},
                    session=session,
                )
        logger.info("products_grouped", product_ids=ids)
        return ids

    def ungroup(self, product_ids: Iterable[str]) -> List[str]:
        ids = _unique(product_ids or [])
        if not ids:
            raise ValidationError("Please select products to ungroup.")
        object_ids = [parse_id(i) for i in ids]

        now = utcnow()
        with self.db.transaction() as session:
            # incoming edges, from every product
            self.db["products"].update_many(
                {"colors.id": {"$in": ids}},
                {"$pull": {"colors": {"id": {"$in": ids}}}, "$set": {"updatedAt": now}},
                session=session,
            )
            # outgoing edges
            self.db["products"].update_many(
                {"_id": {"$in": object_ids}},
                {"$set": {"colors": [], "updatedAt": now}},
                session=session,
            )
        logger.info("products_ungrouped", product_ids=ids)
        return ids
