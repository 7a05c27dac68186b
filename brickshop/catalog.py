import logging
from typing import List

from brickshop.db import GraphStore
from brickshop.errors import ConstraintViolation, NotFound
from brickshop.models import (
    Category,
    NewProduct,
    Product,
    RatingAck,
    to_record,
    to_records,
)

logger = logging.getLogger(__name__)

# Projection shared by every query returning products; expects `p` bound to the
# Product node and `c` to its (optional) Category.
PRODUCT_FIELDS = """
    id(p) AS id, p.name AS name, p.price AS price,
    p.elements AS elements, p.minifigures AS minifigures,
    p.imageUrl AS image_url, c.name AS category
"""


class CatalogRepository:
    """Categories, products and the RATES upsert."""

    def __init__(self, store: GraphStore):
        self.store = store

    def create_category(self, name: str) -> Category:
        rows = self.store.execute(
            "CREATE (c:Category {name: $name}) RETURN id(c) AS id, c.name AS name",
            {"name": name},
        )
        category = to_record(Category, rows[0])
        logger.info("created category %s (%s)", category.id, category.name)
        return category

    def list_categories(self) -> List[Category]:
        rows = self.store.execute(
            "MATCH (c:Category) RETURN id(c) AS id, c.name AS name ORDER BY name, id"
        )
        return to_records(Category, rows)

    def create_product(self, data: NewProduct) -> Product:
        # MATCH and CREATE in one statement: no category, no product
        rows = self.store.execute(
            f"""
            MATCH (c:Category) WHERE id(c) = $category_id
            CREATE (p:Product {{
                name: $name, price: $price, elements: $elements,
                minifigures: $minifigures, imageUrl: $image_url
            }})-[:BELONGS_TO]->(c)
            RETURN {PRODUCT_FIELDS}
            """,
            data.model_dump(),
        )
        if not rows:
            raise ConstraintViolation(f"category {data.category_id} does not exist")
        product = to_record(Product, rows[0])
        logger.info("created product %s in category %s", product.id, product.category)
        return product

    def get_product(self, product_id: int) -> Product:
        rows = self.store.execute(
            f"""
            MATCH (p:Product) WHERE id(p) = $product_id
            OPTIONAL MATCH (p)-[:BELONGS_TO]->(c:Category)
            RETURN {PRODUCT_FIELDS}
            """,
            {"product_id": product_id},
        )
        if not rows:
            raise NotFound("Product", product_id)
        return to_record(Product, rows[0])

    def list_products(self) -> List[Product]:
        rows = self.store.execute(
            f"""
            MATCH (p:Product)
            OPTIONAL MATCH (p)-[:BELONGS_TO]->(c:Category)
            RETURN {PRODUCT_FIELDS}
            ORDER BY id
            """
        )
        return to_records(Product, rows)

    def rate_product(self, product_id: int, user_id: int, value: float) -> RatingAck:
        """Upsert the user's rating of a product; a second call overwrites the value."""
        rows = self.store.execute(
            """
            MATCH (p:Product) WHERE id(p) = $product_id
            MATCH (u:User) WHERE id(u) = $user_id
            MERGE (u)-[r:RATES]->(p)
            SET r.value = $value
            RETURN id(r) AS id, r.value AS value
            """,
            {"product_id": product_id, "user_id": user_id, "value": value},
        )
        if not rows:
            # tell the caller which side is missing
            if not self._exists("Product", product_id):
                raise NotFound("Product", product_id)
            raise NotFound("User", user_id)
        return to_record(RatingAck, rows[0])

    def _exists(self, label: str, node_id: int) -> bool:
        rows = self.store.execute(
            f"MATCH (n:{label}) WHERE id(n) = $node_id RETURN count(n) AS n",
            {"node_id": node_id},
        )
        return bool(rows and rows[0]["n"])
