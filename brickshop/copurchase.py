from typing import List

from brickshop.catalog import PRODUCT_FIELDS
from brickshop.db import GraphStore
from brickshop.models import Product, to_records

ALSO_BOUGHT_LIMIT = 5


class CoPurchaseAnalyzer:
    def __init__(self, store: GraphStore):
        self.store = store

    def also_bought_with(self, product_id: int, limit: int = ALSO_BOUGHT_LIMIT) -> List[Product]:
        """Products found in the same orders as ``product_id``, most shared orders first.

        An unknown or never-ordered product simply matches nothing.
        """
        if limit < 1:
            raise ValueError("limit must be >= 1")
        rows = self.store.execute(
            f"""
            MATCH (seed:Product)<-[:CONTAINS]-(o:Order)-[:CONTAINS]->(p:Product)
            WHERE id(seed) = $product_id AND p <> seed
            WITH p, count(DISTINCT o) AS orders
            ORDER BY orders DESC, id(p)
            LIMIT $limit
            OPTIONAL MATCH (p)-[:BELONGS_TO]->(c:Category)
            RETURN {PRODUCT_FIELDS}, orders
            ORDER BY orders DESC, id
            """,
            {"product_id": product_id, "limit": limit},
        )
        return to_records(Product, rows)
