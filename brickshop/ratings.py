from typing import List

from brickshop.catalog import PRODUCT_FIELDS
from brickshop.db import GraphStore
from brickshop.models import Product, to_records


class RatingAggregator:
    def __init__(self, store: GraphStore):
        self.store = store

    def top_rated_products(self, limit: int = 5) -> List[Product]:
        """Products with the highest mean RATES value, best first.

        Products nobody has rated never match the pattern, so they are left
        out rather than counted as a zero rating.
        """
        if limit < 1:
            raise ValueError("limit must be >= 1")
        rows = self.store.execute(
            f"""
            MATCH (p:Product)<-[r:RATES]-(:User)
            WITH p, avg(r.value) AS rating
            ORDER BY rating DESC
            LIMIT $limit
            OPTIONAL MATCH (p)-[:BELONGS_TO]->(c:Category)
            RETURN {PRODUCT_FIELDS}, rating
            ORDER BY rating DESC
            """,
            {"limit": limit},
        )
        return to_records(Product, rows)
