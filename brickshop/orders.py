import logging
import time
from collections import Counter
from typing import List, Sequence

from brickshop.catalog import PRODUCT_FIELDS
from brickshop.db import GraphStore, fetch
from brickshop.errors import ConstraintViolation, NotFound
from brickshop.models import OrderedProduct, PlacedOrder, Product, to_records

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


class OrderService:
    """Order placement and history.

    An order is one Order node, one PLACED edge from the user and one CONTAINS
    edge per distinct product. Repeating a product id in the request raises the
    `quantity` on its CONTAINS edge instead of adding a second edge.
    """

    def __init__(self, store: GraphStore, clock=now_ms):
        self.store = store
        self.clock = clock

    def place_order(self, user_id: int, product_ids: Sequence[int]) -> PlacedOrder:
        if not product_ids:
            raise ConstraintViolation("an order needs at least one product")
        # Counter keeps first-seen order
        quantities = Counter(product_ids)
        order = self.store.write(self._place, user_id, dict(quantities), self.clock())
        logger.info(
            "user %s placed order %s with %d products",
            user_id, order.id, len(order.products),
        )
        return order

    @staticmethod
    def _place(tx, user_id: int, quantities: dict, placed_at: int) -> PlacedOrder:
        users = fetch(tx, "MATCH (u:User) WHERE id(u) = $user_id RETURN id(u) AS id", user_id=user_id)
        if not users:
            raise NotFound("User", user_id)

        product_ids = list(quantities)
        found = {
            product.id: product
            for product in to_records(Product, fetch(
                tx,
                f"""
                MATCH (p:Product) WHERE id(p) IN $product_ids
                OPTIONAL MATCH (p)-[:BELONGS_TO]->(c:Category)
                RETURN {PRODUCT_FIELDS}
                """,
                product_ids=product_ids,
            ))
        }
        missing = [pid for pid in product_ids if pid not in found]
        if missing:
            raise ConstraintViolation(f"unknown product ids: {missing}")

        items = [{"id": pid, "quantity": qty} for pid, qty in quantities.items()]
        rows = fetch(
            tx,
            """
            MATCH (u:User) WHERE id(u) = $user_id
            CREATE (u)-[:PLACED {time: $time}]->(o:Order {time: $time})
            WITH o
            UNWIND $items AS item
            MATCH (p:Product) WHERE id(p) = item.id
            CREATE (o)-[:CONTAINS {quantity: item.quantity}]->(p)
            RETURN id(o) AS id, count(p) AS contains
            """,
            user_id=user_id, time=placed_at, items=items,
        )
        if not rows or rows[0]["contains"] != len(items):
            raise ConstraintViolation("order was not fully written")

        products = [
            OrderedProduct(**found[pid].model_dump(), quantity=qty)
            for pid, qty in quantities.items()
        ]
        return PlacedOrder(id=rows[0]["id"], time=placed_at, products=products)

    def order_history(self, user_id: int) -> List[PlacedOrder]:
        """Every order of the user, newest first, each product carrying the user's own rating."""
        rows = self.store.execute(
            """
            MATCH (u:User)-[pl:PLACED]->(o:Order)-[ct:CONTAINS]->(p:Product)
            WHERE id(u) = $user_id
            OPTIONAL MATCH (p)-[:BELONGS_TO]->(c:Category)
            OPTIONAL MATCH (u)-[r:RATES]->(p)
            WITH o, pl, p, c, ct, r
            ORDER BY id(p)
            RETURN id(o) AS id, pl.time AS time, collect({
                id: id(p), name: p.name, price: p.price,
                elements: p.elements, minifigures: p.minifigures,
                image_url: p.imageUrl, category: c.name,
                quantity: coalesce(ct.quantity, 1), rating: r.value
            }) AS products
            ORDER BY time DESC, id DESC
            """,
            {"user_id": user_id},
        )
        return to_records(PlacedOrder, rows)
