"""
User-based collaborative filtering over RATES edges.

The graph hands back raw (user, product, value) triples for the target user
and everybody who rated something in common with them; the similarity maths
runs here as plain functions so it can be exercised without a database.
"""

import logging
import math
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Tuple

from brickshop.catalog import PRODUCT_FIELDS
from brickshop.db import GraphStore, fetch
from brickshop.models import Product, to_records

logger = logging.getLogger(__name__)

MIN_SHARED_RATINGS = 2
NEIGHBOURHOOD_SIZE = 10
RECOMMENDATION_LIMIT = 5

Ratings = Dict[int, Dict[int, float]]  # user id -> product id -> value


def group_ratings(rows: Iterable[dict]) -> Ratings:
    ratings: Ratings = defaultdict(dict)
    for row in rows:
        ratings[row["user_id"]][row["product_id"]] = float(row["value"])
    return dict(ratings)


def mean_ratings(ratings: Ratings) -> Dict[int, float]:
    return {
        user: sum(values.values()) / len(values)
        for user, values in ratings.items()
        if values
    }


def pearson(
    r1: Dict[int, float],
    r2: Dict[int, float],
    mean1: float,
    mean2: float,
    min_shared: int = MIN_SHARED_RATINGS,
) -> Optional[float]:
    """Pearson correlation of two users over the products both have rated.

    Deviations are taken from each user's mean over *all* their ratings.
    Returns None when the overlap is smaller than ``min_shared`` or when
    either side has no variance on the overlap.
    """
    shared = r1.keys() & r2.keys()
    if len(shared) < min_shared:
        return None
    nom = 0.0
    sq1 = 0.0
    sq2 = 0.0
    for product in shared:
        d1 = r1[product] - mean1
        d2 = r2[product] - mean2
        nom += d1 * d2
        sq1 += d1 * d1
        sq2 += d2 * d2
    denom = math.sqrt(sq1 * sq2)
    if denom == 0:
        return None
    return nom / denom


def nearest_neighbours(
    user_id: int,
    ratings: Ratings,
    k: int = NEIGHBOURHOOD_SIZE,
    min_shared: int = MIN_SHARED_RATINGS,
) -> List[Tuple[int, float]]:
    """The ``k`` users most correlated with ``user_id``, as (user, pearson) pairs."""
    target = ratings.get(user_id)
    if not target:
        return []
    means = mean_ratings(ratings)
    scored = []
    for other, other_ratings in ratings.items():
        if other == user_id:
            continue
        sim = pearson(target, other_ratings, means[user_id], means[other], min_shared)
        if sim is not None:
            scored.append((other, sim))
    scored.sort(key=lambda pair: (-pair[1], pair[0]))
    return scored[:k]


def score_products(
    user_id: int,
    ratings: Ratings,
    neighbours: List[Tuple[int, float]],
) -> Dict[int, float]:
    """Sum of pearson * rating over the neighbours, for products the user has not rated."""
    seen = ratings.get(user_id, {})
    scores: Dict[int, float] = defaultdict(float)
    for neighbour, sim in neighbours:
        for product, value in ratings.get(neighbour, {}).items():
            if product in seen:
                continue
            scores[product] += sim * value
    return dict(scores)


def top_scored(scores: Dict[int, float], limit: int) -> List[int]:
    ranked = sorted(scores.items(), key=lambda item: (-item[1], item[0]))
    return [product for product, _ in ranked[:limit]]


def recommend(user_id: int, ratings: Ratings, limit: int = RECOMMENDATION_LIMIT) -> List[int]:
    """Ranked product ids for ``user_id``; empty when nobody qualifies as a neighbour."""
    neighbours = nearest_neighbours(user_id, ratings)
    logger.debug("user %s has %d neighbours", user_id, len(neighbours))
    if not neighbours:
        return []
    return top_scored(score_products(user_id, ratings, neighbours), limit)


# The target plus every user sharing at least one rated product with them,
# with all of their ratings so that per-user means are exact.
RATINGS_QUERY = """
MATCH (u1:User)-[:RATES]->(:Product)<-[:RATES]-(u2:User)
WHERE id(u1) = $user_id AND u2 <> u1
WITH u1, collect(DISTINCT u2) AS others
UNWIND [u1] + others AS u
MATCH (u)-[r:RATES]->(p:Product)
RETURN id(u) AS user_id, id(p) AS product_id, r.value AS value
"""

PRODUCTS_QUERY = f"""
MATCH (p:Product) WHERE id(p) IN $product_ids
OPTIONAL MATCH (p)-[:BELONGS_TO]->(c:Category)
RETURN {PRODUCT_FIELDS}
"""


class SimilarityRecommender:
    def __init__(self, store: GraphStore):
        self.store = store

    def recommended_for(self, user_id: int, limit: int = RECOMMENDATION_LIMIT) -> List[Product]:
        if limit < 1:
            raise ValueError("limit must be >= 1")
        return self.store.read(self._recommend, user_id, limit)

    @staticmethod
    def _recommend(tx, user_id: int, limit: int) -> List[Product]:
        ratings = group_ratings(fetch(tx, RATINGS_QUERY, user_id=user_id))
        ranked = recommend(user_id, ratings, limit)
        if not ranked:
            return []
        products = {
            product.id: product
            for product in to_records(Product, fetch(tx, PRODUCTS_QUERY, product_ids=ranked))
        }
        return [products[pid] for pid in ranked if pid in products]
