from dataclasses import dataclass

from brickshop.catalog import CatalogRepository
from brickshop.copurchase import CoPurchaseAnalyzer
from brickshop.db import GraphStore
from brickshop.orders import OrderService
from brickshop.ratings import RatingAggregator
from brickshop.recommend import SimilarityRecommender


@dataclass(frozen=True)
class Services:
    """Every component, built once at startup around a single store."""

    store: GraphStore
    catalog: CatalogRepository
    ratings: RatingAggregator
    copurchase: CoPurchaseAnalyzer
    recommender: SimilarityRecommender
    orders: OrderService

    @classmethod
    def build(cls, store: GraphStore) -> "Services":
        return cls(
            store=store,
            catalog=CatalogRepository(store),
            ratings=RatingAggregator(store),
            copurchase=CoPurchaseAnalyzer(store),
            recommender=SimilarityRecommender(store),
            orders=OrderService(store),
        )

    def close(self) -> None:
        self.store.close()
