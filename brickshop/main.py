import logging
from contextlib import asynccontextmanager
from typing import List, Optional

import uvicorn
from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse

from brickshop import config
from brickshop.db import GraphStore
from brickshop.errors import (
    BrickshopError,
    ConstraintViolation,
    NotFound,
    QueryFailed,
    StoreUnavailable,
)
from brickshop.models import (
    Category,
    NewCategory,
    NewOrder,
    NewProduct,
    NewRating,
    PlacedOrder,
    Product,
    RatingAck,
)
from brickshop.services import Services

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    NotFound: 404,
    ConstraintViolation: 409,
    QueryFailed: 500,
    StoreUnavailable: 503,
}


def get_services(request: Request) -> Services:
    return request.app.state.services


def create_app(services: Optional[Services] = None) -> FastAPI:
    """Build the API around ``services``; without them, connect to Neo4j on startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = getattr(app.state, "services", None) is None
        if owned:
            config.configure_logging()
            app.state.services = Services.build(GraphStore())
            logger.info("connected to %s", config.NEO4J_URI)
        yield
        if owned:
            app.state.services.close()

    app = FastAPI(title="Brickshop Graph Reco API", version="0.1.0", lifespan=lifespan)
    if services is not None:
        app.state.services = services

    for error_type, status in ERROR_STATUS.items():
        app.add_exception_handler(error_type, _error_handler(status))

    register_routes(app)
    return app


def _error_handler(status: int):
    async def handler(request: Request, exc: BrickshopError) -> JSONResponse:
        if status >= 500:
            logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=status, content={"detail": str(exc)})

    return handler


def register_routes(app: FastAPI) -> None:
    @app.get("/health")
    def health(services: Services = Depends(get_services)):
        try:
            services.store.ping()
            return {"status": "ok"}
        except BrickshopError as e:
            return {"status": "error", "detail": str(e)}

    @app.get("/")
    def root():
        return {"status": "ok", "docs": "/docs"}

    # ---------- Categories ----------
    @app.get("/categories", response_model=List[Category])
    def list_categories(services: Services = Depends(get_services)):
        return services.catalog.list_categories()

    @app.post("/categories", response_model=Category, status_code=201)
    def create_category(body: NewCategory, services: Services = Depends(get_services)):
        return services.catalog.create_category(body.name)

    # ---------- Products ----------
    @app.get("/products", response_model=List[Product])
    def list_products(services: Services = Depends(get_services)):
        return services.catalog.list_products()

    @app.post("/products", response_model=Product, status_code=201)
    def create_product(body: NewProduct, services: Services = Depends(get_services)):
        return services.catalog.create_product(body)

    @app.get("/products/most-rated", response_model=List[Product])
    def most_rated(
        limit: int = Query(5, ge=1, le=50),
        services: Services = Depends(get_services),
    ):
        return services.ratings.top_rated_products(limit)

    @app.get("/products/{product_id}", response_model=Product)
    def get_product(product_id: int, services: Services = Depends(get_services)):
        return services.catalog.get_product(product_id)

    @app.post("/products/{product_id}/rate", response_model=RatingAck)
    def rate_product(product_id: int, body: NewRating, services: Services = Depends(get_services)):
        return services.catalog.rate_product(product_id, body.user_id, body.value)

    @app.get("/products/{product_id}/also-bought", response_model=List[Product])
    def also_bought(product_id: int, services: Services = Depends(get_services)):
        return services.copurchase.also_bought_with(product_id)

    # ---------- Users ----------
    @app.get("/users/{user_id}/recommendations", response_model=List[Product])
    def recommendations(user_id: int, services: Services = Depends(get_services)):
        return services.recommender.recommended_for(user_id)

    # ---------- Orders ----------
    @app.post("/orders", response_model=PlacedOrder, status_code=201)
    def place_order(body: NewOrder, services: Services = Depends(get_services)):
        return services.orders.place_order(body.user_id, body.product_ids)

    @app.get("/orders/history", response_model=List[PlacedOrder])
    def order_history(user: int = Query(...), services: Services = Depends(get_services)):
        return services.orders.order_history(user)


app = create_app()


def serve():
    uvicorn.run("brickshop.main:app", host=config.API_HOST, port=config.API_PORT)


if __name__ == "__main__":
    serve()
