from typing import ClassVar, Iterable, List, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from brickshop.errors import QueryFailed


class Record(BaseModel):
    # camelCase on the wire, snake_case in Python and in Cypher aliases
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    kind: ClassVar[str] = ""


class Category(Record):
    kind: ClassVar[str] = "Category"

    id: int
    name: str


class Product(Record):
    kind: ClassVar[str] = "Product"

    id: int
    name: str
    price: float
    elements: int
    minifigures: int
    image_url: str
    # read through BELONGS_TO, so the key is always present even when null
    category: Optional[str]


class OrderedProduct(Product):
    quantity: int = 1
    rating: Optional[float] = None


class PlacedOrder(Record):
    kind: ClassVar[str] = "Order"

    id: int
    time: int
    products: List[OrderedProduct]


class RatingAck(Record):
    kind: ClassVar[str] = "Rating"

    id: int
    value: float


# ---------- Payloads ----------
class NewCategory(Record):
    name: str = Field(min_length=1)


class NewProduct(Record):
    name: str = Field(min_length=1)
    price: float = Field(ge=0)
    category_id: int
    elements: int = Field(ge=0)
    minifigures: int = Field(ge=0)
    image_url: str = ""


class NewRating(Record):
    user_id: int
    value: float = Field(ge=1, le=5)


class NewOrder(Record):
    user_id: int
    product_ids: List[int] = Field(min_length=1)


# ---------- Row mapping ----------
R = TypeVar("R", bound=BaseModel)


def to_record(model: Type[R], row: dict) -> R:
    """Map one store row onto a fixed record type, failing loudly on bad shape."""
    try:
        return model.model_validate(row)
    except ValidationError as exc:
        raise QueryFailed(f"unexpected {model.__name__} row shape") from exc


def to_records(model: Type[R], rows: Iterable[dict]) -> List[R]:
    return [to_record(model, row) for row in rows]
