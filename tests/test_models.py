import pytest
from pydantic import ValidationError

from brickshop.errors import QueryFailed
from brickshop.models import NewOrder, NewProduct, NewRating, Product, to_record, to_records

from conftest import product_row


def test_product_row_maps_to_record():
    product = to_record(Product, product_row(3, name="Fire Station"))
    assert product.id == 3
    assert product.name == "Fire Station"
    assert product.kind == "Product"


def test_missing_field_fails_loudly():
    row = product_row(3)
    del row["price"]
    with pytest.raises(QueryFailed):
        to_record(Product, row)


def test_missing_category_key_is_rejected_but_null_is_allowed():
    row = product_row(3)
    del row["category"]
    with pytest.raises(QueryFailed):
        to_record(Product, row)
    assert to_record(Product, product_row(3, category=None)).category is None


def test_records_are_read_only():
    product = to_record(Product, product_row(1))
    with pytest.raises(ValidationError):
        product.name = "changed"


def test_wire_format_is_camel_case():
    dumped = to_record(Product, product_row(1)).model_dump(by_alias=True)
    assert "imageUrl" in dumped
    assert "image_url" not in dumped


def test_payloads_accept_camel_case():
    data = NewProduct.model_validate(
        {"name": "Bookshop", "price": 199.9, "categoryId": 4,
         "elements": 2504, "minifigures": 5, "imageUrl": "x.png"}
    )
    assert data.category_id == 4
    assert NewOrder.model_validate({"userId": 7, "productIds": [1, 2]}).product_ids == [1, 2]


@pytest.mark.parametrize("value", [0, 5.5])
def test_rating_value_is_bounded(value):
    with pytest.raises(ValidationError):
        NewRating(user_id=1, value=value)


def test_empty_order_payload_is_rejected():
    with pytest.raises(ValidationError):
        NewOrder(user_id=1, product_ids=[])


def test_to_records_keeps_order():
    products = to_records(Product, [product_row(2), product_row(1)])
    assert [p.id for p in products] == [2, 1]
