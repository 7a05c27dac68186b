import pytest

from brickshop.errors import QueryFailed
from brickshop.ratings import RatingAggregator

from conftest import product_row


def test_top_rated_keeps_store_ranking(store):
    store.responses = [[
        {**product_row(5), "rating": 4.8},
        {**product_row(2), "rating": 4.1},
    ]]

    products = RatingAggregator(store).top_rated_products(2)

    assert [p.id for p in products] == [5, 2]
    query, params = store.calls[0]
    assert params == {"limit": 2}
    assert "avg(r.value)" in query
    assert "ORDER BY rating DESC" in query


def test_only_rated_products_are_considered(store):
    RatingAggregator(store).top_rated_products()
    query, params = store.calls[0]
    # an inner MATCH on RATES, not OPTIONAL, so unrated products never show up
    assert query.startswith("MATCH (p:Product)<-[r:RATES]-(:User)")
    assert params == {"limit": 5}


def test_empty_graph_gives_empty_list(store):
    assert RatingAggregator(store).top_rated_products(3) == []


def test_limit_must_be_positive(store):
    with pytest.raises(ValueError):
        RatingAggregator(store).top_rated_products(0)
    assert store.calls == []


def test_store_error_propagates(store):
    store.responses = [QueryFailed("graph query failed")]
    with pytest.raises(QueryFailed):
        RatingAggregator(store).top_rated_products()
