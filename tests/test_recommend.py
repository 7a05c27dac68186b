import math

import pytest

from brickshop.recommend import (
    SimilarityRecommender,
    group_ratings,
    mean_ratings,
    nearest_neighbours,
    pearson,
    recommend,
    score_products,
    top_scored,
)

from conftest import product_row


def triples(*rows):
    return [{"user_id": u, "product_id": p, "value": v} for u, p, v in rows]


# u1 and u2 disagree on p1/p2, u3 gives both the same score
BASE = [(1, 1, 5), (1, 2, 3), (2, 1, 4), (2, 2, 5), (3, 1, 1), (3, 2, 1)]


def test_group_and_mean():
    ratings = group_ratings(triples(*BASE))
    assert ratings[1] == {1: 5.0, 2: 3.0}
    assert mean_ratings(ratings) == {1: 4.0, 2: 4.5, 3: 1.0}


def test_pearson_of_opposite_users_is_minus_one():
    assert pearson({1: 5, 2: 3}, {1: 4, 2: 5}, 4.0, 4.5) == pytest.approx(-1.0)


def test_pearson_needs_two_shared_products():
    assert pearson({1: 5, 2: 3}, {1: 4, 3: 5}, 4.0, 4.5) is None


def test_pearson_without_variance_is_undefined():
    assert pearson({1: 5, 2: 3}, {1: 1, 2: 1}, 4.0, 1.0) is None


def test_zero_variance_user_is_not_a_neighbour():
    ratings = group_ratings(triples(*BASE))
    neighbours = nearest_neighbours(1, ratings)
    assert [user for user, _ in neighbours] == [2]
    assert neighbours[0][1] == pytest.approx(-1.0)
    assert all(not math.isnan(sim) for _, sim in neighbours)


def test_already_rated_products_are_never_recommended():
    ratings = group_ratings(triples(*BASE, (2, 3, 5), (3, 3, 5)))
    ranked = recommend(1, ratings)
    assert ranked == [3]
    assert 1 not in ranked and 2 not in ranked


def test_score_is_weighted_sum_over_neighbours():
    ratings = group_ratings(triples(*BASE, (2, 3, 5), (3, 3, 5)))
    neighbours = dict(nearest_neighbours(1, ratings))
    # u2: deviations (1, -1) vs (-2/3, 1/3) -> -3/sqrt(10); u3: (-4/3, -4/3) -> 0
    assert neighbours[2] == pytest.approx(-3 / math.sqrt(10))
    assert neighbours[3] == pytest.approx(0.0)

    scores = score_products(1, ratings, list(neighbours.items()))
    assert scores == {3: pytest.approx(neighbours[2] * 5 + neighbours[3] * 5)}


def test_score_products_sums_contributions():
    ratings = {1: {1: 4.0}, 2: {1: 3.0, 5: 4.0, 6: 2.0}, 3: {5: 2.0}}
    scores = score_products(1, ratings, [(2, 0.5), (3, 1.0)])
    assert scores == {5: pytest.approx(4.0), 6: pytest.approx(1.0)}


def test_neighbourhood_is_capped_at_ten():
    ratings = {1: {1: 5.0, 2: 1.0, 3: 3.0}}
    for user in range(2, 16):
        # the bigger the id, the weaker the agreement with user 1
        ratings[user] = {1: 5.0, 2: 1.0 + (user - 2) * 0.3, 3: 3.0}
    neighbours = nearest_neighbours(1, ratings)
    assert len(neighbours) == 10
    sims = [sim for _, sim in neighbours]
    assert sims == sorted(sims, reverse=True)


def test_top_scored_breaks_ties_by_product_id():
    assert top_scored({9: 1.0, 4: 1.0, 7: 3.0}, 2) == [7, 4]


def test_user_without_ratings_gets_nothing():
    ratings = group_ratings(triples(*BASE))
    assert recommend(42, ratings) == []
    assert recommend(42, {}) == []


def test_recommender_reads_in_one_transaction(store):
    rows = triples(*BASE, (2, 3, 5), (2, 4, 4), (3, 3, 5))
    # store answers product details in its own order
    store.responses = [rows, [product_row(3), product_row(4)]]

    products = SimilarityRecommender(store).recommended_for(1)

    # u2 now correlates at -1 and u3 at 0: p4 scores -4, p3 scores -5
    assert [p.id for p in products] == [4, 3]
    assert store.transactions == [("read", "committed")]
    assert store.calls[0][1] == {"user_id": 1}
    assert store.calls[1][1] == {"product_ids": [4, 3]}


def test_recommender_without_neighbours_skips_product_lookup(store):
    store.responses = [[]]
    assert SimilarityRecommender(store).recommended_for(5) == []
    assert len(store.calls) == 1
