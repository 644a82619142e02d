import pytest

from atelier.services.similarity import cosine_similarity, rank_similar


def test_cosine_similarity():
    assert cosine_similarity([1, 0], [1, 0]) == pytest.approx(1.0)
    assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)
    assert cosine_similarity([1, 1], [-1, -1]) == pytest.approx(-1.0)


def test_degenerate_vectors_score_zero():
    assert cosine_similarity([], [1.0]) == 0.0
    assert cosine_similarity(None, [1.0]) == 0.0
    assert cosine_similarity([1.0, 2.0], [1.0]) == 0.0
    assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0


def test_rank_similar_filters_sorts_and_limits():
    candidates = [
        ("far", [0.0, 1.0]),
        ("close", [1.0, 0.1]),
        ("same", [2.0, 0.0]),
        ("missing", None),
        ("near", [1.0, 0.5]),
    ]
    ranked = rank_similar([1.0, 0.0], candidates, threshold=0.75, limit=2)

    assert [item for item, _ in ranked] == ["same", "close"]
    assert ranked[0][1] == pytest.approx(1.0)
