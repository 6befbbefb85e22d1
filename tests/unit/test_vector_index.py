import math

import numpy as np
import pytest

from attention_router.config import IndexConfig
from attention_router.retrieval.vector_index import HnswIndex, cosine_similarity


def _random_vectors(count: int, dimension: int, seed: int = 7) -> list[list[float]]:
    rng = np.random.default_rng(seed)
    return rng.normal(size=(count, dimension)).tolist()


def _brute_force_top(vectors: dict[str, list[float]], query: list[float]) -> str:
    return max(vectors, key=lambda node_id: cosine_similarity(vectors[node_id], query))


def test_insert_query_and_contains() -> None:
    index = HnswIndex(3, seed=1)
    index.insert("a", [1.0, 0.0, 0.0])
    index.insert("b", [0.0, 1.0, 0.0])
    index.insert("c", [0.9, 0.1, 0.0])

    results = index.query([1.0, 0.0, 0.0], k=2)

    assert [node_id for node_id, _ in results] == ["a", "c"]
    assert math.isclose(results[0][1], 1.0)
    assert results[0][1] >= results[1][1]
    assert index.contains("b")
    assert index.size == 3
    assert index.get_vector("b") == [0.0, 1.0, 0.0]


def test_rejects_duplicate_ids_and_wrong_dimension() -> None:
    index = HnswIndex(3)
    index.insert("a", [1.0, 0.0, 0.0])

    with pytest.raises(ValueError):
        index.insert("a", [0.0, 1.0, 0.0])
    with pytest.raises(ValueError):
        index.insert("b", [1.0, 0.0])
    with pytest.raises(ValueError):
        index.query([1.0, 0.0])


def test_delete_removes_vector() -> None:
    index = HnswIndex(2)
    index.insert("a", [1.0, 0.0])
    index.insert("b", [0.0, 1.0])

    assert index.delete("a") is True
    assert index.delete("a") is False
    assert not index.contains("a")
    assert [node_id for node_id, _ in index.query([1.0, 0.0], k=5)] == ["b"]


def test_graph_search_top_hit_matches_brute_force() -> None:
    index = HnswIndex.from_config(IndexConfig(dimension=16, ef_search=50, seed=3))
    vectors = {f"v{i}": vector for i, vector in enumerate(_random_vectors(300, 16))}
    for node_id, vector in vectors.items():
        index.insert(node_id, vector)

    queries = _random_vectors(20, 16, seed=11)
    matches = sum(
        1
        for query in queries
        if index.query(query, k=1)[0][0] == _brute_force_top(vectors, query)
    )

    assert matches >= 18
    for node_id in ("v0", "v150", "v299"):
        assert index.query(vectors[node_id], k=1)[0][0] == node_id


def test_serialization_round_trip() -> None:
    index = HnswIndex(8, seed=5)
    vectors = _random_vectors(80, 8)
    for i, vector in enumerate(vectors):
        index.insert(f"id-{i}", vector)

    restored = HnswIndex.from_bytes(index.to_bytes())

    assert restored is not None
    assert restored.size == index.size
    assert restored.get_vector("id-5") == pytest.approx(index.get_vector("id-5"))
    query = vectors[42]
    assert restored.query(query, k=5, ef=100) == index.query(query, k=5, ef=100)
    assert restored.query(query, k=1)[0][0] == "id-42"


def test_empty_index_round_trip() -> None:
    restored = HnswIndex.from_bytes(HnswIndex(4).to_bytes())

    assert restored is not None
    assert restored.size == 0
    assert restored.query([1.0, 0.0, 0.0, 0.0], k=3) == []


def test_corrupt_blob_returns_none() -> None:
    index = HnswIndex(4)
    index.insert("a", [1.0, 2.0, 3.0, 4.0])
    blob = index.to_bytes()

    assert HnswIndex.from_bytes(b"definitely not an index") is None
    assert HnswIndex.from_bytes(blob[: len(blob) // 2]) is None
    assert HnswIndex.from_bytes(b"") is None
