import math

import pytest

from attention_router.retrieval.vector_index import cosine_similarity
from attention_router.types import Chunk, RoutingEvent, Segment, TextEntity


def _chunk(start: int, end: int, level: str = "parent") -> Chunk:
    return Chunk(
        id="c1",
        source_entity_id="e1",
        source_entity_type="note",
        start_token=start,
        end_token=end,
        level=level,  # type: ignore[arg-type]
    )


def test_chunk_requires_positive_span() -> None:
    assert _chunk(0, 1).token_count == 1

    with pytest.raises(ValueError):
        _chunk(5, 5)
    with pytest.raises(ValueError):
        _chunk(7, 3)
    with pytest.raises(ValueError):
        Segment(text="x", start_token=2, end_token=2)


def test_chunk_level_is_validated() -> None:
    assert _chunk(0, 4, "child").level == "child"

    with pytest.raises(ValueError):
        _chunk(0, 4, "grandchild")


def test_chunk_dict_round_trip() -> None:
    chunk = _chunk(10, 35, "child")

    assert Chunk.from_dict(chunk.to_dict()) == chunk


def test_cosine_similarity_properties() -> None:
    a = [0.6, 0.8, 0.0]
    b = [0.1, -0.4, 0.9]

    assert math.isclose(cosine_similarity(a, a), 1.0)
    assert math.isclose(cosine_similarity(a, b), cosine_similarity(b, a))
    assert cosine_similarity(a, [0.0, 0.0, 0.0]) == 0.0
    assert cosine_similarity(a, [1.0, 0.0]) == 0.0
    assert cosine_similarity([], []) == 0.0


def test_event_utterance_and_entity_text() -> None:
    assert RoutingEvent("c", {"transcription": "add milk"}).utterance == "add milk"
    assert RoutingEvent("c", {"transcription": 42}).utterance == ""
    assert RoutingEvent("c").utterance == ""

    entity = TextEntity(entity_id="n1", text="  body text ", title="Title")
    assert entity.chunkable_text() == "Title\n  body text"
