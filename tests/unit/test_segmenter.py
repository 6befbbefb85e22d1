import pytest

from attention_router.config import SegmenterConfig
from attention_router.ingest.segmenter import TextSegmenter, count_tokens, tokenize


def test_empty_text_yields_no_segments() -> None:
    segmenter = TextSegmenter()

    assert segmenter.split("") == []
    assert segmenter.split("   \n\t ") == []


def test_sentence_split_keeps_initials_and_decimals() -> None:
    segmenter = TextSegmenter()

    sentences = segmenter.split_sentences(
        "Agent J. Smith paid 3.50 dollars at noon. He sat down quietly! Was it late? Yes."
    )

    assert sentences == [
        "Agent J. Smith paid 3.50 dollars at noon.",
        "He sat down quietly!",
        "Was it late?",
        "Yes.",
    ]


def test_structured_segments_have_contiguous_positions() -> None:
    segmenter = TextSegmenter()
    text = "The first sentence has five words. Then comes the second one. Short."

    segments = segmenter.split(text)

    assert [segment.text for segment in segments] == [
        "The first sentence has five words.",
        "Then comes the second one.",
        "Short.",
    ]
    assert segments[0].start_token == 0
    for previous, current in zip(segments, segments[1:]):
        assert current.start_token == previous.end_token
    assert segments[-1].end_token == count_tokens(text)


def test_unpunctuated_text_falls_back_to_sliding_windows() -> None:
    segmenter = TextSegmenter()
    words = [f"word{i}" for i in range(450)]

    segments = segmenter.split(" ".join(words), window_size=200, overlap=50)

    assert [(s.start_token, s.end_token) for s in segments] == [(0, 200), (150, 350), (300, 450)]
    assert segments[-1].token_count == 150
    assert tokenize(segments[1].text) == words[150:350]


def test_overlap_must_be_smaller_than_window() -> None:
    segmenter = TextSegmenter()

    with pytest.raises(ValueError):
        segmenter.split("some text here", window_size=10, overlap=10)
    with pytest.raises(ValueError):
        SegmenterConfig(window_size=10, overlap=12)


def test_unstructured_threshold_is_exclusive() -> None:
    segmenter = TextSegmenter()
    unpunctuated = "and then we went home"

    exactly_five_percent = ["We left early."] + [unpunctuated] * 19
    below_five_percent = ["We left early."] + [unpunctuated] * 20

    assert segmenter.is_unstructured_sentences(exactly_five_percent) is False
    assert segmenter.is_unstructured_sentences(below_five_percent) is True


def test_is_unstructured_on_raw_text() -> None:
    segmenter = TextSegmenter()

    assert segmenter.is_unstructured("remind me to call mom tomorrow at five") is True
    assert segmenter.is_unstructured("Remind me to call mom. It is her birthday.") is False
