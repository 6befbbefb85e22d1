"""Sentence-aware segmentation with a sliding-window fallback."""

from __future__ import annotations

import re

from attention_router.config import SegmenterConfig
from attention_router.types import Segment

_BOUNDARY = re.compile(r"[.!?](?=\s+[A-Z])")
_TERMINAL = re.compile(r"[.!?][\"')\]]*$")
_WHITESPACE = re.compile(r"\s+")


def tokenize(text: str) -> list[str]:
    """Whitespace tokenization shared by every chunking component."""
    return [token for token in _WHITESPACE.split(text) if token]


def count_tokens(text: str) -> int:
    return len(tokenize(text))


class TextSegmenter:
    """Splits raw text into token-bounded segments.

    Punctuated text is split on sentence boundaries: terminal punctuation
    followed by whitespace and a capital letter. A period that closes a single
    capital letter (an initial such as ``J. Smith``) is not a boundary. Decimal
    points never qualify because a boundary needs whitespace after the mark.

    Voice transcriptions often arrive without punctuation. When fewer than
    `min_punctuation_ratio` of the sentence candidates end in terminal
    punctuation the text is treated as unstructured and cut into overlapping
    fixed-size windows instead (`stride = window_size - overlap`), the last
    window possibly shorter.
    """

    def __init__(self, config: SegmenterConfig | None = None) -> None:
        self.config = config or SegmenterConfig()

    def split(
        self,
        text: str,
        *,
        window_size: int | None = None,
        overlap: int | None = None,
    ) -> list[Segment]:
        window = window_size if window_size is not None else self.config.window_size
        step_overlap = overlap if overlap is not None else self.config.overlap
        if step_overlap >= window:
            raise ValueError("overlap must be less than window_size")
        if not text.strip():
            return []

        sentences = self.split_sentences(text)
        if not self.is_unstructured_sentences(sentences):
            return _segments_from_sentences(sentences)
        return _sliding_windows(tokenize(text), window, step_overlap)

    def split_sentences(self, text: str) -> list[str]:
        stripped = text.strip()
        sentences: list[str] = []
        start = 0
        for match in _BOUNDARY.finditer(stripped):
            end = match.end()
            if match.group() == "." and _closes_initial(stripped, match.start()):
                continue
            sentence = stripped[start:end].strip()
            if sentence:
                sentences.append(sentence)
            start = end
        tail = stripped[start:].strip()
        if tail:
            sentences.append(tail)
        return sentences

    def is_unstructured(self, text: str) -> bool:
        return self.is_unstructured_sentences(self.split_sentences(text))

    def is_unstructured_sentences(self, sentences: list[str]) -> bool:
        """True when the punctuated share is strictly below the minimum ratio."""
        if not sentences:
            return True
        punctuated = sum(1 for sentence in sentences if _TERMINAL.search(sentence.rstrip()))
        return (punctuated / len(sentences)) < self.config.min_punctuation_ratio


def _closes_initial(text: str, period_index: int) -> bool:
    if period_index < 1 or not text[period_index - 1].isupper():
        return False
    return period_index == 1 or not text[period_index - 2].isalnum()


def _segments_from_sentences(sentences: list[str]) -> list[Segment]:
    segments: list[Segment] = []
    position = 0
    for sentence in sentences:
        tokens = tokenize(sentence)
        if not tokens:
            continue
        segments.append(
            Segment(
                text=" ".join(tokens),
                start_token=position,
                end_token=position + len(tokens),
            )
        )
        position += len(tokens)
    return segments


def _sliding_windows(tokens: list[str], window_size: int, overlap: int) -> list[Segment]:
    segments: list[Segment] = []
    stride = window_size - overlap
    start = 0
    while start < len(tokens):
        end = min(start + window_size, len(tokens))
        segments.append(
            Segment(text=" ".join(tokens[start:end]), start_token=start, end_token=end)
        )
        if end >= len(tokens):
            break
        start += stride
    return segments
