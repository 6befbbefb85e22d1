"""Deterministic provider used when no external LLM is configured."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from attention_router.llm.provider import Message
from attention_router.types import LLMResponse


class DeterministicChatProvider:
    """Provider that never calls out and never requests a tool.

    Keeps the `LLMProvider` contract for local/offline environments where
    `OPENAI_API_KEY` is not configured. Namespace disambiguation then falls
    back to the highest-scoring candidate, and the executor finishes after a
    single turn with the canned reply.
    """

    def __init__(self, reply: str = "") -> None:
        self.reply = reply
        self.calls = 0

    def chat_with_tools(
        self,
        model: str,
        messages: Sequence[Message],
        tools: Sequence[Any],
        temperature: float,
    ) -> LLMResponse:
        del model, messages, tools, temperature
        self.calls += 1
        return LLMResponse(content=self.reply, tool_calls=[], tokens_used=0)
