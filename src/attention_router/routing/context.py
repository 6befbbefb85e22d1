"""Namespace-specific context injection."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from attention_router.types import RoutingEvent

ContextProvider = Callable[[RoutingEvent], dict[str, Any]]


class ContextInjector:
    """Merges the context maps of every provider registered for a namespace.

    Later providers overwrite earlier keys. List values are counted per key in
    `item_counts`; any other value counts as one item.
    """

    def __init__(self) -> None:
        self._providers: dict[str, list[ContextProvider]] = {}

    def register(self, namespace: str, provider: ContextProvider) -> None:
        self._providers.setdefault(namespace, []).append(provider)

    def providers_for(self, namespace: str) -> list[ContextProvider]:
        return list(self._providers.get(namespace, []))

    def inject(self, namespace: str, event: RoutingEvent) -> dict[str, Any]:
        context: dict[str, Any] = {}
        for provider in self._providers.get(namespace, []):
            context.update(provider(event))
        return context

    @staticmethod
    def item_counts(context: dict[str, Any]) -> dict[str, int]:
        return {
            key: len(value) if isinstance(value, (list, tuple)) else 1
            for key, value in context.items()
        }
