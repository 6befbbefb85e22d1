"""Applies user corrections to the active configuration's attention state."""

from __future__ import annotations

import json
import threading
from collections.abc import Callable, Sequence
from typing import Any

from loguru import logger

from attention_router.attention.personality import ConfigurationStore, Personality
from attention_router.config import TrainingConfig
from attention_router.obs.invocations import InvocationLog, RoutingInvocation
from attention_router.routing.router import extract_keywords
from attention_router.training.feedback import CONTEXT_MANAGER_COMPONENT, FeedbackStore


def short_tool_name(name: str) -> str:
    """`task.create` -> `create`; names without a namespace are returned as is."""
    return name.rsplit(".", 1)[-1]


class FeedbackTrainer:
    """Turns corrections into threshold, centroid and tool-statistic updates.

    The trainer is the only writer of attention state. Each successful update
    is saved back to the configuration store, so the next routed event sees it.
    """

    def __init__(
        self,
        *,
        config_store: ConfigurationStore,
        invocation_log: InvocationLog,
        feedback_store: FeedbackStore | None = None,
        config: TrainingConfig | None = None,
    ) -> None:
        self.config_store = config_store
        self.invocation_log = invocation_log
        self.feedback_store = feedback_store or FeedbackStore()
        self.config = config or TrainingConfig()
        self._feedback_lock = threading.Lock()

    def train_namespace(self, invocation_id: str, correct_namespace: str) -> bool:
        invocation = self._invocation(invocation_id)
        if invocation is None:
            return False
        selected = invocation.selected_namespace

        def _apply(personality: Personality) -> bool:
            if selected == correct_namespace:
                return False
            attention = personality.namespace_attention
            if selected is not None:
                attention.raise_threshold(selected)
            attention.lower_threshold(correct_namespace)
            if invocation.event_embedding:
                attention.update_centroid(correct_namespace, invocation.event_embedding)
            attention.record_training()
            logger.info(
                "Namespace correction {} -> {}: thresholds {}",
                selected,
                correct_namespace,
                {name: round(value, 4) for name, value in attention.thresholds.items()},
            )
            return True

        return self._update(_apply)

    def train_tool_selection(
        self,
        invocation_id: str,
        correct_tool: str,
        keywords: Sequence[str] | None = None,
    ) -> bool:
        invocation = self._invocation(invocation_id)
        if invocation is None:
            return False
        namespace = invocation.selected_namespace
        if namespace is None:
            return False

        correct = short_tool_name(correct_tool)
        selected = short_tool_name(invocation.tools_called[0]) if invocation.tools_called else None
        words = list(keywords) if keywords is not None else extract_keywords(invocation.utterance)

        def _apply(personality: Personality) -> bool:
            if selected == correct:
                return False
            state = personality.get_tool_attention(namespace)
            step = self.config.success_rate_step
            if selected is not None:
                state.set_success_rate(selected, state.get_success_rate(selected) - step)
            state.set_success_rate(correct, state.get_success_rate(correct) + step)
            for word in words:
                state.set_keyword_weight(
                    correct, word, state.get_keyword_weight(correct, word) + self.config.keyword_reward
                )
                if selected is not None:
                    state.set_keyword_weight(
                        selected, word, state.get_keyword_weight(selected, word) - self.config.keyword_penalty
                    )
            state.record_training()
            logger.info(
                "Tool correction in {}: {} -> {} ({} keywords)", namespace, selected, correct, len(words)
            )
            return True

        return self._update(_apply)

    def train_from_feedback(self, turn_id: str) -> int:
        """Apply routing corrections stored for `turn_id` that were not applied before.

        Each correction is marked applied in the feedback store, so it is
        consumed once even across restarts. Returns how many corrections
        changed the attention state.
        """

        applied = 0
        with self._feedback_lock:
            for feedback in self.feedback_store.find_by_turn_and_component(
                turn_id, CONTEXT_MANAGER_COMPONENT
            ):
                if feedback.applied_at is not None:
                    continue
                try:
                    data = json.loads(feedback.corrected_data)
                except json.JSONDecodeError as exc:
                    logger.warning("Skipping malformed correction {}: {}", feedback.id, exc)
                    continue
                if not isinstance(data, dict):
                    logger.warning("Skipping correction {}: expected a JSON object", feedback.id)
                    continue

                trained = False
                namespace = data.get("namespace")
                if isinstance(namespace, str) and namespace:
                    trained = self.train_namespace(feedback.invocation_id, namespace) or trained
                tool = data.get("tool")
                if isinstance(tool, str) and tool:
                    keywords = data.get("keywords")
                    if not isinstance(keywords, list):
                        keywords = None
                    trained = self.train_tool_selection(feedback.invocation_id, tool, keywords) or trained
                self.feedback_store.mark_applied(feedback.id)
                if trained:
                    applied += 1
        return applied

    def adaptation_state(self) -> dict[str, Any]:
        personality = self.config_store.get_active()
        if personality is None:
            return {}
        attention = personality.namespace_attention
        return {
            "personality_id": personality.id,
            "namespace_attention": {
                "thresholds": dict(attention.thresholds),
                "default_threshold": attention.default_threshold,
                "learned_centroids": sorted(attention.centroids),
                "training_sample_count": attention.training_sample_count,
                "version": attention.version,
                "last_trained_at": attention.last_trained_at,
            },
            "tool_attention": {
                namespace: {
                    "success_rates": dict(state.success_rates),
                    "training_sample_count": state.training_sample_count,
                    "last_trained_at": state.last_trained_at,
                }
                for namespace, state in personality.tool_attention.items()
            },
        }

    def _invocation(self, invocation_id: str) -> RoutingInvocation | None:
        try:
            return self.invocation_log.get(invocation_id)
        except KeyError:
            logger.warning("Training skipped: invocation {} not found", invocation_id)
            return None

    def _update(self, apply: Callable[[Personality], bool]) -> bool:
        outcome = self.config_store.update_active(apply)
        if outcome is None:
            logger.warning("Training skipped: no active configuration")
            return False
        return True
